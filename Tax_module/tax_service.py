"""
Tax & pricing resolver.

Pure functions over a TaxConfiguration snapshot:
- jurisdiction: IGST when the delivery state differs from the home state,
  otherwise CGST + SGST
- amounts: exclusive pricing adds tax on top, inclusive pricing extracts it
- shipping: per-state rate with a documented fallback
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from config import settings
from exceptions import ConfigurationError
from .tax_config import TaxConfiguration, TaxRateEntry
from .money_utils import D, ZERO, HUNDRED, round_money

logger = logging.getLogger(__name__)

IGST = "IGST"
CGST = "CGST"
SGST = "SGST"
CGST_SGST = "CGST+SGST"


@dataclass(frozen=True)
class TaxJurisdiction:
    tax_type: str
    tax_percentage: Decimal
    tax_details: List[dict]
    is_inter_state: bool


@dataclass(frozen=True)
class TaxBreakdown:
    tax_type: str
    tax_percentage: Decimal
    is_tax_inclusive: bool
    subtotal: Decimal  # Pre-tax base
    tax_amount: Decimal
    total_before_discount: Decimal
    discount_amount: Decimal
    final_amount: Decimal


def normalize_state(value: Optional[str]) -> str:
    """Case and whitespace insensitive form of a state name."""
    return " ".join((value or "").split()).lower()


def is_inter_state(delivery_state: str, home_state: str) -> bool:
    return normalize_state(delivery_state) != normalize_state(home_state)


def _find_rate(config: TaxConfiguration, name: str) -> Optional[TaxRateEntry]:
    wanted = name.upper()
    for rate in config.tax_rates:
        if (rate.name or "").strip().upper() == wanted:
            return rate
    return None


def resolve_jurisdiction(delivery_state: str, config: TaxConfiguration) -> TaxJurisdiction:
    """
    Pick the applicable tax components for a delivery state.
    Raises ConfigurationError when a required rate is not configured.
    """
    if is_inter_state(delivery_state, config.home_state):
        igst = _find_rate(config, IGST)
        if igst is None:
            logger.error(f"IGST rate missing for inter-state delivery to '{delivery_state}'")
            raise ConfigurationError("IGST tax rate not configured")
        return TaxJurisdiction(
            tax_type=IGST,
            tax_percentage=D(igst.percentage),
            tax_details=[{"name": IGST, "percentage": D(igst.percentage)}],
            is_inter_state=True,
        )

    cgst = _find_rate(config, CGST)
    sgst = _find_rate(config, SGST)
    if cgst is None or sgst is None:
        logger.error(f"CGST/SGST rates missing for intra-state delivery to '{delivery_state}'")
        raise ConfigurationError("CGST and SGST tax rates not configured")
    return TaxJurisdiction(
        tax_type=CGST_SGST,
        tax_percentage=D(cgst.percentage) + D(sgst.percentage),
        tax_details=[
            {"name": CGST, "percentage": D(cgst.percentage)},
            {"name": SGST, "percentage": D(sgst.percentage)},
        ],
        is_inter_state=False,
    )


def compute_tax(amount, rate, inclusive: bool) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Returns (base, tax_amount, total_before_discount), all rounded half-up.

    Exclusive: base + tax == total.
    Inclusive: the amount already contains tax, so base + tax == amount.
    """
    amount = round_money(amount)
    rate = D(rate)
    if inclusive:
        base = round_money(amount / (Decimal("1") + rate / HUNDRED))
        tax_amount = amount - base
        return base, tax_amount, amount

    tax_amount = round_money(amount * rate / HUNDRED)
    return amount, tax_amount, amount + tax_amount


def apply_discount(total_before_discount, discount_amount) -> Decimal:
    """Final payable amount, clamped at zero."""
    final = round_money(total_before_discount) - round_money(discount_amount)
    return final if final > ZERO else ZERO


def price_order(delivery_state: str, config: TaxConfiguration, subtotal, discount_amount=ZERO) -> TaxBreakdown:
    jurisdiction = resolve_jurisdiction(delivery_state, config)
    base, tax_amount, total = compute_tax(subtotal, jurisdiction.tax_percentage, config.is_tax_inclusive)
    discount = round_money(discount_amount)
    return TaxBreakdown(
        tax_type=jurisdiction.tax_type,
        tax_percentage=jurisdiction.tax_percentage,
        is_tax_inclusive=config.is_tax_inclusive,
        subtotal=base,
        tax_amount=tax_amount,
        total_before_discount=total,
        discount_amount=discount,
        final_amount=apply_discount(total, discount),
    )


def resolve_shipping_rate(delivery_state: str, config: TaxConfiguration) -> Decimal:
    """
    Shipping cost for a delivery state.

    A row for the delivery state gives its intra-state rate when the delivery is
    inside the home state, otherwise its inter-state rate. Without a row the
    configured DEFAULT_INTER_STATE_SHIPPING_RATE is used, then the first active
    row's inter-state rate.
    """
    inter_state = is_inter_state(delivery_state, config.home_state)
    wanted = normalize_state(delivery_state)

    for row in config.shipping_rates:
        if normalize_state(row.state) == wanted:
            return round_money(row.inter_state_rate if inter_state else row.intra_state_rate)

    if settings.DEFAULT_INTER_STATE_SHIPPING_RATE is not None:
        logger.warning(f"No shipping rate for '{delivery_state}', using configured default")
        return round_money(settings.DEFAULT_INTER_STATE_SHIPPING_RATE)

    if config.shipping_rates:
        fallback = config.shipping_rates[0]
        logger.warning(
            f"No shipping rate for '{delivery_state}', falling back to inter-state rate of '{fallback.state}'"
        )
        return round_money(fallback.inter_state_rate)

    logger.error("No active shipping rates configured")
    raise ConfigurationError("No shipping rate configured in the system")
