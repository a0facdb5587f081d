"""
Loads the merchant tax/shipping configuration into an immutable snapshot.
The pricing functions in tax_service take this snapshot instead of reading
the database themselves.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple

from sqlalchemy.orm import Session

from exceptions import ConfigurationError
from .Tax_model import CompanySettings, TaxRate, ShippingRate
from .money_utils import D

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaxRateEntry:
    name: str
    percentage: Decimal


@dataclass(frozen=True)
class ShippingRateEntry:
    state: str
    intra_state_rate: Decimal
    inter_state_rate: Decimal


@dataclass(frozen=True)
class TaxConfiguration:
    home_state: str
    is_tax_inclusive: bool
    tax_rates: Tuple[TaxRateEntry, ...]
    shipping_rates: Tuple[ShippingRateEntry, ...]


def load_tax_configuration(db: Session) -> TaxConfiguration:
    """
    Read company settings, active tax rates and active shipping rates once.
    Raises ConfigurationError when the company settings row or its state is missing.
    """
    company = db.query(CompanySettings).order_by(CompanySettings.id.asc()).first()
    if not company or not (company.state or "").strip():
        logger.error("Company settings (home state) are not configured")
        raise ConfigurationError("Company settings not configured")

    rates = db.query(TaxRate).filter(TaxRate.is_active == True).order_by(TaxRate.id.asc()).all()
    shipping = db.query(ShippingRate).filter(ShippingRate.is_active == True).order_by(ShippingRate.id.asc()).all()

    return TaxConfiguration(
        home_state=company.state,
        is_tax_inclusive=bool(company.is_tax_inclusive),
        tax_rates=tuple(TaxRateEntry(name=r.name, percentage=D(r.percentage)) for r in rates),
        shipping_rates=tuple(
            ShippingRateEntry(
                state=s.state,
                intra_state_rate=D(s.intra_state_rate),
                inter_state_rate=D(s.inter_state_rate),
            )
            for s in shipping
        ),
    )
