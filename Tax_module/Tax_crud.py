import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from Address_module.pincode_service import resolve_pincode
from .tax_config import load_tax_configuration
from .tax_service import resolve_jurisdiction, resolve_shipping_rate, price_order
from .money_utils import to_money

logger = logging.getLogger(__name__)


def compute_order_summary(db: Session, pincode, subtotal: Optional[Any] = None) -> Dict[str, Any]:
    """
    Checkout summary for a delivery pincode: tax type and components,
    shipping rate and pricing mode. With a subtotal, also the priced totals.
    """
    location = resolve_pincode(db, pincode)
    config = load_tax_configuration(db)

    jurisdiction = resolve_jurisdiction(location.state, config)
    shipping_rate = resolve_shipping_rate(location.state, config)

    summary = {
        "pincode": location.zipcode,
        "state": location.state,
        "tax_type": jurisdiction.tax_type,
        "tax_percentage": jurisdiction.tax_percentage,
        "tax_details": jurisdiction.tax_details,
        "shipping_rate": shipping_rate,
        "is_tax_inclusive": config.is_tax_inclusive,
    }

    if subtotal is not None:
        breakdown = price_order(location.state, config, to_money(subtotal, "subtotal"))
        summary.update({
            "subtotal": breakdown.subtotal,
            "tax_amount": breakdown.tax_amount,
            "total_before_discount": breakdown.total_before_discount,
            "final_amount": breakdown.final_amount,
        })

    logger.info(f"Order summary for pincode {location.zipcode}: {jurisdiction.tax_type} {jurisdiction.tax_percentage}%")
    return summary
