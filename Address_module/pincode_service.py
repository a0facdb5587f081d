"""
Pincode service: resolves a delivery pincode to its serviceable location.
Only active rows in the pincodes table are serviceable.
"""
import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from exceptions import NotFoundError, ValidationError
from .Address_model import Pincode

logger = logging.getLogger(__name__)


def normalize_pincode(pincode) -> str:
    """Strip whitespace and validate the 6-digit Indian pincode format."""
    normalized = str(pincode or "").strip().replace(" ", "")
    if not normalized.isdigit() or len(normalized) != 6:
        raise ValidationError("Pincode must be a 6-digit number")
    return normalized


def resolve_pincode(db: Session, pincode) -> Pincode:
    normalized = normalize_pincode(pincode)
    row = db.query(Pincode).filter(
        Pincode.zipcode == normalized,
        Pincode.is_active == True
    ).first()
    if not row:
        logger.info(f"Pincode {normalized} is not serviceable")
        raise NotFoundError("Pincode not serviceable")
    return row


def check_availability(db: Session, pincode) -> Dict[str, Any]:
    """Delivery availability for a pincode, without raising for unserviceable ones."""
    try:
        row = resolve_pincode(db, pincode)
    except NotFoundError:
        return {
            "available": False,
            "pincode": str(pincode).strip(),
            "message": "Delivery is not available for this pincode",
        }
    return {
        "available": True,
        "pincode": row.zipcode,
        "city": row.city,
        "state": row.state,
        "estimated_delivery_days": row.estimated_delivery_days,
    }
