"""
Abandoned-cart router - preview and apply the abandoned-cart discount.
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from deps import get_db
from Login_module.Utils.auth_user import get_current_user
from Login_module.User.user_model import User
from .Abandoned_schema import ApplyAbandonedDiscountRequest, AbandonedDiscountResponse
from .abandoned_service import get_user_cart, compute_abandoned_discount, apply_abandoned_discount

router = APIRouter(prefix="/abandoned", tags=["Abandoned Cart"])

logger = logging.getLogger(__name__)


@router.get("/get-discount")
def get_discount(
    cart_id: int = Query(..., gt=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Which cart lines still qualify for the abandoned-cart discount."""
    cart = get_user_cart(db, cart_id, current_user.id)
    result = compute_abandoned_discount(db, cart)
    return {
        "status": "success",
        "message": result.message,
        "data": AbandonedDiscountResponse(**result.as_dict()).model_dump()
    }


@router.post("/apply-discount")
def apply_discount(
    request_data: ApplyAbandonedDiscountRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    cart = get_user_cart(db, request_data.cart_id, current_user.id)
    result = apply_abandoned_discount(db, cart)
    return {
        "status": "success",
        "message": result.message,
        "data": AbandonedDiscountResponse(**result.as_dict()).model_dump()
    }
