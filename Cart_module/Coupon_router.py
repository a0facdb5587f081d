"""
Coupon router - user redemption and admin coupon management.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from deps import get_db
from Login_module.Utils.auth_user import get_current_user, get_current_admin
from Login_module.User.user_model import User
from .Coupon_schema import RedeemCouponRequest, CreateCouponRequest, CouponResponse
from . import coupon_service

router = APIRouter(prefix="/coupons", tags=["Coupons"])

logger = logging.getLogger(__name__)


def _coupon_data(coupon) -> dict:
    return CouponResponse.model_validate(coupon).model_dump()


@router.get("")
def available_coupons(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Coupons the current user can still redeem."""
    coupons = coupon_service.list_available_coupons(db, current_user.id)
    return {
        "status": "success",
        "message": "Coupons fetched successfully.",
        "data": [_coupon_data(c) for c in coupons]
    }


@router.post("/redeem")
def redeem(
    request_data: RedeemCouponRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    coupon = coupon_service.redeem_coupon(db, current_user.id, request_data.code, request_data.cart_id)
    return {
        "status": "success",
        "message": f"Coupon '{coupon.code}' applied successfully.",
        "data": _coupon_data(coupon)
    }


@router.post("")
def create(
    request_data: CreateCouponRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    coupon = coupon_service.create_coupon(
        db,
        name=request_data.name,
        discount=request_data.discount,
        expires_at=request_data.expires_at,
        cart_id=request_data.cart_id,
        user_id=request_data.user_id,
        max_redeem_count=request_data.max_redeem_count,
        show_on_homepage=request_data.show_on_homepage,
    )
    logger.info(f"Admin {admin.id} created coupon {coupon.code}")
    return {
        "status": "success",
        "message": "Coupon created successfully.",
        "data": _coupon_data(coupon)
    }


@router.get("/discounts")
def all_discounts(
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return {
        "status": "success",
        "message": "Discounts fetched successfully.",
        "data": [_coupon_data(c) for c in coupon_service.list_coupons(db)]
    }


@router.get("/discounts/{coupon_id}")
def discount_detail(
    coupon_id: int,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return {
        "status": "success",
        "message": "Discount fetched successfully.",
        "data": _coupon_data(coupon_service.get_coupon(db, coupon_id))
    }


@router.delete("/discounts/{coupon_id}")
def delete_discount(
    coupon_id: int,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    coupon_service.delete_coupon(db, coupon_id)
    return {
        "status": "success",
        "message": "Discount deleted successfully."
    }
