"""
Tax router - checkout order summary and pincode availability.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from deps import get_db
from Address_module.pincode_service import check_availability
from .Tax_crud import compute_order_summary
from .Tax_schema import OrderSummaryRequest, OrderSummaryResponse, PincodeCheckRequest

router = APIRouter(tags=["Tax"])

logger = logging.getLogger(__name__)


@router.post("/order-summary")
def order_summary(
    request_data: OrderSummaryRequest,
    db: Session = Depends(get_db)
):
    """
    Tax type, tax components, shipping rate and pricing mode for a delivery pincode.
    Send a subtotal to also get the priced totals.
    """
    summary = compute_order_summary(db, request_data.pincode, request_data.subtotal)
    return {
        "status": "success",
        "message": "Order summary calculated successfully.",
        "data": OrderSummaryResponse(**summary).model_dump()
    }


@router.post("/pincode/check-availability")
def pincode_availability(
    request_data: PincodeCheckRequest,
    db: Session = Depends(get_db)
):
    result = check_availability(db, request_data.pincode)
    return {
        "status": "success",
        "message": "Delivery available." if result["available"] else result["message"],
        "data": result
    }
