"""
Order router - placement, lookup, admin listing, status updates and the payment webhook.
"""
import json
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from deps import get_db
from exceptions import NotFoundError
from Login_module.Utils.auth_user import get_current_user, get_current_admin
from Login_module.User.user_model import User
from .Order_schema import CreateOrderRequest, OrderResponse, UpdateOrderStatusRequest, WebhookResponse
from .Order_crud import (
    create_order,
    confirm_payment,
    update_order_status,
    get_order,
    list_user_orders,
    list_orders_for_admin,
    serialize_order,
)
from .Order_model import PaymentMethod
from . import razorpay_service

router = APIRouter(prefix="/orders", tags=["Orders"])

logger = logging.getLogger(__name__)


@router.post("/create")
def place_order(
    request_data: CreateOrderRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Place an order for the authenticated user.
    Online payments get a Razorpay order; the order is confirmed by the webhook.
    """
    gateway = None
    if request_data.payment_method.strip().upper() == PaymentMethod.RAZORPAY.value:
        gateway = razorpay_service.create_razorpay_order

    order = create_order(
        db,
        user_id=current_user.id,
        items=request_data.items,
        address_id=request_data.address_id,
        subtotal=request_data.subtotal,
        payment_method=request_data.payment_method,
        discount_code=request_data.discount_code,
        cart_id=request_data.cart_id,
        payment_gateway=gateway,
    )
    return {
        "status": "success",
        "message": "Order created successfully.",
        "data": OrderResponse(**serialize_order(order)).model_dump()
    }


@router.get("/list")
def my_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    order_status: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    orders, total = list_user_orders(db, current_user.id, page, page_size, order_status)
    return {
        "status": "success",
        "message": "Orders fetched successfully.",
        "data": {
            "orders": [OrderResponse(**serialize_order(o)).model_dump() for o in orders],
            "pagination": {
                "page": page,
                "page_size": page_size,
                "total": total,
                "total_pages": (total + page_size - 1) // page_size,
            }
        }
    }


@router.get("/admin/list")
def admin_orders(
    customer_id: Optional[int] = Query(None),
    order_status: Optional[str] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    ordering: str = Query("desc"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Admin view of all orders, filterable by customer, status and created date."""
    orders, total = list_orders_for_admin(
        db,
        customer_id=customer_id,
        status=order_status,
        start_date=start_date,
        end_date=end_date,
        ordering=ordering,
        page=page,
        page_size=page_size,
    )
    return {
        "status": "success",
        "message": "Orders fetched successfully.",
        "data": {
            "orders": [OrderResponse(**serialize_order(o)).model_dump() for o in orders],
            "pagination": {
                "page": page,
                "page_size": page_size,
                "total": total,
                "total_pages": (total + page_size - 1) // page_size,
            }
        }
    }


@router.get("/{order_id}")
def order_detail(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    order = get_order(db, order_id, user_id=current_user.id)
    return {
        "status": "success",
        "message": "Order fetched successfully.",
        "data": OrderResponse(**serialize_order(order)).model_dump()
    }


@router.put("/{order_id}/status")
def change_order_status(
    order_id: int,
    request_data: UpdateOrderStatusRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    order = update_order_status(db, order_id, request_data.status, changed_by=str(admin.id), notes=request_data.notes)
    return {
        "status": "success",
        "message": f"Order status updated to {order.status.value}.",
        "data": OrderResponse(**serialize_order(order)).model_dump()
    }


@router.post("/webhook", response_model=WebhookResponse)
async def razorpay_webhook(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Razorpay webhook endpoint - confirms orders on payment.captured.
    Safe to receive the same event more than once.
    """
    body_str = (await request.body()).decode("utf-8")

    webhook_signature = request.headers.get("X-Razorpay-Signature")
    if not webhook_signature:
        logger.error("Missing X-Razorpay-Signature header in webhook request")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing webhook signature")

    if not razorpay_service.verify_webhook_signature(body_str, webhook_signature):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        webhook_data = json.loads(body_str)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in webhook payload: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload")

    event_type = webhook_data.get("event")
    entity = webhook_data.get("payload", {}).get("payment", {}).get("entity", {})
    logger.info(f"Received webhook event: {event_type}")

    if event_type != "payment.captured":
        return WebhookResponse(status="success", message=f"Event {event_type} ignored")

    razorpay_order_id = entity.get("order_id")
    if not razorpay_order_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing order_id in webhook payload")

    try:
        order = confirm_payment(db, razorpay_order_id, transaction_id=entity.get("id"))
    except NotFoundError as e:
        # 200 so Razorpay does not retry an event we can never match
        logger.warning(f"Webhook for unknown Razorpay order {razorpay_order_id}: {e.message}")
        return WebhookResponse(status="success", message=e.message)

    return WebhookResponse(status="success", message=f"Order {order.order_number} is {order.status.value}")
