"""
Order settlement: validates a checkout, prices it, persists the order with its
payment and settles the redeemed coupon in the same transaction.
"""
import logging
import secrets
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from exceptions import ConflictError, ExternalServiceError, NotFoundError, StoreError, ValidationError
from Login_module.Utils.datetime_utils import IST, now_ist, is_expired, to_ist_isoformat
from Login_module.User.user_model import User
from Address_module.Address_model import Address
from Address_module.pincode_service import resolve_pincode
from Product_module.Product_model import Product, Variant
from Cart_module.Cart_model import Cart
from Cart_module.Coupon_model import CouponCode, CouponRedemption
from Cart_module.coupon_service import normalize_code, get_active_redemption, settle_coupon, compute_coupon_discount
from Tax_module.tax_config import load_tax_configuration
from Tax_module.tax_service import price_order
from Tax_module.money_utils import MAX_AMOUNT, ZERO, round_money, to_money
from Notification_module.Notification_crud import send_notification
from Notification_module.email_service import send_order_confirmation_email
from .Order_model import Order, OrderItem, OrderStatus, OrderStatusHistory, Payment, PaymentMethod, PaymentStatus, TaxType
from .Order_schema import CatalogRef, OrderLine, PRODUCT

logger = logging.getLogger(__name__)

# (final_amount, receipt) -> gateway order payload containing "id"
PaymentGateway = Callable[[Any, str], Dict[str, Any]]


def generate_order_number() -> str:
    """Generate unique order number"""
    timestamp = now_ist().strftime("%Y%m%d%H%M%S")
    random_part = secrets.token_hex(4).upper()
    return f"ORD{timestamp}{random_part}"


def parse_order_lines(items: Iterable) -> List[OrderLine]:
    """Accepts OrderItemInput models or plain dicts."""
    items = list(items or [])
    if not items:
        raise ValidationError("Order must contain at least one item.")

    lines = []
    for n, item in enumerate(items, start=1):
        data = item.model_dump() if hasattr(item, "model_dump") else dict(item)
        try:
            ref = CatalogRef.from_ids(data.get("product_id"), data.get("variant_id"))
        except ValueError as e:
            raise ValidationError(f"Item {n}: {e}")
        quantity = data.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"Item {n}: Quantity must be a positive integer.")
        lines.append(OrderLine(ref=ref, quantity=quantity))
    return lines


def _unit_price(db: Session, n: int, line: OrderLine):
    model = Product if line.ref.kind == PRODUCT else Variant
    row = db.query(model).filter(model.id == line.ref.ref_id).first()
    if row is None:
        raise NotFoundError(f"Item {n}: {line.ref.kind} {line.ref.ref_id} not found.")
    return round_money(row.selling_price)


def _parse_payment_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(str(value or "").strip().upper())
    except ValueError:
        raise ValidationError(f"Unsupported payment method '{value}'")


def _parse_order_status(value) -> OrderStatus:
    try:
        return OrderStatus(str(value or "").strip().upper())
    except ValueError:
        raise ValidationError(f"Invalid order status '{value}'")


def _resolve_redeemed_coupon(db: Session, user_id: int, discount_code: str, cart_id: int) -> Tuple[CouponCode, Cart]:
    """The coupon must be redeemed on this cart and not yet settled."""
    cart = db.query(Cart).filter(Cart.id == cart_id, Cart.user_id == user_id).first()
    if not cart:
        raise NotFoundError("Cart not found")

    coupon = db.query(CouponCode).filter(CouponCode.code == normalize_code(discount_code)).first()
    if not coupon:
        raise NotFoundError("Invalid or expired discount code")

    if get_active_redemption(db, coupon.id, cart.id) is None:
        settled = db.query(CouponRedemption.id).filter(
            CouponRedemption.coupon_id == coupon.id,
            CouponRedemption.cart_id == cart.id,
            CouponRedemption.order_id.isnot(None)
        ).first()
        if settled:
            raise ConflictError("Discount code has already been used for this cart")
        raise ValidationError("Discount code has not been redeemed on this cart")

    if not coupon.is_active:
        raise ValidationError("Discount code is no longer active")
    if is_expired(coupon.expires_at):
        raise ValidationError("Discount code has expired")

    return coupon, cart


def create_order(
    db: Session,
    user_id: int,
    items: Iterable,
    address_id: int,
    subtotal,
    payment_method,
    discount_code: Optional[str] = None,
    cart_id: Optional[int] = None,
    payment_gateway: Optional[PaymentGateway] = None,
) -> Order:
    """
    Place an order.

    Everything is validated before the first write, so a rejected checkout
    leaves no order or payment behind. The coupon is settled in the same
    transaction as the order. Notification and email run after commit and
    their failure does not affect the order.
    """
    # Validation - no writes past this point until pricing is complete
    lines = parse_order_lines(items)
    amount = to_money(subtotal, "subtotal")
    method = _parse_payment_method(payment_method)
    prices = [_unit_price(db, n, line) for n, line in enumerate(lines, start=1)]

    address = db.query(Address).filter(Address.id == address_id, Address.user_id == user_id).first()
    if not address:
        raise NotFoundError("Address not found")
    location = resolve_pincode(db, address.postal_code)
    config = load_tax_configuration(db)

    coupon, cart = None, None
    if discount_code or cart_id:
        if not (discount_code and cart_id):
            raise ValidationError("discount_code and cart_id must be provided together")
        coupon, cart = _resolve_redeemed_coupon(db, user_id, discount_code, cart_id)

    # Pricing
    discount_amount = ZERO
    if coupon is not None:
        undiscounted = price_order(location.state, config, amount)
        discount_amount = compute_coupon_discount(db, coupon, cart, undiscounted.total_before_discount)
    breakdown = price_order(location.state, config, amount, discount_amount)
    if breakdown.total_before_discount > MAX_AMOUNT:
        raise ValidationError(f"Order total cannot exceed {MAX_AMOUNT}")

    order_number = generate_order_number()
    gateway_order_id = None
    if payment_gateway is not None and method == PaymentMethod.RAZORPAY and breakdown.final_amount > ZERO:
        gateway_order = payment_gateway(breakdown.final_amount, order_number)
        gateway_order_id = gateway_order.get("id")

    # Persistence
    snapshot = address.as_snapshot()
    try:
        payment = Payment(
            method=method,
            status=PaymentStatus.PENDING,
            amount=breakdown.final_amount,
            gateway_order_id=gateway_order_id,
        )
        db.add(payment)
        db.flush()

        order = Order(
            order_number=order_number,
            user_id=user_id,
            address_id=address.id,
            cart_id=cart.id if cart is not None else cart_id,
            billing_address=snapshot,
            shipping_address=snapshot,
            subtotal=breakdown.subtotal,
            tax_amount=breakdown.tax_amount,
            tax_type=TaxType(breakdown.tax_type),
            applied_tax_rate=breakdown.tax_percentage,
            is_tax_inclusive=breakdown.is_tax_inclusive,
            total_before_discount=breakdown.total_before_discount,
            discount_amount=breakdown.discount_amount,
            discount_code=coupon.code if coupon is not None else None,
            final_amount=breakdown.final_amount,
            status=OrderStatus.PENDING,
            payment_id=payment.id,
        )
        db.add(order)
        db.flush()

        for line, price in zip(lines, prices):
            db.add(OrderItem(
                order_id=order.id,
                product_id=line.ref.product_id,
                variant_id=line.ref.variant_id,
                quantity=line.quantity,
                price=price,
            ))

        db.add(OrderStatusHistory(
            order_id=order.id,
            status=OrderStatus.PENDING,
            previous_status=None,
            notes="Order created",
            changed_by=str(user_id),
        ))

        if coupon is not None and not settle_coupon(db, coupon, cart.id, order.id):
            raise ConflictError("Discount code has already been used for this cart")

        db.commit()
    except (StoreError, SQLAlchemyError):
        db.rollback()
        logger.warning(f"Order {order_number} for user {user_id} rolled back", exc_info=True)
        raise

    db.refresh(order)
    logger.info(
        f"Order {order.order_number} created for user {user_id}: "
        f"{breakdown.tax_type} {breakdown.tax_percentage}%, final amount {breakdown.final_amount}"
    )

    _notify_order_created(db, order)
    return order


def _notify_order_created(db: Session, order: Order) -> None:
    send_notification(
        db,
        order.user_id,
        f"Your order #{order.order_number} has been created and is pending payment.",
        "ORDER",
        title="Order created",
    )
    user = db.query(User).filter(User.id == order.user_id).first()
    if not user or not user.email:
        return
    try:
        send_order_confirmation_email(user.email, user.name, order.order_number, order.final_amount)
    except ExternalServiceError as e:
        logger.warning(f"Order confirmation email for {order.order_number} failed: {e.message}")


def confirm_payment(db: Session, gateway_order_id: str, transaction_id: Optional[str] = None) -> Order:
    """
    Payment-gateway confirmation keyed by the gateway order reference.
    Idempotent: a second call for an already confirmed order changes nothing.
    """
    payment = db.query(Payment).filter(Payment.gateway_order_id == gateway_order_id).first()
    if not payment:
        raise NotFoundError(f"No payment for gateway order {gateway_order_id}")
    order = db.query(Order).filter(Order.payment_id == payment.id).first()
    if not order:
        raise NotFoundError(f"No order for gateway order {gateway_order_id}")

    now = now_ist()
    db.query(Payment).filter(
        Payment.id == payment.id,
        Payment.status == PaymentStatus.PENDING
    ).update({
        Payment.status: PaymentStatus.SUCCESS,
        Payment.transaction_id: transaction_id,
        Payment.paid_at: now,
    }, synchronize_session=False)

    moved = db.query(Order).filter(
        Order.id == order.id,
        Order.status == OrderStatus.PENDING
    ).update({Order.status: OrderStatus.CONFIRMED}, synchronize_session=False)

    if moved:
        db.add(OrderStatusHistory(
            order_id=order.id,
            status=OrderStatus.CONFIRMED,
            previous_status=OrderStatus.PENDING,
            notes=f"Payment confirmed (transaction {transaction_id or 'n/a'})",
            changed_by="system",
        ))
    db.commit()
    db.refresh(order)

    if moved:
        logger.info(f"Order {order.order_number} confirmed by payment {transaction_id}")
        send_notification(
            db,
            order.user_id,
            f"Payment received. Your order #{order.order_number} is confirmed.",
            "ORDER",
            title="Order confirmed",
        )
    else:
        logger.info(f"Order {order.order_number} already {order.status.value}; confirmation ignored")
    return order


def update_order_status(db: Session, order_id: int, status, changed_by: str, notes: Optional[str] = None) -> Order:
    new_status = _parse_order_status(status)
    order = get_order(db, order_id)
    previous = order.status
    if previous == new_status:
        return order

    order.status = new_status
    db.add(OrderStatusHistory(
        order_id=order.id,
        status=new_status,
        previous_status=previous,
        notes=notes or f"Status changed from {previous.value} to {new_status.value}",
        changed_by=changed_by,
    ))
    db.commit()
    db.refresh(order)
    logger.info(f"Order {order.order_number} status {previous.value} -> {new_status.value} by {changed_by}")

    send_notification(
        db,
        order.user_id,
        f"Your order #{order.order_number} status has been updated to {new_status.value}.",
        "ORDER",
        title="Order status updated",
    )
    return order


def get_order(db: Session, order_id: int, user_id: Optional[int] = None) -> Order:
    query = db.query(Order).filter(Order.id == order_id)
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    order = query.first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def list_user_orders(
    db: Session,
    user_id: int,
    page: int = 1,
    page_size: int = 10,
    status: Optional[str] = None,
) -> Tuple[List[Order], int]:
    query = db.query(Order).filter(Order.user_id == user_id)
    if status:
        query = query.filter(Order.status == _parse_order_status(status))
    total = query.count()
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()) \
        .offset((max(page, 1) - 1) * page_size).limit(page_size).all()
    return orders, total


def list_orders_for_admin(
    db: Session,
    customer_id: Optional[int] = None,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    ordering: str = "desc",
    page: int = 1,
    page_size: int = 10,
) -> Tuple[List[Order], int]:
    """
    All orders, optionally narrowed to one customer, a status and a date range.
    start_date and end_date are IST calendar days and both are inclusive.
    """
    direction = str(ordering or "").strip().lower()
    if direction not in ("asc", "desc"):
        raise ValidationError("ordering must be 'asc' or 'desc'")
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date cannot be after end_date")

    query = db.query(Order)
    if customer_id is not None:
        query = query.filter(Order.user_id == customer_id)
    if status:
        query = query.filter(Order.status == _parse_order_status(status))
    if start_date:
        query = query.filter(Order.created_at >= datetime.combine(start_date, time.min, tzinfo=IST))
    if end_date:
        # Exclusive upper bound at the next midnight
        upper = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=IST)
        query = query.filter(Order.created_at < upper)

    total = query.count()
    if direction == "asc":
        query = query.order_by(Order.created_at.asc(), Order.id.asc())
    else:
        query = query.order_by(Order.created_at.desc(), Order.id.desc())
    orders = query.offset((max(page, 1) - 1) * page_size).limit(page_size).all()
    return orders, total



def serialize_order(order: Order) -> Dict[str, Any]:
    payment = order.payment
    return {
        "id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "status": order.status.value,
        "subtotal": order.subtotal,
        "tax_amount": order.tax_amount,
        "tax_type": order.tax_type.value,
        "applied_tax_rate": order.applied_tax_rate,
        "is_tax_inclusive": order.is_tax_inclusive,
        "total_before_discount": order.total_before_discount,
        "discount_amount": order.discount_amount,
        "discount_code": order.discount_code,
        "final_amount": order.final_amount,
        "billing_address": order.billing_address,
        "shipping_address": order.shipping_address,
        "payment_method": payment.method.value if payment else None,
        "payment_status": payment.status.value if payment else None,
        "gateway_order_id": payment.gateway_order_id if payment else None,
        "created_at": to_ist_isoformat(order.created_at),
        "items": [
            {
                "id": item.id,
                "product_id": item.product_id,
                "variant_id": item.variant_id,
                "quantity": item.quantity,
                "price": item.price,
            }
            for item in order.items
        ],
    }
