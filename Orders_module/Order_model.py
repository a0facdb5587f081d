"""
Order model - stores order pricing snapshot, items and payment details.
Pricing fields are written once at checkout and never re-priced.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, ForeignKey, Text, Boolean, CheckConstraint
from sqlalchemy.orm import relationship
from database import Base
from Login_module.Utils.datetime_utils import now_ist
import enum


class OrderStatus(str, enum.Enum):
    """Order tracking statuses"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"  # Payment verified by webhook
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"


class PaymentMethod(str, enum.Enum):
    RAZORPAY = "RAZORPAY"
    COD = "COD"


class TaxType(str, enum.Enum):
    IGST = "IGST"
    CGST_SGST = "CGST+SGST"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    method = Column(Enum(PaymentMethod), nullable=False)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    gateway_order_id = Column(String(255), nullable=True, unique=True, index=True)  # Razorpay order ID
    transaction_id = Column(String(255), nullable=True)  # Razorpay payment ID
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_ist, nullable=False)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    address_id = Column(Integer, ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="SET NULL"), nullable=True)

    # Address snapshot at time of order
    billing_address = Column(Text, nullable=False)
    shipping_address = Column(Text, nullable=False)

    # Pricing snapshot
    subtotal = Column(Numeric(12, 2), nullable=False)  # Pre-tax base
    tax_amount = Column(Numeric(12, 2), nullable=False)
    tax_type = Column(Enum(TaxType, values_callable=lambda e: [m.value for m in e]), nullable=False)
    applied_tax_rate = Column(Numeric(5, 2), nullable=False)
    is_tax_inclusive = Column(Boolean, nullable=False)
    total_before_discount = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_code = Column(String(50), nullable=True, index=True)
    final_amount = Column(Numeric(12, 2), nullable=False)  # Authoritative payable amount

    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, unique=True)

    created_at = Column(DateTime(timezone=True), default=now_ist, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=now_ist, onupdate=now_ist)

    user = relationship("User")
    payment = relationship("Payment")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint(
            "(product_id IS NULL) <> (variant_id IS NULL)",
            name="ck_order_items_product_xor_variant",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=True)
    variant_id = Column(Integer, ForeignKey("variants.id", ondelete="RESTRICT"), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(12, 2), nullable=False)  # Unit price at time of order

    order = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    """
    Order status history - tracks all status changes for an order.
    """
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(OrderStatus), nullable=False, index=True)
    previous_status = Column(Enum(OrderStatus), nullable=True)  # NULL for initial status
    notes = Column(Text, nullable=False)
    changed_by = Column(String(100), nullable=False)  # user_id or "system"
    created_at = Column(DateTime(timezone=True), default=now_ist, nullable=False, index=True)

    order = relationship("Order", back_populates="status_history")
