from sqlalchemy import Column, Integer, ForeignKey, DateTime, Numeric, CheckConstraint
from sqlalchemy.orm import relationship
from database import Base
from Login_module.Utils.datetime_utils import now_ist


class Cart(Base):
    """
    Cart table - one cart per user.
    Also carries the abandoned-cart reminder progress.
    """
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Reminder progress: 0 until the single reminder has been sent, then 1
    reminder_count = Column(Integer, nullable=False, default=0)
    last_reminder_at = Column(DateTime(timezone=True), nullable=True)
    # Set while a reminder job is working on this cart
    reminder_in_flight_at = Column(DateTime(timezone=True), nullable=True)

    # Unsettled coupon redeemed on this cart: set by redemption (compare-and-swap),
    # cleared at settlement. No FK, so coupons can still be deleted.
    active_coupon_id = Column(Integer, nullable=True)

    # Last computed abandoned-cart discount (see Abandoned_module)
    discounted_abandoned_total = Column(Numeric(12, 2), nullable=True)

    # Python-side defaults keep timestamps on the application clock (IST)
    created_at = Column(DateTime(timezone=True), default=now_ist, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_ist, onupdate=now_ist, nullable=False, index=True)

    user = relationship("User")
    items = relationship("CartItem", back_populates="cart", cascade="all, delete-orphan")


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        CheckConstraint(
            "(product_id IS NULL) <> (variant_id IS NULL)",
            name="ck_cart_items_product_xor_variant",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True, index=True)
    variant_id = Column(Integer, ForeignKey("variants.id"), nullable=True, index=True)
    quantity = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=now_ist)
    updated_at = Column(DateTime(timezone=True), default=now_ist, onupdate=now_ist)

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")
    variant = relationship("Variant")

    @property
    def unit_price(self):
        if self.variant is not None:
            return self.variant.selling_price
        if self.product is not None:
            return self.product.selling_price
        return None

    @property
    def display_name(self) -> str:
        if self.variant is not None:
            return self.variant.display_name
        if self.product is not None:
            return self.product.name
        return "Unknown item"
