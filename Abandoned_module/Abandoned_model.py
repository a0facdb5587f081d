from sqlalchemy import Column, Integer, Numeric, Boolean, DateTime, ForeignKey
from database import Base
from Login_module.Utils.datetime_utils import now_ist


class AbandonedCartSetting(Base):
    """One reminder tier."""
    __tablename__ = "abandoned_cart_settings"

    id = Column(Integer, primary_key=True, index=True)
    hours_after_email_is_sent = Column(Integer, nullable=False)  # Inactivity before the reminder
    hours_after_email_cart_is_emptied = Column(Integer, nullable=False)  # Coupon expiry horizon
    discount_to_be_given_in_percent = Column(Numeric(5, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=now_ist)


class AbandonedCartItem(Base):
    """
    Frozen copy of a cart line taken when the cart was flagged abandoned.
    Checkout compares the live cart against it.
    """
    __tablename__ = "abandoned_cart_items"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    variant_id = Column(Integer, ForeignKey("variants.id"), nullable=True)
    quantity = Column(Integer, nullable=False)
    discount = Column(Numeric(5, 2), nullable=False)  # Percent
    created_at = Column(DateTime(timezone=True), default=now_ist)
