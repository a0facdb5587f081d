"""
Coupon model for managing discount coupons.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base
from Login_module.Utils.datetime_utils import now_ist


class CouponCode(Base):
    """
    Percentage discount coupon.

    Lifecycle: issued (unused) -> redeemed (used, bound to cart_id) -> settled
    (redemption linked to an order, redeem_count incremented). Unused coupons
    past expires_at are reclaimed by the sweep.
    """
    __tablename__ = "coupon_codes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    discount = Column(Numeric(5, 2), nullable=False)  # Percentage (0-100]
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Currently bound to an unsettled cart
    used = Column(Boolean, nullable=False, default=False, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="SET NULL"), nullable=True, index=True)
    # NULL = redeemable by anyone
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)

    redeem_count = Column(Integer, nullable=False, default=0)
    max_redeem_count = Column(Integer, nullable=False, default=1)
    show_on_homepage = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=now_ist, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_ist, onupdate=now_ist)

    redemptions = relationship("CouponRedemption", back_populates="coupon", cascade="all, delete-orphan")


class CouponRedemption(Base):
    """
    Ledger row per (coupon, cart). order_id is set exactly once, when the
    cart converts to an order; a linked row is never counted again.
    """
    __tablename__ = "coupon_redemptions"
    __table_args__ = (
        UniqueConstraint("coupon_id", "cart_id", name="uq_coupon_redemptions_coupon_cart"),
    )

    id = Column(Integer, primary_key=True, index=True)
    coupon_id = Column(Integer, ForeignKey("coupon_codes.id", ondelete="CASCADE"), nullable=False, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    redeemed_at = Column(DateTime(timezone=True), default=now_ist, nullable=False)
    settled_at = Column(DateTime(timezone=True), nullable=True)

    coupon = relationship("CouponCode", back_populates="redemptions")
