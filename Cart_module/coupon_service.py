"""
Coupon service: issuance, redemption, settlement and expiry sweep.

Every state change on coupon_codes is a WHERE-guarded UPDATE whose row count
decides the outcome, so concurrent requests cannot both redeem or both count
the same coupon.
"""
import logging
import secrets
import string
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from exceptions import ConflictError, NotFoundError, ValidationError
from Login_module.Utils.datetime_utils import now_ist, to_ist, is_expired, hours_from_now
from Tax_module.money_utils import D, HUNDRED, percent_of
from Abandoned_module.abandoned_service import compute_abandoned_discount
from .Cart_model import Cart
from .Coupon_model import CouponCode, CouponRedemption

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def generate_coupon_code(length: Optional[int] = None) -> str:
    """Random code over A-Z0-9."""
    size = length or settings.COUPON_CODE_LENGTH
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(size))


def abandoned_coupon_code(cart_id: int) -> str:
    return f"{settings.ABANDONED_COUPON_PREFIX}{cart_id}"


def is_abandoned_coupon(coupon: CouponCode) -> bool:
    return (
        coupon.name == settings.ABANDONED_COUPON_NAME
        and (coupon.code or "").startswith(settings.ABANDONED_COUPON_PREFIX)
    )


def _validate_discount(discount) -> Decimal:
    try:
        value = D(discount)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Discount must be a number")
    if not value.is_finite() or value <= 0 or value > HUNDRED:
        raise ValidationError("Discount must be greater than 0 and at most 100 percent")
    return value


def create_coupon(
    db: Session,
    name: str,
    discount,
    expires_at: datetime,
    cart_id: Optional[int] = None,
    user_id: Optional[int] = None,
    max_redeem_count: int = 1,
    show_on_homepage: bool = False,
) -> CouponCode:
    """
    Issue a coupon with a random unique code.
    Gives up with ConflictError after COUPON_CODE_MAX_ATTEMPTS collisions.
    """
    value = _validate_discount(discount)
    if expires_at is None or is_expired(expires_at):
        raise ValidationError("Expiry must be in the future")
    if max_redeem_count < 1:
        raise ValidationError("max_redeem_count must be at least 1")
    if not (name or "").strip():
        raise ValidationError("Coupon name is required")

    for attempt in range(1, settings.COUPON_CODE_MAX_ATTEMPTS + 1):
        code = generate_coupon_code()
        if db.query(CouponCode.id).filter(CouponCode.code == code).first():
            logger.info(f"Coupon code collision on attempt {attempt}, retrying")
            continue

        coupon = CouponCode(
            name=name.strip(),
            code=code,
            discount=value,
            expires_at=to_ist(expires_at),
            cart_id=cart_id,
            user_id=user_id,
            max_redeem_count=max_redeem_count,
            show_on_homepage=show_on_homepage,
        )
        db.add(coupon)
        try:
            db.commit()
        except IntegrityError:
            # Lost the race for this code to a concurrent insert
            db.rollback()
            logger.info(f"Coupon code collision on insert (attempt {attempt}), retrying")
            continue

        db.refresh(coupon)
        logger.info(f"Coupon {coupon.code} created (id={coupon.id}, discount={value}%)")
        return coupon

    logger.error(f"Could not generate a unique coupon code after {settings.COUPON_CODE_MAX_ATTEMPTS} attempts")
    raise ConflictError("Could not generate a unique coupon code")


def get_or_create_abandoned_coupon(db: Session, cart: Cart, tier, now: Optional[datetime] = None) -> Tuple[CouponCode, bool]:
    """
    Find or create the reminder coupon of a cart. The code is derived from
    the cart id, so repeated runs reuse the same coupon.
    Returns (coupon, created).
    """
    now = to_ist(now or now_ist())
    code = abandoned_coupon_code(cart.id)

    existing = db.query(CouponCode).filter(CouponCode.code == code).first()
    if existing:
        if existing.is_active and not is_expired(existing.expires_at, now):
            return existing, False
        if existing.used or existing.redeem_count > 0:
            raise ConflictError(f"Reminder coupon {code} is expired but already redeemed")
        # Expired and never used; the sweep has not reached it yet
        db.delete(existing)
        db.flush()

    coupon = CouponCode(
        name=settings.ABANDONED_COUPON_NAME,
        code=code,
        discount=D(tier.discount_to_be_given_in_percent),
        expires_at=hours_from_now(tier.hours_after_email_cart_is_emptied, now),
        user_id=cart.user_id,
        redeem_count=0,
        max_redeem_count=1,
        show_on_homepage=False,
    )
    db.add(coupon)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = db.query(CouponCode).filter(CouponCode.code == code).first()
        if winner is None:
            raise ConflictError(f"Could not create reminder coupon {code}")
        return winner, False

    db.refresh(coupon)
    logger.info(f"Reminder coupon {code} created for cart {cart.id}")
    return coupon, True


def release_cart_coupons(db: Session, cart_id: int) -> int:
    """
    Unbind every unsettled coupon from a cart and drop its unsettled ledger rows.
    Does not commit. Returns the number of coupons released.
    """
    pending_ids = [
        row.coupon_id
        for row in db.query(CouponRedemption.coupon_id).filter(
            CouponRedemption.cart_id == cart_id,
            CouponRedemption.order_id.is_(None)
        ).all()
    ]
    if not pending_ids:
        return 0

    db.query(CouponRedemption).filter(
        CouponRedemption.cart_id == cart_id,
        CouponRedemption.order_id.is_(None)
    ).delete(synchronize_session=False)

    released = db.query(CouponCode).filter(
        CouponCode.id.in_(pending_ids),
        CouponCode.cart_id == cart_id,
        CouponCode.used == True
    ).update({CouponCode.used: False, CouponCode.cart_id: None}, synchronize_session=False)

    if released:
        logger.info(f"Released {released} unsettled coupon(s) from cart {cart_id}")
    return released


def swap_active_coupon(db: Session, cart: Cart, coupon_id: Optional[int]) -> bool:
    """
    Compare-and-swap the cart's active coupon pointer against the value this
    session read. Takes the cart row's write lock until commit, so a second
    redemption on the same cart either waits or finds the pointer moved.
    Does not commit.
    """
    expected = cart.active_coupon_id
    if expected is None:
        guard = Cart.active_coupon_id.is_(None)
    else:
        guard = Cart.active_coupon_id == expected
    swapped = db.query(Cart).filter(Cart.id == cart.id, guard).update(
        {Cart.active_coupon_id: coupon_id}, synchronize_session=False
    )
    return swapped == 1


def claim_coupon(db: Session, coupon_id: int, cart_id: int, user_id: int, now: Optional[datetime] = None) -> bool:
    """
    Bind a coupon to a cart if, at this instant, it is still unused, active,
    unexpired, below its cap and in scope for the user. Does not commit.
    """
    now = to_ist(now or now_ist())
    updated = db.query(CouponCode).filter(
        CouponCode.id == coupon_id,
        CouponCode.used == False,
        CouponCode.is_active == True,
        CouponCode.expires_at > now,
        CouponCode.redeem_count < CouponCode.max_redeem_count,
        or_(CouponCode.user_id.is_(None), CouponCode.user_id == user_id)
    ).update({CouponCode.used: True, CouponCode.cart_id: cart_id}, synchronize_session=False)
    return updated == 1


def redeem_coupon(db: Session, user_id: int, code: str, cart_id: int, now: Optional[datetime] = None) -> CouponCode:
    """
    Redeem a code on a cart. Any other unsettled coupon on the cart is released,
    so a cart holds at most one coupon. The cart pointer swap comes first and
    serializes concurrent redemptions on the same cart.

    Raises NotFoundError (cart or code), ValidationError (expired) or
    ConflictError (in use, exhausted, or lost a concurrent redemption).
    """
    now = to_ist(now or now_ist())

    cart = db.query(Cart).filter(Cart.id == cart_id).first()
    if not cart or cart.user_id != user_id:
        raise NotFoundError("Cart not found")

    normalized = normalize_code(code)
    if not normalized:
        raise ValidationError("Discount code is required")

    coupon = db.query(CouponCode).filter(CouponCode.code == normalized).first()
    if not coupon or not coupon.is_active or (coupon.user_id is not None and coupon.user_id != user_id):
        logger.warning(f"Rejected discount code '{normalized}' for user {user_id}: not found or out of scope")
        raise NotFoundError("Invalid or expired discount code")

    if is_expired(coupon.expires_at, now):
        logger.warning(f"Rejected discount code '{normalized}': expired at {coupon.expires_at}")
        raise ValidationError("Discount code has expired")

    if coupon.redeem_count >= coupon.max_redeem_count:
        raise ConflictError("Discount code has already been fully redeemed")

    if coupon.used:
        if coupon.cart_id == cart.id:
            return coupon
        raise ConflictError("Discount code is already in use")

    already_settled = db.query(CouponRedemption.id).filter(
        CouponRedemption.coupon_id == coupon.id,
        CouponRedemption.cart_id == cart.id,
        CouponRedemption.order_id.isnot(None)
    ).first()
    if already_settled:
        raise ConflictError("Discount code has already been used for this cart")

    try:
        if not swap_active_coupon(db, cart, coupon.id):
            raise ConflictError("Cart was updated by another request, please retry")
        release_cart_coupons(db, cart.id)
        if not claim_coupon(db, coupon.id, cart.id, user_id, now):
            raise ConflictError("Discount code was redeemed by another request")
        db.add(CouponRedemption(coupon_id=coupon.id, cart_id=cart.id, redeemed_at=now))
        db.commit()
    except ConflictError:
        db.rollback()
        logger.warning(f"Concurrent redemption of '{normalized}' on cart {cart.id} rejected")
        raise
    except IntegrityError:
        db.rollback()
        logger.warning(f"Duplicate redemption row for '{normalized}' on cart {cart.id}")
        raise ConflictError("Discount code has already been used for this cart")

    db.refresh(coupon)
    logger.info(f"Coupon {coupon.code} redeemed on cart {cart.id} by user {user_id}")
    return coupon


def get_active_redemption(db: Session, coupon_id: int, cart_id: int) -> Optional[CouponRedemption]:
    """Unsettled ledger row for (coupon, cart), if any."""
    return db.query(CouponRedemption).filter(
        CouponRedemption.coupon_id == coupon_id,
        CouponRedemption.cart_id == cart_id,
        CouponRedemption.order_id.is_(None)
    ).first()


def settle_coupon(db: Session, coupon: CouponCode, cart_id: int, order_id: int, now: Optional[datetime] = None) -> bool:
    """
    Link the (coupon, cart) redemption to an order and count it. Does not commit.

    Returns False when there is no unsettled redemption (already settled), so
    re-running settlement never counts twice. Raises ConflictError when the
    count would pass max_redeem_count.
    """
    now = to_ist(now or now_ist())

    linked = db.query(CouponRedemption).filter(
        CouponRedemption.coupon_id == coupon.id,
        CouponRedemption.cart_id == cart_id,
        CouponRedemption.order_id.is_(None)
    ).update({CouponRedemption.order_id: order_id, CouponRedemption.settled_at: now}, synchronize_session=False)
    if linked == 0:
        logger.info(f"Coupon {coupon.code} already settled for cart {cart_id}")
        return False

    counted = db.query(CouponCode).filter(
        CouponCode.id == coupon.id,
        CouponCode.redeem_count < CouponCode.max_redeem_count
    ).update({CouponCode.redeem_count: CouponCode.redeem_count + 1}, synchronize_session=False)
    if counted == 0:
        raise ConflictError("Discount code redemption limit reached")

    db.query(Cart).filter(Cart.id == cart_id, Cart.active_coupon_id == coupon.id).update({
        Cart.active_coupon_id: None,
        Cart.updated_at: Cart.updated_at,
    }, synchronize_session=False)

    # Below the cap the coupon goes back to the pool for the next cart
    db.query(CouponCode).filter(
        CouponCode.id == coupon.id,
        CouponCode.redeem_count < CouponCode.max_redeem_count
    ).update({CouponCode.used: False, CouponCode.cart_id: None}, synchronize_session=False)

    # At the cap it stays bound and stops being advertised
    capped = db.query(CouponCode).filter(
        CouponCode.id == coupon.id,
        CouponCode.redeem_count >= CouponCode.max_redeem_count
    ).update({CouponCode.show_on_homepage: False}, synchronize_session=False)

    logger.info(f"Coupon {coupon.code} settled for order {order_id} (cap reached: {bool(capped)})")
    return True


def sweep_expired_coupons(db: Session, now: Optional[datetime] = None) -> int:
    """
    Delete expired, never-redeemed reminder coupons.
    Admin-issued coupons are left alone even when dormant.
    """
    now = to_ist(now or now_ist())
    deleted = db.query(CouponCode).filter(
        CouponCode.expires_at < now,
        CouponCode.used == False,
        CouponCode.redeem_count == 0,
        CouponCode.show_on_homepage == False,
        CouponCode.is_active == True,
        CouponCode.max_redeem_count == 1,
        CouponCode.name == settings.ABANDONED_COUPON_NAME,
        CouponCode.code.like(f"{settings.ABANDONED_COUPON_PREFIX}%")
    ).delete(synchronize_session=False)
    db.commit()
    if deleted:
        logger.info(f"Swept {deleted} expired reminder coupon(s)")
    return deleted


def compute_coupon_discount(db: Session, coupon: CouponCode, cart: Optional[Cart], total_before_discount) -> Decimal:
    """
    Reminder coupons discount only the cart lines that still match the
    abandoned snapshot; other coupons discount the whole total.
    """
    if is_abandoned_coupon(coupon) and cart is not None:
        return compute_abandoned_discount(db, cart).total_discount
    return percent_of(total_before_discount, coupon.discount)


def list_available_coupons(db: Session, user_id: int, now: Optional[datetime] = None) -> List[CouponCode]:
    """Unused, active, unexpired coupons the user may redeem, newest first."""
    now = to_ist(now or now_ist())
    return db.query(CouponCode).filter(
        CouponCode.used == False,
        CouponCode.is_active == True,
        CouponCode.expires_at > now,
        CouponCode.redeem_count < CouponCode.max_redeem_count,
        or_(CouponCode.user_id.is_(None), CouponCode.user_id == user_id)
    ).order_by(CouponCode.created_at.desc(), CouponCode.id.desc()).all()


def list_coupons(db: Session) -> List[CouponCode]:
    return db.query(CouponCode).order_by(CouponCode.created_at.desc(), CouponCode.id.desc()).all()


def get_coupon(db: Session, coupon_id: int) -> CouponCode:
    coupon = db.query(CouponCode).filter(CouponCode.id == coupon_id).first()
    if not coupon:
        raise NotFoundError("Discount not found")
    return coupon


def delete_coupon(db: Session, coupon_id: int) -> None:
    coupon = get_coupon(db, coupon_id)
    code = coupon.code
    db.delete(coupon)
    db.commit()
    logger.info(f"Coupon {code} (id={coupon_id}) deleted")
