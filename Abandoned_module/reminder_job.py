"""
Abandoned-cart reminder job.

For each active tier (shortest delay first) finds carts idle past the tier's
delay that have never been reminded, issues or reuses the cart's reminder
coupon, emails and notifies the user once, and records the reminder.
Expired unused reminder coupons are swept at the end of every run.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from config import settings
from database import SessionLocal
from exceptions import ExternalServiceError
from Login_module.Utils.datetime_utils import now_ist, to_ist, hours_ago
from Login_module.User.user_model import User
from Cart_module.Cart_model import Cart
from Cart_module.coupon_service import get_or_create_abandoned_coupon, sweep_expired_coupons
from Notification_module.Notification_crud import send_notification
from Notification_module.email_service import send_abandoned_cart_email
from Tax_module.money_utils import format_percent
from .Abandoned_model import AbandonedCartSetting
from .abandoned_service import has_snapshot, snapshot_cart_items
from .reminder_lock import reminder_lock

logger = logging.getLogger(__name__)


@dataclass
class ReminderRunSummary:
    tiers: int = 0
    carts_considered: int = 0
    reminders_sent: int = 0
    coupons_created: int = 0
    failures: int = 0
    coupons_swept: int = 0


def get_active_tiers(db: Session) -> List[AbandonedCartSetting]:
    return db.query(AbandonedCartSetting).filter(
        AbandonedCartSetting.is_active == True
    ).order_by(AbandonedCartSetting.hours_after_email_is_sent.asc(), AbandonedCartSetting.id.asc()).all()


def find_abandoned_carts(db: Session, cutoff: datetime) -> List[Cart]:
    """Idle, never-reminded, non-empty carts of registered users with an email."""
    return db.query(Cart).join(User, User.id == Cart.user_id).filter(
        Cart.updated_at < cutoff,
        Cart.reminder_count == 0,
        Cart.items.any(),
        User.is_guest == False,
        User.email.isnot(None),
        User.email != ""
    ).order_by(Cart.id.asc()).all()


# Reminder bookkeeping must not count as cart activity, so updated_at is pinned

def claim_cart(db: Session, cart_id: int, now: datetime) -> bool:
    stale_before = now - timedelta(minutes=settings.REMINDER_CLAIM_STALE_MINUTES)
    claimed = db.query(Cart).filter(
        Cart.id == cart_id,
        Cart.reminder_count == 0,
        or_(Cart.reminder_in_flight_at.is_(None), Cart.reminder_in_flight_at < stale_before)
    ).update({
        Cart.reminder_in_flight_at: now,
        Cart.updated_at: Cart.updated_at,
    }, synchronize_session=False)
    db.commit()
    return claimed == 1


def release_cart(db: Session, cart_id: int) -> None:
    db.query(Cart).filter(
        Cart.id == cart_id,
        Cart.reminder_count == 0
    ).update({
        Cart.reminder_in_flight_at: None,
        Cart.updated_at: Cart.updated_at,
    }, synchronize_session=False)
    db.commit()


def mark_reminded(db: Session, cart_id: int, now: datetime) -> None:
    db.query(Cart).filter(
        Cart.id == cart_id,
        Cart.reminder_count == 0
    ).update({
        Cart.reminder_count: 1,
        Cart.last_reminder_at: now,
        Cart.reminder_in_flight_at: None,
        Cart.updated_at: Cart.updated_at,
    }, synchronize_session=False)
    db.commit()


def remind_cart(db: Session, cart: Cart, tier: AbandonedCartSetting, now: datetime, summary: ReminderRunSummary) -> bool:
    """Process one cart. Returns True when the reminder went out."""
    cart_id = cart.id
    if not claim_cart(db, cart_id, now):
        logger.info(f"Cart {cart_id} is already being reminded, skipping")
        return False

    try:
        if not has_snapshot(db, cart_id):
            snapshot_cart_items(db, cart, tier.discount_to_be_given_in_percent)
            db.commit()

        coupon, created = get_or_create_abandoned_coupon(db, cart, tier, now)
        if created:
            summary.coupons_created += 1

        user = cart.user
        percent = format_percent(coupon.discount)
        send_abandoned_cart_email(
            user.email,
            user.name,
            [item.display_name for item in cart.items],
            coupon.code,
            percent,
            to_ist(coupon.expires_at),
        )
        send_notification(
            db,
            user.id,
            f"Your cart is waiting! Use coupon {coupon.code} for {percent}% off.",
            "SYSTEM",
            title="Your cart is waiting!",
        )
        mark_reminded(db, cart_id, now)
    except ExternalServiceError as e:
        db.rollback()
        release_cart(db, cart_id)
        summary.failures += 1
        logger.warning(f"Reminder for cart {cart_id} not sent, will retry on a later run: {e.message}")
        return False
    except Exception as e:
        db.rollback()
        release_cart(db, cart_id)
        summary.failures += 1
        logger.error(f"Error sending reminder for cart {cart_id}: {e}", exc_info=True)
        return False

    summary.reminders_sent += 1
    logger.info(f"Abandoned-cart reminder sent for cart {cart_id} with coupon {coupon.code}")
    return True


def send_abandoned_cart_reminders(db: Session, now: Optional[datetime] = None) -> ReminderRunSummary:
    now = to_ist(now or now_ist())
    summary = ReminderRunSummary()

    tiers = get_active_tiers(db)
    summary.tiers = len(tiers)
    for tier in tiers:
        cutoff = hours_ago(tier.hours_after_email_is_sent, now)
        carts = find_abandoned_carts(db, cutoff)
        summary.carts_considered += len(carts)
        logger.info(f"Tier {tier.id} ({tier.hours_after_email_is_sent}h): {len(carts)} abandoned cart(s)")
        for cart in carts:
            remind_cart(db, cart, tier, now, summary)

    summary.coupons_swept = sweep_expired_coupons(db, now)
    return summary


def run_reminder_job() -> Optional[ReminderRunSummary]:
    """
    Scheduler entry point. Skips the run when another one still holds the lock.
    """
    with reminder_lock() as acquired:
        if not acquired:
            logger.info("Abandoned-cart reminder run already in progress, skipping")
            return None

        db: Session = SessionLocal()
        try:
            summary = send_abandoned_cart_reminders(db)
            logger.info(f"Abandoned-cart reminder run completed at {now_ist()}: {asdict(summary)}")
            return summary
        except Exception as e:
            logger.error(f"Error during abandoned-cart reminder run: {str(e)}", exc_info=True)
            return None
        finally:
            db.close()
