import logging
from typing import Optional

from sqlalchemy.orm import Session

from config import settings
from Login_module.User.user_model import User
from .Notification_model import Notification, UserDeviceToken

logger = logging.getLogger(__name__)

DEFAULT_TITLES = {
    "ORDER": "Order update",
    "SYSTEM": "Notification",
}


def create_notification(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    type: Optional[str] = None,
) -> Notification:
    """Insert a notification and return the model."""
    row = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def get_device_tokens_for_user(db: Session, user_id: int) -> list[str]:
    """Return list of FCM device token strings for the user."""
    rows = db.query(UserDeviceToken).filter(UserDeviceToken.user_id == user_id).all()
    return [r.device_token for r in rows]


def delete_device_tokens_by_value(db: Session, tokens: list[str]) -> int:
    """Delete rows from user_device_tokens where device_token is in the given list. Returns count deleted."""
    if not tokens:
        return 0
    deleted = db.query(UserDeviceToken).filter(UserDeviceToken.device_token.in_(tokens)).delete(synchronize_session=False)
    db.commit()
    return deleted


def send_notification(
    db: Session,
    user_id: int,
    message: str,
    category: str = "SYSTEM",
    title: Optional[str] = None,
) -> bool:
    """
    Create an in-app notification and push it via FCM to the user's devices.
    Skips FCM if the user has notifications_enabled=False.
    Does not raise; logs errors and returns False so callers can carry on.
    """
    try:
        notification = create_notification(
            db,
            user_id=user_id,
            title=title or DEFAULT_TITLES.get(category, "Notification"),
            message=message,
            type=category,
        )
        user = db.query(User).filter(User.id == user_id).first()
        if user and not getattr(user, "notifications_enabled", True):
            return True

        tokens = get_device_tokens_for_user(db, user_id)
        if not tokens:
            return True

        from .firebase_service import send_fcm_to_tokens
        invalid_tokens, _ = send_fcm_to_tokens(
            tokens=tokens,
            title=notification.title,
            body=message,
            data={"notification_id": str(notification.id), "type": category or ""},
        )
        if invalid_tokens:
            if settings.REMOVE_INVALID_FCM_TOKENS:
                removed = delete_device_tokens_by_value(db, invalid_tokens)
                logger.info("Removed %s invalid FCM token(s) for user_id=%s", removed, user_id)
            else:
                logger.debug("Invalid FCM token(s) for user_id=%s not removed (REMOVE_INVALID_FCM_TOKENS=false)", user_id)
        return True
    except Exception as e:
        db.rollback()
        logger.warning("send_notification failed (user_id=%s): %s", user_id, e)
        return False
