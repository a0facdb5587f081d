"""
Firebase Admin SDK initialization and FCM send.
Initializes on first use; push is skipped when no service account is configured.
"""
import logging
import os
from pathlib import Path
from typing import Optional, Tuple

from config import settings

logger = logging.getLogger(__name__)

firebase_initialized = False


def _service_account_path() -> Optional[str]:
    """FIREBASE_SERVICE_ACCOUNT_PATH, else Notifications.json in the project root."""
    configured = (settings.FIREBASE_SERVICE_ACCOUNT_PATH or "").strip()
    if configured and os.path.isfile(configured):
        return configured
    default = Path(__file__).resolve().parent.parent / "Notifications.json"
    if default.is_file():
        return str(default)
    return None


def init_firebase() -> bool:
    """
    Initialize Firebase Admin from the service account JSON.
    Returns True if initialized, False otherwise (FCM send will be skipped).
    """
    global firebase_initialized
    if firebase_initialized:
        return True

    path = _service_account_path()
    if not path:
        logger.debug("Firebase service account not configured; FCM push will be skipped.")
        return False

    # Imported lazily so the SDK is only loaded when push is configured
    import firebase_admin
    from firebase_admin import credentials

    if firebase_admin._apps:
        firebase_initialized = True
        return True

    try:
        firebase_admin.initialize_app(credentials.Certificate(path))
        firebase_initialized = True
        logger.info("Firebase Admin initialized for FCM (push notifications enabled).")
        return True
    except Exception as e:
        logger.warning("Firebase Admin init failed: %s; FCM push will be skipped.", e)
        return False


def _is_invalid_or_unregistered_token(exc: Optional[Exception]) -> bool:
    """Return True if the FCM exception indicates token should be removed (unregistered/invalid)."""
    if exc is None:
        return False
    name = type(exc).__name__
    msg = (getattr(exc, "message", None) or str(exc)).lower()
    if "UnregisteredError" in name or "unregistered" in msg:
        return True
    return "invalid" in msg or "requested entity was not found" in msg


def send_fcm_to_tokens(
    tokens: list[str],
    title: str,
    body: str,
    data: Optional[dict] = None,
) -> Tuple[list[str], Optional[int]]:
    """
    Send FCM notification to the given device tokens.
    Returns (invalid_tokens, success_count); success_count is None when nothing was sent.
    """
    invalid_tokens: list[str] = []
    if not tokens or not init_firebase():
        return (invalid_tokens, None)

    from firebase_admin import messaging

    # data must be string key -> string value for FCM
    data_dict = {k: str(v) for k, v in data.items()} if data else None

    message = messaging.MulticastMessage(
        notification=messaging.Notification(title=title, body=body),
        data=data_dict,
        tokens=tokens,
    )
    try:
        batch = messaging.send_each_for_multicast(message)
    except Exception as e:
        logger.error("FCM send failed (batch exception): %s", e, exc_info=True)
        return (invalid_tokens, None)

    logger.info(
        "FCM batch: success_count=%s failure_count=%s total=%s",
        batch.success_count,
        batch.failure_count,
        len(tokens),
    )
    for i, send_response in enumerate(batch.responses):
        if send_response.success:
            continue
        exc = getattr(send_response, "exception", None)
        logger.warning("FCM send failed for token index %s: %s", i, getattr(exc, "message", exc))
        if i < len(tokens) and _is_invalid_or_unregistered_token(exc):
            invalid_tokens.append(tokens[i])
    return (invalid_tokens, batch.success_count)
