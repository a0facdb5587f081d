"""
Outbound email over SMTP.

send_* functions return False when SMTP is not configured and raise
ExternalServiceError when delivery fails; callers decide whether that
failure matters.
"""
import logging
import smtplib
from email.message import EmailMessage
from typing import Iterable, Optional

from config import settings
from exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


def is_email_configured() -> bool:
    return bool((settings.SMTP_HOST or "").strip())


def send_email(to_email: str, subject: str, body: str) -> bool:
    if not to_email:
        raise ExternalServiceError("Recipient email address is missing")
    if not is_email_configured():
        logger.info(f"SMTP not configured; skipped email '{subject}' to {to_email}")
        return False

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = settings.EMAIL_FROM
    message["To"] = to_email
    message.set_content(body)

    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=15) as smtp:
            if settings.SMTP_USE_TLS:
                smtp.starttls()
            if settings.SMTP_USERNAME:
                smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD or "")
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email '{subject}' to {to_email}: {e}")
        raise ExternalServiceError(f"Email delivery failed: {e}")

    logger.info(f"Email '{subject}' sent to {to_email}")
    return True


def send_order_confirmation_email(to_email: str, name: Optional[str], order_number: str, final_amount) -> bool:
    body = (
        f"Dear {name or 'Customer'},\n\n"
        f"Your order #{order_number} has been placed successfully.\n"
        f"Amount payable: Rs. {final_amount}\n\n"
        "Thank you for shopping with us!"
    )
    return send_email(to_email, f"Order Confirmation - #{order_number}", body)


def send_abandoned_cart_email(
    to_email: str,
    name: Optional[str],
    product_names: Iterable[str],
    coupon_code: str,
    discount,
    expires_at=None,
) -> bool:
    lines = "\n".join(f"  - {p}" for p in product_names)
    expiry = f"\nThe code is valid until {expires_at:%d %b %Y %H:%M}." if expires_at else ""
    body = (
        f"Hi {name or 'there'},\n\n"
        "You left these items in your cart:\n"
        f"{lines}\n\n"
        f"Use coupon {coupon_code} for {discount}% off.{expiry}\n\n"
        "Complete your purchase before the offer runs out!"
    )
    return send_email(to_email, "Your cart is waiting!", body)
