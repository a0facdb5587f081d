"""
Razorpay payment gateway integration service.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from config import settings
from exceptions import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)

_razorpay_client = None


def get_razorpay_client():
    """Create the Razorpay client on first use."""
    global _razorpay_client
    if _razorpay_client is not None:
        return _razorpay_client

    if not settings.RAZORPAY_KEY_ID or not settings.RAZORPAY_KEY_SECRET:
        raise ConfigurationError("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET must be set")

    import razorpay
    _razorpay_client = razorpay.Client(auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET))
    return _razorpay_client


def create_razorpay_order(amount: Decimal, receipt: str, currency: str = "INR", notes: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Create a Razorpay order. Amount is in rupees and converted to paise.
    Raises ExternalServiceError when the gateway rejects or fails the call.
    """
    client = get_razorpay_client()
    order_data = {
        "amount": int((Decimal(str(amount)) * 100).to_integral_value()),
        "currency": currency,
        "receipt": receipt,
        "payment_capture": 1,  # Auto-capture payment
    }
    if notes:
        order_data["notes"] = notes

    try:
        order = client.order.create(data=order_data)
    except Exception as e:
        logger.error(f"Error creating Razorpay order for receipt {receipt}: {e}")
        raise ExternalServiceError(f"Failed to create Razorpay order: {e}")

    logger.info(f"Razorpay order created: {order.get('id')} for amount {amount}")
    return order


def verify_webhook_signature(body: str, signature: str) -> bool:
    """Check the X-Razorpay-Signature header against the webhook secret."""
    secret = settings.RAZORPAY_WEBHOOK_SECRET
    if not secret:
        raise ConfigurationError("RAZORPAY_WEBHOOK_SECRET is not configured")

    from razorpay.utility import Utility
    from razorpay.errors import SignatureVerificationError

    try:
        Utility(None).verify_webhook_signature(body, signature, secret)
        return True
    except SignatureVerificationError:
        logger.warning("Invalid Razorpay webhook signature")
        return False
