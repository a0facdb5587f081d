"""
Domain errors raised by the pricing, coupon, order and reminder services.
Each error carries the HTTP status the API layer maps it to.
"""


class StoreError(Exception):
    status_code = 500
    error_type = "store_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StoreError):
    """Malformed or missing request fields. Never retried."""
    status_code = 400
    error_type = "validation_error"


class NotFoundError(StoreError):
    """Unknown pincode, address, coupon or cart."""
    status_code = 404
    error_type = "not_found"


class ConfigurationError(StoreError):
    """Required tax or shipping rows are absent. Operators must fix the data."""
    status_code = 500
    error_type = "configuration_error"


class ConflictError(StoreError):
    """Coupon already redeemed or exhausted, or a concurrent update lost the race."""
    status_code = 409
    error_type = "conflict"


class ExternalServiceError(StoreError):
    """Notification, email or payment gateway failure."""
    status_code = 502
    error_type = "external_service_error"
