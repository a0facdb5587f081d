import os
import logging
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Use absolute path to make sure .env is found
        env_file=os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    DATABASE_URL: str = ""
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 3600
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"

    ENVIRONMENT: str = "development"
    ALLOWED_ORIGINS: str = "*"

    # Coupon issuance
    COUPON_CODE_LENGTH: int = 8
    COUPON_CODE_MAX_ATTEMPTS: int = 10
    ABANDONED_COUPON_PREFIX: str = "ABND-"
    ABANDONED_COUPON_NAME: str = "Abandoned Cart Coupon"

    # Abandoned-cart reminder job
    SCHEDULER_ENABLED: bool = True
    REMINDER_INTERVAL_MINUTES: int = 15
    REMINDER_CLAIM_STALE_MINUTES: int = 30
    REMINDER_LOCK_TTL_SECONDS: int = 600
    REDIS_URL: Optional[str] = None

    # Used when no shipping row exists for the delivery state
    DEFAULT_INTER_STATE_SHIPPING_RATE: Optional[float] = None

    # Payment gateway
    RAZORPAY_KEY_ID: Optional[str] = None
    RAZORPAY_KEY_SECRET: Optional[str] = None
    RAZORPAY_WEBHOOK_SECRET: Optional[str] = None

    # Outbound email (SMTP)
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str = "no-reply@store.local"

    # Push notifications (FCM)
    FIREBASE_SERVICE_ACCOUNT_PATH: Optional[str] = None
    REMOVE_INVALID_FCM_TOKENS: bool = True


# Create the settings instance
settings = Settings()

if settings.SECRET_KEY == "change-me-in-production" and settings.ENVIRONMENT == "production":
    logger.warning("SECRET_KEY is using the development default in production")
