from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RedeemCouponRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    cart_id: int = Field(..., gt=0)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        v = v.strip().upper()
        if not v:
            raise ValueError("Coupon code cannot be empty")
        return v


class CreateCouponRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    discount: Decimal = Field(..., gt=0, le=100)
    expires_at: datetime
    user_id: Optional[int] = Field(None, gt=0)
    cart_id: Optional[int] = Field(None, gt=0)
    max_redeem_count: int = Field(1, ge=1)
    show_on_homepage: bool = False


class CouponResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    code: str
    discount: Decimal
    expires_at: datetime
    is_active: bool
    used: bool
    cart_id: Optional[int] = None
    user_id: Optional[int] = None
    redeem_count: int
    max_redeem_count: int
    show_on_homepage: bool
