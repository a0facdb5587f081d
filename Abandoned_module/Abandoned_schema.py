from decimal import Decimal
from typing import List

from pydantic import BaseModel, Field


class ApplyAbandonedDiscountRequest(BaseModel):
    cart_id: int = Field(..., gt=0)


class DiscountedItem(BaseModel):
    name: str
    quantity: int
    price: Decimal
    discount_percent: Decimal
    discount_amount: Decimal


class UnmatchedItem(BaseModel):
    name: str
    quantity: int


class AbandonedDiscountResponse(BaseModel):
    cart_id: int
    total_discount: Decimal
    discounted_items: List[DiscountedItem]
    unmatched_items: List[UnmatchedItem]
