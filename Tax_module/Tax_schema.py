"""
Tax schemas for request/response models.
"""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class OrderSummaryRequest(BaseModel):
    """Request for a checkout tax/shipping summary"""
    pincode: str = Field(..., description="Delivery pincode", min_length=1)
    subtotal: Optional[str] = Field(None, description="Cart subtotal; priced totals are returned when given")


class TaxDetail(BaseModel):
    name: str
    percentage: Decimal


class OrderSummaryResponse(BaseModel):
    pincode: str
    state: str
    tax_type: str
    tax_percentage: Decimal
    tax_details: List[TaxDetail]
    shipping_rate: Decimal
    is_tax_inclusive: bool
    subtotal: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    total_before_discount: Optional[Decimal] = None
    final_amount: Optional[Decimal] = None


class PincodeCheckRequest(BaseModel):
    pincode: str = Field(..., min_length=1)
