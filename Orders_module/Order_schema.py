"""
Order schemas for request/response models.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

PRODUCT = "product"
VARIANT = "variant"


@dataclass(frozen=True)
class CatalogRef:
    """What an order line points at: exactly one product or one variant."""
    kind: str
    ref_id: int

    @classmethod
    def from_ids(cls, product_id: Optional[int], variant_id: Optional[int]) -> "CatalogRef":
        if product_id is not None and variant_id is not None:
            raise ValueError("Cannot have both product_id and variant_id.")
        if product_id is None and variant_id is None:
            raise ValueError("Must have either product_id or variant_id.")
        if product_id is not None:
            return cls(PRODUCT, product_id)
        return cls(VARIANT, variant_id)

    @property
    def product_id(self) -> Optional[int]:
        return self.ref_id if self.kind == PRODUCT else None

    @property
    def variant_id(self) -> Optional[int]:
        return self.ref_id if self.kind == VARIANT else None


@dataclass(frozen=True)
class OrderLine:
    ref: CatalogRef
    quantity: int


class OrderItemInput(BaseModel):
    product_id: Optional[int] = Field(None, gt=0)
    variant_id: Optional[int] = Field(None, gt=0)
    quantity: int = Field(1, ge=1)

    @model_validator(mode="after")
    def check_single_reference(self):
        CatalogRef.from_ids(self.product_id, self.variant_id)
        return self


class CreateOrderRequest(BaseModel):
    """Request to place an order"""
    items: List[OrderItemInput] = Field(..., min_length=1)
    address_id: int = Field(..., gt=0)
    subtotal: str = Field(..., description="Cart subtotal as a decimal string")
    payment_method: str = Field("RAZORPAY", description="RAZORPAY or COD")
    discount_code: Optional[str] = None
    cart_id: Optional[int] = Field(None, gt=0)


class UpdateOrderStatusRequest(BaseModel):
    """Request to update order status"""
    status: str = Field(..., description="New order status")
    notes: Optional[str] = Field(None, description="Notes about the status change")


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    quantity: int
    price: Decimal


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    user_id: Optional[int] = None
    status: str
    subtotal: Decimal
    tax_amount: Decimal
    tax_type: str
    applied_tax_rate: Decimal
    is_tax_inclusive: bool
    total_before_discount: Decimal
    discount_amount: Decimal
    discount_code: Optional[str] = None
    final_amount: Decimal
    billing_address: str
    shipping_address: str
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    gateway_order_id: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []


class WebhookResponse(BaseModel):
    status: str
    message: str
