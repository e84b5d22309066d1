# marketplace/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List
from decimal import Decimal
from datetime import datetime

from marketplace.domain.status import OrderStatus, PaymentMethod


class ItemIn(BaseModel):
    """Schema for adding a product to the cart."""

    product_id: int = Field(..., gt=0, description="Product ID (must be > 0)")
    quantity: int = Field(1, gt=0, description="Quantity to add (must be > 0)")


class QuantityIn(BaseModel):
    """Schema for overwriting a cart entry quantity, <= 0 removes the entry."""

    quantity: int


class CartItemOut(BaseModel):
    """Cart entry joined with its catalog product (response)."""

    product_id: int
    title: str | None = None
    seller_id: int
    quantity: int
    price: Decimal
    subtotal: Decimal
    is_active: bool = True
    added_at: datetime | None = None


class CartOut(BaseModel):
    """Schema for the buyer's cart (response)."""

    buyer_id: int
    items: List[CartItemOut]
    total: Decimal
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class CartCountOut(BaseModel):
    count: int


class ShippingAddress(BaseModel):
    address: str | None = Field(None, max_length=200)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    country: str | None = Field(None, max_length=100)
    zip_code: str | None = Field(None, max_length=20)

    model_config = ConfigDict(extra="forbid")


class CheckoutIn(BaseModel):
    """
    Schema for checkout.

    Items and prices are never taken from the client, the server side cart is
    the only source. Unknown fields are rejected.
    """

    shipping_address: ShippingAddress | None = None
    payment_method: PaymentMethod | None = None
    notes: str | None = Field(None, max_length=1000)

    model_config = ConfigDict(extra="forbid")


class OrderItemOut(BaseModel):
    product_id: int
    seller_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class OrderOut(BaseModel):
    """Schema for an order (response), raw or seller projected."""

    order_id: str
    buyer_id: int
    items: List[OrderItemOut]
    total_amount: Decimal
    status: str
    payment_status: str
    payment_method: str | None = None
    shipping_address: ShippingAddress | None = None
    notes: str | None = None
    cancel_reason: str | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class StatusUpdateIn(BaseModel):
    """Schema for an order status change."""

    status: OrderStatus
    cancel_reason: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=1000)
