# app/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from decimal import Decimal
from datetime import datetime

from app.domain.enums import OrderStatus, Role


class ItemIn(BaseModel):
    """Schema for adding a product to the cart."""

    product_id: int = Field(..., gt=0, description="Product ID (must be > 0)")
    quantity: int = Field(..., gt=0, description="Quantity (must be > 0)")


class ItemUpdateIn(BaseModel):
    """Schema for changing the quantity of a cart line, 0 removes the line."""

    quantity: int


class CartItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: Decimal


class CartOut(BaseModel):
    """Schema for the cart (response)."""

    id: int
    user_id: int
    items: List[CartItemOut]
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    """Schema for creating a user."""

    id: int = Field(..., gt=0, description="User ID (must be > 0)")
    name: str = Field(..., min_length=1, max_length=100, description="User name")
    role: Role = Role.CUSTOMER


class UserRead(BaseModel):
    """Schema for a user (response)."""

    id: int
    name: str
    role: Role

    model_config = ConfigDict(from_attributes=True)


class ShippingAddress(BaseModel):
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    state: Optional[str] = None


class OrderItemIn(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1, description="Quantity must be at least 1")


class OrderCreate(BaseModel):
    """
    Schema for placing an order.

    Without order_items the caller's cart is turned into the order.
    """

    order_items: Optional[List[OrderItemIn]] = None
    shipping_address: ShippingAddress
    payment_method: str = Field(..., min_length=1)
    shipping_method: str = Field(..., min_length=1)
    shipping_price: Decimal = Field(..., ge=0)
    total_price: Decimal = Field(..., ge=0)


class OrderItemOut(BaseModel):
    product_id: int
    name: str
    quantity: int
    price: Decimal
    total_price: Decimal


class PaymentResult(BaseModel):
    """What the payment provider reported for a captured payment."""

    id: str
    status: str
    update_time: Optional[str] = None
    email_address: Optional[str] = None


class OrderOut(BaseModel):
    """Schema for an order (response)."""

    id: int
    user_id: int
    status: OrderStatus
    items: List[OrderItemOut]
    shipping_address: ShippingAddress
    payment_method: str
    shipping_method: str
    shipping_price: Decimal
    total: Decimal
    is_paid: bool
    paid_at: datetime | None = None
    is_shipped: bool
    shipped_at: datetime | None = None
    is_delivered: bool
    delivered_at: datetime | None = None
    payment_provider_order_id: str | None = None
    payment_result: PaymentResult | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class PaymentInitOut(BaseModel):
    order_id: int
    paypal_order_id: str
    approval_url: str


# payment provider payloads

class CheckoutOrder(BaseModel):
    provider_order_id: str
    approval_url: str


class CaptureResult(BaseModel):
    payment_id: str
    status: str
    payer_email: Optional[str] = None
    update_time: Optional[str] = None


class RelatedIds(BaseModel):
    order_id: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class SupplementaryData(BaseModel):
    related_ids: Optional[RelatedIds] = None

    model_config = ConfigDict(extra="allow")


class WebhookResource(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    supplementary_data: Optional[SupplementaryData] = None

    model_config = ConfigDict(extra="allow")


class PaypalWebhookEvent(BaseModel):
    """Only the fields the webhook handler reads, everything else is kept as extra."""

    id: Optional[str] = None
    event_type: str
    resource: WebhookResource = Field(default_factory=WebhookResource)

    model_config = ConfigDict(extra="allow")

    @property
    def provider_order_id(self) -> Optional[str]:
        data = self.resource.supplementary_data
        if data and data.related_ids:
            return data.related_ids.order_id
        return None
