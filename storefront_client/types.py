"""Data types returned by the storefront API."""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


class User(BaseModel):
    """The signed-in customer."""
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str = "customer"

    @property
    def first_name(self) -> str:
        return (self.full_name or "").split(" ", 1)[0]

    @property
    def last_name(self) -> str:
        parts = (self.full_name or "").split(" ", 1)
        return parts[1] if len(parts) > 1 else ""


class DiscountDecision(BaseModel):
    """The server's verdict on a discount code."""
    valid: bool
    error: Optional[str] = None
    discount_code_id: Optional[str] = None
    code: Optional[str] = None
    discount_type: Optional[Literal["percentage", "fixed"]] = None
    discount_value: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    description: Optional[str] = None

    @property
    def label(self) -> str:
        if self.discount_value is None:
            return ""
        if self.discount_type == "percentage":
            return f"{self.discount_value.normalize():f}% off"
        return f"${self.discount_value:.2f} off"


class OrderItem(BaseModel):
    id: str
    product_id: Optional[str] = None
    product_name: str
    product_image: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class Order(BaseModel):
    id: str
    order_number: str
    status: str
    payment_status: str
    subtotal: Decimal
    discount_amount: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total: Decimal
    shipping_address: Optional[dict] = None
    created_at: datetime
    items: list[OrderItem] = Field(default_factory=list)


class TrackingEvent(BaseModel):
    id: str
    status: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    created_at: datetime


class OrderTimeline(BaseModel):
    order_id: str
    order_number: str
    status: str
    created_at: datetime
    shipping_address: Optional[dict] = None
    events: list[TrackingEvent] = Field(default_factory=list)
