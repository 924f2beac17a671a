"""
Order lifecycle management for the Lunia storefront.

Orders are created by the checkout-session boundary and then move through
``pending -> processing -> shipped -> delivered``; ``cancelled`` is reachable
from any non-terminal status. Every status change appends a tracking event
so customers can follow the order's timeline.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import Order, OrderItem, OrderStatus, OrderTrackingEvent, PaymentStatus

STATUS_FLOW = (
    OrderStatus.PENDING.value,
    OrderStatus.PROCESSING.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
)
TERMINAL_STATUSES = {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value}

EVENT_TITLES = {
    OrderStatus.PENDING.value: "Order Placed",
    OrderStatus.PROCESSING.value: "Order Processing",
    OrderStatus.SHIPPED.value: "Order Shipped",
    OrderStatus.DELIVERED.value: "Order Delivered",
    OrderStatus.CANCELLED.value: "Order Cancelled",
}


# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------

class OrderItemResponse(BaseModel):
    id: str
    product_id: Optional[str] = None
    product_name: str
    product_image: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal

    model_config = {"from_attributes": True}


class TrackingEventResponse(BaseModel):
    """Schema for a single tracking event."""
    id: str
    order_id: str
    status: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    """Schema for an order response."""
    id: str
    user_id: str
    order_number: str
    status: str
    payment_status: str
    customer_email: Optional[str] = None
    subtotal: Decimal
    discount_amount: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total: Decimal
    discount_code_id: Optional[str] = None
    shipping_address: Optional[dict] = None
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemResponse] = Field(default_factory=list)


class OrderTimelineResponse(BaseModel):
    """Order header plus its tracking events, newest first."""
    order_id: str
    order_number: str
    status: str
    created_at: datetime
    shipping_address: Optional[dict] = None
    events: list[TrackingEventResponse]


class OrderStatusUpdate(BaseModel):
    """Schema for an admin status change."""
    status: str
    description: Optional[str] = None
    location: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_address(raw: Optional[str]) -> Optional[dict]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None


def order_to_response(order: Order, include_items: bool = True) -> OrderResponse:
    """Convert an Order ORM object to an OrderResponse."""
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        order_number=order.order_number,
        status=order.status,
        payment_status=order.payment_status,
        customer_email=order.customer_email,
        subtotal=order.subtotal,
        discount_amount=order.discount_amount,
        shipping_cost=order.shipping_cost,
        tax=order.tax,
        total=order.total,
        discount_code_id=order.discount_code_id,
        shipping_address=_parse_address(order.shipping_address),
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=(
            [OrderItemResponse.model_validate(item) for item in order.items]
            if include_items else []
        ),
    )


def can_transition(current: str, new: str) -> bool:
    """Whether an order may move from ``current`` to ``new``."""
    if current in TERMINAL_STATUSES or current == new:
        return False
    if new == OrderStatus.CANCELLED.value:
        return True
    if current in STATUS_FLOW and new in STATUS_FLOW:
        return STATUS_FLOW.index(new) == STATUS_FLOW.index(current) + 1
    return False


def _full_order_stmt():
    return (
        select(Order)
        .options(selectinload(Order.items), selectinload(Order.events))
        .execution_options(populate_existing=True)
    )


async def load_order(db: AsyncSession, order_id: str) -> Optional[Order]:
    result = await db.execute(_full_order_stmt().where(Order.id == order_id))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# CRUD Functions
# ---------------------------------------------------------------------------

async def create_order(
    db: AsyncSession,
    user_id: str,
    order_number: str,
    amounts: dict[str, Decimal],
    items: list[dict],
    customer_email: Optional[str] = None,
    shipping_address: Optional[dict] = None,
    discount_code_id: Optional[str] = None,
) -> Order:
    """Insert a pending order with its items and an "Order Placed" event.

    Args:
        db: Async database session.
        user_id: Owner of the order.
        order_number: Human-facing order number.
        amounts: ``subtotal``, ``discount_amount``, ``tax`` and ``total``.
        items: Dicts with product_id, product_name, product_image,
               quantity, unit_price.
        customer_email: Receipt address.
        shipping_address: Stored as JSON.
        discount_code_id: Applied discount, if any.
    """
    order = Order(
        user_id=user_id,
        order_number=order_number,
        status=OrderStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
        customer_email=customer_email,
        subtotal=amounts["subtotal"],
        discount_amount=amounts["discount_amount"],
        shipping_cost=Decimal("0"),
        tax=amounts["tax"],
        total=amounts["total"],
        discount_code_id=discount_code_id,
        shipping_address=json.dumps(shipping_address) if shipping_address else None,
    )
    for item in items:
        unit_price = Decimal(str(item["unit_price"]))
        order.items.append(OrderItem(
            product_id=item.get("product_id"),
            product_name=item["product_name"],
            product_image=item.get("product_image"),
            quantity=item["quantity"],
            unit_price=unit_price,
            total_price=unit_price * item["quantity"],
        ))
    order.events.append(OrderTrackingEvent(
        status=OrderStatus.PENDING.value,
        title=EVENT_TITLES[OrderStatus.PENDING.value],
        description="We received your order and are waiting for payment confirmation.",
    ))
    db.add(order)
    await db.flush()
    return await load_order(db, order.id)


async def get_order(
    db: AsyncSession,
    order_id: str,
    user_id: Optional[str] = None,
) -> Optional[OrderResponse]:
    """Get an order by ID. With ``user_id``, other users' orders are not found."""
    order = await load_order(db, order_id)
    if order is None or (user_id is not None and order.user_id != user_id):
        return None
    return order_to_response(order)


async def get_order_by_session(db: AsyncSession, session_id: str) -> Optional[Order]:
    stmt = _full_order_stmt().where(Order.stripe_checkout_session_id == session_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_orders(
    db: AsyncSession,
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[OrderResponse]:
    """List orders, newest first, with optional filters."""
    stmt = select(Order).options(selectinload(Order.items))
    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    if status is not None:
        stmt = stmt.where(Order.status == status)
    stmt = stmt.order_by(Order.created_at.desc()).limit(limit).offset(offset)
    result = await db.execute(stmt)
    return [order_to_response(o) for o in result.scalars().all()]


async def get_order_timeline(
    db: AsyncSession,
    order_id: str,
    user_id: Optional[str] = None,
) -> Optional[OrderTimelineResponse]:
    """Get an order's tracking events, newest first."""
    order = await load_order(db, order_id)
    if order is None or (user_id is not None and order.user_id != user_id):
        return None
    events = sorted(order.events, key=lambda ev: ev.created_at, reverse=True)
    return OrderTimelineResponse(
        order_id=order.id,
        order_number=order.order_number,
        status=order.status,
        created_at=order.created_at,
        shipping_address=_parse_address(order.shipping_address),
        events=[TrackingEventResponse.model_validate(ev) for ev in events],
    )


async def add_tracking_event(
    db: AsyncSession,
    order_id: str,
    status: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    location: Optional[str] = None,
) -> TrackingEventResponse:
    """Append a tracking event to an order."""
    event = OrderTrackingEvent(
        order_id=order_id,
        status=status,
        title=title or EVENT_TITLES.get(status, status.title()),
        description=description,
        location=location,
    )
    db.add(event)
    await db.flush()
    await db.refresh(event)
    return TrackingEventResponse.model_validate(event)


async def update_order_status(
    db: AsyncSession,
    order_id: str,
    status: str,
    description: Optional[str] = None,
    location: Optional[str] = None,
) -> Optional[OrderResponse]:
    """Move an order to a new status and record a tracking event.

    Returns:
        The updated order, or None if it does not exist.

    Raises:
        ValueError: If the transition is not allowed.
    """
    order = await load_order(db, order_id)
    if order is None:
        return None
    if not can_transition(order.status, status):
        raise ValueError(f"Cannot move order from {order.status} to {status}")

    order.status = status
    await add_tracking_event(
        db, order_id, status, description=description, location=location,
    )
    order = await load_order(db, order_id)
    return order_to_response(order)
