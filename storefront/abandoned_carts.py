"""
Server-side snapshots of carts that have not been checked out.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AbandonedCart


class AbandonedCartSnapshot(BaseModel):
    """Body of PUT /abandoned-cart."""
    items: list[dict[str, Any]] = Field(default_factory=list)
    cart_total: Decimal = Field(Decimal("0"), ge=0)


class AbandonedCartResponse(BaseModel):
    id: str
    user_id: str
    items: list[dict[str, Any]]
    cart_total: Decimal
    recovered_at: Optional[datetime] = None
    updated_at: datetime


def _to_response(cart: AbandonedCart) -> AbandonedCartResponse:
    return AbandonedCartResponse(
        id=cart.id,
        user_id=cart.user_id,
        items=json.loads(cart.cart_data or "[]"),
        cart_total=cart.cart_total,
        recovered_at=cart.recovered_at,
        updated_at=cart.updated_at,
    )


async def save_snapshot(
    db: AsyncSession, user_id: str, body: AbandonedCartSnapshot,
) -> Optional[AbandonedCartResponse]:
    """Upsert the user's open cart snapshot.

    An empty cart closes any open snapshot instead and returns None.
    """
    stmt = select(AbandonedCart).where(
        AbandonedCart.user_id == user_id, AbandonedCart.recovered_at.is_(None),
    )
    result = await db.execute(stmt)
    cart = result.scalars().first()

    if not body.items:
        if cart is not None:
            await db.delete(cart)
            await db.flush()
        return None

    if cart is None:
        cart = AbandonedCart(user_id=user_id, cart_data="[]")
        db.add(cart)
    cart.cart_data = json.dumps(body.items, default=str)
    cart.cart_total = body.cart_total
    await db.flush()
    await db.refresh(cart)
    return _to_response(cart)


async def mark_recovered(db: AsyncSession, user_id: str) -> int:
    """Mark the user's open snapshots recovered. Returns how many were."""
    stmt = (
        update(AbandonedCart)
        .where(AbandonedCart.user_id == user_id, AbandonedCart.recovered_at.is_(None))
        .values(recovered_at=datetime.now(timezone.utc).replace(tzinfo=None))
    )
    result = await db.execute(stmt)
    return result.rowcount or 0
