"""
Per-customer wishlist of products.
"""

from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .catalog import ProductResponse
from .models import Product, WishlistItem


class WishlistEntry(BaseModel):
    id: str
    product_id: str
    created_at: datetime
    product: ProductResponse


async def list_wishlist(db: AsyncSession, user_id: str) -> list[WishlistEntry]:
    """List a user's wishlist, newest first."""
    stmt = (
        select(WishlistItem, Product)
        .join(Product, WishlistItem.product_id == Product.id)
        .where(WishlistItem.user_id == user_id)
        .order_by(WishlistItem.created_at.desc())
    )
    result = await db.execute(stmt)
    return [
        WishlistEntry(
            id=item.id,
            product_id=item.product_id,
            created_at=item.created_at,
            product=ProductResponse.model_validate(product),
        )
        for item, product in result.all()
    ]


async def add_to_wishlist(db: AsyncSession, user_id: str, product_id: str) -> bool:
    """Add a product. Returns False if the product does not exist.

    Adding a product that is already on the list is a no-op.
    """
    product = await db.get(Product, product_id)
    if product is None or not product.is_active:
        return False
    stmt = select(WishlistItem.id).where(
        WishlistItem.user_id == user_id, WishlistItem.product_id == product_id,
    )
    if (await db.execute(stmt)).first() is None:
        db.add(WishlistItem(user_id=user_id, product_id=product_id))
        await db.flush()
    return True


async def remove_from_wishlist(db: AsyncSession, user_id: str, product_id: str) -> bool:
    """Remove a product. Returns False if it was not on the list."""
    stmt = delete(WishlistItem).where(
        WishlistItem.user_id == user_id, WishlistItem.product_id == product_id,
    )
    result = await db.execute(stmt)
    return (result.rowcount or 0) > 0


async def is_in_wishlist(db: AsyncSession, user_id: str, product_id: str) -> bool:
    stmt = select(WishlistItem.id).where(
        WishlistItem.user_id == user_id, WishlistItem.product_id == product_id,
    )
    return (await db.execute(stmt)).first() is not None
