"""
Catalogue read path: categories, products and bundles.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Bundle, Category, Product, Review


class CategoryResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: int

    model_config = {"from_attributes": True}


class ProductResponse(BaseModel):
    """Schema for a product response."""
    id: str
    name: str
    tagline: Optional[str] = None
    description: Optional[str] = None
    price: Decimal
    compare_at_price: Optional[Decimal] = None
    image_url: str
    badge: Optional[str] = None
    category_id: Optional[str] = None
    is_featured: bool
    stock_quantity: Optional[int] = None
    created_at: datetime
    rating_average: Optional[float] = None
    review_count: int = 0

    model_config = {"from_attributes": True}


class BundleResponse(BaseModel):
    id: str
    name: str
    tagline: Optional[str] = None
    description: Optional[str] = None
    price: Decimal
    compare_at_price: Optional[Decimal] = None
    image_url: str
    badge: Optional[str] = None

    model_config = {"from_attributes": True}


async def list_categories(db: AsyncSession) -> list[CategoryResponse]:
    stmt = select(Category).order_by(Category.display_order, Category.name)
    result = await db.execute(stmt)
    return [CategoryResponse.model_validate(c) for c in result.scalars().all()]


async def list_products(
    db: AsyncSession,
    category_slug: Optional[str] = None,
    featured: Optional[bool] = None,
    search: Optional[str] = None,
) -> list[ProductResponse]:
    """List active products, optionally by category slug or featured flag.

    ``search`` matches name, tagline or description, ignoring case.
    """
    stmt = select(Product).where(Product.is_active.is_(True))
    if category_slug is not None:
        stmt = stmt.join(Category, Product.category_id == Category.id).where(
            Category.slug == category_slug
        )
    if featured is not None:
        stmt = stmt.where(Product.is_featured.is_(featured))
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(
            Product.name.ilike(pattern),
            Product.tagline.ilike(pattern),
            Product.description.ilike(pattern),
        ))
    stmt = stmt.order_by(Product.created_at.desc(), Product.name)
    result = await db.execute(stmt)
    return [ProductResponse.model_validate(p) for p in result.scalars().all()]


async def get_product(db: AsyncSession, product_id: str) -> Optional[ProductResponse]:
    """Get an active product with its approved-review rating."""
    product = await db.get(Product, product_id, populate_existing=True)
    if product is None or not product.is_active:
        return None
    stmt = select(func.avg(Review.rating), func.count(Review.id)).where(
        Review.product_id == product_id, Review.is_approved.is_(True),
    )
    average, count = (await db.execute(stmt)).one()
    response = ProductResponse.model_validate(product)
    response.review_count = count or 0
    response.rating_average = round(float(average), 1) if average is not None else None
    return response


async def list_bundles(db: AsyncSession) -> list[BundleResponse]:
    stmt = select(Bundle).where(Bundle.is_active.is_(True)).order_by(Bundle.name)
    result = await db.execute(stmt)
    return [BundleResponse.model_validate(b) for b in result.scalars().all()]
