"""
Product reviews with moderation.

New reviews start unmoderated (``is_approved`` is None) and only approved
reviews are listed publicly. A review is flagged as a verified purchase
when its author has a paid order containing the product. Each user may
review a product once.

Likes and helpful votes are per-user toggles on approved reviews.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import HelpfulVote, Order, OrderItem, PaymentStatus, Product, Review, ReviewLike

DUPLICATE_REVIEW = "You've already reviewed this product"


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = Field(None, max_length=5000)


class ReviewResponse(BaseModel):
    """Schema for a review response."""
    id: str
    product_id: str
    user_id: str
    rating: int
    title: Optional[str] = None
    content: Optional[str] = None
    is_approved: Optional[bool] = None
    is_verified_purchase: bool
    created_at: datetime
    likes_count: int = 0
    helpful_count: int = 0
    user_has_liked: bool = False
    user_marked_helpful: bool = False

    model_config = {"from_attributes": True}


class ReviewReaction(BaseModel):
    """State of one user's like or helpful vote after a toggle."""
    review_id: str
    active: bool
    count: int


async def _has_purchased(db: AsyncSession, user_id: str, product_id: str) -> bool:
    stmt = (
        select(OrderItem.id)
        .join(Order, OrderItem.order_id == Order.id)
        .where(
            Order.user_id == user_id,
            Order.payment_status == PaymentStatus.PAID.value,
            OrderItem.product_id == product_id,
        )
        .limit(1)
    )
    return (await db.execute(stmt)).first() is not None


async def create_review(
    db: AsyncSession, user_id: str, product_id: str, body: ReviewCreate,
) -> Optional[ReviewResponse]:
    """Submit a review for moderation.

    Returns None if the product is unknown. Raises ValueError if the user
    has already reviewed it.
    """
    product = await db.get(Product, product_id)
    if product is None:
        return None
    existing = await db.execute(
        select(Review.id).where(Review.user_id == user_id, Review.product_id == product_id)
    )
    if existing.first() is not None:
        raise ValueError(DUPLICATE_REVIEW)
    review = Review(
        product_id=product_id,
        user_id=user_id,
        rating=body.rating,
        title=body.title,
        content=body.content,
        is_approved=None,
        is_verified_purchase=await _has_purchased(db, user_id, product_id),
    )
    db.add(review)
    await db.flush()
    await db.refresh(review)
    return ReviewResponse.model_validate(review)


async def _counts(db: AsyncSession, model, review_ids: list[str]) -> dict[str, int]:
    stmt = (
        select(model.review_id, func.count(model.id))
        .where(model.review_id.in_(review_ids))
        .group_by(model.review_id)
    )
    return dict((await db.execute(stmt)).all())


async def _reacted(db: AsyncSession, model, review_ids: list[str], user_id: str) -> set[str]:
    stmt = select(model.review_id).where(model.review_id.in_(review_ids), model.user_id == user_id)
    return set((await db.execute(stmt)).scalars().all())


async def list_product_reviews(
    db: AsyncSession, product_id: str, viewer_id: Optional[str] = None,
) -> list[ReviewResponse]:
    """Approved reviews of a product, newest first.

    Each review carries its like and helpful counts. When ``viewer_id`` is
    given, ``user_has_liked`` and ``user_marked_helpful`` reflect that user.
    """
    stmt = (
        select(Review)
        .where(Review.product_id == product_id, Review.is_approved.is_(True))
        .order_by(Review.created_at.desc())
    )
    result = await db.execute(stmt)
    reviews = [ReviewResponse.model_validate(r) for r in result.scalars().all()]
    if not reviews:
        return reviews

    ids = [r.id for r in reviews]
    likes = await _counts(db, ReviewLike, ids)
    helpful = await _counts(db, HelpfulVote, ids)
    liked: set[str] = set()
    marked: set[str] = set()
    if viewer_id:
        liked = await _reacted(db, ReviewLike, ids, viewer_id)
        marked = await _reacted(db, HelpfulVote, ids, viewer_id)
    for review in reviews:
        review.likes_count = likes.get(review.id, 0)
        review.helpful_count = helpful.get(review.id, 0)
        review.user_has_liked = review.id in liked
        review.user_marked_helpful = review.id in marked
    return reviews


async def _toggle(db: AsyncSession, model, review_id: str, user_id: str) -> Optional[ReviewReaction]:
    review = await db.get(Review, review_id)
    if review is None or review.is_approved is not True:
        return None
    stmt = select(model).where(model.review_id == review_id, model.user_id == user_id)
    existing = (await db.execute(stmt)).scalar_one_or_none()
    if existing is not None:
        await db.delete(existing)
    else:
        db.add(model(review_id=review_id, user_id=user_id))
    await db.flush()
    count = (await _counts(db, model, [review_id])).get(review_id, 0)
    return ReviewReaction(review_id=review_id, active=existing is None, count=count)


async def toggle_like(db: AsyncSession, review_id: str, user_id: str) -> Optional[ReviewReaction]:
    """Like a review, or remove the like if already given. None if the review is not listed."""
    return await _toggle(db, ReviewLike, review_id, user_id)


async def toggle_helpful(db: AsyncSession, review_id: str, user_id: str) -> Optional[ReviewReaction]:
    """Mark a review helpful, or remove the vote if already given."""
    return await _toggle(db, HelpfulVote, review_id, user_id)


async def list_pending_reviews(db: AsyncSession) -> list[ReviewResponse]:
    stmt = select(Review).where(Review.is_approved.is_(None)).order_by(Review.created_at)
    result = await db.execute(stmt)
    return [ReviewResponse.model_validate(r) for r in result.scalars().all()]


async def moderate_review(
    db: AsyncSession, review_id: str, approved: bool,
) -> Optional[ReviewResponse]:
    """Approve or reject a review. Returns None if it does not exist."""
    review = await db.get(Review, review_id)
    if review is None:
        return None
    review.is_approved = approved
    await db.flush()
    await db.refresh(review)
    return ReviewResponse.model_validate(review)
