"""
Admin dashboard figures.
"""

from decimal import Decimal

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .activity_logger import ActivityLogger
from .models import Order, OrderStatus, PaymentStatus, Review


class AdminStats(BaseModel):
    """Schema for the dashboard summary."""
    orders_by_status: dict[str, int]
    total_orders: int
    paid_orders: int
    revenue: Decimal
    pending_reviews: int
    recent_activity: dict


async def get_stats(db: AsyncSession, activity: ActivityLogger) -> AdminStats:
    """Order counts per status, paid revenue, moderation queue and activity."""
    counts = {status.value: 0 for status in OrderStatus}
    result = await db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status))
    for status, count in result.all():
        counts[status] = count

    paid = await db.execute(
        select(func.count(Order.id), func.coalesce(func.sum(Order.total), 0)).where(
            Order.payment_status == PaymentStatus.PAID.value,
        )
    )
    paid_orders, revenue = paid.one()

    pending = await db.execute(
        select(func.count(Review.id)).where(Review.is_approved.is_(None))
    )

    return AdminStats(
        orders_by_status=counts,
        total_orders=sum(counts.values()),
        paid_orders=paid_orders,
        revenue=Decimal(str(revenue)).quantize(Decimal("0.01")),
        pending_reviews=pending.scalar_one(),
        recent_activity=activity.get_summary(),
    )
