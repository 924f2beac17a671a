"""
Discount code authority.

This module is the single owner of discount eligibility: activity window,
usage caps, minimum order amount and one use per customer. Clients ask
``validate_discount_code`` for a decision and never re-derive these rules.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import DiscountCode, DiscountRedemption, DiscountType
from .pricing import discount_cents, from_cents, to_cents

logger = logging.getLogger("storefront-discounts")


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


class DiscountCodeCreate(BaseModel):
    """Schema for creating a discount code."""

    code: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = None
    discount_type: Literal["percentage", "fixed"] = "percentage"
    discount_value: Decimal = Field(..., gt=0)
    min_order_amount: Optional[Decimal] = Field(None, ge=0)
    max_uses: Optional[int] = Field(None, ge=1)
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True


class DiscountValidationRequest(BaseModel):
    """Body of the validate-discount-code remote procedure."""

    code: str
    order_total: Decimal = Field(..., ge=0)
    user_id: Optional[str] = None


class DiscountDecision(BaseModel):
    """Verdict on a discount code for a given order total."""

    valid: bool
    error: Optional[str] = None
    discount_code_id: Optional[str] = None
    code: Optional[str] = None
    discount_type: Optional[Literal["percentage", "fixed"]] = None
    discount_value: Optional[float] = None
    discount_amount: Optional[float] = None
    description: Optional[str] = None


def normalize_code(code: str) -> str:
    return code.strip().upper()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _rejected(error: str) -> DiscountDecision:
    return DiscountDecision(valid=False, error=error)


# ---------------------------------------------------------------------------
# CRUD operations
# ---------------------------------------------------------------------------


async def create_discount_code(db: AsyncSession, body: DiscountCodeCreate) -> DiscountCode:
    """Create a discount code; the code is stored upper-cased.

    Raises:
        ValueError: If the code already exists.
    """
    code = normalize_code(body.code)
    if await get_discount_code_by_code(db, code) is not None:
        raise ValueError(f"Discount code '{code}' already exists")
    discount = DiscountCode(
        code=code,
        description=body.description,
        discount_type=body.discount_type,
        discount_value=body.discount_value,
        min_order_amount=body.min_order_amount,
        max_uses=body.max_uses,
        starts_at=_naive(body.starts_at),
        expires_at=_naive(body.expires_at),
        is_active=body.is_active,
    )
    db.add(discount)
    await db.flush()
    await db.refresh(discount)
    return discount


async def get_discount_code(db: AsyncSession, discount_code_id: str) -> Optional[DiscountCode]:
    return await db.get(DiscountCode, discount_code_id)


async def get_discount_code_by_code(db: AsyncSession, code: str) -> Optional[DiscountCode]:
    stmt = select(DiscountCode).where(func.upper(DiscountCode.code) == normalize_code(code))
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _already_redeemed(db: AsyncSession, discount_code_id: str, user_id: str) -> bool:
    stmt = select(DiscountRedemption.id).where(
        DiscountRedemption.discount_code_id == discount_code_id,
        DiscountRedemption.user_id == user_id,
    )
    result = await db.execute(stmt)
    return result.first() is not None


# ---------------------------------------------------------------------------
# Remote procedures
# ---------------------------------------------------------------------------


async def check_eligibility(
    db: AsyncSession,
    discount: DiscountCode,
    order_total: Decimal,
    user_id: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Return the reason a code cannot be used, or None if it can."""
    now = now or _utcnow()
    if not discount.is_active:
        return "This discount code is no longer active"
    if discount.starts_at is not None and discount.starts_at > now:
        return "This discount code is not active yet"
    if discount.expires_at is not None and discount.expires_at <= now:
        return "This discount code has expired"
    if discount.max_uses is not None and (discount.uses_count or 0) >= discount.max_uses:
        return "This discount code has reached its usage limit"
    if discount.min_order_amount is not None and order_total < discount.min_order_amount:
        return f"Minimum order amount of ${discount.min_order_amount:.2f} required"
    if user_id and await _already_redeemed(db, discount.id, user_id):
        return "You have already used this discount code"
    return None


async def validate_discount_code(
    db: AsyncSession,
    code: str,
    order_total: Decimal,
    user_id: Optional[str],
    now: Optional[datetime] = None,
) -> DiscountDecision:
    """Decide whether ``code`` applies to an order of ``order_total``.

    Args:
        db: Async database session.
        code: Code as typed by the customer (case and padding ignored).
        order_total: Current cart subtotal.
        user_id: Customer asking; used for the one-use-per-customer rule.
        now: Clock override for tests.

    Returns:
        A DiscountDecision. Invalid decisions carry a customer-facing error.
    """
    if not code or not code.strip():
        return _rejected("Please enter a discount code")

    discount = await get_discount_code_by_code(db, code)
    if discount is None:
        return _rejected("Invalid discount code")

    order_total = Decimal(str(order_total))
    reason = await check_eligibility(db, discount, order_total, user_id, now=now)
    if reason is not None:
        logger.info("Discount code %s rejected: %s", discount.code, reason)
        return _rejected(reason)

    amount = discount_cents(to_cents(order_total), discount.discount_type, discount.discount_value)
    return DiscountDecision(
        valid=True,
        discount_code_id=discount.id,
        code=discount.code,
        discount_type=discount.discount_type,
        discount_value=float(discount.discount_value),
        discount_amount=float(from_cents(amount)),
        description=discount.description,
    )


async def apply_discount_code(
    db: AsyncSession,
    discount_code_id: str,
    user_id: str,
    order_id: Optional[str] = None,
) -> bool:
    """Record one use of a code by a user. Returns False if already recorded."""
    discount = await get_discount_code(db, discount_code_id)
    if discount is None:
        return False
    if await _already_redeemed(db, discount_code_id, user_id):
        return False
    discount.uses_count = (discount.uses_count or 0) + 1
    db.add(DiscountRedemption(
        discount_code_id=discount_code_id,
        user_id=user_id,
        order_id=order_id,
    ))
    await db.flush()
    return True


def describe_discount(discount_type: Optional[str], discount_value: Optional[float]) -> str:
    """Short label such as ``20% off`` or ``$5.00 off``."""
    if discount_value is None:
        return ""
    if discount_type == DiscountType.PERCENTAGE.value:
        return f"{discount_value:g}% off"
    return f"${discount_value:.2f} off"
