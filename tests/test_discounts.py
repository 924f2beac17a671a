"""
Tests for storefront/discounts.py -- discount code authority.

Covers:
- Code creation (normalisation, duplicates)
- Validation (unknown, inactive, window, usage cap, minimum, per-user reuse)
- Discount amount in the decision
- Redemption bookkeeping
"""

import os
import sys
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

# Ensure project root is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from storefront.discounts import (
    DiscountCodeCreate,
    apply_discount_code,
    create_discount_code,
    describe_discount,
    get_discount_code,
    validate_discount_code,
)
from storefront.models import Base


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    """Create an in-memory async SQLite engine."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


async def _code(db, **overrides):
    data = {"code": "glow20", "discount_type": "percentage", "discount_value": Decimal("20")}
    data.update(overrides)
    return await create_discount_code(db, DiscountCodeCreate(**data))


# ---------------------------------------------------------------------------
# Test: Creation
# ---------------------------------------------------------------------------

class TestCreateDiscountCode:
    @pytest.mark.asyncio
    async def test_code_is_upper_cased(self, db):
        discount = await _code(db, code="  glow20 ")
        assert discount.code == "GLOW20"
        assert discount.uses_count == 0

    @pytest.mark.asyncio
    async def test_duplicate_code_rejected(self, db):
        await _code(db)
        with pytest.raises(ValueError, match="already exists"):
            await _code(db, code="Glow20")


# ---------------------------------------------------------------------------
# Test: Validation
# ---------------------------------------------------------------------------

class TestValidateDiscountCode:
    @pytest.mark.asyncio
    async def test_empty_code(self, db):
        decision = await validate_discount_code(db, "   ", Decimal("100"), "user-1")
        assert not decision.valid
        assert decision.error == "Please enter a discount code"

    @pytest.mark.asyncio
    async def test_unknown_code(self, db):
        decision = await validate_discount_code(db, "NOPE", Decimal("100"), "user-1")
        assert not decision.valid
        assert decision.error == "Invalid discount code"

    @pytest.mark.asyncio
    async def test_valid_percentage_code_case_insensitive(self, db):
        discount = await _code(db, description="Spring sale")
        decision = await validate_discount_code(db, " glow20 ", Decimal("100"), "user-1")
        assert decision.valid
        assert decision.discount_code_id == discount.id
        assert decision.code == "GLOW20"
        assert decision.discount_type == "percentage"
        assert decision.discount_value == 20.0
        assert decision.discount_amount == 20.0
        assert decision.description == "Spring sale"

    @pytest.mark.asyncio
    async def test_fixed_amount_clamped_to_total(self, db):
        await _code(db, code="TAKE75", discount_type="fixed", discount_value=Decimal("75"))
        decision = await validate_discount_code(db, "TAKE75", Decimal("50"), "user-1")
        assert decision.valid
        assert decision.discount_amount == 50.0

    @pytest.mark.asyncio
    async def test_inactive_code(self, db):
        await _code(db, is_active=False)
        decision = await validate_discount_code(db, "GLOW20", Decimal("100"), "user-1")
        assert decision.error == "This discount code is no longer active"

    @pytest.mark.asyncio
    async def test_not_started(self, db):
        await _code(db, starts_at=datetime(2030, 1, 1))
        decision = await validate_discount_code(
            db, "GLOW20", Decimal("100"), "user-1", now=datetime(2029, 12, 31),
        )
        assert decision.error == "This discount code is not active yet"

    @pytest.mark.asyncio
    async def test_expired(self, db):
        expires = datetime(2025, 6, 1)
        await _code(db, expires_at=expires)
        decision = await validate_discount_code(
            db, "GLOW20", Decimal("100"), "user-1", now=expires + timedelta(seconds=1),
        )
        assert decision.error == "This discount code has expired"

    @pytest.mark.asyncio
    async def test_usage_limit(self, db):
        discount = await _code(db, max_uses=1)
        assert await apply_discount_code(db, discount.id, "user-1")
        decision = await validate_discount_code(db, "GLOW20", Decimal("100"), "user-2")
        assert decision.error == "This discount code has reached its usage limit"

    @pytest.mark.asyncio
    async def test_minimum_order_amount(self, db):
        await _code(db, min_order_amount=Decimal("75"))
        decision = await validate_discount_code(db, "GLOW20", Decimal("74.99"), "user-1")
        assert decision.error == "Minimum order amount of $75.00 required"
        decision = await validate_discount_code(db, "GLOW20", Decimal("75"), "user-1")
        assert decision.valid

    @pytest.mark.asyncio
    async def test_one_use_per_customer(self, db):
        discount = await _code(db)
        await apply_discount_code(db, discount.id, "user-1")
        decision = await validate_discount_code(db, "GLOW20", Decimal("100"), "user-1")
        assert decision.error == "You have already used this discount code"
        other = await validate_discount_code(db, "GLOW20", Decimal("100"), "user-2")
        assert other.valid


# ---------------------------------------------------------------------------
# Test: Redemption
# ---------------------------------------------------------------------------

class TestApplyDiscountCode:
    @pytest.mark.asyncio
    async def test_increments_uses(self, db):
        discount = await _code(db)
        assert await apply_discount_code(db, discount.id, "user-1", order_id=None)
        refreshed = await get_discount_code(db, discount.id)
        assert refreshed.uses_count == 1

    @pytest.mark.asyncio
    async def test_second_redemption_by_same_user_ignored(self, db):
        discount = await _code(db)
        assert await apply_discount_code(db, discount.id, "user-1")
        assert not await apply_discount_code(db, discount.id, "user-1")
        refreshed = await get_discount_code(db, discount.id)
        assert refreshed.uses_count == 1

    @pytest.mark.asyncio
    async def test_unknown_code(self, db):
        assert not await apply_discount_code(db, "missing", "user-1")


class TestDescribeDiscount:
    def test_labels(self):
        assert describe_discount("percentage", 20.0) == "20% off"
        assert describe_discount("fixed", 5) == "$5.00 off"
        assert describe_discount("fixed", None) == ""
