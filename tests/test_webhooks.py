"""
Tests for storefront/webhooks.py and storefront/notifications.py.

Covers:
- checkout.session.completed marks the order paid and processing
- Duplicate deliveries are idempotent
- payment_intent.payment_failed marks the payment failed
- Unknown events are acknowledged
- Confirmation and status-change emails sent through the Resend API
  (httpx.MockTransport)
"""

import json
import os
import sys
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

# Ensure project root is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from storefront.activity_logger import ActivityLogger
from storefront.models import Base
from storefront.notifications import Mailer, render_order_confirmation, status_message
from storefront.orders import create_order, get_order, get_order_timeline, update_order_status
from storefront.webhooks import handle_event


class RecordingResend:
    """httpx transport handler standing in for the Resend API."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"id": "email_123"})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
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


@pytest_asyncio.fixture
async def order(db):
    order = await create_order(
        db,
        user_id="user-1",
        order_number="LUN-ABCDEF012345",
        amounts={
            "subtotal": Decimal("59.98"),
            "discount_amount": Decimal("12.00"),
            "tax": Decimal("3.84"),
            "total": Decimal("51.82"),
        },
        items=[{
            "product_id": "p-serum",
            "product_name": "Radiance <Serum>",
            "quantity": 2,
            "unit_price": Decimal("29.99"),
        }],
        customer_email="ada@example.com",
        shipping_address={
            "first_name": "Ada", "last_name": "Lovelace", "address": "12 Analytical Row",
            "city": "London", "state": "LN", "zip_code": "10001",
        },
    )
    order.stripe_checkout_session_id = "cs_test_1"
    await db.flush()
    return order


@pytest.fixture
def resend():
    return RecordingResend()


@pytest.fixture
def mailer(resend):
    return Mailer("re_test_key", transport=httpx.MockTransport(resend))


def _completed(session_id="cs_test_1", order_id=None):
    metadata = {"order_id": order_id} if order_id else {}
    return {
        "type": "checkout.session.completed",
        "data": {"object": {"id": session_id, "payment_intent": "pi_123", "metadata": metadata}},
    }


# ---------------------------------------------------------------------------
# Test: checkout.session.completed
# ---------------------------------------------------------------------------

class TestCheckoutCompleted:
    @pytest.mark.asyncio
    async def test_marks_order_paid(self, db, order, mailer, resend, tmp_path):
        activity = ActivityLogger(data_dir=str(tmp_path))
        result = await handle_event(db, _completed(order_id=order.id), mailer, activity)
        assert result == {"received": True, "order_id": order.id}

        fetched = await get_order(db, order.id)
        assert fetched.status == "processing"
        assert fetched.payment_status == "paid"

        timeline = await get_order_timeline(db, order.id)
        assert timeline.events[0].status == "processing"

        summary = activity.get_summary("2000-01-01T00:00:00Z")["summary"]
        assert summary["orders_paid"] == 1
        assert summary["status_changes"] == 1

    @pytest.mark.asyncio
    async def test_finds_order_by_session_id(self, db, order, mailer):
        result = await handle_event(db, _completed(), mailer)
        assert result["order_id"] == order.id

    @pytest.mark.asyncio
    async def test_sends_confirmation_email(self, db, order, mailer, resend):
        await handle_event(db, _completed(order_id=order.id), mailer)
        assert len(resend.requests) == 1
        request = resend.requests[0]
        assert request.headers["authorization"] == "Bearer re_test_key"
        body = json.loads(request.content)
        assert body["to"] == ["ada@example.com"]
        assert body["subject"] == "Order Confirmed - LUN-ABCDEF012345"
        assert "$51.82" in body["html"]

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_idempotent(self, db, order, mailer, resend):
        await handle_event(db, _completed(order_id=order.id), mailer)
        await handle_event(db, _completed(order_id=order.id), mailer)
        timeline = await get_order_timeline(db, order.id)
        assert [e.status for e in timeline.events] == ["processing", "pending"]
        assert len(resend.requests) == 1

    @pytest.mark.asyncio
    async def test_unknown_session(self, db, mailer, resend):
        result = await handle_event(db, _completed(session_id="cs_unknown"), mailer)
        assert result == {"received": True, "order_id": None}
        assert resend.requests == []

    @pytest.mark.asyncio
    async def test_email_failure_does_not_fail_event(self, db, order):
        mailer = Mailer("re_test_key", transport=httpx.MockTransport(RecordingResend(500)))
        result = await handle_event(db, _completed(order_id=order.id), mailer)
        assert result["order_id"] == order.id
        fetched = await get_order(db, order.id)
        assert fetched.payment_status == "paid"


# ---------------------------------------------------------------------------
# Test: payment_intent.payment_failed
# ---------------------------------------------------------------------------

class TestPaymentFailed:
    @pytest.mark.asyncio
    async def test_marks_payment_failed(self, db, order):
        event = {
            "type": "payment_intent.payment_failed",
            "data": {"object": {"id": "pi_failed", "metadata": {"order_id": order.id}}},
        }
        result = await handle_event(db, event)
        assert result["order_id"] == order.id
        fetched = await get_order(db, order.id)
        assert fetched.payment_status == "failed"
        assert fetched.status == "pending"

    @pytest.mark.asyncio
    async def test_failure_after_payment_ignored(self, db, order):
        await handle_event(db, _completed(order_id=order.id))
        event = {
            "type": "payment_intent.payment_failed",
            "data": {"object": {"id": "pi_123", "metadata": {}}},
        }
        await handle_event(db, event)
        fetched = await get_order(db, order.id)
        assert fetched.payment_status == "paid"


class TestUnknownEvents:
    @pytest.mark.asyncio
    async def test_acknowledged(self, db):
        result = await handle_event(db, {"type": "customer.created", "data": {"object": {}}})
        assert result == {"received": True}


# ---------------------------------------------------------------------------
# Test: Mailer
# ---------------------------------------------------------------------------

class TestMailer:
    @pytest.mark.asyncio
    async def test_disabled_without_key(self, resend):
        mailer = Mailer(None, transport=httpx.MockTransport(resend))
        assert not mailer.enabled
        assert await mailer.send("ada@example.com", "Hi", "<p>Hi</p>") is False
        assert resend.requests == []

    @pytest.mark.asyncio
    async def test_transport_error_returns_false(self):
        def boom(request):
            raise httpx.ConnectError("connection refused")

        mailer = Mailer("re_test_key", transport=httpx.MockTransport(boom))
        assert await mailer.send("ada@example.com", "Hi", "<p>Hi</p>") is False

    @pytest.mark.asyncio
    async def test_render_escapes_product_names(self, db, order):
        html = render_order_confirmation(await get_order(db, order.id))
        assert "Radiance &lt;Serum&gt;" in html
        assert "Thank you, Ada Lovelace!" in html
        assert "-$12.00" in html
        assert "LUN-ABCDEF012345" in html

    @pytest.mark.asyncio
    async def test_status_update_email(self, db, order, mailer, resend):
        updated = await update_order_status(db, order.id, "processing")
        assert await mailer.send_order_status_update(updated) is True
        body = json.loads(resend.requests[0].content)
        assert body["to"] == ["ada@example.com"]
        assert body["subject"] == "Your order is being processed!"
        assert "Hi Ada Lovelace," in body["html"]
        assert "LUN-ABCDEF012345" in body["html"]

    @pytest.mark.asyncio
    async def test_status_update_without_email(self, db, order, mailer, resend):
        updated = await update_order_status(db, order.id, "cancelled")
        assert await mailer.send_order_status_update(updated.model_copy(update={"customer_email": None})) is False
        assert resend.requests == []

    @pytest.mark.parametrize("status,subject", [
        ("shipped", "Your order is on its way!"),
        ("delivered", "Your order has been delivered!"),
        ("cancelled", "Order status update: cancelled"),
    ])
    def test_status_subjects(self, status, subject):
        assert status_message(status)[0] == subject
