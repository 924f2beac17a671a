"""
Payment webhook handling.

Stripe reports payment outcomes asynchronously; this is the only place
that marks an order paid. Events may be delivered more than once, so
every branch is idempotent.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .activity_logger import ActivityLogger
from .models import Order, OrderStatus, PaymentStatus
from .notifications import Mailer
from .orders import add_tracking_event, get_order_by_session, load_order, order_to_response

logger = logging.getLogger("storefront-webhooks")

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_FAILED = "payment_intent.payment_failed"


async def _order_for_session(db: AsyncSession, session: dict[str, Any]) -> Optional[Order]:
    order_id = (session.get("metadata") or {}).get("order_id")
    if order_id:
        order = await load_order(db, order_id)
        if order is not None:
            return order
    if session.get("id"):
        return await get_order_by_session(db, session["id"])
    return None


async def _order_for_intent(db: AsyncSession, intent: dict[str, Any]) -> Optional[Order]:
    order_id = (intent.get("metadata") or {}).get("order_id")
    if order_id:
        order = await load_order(db, order_id)
        if order is not None:
            return order
    if not intent.get("id"):
        return None
    result = await db.execute(
        select(Order).where(Order.stripe_payment_intent_id == intent["id"])
    )
    return result.scalar_one_or_none()


async def handle_checkout_completed(
    db: AsyncSession,
    session: dict[str, Any],
    mailer: Optional[Mailer] = None,
    activity: Optional[ActivityLogger] = None,
) -> Optional[str]:
    """Mark the session's order paid and send the confirmation email.

    Returns:
        The order id, or None if no order matches the session.
    """
    order = await _order_for_session(db, session)
    if order is None:
        logger.warning("No order for checkout session %s", session.get("id"))
        return None
    if order.payment_status == PaymentStatus.PAID.value:
        logger.info("Order %s already paid; ignoring duplicate event", order.order_number)
        return order.id

    old_status = order.status
    order.payment_status = PaymentStatus.PAID.value
    if session.get("payment_intent"):
        order.stripe_payment_intent_id = session["payment_intent"]
    if order.status == OrderStatus.PENDING.value:
        order.status = OrderStatus.PROCESSING.value
        await add_tracking_event(
            db, order.id, OrderStatus.PROCESSING.value,
            description="Payment confirmed. We're preparing your order.",
        )
    await db.flush()
    logger.info("Order %s paid", order.order_number)

    if activity is not None:
        activity.log("payment", order.order_number, "paid", user_id=order.user_id)
        if old_status != order.status:
            activity.log("order", order.order_number, "status_changed",
                         old_value=old_status, new_value=order.status,
                         user_id=order.user_id)

    if mailer is not None:
        order = await load_order(db, order.id)
        await mailer.send_order_confirmation(order_to_response(order))
    return order.id


async def handle_payment_failed(
    db: AsyncSession,
    intent: dict[str, Any],
    activity: Optional[ActivityLogger] = None,
) -> Optional[str]:
    """Record a failed payment. Returns the order id, if one matched."""
    order = await _order_for_intent(db, intent)
    if order is None:
        logger.warning("No order for payment intent %s", intent.get("id"))
        return None
    if order.payment_status == PaymentStatus.PAID.value:
        logger.warning(
            "Ignoring failure for already paid order %s", order.order_number,
        )
        return order.id
    order.payment_status = PaymentStatus.FAILED.value
    if intent.get("id"):
        order.stripe_payment_intent_id = intent["id"]
    await db.flush()
    logger.info("Payment failed for order %s", order.order_number)
    if activity is not None:
        activity.log("payment", order.order_number, "payment_failed", user_id=order.user_id)
    return order.id


async def handle_event(
    db: AsyncSession,
    event: dict[str, Any],
    mailer: Optional[Mailer] = None,
    activity: Optional[ActivityLogger] = None,
) -> dict[str, Any]:
    """Dispatch a verified Stripe event. Unknown types are acknowledged."""
    event_type = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == CHECKOUT_COMPLETED:
        order_id = await handle_checkout_completed(db, obj, mailer, activity)
    elif event_type == PAYMENT_FAILED:
        order_id = await handle_payment_failed(db, obj, activity)
    else:
        logger.debug("Unhandled event type %s", event_type)
        return {"received": True}
    return {"received": True, "order_id": order_id}
