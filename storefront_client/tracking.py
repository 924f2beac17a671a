"""
Order status display and tracking.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .client import StorefrontClient
from .errors import NotFoundError, StorefrontError
from .notices import NoticeBoard
from .types import Order, OrderTimeline

logger = logging.getLogger("storefront-client-tracking")


@dataclass(frozen=True)
class StatusDisplay:
    icon: str
    color: str


STATUS_DISPLAY = {
    "pending": StatusDisplay("Clock", "text-amber-500 bg-amber-500"),
    "processing": StatusDisplay("Package", "text-blue-500 bg-blue-500"),
    "shipped": StatusDisplay("Truck", "text-primary bg-primary"),
    "delivered": StatusDisplay("CheckCircle", "text-green-500 bg-green-500"),
    "cancelled": StatusDisplay("XCircle", "text-destructive bg-destructive"),
}
UNKNOWN_STATUS = StatusDisplay("Clock", "text-muted-foreground bg-muted-foreground")

PROGRESS_STEPS = ("pending", "processing", "shipped", "delivered")


def status_display(status: str) -> StatusDisplay:
    return STATUS_DISPLAY.get(status, UNKNOWN_STATUS)


@dataclass(frozen=True)
class ProgressStep:
    status: str
    icon: str
    completed: bool
    current: bool


def progress_steps(status: str) -> list[ProgressStep]:
    """Steps of the progress bar. Empty for cancelled orders."""
    if status == "cancelled":
        return []
    current = PROGRESS_STEPS.index(status) if status in PROGRESS_STEPS else -1
    return [
        ProgressStep(
            status=step,
            icon=STATUS_DISPLAY[step].icon,
            completed=i <= current,
            current=i == current,
        )
        for i, step in enumerate(PROGRESS_STEPS)
    ]


def progress_percent(status: str) -> float:
    if status not in PROGRESS_STEPS:
        return 0.0
    return PROGRESS_STEPS.index(status) / (len(PROGRESS_STEPS) - 1) * 100


@dataclass
class TrackingView:
    """What the tracking page renders. ``timeline`` is None when not found."""
    order_id: str
    timeline: Optional[OrderTimeline] = None
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.timeline is not None

    @property
    def display(self) -> StatusDisplay:
        return status_display(self.timeline.status if self.timeline else "")


@dataclass
class ConfirmationView:
    """The order as seen right after the redirect back from payment."""
    order: Optional[Order] = None

    @property
    def awaiting_payment(self) -> bool:
        """True until the payment webhook has marked the order paid."""
        return self.order is not None and self.order.payment_status != "paid"


class OrderTracker:
    """Loads orders and their tracking timelines."""

    def __init__(self, client: StorefrontClient, notices: Optional[NoticeBoard] = None) -> None:
        self._client = client
        self._notices = notices or NoticeBoard()

    async def load(self, order_id: str) -> TrackingView:
        """Load an order's timeline, newest event first.

        A missing order gives a not-found view rather than an error.
        """
        try:
            data = await self._client.get_order_tracking(order_id)
        except NotFoundError:
            return TrackingView(order_id=order_id)
        except StorefrontError as e:
            logger.error("Failed to load tracking for %s: %s", order_id, e)
            self._notices.error("Could not load order tracking", "Please try again.")
            return TrackingView(order_id=order_id, error=e.message)
        return TrackingView(order_id=order_id, timeline=OrderTimeline.model_validate(data))

    async def confirmation(self, order_id: str) -> ConfirmationView:
        try:
            data = await self._client.get_order(order_id)
        except StorefrontError as e:
            logger.warning("Order %s not available yet: %s", order_id, e)
            return ConfirmationView()
        return ConfirmationView(order=Order.model_validate(data))
