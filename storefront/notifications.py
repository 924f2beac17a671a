"""
Transactional email through the Resend HTTP API.

Email is best-effort: a missing API key or a failed delivery is logged and
reported through the return value, never raised into the payment flow.
"""

import html
import logging
from typing import Optional

import httpx

from . import settings
from .orders import OrderResponse

logger = logging.getLogger("storefront-email")


def _money(amount) -> str:
    return f"${float(amount):.2f}"


def render_order_confirmation(order: OrderResponse) -> str:
    """Render the order confirmation email body."""
    address = order.shipping_address or {}
    name = f"{address.get('first_name', '')} {address.get('last_name', '')}".strip()
    display_name = html.escape(name or "Valued Customer")

    rows = "".join(
        "<tr>"
        f"<td style=\"padding:12px 0;border-bottom:1px solid #eee;\">{html.escape(item.product_name)}"
        f"<br><span style=\"font-size:12px;color:#888;\">Qty: {item.quantity}</span></td>"
        f"<td style=\"padding:12px 0;border-bottom:1px solid #eee;text-align:right;\">"
        f"{_money(item.total_price)}</td>"
        "</tr>"
        for item in order.items
    )

    discount_row = ""
    if order.discount_amount and float(order.discount_amount) > 0:
        discount_row = (
            f"<tr><td>Discount</td><td style=\"text-align:right;\">"
            f"-{_money(order.discount_amount)}</td></tr>"
        )

    address_block = ""
    if address:
        address_block = (
            "<p style=\"color:#555;\">Shipping to:<br>"
            f"{html.escape(name)}<br>"
            f"{html.escape(address.get('address', ''))}<br>"
            f"{html.escape(address.get('city', ''))}, {html.escape(address.get('state', ''))} "
            f"{html.escape(address.get('zip_code', ''))}</p>"
        )

    tracking_url = f"{settings.SITE_URL}/orders/{order.id}/tracking"
    return (
        "<html><body style=\"font-family:Georgia,serif;color:#1a1a1a;\">"
        f"<h1>Thank you, {display_name}!</h1>"
        f"<p>Your order <strong>{html.escape(order.order_number)}</strong> has been confirmed.</p>"
        f"<table style=\"width:100%;border-collapse:collapse;\">{rows}</table>"
        "<table style=\"width:100%;margin-top:16px;\">"
        f"<tr><td>Subtotal</td><td style=\"text-align:right;\">{_money(order.subtotal)}</td></tr>"
        f"{discount_row}"
        f"<tr><td>Shipping</td><td style=\"text-align:right;\">"
        f"{'Free' if not float(order.shipping_cost) else _money(order.shipping_cost)}</td></tr>"
        f"<tr><td>Tax</td><td style=\"text-align:right;\">{_money(order.tax)}</td></tr>"
        f"<tr><td><strong>Total</strong></td><td style=\"text-align:right;\">"
        f"<strong>{_money(order.total)}</strong></td></tr>"
        "</table>"
        f"{address_block}"
        f"<p><a href=\"{tracking_url}\">Track your order</a></p>"
        "</body></html>"
    )


STATUS_MESSAGES = {
    "processing": (
        "Your order is being processed!",
        "Great news!",
        "We've received your order and our team is now preparing it with care.",
    ),
    "shipped": (
        "Your order is on its way!",
        "Your order has shipped!",
        "Your package is now on its way to you. You can expect delivery within 3-5 business days.",
    ),
    "delivered": (
        "Your order has been delivered!",
        "Enjoy your products!",
        "Your order has been successfully delivered. We hope you love your new skincare products!",
    ),
}


def status_message(status: str) -> tuple[str, str, str]:
    """Subject, headline and message for a status change email."""
    if status in STATUS_MESSAGES:
        return STATUS_MESSAGES[status]
    return (
        f"Order status update: {status}",
        "Order Update",
        f"Your order status has been updated to: {status}",
    )


def render_order_status_update(order: OrderResponse) -> str:
    _, headline, message = status_message(order.status)
    address = order.shipping_address or {}
    name = f"{address.get('first_name', '')} {address.get('last_name', '')}".strip()
    return (
        "<html><body style=\"font-family:Georgia,serif;color:#1a1a1a;text-align:center;\">"
        f"<h2>{html.escape(headline)}</h2>"
        f"<p>Hi {html.escape(name or 'Valued Customer')},</p>"
        f"<p>{html.escape(message)}</p>"
        "<p style=\"font-size:12px;color:#888;text-transform:uppercase;\">Order Number</p>"
        f"<p style=\"font-family:monospace;font-size:18px;\">{html.escape(order.order_number)}</p>"
        f"<p><a href=\"{settings.SITE_URL}/orders\">View Order Details</a></p>"
        "</body></html>"
    )


class Mailer:
    """Sends email through Resend."""

    def __init__(
        self,
        api_key: Optional[str],
        from_address: Optional[str] = None,
        api_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.from_address = from_address or settings.EMAIL_FROM
        self.api_url = api_url or settings.RESEND_API_URL
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def send(self, to: str, subject: str, html_body: str) -> bool:
        """Send one email. Returns True if the provider accepted it."""
        if not self.enabled:
            logger.warning("RESEND_API_KEY is not set; skipping email to %s", to)
            return False
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                resp = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "from": self.from_address,
                        "to": [to],
                        "subject": subject,
                        "html": html_body,
                    },
                )
        except httpx.HTTPError as e:
            logger.error("Email delivery to %s failed: %s", to, e)
            return False
        if not resp.is_success:
            logger.error("Email provider rejected message to %s: %s %s", to, resp.status_code, resp.text)
            return False
        logger.info("Sent '%s' to %s", subject, to)
        return True

    async def send_order_confirmation(self, order: OrderResponse) -> bool:
        if not order.customer_email:
            logger.error("Order %s has no customer email", order.order_number)
            return False
        return await self.send(
            order.customer_email,
            f"Order Confirmed - {order.order_number}",
            render_order_confirmation(order),
        )

    async def send_order_status_update(self, order: OrderResponse) -> bool:
        if not order.customer_email:
            logger.error("Order %s has no customer email", order.order_number)
            return False
        subject, _, _ = status_message(order.status)
        return await self.send(order.customer_email, subject, render_order_status_update(order))


def get_mailer() -> Mailer:
    """FastAPI dependency."""
    return Mailer(settings.RESEND_API_KEY)
