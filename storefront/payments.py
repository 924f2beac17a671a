"""
Stripe Checkout gateway.

Wraps the blocking ``stripe`` SDK calls in worker threads so they can be
awaited from request handlers. The gateway is injected as a FastAPI
dependency; tests replace it with an in-memory fake.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import stripe

from . import settings

logger = logging.getLogger("storefront-payments")


class PaymentGatewayError(Exception):
    """The payment processor refused or failed a request."""


class InvalidSignatureError(PaymentGatewayError):
    """A webhook payload failed signature verification."""


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


class StripeGateway:
    """Creates hosted checkout sessions and verifies webhook payloads."""

    def __init__(self, api_key: str, webhook_secret: Optional[str] = None) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    async def create_checkout_session(
        self,
        line_items: list[dict[str, Any]],
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
        discount_cents: int = 0,
    ) -> CheckoutSession:
        """Create a one-off payment session.

        The discount is attached as a single-use coupon since Stripe does
        not accept negative line items.

        Raises:
            PaymentGatewayError: If Stripe rejects the request.
        """
        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": line_items,
            "customer_email": customer_email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
        }
        try:
            if discount_cents > 0:
                coupon = await asyncio.to_thread(
                    stripe.Coupon.create,
                    api_key=self.api_key,
                    amount_off=discount_cents,
                    currency=settings.CURRENCY,
                    duration="once",
                    name="Discount Applied",
                )
                params["discounts"] = [{"coupon": coupon.id}]
            session = await asyncio.to_thread(
                stripe.checkout.Session.create, api_key=self.api_key, **params,
            )
        except stripe.StripeError as e:
            logger.error("Stripe checkout session failed: %s", e)
            raise PaymentGatewayError(str(e)) from e
        return CheckoutSession(id=session.id, url=session.url)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict[str, Any]:
        """Verify and decode a webhook payload.

        Without a configured webhook secret the payload is accepted
        unsigned (local development only).

        Raises:
            InvalidSignatureError: On a bad or missing signature, or an
                undecodable payload.
        """
        if self.webhook_secret:
            if not signature:
                raise InvalidSignatureError("Missing Stripe-Signature header")
            try:
                stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
            except (stripe.SignatureVerificationError, ValueError) as e:
                logger.error("Webhook signature verification failed: %s", e)
                raise InvalidSignatureError("Invalid signature") from e
        else:
            logger.warning("STRIPE_WEBHOOK_SECRET is not set; accepting unsigned webhook")
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise InvalidSignatureError("Malformed payload") from e


def get_payment_gateway() -> Optional[StripeGateway]:
    """FastAPI dependency: the configured gateway, or None if unconfigured."""
    if not settings.STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY is not set; checkout is unavailable")
        return None
    return StripeGateway(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
