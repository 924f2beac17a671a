"""
Checkout orchestrator.

Drives the shopper through SHIPPING -> PAYMENT -> REDIRECTED -> CONFIRMED.
Totals shown here are advisory: the checkout-session endpoint reprices
the order before charging.
"""

import logging
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from .cart import CartStore
from .client import StorefrontClient
from .discounts import DiscountValidator
from .errors import AuthenticationError, StorefrontError, ValidationFailed
from .notices import SIGN_IN_ACTION, NoticeBoard
from .session import IdentityProvider
from .totals import OrderTotals, compute_order_totals

logger = logging.getLogger("storefront-client-checkout")


class CheckoutStep(str, Enum):
    SHIPPING = "shipping"
    PAYMENT = "payment"
    REDIRECTED = "redirected"
    CONFIRMED = "confirmed"


class ShippingForm(BaseModel):
    """Shipping details collected on the first checkout step."""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: str = Field(..., min_length=7, max_length=30)
    address: str = Field(..., min_length=5, max_length=255)
    city: str = Field(..., min_length=2, max_length=100)
    state: str = Field(..., min_length=2, max_length=100)
    zip_code: str = Field(..., min_length=3, max_length=20)
    country: str = Field("US", min_length=2, max_length=100)

    model_config = {"str_strip_whitespace": True}


FIELD_MESSAGES = {
    "first_name": "First name is required",
    "last_name": "Last name is required",
    "email": "Please enter a valid email address",
    "phone": "Please enter a valid phone number",
    "address": "Address is required",
    "city": "City is required",
    "state": "State is required",
    "zip_code": "ZIP code is required",
    "country": "Country is required",
}


def validate_shipping(form: Mapping[str, Any]) -> tuple[Optional[ShippingForm], dict[str, str]]:
    """Validate a shipping form. Returns the parsed form or per-field errors."""
    try:
        return ShippingForm.model_validate(dict(form)), {}
    except ValidationError as e:
        errors: dict[str, str] = {}
        for err in e.errors():
            field = str(err["loc"][0]) if err["loc"] else "form"
            errors.setdefault(field, FIELD_MESSAGES.get(field, err["msg"]))
        return None, errors


class CheckoutOrchestrator:
    """One checkout attempt over a cart and its applied discount."""

    def __init__(
        self,
        cart: CartStore,
        discounts: DiscountValidator,
        client: StorefrontClient,
        identity: IdentityProvider,
        notices: Optional[NoticeBoard] = None,
    ) -> None:
        self.cart = cart
        self.discounts = discounts
        self._client = client
        self._identity = identity
        self._notices = notices or NoticeBoard()

        self.step = CheckoutStep.SHIPPING
        self.form: dict[str, str] = {}
        self.errors: dict[str, str] = {}
        self.shipping: Optional[ShippingForm] = None
        self.session_id: Optional[str] = None
        self.order_id: Optional[str] = None
        self.order_number: Optional[str] = None
        self._submitting = False
        self._active = True
        self._confirmed = False

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    async def prefill(self) -> dict[str, str]:
        """Fill empty name and email fields from the signed-in user."""
        user = await self._identity.get_current_user()
        if user is None:
            return self.form
        defaults = {
            "email": user.email or "",
            "first_name": user.first_name,
            "last_name": user.last_name,
        }
        for field, value in defaults.items():
            if value and not self.form.get(field):
                self.form[field] = value
        return self.form

    def submit_shipping(self, form: Mapping[str, Any]) -> dict[str, str]:
        """Validate shipping details and advance to PAYMENT if they pass."""
        self.form.update({k: str(v) for k, v in form.items() if v is not None})
        shipping, errors = validate_shipping(self.form)
        self.errors = errors
        if shipping is not None:
            self.shipping = shipping
            self.step = CheckoutStep.PAYMENT
        return errors

    def back(self) -> None:
        if self.step == CheckoutStep.PAYMENT:
            self.step = CheckoutStep.SHIPPING

    def totals(self) -> OrderTotals:
        return compute_order_totals(self.cart.items, self.discounts.applied)

    def _payload(self, totals: OrderTotals) -> dict[str, Any]:
        shipping = self.shipping
        applied = self.discounts.applied
        return {
            "items": [
                {
                    "id": item.id,
                    "name": item.name,
                    "price": str(item.price),
                    "image": item.image,
                    "quantity": item.quantity,
                }
                for item in self.cart.items
            ],
            "shipping_address": {
                "first_name": shipping.first_name,
                "last_name": shipping.last_name,
                "address": shipping.address,
                "city": shipping.city,
                "state": shipping.state,
                "zip_code": shipping.zip_code,
                "country": shipping.country,
                "phone": shipping.phone,
            },
            "customer_email": shipping.email,
            "discount_code_id": applied.discount_code_id if applied else None,
            "discount_amount": str(totals.discount_amount) if applied else None,
        }

    async def submit_payment(self) -> Optional[str]:
        """Open a payment session and return its URL, or None on failure.

        Nothing is mutated on failure; the shopper can retry.
        """
        if self.step != CheckoutStep.PAYMENT or self.shipping is None:
            return None
        if self._submitting:
            return None
        if not self.cart.items:
            self._notices.error("Your cart is empty")
            return None

        self._submitting = True
        try:
            await self.discounts.settled()
            payload = self._payload(self.totals())
            try:
                data = await self._client.create_checkout_session(payload)
            except AuthenticationError:
                self._notices.error("Please sign in to checkout", action=SIGN_IN_ACTION)
                return None
            except ValidationFailed as e:
                self.errors = e.errors
                self._notices.error("Checkout failed", e.message)
                return None
            except StorefrontError as e:
                logger.error("Checkout session failed: %s", e)
                self._notices.error("Checkout failed", e.message or "Please try again.")
                return None

            if not self._active:
                logger.info("Ignoring checkout response after the checkout was left")
                return None
            url = (data or {}).get("url")
            if not url:
                self._notices.error("Checkout failed", "No payment page was returned.")
                return None

            self.session_id = data.get("session_id")
            self.order_id = data.get("order_id")
            self.order_number = data.get("order_number")
            self.step = CheckoutStep.REDIRECTED
            return url
        finally:
            self._submitting = False

    def handle_return(self, params: Mapping[str, str]) -> CheckoutStep:
        """Apply the query parameters of the redirect back from payment."""
        if params.get("session_id"):
            self.session_id = params["session_id"]
            self.order_id = params.get("order_id") or self.order_id
            if not self._confirmed:
                self._confirmed = True
                self.cart.clear_cart()
                self.discounts.remove_discount(notify=False)
                self._notices.success("Order placed!", "Thank you for your purchase.")
            self.step = CheckoutStep.CONFIRMED
        elif params.get("canceled"):
            self.step = CheckoutStep.PAYMENT if self.shipping else CheckoutStep.SHIPPING
            self._notices.info("Payment cancelled", "Your cart has been saved.")
        return self.step

    def abandon(self) -> None:
        self._active = False
