"""
Checkout-session boundary.

Turns a client cart into a pending Order and a hosted Stripe Checkout
session. Prices come from the catalogue and the discount is re-validated
here; the amounts a client sends are hints used only for logging.
"""

import logging
import secrets
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from . import settings
from .abandoned_carts import mark_recovered
from .activity_logger import ActivityLogger
from .auth import CurrentUser
from .discounts import apply_discount_code, check_eligibility, get_discount_code
from .models import Bundle, Product
from .orders import create_order
from .payments import StripeGateway
from .pricing import PricedTotals, price_order, to_cents

logger = logging.getLogger("storefront-checkout")


class CheckoutError(ValueError):
    """The checkout request cannot be honoured as sent."""


# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------

class CheckoutItem(BaseModel):
    """A cart line as sent by the client."""
    id: str
    name: Optional[str] = None
    price: Optional[Decimal] = None
    image: Optional[str] = None
    quantity: int = Field(..., ge=1)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return str(v)


class ShippingAddress(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=5)
    city: str = Field(..., min_length=2)
    state: str = Field(..., min_length=2)
    zip_code: str = Field(..., min_length=3)
    country: str = Field("US", min_length=2)
    phone: Optional[str] = None


class CheckoutRequest(BaseModel):
    """Body of POST /checkout/sessions."""
    items: list[CheckoutItem] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    customer_email: str = Field(..., min_length=3)
    discount_code_id: Optional[str] = None
    discount_amount: Optional[Decimal] = None


class CheckoutResponse(BaseModel):
    url: str
    session_id: str
    order_id: str
    order_number: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def generate_order_number() -> str:
    """``LUN-`` followed by 12 upper-case hex digits."""
    return f"{settings.ORDER_NUMBER_PREFIX}-{secrets.token_hex(6).upper()}"


def build_line_items(lines: list[dict[str, Any]], tax_cents: int) -> list[dict[str, Any]]:
    """Stripe line items for priced lines, plus tax as its own line."""
    line_items = []
    for line in lines:
        product_data: dict[str, Any] = {"name": line["product_name"]}
        if line.get("product_image"):
            product_data["images"] = [line["product_image"]]
        line_items.append({
            "price_data": {
                "currency": settings.CURRENCY,
                "product_data": product_data,
                "unit_amount": to_cents(line["unit_price"]),
            },
            "quantity": line["quantity"],
        })
    if tax_cents > 0:
        line_items.append({
            "price_data": {
                "currency": settings.CURRENCY,
                "product_data": {"name": f"Tax ({int(settings.TAX_RATE * 100)}%)"},
                "unit_amount": tax_cents,
            },
            "quantity": 1,
        })
    return line_items


async def _catalogue_line(db: AsyncSession, item: CheckoutItem) -> dict[str, Any]:
    entry = await db.get(Product, item.id)
    if entry is None:
        entry = await db.get(Bundle, item.id)
    if entry is None or not entry.is_active:
        raise CheckoutError("Invalid product")
    if item.price is not None and to_cents(item.price) != to_cents(entry.price):
        logger.info(
            "Client price %s for %s differs from catalogue price %s",
            item.price, item.id, entry.price,
        )
    return {
        "product_id": entry.id,
        "product_name": entry.name,
        "product_image": entry.image_url or None,
        "quantity": item.quantity,
        "unit_price": entry.price,
    }


async def price_checkout(
    db: AsyncSession,
    user_id: str,
    body: CheckoutRequest,
) -> tuple[list[dict[str, Any]], PricedTotals]:
    """Price a checkout request from the catalogue.

    Raises:
        CheckoutError: On an unknown product or an unusable discount code.
    """
    lines = [await _catalogue_line(db, item) for item in body.items]
    plain = price_order((line["unit_price"], line["quantity"]) for line in lines)

    if not body.discount_code_id:
        return lines, plain

    discount = await get_discount_code(db, body.discount_code_id)
    if discount is None:
        raise CheckoutError("Discount code is no longer valid")
    reason = await check_eligibility(
        db, discount, Decimal(plain.subtotal) / 100, user_id,
    )
    if reason is not None:
        logger.info("Discount %s refused at checkout: %s", discount.code, reason)
        raise CheckoutError("Discount code is no longer valid")

    totals = price_order(
        ((line["unit_price"], line["quantity"]) for line in lines),
        discount.discount_type,
        discount.discount_value,
    )
    if body.discount_amount is not None and to_cents(body.discount_amount) != totals.discount:
        logger.warning(
            "Client discount %s differs from server discount %s cents for code %s",
            body.discount_amount, totals.discount, discount.code,
        )
    return lines, totals


# ---------------------------------------------------------------------------
# Remote procedure
# ---------------------------------------------------------------------------

async def create_checkout_session(
    db: AsyncSession,
    user: CurrentUser,
    body: CheckoutRequest,
    gateway: StripeGateway,
    activity: Optional[ActivityLogger] = None,
) -> CheckoutResponse:
    """Create the pending order and its payment session.

    Raises:
        CheckoutError: If the request cannot be priced.
        PaymentGatewayError: If the payment processor fails.
    """
    lines, totals = await price_checkout(db, user.id, body)

    order = await create_order(
        db,
        user_id=user.id,
        order_number=generate_order_number(),
        amounts=totals.as_amounts(),
        items=lines,
        customer_email=body.customer_email,
        shipping_address=body.shipping_address.model_dump(),
        discount_code_id=body.discount_code_id if totals.discount else None,
    )

    session = await gateway.create_checkout_session(
        line_items=build_line_items(lines, totals.tax),
        customer_email=body.customer_email,
        success_url=(
            f"{settings.SITE_URL}/checkout/success"
            f"?session_id={{CHECKOUT_SESSION_ID}}&order_id={order.id}"
        ),
        cancel_url=f"{settings.SITE_URL}/checkout?canceled=true",
        metadata={
            "order_id": order.id,
            "order_number": order.order_number,
            "user_id": user.id,
        },
        discount_cents=totals.discount,
    )
    order.stripe_checkout_session_id = session.id

    if body.discount_code_id and totals.discount:
        redeemed = await apply_discount_code(db, body.discount_code_id, user.id, order.id)
        if redeemed and activity is not None:
            activity.log("discount", body.discount_code_id, "redeemed",
                         new_value=order.order_number, user_id=user.id)

    recovered = await mark_recovered(db, user.id)
    if recovered:
        logger.info("Marked %d abandoned cart(s) recovered for %s", recovered, user.id)

    await db.flush()
    logger.info(
        "Created order %s (%d cents) with session %s",
        order.order_number, totals.total, session.id,
    )
    if activity is not None:
        activity.log("order", order.order_number, "created",
                     new_value=order.status, user_id=user.id)

    return CheckoutResponse(
        url=session.url,
        session_id=session.id,
        order_id=order.id,
        order_number=order.order_number,
    )
