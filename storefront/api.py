"""
REST API Router for the Lunia storefront.

Provides /api/v1/ endpoints for the catalogue, discount validation,
checkout sessions, the Stripe webhook, orders and tracking, addresses,
wishlist, reviews and the admin dashboard. Mount this router in server.py
with:
    from .api import router as api_router
    app.include_router(api_router)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from . import abandoned_carts as carts_mod
from . import addresses as addresses_mod
from . import admin as admin_mod
from . import catalog
from . import checkout as checkout_mod
from . import discounts as discounts_mod
from . import orders as orders_mod
from . import reviews as reviews_mod
from . import webhooks
from . import wishlist as wishlist_mod
from .activity_logger import ActivityLogger, get_activity_logger
from .auth import CurrentUser, get_current_user, get_optional_user, require_admin
from .database import get_db
from .notifications import Mailer, get_mailer
from .payments import (
    InvalidSignatureError,
    PaymentGatewayError,
    StripeGateway,
    get_payment_gateway,
)

logger = logging.getLogger("storefront-api")


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

router = APIRouter(prefix="/api/v1", tags=["v1"])


class WishlistAdd(BaseModel):
    product_id: str


def _activity() -> ActivityLogger:
    return get_activity_logger()


def _require_gateway(
    gateway: Optional[StripeGateway] = Depends(get_payment_gateway),
) -> StripeGateway:
    if gateway is None:
        raise HTTPException(status_code=503, detail="Payment processing is not configured")
    return gateway


# ===========================================================================
# CATALOGUE ENDPOINTS
# ===========================================================================


@router.get("/categories")
async def list_categories(db: AsyncSession = Depends(get_db)):
    return await catalog.list_categories(db)


@router.get("/products")
async def list_products(
    category: Optional[str] = Query(None, description="Category slug"),
    featured: Optional[bool] = Query(None),
    q: Optional[str] = Query(None, description="Search name, tagline and description"),
    db: AsyncSession = Depends(get_db),
):
    """List active products."""
    return await catalog.list_products(db, category_slug=category, featured=featured, search=q)


@router.get("/products/{product_id}")
async def get_product(product_id: str, db: AsyncSession = Depends(get_db)):
    product = await catalog.get_product(db, product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.get("/bundles")
async def list_bundles(db: AsyncSession = Depends(get_db)):
    return await catalog.list_bundles(db)


# ===========================================================================
# DISCOUNT AND CHECKOUT ENDPOINTS
# ===========================================================================


@router.post("/rpc/validate-discount-code", response_model=discounts_mod.DiscountDecision)
async def validate_discount_code(
    body: discounts_mod.DiscountValidationRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Decide whether a discount code applies to the caller's order total."""
    if body.user_id and body.user_id != user.id:
        raise HTTPException(status_code=403, detail="Cannot validate codes for another user")
    return await discounts_mod.validate_discount_code(
        db, body.code, body.order_total, user.id,
    )


@router.post("/checkout/sessions", response_model=checkout_mod.CheckoutResponse)
async def create_checkout_session(
    body: checkout_mod.CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    gateway: StripeGateway = Depends(_require_gateway),
    activity: ActivityLogger = Depends(_activity),
):
    """Create a pending order and a hosted payment session."""
    try:
        return await checkout_mod.create_checkout_session(db, user, body, gateway, activity)
    except checkout_mod.CheckoutError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentGatewayError as e:
        raise HTTPException(status_code=502, detail=f"Payment provider error: {e}")


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(_require_gateway),
    mailer: Mailer = Depends(get_mailer),
    activity: ActivityLogger = Depends(_activity),
):
    """Receive Stripe events."""
    payload = await request.body()
    try:
        event = gateway.construct_event(payload, request.headers.get("stripe-signature"))
    except InvalidSignatureError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("Received webhook event %s", event.get("type"))
    return await webhooks.handle_event(db, event, mailer, activity)


# ===========================================================================
# ORDER ENDPOINTS
# ===========================================================================


@router.get("/orders")
async def list_orders(
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """List the caller's orders, newest first."""
    return await orders_mod.list_orders(db, user_id=user.id, status=status, limit=limit, offset=offset)


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    order = await orders_mod.get_order(db, order_id, user_id=None if user.is_admin else user.id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/orders/{order_id}/tracking")
async def get_order_tracking(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Get an order's tracking timeline, newest event first."""
    timeline = await orders_mod.get_order_timeline(
        db, order_id, user_id=None if user.is_admin else user.id,
    )
    if timeline is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return timeline


# ===========================================================================
# ADDRESS ENDPOINTS
# ===========================================================================


@router.get("/addresses")
async def list_addresses(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await addresses_mod.list_addresses(db, user.id)


@router.post("/addresses", status_code=201)
async def create_address(
    body: addresses_mod.AddressCreate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await addresses_mod.create_address(db, user.id, body)


@router.put("/addresses/{address_id}")
async def update_address(
    address_id: str,
    body: addresses_mod.AddressUpdate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    address = await addresses_mod.update_address(db, user.id, address_id, body)
    if address is None:
        raise HTTPException(status_code=404, detail="Address not found")
    return address


@router.delete("/addresses/{address_id}", status_code=204)
async def delete_address(
    address_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    if not await addresses_mod.delete_address(db, user.id, address_id):
        raise HTTPException(status_code=404, detail="Address not found")


# ===========================================================================
# WISHLIST ENDPOINTS
# ===========================================================================


@router.get("/wishlist")
async def list_wishlist(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await wishlist_mod.list_wishlist(db, user.id)


@router.post("/wishlist", status_code=201)
async def add_to_wishlist(
    body: WishlistAdd,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    if not await wishlist_mod.add_to_wishlist(db, user.id, body.product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return {"product_id": body.product_id, "in_wishlist": True}


@router.delete("/wishlist/{product_id}", status_code=204)
async def remove_from_wishlist(
    product_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    if not await wishlist_mod.remove_from_wishlist(db, user.id, product_id):
        raise HTTPException(status_code=404, detail="Product not in wishlist")


# ===========================================================================
# REVIEW ENDPOINTS
# ===========================================================================


@router.get("/products/{product_id}/reviews")
async def list_product_reviews(
    product_id: str,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[CurrentUser] = Depends(get_optional_user),
):
    return await reviews_mod.list_product_reviews(db, product_id, viewer.id if viewer else None)


@router.post("/products/{product_id}/reviews", status_code=201)
async def create_review(
    product_id: str,
    body: reviews_mod.ReviewCreate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Submit a review; it is published once approved."""
    try:
        review = await reviews_mod.create_review(db, user.id, product_id, body)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if review is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return review


@router.post("/reviews/{review_id}/like")
async def like_review(
    review_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Toggle the caller's like on a review."""
    reaction = await reviews_mod.toggle_like(db, review_id, user.id)
    if reaction is None:
        raise HTTPException(status_code=404, detail="Review not found")
    return reaction


@router.post("/reviews/{review_id}/helpful")
async def mark_review_helpful(
    review_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Toggle the caller's helpful vote on a review."""
    reaction = await reviews_mod.toggle_helpful(db, review_id, user.id)
    if reaction is None:
        raise HTTPException(status_code=404, detail="Review not found")
    return reaction


# ===========================================================================
# ABANDONED CART ENDPOINT
# ===========================================================================


@router.put("/abandoned-cart")
async def save_abandoned_cart(
    body: carts_mod.AbandonedCartSnapshot,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Store the caller's current cart; an empty cart clears the snapshot."""
    snapshot = await carts_mod.save_snapshot(db, user.id, body)
    return {"saved": snapshot is not None, "cart": snapshot}


# ===========================================================================
# ADMIN ENDPOINTS
# ===========================================================================


@router.get("/admin/stats")
async def admin_stats(
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
    activity: ActivityLogger = Depends(_activity),
):
    return await admin_mod.get_stats(db, activity)


@router.get("/admin/reviews")
async def admin_pending_reviews(
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
):
    """Reviews awaiting moderation, oldest first."""
    return await reviews_mod.list_pending_reviews(db)


async def _moderate(db: AsyncSession, review_id: str, approved: bool,
                    admin: CurrentUser, activity: ActivityLogger):
    review = await reviews_mod.moderate_review(db, review_id, approved)
    if review is None:
        raise HTTPException(status_code=404, detail="Review not found")
    activity.log("review", review_id, "approved" if approved else "rejected", user_id=admin.id)
    return review


@router.post("/admin/reviews/{review_id}/approve")
async def approve_review(
    review_id: str,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    activity: ActivityLogger = Depends(_activity),
):
    return await _moderate(db, review_id, True, admin, activity)


@router.post("/admin/reviews/{review_id}/reject")
async def reject_review(
    review_id: str,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    activity: ActivityLogger = Depends(_activity),
):
    return await _moderate(db, review_id, False, admin, activity)


@router.post("/admin/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    body: orders_mod.OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    activity: ActivityLogger = Depends(_activity),
    mailer: Mailer = Depends(get_mailer),
):
    """Move an order along its status flow, record a tracking event and email the customer."""
    existing = await orders_mod.get_order(db, order_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Order not found")
    try:
        order = await orders_mod.update_order_status(
            db, order_id, body.status, description=body.description, location=body.location,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    activity.log("order", order.order_number, "status_changed",
                 old_value=existing.status, new_value=order.status, user_id=admin.id)
    await mailer.send_order_status_update(order)
    return order


@router.post("/admin/discount-codes", status_code=201)
async def create_discount_code(
    body: discounts_mod.DiscountCodeCreate,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
):
    try:
        discount = await discounts_mod.create_discount_code(db, body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "id": discount.id,
        "code": discount.code,
        "discount_type": discount.discount_type,
        "discount_value": float(discount.discount_value),
        "label": discounts_mod.describe_discount(
            discount.discount_type, float(discount.discount_value),
        ),
    }
