"""Lunia storefront client core: cart, discounts, checkout and order tracking."""

__version__ = "0.1.0"

from .cart import CartItem, CartStore
from .checkout import CheckoutOrchestrator, CheckoutStep
from .client import StorefrontClient
from .discounts import DiscountValidator
from .errors import (
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    RemoteRejection,
    StorefrontError,
    TransportError,
    ValidationFailed,
)
from .notices import Notice, NoticeBoard
from .session import IdentityProvider, LocalIdentity
from .storage import JsonFileStorage, MemoryStorage
from .totals import OrderTotals, calculate_discount, compute_order_totals
from .tracking import OrderTracker, status_display
from .types import DiscountDecision, User

__all__ = [
    "__version__",
    "AuthenticationError",
    "CartItem",
    "CartStore",
    "CheckoutOrchestrator",
    "CheckoutStep",
    "DiscountDecision",
    "DiscountValidator",
    "ForbiddenError",
    "IdentityProvider",
    "JsonFileStorage",
    "LocalIdentity",
    "MemoryStorage",
    "Notice",
    "NoticeBoard",
    "NotFoundError",
    "OrderTotals",
    "OrderTracker",
    "RemoteRejection",
    "StorefrontClient",
    "StorefrontError",
    "TransportError",
    "User",
    "ValidationFailed",
    "calculate_discount",
    "compute_order_totals",
    "status_display",
]
