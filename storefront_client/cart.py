"""
Cart store.

Holds the shopper's line items, keyed by product id, and persists them
after every change. Adding requires a signed-in user; the open/closed
drawer flag is UI state and is never persisted.

When a client is attached, each change is also sent to the server as the
signed-in user's abandoned-cart snapshot. Uploads are best-effort and
coalesced so only the latest state is sent once a previous upload ends.
"""

import asyncio
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .client import StorefrontClient
from .errors import StorefrontError
from .notices import SIGN_IN_ACTION, NoticeBoard
from .session import IdentityProvider
from .storage import CartStorage, MemoryStorage

logger = logging.getLogger("storefront-client-cart")


class CartItem(BaseModel):
    """One line of the cart."""
    id: str
    name: str
    tagline: str = ""
    price: Decimal = Field(..., gt=0)
    image: str = ""
    badge: Optional[str] = None
    quantity: int = Field(1, ge=1)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return str(v)

    @field_validator("price")
    @classmethod
    def _to_cents(cls, v: Decimal) -> Decimal:
        cents = v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        if cents <= 0:
            raise ValueError("price must be at least one cent")
        return cents

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    @classmethod
    def from_product(cls, product: Union[Mapping[str, Any], BaseModel], quantity: int = 1) -> "CartItem":
        data = product.model_dump() if isinstance(product, BaseModel) else dict(product)
        if "image" not in data and "image_url" in data:
            data["image"] = data["image_url"]
        data["quantity"] = quantity
        return cls.model_validate(data)


class CartStore:
    """Cart for one shopper."""

    def __init__(
        self,
        identity: IdentityProvider,
        storage: Optional[CartStorage] = None,
        notices: Optional[NoticeBoard] = None,
        client: Optional[StorefrontClient] = None,
    ) -> None:
        self._identity = identity
        self._client = client
        self._snapshot_task: Optional[asyncio.Task] = None
        self._snapshot_dirty = False
        self._storage = storage or MemoryStorage()
        self._notices = notices or NoticeBoard()
        self._items: list[CartItem] = []
        self._adding = False
        self.is_open = False
        for raw in self._storage.load():
            try:
                self._items.append(CartItem.model_validate(raw))
            except ValidationError as e:
                logger.warning("Dropping invalid stored cart item %r: %s", raw.get("id"), e)

    @property
    def items(self) -> list[CartItem]:
        return [item.model_copy() for item in self._items]

    def _find(self, item_id: str) -> Optional[CartItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def _persist(self) -> None:
        self._storage.save([item.model_dump(mode="json") for item in self._items])
        if self._client is not None:
            self._schedule_snapshot()

    def _schedule_snapshot(self) -> None:
        self._snapshot_dirty = True
        if self._snapshot_task is not None and not self._snapshot_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Sent with the next change made inside the event loop.
            return
        self._snapshot_task = loop.create_task(self._send_snapshots())

    async def _send_snapshots(self) -> None:
        while self._snapshot_dirty:
            self._snapshot_dirty = False
            await self.save_snapshot()

    async def save_snapshot(self) -> bool:
        """Send the current cart as the abandoned-cart snapshot.

        Returns False when no client is attached, nobody is signed in, or
        the server call fails.
        """
        if self._client is None:
            return False
        if await self._identity.get_current_user() is None:
            return False
        items = [item.model_dump(mode="json") for item in self._items]
        try:
            await self._client.save_abandoned_cart(items, self.total())
        except StorefrontError as e:
            logger.warning("Could not save cart snapshot: %s", e)
            return False
        return True

    async def flush_snapshot(self) -> None:
        """Wait for a pending snapshot upload to finish."""
        if self._snapshot_task is not None:
            await self._snapshot_task

    async def add_item(self, product: Union[Mapping[str, Any], BaseModel]) -> bool:
        """Add one unit of ``product``.

        Returns False, leaving the cart untouched, when nobody is signed in,
        the product is malformed, or another add is still in flight.
        """
        if self._adding:
            return False
        self._adding = True
        try:
            user = await self._identity.get_current_user()
            if user is None:
                self._notices.error(
                    "Please sign in to add items to your cart",
                    action=SIGN_IN_ACTION,
                )
                return False
            try:
                candidate = CartItem.from_product(product)
            except ValidationError as e:
                logger.warning("Rejected malformed product: %s", e)
                self._notices.error("Could not add this item to your cart")
                return False

            existing = self._find(candidate.id)
            if existing is not None:
                existing.quantity += 1
            else:
                self._items.append(candidate)
            self._persist()
            self._notices.success(f"{candidate.name} added to cart")
            return True
        finally:
            self._adding = False

    def remove_item(self, item_id: Union[str, int]) -> None:
        item_id = str(item_id)
        remaining = [item for item in self._items if item.id != item_id]
        if len(remaining) != len(self._items):
            self._items = remaining
            self._persist()

    def update_quantity(self, item_id: Union[str, int], quantity: int) -> None:
        """Set an absolute quantity; zero or less removes the item."""
        if quantity <= 0:
            self.remove_item(item_id)
            return
        item = self._find(str(item_id))
        if item is not None:
            item.quantity = quantity
            self._persist()

    def toggle_cart(self) -> None:
        self.is_open = not self.is_open

    def set_cart_open(self, is_open: bool) -> None:
        self.is_open = is_open

    def total(self) -> Decimal:
        return sum((item.line_total for item in self._items), Decimal("0"))

    def count(self) -> int:
        return sum(item.quantity for item in self._items)

    def clear_cart(self) -> None:
        self._items = []
        self._persist()
