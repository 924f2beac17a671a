"""
Tests for storefront_client/cart.py, storage.py and notices.py.

Covers:
- count() and total() track the stored items over arbitrary operation sequences
- update_quantity <= 0 removes; repeated adds increment; numeric ids coerce
- Adding without a session leaves the cart untouched and raises a sign-in notice
- clear_cart, drawer state, single-flight add
- Persistence through JsonFileStorage
- Abandoned-cart snapshots sent to the server
- Notice board and local identity listeners
"""

import asyncio
import json
import os
import random
import sys
from decimal import Decimal

import httpx
import pytest

# Ensure project root is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from storefront_client.cart import CartItem, CartStore
from storefront_client.client import StorefrontClient
from storefront_client.notices import NoticeBoard, NoticeLevel
from storefront_client.session import LocalIdentity
from storefront_client.storage import JsonFileStorage, MemoryStorage
from storefront_client.totals import subtotal
from storefront_client.types import User

SERUM = {"id": "p-serum", "name": "Radiance Serum", "tagline": "Glow", "price": "29.99", "image": "/serum.jpg"}
CREAM = {"id": 42, "name": "Night Cream", "price": 18.5, "image_url": "/cream.jpg"}
MIST = {"id": "p-mist", "name": "Rose Mist", "price": "12.00"}


class SlowIdentity(LocalIdentity):
    """Identity whose user lookup yields to the event loop first."""

    async def get_current_user(self):
        await asyncio.sleep(0)
        return await super().get_current_user()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def identity():
    return LocalIdentity(User(id="user-1", email="ada@example.com", full_name="Ada Lovelace"), "token")


@pytest.fixture
def notices():
    return NoticeBoard()


@pytest.fixture
def cart(identity, notices):
    return CartStore(identity, MemoryStorage(), notices)


def _expected(store):
    items = store.items
    return (
        sum(i.quantity for i in items),
        sum((i.price * i.quantity for i in items), Decimal("0")),
    )


# ---------------------------------------------------------------------------
# Test: derived totals
# ---------------------------------------------------------------------------

class TestTotals:
    def test_empty_cart(self, cart):
        assert cart.count() == 0
        assert cart.total() == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(10))
    async def test_count_and_total_follow_any_sequence(self, cart, seed):
        rng = random.Random(seed)
        products = [SERUM, CREAM, MIST]
        for _ in range(40):
            op = rng.choice(["add", "remove", "update"])
            product = rng.choice(products)
            if op == "add":
                await cart.add_item(product)
            elif op == "remove":
                cart.remove_item(product["id"])
            else:
                cart.update_quantity(product["id"], rng.randint(-2, 5))

            count, total = _expected(cart)
            assert cart.count() == count
            assert cart.total() == total
            ids = [i.id for i in cart.items]
            assert len(ids) == len(set(ids))
            assert all(i.quantity >= 1 for i in cart.items)

    @pytest.mark.asyncio
    async def test_total_is_exact(self, cart):
        await cart.add_item(SERUM)
        await cart.add_item(SERUM)
        await cart.add_item(CREAM)
        assert cart.total() == Decimal("78.48")
        assert cart.count() == 3


# ---------------------------------------------------------------------------
# Test: mutations
# ---------------------------------------------------------------------------

class TestMutations:
    @pytest.mark.asyncio
    async def test_add_twice_increments(self, cart):
        assert await cart.add_item(SERUM) is True
        assert await cart.add_item(SERUM) is True
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 2

    @pytest.mark.asyncio
    async def test_numeric_and_string_ids_are_the_same_item(self, cart):
        await cart.add_item(CREAM)
        await cart.add_item({**CREAM, "id": "42"})
        assert [(i.id, i.quantity) for i in cart.items] == [("42", 2)]
        cart.remove_item(42)
        assert cart.items == []

    @pytest.mark.asyncio
    async def test_image_url_mapped_to_image(self, cart):
        await cart.add_item(CREAM)
        assert cart.items[0].image == "/cream.jpg"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -1, -10])
    async def test_update_to_non_positive_removes(self, cart, quantity):
        await cart.add_item(SERUM)
        await cart.add_item(MIST)
        cart.update_quantity("p-serum", quantity)
        assert [i.id for i in cart.items] == ["p-mist"]

    @pytest.mark.asyncio
    async def test_update_sets_absolute_quantity(self, cart):
        await cart.add_item(SERUM)
        cart.update_quantity("p-serum", 5)
        cart.update_quantity("p-serum", 3)
        assert cart.items[0].quantity == 3

    def test_remove_missing_is_noop(self, cart):
        cart.remove_item("nope")
        cart.update_quantity("nope", 4)
        assert cart.items == []

    @pytest.mark.asyncio
    async def test_clear_cart(self, cart):
        await cart.add_item(SERUM)
        await cart.add_item(CREAM)
        cart.clear_cart()
        assert cart.total() == 0
        assert cart.count() == 0

    @pytest.mark.asyncio
    async def test_items_are_copies(self, cart):
        await cart.add_item(SERUM)
        cart.items[0].quantity = 99
        assert cart.count() == 1

    def test_drawer_state(self, cart):
        assert cart.is_open is False
        cart.toggle_cart()
        assert cart.is_open is True
        cart.set_cart_open(False)
        assert cart.is_open is False


# ---------------------------------------------------------------------------
# Test: session gating and notices
# ---------------------------------------------------------------------------

class TestSessionGate:
    @pytest.mark.asyncio
    async def test_add_without_session_fails(self, notices):
        cart = CartStore(LocalIdentity(), MemoryStorage([SERUM | {"quantity": 1}]), notices)
        assert await cart.add_item(MIST) is False
        assert [i.id for i in cart.items] == ["p-serum"]
        notice = notices.latest
        assert notice.level == NoticeLevel.ERROR
        assert notice.title == "Please sign in to add items to your cart"
        assert notice.action.label == "Sign In"

    @pytest.mark.asyncio
    async def test_session_checked_at_call_time(self, identity, notices):
        cart = CartStore(identity, MemoryStorage(), notices)
        await identity.sign_out()
        assert await cart.add_item(SERUM) is False
        identity.sign_in(User(id="user-2"), "token-2")
        assert await cart.add_item(SERUM) is True

    @pytest.mark.asyncio
    async def test_success_notice(self, cart, notices):
        await cart.add_item(SERUM)
        assert notices.latest.level == NoticeLevel.SUCCESS
        assert notices.latest.title == "Radiance Serum added to cart"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("product", [
        {"id": "x", "name": "Free", "price": "0"},
        {"id": "x", "price": "5.00"},
        {"name": "No id", "price": "5.00"},
    ])
    async def test_malformed_product_rejected(self, cart, notices, product):
        assert await cart.add_item(product) is False
        assert cart.items == []
        assert notices.latest.level == NoticeLevel.ERROR

    @pytest.mark.asyncio
    async def test_concurrent_add_is_single_flight(self, notices):
        identity = SlowIdentity(User(id="user-1"), "token")
        cart = CartStore(identity, MemoryStorage(), notices)
        results = await asyncio.gather(cart.add_item(SERUM), cart.add_item(SERUM))
        assert sorted(results) == [False, True]
        assert cart.count() == 1
        assert await cart.add_item(SERUM) is True
        assert cart.count() == 2


# ---------------------------------------------------------------------------
# Test: persistence
# ---------------------------------------------------------------------------

class TestPersistence:
    @pytest.mark.asyncio
    async def test_items_survive_restart(self, identity, tmp_path):
        path = str(tmp_path / "client.json")
        cart = CartStore(identity, JsonFileStorage(path))
        await cart.add_item(SERUM)
        await cart.add_item(CREAM)
        cart.update_quantity("p-serum", 3)
        cart.set_cart_open(True)

        restored = CartStore(identity, JsonFileStorage(path))
        assert [(i.id, i.quantity) for i in restored.items] == [("p-serum", 3), ("42", 1)]
        assert restored.total() == Decimal("108.47")
        assert restored.is_open is False

    def test_storage_layout(self, tmp_path):
        path = tmp_path / "client.json"
        JsonFileStorage(str(path)).save([{"id": "p-serum", "quantity": 1}])
        data = json.loads(path.read_text())
        assert data == {"lunia-cart": {"items": [{"id": "p-serum", "quantity": 1}]}}

    def test_other_keys_preserved(self, tmp_path):
        path = str(tmp_path / "client.json")
        JsonFileStorage(path, key="other").save([{"id": "a"}])
        JsonFileStorage(path).save([{"id": "b"}])
        assert JsonFileStorage(path, key="other").load() == [{"id": "a"}]

    def test_corrupt_file_reads_empty(self, tmp_path):
        path = tmp_path / "client.json"
        path.write_text("{not json")
        assert JsonFileStorage(str(path)).load() == []

    def test_invalid_stored_items_dropped(self, identity):
        storage = MemoryStorage([
            {**SERUM, "quantity": 2},
            {"id": "bad", "name": "Bad", "price": "-1", "quantity": 1},
            {"id": "p-mist", "name": "Rose Mist", "price": "12.00", "quantity": 0},
        ])
        cart = CartStore(identity, storage)
        assert [i.id for i in cart.items] == ["p-serum"]


class RecordingServer:
    """Stands in for PUT /abandoned-cart."""

    def __init__(self, status=200):
        self.status = status
        self.bodies = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert (request.method, request.url.path) == ("PUT", "/api/v1/abandoned-cart")
        self.bodies.append(json.loads(request.content))
        return httpx.Response(self.status, json={"saved": True})


def _synced_cart(identity, server, notices=None):
    client = StorefrontClient(
        "http://storefront.test", identity=identity, transport=httpx.MockTransport(server),
    )
    return CartStore(identity, MemoryStorage(), notices, client=client)


class TestAbandonedCartSnapshot:
    @pytest.mark.asyncio
    async def test_changes_are_uploaded(self, identity):
        server = RecordingServer()
        cart = _synced_cart(identity, server)
        await cart.add_item(SERUM)
        await cart.add_item(SERUM)
        await cart.add_item(MIST)
        await cart.flush_snapshot()

        latest = server.bodies[-1]
        assert [(i["id"], i["quantity"]) for i in latest["items"]] == [("p-serum", 2), ("p-mist", 1)]
        assert latest["cart_total"] == "71.98"

    @pytest.mark.asyncio
    async def test_clear_sends_empty_snapshot(self, identity):
        server = RecordingServer()
        cart = _synced_cart(identity, server)
        await cart.add_item(SERUM)
        await cart.flush_snapshot()
        cart.clear_cart()
        await cart.flush_snapshot()
        assert server.bodies[-1] == {"items": [], "cart_total": "0"}

    @pytest.mark.asyncio
    async def test_signed_out_sends_nothing(self, identity):
        server = RecordingServer()
        cart = _synced_cart(identity, server)
        await cart.add_item(SERUM)
        await cart.flush_snapshot()
        sent = len(server.bodies)

        await identity.sign_out()
        cart.remove_item("p-serum")
        await cart.flush_snapshot()
        assert len(server.bodies) == sent
        assert await cart.save_snapshot() is False

    @pytest.mark.asyncio
    async def test_server_failure_is_not_raised(self, identity, notices):
        cart = _synced_cart(identity, RecordingServer(status=500), notices)
        assert await cart.add_item(SERUM) is True
        await cart.flush_snapshot()
        assert await cart.save_snapshot() is False
        assert cart.count() == 1

    @pytest.mark.asyncio
    async def test_without_client(self, cart):
        await cart.add_item(SERUM)
        await cart.flush_snapshot()
        assert await cart.save_snapshot() is False


class TestCartItem:
    def test_line_total(self):
        item = CartItem(id=7, name="Serum", price=Decimal("10.50"), quantity=3)
        assert item.id == "7"
        assert item.line_total == Decimal("31.50")

    def test_price_rounded_to_cents(self):
        item = CartItem(id="x", name="Serum", price="10.005", quantity=3)
        assert item.price == Decimal("10.01")
        assert item.line_total == Decimal("30.03")

    def test_sub_cent_price_rejected(self):
        with pytest.raises(ValueError):
            CartItem(id="x", name="Serum", price="0.004")

    @pytest.mark.asyncio
    async def test_cart_total_matches_checkout_subtotal(self, identity):
        cart = CartStore(identity)
        await cart.add_item({"id": "a", "name": "A", "price": "10.005"})
        cart.update_quantity("a", 3)
        assert cart.total() == subtotal(cart.items) == Decimal("30.03")


class TestNoticeBoard:
    def test_subscribe_and_unsubscribe(self):
        board = NoticeBoard()
        seen = []
        unsubscribe = board.subscribe(seen.append)
        board.info("Saved")
        unsubscribe()
        board.info("Ignored")
        assert [n.title for n in seen] == ["Saved"]

    def test_dismiss(self):
        board = NoticeBoard()
        notice = board.error("Oops")
        assert board.dismiss(notice.id) is True
        assert board.dismiss(notice.id) is False
        assert board.latest is None

    def test_keeps_newest(self):
        board = NoticeBoard(limit=2)
        for title in ("a", "b", "c"):
            board.info(title)
        assert [n.title for n in board.notices] == ["b", "c"]
        board.clear()
        assert board.notices == []


class TestLocalIdentity:
    @pytest.mark.asyncio
    async def test_auth_state_listeners(self):
        identity = LocalIdentity()
        changes = []
        identity.on_auth_state_change(changes.append)
        assert await identity.get_access_token() is None

        identity.sign_in(User(id="user-1", full_name="Ada King Lovelace"), "tok")
        assert await identity.get_access_token() == "tok"
        await identity.sign_out()
        await identity.sign_out()
        assert [u.id if u else None for u in changes] == ["user-1", None]

    def test_name_parts(self):
        user = User(id="u", full_name="Ada King Lovelace")
        assert (user.first_name, user.last_name) == ("Ada", "King Lovelace")
        assert User(id="u").first_name == ""
