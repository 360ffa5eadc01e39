"""Pytest configuration and fixtures"""
import os
from decimal import Decimal
from typing import Optional
from unittest.mock import Mock, AsyncMock

import pytest

# Set test environment variables
os.environ.setdefault("UPSTASH_REDIS_REST_URL", "https://test.upstash.io")
os.environ.setdefault("UPSTASH_REDIS_REST_TOKEN", "test_token")
os.environ.setdefault("CART_API_BASE_URL", "https://shop.test/api")

from cartsync.cart import CartStateStore, GuestStore, LineItem, SyncEngine  # noqa: E402
from cartsync.errors import NetworkFailure  # noqa: E402
from cartsync.models import AuthSession, Product  # noqa: E402
from cartsync.notifications import Notifier  # noqa: E402


class RecordingNotifier(Notifier):
    """Notifier that keeps (kind, message) pairs."""

    def __init__(self):
        self.events: list[tuple[str, str]] = []

    def success(self, message, key=None):
        self.events.append(("success", message))

    def error(self, message, key=None):
        self.events.append(("error", message))

    def warning(self, message, key=None):
        self.events.append(("warning", message))

    def loading(self, message, key=None):
        self.events.append(("loading", message))

    def prompt_sign_in(self):
        self.events.append(("prompt_sign_in", ""))

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.events]

    def outcomes(self) -> list[tuple[str, str]]:
        """Everything except loading indicators."""
        return [event for event in self.events if event[0] != "loading"]


class FakeCartService:
    """In-memory RemoteCartService with a call log and failure switches."""

    def __init__(self):
        self.lines: dict[str, dict] = {}
        self.catalog: dict[str, tuple[str, Decimal]] = {}
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self.fail_products: set[str] = set()
        self.fail_lines: set[str] = set()
        self._next_id = 1

    def add_product(self, product_id: str, name: str, price: str) -> None:
        self.catalog[product_id] = (name, Decimal(price))

    def seed(self, user_id: str, product_id: str, quantity: int) -> str:
        line_item_id = f"L{self._next_id}"
        self._next_id += 1
        self.lines[line_item_id] = {"user_id": user_id, "product_id": product_id, "quantity": quantity}
        return line_item_id

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def quantity_of(self, user_id: str, product_id: str) -> Optional[int]:
        for line in self.lines.values():
            if line["user_id"] == user_id and line["product_id"] == product_id:
                return line["quantity"]
        return None

    def _check(self, name: str) -> None:
        if name in self.fail_on:
            raise NetworkFailure(f"{name} failed", status_code=503)

    async def fetch_cart(self, user_id):
        self.calls.append(("fetch_cart", user_id))
        self._check("fetch_cart")
        items = []
        for line_item_id, line in self.lines.items():
            if line["user_id"] != user_id:
                continue
            name, price = self.catalog.get(line["product_id"], ("Unknown", Decimal("0")))
            items.append(
                LineItem(
                    line_item_id=line_item_id,
                    product_id=line["product_id"],
                    product_name=name,
                    unit_price=price,
                    quantity=line["quantity"],
                )
            )
        return items

    async def create_item(self, user_id, product_id, quantity):
        self.calls.append(("create_item", user_id, product_id, quantity))
        self._check("create_item")
        if product_id in self.fail_products:
            raise NetworkFailure("create rejected", status_code=500)
        for line in self.lines.values():
            if line["user_id"] == user_id and line["product_id"] == product_id:
                line["quantity"] += quantity
                return None
        self.seed(user_id, product_id, quantity)
        return None

    async def update_item(self, line_item_id, quantity):
        self.calls.append(("update_item", line_item_id, quantity))
        self._check("update_item")
        if line_item_id in self.fail_lines or self.lines.get(line_item_id, {}).get("product_id") in self.fail_products:
            raise NetworkFailure("update rejected", status_code=500)
        self.lines[line_item_id]["quantity"] = quantity
        return None

    async def delete_item(self, line_item_id):
        self.calls.append(("delete_item", line_item_id))
        self._check("delete_item")
        if line_item_id in self.fail_lines:
            raise NetworkFailure("delete rejected", status_code=500)
        self.lines.pop(line_item_id, None)


@pytest.fixture
def mock_redis():
    """Mock Upstash Redis client backed by a dict"""
    data = {}
    redis = Mock()
    redis.data = data
    redis.get = AsyncMock(side_effect=lambda key: data.get(key))
    redis.set = AsyncMock(side_effect=lambda key, value, ex=None: data.__setitem__(key, value))
    redis.delete = AsyncMock(side_effect=lambda key: 1 if data.pop(key, None) is not None else 0)
    return redis


@pytest.fixture
def guest_store(mock_redis):
    """GuestStore over the mock Redis client"""
    return GuestStore(redis=mock_redis)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def product_a():
    return Product(id="prod-a", name="Linen Dress", price="49.90", category="dress")


@pytest.fixture
def product_b():
    return Product(id="prod-b", name="Silk Scarf", price="15.50", category="accessories")


@pytest.fixture
def cart_service(product_a, product_b):
    service = FakeCartService()
    service.add_product(product_a.id, product_a.name, str(product_a.price))
    service.add_product(product_b.id, product_b.name, str(product_b.price))
    return service


@pytest.fixture
def buyer_session():
    return AuthSession(user_id="user-1", role="BUYER", token="token-1")


@pytest.fixture
def store(notifier):
    return CartStateStore(notifier=notifier)


@pytest.fixture
def engine(store, guest_store, cart_service, notifier):
    """SyncEngine wired to the fake cart service"""
    return SyncEngine(
        store,
        guest_store,
        profile_id="profile-1",
        service_factory=lambda session: cart_service,
        notifier=notifier,
    )
