"""
Tests for CartStateStore mutations on guest and remote backends
"""

import random
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from cartsync.cart import (
    CartStateStore,
    GuestCartStorage,
    LocalBackend,
    RemoteBackend,
    RestrictedBackend,
)
from cartsync.db import RedisKeys
from cartsync.errors import (
    ERROR_BUYERS_ONLY,
    ERROR_CART_ADD,
    ERROR_CART_CLEAR,
    ERROR_CART_LOAD,
    ERROR_ITEM_NOT_IN_CART,
    AuthorizationFailure,
    ValidationFailure,
)
from cartsync.models import Product


GUEST_KEY = RedisKeys.guest_cart_key("profile-1")


@pytest.fixture
def guest_cart(store, guest_store):
    """Store running on the guest backend"""
    store.set_backend(LocalBackend(GuestCartStorage(guest_store, "profile-1")))
    return store


@pytest.fixture
def remote_cart(store, cart_service):
    """Store running on the remote backend for user-1"""
    store.set_backend(RemoteBackend(cart_service, "user-1"))
    return store


def _mutating_calls(service):
    return [call for call in service.calls if call[0] != "fetch_cart"]


class TestGuestCart:
    """Guest mode: local, immediately persisted."""

    @pytest.mark.asyncio
    async def test_add_appends_then_increments(self, guest_cart, mock_redis, product_a):
        await guest_cart.add_item(product_a, 1)
        await guest_cart.add_item(product_a, 2)

        assert len(guest_cart.items) == 1
        assert guest_cart.items[0].quantity == 3
        assert guest_cart.items[0].line_item_id is None
        assert GUEST_KEY in mock_redis.data

    @pytest.mark.asyncio
    async def test_add_notifies_guest_cart(self, guest_cart, notifier, product_a):
        outcome = await guest_cart.add_item(product_a, 1)

        assert outcome.ok
        assert notifier.events == [("success", "Linen Dress added to guest cart!")]

    @pytest.mark.asyncio
    async def test_add_accepts_product_dict(self, guest_cart):
        await guest_cart.add_item({"id": 42, "name": "Belt", "price": 9.5}, 2)

        assert guest_cart.items[0].product_id == "42"
        assert guest_cart.get_total() == Decimal("19.0")

    @pytest.mark.asyncio
    async def test_update_quantity(self, guest_cart, product_a, product_b):
        await guest_cart.add_item(product_a, 1)
        await guest_cart.add_item(product_b, 1)

        await guest_cart.update_quantity(product_a.id, 5)

        assert [(i.product_id, i.quantity) for i in guest_cart.items] == [("prod-a", 5), ("prod-b", 1)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -1, -10])
    async def test_non_positive_update_removes(self, guest_cart, product_a, product_b, quantity):
        await guest_cart.add_item(product_a, 2)
        await guest_cart.add_item(product_b, 1)

        outcome = await guest_cart.update_quantity(product_a.id, quantity)

        assert outcome.ok
        assert [i.product_id for i in guest_cart.items] == ["prod-b"]

    @pytest.mark.asyncio
    async def test_update_unknown_item_is_rejected(self, guest_cart, notifier, product_a):
        await guest_cart.add_item(product_a, 1)
        notifier.events.clear()

        outcome = await guest_cart.update_quantity("prod-missing", 3)

        assert isinstance(outcome.error, ValidationFailure)
        assert notifier.events == [("error", ERROR_ITEM_NOT_IN_CART)]
        assert [(i.product_id, i.quantity) for i in guest_cart.items] == [("prod-a", 1)]

    @pytest.mark.asyncio
    async def test_remove_and_clear(self, guest_cart, mock_redis, product_a, product_b):
        await guest_cart.add_item(product_a, 1)
        await guest_cart.add_item(product_b, 1)

        await guest_cart.remove_item(product_a.id)
        assert [i.product_id for i in guest_cart.items] == ["prod-b"]

        await guest_cart.clear_cart()
        assert guest_cart.items == []
        assert GUEST_KEY not in mock_redis.data

    @pytest.mark.asyncio
    async def test_storage_failure_is_not_fatal(self, guest_cart, mock_redis, notifier, product_a):
        """Test that a failing store keeps the in-memory cart"""
        mock_redis.set = AsyncMock(side_effect=ConnectionError("quota"))

        outcome = await guest_cart.add_item(product_a, 1)

        assert outcome.ok
        assert guest_cart.get_item_count() == 1
        assert notifier.kinds() == ["success"]

    @pytest.mark.asyncio
    async def test_guest_mutations_never_set_busy_flag(self, guest_cart, product_a):
        seen = []
        guest_cart.subscribe(lambda s: seen.append(s.is_loading))

        await guest_cart.add_item(product_a, 1)

        assert True not in seen


class TestRemoteCart:
    """Authenticated mode: call, then refetch."""

    @pytest.mark.asyncio
    async def test_add_twice_creates_then_updates(self, remote_cart, cart_service, product_a):
        """Test create followed by update when the product appears after the first add"""
        await remote_cart.add_item(product_a, 1)
        await remote_cart.add_item(product_a, 2)

        assert _mutating_calls(cart_service) == [
            ("create_item", "user-1", "prod-a", 1),
            ("update_item", "L1", 3),
        ]
        assert len(remote_cart.items) == 1
        assert remote_cart.items[0].quantity == 3
        assert remote_cart.items[0].line_item_id == "L1"

    @pytest.mark.asyncio
    async def test_success_refetches_wholesale(self, remote_cart, cart_service, product_a, product_b):
        # Another device added product_b meanwhile
        cart_service.seed("user-1", product_b.id, 4)

        await remote_cart.add_item(product_a, 1)

        assert {i.product_id for i in remote_cart.items} == {"prod-a", "prod-b"}
        assert cart_service.calls[-1] == ("fetch_cart", "user-1")

    @pytest.mark.asyncio
    async def test_failed_add_leaves_state_unchanged(self, remote_cart, cart_service, notifier, product_a, product_b):
        cart_service.seed("user-1", product_b.id, 1)
        await remote_cart.refresh()
        before = remote_cart.items
        cart_service.fail_on.add("create_item")
        notifier.events.clear()

        outcome = await remote_cart.add_item(product_a, 1)

        assert not outcome.ok
        assert remote_cart.items == before
        assert notifier.events == [("error", ERROR_CART_ADD)]
        assert cart_service.calls[-1][0] == "create_item"

    @pytest.mark.asyncio
    async def test_accepted_write_with_failed_refetch_is_a_success(self, remote_cart, cart_service, notifier, product_a):
        """Test that a refetch failure after a create is reported as a load error only"""
        original_create = cart_service.create_item

        async def create_then_break_fetch(*args):
            await original_create(*args)
            cart_service.fail_on.add("fetch_cart")

        cart_service.create_item = create_then_break_fetch

        outcome = await remote_cart.add_item(product_a, 1)

        assert outcome.ok
        assert notifier.events == [("success", "Linen Dress added to cart!"), ("error", ERROR_CART_LOAD)]
        assert remote_cart.is_loading is False
        assert cart_service.quantity_of("user-1", product_a.id) == 1

        cart_service.fail_on.clear()
        assert await remote_cart.refresh() is True
        assert [(i.product_id, i.quantity) for i in remote_cart.items] == [("prod-a", 1)]

    @pytest.mark.asyncio
    async def test_remove_deletes_then_refetches(self, remote_cart, cart_service, product_a):
        line_id = cart_service.seed("user-1", product_a.id, 2)
        await remote_cart.refresh()

        outcome = await remote_cart.remove_item(line_id)

        assert outcome.ok
        assert remote_cart.items == []
        assert cart_service.calls[-2:] == [("delete_item", line_id), ("fetch_cart", "user-1")]

    @pytest.mark.asyncio
    async def test_removing_missing_line_item_succeeds(self, remote_cart, cart_service, notifier):
        outcome = await remote_cart.remove_item("L404")

        assert outcome.ok
        assert notifier.kinds() == ["success"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -3])
    async def test_non_positive_update_is_a_delete(self, remote_cart, cart_service, product_a, quantity):
        line_id = cart_service.seed("user-1", product_a.id, 2)
        await remote_cart.refresh()

        await remote_cart.update_quantity(line_id, quantity)

        assert cart_service.calls_named("update_item") == []
        assert cart_service.calls_named("delete_item") == [("delete_item", line_id)]
        assert remote_cart.items == []

    @pytest.mark.asyncio
    async def test_update_quantity(self, remote_cart, cart_service, product_a):
        line_id = cart_service.seed("user-1", product_a.id, 2)
        await remote_cart.refresh()

        await remote_cart.update_quantity(line_id, 7)

        assert remote_cart.items[0].quantity == 7

    @pytest.mark.asyncio
    async def test_clear_with_partial_failure_refetches(self, remote_cart, cart_service, notifier, product_a, product_b):
        """Test that a half-failed clear ends showing what the server kept"""
        cart_service.seed("user-1", product_a.id, 1)
        kept = cart_service.seed("user-1", product_b.id, 2)
        await remote_cart.refresh()
        cart_service.fail_lines.add(kept)
        notifier.events.clear()

        outcome = await remote_cart.clear_cart()

        assert not outcome.ok
        assert len(cart_service.calls_named("delete_item")) == 2
        assert [i.line_item_id for i in remote_cart.items] == [kept]
        assert cart_service.calls[-1] == ("fetch_cart", "user-1")
        assert notifier.events == [("error", ERROR_CART_CLEAR)]

    @pytest.mark.asyncio
    async def test_clear(self, remote_cart, cart_service, product_a, product_b):
        cart_service.seed("user-1", product_a.id, 1)
        cart_service.seed("user-1", product_b.id, 2)
        await remote_cart.refresh()

        outcome = await remote_cart.clear_cart()

        assert outcome.ok
        assert remote_cart.items == []
        assert cart_service.lines == {}

    @pytest.mark.asyncio
    async def test_busy_flag_during_remote_call(self, remote_cart, product_a):
        seen = []
        remote_cart.subscribe(lambda s: seen.append(s.is_loading))

        await remote_cart.add_item(product_a, 1)

        assert seen[0] is True
        assert remote_cart.is_loading is False

    @pytest.mark.asyncio
    async def test_result_discarded_after_dispose(self, remote_cart, cart_service, notifier, product_a):
        """Test that an unmounted consumer never sees the late result"""
        original_create = cart_service.create_item

        async def create_then_unmount(*args):
            remote_cart.dispose()
            return await original_create(*args)

        cart_service.create_item = create_then_unmount

        await remote_cart.add_item(product_a, 1)

        assert remote_cart.items == []
        assert notifier.events == []
        # The request itself still went through
        assert cart_service.quantity_of("user-1", product_a.id) == 1

    @pytest.mark.asyncio
    async def test_result_dropped_when_backend_replaced(self, remote_cart, cart_service, guest_store, product_a):
        """Test that a sign-out during a remote add keeps the fresh guest cart"""
        original_create = cart_service.create_item
        guest_backend = LocalBackend(GuestCartStorage(guest_store, "profile-1"))

        async def create_then_sign_out(*args):
            remote_cart.set_backend(guest_backend, [])
            return await original_create(*args)

        cart_service.create_item = create_then_sign_out

        await remote_cart.add_item(product_a, 1)

        assert remote_cart.backend is guest_backend
        assert remote_cart.items == []

    @pytest.mark.asyncio
    async def test_refresh_failure_notifies(self, remote_cart, cart_service, notifier):
        cart_service.fail_on.add("fetch_cart")

        assert await remote_cart.refresh() is False
        assert notifier.kinds() == ["error"]


class TestValidationAndAuthorization:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    async def test_add_rejects_bad_quantity(self, remote_cart, cart_service, notifier, product_a, quantity):
        outcome = await remote_cart.add_item(product_a, quantity)

        assert isinstance(outcome.error, ValidationFailure)
        assert cart_service.calls == []
        assert notifier.kinds() == ["error"]

    @pytest.mark.asyncio
    async def test_restricted_backend_never_calls_out(self, store, notifier, product_a):
        store.set_backend(RestrictedBackend())

        outcome = await store.add_item(product_a, 1)

        assert isinstance(outcome.error, AuthorizationFailure)
        assert notifier.events == [("error", ERROR_BUYERS_ONLY)]

    @pytest.mark.asyncio
    async def test_mutation_without_backend_is_a_programming_error(self, product_a):
        with pytest.raises(RuntimeError):
            await CartStateStore().add_item(product_a, 1)


class TestAggregatesOverMutations:
    """Count and subtotal always match the canonical collection."""

    CATALOG = [
        Product(id="p1", name="A", price="0.10"),
        Product(id="p2", name="B", price="19.99"),
        Product(id="p3", name="C", price="7.00"),
    ]

    async def _run_sequence(self, store, seed):
        rng = random.Random(seed)
        for _ in range(25):
            op = rng.choice(["add", "add", "update", "remove", "clear"])
            if op == "add":
                await store.add_item(rng.choice(self.CATALOG), rng.randint(1, 4))
            elif op in ("update", "remove") and store.items:
                ref = rng.choice(store.items).ref
                if op == "update":
                    await store.update_quantity(ref, rng.randint(-2, 6))
                else:
                    await store.remove_item(ref)
            elif op == "clear" and rng.random() < 0.2:
                await store.clear_cart()

            items = store.items
            assert store.get_item_count() == sum(i.quantity for i in items)
            assert store.get_total() == sum((i.unit_price * i.quantity for i in items), Decimal("0"))
            assert all(i.quantity >= 1 for i in items)
            assert len({i.product_id for i in items}) == len(items)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(8))
    async def test_guest_sequences(self, guest_cart, seed):
        await self._run_sequence(guest_cart, seed)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(8))
    async def test_remote_sequences(self, remote_cart, cart_service, seed):
        for product in self.CATALOG:
            cart_service.add_product(product.id, product.name, str(product.price))
        await self._run_sequence(remote_cart, seed)

    def test_summary(self, store):
        summary = store.summary()
        assert summary["is_empty"] is True
        assert summary["subtotal"] == 0.0
