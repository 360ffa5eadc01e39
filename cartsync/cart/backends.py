"""
Cart backends.

SyncEngine picks one backend per session and injects it into the
CartStateStore, which stays unaware of guest vs authenticated mode.
Every mutation receives the current canonical items and returns the new
canonical items, or None when the write went through and the caller has to
reload them from load(). On failure it raises and the store keeps what it had.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from cartsync.errors import (
    ERROR_BUYERS_ONLY,
    ERROR_ITEM_NOT_IN_CART,
    AuthorizationFailure,
    CartSyncError,
    NetworkFailure,
    ValidationFailure,
)
from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.models import Product
from .models import LineItem, find_by_product, find_by_ref
from .remote import RemoteCartService
from .storage import GuestCartStorage

logger = get_logger(__name__)


class CartBackend(ABC):
    """Strategy for where cart mutations go."""

    #: Shown in notifications ("added to guest cart!")
    label = "cart"
    #: Remote backends flip the store's busy flag while a call is in flight
    is_remote = False

    @abstractmethod
    async def load(self) -> list[LineItem]: ...

    @abstractmethod
    async def add(self, items: list[LineItem], product: Product, quantity: int) -> Optional[list[LineItem]]: ...

    @abstractmethod
    async def update_quantity(self, items: list[LineItem], ref: str, quantity: int) -> Optional[list[LineItem]]:
        """quantity is always >= 1 here; the store routes the rest to remove()."""

    @abstractmethod
    async def remove(self, items: list[LineItem], ref: str) -> Optional[list[LineItem]]: ...

    @abstractmethod
    async def clear(self, items: list[LineItem]) -> Optional[list[LineItem]]: ...


class LocalBackend(CartBackend):
    """
    Guest cart kept in GuestStore, keyed by product id.

    Changes are computed locally and persisted right away. Storage errors
    are logged by GuestCartStorage and never fail the mutation.
    """

    label = "guest cart"

    def __init__(self, storage: GuestCartStorage) -> None:
        self.storage = storage

    async def load(self) -> list[LineItem]:
        return await self.storage.load()

    async def add(self, items: list[LineItem], product: Product, quantity: int) -> list[LineItem]:
        if find_by_product(items, product.id):
            new_items = [
                item.with_quantity(item.quantity + quantity) if item.product_id == product.id else item
                for item in items
            ]
        else:
            new_items = [*items, LineItem.from_product(product, quantity)]
        await self.storage.save(new_items)
        return new_items

    async def update_quantity(self, items: list[LineItem], ref: str, quantity: int) -> list[LineItem]:
        if find_by_ref(items, ref) is None:
            raise ValidationFailure(ERROR_ITEM_NOT_IN_CART)
        new_items = [item.with_quantity(quantity) if item.product_id == ref else item for item in items]
        await self.storage.save(new_items)
        return new_items

    async def remove(self, items: list[LineItem], ref: str) -> list[LineItem]:
        new_items = [item for item in items if item.product_id != ref]
        await self.storage.save(new_items)
        return new_items

    async def clear(self, items: list[LineItem]) -> list[LineItem]:
        await self.storage.clear()
        return []


class RemoteBackend(CartBackend):
    """
    Authenticated cart on RemoteCartService, keyed by line item id.

    No optimistic step: writes return None and the store refetches the
    whole cart, which becomes the new canonical state. A failed refetch is
    a load error, not a failed write.
    """

    is_remote = True

    def __init__(self, service: RemoteCartService, user_id: str) -> None:
        self.service = service
        self.user_id = user_id

    async def load(self) -> list[LineItem]:
        return await self.service.fetch_cart(self.user_id)

    async def add(self, items: list[LineItem], product: Product, quantity: int) -> None:
        existing = find_by_product(items, product.id)
        if existing is not None and existing.line_item_id is not None:
            await self.service.update_item(existing.line_item_id, existing.quantity + quantity)
        else:
            await self.service.create_item(self.user_id, product.id, quantity)

    async def update_quantity(self, items: list[LineItem], ref: str, quantity: int) -> None:
        await self.service.update_item(ref, quantity)

    async def remove(self, items: list[LineItem], ref: str) -> None:
        await self.service.delete_item(ref)

    async def clear(self, items: list[LineItem]) -> None:
        """Delete line items one by one; no batch endpoint is assumed."""
        line_item_ids = [item.line_item_id for item in items if item.line_item_id is not None]
        results = await asyncio.gather(
            *(self.service.delete_item(line_item_id) for line_item_id in line_item_ids),
            return_exceptions=True,
        )

        failed = 0
        for line_item_id, result in zip(line_item_ids, results):
            if isinstance(result, CartSyncError):
                failed += 1
                logger.warning("Delete of line item %s failed: %s", sanitize_id_for_logging(line_item_id), result)
            elif isinstance(result, BaseException):
                raise result

        if failed:
            # Caller refetches so the display matches what the server kept
            raise NetworkFailure(f"{failed} of {len(line_item_ids)} cart items could not be removed")


class RestrictedBackend(CartBackend):
    """Cart for authenticated sessions without the cart role: empty and read-only."""

    async def load(self) -> list[LineItem]:
        return []

    async def add(self, items: list[LineItem], product: Product, quantity: int) -> list[LineItem]:
        raise AuthorizationFailure(ERROR_BUYERS_ONLY)

    async def update_quantity(self, items: list[LineItem], ref: str, quantity: int) -> list[LineItem]:
        raise AuthorizationFailure(ERROR_BUYERS_ONLY)

    async def remove(self, items: list[LineItem], ref: str) -> list[LineItem]:
        raise AuthorizationFailure(ERROR_BUYERS_ONLY)

    async def clear(self, items: list[LineItem]) -> list[LineItem]:
        raise AuthorizationFailure(ERROR_BUYERS_ONLY)
