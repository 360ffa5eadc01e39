"""CartStateStore - the canonical cart shown to the UI."""
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Union

from cartsync.errors import (
    ERROR_CART_ADD,
    ERROR_CART_CLEAR,
    ERROR_CART_LOAD,
    ERROR_CART_REMOVE,
    ERROR_CART_UPDATE,
    ERROR_INVALID_QUANTITY,
    AuthorizationFailure,
    CartSyncError,
    ValidationFailure,
)
from cartsync.logging import get_logger
from cartsync.models import Product
from cartsync.money import round_money, to_float
from cartsync.notifications import LoggingNotifier, Notifier
from cartsync.observable import Observable
from cartsync.optimistic import MutationOutcome, OptimisticMutation, run_optimistic
from .backends import CartBackend
from .models import LineItem, item_count, subtotal

logger = get_logger(__name__)


class CartStateStore(Observable):
    """
    In-memory cart with subscription.

    Mutations go through the injected CartBackend and replace the items
    wholesale on success; on failure the items are left as they were and
    one error notification is emitted.

    is_loading is raised while a remote call is in flight so callers can
    disable their triggers. Overlapping calls are not queued.

    Usage:
        store = CartStateStore(notifier=toasts)
        unsubscribe = store.subscribe(render)
        await store.add_item(product, 2)
        store.get_total()
    """

    def __init__(self, backend: Optional[CartBackend] = None, notifier: Optional[Notifier] = None) -> None:
        super().__init__()
        self._backend = backend
        self._items: list[LineItem] = []
        self._is_loading = False
        self._disposed = False
        self.notifier = notifier or LoggingNotifier()

    # ---- state ----

    @property
    def items(self) -> list[LineItem]:
        return list(self._items)

    @property
    def backend(self) -> Optional[CartBackend]:
        return self._backend

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    def set_backend(self, backend: Optional[CartBackend], items: Optional[list[LineItem]] = None) -> None:
        """Swap the active backend and its canonical items (called by SyncEngine)."""
        self._backend = backend
        self._replace(items or [])

    def set_loading(self, value: bool) -> None:
        if self._is_loading != value:
            self._is_loading = value
            self._emit()

    def dispose(self) -> None:
        """Stop applying results; calls already in flight still complete."""
        self._disposed = True
        self._listeners.clear()

    def _replace(self, items: list[LineItem]) -> None:
        if self._disposed:
            return
        self._items = list(items)
        self._emit()

    # ---- aggregates ----

    def get_item_count(self) -> int:
        return item_count(self._items)

    def get_total(self) -> Decimal:
        return subtotal(self._items)

    def summary(self) -> dict[str, Any]:
        """Display-ready summary."""
        return {
            "is_empty": not self._items,
            "total_items": self.get_item_count(),
            "items": [
                {
                    "ref": item.ref,
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "unit_price": to_float(item.unit_price),
                    "total": to_float(round_money(item.total_price)),
                }
                for item in self._items
            ],
            "subtotal": to_float(round_money(self.get_total())),
        }

    # ---- loading ----

    async def refresh(self) -> bool:
        """Reload items from the active backend. Returns False on failure."""
        backend = self._require_backend()
        self.set_loading(backend.is_remote)
        try:
            loaded = await self._load_from(backend)
        finally:
            self.set_loading(False)
        if not loaded and not self._disposed:
            self.notifier.error(ERROR_CART_LOAD)
        return loaded

    async def _load_from(self, backend: CartBackend) -> bool:
        try:
            items = await backend.load()
        except CartSyncError as e:
            logger.error("Failed to fetch cart from %s: %s", backend.label, e)
            return False
        self._apply(backend, items)
        return True

    async def _reload_quietly(self) -> None:
        backend = self._require_backend()
        self._apply(backend, await backend.load())

    def _apply(self, backend: CartBackend, items: list[LineItem]) -> None:
        """Replace items unless the backend was swapped while the call ran."""
        if backend is not self._backend:
            logger.info("Dropping result from replaced %s backend", backend.label)
            return
        self._replace(items)

    # ---- mutations ----

    async def add_item(self, product: Union[Product, dict], quantity: int = 1) -> MutationOutcome:
        """Add quantity units of product; increments an existing line."""
        if isinstance(product, dict):
            product = Product.model_validate(product)
        if not _is_positive_int(quantity):
            return self._reject(ValidationFailure(ERROR_INVALID_QUANTITY))

        backend = self._require_backend()
        return await self._mutate(
            "add_item",
            lambda: backend.add(self.items, product, quantity),
            success_message=f"{product.name or 'Item'} added to {backend.label}!",
            error_message=ERROR_CART_ADD,
        )

    async def remove_item(self, item_ref: str) -> MutationOutcome:
        """Remove a line by ref (line item id when authenticated, product id as guest)."""
        backend = self._require_backend()
        item_ref = str(item_ref)
        return await self._mutate(
            "remove_item",
            lambda: backend.remove(self.items, item_ref),
            success_message="Item removed from cart.",
            error_message=ERROR_CART_REMOVE,
        )

    async def update_quantity(self, item_ref: str, new_quantity: int) -> MutationOutcome:
        """Set a line's quantity; zero or less removes it."""
        if isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
            return self._reject(ValidationFailure(ERROR_INVALID_QUANTITY))
        if new_quantity <= 0:
            return await self.remove_item(item_ref)

        backend = self._require_backend()
        item_ref = str(item_ref)
        return await self._mutate(
            "update_quantity",
            lambda: backend.update_quantity(self.items, item_ref, new_quantity),
            success_message="Quantity updated.",
            error_message=ERROR_CART_UPDATE,
        )

    async def clear_cart(self) -> MutationOutcome:
        """Remove every line. A partially failed remote clear still refetches."""
        backend = self._require_backend()
        return await self._mutate(
            "clear_cart",
            lambda: backend.clear(self.items),
            success_message="Guest cart cleared." if not backend.is_remote else "Cart has been cleared.",
            error_message=ERROR_CART_CLEAR,
            refetch=self._reload_quietly if backend.is_remote else None,
        )

    # ---- internal helpers ----

    def _require_backend(self) -> CartBackend:
        if self._backend is None:
            raise RuntimeError("No cart backend selected; start the SyncEngine first")
        return self._backend

    def _reject(self, error: CartSyncError) -> MutationOutcome:
        logger.warning("Cart mutation rejected: %s", error)
        self.notifier.error(str(error))
        return MutationOutcome(ok=False, error=error)

    async def _mutate(
        self,
        name: str,
        attempt: Callable[[], Awaitable[Optional[list[LineItem]]]],
        success_message: str,
        error_message: str,
        refetch: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> MutationOutcome:
        backend = self._require_backend()

        def apply_result(items: Optional[list[LineItem]]) -> None:
            if items is not None:
                self._apply(backend, items)

        self.set_loading(backend.is_remote)
        reloaded = True
        try:
            outcome = await run_optimistic(
                OptimisticMutation(
                    name=name,
                    attempt=attempt,
                    on_success=apply_result,
                    refetch=refetch,
                )
            )
            # Write accepted; a failed reload from here on is a load error only
            if outcome.ok and outcome.value is None:
                reloaded = await self._load_from(backend)
        finally:
            self.set_loading(False)

        if self._disposed:
            return outcome

        if outcome.ok:
            logger.debug("%s succeeded, %d line(s) in cart", name, len(self._items))
            self.notifier.success(success_message)
            if not reloaded:
                self.notifier.error(ERROR_CART_LOAD)
        elif isinstance(outcome.error, (AuthorizationFailure, ValidationFailure)):
            self.notifier.error(str(outcome.error))
        else:
            logger.error("%s failed on %s: %s", name, backend.label, outcome.error)
            self.notifier.error(error_message)
        return outcome


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1
