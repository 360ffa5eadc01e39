"""FavoritesSyncEngine - optimistic favorite toggling with refetch rollback."""

from typing import Callable, Optional, Union

from cartsync.errors import (
    ERROR_FAVORITES_INVALID_PRODUCT,
    ERROR_FAVORITES_LOAD,
    ERROR_FAVORITES_SIGN_IN,
    ERROR_FAVORITES_UPDATE,
    AuthorizationFailure,
    CartSyncError,
    ValidationFailure,
)
from cartsync.http import ApiClient
from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.models import AuthSession, Product
from cartsync.notifications import LoggingNotifier, Notifier
from cartsync.observable import Observable
from cartsync.optimistic import MutationOutcome, OptimisticMutation, run_optimistic
from .service import FavoriteEntry, FavoritesService

logger = get_logger(__name__)


def _default_service_factory(session: AuthSession) -> FavoritesService:
    return FavoritesService(ApiClient(token=session.token))


class FavoritesSyncEngine(Observable):
    """
    Favorite membership for the signed-in buyer.

    A toggle flips local state before the network call. A failed call
    triggers a full refetch instead of undoing the flip by hand. Without
    a buyer session nothing is sent; the caller is asked to sign in.
    """

    def __init__(
        self,
        service_factory: Callable[[AuthSession], FavoritesService] = _default_service_factory,
        notifier: Optional[Notifier] = None,
    ) -> None:
        super().__init__()
        self.service_factory = service_factory
        self.notifier = notifier or LoggingNotifier()
        self._session = AuthSession.anonymous()
        self._service: Optional[FavoritesService] = None
        self._entries: list[FavoriteEntry] = []
        self._is_loading = False
        self._disposed = False

    # ---- state ----

    @property
    def entries(self) -> list[FavoriteEntry]:
        return list(self._entries)

    @property
    def favorite_products(self) -> list[Product]:
        return [entry.product for entry in self._entries]

    @property
    def favorites_count(self) -> int:
        return len(self._entries)

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    def is_favorite(self, product_id) -> bool:
        product_id = str(product_id)
        return any(entry.product_id == product_id for entry in self._entries)

    def dispose(self) -> None:
        """Stop applying results; calls already in flight still complete."""
        self._disposed = True
        self._listeners.clear()

    def _replace(self, entries: list[FavoriteEntry]) -> None:
        if self._disposed:
            return
        self._entries = list(entries)
        self._emit()

    def _set_loading(self, value: bool) -> None:
        if self._is_loading != value:
            self._is_loading = value
            self._emit()

    # ---- session ----

    async def on_auth_changed(self, session: AuthSession) -> None:
        """Load favorites for a buyer session; anyone else gets an empty set."""
        if session.is_loading:
            return

        if not session.has_cart_role:
            await self._close_service()
            self._session = session
            self._replace([])
            return

        if self._service is None or session.user_id != self._session.user_id:
            await self._close_service()
            self._service = self.service_factory(session)
        self._session = session
        await self.refetch()

    async def refetch(self) -> bool:
        """Replace local favorites with the server list. Returns False on failure."""
        if self._service is None:
            self._replace([])
            return False

        self._set_loading(True)
        try:
            entries = await self._service.list_favorites()
        except CartSyncError as e:
            logger.error("Error fetching favorites for user %s: %s", sanitize_id_for_logging(self._session.user_id), e)
            if not self._disposed:
                self.notifier.error(ERROR_FAVORITES_LOAD)
            self._replace([])
            return False
        finally:
            self._set_loading(False)

        logger.debug("Favorites fetched for user %s", sanitize_id_for_logging(self._session.user_id))
        self._replace(entries)
        return True

    async def aclose(self) -> None:
        await self._close_service()

    # ---- toggle ----

    async def toggle_favorite(self, product: Union[Product, dict, None]) -> MutationOutcome:
        """Flip membership of product, optimistically."""
        if isinstance(product, dict):
            product = Product.model_validate(product) if product.get("id") is not None else None
        if product is None or not product.id:
            logger.error("toggle_favorite called with invalid product")
            error = ValidationFailure(ERROR_FAVORITES_INVALID_PRODUCT)
            self.notifier.error(str(error))
            return MutationOutcome(ok=False, error=error)

        if self._service is None or not self._session.has_cart_role:
            self.notifier.error(ERROR_FAVORITES_SIGN_IN)
            self.notifier.prompt_sign_in()
            return MutationOutcome(ok=False, error=AuthorizationFailure(ERROR_FAVORITES_SIGN_IN))

        service = self._service
        product_id = str(product.id)
        was_favorite = self.is_favorite(product_id)

        def flip() -> None:
            if was_favorite:
                self._replace([entry for entry in self._entries if entry.product_id != product_id])
            else:
                self._replace([*self._entries, FavoriteEntry.from_product(product)])

        async def send() -> None:
            if was_favorite:
                await service.remove(product_id)
            else:
                await service.add(product_id)

        self._set_loading(True)
        try:
            outcome = await run_optimistic(
                OptimisticMutation(name="toggle_favorite", attempt=send, patch=flip, refetch=self._reload_quietly)
            )
        finally:
            self._set_loading(False)

        if self._disposed:
            return outcome

        name = product.name or "Item"
        if outcome.ok:
            self.notifier.success(
                f"{name} removed from favorites." if was_favorite else f"{name} added to favorites!"
            )
        else:
            logger.error("Error toggling favorite for product %s: %s", sanitize_id_for_logging(product_id), outcome.error)
            self.notifier.error(ERROR_FAVORITES_UPDATE)
        return outcome

    # ---- internal helpers ----

    async def _reload_quietly(self) -> None:
        if self._service is None:
            self._replace([])
            return
        try:
            self._replace(await self._service.list_favorites())
        except CartSyncError as e:
            logger.error("Favorites refetch failed: %s", e)
            self._replace([])

    async def _close_service(self) -> None:
        service, self._service = self._service, None
        if service is not None:
            await service.aclose()
