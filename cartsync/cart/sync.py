"""
SyncEngine - picks the cart backend for the current session and merges
the guest cart into the user's cart once per sign-in.

State machine:

    UNINITIALIZED -> GUEST            anonymous session, guest cart loaded
    UNINITIALIZED -> AUTHENTICATING   known user, remote cart fetched
    GUEST         -> AUTHENTICATING   sign-in
    AUTHENTICATING -> MERGING         guest cart not empty
    AUTHENTICATING -> AUTHENTICATED   guest cart empty, merge skipped
    MERGING       -> AUTHENTICATED    merge done, even if some items failed
    AUTHENTICATED -> GUEST            sign-out, fresh empty guest cart
"""

import asyncio
from enum import Enum
from typing import Callable, Optional

from cartsync.errors import ERROR_CART_LOAD, CartSyncError
from cartsync.http import ApiClient
from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.models import AuthSession
from cartsync.notifications import Notifier
from cartsync.observable import Observable
from .backends import LocalBackend, RemoteBackend, RestrictedBackend
from .models import LineItem, find_by_product
from .remote import RemoteCartService
from .state import CartStateStore
from .storage import GuestCartStorage, GuestStore

logger = get_logger(__name__)

MERGE_NOTIFICATION_KEY = "merge-cart"


class SyncState(str, Enum):
    UNINITIALIZED = "uninitialized"
    GUEST = "guest"
    AUTHENTICATING = "authenticating"
    MERGING = "merging"
    AUTHENTICATED = "authenticated"


def _default_service_factory(session: AuthSession) -> RemoteCartService:
    return RemoteCartService(ApiClient(token=session.token))


class SyncEngine(Observable):
    """
    Routes the cart between GuestStore and RemoteCartService.

    Feed it every resolved auth state through on_auth_changed(); it is
    safe to call repeatedly with the same session.

    Usage:
        store = CartStateStore(notifier=toasts)
        engine = SyncEngine(store, GuestStore(), profile_id="browser-1")
        await engine.start(AuthSession.anonymous())
        await store.add_item(product, 1)
        await engine.on_auth_changed(AuthSession(user_id="42", role="BUYER", token=jwt))
    """

    def __init__(
        self,
        store: CartStateStore,
        guest_store: GuestStore,
        profile_id: str,
        service_factory: Callable[[AuthSession], RemoteCartService] = _default_service_factory,
        notifier: Optional[Notifier] = None,
    ) -> None:
        super().__init__()
        self.store = store
        self.guest_cart = GuestCartStorage(guest_store, profile_id)
        self.service_factory = service_factory
        self.notifier = notifier or store.notifier
        self._state = SyncState.UNINITIALIZED
        self._service: Optional[RemoteCartService] = None
        self._user_id: Optional[str] = None
        # user id whose sign-in has already been merged; reset on sign-out
        self._merged_user_id: Optional[str] = None
        # bumped by every sign-in and sign-out; a sign-in holding an older
        # number drops whatever it was about to install
        self._generation = 0

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def _set_state(self, state: SyncState) -> None:
        if state != self._state:
            logger.debug("Cart sync %s -> %s", self._state.value, state.value)
            self._state = state
            self._emit()

    # ---- auth transitions ----

    async def start(self, session: AuthSession) -> None:
        """Initial backend selection on startup."""
        if self._state != SyncState.UNINITIALIZED:
            logger.warning("SyncEngine.start called twice; treating as auth change")
        await self.on_auth_changed(session)

    async def on_auth_changed(self, session: AuthSession) -> None:
        """React to a resolved authentication state."""
        if session.is_loading:
            return

        if not session.is_authenticated:
            if self._state in (SyncState.AUTHENTICATED, SyncState.AUTHENTICATING, SyncState.MERGING):
                await self.sign_out()
            elif self._state == SyncState.UNINITIALIZED:
                await self._enter_guest()
            return

        if self._state in (SyncState.AUTHENTICATING, SyncState.MERGING):
            logger.info("Sign-in already in progress for user %s", sanitize_id_for_logging(self._user_id))
            return

        if not session.has_cart_role:
            await self._enter_restricted(session)
            return

        if self._state == SyncState.AUTHENTICATED and self._merged_user_id == session.user_id:
            # Same sign-in seen again: never merge twice, just resync
            await self.store.refresh()
            return

        await self._authenticate(session)

    async def sign_out(self) -> None:
        """Drop the remote cart and start a fresh, empty guest cart."""
        logger.info("Signing out user %s from cart", sanitize_id_for_logging(self._user_id))
        # Any sign-in still waiting on the network is now stale
        self._generation += 1
        self._user_id = None
        self._merged_user_id = None
        self.store.set_backend(LocalBackend(self.guest_cart), [])
        self.store.set_loading(False)
        self._set_state(SyncState.GUEST)
        await self._close_service()
        await self.guest_cart.clear()

    async def aclose(self) -> None:
        await self._close_service()

    # ---- internal helpers ----

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _enter_guest(self) -> None:
        items = await self.guest_cart.load()
        self.store.set_backend(LocalBackend(self.guest_cart), items)
        self._set_state(SyncState.GUEST)

    async def _enter_restricted(self, session: AuthSession) -> None:
        """Authenticated without the cart role: no cart, and no guest cart either."""
        logger.info("User %s has role %s; cart disabled", sanitize_id_for_logging(session.user_id), session.role)
        self._generation += 1
        self._user_id = session.user_id
        self._merged_user_id = session.user_id
        self.store.set_backend(RestrictedBackend(), [])
        self._set_state(SyncState.AUTHENTICATED)
        await self._close_service()
        await self.guest_cart.clear()

    async def _authenticate(self, session: AuthSession) -> None:
        """
        Fetch the remote cart and merge the guest cart into it.

        Always ends AUTHENTICATED on the remote backend unless a sign-out
        or another sign-in started meanwhile, in which case the results
        are dropped.
        """
        user_id = session.user_id
        self._generation += 1
        generation = self._generation
        await self._close_service()
        service = self.service_factory(session)
        self._service = service
        self._user_id = user_id
        self._set_state(SyncState.AUTHENTICATING)
        self.store.set_loading(True)

        items: list[LineItem] = []
        try:
            try:
                items = await service.fetch_cart(user_id)
            except CartSyncError as e:
                # Keep the guest cart for the next attempt; authentication goes on
                if self._is_current(generation):
                    logger.error("Failed to fetch cart for user %s: %s", sanitize_id_for_logging(user_id), e)
                    self.notifier.error(ERROR_CART_LOAD)
                return

            if not self._is_current(generation):
                return
            guest_items = await self.guest_cart.load()
            if guest_items and self._is_current(generation):
                self._set_state(SyncState.MERGING)
                items = await self._merge(service, user_id, items, guest_items, generation)
            if self._is_current(generation):
                self._merged_user_id = user_id
        finally:
            if self._is_current(generation):
                self.store.set_backend(RemoteBackend(service, user_id), items)
                self._set_state(SyncState.AUTHENTICATED)
                self.store.set_loading(False)
            else:
                logger.info("Sign-in for user %s was superseded; dropping its cart", sanitize_id_for_logging(user_id))

    async def _merge(
        self,
        service: RemoteCartService,
        user_id: str,
        remote_items: list[LineItem],
        guest_items: list[LineItem],
        generation: int,
    ) -> list[LineItem]:
        """
        Fold guest items into the remote cart by summing quantities.

        Items are sent independently; failures are counted, not raised.
        The guest cart is cleared and the remote cart refetched either way.
        """
        self.notifier.loading("Merging guest cart with your account...", key=MERGE_NOTIFICATION_KEY)

        calls = []
        for guest_item in guest_items:
            existing = find_by_product(remote_items, guest_item.product_id)
            if existing is not None and existing.line_item_id is not None:
                calls.append(service.update_item(existing.line_item_id, existing.quantity + guest_item.quantity))
            else:
                calls.append(service.create_item(user_id, guest_item.product_id, guest_item.quantity))

        results = await asyncio.gather(*calls, return_exceptions=True)

        failed = 0
        for guest_item, result in zip(guest_items, results):
            if isinstance(result, CartSyncError):
                failed += 1
                logger.warning(
                    "Merge of product %s for user %s failed: %s",
                    sanitize_id_for_logging(guest_item.product_id),
                    sanitize_id_for_logging(user_id),
                    result,
                )
            elif isinstance(result, Exception):
                failed += 1
                logger.error(
                    "Merge of product %s for user %s failed unexpectedly",
                    sanitize_id_for_logging(guest_item.product_id),
                    sanitize_id_for_logging(user_id),
                    exc_info=result,
                )
            elif isinstance(result, BaseException):
                raise result

        if not self._is_current(generation):
            return remote_items

        await self.guest_cart.clear()

        try:
            merged = await service.fetch_cart(user_id)
        except CartSyncError as e:
            logger.error("Refetch after merge failed for user %s: %s", sanitize_id_for_logging(user_id), e)
            self.notifier.error(ERROR_CART_LOAD, key=MERGE_NOTIFICATION_KEY)
            return remote_items

        if failed:
            self.notifier.warning(
                f"{failed} of {len(guest_items)} guest cart item(s) could not be merged.",
                key=MERGE_NOTIFICATION_KEY,
            )
        else:
            logger.info("Merged %d guest item(s) for user %s", len(guest_items), sanitize_id_for_logging(user_id))
            self.notifier.success("Guest cart merged!", key=MERGE_NOTIFICATION_KEY)
        return merged

    async def _close_service(self) -> None:
        service, self._service = self._service, None
        if service is None:
            return
        aclose = getattr(service, "aclose", None)
        if aclose is not None:
            await aclose()
