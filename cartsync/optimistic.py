"""
Optimistic mutation runner.

One flow for every entity: apply a local patch, attempt the remote call,
then either accept the result or force a refetch. Cart and favorites plug
different steps in:

    cart:      no patch, on_success replaces state with locally computed
               items (remote writes return None and are reloaded by the
               store), no refetch on failure (state was never touched)
    favorites: patch flips membership, no on_success, refetch on failure
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from cartsync.errors import CartSyncError
from cartsync.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class OptimisticMutation(Generic[T]):
    """Steps of one mutation."""
    name: str
    attempt: Callable[[], Awaitable[T]]
    patch: Optional[Callable[[], None]] = None
    on_success: Optional[Callable[[T], Any]] = None
    refetch: Optional[Callable[[], Awaitable[Any]]] = None


@dataclass
class MutationOutcome(Generic[T]):
    """Result of run_optimistic: ok with a value, or the error that stopped it."""
    ok: bool
    value: Optional[T] = None
    error: Optional[CartSyncError] = None


async def run_optimistic(mutation: OptimisticMutation[T]) -> MutationOutcome[T]:
    """
    Run a mutation.

    Only CartSyncError is treated as an expected failure; anything else
    propagates after the refetch has restored server truth.
    """
    if mutation.patch is not None:
        mutation.patch()

    try:
        value = await mutation.attempt()
    except CartSyncError as e:
        logger.warning("%s failed: %s", mutation.name, e)
        await _refetch(mutation)
        return MutationOutcome(ok=False, error=e)
    except Exception:
        logger.error("%s failed unexpectedly", mutation.name, exc_info=True)
        await _refetch(mutation)
        raise

    if mutation.on_success is not None:
        mutation.on_success(value)
    return MutationOutcome(ok=True, value=value)


async def _refetch(mutation: OptimisticMutation) -> None:
    if mutation.refetch is None:
        return
    try:
        await mutation.refetch()
    except CartSyncError as e:
        # The refetch owner reports its own failure; nothing left to roll back with
        logger.error("Refetch after %s failed: %s", mutation.name, e)
