"""Cart package: models, storage, backends, state store and sync engine."""
from .models import LineItem, item_count, subtotal
from .storage import GuestStore, GuestCartStorage
from .remote import RemoteCartService
from .backends import CartBackend, LocalBackend, RemoteBackend, RestrictedBackend
from .state import CartStateStore
from .sync import SyncEngine, SyncState

__all__ = [
    "LineItem",
    "item_count",
    "subtotal",
    "GuestStore",
    "GuestCartStorage",
    "RemoteCartService",
    "CartBackend",
    "LocalBackend",
    "RemoteBackend",
    "RestrictedBackend",
    "CartStateStore",
    "SyncEngine",
    "SyncState",
]
