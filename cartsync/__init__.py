"""
cartsync - client-side cart and favorites synchronization

This package contains:
- cart: guest/remote cart backends, CartStateStore, SyncEngine
- favorites: FavoritesSyncEngine with optimistic toggling
- db: Upstash Redis client for guest carts
- http: storefront API client

Note: Imports are lazy so that importing cartsync does not pull in
the Redis and HTTP clients until they are used.
"""

__all__ = [
    "AuthSession",
    "Product",
    "CartStateStore",
    "SyncEngine",
    "SyncState",
    "GuestStore",
    "FavoritesSyncEngine",
]


def __getattr__(name):
    """Lazy attribute access."""
    if name in ("AuthSession", "Product"):
        from cartsync import models
        return getattr(models, name)
    elif name in ("CartStateStore", "SyncEngine", "SyncState", "GuestStore"):
        from cartsync import cart
        return getattr(cart, name)
    elif name == "FavoritesSyncEngine":
        from cartsync.favorites import FavoritesSyncEngine
        return FavoritesSyncEngine
    raise AttributeError(f"module 'cartsync' has no attribute '{name}'")
