"""Favorites package: collaborator client and sync engine."""
from .service import FavoriteEntry, FavoritesService
from .engine import FavoritesSyncEngine

__all__ = [
    "FavoriteEntry",
    "FavoritesService",
    "FavoritesSyncEngine",
]
