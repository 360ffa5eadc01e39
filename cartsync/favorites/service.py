"""Favorites collaborator.

Session-scoped favorites list on the storefront API. The server answers
POST with no body, so callers keep their own product snapshot.
"""

from dataclasses import dataclass

from cartsync.errors import NetworkFailure
from cartsync.http import ApiClient
from cartsync.logging import get_logger
from cartsync.models import Product

logger = get_logger(__name__)


@dataclass
class FavoriteEntry:
    """Favorite product with the snapshot shown in the UI."""

    product_id: str
    product: Product

    @classmethod
    def from_product(cls, product: Product) -> "FavoriteEntry":
        return cls(product_id=str(product.id), product=product)


class FavoritesService:
    """Favorites operations for the caller's session."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def aclose(self) -> None:
        await self.api.aclose()

    async def list_favorites(self) -> list[FavoriteEntry]:
        """Get the session's favorites.

        Returns:
            List of FavoriteEntry, duplicates dropped

        """
        data = await self.api.request("GET", "/users/me/favorites")
        entries: list[FavoriteEntry] = []
        seen: set[str] = set()
        try:
            for raw in data or []:
                entry = FavoriteEntry.from_product(Product.model_validate(raw))
                if entry.product_id not in seen:
                    seen.add(entry.product_id)
                    entries.append(entry)
        except ValueError as e:
            logger.error("Malformed favorites payload: %s", type(e).__name__)
            raise NetworkFailure("Malformed favorites payload") from e
        return entries

    async def add(self, product_id: str) -> None:
        await self.api.request("POST", f"/users/me/favorites/{product_id}")

    async def remove(self, product_id: str) -> None:
        await self.api.request("DELETE", f"/users/me/favorites/{product_id}")
