"""Guest cart storage on Upstash Redis."""
import json
from typing import Any

from cartsync.db import RedisKeys, TTL, get_redis
from cartsync.errors import ERROR_STORAGE_UNAVAILABLE, StorageFailure
from cartsync.logging import get_logger, sanitize_id_for_logging
from .models import LineItem

logger = get_logger(__name__)


class GuestStore:
    """
    String-keyed get/set/remove store scoped to one browser profile.

    Any client error is raised as StorageFailure. There is no locking:
    concurrent writers to the same key resolve as last-write-wins.
    """

    def __init__(self, redis: Any = None, ttl: int | None = TTL.GUEST_CART) -> None:
        self._redis = redis  # Lazy initialization
        self.ttl = ttl

    @property
    def redis(self):
        """Get Redis client (lazy initialization)."""
        if self._redis is None:
            try:
                self._redis = get_redis()
            except ValueError as e:
                raise StorageFailure(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e
        return self._redis

    async def get(self, key: str) -> str | None:
        try:
            return await self.redis.get(key)
        except StorageFailure:
            raise
        except Exception as e:
            raise StorageFailure(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            if self.ttl:
                await self.redis.set(key, value, ex=self.ttl)
            else:
                await self.redis.set(key, value)
        except StorageFailure:
            raise
        except Exception as e:
            raise StorageFailure(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e

    async def remove(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except StorageFailure:
            raise
        except Exception as e:
            raise StorageFailure(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e


class GuestCartStorage:
    """
    The anonymous cart as a JSON array under one GuestStore key.

    Storage failures are logged and swallowed: the in-memory cart stays
    the only copy until the next successful write.
    """

    def __init__(self, store: GuestStore, profile_id: str) -> None:
        self.store = store
        self.profile_id = profile_id
        self.key = RedisKeys.guest_cart_key(profile_id)

    async def load(self) -> list[LineItem]:
        """Read the guest cart, empty if absent, unreadable or corrupted."""
        try:
            data = await self.store.get(self.key)
        except StorageFailure as e:
            logger.warning("Guest cart read failed for profile %s: %s", sanitize_id_for_logging(self.profile_id), e)
            return []

        if not data:
            return []

        try:
            return [LineItem.from_dict(raw) for raw in json.loads(data) if int(raw.get("quantity", 0)) > 0]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            # Corrupted data - clear it and start empty
            logger.warning("Corrupted guest cart for profile %s: %s", sanitize_id_for_logging(self.profile_id), e)
            await self.clear()
            return []

    async def save(self, items: list[LineItem]) -> bool:
        """Persist items; an empty cart removes the key. Returns False on storage failure."""
        if not items:
            return await self.clear()
        try:
            await self.store.set(self.key, json.dumps([item.to_dict() for item in items]))
            return True
        except StorageFailure as e:
            logger.warning("Guest cart write failed for profile %s: %s", sanitize_id_for_logging(self.profile_id), e)
            return False

    async def clear(self) -> bool:
        try:
            await self.store.remove(self.key)
            return True
        except StorageFailure as e:
            logger.warning("Guest cart clear failed for profile %s: %s", sanitize_id_for_logging(self.profile_id), e)
            return False
