"""
Storage clients.

Provides the singleton async Upstash Redis client that backs guest carts,
plus key and TTL conventions.
"""

from upstash_redis.asyncio import Redis as AsyncRedis

from cartsync import config

# Singleton instance
_redis_client: AsyncRedis | None = None


def get_redis() -> AsyncRedis:
    """
    Get async Upstash Redis client (singleton).

    Uses standard Upstash env var names:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN
    """
    global _redis_client

    if _redis_client is None:
        if not config.UPSTASH_REDIS_REST_URL or not config.UPSTASH_REDIS_REST_TOKEN:
            raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
        _redis_client = AsyncRedis(
            url=config.UPSTASH_REDIS_REST_URL,
            token=config.UPSTASH_REDIS_REST_TOKEN,
        )

    return _redis_client


class RedisKeys:
    """Redis key prefixes."""

    GUEST_CART = "guest_cart:"  # guest_cart:{profile_id}

    @staticmethod
    def guest_cart_key(profile_id: str) -> str:
        return f"{RedisKeys.GUEST_CART}{profile_id}"


class TTL:
    """Time-to-live constants for Redis keys (seconds)."""

    GUEST_CART = config.GUEST_CART_TTL
