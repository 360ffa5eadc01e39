"""
Runtime settings for the cart sync engine.

All values come from the environment and are read once at import.
"""

import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


# Remote cart / favorites collaborator
CART_API_BASE_URL = os.environ.get("CART_API_BASE_URL", "http://localhost:8080/api")
CART_API_TIMEOUT = float(_int_env("CART_API_TIMEOUT", 10))

# Role allowed to own a cart and favorites
CART_REQUIRED_ROLE = os.environ.get("CART_REQUIRED_ROLE", "BUYER")

# Upstash Redis (guest cart storage) - standard env var names per docs
UPSTASH_REDIS_REST_URL = os.environ.get("UPSTASH_REDIS_REST_URL", "")
UPSTASH_REDIS_REST_TOKEN = os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")

# Abandoned guest carts expire after a week
GUEST_CART_TTL = _int_env("GUEST_CART_TTL", 7 * 24 * 3600)

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
CARTSYNC_ENV = os.environ.get("CARTSYNC_ENV", "development")
