"""
Cart sync errors.

Message constants shared by engines and notifications, plus the exception
taxonomy raised by stores and collaborators.
"""

# Cart messages
ERROR_CART_LOAD = "Could not load your cart from the server."
ERROR_CART_ADD = "Could not add item to cart."
ERROR_CART_REMOVE = "Could not remove item from cart."
ERROR_CART_UPDATE = "Could not update quantity."
ERROR_CART_CLEAR = "Could not clear your cart."
ERROR_ITEM_NOT_IN_CART = "That item is no longer in your cart."
ERROR_BUYERS_ONLY = "Only buyers can add items to a cart."
ERROR_INVALID_QUANTITY = "Quantity must be a positive integer"

# Favorites messages
ERROR_FAVORITES_LOAD = "Could not load your favorites."
ERROR_FAVORITES_UPDATE = "Could not update your favorites. Please try again."
ERROR_FAVORITES_INVALID_PRODUCT = "Cannot update favorites: invalid product data."
ERROR_FAVORITES_SIGN_IN = "Please sign in as a Buyer to manage your favorites."

# Storage
ERROR_STORAGE_UNAVAILABLE = "Guest cart storage unavailable"


class CartSyncError(Exception):
    """Base class for all cart sync failures."""


class NetworkFailure(CartSyncError):
    """Collaborator unreachable or answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ValidationFailure(CartSyncError):
    """Input rejected before reaching any backend."""


class StorageFailure(CartSyncError):
    """Guest storage unavailable or over quota."""


class AuthorizationFailure(CartSyncError):
    """Mutation attempted without the required session or role."""
