"""RemoteCartService - the user's server-side cart over HTTP."""
from cartsync.errors import ERROR_INVALID_QUANTITY, NetworkFailure, ValidationFailure
from cartsync.http import ApiClient
from cartsync.logging import get_logger, sanitize_id_for_logging
from .models import LineItem

logger = get_logger(__name__)


class RemoteCartService:
    """
    Cart line-item CRUD for one user.

    Create is idempotent by product on the server side: posting a product
    that already has a line item bumps its quantity. Delete of an unknown
    line item succeeds.
    """

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def aclose(self) -> None:
        await self.api.aclose()

    async def fetch_cart(self, user_id: str) -> list[LineItem]:
        """Get the user's cart, in server order."""
        data = await self.api.request("GET", f"/cart/user/{user_id}")
        try:
            return [LineItem.from_dict(raw) for raw in data or []]
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Malformed cart payload for user %s: %s", sanitize_id_for_logging(user_id), e)
            raise NetworkFailure("Malformed cart payload") from e

    async def create_item(self, user_id: str, product_id: str, quantity: int) -> None:
        """
        Create a line item (or bump an existing one for the same product).

        The response body is not read; callers refetch the cart.
        """
        _require_positive(quantity)
        await self.api.request(
            "POST",
            "/cart",
            json={"userId": user_id, "productId": product_id, "quantity": quantity},
        )

    async def update_item(self, line_item_id: str, quantity: int) -> None:
        """Set a line item's quantity. Non-positive quantities go through delete_item."""
        _require_positive(quantity)
        await self.api.request(
            "PUT",
            f"/cart/items/{line_item_id}",
            json={"quantity": quantity},
        )

    async def delete_item(self, line_item_id: str) -> None:
        """Delete a line item; an unknown id is a no-op success."""
        await self.api.request("DELETE", f"/cart/items/{line_item_id}", allow_not_found=True)


def _require_positive(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationFailure(ERROR_INVALID_QUANTITY)
