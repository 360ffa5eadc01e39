"""Cart line items and aggregates with Decimal-based pricing."""
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterable, Optional

from cartsync.models import Product
from cartsync.money import to_decimal, multiply


@dataclass
class LineItem:
    """
    One product-and-quantity entry within a cart.

    line_item_id is only set once the item is persisted remotely.
    quantity is always >= 1; removal is expressed by dropping the item.
    """
    product_id: str
    product_name: str
    unit_price: Decimal
    quantity: int
    photo_ref: Optional[str] = None
    category: Optional[str] = None
    line_item_id: Optional[str] = None

    def __post_init__(self):
        self.product_id = str(self.product_id)
        if self.line_item_id is not None:
            self.line_item_id = str(self.line_item_id)
        self.unit_price = to_decimal(self.unit_price)
        self.quantity = int(self.quantity)

    @property
    def ref(self) -> str:
        """Key used by mutations: line_item_id when persisted, else product_id."""
        return self.line_item_id if self.line_item_id is not None else self.product_id

    @property
    def total_price(self) -> Decimal:
        """Total price for all units."""
        return multiply(self.unit_price, self.quantity)

    def with_quantity(self, quantity: int) -> "LineItem":
        return replace(self, quantity=quantity)

    def to_dict(self) -> dict:
        """Convert to dictionary (wire and guest storage format)."""
        data = {
            "productId": self.product_id,
            "productName": self.product_name,
            "unitPrice": str(self.unit_price),
            "photoRef": self.photo_ref,
            "category": self.category,
            "quantity": self.quantity,
        }
        if self.line_item_id is not None:
            data["lineItemId"] = self.line_item_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        """
        Create from dictionary, accepting the storefront's legacy keys.

        A legacy cart entry is a product with a quantity: its `id` is the
        product id, and it has `name`/`price`/`photoUrl` instead of the
        line item fields.
        """
        return cls(
            product_id=data["productId"] if "productId" in data else data["id"],
            product_name=data.get("productName", data.get("name")) or "",
            unit_price=to_decimal(data.get("unitPrice", data.get("price"))),
            quantity=int(data["quantity"]),
            photo_ref=data.get("photoRef", data.get("photoUrl")),
            category=data.get("category"),
            line_item_id=data.get("lineItemId"),
        )

    @classmethod
    def from_product(cls, product: Product, quantity: int) -> "LineItem":
        """Build a guest line item from a product snapshot."""
        return cls(
            product_id=product.id,
            product_name=product.name,
            unit_price=product.price,
            quantity=quantity,
            photo_ref=product.photo_url,
            category=product.category,
        )


def item_count(items: Iterable[LineItem]) -> int:
    """Total number of units."""
    return sum(item.quantity for item in items)


def subtotal(items: Iterable[LineItem]) -> Decimal:
    """Sum of unit_price * quantity over all items."""
    return sum((item.total_price for item in items), Decimal("0"))


def find_by_product(items: Iterable[LineItem], product_id: str) -> Optional[LineItem]:
    product_id = str(product_id)
    return next((item for item in items if item.product_id == product_id), None)


def find_by_ref(items: Iterable[LineItem], ref: str) -> Optional[LineItem]:
    ref = str(ref)
    return next((item for item in items if item.ref == ref), None)
