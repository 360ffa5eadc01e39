"""Session and product models - Pydantic models shared by both engines."""
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cartsync import config
from cartsync.money import to_decimal as _to_decimal


class Product(BaseModel):
    """Product snapshot as handed over by the catalog pages."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    name: str = ""
    price: Decimal = Decimal("0")
    photo_url: Optional[str] = Field(default=None, alias="photoUrl")
    category: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def convert_id_to_str(cls, v):
        # Catalog ids arrive as ints or strings; membership compares strings
        return str(v) if v is not None else v

    @field_validator("price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v)


class AuthSession(BaseModel):
    """
    Authentication state as resolved by the auth layer.

    An anonymous session has no user_id. While is_loading is set the
    engines wait for the final state.
    """

    user_id: Optional[str] = None
    role: Optional[str] = None
    token: Optional[str] = None
    is_loading: bool = False

    @field_validator("user_id", mode="before")
    @classmethod
    def convert_user_id_to_str(cls, v):
        return str(v) if v is not None else v

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def has_cart_role(self) -> bool:
        """True when the session may own a cart and favorites."""
        return self.is_authenticated and (self.role or "").upper() == config.CART_REQUIRED_ROLE.upper()

    @classmethod
    def anonymous(cls) -> "AuthSession":
        return cls()
