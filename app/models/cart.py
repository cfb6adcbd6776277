# app/models/cart.py
from sqlmodel import SQLModel, Field


class CartItem(SQLModel):
    """
    One line of the client-held cart.

    Identity is `id` (stable product key). One cart never holds two lines
    with the same id; adding again raises the quantity instead.
    """

    id: str = Field(
        min_length=1,
        description="Stable product key",
    )

    name: str = Field(
        min_length=1,
        description="Display name of the product",
    )

    price: float = Field(
        gt=0,
        description="Listed unit price (display/estimate only, never trusted for checkout)",
    )

    original_price: float = Field(
        gt=0,
        description="Pre-discount unit price, >= price",
    )

    quantity: int = Field(
        default=1,
        ge=1,
        description="Must be >= 1",
    )

    image: str = Field(
        default="",
        description="Exactly one resolved image URL",
    )

    category: str | None = None
    category_id: str | None = Field(
        default=None,
        description="Used by the category eligibility gate",
    )
    description: str | None = None

    stock_quantity: int | None = Field(
        default=None,
        ge=0,
        description="Units in stock as listed; None when unknown",
    )

    @property
    def line_total(self) -> float:
        return self.price * self.quantity
