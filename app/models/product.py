# app/models/product.py
from sqlmodel import SQLModel, Field


class Product(SQLModel):
    """
    Catalog entry as listed by the storefront.

    Matches the hosted `products` table:
      - id, name, description, price, original_price, image_url[],
        category_id, is_featured, stock_quantity
    Plus optional `tags` used for preference tracking.
    """

    id: str = Field(
        min_length=1,
        description="Product id (uuid string on the hosted side)",
    )

    name: str = Field(
        min_length=1,
        description="Display name of the snack/product",
    )

    description: str | None = Field(
        default=None,
        description="Optional long description",
    )

    price: float | None = Field(
        default=None,
        description="Unit price (INR). Products without a price are not ranked.",
    )

    original_price: float | None = Field(
        default=None,
        description="Pre-discount price for discounted products",
    )

    image_url: list[str] = Field(
        default_factory=list,
        description="Image URLs; the first one is used in the cart",
    )

    category_id: str | None = None

    is_featured: bool = Field(
        default=False,
        description="Whether the product is featured on the storefront",
    )

    stock_quantity: int = Field(
        default=0,
        ge=0,
        description="How many units currently in stock",
    )

    tags: list[str] = Field(default_factory=list)
