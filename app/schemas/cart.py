# app/schemas/cart.py
from typing import Any

from pydantic import ConfigDict
from sqlmodel import SQLModel, Field

from app.models.cart import CartItem
from app.schemas.eligibility import EligibilityDecision
from app.schemas.notice import Notice
from app.schemas.pricing import PriceBreakdown, ReconciliationStatus


class CartItemCandidate(SQLModel):
    """
    Payload for adding to cart.

    Deliberately loose: required fields and numeric values are checked by
    the cart store, which reports a validation notice instead of rejecting
    the request body outright. Numbers are typed Any so a malformed price
    reaches the store rather than failing request parsing.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    name: str | None = None
    price: Any = None
    original_price: Any = None
    quantity: Any = None
    image: str | None = None
    image_url: str | list[str] | None = None
    category: str | None = None
    category_id: str | None = None
    description: str | None = None
    stock_quantity: Any = None


class CartItemUpdate(SQLModel):
    """
    Payload for updating quantity of a cart item.
    A quantity <= 0 removes the line.
    """

    model_config = ConfigDict(extra="forbid")

    quantity: int


class CartSnapshot(SQLModel):
    """
    Immutable copy of the cart handed to subscribers and to reconciliation.
    """

    items: list[CartItem] = Field(default_factory=list)
    coupon_code: str | None = None
    coupon_discount: float = 0.0

    def pricing_key(self) -> tuple:
        """
        Value identity of what the pricing authority sees: item ids with
        quantities, in cart order, plus the coupon code.
        """
        return (
            tuple((it.id, it.quantity) for it in self.items),
            self.coupon_code,
        )

    def category_ids(self) -> set[str]:
        return {it.category_id for it in self.items if it.category_id}


class CartEstimate(SQLModel):
    """
    Optimistic local total computed from listed prices.

    For instant feedback only. Checkout never accepts this type; it
    requires a PriceBreakdown from the pricing authority.
    """

    subtotal: float
    item_count: int


class CartView(SQLModel):
    """
    Full cart response model.
    """

    items: list[CartItem]
    item_count: int
    coupon_code: str | None
    coupon_discount: float
    estimate: CartEstimate
    breakdown: PriceBreakdown
    price_status: ReconciliationStatus
    eligibility: EligibilityDecision
    notices: list[Notice] = Field(default_factory=list)
