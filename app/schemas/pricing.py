# app/schemas/pricing.py
from typing import Literal

from sqlmodel import SQLModel, Field

from app.schemas.notice import Notice

# idle        : nothing requested yet
# pending     : newest request still in flight
# ready       : newest request resolved, breakdown is authoritative
# unavailable : newest request failed, breakdown is the zeroed fallback
ReconciliationStatus = Literal["idle", "pending", "ready", "unavailable"]


class PriceBreakdown(SQLModel):
    """
    Authoritative price breakdown from the pricing authority.

    Invariants:
      - total == subtotal + delivery_fee + convenience_fee - applied_discount
      - applied_discount <= subtotal
      - remaining_for_free_delivery == max(0, free_delivery_threshold - subtotal)
    """

    subtotal: float = Field(default=0, ge=0)
    delivery_fee: float = Field(default=0, ge=0)
    convenience_fee: float = Field(default=0, ge=0)
    applied_discount: float = Field(default=0, ge=0)
    total: float = Field(default=0, ge=0)
    free_delivery_threshold: float = Field(default=149, ge=0)
    remaining_for_free_delivery: float = Field(default=149, ge=0)

    is_fallback: bool = Field(
        default=False,
        description="True for the zeroed breakdown shown while the authority is unavailable",
    )

    @classmethod
    def zeroed(cls, free_delivery_threshold: float, *, is_fallback: bool = True) -> "PriceBreakdown":
        return cls(
            free_delivery_threshold=free_delivery_threshold,
            remaining_for_free_delivery=free_delivery_threshold,
            is_fallback=is_fallback,
        )


class CheckoutLine(SQLModel):
    product_id: str
    name: str
    quantity: int


class CheckoutHandoff(SQLModel):
    """
    Validated payload handed to the payment step.

    `breakdown` comes from a reconciliation issued by the checkout itself,
    so the total handed off matches the cart being submitted.
    """

    items: list[CheckoutLine]
    coupon_code: str | None = None
    breakdown: PriceBreakdown


class CheckoutResult(SQLModel):
    """
    Outcome of a checkout attempt. `handoff` is set only on success.
    """

    notice: Notice
    handoff: CheckoutHandoff | None = None
