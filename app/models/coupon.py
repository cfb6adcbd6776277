# app/models/coupon.py
from datetime import datetime, timezone
from typing import Literal

from pydantic import field_validator
from sqlmodel import SQLModel, Field

DiscountType = Literal["percentage", "fixed"]


class Coupon(SQLModel):
    """
    Coupon record as stored by the coupon authority.

    Matches the hosted `coupons` table:
      - code, description, discount_type, discount_value, max_uses,
        remaining_uses, min_order_amount, starts_at, expires_at, is_active
    """

    code: str = Field(
        min_length=3,
        max_length=20,
        description="Canonical (uppercase) coupon code",
    )

    description: str | None = None

    discount_type: DiscountType = "fixed"

    discount_value: float = Field(
        ge=0,
        description="Percent (0-100) or fixed INR amount",
    )

    max_uses: int = Field(default=0, ge=0)
    remaining_uses: int = Field(default=0, ge=0)

    min_order_amount: float = Field(
        default=0,
        ge=0,
        description="Subtotal required before the coupon applies",
    )

    starts_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    expires_at: datetime | None = None

    is_active: bool = True

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("code cannot be empty")
        return v

    def is_redeemable(self, now: datetime) -> bool:
        if not self.is_active or self.remaining_uses <= 0:
            return False
        if self.starts_at > now:
            return False
        return self.expires_at is None or self.expires_at > now

    def discount_for(self, subtotal: float) -> float:
        """
        Discount for `subtotal`, never more than the subtotal itself.
        """
        if self.discount_type == "percentage":
            amount = subtotal * self.discount_value / 100
        else:
            amount = self.discount_value
        return round(min(amount, subtotal), 2)
