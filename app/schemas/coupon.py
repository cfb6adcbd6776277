# app/schemas/coupon.py
from pydantic import ConfigDict
from sqlmodel import SQLModel, Field


class CouponApply(SQLModel):
    """
    Payload for applying a coupon to the current cart.
    Format is checked by the coupon validator, not here.
    """

    model_config = ConfigDict(extra="forbid")

    code: str = Field(max_length=100)


class CouponValidationResult(SQLModel):
    """
    Coupon authority verdict, after client-side checks.

    `discount_amount` never exceeds the subtotal sent for validation.
    """

    valid: bool
    message: str
    discount_amount: float = Field(default=0, ge=0)
    coupon_code: str
