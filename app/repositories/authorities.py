# app/repositories/authorities.py
from typing import Any, Mapping, Protocol, Sequence

from app.models.cart import CartItem


class PricingAuthority(Protocol):
    """
    Remote source of truth for order prices.

    Must be idempotent for identical input and must enforce
    discount <= subtotal on its own. Returns the raw price row:
      success, subtotal, delivery_fee, convenience_fee,
      coupon_discount, total, message
    """

    async def compute_price(
        self,
        items: Sequence[CartItem],
        coupon_code: str | None = None,
    ) -> Mapping[str, Any]: ...


class CouponAuthority(Protocol):
    """
    Remote coupon verdicts. Returns the raw verdict:
      valid, message, discount_amount, coupon_code
    """

    async def validate_coupon(self, code: str, order_amount: float) -> Mapping[str, Any]: ...

    async def report_coupon_usage(self, coupon_code: str) -> None: ...


class StockAuthority(Protocol):
    async def get_stock(self, product_id: str) -> int: ...
