# app/repositories/catalog_authority.py
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Sequence

from app.core.config import Settings, get_settings
from app.models.cart import CartItem
from app.models.coupon import Coupon
from app.models.product import Product

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CatalogAuthority:
    """
    In-process pricing, coupon and stock authority.

    Applies the same rules as the hosted functions
    (calculate_order_total_secure / validate_coupon / update_coupon_usage)
    against an in-memory catalog. Used when Supabase is not configured
    and as the reference authority in tests.

    Pricing rules:
      - subtotal uses catalog prices; client-sent prices are ignored
      - delivery fee for a non-empty cart below the free-delivery threshold
      - convenience fee for any non-empty cart
      - coupon discount capped at the subtotal
      - total = max(0, subtotal + fees - discount)
    """

    def __init__(
        self,
        products: Iterable[Product] = (),
        coupons: Iterable[Coupon] = (),
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings or get_settings()
        self._clock = clock
        self._products: dict[str, Product] = {p.id: p for p in products}
        self._coupons: dict[str, Coupon] = {c.code.upper(): c for c in coupons}

    # ----- Catalog maintenance -----

    def add_product(self, product: Product) -> None:
        self._products[product.id] = product

    def add_coupon(self, coupon: Coupon) -> None:
        self._coupons[coupon.code.upper()] = coupon

    def get_product(self, product_id: str) -> Product | None:
        return self._products.get(product_id)

    def get_coupon(self, code: str) -> Coupon | None:
        return self._coupons.get(code.upper())

    def list_products(self) -> list[Product]:
        return list(self._products.values())

    def _redeemable_coupon(self, code: str | None) -> Coupon | None:
        if not code:
            return None
        coupon = self.get_coupon(code)
        if coupon is None or not coupon.is_redeemable(self._clock()):
            return None
        return coupon

    # ----- Pricing -----

    async def compute_price(
        self,
        items: Sequence[CartItem],
        coupon_code: str | None = None,
    ) -> Mapping[str, Any]:
        subtotal = 0.0
        for item in items:
            product = self._products.get(item.id)
            if product is None or product.price is None:
                return {
                    "success": False,
                    "subtotal": 0,
                    "delivery_fee": 0,
                    "convenience_fee": 0,
                    "coupon_discount": 0,
                    "total": 0,
                    "message": f"Product not found: {item.id}",
                }
            subtotal += product.price * item.quantity
        subtotal = round(subtotal, 2)

        if subtotal >= self.settings.FREE_DELIVERY_THRESHOLD or subtotal <= 0:
            delivery_fee = 0.0
        else:
            delivery_fee = self.settings.DELIVERY_FEE

        convenience_fee = self.settings.CONVENIENCE_FEE if subtotal > 0 else 0.0

        discount = 0.0
        coupon = self._redeemable_coupon(coupon_code)
        if coupon is not None and subtotal >= coupon.min_order_amount:
            discount = coupon.discount_for(subtotal)

        total = round(max(0.0, subtotal + delivery_fee + convenience_fee - discount), 2)

        return {
            "success": True,
            "subtotal": subtotal,
            "delivery_fee": delivery_fee,
            "convenience_fee": convenience_fee,
            "coupon_discount": discount,
            "total": total,
            "message": "Price calculation successful",
        }

    # ----- Coupons -----

    async def validate_coupon(self, code: str, order_amount: float) -> Mapping[str, Any]:
        canonical = code.strip().upper()
        coupon = self._redeemable_coupon(canonical)

        if coupon is None:
            return {
                "valid": False,
                "message": "Invalid or expired coupon",
                "discount_amount": 0,
                "coupon_code": canonical,
            }

        if order_amount < coupon.min_order_amount:
            return {
                "valid": False,
                "message": f"Order amount must be at least ₹{coupon.min_order_amount:g}",
                "discount_amount": 0,
                "coupon_code": canonical,
            }

        return {
            "valid": True,
            "message": "Coupon applied successfully",
            "discount_amount": coupon.discount_for(order_amount),
            "coupon_code": coupon.code.upper(),
        }

    async def report_coupon_usage(self, coupon_code: str) -> None:
        coupon = self.get_coupon(coupon_code)
        if coupon is None or coupon.remaining_uses <= 0:
            raise LookupError(f"No remaining uses for coupon {coupon_code}")

        coupon.remaining_uses -= 1
        if coupon.remaining_uses == 0:
            coupon.is_active = False
        logger.info("Coupon %s used, %d uses left", coupon.code, coupon.remaining_uses)

    # ----- Stock -----

    async def get_stock(self, product_id: str) -> int:
        product = self._products.get(product_id)
        return product.stock_quantity if product else 0
