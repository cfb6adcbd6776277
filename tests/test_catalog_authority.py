from datetime import datetime, timedelta, timezone

import pytest

from app.models.cart import CartItem
from app.models.coupon import Coupon
from app.repositories.catalog_authority import CatalogAuthority


def _line(pid, qty=1, price=1.0) -> CartItem:
    return CartItem(id=pid, name=pid, price=price, original_price=price, quantity=qty)


async def test_prices_come_from_catalog(catalog):
    row = await catalog.compute_price([_line("chips", 2, price=0.5), _line("cola")])

    assert row["success"] is True
    assert row["subtotal"] == 140
    assert row["delivery_fee"] == 10
    assert row["convenience_fee"] == 6
    assert row["total"] == 156


async def test_unknown_product_fails(catalog):
    row = await catalog.compute_price([_line("ghost")])

    assert row["success"] is False
    assert row["message"] == "Product not found: ghost"


async def test_coupon_below_minimum_is_not_applied(catalog):
    row = await catalog.compute_price([_line("cola")], coupon_code="SAVE10")
    assert row["coupon_discount"] == 0


async def test_coupon_applied_at_minimum(catalog):
    row = await catalog.compute_price([_line("chips")], coupon_code="save10")
    assert row["coupon_discount"] == 10
    assert row["total"] == 56


async def test_validate_coupon_messages(catalog):
    unknown = await catalog.validate_coupon("NOPE", 100)
    assert unknown == {
        "valid": False,
        "message": "Invalid or expired coupon",
        "discount_amount": 0,
        "coupon_code": "NOPE",
    }

    too_small = await catalog.validate_coupon("SAVE10", 20)
    assert too_small["valid"] is False
    assert too_small["message"] == "Order amount must be at least ₹50"

    ok = await catalog.validate_coupon(" save10 ", 60)
    assert ok["valid"] is True
    assert ok["discount_amount"] == 10
    assert ok["coupon_code"] == "SAVE10"


async def test_expired_and_future_coupons_are_invalid(settings):
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    catalog = CatalogAuthority(
        coupons=[
            Coupon(code="OLD", discount_value=5, remaining_uses=5, starts_at=now - timedelta(days=10),
                   expires_at=now - timedelta(days=1)),
            Coupon(code="SOON", discount_value=5, remaining_uses=5, starts_at=now + timedelta(days=1)),
        ],
        settings=settings,
        clock=lambda: now,
    )

    assert (await catalog.validate_coupon("OLD", 100))["valid"] is False
    assert (await catalog.validate_coupon("SOON", 100))["valid"] is False


async def test_usage_report_consumes_remaining_uses(catalog):
    await catalog.report_coupon_usage("HALF")

    coupon = catalog.get_coupon("HALF")
    assert coupon.remaining_uses == 0
    assert not coupon.is_active

    with pytest.raises(LookupError):
        await catalog.report_coupon_usage("HALF")


async def test_get_stock(catalog):
    assert await catalog.get_stock("cola") == 5
    assert await catalog.get_stock("ghost") == 0
