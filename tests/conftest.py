import asyncio

import pytest

from app.core.config import Settings
from app.core.throttle import ThrottleRegistry
from app.models.coupon import Coupon
from app.models.product import Product
from app.repositories.catalog_authority import CatalogAuthority

SPECIAL_CATEGORY = "111c97d8-a40e-4590-adaf-74ed21dba271"


class ManualClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def price_row(subtotal, delivery_fee=0.0, convenience_fee=6.0, coupon_discount=0.0, **overrides):
    row = {
        "success": True,
        "subtotal": subtotal,
        "delivery_fee": delivery_fee,
        "convenience_fee": convenience_fee,
        "coupon_discount": coupon_discount,
        "total": round(subtotal + delivery_fee + convenience_fee - coupon_discount, 2),
        "message": "Price calculation successful",
    }
    row.update(overrides)
    return row


class GatedPricingAuthority:
    """
    Pricing authority whose responses are released by the test, in any
    order, to simulate slow and out-of-order replies.
    """

    def __init__(self):
        self.calls: list[dict] = []

    async def compute_price(self, items, coupon_code=None):
        call = {"items": list(items), "coupon_code": coupon_code, "gate": asyncio.Event(), "row": None}
        self.calls.append(call)
        await call["gate"].wait()
        return call["row"]

    def resolve(self, index: int, row) -> None:
        self.calls[index]["row"] = row
        self.calls[index]["gate"].set()


class FailingAuthority:
    """Every remote call raises the given exception."""

    def __init__(self, exc: Exception):
        self.exc = exc
        self.calls = 0

    async def compute_price(self, items, coupon_code=None):
        self.calls += 1
        raise self.exc

    async def validate_coupon(self, code, order_amount):
        self.calls += 1
        raise self.exc

    async def report_coupon_usage(self, coupon_code):
        raise self.exc

    async def get_stock(self, product_id):
        self.calls += 1
        raise self.exc


class SlowAuthority:
    """Never answers within any reasonable timeout."""

    async def compute_price(self, items, coupon_code=None):
        await asyncio.sleep(10)

    async def validate_coupon(self, code, order_amount):
        await asyncio.sleep(10)


async def wait_until(predicate, attempts: int = 100) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


def as_candidate(product: Product, **overrides) -> dict:
    data = {
        "id": product.id,
        "name": product.name,
        "price": product.price,
        "original_price": product.original_price,
        "image_url": product.image_url,
        "category_id": product.category_id,
        "stock_quantity": product.stock_quantity,
    }
    data.update(overrides)
    return data


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, SUPABASE_URL=None, SUPABASE_KEY=None)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def throttle(clock) -> ThrottleRegistry:
    return ThrottleRegistry(clock=clock)


@pytest.fixture
def products() -> dict[str, Product]:
    items = [
        Product(
            id="chips",
            name="Masala Chips",
            price=50,
            original_price=60,
            image_url=["https://cdn.example/chips.png", "https://cdn.example/chips-2.png"],
            category_id="cat-savory",
            stock_quantity=20,
        ),
        Product(
            id="cola",
            name="Cola",
            price=40,
            image_url=["https://cdn.example/cola.png"],
            category_id="cat-drinks",
            stock_quantity=5,
        ),
        Product(
            id="cake",
            name="Midnight Cake",
            price=149,
            category_id=SPECIAL_CATEGORY,
            stock_quantity=3,
            is_featured=True,
        ),
        Product(
            id="cookies",
            name="Cookie Box",
            price=148.99,
            category_id="cat-sweet",
            stock_quantity=0,
        ),
    ]
    return {p.id: p for p in items}


@pytest.fixture
def coupons() -> list[Coupon]:
    return [
        Coupon(
            code="SAVE10",
            discount_type="fixed",
            discount_value=10,
            max_uses=100,
            remaining_uses=100,
            min_order_amount=50,
        ),
        Coupon(
            code="HALF",
            discount_type="percentage",
            discount_value=50,
            max_uses=1,
            remaining_uses=1,
        ),
        Coupon(
            code="BIG500",
            discount_type="fixed",
            discount_value=500,
            max_uses=10,
            remaining_uses=10,
        ),
        Coupon(
            code="PCT20",
            discount_type="percentage",
            discount_value=20,
            max_uses=50,
            remaining_uses=50,
        ),
    ]


@pytest.fixture
def catalog(products, coupons, settings) -> CatalogAuthority:
    return CatalogAuthority(products.values(), coupons, settings=settings)
