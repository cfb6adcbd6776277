import pytest

from app.core.errors import UnavailableError
from app.services.checkout_session import CheckoutSession, SessionRegistry
from tests.conftest import FailingAuthority, ManualClock, as_candidate


@pytest.fixture
def session(catalog, settings, throttle) -> CheckoutSession:
    return CheckoutSession(
        "session-1",
        pricing=catalog,
        coupons=catalog,
        stock=catalog,
        settings=settings,
        throttle=throttle,
    )


async def test_mutations_trigger_background_reconciliation(session, products):
    await session.add_item(as_candidate(products["chips"]))
    await session.add_item(as_candidate(products["cola"]))
    await session.settle()

    assert session.reconciler.issued_seq == 2
    assert session.reconciler.status == "ready"
    assert session.reconciler.breakdown.subtotal == 90


async def test_view_combines_estimate_breakdown_and_eligibility(session, products):
    await session.add_item(as_candidate(products["chips"], price=1))
    await session.add_item(as_candidate(products["cola"]))

    view = await session.view()

    assert view.item_count == 2
    assert view.estimate.subtotal == 41
    assert view.breakdown.subtotal == 90
    assert view.breakdown.total == 106
    assert view.price_status == "ready"
    assert view.eligibility.checkout_enabled
    assert view.notices == []


async def test_unchanged_cart_is_not_repriced(session, products):
    await session.add_item(as_candidate(products["chips"]))
    await session.view()
    issued = session.reconciler.issued_seq

    session.update_quantity("chips", 1)
    await session.view()

    assert session.reconciler.issued_seq == issued


async def test_sold_out_listing_is_rechecked(session, catalog, products):
    catalog.add_product(products["cookies"].model_copy(update={"stock_quantity": 4}))

    notice = await session.add_item(as_candidate(products["cookies"]))

    assert notice.ok
    assert session.store.get_item("cookies").stock_quantity == 4


async def test_sold_out_listing_confirmed_by_authority(session, products):
    notice = await session.add_item(as_candidate(products["cookies"]))

    assert notice.code == "validation_error"
    assert notice.message == "Cookie Box is out of stock"
    assert session.store.is_empty()


async def test_stock_authority_failure_is_reported(catalog, settings, products):
    session = CheckoutSession(
        "s", pricing=catalog, coupons=catalog, stock=FailingAuthority(ConnectionError("down")), settings=settings
    )

    notice = await session.add_item(as_candidate(products["cookies"]))

    assert notice.code == "unavailable"


async def test_apply_coupon_folds_into_next_breakdown(session, products):
    await session.add_item(as_candidate(products["chips"]))
    await session.add_item(as_candidate(products["cola"]))

    notice = await session.apply_coupon("save10")
    view = await session.view()

    assert notice.level == "success"
    assert notice.message == "Coupon applied! You saved ₹10.00"
    assert view.coupon_code == "SAVE10"
    assert view.breakdown.applied_discount == 10
    assert view.breakdown.total == 96


async def test_percentage_coupon_follows_quantity_changes(session, products):
    await session.add_item(as_candidate(products["chips"]))
    await session.add_item(as_candidate(products["cola"]))

    notice = await session.apply_coupon("PCT20")
    assert notice.message == "Coupon applied! You saved ₹18.00"

    session.update_quantity("chips", 4)
    view = await session.view()

    assert view.breakdown.subtotal == 240
    assert view.breakdown.applied_discount == 48
    assert view.coupon_discount == view.breakdown.applied_discount


async def test_coupon_saving_reported_from_authoritative_price(session, products):
    await session.add_item(as_candidate(products["chips"], quantity=3))
    await session.add_item(as_candidate(products["cola"]))

    # HALF has a single use, which this application consumes.
    notice = await session.apply_coupon("HALF")
    view = await session.view()

    assert notice.level == "info"
    assert "95" not in notice.message
    assert view.coupon_code == "HALF"
    assert view.breakdown.applied_discount == 0
    assert view.coupon_discount == 0


async def test_apply_coupon_on_empty_cart(session):
    notice = await session.apply_coupon("SAVE10")

    assert notice.code == "validation_error"
    assert notice.message == "Add items to your cart before applying a coupon"


async def test_apply_coupon_bad_format(session, products):
    await session.add_item(as_candidate(products["chips"]))

    notice = await session.apply_coupon("bad code!")

    assert notice.code == "format_error"
    assert session.store.coupon_code is None


async def test_apply_coupon_throttled(session, products):
    await session.add_item(as_candidate(products["chips"]))
    await session.apply_coupon("NOPE1")

    notice = await session.apply_coupon("NOPE2")

    assert notice.code == "throttled"
    assert notice.retry_after_ms == 2000


async def test_remove_coupon(session, products):
    await session.add_item(as_candidate(products["chips"]))
    await session.apply_coupon("SAVE10")

    session.remove_coupon()
    view = await session.view()

    assert view.coupon_code is None
    assert view.breakdown.applied_discount == 0


async def test_checkout_blocked_by_eligibility(session, products):
    await session.add_item(as_candidate(products["chips"]))

    result = await session.checkout()

    assert result.handoff is None
    assert result.notice.code == "validation_error"
    assert result.notice.message == "1 of 2 required categories selected - Add more items!"


async def test_checkout_empty_cart(session):
    result = await session.checkout()
    assert result.notice.message == "Your cart is empty"


async def test_checkout_hands_off_authoritative_total(session, products):
    await session.add_item(as_candidate(products["chips"], price=1, quantity=2))
    await session.add_item(as_candidate(products["cola"]))

    result = await session.checkout()

    assert result.notice.level == "success"
    handoff = result.handoff
    assert [(line.product_id, line.quantity) for line in handoff.items] == [("chips", 2), ("cola", 1)]
    assert handoff.breakdown.subtotal == 140
    assert handoff.breakdown.total == 156
    assert not handoff.breakdown.is_fallback


async def test_special_category_checks_out_alone(session, products):
    await session.add_item(as_candidate(products["cake"]))

    result = await session.checkout()

    assert result.handoff is not None
    assert result.handoff.breakdown.delivery_fee == 0


async def test_double_checkout_is_throttled(session, clock, products):
    await session.add_item(as_candidate(products["chips"]))
    await session.add_item(as_candidate(products["cola"]))

    first = await session.checkout()
    clock.advance(1000)
    second = await session.checkout()

    assert first.handoff is not None
    assert second.handoff is None
    assert second.notice.code == "throttled"
    assert second.notice.retry_after_ms == 4000


async def test_pricing_outage_blocks_checkout(catalog, settings, products):
    session = CheckoutSession(
        "s",
        pricing=FailingAuthority(UnavailableError("pricing down")),
        coupons=catalog,
        stock=catalog,
        settings=settings,
    )
    await session.add_item(as_candidate(products["chips"]))
    await session.add_item(as_candidate(products["cola"]))

    view = await session.view()
    result = await session.checkout()

    assert view.price_status == "unavailable"
    assert view.breakdown.is_fallback
    assert view.breakdown.total == 0
    assert any(n.code == "unavailable" for n in view.notices)
    assert result.handoff is None
    assert result.notice.code == "unavailable"


def test_registry_reuses_sessions(catalog, settings):
    registry = SessionRegistry(catalog, catalog, catalog, settings)

    first = registry.get("abc")

    assert registry.get("abc") is first
    assert registry.get("xyz") is not first
    assert len(registry) == 2

    registry.drop("abc")
    assert registry.get("abc") is not first


def test_registry_expires_idle_sessions(catalog, settings):
    clock = ManualClock()
    settings = settings.model_copy(update={"SESSION_IDLE_TIMEOUT_SECONDS": 60})
    registry = SessionRegistry(catalog, catalog, catalog, settings, clock=clock)

    registry.get("a")
    registry.get("b")
    clock.advance(50)
    registry.get("a")
    clock.advance(20)
    registry.get("c")

    assert "a" in registry
    assert "b" not in registry
    assert len(registry) == 2


def test_registry_caps_session_count(catalog, settings):
    settings = settings.model_copy(update={"MAX_SESSIONS": 3})
    registry = SessionRegistry(catalog, catalog, catalog, settings, clock=ManualClock())

    for session_id in ("a", "b", "c"):
        registry.get(session_id)
    registry.get("a")
    registry.get("d")

    assert "a" in registry
    assert "b" not in registry

    for n in range(20):
        registry.get(f"throwaway-{n}")

    assert len(registry) == 3
    assert "throwaway-19" in registry
