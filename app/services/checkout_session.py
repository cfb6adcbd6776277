# app/services/checkout_session.py
import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel

from app.core.config import Settings, get_settings
from app.core.errors import CartEngineError, UnavailableError, ValidationError
from app.core.formatting import format_price
from app.core.throttle import ThrottleRegistry
from app.repositories.authorities import CouponAuthority, PricingAuthority, StockAuthority
from app.schemas.cart import CartSnapshot, CartView
from app.schemas.eligibility import EligibilityDecision
from app.schemas.notice import Notice
from app.schemas.pricing import CheckoutHandoff, CheckoutLine, CheckoutResult, PriceBreakdown
from app.services.boundary import reports_errors_async
from app.services.cart_store import CartStore
from app.services.coupon_service import CouponValidator
from app.services.eligibility import EligibilityGate
from app.services.price_reconciliation import PriceReconciler

logger = logging.getLogger(__name__)

CHECKOUT_THROTTLE_KEY = "checkout"


class CheckoutSession:
    """
    One shopper's cart, its authoritative prices and its checkout.

    Responsibilities:
      - own the CartStore and re-price it whenever its pricing key changes
      - check stock with the stock authority for items listed as sold out
      - route coupons through the CouponValidator into the store
      - gate checkout on eligibility plus a fresh authoritative total

    Every public mutation returns a Notice. Failures of background price
    refreshes are queued and delivered with the next view.
    """

    def __init__(
        self,
        session_id: str,
        pricing: PricingAuthority,
        coupons: CouponAuthority,
        stock: StockAuthority,
        settings: Settings | None = None,
        throttle: ThrottleRegistry | None = None,
    ):
        self.session_id = session_id
        self.settings = settings or get_settings()
        self.throttle = throttle or ThrottleRegistry()
        self.stock = stock

        self.store = CartStore(self.settings.MAX_ITEM_QUANTITY)
        self.reconciler = PriceReconciler(pricing, self.settings)
        self.coupons = CouponValidator(coupons, self.throttle, self.settings)
        self.gate = EligibilityGate.from_settings(self.settings)

        self._pending_notices: list[Notice] = []
        self._tasks: set[asyncio.Task] = set()
        self.store.subscribe(self._on_cart_changed)

    # ---- background re-pricing ----

    def _on_cart_changed(self, snapshot: CartSnapshot) -> None:
        if snapshot.pricing_key() == self.reconciler.last_key:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync caller): the next refresh_prices() catches up.
            return
        task = loop.create_task(self._refresh_in_background(snapshot))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _reconcile(self, snapshot: CartSnapshot) -> PriceBreakdown | None:
        breakdown = await self.reconciler.reconcile(snapshot)
        # The store keeps the validated estimate until the authority has
        # priced the same coupon; from then on the applied amount wins.
        if breakdown is not None and snapshot.coupon_code and snapshot.coupon_code == self.store.coupon_code:
            self.store.sync_coupon_discount(breakdown.applied_discount)
        return breakdown

    async def _refresh_in_background(self, snapshot: CartSnapshot) -> None:
        try:
            await self._reconcile(snapshot)
        except UnavailableError as exc:
            # Only the newest request's failure is worth showing.
            if self.reconciler.last_key == snapshot.pricing_key():
                self._pending_notices.append(Notice.from_error(exc))

    async def settle(self) -> None:
        """
        Wait until every in-flight background reconciliation has finished.
        """
        while True:
            pending = {t for t in self._tasks if not t.done()}
            if not pending:
                return
            await asyncio.wait(pending)

    async def refresh_prices(self, force: bool = False) -> PriceBreakdown:
        """
        Bring the breakdown up to date with the current cart.

        Without `force`, an up-to-date breakdown is returned as is.
        Failures leave the zeroed fallback in place and queue a notice.
        """
        await self.settle()
        snapshot = self.store.snapshot()
        if force or not self.reconciler.is_current(snapshot):
            try:
                await self._reconcile(snapshot)
            except UnavailableError as exc:
                self._pending_notices.append(Notice.from_error(exc))
        return self.reconciler.breakdown

    def drain_notices(self) -> list[Notice]:
        notices, self._pending_notices = self._pending_notices, []
        return notices

    # ---- cart operations ----

    @staticmethod
    def _candidate_data(candidate: Any) -> Any:
        if isinstance(candidate, BaseModel):
            return candidate.model_dump(exclude_none=True)
        if isinstance(candidate, Mapping):
            return dict(candidate)
        return candidate

    async def _current_stock(self, product_id: str) -> int:
        try:
            return await asyncio.wait_for(
                self.stock.get_stock(product_id),
                timeout=self.settings.REMOTE_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as exc:
            raise UnavailableError("Stock check timed out") from exc
        except UnavailableError:
            raise
        except Exception as exc:
            logger.exception("Stock lookup failed for %s", product_id)
            raise UnavailableError("Failed to check stock") from exc

    @reports_errors_async
    async def add_item(self, candidate: Any) -> Notice:
        """
        Add a product. A listing that shows zero stock is re-checked with
        the stock authority first, since listings can be stale.
        """
        data = self._candidate_data(candidate)

        if isinstance(data, dict) and data.get("stock_quantity") == 0 and data.get("id"):
            stock = await self._current_stock(str(data["id"]))
            if stock <= 0:
                raise ValidationError(f"{data.get('name') or 'Item'} is out of stock")
            data["stock_quantity"] = stock

        return self.store.add_item(data)

    def update_quantity(self, item_id: str, quantity: int) -> Notice:
        return self.store.update_quantity(item_id, quantity)

    def remove_item(self, item_id: str) -> Notice:
        return self.store.remove_item(item_id)

    def clear(self) -> Notice:
        return self.store.clear()

    # ---- coupons ----

    @reports_errors_async
    async def apply_coupon(self, code: Any) -> Notice:
        """
        Validate `code` against the authoritative subtotal, record it, then
        re-price so the reported saving is the one the authority applied.
        """
        # Format errors must not wait on (or trigger) a price refresh.
        self.coupons.check_format(code)

        breakdown = await self.refresh_prices()
        if self.reconciler.status != "ready":
            raise UnavailableError("Prices are unavailable right now, try again shortly")

        result = await self.coupons.validate(code, breakdown.subtotal)
        notice = self.store.update_coupon_discount(result.discount_amount, result.coupon_code)
        if not notice.ok:
            return notice

        breakdown = await self.refresh_prices()
        if self.reconciler.status != "ready":
            return Notice.info(f"Coupon {result.coupon_code} applied, the discount shows once prices update")
        if breakdown.applied_discount <= 0:
            return Notice.info(f"Coupon {result.coupon_code} applied, but it gives no discount on this order")
        return Notice.success(f"Coupon applied! You saved ₹{format_price(breakdown.applied_discount)}")

    def remove_coupon(self) -> Notice:
        return self.store.clear_coupon()

    # ---- eligibility / checkout ----

    def eligibility(self) -> EligibilityDecision:
        return self.gate.evaluate(self.store.category_ids())

    async def _prepare_handoff(self) -> CheckoutHandoff:
        await self.settle()
        snapshot = self.store.snapshot()

        breakdown = await self._reconcile(snapshot)
        if breakdown is None:
            raise ValidationError("Your cart changed during checkout. Please review it and try again.")
        if breakdown.is_fallback or breakdown.total <= 0:
            raise UnavailableError("Unable to confirm your order total. Please try again.")

        return CheckoutHandoff(
            items=[
                CheckoutLine(product_id=it.id, name=it.name, quantity=it.quantity)
                for it in snapshot.items
            ],
            coupon_code=snapshot.coupon_code,
            breakdown=breakdown,
        )

    async def checkout(self) -> CheckoutResult:
        """
        Confirm the order total with the pricing authority and produce the
        payment handoff.

        Rules:
          - cart must be non-empty and pass the eligibility gate
          - at most one attempt per CHECKOUT_COOLDOWN_MS
          - the total handed off comes from a reconciliation issued here,
            never from the optimistic estimate
        """
        try:
            if self.store.is_empty():
                raise ValidationError("Your cart is empty")

            decision = self.eligibility()
            if not decision.checkout_enabled:
                raise ValidationError(decision.message)

            handoff = await self.throttle.attempt(
                CHECKOUT_THROTTLE_KEY,
                self.settings.CHECKOUT_COOLDOWN_MS,
                self._prepare_handoff,
            )
        except CartEngineError as exc:
            logger.info("Checkout rejected for session %s (%s): %s", self.session_id, exc.code, exc.message)
            return CheckoutResult(notice=Notice.from_error(exc))

        logger.info(
            "Checkout ready for session %s: total=%s", self.session_id, format_price(handoff.breakdown.total)
        )
        return CheckoutResult(
            notice=Notice.success(f"Order total confirmed: ₹{format_price(handoff.breakdown.total)}"),
            handoff=handoff,
        )

    # ---- views ----

    async def view(self) -> CartView:
        breakdown = await self.refresh_prices()
        return CartView(
            items=self.store.items,
            item_count=self.store.get_item_count(),
            coupon_code=self.store.coupon_code,
            coupon_discount=self.store.coupon_discount,
            estimate=self.store.estimate(),
            breakdown=breakdown,
            price_status=self.reconciler.status,
            eligibility=self.eligibility(),
            notices=self.drain_notices(),
        )


class SessionRegistry:
    """
    In-process map of session id -> CheckoutSession.
    Carts live for the session only; nothing is persisted.

    Rules:
      - a session untouched for SESSION_IDLE_TIMEOUT_SECONDS is dropped
      - at most MAX_SESSIONS are kept; the least recently used goes first
    """

    def __init__(
        self,
        pricing: PricingAuthority,
        coupons: CouponAuthority,
        stock: StockAuthority,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.pricing = pricing
        self.coupons = coupons
        self.stock = stock
        self.settings = settings or get_settings()
        self._clock = clock
        # Ordered least recently used first.
        self._sessions: OrderedDict[str, CheckoutSession] = OrderedDict()
        self._last_seen: dict[str, float] = {}

    def _evict_idle(self, now: float) -> None:
        timeout = self.settings.SESSION_IDLE_TIMEOUT_SECONDS
        while self._sessions:
            oldest = next(iter(self._sessions))
            if now - self._last_seen[oldest] < timeout:
                return
            self.drop(oldest)
            logger.info("Expired idle cart session %s", oldest)

    def _evict_overflow(self) -> None:
        while len(self._sessions) > self.settings.MAX_SESSIONS:
            oldest = next(iter(self._sessions))
            self.drop(oldest)
            logger.warning("Evicted cart session %s: session limit reached", oldest)

    def get(self, session_id: str) -> CheckoutSession:
        now = self._clock()
        self._evict_idle(now)

        session = self._sessions.get(session_id)
        if session is None:
            session = CheckoutSession(
                session_id,
                pricing=self.pricing,
                coupons=self.coupons,
                stock=self.stock,
                settings=self.settings,
            )
            self._sessions[session_id] = session
            logger.info("Opened cart session %s", session_id)
        else:
            self._sessions.move_to_end(session_id)
        self._last_seen[session_id] = now

        self._evict_overflow()
        return session

    def drop(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
