# app/services/price_reconciliation.py
import asyncio
import logging
import math
from decimal import Decimal
from typing import Any, Mapping

from app.core.config import Settings, get_settings
from app.core.errors import UnavailableError
from app.repositories.authorities import PricingAuthority
from app.schemas.cart import CartSnapshot
from app.schemas.pricing import PriceBreakdown, ReconciliationStatus

logger = logging.getLogger(__name__)

# Rounding slack when checking the total identity (one paisa).
TOTAL_TOLERANCE = 0.01

_AMOUNT_FIELDS = ("subtotal", "delivery_fee", "convenience_fee", "coupon_discount", "total")


def _amount(row: Mapping[str, Any], field: str) -> float:
    value = row.get(field)
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise UnavailableError(f"Invalid price response: {field} missing")
    value = float(value)
    if not math.isfinite(value) or value < 0:
        raise UnavailableError(f"Invalid price response: {field} out of range")
    return value


class PriceReconciler:
    """
    Derives the authoritative PriceBreakdown for a cart snapshot from the
    pricing authority.

    Ordering:
      - every request gets the next sequence number
      - a response is applied only if no newer request was issued since
        (slow earlier responses are discarded on arrival, never cancelled)

    Failure:
      - timeouts, transport errors, `success = false`, malformed rows,
        discount > subtotal or a broken total identity raise UnavailableError
      - if the failing request is the newest one, the displayed breakdown
        becomes the zeroed fallback and checkout stays blocked
    """

    def __init__(
        self,
        authority: PricingAuthority,
        settings: Settings | None = None,
        timeout: float | None = None,
    ):
        self.authority = authority
        self.settings = settings or get_settings()
        self.timeout = timeout if timeout is not None else self.settings.REMOTE_TIMEOUT_SECONDS

        self._issued_seq = 0
        self._applied_seq = 0
        self._last_key: tuple | None = None

        self.status: ReconciliationStatus = "idle"
        self.breakdown = PriceBreakdown.zeroed(self.settings.FREE_DELIVERY_THRESHOLD)

    # ---- state ----

    @property
    def issued_seq(self) -> int:
        return self._issued_seq

    @property
    def applied_seq(self) -> int:
        return self._applied_seq

    @property
    def last_key(self) -> tuple | None:
        return self._last_key

    def is_current(self, snapshot: CartSnapshot) -> bool:
        """
        True when the displayed breakdown is authoritative for exactly
        this cart value (items, quantities and coupon code).
        """
        return self.status == "ready" and self._last_key == snapshot.pricing_key()

    @property
    def checkout_ready(self) -> bool:
        return self.status == "ready" and not self.breakdown.is_fallback

    # ---- reconciliation ----

    async def reconcile(self, snapshot: CartSnapshot) -> PriceBreakdown | None:
        """
        Issue a new price request for `snapshot`.

        Returns the applied breakdown, or None if a newer request was
        issued while this one was in flight (the result was discarded).
        """
        self._issued_seq += 1
        seq = self._issued_seq
        self._last_key = snapshot.pricing_key()
        self.status = "pending"

        if not snapshot.items:
            return self._apply(
                seq,
                PriceBreakdown.zeroed(self.settings.FREE_DELIVERY_THRESHOLD, is_fallback=False),
            )

        try:
            row = await asyncio.wait_for(
                self.authority.compute_price(snapshot.items, snapshot.coupon_code),
                timeout=self.timeout,
            )
            breakdown = self._parse(row)
        except asyncio.TimeoutError as exc:
            self._fail(seq, "Price calculation timed out")
            raise UnavailableError("Error calculating prices: the server took too long") from exc
        except UnavailableError as exc:
            self._fail(seq, exc.message)
            raise
        except Exception as exc:
            logger.exception("Unexpected error from pricing authority (request #%d)", seq)
            self._fail(seq, str(exc))
            raise UnavailableError("Error calculating prices") from exc

        return self._apply(seq, breakdown)

    def _apply(self, seq: int, breakdown: PriceBreakdown) -> PriceBreakdown | None:
        if seq != self._issued_seq:
            logger.warning(
                "Discarding stale price response #%d (newest is #%d)", seq, self._issued_seq
            )
            return None

        self._applied_seq = seq
        self.breakdown = breakdown
        self.status = "ready"
        logger.debug("Applied price response #%d: total=%.2f", seq, breakdown.total)
        return breakdown

    def _fail(self, seq: int, reason: str) -> None:
        logger.warning("Price validation failed (request #%d): %s", seq, reason)
        if seq != self._issued_seq:
            return
        self.breakdown = PriceBreakdown.zeroed(self.settings.FREE_DELIVERY_THRESHOLD)
        self.status = "unavailable"

    def _parse(self, row: Any) -> PriceBreakdown:
        if not isinstance(row, Mapping):
            raise UnavailableError("Invalid response from server")

        if row.get("success") is False:
            raise UnavailableError(str(row.get("message") or "Price validation failed"))

        subtotal, delivery_fee, convenience_fee, discount, total = (
            _amount(row, field) for field in _AMOUNT_FIELDS
        )

        if discount > subtotal + TOTAL_TOLERANCE:
            raise UnavailableError("Invalid price response: discount exceeds subtotal")

        expected = subtotal + delivery_fee + convenience_fee - discount
        if abs(expected - total) > TOTAL_TOLERANCE:
            raise UnavailableError("Invalid price response: total does not add up")

        threshold = self.settings.FREE_DELIVERY_THRESHOLD
        if subtotal > 0 and (delivery_fee == 0) != (subtotal >= threshold):
            logger.warning(
                "Delivery fee %.2f inconsistent with free-delivery threshold %.2f at subtotal %.2f",
                delivery_fee,
                threshold,
                subtotal,
            )

        return PriceBreakdown(
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            convenience_fee=convenience_fee,
            applied_discount=discount,
            total=total,
            free_delivery_threshold=threshold,
            remaining_for_free_delivery=round(max(0.0, threshold - subtotal), 2),
            is_fallback=False,
        )
