# app/core/throttle.py
import logging
import math
import time
from typing import Awaitable, Callable, TypeVar

from app.core.config import get_settings
from app.core.errors import ThrottledError
from app.core.formatting import format_time_remaining

logger = logging.getLogger(__name__)

T = TypeVar("T")


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class ThrottleRegistry:
    """
    Keyed cooldown gate.

    For each key only the timestamp of the last accepted invocation is
    kept. The timestamp is recorded *before* the action is awaited, so a
    second call for the same key that arrives while the first one is still
    suspended on a remote call is throttled. This is the only explicit
    shared-state guard in the engine.

    Keys in use:
      - "coupon"   : coupon application (brute-force probing)
      - "checkout" : checkout submission (accidental double submit)
    """

    def __init__(self, clock: Callable[[], float] = monotonic_ms):
        self._clock = clock
        self._last_invocation: dict[str, float] = {}

    @staticmethod
    def default_interval(key: str) -> int:
        settings = get_settings()
        defaults = {
            "coupon": settings.COUPON_COOLDOWN_MS,
            "checkout": settings.CHECKOUT_COOLDOWN_MS,
        }
        return defaults.get(key, settings.DEFAULT_COOLDOWN_MS)

    def remaining(self, key: str, min_interval_ms: int | None = None) -> int:
        """
        Milliseconds until `key` may run again (0 if allowed now).
        Pure: does not record anything.
        """
        interval = min_interval_ms if min_interval_ms is not None else self.default_interval(key)
        last = self._last_invocation.get(key)
        if last is None:
            return 0
        elapsed = self._clock() - last
        if elapsed >= interval:
            return 0
        return math.ceil(interval - elapsed)

    async def attempt(
        self,
        key: str,
        min_interval_ms: int | None,
        action: Callable[[], Awaitable[T]],
        on_throttled: Callable[[int], T] | None = None,
    ) -> T:
        """
        Run `action` unless `key` ran less than `min_interval_ms` ago.

        Throttled:
          - `on_throttled(remaining_ms)` is called and its value returned,
          - or ThrottledError is raised when no callback is given.

        Accepted:
          - the timestamp is recorded first, then `action` is awaited and
            its result returned. Failures of `action` propagate unchanged
            and do not roll the timestamp back.
        """
        interval = min_interval_ms if min_interval_ms is not None else self.default_interval(key)
        remaining = self.remaining(key, interval)

        if remaining > 0:
            logger.warning("Throttled '%s' attempt (%d ms remaining)", key, remaining)
            if on_throttled is not None:
                return on_throttled(remaining)
            raise ThrottledError(
                f"Please wait {format_time_remaining(remaining)} before trying again",
                remaining_ms=remaining,
            )

        self._last_invocation[key] = self._clock()
        return await action()

    def reset(self, key: str) -> None:
        self._last_invocation.pop(key, None)
