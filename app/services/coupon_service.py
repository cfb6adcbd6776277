# app/services/coupon_service.py
import asyncio
import logging
import math
import re
from decimal import Decimal
from typing import Any, Mapping

from app.core.config import Settings, get_settings
from app.core.errors import FormatError, UnavailableError, ValidationError
from app.core.formatting import sanitize_string
from app.core.throttle import ThrottleRegistry
from app.repositories.authorities import CouponAuthority
from app.schemas.coupon import CouponValidationResult

logger = logging.getLogger(__name__)

COUPON_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,20}$")
THROTTLE_KEY = "coupon"


class CouponValidator:
    """
    Checks coupon codes locally, then asks the coupon authority for a
    verdict.

    Order of checks:
      1. format: 3-20 chars of letters, digits, '_' or '-' (no remote call)
      2. throttle: at most one remote attempt per COUPON_COOLDOWN_MS
      3. remote verdict, bounded by the remote timeout

    Accepted coupons report their usage to the authority; a failed usage
    report is logged and does not undo the acceptance.
    """

    def __init__(
        self,
        authority: CouponAuthority,
        throttle: ThrottleRegistry,
        settings: Settings | None = None,
        timeout: float | None = None,
    ):
        self.authority = authority
        self.throttle = throttle
        self.settings = settings or get_settings()
        self.timeout = timeout if timeout is not None else self.settings.REMOTE_TIMEOUT_SECONDS

    @staticmethod
    def check_format(code: Any) -> str:
        """
        Return the canonical (trimmed, upper-case) code or raise FormatError.
        """
        if not isinstance(code, str):
            raise FormatError("Invalid coupon code format")
        trimmed = code.strip()
        if not COUPON_CODE_PATTERN.match(trimmed):
            raise FormatError("Invalid coupon code format")
        return trimmed.upper()

    async def validate(self, code: Any, subtotal: float) -> CouponValidationResult:
        """
        Validate `code` against the authoritative `subtotal`.

        Raises:
          FormatError      - bad syntax, nothing sent
          ValidationError  - empty cart, or coupon rejected by the authority
          ThrottledError   - too soon after the previous attempt
          UnavailableError - authority unreachable or verdict malformed
        """
        canonical = sanitize_string(self.check_format(code))

        if isinstance(subtotal, bool) or not isinstance(subtotal, (int, float)) or subtotal <= 0:
            raise ValidationError("Add items to your cart before applying a coupon")

        return await self.throttle.attempt(
            THROTTLE_KEY,
            self.settings.COUPON_COOLDOWN_MS,
            lambda: self._validate_remote(canonical, float(subtotal)),
        )

    # ---- internal helpers ----

    async def _validate_remote(self, code: str, subtotal: float) -> CouponValidationResult:
        try:
            raw = await asyncio.wait_for(
                self.authority.validate_coupon(code, subtotal),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise UnavailableError("Coupon validation timed out") from exc
        except UnavailableError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error from coupon authority")
            raise UnavailableError("Failed to validate coupon") from exc

        result = self._parse(raw, code, subtotal)
        if not result.valid:
            logger.info("Coupon %s rejected: %s", code, result.message)
            raise ValidationError(result.message or "Invalid coupon code")

        await self._report_usage(result.coupon_code)
        return result

    @staticmethod
    def _parse(raw: Any, code: str, subtotal: float) -> CouponValidationResult:
        if not isinstance(raw, Mapping) or not isinstance(raw.get("valid"), bool):
            raise UnavailableError("Invalid response from server")

        discount = raw.get("discount_amount") or 0
        if isinstance(discount, bool) or not isinstance(discount, (int, float, Decimal)):
            raise UnavailableError("Invalid response from server")
        discount = float(discount)
        if not math.isfinite(discount) or discount < 0:
            raise UnavailableError("Invalid response from server")

        if raw["valid"] and discount > subtotal:
            raise UnavailableError("Coupon discount exceeds order amount")

        returned_code = raw.get("coupon_code")
        if not isinstance(returned_code, str) or not returned_code.strip():
            returned_code = code

        return CouponValidationResult(
            valid=raw["valid"],
            message=sanitize_string(str(raw.get("message") or "")),
            discount_amount=round(discount, 2) if raw["valid"] else 0,
            coupon_code=sanitize_string(returned_code.upper()),
        )

    async def _report_usage(self, code: str) -> None:
        try:
            await asyncio.wait_for(
                self.authority.report_coupon_usage(code),
                timeout=self.timeout,
            )
        except Exception as exc:
            logger.warning("Failed to update coupon usage for %s: %s", code, exc)
