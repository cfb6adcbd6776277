# app/core/errors.py
"""
Error taxonomy for the cart engine.

Every error is recoverable. Components raise these internally; the Cart
Store and the Checkout Session catch them at their boundary and turn them
into user-visible notices (see app/schemas/notice.py). The worst outcome of
any of them is "checkout remains disabled".
"""


class CartEngineError(Exception):
    """Base class. `code` is stable and exposed to clients."""

    code = "engine_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CartEngineError):
    """Malformed input to a cart or coupon operation. State is unchanged."""

    code = "validation_error"


class NotFoundError(CartEngineError):
    """Operation referenced a cart item that does not exist."""

    code = "not_found"


class FormatError(CartEngineError):
    """Coupon code is syntactically invalid. Rejected before any remote call."""

    code = "format_error"


class ThrottledError(CartEngineError):
    """Rate limit active for a throttle key. Nothing is retried automatically."""

    code = "throttled"

    def __init__(self, message: str, remaining_ms: int):
        super().__init__(message)
        self.remaining_ms = remaining_ms


class UnavailableError(CartEngineError):
    """Remote authority unreachable, timed out, or returned malformed data."""

    code = "unavailable"
