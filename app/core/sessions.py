# app/core/sessions.py
import math
from functools import lru_cache

from fastapi import Depends, Header, Response, status

from app.core.config import get_settings
from app.repositories.catalog_authority import CatalogAuthority
from app.repositories.supabase_authority import SupabaseAuthority
from app.schemas.notice import Notice
from app.services.checkout_session import CheckoutSession, SessionRegistry

# Notice error code -> HTTP status for the response carrying the notice.
_STATUS_BY_CODE = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "format_error": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "throttled": status.HTTP_429_TOO_MANY_REQUESTS,
    "unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}


@lru_cache
def get_registry() -> SessionRegistry:
    """
    Process-wide session registry.

    Authority selection:
      - SUPABASE_URL and SUPABASE_KEY set => hosted Postgres functions
      - otherwise => empty in-memory catalog (local development)
    """
    settings = get_settings()
    if settings.use_supabase:
        authority = SupabaseAuthority()
    else:
        authority = CatalogAuthority(settings=settings)
    return SessionRegistry(
        pricing=authority,
        coupons=authority,
        stock=authority,
        settings=settings,
    )


async def get_checkout_session(
    x_session_id: str = Header(..., min_length=1, max_length=128),
    registry: SessionRegistry = Depends(get_registry),
) -> CheckoutSession:
    """
    Resolve the caller's cart session from the `X-Session-Id` header.
    Unknown ids open a new, empty cart.
    """
    return registry.get(x_session_id.strip())


def apply_notice_status(response: Response, notice: Notice) -> None:
    """
    Map an error notice onto the HTTP response.
    Non-error notices keep the default 200.
    """
    if notice.ok:
        return
    response.status_code = _STATUS_BY_CODE.get(notice.code or "", status.HTTP_400_BAD_REQUEST)
    if notice.retry_after_ms is not None:
        response.headers["Retry-After"] = str(max(1, math.ceil(notice.retry_after_ms / 1000)))
