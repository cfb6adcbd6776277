# app/core/supabase_client.py
from supabase import AsyncClient, acreate_client

from app.core.config import get_settings

_public_client: AsyncClient | None = None


async def supabase_public() -> AsyncClient:
    """
    Return the shared async Supabase client built with the anon/public key.

    Use cases:
      - calling the pricing / coupon RPCs (calculate_order_total_secure,
        validate_coupon, update_coupon_usage)
      - reading product stock

    Note: This client still respects RLS. The RPCs are SECURITY DEFINER
    functions, so the anon key is enough.

    Raises:
        RuntimeError: if SUPABASE_URL or SUPABASE_KEY is not set.
    """
    global _public_client

    if _public_client is None:
        settings = get_settings()
        if not settings.use_supabase:
            raise RuntimeError("Missing SUPABASE_URL / SUPABASE_KEY in .env")
        _public_client = await acreate_client(
            settings.SUPABASE_URL,  # type: ignore[arg-type]
            settings.SUPABASE_KEY,  # type: ignore[arg-type]
        )
    return _public_client
