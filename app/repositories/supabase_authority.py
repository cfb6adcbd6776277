# app/repositories/supabase_authority.py
from typing import Any, Awaitable, Callable, Mapping, Sequence

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from app.core.errors import UnavailableError
from app.core.supabase_client import supabase_public
from app.models.cart import CartItem


def _first_row(data: Any) -> Mapping[str, Any]:
    """
    RPCs declared `RETURNS TABLE` come back as a list of rows,
    `RETURNS json` as a single object.
    """
    if isinstance(data, list):
        if not data:
            raise UnavailableError("Empty response from server")
        data = data[0]
    if not isinstance(data, Mapping):
        raise UnavailableError("Invalid response from server")
    return data


class SupabaseAuthority:
    """
    Pricing, coupon and stock authority backed by the hosted Postgres
    functions.

    - Pure remote calls: no caching, no business logic.
    - Transport / PostgREST failures surface as UnavailableError.
    """

    def __init__(self, client_factory: Callable[[], Awaitable[AsyncClient]] = supabase_public):
        self._client_factory = client_factory

    async def _rpc(self, fn: str, params: dict[str, Any]) -> Any:
        client = await self._client_factory()
        try:
            response = await client.rpc(fn, params).execute()
        except (APIError, httpx.HTTPError) as exc:
            raise UnavailableError(f"{fn} failed: {exc}") from exc
        return response.data

    # ----- Pricing -----

    async def compute_price(
        self,
        items: Sequence[CartItem],
        coupon_code: str | None = None,
    ) -> Mapping[str, Any]:
        # Listed prices are sent for logging only; the function reads
        # prices from the products table.
        payload = [
            {
                "product_id": it.id,
                "name": it.name,
                "price": it.price,
                "quantity": it.quantity,
            }
            for it in items
        ]
        data = await self._rpc(
            "calculate_order_total_secure",
            {"p_items": payload, "p_coupon_code": coupon_code or None},
        )
        return _first_row(data)

    # ----- Coupons -----

    async def validate_coupon(self, code: str, order_amount: float) -> Mapping[str, Any]:
        data = await self._rpc(
            "validate_coupon",
            {"p_coupon_code": code, "p_order_amount": order_amount},
        )
        return _first_row(data)

    async def report_coupon_usage(self, coupon_code: str) -> None:
        await self._rpc("update_coupon_usage", {"p_coupon_code": coupon_code})

    # ----- Stock -----

    async def get_stock(self, product_id: str) -> int:
        client = await self._client_factory()
        try:
            response = await (
                client.table("products")
                .select("stock_quantity")
                .eq("id", product_id)
                .limit(1)
                .execute()
            )
        except (APIError, httpx.HTTPError) as exc:
            raise UnavailableError(f"Stock lookup failed: {exc}") from exc

        if not response.data:
            return 0
        return int(response.data[0].get("stock_quantity") or 0)
