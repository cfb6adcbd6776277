# app/routers/checkout.py
from fastapi import APIRouter, Depends, Response

from app.core.sessions import apply_notice_status, get_checkout_session
from app.schemas.pricing import CheckoutResult
from app.services.checkout_session import CheckoutSession

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("", response_model=CheckoutResult)
async def checkout(
    response: Response,
    session: CheckoutSession = Depends(get_checkout_session),
):
    """
    Confirm the order total and return the payment handoff.

    Flow:
      1. Cart must be non-empty and pass the category eligibility gate.
      2. Throttled: one attempt per CHECKOUT_COOLDOWN_MS per session.
      3. Prices are re-confirmed with the pricing authority; the handoff
         carries that breakdown, never the optimistic estimate.

    The cart itself is left untouched; payment clears it.
    """
    result = await session.checkout()
    apply_notice_status(response, result.notice)
    return result
