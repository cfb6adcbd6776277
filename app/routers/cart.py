# app/routers/cart.py
from fastapi import APIRouter, Depends, Response

from app.core.sessions import apply_notice_status, get_checkout_session
from app.schemas.cart import CartItemCandidate, CartItemUpdate, CartView
from app.schemas.coupon import CouponApply
from app.schemas.eligibility import EligibilityDecision
from app.schemas.notice import Notice
from app.schemas.pricing import PriceBreakdown
from app.services.checkout_session import CheckoutSession

router = APIRouter(prefix="/cart", tags=["Cart"])


async def _view_with(session: CheckoutSession, notice: Notice, response: Response) -> CartView:
    """
    Updated cart view with the operation's notice first.
    """
    apply_notice_status(response, notice)
    view = await session.view()
    view.notices.insert(0, notice)
    return view


@router.get("", response_model=CartView)
async def get_my_cart(session: CheckoutSession = Depends(get_checkout_session)):
    """
    Get the current cart with its authoritative price breakdown,
    optimistic estimate and checkout eligibility.
    """
    return await session.view()


@router.post("/items", response_model=CartView)
async def add_to_cart(
    payload: CartItemCandidate,
    response: Response,
    session: CheckoutSession = Depends(get_checkout_session),
):
    """
    Add a product to the cart (repeated adds increase the quantity).

    Returns the updated cart; a rejected item leaves the cart unchanged
    and comes back as an error notice with status 400 / 503.
    """
    notice = await session.add_item(payload)
    return await _view_with(session, notice, response)


@router.patch("/items/{item_id}", response_model=CartView)
async def update_cart_item(
    item_id: str,
    payload: CartItemUpdate,
    response: Response,
    session: CheckoutSession = Depends(get_checkout_session),
):
    """
    Set the quantity of a cart line. quantity <= 0 removes it.
    """
    notice = session.update_quantity(item_id, payload.quantity)
    return await _view_with(session, notice, response)


@router.delete("/items/{item_id}", response_model=CartView)
async def remove_cart_item(
    item_id: str,
    response: Response,
    session: CheckoutSession = Depends(get_checkout_session),
):
    notice = session.remove_item(item_id)
    return await _view_with(session, notice, response)


@router.delete("", response_model=CartView)
async def clear_cart(
    response: Response,
    session: CheckoutSession = Depends(get_checkout_session),
):
    """
    Empty the cart. Any applied coupon is dropped too.
    """
    notice = session.clear()
    return await _view_with(session, notice, response)


@router.post("/coupon", response_model=CartView)
async def apply_coupon(
    payload: CouponApply,
    response: Response,
    session: CheckoutSession = Depends(get_checkout_session),
):
    """
    Apply a coupon code.

    Errors:
      - 400 bad format or rejected by the coupon authority
      - 429 tried again within the cooldown (Retry-After set)
      - 503 coupon / pricing authority unavailable
    """
    notice = await session.apply_coupon(payload.code)
    return await _view_with(session, notice, response)


@router.delete("/coupon", response_model=CartView)
async def remove_coupon(
    response: Response,
    session: CheckoutSession = Depends(get_checkout_session),
):
    notice = session.remove_coupon()
    return await _view_with(session, notice, response)


@router.get("/price", response_model=PriceBreakdown)
async def get_price(
    response: Response,
    force: bool = False,
    session: CheckoutSession = Depends(get_checkout_session),
):
    """
    Authoritative price breakdown for the current cart.

    `force=true` re-prices even if nothing changed. When the pricing
    authority is unavailable the zeroed fallback is returned with 503.
    """
    breakdown = await session.refresh_prices(force=force)
    for notice in session.drain_notices():
        apply_notice_status(response, notice)
    return breakdown


@router.get("/eligibility", response_model=EligibilityDecision)
def get_eligibility(session: CheckoutSession = Depends(get_checkout_session)):
    return session.eligibility()
