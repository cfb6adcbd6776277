# app/services/cart_store.py
import logging
import math
from collections.abc import Mapping
from typing import Any, Callable

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.config import get_settings
from app.core.errors import NotFoundError, ValidationError
from app.models.cart import CartItem
from app.schemas.cart import CartEstimate, CartSnapshot
from app.schemas.notice import Notice
from app.services.boundary import reports_errors

logger = logging.getLogger(__name__)

Subscriber = Callable[[CartSnapshot], None]


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


class CartStore:
    """
    Authoritative client-side cart for one session.

    Responsibilities:
      - validate candidates before they enter the cart
      - merge repeated adds of the same product into one line
      - keep coupon code and coupon discount consistent
      - notify subscribers exactly once per logical mutation

    Reads (items, counts, estimates) never mutate state or notify.
    Every mutation returns a Notice; engine errors are reported, not raised.
    """

    def __init__(self, max_item_quantity: int | None = None):
        self.max_item_quantity = max_item_quantity or get_settings().MAX_ITEM_QUANTITY
        self._items: dict[str, CartItem] = {}
        self._coupon_code: str | None = None
        self._coupon_discount: float = 0.0
        self._subscribers: list[Subscriber] = []

    # ---- subscription ----

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register `callback(snapshot)`; returns a function that unregisters it.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            callback(snapshot)

    # ---- reads ----

    @property
    def items(self) -> list[CartItem]:
        return [it.model_copy() for it in self._items.values()]

    @property
    def coupon_code(self) -> str | None:
        return self._coupon_code

    @property
    def coupon_discount(self) -> float:
        return self._coupon_discount

    def is_empty(self) -> bool:
        return not self._items

    def get_item(self, item_id: str) -> CartItem | None:
        item = self._items.get(item_id)
        return item.model_copy() if item else None

    def get_item_count(self) -> int:
        return sum(it.quantity for it in self._items.values())

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(
            items=self.items,
            coupon_code=self._coupon_code,
            coupon_discount=self._coupon_discount,
        )

    def estimate(self) -> CartEstimate:
        subtotal = sum(it.line_total for it in self._items.values())
        return CartEstimate(
            subtotal=round(subtotal, 2),
            item_count=self.get_item_count(),
        )

    def category_ids(self) -> set[str]:
        return {it.category_id for it in self._items.values() if it.category_id}

    # ---- internal helpers ----

    @staticmethod
    def _resolve_image(data: Mapping[str, Any]) -> str:
        """
        Exactly one image URL: explicit `image` wins, else the first entry
        of `image_url` when the listing exposes several.
        """
        image = data.get("image")
        if image:
            return str(image)
        image_url = data.get("image_url")
        if isinstance(image_url, (list, tuple)):
            return str(image_url[0]) if image_url else ""
        return str(image_url or "")

    def _build_item(self, candidate: Any) -> CartItem:
        if candidate is None:
            raise ValidationError("Cannot add empty item to cart")

        if isinstance(candidate, BaseModel):
            data = candidate.model_dump()
        elif isinstance(candidate, Mapping):
            data = dict(candidate)
        else:
            raise ValidationError("Invalid item")

        item_id = str(data.get("id") or "").strip()
        if not item_id:
            raise ValidationError("Invalid item: Missing product ID")

        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("Invalid item: Missing product name")

        price = data.get("price")
        if not _is_number(price) or price <= 0:
            raise ValidationError("Invalid item: Invalid price")

        quantity = data.get("quantity")
        if quantity is None:
            quantity = 1
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Invalid item: Invalid quantity")

        original_price = data.get("original_price")
        if original_price is None:
            original_price = price
        elif not _is_number(original_price) or original_price < price:
            raise ValidationError("Invalid item: Original price below price")

        try:
            return CartItem(
                id=item_id,
                name=name,
                price=price,
                original_price=original_price,
                quantity=quantity,
                image=self._resolve_image(data),
                category=data.get("category"),
                category_id=data.get("category_id"),
                description=data.get("description"),
                stock_quantity=data.get("stock_quantity"),
            )
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            raise ValidationError(f"Invalid item: {field}: {first['msg']}") from exc

    def _check_quantity(self, item: CartItem, quantity: int) -> None:
        if item.stock_quantity is not None and quantity > item.stock_quantity:
            if item.stock_quantity == 0:
                raise ValidationError(f"{item.name} is out of stock")
            raise ValidationError(f"Only {item.stock_quantity} {item.name} in stock")
        if quantity > self.max_item_quantity:
            raise ValidationError("Maximum quantity limit reached")

    def _drop(self, item_id: str) -> CartItem:
        """
        Remove a line; an emptied cart also loses its coupon.
        Caller notifies.
        """
        removed = self._items.pop(item_id)
        if not self._items:
            self._coupon_code = None
            self._coupon_discount = 0.0
        return removed

    # ---- mutations ----

    @reports_errors
    def add_item(self, candidate: Any) -> Notice:
        """
        Add a product to the cart.

        Rules:
          - id and name must be non-empty, price a finite number > 0
          - same id => quantity increases by the candidate quantity (default 1)
          - resulting quantity <= listed stock and <= MAX_ITEM_QUANTITY
        """
        item = self._build_item(candidate)
        existing = self._items.get(item.id)

        if existing:
            new_qty = existing.quantity + item.quantity
            merged = existing.model_copy(
                update={
                    "quantity": new_qty,
                    "stock_quantity": item.stock_quantity
                    if item.stock_quantity is not None
                    else existing.stock_quantity,
                }
            )
            self._check_quantity(merged, new_qty)
            self._items[item.id] = merged
            message = (
                f"Added another {item.name} to your cart!"
                if item.quantity == 1
                else f"Added {item.quantity} more {item.name} to your cart!"
            )
        else:
            self._check_quantity(item, item.quantity)
            self._items[item.id] = item
            message = f"{item.name} added to your cart!"

        self._notify()
        return Notice.success(message)

    @reports_errors
    def update_quantity(self, item_id: str, quantity: int) -> Notice:
        """
        Set the quantity of a line exactly. quantity <= 0 removes the line.
        """
        existing = self._items.get(item_id)
        if existing is None:
            raise NotFoundError("Item not in cart")

        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("Invalid quantity")

        if quantity <= 0:
            self._drop(item_id)
            self._notify()
            return Notice.info(f"{existing.name} removed from your box")

        if quantity == existing.quantity:
            return Notice.info(f"{existing.name} quantity unchanged")

        self._check_quantity(existing, quantity)
        self._items[item_id] = existing.model_copy(update={"quantity": quantity})
        self._notify()
        return Notice.success(f"{existing.name} quantity updated to {quantity}")

    def remove_item(self, item_id: str) -> Notice:
        """
        Remove a line if present; no-op otherwise.
        """
        if item_id not in self._items:
            return Notice.info("Item not in cart")

        removed = self._drop(item_id)
        self._notify()
        return Notice.info(f"{removed.name} removed from your box")

    def clear(self) -> Notice:
        """
        Empty the cart and drop the coupon in one mutation.
        """
        self._items = {}
        self._coupon_code = None
        self._coupon_discount = 0.0
        self._notify()
        return Notice.info("Your box is now empty")

    @reports_errors
    def update_coupon_discount(self, amount: float, code: str | None) -> Notice:
        """
        Record a validated coupon. Code and discount always change together.
        """
        if not _is_number(amount) or amount < 0:
            raise ValidationError("Invalid discount amount")

        code = (code or "").strip() or None
        if code is None and amount > 0:
            raise ValidationError("A coupon code is required for a discount")

        self._coupon_code = code
        self._coupon_discount = float(amount) if code else 0.0
        self._notify()

        if code is None:
            return Notice.info("Coupon removed")
        return Notice.success(f"Coupon {code} applied")

    def sync_coupon_discount(self, amount: float) -> None:
        """
        Replace the recorded discount with the amount the pricing authority
        actually applied. Silent: the pricing key does not change, so
        subscribers have nothing to re-price.
        """
        if self._coupon_code is None:
            return
        if not _is_number(amount) or amount < 0:
            raise ValidationError("Invalid discount amount")
        self._coupon_discount = float(amount)

    def clear_coupon(self) -> Notice:
        if self._coupon_code is None and self._coupon_discount == 0:
            return Notice.info("No coupon applied")

        self._coupon_code = None
        self._coupon_discount = 0.0
        self._notify()
        return Notice.info("Coupon removed")
