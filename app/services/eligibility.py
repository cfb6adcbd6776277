# app/services/eligibility.py
from typing import Iterable

from app.core.config import Settings, get_settings
from app.schemas.eligibility import EligibilityDecision


class EligibilityGate:
    """
    Decides whether a cart may proceed to checkout from the distinct
    categories it covers.

    Rules:
      - empty cart: blocked
      - at least `required_count` distinct categories: allowed
      - any item from the special category: allowed, whatever else is in the box
      - the single-item fast path exists only for a cart made up solely of
        the special category

    Pure function of its input; holds configuration only.
    """

    def __init__(self, required_count: int = 2, special_category_id: str | None = None):
        self.required_count = max(1, required_count)
        self.special_category_id = special_category_id

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "EligibilityGate":
        settings = settings or get_settings()
        return cls(
            required_count=settings.REQUIRED_CATEGORIES_COUNT,
            special_category_id=settings.SPECIAL_CATEGORY_ID,
        )

    def evaluate(self, category_ids: Iterable[str | None]) -> EligibilityDecision:
        categories = {c for c in category_ids if c}
        count = len(categories)
        has_special = (
            self.special_category_id is not None
            and self.special_category_id in categories
        )

        if count == 0:
            enabled, progress = False, "empty"
            message = f"Select items from at least {self.required_count} different categories"
        elif count >= self.required_count:
            enabled, progress = True, "ready"
            message = f"{count} categories selected - Ready to add!"
        elif has_special:
            enabled, progress = True, "special"
            message = "Special category selected - Ready to add!"
        else:
            enabled, progress = False, "partial"
            message = f"{count} of {self.required_count} required categories selected - Add more items!"

        return EligibilityDecision(
            checkout_enabled=enabled,
            single_item_fast_path=has_special and count == 1,
            category_count=count,
            required_count=self.required_count,
            progress=progress,
            message=message,
        )


def evaluate_eligibility(
    category_ids: Iterable[str | None],
    settings: Settings | None = None,
) -> EligibilityDecision:
    return EligibilityGate.from_settings(settings).evaluate(category_ids)
