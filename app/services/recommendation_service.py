# app/services/recommendation_service.py
import logging
import math
from datetime import datetime, timezone
from typing import Iterable

from app.core.config import get_settings
from app.models.preference import UserPreference
from app.models.product import Product
from app.schemas.recommendation import RecommendationWeights, ScoredProduct

logger = logging.getLogger(__name__)

# Products above this stock level get the stock boost.
WELL_STOCKED_LEVEL = 10
# Prices at or above this normalizer contribute no price factor.
PRICE_NORMALIZER = 200.0

VIEW_AFFINITY_STEP = 0.5
PURCHASE_AFFINITY_STEP = 1.5


def _has_price(product: Product) -> bool:
    return (
        product.price is not None
        and math.isfinite(product.price)
        and product.price > 0
    )


class RecommendationService:
    """
    Ranks candidate products for one user with a weighted linear model.

    score =
        featured            * [is_featured]
      + category_preference * affinity(category)
      + purchase_history    * [category bought before]
      + view_history        * [product viewed before]
      + stock               * [stock > 10]
      + price               * max(0, 1 - price / 200)
      + discount            * (original_price - price) / original_price

    - Read-only: neither products nor preferences are mutated.
    - Products without a usable price are skipped, not fatal.
    - Sorted by score descending, ties by ascending id.
    """

    def __init__(self, weights: RecommendationWeights | None = None, limit: int | None = None):
        self.weights = weights or RecommendationWeights()
        self.limit = limit or get_settings().RECOMMENDATION_LIMIT

    def score(
        self,
        product: Product,
        preferences: UserPreference,
        purchased_categories: set[str],
    ) -> float:
        w = self.weights
        score = 0.0

        if product.is_featured:
            score += w.featured

        if product.category_id:
            score += preferences.category_preferences.get(product.category_id, 0) * w.category_preference
            if product.category_id in purchased_categories:
                score += w.purchase_history

        if product.id in preferences.view_history:
            score += w.view_history

        if product.stock_quantity > WELL_STOCKED_LEVEL:
            score += w.stock

        score += max(0.0, 1 - product.price / PRICE_NORMALIZER) * w.price

        if product.original_price and product.original_price > product.price:
            discount = (product.original_price - product.price) / product.original_price
            score += discount * w.discount

        return score

    def recommend(
        self,
        products: Iterable[Product],
        preferences: UserPreference | None,
    ) -> list[ScoredProduct]:
        preferences = preferences or UserPreference()
        candidates = [p for p in products if _has_price(p)]

        # Purchase history only knows product ids; categories come from
        # the candidates themselves.
        purchased_categories = {
            p.category_id
            for p in candidates
            if p.id in preferences.purchase_history and p.category_id
        }

        scored = [
            ScoredProduct(
                **p.model_dump(),
                recommendation_score=self.score(p, preferences, purchased_categories),
            )
            for p in candidates
        ]
        scored.sort(key=lambda sp: (-sp.recommendation_score, sp.id))

        logger.debug("Ranked %d products, returning top %d", len(scored), self.limit)
        return scored[: self.limit]


# ---- preference tracking ----

def _bump_category(preferences: UserPreference, product: Product, step: float) -> dict[str, float]:
    affinities = dict(preferences.category_preferences)
    if product.category_id:
        affinities[product.category_id] = affinities.get(product.category_id, 0) + step
    return affinities


def track_product_view(product: Product, preferences: UserPreference) -> UserPreference:
    """
    Return preferences updated for a product view (input left untouched).
    """
    return preferences.model_copy(
        update={
            "view_history": preferences.view_history | {product.id},
            "category_preferences": _bump_category(preferences, product, VIEW_AFFINITY_STEP),
            "updated_at": datetime.now(timezone.utc),
        }
    )


def track_product_purchase(product: Product, preferences: UserPreference) -> UserPreference:
    """
    Return preferences updated for a purchase. Purchases move category
    affinity three times as much as views.
    """
    return preferences.model_copy(
        update={
            "purchase_history": preferences.purchase_history | {product.id},
            "category_preferences": _bump_category(preferences, product, PURCHASE_AFFINITY_STEP),
            "updated_at": datetime.now(timezone.utc),
        }
    )
