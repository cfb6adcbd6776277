# app/schemas/recommendation.py
from pydantic import ConfigDict
from sqlmodel import SQLModel, Field

from app.models.preference import UserPreference
from app.models.product import Product


class RecommendationWeights(SQLModel):
    """
    Weights of the linear recommendation model.
    """

    featured: float = 5
    category_preference: float = 2
    purchase_history: float = 3
    view_history: float = 2
    stock: float = 1
    price: float = 1
    discount: float = 3


class ScoredProduct(Product):
    """
    Product plus its transient score. Not persisted.
    """

    recommendation_score: float


class RecommendationRequest(SQLModel):
    """
    Payload for ranking candidate products for a user.
    """

    model_config = ConfigDict(extra="forbid")

    products: list[Product]
    preferences: UserPreference | None = None
    weights: RecommendationWeights | None = None
    limit: int | None = Field(default=None, ge=1, le=50)
