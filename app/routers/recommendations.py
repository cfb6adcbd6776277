# app/routers/recommendations.py
from fastapi import APIRouter

from app.schemas.recommendation import RecommendationRequest, ScoredProduct
from app.services.recommendation_service import RecommendationService

router = APIRouter(prefix="/recommendations", tags=["Recommendations"])


@router.post("", response_model=list[ScoredProduct])
def recommend(payload: RecommendationRequest):
    """
    Rank candidate products for a user.

    Public, stateless: products and preferences come in the body.
    Products without a price are skipped.
    """
    service = RecommendationService(weights=payload.weights, limit=payload.limit)
    return service.recommend(payload.products, payload.preferences)
