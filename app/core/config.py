# app/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized engine settings loaded from environment.

    Optional env vars (.env):
      - SUPABASE_URL / SUPABASE_KEY (anon key)
        When both are present, pricing, coupon and stock calls go to the
        hosted Postgres functions. Otherwise the in-memory catalog is used.

    Pricing rules mirror `calculate_order_total_secure` on the hosted side.
    They are only used by the in-memory authority and for display of the
    free-delivery threshold; the client never prices an order itself.
    """

    PROJECT_NAME: str = "NiteBite Cart Engine"
    API_V1_STR: str = "/api/v1"

    # Supabase (remote pricing / coupon / stock authority)
    SUPABASE_URL: str | None = None
    SUPABASE_KEY: str | None = None

    # Pricing rules
    FREE_DELIVERY_THRESHOLD: float = 149.0
    DELIVERY_FEE: float = 10.0
    CONVENIENCE_FEE: float = 6.0

    # Box builder / eligibility gate
    REQUIRED_CATEGORIES_COUNT: int = 2
    SPECIAL_CATEGORY_ID: str | None = "111c97d8-a40e-4590-adaf-74ed21dba271"

    # Throttling (milliseconds)
    COUPON_COOLDOWN_MS: int = 2000
    CHECKOUT_COOLDOWN_MS: int = 5000
    DEFAULT_COOLDOWN_MS: int = 1000

    # Every remote call is bounded by this timeout
    REMOTE_TIMEOUT_SECONDS: float = 8.0

    # In-memory sessions
    SESSION_IDLE_TIMEOUT_SECONDS: float = 1800.0
    MAX_SESSIONS: int = 10000

    MAX_ITEM_QUANTITY: int = 100
    RECOMMENDATION_LIMIT: int = 8

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def use_supabase(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_KEY)


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
