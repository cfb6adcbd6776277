# app/models/preference.py
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class UserPreference(SQLModel):
    """
    Per-user affinity data feeding the recommendation scorer.

    Matches the hosted `user_preferences` row:
      - category_preferences : category_id -> weight
      - tag_preferences      : tag -> weight
      - view_history         : product ids the user opened
      - purchase_history     : product ids the user bought
    """

    user_id: str | None = None

    category_preferences: dict[str, float] = Field(default_factory=dict)
    tag_preferences: dict[str, float] = Field(default_factory=dict)

    view_history: set[str] = Field(default_factory=set)
    purchase_history: set[str] = Field(default_factory=set)

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
