# app/schemas/eligibility.py
from typing import Literal

from sqlmodel import SQLModel

ProgressState = Literal["empty", "special", "partial", "ready"]


class EligibilityDecision(SQLModel):
    """
    Result of the category eligibility gate for one cart snapshot.
    """

    checkout_enabled: bool
    single_item_fast_path: bool
    category_count: int
    required_count: int
    progress: ProgressState
    message: str
