# app/schemas/notice.py
from typing import Literal

from sqlmodel import SQLModel

from app.core.errors import CartEngineError, ThrottledError

NoticeLevel = Literal["info", "success", "error"]


class Notice(SQLModel):
    """
    User-visible outcome of a cart / coupon / checkout operation.

    Engine errors never cross the component boundary as exceptions; they
    come back as an error notice carrying the error `code`.
    """

    level: NoticeLevel
    message: str
    code: str | None = None
    retry_after_ms: int | None = None

    @property
    def ok(self) -> bool:
        return self.level != "error"

    @classmethod
    def success(cls, message: str) -> "Notice":
        return cls(level="success", message=message)

    @classmethod
    def info(cls, message: str) -> "Notice":
        return cls(level="info", message=message)

    @classmethod
    def from_error(cls, exc: CartEngineError) -> "Notice":
        retry_after = exc.remaining_ms if isinstance(exc, ThrottledError) else None
        return cls(
            level="error",
            message=exc.message,
            code=exc.code,
            retry_after_ms=retry_after,
        )
