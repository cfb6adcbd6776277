# app/services/boundary.py
import functools
import logging
from typing import Awaitable, Callable, ParamSpec

from app.core.errors import CartEngineError
from app.schemas.notice import Notice

logger = logging.getLogger(__name__)

P = ParamSpec("P")


def reports_errors(method: Callable[P, Notice]) -> Callable[P, Notice]:
    """
    Turn engine errors raised by `method` into an error Notice.
    Anything that is not a CartEngineError still propagates.
    """

    @functools.wraps(method)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> Notice:
        try:
            return method(*args, **kwargs)
        except CartEngineError as exc:
            logger.info("%s rejected (%s): %s", method.__name__, exc.code, exc.message)
            return Notice.from_error(exc)

    return wrapper


def reports_errors_async(
    method: Callable[P, Awaitable[Notice]],
) -> Callable[P, Awaitable[Notice]]:
    """
    Coroutine variant of `reports_errors`.
    """

    @functools.wraps(method)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> Notice:
        try:
            return await method(*args, **kwargs)
        except CartEngineError as exc:
            logger.info("%s rejected (%s): %s", method.__name__, exc.code, exc.message)
            return Notice.from_error(exc)

    return wrapper
