"""Fire-and-forget execution of secondary effects (notifications, emails)."""

from collections.abc import Awaitable
from typing import Any, TypeVar

import structlog


logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def best_effort(
    awaitable: Awaitable[T],
    event: str,
    **log_fields: Any,
) -> T | None:
    """Await a secondary effect, logging and swallowing any failure.

    Args:
        awaitable: Coroutine performing the side effect
        event: Log event name used when the effect fails
        **log_fields: Extra fields for the failure log entry

    Returns:
        The effect's result, or None when it failed
    """
    try:
        return await awaitable
    except Exception as e:
        logger.warning(event, error=str(e), exc_info=True, **log_fields)
        return None
