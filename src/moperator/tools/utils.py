from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeAlias

from moperator.salesforce import SalesforceAPIError


logger = logging.getLogger(__name__)

JSONPrimitive = str | int | float | bool | None
JSONType: TypeAlias = JSONPrimitive | dict[str, Any] | list[Any]


def failure(exc: BaseException) -> dict[str, Any]:
    """Structured failure payload handed back to the agent."""
    if isinstance(exc, SalesforceAPIError):
        message = f"Salesforce returned {exc.status_code}: {exc.body}"
    else:
        message = str(exc) or type(exc).__name__
    return {"success": False, "error": message}


async def call(
    func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any
) -> JSONType:
    """Run a tool coroutine, converting raised errors into a failure payload."""
    try:
        return await func(*args, **kwargs)
    except Exception as exc:
        logger.warning(
            "Tool %s failed: %s", getattr(func, "__name__", func), exc, exc_info=True
        )
        return failure(exc)


__all__ = ["JSONType", "call", "failure"]
