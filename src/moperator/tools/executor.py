from __future__ import annotations

import functools
import logging
from collections.abc import Mapping
from typing import Any

from moperator.context import OperatorServerContext
from moperator.tools.gating import ToolGate, ToolHandler
from moperator.tools.registry import iter_registered_tools
from moperator.tools.utils import call, failure


logger = logging.getLogger(__name__)


def build_handlers(ctx: OperatorServerContext) -> dict[str, ToolHandler]:
    """Bind every registered tool to ``ctx`` as an ``args -> result`` handler."""
    handlers: dict[str, ToolHandler] = {}
    for func in iter_registered_tools():

        async def handler(args: Mapping[str, Any], _func=func) -> Any:
            return await call(_func, ctx, **dict(args))

        functools.update_wrapper(handler, func)
        handlers[func.__name__] = handler
    return handlers


class ToolExecutor:
    """Runs a tool by name. Errors come back as ``{"success": False, ...}``."""

    def __init__(self, handlers: Mapping[str, ToolHandler]) -> None:
        self._handlers = dict(handlers)

    @classmethod
    def for_context(cls, ctx: OperatorServerContext) -> ToolExecutor:
        return cls(build_handlers(ctx))

    @property
    def handlers(self) -> dict[str, ToolHandler]:
        return dict(self._handlers)

    async def execute(self, tool_name: str, args: Mapping[str, Any]) -> dict[str, Any]:
        handler = self._handlers.get(tool_name)
        if handler is None:
            return {"success": False, "error": f'Tool "{tool_name}" not found'}
        try:
            result = await handler(args)
        except Exception as exc:
            logger.exception("Tool %s raised during execution", tool_name)
            return failure(exc)
        if isinstance(result, dict):
            return result
        return {"success": True, "result": result}


async def gate_for_request(
    ctx: OperatorServerContext,
    *,
    requester_id: str,
    channel: str,
    thread_ref: str | None = None,
) -> ToolGate:
    """Request-scoped tool set for a request made by ``requester_id``."""
    if ctx.workflow is None:
        raise RuntimeError("Approval workflow is not configured")
    return await ToolGate.for_request(
        build_handlers(ctx),
        ctx.workflow,
        requester_id=requester_id,
        channel=channel,
        thread_ref=thread_ref,
        limits=ctx.limits,
    )


__all__ = ["ToolExecutor", "build_handlers", "gate_for_request"]
