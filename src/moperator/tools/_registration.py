from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from mcp.server.fastmcp import FastMCP, Context as MCPContext
from mcp.types import ToolAnnotations

from moperator.context import OperatorServerContext
from moperator.tools.executor import gate_for_request


logger = logging.getLogger(__name__)

ToolFn = Callable[..., Awaitable[Any]]


def _is_context_annotation(annotation: Any) -> bool:
    if annotation in (inspect.Parameter.empty, None):
        return False
    if isinstance(annotation, str):
        return annotation == "OperatorServerContext"
    return inspect.isclass(annotation) and issubclass(annotation, OperatorServerContext)


def _resolve_context_parameters(func: ToolFn) -> tuple[inspect.Signature, list[str]]:
    try:
        signature = inspect.signature(func, eval_str=True)
    except (NameError, TypeError):
        signature = inspect.signature(func)

    ctx_params = [
        name
        for name, param in signature.parameters.items()
        if _is_context_annotation(param.annotation)
    ]
    return signature, ctx_params


def _server_context(ctx: MCPContext) -> OperatorServerContext:
    context = ctx.request_context.lifespan_context
    if not isinstance(context, OperatorServerContext):
        raise RuntimeError("Operator context is unavailable outside a request")
    return context


async def _report_pending(ctx: MCPContext, result: Any) -> None:
    if not isinstance(result, dict) or not result.get("pending_approval"):
        return
    try:
        await ctx.info(str(result.get("message", "Submitted for approval.")))
    except Exception:  # pragma: no cover - best effort notification
        logger.debug("Failed to send approval notification", exc_info=True)


def _wrap_for_mcp(func: ToolFn) -> ToolFn:
    """Expose ``func`` to FastMCP with its context parameter swapped.

    The tool's ``OperatorServerContext`` parameter is replaced by the FastMCP
    ``Context`` so the framework injects it; the operator context is then
    read from the server lifespan. Every call goes through a freshly built
    :class:`~moperator.tools.gating.ToolGate`.
    """
    signature, ctx_params = _resolve_context_parameters(func)
    if len(ctx_params) != 1:
        raise TypeError(
            f"Tool '{func.__name__}' must accept exactly one OperatorServerContext parameter."
        )
    ctx_name = ctx_params[0]
    tool_name = func.__name__

    parameters = [
        param.replace(annotation=MCPContext) if name == ctx_name else param
        for name, param in signature.parameters.items()
    ]
    mcp_signature = signature.replace(
        parameters=parameters, return_annotation=inspect.Signature.empty
    )

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        bound = mcp_signature.bind_partial(*args, **kwargs)
        value = bound.arguments.pop(ctx_name, None)
        if not isinstance(value, MCPContext):
            raise TypeError(
                f"Argument '{ctx_name}' must be an MCP context, got {type(value)!r}"
            )

        server_ctx = _server_context(value)
        gate = await gate_for_request(
            server_ctx,
            requester_id=server_ctx.requester_id,
            channel=server_ctx.approval_channel,
        )
        result = await gate.invoke(tool_name, bound.arguments)
        await _report_pending(value, result)
        return result

    setattr(wrapper, "__signature__", mcp_signature)
    wrapper.__annotations__ = {
        name: param.annotation
        for name, param in mcp_signature.parameters.items()
        if param.annotation is not inspect.Parameter.empty
    }
    return wrapper


def register_tool(
    server: FastMCP,
    func: ToolFn,
    *,
    write: bool = False,
) -> None:
    """Register an operator tool using FastMCP's decorator plumbing."""

    wrapped = _wrap_for_mcp(func)

    if write:
        tool_annotations = ToolAnnotations(readOnlyHint=False, destructiveHint=True)
    else:
        tool_annotations = ToolAnnotations(readOnlyHint=True)

    server.tool(
        name=func.__name__,
        description=inspect.cleandoc(func.__doc__ or ""),
        annotations=tool_annotations,
    )(wrapped)


__all__ = ["register_tool"]
