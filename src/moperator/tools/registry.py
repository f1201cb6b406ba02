"""Tool registration for the Salesforce tool modules.

Tools register themselves at import time with :func:`register`. A tool
registered with ``write=True`` must be a member of the closed gated set in
:mod:`moperator.tools.gating`, so every write path goes through approval.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from moperator.tools.gating import GatedOperation, gated_operation

ToolFn = Callable[..., Awaitable[Any]]

_TOOLS: dict[str, ToolFn] = {}


class ToolRegistrationError(ValueError):
    """Raised when a tool's write flag disagrees with the gated set."""


def _check_write_flag(name: str, write: bool) -> None:
    operation = gated_operation(name)
    if write and operation is None:
        raise ToolRegistrationError(
            f"Write tool {name!r} is not a gated operation"
        )
    if operation is not None and not write:
        raise ToolRegistrationError(
            f"Gated operation {name!r} must be registered with write=True"
        )


def register(
    func: ToolFn | None = None, *, write: bool = False
) -> ToolFn | Callable[[ToolFn], ToolFn]:
    """Mark an async tool for registration.

    The first parameter of the tool receives the
    :class:`~moperator.context.OperatorServerContext`; the remaining keyword
    parameters are the tool arguments.
    """

    def _decorator(fn: ToolFn) -> ToolFn:
        name = fn.__name__
        _check_write_flag(name, write)
        if name in _TOOLS and _TOOLS[name] is not fn:
            raise ToolRegistrationError(f"Tool {name!r} is already registered")
        setattr(fn, "_write", write)
        _TOOLS[name] = fn
        return fn

    if func is not None:
        return _decorator(func)
    return _decorator


def iter_registered_tools() -> list[ToolFn]:
    """Return the registered tools in registration order."""
    return list(_TOOLS.values())


def missing_gated_operations() -> set[GatedOperation]:
    """Gated operations with no registered tool."""
    return {op for op in GatedOperation if op.value not in _TOOLS}


__all__ = [
    "ToolFn",
    "ToolRegistrationError",
    "iter_registered_tools",
    "missing_gated_operations",
    "register",
]
