from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from moperator.tools._registration import register_tool
from moperator.tools.executor import ToolExecutor, build_handlers, gate_for_request
from moperator.tools.registry import iter_registered_tools, register

# Import tool modules for their registration side effects
from moperator.tools import salesforce as _salesforce  # noqa: F401


def register_tools(server: FastMCP) -> None:
    """Register all tools with the provided FastMCP server."""
    for func in iter_registered_tools():
        register_tool(
            server,
            func,
            write=getattr(func, "_write", False),
        )


__all__ = [
    "ToolExecutor",
    "build_handlers",
    "gate_for_request",
    "register",
    "register_tools",
]
