from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import AsyncContextManager, Callable, Optional

import mcp.types as types
from mcp.server.fastmcp import FastMCP

from moperator.approvals import (
    ApprovalStore,
    ApprovalWorkflow,
    AuthorizationPolicy,
    ChatMessenger,
    NoOpApprovalStore,
    RedisApprovalStore,
    SlackMessenger,
    approver_mention,
)
from moperator.config import Settings
from moperator.context import OperatorServerContext
from moperator.salesforce import SalesforceClient
from moperator.tools import ToolExecutor, register_tools


logger = logging.getLogger(__name__)


def build_server_context(
    settings: Settings,
    *,
    store: ApprovalStore | None = None,
    messenger: ChatMessenger | None = None,
    salesforce: SalesforceClient | None = None,
) -> OperatorServerContext:
    """Wire the Salesforce client, approval store and workflow together."""

    if store is None:
        if settings.redis_url:
            store = RedisApprovalStore.from_url(settings.redis_url)
        else:
            logger.warning("REDIS_URL not set; gated writes will be refused")
            store = NoOpApprovalStore()
    if messenger is None:
        messenger = SlackMessenger.from_token(settings.slack_bot_token)
    if salesforce is None:
        salesforce = SalesforceClient(settings.salesforce_config)

    context = OperatorServerContext(
        salesforce=salesforce,
        limits=settings.bulk_limits,
        requester_id=settings.requester_id,
        approval_channel=settings.approval_channel,
    )
    policy = AuthorizationPolicy(messenger, settings.authorized_emails)
    context.workflow = ApprovalWorkflow(
        store,
        messenger,
        policy,
        ToolExecutor.for_context(context),
        approver_mention=approver_mention(settings.slack_approver_group_id),
    )
    return context


async def close_server_context(context: OperatorServerContext) -> None:
    """Release the network clients held by ``context``."""
    try:
        await context.salesforce.aclose()
    except Exception:
        logger.exception("Failed to close Salesforce client during shutdown.")
    if context.workflow is not None:
        try:
            await context.workflow.store.close()
        except Exception:
            logger.exception("Failed to close approval store during shutdown.")


def _context_lifespan(
    context: OperatorServerContext,
) -> Callable[[FastMCP], AsyncContextManager[OperatorServerContext]]:
    """Create a FastMCP lifespan context that exposes the operator services."""

    @asynccontextmanager
    async def lifespan(_: FastMCP) -> AsyncGenerator[OperatorServerContext, None]:
        try:
            yield context
        finally:
            await close_server_context(context)

    return lifespan


class OperatorMCPServer:
    """CRM operator Model Context Protocol server backed by FastMCP."""

    def __init__(self, name: str, context: OperatorServerContext) -> None:
        self._server = FastMCP(name=name, lifespan=_context_lifespan(context))
        register_tools(self._server)

    async def run(self) -> None:
        """Run the server using FastMCP's stdio transport."""
        await self._server.run_stdio_async()


def send_error_response(
    error_message: str, code: int = 401, details: Optional[dict] = None
) -> None:
    """
    Send a proper MCP error response to stdout and exit.

    This function can be used before the server is started to return
    error responses in the proper MCP format.
    """
    if details is None:
        details = {}

    error_data = types.ErrorData(code=code, message=error_message, data=details)

    response = types.JSONRPCError(
        jsonrpc="2.0",
        id="pre-initialization",
        error=error_data,
    )

    sys.stdout.write(f"{response.model_dump_json()}\n")
    sys.stdout.flush()
    sys.exit(1)


__all__ = [
    "OperatorMCPServer",
    "build_server_context",
    "close_server_context",
    "send_error_response",
]
