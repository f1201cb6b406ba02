import dataclasses
import logging
import sys

import anyio
import click
import uvicorn

from moperator.approvals import NoOpApprovalStore, RedisApprovalStore
from moperator.approvals.base import ApprovalStore
from moperator.config import Settings
from moperator.server import (
    OperatorMCPServer,
    build_server_context,
    send_error_response,
)
from moperator.web import create_app


APP_NAME = "moperator"


def _store_for(redis_url: str | None) -> ApprovalStore:
    if not redis_url:
        return NoOpApprovalStore()
    return RedisApprovalStore.from_url(redis_url)


@click.group()
def cli():
    """mOperator CRM operations CLI."""
    pass


@cli.command("server")
@click.option(
    "--requester-id",
    type=str,
    envvar="MOPERATOR_REQUESTER_ID",
    required=True,
    help="Slack user ID that MCP tool calls are made on behalf of.",
)
@click.option(
    "--approval-channel",
    type=str,
    envvar="MOPERATOR_APPROVAL_CHANNEL",
    required=True,
    help="Slack channel ID where approval requests are posted.",
)
@click.option(
    "--redis-url",
    type=str,
    envvar=["REDIS_URL", "KV_URL"],
    help="Redis URL for the approval store. Without it gated writes are refused.",
)
def server(
    requester_id: str,
    approval_channel: str,
    redis_url: str | None,
) -> int:
    """Run the mOperator MCP server."""
    # No logging to stderr when in MCP mode (we'll use proper MCP responses)
    settings = dataclasses.replace(
        Settings.from_env(),
        requester_id=requester_id,
        approval_channel=approval_channel,
        redis_url=redis_url or "",
    )

    if not settings.slack_bot_token:
        send_error_response(
            "SLACK_BOT_TOKEN is required to post approval requests.",
            code=400,
            details={"missing_slack_token": True},
        )
        return 1

    try:
        context = build_server_context(settings)
        mcp_server = OperatorMCPServer(APP_NAME, context)
        anyio.run(mcp_server.run, backend="asyncio")
        return 0
    except Exception as e:
        send_error_response(
            f"Error running server: {str(e)}", code=500, details={"error": str(e)}
        )
        return 1


@cli.command("web")
@click.option("--host", type=str, envvar="HOST", default="0.0.0.0", show_default=True)
@click.option("--port", type=int, envvar="PORT", default=8080, show_default=True)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    envvar="LOG_LEVEL",
    default="info",
    show_default=True,
)
def web(host: str, port: int, log_level: str) -> None:
    """Serve the Slack interactivity endpoint."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.from_env()
    for problem in settings.validate():
        click.echo(f"Warning: {problem}", err=True)

    try:
        context = build_server_context(settings)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if context.workflow is None:
        click.echo("Error: approval workflow is not configured", err=True)
        sys.exit(1)

    try:
        app = create_app(context.workflow, settings.slack_signing_secret)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    uvicorn.run(app, host=host, port=port, log_level=log_level.lower())


@cli.group("approvals")
def approvals():
    """Inspect pending approval requests."""
    pass


_redis_option = click.option(
    "--redis-url",
    type=str,
    envvar=["REDIS_URL", "KV_URL"],
    help="Redis URL of the approval store.",
)


@approvals.command("list")
@_redis_option
def list_approvals(redis_url: str | None) -> None:
    """List pending approvals that have not expired."""
    store = _store_for(redis_url)
    if not store.available:
        click.echo("No approval store configured. Set REDIS_URL.", err=True)
        sys.exit(1)

    async def collect():
        try:
            return [approval async for approval in store.scan_all()]
        finally:
            await store.close()

    pending = anyio.run(collect, backend="asyncio")
    if not pending:
        click.echo("No pending approvals.")
        return
    for approval in sorted(pending, key=lambda item: item.created_at):
        click.echo(
            f"{approval.id}  {approval.tool_name}  <@{approval.requester_id}>  "
            f"{approval.description}"
        )


@approvals.command("clear")
@click.argument("approval_id")
@_redis_option
def clear_approval(approval_id: str, redis_url: str | None) -> None:
    """Delete a pending approval so its buttons stop working."""
    store = _store_for(redis_url)
    if not store.available:
        click.echo("No approval store configured. Set REDIS_URL.", err=True)
        sys.exit(1)

    async def clear():
        try:
            existing = await store.get(approval_id)
            await store.delete(approval_id)
            return existing
        finally:
            await store.close()

    existing = anyio.run(clear, backend="asyncio")
    if existing is None:
        click.echo(f"Approval {approval_id} not found (already resolved or expired).")
    else:
        click.echo(f"Cleared approval {approval_id}: {existing.description}")


def main():
    """Main entry point for the application."""
    return cli()


if __name__ == "__main__":
    sys.exit(main())
