from __future__ import annotations

import inspect
from types import SimpleNamespace
from typing import Any, cast

import pytest
from conftest import FakeMessenger, FakeSalesforce, make_workflow, run
from mcp.server.fastmcp import Context as MCPContext
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.tools import Tool
from mcp.types import ToolAnnotations

from moperator.approvals import InMemoryApprovalStore
from moperator.context import OperatorServerContext
from moperator.tools import _registration, register_tools
from moperator.tools import salesforce as sf_tools
from moperator.tools._registration import register_tool


async def _dummy_tool(ctx: OperatorServerContext) -> str:  # noqa: ARG001
    """dummy tool description"""
    return "ok"


class DummySession:
    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def send_log_message(self, **payload: Any) -> None:
        self.messages.append(payload)


def _registered_tools(server: FastMCP) -> dict[str, Tool]:
    manager = getattr(server, "_tool_manager")
    return {tool.name: tool for tool in cast(list[Tool], manager.list_tools())}


def _mcp_ctx(
    requester_id: str, messenger: FakeMessenger, store: Any = None
) -> tuple[MCPContext, OperatorServerContext, DummySession]:
    salesforce = FakeSalesforce()
    server_ctx = OperatorServerContext(
        salesforce=cast(Any, salesforce),
        requester_id=requester_id,
        approval_channel="C-OPS",
    )
    server_ctx.workflow = make_workflow(store=store, messenger=messenger)
    session = DummySession()
    request_context = SimpleNamespace(
        lifespan_context=server_ctx,
        request_id="req-1",
        session=session,
        meta=None,
    )
    ctx = MCPContext.model_construct(
        _request_context=cast(Any, request_context),
        _fastmcp=None,
    )
    return ctx, server_ctx, session


def test_register_tool_sets_readonly_annotations() -> None:
    server = FastMCP(name="readonly")
    register_tool(server, _dummy_tool)

    tool = _registered_tools(server)["_dummy_tool"]
    assert isinstance(tool.annotations, ToolAnnotations)
    assert tool.annotations.readOnlyHint is True
    assert tool.annotations.destructiveHint is None
    assert tool.description == "dummy tool description"


def test_register_tool_sets_write_annotations() -> None:
    server = FastMCP(name="write")
    register_tool(server, _dummy_tool, write=True)

    tool = _registered_tools(server)["_dummy_tool"]
    assert tool.annotations.readOnlyHint is False
    assert tool.annotations.destructiveHint is True


def test_register_tools_exposes_every_tool_without_context_argument() -> None:
    server = FastMCP(name="operator")
    register_tools(server)

    tools = _registered_tools(server)
    assert set(tools) >= {"query_salesforce", "bulk_update_records"}
    assert set(tools["query_salesforce"].parameters["properties"]) == {"soql"}
    assert set(tools["update_salesforce_record"].parameters["properties"]) == {
        "object_name",
        "record_id",
        "data",
    }
    assert tools["delete_salesforce_record"].annotations.destructiveHint is True
    assert tools["list_salesforce_objects"].annotations.readOnlyHint is True


def test_wrapper_signature_swaps_context_type() -> None:
    wrapped = _registration._wrap_for_mcp(sf_tools.query_salesforce)

    params = inspect.signature(wrapped).parameters
    assert params["ctx"].annotation is MCPContext
    assert list(params) == ["ctx", "soql"]


def test_tool_without_context_is_rejected() -> None:
    async def no_ctx(value: str) -> str:
        return value

    with pytest.raises(TypeError):
        _registration._wrap_for_mcp(no_ctx)


def test_read_tool_runs_directly() -> None:
    ctx, _, session = _mcp_ctx("UREQ", FakeMessenger())
    wrapped = _registration._wrap_for_mcp(sf_tools.query_salesforce)

    result = run(wrapped(ctx=ctx, soql="SELECT Id FROM Contact"))

    assert result["count"] == 2
    assert session.messages == []


def test_write_tool_from_unauthorized_requester_is_gated(messenger) -> None:
    store = InMemoryApprovalStore()
    ctx, server_ctx, session = _mcp_ctx("UREQ", messenger, store)
    wrapped = _registration._wrap_for_mcp(sf_tools.delete_salesforce_record)

    result = run(wrapped(ctx=ctx, object_name="Contact", record_id="003"))

    assert result["pending_approval"] is True
    assert cast(Any, server_ctx.salesforce).calls == []
    assert messenger.posts[0]["channel"] == "C-OPS"
    assert run(store.get(result["approval_id"])).requester_id == "UREQ"
    assert session.messages[0]["level"] == "info"


def test_write_tool_from_authorized_requester_executes(messenger) -> None:
    ctx, server_ctx, _ = _mcp_ctx("UAPPROVER", messenger)
    wrapped = _registration._wrap_for_mcp(sf_tools.delete_salesforce_record)

    result = run(wrapped(ctx=ctx, object_name="Contact", record_id="003"))

    assert result == {"success": True, "message": "Deleted Contact record 003"}
    assert cast(Any, server_ctx.salesforce).calls == [("delete_record", ("Contact", "003"))]
    assert messenger.posts == []


def test_missing_workflow_raises() -> None:
    ctx, server_ctx, _ = _mcp_ctx("UREQ", FakeMessenger())
    server_ctx.workflow = None
    wrapped = _registration._wrap_for_mcp(sf_tools.query_salesforce)

    with pytest.raises(RuntimeError):
        run(wrapped(ctx=ctx, soql="SELECT Id FROM Contact"))
