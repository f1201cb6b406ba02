"""Request-scoped approval gating for sensitive write tools.

The gated set is closed: every member of :class:`GatedOperation` has a
:class:`GatedToolSpec` in ``GATED_OPERATIONS`` carrying its argument schema
and how to count the records it touches. Tools outside the set are passed
through untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from moperator.approvals import ApprovalWorkflow, GatedInvocation
from moperator.context import BulkLimits


logger = logging.getLogger(__name__)

ToolHandler = Callable[[Mapping[str, Any]], Awaitable[Any]]


class GatedOperation(str, Enum):
    """Write tools that require approval when requested by unprivileged users."""

    UPDATE_RECORD = "update_salesforce_record"
    CREATE_RECORD = "create_salesforce_record"
    DELETE_RECORD = "delete_salesforce_record"
    BULK_UPDATE = "bulk_update_records"
    ADD_TO_CAMPAIGN = "add_contacts_to_campaign"


class UpdateRecordArgs(BaseModel):
    object_name: str
    record_id: str
    data: dict[str, Any]


class CreateRecordArgs(BaseModel):
    object_name: str
    data: dict[str, Any]


class DeleteRecordArgs(BaseModel):
    object_name: str
    record_id: str


class BulkRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    Id: str


class BulkUpdateArgs(BaseModel):
    object_name: str
    records: list[BulkRecord]


class AddToCampaignArgs(BaseModel):
    campaign_id: str
    contact_ids: list[str] = Field(default_factory=list)
    status: str | None = None


@dataclass(frozen=True)
class GatedToolSpec:
    args_model: type[BaseModel]
    count: Callable[[Any], int] | None = None


GATED_OPERATIONS: dict[GatedOperation, GatedToolSpec] = {
    GatedOperation.UPDATE_RECORD: GatedToolSpec(UpdateRecordArgs),
    GatedOperation.CREATE_RECORD: GatedToolSpec(CreateRecordArgs),
    GatedOperation.DELETE_RECORD: GatedToolSpec(DeleteRecordArgs),
    GatedOperation.BULK_UPDATE: GatedToolSpec(
        BulkUpdateArgs, count=lambda args: len(args.records)
    ),
    GatedOperation.ADD_TO_CAMPAIGN: GatedToolSpec(
        AddToCampaignArgs, count=lambda args: len(args.contact_ids)
    ),
}


def gated_operation(tool_name: str) -> GatedOperation | None:
    try:
        return GatedOperation(tool_name)
    except ValueError:
        return None


@dataclass(frozen=True)
class RequestScope:
    """Who asked, and where results of a gated request should be posted."""

    requester_id: str
    channel: str
    thread_ref: str | None = None
    authorized: bool = False


def _limit_error(limit: int, submitted: int, *, authorized: bool) -> dict[str, Any]:
    audience = "" if authorized else " for non-authorized users"
    return {
        "success": False,
        "error": (
            f"Bulk operations are limited to {limit} records{audience}. "
            f"You submitted {submitted}."
        ),
    }


class ToolGate:
    """Tool handlers for one request, with gated writes wrapped.

    Build a new gate for every inbound request: it closes over the requester
    and the chat location used for approval prompts.
    """

    def __init__(
        self,
        handlers: Mapping[str, ToolHandler],
        scope: RequestScope,
        workflow: ApprovalWorkflow,
        limits: BulkLimits = BulkLimits(),
    ) -> None:
        self._handlers = dict(handlers)
        self.scope = scope
        self._workflow = workflow
        self._limits = limits

    @classmethod
    async def for_request(
        cls,
        handlers: Mapping[str, ToolHandler],
        workflow: ApprovalWorkflow,
        *,
        requester_id: str,
        channel: str,
        thread_ref: str | None = None,
        limits: BulkLimits = BulkLimits(),
    ) -> ToolGate:
        authorized = await workflow.policy.is_authorized(requester_id)
        scope = RequestScope(
            requester_id=requester_id,
            channel=channel,
            thread_ref=thread_ref,
            authorized=authorized,
        )
        return cls(handlers, scope, workflow, limits)

    def handlers(self) -> dict[str, ToolHandler]:
        wrapped: dict[str, ToolHandler] = {}
        for name, handler in self._handlers.items():
            operation = gated_operation(name)
            if operation is None:
                wrapped[name] = handler
            else:
                wrapped[name] = self._gated_handler(operation, handler)
        return wrapped

    async def invoke(self, tool_name: str, args: Mapping[str, Any]) -> Any:
        handler = self.handlers().get(tool_name)
        if handler is None:
            return {"success": False, "error": f'Tool "{tool_name}" not found'}
        return await handler(args)

    def _gated_handler(
        self, operation: GatedOperation, handler: ToolHandler
    ) -> ToolHandler:
        spec = GATED_OPERATIONS[operation]

        async def gated(args: Mapping[str, Any]) -> Any:
            try:
                parsed = spec.args_model.model_validate(dict(args))
            except ValidationError as exc:
                return {
                    "success": False,
                    "error": f"Invalid arguments for {operation.value}: {exc}",
                }

            # Drop unset optionals only; nulls inside record data clear fields.
            arguments = {
                key: value
                for key, value in parsed.model_dump().items()
                if value is not None
            }
            count = spec.count(parsed) if spec.count else None

            if self.scope.authorized:
                if count is not None and count > self._limits.authorized:
                    return _limit_error(self._limits.authorized, count, authorized=True)
                return await handler(arguments)

            if count is not None and count > self._limits.unauthorized:
                logger.info(
                    "Rejected %s of %d records from non-authorized user %s",
                    operation.value,
                    count,
                    self.scope.requester_id,
                )
                return _limit_error(self._limits.unauthorized, count, authorized=False)

            return await self._workflow.request(
                GatedInvocation(
                    tool_name=operation.value,
                    args=arguments,
                    requester_id=self.scope.requester_id,
                    channel=self.scope.channel,
                    thread_ref=self.scope.thread_ref,
                )
            )

        gated.__name__ = operation.value
        gated.__doc__ = getattr(handler, "__doc__", None)
        return gated


__all__ = [
    "BulkLimits",
    "GATED_OPERATIONS",
    "GatedOperation",
    "GatedToolSpec",
    "RequestScope",
    "ToolGate",
    "ToolHandler",
    "gated_operation",
]
