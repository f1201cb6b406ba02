from __future__ import annotations

from dataclasses import dataclass, field

from moperator.approvals import ApprovalWorkflow
from moperator.salesforce import SalesforceClient


DEFAULT_AUTHORIZED_LIMIT = 1_500
DEFAULT_UNAUTHORIZED_LIMIT = 500


@dataclass(frozen=True)
class BulkLimits:
    """Maximum record counts per call for each requester tier."""

    authorized: int = DEFAULT_AUTHORIZED_LIMIT
    unauthorized: int = DEFAULT_UNAUTHORIZED_LIMIT


@dataclass(slots=True)
class OperatorServerContext:
    """Services shared by every tool invocation."""

    salesforce: SalesforceClient
    workflow: ApprovalWorkflow | None = None
    limits: BulkLimits = field(default_factory=BulkLimits)
    # Identity and prompt location for calls that do not come from Slack.
    requester_id: str = ""
    approval_channel: str = ""


__all__ = [
    "BulkLimits",
    "DEFAULT_AUTHORIZED_LIMIT",
    "DEFAULT_UNAUTHORIZED_LIMIT",
    "OperatorServerContext",
]
