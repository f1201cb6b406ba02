from __future__ import annotations

from moperator.approvals.base import (
    APPROVAL_TTL_SECONDS,
    ApprovalAction,
    ApprovalOutcome,
    ApprovalStore,
    ChatUser,
    GatedInvocation,
    InteractionEvent,
    NoOpApprovalStore,
    PendingApproval,
)
from moperator.approvals.describe import describe_operation
from moperator.approvals.memory import InMemoryApprovalStore
from moperator.approvals.policy import AuthorizationPolicy, approver_mention
from moperator.approvals.redis import RedisApprovalStore
from moperator.approvals.slack import ChatMessenger, SlackMessenger
from moperator.approvals.workflow import ApprovalWorkflow, OperationExecutor

__all__ = [
    "APPROVAL_TTL_SECONDS",
    "ApprovalAction",
    "ApprovalOutcome",
    "ApprovalStore",
    "ApprovalWorkflow",
    "AuthorizationPolicy",
    "ChatMessenger",
    "ChatUser",
    "GatedInvocation",
    "InMemoryApprovalStore",
    "InteractionEvent",
    "NoOpApprovalStore",
    "OperationExecutor",
    "PendingApproval",
    "RedisApprovalStore",
    "SlackMessenger",
    "approver_mention",
    "describe_operation",
]
