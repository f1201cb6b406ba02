from __future__ import annotations

import abc
from collections.abc import AsyncIterator, Mapping
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


APPROVAL_TTL_SECONDS = 30 * 60
APPROVAL_KEY_PREFIX = "approval:"


class ApprovalAction(str, Enum):
    """Action identifiers carried by the approval prompt buttons."""

    APPROVE = "approve_operation"
    DENY = "deny_operation"


class ApprovalOutcome(str, Enum):
    """Result of handling a single approval interaction."""

    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"
    UNAUTHORIZED = "unauthorized"
    IGNORED = "ignored"


@dataclass(slots=True, frozen=True)
class PendingApproval:
    """A gated write operation waiting for a reviewer decision."""

    id: str
    tool_name: str
    args: dict[str, Any]
    requester_id: str
    channel: str
    description: str
    created_at: float
    thread_ref: str | None = None
    prompt_ref: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PendingApproval:
        return cls(
            id=str(data["id"]),
            tool_name=str(data["tool_name"]),
            args=dict(data.get("args") or {}),
            requester_id=str(data["requester_id"]),
            channel=str(data["channel"]),
            description=str(data["description"]),
            created_at=float(data.get("created_at", 0.0)),
            thread_ref=data.get("thread_ref"),
            prompt_ref=data.get("prompt_ref"),
        )


@dataclass(slots=True, frozen=True)
class GatedInvocation:
    """A request to run a gated tool on behalf of a chat user."""

    tool_name: str
    args: dict[str, Any]
    requester_id: str
    channel: str
    thread_ref: str | None = None


@dataclass(slots=True, frozen=True)
class InteractionEvent:
    """A button click on an approval prompt."""

    action_id: str
    clicker_id: str
    channel: str
    message_ref: str
    message_text: str = ""
    approval_id: str | None = None

    @classmethod
    def from_slack_payload(cls, payload: Mapping[str, Any]) -> InteractionEvent | None:
        """Build an event from a Slack ``block_actions`` payload.

        Returns ``None`` for payloads that are not button clicks.
        """
        if payload.get("type") != "block_actions":
            return None

        actions = payload.get("actions") or []
        if not actions:
            return None

        action = actions[0]
        message = payload.get("message") or {}
        channel = payload.get("channel") or {}
        user = payload.get("user") or {}

        return cls(
            action_id=str(action.get("action_id", "")),
            clicker_id=str(user.get("id", "")),
            channel=str(channel.get("id", "")),
            message_ref=str(message.get("ts", "")),
            message_text=str(message.get("text") or ""),
            approval_id=action.get("value") or None,
        )


@dataclass(slots=True, frozen=True)
class ChatUser:
    """Subset of a chat directory profile used for authorization."""

    id: str
    email: str | None = None
    name: str | None = None


class ApprovalStore(abc.ABC):
    """Interface for durable pending-approval storage with TTL expiry."""

    ttl_seconds: int = APPROVAL_TTL_SECONDS

    @property
    def available(self) -> bool:
        return True

    async def close(self) -> None:
        """Release any backend resources."""

    @abc.abstractmethod
    async def put(self, approval: PendingApproval) -> bool:
        """Persist a new approval. Returns ``False`` when nothing was written."""

    @abc.abstractmethod
    async def get(self, approval_id: str) -> PendingApproval | None:
        """Fetch a live approval by id."""

    @abc.abstractmethod
    async def delete(self, approval_id: str) -> None:
        """Remove an approval. Missing ids are ignored."""

    @abc.abstractmethod
    async def claim(self, approval_id: str) -> PendingApproval | None:
        """Atomically remove and return an approval.

        Only one concurrent caller for the same id receives the record.
        """

    @abc.abstractmethod
    async def attach_prompt(self, approval_id: str, prompt_ref: str) -> bool:
        """Record the prompt message reference on a live approval, once."""

    @abc.abstractmethod
    def scan_all(self) -> AsyncIterator[PendingApproval]:
        """Iterate over every live approval."""


class NoOpApprovalStore(ApprovalStore):
    """Store used when no backend is configured. Nothing is ever persisted."""

    @property
    def available(self) -> bool:
        return False

    async def put(self, approval: PendingApproval) -> bool:  # noqa: ARG002
        return False

    async def get(self, approval_id: str) -> PendingApproval | None:  # noqa: ARG002
        return None

    async def delete(self, approval_id: str) -> None:  # noqa: ARG002
        return None

    async def claim(self, approval_id: str) -> PendingApproval | None:  # noqa: ARG002
        return None

    async def attach_prompt(self, approval_id: str, prompt_ref: str) -> bool:  # noqa: ARG002
        return False

    async def scan_all(self) -> AsyncIterator[PendingApproval]:
        return
        yield  # pragma: no cover


__all__ = [
    "APPROVAL_KEY_PREFIX",
    "APPROVAL_TTL_SECONDS",
    "ApprovalAction",
    "ApprovalOutcome",
    "ApprovalStore",
    "ChatUser",
    "GatedInvocation",
    "InteractionEvent",
    "NoOpApprovalStore",
    "PendingApproval",
]
