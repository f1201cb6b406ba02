from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from moperator.approvals.base import (
    ApprovalAction,
    ApprovalOutcome,
    ApprovalStore,
    GatedInvocation,
    InteractionEvent,
    PendingApproval,
)
from moperator.approvals.describe import describe_operation, sentence_case
from moperator.approvals.policy import DEFAULT_APPROVER_MENTION, AuthorizationPolicy
from moperator.approvals.slack import ChatMessenger, build_approval_blocks


logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = (
    "Approvals are unavailable: no approval store is configured. "
    "Set REDIS_URL to enable the approval workflow."
)
NOT_AUTHORIZED_MESSAGE = (
    "You are not authorized to approve or deny operations. "
    "Only authorized users can do this."
)
EXPIRED_MESSAGE = "_This approval request has expired or was already handled._"
HANDLED_MESSAGE = "This approval request was already handled by another reviewer."

_RESULT_PREVIEW_LIMIT = 2800


class OperationExecutor(Protocol):
    """Runs a gated tool for real. Failures are reported, never raised."""

    async def execute(self, tool_name: str, args: Mapping[str, Any]) -> dict[str, Any]: ...


def _format_payload(result: Any) -> str:
    text = json.dumps(result, indent=2, default=str)
    if len(text) > _RESULT_PREVIEW_LIMIT:
        return f"{text[: _RESULT_PREVIEW_LIMIT - 3]}..."
    return text


def _failed(result: Any) -> str | None:
    if isinstance(result, Mapping) and result.get("success") is False:
        return str(result.get("error") or result.get("message") or "Unknown error")
    return None


class ApprovalWorkflow:
    """Human-in-the-loop approval of gated write operations.

    Submission and resolution of one approval normally happen in different
    invocations, possibly on different hosts, so all state lives in the
    approval store. ``claim`` on the store picks the one resolver that gets
    to act on a record.
    """

    def __init__(
        self,
        store: ApprovalStore,
        messenger: ChatMessenger,
        policy: AuthorizationPolicy,
        executor: OperationExecutor,
        *,
        approver_mention: str = DEFAULT_APPROVER_MENTION,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.messenger = messenger
        self.policy = policy
        self.executor = executor
        self.approver_mention = approver_mention
        self._clock = clock

    def prompt_text(self, requester_name: str, description: str) -> str:
        minutes = self.store.ttl_seconds // 60
        return (
            f"{self.approver_mention} Approval needed from *{requester_name}*:\n\n"
            f"*{description}*\n\n"
            f"_This request will expire in {minutes} minutes._"
        )

    async def request(self, invocation: GatedInvocation) -> dict[str, Any]:
        """Store a gated operation and post the approval prompt.

        The operation is not executed here. The returned payload is handed
        back to the agent as the tool result.
        """
        description = describe_operation(invocation.tool_name, invocation.args)
        approval = PendingApproval(
            id=str(uuid.uuid4()),
            tool_name=invocation.tool_name,
            args=dict(invocation.args),
            requester_id=invocation.requester_id,
            channel=invocation.channel,
            thread_ref=invocation.thread_ref,
            description=description,
            created_at=self._clock(),
        )

        if not await self.store.put(approval):
            logger.warning(
                "Approval store unavailable; rejecting '%s' requested by %s",
                invocation.tool_name,
                invocation.requester_id,
            )
            return {
                "success": False,
                "pending_approval": False,
                "message": UNAVAILABLE_MESSAGE,
            }

        requester_name = await self._display_name(invocation.requester_id)
        text = self.prompt_text(requester_name, description)
        try:
            prompt_ref = await self.messenger.post_message(
                invocation.channel,
                text,
                thread_ref=invocation.thread_ref,
                blocks=build_approval_blocks(text, approval.id),
            )
        except Exception:
            # The record stays pending until its TTL elapses.
            logger.exception("Failed to post approval prompt for %s", approval.id)
            prompt_ref = None

        if prompt_ref:
            try:
                await self.store.attach_prompt(approval.id, prompt_ref)
            except Exception:
                logger.warning(
                    "Unable to record prompt for approval %s", approval.id, exc_info=True
                )

        logger.info(
            "Approval %s requested for tool '%s' by %s",
            approval.id,
            approval.tool_name,
            approval.requester_id,
        )
        return {
            "success": True,
            "pending_approval": True,
            "approval_id": approval.id,
            "message": (
                f"Your request to {sentence_case(description)} "
                "has been submitted for approval."
            ),
        }

    async def find_by_message(self, message_text: str) -> PendingApproval | None:
        """Find the live approval whose description appears in a prompt text."""
        if not message_text:
            return None
        async for approval in self.store.scan_all():
            if approval.description and f"*{approval.description}*" in message_text:
                return approval
        return None

    async def handle_interaction(self, event: InteractionEvent) -> ApprovalOutcome:
        """Resolve an Approve/Deny click. Never raises."""
        try:
            action = ApprovalAction(event.action_id)
        except ValueError:
            return ApprovalOutcome.IGNORED

        try:
            return await self._resolve(action, event)
        except Exception:
            logger.exception(
                "Unexpected failure handling %s from %s", action.value, event.clicker_id
            )
            return ApprovalOutcome.IGNORED

    async def _resolve(
        self, action: ApprovalAction, event: InteractionEvent
    ) -> ApprovalOutcome:
        if not await self.policy.is_authorized(event.clicker_id):
            logger.info(
                "Rejected %s from unauthorized user %s", action.value, event.clicker_id
            )
            await self._notify_private(event.channel, event.clicker_id, NOT_AUTHORIZED_MESSAGE)
            return ApprovalOutcome.UNAUTHORIZED

        approval = await self._locate(event)
        if approval is None:
            await self._update_prompt(event.channel, event.message_ref, EXPIRED_MESSAGE)
            return ApprovalOutcome.EXPIRED

        claimed = await self.store.claim(approval.id)
        if claimed is None:
            # Another reviewer resolved it between the read and the claim.
            await self._notify_private(event.channel, event.clicker_id, HANDLED_MESSAGE)
            return ApprovalOutcome.EXPIRED

        logger.info(
            "Approval %s %s by %s",
            claimed.id,
            "approved" if action is ApprovalAction.APPROVE else "denied",
            event.clicker_id,
        )
        if action is ApprovalAction.APPROVE:
            await self._approve(claimed, event)
            return ApprovalOutcome.APPROVED

        await self._deny(claimed, event)
        return ApprovalOutcome.DENIED

    async def _locate(self, event: InteractionEvent) -> PendingApproval | None:
        if event.approval_id:
            return await self.store.get(event.approval_id)
        return await self.find_by_message(event.message_text)

    async def _approve(self, approval: PendingApproval, event: InteractionEvent) -> None:
        clicker = f"<@{event.clicker_id}>"
        await self._update_prompt(
            event.channel, event.message_ref, f"_Approved by {clicker}. Executing..._"
        )

        try:
            result = await self.executor.execute(approval.tool_name, approval.args)
        except Exception as exc:
            logger.exception("Approved operation %s raised", approval.id)
            result = {"success": False, "error": str(exc) or type(exc).__name__}

        error = _failed(result)
        if error is None:
            text = (
                f"Approved by {clicker}.\n\n*{approval.description}*: completed.\n"
                f"```\n{_format_payload(result)}\n```"
            )
        else:
            text = (
                f"Approved by {clicker}, but the operation failed:\n"
                f"```\n{error}\n```"
            )
        await self._post(approval.channel, text, approval.thread_ref)

    async def _deny(self, approval: PendingApproval, event: InteractionEvent) -> None:
        clicker = f"<@{event.clicker_id}>"
        await self._update_prompt(
            event.channel,
            event.message_ref,
            f"_Denied by {clicker}._\n\n~{approval.description}~",
        )
        await self._post(
            approval.channel,
            (
                f"<@{approval.requester_id}> Your request to "
                f"{sentence_case(approval.description)} was denied by {clicker}."
            ),
            approval.thread_ref,
        )

    async def _display_name(self, user_id: str) -> str:
        try:
            user = await self.messenger.lookup_user(user_id)
        except Exception:
            logger.debug("Display name lookup failed for %s", user_id, exc_info=True)
            return user_id
        if user is None or not user.name:
            return user_id
        return user.name

    async def _update_prompt(self, channel: str, message_ref: str, text: str) -> None:
        if not message_ref:
            return
        try:
            await self.messenger.update_message(channel, message_ref, text)
        except Exception:
            logger.warning("Failed to update approval prompt %s", message_ref, exc_info=True)

    async def _post(self, channel: str, text: str, thread_ref: str | None) -> None:
        try:
            await self.messenger.post_message(channel, text, thread_ref=thread_ref)
        except Exception:
            logger.warning("Failed to post approval result to %s", channel, exc_info=True)

    async def _notify_private(self, channel: str, user_id: str, text: str) -> None:
        try:
            await self.messenger.post_private_notice(channel, user_id, text)
        except Exception:
            logger.warning("Failed to notify user %s", user_id, exc_info=True)


__all__ = [
    "ApprovalWorkflow",
    "EXPIRED_MESSAGE",
    "HANDLED_MESSAGE",
    "NOT_AUTHORIZED_MESSAGE",
    "OperationExecutor",
    "UNAVAILABLE_MESSAGE",
]
