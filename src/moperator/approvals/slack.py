from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from moperator.approvals.base import ApprovalAction, ChatUser


logger = logging.getLogger(__name__)

Block = dict[str, Any]


class ChatMessenger(Protocol):
    """Chat primitives the approval workflow depends on."""

    async def post_message(
        self,
        channel: str,
        text: str,
        *,
        thread_ref: str | None = None,
        blocks: Sequence[Block] | None = None,
    ) -> str | None: ...

    async def update_message(
        self,
        channel: str,
        message_ref: str,
        text: str,
        *,
        blocks: Sequence[Block] | None = None,
    ) -> None: ...

    async def post_private_notice(self, channel: str, user_id: str, text: str) -> None: ...

    async def lookup_user(self, user_id: str) -> ChatUser | None: ...


def build_approval_blocks(text: str, approval_id: str) -> list[Block]:
    """Block Kit payload for an approval prompt with Approve/Deny buttons."""
    return [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": text},
        },
        {
            "type": "actions",
            "block_id": f"approval:{approval_id}",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Approve", "emoji": True},
                    "style": "primary",
                    "action_id": ApprovalAction.APPROVE.value,
                    "value": approval_id,
                },
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Deny", "emoji": True},
                    "style": "danger",
                    "action_id": ApprovalAction.DENY.value,
                    "value": approval_id,
                },
            ],
        },
    ]


def build_resolution_blocks(text: str) -> list[Block]:
    """Replacement blocks for a resolved prompt; the buttons are dropped."""
    return [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]


class SlackMessenger:
    """Slack Web API implementation of :class:`ChatMessenger`."""

    def __init__(self, client: AsyncWebClient) -> None:
        self._client = client

    @classmethod
    def from_token(cls, token: str) -> SlackMessenger:
        return cls(AsyncWebClient(token=token))

    async def post_message(
        self,
        channel: str,
        text: str,
        *,
        thread_ref: str | None = None,
        blocks: Sequence[Block] | None = None,
    ) -> str | None:
        kwargs: dict[str, Any] = {"channel": channel, "text": text}
        if thread_ref:
            kwargs["thread_ts"] = thread_ref
        if blocks:
            kwargs["blocks"] = list(blocks)
        response = await self._client.chat_postMessage(**kwargs)
        return response.get("ts")

    async def update_message(
        self,
        channel: str,
        message_ref: str,
        text: str,
        *,
        blocks: Sequence[Block] | None = None,
    ) -> None:
        await self._client.chat_update(
            channel=channel,
            ts=message_ref,
            text=text,
            blocks=list(blocks) if blocks is not None else build_resolution_blocks(text),
        )

    async def post_private_notice(self, channel: str, user_id: str, text: str) -> None:
        await self._client.chat_postEphemeral(channel=channel, user=user_id, text=text)

    async def lookup_user(self, user_id: str) -> ChatUser | None:
        try:
            response = await self._client.users_info(user=user_id)
        except SlackApiError as exc:
            logger.warning(
                "Slack user lookup failed for %s: %s",
                user_id,
                exc.response.get("error") if exc.response is not None else exc,
            )
            return None

        user = response.get("user") or {}
        profile = user.get("profile") or {}
        return ChatUser(
            id=user_id,
            email=profile.get("email"),
            name=profile.get("real_name") or profile.get("display_name") or None,
        )


__all__ = [
    "Block",
    "ChatMessenger",
    "SlackMessenger",
    "build_approval_blocks",
    "build_resolution_blocks",
]
