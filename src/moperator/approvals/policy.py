from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from moperator.approvals.base import ChatUser


logger = logging.getLogger(__name__)

DEFAULT_APPROVER_MENTION = "@approvers"


class Directory(Protocol):
    """Resolves chat user ids to directory profiles."""

    async def lookup_user(self, user_id: str) -> ChatUser | None: ...


def normalize_emails(emails: Iterable[str] | str | None) -> frozenset[str]:
    """Normalize an allow-list given as an iterable or a comma-separated string."""
    if not emails:
        return frozenset()
    if isinstance(emails, str):
        emails = emails.split(",")
    return frozenset(
        value.strip().lower() for value in emails if value and value.strip()
    )


def approver_mention(group_id: str | None) -> str:
    """Mention string for the reviewer group in Slack mrkdwn."""
    if group_id:
        return f"<!subteam^{group_id}>"
    return DEFAULT_APPROVER_MENTION


class AuthorizationPolicy:
    """Decides whether a chat user may run write operations directly.

    Users are matched by the verified email address from the directory
    against the configured allow-list. An empty allow-list authorizes nobody.
    """

    def __init__(
        self, directory: Directory, authorized_emails: Iterable[str] | str | None
    ) -> None:
        self._directory = directory
        self._emails = normalize_emails(authorized_emails)

    @property
    def authorized_emails(self) -> frozenset[str]:
        return self._emails

    async def is_authorized(self, actor_id: str) -> bool:
        if not self._emails or not actor_id:
            return False

        try:
            user = await self._directory.lookup_user(actor_id)
        except Exception:
            logger.exception("Directory lookup failed for user %s", actor_id)
            return False

        if user is None or not user.email:
            logger.debug("No verified email for user %s", actor_id)
            return False

        return user.email.strip().lower() in self._emails


__all__ = [
    "AuthorizationPolicy",
    "DEFAULT_APPROVER_MENTION",
    "Directory",
    "approver_mention",
    "normalize_emails",
]
