from __future__ import annotations

import asyncio
import fnmatch
from collections.abc import Mapping, Sequence
from typing import Any

import pytest

from moperator.approvals import (
    ApprovalWorkflow,
    AuthorizationPolicy,
    ChatUser,
    InMemoryApprovalStore,
)
from moperator.salesforce import SalesforceAPIError


APPROVER_EMAIL = "approver@example.com"


def run(coro: Any) -> Any:
    return asyncio.run(coro)


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMessenger:
    """Records chat traffic instead of talking to Slack."""

    def __init__(self, users: Mapping[str, ChatUser] | None = None) -> None:
        self.users = dict(users or {})
        self.posts: list[dict[str, Any]] = []
        self.updates: list[dict[str, Any]] = []
        self.notices: list[dict[str, Any]] = []
        self.lookups: list[str] = []
        self.fail_posts = False
        self._ts = 0

    async def post_message(
        self,
        channel: str,
        text: str,
        *,
        thread_ref: str | None = None,
        blocks: Sequence[dict[str, Any]] | None = None,
    ) -> str | None:
        if self.fail_posts:
            raise RuntimeError("slack is down")
        self._ts += 1
        ts = f"1700000000.{self._ts:06d}"
        self.posts.append(
            {
                "channel": channel,
                "text": text,
                "thread_ref": thread_ref,
                "blocks": list(blocks) if blocks else None,
                "ts": ts,
            }
        )
        return ts

    async def update_message(
        self,
        channel: str,
        message_ref: str,
        text: str,
        *,
        blocks: Sequence[dict[str, Any]] | None = None,
    ) -> None:
        self.updates.append({"channel": channel, "message_ref": message_ref, "text": text})

    async def post_private_notice(self, channel: str, user_id: str, text: str) -> None:
        self.notices.append({"channel": channel, "user_id": user_id, "text": text})

    async def lookup_user(self, user_id: str) -> ChatUser | None:
        self.lookups.append(user_id)
        return self.users.get(user_id)


class FakeDirectory:
    def __init__(
        self, users: Mapping[str, ChatUser] | None = None, *, error: Exception | None = None
    ) -> None:
        self.users = dict(users or {})
        self.error = error
        self.calls: list[str] = []

    async def lookup_user(self, user_id: str) -> ChatUser | None:
        self.calls.append(user_id)
        if self.error is not None:
            raise self.error
        return self.users.get(user_id)


class RecordingExecutor:
    def __init__(self, result: Any = None, *, delay: float = 0.0) -> None:
        self.result = result if result is not None else {"success": True}
        self.delay = delay
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def execute(self, tool_name: str, args: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append((tool_name, dict(args)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakeSalesforce:
    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.closed = False

    async def query(self, soql: str) -> list[dict[str, Any]]:
        self.calls.append(("query", (soql,)))
        return [{"Id": "003A"}, {"Id": "003B"}]

    async def describe_object(self, object_name: str) -> dict[str, Any]:
        self.calls.append(("describe_object", (object_name,)))
        fields = [
            {"name": f"Field{i}", "label": f"Field {i}", "type": "string", "nillable": i != 0}
            for i in range(60)
        ]
        return {"name": object_name, "label": object_name, "fields": fields}

    async def describe_global(self) -> dict[str, Any]:
        return {
            "sobjects": [
                {"name": "Contact", "label": "Contact"},
                {"name": "Zeta__c", "label": "Zeta"},
            ]
        }

    async def create_record(self, object_name: str, data: dict[str, Any]) -> str:
        self.calls.append(("create_record", (object_name, data)))
        return "003NEW"

    async def update_record(self, object_name: str, record_id: str, data: dict[str, Any]) -> None:
        self.calls.append(("update_record", (object_name, record_id, data)))

    async def delete_record(self, object_name: str, record_id: str) -> None:
        self.calls.append(("delete_record", (object_name, record_id)))
        if record_id == "gone":
            raise SalesforceAPIError(
                status_code=404, url="https://x/sobjects", body="NOT_FOUND"
            )

    async def bulk_update(self, object_name: str, records: list[dict[str, Any]]) -> dict[str, Any]:
        self.calls.append(("bulk_update", (object_name, records)))
        return {
            "success": len(records) - 1,
            "failed": 1,
            "errors": [f"error {i}" for i in range(12)],
        }

    async def add_to_campaign(
        self, campaign_id: str, contact_ids: list[str], status: str | None = None
    ) -> dict[str, Any]:
        self.calls.append(("add_to_campaign", (campaign_id, contact_ids, status)))
        return {"success": len(contact_ids), "failed": 0, "errors": []}

    async def aclose(self) -> None:
        self.closed = True


class FakeRedis:
    """Tiny subset of ``redis.asyncio.Redis`` with TTL support."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.clock = clock or FakeClock()
        self.data: dict[str, tuple[str, float | None]] = {}
        self.closed = False

    def _live(self, key: str) -> str | None:
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self.clock():
            del self.data[key]
            return None
        return value

    async def set(
        self,
        key: str,
        value: str,
        ex: int | None = None,
        nx: bool = False,
        xx: bool = False,
        keepttl: bool = False,
    ) -> bool | None:
        exists = self._live(key) is not None
        if (nx and exists) or (xx and not exists):
            return None
        if keepttl and exists:
            expires_at = self.data[key][1]
        else:
            expires_at = self.clock() + ex if ex is not None else None
        self.data[key] = (value, expires_at)
        return True

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def getdel(self, key: str) -> str | None:
        value = self._live(key)
        self.data.pop(key, None)
        return value

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def scan_iter(self, match: str | None = None, count: int | None = None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatchcase(key, match):
                if self._live(key) is not None:
                    yield key

    async def aclose(self) -> None:
        self.closed = True


def make_workflow(
    *,
    store: Any = None,
    messenger: FakeMessenger | None = None,
    executor: RecordingExecutor | None = None,
    authorized: Sequence[str] = (APPROVER_EMAIL,),
    clock: Any = None,
) -> ApprovalWorkflow:
    messenger = messenger or FakeMessenger()
    return ApprovalWorkflow(
        store if store is not None else InMemoryApprovalStore(clock=clock or FakeClock()),
        messenger,
        AuthorizationPolicy(messenger, authorized),
        executor or RecordingExecutor(),
        approver_mention="<!subteam^S123>",
        clock=clock or FakeClock(),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def users() -> dict[str, ChatUser]:
    return {
        "UAPPROVER": ChatUser(id="UAPPROVER", email=APPROVER_EMAIL, name="Ada Approver"),
        "UREQ": ChatUser(id="UREQ", email="requester@example.com", name="Rex Requester"),
    }


@pytest.fixture
def messenger(users) -> FakeMessenger:
    return FakeMessenger(users)
