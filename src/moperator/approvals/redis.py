"""Redis-backed pending approval storage.

Each approval is stored as a JSON document under ``approval:<id>`` with an
absolute expiry set when it is written. Reads never refresh the expiry, and
``GETDEL`` is the single-winner primitive used to resolve an approval.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from moperator.approvals.base import (
    APPROVAL_KEY_PREFIX,
    APPROVAL_TTL_SECONDS,
    ApprovalStore,
    PendingApproval,
)


logger = logging.getLogger(__name__)

_SCAN_BATCH_SIZE = 100


class RedisApprovalStore(ApprovalStore):
    """Approval store persisted in Redis so approvals survive restarts."""

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        prefix: str = APPROVAL_KEY_PREFIX,
        ttl_seconds: int = APPROVAL_TTL_SECONDS,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisApprovalStore:
        client = aioredis.from_url(url, decode_responses=True)
        connection = client.connection_pool.connection_kwargs
        logger.info(
            "Redis approval store initialized (host %s)",
            connection.get("host") or connection.get("path", "unknown"),
        )
        return cls(client, **kwargs)

    async def close(self) -> None:
        await self._client.aclose()

    def _key(self, approval_id: str) -> str:
        return f"{self._prefix}{approval_id}"

    @staticmethod
    def _decode(raw: str | bytes | None) -> PendingApproval | None:
        if raw is None:
            return None
        try:
            return PendingApproval.from_dict(json.loads(raw))
        except (ValueError, TypeError, KeyError):
            logger.warning("Discarding malformed approval record")
            return None

    @staticmethod
    def _encode(approval: PendingApproval) -> str:
        return json.dumps(approval.to_dict())

    async def put(self, approval: PendingApproval) -> bool:
        try:
            written = await self._client.set(
                self._key(approval.id),
                self._encode(approval),
                ex=self.ttl_seconds,
                nx=True,
            )
        except RedisError:
            logger.exception("Unable to store approval %s", approval.id)
            return False
        if not written:
            logger.warning("Approval %s already exists; not overwriting", approval.id)
            return False
        return True

    async def get(self, approval_id: str) -> PendingApproval | None:
        return self._decode(await self._client.get(self._key(approval_id)))

    async def delete(self, approval_id: str) -> None:
        await self._client.delete(self._key(approval_id))

    async def claim(self, approval_id: str) -> PendingApproval | None:
        return self._decode(await self._client.getdel(self._key(approval_id)))

    async def attach_prompt(self, approval_id: str, prompt_ref: str) -> bool:
        approval = await self.get(approval_id)
        if approval is None or approval.prompt_ref:
            return False
        updated = dataclasses.replace(approval, prompt_ref=prompt_ref)
        written = await self._client.set(
            self._key(approval_id),
            self._encode(updated),
            xx=True,
            keepttl=True,
        )
        return bool(written)

    async def scan_all(self) -> AsyncIterator[PendingApproval]:
        async for key in self._client.scan_iter(
            match=f"{self._prefix}*", count=_SCAN_BATCH_SIZE
        ):
            approval = self._decode(await self._client.get(key))
            if approval is not None:
                yield approval


__all__ = ["RedisApprovalStore"]
