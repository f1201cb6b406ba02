from __future__ import annotations

import dataclasses
import time
from collections.abc import AsyncIterator, Callable

from moperator.approvals.base import (
    APPROVAL_TTL_SECONDS,
    ApprovalStore,
    PendingApproval,
)


class InMemoryApprovalStore(ApprovalStore):
    """Process-local approval store.

    Suitable for tests and single-process development only; records do not
    survive a restart. The clock is injectable so expiry can be exercised
    without sleeping.
    """

    def __init__(
        self,
        *,
        ttl_seconds: int = APPROVAL_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._records: dict[str, tuple[float, PendingApproval]] = {}

    def _live(self, approval_id: str) -> tuple[float, PendingApproval] | None:
        entry = self._records.get(approval_id)
        if entry is None:
            return None
        if entry[0] <= self._clock():
            self._records.pop(approval_id, None)
            return None
        return entry

    async def put(self, approval: PendingApproval) -> bool:
        if self._live(approval.id) is not None:
            return False
        self._records[approval.id] = (self._clock() + self.ttl_seconds, approval)
        return True

    async def get(self, approval_id: str) -> PendingApproval | None:
        entry = self._live(approval_id)
        return entry[1] if entry else None

    async def delete(self, approval_id: str) -> None:
        self._records.pop(approval_id, None)

    async def claim(self, approval_id: str) -> PendingApproval | None:
        entry = self._live(approval_id)
        if entry is None:
            return None
        self._records.pop(approval_id, None)
        return entry[1]

    async def attach_prompt(self, approval_id: str, prompt_ref: str) -> bool:
        entry = self._live(approval_id)
        if entry is None or entry[1].prompt_ref:
            return False
        expires_at, approval = entry
        self._records[approval_id] = (
            expires_at,
            dataclasses.replace(approval, prompt_ref=prompt_ref),
        )
        return True

    async def scan_all(self) -> AsyncIterator[PendingApproval]:
        for approval_id in list(self._records):
            entry = self._live(approval_id)
            if entry is not None:
                yield entry[1]


__all__ = ["InMemoryApprovalStore"]
