from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any
from urllib.parse import urlsplit
from uuid import uuid4

from shared.types import SensitiveRequest, dump_wire

logger = logging.getLogger(__name__)


class ConfirmationNotFound(KeyError):
    pass


class ConfirmationAlreadyResolved(RuntimeError):
    pass


@dataclass
class ConfirmationRecord:
    confirmation_id: str
    request: SensitiveRequest
    origin: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: str = "pending"
    resolved_at: datetime | None = None
    _future: asyncio.Future[bool] | None = field(default=None, repr=False)
    _loop: asyncio.AbstractEventLoop | None = field(default=None, repr=False)

    @property
    def hostname(self) -> str | None:
        if not self.origin:
            return None
        return urlsplit(self.origin).hostname or self.origin

    def to_view(self) -> dict[str, Any]:
        return {
            "id": self.confirmation_id,
            "status": self.status,
            "kind": self.request.type,
            "summary": f"{self.request.describe()} requested by {self.hostname or 'unknown site'}",
            "origin": self.origin,
            "hostname": self.hostname,
            "request": dump_wire(self.request),
            "created_at": self.created_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


class PendingConfirmations:
    """
    Confirmation authority backed by a human: requests wait here until
    someone approves or rejects them (see `authority.api`).

    `confirm()` runs on the gate's event loop; `resolve()` may be called from
    any thread (FastAPI worker threads included). Only the newest
    `max_resolved` settled records are kept for the history view; pending
    ones are never dropped.
    """

    def __init__(self, *, max_resolved: int = 200) -> None:
        self._records: dict[str, ConfirmationRecord] = {}
        self._lock = Lock()
        self._max_resolved = max(0, int(max_resolved))

    async def confirm(self, request: SensitiveRequest, origin: str | None) -> bool:
        loop = asyncio.get_running_loop()
        rec = ConfirmationRecord(
            confirmation_id=uuid4().hex,
            request=request,
            origin=origin,
            _future=loop.create_future(),
            _loop=loop,
        )
        with self._lock:
            self._records[rec.confirmation_id] = rec
        logger.info("awaiting user confirmation %s (%s)", rec.confirmation_id, request.type)
        try:
            return await rec._future
        finally:
            with self._lock:
                if rec.status == "pending":
                    rec.status = "abandoned"
                    self._prune_locked()

    def resolve(self, confirmation_id: str, approved: bool) -> ConfirmationRecord:
        with self._lock:
            rec = self._records.get(confirmation_id)
            if rec is None:
                raise ConfirmationNotFound(confirmation_id)
            if rec.status != "pending":
                raise ConfirmationAlreadyResolved(f"{confirmation_id} is already {rec.status}")
            rec.status = "approved" if approved else "rejected"
            rec.resolved_at = datetime.now(timezone.utc)
            self._prune_locked()
            fut, loop = rec._future, rec._loop

        if fut is not None and loop is not None:
            loop.call_soon_threadsafe(_settle, fut, bool(approved))
        logger.info("confirmation %s %s", confirmation_id, rec.status)
        return rec

    def _prune_locked(self) -> None:
        settled = [cid for cid, r in self._records.items() if r.status != "pending"]
        for cid in settled[: max(0, len(settled) - self._max_resolved)]:
            del self._records[cid]

    def get(self, confirmation_id: str) -> ConfirmationRecord | None:
        with self._lock:
            return self._records.get(confirmation_id)

    def list_confirmations(self, *, status: str | None = None) -> list[ConfirmationRecord]:
        with self._lock:
            recs = list(self._records.values())
        if status:
            recs = [r for r in recs if r.status == status]
        return sorted(recs, key=lambda r: r.created_at)


def _settle(fut: asyncio.Future[bool], value: bool) -> None:
    if not fut.done():
        fut.set_result(value)
