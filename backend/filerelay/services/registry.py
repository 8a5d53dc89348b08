"""In-memory registry of live uploads and their expiry.

Every removal (explicit delete, lazy expiry on read, or the expiry timer)
goes through :meth:`FileRegistry._evict`, which pops the entry under the
lock and is a no-op for a handle that is already gone. Timer cancellation
and blob deletion happen after the lock is released.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from filerelay.models import CancelToken, FileRecord
from filerelay.services.storage import StorageService

logger = logging.getLogger(__name__)


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> CancelToken: ...

    def submit(self, coro_factory: Callable[[], Any]) -> None: ...


@dataclass(frozen=True)
class ActiveFile:
    handle: str
    display_name: str
    remaining: float


class FileRegistry:
    def __init__(
        self,
        storage: StorageService,
        scheduler: Scheduler,
        grace_period: float = 2.0,
    ) -> None:
        self.storage = storage
        self.scheduler = scheduler
        self.grace_period = grace_period
        self.cleanup_failures = 0
        self._records: dict[str, FileRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._records

    def register(
        self,
        location: str,
        display_name: str,
        now: float,
        lifetime: float,
        size: int = 0,
    ) -> str:
        record = FileRecord(
            location=location,
            display_name=display_name,
            created_at=now,
            expires_at=now + lifetime,
            size=size,
        )
        # uuid4 collisions are not checked for.
        record.cancel_token = self.scheduler.call_later(
            lifetime + self.grace_period, self._on_timer, record.handle
        )
        with self._lock:
            self._records[record.handle] = record
        logger.info(
            "Registered %s (%s, %d bytes), expires in %.1fs",
            record.handle,
            record.display_name,
            record.size,
            lifetime,
        )
        return record.handle

    def list(self, now: float) -> list[ActiveFile]:
        active: list[ActiveFile] = []
        expired: list[FileRecord] = []
        with self._lock:
            for handle, record in list(self._records.items()):
                if record.is_expired(now):
                    expired.append(self._records.pop(handle))
                else:
                    active.append(
                        ActiveFile(
                            handle=handle,
                            display_name=record.display_name,
                            remaining=record.remaining(now),
                        )
                    )
        for record in expired:
            self._release(record, reason="expired")
        return active

    def get(self, handle: str, now: float) -> FileRecord | None:
        with self._lock:
            record = self._records.get(handle)
            if record is None:
                return None
            if not record.is_expired(now):
                return record
            del self._records[handle]
        self._release(record, reason="expired")
        return None

    def delete(self, handle: str) -> bool:
        return self._evict(handle, reason="deleted") is not None

    def clear(self) -> int:
        """Drop every record and cancel its timer without touching blobs."""
        with self._lock:
            records = list(self._records.values())
            self._records.clear()
        for record in records:
            if record.cancel_token is not None:
                record.cancel_token.cancel()
        return len(records)

    def _on_timer(self, handle: str) -> None:
        self._evict(handle, reason="timer")

    def _evict(self, handle: str, reason: str) -> FileRecord | None:
        with self._lock:
            record = self._records.pop(handle, None)
        if record is None:
            return None
        self._release(record, reason=reason)
        return record

    def _release(self, record: FileRecord, reason: str) -> None:
        if record.cancel_token is not None:
            record.cancel_token.cancel()
        logger.info("Evicted %s (%s)", record.handle, reason)
        try:
            self.scheduler.submit(lambda: self._discard_blob(record))
        except RuntimeError:
            logger.warning(
                "Scheduler not running; blob %s for %s left on storage",
                record.location,
                record.handle,
            )

    async def _discard_blob(self, record: FileRecord) -> None:
        try:
            await self.storage.delete_object(record.location)
        except Exception:
            self.cleanup_failures += 1
            logger.exception(
                "Failed to delete blob %s for %s", record.location, record.handle
            )
