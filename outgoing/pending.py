"""
Pending Table — in-flight sends waiting for their completion signal.

Every message built through the dispatch wrapper gets a correlation id and
a PendingEntry holding the CompletionHandle the caller awaits. The entry is
removed at the moment its handle settles, so a late or duplicate
confirmation finds nothing and is ignored.

Lifecycle:
  created ──send──▶ awaiting-send-result ──▶ finalized-immediate
                                         └──▶ awaiting-confirmation ──▶ finalized-deferred

All access happens on the event loop thread, so the table needs no lock;
correctness relies on correlation ids being unique.
"""
from __future__ import annotations

import asyncio
import time
import uuid
import structlog
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from channels.base import ChannelMetrics, DuplicateCorrelationIdError, PendingExpiredError
from models.schemas import OutboundEvent

logger = structlog.get_logger()


def new_correlation_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


# ══════════════════════════════════════════════════════════════
#  COMPLETION HANDLE
# ══════════════════════════════════════════════════════════════

class LegacyCallbackAdapter:
    """
    Forwards settlement to resolve/reject callables carried on the message.

    Older callers attach `resolve_callback` / `reject_callback` to the event
    instead of awaiting the returned future. Both paths fire on settlement.
    """

    def __init__(
        self,
        on_resolve: Optional[Callable[[Any], Any]] = None,
        on_reject: Optional[Callable[[Any], Any]] = None,
    ):
        self.on_resolve = on_resolve
        self.on_reject = on_reject

    @classmethod
    def from_event(cls, event: OutboundEvent) -> Optional[LegacyCallbackAdapter]:
        if event.resolve_callback is None and event.reject_callback is None:
            return None
        return cls(event.resolve_callback, event.reject_callback)

    def resolve(self, value: Any):
        self._call(self.on_resolve, value)

    def reject(self, error: BaseException):
        self._call(self.on_reject, error)

    @staticmethod
    def _call(callback: Optional[Callable[[Any], Any]], arg: Any):
        if callback is None:
            return
        try:
            callback(arg)
        except Exception as e:
            logger.error("legacy_callback_failed", error=str(e), exc_info=True)


class CompletionHandle:
    """
    Resolve/reject pair bound to the caller-visible future.

    The future is created on first access so a message can be built outside
    a running loop. Settling twice is a no-op.
    """

    def __init__(self, legacy: Optional[LegacyCallbackAdapter] = None):
        self._legacy = legacy
        self._future: Optional[asyncio.Future] = None
        self._outcome: Optional[tuple[bool, Any]] = None    # (ok, value-or-error)

    @property
    def future(self) -> asyncio.Future:
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
            if self._outcome is not None:
                self._apply(*self._outcome)
        return self._future

    @property
    def settled(self) -> bool:
        return self._outcome is not None

    def resolve(self, value: Any = None) -> bool:
        if self.settled:
            return False
        self._outcome = (True, value)
        if self._future is not None:
            self._apply(True, value)
        if self._legacy:
            self._legacy.resolve(value)
        return True

    def reject(self, error: BaseException) -> bool:
        if self.settled:
            return False
        self._outcome = (False, error)
        if self._future is not None:
            self._apply(False, error)
        if self._legacy:
            self._legacy.reject(error)
        return True

    def _apply(self, ok: bool, value: Any):
        if self._future.done():
            return
        if ok:
            self._future.set_result(value)
        else:
            self._future.set_exception(value)


# ══════════════════════════════════════════════════════════════
#  PENDING ENTRY & TABLE
# ══════════════════════════════════════════════════════════════

@dataclass
class PendingEntry:
    correlation_id: str
    handle: CompletionHandle
    event: OutboundEvent
    timestamp: int = field(default_factory=now_ms)      # epoch ms, last touched
    platform_message_id: Optional[str] = None

    @property
    def recipient_id(self) -> str:
        return self.event.raw.to

    @property
    def awaiting_confirmation(self) -> bool:
        return self.platform_message_id is not None and self.event.raw.wants_delayed_completion


class PendingTable:
    """Correlation id → PendingEntry. One instance per integration."""

    def __init__(self, metrics: Optional[ChannelMetrics] = None):
        self._entries: dict[str, PendingEntry] = {}
        self._metrics = metrics

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, correlation_id: str) -> bool:
        return correlation_id in self._entries

    def entries(self) -> list[PendingEntry]:
        return list(self._entries.values())

    def add(self, entry: PendingEntry) -> PendingEntry:
        if entry.correlation_id in self._entries:
            raise DuplicateCorrelationIdError(entry.correlation_id)
        self._entries[entry.correlation_id] = entry
        return entry

    def get(self, correlation_id: str) -> Optional[PendingEntry]:
        return self._entries.get(correlation_id)

    def pop(self, correlation_id: str) -> Optional[PendingEntry]:
        return self._entries.pop(correlation_id, None)

    def touch(
        self,
        correlation_id: str,
        platform_message_id: Optional[str] = None,
        backdate_ms: int = 1000,
    ) -> Optional[PendingEntry]:
        """
        Record the platform message id and mark the entry slightly in the past.

        Read watermarks are compared against the timestamp, so backdating
        keeps a confirmation that lands within the window acceptable.
        """
        entry = self._entries.get(correlation_id)
        if entry is None:
            return None
        if platform_message_id:
            entry.platform_message_id = platform_message_id
        entry.timestamp = now_ms() - backdate_ms
        return entry

    def resolve(self, correlation_id: str, value: Any = None) -> bool:
        entry = self._entries.pop(correlation_id, None)
        if entry is None:
            return False
        return entry.handle.resolve(value)

    def reject(self, correlation_id: str, error: BaseException) -> bool:
        entry = self._entries.pop(correlation_id, None)
        if entry is None:
            return False
        return entry.handle.reject(error)

    def sweep(self, max_age_seconds: float, now: Optional[int] = None) -> int:
        """Reject and drop every entry untouched for longer than max_age_seconds."""
        if max_age_seconds <= 0:
            return 0
        now = now if now is not None else now_ms()
        cutoff = now - int(max_age_seconds * 1000)
        stale = [e for e in self._entries.values() if e.timestamp < cutoff]
        for entry in stale:
            age = (now - entry.timestamp) / 1000
            self.reject(entry.correlation_id, PendingExpiredError(entry.correlation_id, age))
        if stale:
            if self._metrics:
                self._metrics.record_expired(len(stale))
            logger.warning("pending_entries_expired", count=len(stale), remaining=len(self._entries))
        return len(stale)


# ══════════════════════════════════════════════════════════════
#  SWEEPER
# ══════════════════════════════════════════════════════════════

class PendingSweeper:
    """
    Periodically expires pending entries that never got confirmed.

    Usage:
        sweeper = PendingSweeper(table, max_age_seconds=3600, interval_seconds=60)
        sweeper.start()
        await sweeper.stop()
    """

    def __init__(self, table: PendingTable, max_age_seconds: float, interval_seconds: float = 60.0):
        self.table = table
        self.max_age_seconds = max_age_seconds
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self.max_age_seconds > 0 and self.interval_seconds > 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> Optional[asyncio.Task]:
        if not self.enabled or self.running:
            return self._task
        self._task = asyncio.create_task(self._run())
        logger.info("pending_sweeper_started",
                    max_age_seconds=self.max_age_seconds,
                    interval_seconds=self.interval_seconds)
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("pending_sweeper_stopped")

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.table.sweep(self.max_age_seconds)
