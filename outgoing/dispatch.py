"""
Dispatch wrapper — turns a message builder into create/send callables.

    create_text(user_id, text)  → OutboundEvent (registered, not sent)
    send_text(user_id, text)    → asyncio.Future settled when the send completes

Both variants tag the message with a fresh correlation id and register a
pending entry. A builder that raises registers nothing.
"""
from __future__ import annotations

import asyncio
import functools
import structlog
from typing import Any, Awaitable, Callable, Optional

from channels.base import ChannelError
from models.schemas import OutboundEvent
from outgoing.pending import (
    CompletionHandle, LegacyCallbackAdapter, PendingEntry, PendingTable, new_correlation_id,
)
from pipeline.middlewares import PipelineResult

logger = structlog.get_logger()

Builder = Callable[..., OutboundEvent]


def send_name(create_name: str) -> str:
    if create_name.startswith("create"):
        return "send" + create_name[len("create"):]
    return f"send_{create_name}"


class DispatchWrapper:
    def __init__(
        self,
        table: PendingTable,
        send_outgoing: Callable[[OutboundEvent], Awaitable[Any]],
        platform: Optional[str] = None,
    ):
        self.table = table
        self.platform = platform
        self._send_outgoing = send_outgoing
        self._inflight: set[asyncio.Task] = set()

    def register(self, event: OutboundEvent) -> PendingEntry:
        if self.platform:
            event.platform = self.platform
        event.correlation_id = new_correlation_id()
        handle = CompletionHandle(legacy=LegacyCallbackAdapter.from_event(event))
        entry = self.table.add(PendingEntry(
            correlation_id=event.correlation_id,
            handle=handle,
            event=event,
        ))
        logger.debug("pending_registered", correlation_id=event.correlation_id, event_type=event.type)
        return entry

    def wrap(self, builder: Builder) -> tuple[Callable[..., OutboundEvent], Callable[..., asyncio.Future]]:
        @functools.wraps(builder)
        def create(*args, **kwargs) -> OutboundEvent:
            event = builder(*args, **kwargs)
            self.register(event)
            return event

        @functools.wraps(builder)
        def send(*args, **kwargs) -> asyncio.Future:
            loop = asyncio.get_running_loop()
            event = builder(*args, **kwargs)
            entry = self.register(event)
            future = entry.handle.future
            task = loop.create_task(self._send_outgoing(event))
            self._inflight.add(task)
            task.add_done_callback(functools.partial(self._on_dispatched, event.correlation_id))
            return future

        send.__name__ = send_name(builder.__name__)
        return create, send

    def _on_dispatched(self, correlation_id: str, task: asyncio.Task):
        self._inflight.discard(task)
        if task.cancelled():
            self.table.reject(correlation_id, ChannelError("Outgoing dispatch cancelled", "messenger"))
            return
        error = task.exception()
        if error is not None:
            logger.error("outgoing_pipeline_crashed", correlation_id=correlation_id, error=str(error))
            self.table.reject(correlation_id, error)
            return
        result = task.result()
        if isinstance(result, PipelineResult) and not result.handled and correlation_id in self.table:
            # Nothing swallowed the event, so no sender will ever settle it.
            error = result.error or ChannelError("Outgoing event was not handled by any middleware", "messenger")
            logger.warning("outgoing_dispatch_unhandled", correlation_id=correlation_id, error=str(error))
            self.table.reject(correlation_id, error)

    async def drain(self):
        """Wait for every dispatched send to leave the pipeline."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
