"""
Outgoing middleware — the last step of the outbound pipeline.

For events tagged with our platform it looks up the type-specific sender,
awaits the send and finalizes the matching pending entry. It never calls
`next()` once it has accepted an event; the outcome reaches the caller only
through the completion future.
"""
from __future__ import annotations

import time
import structlog
from typing import Any, Callable, Optional

from channels.base import ChannelMetrics, UnsupportedEventTypeError
from channels.messenger_client import MessengerClient
from models.schemas import PLATFORM_TAG, OutboundEvent
from outgoing.pending import PendingTable
from outgoing.senders import Sender
from pipeline.middlewares import MiddlewareOutcome

logger = structlog.get_logger()

MIDDLEWARE_NAME = "messenger.sendMessages"
MIDDLEWARE_ORDER = 100
MIDDLEWARE_DESCRIPTION = (
    "Sends out messages that targets platform = messenger. "
    "This middleware should be placed at the end as it swallows events once sent."
)


class OutgoingMiddleware:
    def __init__(
        self,
        table: PendingTable,
        senders: dict[str, Sender],
        client: MessengerClient,
        platform: str = PLATFORM_TAG,
        backdate_ms: int = 1000,
        metrics: Optional[ChannelMetrics] = None,
    ):
        self.table = table
        self.senders = senders
        self.client = client
        self.platform = platform
        self.backdate_ms = backdate_ms
        self.metrics = metrics

    async def __call__(self, event: OutboundEvent, next: Callable[..., None]) -> MiddlewareOutcome:
        if event.platform != self.platform:
            next()
            return MiddlewareOutcome.PASS_THROUGH

        sender = self.senders.get(event.type)
        if sender is None:
            next(UnsupportedEventTypeError(event.type))
            return MiddlewareOutcome.ERROR

        start = time.monotonic()
        try:
            result = await sender(event, next, self.client)
        except Exception as e:
            logger.warning("messenger_send_failed",
                           correlation_id=event.correlation_id,
                           event_type=event.type, error=str(e))
            if self.metrics:
                self.metrics.record_failure(str(e))
            self.finalize(event, error=e)
        else:
            if self.metrics:
                self.metrics.record_send((time.monotonic() - start) * 1000)
            self.finalize(event, result=result)
        return MiddlewareOutcome.TERMINAL

    def finalize(
        self,
        event: OutboundEvent,
        result: Any = None,
        error: Optional[BaseException] = None,
    ) -> bool:
        """
        Settle or annotate the pending entry for this event.

        Returns True when the entry was settled and removed. A failed send
        rejects immediately even if the event asked to wait for delivery or
        read, since no confirmation will ever arrive for it.
        """
        cid = event.correlation_id
        if not cid or cid not in self.table:
            return False

        if error is not None:
            return self.table.reject(cid, error)

        mid = result.get("message_id") if isinstance(result, dict) else None
        if mid:
            self.table.touch(cid, platform_message_id=mid, backdate_ms=self.backdate_ms)

        if event.raw.wants_delayed_completion:
            logger.debug("messenger_awaiting_confirmation",
                         correlation_id=cid, mid=mid,
                         wait_delivery=event.raw.wait_delivery,
                         wait_read=event.raw.wait_read)
            return False

        return self.table.resolve(cid, result)
