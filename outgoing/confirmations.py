"""
Delivery / read correlator.

Sends that asked to wait for delivery or read stay in the pending table
after the Send API accepts them. Messenger later posts `message_deliveries`
and `message_reads` webhook events; this handler matches them against the
pending entries for the same user and settles those entries.

Matching rules:
- delivery: the entry's platform message id is listed in `mids`; when the
  event carries no mids, every entry touched at or before the watermark.
- read: every entry touched at or before the watermark. A read implies
  delivery, so entries waiting for delivery are settled too.

Confirmations for entries that are already gone are ignored.
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

from channels.base import ChannelMetrics
from models.schemas import Confirmation, ConfirmationKind
from outgoing.pending import PendingEntry, PendingTable

logger = structlog.get_logger()


class ConfirmationHandler:
    def __init__(self, table: PendingTable, metrics: Optional[ChannelMetrics] = None):
        self.table = table
        self.metrics = metrics

    def _waiting_for(self, recipient_id: str) -> list[PendingEntry]:
        return [
            e for e in self.table.entries()
            if e.recipient_id == recipient_id and e.awaiting_confirmation
        ]

    def _settle(self, entry: PendingEntry, confirmation: Confirmation) -> bool:
        confirmation = confirmation.model_copy(update={"platform_message_id": entry.platform_message_id})
        settled = self.table.resolve(entry.correlation_id, confirmation)
        if settled:
            logger.info("messenger_send_confirmed",
                        correlation_id=entry.correlation_id,
                        mid=entry.platform_message_id,
                        kind=confirmation.kind.value)
        return settled

    def handle_delivery(self, recipient_id: str, mids: Optional[list[str]] = None, watermark: int = 0) -> int:
        mids = list(mids or [])
        confirmation = Confirmation(
            kind=ConfirmationKind.DELIVERY, recipient_id=recipient_id,
            watermark=watermark, mids=mids,
        )
        count = 0
        for entry in self._waiting_for(recipient_id):
            if not entry.event.raw.wait_delivery:
                continue
            if mids:
                matched = entry.platform_message_id in mids
            else:
                matched = watermark > 0 and entry.timestamp <= watermark
            if matched and self._settle(entry, confirmation):
                count += 1
        if self.metrics and count:
            self.metrics.record_delivery(count)
        return count

    def handle_read(self, recipient_id: str, watermark: int) -> int:
        confirmation = Confirmation(
            kind=ConfirmationKind.READ, recipient_id=recipient_id, watermark=watermark,
        )
        count = 0
        for entry in self._waiting_for(recipient_id):
            if entry.timestamp <= watermark and self._settle(entry, confirmation):
                count += 1
        if self.metrics and count:
            self.metrics.record_read(count)
        return count

    def handle_webhook(self, payload: dict[str, Any]) -> int:
        """Dispatch the delivery and read events of a Messenger webhook body."""
        count = 0
        for entry in payload.get("entry", []) or []:
            for messaging in entry.get("messaging", []) or []:
                sender_id = (messaging.get("sender") or {}).get("id", "")
                if not sender_id:
                    continue
                if "delivery" in messaging:
                    delivery = messaging["delivery"] or {}
                    count += self.handle_delivery(
                        sender_id,
                        mids=delivery.get("mids") or [],
                        watermark=int(delivery.get("watermark", 0) or 0),
                    )
                elif "read" in messaging:
                    read = messaging["read"] or {}
                    count += self.handle_read(sender_id, int(read.get("watermark", 0) or 0))
        return count
