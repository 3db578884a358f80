"""Outbound dispatch: pending table, dispatch wrapper, middleware and confirmations."""
from outgoing.pending import (
    CompletionHandle,
    LegacyCallbackAdapter,
    PendingEntry,
    PendingSweeper,
    PendingTable,
    new_correlation_id,
)
from outgoing.dispatch import DispatchWrapper
from outgoing.middleware import OutgoingMiddleware, MIDDLEWARE_NAME, MIDDLEWARE_ORDER
from outgoing.confirmations import ConfirmationHandler
from outgoing.builders import BUILDERS
from outgoing.senders import SENDERS

__all__ = [
    "CompletionHandle", "LegacyCallbackAdapter", "PendingEntry", "PendingSweeper",
    "PendingTable", "new_correlation_id",
    "DispatchWrapper", "OutgoingMiddleware", "MIDDLEWARE_NAME", "MIDDLEWARE_ORDER",
    "ConfirmationHandler", "BUILDERS", "SENDERS",
]
