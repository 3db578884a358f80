"""
Channel base infrastructure shared by the Messenger integration.

Provides:
- ChannelError: structured error hierarchy for outbound delivery
- ChannelMetrics: per-channel send/fail/delivery/read/latency tracking
"""
from __future__ import annotations

from typing import Any


# ══════════════════════════════════════════════════════════════
#  ERRORS
# ══════════════════════════════════════════════════════════════

class ChannelError(Exception):
    """Base exception for all channel operations."""

    def __init__(self, message: str, channel: str = "", retryable: bool = False):
        self.channel = channel
        self.retryable = retryable
        super().__init__(message)


class MessengerAPIError(ChannelError):
    """The Send API answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int = 0, code: int = 0):
        self.status_code = status_code
        self.code = code
        retryable = status_code == 429 or status_code >= 500
        super().__init__(message, "messenger", retryable=retryable)


class UnsupportedEventTypeError(ChannelError):
    def __init__(self, event_type: str, channel: str = "messenger"):
        self.event_type = event_type
        super().__init__(f"Unsupported event type: {event_type}", channel)


class MessageBuildError(ChannelError):
    def __init__(self, message: str, channel: str = "messenger"):
        super().__init__(message, channel)


class PendingExpiredError(ChannelError):
    def __init__(self, correlation_id: str, age_seconds: float):
        self.correlation_id = correlation_id
        self.age_seconds = age_seconds
        super().__init__(
            f"No confirmation for {correlation_id} after {age_seconds:.0f}s",
            "messenger",
        )


class DuplicateCorrelationIdError(ChannelError):
    def __init__(self, correlation_id: str):
        self.correlation_id = correlation_id
        super().__init__(f"Correlation id already pending: {correlation_id}", "messenger")


# ══════════════════════════════════════════════════════════════
#  CHANNEL METRICS
# ══════════════════════════════════════════════════════════════

class ChannelMetrics:
    """Tracks per-channel send, failure, delivery, and latency metrics."""

    def __init__(self, channel: str):
        self.channel = channel
        self.messages_sent: int = 0
        self.messages_failed: int = 0
        self.messages_delivered: int = 0
        self.messages_read: int = 0
        self.messages_expired: int = 0
        self._latencies: list[float] = []
        self._errors: list[str] = []

    def record_send(self, latency_ms: float = 0.0):
        self.messages_sent += 1
        if latency_ms > 0:
            self._latencies.append(latency_ms)

    def record_failure(self, error: str = ""):
        self.messages_failed += 1
        if error:
            self._errors.append(error)

    def record_delivery(self, count: int = 1):
        self.messages_delivered += count

    def record_read(self, count: int = 1):
        self.messages_read += count

    def record_expired(self, count: int = 1):
        self.messages_expired += count

    @property
    def avg_latency_ms(self) -> float:
        return sum(self._latencies) / len(self._latencies) if self._latencies else 0.0

    @property
    def failure_rate(self) -> float:
        total = self.messages_sent + self.messages_failed
        return self.messages_failed / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "sent": self.messages_sent,
            "failed": self.messages_failed,
            "delivered": self.messages_delivered,
            "read": self.messages_read,
            "expired": self.messages_expired,
            "avg_latency_ms": round(self.avg_latency_ms, 1),
            "failure_rate": round(self.failure_rate, 4),
            "recent_errors": self._errors[-10:],
        }
