"""Channel infrastructure for the Messenger integration."""
from channels.base import (
    ChannelError,
    ChannelMetrics,
    DuplicateCorrelationIdError,
    MessageBuildError,
    MessengerAPIError,
    PendingExpiredError,
    UnsupportedEventTypeError,
)
from channels.messenger_client import MessengerClient

__all__ = [
    "ChannelError", "ChannelMetrics", "MessengerAPIError", "MessageBuildError",
    "UnsupportedEventTypeError", "PendingExpiredError", "DuplicateCorrelationIdError",
    "MessengerClient",
]
