"""
Core data models for the Messenger outbound delivery tracker.
These are the types shared between builders, senders, the pending table
and the confirmation handler.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


PLATFORM_TAG = "facebook"


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class EventType(str, Enum):
    TEXT = "text"
    ATTACHMENT = "attachment"
    TEMPLATE = "template"
    QUICK_REPLIES = "quick_replies"
    TYPING = "typing"
    SEEN = "seen"


class AttachmentType(str, Enum):
    AUDIO = "audio"
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"


class SenderAction(str, Enum):
    TYPING_ON = "typing_on"
    TYPING_OFF = "typing_off"
    MARK_SEEN = "mark_seen"


class ConfirmationKind(str, Enum):
    DELIVERY = "delivery"
    READ = "read"


# ──────────────────────────────────────────────────────────────
#  Outbound event
# ──────────────────────────────────────────────────────────────

class SendOptions(BaseModel):
    """The `raw` part of an outbound event: recipient, payload, send flags."""
    model_config = ConfigDict(populate_by_name=True)

    to: str
    message: Optional[dict[str, Any]] = None
    sender_action: Optional[SenderAction] = None
    wait_delivery: bool = Field(default=False, alias="waitDelivery")
    wait_read: bool = Field(default=False, alias="waitRead")
    typing: Union[bool, int] = False          # True → default delay, int → milliseconds

    @property
    def wants_delayed_completion(self) -> bool:
        return self.wait_delivery or self.wait_read

    def typing_delay_ms(self, default_ms: int = 1000) -> int:
        if self.typing is True:
            return default_ms
        if self.typing is False:
            return 0
        return max(0, int(self.typing))


class OutboundEvent(BaseModel):
    """A message on its way through the outbound pipeline."""
    platform: str = PLATFORM_TAG
    type: str
    text: str = ""
    raw: SendOptions
    correlation_id: Optional[str] = Field(default=None, exclude=True)

    # Deprecated per-message callbacks, still honoured when the handle settles.
    resolve_callback: Optional[Callable[[Any], Any]] = Field(default=None, exclude=True)
    reject_callback: Optional[Callable[[Any], Any]] = Field(default=None, exclude=True)

    @property
    def recipient_id(self) -> str:
        return self.raw.to


# ──────────────────────────────────────────────────────────────
#  Confirmations
# ──────────────────────────────────────────────────────────────

class Confirmation(BaseModel):
    """A delivery or read notification that settles a deferred send."""
    kind: ConfirmationKind
    recipient_id: str
    watermark: int = 0
    mids: list[str] = []
    platform_message_id: Optional[str] = None
