"""
Per-type senders: push an OutboundEvent through the Messenger client.

Contract: `async def sender(event, next, client) -> dict`. The returned
dict carries the platform `message_id` when the Send API assigns one.
Raising is the failure outcome.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from channels.base import MessageBuildError
from channels.messenger_client import MessengerClient
from models.schemas import EventType, OutboundEvent, SenderAction

Sender = Callable[[OutboundEvent, Callable[..., Any], MessengerClient], Awaitable[dict[str, Any]]]

DEFAULT_TYPING_MS = 1000


async def _typing_indicator(event: OutboundEvent, client: MessengerClient):
    delay_ms = event.raw.typing_delay_ms(DEFAULT_TYPING_MS)
    if delay_ms <= 0:
        return
    await client.send_action(event.recipient_id, SenderAction.TYPING_ON.value)
    await asyncio.sleep(delay_ms / 1000)


async def send_message(event: OutboundEvent, next, client: MessengerClient) -> dict[str, Any]:
    if not event.raw.message:
        raise MessageBuildError(f"{event.type} event has no message payload")
    await _typing_indicator(event, client)
    return await client.send_message(event.recipient_id, event.raw.message)


async def send_action(event: OutboundEvent, next, client: MessengerClient) -> dict[str, Any]:
    if event.raw.sender_action is None:
        raise MessageBuildError(f"{event.type} event has no sender action")
    return await client.send_action(event.recipient_id, event.raw.sender_action.value)


SENDERS: dict[str, Sender] = {
    EventType.TEXT.value: send_message,
    EventType.QUICK_REPLIES.value: send_message,
    EventType.ATTACHMENT.value: send_message,
    EventType.TEMPLATE.value: send_message,
    EventType.TYPING.value: send_action,
    EventType.SEEN.value: send_action,
}
