"""
Message builders — construct an OutboundEvent from call arguments.

Builders are pure: they validate input and shape the Send API payload but
never touch the network or the pending table. Each one is exposed twice on
the integration, as `create_<kind>` (build only) and `send_<kind>`.
"""
from __future__ import annotations

from typing import Any, Callable, Optional, Union

from channels.base import MessageBuildError
from models.schemas import (
    AttachmentType, EventType, OutboundEvent, SendOptions, SenderAction,
)

MAX_TEXT_LENGTH = 2000
MAX_QUICK_REPLIES = 11
MAX_QUICK_REPLY_TITLE = 20


def _require_user(user_id: str):
    if not user_id:
        raise MessageBuildError("Recipient user id is required")


def _options(user_id: str, options: Optional[dict[str, Any]], **raw: Any) -> SendOptions:
    opts = dict(options or {})
    opts.update(raw)
    opts["to"] = user_id
    return SendOptions.model_validate(opts)


def _quick_reply(reply: Union[str, dict[str, Any]]) -> dict[str, Any]:
    if isinstance(reply, str):
        title, payload = reply, reply.upper()
    else:
        title = reply.get("title", "")
        payload = reply.get("payload") or title.upper()
    if not title:
        raise MessageBuildError("Quick reply title cannot be empty")
    if len(title) > MAX_QUICK_REPLY_TITLE:
        raise MessageBuildError(f"Quick reply title too long: {title!r}")
    return {"content_type": "text", "title": title, "payload": payload}


def create_text(user_id: str, text: str, options: Optional[dict[str, Any]] = None) -> OutboundEvent:
    _require_user(user_id)
    if not text:
        raise MessageBuildError("Text message cannot be empty")
    if len(text) > MAX_TEXT_LENGTH:
        raise MessageBuildError(f"Text message longer than {MAX_TEXT_LENGTH} characters")
    return OutboundEvent(
        type=EventType.TEXT.value,
        text=text,
        raw=_options(user_id, options, message={"text": text}),
    )


def create_quick_replies(
    user_id: str,
    text: str,
    quick_replies: list[Union[str, dict[str, Any]]],
    options: Optional[dict[str, Any]] = None,
) -> OutboundEvent:
    _require_user(user_id)
    if not text:
        raise MessageBuildError("Quick replies need a text prompt")
    if not quick_replies or len(quick_replies) > MAX_QUICK_REPLIES:
        raise MessageBuildError(f"Between 1 and {MAX_QUICK_REPLIES} quick replies are required")
    message = {"text": text, "quick_replies": [_quick_reply(r) for r in quick_replies]}
    return OutboundEvent(
        type=EventType.QUICK_REPLIES.value,
        text=text,
        raw=_options(user_id, options, message=message),
    )


def create_attachment(
    user_id: str,
    type: str,
    url: str,
    options: Optional[dict[str, Any]] = None,
) -> OutboundEvent:
    _require_user(user_id)
    try:
        kind = AttachmentType(type)
    except ValueError:
        raise MessageBuildError(f"Invalid attachment type: {type}") from None
    if not url:
        raise MessageBuildError("Attachment url cannot be empty")
    message = {"attachment": {"type": kind.value, "payload": {"url": url}}}
    return OutboundEvent(
        type=EventType.ATTACHMENT.value,
        text=f"{kind.value}: {url}",
        raw=_options(user_id, options, message=message),
    )


def create_template(
    user_id: str,
    payload: dict[str, Any],
    options: Optional[dict[str, Any]] = None,
) -> OutboundEvent:
    _require_user(user_id)
    if not payload or not payload.get("template_type"):
        raise MessageBuildError("Template payload requires a template_type")
    message = {"attachment": {"type": "template", "payload": payload}}
    return OutboundEvent(
        type=EventType.TEMPLATE.value,
        text=f"template: {payload['template_type']}",
        raw=_options(user_id, options, message=message),
    )


def _action_options(user_id: str, options: Optional[dict[str, Any]], action: SenderAction) -> SendOptions:
    raw = _options(user_id, options, sender_action=action)
    # The Send API returns no message id for sender actions, so nothing could confirm them.
    if raw.wants_delayed_completion:
        raise MessageBuildError(f"Sender action {action.value} cannot wait for delivery or read")
    return raw


def create_typing(user_id: str, on: bool = True, options: Optional[dict[str, Any]] = None) -> OutboundEvent:
    _require_user(user_id)
    action = SenderAction.TYPING_ON if on else SenderAction.TYPING_OFF
    return OutboundEvent(
        type=EventType.TYPING.value,
        text=action.value,
        raw=_action_options(user_id, options, action),
    )


def create_seen(user_id: str, options: Optional[dict[str, Any]] = None) -> OutboundEvent:
    _require_user(user_id)
    return OutboundEvent(
        type=EventType.SEEN.value,
        text=SenderAction.MARK_SEEN.value,
        raw=_action_options(user_id, options, SenderAction.MARK_SEEN),
    )


BUILDERS: dict[str, Callable[..., OutboundEvent]] = {
    "create_text": create_text,
    "create_quick_replies": create_quick_replies,
    "create_attachment": create_attachment,
    "create_template": create_template,
    "create_typing": create_typing,
    "create_seen": create_seen,
}

# Event type each builder produces, used to check every builder has a sender.
BUILDER_EVENT_TYPES: dict[str, str] = {
    "create_text": EventType.TEXT.value,
    "create_quick_replies": EventType.QUICK_REPLIES.value,
    "create_attachment": EventType.ATTACHMENT.value,
    "create_template": EventType.TEMPLATE.value,
    "create_typing": EventType.TYPING.value,
    "create_seen": EventType.SEEN.value,
}
