"""
Messenger integration — wires builders, pending table, middleware and the
confirmation handler into one object owned by the host.

Usage:
    pipeline = MiddlewareRegistry()
    messenger = MessengerIntegration(get_settings(), pipeline=pipeline)
    messenger.start()

    event = messenger.create_text("USER_PSID", "Hello")       # build only
    receipt = await messenger.send_text("USER_PSID", "Hello")  # build + send
    await messenger.send_text("USER_PSID", "Hi", {"waitRead": True})

    messenger.confirmations.handle_webhook(body)  # from the webhook route
    await messenger.shutdown()
"""
from __future__ import annotations

import structlog
from typing import Any, Callable, Optional

from channels.base import ChannelMetrics
from channels.messenger_client import MessengerClient
from config.settings import Settings
from outgoing.builders import BUILDER_EVENT_TYPES, BUILDERS
from outgoing.confirmations import ConfirmationHandler
from outgoing.dispatch import DispatchWrapper, send_name
from outgoing.middleware import (
    MIDDLEWARE_DESCRIPTION, MIDDLEWARE_NAME, MIDDLEWARE_ORDER, OutgoingMiddleware,
)
from outgoing.pending import PendingSweeper, PendingTable
from outgoing.senders import SENDERS, Sender
from pipeline.middlewares import MiddlewareRegistry

logger = structlog.get_logger()


class MessengerIntegration:
    def __init__(
        self,
        settings: Settings,
        client: Optional[MessengerClient] = None,
        pipeline: Optional[MiddlewareRegistry] = None,
        builders: Optional[dict[str, Callable[..., Any]]] = None,
        senders: Optional[dict[str, Sender]] = None,
    ):
        self.settings = settings
        self.client = client or MessengerClient(
            access_token=settings.messenger.access_token,
            app_secret=settings.messenger.app_secret,
            graph_version=settings.messenger.graph_version,
            timeout=settings.messenger.request_timeout,
        )
        self.pipeline = pipeline or MiddlewareRegistry()
        self.builders = dict(BUILDERS if builders is None else builders)
        self.senders = dict(SENDERS if senders is None else senders)
        self._check_senders()

        self.metrics = ChannelMetrics("messenger")
        self.pending = PendingTable(metrics=self.metrics)
        self.middleware = OutgoingMiddleware(
            self.pending,
            self.senders,
            self.client,
            platform=settings.platform,
            backdate_ms=settings.pending.backdate_ms,
            metrics=self.metrics,
        )
        self.confirmations = ConfirmationHandler(self.pending, metrics=self.metrics)
        self.dispatcher = DispatchWrapper(self.pending, self.pipeline.send_outgoing, platform=settings.platform)
        self.sweeper = PendingSweeper(
            self.pending,
            max_age_seconds=settings.pending.max_age_seconds,
            interval_seconds=settings.pending.sweep_interval_seconds,
        )

        self.pipeline.register(
            name=MIDDLEWARE_NAME,
            order=MIDDLEWARE_ORDER,
            handler=self.middleware,
            description=MIDDLEWARE_DESCRIPTION,
            module="messenger",
        )
        self.actions: dict[str, Callable[..., Any]] = {}
        for name, builder in self.builders.items():
            create, send = self.dispatcher.wrap(builder)
            self.actions[name] = create
            self.actions[send_name(name)] = send

    def _check_senders(self):
        event_types = {BUILDER_EVENT_TYPES.get(name) for name in self.builders}
        missing = sorted(t for t in event_types if t and t not in self.senders)
        if missing:
            raise ValueError(f"No sender registered for event types: {', '.join(missing)}")

    def __getattr__(self, name: str) -> Callable[..., Any]:
        actions = self.__dict__.get("actions", {})
        if name in actions:
            return actions[name]
        raise AttributeError(f"{type(self).__name__!s} has no attribute {name!r}")

    def start(self):
        self.sweeper.start()
        logger.info("messenger_integration_started",
                    platform=self.settings.platform,
                    actions=sorted(self.actions))

    async def shutdown(self):
        await self.sweeper.stop()
        await self.dispatcher.drain()
        await self.client.close()
        logger.info("messenger_integration_stopped", pending=len(self.pending))

    async def health_check(self) -> dict[str, Any]:
        return {
            "platform": self.settings.platform,
            "pending": len(self.pending),
            "awaiting_confirmation": sum(1 for e in self.pending.entries() if e.awaiting_confirmation),
            "sweeper_running": self.sweeper.running,
            "metrics": self.metrics.to_dict(),
        }
