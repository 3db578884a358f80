"""Shared test fixtures for the Messenger outbound tracker."""
import itertools

import pytest
from unittest.mock import AsyncMock, MagicMock

from channels.base import ChannelMetrics
from channels.messenger_client import MessengerClient
from config.settings import MessengerConfig, PendingConfig, Settings
from core.integration import MessengerIntegration
from outgoing.builders import create_text
from outgoing.confirmations import ConfirmationHandler
from outgoing.middleware import OutgoingMiddleware
from outgoing.pending import CompletionHandle, PendingEntry, PendingTable
from outgoing.senders import SENDERS
from pipeline.middlewares import MiddlewareRegistry


USER_ID = "1234567890"


def make_client(message_id: str = None, error: Exception = None) -> MessengerClient:
    """A MessengerClient double whose sends succeed with m1, m2, ... unless error is set."""
    counter = itertools.count(1)
    client = MagicMock(spec=MessengerClient)

    async def send_message(recipient_id, message):
        if error is not None:
            raise error
        mid = message_id or f"m{next(counter)}"
        return {"recipient_id": recipient_id, "message_id": mid}

    client.send_message = AsyncMock(side_effect=send_message)
    client.send_action = AsyncMock(return_value={"recipient_id": USER_ID})
    client.close = AsyncMock()
    return client


def register(table: PendingTable, event, correlation_id: str = "cid-1") -> PendingEntry:
    """Register an event in the table the way the dispatch wrapper does."""
    event.correlation_id = correlation_id
    return table.add(PendingEntry(correlation_id=correlation_id, handle=CompletionHandle(), event=event))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        messenger=MessengerConfig(access_token="token", app_secret="secret"),
        pending=PendingConfig(backdate_ms=1000, max_age_seconds=0),
    )


@pytest.fixture
def client() -> MessengerClient:
    return make_client()


@pytest.fixture
def metrics() -> ChannelMetrics:
    return ChannelMetrics("messenger")


@pytest.fixture
def table(metrics) -> PendingTable:
    return PendingTable(metrics=metrics)


@pytest.fixture
def middleware(table, client, metrics) -> OutgoingMiddleware:
    return OutgoingMiddleware(table, SENDERS, client, metrics=metrics)


@pytest.fixture
def confirmations(table, metrics) -> ConfirmationHandler:
    return ConfirmationHandler(table, metrics=metrics)


@pytest.fixture
def text_event():
    return create_text(USER_ID, "Hello there")


@pytest.fixture
def pipeline() -> MiddlewareRegistry:
    return MiddlewareRegistry()


@pytest.fixture
def integration(settings, client, pipeline) -> MessengerIntegration:
    return MessengerIntegration(settings, client=client, pipeline=pipeline)
