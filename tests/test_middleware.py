"""Tests for the outgoing middleware and its finalize step."""
import pytest
from unittest.mock import AsyncMock, MagicMock

from channels.base import MessengerAPIError, UnsupportedEventTypeError
from outgoing.builders import create_seen, create_text
from outgoing.middleware import OutgoingMiddleware
from outgoing.senders import SENDERS
from pipeline.middlewares import MiddlewareOutcome

from conftest import USER_ID, make_client, register


class TestPassThrough:
    @pytest.mark.asyncio
    async def test_other_platform_calls_next(self, middleware, table, client):
        event = create_text(USER_ID, "hi")
        event.platform = "slack"
        nxt = MagicMock()

        outcome = await middleware(event, nxt)

        assert outcome == MiddlewareOutcome.PASS_THROUGH
        nxt.assert_called_once_with()
        client.send_message.assert_not_called()
        assert len(table) == 0

    @pytest.mark.asyncio
    async def test_other_platform_leaves_pending_entry_alone(self, middleware, table):
        event = create_text(USER_ID, "hi")
        event.platform = "telegram"
        register(table, event, "a")
        await middleware(event, MagicMock())
        assert "a" in table
        assert not table.get("a").handle.settled


class TestUnsupportedType:
    @pytest.mark.asyncio
    async def test_unknown_type_routes_error_to_next(self, middleware, table, client):
        event = create_text(USER_ID, "hi")
        event.type = "carousel"
        nxt = MagicMock()

        outcome = await middleware(event, nxt)

        assert outcome == MiddlewareOutcome.ERROR
        nxt.assert_called_once()
        error = nxt.call_args.args[0]
        assert isinstance(error, UnsupportedEventTypeError)
        assert "carousel" in str(error)
        assert len(table) == 0
        client.send_message.assert_not_called()


class TestImmediateCompletion:
    @pytest.mark.asyncio
    async def test_success_resolves_and_removes(self, middleware, table):
        event = create_text(USER_ID, "hi")
        entry = register(table, event, "a")
        nxt = MagicMock()

        outcome = await middleware(event, nxt)

        assert outcome == MiddlewareOutcome.TERMINAL
        nxt.assert_not_called()
        assert "a" not in table
        assert entry.handle.future.done()
        assert (await entry.handle.future)["message_id"] == "m1"

    @pytest.mark.asyncio
    async def test_failure_rejects_and_removes(self, table, metrics):
        mw = OutgoingMiddleware(table, SENDERS, make_client(error=RuntimeError("network down")), metrics=metrics)
        event = create_text(USER_ID, "hi")
        entry = register(table, event, "a")
        nxt = MagicMock()

        assert await mw(event, nxt) == MiddlewareOutcome.TERMINAL

        nxt.assert_not_called()
        assert "a" not in table
        with pytest.raises(RuntimeError, match="network down"):
            await entry.handle.future
        assert metrics.messages_failed == 1

    @pytest.mark.asyncio
    async def test_event_without_pending_entry_is_still_sent(self, middleware, client):
        event = create_text(USER_ID, "hi")
        assert await middleware(event, MagicMock()) == MiddlewareOutcome.TERMINAL
        client.send_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sender_action_event(self, middleware, table, client):
        event = create_seen(USER_ID)
        entry = register(table, event, "a")
        await middleware(event, MagicMock())
        client.send_action.assert_awaited_once_with(USER_ID, "mark_seen")
        assert await entry.handle.future == {"recipient_id": USER_ID}

    @pytest.mark.asyncio
    async def test_metrics_record_send(self, middleware, table, metrics):
        event = create_text(USER_ID, "hi")
        register(table, event, "a")
        await middleware(event, MagicMock())
        assert metrics.messages_sent == 1
        assert metrics.messages_failed == 0


class TestDelayedCompletion:
    @pytest.mark.asyncio
    async def test_wait_read_keeps_entry_pending(self, table):
        mw = OutgoingMiddleware(table, SENDERS, make_client(message_id="m2"))
        event = create_text(USER_ID, "hi", {"waitRead": True})
        entry = register(table, event, "a")

        await mw(event, MagicMock())

        assert not entry.handle.future.done()
        assert len(table) == 1
        assert table.get("a").platform_message_id == "m2"

    @pytest.mark.asyncio
    async def test_wait_delivery_keeps_entry_pending(self, middleware, table):
        event = create_text(USER_ID, "hi", {"waitDelivery": True})
        entry = register(table, event, "a")
        await middleware(event, MagicMock())
        assert "a" in table
        assert not entry.handle.settled

    @pytest.mark.asyncio
    async def test_failure_with_wait_flag_rejects_immediately(self, table):
        error = MessengerAPIError("(#100) Invalid recipient", status_code=400, code=100)
        mw = OutgoingMiddleware(table, SENDERS, make_client(error=error))
        event = create_text(USER_ID, "hi", {"waitDelivery": True, "waitRead": True})
        entry = register(table, event, "a")

        await mw(event, MagicMock())

        assert "a" not in table
        with pytest.raises(MessengerAPIError):
            await entry.handle.future

    @pytest.mark.asyncio
    async def test_timestamp_backdated_on_ack(self, table):
        mw = OutgoingMiddleware(table, SENDERS, make_client(), backdate_ms=5000)
        event = create_text(USER_ID, "hi", {"waitRead": True})
        entry = register(table, event, "a")
        created = entry.timestamp
        await mw(event, MagicMock())
        assert table.get("a").timestamp <= created - 4000


class TestFinalize:
    def test_finalize_unknown_id_is_noop(self, middleware):
        event = create_text(USER_ID, "hi")
        event.correlation_id = "missing"
        assert middleware.finalize(event, result={"message_id": "m"}) is False

    def test_finalize_twice_settles_once(self, middleware, table):
        event = create_text(USER_ID, "hi")
        entry = register(table, event, "a")
        assert middleware.finalize(event, result={"message_id": "m1"}) is True
        assert middleware.finalize(event, error=RuntimeError("late")) is False
        assert entry.handle.settled

    @pytest.mark.asyncio
    async def test_custom_sender_receives_next_and_client(self, table, client):
        sender = AsyncMock(return_value={"message_id": "custom"})
        mw = OutgoingMiddleware(table, {"text": sender}, client)
        event = create_text(USER_ID, "hi")
        nxt = MagicMock()
        await mw(event, nxt)
        sender.assert_awaited_once_with(event, nxt, client)
