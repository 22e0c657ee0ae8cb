"""Unit tests for the FramedConnection handler contract."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from browser_bridge.errors import ParseError, TransportUnavailable


class TestFramedConnection:
    """Behaviour every variant inherits from the base class."""

    @pytest.mark.asyncio
    async def test_messages_dispatched_in_order(self, make_connection) -> None:
        on_message = AsyncMock()
        connection = make_connection(on_message=on_message)

        connection.feed({"n": 1})
        connection.feed({"n": 2})
        connection.hangup()
        await connection.run()

        assert [c.args[0] for c in on_message.await_args_list] == [{"n": 1}, {"n": 2}]

    @pytest.mark.asyncio
    async def test_parse_error_goes_to_on_error_and_stream_continues(self, make_connection) -> None:
        on_message = AsyncMock()
        on_error = AsyncMock()
        connection = make_connection(on_message=on_message, on_error=on_error)

        connection.feed(ParseError("bad frame"))
        connection.feed({"n": 2})
        connection.hangup()
        await connection.run()

        on_error.assert_awaited_once()
        assert isinstance(on_error.await_args.args[0], ParseError)
        on_message.assert_awaited_once_with({"n": 2})

    @pytest.mark.asyncio
    async def test_on_close_fires_exactly_once(self, make_connection) -> None:
        on_close = AsyncMock()
        connection = make_connection(on_close=on_close)

        connection.hangup()
        await connection.run()
        await connection.close()

        on_close.assert_awaited_once()
        assert not connection.is_open

    @pytest.mark.asyncio
    async def test_handler_exception_does_not_stop_reading(self, make_connection) -> None:
        seen = []

        async def on_message(message) -> None:
            seen.append(message)
            if message == "boom":
                raise RuntimeError("handler failed")

        on_error = AsyncMock()
        connection = make_connection(on_message=on_message, on_error=on_error)

        connection.feed("boom")
        connection.feed("after")
        connection.hangup()
        await connection.run()

        assert seen == ["boom", "after"]
        assert isinstance(on_error.await_args.args[0], RuntimeError)

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self, make_connection) -> None:
        connection = make_connection()
        await connection.close(1000, "done")

        with pytest.raises(TransportUnavailable):
            await connection.send({"n": 1})
        assert connection.close_calls == [(1000, "done")]

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, make_connection) -> None:
        connection = make_connection()

        await connection.close()
        await connection.close()

        assert len(connection.close_calls) == 1

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_transport_unavailable(self, make_connection) -> None:
        connection = make_connection()
        connection.fail_sends = True

        with pytest.raises(TransportUnavailable):
            await connection.send({"n": 1})

    @pytest.mark.asyncio
    async def test_set_handlers_keeps_existing_when_none(self, make_connection) -> None:
        on_message = AsyncMock()
        on_close = AsyncMock()
        connection = make_connection(on_message=on_message)

        connection.set_handlers(on_close=on_close)

        assert connection.on_message is on_message
        assert connection.on_close is on_close
