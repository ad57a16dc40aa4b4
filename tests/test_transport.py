"""Tests for the httpx-backed transport and its event-stream parser."""
from __future__ import annotations

import asyncio

import httpx
import pytest
from sse_starlette.sse import ServerSentEvent

from observable_sse.client.transport import EventStreamParser, HttpEventStream
from observable_sse.shared.errors import TransportError, UnsupportedTransport
from observable_sse.shared.models import ReadyState

from conftest import sse_client_factory

URL = "http://sse.test/stream"


# ---------------------------------------------------------------------------
# EventStreamParser
# ---------------------------------------------------------------------------


class TestEventStreamParser:

    def test_single_unnamed_message(self) -> None:
        messages = EventStreamParser().feed("data: hello\n\n")
        assert len(messages) == 1
        assert messages[0].data == "hello"
        assert messages[0].event == "message"

    def test_named_event_with_id(self) -> None:
        parser = EventStreamParser(origin="http://sse.test")
        [message] = parser.feed("id: 7\nevent: foo\ndata: {\"x\": 1}\n\n")
        assert message.event == "foo"
        assert message.data == '{"x": 1}'
        assert message.last_event_id == "7"
        assert message.origin == "http://sse.test"
        assert parser.last_event_id == "7"

    def test_multi_line_data_is_joined(self) -> None:
        [message] = EventStreamParser().feed("data: first\ndata: second\n\n")
        assert message.data == "first\nsecond"

    def test_only_one_leading_space_is_stripped(self) -> None:
        [message] = EventStreamParser().feed("data:  padded\n\n")
        assert message.data == " padded"

    def test_no_space_after_colon(self) -> None:
        [message] = EventStreamParser().feed("data:tight\n\n")
        assert message.data == "tight"

    def test_comments_and_blocks_without_data_are_ignored(self) -> None:
        parser = EventStreamParser()
        assert parser.feed(": ping\n\n") == []
        assert parser.feed("event: foo\n\n") == []
        # The event name of a discarded block does not leak into the next one
        [message] = parser.feed("data: x\n\n")
        assert message.event == "message"

    def test_empty_data_line_still_dispatches(self) -> None:
        [message] = EventStreamParser().feed("data\n\n")
        assert message.data == ""

    def test_chunks_split_anywhere(self) -> None:
        parser = EventStreamParser()
        assert parser.feed("eve") == []
        assert parser.feed("nt: foo\nda") == []
        assert parser.feed("ta: abc\n") == []
        [message] = parser.feed("\n")
        assert (message.event, message.data) == ("foo", "abc")

    def test_crlf_split_across_chunks(self) -> None:
        parser = EventStreamParser()
        assert parser.feed("data: a\r") == []
        assert parser.feed("\n") == []
        [message] = parser.feed("\r\n")
        assert message.data == "a"

    def test_bare_carriage_returns(self) -> None:
        [message] = EventStreamParser().feed("data: a\rdata: b\r\r")
        assert message.data == "a\nb"

    def test_retry_is_recorded(self) -> None:
        parser = EventStreamParser()
        parser.feed("retry: 3000\n\n")
        assert parser.retry == 3000
        parser.feed("retry: soon\n\n")
        assert parser.retry == 3000

    def test_id_with_nul_is_ignored(self) -> None:
        parser = EventStreamParser(last_event_id="1")
        parser.feed("id: a\0b\ndata: x\n\n")
        assert parser.last_event_id == "1"

    def test_leading_bom_is_dropped(self) -> None:
        [message] = EventStreamParser().feed("\ufeffdata: x\n\n")
        assert message.data == "x"

    def test_text_round_trip_through_sse_starlette(self) -> None:
        text = "[12:00:00] a message with: colons and  spaces"
        wire = ServerSentEvent(data=text, id="12:00:00").encode().decode()
        [message] = EventStreamParser().feed(wire)
        assert message.data == text
        assert message.last_event_id == "12:00:00"

    def test_multi_line_round_trip_through_sse_starlette(self) -> None:
        text = "line one\nline two"
        wire = ServerSentEvent(data=text, event="foo").encode().decode()
        [message] = EventStreamParser().feed(wire)
        assert (message.event, message.data) == ("foo", text)


# ---------------------------------------------------------------------------
# HttpEventStream
# ---------------------------------------------------------------------------


async def run_stream(stream: HttpEventStream) -> None:
    await asyncio.wait_for(stream._task, timeout=2)


def record(stream: HttpEventStream) -> list:
    calls: list = []
    stream.onopen = lambda: calls.append(("open", stream.ready_state))
    stream.onmessage = lambda m: calls.append(("message", m.data))
    stream.onerror = lambda e: calls.append(("error", e))
    stream.onclose = lambda: calls.append(("close", stream.ready_state))
    return calls


class TestHttpEventStream:

    async def test_open_messages_close(self) -> None:
        stream = HttpEventStream(URL, client_factory=sse_client_factory("data: one\n\ndata: two\n\n"))
        assert stream.ready_state == ReadyState.CONNECTING
        calls = record(stream)

        await run_stream(stream)

        assert calls == [
            ("open", ReadyState.OPEN),
            ("message", "one"),
            ("message", "two"),
            ("close", ReadyState.CLOSED),
        ]

    async def test_named_events_need_a_listener(self) -> None:
        body = "event: foo\ndata: 1\n\nevent: bar\ndata: 2\n\n"
        stream = HttpEventStream(URL, client_factory=sse_client_factory(body))
        calls = record(stream)
        foo = []
        stream.add_event_listener("foo", lambda m: foo.append((m.event, m.data)))

        await run_stream(stream)

        assert foo == [("foo", "1")]
        assert [c for c in calls if c[0] == "message"] == []

    async def test_removed_listener_is_not_called(self) -> None:
        stream = HttpEventStream(URL, client_factory=sse_client_factory("event: foo\ndata: 1\n\n"))
        foo = []
        callback = foo.append
        stream.add_event_listener("foo", callback)
        stream.add_event_listener("foo", callback)
        stream.remove_event_listener("foo", callback)

        await run_stream(stream)

        assert foo == []

    async def test_request_headers(self) -> None:
        seen: list[httpx.Request] = []
        stream = HttpEventStream(
            URL,
            headers={"Authorization": "Bearer t"},
            last_event_id="41",
            client_factory=sse_client_factory("data: x\n\n", seen=seen),
        )
        await run_stream(stream)

        [request] = seen
        assert request.headers["accept"] == "text/event-stream"
        assert request.headers["cache-control"] == "no-cache"
        assert request.headers["authorization"] == "Bearer t"
        assert request.headers["last-event-id"] == "41"

    async def test_last_event_id_is_tracked(self) -> None:
        stream = HttpEventStream(URL, client_factory=sse_client_factory("id: 9\ndata: x\n\nretry: 1500\n\n"))
        await run_stream(stream)
        assert stream.last_event_id == "9"
        assert stream.retry == 1500

    async def test_bad_status_reports_error_then_close(self) -> None:
        stream = HttpEventStream(URL, client_factory=sse_client_factory("nope", status_code=503))
        calls = record(stream)

        await run_stream(stream)

        assert [c[0] for c in calls] == ["error", "close"]
        error = calls[0][1]
        assert isinstance(error, TransportError)
        assert error.status_code == 503
        assert stream.ready_state == ReadyState.CLOSED

    async def test_wrong_content_type_fails(self) -> None:
        stream = HttpEventStream(URL, client_factory=sse_client_factory("{}", content_type="application/json"))
        calls = record(stream)

        await run_stream(stream)

        assert [c[0] for c in calls] == ["error", "close"]

    async def test_network_error_is_a_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        stream = HttpEventStream(URL, client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        calls = record(stream)

        await run_stream(stream)

        assert [c[0] for c in calls] == ["error", "close"]
        assert isinstance(calls[0][1].cause, httpx.ConnectError)

    async def test_unexpected_failure_still_reports_error_then_close(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise OverflowError("connect(): port must be 0-65535.")

        stream = HttpEventStream(URL, client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        calls = record(stream)

        await run_stream(stream)

        assert [c[0] for c in calls] == ["error", "close"]
        error = calls[0][1]
        assert isinstance(error, TransportError)
        assert isinstance(error.cause, OverflowError)
        assert calls[1] == ("close", ReadyState.CLOSED)
        assert stream.ready_state == ReadyState.CLOSED

    async def test_close_from_a_callback_stops_delivery(self) -> None:
        stream = HttpEventStream(URL, client_factory=sse_client_factory("data: one\n\ndata: two\n\n"))
        calls = record(stream)

        def first_only(message) -> None:
            calls.append(("message", message.data))
            stream.close()

        stream.onmessage = first_only
        try:
            await run_stream(stream)
        except asyncio.CancelledError:
            pass

        assert calls == [("open", ReadyState.OPEN), ("message", "one"), ("close", ReadyState.CLOSED)]

    async def test_close_before_open(self) -> None:
        stream = HttpEventStream(URL, client_factory=sse_client_factory("data: x\n\n"))
        calls = record(stream)

        stream.close()
        stream.close()
        await asyncio.sleep(0)

        assert calls == [("close", ReadyState.CLOSED)]
        assert stream._task.cancelled() or stream._task.done()

    @pytest.mark.parametrize("url", ["ftp://sse.test/stream", "/relative/stream", "ws://sse.test/stream"])
    async def test_unsupported_schemes(self, url: str) -> None:
        with pytest.raises(UnsupportedTransport):
            HttpEventStream(url)

    def test_requires_a_running_loop(self) -> None:
        with pytest.raises(UnsupportedTransport):
            HttpEventStream(URL)
