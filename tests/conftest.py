"""Shared fixtures: a scriptable transport and a hand-cranked reconnect scheduler."""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable

import httpx
import pytest

from observable_sse.shared.models import MessageEvent, ReadyState


class FakeTransport:
    """Stands in for HttpEventStream; tests drive it with the simulate_* methods."""

    def __init__(self, url: str, *, headers: dict | None = None, last_event_id: str | None = None) -> None:
        self.url = url
        self.headers = headers or {}
        self.last_event_id = last_event_id or ""
        self.ready_state = ReadyState.CONNECTING
        self.onopen = None
        self.onmessage = None
        self.onerror = None
        self.onclose = None
        self.listeners: dict[str, list[Callable]] = defaultdict(list)
        self.close_calls = 0

    def add_event_listener(self, event: str, callback: Callable) -> None:
        if callback not in self.listeners[event]:
            self.listeners[event].append(callback)

    def remove_event_listener(self, event: str, callback: Callable) -> None:
        if callback in self.listeners.get(event, []):
            self.listeners[event].remove(callback)
            if not self.listeners[event]:
                del self.listeners[event]

    def close(self) -> None:
        self.close_calls += 1
        if self.ready_state == ReadyState.CLOSED:
            return
        self.ready_state = ReadyState.CLOSED
        if self.onclose:
            self.onclose()

    # -- test drivers ------------------------------------------------------

    def simulate_open(self) -> None:
        self.ready_state = ReadyState.OPEN
        self.onopen()

    def simulate_message(self, data: str, event: str = "message", id: str | None = None) -> None:
        if id is not None:
            self.last_event_id = id
        message = MessageEvent(data=data, event=event, last_event_id=self.last_event_id or None)
        if event == "message" and self.onmessage:
            self.onmessage(message)
        for callback in list(self.listeners.get(event, [])):
            callback(message)

    def simulate_error(self, error: Any) -> None:
        self.onerror(error)

    def simulate_close(self) -> None:
        self.ready_state = ReadyState.CLOSED
        self.onclose()


class FakeTransportFactory:
    def __init__(self) -> None:
        self.created: list[FakeTransport] = []

    def __call__(self, url: str, **kwargs: Any) -> FakeTransport:
        transport = FakeTransport(url, **kwargs)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class ManualTimer:
    def __init__(self, callback: Callable[[], None], interval_ms: int) -> None:
        self.callback = callback
        self.interval_ms = interval_ms
        self.cancelled = False

    @property
    def active(self) -> bool:
        return not self.cancelled


class ManualScheduler:
    """Timers only fire when the test calls tick()."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def schedule(self, callback: Callable[[], None], interval_ms: int) -> ManualTimer:
        timer = ManualTimer(callback, interval_ms)
        self.timers.append(timer)
        return timer

    def cancel(self, timer: ManualTimer) -> None:
        timer.cancelled = True

    @property
    def active(self) -> list[ManualTimer]:
        return [t for t in self.timers if t.active]

    def tick(self) -> None:
        for timer in self.active:
            timer.callback()


class Recorder:
    """A listener that remembers every SSEEvent it was called with."""

    def __init__(self) -> None:
        self.events: list = []

    def __call__(self, event) -> None:
        self.events.append(event)

    @property
    def payloads(self) -> list:
        return [e.payload for e in self.events]

    @property
    def names(self) -> list[str]:
        return [e.name for e in self.events]


@pytest.fixture
def transports() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def recorder() -> Callable[[], Recorder]:
    return Recorder


def sse_client_factory(body: str | bytes, status_code: int = 200, content_type: str = "text/event-stream", seen: list | None = None):
    """An httpx.AsyncClient factory whose every request returns `body` as the stream."""
    content = body.encode() if isinstance(body, str) else body

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, headers={"content-type": content_type}, content=content)

    return lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))
