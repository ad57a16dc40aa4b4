"""
MODULE OVERVIEW:
The HTTP streaming transport: Python's stand-in for the browser `EventSource` object.

WHAT IS HAPPENING HERE:
We use the HTTPX `stream()` context manager to keep the body open and parse the
`event:` / `data:` / `id:` / `retry:` lines ourselves. The object exposes the same
surface a browser gives to page scripts: `ready_state`, the `onopen` / `onmessage` /
`onerror` / `onclose` slots, and `add_event_listener` for named events.

Unlike a browser it never reconnects by itself. When the stream ends or fails it
reports `onerror` (failures only) then `onclose`, and stays CLOSED. Reconnection is
the job of the `EventSource` wrapper on top.
"""
import asyncio
import re
from collections import defaultdict
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

import httpx
from loguru import logger

from observable_sse.shared.config import settings
from observable_sse.shared.errors import TransportError, UnsupportedTransport
from observable_sse.shared.models import MessageEvent, ReadyState

_LINE_BREAK = re.compile(r"\r\n|\r|\n")

MessageCallback = Callable[[MessageEvent], Any]


class EventStreamParser:
    """
    Incremental `text/event-stream` parser.
    Feed it decoded text chunks, get back every block completed by a blank line.
    """

    def __init__(self, origin: str = "", last_event_id: str = ""):
        self.origin = origin
        self.last_event_id = last_event_id
        self.retry: Optional[int] = None
        self._buffer = ""
        self._pending_cr = False
        self._started = False
        self._event_type = ""
        self._data: list[str] = []

    def feed(self, chunk: str) -> list[MessageEvent]:
        if not self._started and chunk:
            self._started = True
            chunk = chunk.removeprefix("\ufeff")
        # A CRLF may be split across two chunks
        if self._pending_cr and chunk.startswith("\n"):
            chunk = chunk[1:]
        self._pending_cr = chunk.endswith("\r")

        self._buffer += chunk
        *lines, self._buffer = _LINE_BREAK.split(self._buffer)

        messages = []
        for line in lines:
            message = self._process_line(line)
            if message is not None:
                messages.append(message)
        return messages

    def _process_line(self, line: str) -> Optional[MessageEvent]:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event_type = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif name == "retry":
            if value.isascii() and value.isdigit():
                self.retry = int(value)
        return None

    def _dispatch(self) -> Optional[MessageEvent]:
        data, event_type = self._data, self._event_type
        self._data, self._event_type = [], ""
        if not data:
            return None
        return MessageEvent(
            data="\n".join(data),
            event=event_type or "message",
            last_event_id=self.last_event_id or None,
            origin=self.origin,
        )


def _default_client() -> httpx.AsyncClient:
    # No read timeout: an idle event stream is a healthy event stream
    return httpx.AsyncClient(timeout=httpx.Timeout(settings.SSE_CONNECT_TIMEOUT_S, read=None))


class HttpEventStream:
    def __init__(
        self,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        last_event_id: Optional[str] = None,
        client_factory: Callable[[], httpx.AsyncClient] = _default_client,
    ):
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https"):
            raise UnsupportedTransport(f"cannot stream server-sent events over {parts.scheme or 'a relative URL'!r}: {url}")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise UnsupportedTransport("an EventSource needs a running asyncio event loop") from None

        self.url = url
        self.ready_state = ReadyState.CONNECTING
        self.headers = dict(headers or {})

        self.onopen: Optional[Callable[[], Any]] = None
        self.onmessage: Optional[MessageCallback] = None
        self.onerror: Optional[Callable[[TransportError], Any]] = None
        self.onclose: Optional[Callable[[], Any]] = None

        self._listeners: dict[str, list[MessageCallback]] = defaultdict(list)
        self._client_factory = client_factory
        self._parser = EventStreamParser(origin=f"{parts.scheme}://{parts.netloc}", last_event_id=last_event_id or "")
        self._task = loop.create_task(self._run())

    @property
    def last_event_id(self) -> str:
        return self._parser.last_event_id

    @property
    def retry(self) -> Optional[int]:
        """The last `retry:` value the server sent, in milliseconds."""
        return self._parser.retry

    def add_event_listener(self, event: str, callback: MessageCallback) -> None:
        if callback not in self._listeners[event]:
            self._listeners[event].append(callback)

    def remove_event_listener(self, event: str, callback: MessageCallback) -> None:
        callbacks = self._listeners.get(event)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)
            if not callbacks:
                del self._listeners[event]

    def close(self) -> None:
        if self.ready_state == ReadyState.CLOSED:
            return
        self.ready_state = ReadyState.CLOSED
        if not self._task.done():
            self._task.cancel()
        self._fire(self.onclose)

    def _request_headers(self) -> dict[str, str]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        headers.update(self.headers)
        if self.last_event_id:
            headers["Last-Event-ID"] = self.last_event_id
        return headers

    async def _run(self) -> None:
        error: Optional[TransportError] = None
        try:
            async with self._client_factory() as client:
                async with client.stream("GET", self.url, headers=self._request_headers()) as response:
                    self._check_response(response)
                    self.ready_state = ReadyState.OPEN
                    self._fire(self.onopen)

                    async for chunk in response.aiter_text():
                        for message in self._parser.feed(chunk):
                            if self.ready_state != ReadyState.OPEN:
                                return
                            self._dispatch(message)
        except asyncio.CancelledError:
            # close() already did the bookkeeping
            return
        except TransportError as e:
            error = e
        except httpx.HTTPError as e:
            error = TransportError(f"{type(e).__name__}: {e}", cause=e)
        except OSError as e:
            error = TransportError(str(e), cause=e)
        except Exception as e:
            # Anything else (e.g. an anyio ExceptionGroup from the connect) still ends the stream
            error = TransportError(f"{type(e).__name__}: {e}", cause=e)

        if self.ready_state == ReadyState.CLOSED:
            return
        self.ready_state = ReadyState.CLOSED
        if error is not None:
            logger.warning(f"url={self.url} protocol=sse event=error reason='{error}'")
            self._fire(self.onerror, error)
        self._fire(self.onclose)

    def _check_response(self, response: httpx.Response) -> None:
        if response.status_code != 200:
            raise TransportError(f"unexpected status {response.status_code} from {self.url}", status_code=response.status_code)
        content_type = response.headers.get("content-type", "").split(";", 1)[0].strip().lower()
        if content_type != "text/event-stream":
            raise TransportError(f"unexpected content type {content_type or 'none'!r} from {self.url}", status_code=response.status_code)

    def _dispatch(self, message: MessageEvent) -> None:
        if message.event == "message":
            self._fire(self.onmessage, message)
        for callback in list(self._listeners.get(message.event, ())):
            self._fire(callback, message)

    def _fire(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"url={self.url} protocol=sse error in transport callback: {e}")
