"""
MODULE OVERVIEW:
The observable EventSource: a Server-Sent Events connection you subscribe to with
`on(name, callback)`.

WHAT IS HAPPENING HERE:
The object owns exactly one transport at a time and translates its callbacks into
four lifecycle events (`open`, `message`, `error`, `close`) plus whatever named
events the server sends. Named events only reach us if a listener is installed on
the transport for that name, so every time a caller subscribes to a new name we
install a "bridge" for it, and we tear the bridge down with the last subscriber.

When the transport closes and `auto_reconnect` is on, a periodic timer polls the
state and opens a new transport while the connection is still CLOSED. The timer is
cancelled as soon as a transport opens, or when the caller calls `close()`.

    es = EventSource("http://localhost:3000/event")
    es.on("open", lambda e: print("ready"))
    es.on("foo", lambda e: print(e.payload["msg"]))
"""
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Mapping, Optional, Union
from loguru import logger

from observable_sse.client.dispatcher import MessageDispatcher
from observable_sse.client.transport import HttpEventStream
from observable_sse.shared.client_utils import AsyncioScheduler, Scheduler, TimerHandle, make_client_stats
from observable_sse.shared.errors import MissingURL, UnsupportedTransport
from observable_sse.shared.events import Listener, ListenerRegistry
from observable_sse.shared.models import BUILTIN_EVENTS, EventSourceConfig, MessageEvent, ReadyState, SSEEvent

TransportFactory = Callable[..., Any]


class EventSource:
    CONNECTING = ReadyState.CONNECTING
    OPEN = ReadyState.OPEN
    CLOSING = ReadyState.CLOSING
    CLOSED = ReadyState.CLOSED

    def __init__(
        self,
        config: Union[str, Mapping[str, Any], EventSourceConfig, None] = None,
        *,
        transport_factory: Optional[TransportFactory] = None,
        scheduler: Optional[Scheduler] = None,
        registry: Optional[ListenerRegistry] = None,
        **options: Any,
    ):
        self.config = self._build_config(config, options)
        self.registry = registry or ListenerRegistry()
        self.dispatcher = MessageDispatcher(self.registry, self.config.communication_type)
        self.stats = make_client_stats()

        self.reconnect_timer: Optional[TimerHandle] = None
        self.attached_server_events: set[str] = set()

        self._transport_factory = transport_factory or HttpEventStream
        self._scheduler = scheduler or AsyncioScheduler()
        self._transport: Any = None
        self._bridge: Optional[Callable[[MessageEvent], None]] = None
        self._wired: set[str] = set()
        self._closed = False

        for name, callbacks in self.config.listeners.items():
            for callback in callbacks if isinstance(callbacks, (list, tuple)) else [callbacks]:
                self.on(name, callback)

        self.open()

    @staticmethod
    def _build_config(config, options: dict) -> EventSourceConfig:
        # Allows initialization with a plain URL: EventSource("http://host/sse")
        if isinstance(config, EventSourceConfig):
            data = config.model_dump()
        elif isinstance(config, str):
            data = {"url": config}
        elif config is None:
            data = {}
        else:
            data = dict(config)
        data.update(options)

        url = data.get("url")
        if not isinstance(url, str) or not url.strip():
            raise MissingURL()
        return EventSourceConfig.model_validate(data)

    # ==========================
    # CONFIGURATION
    # ==========================
    @property
    def url(self) -> str: return self.config.url
    @property
    def communication_type(self): return self.config.communication_type
    @property
    def auto_reconnect(self) -> bool: return self.config.auto_reconnect
    @property
    def auto_reconnect_interval(self) -> int: return self.config.auto_reconnect_interval

    @property
    def transport(self): return self._transport
    @property
    def events_received(self): return self.stats["events_received"]
    @property
    def reconnect_count(self): return self.stats["reconnect_count"]

    @property
    def last_event_id(self) -> Optional[str]:
        if self._transport is None:
            return None
        return getattr(self._transport, "last_event_id", None) or None

    # ==========================
    # STATE
    # ==========================
    def get_status(self) -> ReadyState:
        if self._transport is None:
            return ReadyState.CLOSED
        return ReadyState(self._transport.ready_state)

    def is_ready(self) -> bool:
        return self.get_status() == ReadyState.OPEN

    @property
    def closed(self) -> bool:
        """True once the caller has called close()."""
        return self._closed

    # ==========================
    # LIFECYCLE
    # ==========================
    def open(self) -> None:
        """
        Creates a fresh transport and wires it. Raises UnsupportedTransport synchronously.
        A transport that is still live is closed first, silently: the caller asked for a
        new connection, not for a `close` event.
        """
        transport = self._transport_factory(
            self.config.url,
            headers=dict(self.config.headers),
            last_event_id=self.last_event_id,
        )
        if transport is None:
            raise UnsupportedTransport(f"no server-sent events transport available for {self.config.url}")

        self._retire(self._transport)
        self._closed = False
        self._transport = transport
        self._wired = set()
        self._bridge = partial(self._from_transport, transport, self.on_native_message)

        transport.onopen = partial(self._from_transport, transport, self.on_native_open)
        transport.onmessage = self._bridge
        transport.onerror = partial(self._from_transport, transport, self.on_native_error)
        transport.onclose = partial(self._from_transport, transport, self.on_native_close)

        for name in sorted(self.attached_server_events):
            self._attach(name)
        logger.info(f"url={self.url} protocol=sse event=connecting mode={self.communication_type.value}")

    def close(self) -> "EventSource":
        """Closes the connection and kills the reconnect timer, if any. Safe to call twice."""
        self._closed = True
        self._cancel_reconnect()
        if self._transport is not None:
            self._transport.close()
        return self

    def on_native_open(self) -> None:
        # The reconnect timer is started again by the next close
        self._cancel_reconnect()
        self.stats["open_count"] += 1
        logger.info(f"url={self.url} protocol=sse event=open")
        self._emit("open")
        for name in sorted(self.attached_server_events - self._wired):
            self._attach(name)

    def on_native_error(self, error: Any) -> None:
        self.stats["errors"] += 1
        self._emit("error", error)

    def on_native_close(self) -> None:
        logger.info(f"url={self.url} protocol=sse event=close")
        self._emit("close")
        if self._closed or not self.auto_reconnect or self.reconnect_timer is not None:
            return
        self.reconnect_timer = self._scheduler.schedule(self._reconnect_tick, self.auto_reconnect_interval)
        logger.info(f"url={self.url} protocol=sse event=reconnect_scheduled interval_ms={self.auto_reconnect_interval}")

    def on_native_message(self, message: MessageEvent) -> None:
        self.stats["events_received"] += 1
        self.stats["last_event_at"] = datetime.now(timezone.utc).isoformat()
        self.dispatcher.dispatch(message)

    def _reconnect_tick(self) -> None:
        # It reconnects only if it's still disconnected
        if self._closed or self.get_status() != ReadyState.CLOSED:
            return
        self.stats["reconnect_count"] += 1
        logger.info(f"url={self.url} protocol=sse event=reconnect attempt={self.stats['reconnect_count']}")
        try:
            self.open()
        except UnsupportedTransport as e:
            self._emit("error", e)

    @staticmethod
    def _retire(transport: Any) -> None:
        if transport is None or transport.ready_state == ReadyState.CLOSED:
            return
        transport.onopen = transport.onmessage = transport.onerror = transport.onclose = None
        transport.close()

    def _cancel_reconnect(self) -> None:
        if self.reconnect_timer is not None:
            self._scheduler.cancel(self.reconnect_timer)
            self.reconnect_timer = None

    def _from_transport(self, transport: Any, handler: Callable[..., None], *args: Any) -> None:
        # Late callbacks from a transport we already replaced are dropped
        if transport is not self._transport:
            logger.debug(f"url={self.url} protocol=sse event=stale_callback handler={handler.__name__}")
            return
        handler(*args)

    def _emit(self, name: str, payload: Any = None) -> None:
        self.registry.emit(name, SSEEvent(name=name, payload=payload, last_event_id=self.last_event_id))

    # ==========================
    # SUBSCRIPTIONS
    # ==========================
    def on(self, name: str, callback: Listener) -> "EventSource":
        self.registry.on(name, callback)
        if name not in BUILTIN_EVENTS and name not in self.attached_server_events:
            self.attached_server_events.add(name)
            if self._transport is not None:
                self._attach(name)
        return self

    def off(self, name: str, callback: Listener) -> bool:
        removed = self.registry.off(name, callback)
        if name in self.attached_server_events and not self.registry.has_subscribers(name):
            self.attached_server_events.discard(name)
            self._detach(name)
        return removed

    def has_subscribers(self, name: str) -> bool:
        return self.registry.has_subscribers(name)

    def _attach(self, name: str) -> None:
        if name in self._wired or self._transport is None:
            return
        self._transport.add_event_listener(name, self._bridge)
        self._wired.add(name)
        logger.debug(f"url={self.url} protocol=sse event=bridge_attached name={name}")

    def _detach(self, name: str) -> None:
        if name not in self._wired:
            return
        self._transport.remove_event_listener(name, self._bridge)
        self._wired.discard(name)
        logger.debug(f"url={self.url} protocol=sse event=bridge_detached name={name}")

    async def __aenter__(self) -> "EventSource":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()
