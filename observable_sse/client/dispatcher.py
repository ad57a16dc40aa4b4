"""
MODULE OVERVIEW:
Turns transport messages into named events according to the communication type.

WHAT IS HAPPENING HERE:
  both  -> decode (JSON, or raw text as a fallback); emit the server's event name if
           it sent one, then always emit `message`.
  event -> same double emission, but the payload MUST be JSON. A decode failure
           becomes an `error` event carrying a DecodeFailure.
  text  -> the raw text is the event name: emit an event literally named after the
           text, then `message`, both carrying the text.
"""
from loguru import logger

from observable_sse.shared.codec import RawText, decode_payload
from observable_sse.shared.errors import DecodeFailure
from observable_sse.shared.events import ListenerRegistry
from observable_sse.shared.models import BUILTIN_EVENTS, CommunicationType, MessageEvent, SSEEvent


class MessageDispatcher:
    def __init__(self, registry: ListenerRegistry, communication_type: CommunicationType):
        self.registry = registry
        self.communication_type = CommunicationType(communication_type)

    def dispatch(self, message: MessageEvent) -> None:
        if self.communication_type == CommunicationType.BOTH:
            self._dispatch_both(message)
        elif self.communication_type == CommunicationType.EVENT:
            self._dispatch_event(message)
        else:
            self._dispatch_text(message)

    def _dispatch_both(self, message: MessageEvent) -> None:
        payload = decode_payload(message.data).value
        self._emit_named(message.event, payload, message)
        self._emit("message", payload, message)

    def _dispatch_event(self, message: MessageEvent) -> None:
        result = decode_payload(message.data)
        if isinstance(result, RawText):
            logger.warning(f"event={message.event} decode=failed reason='{result.reason}'")
            self._emit("error", DecodeFailure(result.text, result.reason), message)
            return
        self._emit_named(message.event, result.value, message)
        self._emit("message", result.value, message)

    def _dispatch_text(self, message: MessageEvent) -> None:
        text = message.data
        self._emit_named(text, text, message)
        self._emit("message", text, message)

    def _emit_named(self, name: str, payload, message: MessageEvent) -> None:
        # Built-in names are lifecycle signals, a server cannot fire them by name
        if not name or name in BUILTIN_EVENTS:
            return
        self._emit(name, payload, message)

    def _emit(self, name: str, payload, message: MessageEvent) -> None:
        logger.debug(f"event={name} id={message.last_event_id} dispatched")
        self.registry.emit(name, SSEEvent(name=name, payload=payload, last_event_id=message.last_event_id))
