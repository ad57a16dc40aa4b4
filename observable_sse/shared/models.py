"""
MODULE OVERVIEW:
The typed data structures shared by the EventSource client and the demo server,
powered by Pydantic v2.

WHAT IS HAPPENING HERE:
`MessageEvent` is what the HTTP transport hands to the wrapper (the equivalent of a
browser `MessageEvent`). `SSEEvent` is what subscribers receive: a tagged value with
the event name and the decoded payload. `EventSourceConfig` validates the options a
caller passes when opening a connection.
"""
from enum import Enum, IntEnum
from typing import Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from observable_sse.shared.config import settings

# The four built-in lifecycle events. They are always wired and never bridged.
BUILTIN_EVENTS = frozenset({"open", "message", "error", "close"})


class ReadyState(IntEnum):
    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


class CommunicationType(str, Enum):
    BOTH = "both"
    EVENT = "event"
    TEXT = "text"


class EventSourceConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, arbitrary_types_allowed=True)

    url: str = Field(min_length=1)
    communication_type: CommunicationType = Field(
        default_factory=lambda: CommunicationType(settings.SSE_DEFAULT_COMMUNICATION_TYPE),
        alias="communicationType",
    )
    auto_reconnect: bool = Field(default_factory=lambda: settings.SSE_AUTO_RECONNECT, alias="autoReconnect")
    auto_reconnect_interval: int = Field(
        default_factory=lambda: settings.SSE_AUTO_RECONNECT_INTERVAL_MS,
        alias="autoReconnectInterval",
        gt=0,
    )
    headers: dict[str, str] = Field(default_factory=dict)
    listeners: dict[str, Any] = Field(default_factory=dict)


# WHAT IS HAPPENING HERE:
# One dispatched SSE block as the transport sees it. `event` defaults to "message"
# exactly like the browser API, so an unnamed block and `event: message` look the same.
class MessageEvent(BaseModel):
    data: str
    event: str = "message"
    last_event_id: str | None = None
    origin: str = ""


# WHAT IS HAPPENING HERE:
# The value every subscriber callback receives. For `open`/`close` the payload is None,
# for `error` it is the exception, for everything else it is the decoded message.
class SSEEvent(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    payload: Any = None
    last_event_id: str | None = None


class StreamStats(BaseModel):
    active_event_streams: int
    active_text_streams: int
    pending_events: int
    pending_texts: int
    total_messages_sent: int
    uptime_s: float
    server_time: datetime
