"""
MODULE OVERVIEW:
The demo server's shared state: the two message queues and the stream counters.

WHAT IS HAPPENING HERE:
A producer task pushes one structured item onto the event queue and one line onto
the text queue every few seconds. Every open `/event` or `/text` stream pops from the
shared queue on its own timer, so with several clients connected each message is
delivered to exactly one of them (newest first, like the original demo).
"""

from collections import deque
from datetime import datetime, timezone
from typing import Any, Optional
from loguru import logger

from observable_sse.shared.config import settings
from observable_sse.shared.models import StreamStats

class ConnectionManager:
    def __init__(self, maxlen: int = settings.SSE_QUEUE_MAXSIZE):
        # Bounded so an idle server does not grow forever
        self.event_queue: deque[dict[str, Any]] = deque(maxlen=maxlen)
        self.text_queue: deque[str] = deque(maxlen=maxlen)

        self.active_streams: dict[str, set[str]] = {"event": set(), "text": set()}
        self.total_messages_sent = 0
        self.startup_time = datetime.now(timezone.utc)

    # ==========================
    # STREAM REGISTRATION
    # ==========================
    def subscribe(self, channel: str, client_id: str) -> None:
        self.active_streams[channel].add(client_id)
        logger.info(f"client_id={client_id} protocol=sse channel={channel} event=connect reason=subscribed")

    def unsubscribe(self, channel: str, client_id: str) -> None:
        if client_id in self.active_streams[channel]:
            self.active_streams[channel].discard(client_id)
            logger.info(f"client_id={client_id} protocol=sse channel={channel} event=disconnect reason=cleanup")

    # ==========================
    # QUEUES
    # ==========================
    def push(self, event: dict[str, Any], text: str) -> None:
        self.event_queue.append(event)
        self.text_queue.append(text)

    def pop_event(self) -> Optional[dict[str, Any]]:
        return self.event_queue.pop() if self.event_queue else None

    def pop_text(self) -> Optional[str]:
        return self.text_queue.pop() if self.text_queue else None

    def record_sent(self) -> None:
        self.total_messages_sent += 1

    # ==========================
    # METRICS
    # ==========================
    def get_stats(self) -> StreamStats:
        return StreamStats(
            active_event_streams=len(self.active_streams["event"]),
            active_text_streams=len(self.active_streams["text"]),
            pending_events=len(self.event_queue),
            pending_texts=len(self.text_queue),
            total_messages_sent=self.total_messages_sent,
            uptime_s=(datetime.now(timezone.utc) - self.startup_time).total_seconds(),
            server_time=datetime.now(timezone.utc)
        )

# Global singleton instance
manager = ConnectionManager()
