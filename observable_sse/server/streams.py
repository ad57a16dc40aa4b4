"""
MODULE OVERVIEW:
The background producer and the per-connection stream generators of the demo server.

WHAT IS HAPPENING HERE:
`message_producer` fills the shared queues on a fixed timer. Each stream generator
wakes up on its own timer, pops one item if there is one, and yields it as an
sse-starlette event dict. sse-starlette does the wire encoding, including one `data:`
line per line of payload, so a message can never corrupt the stream framing.

The fixture streams replay the fixed messages the browser test page expects.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, AsyncGenerator

from observable_sse.server.connection_manager import ConnectionManager

def local_time() -> str:
    return datetime.now().strftime("%H:%M:%S")

async def message_producer(manager: ConnectionManager, interval_s: float):
    """Pushes one structured event and one text line every `interval_s` seconds."""
    while True:
        await asyncio.sleep(interval_s)
        date = local_time()
        manager.push({"message": "a message", "date": date}, f"[{date}] a message")

async def event_stream(manager: ConnectionManager, interval_s: float) -> AsyncGenerator[dict[str, Any], None]:
    """Named `foo` events carrying a JSON object."""
    while True:
        await asyncio.sleep(interval_s)
        evt = manager.pop_event()
        if evt is None:
            continue
        manager.record_sent()
        yield {
            "id": local_time(),
            "event": "foo",
            "data": json.dumps({"date": evt["date"], "msg": evt["message"]}),
        }

async def text_stream(manager: ConnectionManager, interval_s: float) -> AsyncGenerator[dict[str, Any], None]:
    """Unnamed messages carrying plain text."""
    while True:
        await asyncio.sleep(interval_s)
        text = manager.pop_text()
        if text is None:
            continue
        manager.record_sent()
        yield {"id": local_time(), "data": text}

async def fixture_stream(data: Any, interval_s: float) -> AsyncGenerator[dict[str, Any], None]:
    """The same message over and over, for the browser test page."""
    payload = data if isinstance(data, str) else json.dumps(data)
    while True:
        await asyncio.sleep(interval_s)
        yield {"id": local_time(), "data": payload}
