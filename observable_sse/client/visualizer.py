"""
MODULE OVERVIEW:
The Rich terminal dashboard for one EventSource.

WHAT IS HAPPENING HERE:
The visualizer is just another subscriber: it registers listeners for the lifecycle
events and for every named event the user asked about, and redraws a Live layout a
few times per second from what those listeners recorded.
"""

from rich.live import Live
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from collections import deque
from datetime import datetime
import asyncio

from observable_sse.client.event_source import EventSource
from observable_sse.shared.models import ReadyState, SSEEvent

MODE_INFO = {
    "both": "Both: named events fire with the decoded payload, and 'message' always fires too.",
    "event": "Event: like both, but a payload that is not JSON becomes an 'error'.",
    "text": "Text: the message text itself is used as the event name."
}

STATE_COLORS = {
    ReadyState.OPEN: "green",
    ReadyState.CONNECTING: "yellow",
    ReadyState.CLOSING: "yellow",
    ReadyState.CLOSED: "red",
}

class Visualizer:
    def __init__(self, source: EventSource, event_names: list[str] | None = None):
        self.source = source
        self.event_names = list(event_names or [])
        self.recent_events = deque(maxlen=10)
        self.timeline = deque(maxlen=5)

        for name in ("open", "close", "error"):
            self.source.on(name, self.on_lifecycle)
        for name in ["message", *self.event_names]:
            self.source.on(name, self.on_event)

    def on_lifecycle(self, event: SSEEvent):
        ts = datetime.now().strftime("%H:%M:%S")
        detail = f" {event.payload}" if event.payload is not None else ""
        self.timeline.appendleft(f"[{ts}] {event.name}{detail}")

    def on_event(self, event: SSEEvent):
        ts = datetime.now().strftime("%H:%M:%S")
        payload_str = str(event.payload)[:40] + "..." if len(str(event.payload)) > 40 else str(event.payload)
        self.recent_events.appendleft((ts, event.name, payload_str, event.last_event_id or ""))

    def generate_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main")
        )
        layout["main"].split_row(
            Layout(name="left", ratio=2),
            Layout(name="right", ratio=1)
        )
        layout["right"].split_column(
            Layout(name="stats"),
            Layout(name="timeline"),
            Layout(name="info")
        )

        status = self.source.get_status()
        color = STATE_COLORS[status]
        layout["header"].update(Panel(f"[{color} bold]{self.source.url} | Status: {status.name}[/]", style=color))

        table = Table(title="Live Event Feed", expand=True)
        table.add_column("Time", justify="left", style="cyan", no_wrap=True)
        table.add_column("Event", style="magenta")
        table.add_column("Payload", style="green")
        table.add_column("Id", style="blue")

        for e in self.recent_events:
            table.add_row(e[0], e[1], e[2], e[3])

        layout["left"].update(Panel(table, title="Feed"))

        stats = self.source.stats
        stats_text = (
            f"Messages Received: {stats['events_received']}\n"
            f"Opens: {stats['open_count']}\n"
            f"Reconnects: {stats['reconnect_count']}\n"
            f"Errors: {stats['errors']}\n"
            f"Bridged: {', '.join(sorted(self.source.attached_server_events)) or '-'}"
        )
        layout["stats"].update(Panel(stats_text, title="Connection Stats"))

        layout["timeline"].update(Panel("\n".join(self.timeline), title="Timeline"))

        info = MODE_INFO.get(self.source.communication_type.value, "")
        layout["info"].update(Panel(info, title="Communication Type"))

        return layout

    async def run(self, duration_s: float):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration_s

        with Live(self.generate_layout(), refresh_per_second=4) as live:
            while loop.time() < deadline and not self.source.closed:
                live.update(self.generate_layout())
                await asyncio.sleep(0.25)
        self.source.close()
