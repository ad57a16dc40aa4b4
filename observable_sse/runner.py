"""
CLI entrypoint for observable_sse.
"""
import sys
import typer
import asyncio
from loguru import logger

from observable_sse.client.event_source import EventSource
from observable_sse.client.visualizer import Visualizer
from observable_sse.shared.config import settings
from observable_sse.shared.errors import EventSourceError
from observable_sse.shared.models import CommunicationType, SSEEvent

app = typer.Typer(help="Observable Server-Sent Events client and demo server")

def configure_logging(level: str = settings.LOG_LEVEL) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())

@app.callback()
def main(log_level: str = typer.Option(settings.LOG_LEVEL, help="Log level for the client and server")):
    configure_logging(log_level)

@app.command()
def server(
    host: str = typer.Option(settings.HOST, help="Interface to bind"),
    port: int = typer.Option(settings.PORT, help="Port to listen on"),
):
    """Start the demo SSE server using Uvicorn."""
    import uvicorn
    typer.echo(f"Starting server on port {port}...")
    uvicorn.run("observable_sse.server.main:app", host=host, port=port, log_level=settings.LOG_LEVEL.lower())

def print_event(event: SSEEvent) -> None:
    payload = "" if event.payload is None else f" {event.payload}"
    typer.echo(f"[{event.name}]{payload}")

async def _listen(url: str, mode: CommunicationType, events: list[str], reconnect: bool, interval: int, duration: float, live: bool):
    source = EventSource(
        url,
        communication_type=mode,
        auto_reconnect=reconnect,
        auto_reconnect_interval=interval,
    )
    if live:
        await Visualizer(source, events).run(duration)
        return

    for name in ["open", "close", "error", "message", *events]:
        source.on(name, print_event)
    async with source:
        await asyncio.sleep(duration)

@app.command()
def listen(
    url: str = typer.Argument(..., help="Stream URL, e.g. http://127.0.0.1:3000/event"),
    mode: CommunicationType = typer.Option(CommunicationType(settings.SSE_DEFAULT_COMMUNICATION_TYPE), help="Communication type"),
    event: list[str] = typer.Option([], "--event", "-e", help="Named server event to subscribe to (repeatable)"),
    reconnect: bool = typer.Option(settings.SSE_AUTO_RECONNECT, help="Reopen the stream when it closes"),
    interval: int = typer.Option(settings.SSE_AUTO_RECONNECT_INTERVAL_MS, help="Reconnect poll interval in milliseconds"),
    duration: float = typer.Option(60.0, help="How long to listen, in seconds"),
    live: bool = typer.Option(False, help="Show the rich dashboard instead of printing lines"),
):
    """Connect to a stream and print every event it produces."""
    try:
        asyncio.run(_listen(url, mode, event, reconnect, interval, duration, live))
    except EventSourceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        pass

@app.command()
def stats(
    base_url: str = typer.Option(f"http://127.0.0.1:{settings.PORT}", help="Demo server base URL"),
):
    """Query the demo server for live stream stats."""
    import httpx
    resp = httpx.get(f"{base_url.rstrip('/')}/stats")
    typer.echo(resp.json())

if __name__ == "__main__":
    app()
