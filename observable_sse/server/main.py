"""
MODULE OVERVIEW:
The demo SSE server, a FastAPI application.

WHAT IS HAPPENING HERE:
We use a `lifespan` context manager. When Uvicorn starts the server, we spawn the
message producer as a background task; it fills the queues the `/event` and `/text`
streams drain. When the server shuts down, the `finally` half of the lifespan
cancels the producer and waits for it.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import asyncio
from contextlib import asynccontextmanager
from loguru import logger

from observable_sse.server.connection_manager import manager
from observable_sse.server.routes import sse
from observable_sse.server.streams import message_producer
from observable_sse.shared.config import settings

# We store our background tasks here so we can cancel them on shutdown.
background_tasks = set()

async def producer_runner():
    try:
        await message_producer(manager, settings.SSE_PRODUCER_INTERVAL_S)
    except asyncio.CancelledError:
        logger.debug("Message producer cancelled")
    except Exception as e:
        logger.error(f"Message producer error: {e}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    # STARTUP
    logger.info(f"SSE server started on port: http://localhost:{settings.PORT}")
    task = asyncio.create_task(producer_runner())
    background_tasks.add(task)

    yield

    # SHUTDOWN
    logger.info("Server shutting down. Cancelling background tasks...")
    for task in background_tasks:
        task.cancel()

    if background_tasks:
        await asyncio.gather(*background_tasks, return_exceptions=True)
    background_tasks.clear()
    logger.info("Shutdown complete.")


app = FastAPI(
    title="observable_sse demo server",
    description="Pushes named and text-only Server-Sent Events on a timer",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sse.router, tags=["Streams"])

@app.get("/healthz", tags=["Ops"])
async def health_check():
    return {"status": "ok"}

@app.get("/stats", tags=["Ops"])
async def get_stats():
    return manager.get_stats()
