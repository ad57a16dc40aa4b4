import uuid
from typing import Any, AsyncGenerator
from loguru import logger

from observable_sse.server.connection_manager import ConnectionManager

async def extract_client_id(client_id: str | None) -> str:
    """
    If the caller provided a client_id, use it.
    If not, generate a short readable one like 'client-a3f2'.
    This prevents anonymous connections from cluttering logs.
    """
    if client_id:
        return client_id
    return f"client-{str(uuid.uuid4())[:4]}"

async def log_connection(protocol: str, client_id: str, extra: dict | None = None) -> None:
    """
    Single structured log entry for any new connection.
    Every route calls this once on connect and once on disconnect.
    """
    log_str = f"protocol={protocol} client_id={client_id}"
    for k, v in (extra or {}).items():
        log_str += f" {k}={v}"
    logger.info(log_str)

async def tracked(
    manager: ConnectionManager,
    channel: str,
    client_id: str,
    stream: AsyncGenerator[dict[str, Any], None],
) -> AsyncGenerator[dict[str, Any], None]:
    """
    Wraps a stream generator so the manager knows the client is connected.
    sse-starlette cancels the generator when the client goes away; the
    `finally` block is where we notice.
    """
    manager.subscribe(channel, client_id)
    await log_connection(f"sse:{channel}:connect", client_id)
    try:
        async for item in stream:
            yield item
    finally:
        manager.unsubscribe(channel, client_id)
        await log_connection(f"sse:{channel}:disconnect", client_id)
