import asyncio
from typing import Callable, Protocol
from loguru import logger
from datetime import datetime, timezone

def make_client_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    Every EventSource calls this once in __init__.
    Keys: events_received, errors, open_count, reconnect_count,
          last_event_at, created_at.
    """
    return {
        "events_received": 0,
        "errors": 0,
        "open_count": 0,
        "reconnect_count": 0,
        "last_event_at": None,
        "created_at": datetime.now(timezone.utc).isoformat()
    }


class TimerHandle:
    """A running periodic callback. Owned by whoever called `schedule`."""

    def __init__(self, task: asyncio.Task, interval_ms: int):
        self.task = task
        self.interval_ms = interval_ms

    @property
    def active(self) -> bool:
        return not self.task.done()


class Scheduler(Protocol):
    def schedule(self, callback: Callable[[], None], interval_ms: int) -> TimerHandle: ...

    def cancel(self, handle: TimerHandle) -> None: ...


class AsyncioScheduler:
    """
    Periodic timers on the running event loop.
    The callback runs every `interval_ms` until the handle is cancelled; the first
    run happens one full interval after scheduling.
    """

    def schedule(self, callback: Callable[[], None], interval_ms: int) -> TimerHandle:
        interval_s = interval_ms / 1000.0
        task = asyncio.get_running_loop().create_task(self._run(callback, interval_s))
        return TimerHandle(task, interval_ms)

    def cancel(self, handle: TimerHandle) -> None:
        handle.task.cancel()

    async def _run(self, callback: Callable[[], None], interval_s: float) -> None:
        try:
            while True:
                await asyncio.sleep(interval_s)
                try:
                    callback()
                except Exception as e:
                    logger.error(f"Error in periodic timer callback: {e}")
        except asyncio.CancelledError:
            pass
