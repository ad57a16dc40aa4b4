"""
MODULE OVERVIEW:
The listener registry behind every observable EventSource.

WHAT IS HAPPENING HERE:
A plain mapping from event name to an ordered list of callbacks. `emit` runs every
callback for a name on the current event loop. A callback may be a regular function
or a coroutine function: coroutines are scheduled as tasks so `emit` itself never
blocks. That needs a running loop; without one the coroutine is closed and the
failure logged like any other listener error. One failing listener is logged and
does not stop the others.
"""
import asyncio
import inspect
from collections import defaultdict
from typing import Any, Callable, Dict, List
from loguru import logger

Listener = Callable[..., Any]


class ListenerRegistry:
    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def on(self, name: str, callback: Listener) -> None:
        self._listeners[name].append(callback)

    def off(self, name: str, callback: Listener) -> bool:
        """Removes one registration of `callback`. Returns False if it was not registered."""
        callbacks = self._listeners.get(name)
        if not callbacks or callback not in callbacks:
            return False
        callbacks.remove(callback)
        if not callbacks:
            del self._listeners[name]
        return True

    def has_subscribers(self, name: str) -> bool:
        return bool(self._listeners.get(name))

    def names(self) -> list[str]:
        return list(self._listeners)

    def emit(self, name: str, *args: Any) -> int:
        # Copy: a listener may unsubscribe itself while we iterate
        callbacks = list(self._listeners.get(name, ()))
        for callback in callbacks:
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    self._schedule(name, result)
            except Exception as e:
                logger.error(f"event={name} error in listener {getattr(callback, '__name__', callback)}: {e}")
        return len(callbacks)

    def _schedule(self, name: str, awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Async listeners need a running loop; close the coroutine so it is not left un-awaited
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_task_done(name, t))

    def _on_task_done(self, name: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"event={name} error in async listener: {task.exception()}")

    def clear(self) -> None:
        self._listeners.clear()
