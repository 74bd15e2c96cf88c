"""
Single-flight helper: concurrent callers asking for the same key share one
in-flight coroutine instead of each running their own.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict


class SingleFlight:
    def __init__(self):
        self._inflight: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._inflight)

    async def do(self, key: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run fn() once for all concurrent callers of key.

        Every waiter receives the same result or the same exception. The slot
        is released when the task finishes, successfully or not. A waiter
        being cancelled does not cancel the shared task.
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._release(key, done))
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception as retrieved when every waiter went away
            task.exception()
