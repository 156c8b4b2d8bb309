"""Per-resource FIFO lanes for read-modify-write cycles.

Each lane is an asyncio.Queue drained by one worker task, so two appenders
targeting the same file never interleave their read and their rename. Lanes
for different files run independently.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class WriteQueue:
    def __init__(self) -> None:
        self._lanes: dict[str, asyncio.Queue] = {}
        self._workers: dict[str, asyncio.Task] = {}

    async def submit(self, lane_key: str, fn: Callable[[], Awaitable[T] | T]) -> T:
        """Run ``fn`` after every job previously submitted to ``lane_key``."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        queue = self._lanes.get(lane_key)
        if queue is None:
            queue = asyncio.Queue()
            self._lanes[lane_key] = queue
            self._workers[lane_key] = asyncio.create_task(self._lane_worker(queue))

        await queue.put((fn, future))
        return await future

    async def aclose(self) -> None:
        """Cancel every lane worker. Jobs still queued are abandoned."""
        workers = list(self._workers.values())
        self._workers.clear()
        self._lanes.clear()
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

    @staticmethod
    async def _lane_worker(queue: asyncio.Queue) -> None:
        while True:
            fn, future = await queue.get()
            try:
                result = fn()
                if inspect.isawaitable(result):
                    result = await result
                if not future.cancelled():
                    future.set_result(result)
            except Exception as exc:
                if not future.cancelled():
                    future.set_exception(exc)
            finally:
                queue.task_done()
