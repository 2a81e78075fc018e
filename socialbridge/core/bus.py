# socialbridge/core/bus.py
import asyncio
from typing import Any, AsyncGenerator

class Bus:
    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()

    def emit_nowait(self, event: Any):
        self._queue.put_nowait(event)

    async def listen(self) -> AsyncGenerator[Any, None]:
        while True:
            ev = await self._queue.get()
            yield ev

    def task_done(self):
        self._queue.task_done()

    async def join(self):
        """Wait until every emitted event has been handled."""
        await self._queue.join()
