# socialbridge/core/batcher.py
from __future__ import annotations
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

BATCH_DELAY = 0.1        # seconds of quiet before a flush
MAX_BATCH_WINDOW = 2.0   # first buffered payload never waits longer than this


class LoopClock:
    """Clock backed by the running asyncio loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]):
        return self.loop.call_later(delay, callback)


@dataclass
class PendingBatch:
    payloads: List[Any] = field(default_factory=list)
    opened_at: float = 0.0
    timer: Any = None

    @property
    def armed(self) -> bool:
        return self.timer is not None


class OutboundBatcher:
    """Coalesces rapid sends to one destination into a single frame.

    Each destination gets its own PendingBatch. A send arms (or rearms) a
    short flush timer; rearming stops once the batch has been open for
    ``max_window`` so a steady stream still flushes inside that bound.
    """

    def __init__(self, deliver: Callable[[str, List[Any]], None], clock,
                 delay: float = BATCH_DELAY, max_window: float = MAX_BATCH_WINDOW):
        self._deliver = deliver
        self._clock = clock
        self.delay = delay
        self.max_window = max_window
        self._batches: Dict[str, PendingBatch] = {}

    def enqueue(self, to: str, payload: Any) -> None:
        # Raises on payloads that could never be flushed.
        json.dumps(payload)

        batch = self._batches.setdefault(to, PendingBatch())
        batch.payloads.append(payload)
        now = self._clock.now()

        if not batch.armed:
            batch.opened_at = now
            batch.timer = self._clock.call_later(self.delay, lambda: self._fire(to))
            return

        elapsed = now - batch.opened_at
        if elapsed < self.max_window:
            batch.timer.cancel()
            delay = min(self.delay, self.max_window - elapsed)
            batch.timer = self._clock.call_later(delay, lambda: self._fire(to))

    def pending(self, to: str) -> List[Any]:
        batch = self._batches.get(to)
        return list(batch.payloads) if batch else []

    def is_armed(self, to: str) -> bool:
        batch = self._batches.get(to)
        return bool(batch and batch.armed)

    def _fire(self, to: str) -> None:
        batch = self._batches.pop(to, None)
        if batch is None or not batch.payloads:
            return
        batch.timer = None
        try:
            self._deliver(to, batch.payloads)
        except Exception:
            logger.exception("flush to %s failed, %d payload(s) dropped", to, len(batch.payloads))

    def flush_all(self) -> None:
        for to in list(self._batches):
            batch = self._batches.get(to)
            if batch and batch.timer is not None:
                batch.timer.cancel()
            self._fire(to)

    def cancel_all(self) -> None:
        for batch in self._batches.values():
            if batch.timer is not None:
                batch.timer.cancel()
        dropped = sum(len(b.payloads) for b in self._batches.values())
        if dropped:
            logger.info("discarding %d unsent payload(s)", dropped)
        self._batches.clear()
