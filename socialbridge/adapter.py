# socialbridge/adapter.py
"""Async command surface for the outer application.

Every command completes exactly once: it returns a value or raises
``SocialError`` (``err.to_dict()`` gives the ``{errcode, message}`` pair).
"""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from socialbridge.core.batcher import LoopClock
from socialbridge.core.bus import Bus
from socialbridge.core.classifier import apply_event, classify
from socialbridge.core.config import Config
from socialbridge.core.session import Session
from socialbridge.model import ContactRecord, LoginOptions
from socialbridge.transport import TransportBridge

logger = logging.getLogger(__name__)


class SocialAdapter:
    def __init__(self, transport, view_factory: Callable[[], Any],
                 dispatch_event: Optional[Callable[[Any], None]] = None,
                 cfg: Optional[Config] = None, clock=None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop or asyncio.get_running_loop()
        self.cfg = cfg or Config()
        self.bus = Bus()
        self.bridge = TransportBridge(self.bus, self.loop)
        self._dispatch_event = dispatch_event
        self.session = Session(
            transport, view_factory, self._dispatch, self.cfg,
            clock or LoopClock(self.loop), loop=self.loop,
        )
        self._listener: Optional[asyncio.Task] = None

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # ---------- lifecycle ----------
    def start(self):
        self.bridge.subscribe()
        if self._listener is None or self._listener.done():
            self._listener = self.loop.create_task(self._listen())

    async def close(self):
        self.bridge.unsubscribe()
        if self._listener is not None and not self._listener.done():
            self._listener.cancel()
            await asyncio.gather(self._listener, return_exceptions=True)
        self._listener = None

    async def settle(self):
        """Wait until every frame received so far has been classified."""
        await self.bus.join()

    def _dispatch(self, ev):
        if self._dispatch_event is None:
            return
        try:
            self._dispatch_event(ev)
        except Exception:
            logger.exception("event handler failed for %s", type(ev).__name__)

    async def _listen(self):
        try:
            async for ev in self.bus.listen():
                try:
                    self._handle_frame(*ev)
                except Exception:
                    logger.exception("[listener] error handling %r", ev)
                finally:
                    self.bus.task_done()
        except asyncio.CancelledError:
            return

    def _handle_frame(self, interface, topic: str, frame):
        if interface is None or interface is not self.session.handle:
            logger.debug("dropping %s from a stale connection", topic)
            return
        logger.debug("%s %r", topic, frame)
        apply_event(self.session, classify(topic, frame))

    # ---------- commands ----------
    async def login(self, options: Optional[LoginOptions] = None) -> ContactRecord:
        self.start()
        return await self.session.begin_login(options)

    async def logout(self) -> None:
        self.session.logout()

    async def send_message(self, to: str, payload: Any) -> None:
        self.session.send_message(to, payload)

    async def get_clients(self) -> Dict[str, ContactRecord]:
        return self.session.directory.all()

    get_contacts = get_clients
    get_users = get_clients

    async def clear_cached_credentials(self) -> None:
        self.session.clear_cached_credentials()

    async def request_user_status(self, user: str) -> None:
        self.session.request_user_status(user)
