# socialbridge/transport.py
"""Transport seam.

Transports publish every protocol frame on a pypubsub topic under ``chat``
with two arguments: ``interface`` (the connection handle that saw the frame)
and ``frame`` (a plain dict). ``TransportBridge`` subscribes to those topics
and moves them onto the adapter's bus from whatever thread the transport
publishes on.
"""
import asyncio
import logging
from typing import Any, Mapping, Protocol

from pubsub import pub

from socialbridge.core.bus import Bus
from socialbridge.model import ConnectOptions

logger = logging.getLogger(__name__)

REGISTERED   = "chat.registered"
NAMES        = "chat.names"
PRESENCE     = "chat.presence"
MESSAGE      = "chat.message"
CAPABILITIES = "chat.capabilities"
PROFILE      = "chat.profile"
DISCONNECTED = "chat.disconnected"
RAW          = "chat.raw"

TOPICS = (REGISTERED, NAMES, PRESENCE, MESSAGE, CAPABILITIES, PROFILE, DISCONNECTED, RAW)


class TransportHandle(Protocol):
    def send(self, frame: Any) -> None: ...
    def join(self, channel: str) -> None: ...
    def disconnect(self) -> None: ...


class Transport(Protocol):
    def connect(self, options: ConnectOptions) -> TransportHandle: ...


def publish(topic: str, interface: Any, frame: Mapping[str, Any]) -> None:
    pub.sendMessage(topic, interface=interface, frame=dict(frame))


class TransportBridge:
    def __init__(self, bus: Bus, loop: asyncio.AbstractEventLoop):
        self.bus = bus
        self.loop = loop
        self._subscribed = False

    def _emit(self, ev):
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self.loop:
            self.bus.emit_nowait(ev)
        elif not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self.bus.emit_nowait, ev)

    # ---------- PubSub callback ----------
    def _on_frame(self, interface, frame, topic=pub.AUTO_TOPIC):
        # handle matching happens on the loop; the handle may not be attached yet
        self._emit((interface, topic.getName(), frame))

    def subscribe(self):
        if self._subscribed:
            return
        for name in TOPICS:
            pub.subscribe(self._on_frame, name)
        self._subscribed = True

    def unsubscribe(self):
        if not self._subscribed:
            return
        for name in TOPICS:
            try:
                pub.unsubscribe(self._on_frame, name)
            except Exception:
                logger.debug("unsubscribe %s failed", name, exc_info=True)
        self._subscribed = False

