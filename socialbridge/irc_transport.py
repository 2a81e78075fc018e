# socialbridge/irc_transport.py
"""IRC transport built on the ``irc`` client library.

Each connection owns an ``irc.client.Reactor`` driven by one background
thread. Library events are turned into frames and published on the
``chat.*`` topics; outbound frames from ``core.frames`` become
``ServerConnection`` calls.
"""
import json
import logging
import threading
from typing import Any, Callable, List, Optional, Tuple

from jaraco.stream import buffer
import irc.client
import irc.connection

from socialbridge import transport as topics
from socialbridge.core.frames import (
    CapabilityReply, CapabilityRequest, OutboundMessage, PresenceAnnouncement, ProfileRequest, RosterRequest,
)
from socialbridge.model import ConnectOptions
from socialbridge.ui_ptk.text_sanitize import sanitize_text

logger = logging.getLogger(__name__)

MAX_LINE = 512
# room for the ":nick!user@host " prefix the server adds when relaying to the peer
RELAY_PREFIX_RESERVE = 96
POLL_INTERVAL = 0.2
QUIT_MESSAGE = "bye"

_SILENT = {"all_raw_messages", "ping", "pong"}


def _nick(source) -> str:
    return getattr(source, "nick", None) or str(source or "")


def frame_for(event: irc.client.Event) -> Optional[Tuple[str, dict]]:
    kind, args = event.type, list(event.arguments or [])
    nick = _nick(event.source)
    if kind == "welcome":
        return topics.REGISTERED, {"nick": event.target}
    if kind == "namreply" and len(args) >= 3:
        return topics.NAMES, {"channel": args[1], "names": args[2].split()}
    if kind == "join" and nick:
        return topics.PRESENCE, {"user": nick, "available": True, "channel": event.target or ""}
    if kind in ("part", "quit") and nick:
        return topics.PRESENCE, {"user": nick, "type": "unavailable"}
    if kind == "privmsg" and args and nick:
        return topics.MESSAGE, {"sender": nick, "target": event.target, "body": args[0]}
    if kind == "ctcp" and args and args[0].upper() == "VERSION" and nick:
        return topics.CAPABILITIES, {"sender": nick}
    if kind == "ctcpreply" and args and args[0].upper() == "VERSION" and nick:
        # "<name> <version> <feature>..." as sent by CapabilityReply
        words = args[1].split() if len(args) > 1 else []
        capability = " ".join(words[2:]) or " ".join(words) or "unknown"
        return topics.PRESENCE, {"user": nick, "available": True, "capability": capability}
    if kind == "whoisuser" and args:
        return topics.PROFILE, {"user": args[0], "display_name": sanitize_text(args[-1])}
    if kind == "nicknameinuse":
        return topics.DISCONNECTED, {"reason": "nickname already in use"}
    if kind == "error":
        return topics.DISCONNECTED, {"reason": sanitize_text(event.target or "")}
    return None


def split_batch(to: str, body: str) -> List[str]:
    """Split a JSON list body into PRIVMSG bodies that each fit on one line.

    Every returned body is itself a JSON list; item order is kept. An item
    too large for a line of its own is dropped with a warning.
    """
    budget = MAX_LINE - RELAY_PREFIX_RESERVE - len(f"PRIVMSG {to} :\r\n".encode("utf-8"))
    if len(body.encode("utf-8")) <= budget:
        return [body]
    try:
        payloads = json.loads(body)
    except ValueError:
        payloads = None
    if not isinstance(payloads, list):
        raise ValueError(f"message to {to} does not fit on one line")

    def size(items):
        return len(json.dumps(items).encode("utf-8"))

    bodies, current = [], []
    for item in payloads:
        if size(current + [item]) <= budget:
            current.append(item)
            continue
        if current:
            bodies.append(json.dumps(current))
            current = []
        if size([item]) > budget:
            logger.warning("dropping payload to %s, %d bytes is too long for one line", to, size([item]))
            continue
        current = [item]
    if current:
        bodies.append(json.dumps(current))
    return bodies


def apply_frame(conn, frame) -> None:
    """Issue the ``ServerConnection`` calls for one outbound frame."""
    if isinstance(frame, OutboundMessage):
        # IRC has one delivery mode; ``kind`` only matters on multi-device protocols
        for body in split_batch(frame.to, frame.body):
            conn.privmsg(frame.to, body)
    elif isinstance(frame, PresenceAnnouncement):
        # the capability marker travels in CTCP VERSION replies, AWAY only carries ``show``
        conn.away("offline" if frame.unavailable else (frame.show or ""))
    elif isinstance(frame, RosterRequest):
        if frame.channel:
            conn.names([frame.channel])
    elif isinstance(frame, ProfileRequest):
        conn.whois(frame.user)
    elif isinstance(frame, CapabilityRequest):
        conn.ctcp("VERSION", frame.user)
    elif isinstance(frame, CapabilityReply):
        text = " ".join(p for p in (frame.name, frame.version, *frame.features) if p)
        conn.ctcp_reply(frame.to, f"VERSION {text}")
    else:
        raise TypeError(f"cannot send {type(frame).__name__}")


class IrcConnection:
    def __init__(self, options: ConnectOptions, connect_factory=None):
        self.options = options
        self._connect_factory = connect_factory or irc.connection.Factory()
        self.reactor = irc.client.Reactor()
        self.connection = self.reactor.server()
        self.connection.buffer_class = buffer.LenientDecodingLineBuffer
        self.reactor.add_global_handler("all_events", self._on_event)
        self._lock = threading.Lock()
        self._ready = False
        self._queued: List[Tuple[Callable, tuple]] = []
        self._stop = threading.Event()
        self._gone = False
        self._thr = None

    def start(self):
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = threading.Thread(target=self._worker, name="IrcReactor", daemon=True)
        self._thr.start()

    def _publish(self, topic: str, frame: dict):
        try:
            topics.publish(topic, self, frame)
        except Exception:
            logger.exception("publishing %s failed", topic)

    def _lost(self, reason: str):
        if self._gone:
            return
        self._gone = True
        self._publish(topics.DISCONNECTED, {"reason": reason})
        self._stop.set()

    def _dial(self, address):
        sock = self._connect_factory(address)
        if self._stop.is_set():
            sock.close()
            raise ConnectionAbortedError("disconnected while dialing")
        return sock

    def _worker(self):
        o = self.options
        try:
            self.connection.connect(
                o.server, o.port, o.nick,
                username=o.user, ircname=o.realname, connect_factory=self._dial,
            )
        except irc.client.ServerConnectionError as e:
            if self._stop.is_set():
                logger.info("connect to %s:%s abandoned", o.server, o.port)
            else:
                logger.error("connect %s:%s failed: %s", o.server, o.port, e)
                self._lost(str(e))
            return

        with self._lock:
            self._ready = True
            queued, self._queued = self._queued, []
            for fn, args in queued:
                try:
                    fn(*args)
                except Exception:
                    logger.warning("queued %s failed", getattr(fn, "__name__", fn), exc_info=True)

        try:
            while not self._stop.is_set() and self.connection.is_connected():
                self.reactor.process_once(POLL_INTERVAL)
        except (OSError, irc.client.IRCError) as e:
            logger.warning("irc connection to %s failed: %s", o.server, e)
            self._lost(str(e))
        finally:
            with self._lock:
                self._ready = False
                if self.connection.is_connected():
                    self.connection.disconnect(QUIT_MESSAGE)

    def _on_event(self, connection, event):
        if event.type == "disconnect":
            if not self._stop.is_set():
                self._lost(event.arguments[0] if event.arguments else "connection closed")
            return
        if event.type in _SILENT:
            return
        logger.debug("<< %s %s %r", event.type, event.target, event.arguments)
        item = frame_for(event)
        if item is None:
            self._publish(topics.RAW, {
                "type": event.type, "target": event.target, "arguments": list(event.arguments or []),
            })
        elif item[0] == topics.DISCONNECTED:
            self._lost(item[1]["reason"])
        else:
            self._publish(*item)

    def _call(self, fn: Callable, *args: Any):
        with self._lock:
            if self._ready:
                fn(*args)
                return
            if self._stop.is_set():
                raise irc.client.ServerNotConnectedError("not connected")
            self._queued.append((fn, args))

    # ---------- TransportHandle ----------
    def send(self, frame):
        self._call(apply_frame, self.connection, frame)

    def join(self, channel: str):
        self._call(self.connection.join, channel)

    def disconnect(self):
        # the reactor thread sends QUIT and closes the socket
        self._stop.set()


class IrcTransport:
    def __init__(self, connect_factory=None):
        self._connect_factory = connect_factory

    def connect(self, options: ConnectOptions) -> IrcConnection:
        if not options.server:
            raise ValueError("no server given")
        if not 0 < int(options.port) < 65536:
            raise ValueError(f"port {options.port} is out of range; set the server port explicitly")
        conn = IrcConnection(options, self._connect_factory)
        conn.start()
        return conn
