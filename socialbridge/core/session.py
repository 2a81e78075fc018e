# socialbridge/core/session.py
"""Connection lifecycle for one chat account.

The session value is always exactly one of the state classes below. Only the
Session talks to the transport, and only through the handle held by the
Connecting or Online state.
"""
from __future__ import annotations
import asyncio
import json
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Optional, Union

from socialbridge.core.batcher import OutboundBatcher
from socialbridge.core.config import Config
from socialbridge.core.directory import ContactDirectory
from socialbridge.core.errors import ErrorCode, SocialError
from socialbridge.core.events import ClientStateChanged
from socialbridge.core.frames import OutboundMessage, PresenceAnnouncement, ProfileRequest, RosterRequest
from socialbridge.model import ConnectOptions, ContactRecord, Credentials, LoginOptions, Status

logger = logging.getLogger(__name__)

LOGIN_FORM = "irc-login"


# ---------- states ----------

@dataclass(frozen=True, eq=False)
class NoCredentials:
    pass

@dataclass(frozen=True, eq=False)
class AwaitingCredentials:
    pending: asyncio.Future
    view: Any

@dataclass(frozen=True, eq=False)
class Connecting:
    credentials: Credentials
    pending: asyncio.Future
    handle: Any

@dataclass(frozen=True, eq=False)
class Online:
    handle: Any
    self_id: str

@dataclass(frozen=True, eq=False)
class Offline:
    pass

SessionState = Union[NoCredentials, AwaitingCredentials, Connecting, Online, Offline]


def _resolve(fut: asyncio.Future, value) -> None:
    if not fut.done():
        fut.set_result(value)

def _fail(fut: asyncio.Future, errcode: ErrorCode, message: Optional[str] = None) -> None:
    if not fut.done():
        fut.set_exception(SocialError(errcode, message))


class Session:
    def __init__(self, transport, view_factory: Callable[[], Any], dispatch: Callable[[Any], None],
                 cfg: Config, clock, loop: Optional[asyncio.AbstractEventLoop] = None,
                 now: Callable[[], float] = time.time):
        self.transport = transport
        self.view_factory = view_factory
        self.dispatch = dispatch
        self.cfg = cfg
        self.loop = loop or asyncio.get_running_loop()
        self.options: LoginOptions = cfg.login_options()
        self.credentials: Optional[Credentials] = None
        self.state: SessionState = NoCredentials()
        self.directory = ContactDirectory(now=now)
        self.batcher = OutboundBatcher(self._deliver, clock,
                                       delay=cfg.batch_delay, max_window=cfg.max_batch_window)

    # ---------- views on the current state ----------
    @property
    def handle(self):
        st = self.state
        if isinstance(st, (Connecting, Online)):
            return st.handle
        return None

    @property
    def self_id(self) -> Optional[str]:
        st = self.state
        return st.self_id if isinstance(st, Online) else None

    @property
    def online(self) -> bool:
        return isinstance(self.state, Online)

    def _set_state(self, st: SessionState) -> None:
        logger.info("session %s -> %s", type(self.state).__name__, type(st).__name__)
        self.state = st

    # ---------- login ----------
    def begin_login(self, options: Optional[LoginOptions] = None) -> asyncio.Future:
        fut = self.loop.create_future()

        st = self.state
        if isinstance(st, Online):
            _resolve(fut, replace(self.directory.get(st.self_id) or ContactRecord(user_id=st.self_id)))
            return fut
        if options is not None:
            self.options = options
        if isinstance(st, (AwaitingCredentials, Connecting)):
            self._abort_attempt(st, "superseded by a newer login")

        if self.credentials is None:
            self._open_view(fut)
        else:
            self._connect(self.credentials, fut)
        return fut

    def _abort_attempt(self, st, reason: str) -> None:
        if isinstance(st, AwaitingCredentials):
            self._close_view(st.view)
        elif isinstance(st, Connecting):
            self._best_effort("disconnect", st.handle.disconnect)
        _fail(st.pending, ErrorCode.LOGIN_FAILEDCONNECTION, reason)
        self._set_state(NoCredentials())

    def _close_view(self, view) -> None:
        try:
            view.close()
        except Exception:
            logger.exception("closing login view failed")

    def _open_view(self, fut: asyncio.Future) -> None:
        try:
            view = self.view_factory()
        except Exception as e:
            logger.exception("cannot create login view")
            _fail(fut, ErrorCode.LOGIN_FAILEDCONNECTION, str(e))
            return
        st = AwaitingCredentials(pending=fut, view=view)
        self._set_state(st)
        try:
            view.show(LOGIN_FORM, lambda msg: self._on_credentials(st, msg))
        except Exception as e:
            logger.exception("cannot show login view")
            if self.state is st:
                self._set_state(NoCredentials())
            _fail(fut, ErrorCode.LOGIN_FAILEDCONNECTION, str(e))

    def _on_credentials(self, st: AwaitingCredentials, msg: Any) -> None:
        if self.state is not st:
            logger.info("ignoring answer from a closed login view")
            return
        self._close_view(st.view)

        cmd = msg.get("cmd") if isinstance(msg, Mapping) else None
        if cmd == "auth":
            creds = Credentials.from_message(msg.get("message"), default_port=self.cfg.default_port)
            if creds is not None:
                self.credentials = creds
                self._connect(creds, st.pending)
                return
            logger.warning("login view returned unusable credentials")
            self._set_state(NoCredentials())
            _fail(st.pending, ErrorCode.LOGIN_BADCREDENTIALS)
        elif cmd == "error":
            self._set_state(NoCredentials())
            _fail(st.pending, ErrorCode.LOGIN_FAILEDCONNECTION)
        else:
            self._set_state(NoCredentials())
            _fail(st.pending, ErrorCode.LOGIN_BADCREDENTIALS)

    def _connect(self, creds: Credentials, fut: asyncio.Future) -> None:
        opts = ConnectOptions(
            nick=creds.user_id,
            user=creds.user_id,
            server=creds.host,
            port=creds.port,
        )
        logger.info("connecting to %s:%s as %s", opts.server, opts.port, opts.nick)
        try:
            handle = self.transport.connect(opts)
        except Exception as e:
            logger.exception("connect to %s:%s failed", opts.server, opts.port)
            self.credentials = None
            self._set_state(NoCredentials())
            _fail(fut, ErrorCode.LOGIN_FAILEDCONNECTION, str(e))
            return
        self._set_state(Connecting(credentials=creds, pending=fut, handle=handle))

    # ---------- transport-driven transitions ----------
    def on_registered(self, nick: str) -> None:
        st = self.state
        if not isinstance(st, Connecting):
            logger.warning("registration as %s while %s, ignored", nick, type(st).__name__)
            return
        self._set_state(Online(handle=st.handle, self_id=nick))

        room = self.options.room or st.credentials.room or self.cfg.default_room
        if room:
            self._best_effort("join", st.handle.join, room)
        self._best_effort("presence", st.handle.send, PresenceAnnouncement(
            show="xa", capability=self.options.url, version=self.options.version))
        self._best_effort("roster request", st.handle.send, RosterRequest(channel=room))

        rec, _ = self.directory.upsert(nick, status=Status.ONLINE, last_seen=self.directory.now())
        self.dispatch(ClientStateChanged(record=replace(rec)))
        _resolve(st.pending, replace(rec))

    def on_disconnected(self, reason: str) -> None:
        st = self.state
        if isinstance(st, Connecting):
            logger.warning("connection failed before registration: %s", reason or "closed")
            self.credentials = None
            self._set_state(NoCredentials())
            _fail(st.pending, ErrorCode.LOGIN_FAILEDCONNECTION, reason or None)
        elif isinstance(st, Online):
            logger.warning("connection lost: %s", reason or "closed")
            self.batcher.cancel_all()
            rec, _ = self.directory.upsert(st.self_id, status=Status.OFFLINE)
            self._set_state(Offline())
            self.dispatch(ClientStateChanged(record=replace(rec)))
            self.directory.reset()
        else:
            logger.info("disconnect notice while %s, ignored", type(st).__name__)

    # ---------- commands ----------
    def logout(self) -> None:
        st = self.state
        if isinstance(st, (AwaitingCredentials, Connecting)):
            self._abort_attempt(st, "logged out")
        elif isinstance(st, Online):
            self._best_effort("flush", self.batcher.flush_all)
            self._best_effort("unavailable notice", st.handle.send, PresenceAnnouncement(unavailable=True))
            self._best_effort("disconnect", st.handle.disconnect)
        self.batcher.cancel_all()
        self.credentials = None
        self.directory.reset()
        self._set_state(Offline())

    def clear_cached_credentials(self) -> None:
        self.credentials = None

    def send_message(self, to: str, payload: Any) -> None:
        if not self.online:
            logger.warning("no client available to send message to %s", to)
            raise SocialError(ErrorCode.OFFLINE)
        try:
            self.batcher.enqueue(to, payload)
        except Exception as e:
            logger.exception("cannot queue message to %s", to)
            raise SocialError(ErrorCode.UNKNOWN, str(e)) from e

    def request_user_status(self, user: str) -> None:
        if not self.online:
            logger.warning("user status request to %s dropped, no client available", user)
            return
        self.send_frame(ProfileRequest(user=user))

    def send_frame(self, frame) -> bool:
        st = self.state
        if not isinstance(st, Online):
            logger.warning("dropping %s, not online", type(frame).__name__)
            return False
        return self._best_effort(type(frame).__name__, st.handle.send, frame)

    def _deliver(self, to: str, payloads: list) -> None:
        st = self.state
        if not isinstance(st, Online):
            logger.warning("dropping %d payload(s) to %s, not online", len(payloads), to)
            return
        # "normal" only reaches peers running this app; "chat" reaches any client
        kind = "normal" if self.directory.status_of(to) is Status.ONLINE else "chat"
        st.handle.send(OutboundMessage(to=to, body=json.dumps(payloads), kind=kind))

    def _best_effort(self, what: str, fn, *args) -> bool:
        try:
            fn(*args)
            return True
        except Exception:
            logger.warning("%s failed", what, exc_info=True)
            return False
