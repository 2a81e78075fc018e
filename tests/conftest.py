"""
Shared fakes for the session tests.

The fakes stand in for the adapter's collaborators: a transport whose handles
record every frame and publish inbound frames through pypubsub exactly like a
real transport, a scripted credential view, and a manual clock for the
batcher's timers.
"""

import asyncio
import itertools
from typing import Any, Callable, List, Optional

import pytest
import pytest_asyncio

from socialbridge import transport as topics
from socialbridge.adapter import SocialAdapter
from socialbridge.core.config import Config


# =============================================================================
# CLOCK
# =============================================================================


class _Timer:
    def __init__(self, when: float, seq: int, callback: Callable[[], None]):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualClock:
    """Virtual time; timers only fire inside ``advance``."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._seq = itertools.count()
        self._timers: List[_Timer] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Timer:
        t = _Timer(self._now + delay, next(self._seq), callback)
        self._timers.append(t)
        return t

    @property
    def armed(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.when <= target + 1e-9]
            if not due:
                break
            t = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(t)
            self._now = max(self._now, t.when)
            t.callback()
        self._timers = [t for t in self._timers if not t.cancelled]
        self._now = target


# =============================================================================
# TRANSPORT
# =============================================================================


class FakeHandle:
    def __init__(self, options, clock: Optional[ManualClock] = None):
        self.options = options
        self.clock = clock
        self.sent: List[Any] = []
        self.sent_at: List[float] = []
        self.joined: List[str] = []
        self.disconnected = False
        self.send_error: Optional[Exception] = None
        self.disconnect_error: Optional[Exception] = None

    def send(self, frame):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(frame)
        self.sent_at.append(self.clock.now() if self.clock else 0.0)

    def join(self, channel):
        self.joined.append(channel)

    def disconnect(self):
        self.disconnected = True
        if self.disconnect_error is not None:
            raise self.disconnect_error

    def publish(self, topic: str, **frame):
        topics.publish(topic, self, frame)

    def frames(self, kind):
        return [f for f in self.sent if isinstance(f, kind)]


class FakeTransport:
    def __init__(self, clock: Optional[ManualClock] = None):
        self.clock = clock
        self.connects: List[Any] = []
        self.handles: List[FakeHandle] = []
        self.error: Optional[Exception] = None
        self.auto_register = True

    def connect(self, options):
        self.connects.append(options)
        if self.error is not None:
            raise self.error
        handle = FakeHandle(options, self.clock)
        self.handles.append(handle)
        if self.auto_register:
            handle.publish(topics.REGISTERED, nick=options.nick)
        return handle

    @property
    def handle(self) -> FakeHandle:
        return self.handles[-1]


# =============================================================================
# CREDENTIAL VIEW
# =============================================================================


class FakeView:
    def __init__(self, answer=None):
        self.answer = answer
        self.form_id = None
        self.on_message = None
        self.closed = False

    def show(self, form_id, on_message):
        self.form_id = form_id
        self.on_message = on_message
        if self.answer is not None:
            on_message(self.answer)

    def respond(self, msg):
        # deliberately ignores ``closed``: the session must drop stale answers
        self.on_message(msg)

    def close(self):
        self.closed = True


class Views:
    """View factory that remembers every view it created."""

    def __init__(self):
        self.created: List[FakeView] = []
        self.answer = None

    def __call__(self):
        v = FakeView(self.answer)
        self.created.append(v)
        return v

    @property
    def last(self) -> FakeView:
        return self.created[-1]


def auth(user_id="alice", host="irc.example.org", port=""):
    return {"cmd": "auth", "message": {"userId": user_id, "host": host, "port": port}}


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def transport(clock):
    return FakeTransport(clock)


@pytest.fixture
def views():
    return Views()


@pytest.fixture
def received():
    return []


@pytest.fixture
def cfg(tmp_path):
    return Config(log_file=str(tmp_path / "socialbridge.log"))


@pytest_asyncio.fixture
async def adapter(transport, views, received, cfg, clock):
    a = SocialAdapter(transport, views, dispatch_event=received.append, cfg=cfg, clock=clock)
    a.start()
    yield a
    await a.close()


@pytest_asyncio.fixture
async def online(adapter, views, transport):
    """Adapter logged in as alice with the default room."""
    views.answer = auth()
    await asyncio.wait_for(adapter.login(), 2)
    await adapter.settle()
    return adapter
