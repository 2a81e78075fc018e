import json
import queue
import socket
import threading

import pytest
from irc.client import Event, NickMask
from pubsub import pub

from socialbridge import transport as topics
from socialbridge.core.frames import (
    CapabilityReply, CapabilityRequest, OutboundMessage, PresenceAnnouncement, ProfileRequest, RosterRequest,
)
from socialbridge.irc_transport import MAX_LINE, IrcTransport, apply_frame, frame_for, split_batch
from socialbridge.model import DEFAULT_PORT, ConnectOptions

BOB = NickMask("bob!b@host.example.org")
SERVER = NickMask("irc.example.org")


# ---------- library events -> frames ----------

def test_registration_and_names():
    assert frame_for(Event("welcome", SERVER, "alice", ["Welcome to IRC"])) == \
        (topics.REGISTERED, {"nick": "alice"})
    assert frame_for(Event("namreply", SERVER, "alice", ["=", "#team", "@alice +bob carol"])) == \
        (topics.NAMES, {"channel": "#team", "names": ["@alice", "+bob", "carol"]})


def test_join_part_quit_become_presence():
    topic, frame = frame_for(Event("join", BOB, "#team", []))
    assert topic == topics.PRESENCE
    assert frame["user"] == "bob" and frame["available"] is True
    assert frame_for(Event("part", BOB, "#team", [])) == (topics.PRESENCE, {"user": "bob", "type": "unavailable"})
    assert frame_for(Event("quit", BOB, None, ["gone"])) == (topics.PRESENCE, {"user": "bob", "type": "unavailable"})


def test_privmsg_and_version_query():
    assert frame_for(Event("privmsg", BOB, "alice", ['["hi"]'])) == \
        (topics.MESSAGE, {"sender": "bob", "target": "alice", "body": '["hi"]'})
    assert frame_for(Event("ctcp", BOB, "alice", ["VERSION"])) == (topics.CAPABILITIES, {"sender": "bob"})
    assert frame_for(Event("ctcp", BOB, "alice", ["PING", "123"])) is None
    assert frame_for(Event("pubmsg", BOB, "#team", ["hello room"])) is None


def test_version_reply_carries_capability():
    reply = Event("ctcpreply", BOB, "alice", ["VERSION", "socialbridge 0.1.0 urn:x urn:y"])
    assert frame_for(reply) == (topics.PRESENCE, {"user": "bob", "available": True, "capability": "urn:x urn:y"})

    other = frame_for(Event("ctcpreply", BOB, "alice", ["VERSION", "irssi v1.4"]))
    assert other[1]["capability"] == "irssi v1.4"
    assert frame_for(Event("ctcpreply", BOB, "alice", ["VERSION"]))[1]["capability"] == "unknown"


def test_whois_and_errors():
    whois = Event("whoisuser", SERVER, "alice", ["bob", "b", "host", "*", "\x02Bob\x02 Builder"])
    assert frame_for(whois) == (topics.PROFILE, {"user": "bob", "display_name": "Bob Builder"})
    assert frame_for(Event("nicknameinuse", SERVER, "*", ["alice", "Nickname is already in use"]))[0] == \
        topics.DISCONNECTED
    assert frame_for(Event("error", SERVER, "Closing link", [])) == (topics.DISCONNECTED, {"reason": "Closing link"})
    assert frame_for(Event("motd", SERVER, "alice", ["- hello"])) is None


# ---------- frames -> library calls ----------

class Recorder:
    """Stands in for ``irc.client.ServerConnection``."""

    def __init__(self):
        self.calls = []

    def __getattr__(self, name):
        return lambda *args: self.calls.append((name, *args))


def test_apply_frames():
    conn = Recorder()
    apply_frame(conn, OutboundMessage(to="bob", body='["a"]', kind="normal"))
    apply_frame(conn, PresenceAnnouncement(unavailable=True))
    apply_frame(conn, PresenceAnnouncement(show="xa", capability="urn:x"))
    apply_frame(conn, PresenceAnnouncement())
    apply_frame(conn, RosterRequest(channel="#team"))
    apply_frame(conn, RosterRequest())
    apply_frame(conn, ProfileRequest(user="bob"))
    apply_frame(conn, CapabilityRequest(user="bob"))
    apply_frame(conn, CapabilityReply(to="bob", name="socialbridge", version="0.1.0", features=("urn:x",)))
    assert conn.calls == [
        ("privmsg", "bob", '["a"]'),
        ("away", "offline"),
        ("away", "xa"),
        ("away", ""),
        ("names", ["#team"]),
        ("whois", "bob"),
        ("ctcp", "VERSION", "bob"),
        ("ctcp_reply", "bob", "VERSION socialbridge 0.1.0 urn:x"),
    ]


def test_apply_rejects_unknown_frames():
    with pytest.raises(TypeError):
        apply_frame(Recorder(), "PRIVMSG bob :raw")


def test_long_batch_is_split_into_lines_that_fit():
    items = [f"message number {i} with some padding to make it long" for i in range(20)]
    conn = Recorder()
    apply_frame(conn, OutboundMessage(to="bob", body=json.dumps(items)))

    assert len(conn.calls) > 1
    delivered = []
    for name, to, body in conn.calls:
        assert name == "privmsg" and to == "bob"
        assert len(f"PRIVMSG {to} :{body}\r\n".encode("utf-8")) <= MAX_LINE
        delivered.extend(json.loads(body))
    assert delivered == items


def test_oversized_item_is_dropped_alone(caplog):
    bodies = split_batch("bob", json.dumps(["before", "x" * 600, "after"]))
    assert [json.loads(b) for b in bodies] == [["before"], ["after"]]
    assert "too long for one line" in caplog.text


def test_short_batch_is_sent_untouched():
    assert split_batch("bob", '["hi"]') == ['["hi"]']


# ---------- connecting ----------

def test_default_port_is_rejected():
    t = IrcTransport(connect_factory=lambda addr: pytest.fail("should not dial"))
    with pytest.raises(ValueError):
        t.connect(ConnectOptions(nick="alice", user="alice", server="irc.example.org", port=DEFAULT_PORT))
    with pytest.raises(ValueError):
        t.connect(ConnectOptions(nick="alice", user="alice", server="", port=6667))


class Collector:
    """pypubsub listener that hands frames to the test thread."""

    def __init__(self, *names):
        self.names = names
        self.q = queue.Queue()

    def on_frame(self, interface, frame, topic=pub.AUTO_TOPIC):
        self.q.put((interface, topic.getName(), frame))

    def __enter__(self):
        for name in self.names:
            pub.subscribe(self.on_frame, name)
        return self

    def __exit__(self, *exc):
        for name in self.names:
            pub.unsubscribe(self.on_frame, name)

    def next(self, timeout=2.0):
        return self.q.get(timeout=timeout)


OPTIONS = ConnectOptions(nick="alice", user="alice", server="irc.example.org", port=6667)


def test_connection_round_trip():
    server, client = socket.socketpair()
    server.settimeout(2.0)
    lines = server.makefile("r", encoding="utf-8", newline="\r\n")

    def read():
        return lines.readline().rstrip("\r\n")

    with Collector(topics.REGISTERED, topics.MESSAGE, topics.PRESENCE) as seen:
        conn = IrcTransport(connect_factory=lambda addr: client).connect(OPTIONS)
        conn.join("#team")  # may be queued until registration is sent
        try:
            assert read() == "NICK alice"
            assert read().startswith("USER alice ")
            assert read() == "JOIN #team"

            server.sendall(
                b":irc.example.org 001 alice :Welcome\r\n"
                b"PING :tok\r\n"
                b":bob!b@h PRIVMSG alice :[1]\r\n"
                b":bob!b@h NOTICE alice :\x01VERSION socialbridge 0.1.0 urn:x\x01\r\n"
            )
            assert seen.next() == (conn, topics.REGISTERED, {"nick": "alice"})
            pong = read()
            assert pong.startswith("PONG") and "tok" in pong
            assert seen.next() == (conn, topics.MESSAGE, {"sender": "bob", "target": "alice", "body": "[1]"})
            assert seen.next() == (conn, topics.PRESENCE, {"user": "bob", "available": True, "capability": "urn:x"})

            conn.send(CapabilityRequest(user="bob"))
            assert read() == "PRIVMSG bob :\x01VERSION\x01"
            conn.send(OutboundMessage(to="bob", body='["x"]'))
            assert read() == 'PRIVMSG bob :["x"]'

            conn.disconnect()
            assert read().startswith("QUIT")
        finally:
            conn.disconnect()
            server.close()


def test_failed_dial_publishes_disconnected():
    def refuse(addr):
        raise ConnectionRefusedError("refused")

    with Collector(topics.DISCONNECTED) as seen:
        conn = IrcTransport(connect_factory=refuse).connect(OPTIONS)
        interface, topic, frame = seen.next()
    assert interface is conn
    assert "refused" in frame["reason"]


def test_disconnect_during_dial_never_registers():
    server, client = socket.socketpair()
    server.settimeout(2.0)
    dialing, release = threading.Event(), threading.Event()

    def slow_dial(addr):
        dialing.set()
        release.wait(2.0)
        return client

    with Collector(topics.DISCONNECTED) as seen:
        conn = IrcTransport(connect_factory=slow_dial).connect(OPTIONS)
        assert dialing.wait(2.0)
        conn.disconnect()
        release.set()
        conn._thr.join(2.0)

        assert server.recv(64) == b""  # closed without NICK/USER
        with pytest.raises(queue.Empty):
            seen.next(timeout=0.3)
    server.close()
