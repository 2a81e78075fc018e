# socialbridge/core/classifier.py
"""Turns transport frames into typed events and applies them to a session.

``classify`` is the only place that looks at topic names and frame keys;
everything after it works on the event dataclasses in ``core.events``.
"""
import json
import logging
from dataclasses import replace
from typing import Any, Mapping

from socialbridge.core import events
from socialbridge.core.frames import CapabilityReply, CapabilityRequest
from socialbridge.model import Status

logger = logging.getLogger(__name__)

_NICK_PREFIXES = "~&@%+"


def _kind(topic: str) -> str:
    return topic.rsplit(".", 1)[-1] if topic else ""


def _text(frame: Mapping[str, Any], key: str) -> str:
    v = frame.get(key)
    if not isinstance(v, str) or not v:
        raise ValueError(f"missing {key!r}")
    return v


def classify(topic: str, frame: Any) -> events.InboundEvent:
    if not isinstance(frame, Mapping):
        return events.Unrecognized(topic=topic, reason="frame is not a mapping")
    kind = _kind(topic)
    try:
        if kind == "registered":
            return events.Registered(nick=_text(frame, "nick"))
        if kind == "names":
            names = frame.get("names")
            if isinstance(names, str):
                names = names.split()
            if not isinstance(names, (list, tuple)):
                raise ValueError("missing 'names'")
            cleaned = tuple(n.lstrip(_NICK_PREFIXES) for n in names if isinstance(n, str) and n.lstrip(_NICK_PREFIXES))
            return events.Names(channel=str(frame.get("channel") or ""), names=cleaned)
        if kind == "presence":
            return events.Presence(
                user=_text(frame, "user"),
                available=frame.get("type") != "unavailable" and frame.get("available", True) is not False,
                show=frame.get("show") or None,
                capability=frame.get("capability") or None,
            )
        if kind == "message":
            body = frame.get("body")
            if not isinstance(body, str):
                raise ValueError("missing 'body'")
            return events.PrivateMessage(sender=_text(frame, "sender"), target=_text(frame, "target"), body=body)
        if kind == "capabilities":
            return events.CapabilityQuery(sender=_text(frame, "sender"))
        if kind == "profile":
            return events.Profile(user=_text(frame, "user"), display_name=str(frame.get("display_name") or ""))
        if kind == "disconnected":
            return events.Disconnected(reason=str(frame.get("reason") or ""))
    except ValueError as e:
        return events.Unrecognized(topic=topic, frame=dict(frame), reason=str(e))
    return events.Unrecognized(topic=topic, frame=dict(frame), reason="unknown kind")


# ---------- routing ----------

def apply_event(session, ev: events.InboundEvent) -> None:
    if isinstance(ev, events.Registered):
        session.on_registered(ev.nick)
    elif isinstance(ev, events.Names):
        _on_names(session, ev)
    elif isinstance(ev, events.Presence):
        _on_presence(session, ev)
    elif isinstance(ev, events.PrivateMessage):
        _on_private_message(session, ev)
    elif isinstance(ev, events.CapabilityQuery):
        _on_capability_query(session, ev)
    elif isinstance(ev, events.Profile):
        _on_profile(session, ev)
    elif isinstance(ev, events.Disconnected):
        session.on_disconnected(ev.reason)
    elif isinstance(ev, events.Unrecognized):
        logger.warning("dropped unrecognized frame on %s (%s): %r", ev.topic, ev.reason, dict(ev.frame))
    else:
        logger.warning("dropped unknown event %r", ev)


def _announce(session, record) -> None:
    session.dispatch(events.ClientStateChanged(record=replace(record)))


def _ask_capabilities(session, user: str) -> None:
    if session.online and user != session.self_id:
        session.send_frame(CapabilityRequest(user=user))


def _on_names(session, ev: events.Names) -> None:
    for name in ev.names:
        if name in session.directory:
            session.directory.upsert(name)
            continue
        rec, _ = session.directory.upsert(name, status=Status.ONLINE)
        _announce(session, rec)
        _ask_capabilities(session, name)


def presence_status(ev: events.Presence, own_capability) -> Status:
    if not ev.available:
        return Status.OFFLINE
    # the marker may be one of several space separated features
    if own_capability and own_capability in (ev.capability or "").split():
        return Status.ONLINE
    return Status.ONLINE_WITH_OTHER_APP


def _on_presence(session, ev: events.Presence) -> None:
    status = presence_status(ev, session.options.url)
    if ev.user == session.self_id and status is not Status.OFFLINE:
        # our own echo; we advertise ourselves as ONLINE
        status = Status.ONLINE
    rec, _ = session.directory.upsert(ev.user, status=status, last_seen=session.directory.now())
    _announce(session, rec)
    if ev.available and ev.capability is None:
        _ask_capabilities(session, ev.user)


def _on_private_message(session, ev: events.PrivateMessage) -> None:
    me = session.self_id
    if me is None or ev.target != me:
        logger.warning("ignoring message from %s to %s, not addressed to %s", ev.sender, ev.target, me)
        return
    if ev.sender not in session.directory:
        # TODO: roster delivery can race the first message from a new peer;
        # buffer frames from unseen senders until the roster settles.
        logger.warning("dropping message from unknown sender %s", ev.sender)
        return
    try:
        batch = json.loads(ev.body)
    except ValueError as e:
        logger.warning("dropping malformed message from %s: %s", ev.sender, e)
        return
    if not isinstance(batch, list):
        logger.warning("dropping message from %s: expected a list, got %s", ev.sender, type(batch).__name__)
        return

    sender = session.directory.touch(ev.sender)
    own = session.directory.get(me)
    for item in batch:
        session.dispatch(events.MessageReceived(
            from_=replace(sender),
            to=replace(own) if own else None,
            message=item,
        ))


def _on_capability_query(session, ev: events.CapabilityQuery) -> None:
    session.directory.touch(ev.sender)
    opts = session.options
    features = (opts.url,) if opts.url else ()
    session.send_frame(CapabilityReply(to=ev.sender, name=opts.agent, version=opts.version, features=features))


def _on_profile(session, ev: events.Profile) -> None:
    rec, created = session.directory.upsert(ev.user, display_name=ev.display_name or None)
    if created:
        _announce(session, rec)
    session.dispatch(events.UserProfileChanged(record=replace(rec)))
