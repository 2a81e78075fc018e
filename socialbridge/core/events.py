# socialbridge/core/events.py
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple, Union

from socialbridge.model import ContactRecord

# ---------- inbound: what the transport told us ----------

@dataclass(frozen=True)
class Registered:
    nick: str

@dataclass(frozen=True)
class Names:
    channel: str
    names: Tuple[str, ...]

@dataclass(frozen=True)
class Presence:
    user: str
    available: bool = True
    show: Optional[str] = None
    capability: Optional[str] = None

@dataclass(frozen=True)
class PrivateMessage:
    sender: str
    target: str
    body: str

@dataclass(frozen=True)
class CapabilityQuery:
    sender: str

@dataclass(frozen=True)
class Profile:
    user: str
    display_name: str

@dataclass(frozen=True)
class Disconnected:
    reason: str = ""

@dataclass(frozen=True)
class Unrecognized:
    topic: str
    frame: Mapping[str, Any] = field(default_factory=dict)
    reason: str = ""

InboundEvent = Union[Registered, Names, Presence, PrivateMessage,
                     CapabilityQuery, Profile, Disconnected, Unrecognized]

# ---------- normalized: what the outer application sees ----------

@dataclass(frozen=True)
class ClientStateChanged:
    record: ContactRecord

@dataclass(frozen=True)
class UserProfileChanged:
    record: ContactRecord

@dataclass(frozen=True)
class MessageReceived:
    from_: ContactRecord
    to: Optional[ContactRecord]
    message: Any

AppEvent = Union[ClientStateChanged, UserProfileChanged, MessageReceived]
