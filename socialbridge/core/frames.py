# socialbridge/core/frames.py
# Outbound frames handed to TransportHandle.send(); the transport encodes them.
from dataclasses import dataclass
from typing import Optional, Tuple, Union

@dataclass(frozen=True)
class OutboundMessage:
    to: str
    body: str
    kind: str = "chat"   # "normal" only reaches peers running this app

@dataclass(frozen=True)
class PresenceAnnouncement:
    show: Optional[str] = None
    capability: Optional[str] = None
    version: Optional[str] = None
    unavailable: bool = False

@dataclass(frozen=True)
class RosterRequest:
    channel: Optional[str] = None

@dataclass(frozen=True)
class ProfileRequest:
    user: str

@dataclass(frozen=True)
class CapabilityRequest:
    user: str

@dataclass(frozen=True)
class CapabilityReply:
    to: str
    name: str
    version: str
    features: Tuple[str, ...] = ()

Frame = Union[OutboundMessage, PresenceAnnouncement, RosterRequest, ProfileRequest,
              CapabilityRequest, CapabilityReply]
