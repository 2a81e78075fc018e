# socialbridge/model.py
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional
import time

# Private, out-of-range port: an empty port field must not reach a real server.
DEFAULT_PORT = 66667

class Status(Enum):
    ONLINE                = "ONLINE"                 # same app on the other side
    ONLINE_WITH_OTHER_APP = "ONLINE_WITH_OTHER_APP"
    OFFLINE               = "OFFLINE"
    UNKNOWN               = "UNKNOWN"

STATUS_SYMBOL = {
    Status.ONLINE:                "●",
    Status.ONLINE_WITH_OTHER_APP: "○",
    Status.OFFLINE:               "·",
    Status.UNKNOWN:               "?",
}

@dataclass
class ContactRecord:
    user_id: str
    client_id: str = ""
    display_name: str = ""
    status: Status = Status.UNKNOWN
    last_seen: float = 0.0
    last_updated: float = field(default_factory=time.time)

    def __post_init__(self):
        # IRC has no multi-device concept
        if not self.client_id:
            self.client_id = self.user_id
        if not self.display_name:
            self.display_name = self.user_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "clientId": self.client_id,
            "name": self.display_name,
            "status": self.status.value,
            "lastSeen": self.last_seen,
            "lastUpdated": self.last_updated,
        }

@dataclass(frozen=True)
class Credentials:
    user_id: str
    host: str
    port: int = DEFAULT_PORT
    room: Optional[str] = None

    @staticmethod
    def from_message(message: Any, default_port: int = DEFAULT_PORT) -> Optional["Credentials"]:
        """Build credentials from a view's ``auth`` payload.

        Returns None when the payload is unusable (no user id or host). An
        absent or empty port falls back to ``default_port``.
        """
        if not isinstance(message, Mapping):
            return None
        user_id = str(message.get("userId") or "").strip()
        host = str(message.get("host") or "").strip()
        if not user_id or not host:
            return None
        port = message.get("port")
        if port is None or str(port).strip() == "":
            port = default_port
        try:
            port = int(str(port).strip())
        except ValueError:
            return None
        room = message.get("room") or None
        return Credentials(user_id=user_id, host=host, port=port, room=room)

@dataclass(frozen=True)
class LoginOptions:
    agent: str = "socialbridge"
    version: str = "0.1.0"
    url: str = "https://github.com/socialbridge/socialbridge"
    room: Optional[str] = None

@dataclass(frozen=True)
class ConnectOptions:
    nick: str
    user: str
    server: str
    port: int
    realname: str = "-"
