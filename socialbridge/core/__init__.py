# socialbridge/core/__init__.py
from . import events  # re-export
from .bus import Bus
from .directory import ContactDirectory
from .session import Session

__all__ = ["events", "Bus", "ContactDirectory", "Session"]
