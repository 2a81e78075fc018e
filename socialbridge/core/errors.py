# socialbridge/core/errors.py
from __future__ import annotations
from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    LOGIN_FAILEDCONNECTION = "Error connecting to the server"
    LOGIN_BADCREDENTIALS   = "Error authenticating with the server"
    OFFLINE                = "User is currently offline"
    UNKNOWN                = "Unknown error"


class SocialError(Exception):
    """Error completing a social command; carries an ``errcode``."""

    def __init__(self, errcode: ErrorCode, message: Optional[str] = None):
        self.errcode = errcode
        self.message = message or errcode.value
        super().__init__(f"{errcode.name}: {self.message}")

    def to_dict(self) -> dict:
        return {"errcode": self.errcode.name, "message": self.message}
