# socialbridge/core/directory.py
import time
from dataclasses import replace
from typing import Callable, Dict, Optional, Tuple

from socialbridge.model import ContactRecord, Status

_FIELDS = ("client_id", "display_name", "status", "last_seen")


class ContactDirectory:
    """Every contact (and our own client) seen since login, keyed by user id."""

    def __init__(self, now: Callable[[], float] = time.time):
        self._now = now
        self._records: Dict[str, ContactRecord] = {}

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def now(self) -> float:
        return self._now()

    def upsert(self, user_id: str, **fields) -> Tuple[ContactRecord, bool]:
        unknown = set(fields) - set(_FIELDS)
        if unknown:
            raise TypeError(f"unknown contact fields: {sorted(unknown)}")
        ts = self._now()
        rec = self._records.get(user_id)
        created = rec is None
        if created:
            rec = ContactRecord(user_id=user_id, last_updated=ts)
            self._records[user_id] = rec
        for k, v in fields.items():
            if v is None:
                continue
            if k == "display_name" and not v:
                continue
            setattr(rec, k, v)
        rec.last_updated = ts
        return rec, created

    def touch(self, user_id: str) -> Optional[ContactRecord]:
        rec = self._records.get(user_id)
        if rec is None:
            return None
        ts = self._now()
        rec.last_seen = max(ts, rec.last_seen)
        rec.last_updated = ts
        return rec

    def get(self, user_id: str) -> Optional[ContactRecord]:
        return self._records.get(user_id)

    def status_of(self, user_id: str) -> Status:
        rec = self._records.get(user_id)
        return rec.status if rec else Status.UNKNOWN

    def all(self) -> Dict[str, ContactRecord]:
        return {k: replace(v) for k, v in self._records.items()}

    def reset(self) -> None:
        self._records.clear()
