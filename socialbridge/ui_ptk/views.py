# socialbridge/ui_ptk/views.py
import time
from typing import Iterable, Optional

from prompt_toolkit.formatted_text import FormattedText

from socialbridge.core import events
from socialbridge.model import STATUS_SYMBOL, ContactRecord, Status
from socialbridge.ui_ptk.text_sanitize import sanitize_text, short_name

_STATUS_STYLE = {
    Status.ONLINE: "ansigreen",
    Status.ONLINE_WITH_OTHER_APP: "ansicyan",
    Status.OFFLINE: "ansibrightblack",
    Status.UNKNOWN: "ansiyellow",
}

# -------- Formatting ------------------------------------------------------

def format_age(seconds: float) -> str:
    seconds = int(max(0, seconds))
    if seconds < 60: return f"{seconds}s"
    if seconds < 3600: return f"{seconds // 60}m"
    if seconds < 86400: return f"{seconds // 3600}h"
    if seconds < 604800: return f"{seconds // 86400}d"
    return f"{seconds // 604800}w"

def _payload_text(message) -> str:
    return sanitize_text(message if isinstance(message, str) else repr(message))

# -------- Views -----------------------------------------------------------

def contact_line(rec: ContactRecord, me: Optional[str] = None, now: Optional[float] = None) -> FormattedText:
    now = time.time() if now is None else now
    seen = format_age(now - rec.last_seen) if rec.last_seen else "-"
    name = short_name(rec.display_name or rec.user_id)
    suffix = " (you)" if me is not None and rec.user_id == me else ""
    return FormattedText([
        (_STATUS_STYLE.get(rec.status, ""), f"{STATUS_SYMBOL.get(rec.status, '?')} "),
        ("bold", f"{name:<15}"),
        ("", f" {rec.status.value:<22} seen {seen}{suffix}"),
    ])

def contact_lines(records: Iterable[ContactRecord], me: Optional[str] = None):
    ordered = sorted(records, key=lambda r: (r.status is not Status.ONLINE, r.user_id.lower()))
    return [contact_line(r, me) for r in ordered]

def event_line(ev) -> Optional[FormattedText]:
    if isinstance(ev, events.MessageReceived):
        return FormattedText([
            ("ansicyan", f"{short_name(ev.from_.display_name)}: "),
            ("", _payload_text(ev.message)),
        ])
    if isinstance(ev, events.ClientStateChanged):
        rec = ev.record
        return FormattedText([
            ("ansibrightblack", "* "),
            (_STATUS_STYLE.get(rec.status, ""), f"{short_name(rec.display_name)} is {rec.status.value.lower()}"),
        ])
    if isinstance(ev, events.UserProfileChanged):
        rec = ev.record
        return FormattedText([("ansibrightblack", f"* {rec.user_id} is {short_name(rec.display_name, 40)}")])
    return None
