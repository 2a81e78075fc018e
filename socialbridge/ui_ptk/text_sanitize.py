# socialbridge/ui_ptk/text_sanitize.py
import re

# Pre-compile the regex for efficiency
ANSI_ESCAPE_PATTERN = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')
# mIRC colour codes (\x03 with optional fg,bg digits) and the other formatting toggles
IRC_FORMAT_PATTERN = re.compile(r'\x03(?:\d{1,2}(?:,\d{1,2})?)?|[\x02\x0f\x11\x16\x1d\x1e\x1f]')
CONTROL_CHARS_PATTERN = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

def sanitize_text(text: str) -> str:
    if not isinstance(text, str):
        return ""

    sanitized = ANSI_ESCAPE_PATTERN.sub('', text)
    sanitized = IRC_FORMAT_PATTERN.sub('', sanitized)
    sanitized = CONTROL_CHARS_PATTERN.sub('', sanitized)
    return sanitized.replace('\r', '')

def short_name(name: str, width: int = 15) -> str:
    name = sanitize_text(name)
    if len(name) > width:
        return name[:width - 3] + "..."
    return name
