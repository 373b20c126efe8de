import os
import re
import secrets
import time
from datetime import datetime, timezone
from typing import Optional

from .errors import INVALID_ID, bad_request


_OBJECT_ID_RE = re.compile(r"^[0-9a-f]{24}$")


def object_id() -> str:
    """12-byte id rendered as 24 hex chars: 4 bytes of epoch seconds followed by 8 random bytes."""
    return f"{int(time.time()) & 0xFFFFFFFF:08x}{secrets.token_hex(8)}"


def is_object_id(value: Optional[str]) -> bool:
    return bool(value) and bool(_OBJECT_ID_RE.match(value.lower()))


def ensure_id(value: Optional[str]) -> str:
    if not is_object_id(value):
        raise bad_request(INVALID_ID)
    return value.lower()


def now_ms() -> int:
    return int(time.time() * 1000)


def to_millis(dt: Optional[datetime]) -> Optional[int]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def file_extension(filename: Optional[str]) -> Optional[str]:
    if not filename:
        return None
    ext = os.path.splitext(os.path.basename(filename))[1].lstrip(".").lower()
    return ext or None
