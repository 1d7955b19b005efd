"""Record identifiers and millisecond timestamps."""

from __future__ import annotations

import time
import uuid

_last_ms = 0


def generate_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    """Milliseconds since the epoch, strictly increasing within the process."""
    global _last_ms
    current = int(time.time() * 1000)
    if current <= _last_ms:
        current = _last_ms + 1
    _last_ms = current
    return current
