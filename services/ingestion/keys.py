"""Store key generation for uploaded blobs."""

from __future__ import annotations

import re
import time
from typing import Callable

_WHITESPACE = re.compile(r"\s+")

KEY_PREFIX = "images"


def sanitize_filename(filename: str) -> str:
    """Replace each run of whitespace with a single hyphen."""
    return _WHITESPACE.sub("-", filename)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class KeyGenerator:
    """Build `images/<timestamp>-<filename>` keys from a monotonic millisecond clock.

    The clock is injectable so tests can pin timestamps. If the clock
    returns a value at or below the last one handed out (same millisecond,
    or the wall clock stepped back) the timestamp is bumped past it, so two
    keys from one generator never share a timestamp.
    """

    def __init__(self, clock: Callable[[], int] = _now_ms, prefix: str = KEY_PREFIX) -> None:
        self._clock = clock
        self._prefix = prefix.strip("/")
        self._last = -1

    def next_timestamp(self) -> int:
        stamp = int(self._clock())
        if stamp <= self._last:
            stamp = self._last + 1
        self._last = stamp
        return stamp

    def next_key(self, filename: str) -> str:
        return f"{self._prefix}/{self.next_timestamp()}-{sanitize_filename(filename)}"
