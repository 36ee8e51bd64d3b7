"""Timestamp identifiers (TIDs) used as saved-feed record keys.

A TID packs a 53-bit microsecond timestamp and a 10-bit clock identifier into a
64-bit integer (top bit always zero) and renders it as 13 characters of the
sortable base32 alphabet, so lexical order matches numeric order.
"""

from __future__ import annotations

import secrets
import threading
import time
from typing import Callable

from .utils import is_tid

S32_ALPHABET = "234567abcdefghijklmnopqrstuvwxyz"
TID_LENGTH = 13

_TIMESTAMP_BITS = 53
_CLOCK_ID_BITS = 10
_MAX_TIMESTAMP = (1 << _TIMESTAMP_BITS) - 1
_MAX_CLOCK_ID = (1 << _CLOCK_ID_BITS) - 1


def encode_tid(timestamp_us: int, clock_id: int) -> str:
    """Return the TID string for a microsecond timestamp and clock id."""

    if not 0 <= timestamp_us <= _MAX_TIMESTAMP:
        raise ValueError("TID timestamp out of range")
    if not 0 <= clock_id <= _MAX_CLOCK_ID:
        raise ValueError("TID clock id out of range")
    value = (timestamp_us << _CLOCK_ID_BITS) | clock_id
    chars: list[str] = []
    for _ in range(TID_LENGTH):
        chars.append(S32_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def decode_tid(tid: str) -> tuple[int, int]:
    """Return ``(timestamp_us, clock_id)`` for a TID string."""

    if not is_tid(tid):
        raise ValueError(f"Invalid TID: {tid!r}")
    value = 0
    for char in tid:
        value = (value << 5) | S32_ALPHABET.index(char)
    return value >> _CLOCK_ID_BITS, value & _MAX_CLOCK_ID


def _now_us() -> int:
    return time.time_ns() // 1_000


class TidGenerator:
    """Produce strictly increasing TIDs, even when the clock stalls or steps back."""

    def __init__(
        self,
        *,
        clock: Callable[[], int] = _now_us,
        clock_id: int | None = None,
    ) -> None:
        self._clock = clock
        self._clock_id = secrets.randbelow(32) if clock_id is None else clock_id
        self._last_timestamp = 0
        self._lock = threading.Lock()

    @property
    def clock_id(self) -> int:
        return self._clock_id

    def next(self) -> str:
        with self._lock:
            timestamp = max(self._clock(), self._last_timestamp + 1)
            self._last_timestamp = timestamp
        return encode_tid(timestamp, self._clock_id)

    __call__ = next


_default_generator = TidGenerator()


def next_tid() -> str:
    """Return the next TID from the process-wide generator."""

    return _default_generator.next()
