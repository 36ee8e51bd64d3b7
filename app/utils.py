"""Utility helpers for the Bluesky preferences helper."""

from __future__ import annotations

import json
import re
from typing import Any, Literal


TID_RE = re.compile(r"^[234567abcdefghij][234567abcdefghijklmnopqrstuvwxyz]{12}$")
GENERIC_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

IdentifierKind = Literal["tid", "uuid", "unknown"]


def is_tid(value: object) -> bool:
    """Return whether ``value`` is a sortable record key (TID)."""

    return isinstance(value, str) and TID_RE.match(value) is not None


def is_generic_uuid(value: object) -> bool:
    """Return whether ``value`` looks like an 8-4-4-4-12 hex identifier."""

    return isinstance(value, str) and GENERIC_UUID_RE.match(value) is not None


def classify_identifier(value: object) -> IdentifierKind:
    if is_tid(value):
        return "tid"
    if is_generic_uuid(value):
        return "uuid"
    return "unknown"


def error_message(exc: BaseException | None, fallback: str) -> str:
    """Reduce an exception to a human-readable message."""

    if exc is None:
        return fallback
    message = str(exc).strip()
    return message or fallback


def dump_pretty_json(payload: Any) -> str:
    """Serialise ``payload`` with two-space indentation, preserving key order."""

    return json.dumps(payload, indent=2, ensure_ascii=False)
