"""In-memory registry of signed-in browser sessions."""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable

from .services.preferences import PreferencesController

logger = logging.getLogger(__name__)


@dataclass
class SessionEntry:
    controller: PreferencesController
    expires_at: float


class SessionStore:
    """Maps opaque cookie tokens to per-session preference controllers."""

    def __init__(self, ttl_seconds: int, *, clock: Callable[[], float] = time.time):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, SessionEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, controller: PreferencesController) -> str:
        self.prune()
        token = secrets.token_urlsafe(32)
        self._entries[token] = SessionEntry(
            controller=controller, expires_at=self._clock() + self._ttl
        )
        return token

    def get(self, token: str | None) -> PreferencesController | None:
        if not token:
            return None
        entry = self._entries.get(token)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self.pop(token)
            return None
        return entry.controller

    def pop(self, token: str | None) -> PreferencesController | None:
        if not token:
            return None
        entry = self._entries.pop(token, None)
        if entry is None:
            return None
        entry.controller.close()
        return entry.controller

    def prune(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            self.pop(key)
        if expired:
            logger.info("Pruned %s expired sessions", len(expired))

    def clear(self) -> None:
        for key in list(self._entries):
            self.pop(key)
