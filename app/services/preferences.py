"""Fetch, inspect, repair and export a Bluesky account's preferences."""

from __future__ import annotations

import enum
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

import httpx

from ..config import DEFAULT_EXPORT_FILENAME
from ..models import BlueskySession, ExportArtifact, PreferenceDocument, SavedFeedEntry
from ..tid import next_tid
from ..utils import classify_identifier, dump_pretty_json, error_message, is_generic_uuid
from .bluesky import BlueskyAPIError, BlueskyClient

logger = logging.getLogger(__name__)

FETCH_FALLBACK_MESSAGE = "Failed to fetch preferences"
REPAIR_FALLBACK_MESSAGE = "Failed to repair saved feeds"

IdFactory = Callable[[], str]


class PreferencesError(Exception):
    """Base class for failures surfaced to the preferences page."""

    fallback_message = "Preferences operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.fallback_message)

    @property
    def message(self) -> str:
        return str(self)


class FetchFailure(PreferencesError):
    fallback_message = FETCH_FALLBACK_MESSAGE


class RepairFailure(PreferencesError):
    fallback_message = REPAIR_FALLBACK_MESSAGE


_REMOTE_ERRORS = (BlueskyAPIError, httpx.HTTPError, httpx.InvalidURL, ValueError)


async def fetch_preferences(
    client: BlueskyClient, session: BlueskySession
) -> PreferenceDocument:
    """Fetch the current preference document. Makes exactly one attempt."""

    try:
        document = await client.get_preferences(session)
    except _REMOTE_ERRORS as exc:
        logger.warning("Failed to fetch preferences for %s: %s", session.handle, exc)
        raise FetchFailure(error_message(exc, FETCH_FALLBACK_MESSAGE)) from exc
    logger.info(
        "Fetched %s preference records for %s", len(document.raw), session.handle
    )
    return document


def has_corrupted_saved_feeds(document: PreferenceDocument | None) -> bool:
    """Return whether any saved feed is keyed by a generic UUID."""

    if document is None:
        return False
    saved_feeds = document.saved_feeds
    if not saved_feeds:
        return False
    return any(_is_corrupted(entry) for entry in saved_feeds)


def _is_corrupted(entry: Any) -> bool:
    return isinstance(entry, dict) and is_generic_uuid(entry.get("id"))


@dataclass(slots=True)
class SavedFeedsSummary:
    total: int = 0
    valid: int = 0
    corrupted: int = 0
    unknown: int = 0

    def to_payload(self) -> dict[str, int]:
        return {
            "total": self.total,
            "valid": self.valid,
            "corrupted": self.corrupted,
            "unknown": self.unknown,
        }


def summarize_saved_feeds(document: PreferenceDocument | None) -> SavedFeedsSummary:
    """Count saved feed ids by format."""

    summary = SavedFeedsSummary()
    if document is None or not document.saved_feeds:
        return summary
    for entry in document.saved_feeds:
        summary.total += 1
        kind = classify_identifier(entry.get("id") if isinstance(entry, dict) else None)
        if kind == "tid":
            summary.valid += 1
        elif kind == "uuid":
            summary.corrupted += 1
        else:
            summary.unknown += 1
    return summary


@dataclass(slots=True)
class RepairBatch:
    """Full saved feed list with corrupted ids replaced, in original order."""

    entries: list[SavedFeedEntry]
    replaced: dict[int, tuple[str, str]] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.replaced)


def rebuild_saved_feeds(
    saved_feeds: Sequence[SavedFeedEntry], next_id: IdFactory = next_tid
) -> RepairBatch:
    """Swap generic UUID ids for fresh TIDs; every other field passes through."""

    entries: list[SavedFeedEntry] = []
    replaced: dict[int, tuple[str, str]] = {}
    for index, entry in enumerate(saved_feeds):
        if _is_corrupted(entry):
            new_id = next_id()
            replaced[index] = (entry["id"], new_id)
            entries.append({**entry, "id": new_id})
        else:
            entries.append(entry)
    return RepairBatch(entries=entries, replaced=replaced)


async def repair_saved_feeds(
    client: BlueskyClient,
    session: BlueskySession,
    document: PreferenceDocument,
    next_id: IdFactory = next_tid,
) -> PreferenceDocument:
    """Replace the remote saved feeds with repaired ids and re-read the result.

    The returned document is whatever the server reports after the write; the
    locally rebuilt list is never treated as the final state.
    """

    if document.saved_feeds is None:
        raise RepairFailure("Preferences have no saved feeds to repair")

    batch = rebuild_saved_feeds(document.saved_feeds, next_id)
    logger.info(
        "Repairing %s of %s saved feeds for %s",
        len(batch.replaced),
        len(batch.entries),
        session.handle,
    )
    try:
        await client.overwrite_saved_feeds(session, batch.entries)
    except _REMOTE_ERRORS as exc:
        logger.warning("Saved feed replacement failed for %s: %s", session.handle, exc)
        raise RepairFailure(error_message(exc, REPAIR_FALLBACK_MESSAGE)) from exc

    try:
        refreshed = await client.get_preferences(session)
    except _REMOTE_ERRORS as exc:
        logger.warning(
            "Saved feeds replaced but re-fetch failed for %s: %s", session.handle, exc
        )
        raise RepairFailure(error_message(exc, REPAIR_FALLBACK_MESSAGE)) from exc

    if has_corrupted_saved_feeds(refreshed):
        logger.warning("Saved feeds for %s still contain UUID ids after repair", session.handle)
    return refreshed


def export_preferences(
    document: PreferenceDocument | None,
    *,
    filename: str = DEFAULT_EXPORT_FILENAME,
) -> ExportArtifact | None:
    """Serialise the loaded document for download, or ``None`` if nothing is loaded."""

    if document is None:
        return None
    return ExportArtifact(filename=filename, content=dump_pretty_json(document.groups))


def write_export(
    document: PreferenceDocument | None,
    directory: str | os.PathLike[str],
    *,
    filename: str = DEFAULT_EXPORT_FILENAME,
) -> Path | None:
    """Write the export file into ``directory`` and return its path."""

    artifact = export_preferences(document, filename=filename)
    if artifact is None:
        return None
    target_dir = Path(directory)
    target = target_dir / artifact.filename
    handle = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=target_dir,
        prefix=".bskyprefs-",
        suffix=".json.tmp",
        delete=False,
    )
    temp_path = Path(handle.name)
    try:
        with handle:
            handle.write(artifact.content)
        os.replace(temp_path, target)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return target


class RepairState(str, enum.Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"


class PreferencesController:
    """Holds the in-memory snapshot for one signed-in session.

    The snapshot is either absent, loading, or exactly what the server last
    returned. Repairs are single-flight: while one is running, further calls
    are ignored.
    """

    def __init__(
        self,
        client: BlueskyClient,
        session: BlueskySession,
        *,
        next_id: IdFactory = next_tid,
        export_filename: str = DEFAULT_EXPORT_FILENAME,
    ) -> None:
        self._client = client
        self._session = session
        self._next_id = next_id
        self._export_filename = export_filename
        self.document: PreferenceDocument | None = None
        self.error: str | None = None
        self.repair_error: str | None = None
        self.loading = False
        self.loaded = False
        self._repair_state = RepairState.IDLE
        self._generation = 0
        self._closed = False

    @property
    def session(self) -> BlueskySession:
        return self._session

    @property
    def repair_state(self) -> RepairState:
        return self._repair_state

    @property
    def busy(self) -> bool:
        return self._repair_state is RepairState.IN_PROGRESS

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def needs_repair(self) -> bool:
        return has_corrupted_saved_feeds(self.document)

    def close(self) -> None:
        """Detach from the session; results that arrive afterwards are dropped."""

        self._closed = True

    def _is_stale(self, generation: int, what: str) -> bool:
        if self._closed:
            logger.info("Dropping %s for closed session %s", what, self._session.handle)
            return True
        if generation != self._generation:
            logger.info("Dropping superseded %s for %s", what, self._session.handle)
            return True
        return False

    async def load(self) -> PreferenceDocument | None:
        """Fetch the document. On failure the snapshot is cleared and the error kept.

        A fetch that overlaps a repair, or is overtaken by a newer fetch, is
        discarded so an older read never replaces a newer snapshot.
        """

        generation = self._generation
        self.loading = True
        try:
            document = await fetch_preferences(self._client, self._session)
        except FetchFailure as exc:
            if self._is_stale(generation, "fetch failure"):
                return None
            self._generation += 1
            self.document = None
            self.error = exc.message
            return None
        finally:
            self.loading = False
            self.loaded = True
        if self._is_stale(generation, "fetch result"):
            return None
        self._generation += 1
        self.document = document
        self.error = None
        return document

    async def repair(self) -> bool:
        """Run one repair cycle. Returns ``False`` when ignored or failed."""

        if self.busy:
            logger.info("Repair already running for %s; ignoring request", self._session.handle)
            return False
        if self.document is None:
            logger.info("No preferences loaded for %s; nothing to repair", self._session.handle)
            return False

        self._repair_state = RepairState.IN_PROGRESS
        self._generation += 1
        self.repair_error = None
        try:
            refreshed = await repair_saved_feeds(
                self._client, self._session, self.document, self._next_id
            )
        except RepairFailure as exc:
            if not self._closed:
                self.repair_error = exc.message
            return False
        finally:
            self._repair_state = RepairState.IDLE

        if self._closed:
            logger.info("Dropping repair result for closed session %s", self._session.handle)
            return False
        self._generation += 1
        self.document = refreshed
        self.error = None
        return True

    def export(self) -> ExportArtifact | None:
        return export_preferences(self.document, filename=self._export_filename)

    def to_payload(self) -> dict[str, Any]:
        return {
            "handle": self._session.handle,
            "did": self._session.did,
            "loading": self.loading,
            "preferences": self.document.to_dict() if self.document else None,
            "savedFeeds": summarize_saved_feeds(self.document).to_payload(),
            "needsRepair": self.needs_repair,
            "repairing": self.busy,
            "error": self.error,
            "repairError": self.repair_error,
        }
