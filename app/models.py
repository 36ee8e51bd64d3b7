"""Models describing sessions and preference payloads."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

SavedFeedEntry = dict[str, Any]

PREFERENCE_TYPE_PREFIX = "app.bsky.actor.defs#"
SAVED_FEEDS_V2_TYPE = f"{PREFERENCE_TYPE_PREFIX}savedFeedsPrefV2"

# Group names exposed by the document for the known preference records.
GROUP_NAMES: dict[str, str] = {
    f"{PREFERENCE_TYPE_PREFIX}adultContentPref": "adultContent",
    f"{PREFERENCE_TYPE_PREFIX}contentLabelPref": "contentLabels",
    f"{PREFERENCE_TYPE_PREFIX}savedFeedsPref": "feeds",
    SAVED_FEEDS_V2_TYPE: "savedFeeds",
    f"{PREFERENCE_TYPE_PREFIX}personalDetailsPref": "personalDetails",
    f"{PREFERENCE_TYPE_PREFIX}feedViewPref": "feedViewPrefs",
    f"{PREFERENCE_TYPE_PREFIX}threadViewPref": "threadViewPrefs",
    f"{PREFERENCE_TYPE_PREFIX}interestsPref": "interests",
    f"{PREFERENCE_TYPE_PREFIX}mutedWordsPref": "mutedWords",
    f"{PREFERENCE_TYPE_PREFIX}hiddenPostsPref": "hiddenPosts",
    f"{PREFERENCE_TYPE_PREFIX}labelersPref": "labelers",
    f"{PREFERENCE_TYPE_PREFIX}bskyAppStatePref": "bskyAppState",
    f"{PREFERENCE_TYPE_PREFIX}postInteractionSettingsPref": "postInteractionSettings",
    f"{PREFERENCE_TYPE_PREFIX}verificationPrefs": "verificationPrefs",
}
REPEATABLE_GROUPS = frozenset({"contentLabels", "feedViewPrefs"})


def group_name_for(record_type: str) -> str:
    """Return the document group name for a preference ``$type``."""

    known = GROUP_NAMES.get(record_type)
    if known:
        return known
    _, _, fragment = record_type.rpartition("#")
    return fragment or record_type


@dataclass(slots=True)
class BlueskySession:
    """Authenticated handle returned by ``com.atproto.server.createSession``."""

    did: str
    handle: str
    access_jwt: str = field(repr=False)
    refresh_jwt: str = field(repr=False)
    service: str

    @classmethod
    def from_payload(cls, data: Mapping[str, Any], *, service: str) -> "BlueskySession":
        try:
            return cls(
                did=str(data["did"]),
                handle=str(data["handle"]),
                access_jwt=str(data["accessJwt"]),
                refresh_jwt=str(data["refreshJwt"]),
                service=service.rstrip("/"),
            )
        except KeyError as exc:
            raise ValueError(f"Session response is missing {exc.args[0]}") from exc


@dataclass(frozen=True)
class PreferenceDocument:
    """Snapshot of the account preferences exactly as the server returned them."""

    raw: list[dict[str, Any]]
    groups: dict[str, Any]
    fetched_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), compare=False
    )

    @classmethod
    def from_preferences(cls, preferences: list[Any]) -> "PreferenceDocument":
        raw = [copy.deepcopy(entry) for entry in preferences if isinstance(entry, dict)]
        groups: dict[str, Any] = {}
        for entry in raw:
            record_type = entry.get("$type")
            if not isinstance(record_type, str) or not record_type:
                continue
            name = group_name_for(record_type)
            if record_type == SAVED_FEEDS_V2_TYPE:
                items = entry.get("items")
                payload: Any = copy.deepcopy(items) if isinstance(items, list) else []
            else:
                payload = {
                    key: copy.deepcopy(value)
                    for key, value in entry.items()
                    if key != "$type"
                }
            if name in REPEATABLE_GROUPS:
                groups.setdefault(name, []).append(payload)
            else:
                groups[name] = payload
        return cls(raw=raw, groups=groups)

    @property
    def saved_feeds(self) -> list[SavedFeedEntry] | None:
        """Return the V2 saved feed entries, or ``None`` when the group is absent."""

        value = self.groups.get("savedFeeds")
        if isinstance(value, list):
            return value
        return None

    def to_dict(self) -> dict[str, Any]:
        """Return a detached copy of the grouped preferences."""

        return copy.deepcopy(self.groups)


class LoginRequest(BaseModel):
    """Credentials submitted by the sign-in form."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    identifier: str = Field(min_length=1, max_length=253)
    password: str = Field(min_length=1, alias="appPassword")

    @field_validator("identifier")
    @classmethod
    def _strip_handle_prefix(cls, value: str) -> str:
        cleaned = value.lstrip("@")
        if not cleaned:
            raise ValueError("identifier may not be empty")
        return cleaned


@dataclass(slots=True)
class ExportArtifact:
    """Serialised preferences ready to be offered as a download."""

    filename: str
    content: str
    media_type: str = "application/json"

    @property
    def data(self) -> bytes:
        return self.content.encode("utf-8")
