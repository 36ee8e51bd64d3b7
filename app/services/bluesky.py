"""Utilities for communicating with a Bluesky PDS over XRPC."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import httpx

from ..config import Settings
from ..models import (
    SAVED_FEEDS_V2_TYPE,
    BlueskySession,
    PreferenceDocument,
    SavedFeedEntry,
)

logger = logging.getLogger(__name__)


class BlueskyAPIError(Exception):
    """Raised when an XRPC call is rejected by the server."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error


class BlueskyClient:
    """Thin wrapper around the XRPC endpoints the helper depends on."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    def _headers(self, token: str | None = None) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": f"{self._settings.app_name} (bskyprefs)",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _xrpc_url(service: str, nsid: str) -> str:
        return f"{service.rstrip('/')}/xrpc/{nsid}"

    async def create_session(self, identifier: str, password: str) -> BlueskySession:
        """Exchange an identifier and app password for an authenticated session."""

        url = self._xrpc_url(self._settings.service_url, "com.atproto.server.createSession")
        response = await self._client.post(
            url,
            json={"identifier": identifier, "password": password},
            headers=self._headers(),
        )
        data = self._raise_for_error(response, "Sign in was rejected")
        service = self._pds_endpoint(data.get("didDoc")) or self._settings.service_url
        session = BlueskySession.from_payload(data, service=service)
        logger.info("Created session for %s on %s", session.handle, session.service)
        return session

    async def delete_session(self, session: BlueskySession) -> None:
        """Revoke the session on the server. Uses the refresh token as bearer."""

        url = self._xrpc_url(session.service, "com.atproto.server.deleteSession")
        response = await self._client.post(
            url, headers=self._headers(session.refresh_jwt)
        )
        self._raise_for_error(response, "Failed to end the session")

    async def get_raw_preferences(self, session: BlueskySession) -> list[dict[str, Any]]:
        url = self._xrpc_url(session.service, "app.bsky.actor.getPreferences")
        response = await self._client.get(url, headers=self._headers(session.access_jwt))
        data = self._raise_for_error(response, "Failed to fetch preferences")
        preferences = data.get("preferences")
        if not isinstance(preferences, list):
            raise BlueskyAPIError(
                "Preferences response is missing the preferences list",
                status_code=response.status_code,
            )
        return [entry for entry in preferences if isinstance(entry, dict)]

    async def get_preferences(self, session: BlueskySession) -> PreferenceDocument:
        """Fetch the full preference document for the session's account."""

        preferences = await self.get_raw_preferences(session)
        return PreferenceDocument.from_preferences(preferences)

    async def put_preferences(
        self, session: BlueskySession, preferences: Sequence[Mapping[str, Any]]
    ) -> None:
        """Replace the complete preference list on the server."""

        url = self._xrpc_url(session.service, "app.bsky.actor.putPreferences")
        response = await self._client.post(
            url,
            json={"preferences": [dict(entry) for entry in preferences]},
            headers=self._headers(session.access_jwt),
        )
        self._raise_for_error(response, "Failed to update preferences")

    async def overwrite_saved_feeds(
        self, session: BlueskySession, saved_feeds: Sequence[SavedFeedEntry]
    ) -> None:
        """Replace the whole ``savedFeeds`` list, leaving other preferences as-is."""

        items: list[dict[str, Any]] = []
        for entry in saved_feeds:
            if not isinstance(entry, Mapping):
                raise ValueError("Saved feed entries must be objects")
            items.append(dict(entry))

        current = await self.get_raw_preferences(session)
        # Duplicate records collapse into the last one, which is the one read back.
        positions = [
            index
            for index, entry in enumerate(current)
            if entry.get("$type") == SAVED_FEEDS_V2_TYPE
        ]
        updated: list[dict[str, Any]] = []
        for index, entry in enumerate(current):
            if index in positions:
                if index == positions[-1]:
                    updated.append({**entry, "items": items})
                continue
            updated.append(entry)
        if not positions:
            updated.append({"$type": SAVED_FEEDS_V2_TYPE, "items": items})

        await self.put_preferences(session, updated)
        logger.info("Replaced %s saved feeds for %s", len(items), session.handle)

    @staticmethod
    def _pds_endpoint(did_doc: object) -> str | None:
        if not isinstance(did_doc, dict):
            return None
        services = did_doc.get("service")
        if not isinstance(services, list):
            return None
        for service in services:
            if not isinstance(service, dict):
                continue
            if str(service.get("id", "")).endswith("#atproto_pds"):
                endpoint = service.get("serviceEndpoint")
                if isinstance(endpoint, str) and endpoint.strip():
                    return endpoint.strip().rstrip("/")
        return None

    @staticmethod
    def _response_json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        if isinstance(data, dict):
            return data
        return {}

    @classmethod
    def _raise_for_error(cls, response: httpx.Response, fallback: str) -> dict[str, Any]:
        data = cls._response_json(response)
        if response.status_code < 400:
            return data
        error = data.get("error")
        message = data.get("message") or error
        if not message:
            message = f"{fallback} (HTTP {response.status_code})"
        logger.warning(
            "XRPC call %s failed with %s: %s",
            response.request.url.path,
            response.status_code,
            message,
        )
        raise BlueskyAPIError(
            str(message),
            status_code=response.status_code,
            error=str(error) if error else None,
        )
