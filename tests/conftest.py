"""Pytest configuration and test helpers."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import httpx
import pytest


# Make ``app`` importable without an editable install; it sits at the project
# root next to ``tests``.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


SAVED_FEEDS_TYPE = "app.bsky.actor.defs#savedFeedsPrefV2"


class FakePds:
    """In-memory stand-in for the XRPC endpoints the helper calls."""

    def __init__(self, preferences: list[dict[str, Any]] | None = None) -> None:
        self.preferences: list[dict[str, Any]] = preferences or []
        self.requests: list[httpx.Request] = []
        self.put_bodies: list[dict[str, Any]] = []
        self.fail_get_after_put = False
        self.fail_put = False
        self.fail_get = False
        self.reject_login = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        nsid = request.url.path.rsplit("/", 1)[-1]
        if nsid == "com.atproto.server.createSession":
            if self.reject_login:
                return httpx.Response(
                    401,
                    json={"error": "AuthenticationRequired", "message": "Invalid identifier or password"},
                )
            return httpx.Response(
                200,
                json={
                    "did": "did:plc:alice",
                    "handle": "alice.test",
                    "accessJwt": "access-token",
                    "refreshJwt": "refresh-token",
                    "didDoc": {
                        "id": "did:plc:alice",
                        "service": [
                            {
                                "id": "#atproto_pds",
                                "type": "AtprotoPersonalDataServer",
                                "serviceEndpoint": "https://pds.example.com",
                            }
                        ],
                    },
                },
            )
        if nsid == "com.atproto.server.deleteSession":
            return httpx.Response(200)
        if nsid == "app.bsky.actor.getPreferences":
            if self.fail_get or (self.fail_get_after_put and self.put_bodies):
                return httpx.Response(
                    500, json={"error": "InternalServerError", "message": "Upstream unavailable"}
                )
            return httpx.Response(200, json={"preferences": self.preferences})
        if nsid == "app.bsky.actor.putPreferences":
            if self.fail_put:
                return httpx.Response(400, json={"error": "InvalidRequest"})
            body = json.loads(request.content)
            self.put_bodies.append(body)
            self.preferences = body["preferences"]
            return httpx.Response(200)
        return httpx.Response(404, json={"error": "MethodNotImplemented"})

    def saved_feeds(self) -> list[dict[str, Any]] | None:
        for entry in self.preferences:
            if entry.get("$type") == SAVED_FEEDS_TYPE:
                return entry["items"]
        return None


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def corrupted_preferences() -> list[dict[str, Any]]:
    return [
        {"$type": "app.bsky.actor.defs#adultContentPref", "enabled": False},
        {
            "$type": SAVED_FEEDS_TYPE,
            "items": [
                {
                    "id": "a1b2c3d4-e5f6-47a8-89b0-c1d2e3f4a5b6",
                    "type": "feed",
                    "value": "at://did:plc:x/app.bsky.feed.generator/x",
                    "pinned": True,
                    "name": "X",
                },
                {
                    "id": "3jzfcijpj2l2a",
                    "type": "timeline",
                    "value": "following",
                    "pinned": True,
                    "name": "Y",
                },
            ],
        },
        {"$type": "app.bsky.actor.defs#threadViewPref", "sort": "oldest"},
    ]


@pytest.fixture
def fake_pds(corrupted_preferences: list[dict[str, Any]]) -> FakePds:
    return FakePds(corrupted_preferences)


@pytest.fixture
def pds_factory() -> type[FakePds]:
    return FakePds
