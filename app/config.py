"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_EXPORT_FILENAME = "bluesky-preferences.json"


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Bluesky Preferences Helper", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    bsky_service_url: HttpUrl = Field(
        default="https://bsky.social", alias="BSKY_SERVICE_URL"
    )
    http_timeout_seconds: float = Field(
        default=20.0, alias="HTTP_TIMEOUT", ge=1, le=120
    )

    session_ttl_seconds: int = Field(default=86_400, alias="SESSION_TTL", ge=300)
    session_cookie_name: str = Field(
        default="bskyprefs_session", alias="SESSION_COOKIE_NAME"
    )

    export_filename: str = Field(
        default=DEFAULT_EXPORT_FILENAME, alias="EXPORT_FILENAME"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("export_filename", mode="before")
    @classmethod
    def _parse_export_filename(cls, value: object) -> str:
        """Reject export names that are not plain ``.json`` file names."""

        if value is None:
            return DEFAULT_EXPORT_FILENAME
        name = str(value).strip()
        if not name:
            return DEFAULT_EXPORT_FILENAME
        if "/" in name or "\\" in name:
            raise ValueError("EXPORT_FILENAME must be a bare file name")
        if not name.lower().endswith(".json"):
            raise ValueError("EXPORT_FILENAME must end with .json")
        return name

    @field_validator("session_cookie_name", mode="before")
    @classmethod
    def _strip_cookie_name(cls, value: object) -> str:
        name = str(value or "").strip()
        if not name:
            raise ValueError("SESSION_COOKIE_NAME may not be empty")
        return name

    @property
    def service_url(self) -> str:
        """Return the entryway URL without a trailing slash."""

        return str(self.bsky_service_url).rstrip("/")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
