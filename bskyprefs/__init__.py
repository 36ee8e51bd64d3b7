"""Bluesky preferences helper: inspect, repair and export account preferences."""

from __future__ import annotations

from app.main import app, create_app
from app.services.preferences import (
    FetchFailure,
    RepairFailure,
    has_corrupted_saved_feeds,
)

__version__ = "1.0.0"

__all__ = [
    "FetchFailure",
    "RepairFailure",
    "__version__",
    "app",
    "create_app",
    "has_corrupted_saved_feeds",
]
