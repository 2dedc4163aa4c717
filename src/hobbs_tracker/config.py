"""
Configuration for Hobbs Tracker.

PURPOSE: Centralized configuration constants and runtime settings.
AI CONTEXT: All configurable values live here - modify this file to change behavior.

CONFIGURATION CATEGORIES:
- Storage: File paths and directory structure
- Reporting: Recent-activity size, token truncation, CSV layout
- Identity: Reverse-proxy header names carrying the authenticated user
- Web: Default dashboard bind address

ENVIRONMENT VARIABLES:
- HOBBS_STORAGE_DIR: Directory holding the JSON data files (default: .hobbs_tracker)
- HOBBS_USER_HEADER: Header carrying the authenticated user id (default: X-User-Id)
- HOBBS_EMAIL_HEADER: Header carrying the authenticated email (default: X-User-Email)

USAGE:
    from hobbs_tracker.config import Config
    storage_dir = Config.get_storage_dir()
    limit = Config.RECENT_SESSIONS_LIMIT
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class Config:
    """
    Immutable configuration container for Hobbs Tracker.

    DESIGN: Frozen dataclass ensures configuration immutability at runtime.
    All values are class-level constants - no instance creation needed.

    STORAGE STRUCTURE:
        .hobbs_tracker/
        ├── planes.json     # Plane registry {plane_id: plane}
        ├── devices.json    # Device registry {device_uuid: device}
        ├── sessions.json   # Session rows {session_id: session}
        └── users.json      # Identity mirror {user_id: {email, is_admin}}
    """

    # =========================================================================
    # STORAGE CONFIGURATION
    # =========================================================================
    STORAGE_DIR: ClassVar[str] = ".hobbs_tracker"
    PLANES_FILE: ClassVar[str] = "planes.json"
    DEVICES_FILE: ClassVar[str] = "devices.json"
    SESSIONS_FILE: ClassVar[str] = "sessions.json"
    USERS_FILE: ClassVar[str] = "users.json"

    # =========================================================================
    # REPORTING CONFIGURATION
    # =========================================================================
    RECENT_SESSIONS_LIMIT: ClassVar[int] = 10
    """Number of sessions shown in recent-activity panels."""

    TOKEN_DISPLAY_LENGTH: ClassVar[int] = 8
    """Characters of a device token shown when the device has no name."""

    NOT_APPLICABLE: ClassVar[str] = "N/A"
    UNKNOWN_DEVICE: ClassVar[str] = "Unknown Device"
    UNASSIGNED_PLANE: ClassVar[str] = "Not assigned"

    CSV_HEADERS: ClassVar[tuple[str, ...]] = (
        "Session Start",
        "Device",
        "Plane",
        "Duration",
        "Status",
        "Last Update",
    )
    EXPORT_FILENAME_TEMPLATE: ClassVar[str] = "sessions-{date}.csv"

    # =========================================================================
    # IDENTITY CONFIGURATION
    # =========================================================================
    USER_HEADER: ClassVar[str] = "X-User-Id"
    EMAIL_HEADER: ClassVar[str] = "X-User-Email"

    # =========================================================================
    # WEB CONFIGURATION
    # =========================================================================
    DEFAULT_HOST: ClassVar[str] = "127.0.0.1"
    DEFAULT_PORT: ClassVar[int] = 8000

    # =========================================================================
    # ENVIRONMENT-BASED SETTINGS (runtime configurable)
    # =========================================================================
    _storage_dir_override: ClassVar[str | None] = None

    @classmethod
    def get_storage_dir(cls) -> str:
        """
        Get the directory that holds the JSON data files.

        Uses a priority system: test override first, then the
        HOBBS_STORAGE_DIR environment variable, then STORAGE_DIR.

        Returns:
            Storage directory path (relative paths resolve against cwd).

        Example:
            >>> # With env var: HOBBS_STORAGE_DIR=/var/lib/hobbs
            >>> Config.get_storage_dir()
            '/var/lib/hobbs'
        """
        if cls._storage_dir_override is not None:
            return cls._storage_dir_override
        return os.environ.get("HOBBS_STORAGE_DIR", cls.STORAGE_DIR)

    @classmethod
    def get_user_header(cls) -> str:
        """Header name carrying the authenticated user id."""
        return os.environ.get("HOBBS_USER_HEADER", cls.USER_HEADER)

    @classmethod
    def get_email_header(cls) -> str:
        """Header name carrying the authenticated user's email."""
        return os.environ.get("HOBBS_EMAIL_HEADER", cls.EMAIL_HEADER)

    @classmethod
    def set_test_overrides(cls, storage_dir: str | None = None) -> None:
        """
        Set test overrides for environment-based settings.

        Must be paired with reset_test_overrides() in test teardown.

        Args:
            storage_dir: Override for the storage directory. None to clear.

        Example:
            >>> Config.set_test_overrides(storage_dir='/tmp/hobbs')
            >>> Config.get_storage_dir()
            '/tmp/hobbs'
            >>> Config.reset_test_overrides()
        """
        cls._storage_dir_override = storage_dir

    @classmethod
    def reset_test_overrides(cls) -> None:
        """Clear overrides set via set_test_overrides()."""
        cls._storage_dir_override = None

    @classmethod
    def export_filename(cls, export_date: str) -> str:
        """
        Build the CSV download name for an export date.

        Args:
            export_date: Date in YYYY-MM-DD form.

        Returns:
            File name such as 'sessions-2026-10-18.csv'.
        """
        return cls.EXPORT_FILENAME_TEMPLATE.format(date=export_date)
