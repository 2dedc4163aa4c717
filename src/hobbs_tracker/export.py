"""
CSV export for Hobbs Tracker.

PURPOSE: Serialize a filtered session list for spreadsheets and logbooks.
AI CONTEXT: Pure formatting; the caller filters and scopes the sessions.

FORMAT:
- Header: Session Start, Device, Plane, Duration, Status, Last Update
- Every field double-quoted (header included), comma separated, '\n' rows
- Device: device name, else the full token
- Plane: tail number of the device's plane, else 'N/A'
- Duration: '{H}h {M}m'
- Last Update: timestamp as stored, else 'N/A'

USAGE:
    content = sessions_to_csv(sessions, devices_by_token)
    filename = export_filename()
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime

from .config import Config
from .models import Device, Session
from .statistics import format_duration

__all__ = ["build_csv_row", "export_filename", "sessions_to_csv"]


def build_csv_row(session: Session, device: Device | None) -> list[str]:
    """
    Build the export cells for one session.

    Args:
        session: Session to export.
        device: The session's device with its plane joined, or None if the
            device no longer exists.

    Returns:
        Six cells in Config.CSV_HEADERS order.
    """
    device_label = device.name if device is not None and device.name else session.device_uuid
    plane = device.plane if device is not None else None
    return [
        session.session_start,
        device_label,
        plane.tail_number if plane is not None else Config.NOT_APPLICABLE,
        format_duration(session.run_seconds),
        session.status.value,
        session.last_update or Config.NOT_APPLICABLE,
    ]


def sessions_to_csv(sessions: Iterable[Session], devices: Mapping[str, Device]) -> str:
    """
    Render sessions as CSV text.

    Args:
        sessions: Sessions to export, in the order they should appear.
        devices: Devices by token, planes joined.

    Returns:
        CSV content: one header line plus one line per session.

    Example:
        >>> sessions_to_csv([], {})
        '"Session Start","Device","Plane","Duration","Status","Last Update"\\n'
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(Config.CSV_HEADERS)
    for session in sessions:
        writer.writerow(build_csv_row(session, devices.get(session.device_uuid)))
    return buffer.getvalue()


def export_filename(export_date: date | None = None) -> str:
    """
    Download name for an export, dated today (UTC) unless given.

    Example:
        >>> export_filename(date(2026, 10, 18))
        'sessions-2026-10-18.csv'
    """
    export_date = export_date or datetime.now(UTC).date()
    return Config.export_filename(export_date.isoformat())
