"""
Data models for Hobbs Tracker.

PURPOSE: Type-safe dataclasses representing core domain entities.
AI CONTEXT: These models define the data schema for planes, devices and sessions.

MODEL HIERARCHY:
- Plane: Aircraft owned by one user (has many Devices)
- Device: Telemetry unit keyed by its token; optionally owned, optionally on a Plane
- Session: One engine-on to engine-off interval reported by a Device
- Actor: The identity performing a request (never persisted)

OWNERSHIP:
Plane and Device carry a user_id. Session is owned transitively through its
Device. A Device with no user_id is an orphan, the normal state after first
telemetry contact.

SERIALIZATION:
All persisted models have to_dict() for JSON persistence and from_dict() for
loading. Timestamps use ISO 8601 format with UTC timezone.

USAGE:
    plane = Plane.create("user-1", "N12345", model="172S", manufacturer="Cessna")
    device = Device.orphan("550e8400-e29b-41d4-a716-446655440000")
    session = Session.open(device.device_uuid, "2026-01-01T10:00:00+00:00", "msg-1")
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

__all__ = [
    "Actor",
    "Device",
    "DeviceState",
    "Plane",
    "Session",
    "SessionStatus",
    "now_iso",
    "parse_timestamp",
]


def now_iso() -> str:
    """
    Get current UTC time as ISO 8601 formatted string.

    Used for all created/updated/last-seen timestamps so that every record
    sorts and parses the same way.

    Returns:
        ISO 8601 formatted datetime string, e.g. '2026-10-18T10:30:00+00:00'.

    Example:
        >>> ts = now_iso()
        >>> '+00:00' in ts
        True
    """
    return datetime.now(UTC).isoformat()


def parse_timestamp(value: str | None) -> datetime | None:
    """
    Parse an ISO 8601 timestamp, tolerating a 'Z' suffix and naive values.

    Naive timestamps are assumed to be UTC. Invalid or empty input returns
    None rather than raising so that one malformed row cannot break a
    listing.

    Args:
        value: ISO 8601 string or None.

    Returns:
        Timezone-aware datetime, or None if value is missing or unparseable.

    Example:
        >>> parse_timestamp('2026-01-01T10:00:00Z').hour
        10
        >>> parse_timestamp('not a date') is None
        True
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class SessionStatus(str, Enum):
    """Lifecycle status of a flight session."""

    OPEN = "open"
    CLOSED = "closed"


class DeviceState(str, Enum):
    """
    Assignment state derived from a device's owner and plane references.

    STATES:
    - orphan: no owner, no plane
    - owned: owner set, no plane
    - assigned: owner set, plane set
    """

    ORPHAN = "orphan"
    OWNED = "owned"
    ASSIGNED = "assigned"


@dataclass(frozen=True)
class Actor:
    """
    Identity performing an operation.

    Built once per request by the access policy gate and passed explicitly
    to every service call. is_admin comes from the identity oracle, never
    from a Plane/Device/Session record.
    """

    user_id: str
    email: str | None = None
    is_admin: bool = False


@dataclass
class Plane:
    """
    Aircraft registered by an owner.

    CONSTRAINTS:
    - tail_number is required and unique per owner
    - deleting a plane unassigns (never deletes) its devices
    """

    id: str
    user_id: str
    tail_number: str
    model: str | None = None
    manufacturer: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def create(
        cls,
        user_id: str,
        tail_number: str,
        model: str | None = None,
        manufacturer: str | None = None,
    ) -> Plane:
        """
        Factory method to create a new plane with generated ID and timestamps.

        Optional text fields are stripped and stored as None when blank.

        Args:
            user_id: Owning user.
            tail_number: Aircraft registration (e.g., 'N12345').
            model: Optional model name (e.g., '172S').
            manufacturer: Optional manufacturer (e.g., 'Cessna').

        Returns:
            New Plane instance.

        Example:
            >>> plane = Plane.create('user-1', ' N12345 ')
            >>> plane.tail_number
            'N12345'
        """
        timestamp = now_iso()
        return cls(
            id=str(uuid.uuid4()),
            user_id=user_id,
            tail_number=tail_number.strip(),
            model=_clean_optional(model),
            manufacturer=_clean_optional(manufacturer),
            created_at=timestamp,
            updated_at=timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize plane to dictionary for JSON storage."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "tail_number": self.tail_number,
            "model": self.model,
            "manufacturer": self.manufacturer,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Plane:
        """
        Deserialize plane from dictionary.

        Raises:
            KeyError: If 'id', 'user_id' or 'tail_number' is missing.
        """
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            tail_number=data["tail_number"],
            model=data.get("model"),
            manufacturer=data.get("manufacturer"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class Device:
    """
    Telemetry device mounted on an aircraft.

    IDENTITY:
    device_uuid is the primary key. There is no surrogate id.

    INVARIANTS:
    - plane_id, if set, references a plane owned by user_id
    - user_id None implies plane_id None

    JOINED DATA:
    plane holds the referenced Plane only when the gateway was asked to
    include it. It is never persisted and is None both for "no plane" and
    "not loaded"; check plane_id to tell them apart.
    """

    device_uuid: str
    user_id: str | None = None
    plane_id: str | None = None
    name: str | None = None
    created_at: str = ""
    updated_at: str = ""
    last_seen: str | None = None
    plane: Plane | None = field(default=None, compare=False, repr=False)

    @classmethod
    def orphan(cls, device_uuid: str, seen_at: str | None = None) -> Device:
        """
        Create the record produced on a device's first telemetry contact.

        Args:
            device_uuid: Device token.
            seen_at: Contact time. Defaults to now.

        Returns:
            Device with no owner and no plane.

        Example:
            >>> Device.orphan('abc').state
            <DeviceState.ORPHAN: 'orphan'>
        """
        timestamp = now_iso()
        return cls(
            device_uuid=device_uuid,
            created_at=timestamp,
            updated_at=timestamp,
            last_seen=seen_at or timestamp,
        )

    @property
    def state(self) -> DeviceState:
        """Current position in the assignment state machine."""
        if self.user_id is None:
            return DeviceState.ORPHAN
        if self.plane_id is None:
            return DeviceState.OWNED
        return DeviceState.ASSIGNED

    @property
    def short_token(self) -> str:
        """First eight characters of the token, for compact display."""
        return self.device_uuid[:8]

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize device to dictionary for JSON storage.

        The joined plane is deliberately left out: only plane_id is stored.
        """
        return {
            "device_uuid": self.device_uuid,
            "user_id": self.user_id,
            "plane_id": self.plane_id,
            "name": self.name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "last_seen": self.last_seen,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Device:
        """
        Deserialize device from dictionary.

        Raises:
            KeyError: If 'device_uuid' is missing.
        """
        return cls(
            device_uuid=data["device_uuid"],
            user_id=data.get("user_id"),
            plane_id=data.get("plane_id"),
            name=data.get("name"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            last_seen=data.get("last_seen"),
        )


@dataclass
class Session:
    """
    One continuous engine-run interval reported by a device.

    LIFECYCLE:
    1. Opened by the first report for (device_uuid, session_start)
    2. run_seconds grows with each report, never shrinks
    3. Closed by a closing report or by the owner; run_seconds is then final

    DEDUPLICATION:
    msg_id is the idempotency token of the last report applied to this row;
    msg_ids keeps every token applied so far, so a replay of any earlier
    report is recognised.
    """

    id: str
    device_uuid: str
    session_start: str
    run_seconds: int = 0
    last_update: str | None = None
    status: SessionStatus = SessionStatus.OPEN
    msg_id: str = ""
    msg_ids: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def open(
        cls,
        device_uuid: str,
        session_start: str,
        msg_id: str,
        run_seconds: int = 0,
        last_update: str | None = None,
    ) -> Session:
        """
        Factory method to create a new open session.

        Args:
            device_uuid: Reporting device.
            session_start: Engine-on time as reported by the device.
            msg_id: Idempotency token of the opening report.
            run_seconds: Run time already accumulated at the first report.
            last_update: Time of the opening report.

        Returns:
            New open Session with a generated id.
        """
        timestamp = now_iso()
        return cls(
            id=str(uuid.uuid4()),
            device_uuid=device_uuid,
            session_start=session_start,
            run_seconds=max(0, int(run_seconds)),
            last_update=last_update,
            status=SessionStatus.OPEN,
            msg_id=msg_id,
            msg_ids=[msg_id],
            created_at=timestamp,
            updated_at=timestamp,
        )

    @property
    def is_open(self) -> bool:
        """True while the session still accumulates run time."""
        return self.status is SessionStatus.OPEN

    @property
    def is_closed(self) -> bool:
        """True once run_seconds is final."""
        return self.status is SessionStatus.CLOSED

    @property
    def started_at(self) -> datetime | None:
        """session_start parsed to a datetime, None if malformed."""
        return parse_timestamp(self.session_start)

    def to_dict(self) -> dict[str, Any]:
        """Serialize session to dictionary for JSON storage."""
        return {
            "id": self.id,
            "device_uuid": self.device_uuid,
            "session_start": self.session_start,
            "run_seconds": self.run_seconds,
            "last_update": self.last_update,
            "status": self.status.value,
            "msg_id": self.msg_id,
            "msg_ids": list(self.msg_ids),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        """
        Deserialize session from dictionary.

        Raises:
            KeyError: If 'id', 'device_uuid' or 'session_start' is missing.
            ValueError: If 'status' is not 'open' or 'closed'.
        """
        msg_id = data.get("msg_id", "")
        return cls(
            id=data["id"],
            device_uuid=data["device_uuid"],
            session_start=data["session_start"],
            run_seconds=int(data.get("run_seconds") or 0),
            last_update=data.get("last_update"),
            status=SessionStatus(data.get("status", SessionStatus.OPEN.value)),
            msg_id=msg_id,
            msg_ids=list(data.get("msg_ids") or ([msg_id] if msg_id else [])),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


def _clean_optional(value: str | None) -> str | None:
    """Strip a free-text field, mapping blank to None."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
