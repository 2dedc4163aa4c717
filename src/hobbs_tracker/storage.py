"""
Storage management for Hobbs Tracker.

PURPOSE: Persistence gateway for planes, devices, sessions and the user directory.
AI CONTEXT: All persistence operations go through this module.

STORAGE STRUCTURE:
    .hobbs_tracker/
    ├── planes.json     # Dict: plane_id -> plane
    ├── devices.json    # Dict: device_uuid -> device
    ├── sessions.json   # Dict: session_id -> session
    └── users.json      # Dict: user_id -> {email, is_admin}

ERROR HANDLING STRATEGY:
- File not found: Return empty structure
- JSON corruption or I/O error: Log error, raise GatewayFailureError
- Malformed row (missing key, bad status): Log error, raise GatewayFailureError
- Write failure: Log error, raise GatewayFailureError, data file untouched
- Never retries; the caller decides what to do with a failure

ATOMICITY:
Every write goes to '<file>.tmp' and is moved into place with replace().
Plane deletion touches two files; if the second write fails the first one
is restored before the error propagates.

USAGE:
    # Production
    storage = StorageManager()

    # Testing with MockFileSystem
    storage = StorageManager(storage_dir="/test", filesystem=mock_fs)
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

from .config import Config
from .errors import GatewayFailureError, NotFoundError, ValidationFailureError
from .filesystem import RealFileSystem
from .models import Device, Plane, Session, SessionStatus, now_iso

if TYPE_CHECKING:
    from .filesystem import FileSystem

__all__ = ["StorageManager"]

logger = logging.getLogger(__name__)

DEVICE_UPDATABLE_FIELDS = frozenset({"user_id", "plane_id", "name"})
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_T = TypeVar("_T")


class StorageManager:
    """
    JSON-file persistence gateway.

    DESIGN PRINCIPLES:
    1. Typed: Public queries return model instances, never raw dicts
    2. Loud: Read/write failures raise GatewayFailureError with the cause kept
    3. Atomic: A failed write leaves the previous file content in place
    4. Testable: FileSystem can be injected for mocking

    INITIALIZATION:
    Creates the directory and empty JSON files if missing. Initialization
    problems are logged, not raised; the first real read or write reports
    them as gateway failures.

    THREAD SAFETY:
    Not thread-safe. Each request reads a fresh snapshot; the last writer
    wins on concurrent mutations.
    """

    def __init__(
        self,
        storage_dir: str | None = None,
        filesystem: FileSystem | None = None,
    ) -> None:
        """
        Initialize storage with directory structure.

        Args:
            storage_dir: Custom storage path. Default: Config.get_storage_dir()
            filesystem: FileSystem implementation. Default: RealFileSystem
        """
        self.storage_dir = storage_dir or Config.get_storage_dir()
        self._fs: FileSystem = filesystem or RealFileSystem()
        self.planes_file = os.path.join(self.storage_dir, Config.PLANES_FILE)
        self.devices_file = os.path.join(self.storage_dir, Config.DEVICES_FILE)
        self.sessions_file = os.path.join(self.storage_dir, Config.SESSIONS_FILE)
        self.users_file = os.path.join(self.storage_dir, Config.USERS_FILE)

        self._initialize_storage()

    def _initialize_storage(self) -> None:
        """Create directory structure and empty data files."""
        try:
            self._fs.makedirs(self.storage_dir, exist_ok=True)
            for path in (self.planes_file, self.devices_file, self.sessions_file, self.users_file):
                if not self._fs.exists(path):
                    self._write_json(path, {})
            logger.info(f"Storage initialized: {self.storage_dir}")
        except (OSError, GatewayFailureError) as e:
            logger.error(f"Failed to initialize storage: {e}")

    def _read_json(self, file_path: str, default: Any) -> Any:
        """
        Read JSON file.

        Args:
            file_path: Path to JSON file
            default: Value returned when the file does not exist

        Returns:
            Parsed JSON data, or default for a missing file.

        Raises:
            GatewayFailureError: If the file is unreadable or not valid JSON.
        """
        try:
            content = self._fs.read_text(file_path)
            return json.loads(content)
        except FileNotFoundError:
            return default
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in {file_path}: {e}")
            raise GatewayFailureError(f"Invalid JSON in {file_path}: {e}") from e
        except OSError as e:
            logger.error(f"Error reading {file_path}: {e}")
            raise GatewayFailureError(f"Error reading {file_path}: {e}") from e

    def _write_json(self, file_path: str, data: Any) -> None:
        """
        Write JSON file atomically.

        FORMATTING:
        - 2-space indent for readability
        - default=str for datetime/custom types

        Raises:
            GatewayFailureError: If the temporary write or the replace fails.
        """
        tmp_path = f"{file_path}.tmp"
        try:
            content = json.dumps(data, indent=2, default=str)
            self._fs.write_text(tmp_path, content)
            self._fs.replace(tmp_path, file_path)
        except OSError as e:
            logger.error(f"Error writing {file_path}: {e}")
            raise GatewayFailureError(f"Error writing {file_path}: {e}") from e

    # =========================================================================
    # RAW COLLECTIONS
    # =========================================================================

    def load_planes(self) -> dict[str, dict[str, Any]]:
        """Load all plane rows keyed by plane id."""
        result: dict[str, dict[str, Any]] = self._read_json(self.planes_file, {})
        return result

    def save_planes(self, planes: dict[str, dict[str, Any]]) -> None:
        """Replace all plane rows."""
        self._write_json(self.planes_file, planes)

    def load_devices(self) -> dict[str, dict[str, Any]]:
        """Load all device rows keyed by device token."""
        result: dict[str, dict[str, Any]] = self._read_json(self.devices_file, {})
        return result

    def save_devices(self, devices: dict[str, dict[str, Any]]) -> None:
        """Replace all device rows."""
        self._write_json(self.devices_file, devices)

    def load_sessions(self) -> dict[str, dict[str, Any]]:
        """Load all session rows keyed by session id."""
        result: dict[str, dict[str, Any]] = self._read_json(self.sessions_file, {})
        return result

    def save_sessions(self, sessions: dict[str, dict[str, Any]]) -> None:
        """Replace all session rows."""
        self._write_json(self.sessions_file, sessions)

    def load_users(self) -> dict[str, dict[str, Any]]:
        """Load the user directory mirror keyed by user id."""
        result: dict[str, dict[str, Any]] = self._read_json(self.users_file, {})
        return result

    def save_users(self, users: dict[str, dict[str, Any]]) -> None:
        """Replace the user directory mirror."""
        self._write_json(self.users_file, users)

    # =========================================================================
    # PLANE OPERATIONS
    # =========================================================================

    def get_planes_for_owner(self, owner_id: str) -> list[Plane]:
        """
        Get an owner's planes ordered by tail number.

        Args:
            owner_id: Owning user id.

        Returns:
            Planes owned by owner_id, sorted case-insensitively by tail number.
        """
        planes = [
            _hydrate(Plane.from_dict, data, self.planes_file)
            for data in self.load_planes().values()
            if data.get("user_id") == owner_id
        ]
        return sorted(planes, key=lambda p: p.tail_number.casefold())

    def get_plane(self, plane_id: str) -> Plane | None:
        """
        Get single plane by ID.

        Returns:
            Plane or None if not found.
        """
        data = self.load_planes().get(plane_id)
        return _hydrate(Plane.from_dict, data, self.planes_file) if data else None

    def create_plane(self, plane: Plane) -> Plane:
        """
        Insert a new plane.

        Raises:
            ValidationFailureError: If a plane with the same id exists, or
                the owner already has a plane with this tail number.
            GatewayFailureError: If the write fails.
        """
        planes = self.load_planes()
        if plane.id in planes:
            raise ValidationFailureError(f"Plane already exists: {plane.id}")
        _check_tail_number_free(planes, plane)
        planes[plane.id] = plane.to_dict()
        self.save_planes(planes)
        return plane

    def update_plane(self, plane: Plane) -> Plane:
        """
        Overwrite an existing plane, refreshing updated_at.

        Raises:
            NotFoundError: If the plane does not exist.
            ValidationFailureError: If the new tail number collides with
                another plane of the same owner.
            GatewayFailureError: If the write fails.
        """
        planes = self.load_planes()
        if plane.id not in planes:
            raise NotFoundError(f"Plane not found: {plane.id}")
        _check_tail_number_free(planes, plane)
        plane.updated_at = now_iso()
        planes[plane.id] = plane.to_dict()
        self.save_planes(planes)
        return plane

    def delete_plane(self, plane_id: str) -> list[str]:
        """
        Delete a plane and unassign every device that referenced it.

        Devices keep their owner, so they move to the owned state. If the
        plane file write fails after devices were unassigned, the device
        file is restored before the error is re-raised.

        Args:
            plane_id: Plane to delete.

        Returns:
            Tokens of the devices that were unassigned.

        Raises:
            NotFoundError: If the plane does not exist.
            GatewayFailureError: If either write fails.
        """
        planes = self.load_planes()
        if plane_id not in planes:
            raise NotFoundError(f"Plane not found: {plane_id}")

        previous_devices = self.load_devices()
        devices = {token: dict(data) for token, data in previous_devices.items()}
        unassigned: list[str] = []
        timestamp = now_iso()
        for token, data in devices.items():
            if data.get("plane_id") == plane_id:
                data["plane_id"] = None
                data["updated_at"] = timestamp
                unassigned.append(token)

        if unassigned:
            self.save_devices(devices)

        del planes[plane_id]
        try:
            self.save_planes(planes)
        except GatewayFailureError:
            if unassigned:
                logger.warning(f"Restoring {len(unassigned)} device(s) after failed plane delete")
                self.save_devices(previous_devices)
            raise

        return unassigned

    # =========================================================================
    # DEVICE OPERATIONS
    # =========================================================================

    def _hydrate_devices(
        self, rows: Iterable[dict[str, Any]], include_plane: bool
    ) -> list[Device]:
        """Build Device models, attaching the joined Plane when asked to."""
        devices = [_hydrate(Device.from_dict, data, self.devices_file) for data in rows]
        if include_plane:
            planes = self.load_planes()
            for device in devices:
                if device.plane_id and device.plane_id in planes:
                    device.plane = _hydrate(
                        Plane.from_dict, planes[device.plane_id], self.planes_file
                    )
        return devices

    def get_devices_for_owner(self, owner_id: str, include_plane: bool = False) -> list[Device]:
        """
        Get an owner's devices, newest first.

        Args:
            owner_id: Owning user id.
            include_plane: Attach the referenced Plane to each device.

        Returns:
            Devices owned by owner_id ordered by created_at descending.
        """
        rows = [d for d in self.load_devices().values() if d.get("user_id") == owner_id]
        devices = self._hydrate_devices(rows, include_plane)
        return sorted(devices, key=lambda d: d.created_at, reverse=True)

    def get_all_devices(self, include_plane: bool = False) -> list[Device]:
        """
        Get every device in the system, newest first.

        Gate this behind the administrator check; the gateway itself does
        not know who is asking.
        """
        devices = self._hydrate_devices(self.load_devices().values(), include_plane)
        return sorted(devices, key=lambda d: d.created_at, reverse=True)

    def get_device(self, device_uuid: str, include_plane: bool = False) -> Device | None:
        """
        Get single device by token.

        Returns:
            Device or None if not found.
        """
        data = self.load_devices().get(device_uuid)
        if not data:
            return None
        return self._hydrate_devices([data], include_plane)[0]

    def save_device(self, device: Device) -> Device:
        """
        Insert or overwrite a device row, refreshing updated_at.

        Raises:
            GatewayFailureError: If the write fails.
        """
        devices = self.load_devices()
        device.updated_at = now_iso()
        devices[device.device_uuid] = device.to_dict()
        self.save_devices(devices)
        return device

    def update_device(self, device_uuid: str, changes: dict[str, Any]) -> Device:
        """
        Apply owner/plane/name changes to a device.

        Args:
            device_uuid: Device token.
            changes: Subset of {'user_id', 'plane_id', 'name'}.

        Returns:
            The updated Device.

        Raises:
            ValidationFailureError: If changes contains any other key.
            NotFoundError: If the device does not exist.
            GatewayFailureError: If the write fails.
        """
        unknown = set(changes) - DEVICE_UPDATABLE_FIELDS
        if unknown:
            raise ValidationFailureError(f"Unknown device fields: {', '.join(sorted(unknown))}")

        devices = self.load_devices()
        if device_uuid not in devices:
            raise NotFoundError(f"Device not found: {device_uuid}")
        data = dict(devices[device_uuid])
        data.update(changes)
        data["updated_at"] = now_iso()
        devices[device_uuid] = data
        self.save_devices(devices)
        return _hydrate(Device.from_dict, data, self.devices_file)

    def delete_device(self, device_uuid: str) -> None:
        """
        Delete a device. Its sessions are kept.

        Raises:
            NotFoundError: If the device does not exist.
            GatewayFailureError: If the write fails.
        """
        devices = self.load_devices()
        if device_uuid not in devices:
            raise NotFoundError(f"Device not found: {device_uuid}")
        del devices[device_uuid]
        self.save_devices(devices)

    def touch_device(self, device_uuid: str, seen_at: str | None = None) -> Device:
        """
        Record telemetry contact, creating an orphan on first contact.

        Args:
            device_uuid: Device token.
            seen_at: Contact time. Defaults to now.

        Returns:
            The stored Device with last_seen refreshed.
        """
        devices = self.load_devices()
        timestamp = seen_at or now_iso()
        if device_uuid in devices:
            data = dict(devices[device_uuid])
            data["last_seen"] = timestamp
            device = _hydrate(Device.from_dict, data, self.devices_file)
        else:
            device = Device.orphan(device_uuid, seen_at=timestamp)
            logger.info(f"New orphan device: {device_uuid}")
        devices[device_uuid] = device.to_dict()
        self.save_devices(devices)
        return device

    # =========================================================================
    # SESSION OPERATIONS
    # =========================================================================

    def get_sessions_for_devices(
        self,
        device_uuids: Iterable[str],
        status: SessionStatus | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[Session]:
        """
        Get sessions reported by any of the given devices.

        Args:
            device_uuids: Tokens in scope. Empty scope returns [].
            status: Optional status filter.
            descending: Order by session_start newest first (default).
            limit: Optional maximum number of rows after ordering.

        Returns:
            Matching sessions. Rows with an unparseable session_start sort
            after all valid rows regardless of direction.
        """
        scope = set(device_uuids)
        if not scope:
            return []

        sessions = [
            _hydrate(Session.from_dict, data, self.sessions_file)
            for data in self.load_sessions().values()
            if data.get("device_uuid") in scope
        ]
        if status is not None:
            sessions = [s for s in sessions if s.status is status]

        dated = [s for s in sessions if s.started_at is not None]
        undated = [s for s in sessions if s.started_at is None]
        dated.sort(key=_session_sort_key, reverse=descending)
        ordered = dated + undated

        return ordered[:limit] if limit is not None else ordered

    def get_session(self, session_id: str) -> Session | None:
        """
        Get single session by ID.

        Returns:
            Session or None if not found.
        """
        data = self.load_sessions().get(session_id)
        return _hydrate(Session.from_dict, data, self.sessions_file) if data else None

    def find_session_by_msg_id(self, msg_id: str) -> Session | None:
        """Find the session that any applied report with msg_id went into."""
        for data in self.load_sessions().values():
            if data.get("msg_id") == msg_id or msg_id in (data.get("msg_ids") or ()):
                return _hydrate(Session.from_dict, data, self.sessions_file)
        return None

    def find_session(self, device_uuid: str, session_start: str) -> Session | None:
        """Find the session row for one device and engine-on time."""
        for data in self.load_sessions().values():
            if data.get("device_uuid") == device_uuid and data.get("session_start") == session_start:
                return _hydrate(Session.from_dict, data, self.sessions_file)
        return None

    def find_open_session(self, device_uuid: str) -> Session | None:
        """
        Find the most recently started open session of a device.

        Several open sessions per device are tolerated; the newest wins.
        """
        open_sessions = self.get_sessions_for_devices([device_uuid], status=SessionStatus.OPEN, limit=1)
        return open_sessions[0] if open_sessions else None

    def save_session(self, session: Session) -> Session:
        """
        Insert or overwrite a session row, refreshing updated_at.

        Raises:
            GatewayFailureError: If the write fails.
        """
        sessions = self.load_sessions()
        session.updated_at = now_iso()
        sessions[session.id] = session.to_dict()
        self.save_sessions(sessions)
        return session

    # =========================================================================
    # USER DIRECTORY
    # =========================================================================

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        """Get the mirrored identity record for user_id."""
        return self.load_users().get(user_id)

    def save_user(self, user_id: str, email: str | None = None, is_admin: bool = False) -> None:
        """
        Insert or overwrite a user directory entry.

        Raises:
            GatewayFailureError: If the write fails.
        """
        users = self.load_users()
        users[user_id] = {"email": email, "is_admin": is_admin}
        self.save_users(users)

    def is_admin(self, user_id: str) -> bool:
        """True if the user directory marks user_id as administrator."""
        user = self.get_user(user_id)
        return bool(user and user.get("is_admin"))

    def get_user_emails(self, user_ids: Iterable[str]) -> dict[str, str]:
        """Map each known user id to its email, skipping unknown ids."""
        users = self.load_users()
        return {
            uid: users[uid]["email"] for uid in set(user_ids) if uid in users and users[uid].get("email")
        }


def _check_tail_number_free(planes: dict[str, dict[str, Any]], plane: Plane) -> None:
    """Raise if another plane of the same owner already uses this tail number."""
    wanted = plane.tail_number.strip().casefold()
    for plane_id, data in planes.items():
        if plane_id == plane.id or data.get("user_id") != plane.user_id:
            continue
        if str(data.get("tail_number", "")).strip().casefold() == wanted:
            raise ValidationFailureError(f"Tail number already registered: {plane.tail_number}")


def _session_sort_key(session: Session) -> datetime:
    return session.started_at or _EPOCH


def _hydrate(factory: Callable[[dict[str, Any]], _T], data: dict[str, Any], source: str) -> _T:
    """
    Build a model from one stored row.

    Raises:
        GatewayFailureError: If the row is malformed (missing key, unknown
            status, non-numeric field).
    """
    try:
        return factory(data)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.error(f"Malformed row in {source}: {e!r}")
        raise GatewayFailureError(f"Malformed row in {source}: {e!r}") from e
