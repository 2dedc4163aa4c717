"""
Fleet Service - shared business logic for planes, devices and sessions.

PURPOSE: One method per user-facing operation, used by both the web API and the CLI.
AI CONTEXT: Resolves scope for the Actor, validates through the state machine, writes back.

ARCHITECTURE:
    CLI commands ──┐
                   ├──► FleetService ◄── StorageManager
    FastAPI routes ┘         │
                             ├── AccessPolicy (who may see / do what)
                             ├── DeviceAssignmentMachine (legal device moves)
                             ├── SessionLedger (session writes)
                             └── DashboardPresenter (view models)

RESULTS:
Every public operation returns a ServiceResult. Domain failures (TrackerError)
become success=False with error_kind set; anything else is a bug and
propagates.

USAGE:
    from .fleet_service import FleetService
    service = FleetService()
    result = service.create_plane(actor, "N12345", model="172S")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .assignment import DeviceAssignmentMachine
from .errors import (
    GatewayFailureError,
    NotFoundError,
    TrackerError,
    ValidationFailureError,
)
from .export import export_filename, sessions_to_csv
from .ledger import SessionLedger, SessionReport
from .models import Actor, Device, DeviceState, Plane, Session, SessionStatus
from .policy import AccessPolicy
from .presenters import DashboardPresenter
from .statistics import DeviceRollup, StatisticsEngine, filter_sessions
from .storage import StorageManager

__all__ = [
    "FleetService",
    "FleetSnapshot",
    "ServiceResult",
]

logger = logging.getLogger(__name__)

PLANE_UPDATABLE_FIELDS = frozenset({"tail_number", "model", "manufacturer"})
DEVICE_PATCH_FIELDS = frozenset({"name", "plane_id"})


@dataclass
class ServiceResult:
    """
    Result from a service operation.

    Provides a consistent return type for all service methods with
    success/failure status and optional data or error message.

    Attributes:
        success: Whether the operation completed successfully.
        message: Human-readable result message.
        data: Optional dict with operation-specific data.
        error: Optional error message if success is False.
        error_kind: Stable error kind ('not_found', 'access_denied', ...)
            if success is False.
    """

    success: bool
    message: str
    data: dict[str, Any] | None = None
    error: str | None = None
    error_kind: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """
        Convert this ServiceResult to a JSON-serializable dictionary.

        Fields with None/empty values (data, error, error_kind) are omitted
        to keep payloads compact.

        Example:
            >>> ServiceResult(success=True, message="Done", data={"id": "abc"}).to_dict()
            {'success': True, 'message': 'Done', 'data': {'id': 'abc'}}
        """
        result: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
        }
        if self.data:
            result["data"] = self.data
        if self.error:
            result["error"] = self.error
        if self.error_kind:
            result["error_kind"] = self.error_kind
        return result


@dataclass
class FleetSnapshot:
    """An actor's planes, devices (planes joined) and their sessions."""

    planes: list[Plane] = field(default_factory=list)
    devices: list[Device] = field(default_factory=list)
    sessions: list[Session] = field(default_factory=list)


def _failure(message: str, error: TrackerError) -> ServiceResult:
    if isinstance(error, GatewayFailureError):
        logger.error(f"{message}: {error}")
    else:
        logger.info(f"{message}: {error}")
    return ServiceResult(success=False, message=message, error=error.message, error_kind=error.kind)


def _parse_status(status: str | None) -> SessionStatus | None:
    if not status:
        return None
    try:
        return SessionStatus(status)
    except ValueError as e:
        raise ValidationFailureError(
            f"status must be one of: {', '.join(s.value for s in SessionStatus)}"
        ) from e


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


class FleetService:
    """
    Core fleet tracking service.

    Provides every dashboard operation as business logic separated from
    HTTP handling and CLI argument parsing. The Actor is always passed in
    explicitly; the service never looks up "the current user" itself.

    OPERATIONS:
    - Overview: get_overview, get_report, fleet_snapshot
    - Planes: list_planes, get_plane_detail, create_plane, update_plane, delete_plane
    - Devices: list_devices, update_device, delete_device
    - Sessions: list_sessions, export_sessions_csv, close_session, record_report
    - Admin: admin_list_devices, admin_set_owner, admin_release_owner, register_user

    Example:
        >>> service = FleetService()
        >>> actor = Actor(user_id="user-1")
        >>> service.list_planes(actor).data["planes"]
        []
    """

    def __init__(
        self,
        storage: StorageManager | None = None,
        stats_engine: StatisticsEngine | None = None,
        policy: AccessPolicy | None = None,
    ) -> None:
        """
        Initialize the fleet service with storage and analytics dependencies.

        Both dependencies are optional to support easy testing (inject
        StorageManager over a MockFileSystem) and simple bootstrapping
        (defaults read/write the Config storage directory).

        Args:
            storage: Persistence gateway. Default: StorageManager()
            stats_engine: Aggregation engine. Default: StatisticsEngine()
            policy: Access policy. Default: AccessPolicy()
        """
        self.storage = storage or StorageManager()
        self.stats = stats_engine or StatisticsEngine()
        self.policy = policy or AccessPolicy()
        self.machine = DeviceAssignmentMachine(self.policy)
        self.ledger = SessionLedger(self.storage, self.policy)
        self.presenter = DashboardPresenter(self.stats)

    # =========================================================================
    # LOADING HELPERS (raise TrackerError)
    # =========================================================================

    def fleet_snapshot(self, actor: Actor) -> FleetSnapshot:
        """
        Load everything the actor owns.

        Raises:
            GatewayFailureError: If storage cannot be read.
        """
        planes = self.storage.get_planes_for_owner(actor.user_id)
        devices = self.storage.get_devices_for_owner(actor.user_id, include_plane=True)
        sessions = self.storage.get_sessions_for_devices(d.device_uuid for d in devices)
        return FleetSnapshot(planes=planes, devices=devices, sessions=sessions)

    def _load_plane(self, actor: Actor, plane_id: str) -> Plane:
        plane = self.storage.get_plane(plane_id)
        if plane is None:
            raise NotFoundError(f"Plane not found: {plane_id}")
        self.policy.ensure_visible(actor, plane.user_id, f"Plane not found: {plane_id}")
        return plane

    def _load_device(self, actor: Actor, device_uuid: str) -> Device:
        device = self.storage.get_device(device_uuid, include_plane=True)
        if device is None:
            raise NotFoundError(f"Device not found: {device_uuid}")
        self.policy.ensure_visible(actor, device.user_id, f"Device not found: {device_uuid}")
        return device

    def _persist_device(self, device: Device) -> Device:
        stored = self.storage.update_device(
            device.device_uuid,
            {"user_id": device.user_id, "plane_id": device.plane_id, "name": device.name},
        )
        stored.plane = device.plane
        return stored

    # =========================================================================
    # OVERVIEW
    # =========================================================================

    def get_overview(self, actor: Actor) -> ServiceResult:
        """
        Dashboard headline numbers and recent activity for the actor's fleet.

        Returns:
            ServiceResult with data: total_devices, total_planes,
            active_sessions, total_flight_hours, recent_sessions,
            report_text.
        """
        try:
            snapshot = self.fleet_snapshot(actor)
            overview = self.presenter.get_overview(
                snapshot.planes, snapshot.devices, snapshot.sessions
            )
            data = overview.to_dict()
            data["report_text"] = overview.report_text
            return ServiceResult(success=True, message="Overview loaded", data=data)
        except TrackerError as e:
            return _failure("Failed to load overview", e)

    def get_report(self, actor: Actor) -> ServiceResult:
        """Text fleet report for terminal display (data['report'])."""
        try:
            snapshot = self.fleet_snapshot(actor)
            report = self.stats.generate_summary_report(
                snapshot.planes, snapshot.devices, snapshot.sessions
            )
            return ServiceResult(success=True, message="Report generated", data={"report": report})
        except TrackerError as e:
            return _failure("Failed to generate report", e)

    # =========================================================================
    # PLANES
    # =========================================================================

    def list_planes(self, actor: Actor) -> ServiceResult:
        """
        The actor's planes with device counts and Hobbs totals.

        Returns:
            ServiceResult with data['planes']: list of plane dicts extended
            with device_count and hobbs_total.
        """
        try:
            snapshot = self.fleet_snapshot(actor)
            planes = []
            for plane in snapshot.planes:
                stats = self.stats.calculate_plane_stats(
                    plane.id, snapshot.devices, snapshot.sessions
                )
                entry = plane.to_dict()
                entry["device_count"] = sum(1 for d in snapshot.devices if d.plane_id == plane.id)
                entry["hobbs_total"] = stats.hobbs_total
                planes.append(entry)
            return ServiceResult(
                success=True, message=f"{len(planes)} plane(s)", data={"planes": planes}
            )
        except TrackerError as e:
            return _failure("Failed to list planes", e)

    def get_plane_detail(self, actor: Actor, plane_id: str) -> ServiceResult:
        """
        Plane page: assigned devices with rollups, plane stats, recent sessions.

        Owner or administrator. Other users get not_found.
        """
        try:
            plane = self._load_plane(actor, plane_id)
            devices = [
                d
                for d in self.storage.get_devices_for_owner(plane.user_id, include_plane=True)
                if d.plane_id == plane.id
            ]
            sessions = self.storage.get_sessions_for_devices(d.device_uuid for d in devices)
            detail = self.presenter.get_plane_detail(plane, devices, sessions)
            return ServiceResult(
                success=True, message=f"Plane {plane.tail_number}", data=detail.to_dict()
            )
        except TrackerError as e:
            return _failure("Failed to load plane", e)

    def create_plane(
        self,
        actor: Actor,
        tail_number: str,
        model: str | None = None,
        manufacturer: str | None = None,
    ) -> ServiceResult:
        """
        Register a plane for the actor.

        Args:
            actor: Future owner.
            tail_number: Required, unique per owner (case-insensitive).
            model: Optional model.
            manufacturer: Optional manufacturer.

        Returns:
            ServiceResult with data['plane'] on success.
        """
        try:
            if not tail_number or not tail_number.strip():
                raise ValidationFailureError("tail_number is required")
            plane = self.storage.create_plane(
                Plane.create(actor.user_id, tail_number, model=model, manufacturer=manufacturer)
            )
            logger.info(f"Plane created: {plane.tail_number} ({plane.id})")
            return ServiceResult(
                success=True,
                message=f"Plane created: {plane.tail_number}",
                data={"plane": plane.to_dict()},
            )
        except TrackerError as e:
            return _failure("Failed to create plane", e)

    def update_plane(self, actor: Actor, plane_id: str, changes: dict[str, Any]) -> ServiceResult:
        """
        Edit tail number, model or manufacturer.

        Args:
            actor: Plane owner or administrator.
            plane_id: Plane to edit.
            changes: Subset of {'tail_number', 'model', 'manufacturer'}.
                Blank model/manufacturer clears the field; blank tail number
                is rejected.
        """
        try:
            unknown = set(changes) - PLANE_UPDATABLE_FIELDS
            if unknown:
                raise ValidationFailureError(f"Unknown plane fields: {', '.join(sorted(unknown))}")
            plane = self._load_plane(actor, plane_id)
            if "tail_number" in changes:
                tail = _optional_text(changes["tail_number"])
                if tail is None:
                    raise ValidationFailureError("tail_number is required")
                plane.tail_number = tail
            if "model" in changes:
                plane.model = _optional_text(changes["model"])
            if "manufacturer" in changes:
                plane.manufacturer = _optional_text(changes["manufacturer"])
            plane = self.storage.update_plane(plane)
            logger.info(f"Plane updated: {plane.tail_number} ({plane.id})")
            return ServiceResult(
                success=True,
                message=f"Plane updated: {plane.tail_number}",
                data={"plane": plane.to_dict()},
            )
        except TrackerError as e:
            return _failure("Failed to update plane", e)

    def delete_plane(self, actor: Actor, plane_id: str) -> ServiceResult:
        """
        Delete a plane; its devices stay with their owner, unassigned.

        Returns:
            ServiceResult with data['unassigned_devices'] listing tokens.
        """
        try:
            plane = self._load_plane(actor, plane_id)
            unassigned = self.storage.delete_plane(plane.id)
            logger.info(f"Plane deleted: {plane.tail_number}, {len(unassigned)} device(s) unassigned")
            return ServiceResult(
                success=True,
                message=f"Plane deleted: {plane.tail_number}",
                data={"plane_id": plane.id, "unassigned_devices": unassigned},
            )
        except TrackerError as e:
            return _failure("Failed to delete plane", e)

    # =========================================================================
    # DEVICES
    # =========================================================================

    def list_devices(self, actor: Actor) -> ServiceResult:
        """
        The actor's devices with per-device session rollups.

        Rollups are best-effort: if one device's sessions cannot be read,
        that device shows zero sessions and its token is reported in
        data['warnings'] instead of failing the whole list.
        """
        try:
            devices = self.storage.get_devices_for_owner(actor.user_id, include_plane=True)
        except TrackerError as e:
            return _failure("Failed to list devices", e)

        rollups: dict[str, DeviceRollup] = {}
        warnings: list[str] = []
        for device in devices:
            try:
                sessions = self.storage.get_sessions_for_devices([device.device_uuid])
            except GatewayFailureError as e:
                logger.warning(f"Stats unavailable for device {device.short_token}: {e}")
                warnings.append(device.device_uuid)
                continue
            rollups[device.device_uuid] = self.stats.calculate_device_rollup(
                device.device_uuid, sessions
            )

        listing = self.presenter.get_device_list(devices, rollups, warnings)
        return ServiceResult(
            success=True, message=f"{len(devices)} device(s)", data=listing.to_dict()
        )

    def update_device(self, actor: Actor, device_uuid: str, changes: dict[str, Any]) -> ServiceResult:
        """
        Rename and/or (un)assign a device.

        Args:
            actor: Device owner or administrator.
            device_uuid: Device token.
            changes: 'name' renames (blank clears). 'plane_id' assigns
                the device to that plane, or unassigns it when None/blank.

        Returns:
            ServiceResult with data['device'] on success.
        """
        try:
            unknown = set(changes) - DEVICE_PATCH_FIELDS
            if unknown:
                raise ValidationFailureError(f"Unknown device fields: {', '.join(sorted(unknown))}")
            device = self._load_device(actor, device_uuid)
            if "name" in changes:
                device = self.machine.rename(actor, device, changes["name"])
            if "plane_id" in changes:
                plane_id = _optional_text(changes["plane_id"])
                if plane_id is None:
                    device = self.machine.unassign_plane(actor, device)
                else:
                    device = self.machine.assign_plane(actor, device, self._load_plane(actor, plane_id))
            device = self._persist_device(device)
            return ServiceResult(
                success=True,
                message=f"Device updated: {device.name or device.short_token}",
                data={"device": device.to_dict()},
            )
        except TrackerError as e:
            return _failure("Failed to update device", e)

    def delete_device(self, actor: Actor, device_uuid: str) -> ServiceResult:
        """Delete a device. Its sessions are kept and show as 'Unknown Device'."""
        try:
            device = self._load_device(actor, device_uuid)
            self.storage.delete_device(device.device_uuid)
            logger.info(f"Device deleted: {device.device_uuid}")
            return ServiceResult(
                success=True,
                message=f"Device deleted: {device.name or device.short_token}",
                data={"device_uuid": device.device_uuid},
            )
        except TrackerError as e:
            return _failure("Failed to delete device", e)

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def _scoped_sessions(
        self, actor: Actor, device: str | None, status: str | None
    ) -> tuple[list[Device], list[Session], SessionStatus | None]:
        devices = self.storage.get_devices_for_owner(actor.user_id, include_plane=True)
        if device and device not in {d.device_uuid for d in devices}:
            # Only administrators get past this for another owner's device.
            target = self.storage.get_device(device, include_plane=True)
            if target is None:
                raise NotFoundError(f"Device not found: {device}")
            self.policy.ensure_visible(actor, target.user_id, f"Device not found: {device}")
            devices = [target]
        status_filter = _parse_status(status)
        sessions = self.storage.get_sessions_for_devices(d.device_uuid for d in devices)
        return devices, sessions, status_filter

    def list_sessions(
        self, actor: Actor, device: str | None = None, status: str | None = None
    ) -> ServiceResult:
        """
        Session table, statistics and plane summary for the given filters.

        Args:
            actor: Owner whose devices are in scope.
            device: Only this device token. It must be the actor's own
                unless the actor is an administrator.
            status: 'open' or 'closed'; None/blank for all.
        """
        try:
            devices, sessions, status_filter = self._scoped_sessions(actor, device, status)
            page = self.presenter.get_sessions_page(
                devices, sessions, device_filter=device or None, status_filter=status_filter
            )
            return ServiceResult(
                success=True, message=f"{len(page.rows)} session(s)", data=page.to_dict()
            )
        except TrackerError as e:
            return _failure("Failed to list sessions", e)

    def export_sessions_csv(
        self, actor: Actor, device: str | None = None, status: str | None = None
    ) -> ServiceResult:
        """
        CSV export of the filtered session list.

        Returns:
            ServiceResult with data: filename, content, row_count.
        """
        try:
            devices, sessions, status_filter = self._scoped_sessions(actor, device, status)
            filtered = filter_sessions(sessions, device_uuid=device or None, status=status_filter)
            content = sessions_to_csv(filtered, {d.device_uuid: d for d in devices})
            filename = export_filename()
            logger.info(f"Exported {len(filtered)} session(s) to {filename}")
            return ServiceResult(
                success=True,
                message=f"Exported {len(filtered)} session(s)",
                data={"filename": filename, "content": content, "row_count": len(filtered)},
            )
        except TrackerError as e:
            return _failure("Failed to export sessions", e)

    def close_session(self, actor: Actor, session_id: str) -> ServiceResult:
        """Close an open session; run time stays at the last reported value."""
        try:
            session = self.ledger.close(actor, session_id)
            return ServiceResult(
                success=True,
                message=f"Session closed: {session.id}",
                data={"session": session.to_dict()},
            )
        except TrackerError as e:
            return _failure("Failed to close session", e)

    def record_report(self, report: SessionReport) -> ServiceResult:
        """
        Apply a telemetry report (ingestion path, no Actor).

        Returns:
            ServiceResult with data: session, action ('created', 'updated'
            or 'duplicate').
        """
        try:
            outcome = self.ledger.record_report(report)
            return ServiceResult(
                success=True,
                message=f"Report {report.msg_id}: {outcome.action}",
                data={"session": outcome.session.to_dict(), "action": outcome.action},
            )
        except TrackerError as e:
            return _failure("Failed to record report", e)

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    def admin_list_devices(
        self, actor: Actor, search: str = "", owner: str = "all"
    ) -> ServiceResult:
        """
        System-wide device listing with search, owner filter and counters.

        Administrators only (access_denied otherwise).
        """
        try:
            self.policy.require_admin(actor)
            devices = self.storage.get_all_devices(include_plane=True)
            emails = self.storage.get_user_emails(d.user_id for d in devices if d.user_id)
            listing = self.presenter.get_admin_listing(
                devices, emails, search=search or "", owner_filter=owner or "all"
            )
            return ServiceResult(
                success=True, message=f"{len(listing.rows)} device(s)", data=listing.to_dict()
            )
        except TrackerError as e:
            return _failure("Failed to list devices", e)

    def admin_set_owner(self, actor: Actor, device_uuid: str, user_id: str) -> ServiceResult:
        """
        Claim an orphan device for user_id, or transfer an owned one.

        Administrators only. Transfers clear the plane assignment.
        """
        try:
            self.policy.require_admin(actor)
            device = self.storage.get_device(device_uuid, include_plane=True)
            if device is None:
                raise NotFoundError(f"Device not found: {device_uuid}")
            if device.state is DeviceState.ORPHAN:
                updated = self.machine.claim(actor, device, user_id)
            else:
                updated = self.machine.transfer_owner(actor, device, user_id)
            updated = self._persist_device(updated)
            return ServiceResult(
                success=True,
                message=f"Device {updated.short_token} now owned by {updated.user_id}",
                data={"device": updated.to_dict()},
            )
        except TrackerError as e:
            return _failure("Failed to set device owner", e)

    def admin_release_owner(self, actor: Actor, device_uuid: str) -> ServiceResult:
        """Return a device to the orphan pool. Administrators only."""
        try:
            self.policy.require_admin(actor)
            device = self.storage.get_device(device_uuid)
            if device is None:
                raise NotFoundError(f"Device not found: {device_uuid}")
            updated = self._persist_device(self.machine.release_owner(actor, device))
            return ServiceResult(
                success=True,
                message=f"Device {updated.short_token} released",
                data={"device": updated.to_dict()},
            )
        except TrackerError as e:
            return _failure("Failed to release device", e)

    def register_user(
        self, user_id: str, email: str | None = None, is_admin: bool = False
    ) -> ServiceResult:
        """
        Add or update a user directory entry (operator task, no Actor).

        The directory supplies administrator status and owner emails.
        """
        try:
            uid = (user_id or "").strip()
            if not uid:
                raise ValidationFailureError("user_id is required")
            self.storage.save_user(uid, email=_optional_text(email), is_admin=is_admin)
            logger.info(f"User registered: {uid} (admin={is_admin})")
            return ServiceResult(
                success=True,
                message=f"User saved: {uid}",
                data={"user_id": uid, "email": _optional_text(email), "is_admin": is_admin},
            )
        except TrackerError as e:
            return _failure("Failed to save user", e)
