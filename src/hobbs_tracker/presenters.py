"""
Presenters for the Hobbs Tracker dashboard.

PURPOSE: Transform scoped domain data into view models for HTML, JSON and CLI.
AI CONTEXT: Presentation logic separated from routes and from access control.

ARCHITECTURE:
- FleetService: loads and scopes data for the acting user
- Presenters: pure transformation into display-ready view models
- Routes/CLI: render or serialize the view models

JOINED DATA:
A session's device and a device's plane may be missing (deleted device,
unassigned device). View models check for presence at build time and fall
back to 'Unknown Device' / 'Not assigned' / 'N/A'.
"""

from __future__ import annotations

import io
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from .config import Config
from .models import Device, Plane, Session, SessionStatus, parse_timestamp
from .statistics import (
    DeviceRollup,
    PlaneFlightTime,
    SessionStats,
    filter_sessions,
    format_duration,
)

if TYPE_CHECKING:
    from .statistics import StatisticsEngine

__all__ = [
    "AdminDeviceRow",
    "AdminListingViewModel",
    "ChartPresenter",
    "DashboardOverview",
    "DashboardPresenter",
    "DeviceListViewModel",
    "DeviceViewModel",
    "PlaneDetailViewModel",
    "SessionRowViewModel",
    "SessionsPageViewModel",
    "relative_time",
]

OWNER_FILTER_ALL = "all"
OWNER_FILTER_UNASSIGNED = "unassigned"

# Bar colors for the plane hours chart
CHART_BAR_COLOR = "#3b82f6"
CHART_EMPTY_COLOR = "#94a3b8"


def relative_time(timestamp: str | None, now: datetime | None = None) -> str:
    """
    Describe a timestamp relative to now.

    Args:
        timestamp: ISO 8601 timestamp or None.
        now: Reference time. Default: current UTC time.

    Returns:
        'just now', '5 minutes ago', '2 hours ago', '3 days ago', or
        Config.NOT_APPLICABLE when timestamp is missing or unparseable.

    Example:
        >>> relative_time(None)
        'N/A'
    """
    moment = parse_timestamp(timestamp)
    if moment is None:
        return Config.NOT_APPLICABLE
    delta = int(((now or datetime.now(UTC)) - moment).total_seconds())
    if delta < 60:
        return "just now"
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if delta >= size:
            count = delta // size
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
    return "just now"


def _device_label(device: Device) -> str:
    return device.name or device.device_uuid[: Config.TOKEN_DISPLAY_LENGTH]


@dataclass
class SessionRowViewModel:
    """View model for a single session row."""

    session_id: str
    device_uuid: str
    device_label: str
    plane_label: str
    session_start: str
    run_seconds: int
    status: str
    last_update: str | None
    device_known: bool = True
    plane_assigned: bool = False

    @classmethod
    def build(cls, session: Session, device: Device | None) -> SessionRowViewModel:
        """
        Resolve a session's device and plane for display.

        Args:
            session: Session row.
            device: The session's device with plane joined, or None when the
                device no longer resolves.

        Returns:
            Row with device name (or 'Unknown Device') and tail number
            (or 'Not assigned').
        """
        plane = device.plane if device is not None else None
        if device is not None and device.name:
            device_label = device.name
        else:
            device_label = Config.UNKNOWN_DEVICE
        return cls(
            session_id=session.id,
            device_uuid=session.device_uuid,
            device_label=device_label,
            plane_label=plane.tail_number if plane is not None else Config.UNASSIGNED_PLANE,
            session_start=session.session_start,
            run_seconds=session.run_seconds,
            status=session.status.value,
            last_update=session.last_update,
            device_known=device is not None,
            plane_assigned=plane is not None,
        )

    @property
    def short_token(self) -> str:
        """Truncated device token shown under the device label."""
        return self.device_uuid[: Config.TOKEN_DISPLAY_LENGTH]

    @property
    def duration_display(self) -> str:
        """
        Format run time as whole hours and minutes.

        Example:
            >>> row.run_seconds = 5400
            >>> row.duration_display
            '1h 30m'
        """
        return format_duration(self.run_seconds)

    @property
    def start_date_display(self) -> str:
        """Session start as 'Jan 1, 2026', or the raw value if unparseable."""
        started = parse_timestamp(self.session_start)
        if started is None:
            return self.session_start
        return f"{started:%b} {started.day}, {started.year}"

    @property
    def start_time_display(self) -> str:
        """Session start as '9:05 AM', or empty if unparseable."""
        started = parse_timestamp(self.session_start)
        if started is None:
            return ""
        hour = started.hour % 12 or 12
        return f"{hour}:{started:%M %p}"

    @property
    def last_update_display(self) -> str:
        """Last report time relative to now, or 'N/A'."""
        return relative_time(self.last_update)

    @property
    def status_class(self) -> str:
        """CSS class for the status badge."""
        return "status-open" if self.status == SessionStatus.OPEN.value else "status-closed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.session_id,
            "device_uuid": self.device_uuid,
            "device_label": self.device_label,
            "short_token": self.short_token,
            "plane_label": self.plane_label,
            "session_start": self.session_start,
            "run_seconds": self.run_seconds,
            "duration": self.duration_display,
            "status": self.status,
            "last_update": self.last_update,
        }


@dataclass
class DashboardOverview:
    """Complete view model for the dashboard landing page."""

    total_devices: int = 0
    total_planes: int = 0
    active_sessions: int = 0
    total_flight_hours: float = 0.0
    recent_sessions: list[SessionRowViewModel] = field(default_factory=list)
    report_text: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_devices": self.total_devices,
            "total_planes": self.total_planes,
            "active_sessions": self.active_sessions,
            "total_flight_hours": self.total_flight_hours,
            "recent_sessions": [row.to_dict() for row in self.recent_sessions],
        }


@dataclass
class SessionsPageViewModel:
    """
    Filtered session list with matching statistics.

    Every number on the page is computed from the filtered rows, so the
    totals always match the table and the CSV export.
    """

    rows: list[SessionRowViewModel]
    stats: SessionStats
    plane_summary: list[PlaneFlightTime]
    device_options: list[tuple[str, str]]
    device_filter: str | None = None
    status_filter: str | None = None

    @property
    def total_hours_display(self) -> str:
        """Filtered flight time in hours, one decimal."""
        return f"{self.stats.total_flight_time / 3600:.1f}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "filters": {"device": self.device_filter, "status": self.status_filter},
            "stats": self.stats.to_dict(),
            "total_hours": self.total_hours_display,
            "sessions": [row.to_dict() for row in self.rows],
            "plane_summary": [row.to_dict() for row in self.plane_summary],
        }


@dataclass
class DeviceViewModel:
    """View model for one device with its flight rollup."""

    device_uuid: str
    name: str | None
    state: str
    plane_id: str | None
    plane_label: str
    last_seen: str | None
    session_count: int
    total_flight_time: int

    @classmethod
    def build(cls, device: Device, rollup: DeviceRollup | None) -> DeviceViewModel:
        rollup = rollup or DeviceRollup(device_uuid=device.device_uuid)
        return cls(
            device_uuid=device.device_uuid,
            name=device.name,
            state=device.state.value,
            plane_id=device.plane_id,
            plane_label=(
                device.plane.tail_number if device.plane is not None else Config.UNASSIGNED_PLANE
            ),
            last_seen=device.last_seen,
            session_count=rollup.session_count,
            total_flight_time=rollup.total_flight_time,
        )

    @property
    def label(self) -> str:
        return self.name or self.device_uuid[: Config.TOKEN_DISPLAY_LENGTH]

    @property
    def duration_display(self) -> str:
        return format_duration(self.total_flight_time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_uuid": self.device_uuid,
            "name": self.name,
            "label": self.label,
            "state": self.state,
            "plane_id": self.plane_id,
            "plane_label": self.plane_label,
            "last_seen": self.last_seen,
            "last_seen_display": relative_time(self.last_seen),
            "session_count": self.session_count,
            "total_flight_time": self.total_flight_time,
            "duration": self.duration_display,
        }


@dataclass
class DeviceListViewModel:
    """
    An owner's devices with rollups.

    warnings lists tokens whose rollup could not be computed; those devices
    are shown with zero sessions instead of failing the whole page.
    """

    devices: list[DeviceViewModel] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "devices": [d.to_dict() for d in self.devices],
            "warnings": list(self.warnings),
        }


@dataclass
class PlaneDetailViewModel:
    """Plane page: devices, plane statistics and recent sessions."""

    plane: Plane
    devices: list[DeviceViewModel]
    stats: SessionStats
    recent_sessions: list[SessionRowViewModel]

    @property
    def hobbs_display(self) -> str:
        """Total plane time as decimal Hobbs hours."""
        return self.stats.hobbs_total

    def to_dict(self) -> dict[str, Any]:
        return {
            "plane": self.plane.to_dict(),
            "devices": [d.to_dict() for d in self.devices],
            "stats": self.stats.to_dict(),
            "hobbs_total": self.hobbs_display,
            "average_flight": format_duration(self.stats.average_flight_time),
            "longest_flight": format_duration(self.stats.longest_flight),
            "shortest_flight": format_duration(self.stats.shortest_flight),
            "recent_sessions": [row.to_dict() for row in self.recent_sessions],
        }


@dataclass
class AdminDeviceRow:
    """One row of the system-wide device listing."""

    device_uuid: str
    name: str | None
    user_id: str | None
    owner_email: str | None
    plane_id: str | None
    tail_number: str | None
    state: str
    last_seen: str | None

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match on token, name, owner email or tail number."""
        needle = term.casefold()
        haystack = (self.device_uuid, self.name, self.owner_email, self.tail_number)
        return any(value and needle in value.casefold() for value in haystack)

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_uuid": self.device_uuid,
            "name": self.name,
            "user_id": self.user_id,
            "owner_email": self.owner_email,
            "plane_id": self.plane_id,
            "tail_number": self.tail_number,
            "state": self.state,
            "last_seen": self.last_seen,
        }


@dataclass
class AdminListingViewModel:
    """
    Filtered system-wide device listing.

    Counters describe the whole fleet, not the filtered rows, so an admin
    can see at a glance how many devices still need a plane.
    """

    rows: list[AdminDeviceRow]
    total_devices: int
    assigned_devices: int
    unassigned_devices: int
    owners: list[tuple[str, str]]
    search: str = ""
    owner_filter: str = OWNER_FILTER_ALL

    @property
    def owner_count(self) -> int:
        return len(self.owners)

    def to_dict(self) -> dict[str, Any]:
        return {
            "filters": {"search": self.search, "owner": self.owner_filter},
            "counters": {
                "total": self.total_devices,
                "assigned": self.assigned_devices,
                "unassigned": self.unassigned_devices,
                "owners": self.owner_count,
            },
            "owners": [{"id": uid, "email": email} for uid, email in self.owners],
            "devices": [row.to_dict() for row in self.rows],
        }


class DashboardPresenter:
    """
    Presenter for dashboard pages.

    Transforms scoped planes, devices and sessions into view models. All
    methods are pure; callers pass in exactly the data the actor may see.
    """

    def __init__(self, statistics: StatisticsEngine) -> None:
        """
        Initialize dashboard presenter.

        Business context: Every page shows numbers from the same engine so a
        plane's hours agree between the overview, the plane page and the
        report.

        Args:
            statistics: StatisticsEngine for all aggregates.
        """
        self.statistics = statistics

    def get_overview(
        self,
        planes: Sequence[Plane],
        devices: Sequence[Device],
        sessions: Sequence[Session],
    ) -> DashboardOverview:
        """
        Build the landing page: fleet counters, recent activity, report text.

        Args:
            planes: Actor's planes.
            devices: Actor's devices with planes joined.
            sessions: Sessions of those devices.

        Returns:
            DashboardOverview. Empty inputs give zero counters.
        """
        overview = self.statistics.calculate_overview(devices, planes, sessions)
        by_token = {d.device_uuid: d for d in devices}
        return DashboardOverview(
            total_devices=overview.total_devices,
            total_planes=overview.total_planes,
            active_sessions=overview.active_sessions,
            total_flight_hours=overview.total_flight_hours,
            recent_sessions=self.build_rows(overview.recent_sessions, by_token),
            report_text=self.statistics.generate_summary_report(planes, devices, sessions),
        )

    def build_rows(
        self, sessions: Iterable[Session], devices: Mapping[str, Device]
    ) -> list[SessionRowViewModel]:
        """Resolve each session against the device map."""
        return [SessionRowViewModel.build(s, devices.get(s.device_uuid)) for s in sessions]

    def get_sessions_page(
        self,
        devices: Sequence[Device],
        sessions: Sequence[Session],
        device_filter: str | None = None,
        status_filter: SessionStatus | None = None,
    ) -> SessionsPageViewModel:
        """
        Build the sessions page for the given filters.

        Filtering happens first; statistics, the plane summary and the rows
        are then computed from the same filtered list.

        Args:
            devices: Actor's devices with planes joined (used for labels
                and the device filter dropdown).
            sessions: Sessions of those devices, newest first.
            device_filter: Only this device token, or None for all.
            status_filter: Only this status, or None for all.
        """
        filtered = filter_sessions(sessions, device_uuid=device_filter, status=status_filter)
        by_token = {d.device_uuid: d for d in devices}
        options = [
            (
                d.device_uuid,
                _device_label(d) + (f" ({d.plane.tail_number})" if d.plane is not None else ""),
            )
            for d in devices
        ]
        return SessionsPageViewModel(
            rows=self.build_rows(filtered, by_token),
            stats=self.statistics.calculate_session_stats(filtered),
            plane_summary=self.statistics.flight_time_by_plane(filtered, devices),
            device_options=options,
            device_filter=device_filter,
            status_filter=status_filter.value if status_filter else None,
        )

    def get_device_list(
        self,
        devices: Sequence[Device],
        rollups: Mapping[str, DeviceRollup],
        warnings: Sequence[str] = (),
    ) -> DeviceListViewModel:
        """Pair each device with its rollup; missing rollups show as zero."""
        return DeviceListViewModel(
            devices=[DeviceViewModel.build(d, rollups.get(d.device_uuid)) for d in devices],
            warnings=list(warnings),
        )

    def get_plane_detail(
        self,
        plane: Plane,
        devices: Sequence[Device],
        sessions: Sequence[Session],
    ) -> PlaneDetailViewModel:
        """
        Build the plane page.

        Args:
            plane: The plane.
            devices: Devices currently assigned to the plane.
            sessions: Sessions of those devices.

        Returns:
            PlaneDetailViewModel with per-device rollups, plane statistics
            and the most recent sessions.
        """
        rollups = self.statistics.calculate_device_rollups(
            (d.device_uuid for d in devices), sessions
        )
        by_token = {d.device_uuid: d for d in devices}
        return PlaneDetailViewModel(
            plane=plane,
            devices=[DeviceViewModel.build(d, rollups.get(d.device_uuid)) for d in devices],
            stats=self.statistics.calculate_plane_stats(plane.id, devices, sessions),
            recent_sessions=self.build_rows(self.statistics.recent_sessions(sessions), by_token),
        )

    def get_admin_listing(
        self,
        devices: Sequence[Device],
        owner_emails: Mapping[str, str],
        search: str = "",
        owner_filter: str = OWNER_FILTER_ALL,
    ) -> AdminListingViewModel:
        """
        Build the admin device listing.

        Business context: Operators hand orphan devices to owners and
        answer "whose device is this?" support questions, usually starting
        from a token fragment or an email.

        Args:
            devices: Every device in the system, planes joined.
            owner_emails: user_id -> email for known owners.
            search: Free-text filter; blank matches everything.
            owner_filter: 'all', 'unassigned' (no owner) or a user id.

        Returns:
            AdminListingViewModel with filtered rows and fleet counters.
        """
        rows = [
            AdminDeviceRow(
                device_uuid=d.device_uuid,
                name=d.name,
                user_id=d.user_id,
                owner_email=owner_emails.get(d.user_id) if d.user_id else None,
                plane_id=d.plane_id,
                tail_number=d.plane.tail_number if d.plane is not None else None,
                state=d.state.value,
                last_seen=d.last_seen,
            )
            for d in devices
        ]

        owners = sorted(
            {(r.user_id, r.owner_email) for r in rows if r.user_id and r.owner_email},
            key=lambda pair: pair[1].casefold(),
        )

        term = search.strip()
        filtered = [
            r
            for r in rows
            if (not term or r.matches(term)) and _owner_matches(r, owner_filter)
        ]

        assigned = sum(1 for d in devices if d.plane_id)
        return AdminListingViewModel(
            rows=filtered,
            total_devices=len(devices),
            assigned_devices=assigned,
            unassigned_devices=len(devices) - assigned,
            owners=owners,
            search=term,
            owner_filter=owner_filter,
        )


def _owner_matches(row: AdminDeviceRow, owner_filter: str) -> bool:
    if not owner_filter or owner_filter == OWNER_FILTER_ALL:
        return True
    if owner_filter == OWNER_FILTER_UNASSIGNED:
        return row.user_id is None
    return row.user_id == owner_filter


class ChartPresenter:
    """
    Presenter for chart images.

    Uses matplotlib for server-side chart rendering. matplotlib is an
    optional extra; callers catch ImportError and serve a placeholder.
    """

    def __init__(self, statistics: StatisticsEngine) -> None:
        self.statistics = statistics

    def render_plane_hours_chart(
        self,
        planes: Sequence[Plane],
        devices: Sequence[Device],
        sessions: Sequence[Session],
    ) -> bytes:
        """
        Render Hobbs hours per plane as a horizontal bar chart PNG.

        Business context: Shows which aircraft carries the fleet's flying,
        which is what drives maintenance scheduling.

        Returns:
            PNG image as bytes. Planes with no time still get a (zero)
            bar; an owner with no planes gets a "No planes" placeholder.

        Raises:
            ImportError: If matplotlib is not installed. Caller should
                catch this and provide fallback (e.g., placeholder SVG).
        """
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt

        fig, ax = plt.subplots(figsize=(6, 3))

        if not planes:
            ax.text(0.5, 0.5, "No planes", ha="center", va="center", color=CHART_EMPTY_COLOR)
            ax.set_axis_off()
        else:
            labels = [p.tail_number for p in planes]
            hours = [
                self.statistics.calculate_plane_stats(p.id, devices, sessions).total_flight_time
                / 3600
                for p in planes
            ]
            ax.barh(labels, hours, color=CHART_BAR_COLOR)
            ax.set_xlabel("Hobbs hours")
            ax.set_title("Flight Hours by Plane")
            ax.spines["top"].set_visible(False)
            ax.spines["right"].set_visible(False)

        buf = io.BytesIO()
        plt.tight_layout()
        plt.savefig(buf, format="png", dpi=100, bbox_inches="tight")
        plt.close(fig)
        buf.seek(0)
        return buf.read()

