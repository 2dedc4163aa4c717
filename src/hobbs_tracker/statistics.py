"""
Statistics engine for Hobbs Tracker.

PURPOSE: Turn session rows into flight-time metrics.
AI CONTEXT: Pure data processing - no visualization, no I/O.

METRIC CATEGORIES:
1. Counts: total sessions, active (open) sessions, closed sessions
2. Time: total flight time over every session, open ones included
3. Extremes: average, longest and shortest over CLOSED sessions only
4. Rollups: the same numbers scoped to one device or one plane

NOT APPLICABLE:
With zero closed sessions, average/longest/shortest are None. Presenters
render None as "N/A"; nothing here ever divides by zero.

HOBBS TIME:
A Hobbs meter shows engine hours as a decimal. seconds / 3600 with two
decimals is a presentation format only; all arithmetic stays in seconds.

USAGE:
    engine = StatisticsEngine()
    stats = engine.calculate_session_stats(sessions)
    print(format_duration(stats.total_flight_time), format_hobbs(stats.total_flight_time))
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .config import Config
from .models import Device, Plane, Session, SessionStatus

__all__ = [
    "DeviceRollup",
    "FleetOverview",
    "PlaneFlightTime",
    "SessionStats",
    "StatisticsEngine",
    "filter_sessions",
    "format_duration",
    "format_hobbs",
    "round_half_up_div",
]

SECONDS_PER_HOUR = 3600
SECONDS_PER_MINUTE = 60
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def round_half_up_div(numerator: int, denominator: int) -> int:
    """
    Integer division rounded half up, for non-negative operands.

    Average flight times round .5 up; Python's round() would round half
    to even.

    Example:
        >>> round_half_up_div(3, 2)
        2
        >>> round_half_up_div(5, 2)
        3
    """
    return (2 * numerator + denominator) // (2 * denominator)


def format_duration(seconds: int | None) -> str:
    """
    Format seconds as whole hours and minutes, both floored.

    Args:
        seconds: Duration, or None for "not applicable".

    Returns:
        '{H}h {M}m', or Config.NOT_APPLICABLE for None.

    Example:
        >>> format_duration(5400)
        '1h 30m'
        >>> format_duration(59)
        '0h 0m'
    """
    if seconds is None:
        return Config.NOT_APPLICABLE
    hours = seconds // SECONDS_PER_HOUR
    minutes = (seconds % SECONDS_PER_HOUR) // SECONDS_PER_MINUTE
    return f"{hours}h {minutes}m"


def format_hobbs(seconds: int) -> str:
    """
    Format seconds as decimal Hobbs hours.

    Example:
        >>> format_hobbs(12600)
        '3.50'
    """
    return f"{seconds / SECONDS_PER_HOUR:.2f}"


def filter_sessions(
    sessions: Iterable[Session],
    device_uuid: str | None = None,
    status: SessionStatus | None = None,
) -> list[Session]:
    """
    Narrow sessions to one device and/or one status.

    Applied before aggregation and export so the numbers always describe
    exactly the rows on screen. None means "all" for either filter.
    """
    return [
        s
        for s in sessions
        if (device_uuid is None or s.device_uuid == device_uuid)
        and (status is None or s.status is status)
    ]


@dataclass(frozen=True)
class SessionStats:
    """
    Aggregate metrics over a collection of sessions.

    Attributes:
        total_sessions: Every session in scope.
        total_flight_time: Sum of run_seconds, open sessions included.
        active_sessions: Sessions still open.
        closed_sessions: Sessions with a final duration.
        average_flight_time: Mean closed duration (half-up), None if no closed.
        longest_flight: Longest closed duration, None if no closed.
        shortest_flight: Shortest closed duration, None if no closed.
    """

    total_sessions: int = 0
    total_flight_time: int = 0
    active_sessions: int = 0
    closed_sessions: int = 0
    average_flight_time: int | None = None
    longest_flight: int | None = None
    shortest_flight: int | None = None

    @property
    def hobbs_total(self) -> str:
        """Total flight time as decimal Hobbs hours."""
        return format_hobbs(self.total_flight_time)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses, keeping None for not-applicable."""
        return {
            "total_sessions": self.total_sessions,
            "total_flight_time": self.total_flight_time,
            "active_sessions": self.active_sessions,
            "closed_sessions": self.closed_sessions,
            "average_flight_time": self.average_flight_time,
            "longest_flight": self.longest_flight,
            "shortest_flight": self.shortest_flight,
            "hobbs_total": self.hobbs_total,
        }


@dataclass(frozen=True)
class DeviceRollup:
    """Session count and total flight time for one device."""

    device_uuid: str
    session_count: int = 0
    total_flight_time: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_uuid": self.device_uuid,
            "session_count": self.session_count,
            "total_flight_time": self.total_flight_time,
            "duration": format_duration(self.total_flight_time),
        }


@dataclass(frozen=True)
class PlaneFlightTime:
    """One row of the 'flight time by plane' summary."""

    plane_id: str
    tail_number: str
    session_count: int
    total_flight_time: int

    @property
    def hobbs_hours(self) -> str:
        return format_hobbs(self.total_flight_time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "plane_id": self.plane_id,
            "tail_number": self.tail_number,
            "session_count": self.session_count,
            "total_flight_time": self.total_flight_time,
            "hobbs_hours": self.hobbs_hours,
        }


@dataclass(frozen=True)
class FleetOverview:
    """Headline numbers for an owner's dashboard."""

    total_devices: int
    total_planes: int
    active_sessions: int
    total_flight_time: int
    recent_sessions: list[Session] = field(default_factory=list)

    @property
    def total_flight_hours(self) -> float:
        """Total flight time in hours, one decimal."""
        return round(self.total_flight_time / SECONDS_PER_HOUR, 1)


class StatisticsEngine:
    """
    Calculator for fleet flight-time statistics.

    DESIGN:
    - Stateless: Each method operates on provided data
    - Pure: No side effects, inputs never mutated
    - Scope-agnostic: device and plane rollups are the fleet computation
      applied to a narrower set of sessions

    Business context: Owners bill, schedule maintenance and log engine
    time from these numbers, so the same sessions must always produce the
    same totals no matter which page shows them.
    """

    def calculate_session_stats(self, sessions: Iterable[Session]) -> SessionStats:
        """
        Aggregate a collection of sessions.

        Args:
            sessions: Sessions in scope (already filtered).

        Returns:
            SessionStats. Extremes and average are None when no session in
            scope is closed.

        Example:
            >>> stats = StatisticsEngine().calculate_session_stats([])
            >>> stats.total_sessions, stats.average_flight_time
            (0, None)
        """
        total_sessions = 0
        total_flight_time = 0
        active = 0
        closed_durations: list[int] = []

        for session in sessions:
            total_sessions += 1
            total_flight_time += session.run_seconds
            if session.is_open:
                active += 1
            else:
                closed_durations.append(session.run_seconds)

        if not closed_durations:
            return SessionStats(
                total_sessions=total_sessions,
                total_flight_time=total_flight_time,
                active_sessions=active,
            )

        return SessionStats(
            total_sessions=total_sessions,
            total_flight_time=total_flight_time,
            active_sessions=active,
            closed_sessions=len(closed_durations),
            average_flight_time=round_half_up_div(sum(closed_durations), len(closed_durations)),
            longest_flight=max(closed_durations),
            shortest_flight=min(closed_durations),
        )

    def calculate_device_rollup(self, device_uuid: str, sessions: Iterable[Session]) -> DeviceRollup:
        """
        Count and total the sessions reported by one device.

        Sessions of other devices in the input are ignored.
        """
        own = filter_sessions(sessions, device_uuid=device_uuid)
        return DeviceRollup(
            device_uuid=device_uuid,
            session_count=len(own),
            total_flight_time=sum(s.run_seconds for s in own),
        )

    def calculate_device_rollups(
        self, device_uuids: Iterable[str], sessions: Iterable[Session]
    ) -> dict[str, DeviceRollup]:
        """
        Rollups for several devices in one pass.

        Every requested token gets an entry, zero-valued if it reported
        nothing.
        """
        counts: dict[str, int] = {}
        totals: dict[str, int] = {}
        for session in sessions:
            counts[session.device_uuid] = counts.get(session.device_uuid, 0) + 1
            totals[session.device_uuid] = totals.get(session.device_uuid, 0) + session.run_seconds
        return {
            token: DeviceRollup(
                device_uuid=token,
                session_count=counts.get(token, 0),
                total_flight_time=totals.get(token, 0),
            )
            for token in device_uuids
        }

    def calculate_plane_stats(
        self, plane_id: str, devices: Iterable[Device], sessions: Iterable[Session]
    ) -> SessionStats:
        """
        Aggregate the sessions of devices currently assigned to a plane.

        Business context: A device moved to another plane takes its history
        with it; plane totals follow current assignment, not the plane the
        device was on at the time of the flight.
        """
        tokens = {d.device_uuid for d in devices if d.plane_id == plane_id}
        return self.calculate_session_stats(s for s in sessions if s.device_uuid in tokens)

    def recent_sessions(
        self, sessions: Iterable[Session], limit: int | None = None
    ) -> list[Session]:
        """
        Most recent sessions by session_start, newest first.

        Rows with an unparseable session_start go last.

        Args:
            sessions: Sessions in scope.
            limit: Maximum rows. Default: Config.RECENT_SESSIONS_LIMIT
        """
        limit = Config.RECENT_SESSIONS_LIMIT if limit is None else limit
        rows = list(sessions)
        dated = [s for s in rows if s.started_at is not None]
        undated = [s for s in rows if s.started_at is None]
        dated.sort(key=lambda s: s.started_at or _EPOCH, reverse=True)
        return (dated + undated)[:limit]

    def flight_time_by_plane(
        self, sessions: Iterable[Session], devices: Iterable[Device]
    ) -> list[PlaneFlightTime]:
        """
        Summarize sessions per plane through the devices assigned to it.

        Only devices whose joined plane is loaded contribute. Planes with no
        flight time are omitted. Rows are ordered by tail number.
        """
        planes: dict[str, Plane] = {}
        plane_of_device: dict[str, str] = {}
        for device in devices:
            if device.plane is not None:
                planes[device.plane.id] = device.plane
                plane_of_device[device.device_uuid] = device.plane.id

        counts: dict[str, int] = {}
        totals: dict[str, int] = {}
        for session in sessions:
            plane_id = plane_of_device.get(session.device_uuid)
            if plane_id is None:
                continue
            counts[plane_id] = counts.get(plane_id, 0) + 1
            totals[plane_id] = totals.get(plane_id, 0) + session.run_seconds

        rows = [
            PlaneFlightTime(
                plane_id=plane_id,
                tail_number=planes[plane_id].tail_number,
                session_count=counts[plane_id],
                total_flight_time=total,
            )
            for plane_id, total in totals.items()
            if total > 0
        ]
        return sorted(rows, key=lambda r: r.tail_number.casefold())

    def calculate_overview(
        self,
        devices: Sequence[Device],
        planes: Sequence[Plane],
        sessions: Sequence[Session],
        limit: int | None = None,
    ) -> FleetOverview:
        """
        Headline dashboard numbers for one owner's fleet.

        Active sessions are counted over every session in scope, not just
        the recent ones shown.
        """
        stats = self.calculate_session_stats(sessions)
        return FleetOverview(
            total_devices=len(devices),
            total_planes=len(planes),
            active_sessions=stats.active_sessions,
            total_flight_time=stats.total_flight_time,
            recent_sessions=self.recent_sessions(sessions, limit),
        )

    def generate_summary_report(
        self,
        planes: Sequence[Plane],
        devices: Sequence[Device],
        sessions: Sequence[Session],
    ) -> str:
        """
        Generate a text summary of an owner's fleet for terminal display.

        Business context: Quick answer to "how many hours has each plane
        flown?" without opening the dashboard, e.g. before an oil change.

        Args:
            planes: Owner's planes.
            devices: Owner's devices.
            sessions: Sessions of those devices.

        Returns:
            Multi-line report with fleet totals, flight statistics and one
            line per plane.

        Example:
            >>> print(StatisticsEngine().generate_summary_report([], [], []))
            ==================================================
            HOBBS TRACKER - FLEET REPORT
            ...
        """
        stats = self.calculate_session_stats(sessions)

        lines = [
            "=" * 50,
            "HOBBS TRACKER - FLEET REPORT",
            "=" * 50,
            "",
            "✈️ FLEET",
            f"  • Planes: {len(planes)}",
            f"  • Devices: {len(devices)}",
            "",
            "⏱️ FLIGHT TIME",
            f"  • Total sessions: {stats.total_sessions}",
            f"  • Active sessions: {stats.active_sessions}",
            f"  • Total flight time: {format_duration(stats.total_flight_time)}"
            f" ({stats.hobbs_total} hrs)",
            f"  • Average flight: {format_duration(stats.average_flight_time)}",
            f"  • Longest flight: {format_duration(stats.longest_flight)}",
            f"  • Shortest flight: {format_duration(stats.shortest_flight)}",
            "",
            "🛩️ BY PLANE",
        ]

        if not planes:
            lines.append("  • No planes registered")
        for plane in planes:
            plane_stats = self.calculate_plane_stats(plane.id, devices, sessions)
            lines.append(
                f"  • {plane.tail_number}: {plane_stats.hobbs_total} hrs"
                f" over {plane_stats.total_sessions} session(s)"
            )

        lines.extend(["", "=" * 50])
        return "\n".join(lines)
