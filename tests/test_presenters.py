"""Tests for presenters module."""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

# Add tests directory to path for conftest imports
sys.path.insert(0, str(Path(__file__).parent))

from conftest import make_device, make_session
from hobbs_tracker.models import Device, Plane, SessionStatus
from hobbs_tracker.presenters import (
    ChartPresenter,
    DashboardPresenter,
    SessionRowViewModel,
    relative_time,
)
from hobbs_tracker.statistics import DeviceRollup, StatisticsEngine

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def presenter() -> DashboardPresenter:
    return DashboardPresenter(StatisticsEngine())


@pytest.fixture
def plane() -> Plane:
    return Plane(id="plane-a", user_id="alice", tail_number="N123AB")


@pytest.fixture
def fleet_devices(plane: Plane) -> list[Device]:
    """Named device on N123AB plus an unnamed, unassigned one."""
    on_plane = make_device("dev-a1-0000-0000", "alice", plane.id, name="Panel unit")
    on_plane.plane = plane
    loose = make_device("dev-a2-0000-0000", "alice")
    return [on_plane, loose]


class TestRelativeTime:
    @pytest.mark.parametrize(
        ("timestamp", "expected"),
        [
            ("2026-03-01T11:59:30+00:00", "just now"),
            ("2026-03-01T11:59:00+00:00", "1 minute ago"),
            ("2026-03-01T11:55:00+00:00", "5 minutes ago"),
            ("2026-03-01T10:00:00+00:00", "2 hours ago"),
            ("2026-02-28T12:00:00+00:00", "1 day ago"),
            ("2026-02-26T12:00:00+00:00", "3 days ago"),
        ],
    )
    def test_relative(self, timestamp: str, expected: str) -> None:
        assert relative_time(timestamp, now=NOW) == expected

    @pytest.mark.parametrize("timestamp", [None, "", "garbage"])
    def test_not_applicable(self, timestamp: str | None) -> None:
        assert relative_time(timestamp, now=NOW) == "N/A"


class TestSessionRowViewModel:
    """Test suite for session row resolution and display properties."""

    def test_resolves_device_and_plane(self, fleet_devices: list[Device]) -> None:
        session = make_session("s1", "dev-a1-0000-0000", "2026-01-05T09:05:00+00:00", 5400)
        row = SessionRowViewModel.build(session, fleet_devices[0])
        assert row.device_label == "Panel unit"
        assert row.plane_label == "N123AB"
        assert row.plane_assigned
        assert row.short_token == "dev-a1-0"
        assert row.duration_display == "1h 30m"

    def test_unknown_device(self) -> None:
        """Verifies sessions of deleted devices still render.

        Business context:
        Deleting a device keeps its sessions. The table must show them as
        'Unknown Device' rather than dropping billed flight time from view.
        """
        session = make_session("s1", "deleted-token", "2026-01-05T09:05:00+00:00", 60)
        row = SessionRowViewModel.build(session, None)
        assert row.device_label == "Unknown Device"
        assert row.plane_label == "Not assigned"
        assert not row.device_known

    def test_unnamed_device_label(self, fleet_devices: list[Device]) -> None:
        session = make_session("s1", "dev-a2-0000-0000", "2026-01-05T09:05:00+00:00", 60)
        row = SessionRowViewModel.build(session, fleet_devices[1])
        assert row.device_label == "Unknown Device"
        assert row.plane_label == "Not assigned"
        assert row.device_known

    def test_start_display(self) -> None:
        row = SessionRowViewModel.build(
            make_session("s1", "d", "2026-01-05T09:05:00+00:00", 60), None
        )
        assert row.start_date_display == "Jan 5, 2026"
        assert row.start_time_display == "9:05 AM"

    def test_start_display_afternoon_and_midnight(self) -> None:
        afternoon = SessionRowViewModel.build(
            make_session("s1", "d", "2026-01-05T15:30:00+00:00", 60), None
        )
        midnight = SessionRowViewModel.build(
            make_session("s2", "d", "2026-01-05T00:10:00+00:00", 60), None
        )
        assert afternoon.start_time_display == "3:30 PM"
        assert midnight.start_time_display == "12:10 AM"

    def test_unparseable_start(self) -> None:
        row = SessionRowViewModel.build(make_session("s1", "d", "bad", 60), None)
        assert row.start_date_display == "bad"
        assert row.start_time_display == ""

    def test_status_class(self) -> None:
        open_row = SessionRowViewModel.build(
            make_session("s1", "d", "2026-01-05T00:00:00+00:00", 60, status=SessionStatus.OPEN),
            None,
        )
        assert open_row.status_class == "status-open"

    def test_to_dict(self, fleet_devices: list[Device]) -> None:
        session = make_session("s1", "dev-a1-0000-0000", "2026-01-05T09:05:00+00:00", 60)
        data = SessionRowViewModel.build(session, fleet_devices[0]).to_dict()
        assert data["id"] == "s1"
        assert data["duration"] == "0h 1m"
        assert data["status"] == "closed"


class TestDashboardPresenter:
    """Test suite for page-level view models."""

    def test_overview(
        self, presenter: DashboardPresenter, plane: Plane, fleet_devices: list[Device]
    ) -> None:
        sessions = [
            make_session("s1", "dev-a1-0000-0000", "2026-02-01T10:00:00+00:00", 3600),
            make_session(
                "s2", "dev-a2-0000-0000", "2026-02-02T10:00:00+00:00", 1800, status=SessionStatus.OPEN
            ),
        ]
        overview = presenter.get_overview([plane], fleet_devices, sessions)

        assert overview.total_devices == 2
        assert overview.total_planes == 1
        assert overview.active_sessions == 1
        assert overview.total_flight_hours == 1.5
        assert [r.session_id for r in overview.recent_sessions] == ["s2", "s1"]
        assert "FLEET REPORT" in overview.report_text
        assert "report_text" not in overview.to_dict()

    def test_empty_overview(self, presenter: DashboardPresenter) -> None:
        overview = presenter.get_overview([], [], [])
        assert overview.to_dict() == {
            "total_devices": 0,
            "total_planes": 0,
            "active_sessions": 0,
            "total_flight_hours": 0.0,
            "recent_sessions": [],
        }

    def test_sessions_page_stats_match_filter(
        self, presenter: DashboardPresenter, fleet_devices: list[Device]
    ) -> None:
        """Verifies page statistics are computed from the filtered rows only.

        Business context:
        If the totals described every session while the table showed only
        closed ones, owners would bill from the wrong number.
        """
        sessions = [
            make_session("s1", "dev-a1-0000-0000", "2026-02-01T10:00:00+00:00", 3600),
            make_session(
                "s2", "dev-a1-0000-0000", "2026-02-02T10:00:00+00:00", 1800, status=SessionStatus.OPEN
            ),
            make_session("s3", "dev-a2-0000-0000", "2026-02-03T10:00:00+00:00", 600),
        ]
        page = presenter.get_sessions_page(
            fleet_devices,
            sessions,
            device_filter="dev-a1-0000-0000",
            status_filter=SessionStatus.CLOSED,
        )

        assert [r.session_id for r in page.rows] == ["s1"]
        assert page.stats.total_sessions == 1
        assert page.stats.total_flight_time == 3600
        assert page.total_hours_display == "1.0"
        assert [p.tail_number for p in page.plane_summary] == ["N123AB"]
        data = page.to_dict()
        assert data["filters"] == {"device": "dev-a1-0000-0000", "status": "closed"}

    def test_device_options_show_plane(
        self, presenter: DashboardPresenter, fleet_devices: list[Device]
    ) -> None:
        page = presenter.get_sessions_page(fleet_devices, [])
        assert page.device_options == [
            ("dev-a1-0000-0000", "Panel unit (N123AB)"),
            ("dev-a2-0000-0000", "dev-a2-0"),
        ]

    def test_device_list_with_warnings(
        self, presenter: DashboardPresenter, fleet_devices: list[Device]
    ) -> None:
        rollups = {"dev-a1-0000-0000": DeviceRollup("dev-a1-0000-0000", 2, 5400)}
        listing = presenter.get_device_list(fleet_devices, rollups, ["dev-a2-0000-0000"])

        first, second = listing.devices
        assert first.duration_display == "1h 30m"
        assert first.plane_label == "N123AB"
        assert first.state == "assigned"
        assert second.session_count == 0
        assert second.label == "dev-a2-0"
        assert listing.to_dict()["warnings"] == ["dev-a2-0000-0000"]

    def test_plane_detail(
        self, presenter: DashboardPresenter, plane: Plane, fleet_devices: list[Device]
    ) -> None:
        on_plane = [fleet_devices[0]]
        sessions = [
            make_session("s1", "dev-a1-0000-0000", "2026-02-01T10:00:00+00:00", 3600),
            make_session("s2", "dev-a1-0000-0000", "2026-02-02T10:00:00+00:00", 7200),
        ]
        detail = presenter.get_plane_detail(plane, on_plane, sessions)

        assert detail.hobbs_display == "3.00"
        assert detail.devices[0].session_count == 2
        data = detail.to_dict()
        assert data["average_flight"] == "1h 30m"
        assert data["longest_flight"] == "2h 0m"
        assert [r["id"] for r in data["recent_sessions"]] == ["s2", "s1"]

    def test_plane_detail_without_closed_sessions(
        self, presenter: DashboardPresenter, plane: Plane
    ) -> None:
        data = presenter.get_plane_detail(plane, [], []).to_dict()
        assert data["average_flight"] == "N/A"
        assert data["hobbs_total"] == "0.00"


class TestAdminListing:
    """Test suite for the administrator device listing."""

    @pytest.fixture
    def all_devices(self, plane: Plane) -> list[Device]:
        assigned = make_device("aaaa-1111", "alice", plane.id, name="Panel unit")
        assigned.plane = plane
        return [
            assigned,
            make_device("bbbb-2222", "bob"),
            make_device("cccc-3333"),
        ]

    @pytest.fixture
    def emails(self) -> dict[str, str]:
        return {"alice": "alice@example.com", "bob": "Bob@example.com"}

    def test_counters_cover_whole_fleet(
        self, presenter: DashboardPresenter, all_devices: list[Device], emails: dict[str, str]
    ) -> None:
        listing = presenter.get_admin_listing(all_devices, emails, search="panel")
        assert len(listing.rows) == 1
        assert listing.total_devices == 3
        assert listing.assigned_devices == 1
        assert listing.unassigned_devices == 2
        assert listing.owner_count == 2

    @pytest.mark.parametrize(
        ("term", "expected"),
        [
            ("BBBB", ["bbbb-2222"]),
            ("alice@", ["aaaa-1111"]),
            ("n123", ["aaaa-1111"]),
            ("", ["aaaa-1111", "bbbb-2222", "cccc-3333"]),
            ("zzz", []),
        ],
    )
    def test_search(
        self,
        presenter: DashboardPresenter,
        all_devices: list[Device],
        emails: dict[str, str],
        term: str,
        expected: list[str],
    ) -> None:
        listing = presenter.get_admin_listing(all_devices, emails, search=term)
        assert [r.device_uuid for r in listing.rows] == expected

    def test_owner_filter_unassigned(
        self, presenter: DashboardPresenter, all_devices: list[Device], emails: dict[str, str]
    ) -> None:
        listing = presenter.get_admin_listing(all_devices, emails, owner_filter="unassigned")
        assert [r.device_uuid for r in listing.rows] == ["cccc-3333"]

    def test_owner_filter_by_user(
        self, presenter: DashboardPresenter, all_devices: list[Device], emails: dict[str, str]
    ) -> None:
        listing = presenter.get_admin_listing(all_devices, emails, owner_filter="bob")
        assert [r.device_uuid for r in listing.rows] == ["bbbb-2222"]

    def test_owners_sorted_by_email(
        self, presenter: DashboardPresenter, all_devices: list[Device], emails: dict[str, str]
    ) -> None:
        listing = presenter.get_admin_listing(all_devices, emails)
        assert [email for _, email in listing.owners] == ["alice@example.com", "Bob@example.com"]
        assert listing.to_dict()["counters"]["owners"] == 2


class TestChartPresenter:
    """Test suite for chart rendering (requires matplotlib)."""

    def test_renders_png(self, plane: Plane, fleet_devices: list[Device]) -> None:
        pytest.importorskip("matplotlib")
        sessions = [make_session("s1", "dev-a1-0000-0000", "2026-02-01T10:00:00+00:00", 3600)]
        png = ChartPresenter(StatisticsEngine()).render_plane_hours_chart(
            [plane], fleet_devices, sessions
        )
        assert png.startswith(b"\x89PNG")

    def test_renders_placeholder_without_planes(self) -> None:
        pytest.importorskip("matplotlib")
        png = ChartPresenter(StatisticsEngine()).render_plane_hours_chart([], [], [])
        assert png.startswith(b"\x89PNG")
