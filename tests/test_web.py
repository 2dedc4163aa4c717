"""Tests for web module."""

from __future__ import annotations

import csv
import io
import sys
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

# Skip all tests if FastAPI not installed
fastapi = pytest.importorskip("fastapi")

from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

# Add tests directory to path for conftest imports
sys.path.insert(0, str(Path(__file__).parent))

from conftest import MockFileSystem, SeededFleet  # noqa: E402
from hobbs_tracker.presenters import ChartPresenter  # noqa: E402
from hobbs_tracker.storage import StorageManager  # noqa: E402
from hobbs_tracker.web import create_app  # noqa: E402
from hobbs_tracker.web.routes import get_storage  # noqa: E402

ALICE = {"X-User-Id": "alice", "X-User-Email": "alice@example.com"}
BOB = {"X-User-Id": "bob"}
ROOT = {"X-User-Id": "root"}


@pytest.fixture
def app(storage: StorageManager) -> FastAPI:
    """Create the dashboard app with storage swapped for the mock-backed one.

    Business context:
    Every route builds its FleetService from get_storage, so one override
    points the whole API at in-memory data.
    """
    application = create_app()
    application.dependency_overrides[get_storage] = lambda: storage
    return application


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def with_admin(storage: StorageManager) -> None:
    storage.save_user("root", email="ops@example.com", is_admin=True)
    storage.save_user("alice", email="alice@example.com")


class TestWebAppCreation:
    def test_create_app_returns_fastapi(self) -> None:
        assert isinstance(create_app(), FastAPI)

    def test_app_title(self) -> None:
        assert create_app().title == "Hobbs Tracker"


class TestAuthentication:
    """Test suite for identity header handling."""

    @pytest.mark.parametrize(
        "path", ["/", "/api/overview", "/api/planes", "/api/sessions", "/charts/planes.png"]
    )
    def test_missing_identity_is_401(self, client: TestClient, path: str) -> None:
        """Verifies every page refuses anonymous requests.

        Business context:
        The proxy in front of the dashboard sets X-User-Id. A request
        without it bypassed authentication and must see nothing.
        """
        response = client.get(path)
        assert response.status_code == 401
        assert response.json()["error_kind"] == "unauthenticated"

    def test_non_admin_admin_route_is_403(
        self, client: TestClient, seeded: SeededFleet
    ) -> None:
        response = client.get("/api/admin/devices", headers=ALICE)
        assert response.status_code == 403
        assert response.json()["error_kind"] == "access_denied"


class TestDashboardPage:
    def test_renders_html(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.get("/", headers=ALICE)
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "Hobbs Tracker" in response.text
        assert "alice@example.com" in response.text
        assert "Panel unit" in response.text

    def test_escapes_user_text(
        self, client: TestClient, storage: StorageManager, seeded: SeededFleet
    ) -> None:
        storage.update_device(seeded.dev_a1.device_uuid, {"name": "<script>x</script>"})
        response = client.get("/", headers=ALICE)
        assert "<script>x</script>" not in response.text
        assert "&lt;script&gt;" in response.text

    def test_empty_fleet(self, client: TestClient) -> None:
        response = client.get("/", headers=BOB)
        assert response.status_code == 200
        assert "No sessions yet" in response.text

    def test_storage_failure_is_502(
        self, client: TestClient, storage: StorageManager, mock_fs: MockFileSystem
    ) -> None:
        mock_fs.set_file(storage.planes_file, "{oops")
        response = client.get("/", headers=ALICE)
        assert response.status_code == 502


class TestChartRoute:
    def test_placeholder_without_matplotlib(self, client: TestClient, seeded: SeededFleet) -> None:
        with patch.object(
            ChartPresenter, "render_plane_hours_chart", side_effect=ImportError("matplotlib")
        ):
            response = client.get("/charts/planes.png", headers=ALICE)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("image/svg+xml")
        assert b"install matplotlib" in response.content

    def test_png_with_matplotlib(self, client: TestClient, seeded: SeededFleet) -> None:
        pytest.importorskip("matplotlib")
        response = client.get("/charts/planes.png", headers=ALICE)
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"


class TestPlaneApi:
    """Test suite for /api/planes."""

    def test_list(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.get("/api/planes", headers=ALICE)
        assert response.status_code == 200
        planes = response.json()["data"]["planes"]
        assert [p["tail_number"] for p in planes] == ["N123AB"]

    def test_create_returns_201(self, client: TestClient) -> None:
        response = client.post(
            "/api/planes", json={"tail_number": "N55", "model": "PA-28"}, headers=ALICE
        )
        assert response.status_code == 201
        assert response.json()["data"]["plane"]["user_id"] == "alice"

    def test_create_duplicate_is_422(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.post("/api/planes", json={"tail_number": "n123ab"}, headers=ALICE)
        assert response.status_code == 422
        assert response.json()["error_kind"] == "validation_failure"

    def test_create_without_body_field_is_422(self, client: TestClient) -> None:
        assert client.post("/api/planes", json={}, headers=ALICE).status_code == 422

    def test_detail_foreign_is_404(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.get(f"/api/planes/{seeded.alice_plane.id}", headers=BOB)
        assert response.status_code == 404

    def test_detail(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.get(f"/api/planes/{seeded.alice_plane.id}", headers=ALICE)
        assert response.status_code == 200
        assert response.json()["data"]["hobbs_total"] == "3.50"

    def test_patch_only_sent_fields(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.patch(
            f"/api/planes/{seeded.alice_plane.id}", json={"model": "182T"}, headers=ALICE
        )
        assert response.status_code == 200
        plane = response.json()["data"]["plane"]
        assert plane["model"] == "182T"
        assert plane["tail_number"] == "N123AB"
        assert plane["manufacturer"] == "Cessna"

    def test_delete(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.delete(f"/api/planes/{seeded.alice_plane.id}", headers=ALICE)
        assert response.status_code == 200
        assert response.json()["data"]["unassigned_devices"] == [seeded.dev_a1.device_uuid]


class TestDeviceApi:
    """Test suite for /api/devices."""

    def test_list(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.get("/api/devices", headers=ALICE)
        assert response.status_code == 200
        assert len(response.json()["data"]["devices"]) == 2

    def test_assign_and_unassign(self, client: TestClient, seeded: SeededFleet) -> None:
        path = f"/api/devices/{seeded.dev_a2.device_uuid}"
        assigned = client.patch(path, json={"plane_id": seeded.alice_plane.id}, headers=ALICE)
        assert assigned.status_code == 200
        assert assigned.json()["data"]["device"]["plane_id"] == seeded.alice_plane.id

        unassigned = client.patch(path, json={"plane_id": None}, headers=ALICE)
        assert unassigned.json()["data"]["device"]["plane_id"] is None

    def test_rename_leaves_plane(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.patch(
            f"/api/devices/{seeded.dev_a1.device_uuid}", json={"name": "Tail unit"}, headers=ALICE
        )
        device = response.json()["data"]["device"]
        assert device["name"] == "Tail unit"
        assert device["plane_id"] == seeded.alice_plane.id

    def test_cross_owner_assignment_is_409(
        self, client: TestClient, seeded: SeededFleet, with_admin: None
    ) -> None:
        response = client.patch(
            f"/api/devices/{seeded.dev_a2.device_uuid}",
            json={"plane_id": seeded.bob_plane.id},
            headers=ROOT,
        )
        assert response.status_code == 409
        assert response.json()["error_kind"] == "ownership_mismatch"

    def test_delete_foreign_is_404(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.delete(f"/api/devices/{seeded.dev_a1.device_uuid}", headers=BOB)
        assert response.status_code == 404


class TestSessionApi:
    """Test suite for /api/sessions and the CSV download."""

    def test_list_with_filters(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.get(
            "/api/sessions",
            params={"device": seeded.dev_a1.device_uuid, "status": "open"},
            headers=ALICE,
        )
        data = response.json()["data"]
        assert [s["id"] for s in data["sessions"]] == ["s3"]
        assert data["stats"]["active_sessions"] == 1

    def test_bad_status_is_422(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.get("/api/sessions", params={"status": "paused"}, headers=ALICE)
        assert response.status_code == 422

    def test_csv_download(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.get(
            "/api/sessions/export.csv", params={"status": "closed"}, headers=ALICE
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="sessions-')
        rows = list(csv.reader(io.StringIO(response.text)))
        assert len(rows) == 4

    def test_csv_foreign_device_is_404(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.get(
            "/api/sessions/export.csv", params={"device": seeded.dev_b1.device_uuid}, headers=ALICE
        )
        assert response.status_code == 404

    def test_close(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.post("/api/sessions/s3/close", headers=ALICE)
        assert response.status_code == 200
        assert response.json()["data"]["session"]["status"] == "closed"

    def test_close_twice_is_422(self, client: TestClient, seeded: SeededFleet) -> None:
        client.post("/api/sessions/s3/close", headers=ALICE)
        assert client.post("/api/sessions/s3/close", headers=ALICE).status_code == 422


class TestAdminApi:
    """Test suite for /api/admin."""

    def test_listing(self, client: TestClient, seeded: SeededFleet, with_admin: None) -> None:
        response = client.get("/api/admin/devices", params={"owner": "unassigned"}, headers=ROOT)
        assert response.status_code == 200
        data = response.json()["data"]
        assert [d["device_uuid"] for d in data["devices"]] == [seeded.orphan.device_uuid]
        assert data["counters"]["total"] == 4

    def test_claim_then_release(
        self, client: TestClient, seeded: SeededFleet, with_admin: None, storage: StorageManager
    ) -> None:
        path = f"/api/admin/devices/{seeded.orphan.device_uuid}/owner"
        claimed = client.put(path, json={"user_id": "alice"}, headers=ROOT)
        assert claimed.status_code == 200
        assert storage.get_device(seeded.orphan.device_uuid).user_id == "alice"  # type: ignore[union-attr]

        released = client.delete(path, headers=ROOT)
        assert released.status_code == 200
        assert storage.get_device(seeded.orphan.device_uuid).user_id is None  # type: ignore[union-attr]

    def test_owner_cannot_claim(self, client: TestClient, seeded: SeededFleet) -> None:
        response = client.put(
            f"/api/admin/devices/{seeded.orphan.device_uuid}/owner",
            json={"user_id": "alice"},
            headers=ALICE,
        )
        assert response.status_code == 403

    def test_admin_sees_foreign_plane(
        self, client: TestClient, seeded: SeededFleet, with_admin: None
    ) -> None:
        response = client.get(f"/api/planes/{seeded.bob_plane.id}", headers=ROOT)
        assert response.status_code == 200
