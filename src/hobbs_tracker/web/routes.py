"""
FastAPI routes for the Hobbs Tracker dashboard.

PURPOSE: Thin route handlers that delegate to FleetService.
AI CONTEXT: Routes should be simple - business logic in the service and presenters.

ROUTE STRUCTURE:
- / : Dashboard page (full HTML)
- /charts/* : PNG chart images
- /api/* : JSON endpoints
- /api/admin/* : Administrator-only JSON endpoints

IDENTITY:
Every route depends on get_actor(), which reads the trusted reverse-proxy
headers. A missing identity raises UnauthenticatedError, answered with 401
by the handler registered in create_app().

STATUS CODES:
Failed ServiceResults are answered with the status of their error kind
(404, 409, 401, 403, 502, 422).
"""

from __future__ import annotations

import html
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel

from ..errors import http_status_for
from ..fleet_service import FleetService, ServiceResult
from ..models import Actor
from ..policy import HeaderIdentityOracle
from ..presenters import ChartPresenter
from ..statistics import StatisticsEngine
from ..storage import StorageManager

__all__ = [
    "router",
    "get_storage",
    "get_statistics",
    "get_fleet_service",
    "get_chart_presenter",
    "get_actor",
]

router = APIRouter()

# =============================================================================
# CSS Styles
# =============================================================================

_DASHBOARD_CSS = """
:root {
    --bg: #0f172a;
    --surface: #1e293b;
    --border: #334155;
    --text: #f1f5f9;
    --text-muted: #94a3b8;
    --primary: #3b82f6;
    --success: #22c55e;
}
* { box-sizing: border-box; margin: 0; padding: 0; }
body {
    font-family: system-ui, -apple-system, sans-serif;
    background: var(--bg);
    color: var(--text);
    line-height: 1.6;
    padding: 1rem;
}
.container { max-width: 1400px; margin: 0 auto; }
header {
    display: flex;
    justify-content: space-between;
    align-items: center;
    margin-bottom: 1.5rem;
    padding-bottom: 1rem;
    border-bottom: 1px solid var(--border);
}
h1 { font-size: 1.5rem; font-weight: 600; }
.grid {
    display: grid;
    grid-template-columns: repeat(auto-fit, minmax(220px, 1fr));
    gap: 1rem;
    margin-bottom: 1.5rem;
}
.panel {
    background: var(--surface);
    border: 1px solid var(--border);
    border-radius: 0.5rem;
    padding: 1rem;
}
.panel h2 {
    font-size: 1rem;
    font-weight: 500;
    color: var(--text-muted);
    margin-bottom: 0.75rem;
}
.metric { font-size: 2rem; font-weight: 700; }
table { width: 100%; border-collapse: collapse; }
th, td {
    text-align: left;
    padding: 0.75rem;
    border-bottom: 1px solid var(--border);
}
th { color: var(--text-muted); font-weight: 500; font-size: 0.875rem; }
code { color: var(--text-muted); font-size: 0.75rem; }
.status-badge {
    display: inline-block;
    padding: 0.25rem 0.5rem;
    border-radius: 9999px;
    font-size: 0.75rem;
    font-weight: 500;
}
.status-open { background: var(--success); color: white; }
.status-closed { background: var(--text-muted); color: var(--bg); }
.chart-container { display: flex; justify-content: center; padding: 1rem 0; }
.chart-container img { max-width: 100%; height: auto; border-radius: 0.25rem; }
pre { white-space: pre-wrap; font-size: 0.875rem; }
footer {
    margin-top: 2rem;
    padding-top: 1rem;
    border-top: 1px solid var(--border);
    color: var(--text-muted);
    font-size: 0.875rem;
    text-align: center;
}
"""

# =============================================================================
# Request Bodies
# =============================================================================


class PlaneCreate(BaseModel):
    """Body of POST /api/planes."""

    tail_number: str
    model: str | None = None
    manufacturer: str | None = None


class PlaneUpdate(BaseModel):
    """Body of PATCH /api/planes/{id}; only fields sent are changed."""

    tail_number: str | None = None
    model: str | None = None
    manufacturer: str | None = None


class DeviceUpdate(BaseModel):
    """Body of PATCH /api/devices/{token}; plane_id null unassigns."""

    name: str | None = None
    plane_id: str | None = None


class OwnerAssignment(BaseModel):
    """Body of PUT /api/admin/devices/{token}/owner."""

    user_id: str


# =============================================================================
# Dependency Factory Functions
# =============================================================================


def get_storage() -> StorageManager:
    """
    Create and return a StorageManager instance for data access.

    Creates a new StorageManager each request so every request works on a
    fresh snapshot of the JSON files.

    Example:
        >>> storage = get_storage()
        >>> storage.get_planes_for_owner("user-1")
        []
    """
    return StorageManager()


def get_statistics() -> StatisticsEngine:
    """Create and return a StatisticsEngine instance for calculations."""
    return StatisticsEngine()


def get_fleet_service(
    storage: Annotated[StorageManager, Depends(get_storage)],
    statistics: Annotated[StatisticsEngine, Depends(get_statistics)],
) -> FleetService:
    """
    Assemble the FleetService for one request.

    Business context: Tests override get_storage with a StorageManager over
    a MockFileSystem; everything downstream picks it up from here.
    """
    return FleetService(storage=storage, stats_engine=statistics)


def get_chart_presenter(
    statistics: Annotated[StatisticsEngine, Depends(get_statistics)],
) -> ChartPresenter:
    """Create the chart presenter (matplotlib is imported lazily on render)."""
    return ChartPresenter(statistics)


def get_actor(
    request: Request,
    service: Annotated[FleetService, Depends(get_fleet_service)],
) -> Actor:
    """
    Resolve the acting identity from reverse-proxy headers.

    Administrator status is looked up once here from the user directory.

    Raises:
        UnauthenticatedError: If the user header is missing (answered 401).
    """
    oracle = HeaderIdentityOracle(request.headers, service.storage)
    return service.policy.resolve(oracle)


ServiceDep = Annotated[FleetService, Depends(get_fleet_service)]
ActorDep = Annotated[Actor, Depends(get_actor)]


def _respond(result: ServiceResult, status_code: int = 200) -> JSONResponse:
    """Serialize a ServiceResult with the status matching its outcome."""
    if not result.success:
        status_code = http_status_for(result.error_kind)
    return JSONResponse(content=result.to_dict(), status_code=status_code)


# ============================================================================
# Full Page Routes
# ============================================================================


@router.get("/", response_class=HTMLResponse)
async def dashboard_page(service: ServiceDep, actor: ActorDep) -> Response:
    """
    Render the dashboard page: fleet counters, recent activity, chart, report.

    Business context: The landing page answers "what is flying right now
    and how many hours have we logged?" at a glance.

    Returns:
        HTMLResponse with the full page, or the failed ServiceResult as
        JSON with its error status.
    """
    result = service.get_overview(actor)
    if not result.success or result.data is None:
        return _respond(result)
    html_page = _render_dashboard_html(result.data, actor)
    return HTMLResponse(content=html_page, media_type="text/html; charset=utf-8")


# ============================================================================
# Chart Routes
# ============================================================================


@router.get("/charts/planes.png")
async def planes_chart(
    service: ServiceDep,
    actor: ActorDep,
    presenter: Annotated[ChartPresenter, Depends(get_chart_presenter)],
) -> Response:
    """
    Serve Hobbs hours per plane as a PNG image.

    Falls back to an SVG placeholder if matplotlib is not installed.

    Raises:
        GatewayFailureError: If storage cannot be read (answered 502).
    """
    snapshot = service.fleet_snapshot(actor)
    try:
        png_bytes = presenter.render_plane_hours_chart(
            snapshot.planes, snapshot.devices, snapshot.sessions
        )
        return Response(content=png_bytes, media_type="image/png")
    except ImportError:
        # matplotlib not installed - return placeholder
        return Response(
            content=_placeholder_chart_svg("Flight Hours"),
            media_type="image/svg+xml",
        )


# ============================================================================
# JSON API Routes
# ============================================================================


@router.get("/api/overview")
async def api_overview(service: ServiceDep, actor: ActorDep) -> JSONResponse:
    """
    Fleet overview as JSON.

    Example:
        >>> # GET /api/overview
        >>> {"success": true, "data": {"total_devices": 2, "total_planes": 1,
        ...  "active_sessions": 0, "total_flight_hours": 3.5, ...}}
    """
    return _respond(service.get_overview(actor))


@router.get("/api/planes")
async def api_list_planes(service: ServiceDep, actor: ActorDep) -> JSONResponse:
    """The actor's planes with device counts and Hobbs totals."""
    return _respond(service.list_planes(actor))


@router.post("/api/planes")
async def api_create_plane(
    body: PlaneCreate, service: ServiceDep, actor: ActorDep
) -> JSONResponse:
    """Register a plane; 422 on a blank or duplicate tail number."""
    result = service.create_plane(
        actor, body.tail_number, model=body.model, manufacturer=body.manufacturer
    )
    return _respond(result, status_code=201)


@router.get("/api/planes/{plane_id}")
async def api_plane_detail(plane_id: str, service: ServiceDep, actor: ActorDep) -> JSONResponse:
    """Plane detail: devices with rollups, plane stats, recent sessions."""
    return _respond(service.get_plane_detail(actor, plane_id))


@router.patch("/api/planes/{plane_id}")
async def api_update_plane(
    plane_id: str, body: PlaneUpdate, service: ServiceDep, actor: ActorDep
) -> JSONResponse:
    """Edit a plane; only fields present in the body change."""
    return _respond(service.update_plane(actor, plane_id, body.model_dump(exclude_unset=True)))


@router.delete("/api/planes/{plane_id}")
async def api_delete_plane(plane_id: str, service: ServiceDep, actor: ActorDep) -> JSONResponse:
    """Delete a plane; its devices become unassigned."""
    return _respond(service.delete_plane(actor, plane_id))


@router.get("/api/devices")
async def api_list_devices(service: ServiceDep, actor: ActorDep) -> JSONResponse:
    """The actor's devices with rollups and best-effort warnings."""
    return _respond(service.list_devices(actor))


@router.patch("/api/devices/{device_uuid}")
async def api_update_device(
    device_uuid: str, body: DeviceUpdate, service: ServiceDep, actor: ActorDep
) -> JSONResponse:
    """
    Rename, assign or unassign a device.

    Example:
        >>> # PATCH /api/devices/550e8400-... {"plane_id": "p-1"}
        >>> # 409 if the plane belongs to another owner than the device
    """
    return _respond(service.update_device(actor, device_uuid, body.model_dump(exclude_unset=True)))


@router.delete("/api/devices/{device_uuid}")
async def api_delete_device(
    device_uuid: str, service: ServiceDep, actor: ActorDep
) -> JSONResponse:
    """Delete a device; its sessions are kept."""
    return _respond(service.delete_device(actor, device_uuid))


@router.get("/api/sessions")
async def api_list_sessions(
    service: ServiceDep,
    actor: ActorDep,
    device: Annotated[str | None, Query()] = None,
    status: Annotated[str | None, Query()] = None,
) -> JSONResponse:
    """Filtered sessions with matching statistics and plane summary."""
    return _respond(service.list_sessions(actor, device=device, status=status))


@router.get("/api/sessions/export.csv")
async def api_export_sessions(
    service: ServiceDep,
    actor: ActorDep,
    device: Annotated[str | None, Query()] = None,
    status: Annotated[str | None, Query()] = None,
) -> Response:
    """
    Download the filtered sessions as CSV.

    Returns:
        text/csv attachment named sessions-YYYY-MM-DD.csv, or the failed
        ServiceResult as JSON.
    """
    result = service.export_sessions_csv(actor, device=device, status=status)
    if not result.success or result.data is None:
        return _respond(result)
    return Response(
        content=result.data["content"],
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{result.data["filename"]}"'},
    )


@router.post("/api/sessions/{session_id}/close")
async def api_close_session(
    session_id: str, service: ServiceDep, actor: ActorDep
) -> JSONResponse:
    """Close an open session."""
    return _respond(service.close_session(actor, session_id))


# ============================================================================
# Admin Routes
# ============================================================================


@router.get("/api/admin/devices")
async def api_admin_devices(
    service: ServiceDep,
    actor: ActorDep,
    search: Annotated[str, Query()] = "",
    owner: Annotated[str, Query()] = "all",
) -> JSONResponse:
    """Every device in the system; 403 for non-administrators."""
    return _respond(service.admin_list_devices(actor, search=search, owner=owner))


@router.put("/api/admin/devices/{device_uuid}/owner")
async def api_admin_set_owner(
    device_uuid: str, body: OwnerAssignment, service: ServiceDep, actor: ActorDep
) -> JSONResponse:
    """Claim an orphan device for a user, or transfer an owned one."""
    return _respond(service.admin_set_owner(actor, device_uuid, body.user_id))


@router.delete("/api/admin/devices/{device_uuid}/owner")
async def api_admin_release_owner(
    device_uuid: str, service: ServiceDep, actor: ActorDep
) -> JSONResponse:
    """Return a device to the orphan pool."""
    return _respond(service.admin_release_owner(actor, device_uuid))


# ============================================================================
# Template Rendering Helpers
# ============================================================================


def _placeholder_chart_svg(title: str) -> bytes:
    """
    Generate a placeholder SVG when matplotlib is unavailable.

    Example:
        >>> b'Flight Hours Chart' in _placeholder_chart_svg('Flight Hours')
        True
    """
    svg = f"""<svg xmlns="http://www.w3.org/2000/svg" width="400" height="200">
        <rect width="100%" height="100%" fill="#f1f5f9"/>
        <text x="50%" y="50%" text-anchor="middle" fill="#64748b" font-size="16">
            {title} Chart (install matplotlib)
        </text>
    </svg>"""
    return svg.encode("utf-8")


def _render_dashboard_html(overview: dict[str, Any], actor: Actor) -> str:
    """
    Render the complete dashboard HTML page from overview data.

    Args:
        overview: Overview data as returned by FleetService.get_overview().
        actor: Signed-in user, shown in the header.

    Returns:
        Complete HTML document. User-supplied text (names, tail numbers)
        is escaped.
    """
    sessions_html = _render_sessions_table(overview.get("recent_sessions", []))
    who = html.escape(actor.email or actor.user_id)
    report = html.escape(overview.get("report_text", ""))

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Hobbs Tracker - Dashboard</title>
    <style>
        {_DASHBOARD_CSS}
    </style>
</head>
<body>
    <div class="container">
        <header>
            <h1>✈️ Hobbs Tracker</h1>
            <span>{who}</span>
        </header>

        <div class="grid">
            <div class="panel"><h2>Devices</h2>
                <div class="metric">{overview.get("total_devices", 0)}</div></div>
            <div class="panel"><h2>Planes</h2>
                <div class="metric">{overview.get("total_planes", 0)}</div></div>
            <div class="panel"><h2>Active Sessions</h2>
                <div class="metric">{overview.get("active_sessions", 0)}</div></div>
            <div class="panel"><h2>Flight Hours</h2>
                <div class="metric">{overview.get("total_flight_hours", 0.0):.1f}</div></div>
        </div>

        <div class="panel" style="margin-top: 1rem;">
            <h2>📋 Recent Activity</h2>
            {sessions_html}
        </div>

        <div class="panel" style="margin-top: 1rem;">
            <h2>📊 Flight Hours by Plane</h2>
            <div class="chart-container">
                <img src="/charts/planes.png" alt="Flight Hours by Plane">
            </div>
        </div>

        <div class="panel" style="margin-top: 1rem;">
            <h2>📝 Report</h2>
            <pre>{report}</pre>
        </div>

        <footer>
            Hobbs Tracker &bull; Powered by FastAPI
        </footer>
    </div>
</body>
</html>"""


def _render_sessions_table(sessions: list[dict[str, Any]]) -> str:
    """
    Render session rows as an HTML table.

    Shows placeholder text when there are no sessions.

    Example:
        >>> '<table>' in _render_sessions_table([])
        True
    """
    rows = ""
    for s in sessions:
        status = html.escape(str(s.get("status", "")))
        rows += f"""<tr>
            <td><span class="status-badge status-{status}">{status}</span></td>
            <td>{html.escape(str(s.get("session_start", "")))}</td>
            <td>{html.escape(str(s.get("device_label", "")))}<br>
                <code>{html.escape(str(s.get("short_token", "")))}...</code></td>
            <td>{html.escape(str(s.get("plane_label", "")))}</td>
            <td>{html.escape(str(s.get("duration", "")))}</td>
        </tr>"""

    if not rows:
        rows = (
            '<tr><td colspan="5" style="text-align: center; '
            'color: var(--text-muted);">No sessions yet</td></tr>'
        )

    return f"""<table>
        <thead>
            <tr>
                <th>Status</th>
                <th>Session Start</th>
                <th>Device</th>
                <th>Plane</th>
                <th>Duration</th>
            </tr>
        </thead>
        <tbody>
            {rows}
        </tbody>
    </table>"""
