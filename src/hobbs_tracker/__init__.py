"""
Hobbs Tracker.

PURPOSE: Track aircraft-mounted telemetry devices, their flight sessions, and
fleet flight-time (Hobbs) analytics for aircraft owners.

PACKAGE STRUCTURE:
- models.py: Plane, Device, Session, Actor dataclasses
- errors.py: Error kinds surfaced by every layer
- storage.py: JSON persistence gateway
- assignment.py: Device ownership/assignment state machine
- policy.py: Access policy gate (owner vs administrator)
- ledger.py: Session open/accumulate/close/dedup rules
- statistics.py: Session aggregation engine
- presenters.py: View models for tables, dashboards and charts
- export.py: CSV export
- fleet_service.py: Operation layer shared by CLI and web
- cli.py: Command line entry point
- web/: FastAPI dashboard and JSON API

QUICK START:
    # Launch dashboard
    python -m hobbs_tracker dashboard

    # Print a fleet report for one owner
    python -m hobbs_tracker report --user <user-id>
"""

from hobbs_tracker.__version__ import (
    __author__,
    __copyright__,
    __description__,
    __license__,
    __title__,
    __url__,
    __version__,
    __version_date__,
)

__all__ = [
    "__version__",
    "__version_date__",
    "__title__",
    "__description__",
    "__url__",
    "__author__",
    "__license__",
    "__copyright__",
]
