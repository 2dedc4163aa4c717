"""
Web dashboard module for Hobbs Tracker.

PURPOSE: FastAPI-based dashboard and JSON API.
AI CONTEXT: Identity comes from trusted reverse-proxy headers (X-User-Id, X-User-Email).

FEATURES:
- Dashboard page with fleet counters and recent activity
- Server-side chart rendering (matplotlib, optional)
- JSON API for planes, devices, sessions and CSV export
- Administrator device listing and ownership changes

USAGE:
    # Via CLI
    hobbs-tracker dashboard

    # Programmatically
    from hobbs_tracker.web import create_app
    app = create_app()
    # Run with uvicorn
"""

from .app import create_app, run_dashboard

__all__ = ["create_app", "run_dashboard"]
