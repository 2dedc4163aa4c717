"""
CLI entry point for Hobbs Tracker.

PURPOSE: Command-line interface for the dashboard, reports, exports and operator tasks.
AI CONTEXT: Main entry points for package execution.

USAGE:
    # Launch the dashboard (default)
    python -m hobbs_tracker

    # Or via CLI command (after install)
    hobbs-tracker

    # Subcommands
    hobbs-tracker dashboard --port 8000          # Launch web dashboard
    hobbs-tracker report --user USER             # Print fleet report
    hobbs-tracker export --user USER --status closed
    hobbs-tracker record --device TOKEN --start 2026-01-01T10:00:00Z \\
        --seconds 1800 --msg-id m-1 [--closed]   # Replay a telemetry report
    hobbs-tracker user USER --email a@b.c --admin
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING

from .config import Config

if TYPE_CHECKING:
    from .fleet_service import FleetService, ServiceResult
    from .models import Actor

PROG_NAME = "hobbs-tracker"


@lru_cache(maxsize=1)
def _get_logger() -> logging.Logger:
    """Get module logger (cached for thread safety)."""
    logging.basicConfig(level=logging.INFO)
    return logging.getLogger(__name__)


def _log(message: str, *, emoji: str = "") -> None:
    """Log message with optional emoji prefix for CLI output.

    Args:
        message: The message to log.
        emoji: Optional emoji prefix for visual CLI feedback.
    """
    prefix = f"{emoji} " if emoji else ""
    _get_logger().info(f"{prefix}{message}")


def _default_service() -> FleetService:
    from .fleet_service import FleetService as Service

    return Service()


def _resolve_actor(service: FleetService, user_id: str | None) -> Actor | None:
    """Resolve --user through the user directory; log and return None if missing."""
    from .errors import UnauthenticatedError
    from .policy import StaticIdentityOracle

    try:
        return service.policy.resolve(StaticIdentityOracle(user_id, storage=service.storage))
    except UnauthenticatedError as e:
        _log(f"{e.message}: pass --user USER_ID", emoji="🔒")
        return None


def _report_failure(result: ServiceResult) -> int:
    _log(f"{result.message}: {result.error}", emoji="❌")
    return 1


def run_dashboard(host: str = Config.DEFAULT_HOST, port: int = Config.DEFAULT_PORT) -> None:
    """
    Launch the web dashboard.

    Starts a FastAPI server hosting the Hobbs Tracker dashboard and JSON
    API. Identity comes from the reverse proxy in front of it.

    Business context: The dashboard is where owners manage planes and
    devices and review flight time.

    Args:
        host: Network interface to bind to. Default '127.0.0.1' for
            local-only access. Use '0.0.0.0' behind a proxy.
        port: TCP port for the HTTP server. Default 8000.

    Returns:
        None. Blocks until server shutdown (Ctrl+C).

    Raises:
        OSError: If port is already in use.

    Example:
        >>> run_dashboard(port=3000)
        🚀 Starting dashboard at http://127.0.0.1:3000
    """
    from .web import run_dashboard as start_web

    _log(f"Starting dashboard at http://{host}:{port}", emoji="🚀")
    _log("Press Ctrl+C to stop")
    start_web(host=host, port=port)


def run_report(user_id: str | None, service: FleetService | None = None) -> int:
    """
    Print the fleet report for one owner to stdout.

    Args:
        user_id: Owner whose fleet to report.
        service: Optional FleetService for testability.

    Returns:
        Exit code: 0 on success, 1 on failure.

    Example:
        >>> # hobbs-tracker report --user user-1 > hours.txt
        >>> run_report("user-1")
        ==================================================
        HOBBS TRACKER - FLEET REPORT
        ...
    """
    service = service or _default_service()
    actor = _resolve_actor(service, user_id)
    if actor is None:
        return 1
    result = service.get_report(actor)
    if not result.success or result.data is None:
        return _report_failure(result)
    # Note: Using print() intentionally for stdout piping support
    print(result.data["report"])
    return 0


def run_export(
    user_id: str | None,
    device: str | None = None,
    status: str | None = None,
    output: str | None = None,
    service: FleetService | None = None,
) -> int:
    """
    Write the filtered session list to a CSV file.

    Args:
        user_id: Owner whose sessions to export.
        device: Optional device token filter.
        status: Optional 'open'/'closed' filter.
        output: Target path. Default: sessions-YYYY-MM-DD.csv in cwd.
            '-' writes to stdout.
        service: Optional FleetService for testability.

    Returns:
        Exit code: 0 on success, 1 on failure.
    """
    service = service or _default_service()
    actor = _resolve_actor(service, user_id)
    if actor is None:
        return 1
    result = service.export_sessions_csv(actor, device=device, status=status)
    if not result.success or result.data is None:
        return _report_failure(result)

    content = result.data["content"]
    if output == "-":
        sys.stdout.write(content)
        return 0

    target = Path(output or result.data["filename"])
    target.write_text(content, encoding="utf-8")
    _log(f"Wrote {result.data['row_count']} session(s) to {target}", emoji="📄")
    return 0


def run_record(
    device: str,
    start: str,
    seconds: int,
    msg_id: str,
    closed: bool = False,
    reported_at: str | None = None,
    service: FleetService | None = None,
) -> int:
    """
    Apply one telemetry report, e.g. to replay messages from a device log.

    Returns:
        Exit code: 0 when applied or recognized as duplicate, 1 on failure.
    """
    from .ledger import SessionReport
    from .models import SessionStatus

    service = service or _default_service()
    report = SessionReport(
        device_uuid=device,
        session_start=start,
        run_seconds=seconds,
        msg_id=msg_id,
        status=SessionStatus.CLOSED if closed else SessionStatus.OPEN,
        reported_at=reported_at,
    )
    result = service.record_report(report)
    if not result.success:
        return _report_failure(result)
    _log(result.message, emoji="🛩️")
    return 0


def run_user(
    user_id: str,
    email: str | None = None,
    is_admin: bool = False,
    service: FleetService | None = None,
) -> int:
    """
    Add or update a user directory entry.

    Business context: The directory is the administrator registry and the
    source of owner emails in the admin device listing.
    """
    service = service or _default_service()
    result = service.register_user(user_id, email=email, is_admin=is_admin)
    if not result.success:
        return _report_failure(result)
    _log(result.message, emoji="👤")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    from .__version__ import __version__

    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description="Hobbs Tracker - fleet flight-time tracking for aircraft owners",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Dashboard command
    dashboard_parser = subparsers.add_parser("dashboard", help="Launch web dashboard")
    dashboard_parser.add_argument(
        "--host",
        default=Config.DEFAULT_HOST,
        help=f"Bind address (default: {Config.DEFAULT_HOST})",
    )
    dashboard_parser.add_argument(
        "--port",
        type=int,
        default=Config.DEFAULT_PORT,
        help=f"Port number (default: {Config.DEFAULT_PORT})",
    )

    # Report command
    report_parser = subparsers.add_parser("report", help="Print fleet report to stdout")
    report_parser.add_argument("--user", help="Owner user id")

    # Export command
    export_parser = subparsers.add_parser("export", help="Export sessions to CSV")
    export_parser.add_argument("--user", help="Owner user id")
    export_parser.add_argument("--device", help="Only this device token")
    export_parser.add_argument("--status", choices=("open", "closed"), help="Only this status")
    export_parser.add_argument(
        "--output", "-o", help="Output file ('-' for stdout, default: sessions-DATE.csv)"
    )

    # Record command
    record_parser = subparsers.add_parser("record", help="Apply a telemetry session report")
    record_parser.add_argument("--device", required=True, help="Device token")
    record_parser.add_argument("--start", required=True, help="Session start (ISO 8601)")
    record_parser.add_argument("--seconds", type=int, required=True, help="Run seconds so far")
    record_parser.add_argument("--msg-id", required=True, help="Report message id")
    record_parser.add_argument("--closed", action="store_true", help="Final report of the run")
    record_parser.add_argument("--reported-at", help="Report time (default: now)")

    # User command
    user_parser = subparsers.add_parser("user", help="Add or update a user directory entry")
    user_parser.add_argument("user_id", help="User id")
    user_parser.add_argument("--email", help="User email")
    user_parser.add_argument("--admin", action="store_true", help="Grant administrator rights")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """
    Main CLI entry point for Hobbs Tracker.

    Parses command-line arguments and dispatches to the appropriate
    subcommand handler. If no subcommand is specified, launches the
    dashboard.

    Subcommands:
    - dashboard [--host HOST] [--port PORT]: Launch web dashboard
    - report --user USER: Print fleet report
    - export --user USER [--device D] [--status S] [-o PATH]: CSV export
    - record --device D --start TS --seconds N --msg-id M [--closed]
    - user USER_ID [--email EMAIL] [--admin]: Maintain the user directory

    Args:
        argv: Argument list. Default: sys.argv[1:]

    Returns:
        Exit code 0 for success, 1 when the operation failed.

    Raises:
        SystemExit: On --help or argument parsing errors.
    """
    args = _build_parser().parse_args(argv)

    if args.command == "report":
        return run_report(args.user)
    if args.command == "export":
        return run_export(args.user, device=args.device, status=args.status, output=args.output)
    if args.command == "record":
        return run_record(
            device=args.device,
            start=args.start,
            seconds=args.seconds,
            msg_id=args.msg_id,
            closed=args.closed,
            reported_at=args.reported_at,
        )
    if args.command == "user":
        return run_user(args.user_id, email=args.email, is_admin=args.admin)
    if args.command == "dashboard":
        run_dashboard(host=args.host, port=args.port)
    else:
        # Default: dashboard on the default address
        run_dashboard()
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
