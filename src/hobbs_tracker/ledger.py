"""
Session ledger for Hobbs Tracker.

PURPOSE: Apply telemetry session reports to stored session rows.
AI CONTEXT: The open / accumulate / close / dedup rules live here and nowhere else.

REPORT RULES (record_report):
1. msg_id already applied to any row -> duplicate, nothing written
2. Row with the same (device_uuid, session_start) already closed -> report
   rejected, nothing written; the stored duration is final
3. Device touched: last_seen refreshed, orphan created on first contact
4. Open row with the same (device_uuid, session_start): run_seconds =
   max(stored, reported), msg_id appended, last_update only moves forward,
   closed if the report says so
5. Otherwise a new row with the reported status

MANUAL CLOSE (close):
Owner or administrator closes an open session. run_seconds stays at the last
reported value.

USAGE:
    ledger = SessionLedger(storage)
    outcome = ledger.record_report(SessionReport(
        device_uuid="550e8400-...",
        session_start="2026-01-01T10:00:00Z",
        run_seconds=1800,
        msg_id="msg-0001",
    ))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import NotFoundError, ValidationFailureError
from .models import Actor, Session, SessionStatus, now_iso, parse_timestamp
from .policy import AccessPolicy

if TYPE_CHECKING:
    from .storage import StorageManager

__all__ = ["ReportOutcome", "SessionLedger", "SessionReport"]

logger = logging.getLogger(__name__)

OUTCOME_CREATED = "created"
OUTCOME_UPDATED = "updated"
OUTCOME_DUPLICATE = "duplicate"


@dataclass(frozen=True)
class SessionReport:
    """
    One telemetry message about an engine run.

    Attributes:
        device_uuid: Reporting device token.
        session_start: Engine-on time (ISO 8601).
        run_seconds: Run time accumulated so far.
        msg_id: Idempotency token; resending the same message is harmless.
        status: CLOSED on the final report of a run.
        reported_at: Time of the report; defaults to now when applied.
    """

    device_uuid: str
    session_start: str
    run_seconds: int
    msg_id: str
    status: SessionStatus = SessionStatus.OPEN
    reported_at: str | None = None

    def validate(self) -> None:
        """
        Reject reports that cannot be applied.

        Raises:
            ValidationFailureError: On a blank token or msg_id, an
                unparseable session_start or a negative run time.
        """
        if not self.device_uuid or not self.device_uuid.strip():
            raise ValidationFailureError("device_uuid is required")
        if not self.msg_id or not self.msg_id.strip():
            raise ValidationFailureError("msg_id is required")
        if parse_timestamp(self.session_start) is None:
            raise ValidationFailureError(f"Invalid session_start: {self.session_start!r}")
        if self.run_seconds < 0:
            raise ValidationFailureError("run_seconds must be non-negative")


@dataclass(frozen=True)
class ReportOutcome:
    """Result of applying a report: the stored row and what happened to it."""

    session: Session
    action: str

    @property
    def applied(self) -> bool:
        """False for duplicates, which leave storage untouched."""
        return self.action != OUTCOME_DUPLICATE


class SessionLedger:
    """
    Writes session rows on behalf of the ingestion path and of owners.

    Business context: Devices resend reports over flaky links, so the same
    message can arrive twice and updates can arrive out of order. The
    ledger makes replays harmless and never lets recorded flight time go
    backwards.
    """

    def __init__(self, storage: StorageManager, policy: AccessPolicy | None = None) -> None:
        self._storage = storage
        self._policy = policy or AccessPolicy()

    def record_report(self, report: SessionReport) -> ReportOutcome:
        """
        Apply one telemetry report.

        Args:
            report: The report to apply.

        Returns:
            ReportOutcome with the stored session and action
            'created', 'updated' or 'duplicate'.

        Raises:
            ValidationFailureError: If the report is malformed or targets a
                closed session.
            GatewayFailureError: If storage fails.
        """
        report.validate()

        existing = self._storage.find_session_by_msg_id(report.msg_id)
        if existing is not None:
            logger.info(f"Duplicate report ignored: {report.msg_id}")
            return ReportOutcome(session=existing, action=OUTCOME_DUPLICATE)

        session = self._storage.find_session(report.device_uuid, report.session_start)
        if session is not None and session.is_closed:
            raise ValidationFailureError(f"Session {session.id} is closed; report {report.msg_id} rejected")

        reported_at = report.reported_at or now_iso()
        self._storage.touch_device(report.device_uuid, seen_at=reported_at)

        if session is None:
            session = Session.open(
                report.device_uuid,
                report.session_start,
                report.msg_id,
                run_seconds=report.run_seconds,
                last_update=reported_at,
            )
            session.status = report.status
            self._storage.save_session(session)
            logger.info(f"Session opened: {session.id} ({report.device_uuid[:8]})")
            return ReportOutcome(session=session, action=OUTCOME_CREATED)

        session.run_seconds = max(session.run_seconds, report.run_seconds)
        session.msg_ids.append(report.msg_id)
        if _is_later(reported_at, session.last_update):
            session.last_update = reported_at
            session.msg_id = report.msg_id
        if report.status is SessionStatus.CLOSED:
            session.status = SessionStatus.CLOSED
            logger.info(f"Session closed by device: {session.id}")
        self._storage.save_session(session)
        return ReportOutcome(session=session, action=OUTCOME_UPDATED)

    def close(self, actor: Actor, session_id: str) -> Session:
        """
        Close an open session by hand.

        Args:
            actor: Owner of the session's device, or an administrator.
            session_id: Session to close.

        Returns:
            The closed Session.

        Raises:
            NotFoundError: If the session is missing or not visible to actor.
            ValidationFailureError: If the session is already closed.
        """
        session = self._storage.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")

        device = self._storage.get_device(session.device_uuid)
        owner_id = device.user_id if device else None
        self._policy.ensure_visible(actor, owner_id, f"Session not found: {session_id}")

        if session.is_closed:
            raise ValidationFailureError(f"Session {session_id} is already closed")

        session.status = SessionStatus.CLOSED
        self._storage.save_session(session)
        logger.info(f"Session closed by {actor.user_id}: {session_id}")
        return session


def _is_later(candidate: str, current: str | None) -> bool:
    """True if candidate is at or after current; unparseable current loses."""
    current_at = parse_timestamp(current)
    if current_at is None:
        return True
    candidate_at = parse_timestamp(candidate)
    return candidate_at is not None and candidate_at >= current_at
