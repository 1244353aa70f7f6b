"""Reminder job: fetch open assignments, evaluate them, record the decisions.

Each run writes one audit-log row per decision. The job holds no state between
runs, so running it twice on the same day records the same decisions twice;
deployments must make sure only one run is in flight per tick.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from .errors import UpstreamFetchError, UpstreamWriteError
from .evaluator import evaluate
from .models import AuditLogRow
from .repositories import AssignmentRepository, AuditLogRepository
from .schemas import ReminderDecision, ReminderRunResult
from .settings import get_settings
from .utils import current_date

logger = logging.getLogger(__name__)

REMINDER_ACTION = "reminder"
ASSIGNMENT_ENTITY = "assignment"


def decision_to_row(decision: ReminderDecision) -> AuditLogRow:
    """Audit-log row recording a single reminder decision. Reminders have no acting user."""
    return {
        "actor_user_id": None,
        "action": REMINDER_ACTION,
        "entity": ASSIGNMENT_ENTITY,
        "entity_id": decision.assignment_id,
        "payload": decision.to_payload(),
    }


def today_for_reminders() -> date:
    """The current day in the configured reminder timezone."""
    return current_date(get_settings().reminder_timezone)


# PUBLIC_INTERFACE
def preview_reminders(assignments: AssignmentRepository, today: date) -> List[ReminderDecision]:
    """
    Evaluate the open assignments for `today` without recording anything.

    Raises:
        UpstreamFetchError: if the assignments cannot be read.
    """
    try:
        open_assignments = assignments.list_open_assignments()
    except Exception as e:
        raise UpstreamFetchError(f"Could not load open assignments: {e}") from e
    return evaluate(today, open_assignments)


# PUBLIC_INTERFACE
def run_reminder_job(
    assignments: AssignmentRepository,
    audit_log: AuditLogRepository,
    today: Optional[date] = None,
) -> ReminderRunResult:
    """
    Run one reminder pass and record every decision in the audit log.

    Args:
        assignments: Source of open assignments.
        audit_log: Sink the decisions are written to in a single batch.
        today: Day to evaluate; defaults to the current day in REMINDER_TIMEZONE.

    Returns:
        ReminderRunResult with the number of decisions recorded.

    Raises:
        UpstreamFetchError: the assignments could not be read; nothing is written.
        UpstreamWriteError: the batch insert failed; nothing is recorded.
    """
    day = today if today is not None else today_for_reminders()
    decisions = preview_reminders(assignments, day)

    if decisions:
        rows = [decision_to_row(d) for d in decisions]
        try:
            audit_log.insert_many(rows)
        except Exception as e:
            raise UpstreamWriteError(f"Could not record {len(rows)} reminder decisions: {e}") from e

    logger.info("Reminder run for %s recorded %d decisions", day.isoformat(), len(decisions))
    return ReminderRunResult(processed=len(decisions))
