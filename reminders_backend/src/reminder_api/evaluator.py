"""Reminder evaluator: decides which open assignments get a reminder today.

Pure computation over (today, assignments). Reminders fire 3 and 1 days before
the due date, and on days 2, 4 and 6 after it. Nothing fires on the due date
itself or after the sixth overdue day.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from .errors import InvalidInputError
from .schemas import (
    AssignmentRecord,
    DateInput,
    ReminderDecision,
    ReminderSnapshot,
    parse_calendar_date,
)

logger = logging.getLogger(__name__)

PRE_DUE_OFFSETS = (3, 1)
OVERDUE_OFFSETS = (2, 4, 6)

_ONE_DAY = timedelta(days=1)

AssignmentInput = Union[AssignmentRecord, Mapping[str, Any]]


def _normalize_today(today: DateInput) -> date:
    try:
        value = parse_calendar_date(today)
    except ValueError as e:
        raise InvalidInputError(f"today is not a valid date: {today!r}") from e
    if value is None:
        raise InvalidInputError("today is required")
    return value


def _to_record(raw: AssignmentInput) -> AssignmentRecord:
    if isinstance(raw, AssignmentRecord):
        return raw
    try:
        return AssignmentRecord.model_validate(raw)
    except ValidationError as e:
        raise InvalidInputError(str(e)) from e


def _whole_days(delta: timedelta) -> int:
    # Partial days round up, so a window is entered as soon as any part of it begins
    return math.ceil(delta / _ONE_DAY)


def _decision(record: AssignmentRecord, due_date: date, reason: str) -> ReminderDecision:
    return ReminderDecision(
        assignment_id=record.id,
        reason=reason,
        snapshot=ReminderSnapshot(
            due_date=due_date,
            email=record.user.email if record.user else None,
            module=record.module.title if record.module else None,
        ),
    )


# PUBLIC_INTERFACE
def decisions_for(record: AssignmentRecord, today: date) -> List[ReminderDecision]:
    """
    Return the reminder decisions for a single validated assignment.

    Completed assignments and assignments without a due date never qualify.
    The pre-due and overdue checks are independent; each one that matches
    contributes a decision.
    """
    if record.is_completed or record.due_date is None:
        return []

    due_date = record.due_date
    due = datetime.combine(due_date, datetime.min.time())
    now = datetime.combine(today, datetime.min.time())
    days_until_due = _whole_days(due - now)
    days_overdue = _whole_days(now - due)

    decisions: List[ReminderDecision] = []
    if days_until_due in PRE_DUE_OFFSETS:
        decisions.append(_decision(record, due_date, f"{days_until_due} days before due"))
    if days_overdue > 0 and days_overdue in OVERDUE_OFFSETS:
        decisions.append(_decision(record, due_date, f"overdue +{days_overdue} days"))
    return decisions


# PUBLIC_INTERFACE
def evaluate(today: DateInput, assignments: Sequence[AssignmentInput]) -> List[ReminderDecision]:
    """
    Compute the reminders due on `today` for a sequence of assignments.

    Args:
        today: The evaluation day as a date, datetime (time of day ignored) or ISO8601 string.
        assignments: Validated AssignmentRecords or raw assignment mappings from the store.

    Returns:
        Decisions in the same relative order as the input assignments.

    Raises:
        InvalidInputError: if `today` is not a valid date. A malformed assignment
        is logged and skipped instead, so one bad row does not block the rest.
    """
    day = _normalize_today(today)

    decisions: List[ReminderDecision] = []
    for index, raw in enumerate(assignments):
        try:
            record = _to_record(raw)
        except InvalidInputError as e:
            logger.warning(
                "Skipping assignment %s at position %d: %s",
                _raw_id(raw),
                index,
                e,
            )
            continue
        decisions.extend(decisions_for(record, day))
    return decisions


def _raw_id(raw: AssignmentInput) -> Optional[Any]:
    if isinstance(raw, Mapping):
        return raw.get("id")
    return getattr(raw, "id", None)
