from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..auth import require_trigger_token
from ..jobs import preview_reminders, run_reminder_job, today_for_reminders
from ..repositories import (
    AssignmentRepository,
    AuditLogRepository,
    get_assignment_repository,
    get_audit_log_repository,
)
from ..schemas import ReminderPreview, ReminderRunResult, parse_calendar_date

router = APIRouter(
    prefix="/api/v1/reminders",
    tags=["reminders"],
)


# PUBLIC_INTERFACE
@router.post(
    "/run",
    response_model=ReminderRunResult,
    status_code=status.HTTP_200_OK,
    summary="Run Reminder Job",
    description=(
        "Evaluate all open assignments for today and record one audit-log row per "
        "reminder that is due. Intended to be called once a day by an external scheduler."
    ),
    dependencies=[Depends(require_trigger_token)],
    responses={
        200: {"description": "Run completed; body carries the number of reminders recorded"},
        401: {"description": "Missing or invalid trigger token"},
        500: {"description": "Assignments could not be read or decisions could not be recorded"},
    },
)
def run_reminders(
    assignments: AssignmentRepository = Depends(get_assignment_repository),
    audit_log: AuditLogRepository = Depends(get_audit_log_repository),
) -> ReminderRunResult:
    """
    Trigger a reminder run. Job failures propagate to the app-level handler as HTTP 500.
    """
    return run_reminder_job(assignments, audit_log)


# PUBLIC_INTERFACE
@router.get(
    "/preview",
    response_model=ReminderPreview,
    summary="Preview Reminders",
    description=(
        "Dry run: return the reminders that a run would record for the given day "
        "(default: today in REMINDER_TIMEZONE). Nothing is written."
    ),
    responses={
        200: {"description": "Decisions computed"},
        400: {"description": "Invalid 'today' value"},
    },
)
def preview(
    today: Optional[str] = Query(None, description="Day to evaluate as an ISO8601 date, e.g. 2024-06-10"),
    assignments: AssignmentRepository = Depends(get_assignment_repository),
) -> ReminderPreview:
    """
    Preview decisions for a day without recording them.
    """
    try:
        requested = parse_calendar_date(today)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    day = requested if requested is not None else today_for_reminders()

    return ReminderPreview(today=day, items=preview_reminders(assignments, day))
