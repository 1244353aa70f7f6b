from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Shared type for incoming calendar dates which can be a date, datetime, or ISO8601 string
DateInput = Union[date, datetime, str]

COMPLETED_STATUS = "completed"


def parse_calendar_date(value: Optional[DateInput]) -> Optional[date]:
    """
    Normalize a date-like value to a calendar date.
    - None and blank strings mean "no date".
    - A datetime keeps only its calendar date; the time of day is dropped.
    - Strings are parsed as ISO8601 dates first, then as ISO8601 datetimes
      (a trailing 'Z' is accepted as UTC).
    """
    if value is None:
        return None

    # datetime is a subclass of date, so it must be checked first
    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            return date.fromisoformat(s)
        except ValueError:
            if s.endswith(("Z", "z")):
                s = s[:-1] + "+00:00"
            try:
                return datetime.fromisoformat(s).date()
            except ValueError as e:
                raise ValueError(
                    f"Invalid date {value!r}. Use an ISO8601 date or datetime (e.g., '2025-01-31')."
                ) from e

    raise ValueError("Invalid type for date; expected date, datetime, or ISO8601 string.")


class ModuleOut(BaseModel):
    """Module fields carried along with an assignment."""

    title: Optional[str] = Field(default=None, description="Display title of the training module")


class UserOut(BaseModel):
    """Recipient fields carried along with an assignment."""

    email: Optional[str] = Field(default=None, description="Recipient email address")
    first_name: Optional[str] = Field(default=None, description="Recipient first name")
    last_name: Optional[str] = Field(default=None, description="Recipient last name")


# PUBLIC_INTERFACE
class AssignmentRecord(BaseModel):
    """
    Validated view of an assignment row. Only id and status are required; the
    module and user joins are optional and may be null.
    """

    id: str = Field(..., description="Unique identifier of the assignment")
    due_date: Optional[date] = Field(default=None, description="Calendar date the assignment is due")
    status: str = Field(..., description="Assignment status; 'completed' is terminal")
    assigned_to: Optional[str] = Field(default=None, description="Id of the assigned user")
    module: Optional[ModuleOut] = None
    user: Optional[UserOut] = None

    @field_validator("id", "assigned_to", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """
        Accept integer and UUID ids from stores that use numeric or UUID keys.
        """
        if isinstance(v, UUID) or (isinstance(v, int) and not isinstance(v, bool)):
            return str(v)
        return v

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DateInput]) -> Optional[date]:
        """
        Normalize due_date from str/date/datetime to a calendar date.
        """
        return parse_calendar_date(v)

    @property
    def is_completed(self) -> bool:
        return self.status == COMPLETED_STATUS


# PUBLIC_INTERFACE
class ReminderSnapshot(BaseModel):
    """Assignment details copied into a decision at the time it was made."""

    due_date: date = Field(..., description="Due date the decision was computed against")
    email: Optional[str] = Field(default=None, description="Recipient email address")
    module: Optional[str] = Field(default=None, description="Module title")


# PUBLIC_INTERFACE
class ReminderDecision(BaseModel):
    """
    A reminder that is due today for one assignment.
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "assignment_id": "a1b2c3",
                "reason": "3 days before due",
                "snapshot": {
                    "due_date": "2024-06-13",
                    "email": "jane.doe@example.com",
                    "module": "Forklift Safety",
                },
            }
        },
    )

    assignment_id: str = Field(..., description="Id of the assignment the reminder is for")
    reason: str = Field(..., description="Which reminder window fired")
    snapshot: ReminderSnapshot

    def to_payload(self) -> Dict[str, Any]:
        """
        Audit-log payload: reason plus the snapshot, with the due date as an ISO string.
        """
        return {
            "reason": self.reason,
            "email": self.snapshot.email,
            "module": self.snapshot.module,
            "due_date": self.snapshot.due_date.isoformat(),
        }


# PUBLIC_INTERFACE
class ReminderRunResult(BaseModel):
    """Summary returned by a reminder run."""

    model_config = ConfigDict(json_schema_extra={"example": {"processed": 2}})

    processed: int = Field(..., ge=0, description="Number of reminder decisions recorded")


# PUBLIC_INTERFACE
class ReminderPreview(BaseModel):
    """Decisions a run would record for the given day, without recording them."""

    today: date = Field(..., description="Day the decisions were evaluated for")
    items: List[ReminderDecision] = Field(default_factory=list)


# PUBLIC_INTERFACE
class AuditLogOut(BaseModel):
    """
    Schema returned by the API for an audit-log row.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 17,
                "actor_user_id": None,
                "action": "reminder",
                "entity": "assignment",
                "entity_id": "a1b2c3",
                "payload": {
                    "reason": "overdue +2 days",
                    "email": "jane.doe@example.com",
                    "module": "Forklift Safety",
                    "due_date": "2024-06-08",
                },
                "created_at": "2024-06-10T08:00:00.000001",
            }
        }
    )

    id: int = Field(..., description="Unique identifier of the audit-log row")
    actor_user_id: Optional[str] = Field(default=None, description="User who acted; null for system jobs")
    action: str = Field(..., description="Action name, e.g. 'reminder'")
    entity: str = Field(..., description="Entity type the action applies to")
    entity_id: str = Field(..., description="Id of the affected entity")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Action-specific details")
    created_at: datetime = Field(..., description="Time the row was written")
