from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional, TypedDict, Union


class ModuleRef(TypedDict, total=False):
    """Training module fields joined onto an assignment."""

    title: Optional[str]


class UserRef(TypedDict, total=False):
    """Recipient contact fields joined onto an assignment."""

    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]


# PUBLIC_INTERFACE
class AssignmentEntity(TypedDict, total=False):
    """
    An assignment row as returned by the data store, with its module and user
    joined in. The shape is loose: nested objects and the due date may be
    missing or null, and due_date may still be an unparsed string.

    Fields:
    - id: Opaque unique identifier
    - due_date: Calendar date, ISO8601 string, or None
    - status: assigned, in_progress, pending_signoff or completed
    - assigned_to: Id of the user the assignment belongs to
    - module: Joined module (title)
    - user: Joined recipient (email, first/last name)
    """

    id: str
    due_date: Union[date, datetime, str, None]
    status: str
    assigned_to: Optional[str]
    module: Optional[ModuleRef]
    user: Optional[UserRef]


# PUBLIC_INTERFACE
class AuditLogRow(TypedDict):
    """An audit-log row ready to be written; the store assigns id and created_at."""

    actor_user_id: Optional[str]
    action: str
    entity: str
    entity_id: str
    payload: Dict[str, Any]


# PUBLIC_INTERFACE
class AuditLogEntity(AuditLogRow):
    """A stored audit-log row."""

    id: int
    created_at: datetime
