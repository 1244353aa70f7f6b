from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..repositories import AuditLogQuery, AuditLogRepository, get_audit_log_repository
from ..schemas import AuditLogOut
from ..utils import pagination_envelope

router = APIRouter(
    prefix="/api/v1/audit-logs",
    tags=["audit-logs"],
)


class PaginationEnvelope(BaseModel):
    """
    Envelope for paginated list responses.
    """
    items: List[AuditLogOut] = Field(..., description="List of audit-log rows")
    total: int = Field(..., description="Total number of rows matching the query")
    limit: int = Field(..., description="Limit applied to the query")
    offset: int = Field(..., description="Offset applied to the query")


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=PaginationEnvelope,
    summary="List Audit Logs",
    description=(
        "List audit-log rows, newest first, with optional filters and pagination.\n\n"
        "Query parameters:\n"
        "- limit: max number of rows to return (0..1000)\n"
        "- offset: number of rows to skip (>=0)\n"
        "- action: exact action, e.g. 'reminder'\n"
        "- entity: exact entity type, e.g. 'assignment'\n"
        "- entity_id: exact entity id\n"
        "- date_from / date_to: inclusive day range on created_at\n"
        "- q: search text over action, entity, entity id and payload email\n\n"
        "Returns a pagination envelope with items and total count."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        400: {"description": "Invalid query parameters"},
    },
)
def list_audit_logs(
    limit: int = Query(100, ge=0, le=1000, description="Maximum number of rows to return"),
    offset: int = Query(0, ge=0, description="Number of rows to skip"),
    action: Optional[str] = Query(None, description="Filter by action"),
    entity: Optional[str] = Query(None, description="Filter by entity type"),
    entity_id: Optional[str] = Query(None, description="Filter by entity id"),
    date_from: Optional[date] = Query(None, description="Earliest day (inclusive)"),
    date_to: Optional[date] = Query(None, description="Latest day (inclusive)"),
    q: Optional[str] = Query(None, description="Search text"),
    repo: AuditLogRepository = Depends(get_audit_log_repository),
) -> PaginationEnvelope:
    """
    List audit-log rows with pagination and filters.
    """
    if date_from and date_to and date_from > date_to:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="date_from must not be after date_to",
        )

    query = AuditLogQuery(
        limit=limit,
        offset=offset,
        action=action,
        entity=entity,
        entity_id=entity_id,
        date_from=date_from,
        date_to=date_to,
        search=q.strip() if q and q.strip() else None,
    )
    items, total = repo.list(query)
    envelope = pagination_envelope(
        items=[AuditLogOut(**it) for it in items],  # type: ignore[arg-type]
        total=total,
        limit=limit,
        offset=offset,
    )
    return PaginationEnvelope(**envelope)  # type: ignore[arg-type]
