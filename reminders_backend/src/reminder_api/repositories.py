from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from functools import lru_cache
from threading import RLock
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import AssignmentEntity, AuditLogEntity, AuditLogRow
from .schemas import COMPLETED_STATUS
from .settings import get_settings


@dataclass(frozen=True)
class AuditLogQuery:
    """
    Query parameters for listing audit-log rows. Results are newest first.
    """
    limit: int = 100
    offset: int = 0
    action: Optional[str] = None
    entity: Optional[str] = None
    entity_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None  # inclusive
    search: Optional[str] = None


# PUBLIC_INTERFACE
class AssignmentRepository(ABC):
    """Read access to assignments, as consumed by the reminder job."""

    @abstractmethod
    def add_assignment(self, assignment: AssignmentEntity) -> AssignmentEntity:
        """Store an assignment together with its module and user joins."""

    @abstractmethod
    def list_open_assignments(self) -> List[AssignmentEntity]:
        """Return every assignment whose status is not 'completed', in insertion order."""


# PUBLIC_INTERFACE
class AuditLogRepository(ABC):
    """Append-only audit log that reminder decisions are recorded in."""

    @abstractmethod
    def insert_many(self, rows: Sequence[AuditLogRow]) -> List[AuditLogEntity]:
        """
        Insert all rows or none of them. Return the stored rows with id and created_at.
        """

    @abstractmethod
    def list(self, query: Optional[AuditLogQuery] = None) -> Tuple[List[AuditLogEntity], int]:
        """
        Return a slice of audit-log rows and the total count matching filters.
        - Filter by action, entity, entity_id
        - Inclusive created_at day range
        - Substring search across action, entity, entity_id and payload email (case-insensitive)
        - Sorted by created_at descending, then id descending
        """


def _matches(row: AuditLogEntity, q: AuditLogQuery) -> bool:
    if q.action is not None and row["action"] != q.action:
        return False
    if q.entity is not None and row["entity"] != q.entity:
        return False
    if q.entity_id is not None and row["entity_id"] != q.entity_id:
        return False
    if q.date_from is not None and row["created_at"] < datetime.combine(q.date_from, datetime.min.time()):
        return False
    if q.date_to is not None:
        end = datetime.combine(q.date_to + timedelta(days=1), datetime.min.time())
        if row["created_at"] >= end:
            return False
    if q.search:
        s = q.search.lower()
        email = row["payload"].get("email") or ""
        haystack = (row["action"], row["entity"], row["entity_id"], str(email))
        if not any(s in field.lower() for field in haystack):
            return False
    return True


class InMemoryRepository(AssignmentRepository, AuditLogRepository):
    """
    Thread-safe in-memory store for assignments and the audit log, suitable for
    testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._assignments: dict[str, AssignmentEntity] = {}
        self._audit_log: List[AuditLogEntity] = []
        self._next_log_id = 1

    def _now(self) -> datetime:
        return datetime.now()

    def add_assignment(self, assignment: AssignmentEntity) -> AssignmentEntity:
        stored = copy.deepcopy(assignment)
        with self._lock:
            self._assignments[str(stored["id"])] = stored
        return copy.deepcopy(stored)

    def list_open_assignments(self) -> List[AssignmentEntity]:
        with self._lock:
            items: Iterable[AssignmentEntity] = self._assignments.values()
            return [copy.deepcopy(a) for a in items if a.get("status") != COMPLETED_STATUS]

    def insert_many(self, rows: Sequence[AuditLogRow]) -> List[AuditLogEntity]:
        # Build the whole batch before touching shared state so a bad row stores nothing
        now = self._now()
        with self._lock:
            next_id = self._next_log_id
            batch: List[AuditLogEntity] = []
            for row in rows:
                if not row.get("entity_id"):
                    raise ValueError("audit-log row is missing entity_id")
                entity: AuditLogEntity = {
                    "id": next_id,
                    "actor_user_id": row.get("actor_user_id"),
                    "action": row["action"],
                    "entity": row["entity"],
                    "entity_id": str(row["entity_id"]),
                    "payload": copy.deepcopy(dict(row.get("payload") or {})),
                    "created_at": now,
                }
                batch.append(entity)
                next_id += 1
            self._audit_log.extend(batch)
            self._next_log_id = next_id
            return [copy.deepcopy(e) for e in batch]

    def list(self, query: Optional[AuditLogQuery] = None) -> Tuple[List[AuditLogEntity], int]:
        q = query or AuditLogQuery()
        with self._lock:
            items = [r for r in self._audit_log if _matches(r, q)]
            total = len(items)

            items_sorted = sorted(items, key=lambda r: (r["created_at"], r["id"]), reverse=True)

            # Pagination
            start = max(q.offset, 0)
            end = start + max(q.limit, 0)
            page = items_sorted[start:end]

            # Return copies to avoid external mutation
            return [copy.deepcopy(r) for r in page], total


@lru_cache(maxsize=None)
def _memory_repository() -> InMemoryRepository:
    return InMemoryRepository()


@lru_cache(maxsize=None)
def _sqlite_repository(db_path: str):
    from .db import SQLiteRepository

    return SQLiteRepository(db_path)


# PUBLIC_INTERFACE
def get_repository():
    """
    Return the configured store based on settings. The instance is shared for
    the life of the process.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository at SQLITE_DB_PATH
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        return _sqlite_repository(settings.sqlite_db_path)
    return _memory_repository()


# PUBLIC_INTERFACE
def get_assignment_repository() -> AssignmentRepository:
    """FastAPI dependency for the assignment source."""
    return get_repository()


# PUBLIC_INTERFACE
def get_audit_log_repository() -> AuditLogRepository:
    """FastAPI dependency for the audit log."""
    return get_repository()
