from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Any, Generator, List, Optional, Sequence, Tuple

from .models import AssignmentEntity, AuditLogEntity, AuditLogRow
from .repositories import AssignmentRepository, AuditLogQuery, AuditLogRepository
from .schemas import COMPLETED_STATUS

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS modules (
        id TEXT PRIMARY KEY,
        title TEXT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NULL,
        first_name TEXT NULL,
        last_name TEXT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS assignments (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        module_id TEXT NULL REFERENCES modules(id),
        assigned_to TEXT NULL REFERENCES users(id),
        due_date TEXT NULL,
        status TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        actor_user_id TEXT NULL,
        action TEXT NOT NULL,
        entity TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        payload TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_assignments_status ON assignments(status)",
    "CREATE INDEX IF NOT EXISTS idx_audit_log_created_at ON audit_log(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_audit_log_action ON audit_log(action)",
)


class SQLiteRepository(AssignmentRepository, AuditLogRepository):
    """
    Lightweight SQLite store implementing the assignment and audit-log interfaces.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            # Closing without commit discards the open transaction
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    def add_assignment(self, assignment: AssignmentEntity) -> AssignmentEntity:
        module = assignment.get("module")
        user = assignment.get("user")
        assigned_to = assignment.get("assigned_to")
        module_id = None
        due = assignment.get("due_date")
        if isinstance(due, (date, datetime)):
            due = due.isoformat()

        with self._conn() as conn:
            if module is not None:
                module_id = f"module:{assignment['id']}"
                conn.execute(
                    "INSERT OR REPLACE INTO modules (id, title) VALUES (?, ?)",
                    (module_id, module.get("title")),
                )
            if user is not None:
                assigned_to = assigned_to or f"user:{assignment['id']}"
                conn.execute(
                    "INSERT OR REPLACE INTO users (id, email, first_name, last_name) VALUES (?, ?, ?, ?)",
                    (assigned_to, user.get("email"), user.get("first_name"), user.get("last_name")),
                )
            conn.execute(
                """
                INSERT INTO assignments (id, module_id, assigned_to, due_date, status)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    module_id = excluded.module_id,
                    assigned_to = excluded.assigned_to,
                    due_date = excluded.due_date,
                    status = excluded.status
                """,
                (str(assignment["id"]), module_id, assigned_to, due, assignment["status"]),
            )
        return assignment

    def _row_to_assignment(self, row: sqlite3.Row) -> AssignmentEntity:
        entity: AssignmentEntity = {
            "id": str(row["id"]),
            # Left as stored; the evaluator parses and validates it
            "due_date": row["due_date"],
            "status": str(row["status"]),
            "assigned_to": row["assigned_to"],
            "module": None,
            "user": None,
        }
        if row["module_id"] is not None:
            entity["module"] = {"title": row["module_title"]}
        if row["user_id"] is not None:
            entity["user"] = {
                "email": row["email"],
                "first_name": row["first_name"],
                "last_name": row["last_name"],
            }
        return entity

    def list_open_assignments(self) -> List[AssignmentEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT a.id, a.due_date, a.status, a.assigned_to,
                       m.id AS module_id, m.title AS module_title,
                       u.id AS user_id, u.email, u.first_name, u.last_name
                FROM assignments a
                LEFT JOIN modules m ON m.id = a.module_id
                LEFT JOIN users u ON u.id = a.assigned_to
                WHERE a.status != ?
                ORDER BY a.seq ASC
                """,
                (COMPLETED_STATUS,),
            ).fetchall()
            return [self._row_to_assignment(r) for r in rows]

    def _row_to_log(self, row: sqlite3.Row) -> AuditLogEntity:
        return {
            "id": int(row["id"]),
            "actor_user_id": row["actor_user_id"],
            "action": str(row["action"]),
            "entity": str(row["entity"]),
            "entity_id": str(row["entity_id"]),
            "payload": json.loads(row["payload"] or "{}"),
            "created_at": datetime.fromisoformat(row["created_at"]),
        }

    def insert_many(self, rows: Sequence[AuditLogRow]) -> List[AuditLogEntity]:
        if not rows:
            return []
        now = datetime.now().isoformat()
        params = [
            (
                row.get("actor_user_id"),
                row["action"],
                row["entity"],
                row["entity_id"],
                json.dumps(row.get("payload") or {}),
                now,
            )
            for row in rows
        ]
        with self._conn() as conn:
            ids: List[int] = []
            for p in params:
                cur = conn.execute(
                    """
                    INSERT INTO audit_log (actor_user_id, action, entity, entity_id, payload, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    p,
                )
                ids.append(int(cur.lastrowid))
            # The write transaction holds the database lock, so the new ids are contiguous
            stored = conn.execute(
                "SELECT * FROM audit_log WHERE id BETWEEN ? AND ? ORDER BY id ASC",
                (ids[0], ids[-1]),
            ).fetchall()
            return [self._row_to_log(r) for r in stored]

    def list(self, query: Optional[AuditLogQuery] = None) -> Tuple[List[AuditLogEntity], int]:
        q = query or AuditLogQuery()
        clauses = []
        params: List[Any] = []

        for column, value in (("action", q.action), ("entity", q.entity), ("entity_id", q.entity_id)):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)

        if q.date_from is not None:
            clauses.append("created_at >= ?")
            params.append(datetime.combine(q.date_from, datetime.min.time()).isoformat())
        if q.date_to is not None:
            clauses.append("created_at < ?")
            params.append(datetime.combine(q.date_to + timedelta(days=1), datetime.min.time()).isoformat())

        if q.search:
            # Literal substring match, same as the in-memory store
            clauses.append(
                "(instr(LOWER(action), ?) > 0 OR instr(LOWER(entity), ?) > 0 OR instr(LOWER(entity_id), ?) > 0"
                " OR instr(LOWER(COALESCE(json_extract(payload, '$.email'), '')), ?) > 0)"
            )
            needle = q.search.lower()
            params.extend([needle, needle, needle, needle])

        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        limit = max(q.limit, 0)
        offset = max(q.offset, 0)

        with self._conn() as conn:
            count_row = conn.execute(
                f"SELECT COUNT(*) as cnt FROM audit_log {where_sql}", params
            ).fetchone()
            total = int(count_row["cnt"]) if count_row else 0

            rows = conn.execute(
                f"""
                SELECT * FROM audit_log
                {where_sql}
                ORDER BY created_at DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()
            return [self._row_to_log(r) for r in rows], total
