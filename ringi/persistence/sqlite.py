"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..contracts import (
    Application,
    ApplicationCode,
    ApplicationStatus,
    ApprovalRoute,
    RouteStep,
    User,
)
from .repository import WorkflowRepository

_APPLICATION_COLUMNS = (
    "id, applicant_id, application_code_id, approval_route_id, form_data, status, "
    "current_level, approver_id, route_steps, submitted_at, approved_at, rejected_at, "
    "rejection_reason, created_at, updated_at"
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                department TEXT,
                title TEXT,
                email TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS application_codes (
                id TEXT PRIMARY KEY,
                code TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS approval_routes (
                id TEXT PRIMARY KEY,
                name TEXT UNIQUE NOT NULL,
                steps TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS applications (
                id TEXT PRIMARY KEY,
                applicant_id TEXT NOT NULL,
                application_code_id TEXT NOT NULL,
                approval_route_id TEXT NOT NULL,
                form_data TEXT,
                status TEXT NOT NULL,
                current_level INTEGER NOT NULL,
                approver_id TEXT,
                route_steps TEXT NOT NULL,
                submitted_at TEXT,
                approved_at TEXT,
                rejected_at TEXT,
                rejection_reason TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _row_to_route(row: sqlite3.Row) -> ApprovalRoute:
        return ApprovalRoute(
            id=row["id"],
            name=row["name"],
            steps=[RouteStep(**s) for s in json.loads(row["steps"])],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_code(row: sqlite3.Row) -> ApplicationCode:
        return ApplicationCode(
            id=row["id"],
            code=row["code"],
            name=row["name"],
            description=row["description"] or "",
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_application(row: sqlite3.Row) -> Application:
        return Application(
            id=row["id"],
            applicant_id=row["applicant_id"],
            application_code_id=row["application_code_id"],
            approval_route_id=row["approval_route_id"],
            form_data=json.loads(row["form_data"]) if row["form_data"] else {},
            status=ApplicationStatus(row["status"]),
            current_level=row["current_level"],
            approver_id=row["approver_id"],
            route_steps=json.loads(row["route_steps"]),
            submitted_at=_parse_ts(row["submitted_at"]),
            approved_at=_parse_ts(row["approved_at"]),
            rejected_at=_parse_ts(row["rejected_at"]),
            rejection_reason=row["rejection_reason"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    # ------------------------------------------------------------------
    # Users
    async def save_user(self, user: User) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO users (id, name, department, title, email) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name, department = excluded.department,
                title = excluded.title, email = excluded.email
            """,
            user.id,
            user.name,
            user.department,
            user.title,
            user.email,
        )

    async def get_user(self, user_id: str) -> User | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT id, name, department, title, email FROM users WHERE id = ?",
            user_id,
        )
        return User(**dict(row)) if row else None

    async def list_users(self) -> list[User]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id, name, department, title, email FROM users ORDER BY rowid",
        )
        return [User(**dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Application codes
    async def save_application_code(self, code: ApplicationCode) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO application_codes (id, code, name, description, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                code = excluded.code, name = excluded.name,
                description = excluded.description
            """,
            code.id,
            code.code,
            code.name,
            code.description,
            code.created_at.isoformat(),
        )

    async def get_application_code(self, code_id: str) -> ApplicationCode | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT id, code, name, description, created_at FROM application_codes WHERE id = ?",
            code_id,
        )
        return self._row_to_code(row) if row else None

    async def list_application_codes(self) -> list[ApplicationCode]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id, code, name, description, created_at FROM application_codes ORDER BY rowid",
        )
        return [self._row_to_code(r) for r in rows]

    # ------------------------------------------------------------------
    # Approval routes
    async def save_route(self, route: ApprovalRoute) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO approval_routes (id, name, steps, created_at) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET name = excluded.name, steps = excluded.steps
            """,
            route.id,
            route.name,
            json.dumps([s.model_dump() for s in route.steps]),
            route.created_at.isoformat(),
        )

    async def get_route(self, route_id: str) -> ApprovalRoute | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT id, name, steps, created_at FROM approval_routes WHERE id = ?",
            route_id,
        )
        return self._row_to_route(row) if row else None

    async def get_route_by_name(self, name: str) -> ApprovalRoute | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT id, name, steps, created_at FROM approval_routes WHERE name = ?",
            name,
        )
        return self._row_to_route(row) if row else None

    async def list_routes(self) -> list[ApprovalRoute]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id, name, steps, created_at FROM approval_routes ORDER BY rowid",
        )
        return [self._row_to_route(r) for r in rows]

    async def delete_route(self, route_id: str) -> bool:
        count = await asyncio.to_thread(
            self._execute, "DELETE FROM approval_routes WHERE id = ?", route_id
        )
        return count == 1

    # ------------------------------------------------------------------
    # Applications
    async def create_application(self, application: Application) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO applications ({_APPLICATION_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            application.id,
            application.applicant_id,
            application.application_code_id,
            application.approval_route_id,
            json.dumps(application.form_data),
            application.status.value,
            application.current_level,
            application.approver_id,
            json.dumps(application.route_steps),
            _ts(application.submitted_at),
            _ts(application.approved_at),
            _ts(application.rejected_at),
            application.rejection_reason,
            application.created_at.isoformat(),
            _ts(application.updated_at),
        )

    async def get_application(self, application_id: str) -> Application | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_APPLICATION_COLUMNS} FROM applications WHERE id = ?",
            application_id,
        )
        return self._row_to_application(row) if row else None

    async def list_applications(self) -> list[Application]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_APPLICATION_COLUMNS} FROM applications ORDER BY rowid",
        )
        return [self._row_to_application(r) for r in rows]

    async def update_application(
        self,
        application: Application,
        expected_status: ApplicationStatus,
        expected_level: int,
        expected_approver_id: Optional[str],
    ) -> bool:
        count = await asyncio.to_thread(
            self._execute,
            """
            UPDATE applications SET
                form_data = ?, status = ?, current_level = ?, approver_id = ?,
                route_steps = ?, submitted_at = ?, approved_at = ?, rejected_at = ?,
                rejection_reason = ?, updated_at = ?
            WHERE id = ? AND status = ? AND current_level = ? AND approver_id IS ?
            """,
            json.dumps(application.form_data),
            application.status.value,
            application.current_level,
            application.approver_id,
            json.dumps(application.route_steps),
            _ts(application.submitted_at),
            _ts(application.approved_at),
            _ts(application.rejected_at),
            application.rejection_reason,
            _ts(application.updated_at),
            application.id,
            expected_status.value,
            expected_level,
            expected_approver_id,
        )
        return count == 1
