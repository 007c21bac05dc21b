"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from typing import Any, Optional

import asyncpg

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


def _json(value: Any) -> Any:
    # asyncpg hands JSONB back as text unless a codec is registered
    return json.loads(value) if isinstance(value, str) else value


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                seq BIGSERIAL,
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                department TEXT,
                title TEXT,
                email TEXT
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS application_codes (
                seq BIGSERIAL,
                id TEXT PRIMARY KEY,
                code VARCHAR(10) UNIQUE NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                created_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS approval_routes (
                seq BIGSERIAL,
                id TEXT PRIMARY KEY,
                name TEXT UNIQUE NOT NULL,
                route_data JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS applications (
                seq BIGSERIAL,
                id TEXT PRIMARY KEY,
                applicant_id TEXT NOT NULL,
                application_code_id TEXT NOT NULL,
                approval_route_id TEXT NOT NULL,
                form_data JSONB,
                status TEXT NOT NULL,
                current_level INTEGER NOT NULL,
                approver_id TEXT,
                route_steps JSONB NOT NULL,
                submitted_at TIMESTAMPTZ,
                approved_at TIMESTAMPTZ,
                rejected_at TIMESTAMPTZ,
                rejection_reason TEXT,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ
            )
            """
        )

    @staticmethod
    def _row_to_route(row: asyncpg.Record) -> ApprovalRoute:
        route_data = _json(row["route_data"])
        return ApprovalRoute(
            id=row["id"],
            name=row["name"],
            steps=[RouteStep(**s) for s in route_data["steps"]],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_code(row: asyncpg.Record) -> ApplicationCode:
        return ApplicationCode(
            id=row["id"],
            code=row["code"],
            name=row["name"],
            description=row["description"] or "",
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_application(row: asyncpg.Record) -> Application:
        form_data = _json(row["form_data"])
        return Application(
            id=row["id"],
            applicant_id=row["applicant_id"],
            application_code_id=row["application_code_id"],
            approval_route_id=row["approval_route_id"],
            form_data=form_data if form_data is not None else {},
            status=ApplicationStatus(row["status"]),
            current_level=row["current_level"],
            approver_id=row["approver_id"],
            route_steps=_json(row["route_steps"]),
            submitted_at=row["submitted_at"],
            approved_at=row["approved_at"],
            rejected_at=row["rejected_at"],
            rejection_reason=row["rejection_reason"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # ------------------------------------------------------------------
    async def save_user(self, user: User) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO users (id, name, department, title, email) VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (id) DO UPDATE SET
                    name = EXCLUDED.name, department = EXCLUDED.department,
                    title = EXCLUDED.title, email = EXCLUDED.email
                """,
                user.id,
                user.name,
                user.department,
                user.title,
                user.email,
            )
        finally:
            await conn.close()

    async def get_user(self, user_id: str) -> User | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT id, name, department, title, email FROM users WHERE id = $1",
                user_id,
            )
        finally:
            await conn.close()
        return User(**dict(row)) if row else None

    async def list_users(self) -> list[User]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT id, name, department, title, email FROM users ORDER BY seq"
            )
        finally:
            await conn.close()
        return [User(**dict(r)) for r in rows]

    # ------------------------------------------------------------------
    async def save_application_code(self, code: ApplicationCode) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO application_codes (id, code, name, description, created_at)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (id) DO UPDATE SET
                    code = EXCLUDED.code, name = EXCLUDED.name,
                    description = EXCLUDED.description
                """,
                code.id,
                code.code,
                code.name,
                code.description,
                code.created_at,
            )
        finally:
            await conn.close()

    async def get_application_code(self, code_id: str) -> ApplicationCode | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT id, code, name, description, created_at FROM application_codes WHERE id = $1",
                code_id,
            )
        finally:
            await conn.close()
        return self._row_to_code(row) if row else None

    async def list_application_codes(self) -> list[ApplicationCode]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT id, code, name, description, created_at FROM application_codes ORDER BY seq"
            )
        finally:
            await conn.close()
        return [self._row_to_code(r) for r in rows]

    # ------------------------------------------------------------------
    async def save_route(self, route: ApprovalRoute) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO approval_routes (id, name, route_data, created_at)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (id) DO UPDATE SET
                    name = EXCLUDED.name, route_data = EXCLUDED.route_data
                """,
                route.id,
                route.name,
                json.dumps({"steps": [s.model_dump() for s in route.steps]}),
                route.created_at,
            )
        finally:
            await conn.close()

    async def get_route(self, route_id: str) -> ApprovalRoute | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT id, name, route_data, created_at FROM approval_routes WHERE id = $1",
                route_id,
            )
        finally:
            await conn.close()
        return self._row_to_route(row) if row else None

    async def get_route_by_name(self, name: str) -> ApprovalRoute | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT id, name, route_data, created_at FROM approval_routes WHERE name = $1",
                name,
            )
        finally:
            await conn.close()
        return self._row_to_route(row) if row else None

    async def list_routes(self) -> list[ApprovalRoute]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT id, name, route_data, created_at FROM approval_routes ORDER BY seq"
            )
        finally:
            await conn.close()
        return [self._row_to_route(r) for r in rows]

    async def delete_route(self, route_id: str) -> bool:
        conn = await self._connect()
        try:
            result = await conn.execute(
                "DELETE FROM approval_routes WHERE id = $1", route_id
            )
        finally:
            await conn.close()
        return result == "DELETE 1"

    # ------------------------------------------------------------------
    async def create_application(self, application: Application) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO applications ({_APPLICATION_COLUMNS}) VALUES "
                "($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15)",
                application.id,
                application.applicant_id,
                application.application_code_id,
                application.approval_route_id,
                json.dumps(application.form_data),
                application.status.value,
                application.current_level,
                application.approver_id,
                json.dumps(application.route_steps),
                application.submitted_at,
                application.approved_at,
                application.rejected_at,
                application.rejection_reason,
                application.created_at,
                application.updated_at,
            )
        finally:
            await conn.close()

    async def get_application(self, application_id: str) -> Application | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_APPLICATION_COLUMNS} FROM applications WHERE id = $1",
                application_id,
            )
        finally:
            await conn.close()
        return self._row_to_application(row) if row else None

    async def list_applications(self) -> list[Application]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_APPLICATION_COLUMNS} FROM applications ORDER BY seq"
            )
        finally:
            await conn.close()
        return [self._row_to_application(r) for r in rows]

    async def update_application(
        self,
        application: Application,
        expected_status: ApplicationStatus,
        expected_level: int,
        expected_approver_id: Optional[str],
    ) -> bool:
        conn = await self._connect()
        try:
            result = await conn.execute(
                """
                UPDATE applications SET
                    form_data = $1, status = $2, current_level = $3, approver_id = $4,
                    route_steps = $5, submitted_at = $6, approved_at = $7,
                    rejected_at = $8, rejection_reason = $9, updated_at = $10
                WHERE id = $11 AND status = $12 AND current_level = $13
                    AND approver_id IS NOT DISTINCT FROM $14
                """,
                json.dumps(application.form_data),
                application.status.value,
                application.current_level,
                application.approver_id,
                json.dumps(application.route_steps),
                application.submitted_at,
                application.approved_at,
                application.rejected_at,
                application.rejection_reason,
                application.updated_at,
                application.id,
                expected_status.value,
                expected_level,
                expected_approver_id,
            )
        finally:
            await conn.close()
        return result == "UPDATE 1"
