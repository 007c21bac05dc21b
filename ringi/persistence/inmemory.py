"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

from ..contracts import (
    Application,
    ApplicationCode,
    ApplicationStatus,
    ApprovalRoute,
    User,
)
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._codes: Dict[str, ApplicationCode] = {}
        self._routes: Dict[str, ApprovalRoute] = {}
        self._applications: Dict[str, Application] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def save_user(self, user: User) -> None:
        self._users[user.id] = user.model_copy(deep=True)

    async def get_user(self, user_id: str) -> User | None:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def list_users(self) -> list[User]:
        return [u.model_copy(deep=True) for u in self._users.values()]

    # ------------------------------------------------------------------
    async def save_application_code(self, code: ApplicationCode) -> None:
        self._codes[code.id] = code.model_copy(deep=True)

    async def get_application_code(self, code_id: str) -> ApplicationCode | None:
        code = self._codes.get(code_id)
        return code.model_copy(deep=True) if code else None

    async def list_application_codes(self) -> list[ApplicationCode]:
        return [c.model_copy(deep=True) for c in self._codes.values()]

    # ------------------------------------------------------------------
    async def save_route(self, route: ApprovalRoute) -> None:
        self._routes[route.id] = route.model_copy(deep=True)

    async def get_route(self, route_id: str) -> ApprovalRoute | None:
        route = self._routes.get(route_id)
        return route.model_copy(deep=True) if route else None

    async def get_route_by_name(self, name: str) -> ApprovalRoute | None:
        for route in self._routes.values():
            if route.name == name:
                return route.model_copy(deep=True)
        return None

    async def list_routes(self) -> list[ApprovalRoute]:
        return [r.model_copy(deep=True) for r in self._routes.values()]

    async def delete_route(self, route_id: str) -> bool:
        return self._routes.pop(route_id, None) is not None

    # ------------------------------------------------------------------
    async def create_application(self, application: Application) -> None:
        async with self._lock:
            if application.id in self._applications:
                raise ValueError(f"Application {application.id} already exists")
            self._applications[application.id] = application.model_copy(deep=True)

    async def get_application(self, application_id: str) -> Application | None:
        app = self._applications.get(application_id)
        return app.model_copy(deep=True) if app else None

    async def list_applications(self) -> list[Application]:
        return [a.model_copy(deep=True) for a in self._applications.values()]

    async def update_application(
        self,
        application: Application,
        expected_status: ApplicationStatus,
        expected_level: int,
        expected_approver_id: Optional[str],
    ) -> bool:
        async with self._lock:
            stored = self._applications.get(application.id)
            if (
                stored is None
                or stored.status != expected_status
                or stored.current_level != expected_level
                or stored.approver_id != expected_approver_id
            ):
                return False
            self._applications[application.id] = application.model_copy(deep=True)
            return True
