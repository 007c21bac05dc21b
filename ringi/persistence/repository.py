"""Repository abstraction for approval workflow persistence."""

from __future__ import annotations

from typing import Optional, Protocol

from ..contracts import (
    Application,
    ApplicationCode,
    ApplicationStatus,
    ApprovalRoute,
    User,
)


class WorkflowRepository(Protocol):
    """Protocol for approval workflow persistence backends.

    Every getter returns a detached copy: mutating a returned model never
    changes stored state. ``update_application`` is the only way to change an
    existing application and is a compare-and-set on the stored row.
    """

    async def save_user(self, user: User) -> None:
        """Insert or replace a directory user."""

    async def get_user(self, user_id: str) -> User | None:
        """Return the user with ``user_id``."""

    async def list_users(self) -> list[User]:
        """Return all users."""

    async def save_application_code(self, code: ApplicationCode) -> None:
        """Insert or replace an application code."""

    async def get_application_code(self, code_id: str) -> ApplicationCode | None:
        """Return the application code with ``code_id``."""

    async def list_application_codes(self) -> list[ApplicationCode]:
        """Return all application codes in insertion order."""

    async def save_route(self, route: ApprovalRoute) -> None:
        """Insert or replace an approval route."""

    async def get_route(self, route_id: str) -> ApprovalRoute | None:
        """Return the route with ``route_id``."""

    async def get_route_by_name(self, name: str) -> ApprovalRoute | None:
        """Return the route named ``name``."""

    async def list_routes(self) -> list[ApprovalRoute]:
        """Return all routes in insertion order."""

    async def delete_route(self, route_id: str) -> bool:
        """Delete a route, returning ``True`` when a row was removed."""

    async def create_application(self, application: Application) -> None:
        """Persist a new application."""

    async def get_application(self, application_id: str) -> Application | None:
        """Return the application with ``application_id``."""

    async def list_applications(self) -> list[Application]:
        """Return all applications."""

    async def update_application(
        self,
        application: Application,
        expected_status: ApplicationStatus,
        expected_level: int,
        expected_approver_id: Optional[str],
    ) -> bool:
        """Replace the stored application if it still matches the expectation.

        Returns ``False`` without writing when the stored row's status, level
        or approver differ from the expected values.
        """
