"""Read-side views over the application set.

All functions here are side-effect free; they may be called repeatedly
(for example on every navigation) without changing stored state.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel

from .contracts import (
    Application,
    ApplicationStatus,
    ApplicationWithDetails,
)
from .errors import ApplicationNotFound, ValidationError
from .persistence import WorkflowRepository

logger = logging.getLogger(__name__)

TABS: tuple[str, ...] = ("pending", "submitted", "completed")

DEFAULT_SORT_KEY = "updatedAt"


# ----------------------------------------------------------------------
# Pure partition, search and sort helpers
def filter_pending(apps: Iterable[Application], user_id: str) -> List[Application]:
    """Applications whose *current* step awaits ``user_id``."""
    return [
        a
        for a in apps
        if a.status == ApplicationStatus.PENDING_APPROVAL and a.approver_id == user_id
    ]


def filter_submitted(apps: Iterable[Application], user_id: str) -> List[Application]:
    return [a for a in apps if a.applicant_id == user_id]


def filter_completed(apps: Iterable[Application]) -> List[Application]:
    """Terminal applications of every applicant."""
    return [a for a in apps if a.is_terminal]


def filter_by_search(
    apps: Iterable[ApplicationWithDetails], term: Optional[str]
) -> List[ApplicationWithDetails]:
    """Case-insensitive substring match on applicant name, type name and status."""
    apps = list(apps)
    if not term:
        return apps
    needle = term.lower()

    def matches(app: ApplicationWithDetails) -> bool:
        applicant_name = app.applicant.name if app.applicant else ""
        type_name = app.application_code.name if app.application_code else ""
        return (
            needle in (applicant_name or "").lower()
            or needle in (type_name or "").lower()
            or needle in app.status.value.lower()
        )

    return [a for a in apps if matches(a)]


def _field_name(key: str) -> str:
    for name, field in ApplicationWithDetails.model_fields.items():
        if key in (name, field.alias):
            return name
    raise ValidationError(f"Unknown sort key: {key}")


def _comparable(value: Any) -> tuple[int, Any]:
    """Map any projected value to a key that orders against every other key.

    Numbers sort before text; everything else compares as a string.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    if value is None:
        return (1, "")
    if isinstance(value, datetime):
        return (1, value.isoformat())
    if isinstance(value, Enum):
        return (1, str(value.value))
    if isinstance(value, BaseModel):
        return (1, value.model_dump_json(by_alias=True))
    if isinstance(value, (dict, list, tuple)):
        return (1, json.dumps(value, sort_keys=True, ensure_ascii=False, default=str))
    return (1, str(value))


def sort_value(app: ApplicationWithDetails, key: str) -> Any:
    if key == "applicant":
        return (app.applicant.name if app.applicant else "").lower()
    if key == "type":
        return (app.application_code.name if app.application_code else "").lower()
    if key in ("updatedAt", "updated_at"):
        return _comparable(app.updated_at or app.created_at)
    return _comparable(getattr(app, _field_name(key)))


def sort_applications(
    apps: Iterable[ApplicationWithDetails],
    key: str = DEFAULT_SORT_KEY,
    descending: bool = True,
) -> List[ApplicationWithDetails]:
    """Sort by a projected field; equal keys keep their input order."""
    apps = list(apps)
    if key not in ("applicant", "type", "updatedAt", "updated_at"):
        _field_name(key)
    return sorted(apps, key=lambda a: sort_value(a, key), reverse=descending)


# ----------------------------------------------------------------------
class WorkflowQueryService:
    """Answers "what must I approve", "what did I submit" and "what is resolved"."""

    def __init__(self, repository: WorkflowRepository) -> None:
        self._repository = repository

    async def _details(
        self, apps: Iterable[Application]
    ) -> List[ApplicationWithDetails]:
        users = {u.id: u for u in await self._repository.list_users()}
        codes = {c.id: c for c in await self._repository.list_application_codes()}
        routes = {r.id: r for r in await self._repository.list_routes()}
        return [
            ApplicationWithDetails.build(
                app,
                applicant=users.get(app.applicant_id),
                application_code=codes.get(app.application_code_id),
                approval_route=routes.get(app.approval_route_id),
            )
            for app in apps
        ]

    async def all_applications(self) -> List[ApplicationWithDetails]:
        return await self._details(await self._repository.list_applications())

    async def get_application(self, application_id: str) -> ApplicationWithDetails:
        app = await self._repository.get_application(application_id)
        if app is None:
            raise ApplicationNotFound(application_id)
        return (await self._details([app]))[0]

    async def pending_for_approver(self, user_id: str) -> List[ApplicationWithDetails]:
        apps = filter_pending(await self._repository.list_applications(), user_id)
        return await self._details(apps)

    async def submitted_by(self, user_id: str) -> List[ApplicationWithDetails]:
        apps = filter_submitted(await self._repository.list_applications(), user_id)
        return await self._details(apps)

    async def completed(self) -> List[ApplicationWithDetails]:
        """Every approved or rejected application, not scoped to a user."""
        apps = filter_completed(await self._repository.list_applications())
        return await self._details(apps)

    async def tab_counts(self, user_id: str) -> Dict[str, int]:
        apps = await self._repository.list_applications()
        return {
            "pending": len(filter_pending(apps, user_id)),
            "submitted": len(filter_submitted(apps, user_id)),
            "completed": len(filter_completed(apps)),
        }

    async def list_view(
        self,
        tab: str,
        user_id: str,
        search: Optional[str] = None,
        sort_key: str = DEFAULT_SORT_KEY,
        descending: bool = True,
    ) -> List[ApplicationWithDetails]:
        """One tab of the approval list: partition, then search, then sort."""
        if tab == "pending":
            apps = await self.pending_for_approver(user_id)
        elif tab == "submitted":
            apps = await self.submitted_by(user_id)
        elif tab == "completed":
            apps = await self.completed()
        else:
            raise ValidationError(f"Unknown tab: {tab}")
        apps = filter_by_search(apps, search)
        logger.debug(f"{tab} view for {user_id}: {len(apps)} applications")
        return sort_applications(apps, sort_key, descending)
