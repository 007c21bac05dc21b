"""Facade exposing the approval workflow to collaborators."""

from __future__ import annotations

from typing import Any, List, Optional

from .codes import ApplicationCodeRegistry
from .config import RingiConfig, load_config
from .contracts import (
    Application,
    ApplicationStatus,
    ApplicationWithDetails,
    ApprovalRoute,
    SubmissionPayload,
)
from .db import DecisionAuditDB
from .notifications import BaseNotifier, NullNotifier, get_notifier
from .persistence import WorkflowRepository, get_repository
from .queries import WorkflowQueryService
from .routes import RouteService
from .workflow import ApplicationRef, DecisionProcessor


class ApprovalEngine:
    """Wires the route store, decision processor and query service together."""

    def __init__(
        self,
        repository: WorkflowRepository,
        notifier: BaseNotifier | None = None,
        audit: DecisionAuditDB | None = None,
        validate_forms: bool = False,
        default_route_name: Optional[str] = None,
    ) -> None:
        self.repository = repository
        self.audit = audit
        self.default_route_name = default_route_name
        self.notifier = notifier or NullNotifier()
        self.routes = RouteService(repository)
        self.codes = ApplicationCodeRegistry(repository)
        self.processor = DecisionProcessor(
            repository, notifier=self.notifier, audit=audit, validate_forms=validate_forms
        )
        self.queries = WorkflowQueryService(repository)

    @classmethod
    def from_config(cls, config: Optional[RingiConfig] = None) -> "ApprovalEngine":
        """Build an engine from configuration.

        The audit database is created lazily by the caller via ``init_db``.
        """
        repository = get_repository(config=config) if config else get_repository()
        config = config or load_config()
        audit = (
            DecisionAuditDB(config.audit_database_url)
            if config.audit_database_url
            else None
        )
        return cls(
            repository,
            notifier=get_notifier(config=config),
            audit=audit,
            validate_forms=config.validate_forms,
            default_route_name=config.default_route_name,
        )

    async def close(self) -> None:
        """Release the notifier connection and the audit engine."""
        await self.notifier.disconnect()
        if self.audit is not None:
            await self.audit.dispose()

    # ------------------------------------------------------------------
    async def submit(
        self,
        application_code_id: str,
        form_data: Any,
        approval_route_id: str,
        applicant_id: str,
        status: Optional[ApplicationStatus] = None,
    ) -> Application:
        payload = SubmissionPayload(
            application_code_id=application_code_id,
            form_data=form_data,
            approval_route_id=approval_route_id,
            status=status,
        )
        return await self.processor.submit(payload, applicant_id)

    async def approve(self, application: ApplicationRef, approver_id: str) -> Application:
        return await self.processor.approve(application, approver_id)

    async def reject(
        self, application: ApplicationRef, approver_id: str, reason: Optional[str]
    ) -> Application:
        return await self.processor.reject(application, approver_id, reason)

    async def list_routes(self) -> List[ApprovalRoute]:
        return await self.routes.list_routes()

    async def get_route_by_name(self, name: str) -> ApprovalRoute:
        return await self.routes.get_route_by_name(name)

    async def pending_for_approver(self, user_id: str) -> List[ApplicationWithDetails]:
        return await self.queries.pending_for_approver(user_id)

    async def submitted_by(self, user_id: str) -> List[ApplicationWithDetails]:
        return await self.queries.submitted_by(user_id)

    async def completed(self) -> List[ApplicationWithDetails]:
        return await self.queries.completed()
