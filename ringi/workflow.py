"""Decision processor: the only mutator of application state."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Union

from .contracts import (
    Application,
    ApplicationEvent,
    ApplicationStatus,
    EventType,
    SubmissionPayload,
    utcnow,
)
from .db import DecisionAuditDB
from .errors import (
    ApplicationCodeNotFound,
    ApplicationNotFound,
    InvalidState,
    InvalidSubmission,
    RouteNotFound,
    Unauthorized,
    ValidationError,
)
from .forms import validate_form_data
from .notifications import BaseNotifier, NullNotifier
from .persistence import WorkflowRepository

logger = logging.getLogger(__name__)

ApplicationRef = Union[str, Application]


def approve_transition(application: Application, now: datetime) -> Application:
    """Return ``application`` after its current approver confirms.

    The level is always incremented first; a level past the last step
    means the final approver confirmed and the application is approved.
    """
    updated = application.model_copy(deep=True)
    updated.current_level += 1
    if updated.current_level > updated.step_count:
        updated.status = ApplicationStatus.APPROVED
        updated.approved_at = now
        updated.approver_id = None
    else:
        updated.approver_id = updated.approver_for_level(updated.current_level)
    updated.rejected_at = None
    updated.rejection_reason = None
    updated.updated_at = now
    return updated


def reject_transition(application: Application, reason: str, now: datetime) -> Application:
    """Return ``application`` rejected at its current level."""
    updated = application.model_copy(deep=True)
    updated.status = ApplicationStatus.REJECTED
    updated.rejected_at = now
    updated.approved_at = None
    updated.rejection_reason = reason
    updated.updated_at = now
    return updated


class DecisionProcessor:
    """Creates applications and applies approve/reject decisions.

    Every transition is written with a compare-and-set on the stored status,
    level and approver, so two concurrent decisions on one application
    cannot both succeed.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        notifier: BaseNotifier | None = None,
        audit: DecisionAuditDB | None = None,
        validate_forms: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._notifier = notifier or NullNotifier()
        self._audit = audit
        self._validate_forms = validate_forms
        self._clock = clock

    # ------------------------------------------------------------------
    # Submission
    async def submit(
        self, payload: SubmissionPayload, applicant_id: Optional[str]
    ) -> Application:
        """Create a new application bound to the payload's route.

        Defaults to ``pending_approval`` at level 1; a ``draft`` status keeps
        level 0 and no approver.
        """
        if not applicant_id:
            raise InvalidSubmission("applicant_id is required")
        if not payload.application_code_id:
            raise InvalidSubmission("application_code_id is required")
        if not payload.approval_route_id:
            raise InvalidSubmission("approval_route_id is required")

        status = payload.status or ApplicationStatus.PENDING_APPROVAL
        if status not in (ApplicationStatus.DRAFT, ApplicationStatus.PENDING_APPROVAL):
            raise InvalidSubmission(f"Cannot create an application in status '{status.value}'")

        code = await self._repository.get_application_code(payload.application_code_id)
        if code is None:
            raise ApplicationCodeNotFound(payload.application_code_id)
        route = await self._repository.get_route(payload.approval_route_id)
        if route is None:
            raise RouteNotFound(route_id=payload.approval_route_id)

        now = self._clock()
        application = Application(
            applicant_id=applicant_id,
            application_code_id=code.id,
            approval_route_id=route.id,
            form_data=payload.form_data,
            status=status,
            created_at=now,
            updated_at=now,
        )

        if status == ApplicationStatus.PENDING_APPROVAL:
            if self._validate_forms:
                application.form_data = validate_form_data(code.code, payload.form_data)
            level = payload.current_level if payload.current_level is not None else 1
            if not 1 <= level <= len(route.steps):
                raise InvalidSubmission(
                    f"Level {level} is outside route '{route.name}' ({len(route.steps)} steps)"
                )
            application.route_steps = route.approver_ids()
            application.current_level = level
            application.approver_id = route.approver_at(level)
            application.submitted_at = payload.submitted_at or now
        elif payload.current_level:
            raise InvalidSubmission("A draft must not carry an approval level")

        await self._repository.create_application(application)
        logger.info(
            f"Application {application.id} created by {applicant_id} "
            f"with status {status.value} on route {route.id}"
        )
        if application.is_pending:
            await self._after_commit("submitted", application, applicant_id)
        return application

    async def submit_draft(
        self, application: ApplicationRef, applicant_id: str
    ) -> Application:
        """Move the applicant's draft into ``pending_approval`` at level 1.

        With form validation enabled the draft's form is checked here, since
        saving the draft skipped it.
        """
        current = await self._load(application)
        if current.applicant_id != applicant_id:
            raise Unauthorized(current.id, applicant_id, current.applicant_id)
        if current.status != ApplicationStatus.DRAFT:
            raise InvalidState(current.id, current.status.value, "submit")

        route = await self._repository.get_route(current.approval_route_id)
        if route is None:
            raise RouteNotFound(route_id=current.approval_route_id)

        now = self._clock()
        updated = current.model_copy(deep=True)
        if self._validate_forms:
            code = await self._repository.get_application_code(current.application_code_id)
            if code is None:
                raise ApplicationCodeNotFound(current.application_code_id)
            updated.form_data = validate_form_data(code.code, current.form_data)
        updated.status = ApplicationStatus.PENDING_APPROVAL
        updated.route_steps = route.approver_ids()
        updated.current_level = 1
        updated.approver_id = route.approver_at(1)
        updated.submitted_at = now
        updated.updated_at = now

        await self._commit(current, updated, "submit")
        logger.info(f"Draft {current.id} submitted by {applicant_id}")
        await self._after_commit("submitted", updated, applicant_id)
        return updated

    # ------------------------------------------------------------------
    # Decisions
    async def approve(self, application: ApplicationRef, approver_id: str) -> Application:
        """Confirm the current step and advance or complete the application."""
        current = await self._load(application)
        self._check_decidable(current, approver_id, "approve")
        if not current.route_steps:
            current = await self._with_live_route(current)

        updated = approve_transition(current, self._clock())
        await self._commit(current, updated, "approve")

        if updated.status == ApplicationStatus.APPROVED:
            logger.info(
                f"Application {current.id} approved by {approver_id} at final level {current.current_level}"
            )
            await self._after_commit("approved", updated, approver_id, current.current_level)
        else:
            logger.info(
                f"Application {current.id} advanced to level {updated.current_level} "
                f"(next approver {updated.approver_id})"
            )
            await self._after_commit("advanced", updated, approver_id, current.current_level)
        return updated

    async def reject(
        self, application: ApplicationRef, approver_id: str, reason: Optional[str]
    ) -> Application:
        """Reject the application at its current level."""
        if reason is None or not reason.strip():
            raise ValidationError("A rejection reason is required")

        current = await self._load(application)
        self._check_decidable(current, approver_id, "reject")

        updated = reject_transition(current, reason, self._clock())
        await self._commit(current, updated, "reject")
        logger.info(
            f"Application {current.id} rejected by {approver_id} at level {current.current_level}"
        )
        await self._after_commit("rejected", updated, approver_id)
        return updated

    # ------------------------------------------------------------------
    # Helpers
    async def _load(self, application: ApplicationRef) -> Application:
        application_id = application if isinstance(application, str) else application.id
        stored = await self._repository.get_application(application_id)
        if stored is None:
            raise ApplicationNotFound(application_id)
        return stored

    @staticmethod
    def _check_decidable(application: Application, actor_id: str, action: str) -> None:
        if application.status != ApplicationStatus.PENDING_APPROVAL:
            logger.warning(
                f"Refused to {action} application {application.id} in status {application.status.value}"
            )
            raise InvalidState(application.id, application.status.value, action)
        if application.approver_id != actor_id:
            logger.warning(
                f"User {actor_id} tried to {action} application {application.id} "
                f"awaiting {application.approver_id}"
            )
            raise Unauthorized(application.id, actor_id, application.approver_id)

    async def _with_live_route(self, application: Application) -> Application:
        # rows written before approver snapshots existed
        route = await self._repository.get_route(application.approval_route_id)
        if route is None:
            raise RouteNotFound(route_id=application.approval_route_id)
        patched = application.model_copy(deep=True)
        patched.route_steps = route.approver_ids()
        return patched

    async def _commit(self, before: Application, after: Application, action: str) -> None:
        committed = await self._repository.update_application(
            after,
            expected_status=before.status,
            expected_level=before.current_level,
            expected_approver_id=before.approver_id,
        )
        if committed:
            return
        latest = await self._repository.get_application(before.id)
        status = latest.status.value if latest else "missing"
        logger.warning(
            f"Concurrent modification of application {before.id}; {action} lost the race"
        )
        raise InvalidState(before.id, status, action)

    async def _after_commit(
        self,
        event_type: EventType,
        application: Application,
        actor_id: str,
        level: Optional[int] = None,
    ) -> None:
        """Notify observers. Failures are logged and never undo the transition."""
        if self._audit is not None:
            try:
                await self._audit.record(
                    _AUDIT_ACTIONS[event_type], application, actor_id, level=level
                )
            except Exception as e:
                logger.error(f"Failed to record {event_type} of application {application.id}: {e}")
        try:
            await self._notifier.notify(
                ApplicationEvent.from_application(event_type, application, actor_id)
            )
        except Exception as e:
            logger.error(f"Failed to publish {event_type} event for application {application.id}: {e}")


_AUDIT_ACTIONS = {
    "submitted": "submitted",
    "advanced": "approved",
    "approved": "approved",
    "rejected": "rejected",
}
