"""Core data contracts for the ringi approval workflow."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class _Contract(BaseModel):
    """Base model dumping camelCase keys while accepting snake_case names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ApplicationStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


TERMINAL_STATUSES = frozenset({ApplicationStatus.APPROVED, ApplicationStatus.REJECTED})


class User(_Contract):
    """Directory entry used to resolve applicant display names."""

    id: str
    name: str
    department: Optional[str] = None
    title: Optional[str] = None
    email: Optional[str] = None


class ApplicationCode(_Contract):
    """Type discriminator for an application (expense, leave, daily report...)."""

    id: str = Field(default_factory=new_id)
    code: str
    name: str
    description: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class RouteStep(_Contract):
    approver_id: str


class ApprovalRoute(_Contract):
    """Named, ordered list of approvers used as a routing template."""

    id: str = Field(default_factory=new_id)
    name: str
    steps: List[RouteStep] = Field(min_length=1)
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_approvers(cls, name: str, approver_ids: List[str], **kwargs: Any) -> "ApprovalRoute":
        return cls(
            name=name,
            steps=[RouteStep(approver_id=a) for a in approver_ids],
            **kwargs,
        )

    def approver_ids(self) -> List[str]:
        return [step.approver_id for step in self.steps]

    def approver_at(self, level: int) -> Optional[str]:
        """Return the approver for the 1-indexed ``level`` or ``None``."""
        if 1 <= level <= len(self.steps):
            return self.steps[level - 1].approver_id
        return None


class Application(_Contract):
    """One submitted document moving through its route's steps.

    ``route_steps`` holds the approver ids copied from the route when the
    application entered ``pending_approval``; step advancement reads this
    snapshot rather than the live route.
    """

    id: str = Field(default_factory=new_id)
    applicant_id: str
    application_code_id: str
    approval_route_id: str
    form_data: Any = Field(default_factory=dict)
    status: ApplicationStatus = ApplicationStatus.DRAFT
    current_level: int = 0
    approver_id: Optional[str] = None
    route_steps: List[str] = Field(default_factory=list)
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_pending(self) -> bool:
        return self.status == ApplicationStatus.PENDING_APPROVAL

    @property
    def step_count(self) -> int:
        return len(self.route_steps)

    def approver_for_level(self, level: int) -> Optional[str]:
        if 1 <= level <= len(self.route_steps):
            return self.route_steps[level - 1]
        return None


class ApplicationWithDetails(Application):
    """Read-side projection with resolved references. Never persisted."""

    applicant: Optional[User] = None
    application_code: Optional[ApplicationCode] = None
    approval_route: Optional[ApprovalRoute] = None

    @classmethod
    def build(
        cls,
        application: Application,
        applicant: Optional[User] = None,
        application_code: Optional[ApplicationCode] = None,
        approval_route: Optional[ApprovalRoute] = None,
    ) -> "ApplicationWithDetails":
        return cls(
            **application.model_dump(
                exclude={"applicant", "application_code", "approval_route"}
            ),
            applicant=applicant,
            application_code=application_code,
            approval_route=approval_route,
        )


class SubmissionPayload(_Contract):
    """Input for creating a new application."""

    application_code_id: Optional[str] = None
    form_data: Any = Field(default_factory=dict)
    approval_route_id: Optional[str] = None
    status: Optional[ApplicationStatus] = None
    submitted_at: Optional[datetime] = None
    current_level: Optional[int] = None


EventType = Literal["submitted", "advanced", "approved", "rejected"]


class ApplicationEvent(_Contract):
    """Notification emitted after a committed transition."""

    event_id: str = Field(default_factory=new_id)
    event_type: EventType
    application_id: str
    applicant_id: str
    actor_id: str
    approver_id: Optional[str] = None
    level: int
    status: ApplicationStatus
    reason: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_application(
        cls, event_type: EventType, application: Application, actor_id: str
    ) -> "ApplicationEvent":
        return cls(
            event_type=event_type,
            application_id=application.id,
            applicant_id=application.applicant_id,
            actor_id=actor_id,
            approver_id=application.approver_id,
            level=application.current_level,
            status=application.status,
            reason=application.rejection_reason,
        )
