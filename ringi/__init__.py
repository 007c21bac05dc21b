"""ringi: multi-step approval workflow engine for business applications."""

from .contracts import (
    Application,
    ApplicationCode,
    ApplicationEvent,
    ApplicationStatus,
    ApplicationWithDetails,
    ApprovalRoute,
    RouteStep,
    SubmissionPayload,
    User,
)
from .engine import ApprovalEngine
from .notifications import get_notifier
from .persistence import get_repository
from .queries import WorkflowQueryService
from .routes import RouteService
from .workflow import DecisionProcessor

__version__ = "0.1.0"
__all__ = [
    "Application",
    "ApplicationCode",
    "ApplicationEvent",
    "ApplicationStatus",
    "ApplicationWithDetails",
    "ApprovalEngine",
    "ApprovalRoute",
    "DecisionProcessor",
    "RouteService",
    "RouteStep",
    "SubmissionPayload",
    "User",
    "WorkflowQueryService",
    "get_notifier",
    "get_repository",
]
