"""Typed failures raised by the approval workflow engine."""

from __future__ import annotations

from typing import Optional


class RingiError(Exception):
    """Base class for all workflow errors."""


class RouteNotFound(RingiError):
    """A referenced approval route (by id or name) does not exist."""

    def __init__(self, route_id: Optional[str] = None, name: Optional[str] = None):
        self.route_id = route_id
        self.name = name
        if name is not None:
            message = f"Approval route named '{name}' was not found"
        else:
            message = f"Approval route {route_id} was not found"
        super().__init__(message)


class NoRoutesConfigured(RingiError):
    """The route catalog is empty."""

    def __init__(self) -> None:
        super().__init__("No approval routes are configured")


class ApplicationCodeNotFound(RingiError):
    """The referenced application type does not exist."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Application code {code} was not found")


class FormDefinitionMissing(RingiError):
    """No form schema is registered for an application code."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"No form definition registered for application code {code}")


class ApplicationNotFound(RingiError):
    def __init__(self, application_id: str):
        self.application_id = application_id
        super().__init__(f"Application {application_id} was not found")


class InvalidSubmission(RingiError):
    """Required submission fields are missing or inconsistent."""


class Unauthorized(RingiError):
    """The acting identity is not the application's current approver."""

    def __init__(self, application_id: str, actor_id: str, expected: Optional[str]):
        self.application_id = application_id
        self.actor_id = actor_id
        self.expected = expected
        super().__init__(
            f"User {actor_id} may not act on application {application_id}"
            f" (expected {expected})"
        )


class InvalidState(RingiError):
    """A transition was attempted from a state that does not allow it."""

    def __init__(self, application_id: str, status: str, action: str):
        self.application_id = application_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} application {application_id} in status '{status}'"
        )


class ValidationError(RingiError):
    """Caller input is invalid; raised before any state is touched."""


def is_stale_decision(exc: BaseException) -> bool:
    """Return ``True`` for failures that mean "this request can no longer be acted on".

    These are expected outcomes of concurrent use rather than bugs.
    """
    return isinstance(exc, (Unauthorized, InvalidState))


__all__ = [
    "RingiError",
    "RouteNotFound",
    "NoRoutesConfigured",
    "ApplicationCodeNotFound",
    "FormDefinitionMissing",
    "ApplicationNotFound",
    "InvalidSubmission",
    "Unauthorized",
    "InvalidState",
    "ValidationError",
    "is_stale_decision",
]
