"""Base notifier interface for transition events."""

from __future__ import annotations

import abc

from ..contracts import ApplicationEvent

DEFAULT_TOPIC = "applications"


class BaseNotifier(metaclass=abc.ABCMeta):
    """Fire-and-forget observer of committed transitions."""

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to broker (no-op by default)."""
        pass

    @abc.abstractmethod
    async def notify(self, event: ApplicationEvent, topic: str = DEFAULT_TOPIC) -> None:
        """Publish ``event`` to ``topic``."""
        raise NotImplementedError


class NullNotifier(BaseNotifier):
    """Discards every event."""

    async def notify(self, event: ApplicationEvent, topic: str = DEFAULT_TOPIC) -> None:
        pass
