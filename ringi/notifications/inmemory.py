"""In-memory notifier for testing."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Dict, List

from ..contracts import ApplicationEvent
from .base import DEFAULT_TOPIC, BaseNotifier


class InMemoryNotifier(BaseNotifier):
    """Keeps published events per topic in process memory."""

    def __init__(self) -> None:
        self._events: Dict[str, List[ApplicationEvent]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def notify(self, event: ApplicationEvent, topic: str = DEFAULT_TOPIC) -> None:
        async with self._lock:
            self._events[topic].append(event)

    def events(self, topic: str = DEFAULT_TOPIC) -> List[ApplicationEvent]:
        return list(self._events[topic])
