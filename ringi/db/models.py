from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DecisionRecord(SQLModel, table=True):
    """One committed transition of an application."""

    id: Optional[int] = Field(default=None, primary_key=True)
    application_id: str = Field(index=True)
    action: str  # submitted, approved, rejected
    level: int
    actor_id: str
    approver_after: Optional[str] = None
    status_after: str
    reason: Optional[str] = None
    decided_at: datetime = Field(default_factory=_now)
