"""Storage backends for applications, routes, codes and users."""

from __future__ import annotations

import logging
import os
from typing import Callable, Dict, Optional
from urllib.parse import urlsplit

from ..config import RingiConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresWorkflowRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresWorkflowRepository = None  # type: ignore

logger = logging.getLogger(__name__)

_repository_instance: WorkflowRepository | None = None


def _sqlite(database_url: str) -> WorkflowRepository:
    # sqlite:///abs/path.db, sqlite://rel.db and sqlite://:memory:
    path = database_url.split("://", 1)[1]
    if not path or path == "/":
        raise ValueError("SQLite database URL has no file path")
    if path == "/:memory:":
        path = ":memory:"
    return SQLiteWorkflowRepository(path)


def _postgres(database_url: str) -> WorkflowRepository:
    if PostgresWorkflowRepository is None:
        raise RuntimeError("Postgres support not available (install asyncpg)")
    return PostgresWorkflowRepository(database_url)


_BACKENDS: Dict[str, Callable[[str], WorkflowRepository]] = {
    "sqlite": _sqlite,
    "postgres": _postgres,
    "postgresql": _postgres,
}


def _redacted(database_url: str) -> str:
    parts = urlsplit(database_url)
    if parts.password:
        return database_url.replace(f":{parts.password}@", ":***@", 1)
    return database_url


def get_repository(
    database_url: Optional[str] = None, config: Optional[RingiConfig] = None
) -> WorkflowRepository:
    """Return the process-wide workflow repository, creating it on first use.

    ``database_url`` is taken from the argument, then ``RINGI_DATABASE_URL``,
    then ``DATABASE_URL``, then the loaded configuration. Without any URL the
    applications live in memory and vanish with the process. Passing a URL
    or config always builds a fresh repository and makes it the shared one.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("RINGI_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        logger.info("No database configured; applications are kept in memory")
        _repository_instance = InMemoryWorkflowRepository()
        return _repository_instance

    scheme = database_url.split("://", 1)[0].lower() if "://" in database_url else ""
    factory = _BACKENDS.get(scheme)
    if factory is None:
        raise ValueError(
            f"Unsupported database backend '{scheme or database_url}'; "
            f"expected one of: {', '.join(sorted(_BACKENDS))}"
        )
    _repository_instance = factory(database_url)
    logger.info(f"Using {type(_repository_instance).__name__} at {_redacted(database_url)}")
    return _repository_instance


def reset_repository() -> None:
    """Forget the shared repository so the next lookup re-reads configuration."""
    global _repository_instance
    _repository_instance = None


__all__ = [
    "WorkflowRepository",
    "SQLiteWorkflowRepository",
    "PostgresWorkflowRepository",
    "InMemoryWorkflowRepository",
    "get_repository",
    "reset_repository",
]
