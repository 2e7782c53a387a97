"""Persistence layer for approval requests."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ApprovalChainConfig, load_config
from .inmemory import InMemoryRequestRepository
from .repository import RequestRepository
from .sqlite import SQLiteRequestRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresRequestRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresRequestRepository = None  # type: ignore

_repository_instance: RequestRepository | None = None

_SQLALCHEMY_PREFIXES = ("sqlite+", "postgresql+", "mysql+")


def get_repository(
    database_url: Optional[str] = None, config: Optional[ApprovalChainConfig] = None
) -> RequestRepository:
    """Factory function to obtain a request repository.

    The repository backend is selected based on ``database_url`` which can be
    provided explicitly, via environment variable ``APPROVALCHAIN_DATABASE_URL``
    or ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned. URLs naming an async
    SQLAlchemy driver (``sqlite+aiosqlite://``, ``postgresql+asyncpg://``) use
    the SQLModel repository.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("APPROVALCHAIN_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _repository_instance = InMemoryRequestRepository()
        return _repository_instance

    if database_url.startswith(_SQLALCHEMY_PREFIXES):
        from ..db import SQLModelRequestRepository

        _repository_instance = SQLModelRequestRepository(database_url)
    elif database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteRequestRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresRequestRepository is None:
            raise RuntimeError("Postgres support not available")
        _repository_instance = PostgresRequestRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "RequestRepository",
    "InMemoryRequestRepository",
    "SQLiteRequestRepository",
    "PostgresRequestRepository",
    "get_repository",
]
