"""Persistence layer for stepwise workflows and runs."""

from __future__ import annotations

import os
from typing import Optional

from ..config import StepwiseConfig, load_config
from .inmemory import InMemoryWorkflowStore
from .repository import WorkflowStore
from .sqlite import SQLiteWorkflowStore

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresWorkflowStore
except ImportError:  # pragma: no cover - optional dependency
    PostgresWorkflowStore = None  # type: ignore


def get_store(
    database_url: Optional[str] = None, config: Optional[StepwiseConfig] = None
) -> WorkflowStore:
    """Factory function to build a workflow store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``STEPWISE_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory store is returned.
    """

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("STEPWISE_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        return InMemoryWorkflowStore()

    if database_url.startswith("sqlite://"):
        return SQLiteWorkflowStore(database_url.replace("sqlite://", "", 1))
    if database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresWorkflowStore is None:
            raise RuntimeError("Postgres support not available")
        return PostgresWorkflowStore(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


__all__ = [
    "WorkflowStore",
    "InMemoryWorkflowStore",
    "SQLiteWorkflowStore",
    "PostgresWorkflowStore",
    "get_store",
]
