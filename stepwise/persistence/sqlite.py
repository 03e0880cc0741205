"""SQLite implementation of the workflow store."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any, Optional

from ..errors import DuplicateWorkflowError, InvalidRunStateError, NotFoundError
from ..models import Run, RunStatus, Workflow, utcnow
from .repository import WorkflowStore

TERMINAL_STATUSES = (RunStatus.SUCCEEDED.value, RunStatus.FAILED.value)


class SQLiteWorkflowStore(WorkflowStore):
    """Persist workflows and runs using SQLite.

    A run is a single row whose step results live in a JSON column, so
    ``update_run`` is one ``UPDATE`` statement.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                version INTEGER NOT NULL,
                definition TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS runs_workflow_id ON runs (workflow_id)")
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            try:
                cur.execute(query, params)
            except Exception:
                self._conn.rollback()
                raise
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    # ------------------------------------------------------------------
    # Workflows
    async def create_workflow(self, workflow: Workflow) -> Workflow:
        try:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO workflows (id, version, definition, created_at) VALUES (?, ?, ?, ?)",
                workflow.id,
                workflow.version,
                workflow.model_dump_json(),
                workflow.created_at.isoformat(),
            )
        except sqlite3.IntegrityError:
            raise DuplicateWorkflowError(
                f"Workflow '{workflow.id}' already exists", {"id": workflow.id}
            ) from None
        return workflow

    async def get_workflow(self, workflow_id: str) -> Workflow:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT definition FROM workflows WHERE id = ?", workflow_id
        )
        if not row:
            raise NotFoundError("Workflow", workflow_id)
        return Workflow.model_validate_json(row["definition"])

    async def list_workflows(self) -> list[Workflow]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT definition FROM workflows ORDER BY created_at"
        )
        return [Workflow.model_validate_json(r["definition"]) for r in rows]

    # ------------------------------------------------------------------
    # Runs
    async def create_run(self, run: Run) -> Run:
        try:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO runs (id, workflow_id, status, data, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
                run.id,
                run.workflow_id,
                run.status.value,
                run.to_json(),
                run.created_at.isoformat(),
                run.updated_at.isoformat(),
            )
        except sqlite3.IntegrityError:
            raise InvalidRunStateError(
                f"Run '{run.id}' already exists", {"run_id": run.id}
            ) from None
        return run

    async def get_run(self, run_id: str) -> Run:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT data FROM runs WHERE id = ?", run_id
        )
        if not row:
            raise NotFoundError("Run", run_id)
        return Run.from_json(row["data"])

    async def update_run(
        self, run: Run, expected_status: Optional[RunStatus] = None
    ) -> Run:
        run.updated_at = utcnow()
        query = (
            "UPDATE runs SET status = ?, data = ?, updated_at = ? "
            "WHERE id = ? AND status NOT IN (?, ?)"
        )
        params: list[Any] = [
            run.status.value,
            run.to_json(),
            run.updated_at.isoformat(),
            run.id,
            *TERMINAL_STATUSES,
        ]
        if expected_status is not None:
            query += " AND status = ?"
            params.append(expected_status.value)
        updated = await asyncio.to_thread(self._execute, query, *params)
        if updated == 0:
            current = await self.get_run(run.id)
            raise InvalidRunStateError(
                f"Run '{run.id}' is already {current.status.value}",
                {"run_id": run.id, "status": current.status.value},
            )
        return run

    async def list_runs(self, workflow_id: Optional[str] = None) -> list[Run]:
        if workflow_id is None:
            rows = await asyncio.to_thread(
                self._fetchall, "SELECT data FROM runs ORDER BY created_at"
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT data FROM runs WHERE workflow_id = ? ORDER BY created_at",
                workflow_id,
            )
        return [Run.from_json(r["data"]) for r in rows]
