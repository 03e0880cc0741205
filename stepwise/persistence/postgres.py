"""PostgreSQL implementation of the workflow store."""

from __future__ import annotations

from typing import Optional

import asyncpg

from ..errors import DuplicateWorkflowError, InvalidRunStateError, NotFoundError
from ..models import Run, RunStatus, Workflow, utcnow
from .repository import WorkflowStore

TERMINAL_STATUSES = [RunStatus.SUCCEEDED.value, RunStatus.FAILED.value]


class PostgresWorkflowStore(WorkflowStore):
    """Persist workflows and runs using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS stepwise_workflows (
                id TEXT PRIMARY KEY,
                version INTEGER NOT NULL,
                definition JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS stepwise_runs (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                data JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        )

    # ------------------------------------------------------------------
    async def create_workflow(self, workflow: Workflow) -> Workflow:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO stepwise_workflows (id, version, definition, created_at) "
                "VALUES ($1, $2, $3::jsonb, $4)",
                workflow.id,
                workflow.version,
                workflow.model_dump_json(),
                workflow.created_at,
            )
        except asyncpg.UniqueViolationError:
            raise DuplicateWorkflowError(
                f"Workflow '{workflow.id}' already exists", {"id": workflow.id}
            ) from None
        finally:
            await conn.close()
        return workflow

    async def get_workflow(self, workflow_id: str) -> Workflow:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT definition::text AS definition FROM stepwise_workflows WHERE id = $1",
                workflow_id,
            )
        finally:
            await conn.close()
        if not row:
            raise NotFoundError("Workflow", workflow_id)
        return Workflow.model_validate_json(row["definition"])

    async def list_workflows(self) -> list[Workflow]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT definition::text AS definition FROM stepwise_workflows ORDER BY created_at"
            )
        finally:
            await conn.close()
        return [Workflow.model_validate_json(r["definition"]) for r in rows]

    # ------------------------------------------------------------------
    async def create_run(self, run: Run) -> Run:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO stepwise_runs (id, workflow_id, status, data, created_at, updated_at) "
                "VALUES ($1, $2, $3, $4::jsonb, $5, $6)",
                run.id,
                run.workflow_id,
                run.status.value,
                run.to_json(),
                run.created_at,
                run.updated_at,
            )
        except asyncpg.UniqueViolationError:
            raise InvalidRunStateError(
                f"Run '{run.id}' already exists", {"run_id": run.id}
            ) from None
        finally:
            await conn.close()
        return run

    async def get_run(self, run_id: str) -> Run:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT data::text AS data FROM stepwise_runs WHERE id = $1", run_id
            )
        finally:
            await conn.close()
        if not row:
            raise NotFoundError("Run", run_id)
        return Run.from_json(row["data"])

    async def update_run(
        self, run: Run, expected_status: Optional[RunStatus] = None
    ) -> Run:
        run.updated_at = utcnow()
        conn = await self._connect()
        try:
            status = await conn.execute(
                "UPDATE stepwise_runs SET status = $1, data = $2::jsonb, updated_at = $3 "
                "WHERE id = $4 AND status <> ALL($5::text[]) "
                "AND ($6::text IS NULL OR status = $6)",
                run.status.value,
                run.to_json(),
                run.updated_at,
                run.id,
                TERMINAL_STATUSES,
                expected_status.value if expected_status is not None else None,
            )
        finally:
            await conn.close()
        if status.endswith(" 0"):
            current = await self.get_run(run.id)
            raise InvalidRunStateError(
                f"Run '{run.id}' is already {current.status.value}",
                {"run_id": run.id, "status": current.status.value},
            )
        return run

    async def list_runs(self, workflow_id: Optional[str] = None) -> list[Run]:
        conn = await self._connect()
        try:
            if workflow_id is None:
                rows = await conn.fetch(
                    "SELECT data::text AS data FROM stepwise_runs ORDER BY created_at"
                )
            else:
                rows = await conn.fetch(
                    "SELECT data::text AS data FROM stepwise_runs WHERE workflow_id = $1 "
                    "ORDER BY created_at",
                    workflow_id,
                )
        finally:
            await conn.close()
        return [Run.from_json(r["data"]) for r in rows]
