"""In-memory implementation of the workflow store."""

from __future__ import annotations

import threading
from typing import Dict, Optional

from ..errors import DuplicateWorkflowError, InvalidRunStateError, NotFoundError
from ..models import Run, RunStatus, Workflow, utcnow
from .repository import WorkflowStore


class InMemoryWorkflowStore(WorkflowStore):
    """Store workflows and runs in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Runs are copied on the way in and on
    the way out, so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._runs: Dict[str, Run] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    async def create_workflow(self, workflow: Workflow) -> Workflow:
        with self._lock:
            if workflow.id in self._workflows:
                raise DuplicateWorkflowError(
                    f"Workflow '{workflow.id}' already exists", {"id": workflow.id}
                )
            self._workflows[workflow.id] = workflow
        return workflow

    async def get_workflow(self, workflow_id: str) -> Workflow:
        with self._lock:
            workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow", workflow_id)
        return workflow

    async def list_workflows(self) -> list[Workflow]:
        with self._lock:
            return list(self._workflows.values())

    # ------------------------------------------------------------------
    async def create_run(self, run: Run) -> Run:
        with self._lock:
            if run.id in self._runs:
                raise InvalidRunStateError(
                    f"Run '{run.id}' already exists", {"run_id": run.id}
                )
            self._runs[run.id] = run.model_copy(deep=True)
        return run

    async def get_run(self, run_id: str) -> Run:
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise NotFoundError("Run", run_id)
            return run.model_copy(deep=True)

    async def update_run(
        self, run: Run, expected_status: Optional[RunStatus] = None
    ) -> Run:
        with self._lock:
            current = self._runs.get(run.id)
            if current is None:
                raise NotFoundError("Run", run.id)
            if current.status.is_terminal or (
                expected_status is not None and current.status != expected_status
            ):
                raise InvalidRunStateError(
                    f"Run '{run.id}' is already {current.status.value}",
                    {"run_id": run.id, "status": current.status.value},
                )
            run.updated_at = utcnow()
            self._runs[run.id] = run.model_copy(deep=True)
        return run

    async def list_runs(self, workflow_id: Optional[str] = None) -> list[Run]:
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._runs.values()
                if workflow_id is None or r.workflow_id == workflow_id
            ]
