"""Store abstraction for workflow definitions and run records."""

from __future__ import annotations

from typing import Optional, Protocol

from ..models import Run, RunStatus, Workflow


class WorkflowStore(Protocol):
    """Protocol for workflow and run persistence backends.

    ``update_run`` replaces a run record atomically: concurrent readers see
    either the previous or the new record, never a mix of both.
    """

    async def create_workflow(self, workflow: Workflow) -> Workflow:
        """Persist a new workflow. Raises ``DuplicateWorkflowError``."""

    async def get_workflow(self, workflow_id: str) -> Workflow:
        """Return a workflow by id. Raises ``NotFoundError``."""

    async def list_workflows(self) -> list[Workflow]:
        """Return all persisted workflows."""

    async def create_run(self, run: Run) -> Run:
        """Persist a new run record."""

    async def get_run(self, run_id: str) -> Run:
        """Return a run by id. Raises ``NotFoundError``."""

    async def update_run(
        self, run: Run, expected_status: Optional[RunStatus] = None
    ) -> Run:
        """Replace a run record.

        Raises ``InvalidRunStateError`` if the stored run is terminal or, when
        ``expected_status`` is given, if the stored status differs from it.
        """

    async def list_runs(self, workflow_id: Optional[str] = None) -> list[Run]:
        """Return persisted runs, optionally only those of ``workflow_id``."""
