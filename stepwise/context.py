"""Process-wide application context bundling store, registry and executor."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from .compiler import ExecutionPlan, compile_workflow
from .config import StepwiseConfig, load_config
from .execute import RunExecutor
from .models import Run, Workflow
from .persistence import WorkflowStore, get_store
from .registry import REGISTRY, HandlerRegistry, StepHandler

logger = logging.getLogger(__name__)


class AppContext:
    """Store, registry and executor wired together.

    Handlers are registered during startup, before the first run executes;
    registering while runs are executing is unsupported.
    """

    def __init__(
        self,
        store: Optional[WorkflowStore] = None,
        registry: Optional[HandlerRegistry] = None,
        config: Optional[StepwiseConfig] = None,
    ) -> None:
        self.config = config or load_config()
        self.store = store or get_store(config=self.config)
        self.registry = registry if registry is not None else HandlerRegistry()
        self.executor = RunExecutor(self.store, self.registry, self.config.executor)

    def register_step_handler(self, step_type: str, handler: StepHandler) -> None:
        self.registry.register(step_type, handler)

    async def create_workflow(self, workflow: Workflow) -> ExecutionPlan:
        """Validate and persist ``workflow``, returning its execution plan."""
        plan = compile_workflow(workflow)
        await self.store.create_workflow(workflow)
        logger.info(
            f"Stored workflow {workflow.id} v{workflow.version} ({len(plan)} steps)"
        )
        return plan

    async def create_run(
        self, workflow_id: str, inputs: Optional[Dict[str, Any]] = None
    ) -> Run:
        return await self.executor.create_run(workflow_id, inputs)

    async def execute_run(self, run_id: str) -> Run:
        return await self.executor.execute_run(run_id)

    async def run_workflow(
        self, workflow_id: str, inputs: Optional[Dict[str, Any]] = None
    ) -> Run:
        return await self.executor.run_workflow(workflow_id, inputs)


_context: Optional[AppContext] = None
_context_lock = threading.Lock()


def get_context() -> AppContext:
    """Return the process-wide context, building it on first use.

    The context uses the shared ``REGISTRY`` and a store chosen by
    :func:`stepwise.persistence.get_store`.
    """
    global _context
    if _context is None:
        with _context_lock:
            if _context is None:
                _context = AppContext(registry=REGISTRY)
                logger.debug("Application context initialized")
    return _context


def register_step_handler(step_type: str, handler: StepHandler) -> None:
    """Register ``handler`` for ``step_type`` on the process-wide context."""
    get_context().register_step_handler(step_type, handler)


def reset_context() -> None:
    """Drop the process-wide context and clear the shared registry."""
    global _context
    with _context_lock:
        _context = None
        REGISTRY.clear()


__all__ = ["AppContext", "get_context", "register_step_handler", "reset_context"]
