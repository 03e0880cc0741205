"""Run execution engine for stepwise workflows."""

from __future__ import annotations

import asyncio
import contextvars
import copy
import inspect
import logging
import threading
from typing import Any, Awaitable, Dict, Mapping, Optional, Union

from pydantic_core import PydanticSerializationError, to_jsonable_python

from .compiler import ExecutionPlan, compile_workflow
from .config import ExecutorConfig
from .errors import (
    RETRYABLE_ERRORS,
    HandlerExecutionError,
    InputResolutionError,
    InvalidRunStateError,
    StepTimeoutError,
    UnknownStepTypeError,
    WorkflowDefinitionError,
)
from .models import (
    CreateRunInput,
    Run,
    RunStatus,
    Step,
    StepError,
    StepResult,
    StepStatus,
    utcnow,
)
from .persistence import WorkflowStore
from .registry import HandlerRegistry, StepExecutionContext, StepHandler
from .templates import resolve_inputs
from .utils.retry import schedule_retry

logger = logging.getLogger(__name__)


def _is_async(handler: StepHandler) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )


def _run_in_daemon_thread(
    handler: StepHandler, inputs: Dict[str, Any], context: StepExecutionContext
) -> "asyncio.Future[Any]":
    """Call a synchronous handler on its own daemon thread.

    An overrunning call is abandoned, not killed. It never blocks event loop
    or interpreter shutdown.
    """
    loop = asyncio.get_running_loop()
    future: "asyncio.Future[Any]" = loop.create_future()

    def _settle(result: Any, exc: Optional[BaseException]) -> None:
        if future.done():
            return
        if exc is None:
            future.set_result(result)
        else:
            future.set_exception(exc)

    def _target() -> None:
        result, error = None, None
        try:
            result = handler(inputs, context)
        except Exception as exc:
            error = exc
        try:
            loop.call_soon_threadsafe(_settle, result, error)
        except RuntimeError:
            logger.debug(f"Discarded late result of step {context.step_id}; loop closed")

    thread = threading.Thread(
        target=contextvars.copy_context().run,
        args=(_target,),
        name=f"stepwise-step-{context.step_id}",
        daemon=True,
    )
    thread.start()
    return future


async def _wrap_handler_errors(call: Awaitable[Any], step: Step) -> Any:
    """Await a handler call, reporting its own exceptions as HandlerExecutionError."""
    try:
        return await call
    except HandlerExecutionError:
        raise
    except Exception as exc:
        raise HandlerExecutionError(
            str(exc) or type(exc).__name__,
            {"step_id": step.id, "exception": type(exc).__name__},
        ) from exc


class RunExecutor:
    """Creates runs and walks their compiled plan one step at a time.

    Steps of a single run never execute concurrently; independent runs may
    be executed concurrently against the same store.
    """

    def __init__(
        self,
        store: WorkflowStore,
        registry: HandlerRegistry,
        config: Optional[ExecutorConfig] = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._config = config or ExecutorConfig()

    @property
    def store(self) -> WorkflowStore:
        return self._store

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    # ------------------------------------------------------------------
    async def create_run(
        self,
        workflow_id: Union[str, CreateRunInput],
        inputs: Optional[Dict[str, Any]] = None,
    ) -> Run:
        """Persist a new run of ``workflow_id`` in ``created`` status.

        The workflow is compiled first so an invalid definition never gets a
        run record.
        """
        if isinstance(workflow_id, CreateRunInput):
            inputs = workflow_id.inputs if inputs is None else inputs
            workflow_id = workflow_id.workflow_id

        workflow = await self._store.get_workflow(workflow_id)
        compile_workflow(workflow)

        run = Run(
            workflow_id=workflow.id,
            workflow_version=workflow.version,
            inputs=dict(inputs or {}),
        )
        await self._store.create_run(run)
        logger.info(f"Created run {run.id} for workflow {workflow.id}")
        return run

    async def execute_run(self, run_id: str) -> Run:
        """Execute a created run to a terminal status and return it.

        Step failures (after exhausting attempts) and unknown step types end
        the run as ``failed`` and are reported on the returned run. Any other
        error raised once the run is claimed, such as a definition that no
        longer compiles or a store failure, still records the run as
        ``failed`` before it is re-raised.

        Raises:
            NotFoundError: The run or its workflow does not exist.
            InvalidRunStateError: The run is not in ``created`` status.
        """
        run = await self._store.get_run(run_id)
        if run.status != RunStatus.CREATED:
            raise InvalidRunStateError(
                f"Run '{run.id}' is {run.status.value}, expected created",
                {"run_id": run.id, "status": run.status.value},
            )

        run.status = RunStatus.RUNNING
        await self._store.update_run(run, expected_status=RunStatus.CREATED)
        logger.info(f"Run {run.id} started")

        try:
            return await self._execute_plan(run)
        except Exception as exc:
            await self._abort(run, exc)
            raise

    async def run_workflow(
        self, workflow_id: str, inputs: Optional[Dict[str, Any]] = None
    ) -> Run:
        """Create and immediately execute a run of ``workflow_id``."""
        run = await self.create_run(workflow_id, inputs)
        return await self.execute_run(run.id)

    # ------------------------------------------------------------------
    async def _execute_plan(self, run: Run) -> Run:
        workflow = await self._store.get_workflow(run.workflow_id)
        try:
            plan = compile_workflow(workflow)
        except WorkflowDefinitionError as exc:
            logger.error(f"Run {run.id} failed to compile workflow {workflow.id}: {exc}")
            raise

        handlers: Dict[str, StepHandler] = {}
        for step in plan:
            try:
                handlers[step.id] = self._registry.resolve(step.type)
            except UnknownStepTypeError as exc:
                run.step_results[step.id] = StepResult(
                    step_id=step.id,
                    status=StepStatus.FAILED,
                    error=StepError.from_exception(exc),
                )
                return await self._fail(run, step.id)

        for step in plan:
            result = await self._execute_step(run, plan, step, handlers[step.id])
            if result.status == StepStatus.FAILED:
                return await self._fail(run, step.id)
            await self._store.update_run(run)

        run.status = RunStatus.SUCCEEDED
        await self._store.update_run(run)
        logger.info(f"Run {run.id} succeeded ({len(plan)} steps)")
        return run

    async def _abort(self, run: Run, exc: Exception) -> None:
        """Best-effort write of a ``failed`` status after an unexpected error."""
        run.status = RunStatus.FAILED
        if run.error is None:
            run.error = StepError.from_exception(exc)
        for result in run.step_results.values():
            if not result.status.is_terminal:
                result.status = StepStatus.FAILED
                result.ended_at = utcnow()
        try:
            await self._store.update_run(run)
        except Exception:
            logger.exception(f"Could not record failure of run {run.id}")
        else:
            logger.error(f"Run {run.id} aborted: {run.error.kind}: {run.error.message}")

    async def _fail(self, run: Run, step_id: str) -> Run:
        run.status = RunStatus.FAILED
        run.failed_step_id = step_id
        run.error = run.step_results[step_id].error
        await self._store.update_run(run)
        logger.error(
            f"Run {run.id} failed at step {step_id}: "
            f"{run.error.kind if run.error else 'unknown'}"
        )
        return run

    async def _execute_step(
        self, run: Run, plan: ExecutionPlan, step: Step, handler: StepHandler
    ) -> StepResult:
        result = StepResult(
            step_id=step.id, status=StepStatus.RUNNING, started_at=utcnow()
        )
        run.step_results[step.id] = result
        await self._store.update_run(run)

        dependency_outputs = {
            dep: run.step_results[dep].outputs
            for dep in plan.ancestors[step.id]
            if run.step_results[dep].status == StepStatus.SUCCEEDED
        }
        try:
            inputs = resolve_inputs(step.inputs, run.inputs, dependency_outputs)
        except InputResolutionError as exc:
            return self._finish(result, error=StepError.from_exception(exc))

        max_attempts = step.policy.max_attempts
        while True:
            result.attempts += 1
            context = StepExecutionContext(
                run_id=run.id,
                workflow_id=run.workflow_id,
                step_id=step.id,
                attempt=result.attempts,
                run_inputs=copy.deepcopy(run.inputs),
                dependency_outputs=copy.deepcopy(dependency_outputs),
            )
            try:
                outputs = await self._invoke(handler, copy.deepcopy(inputs), context, step)
            except RETRYABLE_ERRORS as exc:
                if result.attempts >= max_attempts:
                    logger.error(
                        f"Step {step.id} of run {run.id} failed after "
                        f"{result.attempts} attempt(s): {exc}"
                    )
                    return self._finish(result, error=StepError.from_exception(exc))
                logger.warning(
                    f"Step {step.id} of run {run.id} attempt {result.attempts}/"
                    f"{max_attempts} failed: {exc}"
                )
                await self._store.update_run(run)
                await schedule_retry(result.attempts, self._config.retry)
                continue

            logger.info(
                f"Step {step.id} of run {run.id} succeeded on attempt {result.attempts}"
            )
            return self._finish(result, outputs=outputs)

    @staticmethod
    def _finish(
        result: StepResult,
        outputs: Optional[Dict[str, Any]] = None,
        error: Optional[StepError] = None,
    ) -> StepResult:
        if error is None:
            result.status = StepStatus.SUCCEEDED
            result.outputs = outputs or {}
        else:
            result.status = StepStatus.FAILED
            result.error = error
        result.ended_at = utcnow()
        return result

    async def _invoke(
        self,
        handler: StepHandler,
        inputs: Dict[str, Any],
        context: StepExecutionContext,
        step: Step,
    ) -> Dict[str, Any]:
        timeout_ms = step.policy.timeout_ms or self._config.default_timeout_ms
        if _is_async(handler):
            call = handler(inputs, context)
        else:
            call = _run_in_daemon_thread(handler, inputs, context)

        try:
            outputs = await asyncio.wait_for(
                _wrap_handler_errors(call, step), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            raise StepTimeoutError(step.id, timeout_ms) from None

        if outputs is None:
            return {}
        if not isinstance(outputs, Mapping):
            raise HandlerExecutionError(
                f"Handler for step '{step.id}' returned {type(outputs).__name__}, "
                "expected a mapping",
                {"step_id": step.id},
            )
        try:
            return to_jsonable_python(dict(outputs))
        except PydanticSerializationError as exc:
            raise HandlerExecutionError(
                f"Handler for step '{step.id}' returned outputs that are not "
                f"JSON serializable: {exc}",
                {"step_id": step.id},
            ) from exc


__all__ = ["RunExecutor"]
