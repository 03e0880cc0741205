"""Error taxonomy for the stepwise engine."""

from __future__ import annotations

from typing import Any, Optional


class StepwiseError(Exception):
    """Base class for all engine errors.

    ``kind`` is the stable, serializable name of the error and is what gets
    recorded on failed step results.
    """

    kind: str = "StepwiseError"

    def __init__(self, message: str, detail: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "kind" not in cls.__dict__:
            cls.kind = cls.__name__


# Definition-time -----------------------------------------------------------
class WorkflowDefinitionError(StepwiseError):
    """Raised when a workflow definition is invalid. Never retried."""


class DuplicateWorkflowError(WorkflowDefinitionError):
    pass


class CyclicDependencyError(WorkflowDefinitionError):
    """The step dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(
            f"Cyclic dependency detected: {' -> '.join(cycle)}", {"cycle": cycle}
        )
        self.cycle = cycle


class UnresolvedDependencyError(WorkflowDefinitionError):
    """A step references a step id that is not available to it."""

    def __init__(self, step_id: str, dependency_id: str, reason: str = "") -> None:
        message = f"Step '{step_id}' depends on unknown step '{dependency_id}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, {"step_id": step_id, "dependency_id": dependency_id})
        self.step_id = step_id
        self.dependency_id = dependency_id


class UnreachableEntryError(WorkflowDefinitionError):
    def __init__(self, entry_step_id: str) -> None:
        super().__init__(
            f"Entry step '{entry_step_id}' does not exist in the workflow",
            {"entry_step_id": entry_step_id},
        )
        self.entry_step_id = entry_step_id


# Registration-time ---------------------------------------------------------
class DuplicateHandlerError(StepwiseError):
    def __init__(self, step_type: str) -> None:
        super().__init__(
            f"A handler for step type '{step_type}' is already registered",
            {"step_type": step_type},
        )
        self.step_type = step_type


class UnknownStepTypeError(StepwiseError):
    def __init__(self, step_type: str) -> None:
        super().__init__(
            f"No handler registered for step type '{step_type}'",
            {"step_type": step_type},
        )
        self.step_type = step_type


# Execution-time ------------------------------------------------------------
class HandlerExecutionError(StepwiseError):
    """Failure reported by (or raised from) a step handler."""


class StepTimeoutError(StepwiseError):
    """A handler exceeded its step's ``timeout_ms`` budget."""

    kind = "TimeoutError"

    def __init__(self, step_id: str, timeout_ms: int) -> None:
        super().__init__(
            f"Step '{step_id}' did not finish within {timeout_ms}ms",
            {"step_id": step_id, "timeout_ms": timeout_ms},
        )


class InputResolutionError(StepwiseError):
    """A step input placeholder could not be resolved at run time."""


# Lookup / state ------------------------------------------------------------
class NotFoundError(StepwiseError):
    def __init__(self, entity: str, identifier: str) -> None:
        super().__init__(
            f"{entity} '{identifier}' not found", {"entity": entity, "id": identifier}
        )
        self.entity = entity
        self.identifier = identifier


class InvalidRunStateError(StepwiseError):
    """A run was asked to do something its current status does not allow."""


# Exceptions that consume a step's attempt budget.
RETRYABLE_ERRORS = (HandlerExecutionError, StepTimeoutError)


__all__ = [
    "StepwiseError",
    "WorkflowDefinitionError",
    "DuplicateWorkflowError",
    "CyclicDependencyError",
    "UnresolvedDependencyError",
    "UnreachableEntryError",
    "DuplicateHandlerError",
    "UnknownStepTypeError",
    "HandlerExecutionError",
    "StepTimeoutError",
    "InputResolutionError",
    "NotFoundError",
    "InvalidRunStateError",
    "RETRYABLE_ERRORS",
]
