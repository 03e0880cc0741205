"""Stepwise: deterministic step-graph workflow execution."""

from .builders import StageSpec, build_linear_workflow, build_single_step_workflow
from .compiler import ExecutionPlan, compile_workflow
from .context import AppContext, get_context, register_step_handler, reset_context
from .errors import (
    CyclicDependencyError,
    DuplicateHandlerError,
    DuplicateWorkflowError,
    HandlerExecutionError,
    InputResolutionError,
    InvalidRunStateError,
    NotFoundError,
    StepTimeoutError,
    StepwiseError,
    UnknownStepTypeError,
    UnreachableEntryError,
    UnresolvedDependencyError,
)
from .execute import RunExecutor
from .models import (
    CreateRunInput,
    DeterminismGrade,
    Run,
    RunStatus,
    Step,
    StepError,
    StepPolicy,
    StepResult,
    StepStatus,
    Workflow,
)
from .persistence import get_store
from .registry import REGISTRY, HandlerRegistry, StepExecutionContext

__version__ = "0.1.0"
__all__ = [
    "AppContext",
    "CreateRunInput",
    "CyclicDependencyError",
    "DeterminismGrade",
    "DuplicateHandlerError",
    "DuplicateWorkflowError",
    "ExecutionPlan",
    "HandlerExecutionError",
    "HandlerRegistry",
    "InputResolutionError",
    "InvalidRunStateError",
    "NotFoundError",
    "REGISTRY",
    "Run",
    "RunExecutor",
    "RunStatus",
    "StageSpec",
    "Step",
    "StepError",
    "StepExecutionContext",
    "StepPolicy",
    "StepResult",
    "StepStatus",
    "StepTimeoutError",
    "StepwiseError",
    "UnknownStepTypeError",
    "UnreachableEntryError",
    "UnresolvedDependencyError",
    "Workflow",
    "build_linear_workflow",
    "build_single_step_workflow",
    "compile_workflow",
    "get_context",
    "get_store",
    "register_step_handler",
    "reset_context",
]
