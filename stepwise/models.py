"""Core data contracts for workflows, runs and step results."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .constants import DEFAULT_MAX_ATTEMPTS, SPEC_VERSION


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeterminismGrade(str, Enum):
    """Whether re-executing a workflow is expected to reproduce its outputs."""

    PURE = "pure"
    BEST_EFFORT = "best-effort"


class RunStatus(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED)


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.SUCCEEDED, StepStatus.FAILED)


class StepPolicy(BaseModel):
    """Attempt and timeout budget for a single step."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    timeout_ms: Optional[int] = Field(
        default=None, gt=0, description="Falls back to the executor default when unset"
    )


class Step(BaseModel):
    """One unit of work within a workflow."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: str = Field(..., description="Step-type tag used to resolve a handler")
    description: Optional[str] = None
    depends_on: List[str] = Field(default_factory=list)
    inputs: Dict[str, Any] = Field(default_factory=dict)
    policy: StepPolicy = Field(default_factory=StepPolicy)

    @field_validator("id")
    @classmethod
    def _check_id(cls, v: str) -> str:
        if not v or "." in v or any(c.isspace() for c in v):
            raise ValueError("step id must be non-empty without dots or whitespace")
        return v

    @field_validator("type")
    @classmethod
    def _check_type(cls, v: str) -> str:
        if not v:
            raise ValueError("step type must be a non-empty string")
        return v


class Workflow(BaseModel):
    """Immutable definition of a step graph.

    Steps keep their declaration order, which the compiler uses as the
    tie-break between otherwise unordered steps.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    version: int = 1
    description: Optional[str] = None
    determinism: DeterminismGrade = DeterminismGrade.BEST_EFFORT
    entry_step_id: str
    steps: List[Step]
    spec_version: str = SPEC_VERSION
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_unique_steps(self) -> "Workflow":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id '{step.id}'")
            seen.add(step.id)
        return self

    def get_step(self, step_id: str) -> Optional[Step]:
        return next((s for s in self.steps if s.id == step_id), None)

    @property
    def step_map(self) -> Dict[str, Step]:
        return {s.id: s for s in self.steps}


class StepError(BaseModel):
    """Error detail recorded on a failed step or run."""

    kind: str
    message: str
    detail: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "StepError":
        kind = getattr(exc, "kind", type(exc).__name__)
        detail = getattr(exc, "detail", None) or {}
        message = getattr(exc, "message", None) or str(exc)
        return cls(kind=kind, message=message, detail=detail)


class StepResult(BaseModel):
    """Outcome of executing one step within one run."""

    step_id: str
    status: StepStatus = StepStatus.PENDING
    outputs: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[StepError] = None
    attempts: int = 0
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class CreateRunInput(BaseModel):
    workflow_id: str
    inputs: Dict[str, Any] = Field(default_factory=dict)


class Run(BaseModel):
    """One execution instance of a workflow."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    workflow_version: int = 1
    status: RunStatus = RunStatus.CREATED
    inputs: Dict[str, Any] = Field(default_factory=dict)
    step_results: Dict[str, StepResult] = Field(default_factory=dict)
    error: Optional[StepError] = None
    failed_step_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "Run":
        return cls.model_validate_json(data)

    def outputs_of(self, step_id: str) -> Dict[str, Any]:
        """Return the outputs of ``step_id`` or an empty dict if it never succeeded."""
        result = self.step_results.get(step_id)
        if result is None or result.status != StepStatus.SUCCEEDED:
            return {}
        return result.outputs


__all__ = [
    "DeterminismGrade",
    "RunStatus",
    "StepStatus",
    "StepPolicy",
    "Step",
    "Workflow",
    "StepError",
    "StepResult",
    "CreateRunInput",
    "Run",
    "utcnow",
]
