"""Helpers for building workflow definitions from sequencing data."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Union

from pydantic import BaseModel, Field

from .models import DeterminismGrade, Step, StepPolicy, Workflow


class StageSpec(BaseModel):
    """One stage of an ordered sequence, e.g. a scenario step."""

    id: str
    type: str
    name: Optional[str] = None
    description: Optional[str] = None
    inputs: Dict[str, Any] = Field(default_factory=dict)
    policy: StepPolicy = Field(default_factory=StepPolicy)


def build_linear_workflow(
    workflow_id: str,
    name: str,
    stages: Iterable[Union[StageSpec, Dict[str, Any]]],
    *,
    version: int = 1,
    description: Optional[str] = None,
    determinism: DeterminismGrade = DeterminismGrade.BEST_EFFORT,
) -> Workflow:
    """Chain ``stages`` so that each one depends on the stage before it.

    The first stage becomes the entry step.
    """
    steps: list[Step] = []
    for raw in stages:
        stage = raw if isinstance(raw, StageSpec) else StageSpec.model_validate(raw)
        steps.append(
            Step(
                id=stage.id,
                name=stage.name or stage.id,
                type=stage.type,
                description=stage.description,
                depends_on=[steps[-1].id] if steps else [],
                inputs=stage.inputs,
                policy=stage.policy,
            )
        )
    if not steps:
        raise ValueError("a workflow needs at least one stage")

    return Workflow(
        id=workflow_id,
        name=name,
        version=version,
        description=description,
        determinism=determinism,
        entry_step_id=steps[0].id,
        steps=steps,
    )


def build_single_step_workflow(
    workflow_id: str,
    step_type: str,
    inputs: Optional[Dict[str, Any]] = None,
    *,
    step_id: str = "step",
    name: Optional[str] = None,
    policy: Optional[StepPolicy] = None,
    determinism: DeterminismGrade = DeterminismGrade.BEST_EFFORT,
) -> Workflow:
    """Build a one-off workflow around a single step."""
    return build_linear_workflow(
        workflow_id,
        name or f"{step_type} ({workflow_id})",
        [
            StageSpec(
                id=step_id,
                type=step_type,
                inputs=inputs or {},
                policy=policy or StepPolicy(),
            )
        ],
        determinism=determinism,
    )


__all__ = ["StageSpec", "build_linear_workflow", "build_single_step_workflow"]
