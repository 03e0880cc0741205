"""Workflow validation and compilation into an ordered execution plan."""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Tuple

from .errors import (
    CyclicDependencyError,
    UnreachableEntryError,
    UnresolvedDependencyError,
)
from .models import Step, Workflow
from .templates import referenced_steps

logger = logging.getLogger(__name__)

WHITE, GRAY, BLACK = 0, 1, 2


@dataclass(frozen=True)
class ExecutionPlan:
    """Topologically ordered steps of a workflow."""

    workflow_id: str
    order: Tuple[str, ...]
    steps: Dict[str, Step] = field(repr=False)
    ancestors: Dict[str, FrozenSet[str]] = field(repr=False)

    def __iter__(self):
        return (self.steps[step_id] for step_id in self.order)

    def __len__(self) -> int:
        return len(self.order)


def _check_dependencies(workflow: Workflow, steps: Dict[str, Step]) -> None:
    for step in workflow.steps:
        for dep in step.depends_on:
            if dep not in steps:
                raise UnresolvedDependencyError(step.id, dep)


def _check_acyclic(workflow: Workflow, steps: Dict[str, Step]) -> None:
    """Depth-first traversal with white/gray/black marking.

    Reaching a gray node while descending means it is on the current path,
    i.e. the graph has a cycle. Iterative so long chains stay clear of the
    recursion limit.
    """
    color = {step_id: WHITE for step_id in steps}

    for root in workflow.steps:
        if color[root.id] != WHITE:
            continue
        color[root.id] = GRAY
        path: List[str] = [root.id]
        stack = [iter(root.depends_on)]
        while stack:
            dep = next(stack[-1], None)
            if dep is None:
                stack.pop()
                color[path.pop()] = BLACK
            elif color[dep] == GRAY:
                raise CyclicDependencyError(path[path.index(dep):] + [dep])
            elif color[dep] == WHITE:
                color[dep] = GRAY
                path.append(dep)
                stack.append(iter(steps[dep].depends_on))


def _stable_order(workflow: Workflow) -> List[str]:
    # Kahn's algorithm, always releasing the earliest-declared ready step.
    index = {step.id: i for i, step in enumerate(workflow.steps)}
    remaining = {step.id: len(set(step.depends_on)) for step in workflow.steps}
    dependents: Dict[str, List[str]] = {step.id: [] for step in workflow.steps}
    for step in workflow.steps:
        for dep in set(step.depends_on):
            dependents[dep].append(step.id)

    ready = [(index[s], s) for s, count in remaining.items() if count == 0]
    heapq.heapify(ready)
    order: List[str] = []
    while ready:
        _, step_id = heapq.heappop(ready)
        order.append(step_id)
        for child in dependents[step_id]:
            remaining[child] -= 1
            if remaining[child] == 0:
                heapq.heappush(ready, (index[child], child))
    return order


def _ancestors(order: List[str], steps: Dict[str, Step]) -> Dict[str, FrozenSet[str]]:
    result: Dict[str, FrozenSet[str]] = {}
    for step_id in order:
        acc = set()
        for dep in steps[step_id].depends_on:
            acc.add(dep)
            acc |= result[dep]
        result[step_id] = frozenset(acc)
    return result


def compile_workflow(workflow: Workflow) -> ExecutionPlan:
    """Validate ``workflow`` and return its execution plan.

    Every step appears after all of its dependencies. Steps without a relative
    ordering constraint keep their declaration order, so compiling the same
    definition always yields the same plan.

    Raises:
        UnresolvedDependencyError: A dependency (or a ``steps.<id>`` input
            placeholder) references a step that is missing or is not an
            upstream dependency.
        CyclicDependencyError: The dependency graph has a cycle.
        UnreachableEntryError: The entry step id is not a step of the workflow.
    """
    steps = workflow.step_map
    _check_dependencies(workflow, steps)
    _check_acyclic(workflow, steps)
    if workflow.entry_step_id not in steps:
        raise UnreachableEntryError(workflow.entry_step_id)

    order = _stable_order(workflow)
    ancestors = _ancestors(order, steps)

    for step in workflow.steps:
        for ref in referenced_steps(step.inputs):
            if ref not in steps:
                raise UnresolvedDependencyError(step.id, ref, "referenced in inputs")
            if ref not in ancestors[step.id]:
                raise UnresolvedDependencyError(
                    step.id, ref, "referenced in inputs but not declared as a dependency"
                )

    logger.debug(f"Compiled workflow {workflow.id} v{workflow.version}: {order}")
    return ExecutionPlan(
        workflow_id=workflow.id,
        order=tuple(order),
        steps=steps,
        ancestors=ancestors,
    )


__all__ = ["ExecutionPlan", "compile_workflow"]
