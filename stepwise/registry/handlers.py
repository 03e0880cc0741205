"""Step handler contract and the step-type registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from ..errors import DuplicateHandlerError, UnknownStepTypeError

logger = logging.getLogger(__name__)

HandlerResult = Union[Dict[str, Any], Awaitable[Dict[str, Any]]]
StepHandler = Callable[[Dict[str, Any], "StepExecutionContext"], HandlerResult]


@dataclass(frozen=True)
class StepExecutionContext:
    """Information handed to a handler alongside its resolved inputs.

    ``dependency_outputs`` only ever contains outputs of upstream steps that
    have already succeeded in this run.
    """

    run_id: str
    workflow_id: str
    step_id: str
    attempt: int = 1
    run_inputs: Mapping[str, Any] = field(default_factory=dict)
    dependency_outputs: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "run_inputs", MappingProxyType(dict(self.run_inputs)))
        object.__setattr__(
            self,
            "dependency_outputs",
            MappingProxyType(
                {k: MappingProxyType(dict(v)) for k, v in self.dependency_outputs.items()}
            ),
        )

    def get_output(self, step_id: str) -> Mapping[str, Any]:
        """Return the outputs of a completed dependency step."""
        try:
            return self.dependency_outputs[step_id]
        except KeyError:
            raise KeyError(
                f"Step '{step_id}' is not a completed dependency of '{self.step_id}'"
            ) from None


class HandlerRegistry:
    """Maps step-type tags to handlers.

    Populated once at startup; treated as read-only while runs execute.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, StepHandler] = {}

    def register(self, step_type: str, handler: StepHandler) -> None:
        if not step_type:
            raise ValueError("step_type must be a non-empty string")
        if step_type in self._handlers:
            raise DuplicateHandlerError(step_type)
        self._handlers[step_type] = handler
        logger.debug(f"Registered handler for step type {step_type}")

    def handler(self, step_type: str) -> Callable[[StepHandler], StepHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(fn: StepHandler) -> StepHandler:
            self.register(step_type, fn)
            return fn

        return decorator

    def resolve(self, step_type: str) -> StepHandler:
        try:
            return self._handlers[step_type]
        except KeyError:
            raise UnknownStepTypeError(step_type) from None

    def clear(self) -> None:
        self._handlers.clear()

    def get(self, step_type: str) -> Optional[StepHandler]:
        return self._handlers.get(step_type)

    def __contains__(self, step_type: object) -> bool:
        return step_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    @property
    def step_types(self) -> list[str]:
        return sorted(self._handlers)
