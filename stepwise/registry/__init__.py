"""Step handler registry."""

from __future__ import annotations

from .handlers import HandlerRegistry, StepExecutionContext, StepHandler

# Process-wide registry shared by the application context. Handlers are
# registered here at startup, before the first run executes.
REGISTRY = HandlerRegistry()


__all__ = [
    "HandlerRegistry",
    "StepExecutionContext",
    "StepHandler",
    "REGISTRY",
]
