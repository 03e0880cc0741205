"""Resolution of ``{{ ... }}`` placeholders in step inputs.

Two namespaces are available:

* ``{{ inputs.<key> }}`` - run-level inputs supplied at run creation.
* ``{{ steps.<step_id>.<key> }}`` - outputs of a completed dependency step.

Paths are dot separated and may descend into nested dicts and lists. A value
that is exactly one placeholder keeps the referenced value's type; placeholders
embedded in a longer string are interpolated as text.
"""

from __future__ import annotations

import re
from typing import Any, Iterator, Mapping

from .errors import InputResolutionError

PLACEHOLDER = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

INPUTS_NS = "inputs"
STEPS_NS = "steps"


def iter_placeholders(value: Any) -> Iterator[str]:
    """Yield every placeholder expression found in ``value``."""
    if isinstance(value, str):
        for match in PLACEHOLDER.finditer(value):
            yield match.group(1)
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_placeholders(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_placeholders(item)


def referenced_steps(inputs: Mapping[str, Any]) -> list[str]:
    """Return step ids referenced through ``steps.<id>`` placeholders."""
    refs: list[str] = []
    for expr in iter_placeholders(inputs):
        parts = expr.split(".")
        if parts[0] == STEPS_NS and len(parts) >= 2 and parts[1] not in refs:
            refs.append(parts[1])
    return refs


def _lookup(expr: str, namespace: Mapping[str, Any]) -> Any:
    parts = expr.split(".")
    if parts[0] not in (INPUTS_NS, STEPS_NS) or len(parts) < 2:
        raise InputResolutionError(
            f"Unsupported placeholder '{{{{ {expr} }}}}'", {"expression": expr}
        )

    current: Any = namespace
    for part in parts:
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            raise InputResolutionError(
                f"Cannot resolve '{part}' in placeholder '{{{{ {expr} }}}}'",
                {"expression": expr, "segment": part},
            )
    return current


def resolve_value(value: Any, namespace: Mapping[str, Any]) -> Any:
    if isinstance(value, str):
        whole = PLACEHOLDER.fullmatch(value.strip())
        if whole:
            return _lookup(whole.group(1), namespace)
        return PLACEHOLDER.sub(lambda m: str(_lookup(m.group(1), namespace)), value)
    if isinstance(value, Mapping):
        return {k: resolve_value(v, namespace) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_value(v, namespace) for v in value]
    return value


def resolve_inputs(
    inputs: Mapping[str, Any],
    run_inputs: Mapping[str, Any],
    step_outputs: Mapping[str, Mapping[str, Any]],
) -> dict[str, Any]:
    """Resolve a step's declared inputs.

    ``step_outputs`` must only contain outputs of steps that have succeeded.
    """
    namespace = {INPUTS_NS: dict(run_inputs), STEPS_NS: dict(step_outputs)}
    return {key: resolve_value(value, namespace) for key, value in inputs.items()}
