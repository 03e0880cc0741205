"""Loading workflow definitions and handler modules for the CLI."""

from __future__ import annotations

import importlib
import json
import sys
from importlib.util import module_from_spec, spec_from_file_location
from pathlib import Path
from types import ModuleType
from typing import Any

import yaml

from ..builders import build_linear_workflow
from ..models import Workflow


def _read_mapping(path: Path) -> dict[str, Any]:
    text = path.read_text()
    if path.suffix == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a workflow mapping")
    return data


def load_workflow_file(path: Path) -> Workflow:
    """Read a workflow definition from a YAML or JSON file.

    Besides the full ``steps`` form, a ``stages`` list is accepted as a
    shorthand for a linear chain.
    """
    data = _read_mapping(path)
    if "stages" in data and "steps" not in data:
        return build_linear_workflow(
            data["id"],
            data.get("name", data["id"]),
            data["stages"],
            version=data.get("version", 1),
            description=data.get("description"),
            determinism=data.get("determinism", "best-effort"),
        )
    return Workflow.model_validate(data)


def load_handler_module(target: str) -> ModuleType:
    """Import ``target`` by dotted module name or ``.py`` file path.

    Importing the module is expected to register its step handlers.
    """
    path = Path(target)
    if path.suffix != ".py":
        return importlib.import_module(target)

    module_name = path.stem
    spec = spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load handlers from {path}")
    module_obj = module_from_spec(spec)
    sys.modules[module_name] = module_obj
    spec.loader.exec_module(module_obj)
    return module_obj
