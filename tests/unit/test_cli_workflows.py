import asyncio
import json
import textwrap
import time

import pytest
from typer.testing import CliRunner

import stepwise.context as context_module
from stepwise.cli import app
from stepwise.config import StepwiseConfig
from stepwise.context import AppContext
from stepwise.models import Run, RunStatus, Step, StepResult, StepStatus, Workflow
from stepwise.persistence import InMemoryWorkflowStore
from stepwise.registry import HandlerRegistry

WORKFLOW_YAML = """
id: wf-cli
name: CLI workflow
determinism: pure
entry_step_id: greet
steps:
  - id: greet
    name: Greet
    type: cli.greet
    inputs:
      name: "{{ inputs.name }}"
  - id: shout
    name: Shout
    type: cli.shout
    depends_on: [greet]
    inputs:
      text: "{{ steps.greet.text }}"
"""

HANDLERS_PY = """
from stepwise import register_step_handler


def greet(inputs, context):
    return {"text": "hello " + inputs["name"]}


async def shout(inputs, context):
    if inputs["text"].endswith("fail"):
        raise RuntimeError("refusing to shout")
    return {"text": inputs["text"].upper()}


register_step_handler("cli.greet", greet)
register_step_handler("cli.shout", shout)
"""


@pytest.fixture
def ctx(monkeypatch):
    context = AppContext(
        store=InMemoryWorkflowStore(), registry=HandlerRegistry(), config=StepwiseConfig()
    )
    monkeypatch.setattr(context_module, "_context", context)
    return context


@pytest.fixture
def workflow_file(tmp_path):
    path = tmp_path / "workflow.yaml"
    path.write_text(WORKFLOW_YAML)
    return path


@pytest.fixture
def handlers_file(tmp_path):
    path = tmp_path / "cli_handlers.py"
    path.write_text(HANDLERS_PY)
    return path


def test_validate_prints_order(workflow_file):
    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "validate", str(workflow_file)])
    assert result.exit_code == 0, result.stdout
    assert "Workflow wf-cli v1 is valid" in result.stdout
    assert "1. greet" in result.stdout
    assert "2. shout" in result.stdout


def test_validate_stage_shorthand(tmp_path):
    path = tmp_path / "stages.json"
    path.write_text(
        json.dumps(
            {
                "id": "wf-stages",
                "stages": [
                    {"id": "first", "type": "t"},
                    {"id": "second", "type": "t"},
                ],
            }
        )
    )
    result = CliRunner().invoke(app, ["workflow", "validate", str(path)])
    assert result.exit_code == 0, result.stdout
    assert "2. second" in result.stdout


def test_validate_reports_cycle(tmp_path):
    path = tmp_path / "cycle.yaml"
    path.write_text(
        textwrap.dedent(
            """
            id: wf-cycle
            name: Cycle
            entry_step_id: a
            steps:
              - {id: a, name: A, type: t, depends_on: [b]}
              - {id: b, name: B, type: t, depends_on: [a]}
            """
        )
    )
    result = CliRunner().invoke(app, ["workflow", "validate", str(path)])
    assert result.exit_code == 1
    assert "CyclicDependencyError" in result.stdout


def test_validate_missing_file(tmp_path):
    result = CliRunner().invoke(app, ["workflow", "validate", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1


def test_workflow_list_and_show(ctx):
    wf = Workflow(
        id="wf-listed",
        name="Listed",
        entry_step_id="a",
        steps=[
            Step(id="a", name="A", type="t"),
            Step(id="b", name="B", type="t", depends_on=["a"]),
        ],
    )
    runner = CliRunner()
    assert "No workflows found" in runner.invoke(app, ["workflow", "list"]).stdout

    asyncio.run(ctx.store.create_workflow(wf))
    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0
    assert "wf-listed" in result.stdout

    result = runner.invoke(app, ["workflow", "show", "wf-listed"])
    assert result.exit_code == 0
    assert "- b [t] depends on: a" in result.stdout

    missing = runner.invoke(app, ["workflow", "show", "missing-id"])
    assert missing.exit_code == 1
    assert "Workflow not found" in missing.stdout


def test_run_list_and_show(ctx):
    run = Run(workflow_id="wf-x", status=RunStatus.FAILED, failed_step_id="a")
    run.step_results["a"] = StepResult(step_id="a", status=StepStatus.FAILED, attempts=3)
    asyncio.run(ctx.store.create_run(run))

    runner = CliRunner()
    result = runner.invoke(app, ["run", "list"])
    assert result.exit_code == 0
    assert run.id in result.stdout
    assert "failed" in result.stdout
    assert "No runs found" in runner.invoke(app, ["run", "list", "--workflow", "other"]).stdout

    result = runner.invoke(app, ["run", "show", run.id])
    assert result.exit_code == 0
    assert "- a: failed (attempts: 3)" in result.stdout

    missing = runner.invoke(app, ["run", "show", "missing-id"])
    assert missing.exit_code == 1
    assert "Run not found" in missing.stdout


def test_run_execute(ctx, workflow_file, handlers_file):
    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "run",
            "execute",
            str(workflow_file),
            "--handlers",
            str(handlers_file),
            "--inputs",
            '{"name": "ada"}',
        ],
    )
    assert result.exit_code == 0, result.stdout
    assert "succeeded" in result.stdout
    assert "- shout: succeeded (attempts: 1)" in result.stdout

    runs = asyncio.run(ctx.store.list_runs("wf-cli"))
    assert len(runs) == 1
    assert runs[0].step_results["shout"].outputs == {"text": "HELLO ADA"}


def test_run_execute_failure_exit_code(ctx, workflow_file, handlers_file):
    result = CliRunner().invoke(
        app,
        [
            "run",
            "execute",
            str(workflow_file),
            "--handlers",
            str(handlers_file),
            "--inputs",
            '{"name": "fail"}',
        ],
    )
    assert result.exit_code == 1
    assert "HandlerExecutionError" in result.stdout


def test_run_execute_rejects_bad_inputs(ctx, workflow_file, handlers_file):
    result = CliRunner().invoke(
        app,
        [
            "run",
            "execute",
            str(workflow_file),
            "--handlers",
            str(handlers_file),
            "--inputs",
            "[1, 2]",
        ],
    )
    assert result.exit_code == 1
    assert "expected a JSON object" in result.stdout


SLOW_WORKFLOW_YAML = """
id: wf-slow
name: Slow workflow
entry_step_id: wait
steps:
  - id: wait
    name: Wait
    type: cli.never-returns
    policy:
      timeout_ms: 200
"""

SLOW_HANDLERS_PY = """
import time

from stepwise import register_step_handler


def never_returns(inputs, context):
    time.sleep(3600)


register_step_handler("cli.never-returns", never_returns)
"""


def test_run_execute_returns_after_sync_handler_timeout(ctx, tmp_path):
    workflow_path = tmp_path / "slow.yaml"
    workflow_path.write_text(SLOW_WORKFLOW_YAML)
    handlers_path = tmp_path / "slow_handlers.py"
    handlers_path.write_text(SLOW_HANDLERS_PY)

    started = time.monotonic()
    result = CliRunner().invoke(
        app, ["run", "execute", str(workflow_path), "--handlers", str(handlers_path)]
    )
    assert time.monotonic() - started < 10
    assert result.exit_code == 1
    assert "- wait: failed (attempts: 1) TimeoutError" in result.stdout


def test_run_execute_rejects_invalid_definition(ctx, tmp_path, handlers_file):
    path = tmp_path / "invalid.yaml"
    path.write_text("id: wf-invalid\nname: Invalid\nsteps: []\n")
    result = CliRunner().invoke(
        app, ["run", "execute", str(path), "--handlers", str(handlers_file)]
    )
    assert result.exit_code == 1
    assert "Invalid workflow" in result.stdout


def test_stage_shorthand_without_id(ctx, tmp_path, handlers_file):
    path = tmp_path / "stages.json"
    path.write_text(json.dumps({"stages": [{"id": "only", "type": "t"}]}))
    runner = CliRunner()

    result = runner.invoke(app, ["workflow", "validate", str(path)])
    assert result.exit_code == 1
    assert "Invalid workflow" in result.stdout

    result = runner.invoke(
        app, ["run", "execute", str(path), "--handlers", str(handlers_file)]
    )
    assert result.exit_code == 1
    assert "Invalid workflow" in result.stdout


def test_run_execute_reports_missing_handlers(ctx, workflow_file):
    result = CliRunner().invoke(
        app,
        ["run", "execute", str(workflow_file), "--handlers", "no_such_handlers_module"],
    )
    assert result.exit_code == 1
    assert "Could not load handlers from no_such_handlers_module" in result.stdout
