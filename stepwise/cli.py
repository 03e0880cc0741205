"""Command line interface for stepwise workflows and runs."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from stepwise.cli_utils.definitions import load_handler_module, load_workflow_file
from stepwise.compiler import compile_workflow
from stepwise.context import get_context
from stepwise.errors import DuplicateWorkflowError, NotFoundError, StepwiseError
from stepwise.models import Run, RunStatus

app = typer.Typer(help="CLI for stepwise workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflow definitions")
run_app = typer.Typer(help="Commands for executing and inspecting runs")

app.add_typer(workflow_app, name="workflow")
app.add_typer(run_app, name="run")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Logging level for engine output"),
) -> None:
    """Stepwise CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _echo_run(run: Run) -> None:
    typer.echo(f"Run {run.id}: {run.status.value}")
    typer.echo(f"Workflow: {run.workflow_id} v{run.workflow_version}")
    if run.inputs:
        typer.echo(f"Inputs: {json.dumps(run.inputs, default=str)}")
    for step_id, result in run.step_results.items():
        line = f"- {step_id}: {result.status.value} (attempts: {result.attempts})"
        if result.error:
            line += f" {result.error.kind}: {result.error.message}"
        typer.echo(line)
    if run.error and run.failed_step_id is None:
        typer.echo(f"Error: {run.error.kind}: {run.error.message}")


@workflow_app.command("validate")
def workflow_validate(path: Path) -> None:
    """
    Compile a workflow definition file and print its execution order.

    Args:
        path: YAML or JSON workflow definition

    Example:
        stepwise workflow validate ./scenario.yaml
        # Output: Workflow scenario-1 v1 is valid
        #         1. step-1-transition
        #         2. step-1-persona
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        workflow = load_workflow_file(path)
        plan = compile_workflow(workflow)
    except StepwiseError as exc:
        typer.echo(f"Invalid workflow: {exc.kind}: {exc}")
        raise typer.Exit(code=1)
    except (ValueError, KeyError) as exc:
        typer.echo(f"Invalid workflow: {exc}")
        raise typer.Exit(code=1)

    typer.echo(f"Workflow {workflow.id} v{workflow.version} is valid")
    for position, step_id in enumerate(plan.order, start=1):
        typer.echo(f"{position}. {step_id}")


@workflow_app.command("list")
def workflow_list() -> None:
    """List stored workflow definitions."""
    store = get_context().store
    workflows = asyncio.run(store.list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\tv{wf.version}\t{wf.determinism.value}\t{wf.name}")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """Show a stored workflow definition with its compiled step order."""
    store = get_context().store
    try:
        wf = asyncio.run(store.get_workflow(workflow_id))
    except NotFoundError:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)

    typer.echo(f"Workflow {wf.id} v{wf.version}: {wf.name}")
    typer.echo(f"Determinism: {wf.determinism.value}")
    typer.echo(f"Entry step: {wf.entry_step_id}")
    steps = wf.step_map
    for step_id in compile_workflow(wf).order:
        step = steps[step_id]
        deps = ", ".join(step.depends_on) or "-"
        typer.echo(f"- {step.id} [{step.type}] depends on: {deps}")


@run_app.command("list")
def run_list(
    workflow: Optional[str] = typer.Option(None, help="Only runs of this workflow"),
) -> None:
    """List runs with their current status."""
    store = get_context().store
    runs = asyncio.run(store.list_runs(workflow))
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(f"{run.id}\t{run.workflow_id}\t{run.status.value}")


@run_app.command("show")
def run_show(run_id: str) -> None:
    """Show the status and step results of a run."""
    store = get_context().store
    try:
        run = asyncio.run(store.get_run(run_id))
    except NotFoundError:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    _echo_run(run)


@run_app.command("execute")
def run_execute(
    path: Path,
    handlers: str = typer.Option(
        ..., help="Module name or .py file that registers the step handlers"
    ),
    inputs: Optional[str] = typer.Option(None, help="Run inputs as a JSON object"),
) -> None:
    """
    Store a workflow definition, execute one run and print its step results.

    Example:
        stepwise run execute ./scenario.yaml --handlers myapp.handlers \\
            --inputs '{"sessionId": 7}'
    """
    try:
        run_inputs = json.loads(inputs) if inputs else {}
    except json.JSONDecodeError as exc:
        typer.echo(f"Invalid --inputs: {exc}")
        raise typer.Exit(code=1)
    if not isinstance(run_inputs, dict):
        typer.echo("Invalid --inputs: expected a JSON object")
        raise typer.Exit(code=1)

    try:
        workflow = load_workflow_file(path)
    except StepwiseError as exc:
        typer.echo(f"Invalid workflow: {exc.kind}: {exc}")
        raise typer.Exit(code=1)
    except (ValueError, KeyError, OSError) as exc:
        typer.echo(f"Invalid workflow: {exc}")
        raise typer.Exit(code=1)

    ctx = get_context()
    try:
        load_handler_module(handlers)
    except (ImportError, OSError) as exc:
        typer.echo(f"Could not load handlers from {handlers}: {exc}")
        raise typer.Exit(code=1)

    async def _execute() -> Run:
        try:
            await ctx.create_workflow(workflow)
        except DuplicateWorkflowError:
            typer.echo(f"Workflow {workflow.id} already stored; using stored definition")
        return await ctx.run_workflow(workflow.id, run_inputs)

    try:
        run = asyncio.run(_execute())
    except StepwiseError as exc:
        typer.echo(f"Execution failed: {exc.kind}: {exc}")
        raise typer.Exit(code=1)

    _echo_run(run)
    if run.status != RunStatus.SUCCEEDED:
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
