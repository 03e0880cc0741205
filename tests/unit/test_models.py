"""Data model validation tests."""

import pytest
from pydantic import ValidationError

from stepwise.models import (
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
from stepwise.errors import StepTimeoutError


def test_workflow_is_immutable():
    wf = Workflow(
        id="wf",
        name="Test",
        entry_step_id="a",
        steps=[Step(id="a", name="A", type="noop")],
    )
    with pytest.raises(ValidationError):
        wf.name = "Changed"
    assert wf.determinism == DeterminismGrade.BEST_EFFORT
    assert wf.get_step("a").name == "A"
    assert wf.get_step("b") is None


def test_duplicate_step_ids_rejected():
    with pytest.raises(ValidationError):
        Workflow(
            id="wf",
            name="Dup",
            entry_step_id="a",
            steps=[Step(id="a", name="A", type="t"), Step(id="a", name="A2", type="t")],
        )


@pytest.mark.parametrize("step_id", ["", "has.dot", "has space"])
def test_invalid_step_ids(step_id):
    with pytest.raises(ValidationError):
        Step(id=step_id, name="bad", type="t")


def test_policy_bounds():
    assert StepPolicy().max_attempts == 1
    assert StepPolicy().timeout_ms is None
    with pytest.raises(ValidationError):
        StepPolicy(max_attempts=0)
    with pytest.raises(ValidationError):
        StepPolicy(timeout_ms=0)


def test_status_terminal_flags():
    assert RunStatus.SUCCEEDED.is_terminal
    assert RunStatus.FAILED.is_terminal
    assert not RunStatus.RUNNING.is_terminal
    assert StepStatus.FAILED.is_terminal
    assert not StepStatus.PENDING.is_terminal


def test_step_error_from_engine_exception():
    error = StepError.from_exception(StepTimeoutError("a", 5000))
    assert error.kind == "TimeoutError"
    assert error.detail == {"step_id": "a", "timeout_ms": 5000}


def test_step_error_from_plain_exception():
    error = StepError.from_exception(ValueError("bad value"))
    assert error.kind == "ValueError"
    assert error.message == "bad value"


def test_run_json_round_trip_and_outputs():
    run = Run(workflow_id="wf", inputs={"x": 1})
    run.step_results["a"] = StepResult(
        step_id="a", status=StepStatus.SUCCEEDED, outputs={"y": 2}, attempts=1
    )
    run.step_results["b"] = StepResult(step_id="b", status=StepStatus.RUNNING)
    restored = Run.from_json(run.to_json())
    assert restored == run
    assert restored.outputs_of("a") == {"y": 2}
    assert restored.outputs_of("b") == {}
    assert restored.outputs_of("missing") == {}
