"""Step handler registry tests."""

import pytest

from stepwise.errors import DuplicateHandlerError, UnknownStepTypeError
from stepwise.registry import HandlerRegistry, StepExecutionContext


def _echo(inputs, context):
    return dict(inputs)


def test_register_and_resolve():
    registry = HandlerRegistry()
    registry.register("echo", _echo)
    assert registry.resolve("echo") is _echo
    assert "echo" in registry
    assert len(registry) == 1
    assert registry.step_types == ["echo"]


def test_duplicate_registration_fails():
    registry = HandlerRegistry()
    registry.register("echo", _echo)
    with pytest.raises(DuplicateHandlerError) as exc_info:
        registry.register("echo", lambda inputs, ctx: {})
    assert exc_info.value.step_type == "echo"
    assert registry.resolve("echo") is _echo


def test_unknown_step_type():
    registry = HandlerRegistry()
    with pytest.raises(UnknownStepTypeError) as exc_info:
        registry.resolve("custom.missing")
    assert exc_info.value.kind == "UnknownStepTypeError"
    assert registry.get("custom.missing") is None


def test_decorator_registration():
    registry = HandlerRegistry()

    @registry.handler("custom.greet")
    async def greet(inputs, context):
        return {"greeting": f"hi {inputs['name']}"}

    assert registry.resolve("custom.greet") is greet


def test_clear():
    registry = HandlerRegistry()
    registry.register("echo", _echo)
    registry.clear()
    assert len(registry) == 0


def test_execution_context_exposes_read_only_outputs():
    ctx = StepExecutionContext(
        run_id="r1",
        workflow_id="wf",
        step_id="b",
        run_inputs={"q": 1},
        dependency_outputs={"a": {"value": 42}},
    )
    assert ctx.get_output("a")["value"] == 42
    assert ctx.run_inputs["q"] == 1
    with pytest.raises(TypeError):
        ctx.get_output("a")["value"] = 0
    with pytest.raises(KeyError):
        ctx.get_output("c")
