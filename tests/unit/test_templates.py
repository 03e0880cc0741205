"""Input placeholder resolution tests."""

import pytest

from stepwise.errors import InputResolutionError
from stepwise.templates import referenced_steps, resolve_inputs


def test_whole_placeholder_keeps_type():
    resolved = resolve_inputs(
        {"count": "{{ inputs.count }}", "scores": "{{steps.score.values}}"},
        {"count": 3},
        {"score": {"values": [1, 2]}},
    )
    assert resolved == {"count": 3, "scores": [1, 2]}


def test_embedded_placeholders_are_interpolated():
    resolved = resolve_inputs(
        {"text": "Step {{ inputs.n }} on {{ steps.t.channel }}"},
        {"n": 2},
        {"t": {"channel": "email"}},
    )
    assert resolved["text"] == "Step 2 on email"


def test_nested_values_and_literals():
    resolved = resolve_inputs(
        {
            "payload": {"user": "{{ inputs.user.name }}", "tags": ["{{ inputs.tag }}", "x"]},
            "flag": True,
            "first": "{{ inputs.items.0 }}",
        },
        {"user": {"name": "ada"}, "tag": "t1", "items": ["i0", "i1"]},
        {},
    )
    assert resolved == {
        "payload": {"user": "ada", "tags": ["t1", "x"]},
        "flag": True,
        "first": "i0",
    }


def test_missing_input_raises():
    with pytest.raises(InputResolutionError) as exc_info:
        resolve_inputs({"v": "{{ inputs.missing }}"}, {}, {})
    assert exc_info.value.detail["segment"] == "missing"


def test_unknown_namespace_raises():
    with pytest.raises(InputResolutionError):
        resolve_inputs({"v": "{{ secrets.token }}"}, {}, {})


def test_step_outputs_not_provided_are_unresolvable():
    with pytest.raises(InputResolutionError):
        resolve_inputs({"v": "{{ steps.pending.value }}"}, {}, {})


def test_referenced_steps():
    inputs = {
        "a": "{{ steps.first.x }}",
        "b": ["{{ steps.second.y }} and {{ steps.first.z }}"],
        "c": "{{ inputs.q }}",
    }
    assert referenced_steps(inputs) == ["first", "second"]
