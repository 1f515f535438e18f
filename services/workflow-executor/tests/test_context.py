from __future__ import annotations

from core.context import ExecutionContext


def test_with_output_returns_new_context():
    base = ExecutionContext({"a": 1})
    updated = base.with_output("b", 2)

    assert dict(base) == {"a": 1}
    assert dict(updated) == {"a": 1, "b": 2}


def test_overwrite_is_last_write_wins():
    context = ExecutionContext({"a": 1}).with_output("a", 2)
    assert context["a"] == 2


def test_to_dict_is_a_deep_copy():
    context = ExecutionContext({"nested": {"value": 1}})
    snapshot = context.to_dict()
    snapshot["nested"]["value"] = 99

    assert context["nested"]["value"] == 1


def test_behaves_as_mapping():
    context = ExecutionContext({"a": 1, "b": 2})
    assert len(context) == 2
    assert "a" in context
    assert context.get("missing") is None
    assert sorted(context) == ["a", "b"]
