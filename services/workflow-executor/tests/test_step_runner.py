from __future__ import annotations

import pytest

from activities.persist_state import InMemoryStepStore
from activities.step_runner import DurableStepRunner, RetryPolicy
from core.errors import NodeExecutionError, RetriableError, StepRetriesExhaustedError


class Flaky:
    """Fails with the given errors in order, then returns `result`."""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def _runner(store, delays=None, max_attempts=3):
    sleep = delays.append if delays is not None else (lambda _: None)
    policy = RetryPolicy(max_attempts=max_attempts, base_delay=1.0, max_delay=3.0)
    return DurableStepRunner(store, "run-1", policy, sleep=sleep).for_node("n1")


def test_result_is_saved_under_run_node_and_step():
    store = InMemoryStepStore()
    assert _runner(store).run("fetch", lambda: {"a": 1}) == {"a": 1}
    assert store.keys() == ["step:run-1:n1:fetch"]


def test_completed_step_is_replayed_not_rerun():
    store = InMemoryStepStore()
    first = Flaky([], result="first")
    _runner(store).run("fetch", first)

    second = Flaky([], result="second")
    assert _runner(store).run("fetch", second) == "first"
    assert second.calls == 0


def test_none_result_is_memoized():
    store = InMemoryStepStore()
    _runner(store).run("noop", lambda: None)

    again = Flaky([])
    assert _runner(store).run("noop", again) is None
    assert again.calls == 0


def test_retriable_errors_are_retried_with_backoff():
    delays = []
    fn = Flaky([RetriableError("503"), RetriableError("503")])
    assert _runner(InMemoryStepStore(), delays).run("fetch", fn) == "ok"
    assert fn.calls == 3
    assert delays == [1.0, 2.0]


def test_retry_budget_exhausted():
    store = InMemoryStepStore()
    fn = Flaky([RetriableError("down")] * 5)
    with pytest.raises(StepRetriesExhaustedError) as exc:
        _runner(store).run("fetch", fn)

    assert fn.calls == 3
    assert exc.value.attempts == 3
    assert isinstance(exc.value.last_error, RetriableError)
    assert store.keys() == []


def test_non_retriable_error_is_not_retried():
    fn = Flaky([NodeExecutionError("404")])
    with pytest.raises(NodeExecutionError):
        _runner(InMemoryStepStore()).run("fetch", fn)
    assert fn.calls == 1


def test_unexpected_error_is_not_retried():
    fn = Flaky([KeyError("boom")])
    with pytest.raises(KeyError):
        _runner(InMemoryStepStore()).run("fetch", fn)
    assert fn.calls == 1


def test_step_names_must_be_unique_within_a_node():
    runner = _runner(InMemoryStepStore())
    runner.run("fetch", lambda: 1)
    with pytest.raises(ValueError):
        runner.run("fetch", lambda: 2)


def test_same_step_name_in_different_nodes_is_independent():
    store = InMemoryStepStore()
    base = DurableStepRunner(store, "run-1", RetryPolicy(), sleep=lambda _: None)
    assert base.for_node("a").run("call", lambda: "A") == "A"
    assert base.for_node("b").run("call", lambda: "B") == "B"


def test_delay_is_capped():
    policy = RetryPolicy(base_delay=1.0, max_delay=5.0)
    assert [policy.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]
