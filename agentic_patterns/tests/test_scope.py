"""
Tests for the per-invocation Scope.
"""

import pytest

from agentic_patterns.service.errors import WorkflowCancelledError
from agentic_patterns.service.scope import Scope


class TestReadState:
    """Permissive read contract."""

    def test_absent_key_returns_default_without_mutation(self) -> None:
        scope = Scope()

        assert scope.read_state("score", 0.0) == 0.0
        assert scope.read_state("score", 0.0) == 0.0
        assert not scope.has_state("score")
        assert len(scope) == 0

    def test_present_key_returns_value(self) -> None:
        scope = Scope({"topic": "AI"})

        assert scope.read_state("topic", "") == "AI"
        assert scope.read_state("topic") == "AI"

    def test_mismatched_type_returns_default(self) -> None:
        scope = Scope({"score": "high"})

        assert scope.read_state("score", 0.0) == 0.0
        assert scope.read_state("score") == "high"

    def test_int_accepted_for_float_default(self) -> None:
        scope = Scope({"score": 1})

        value = scope.read_state("score", 0.0)

        assert value == 1.0
        assert isinstance(value, float)

    def test_bool_never_accepted_for_float_default(self) -> None:
        scope = Scope({"score": True})

        assert scope.read_state("score", 0.0) == 0.0

    def test_none_default_accepts_any_value(self) -> None:
        scope = Scope({"items": [1, 2]})

        assert scope.read_state("items") == [1, 2]


class TestWriteState:
    """Write contract and snapshots."""

    def test_last_writer_wins(self) -> None:
        scope = Scope()
        scope.write_state("content", "draft")
        scope.write_state("content", "final")

        assert scope.read_state("content") == "final"

    def test_snapshot_is_a_copy(self) -> None:
        scope = Scope({"a": 1})
        snapshot = scope.snapshot()
        snapshot["a"] = 2

        assert scope.read_state("a") == 1

    def test_initial_mapping_is_copied(self) -> None:
        initial = {"a": 1}
        scope = Scope(initial)
        scope.write_state("b", 2)

        assert "b" not in initial
        assert "b" in scope
        assert sorted(scope) == ["a", "b"]


class TestTraceAndCancellation:
    """Invocation trace and cancellation flag."""

    def test_trace_records_invocations_in_order(self) -> None:
        scope = Scope()
        scope.record_invocation("A")
        scope.record_invocation("B")

        assert scope.invoked_agents() == ["A", "B"]
        assert [entry.sequence for entry in scope.trace] == [0, 1]

    def test_scopes_have_distinct_invocation_ids(self) -> None:
        assert Scope().invocation_id != Scope().invocation_id

    def test_raise_if_cancelled(self) -> None:
        scope = Scope(invocation_id="inv-1")
        scope.raise_if_cancelled("A")

        scope.cancel()

        assert scope.cancelled
        with pytest.raises(WorkflowCancelledError) as exc_info:
            scope.raise_if_cancelled("A")
        assert exc_info.value.agent_id == "A"
        assert exc_info.value.kind == "cancelled"
