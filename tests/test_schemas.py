from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from sandbox.errors import ErrorKind
from verification.schemas import (
    ComparisonResult,
    ComparisonStatus,
    DiffLine,
    ErrorInfo,
    ExecutionOutcome,
    PatternDefinition,
    PatternInput,
    RunRequest,
    SolutionAttempt,
)


def test_outcome_success_and_error_are_exclusive() -> None:
    with pytest.raises(ValidationError):
        _ = ExecutionOutcome(
            run_id="r",
            success=True,
            error=ErrorInfo(kind=ErrorKind.RUNTIME, message="x"),
        )
    with pytest.raises(ValidationError):
        _ = ExecutionOutcome(run_id="r", success=False)


def test_outcome_failure_factory() -> None:
    outcome = ExecutionOutcome.failure("r", ErrorKind.TIMEOUT, "Execution timed out", logs=["a"])
    assert outcome.success is False
    assert outcome.output == ""
    assert outcome.logs == ("a",)
    assert outcome.error == ErrorInfo(kind=ErrorKind.TIMEOUT, message="Execution timed out")


def test_outcome_round_trip() -> None:
    outcome = ExecutionOutcome(run_id="r", success=True, output="* *", logs=("hi",), runtime_ms=1.5)
    restored = ExecutionOutcome.from_json(outcome.to_json())
    assert restored == outcome


def test_run_request_gets_unique_ids() -> None:
    first = RunRequest(source_code="")
    second = RunRequest(source_code="")
    assert first.run_id != second.run_id
    assert first.require_entrypoint is True


def test_passing_comparison_requires_equal_lines() -> None:
    unequal = DiffLine(index=0, expected="*", actual="", equal=False)
    with pytest.raises(ValidationError):
        _ = ComparisonResult(status=ComparisonStatus.PASS, diff=(unequal,))
    with pytest.raises(ValidationError):
        _ = ComparisonResult(
            status=ComparisonStatus.PASS,
            error=ErrorInfo(kind=ErrorKind.RUNTIME, message="x"),
        )


def test_comparison_passed_property() -> None:
    assert ComparisonResult(status=ComparisonStatus.IDLE).passed is None
    assert ComparisonResult(status=ComparisonStatus.RUNNING).passed is None
    assert ComparisonResult(status=ComparisonStatus.PASS).passed is True
    assert ComparisonResult(status=ComparisonStatus.ERROR).passed is False


def test_pattern_input_bounds() -> None:
    assert PatternInput.from_dict({"rows": 50, "symbol": "#"}).rows == 50
    assert PatternInput.from_dict({"rows": 1, "symbol": "*", "extra": True}).rows == 1
    for data in ({"rows": 0, "symbol": "*"}, {"rows": 51, "symbol": "*"}, {"rows": 3}):
        with pytest.raises(ValidationError):
            _ = PatternInput.from_dict(data)


def test_pattern_definition_canonical_input() -> None:
    pattern = PatternDefinition.from_dict(
        {
            "id": "square",
            "name": "Square",
            "difficulty": "Beginner",
            "config": {"rows": 4, "fill_symbol": "#"},
            "logic": {"archetype": "STATIC", "fill_formula": "N"},
        }
    )
    assert pattern.canonical_input() == {"rows": 4, "symbol": "#"}
    with pytest.raises(ValidationError):
        _ = PatternDefinition.from_dict({**pattern.to_dict(), "difficulty": "Impossible"})


def test_solution_attempt_create() -> None:
    attempt = SolutionAttempt.create("def solve(input):\n    return ''", '{"rows": 2}', "  ")
    assert attempt.name == "Untitled"
    assert attempt.id
    assert attempt.created_at.tzinfo is not None

    named = SolutionAttempt.create("", "", "mine")
    assert named.name == "mine"
    assert named.id != attempt.id


def test_solution_attempt_naive_datetime_becomes_utc() -> None:
    attempt = SolutionAttempt(
        id="a",
        name="A",
        created_at=datetime(2026, 1, 1),
        source_code="",
        run_input_json="",
    )
    assert attempt.created_at == datetime(2026, 1, 1, tzinfo=timezone.utc)
    restored = SolutionAttempt.from_json(attempt.to_json())
    assert restored.to_dict() == attempt.to_dict()
