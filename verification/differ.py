"""Output normalisation and line-level comparison."""

from __future__ import annotations

from verification.schemas import (
    ComparisonResult,
    ComparisonStatus,
    DiffLine,
    ErrorInfo,
)


def normalize_output(value: str) -> str:
    """Unify line endings and strip trailing whitespace from the whole block."""
    return value.replace("\r\n", "\n").replace("\r", "\n").rstrip()


def build_line_diff(expected: str, actual: str) -> list[DiffLine]:
    expected_lines = normalize_output(expected).split("\n")
    actual_lines = normalize_output(actual).split("\n")
    total = max(len(expected_lines), len(actual_lines))

    diff: list[DiffLine] = []
    for index in range(total):
        expected_line = expected_lines[index] if index < len(expected_lines) else ""
        actual_line = actual_lines[index] if index < len(actual_lines) else ""
        diff.append(
            DiffLine(
                index=index,
                expected=expected_line,
                actual=actual_line,
                equal=expected_line == actual_line,
            )
        )
    return diff


def compare(
    expected: str,
    actual: str,
    execution_succeeded: bool,
    error: ErrorInfo | None = None,
) -> ComparisonResult:
    """Classify an execution against its reference output.

    A failed execution is always an ``error`` verdict with an empty diff,
    whatever text it produced.
    """
    if not execution_succeeded:
        return ComparisonResult(status=ComparisonStatus.ERROR, diff=(), error=error)

    diff = build_line_diff(expected, actual)
    status = ComparisonStatus.PASS if all(line.equal for line in diff) else ComparisonStatus.FAIL
    return ComparisonResult(status=status, diff=tuple(diff))


def unequal_lines(result: ComparisonResult) -> list[DiffLine]:
    return [line for line in result.diff if not line.equal]
