"""
Verification pipeline: validate -> execute -> generate reference -> diff.

``PatternVerifier`` is the caller-facing surface of the core. It is the only
component that knows the full sequence; everything it calls is single-purpose.
"""

from __future__ import annotations

import json
import logging
import time

from pydantic import ValidationError

from patterns.generator import PatternGenerator
from sandbox.errors import ErrorKind
from verification import differ
from verification.coordinator import RunCoordinator
from verification.schemas import (
    ComparisonMetrics,
    ComparisonResult,
    ComparisonStatus,
    ErrorInfo,
    ExecutionOutcome,
    PatternDefinition,
    PatternInput,
    ValidationSummary,
)
from verification.validator import StaticValidator

logger = logging.getLogger(__name__)

IDLE_COMPARISON = ComparisonResult(status=ComparisonStatus.IDLE)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class PatternVerifier:
    def __init__(
        self,
        coordinator: RunCoordinator | None = None,
        validator: StaticValidator | None = None,
        generator: PatternGenerator | None = None,
    ) -> None:
        self.coordinator: RunCoordinator = coordinator or RunCoordinator()
        self.validator: StaticValidator = validator or StaticValidator(
            self.coordinator.executor.transpiler
        )
        self.generator: PatternGenerator = generator or PatternGenerator()
        self.last_validation: ValidationSummary | None = None
        self.last_comparison: ComparisonResult = IDLE_COMPARISON
        self._verify_seq: int = 0

    def validate(self, source_code: str) -> ValidationSummary:
        summary = self.validator.validate(source_code)
        self.last_validation = summary
        return summary

    def generate_reference(self, pattern: PatternDefinition, rows: int | None = None) -> list[str]:
        return self.generator.generate(pattern, rows)

    async def run_once(self, source_code: str, input: object = None) -> ExecutionOutcome:
        """Ad hoc execution: no validation gate, no comparison."""
        return await self.coordinator.start_run(source_code, input, require_entrypoint=False)

    def cancel_active_run(self) -> None:
        if self.coordinator.cancel_active_run():
            logger.info("Active run cancelled")

    async def verify(
        self,
        pattern: PatternDefinition,
        source_code: str,
        input: object = None,
    ) -> ComparisonResult:
        self._verify_seq += 1
        seq = self._verify_seq
        self.last_comparison = ComparisonResult(status=ComparisonStatus.RUNNING)
        result = await self._verify(pattern, source_code, input)
        # only the latest call publishes its result
        if seq == self._verify_seq:
            self.last_comparison = result
        logger.info("Pattern %s verdict: %s", pattern.id, result.status.value)
        return result

    async def _verify(
        self,
        pattern: PatternDefinition,
        source_code: str,
        input: object,
    ) -> ComparisonResult:
        start = time.perf_counter()
        summary = self.validate(source_code)
        validation_ms = _elapsed_ms(start)
        if not summary.is_valid:
            return ComparisonResult(
                status=ComparisonStatus.ERROR,
                error=ErrorInfo(
                    kind=ErrorKind.VALIDATION,
                    message="Code validation failed",
                    trace="\n".join(summary.errors),
                ),
                validation=summary,
                metrics=ComparisonMetrics(validation_ms=validation_ms),
            )

        run_input = pattern.canonical_input() if input is None else input
        try:
            checked = PatternInput.model_validate(run_input)
        except ValidationError as exc:
            return ComparisonResult(
                status=ComparisonStatus.ERROR,
                error=ErrorInfo(
                    kind=ErrorKind.INVALID_INPUT,
                    message=_first_error(exc),
                    trace=str(exc),
                ),
                validation=summary,
                metrics=ComparisonMetrics(validation_ms=validation_ms),
            )

        start = time.perf_counter()
        outcome = await self.coordinator.start_run(source_code, run_input)
        metrics = ComparisonMetrics(validation_ms=validation_ms, execution_ms=_elapsed_ms(start))
        if not outcome.success:
            return differ.compare("", "", False, outcome.error).model_copy(
                update={"validation": summary, "metrics": metrics}
            )

        expected = "\n".join(self.generate_reference(_for_input(pattern, checked)))
        result = differ.compare(expected, outcome.output, True)
        return result.model_copy(update={"validation": summary, "metrics": metrics})


def _for_input(pattern: PatternDefinition, checked: PatternInput) -> PatternDefinition:
    """The pattern as rendered for a specific run input: its rows and symbol."""
    config = pattern.config.model_copy(
        update={"rows": checked.rows, "fill_symbol": checked.symbol}
    )
    return pattern.model_copy(update={"config": config})


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid run input"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = str(first.get("msg", "invalid value"))
    return f"{location}: {message}" if location else message


def canonical_input_json(pattern: PatternDefinition) -> str:
    return json.dumps(pattern.canonical_input(), indent=2)
