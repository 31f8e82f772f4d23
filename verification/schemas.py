from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sandbox.errors import ErrorKind


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_run_id() -> str:
    return uuid.uuid4().hex


TBaseSchema = TypeVar("TBaseSchema", bound="BaseSchema")


class BaseSchema(BaseModel):
    def to_json(self) -> str:
        return self.model_dump_json()

    def to_dict(self) -> dict[str, object]:
        return self.model_dump()

    @classmethod
    def from_json(cls: type[TBaseSchema], data: str) -> TBaseSchema:
        return cls.model_validate_json(data)

    @classmethod
    def from_dict(cls: type[TBaseSchema], data: Mapping[str, object]) -> TBaseSchema:
        return cls.model_validate(data)


class RunRequest(BaseSchema):
    model_config = ConfigDict(frozen=True)

    run_id: str = Field(default_factory=new_run_id)
    source_code: str
    input: object = None
    require_entrypoint: bool = True


class ErrorInfo(BaseSchema):
    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    name: str | None = None
    message: str
    trace: str | None = None


class ExecutionOutcome(BaseSchema):
    model_config = ConfigDict(frozen=True)

    run_id: str
    logs: tuple[str, ...] = ()
    success: bool
    output: str = ""
    error: ErrorInfo | None = None
    runtime_ms: float | None = None

    @model_validator(mode="after")
    def success_xor_error(self) -> "ExecutionOutcome":
        if self.success and self.error is not None:
            raise ValueError("a successful outcome cannot carry an error")
        if not self.success and self.error is None:
            raise ValueError("a failed outcome must carry an error")
        return self

    @classmethod
    def failure(
        cls,
        run_id: str,
        kind: ErrorKind,
        message: str,
        logs: Sequence[str] = (),
        name: str | None = None,
        trace: str | None = None,
        runtime_ms: float | None = None,
    ) -> "ExecutionOutcome":
        return cls(
            run_id=run_id,
            logs=tuple(logs),
            success=False,
            output="",
            error=ErrorInfo(kind=kind, name=name, message=message, trace=trace),
            runtime_ms=runtime_ms,
        )


class ValidationSummary(BaseSchema):
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    compilation_errors: tuple[str, ...] = ()

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


class Archetype(str, Enum):
    LINEAR = "LINEAR"  # j <= i (triangles)
    SYMMETRIC = "SYMMETRIC"  # j <= 2i-1 (pyramids)
    STATIC = "STATIC"  # j <= N (squares, grids)
    CONDITIONAL = "CONDITIONAL"  # j <= N with a cell condition (hollow, cross)
    MATH_SEQ = "MATH_SEQ"  # values from a sequence (Pascal, Floyd)


class ValueFormula(str, Enum):
    ROW = "row"
    COL = "col"
    COUNTER = "counter"
    SYMBOL = "symbol"
    BINARY = "binary"
    BINARY_ROW = "binary-row"
    BINARY_COL = "binary-col"
    ALPHA_ROW = "alpha-row"
    ALPHA_COL = "alpha-col"
    PALINDROME = "palindrome"
    PASCAL = "pascal"


class PatternConfig(BaseSchema):
    model_config = ConfigDict(frozen=True)

    rows: int = Field(gt=0)
    fill_symbol: str = "*"


class PatternLogic(BaseSchema):
    model_config = ConfigDict(frozen=True)

    archetype: Archetype
    fill_formula: str
    space_formula: str | None = None
    condition: str | None = None
    value_formula: ValueFormula = ValueFormula.SYMBOL
    renders_spacing: bool = False


class PatternDefinition(BaseSchema):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str | None = None
    difficulty: Literal["Beginner", "Intermediate", "Advanced", "Expert"] | None = None
    config: PatternConfig
    logic: PatternLogic

    def canonical_input(self) -> dict[str, object]:
        return {"rows": self.config.rows, "symbol": self.config.fill_symbol}


class PatternInput(BaseSchema):
    """Input handed to a solution during verification."""

    model_config = ConfigDict(extra="allow")

    rows: int = Field(ge=1, le=50)
    symbol: str


class DiffLine(BaseSchema):
    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    expected: str
    actual: str
    equal: bool


class ComparisonStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"


class ComparisonMetrics(BaseSchema):
    validation_ms: float
    execution_ms: float | None = None


class ComparisonResult(BaseSchema):
    model_config = ConfigDict(frozen=True)

    status: ComparisonStatus
    diff: tuple[DiffLine, ...] = ()
    error: ErrorInfo | None = None
    validation: ValidationSummary | None = None
    metrics: ComparisonMetrics | None = None

    @model_validator(mode="after")
    def pass_means_all_equal(self) -> "ComparisonResult":
        if self.status == ComparisonStatus.PASS:
            if self.error is not None or not all(line.equal for line in self.diff):
                raise ValueError("a passing comparison cannot contain errors or unequal lines")
        return self

    @property
    def passed(self) -> bool | None:
        if self.status in (ComparisonStatus.IDLE, ComparisonStatus.RUNNING):
            return None
        return self.status == ComparisonStatus.PASS


class SolutionAttempt(BaseSchema):
    id: str
    name: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_code: str
    run_input_json: str

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    @classmethod
    def create(
        cls,
        source_code: str,
        run_input_json: str,
        name: str | None = None,
    ) -> "SolutionAttempt":
        label = name.strip() if name and name.strip() else "Untitled"
        return cls(
            id=str(uuid.uuid4()),
            name=label,
            source_code=source_code,
            run_input_json=run_input_json,
        )
