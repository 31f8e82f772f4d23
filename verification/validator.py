"""Static checks run on a solution before it may reach the sandbox."""

from __future__ import annotations

import logging
import re

from sandbox.transpile import PythonTranspiler, Transpiler
from verification.schemas import ValidationSummary

logger = logging.getLogger(__name__)

REQUIRED_FUNCTION = "solve"

_REQUIRED_DECLARATION = re.compile(rf"^\s*(?:async\s+)?def\s+{REQUIRED_FUNCTION}\s*\(", re.MULTILINE)

_BRACKET_PAIRS = (("(", ")", "parentheses"), ("[", "]", "brackets"), ("{", "}", "braces"))

UNSAFE_PATTERNS = [
    re.compile(r"\beval\s*\("),
    re.compile(r"\bexec\s*\("),
    re.compile(r"\bcompile\s*\("),
    re.compile(r"__import__"),
    re.compile(r"\bopen\s*\("),
    re.compile(r"^\s*(?:import|from)\s+(?:os|sys|subprocess|socket|urllib|requests|threading)\b", re.MULTILINE),
    re.compile(r"\btime\.sleep\s*\("),
]


class StaticValidator:
    """Accumulating validator: every check runs, every finding is kept."""

    def __init__(self, transpiler: Transpiler | None = None) -> None:
        self.transpiler: Transpiler = transpiler or PythonTranspiler()

    def validate(self, source_code: str) -> ValidationSummary:
        errors: list[str] = []
        warnings: list[str] = []
        compilation_errors: list[str] = []

        if not source_code.strip():
            errors.append("Code cannot be empty")

        if not _REQUIRED_DECLARATION.search(source_code):
            errors.append(f"Missing required function: {REQUIRED_FUNCTION}(input) -> str")

        for opening, closing, label in _BRACKET_PAIRS:
            if source_code.count(opening) != source_code.count(closing):
                errors.append(f"Unmatched {label} in code")

        for pattern in UNSAFE_PATTERNS:
            if pattern.search(source_code):
                warnings.append(f"Potentially unsafe pattern detected: {pattern.pattern}")

        if source_code.strip():
            if "return" not in source_code and "yield" not in source_code:
                warnings.append(f"No return statement found in {REQUIRED_FUNCTION} function")
            if not re.search(r"\binput\b", source_code):
                warnings.append("Input parameter may not be properly used")

        try:
            prepared = self.transpiler.transpile(source_code)
        except Exception as exc:  # noqa: BLE001 - external capability
            compilation_errors.append(f"Compilation failed: {exc}")
        else:
            for diagnostic in prepared.diagnostics:
                if diagnostic.severity == "error":
                    compilation_errors.append(diagnostic.render())
                    errors.append(f"Compile error: {diagnostic.render()}")
                else:
                    warnings.append(diagnostic.render())

        summary = ValidationSummary(
            is_valid=not errors and not compilation_errors,
            errors=tuple(errors),
            warnings=tuple(warnings),
            compilation_errors=tuple(compilation_errors),
        )
        logger.debug(
            "Validation finished: valid=%s errors=%d warnings=%d",
            summary.is_valid,
            len(errors),
            len(warnings),
        )
        return summary


def validate(source_code: str, transpiler: Transpiler | None = None) -> ValidationSummary:
    return StaticValidator(transpiler).validate(source_code)
