"""
Source preparation and diagnostics for submitted solutions.

The verification pipeline only depends on the ``Transpiler`` protocol. The
default adapter compiles Python source with the interpreter's own compiler and
reports syntax errors and syntax warnings as diagnostics.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Literal, Protocol

Severity = Literal["error", "warning"]

SOLUTION_FILENAME = "<solution>"


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    message: str
    line: int | None = None

    def render(self) -> str:
        if self.line is None:
            return self.message
        return f"{self.message} (line {self.line})"


@dataclass(frozen=True)
class TranspileResult:
    executable_form: str
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == "error"]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == "warning"]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


class Transpiler(Protocol):
    def transpile(self, source_code: str) -> TranspileResult:
        """Turn source into its executable form plus diagnostics."""
        ...


class PythonTranspiler:
    """Compile-check Python source; the executable form is the source itself."""

    def __init__(self, filename: str = SOLUTION_FILENAME) -> None:
        self.filename: str = filename

    def transpile(self, source_code: str) -> TranspileResult:
        diagnostics: list[Diagnostic] = []
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                _ = compile(source_code, self.filename, "exec", dont_inherit=True)
            except SyntaxError as exc:
                diagnostics.append(
                    Diagnostic("error", f"{exc.__class__.__name__}: {exc.msg}", exc.lineno)
                )
            except ValueError as exc:
                # null bytes in source
                diagnostics.append(Diagnostic("error", f"SyntaxError: {exc}"))

        for item in caught:
            if issubclass(item.category, SyntaxWarning):
                diagnostics.append(
                    Diagnostic("warning", f"SyntaxWarning: {item.message}", item.lineno)
                )

        return TranspileResult(executable_form=source_code, diagnostics=diagnostics)
