"""Reference output generation for catalog patterns."""

from __future__ import annotations

import math

from patterns.formula import FormulaEvaluator, Number, choose
from verification.schemas import Archetype, PatternDefinition, ValueFormula

# one symbol plus its separating gap
EMPTY_CELL = "  "


def _count(value: Number) -> int:
    return max(0, math.floor(value))


def cell_value(
    value_formula: ValueFormula,
    i: int,
    j: int,
    counter: int,
    symbol: str,
) -> str:
    if value_formula == ValueFormula.SYMBOL:
        return symbol.rstrip()
    if value_formula == ValueFormula.ROW:
        return str(i)
    if value_formula == ValueFormula.COL:
        return str(j)
    if value_formula == ValueFormula.COUNTER:
        return str(counter)
    if value_formula == ValueFormula.BINARY:
        return "1" if (i + j) % 2 == 0 else "0"
    if value_formula == ValueFormula.BINARY_ROW:
        return "1" if i % 2 == 0 else "0"
    if value_formula == ValueFormula.BINARY_COL:
        return "1" if j % 2 == 0 else "0"
    if value_formula == ValueFormula.ALPHA_ROW:
        return chr(64 + i)
    if value_formula == ValueFormula.ALPHA_COL:
        return chr(64 + j)
    if value_formula == ValueFormula.PALINDROME:
        return str(j if j <= i else 2 * i - j)
    if value_formula == ValueFormula.PASCAL:
        return str(choose(i - 1, j - 1))
    return symbol


class PatternGenerator:
    """Deterministic renderer: the same pattern and row count always give the same lines."""

    def __init__(self, evaluator: FormulaEvaluator | None = None) -> None:
        self.evaluator: FormulaEvaluator = evaluator or FormulaEvaluator()

    def generate(self, pattern: PatternDefinition, rows: int | None = None) -> list[str]:
        if rows is not None and rows < 0:
            raise ValueError(f"rows must be positive, got {rows}")
        total = rows or pattern.config.rows
        logic = pattern.logic
        symbol = pattern.config.fill_symbol

        lines: list[str] = []
        counter = 1
        for i in range(1, total + 1):
            row = ""
            if logic.renders_spacing and logic.space_formula:
                spaces = _count(self.evaluator.evaluate(logic.space_formula, i, total))
                row += EMPTY_CELL * spaces

            fill_count = _count(self.evaluator.evaluate(logic.fill_formula, i, total))
            for j in range(1, fill_count + 1):
                if (
                    logic.archetype == Archetype.CONDITIONAL
                    and logic.condition
                    and not self.evaluator.evaluate_bool(logic.condition, i, total, j)
                ):
                    row += EMPTY_CELL
                    continue
                row += cell_value(logic.value_formula, i, j, counter, symbol) + " "
                counter += 1

            lines.append(row.rstrip())
        return lines


def generate_reference(pattern: PatternDefinition, rows: int | None = None) -> list[str]:
    return PatternGenerator().generate(pattern, rows)
