"""
Patterns Module

Reference output for catalog patterns.

This module provides:
- A narrow expression interpreter for catalog formulas (no eval)
- Deterministic row-by-row pattern rendering
- YAML loading of the static pattern catalog
"""

__version__ = "0.1.0"

from .formula import FormulaEvaluator, FormulaFault, choose, evaluate, evaluate_bool
from .generator import PatternGenerator, generate_reference

__all__ = [
    "FormulaEvaluator",
    "FormulaFault",
    "choose",
    "evaluate",
    "evaluate_bool",
    "PatternGenerator",
    "generate_reference",
]
