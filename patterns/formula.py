"""
Expression interpreter for pattern formulas.

Formulas come from the static pattern catalog, e.g. ``2*i-1``, ``N-i`` or
``i==1 || i==N || j==1 || j==N``. They are parsed by a small
recursive-descent parser and evaluated over the variables ``i`` (row),
``N`` (total rows) and ``j`` (column). Nothing here calls ``eval``.

A broken formula never raises into the caller: numeric evaluation yields
``0`` and boolean evaluation yields ``True``, and the fault is handed to a
diagnostics sink.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

Number = int | float
Value = int | float | bool


class FormulaError(ValueError):
    """Malformed formula or fault while evaluating it."""


@dataclass(frozen=True)
class FormulaFault:
    expression: str
    variables: dict[str, Number]
    reason: str


def choose(n: int, r: int) -> int:
    """Binomial coefficient C(n, r); 0 outside ``0 <= r <= n``."""
    if r < 0 or r > n:
        return 0
    if r == 0 or r == n:
        return 1
    k = min(r, n - r)
    result = 1
    for t in range(1, k + 1):
        result = result * (n - k + t) // t
    return result


def _round_half_up(value: Number) -> int:
    return math.floor(value + 0.5)


FUNCTIONS: dict[str, Callable[..., Number]] = {
    "choose": lambda n, r: choose(int(n), int(r)),
    "floor": math.floor,
    "ceil": math.ceil,
    "abs": abs,
    "min": min,
    "max": max,
    "round": _round_half_up,
}

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<number>\d+(?:\.\d*)?|\.\d+)
      | (?P<name>[A-Za-z_][A-Za-z_0-9]*(?:\.[A-Za-z_][A-Za-z_0-9]*)?)
      | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[-+*/%<>!?:(),])
    )
    """,
    re.VERBOSE,
)

_KEYWORD_OPS = {"and": "&&", "or": "||", "not": "!"}


def tokenize(expression: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    position = 0
    text = expression.rstrip()
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if match is None or match.end() == position:
            raise FormulaError(f"Unexpected character {text[position:].lstrip()[:1]!r}")
        position = match.end()
        kind = match.lastgroup or ""
        value = match.group(kind)
        if kind == "name" and value in _KEYWORD_OPS:
            kind, value = "op", _KEYWORD_OPS[value]
        tokens.append((kind, value))
    return tokens


# AST nodes are plain tuples: ("num", v) ("var", name) ("unary", op, x)
# ("binary", op, a, b) ("ternary", c, a, b) ("call", name, args)
Node = tuple


class _Parser:
    """Precedence climbing: ternary < || < && < equality < relational < + - < * / % < unary."""

    def __init__(self, tokens: list[tuple[str, str]]) -> None:
        self.tokens = tokens
        self.position = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise FormulaError("Empty expression")
        node = self._ternary()
        if self.position != len(self.tokens):
            raise FormulaError(f"Unexpected token {self.tokens[self.position][1]!r}")
        return node

    def _peek(self) -> str | None:
        if self.position < len(self.tokens):
            return self.tokens[self.position][1]
        return None

    def _accept(self, *ops: str) -> str | None:
        token = self._peek()
        if token in ops and self.tokens[self.position][0] == "op":
            self.position += 1
            return token
        return None

    def _expect(self, op: str) -> None:
        if self._accept(op) is None:
            raise FormulaError(f"Expected {op!r}")

    def _ternary(self) -> Node:
        condition = self._binary(0)
        if self._accept("?"):
            when_true = self._ternary()
            self._expect(":")
            when_false = self._ternary()
            return ("ternary", condition, when_true, when_false)
        return condition

    _LEVELS: tuple[tuple[str, ...], ...] = (
        ("||",),
        ("&&",),
        ("==", "!=", "===", "!=="),
        ("<", "<=", ">", ">="),
        ("+", "-"),
        ("*", "/", "%"),
    )

    def _binary(self, level: int) -> Node:
        if level == len(self._LEVELS):
            return self._unary()
        node = self._binary(level + 1)
        while True:
            op = self._accept(*self._LEVELS[level])
            if op is None:
                return node
            node = ("binary", op, node, self._binary(level + 1))

    def _unary(self) -> Node:
        op = self._accept("-", "+", "!")
        if op is not None:
            return ("unary", op, self._unary())
        return self._primary()

    def _primary(self) -> Node:
        if self.position >= len(self.tokens):
            raise FormulaError("Unexpected end of expression")
        kind, value = self.tokens[self.position]
        if kind == "number":
            self.position += 1
            return ("num", float(value) if "." in value else int(value))
        if kind == "name":
            self.position += 1
            name = value[5:] if value.startswith("Math.") else value
            if self._accept("("):
                args: list[Node] = []
                if not self._accept(")"):
                    args.append(self._ternary())
                    while self._accept(","):
                        args.append(self._ternary())
                    self._expect(")")
                return ("call", name, tuple(args))
            return ("var", name)
        if self._accept("("):
            node = self._ternary()
            self._expect(")")
            return node
        raise FormulaError(f"Unexpected token {value!r}")


def parse(expression: str) -> Node:
    try:
        return _Parser(tokenize(expression)).parse()
    except RecursionError as exc:
        raise FormulaError("Expression nested too deeply") from exc


def _truthy(value: Value) -> bool:
    return bool(value)


def _evaluate(node: Node, variables: Mapping[str, Number]) -> Value:
    tag = node[0]
    if tag == "num":
        return node[1]
    if tag == "var":
        name = node[1]
        if name not in variables:
            raise FormulaError(f"Unknown variable {name!r}")
        return variables[name]
    if tag == "unary":
        operand = _evaluate(node[2], variables)
        if node[1] == "!":
            return not _truthy(operand)
        return -operand if node[1] == "-" else +operand
    if tag == "ternary":
        branch = node[2] if _truthy(_evaluate(node[1], variables)) else node[3]
        return _evaluate(branch, variables)
    if tag == "call":
        function = FUNCTIONS.get(node[1])
        if function is None:
            raise FormulaError(f"Unknown function {node[1]!r}")
        return function(*(_evaluate(arg, variables) for arg in node[2]))

    op, left_node, right_node = node[1], node[2], node[3]
    left = _evaluate(left_node, variables)
    if op == "&&":
        return _evaluate(right_node, variables) if _truthy(left) else left
    if op == "||":
        return left if _truthy(left) else _evaluate(right_node, variables)
    right = _evaluate(right_node, variables)
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if op == "/":
        if right == 0:
            raise FormulaError("Division by zero")
        return left / right
    if op == "%":
        if right == 0:
            raise FormulaError("Modulo by zero")
        # sign follows the dividend
        remainder = math.fmod(left, right)
        if isinstance(left, float) or isinstance(right, float):
            return remainder
        return int(remainder)
    if op in ("==", "==="):
        return left == right
    if op in ("!=", "!=="):
        return left != right
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    if op == ">=":
        return left >= right
    raise FormulaError(f"Unsupported operator {op!r}")


class FormulaEvaluator:
    """Evaluate catalog formulas, failing closed on any fault."""

    def __init__(self, sink: Callable[[FormulaFault], None] | None = None) -> None:
        self.sink: Callable[[FormulaFault], None] = sink or _log_fault
        self._cache: dict[str, Node | FormulaError] = {}

    def evaluate(self, expression: str, i: Number, N: Number, j: Number = 0) -> Number:
        variables = {"i": i, "N": N, "j": j}
        try:
            value = self._run(expression, variables)
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, float) and not math.isfinite(value):
                raise FormulaError(f"Non-finite result {value!r}")
            return value
        except (FormulaError, ArithmeticError, TypeError, ValueError, RecursionError) as exc:
            self._report(expression, variables, exc)
            return 0

    def evaluate_bool(self, expression: str, i: Number, N: Number, j: Number = 0) -> bool:
        variables = {"i": i, "N": N, "j": j}
        try:
            return _truthy(self._run(expression, variables))
        except (FormulaError, ArithmeticError, TypeError, ValueError, RecursionError) as exc:
            self._report(expression, variables, exc)
            return True

    def _run(self, expression: str, variables: Mapping[str, Number]) -> Value:
        compiled = self._cache.get(expression)
        if compiled is None:
            try:
                compiled = parse(expression)
            except FormulaError as exc:
                compiled = exc
            self._cache[expression] = compiled
        if isinstance(compiled, FormulaError):
            raise compiled
        return _evaluate(compiled, variables)

    def _report(self, expression: str, variables: dict[str, Number], exc: Exception) -> None:
        self.sink(FormulaFault(expression=expression, variables=dict(variables), reason=str(exc)))


def _log_fault(fault: FormulaFault) -> None:
    logger.warning(
        "Formula %r failed for %s: %s",
        fault.expression,
        fault.variables,
        fault.reason,
    )


_default_evaluator = FormulaEvaluator()


def evaluate(expression: str, i: Number, N: Number, j: Number = 0) -> Number:
    return _default_evaluator.evaluate(expression, i, N, j)


def evaluate_bool(expression: str, i: Number, N: Number, j: Number = 0) -> bool:
    return _default_evaluator.evaluate_bool(expression, i, N, j)
