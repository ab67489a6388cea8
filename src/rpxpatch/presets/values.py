"""Resolution of raw preset values into numbers.

A value is either a JSON number literal (``30``, ``0.5``) or an arithmetic
expression (``1/30``, ``2+3*4``, ``sqrt(2)``). Keys ending in ``:int`` are
truncated toward zero; the marker is stripped from the resolved key.
"""

from __future__ import annotations

import ast
import json
import math
import operator
from collections.abc import Callable

from rpxpatch.errors import ConfigError

INT_MARKER = ":int"
VARIABLE_MARKER = "$"

Number = int | float

_BINARY_OPS: dict[type, Callable[[Number, Number], Number]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    # Float pow overflows with an error instead of growing without bound.
    ast.Pow: math.pow,
}

_UNARY_OPS: dict[type, Callable[[Number], Number]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_CONSTANTS: dict[str, float] = {
    "pi": math.pi,
    "e": math.e,
}

_FUNCTIONS: dict[str, Callable[..., Number]] = {
    "sqrt": math.sqrt,
    "exp": math.exp,
    "ln": math.log,
    "log": math.log,
    "abs": abs,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "atan2": math.atan2,
    "sinh": math.sinh,
    "cosh": math.cosh,
    "tanh": math.tanh,
    "floor": math.floor,
    "ceil": math.ceil,
    "round": round,
    "signum": lambda x: math.copysign(1.0, x) if x else 0.0,
    "min": min,
    "max": max,
}


def strip_marker(key: str) -> str:
    """Drop a trailing integer marker from a variable key."""
    if key.endswith(INT_MARKER):
        return key[: -len(INT_MARKER)]
    return key


def _reject_constant(name: str) -> float:
    raise ValueError(f"not a finite number: {name}")


def parse_literal(text: str) -> Number | None:
    """Parse a strict JSON number literal, or return None."""
    try:
        value = json.loads(text, parse_constant=_reject_constant)
    except ValueError:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _check_finite(key: str, raw: str, value: Number) -> None:
    if isinstance(value, float) and not math.isfinite(value):
        raise ConfigError(
            f"Invalid value for variable {key}: {raw!r} is not a finite number",
            code="InvalidExpression",
        )


def evaluate_expression(text: str) -> float:
    """Evaluate an arithmetic expression.

    Supports + - * / % and ``^`` (power), parentheses, unary signs, the
    constants ``pi`` and ``e``, and common math functions. Raises
    ValueError for anything else.
    """
    try:
        tree = ast.parse(text.strip().replace("^", "**"), mode="eval")
    except SyntaxError as e:
        raise ValueError(f"syntax error in {text!r}") from e

    def _eval(node: ast.AST) -> Number:
        if isinstance(node, ast.Expression):
            return _eval(node.body)
        if isinstance(node, ast.Constant):
            if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
                return node.value
            raise ValueError(f"unsupported literal {node.value!r}")
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
            return _UNARY_OPS[type(node.op)](_eval(node.operand))
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
            return _BINARY_OPS[type(node.op)](_eval(node.left), _eval(node.right))
        if isinstance(node, ast.Name):
            if node.id in _CONSTANTS:
                return _CONSTANTS[node.id]
            raise ValueError(f"unknown name {node.id!r}")
        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id in _FUNCTIONS
            and not node.keywords
        ):
            return _FUNCTIONS[node.func.id](*(_eval(arg) for arg in node.args))
        raise ValueError(f"unsupported expression {ast.dump(node)}")

    try:
        result = float(_eval(tree))
    except (ArithmeticError, TypeError) as e:
        raise ValueError(str(e)) from e
    if not math.isfinite(result):
        raise ValueError(f"{text!r} does not evaluate to a finite number")
    return result


def resolve_value(key: str, raw: str | None) -> tuple[str, Number]:
    """Resolve one raw preset entry into ``(name, number)``.

    Literals keep their JSON type; expressions resolve to floats. Keys
    carrying the integer marker are truncated toward zero.
    """
    if raw is None:
        raise ConfigError(f"No value for variable {key}", code="MissingValue")

    value = parse_literal(raw.strip())
    if value is None:
        try:
            value = evaluate_expression(raw)
        except ValueError as e:
            raise ConfigError(
                f"Invalid value for variable {key}: {raw!r} ({e})",
                code="InvalidExpression",
            ) from e
    _check_finite(key, raw, value)

    if key.endswith(INT_MARKER):
        value = int(value)
    return strip_marker(key), value


def resolve_values(entries: dict[str, str | None]) -> dict[str, Number]:
    """Resolve every entry of a values block, preserving order."""
    return dict(resolve_value(key, raw) for key, raw in entries.items())
