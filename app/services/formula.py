"""Restricted expression language for derived field formulas.

Formulas are written as Python-style expressions, parsed with :mod:`ast` in
``eval`` mode and translated node by node into a JSON Logic rule; anything
outside the whitelist below is rejected before evaluation. Rules are then run
with ``json_logic.jsonLogic``. Parent field values are referenced positionally
as ``$0``, ``$1`` and so on and resolve through ``{"var": "parents.<i>"}``.

Supported syntax::

    literals        1, 2.5, "text", True, False
    placeholders    $0 .. $n
    arithmetic      + - * / // % **  and unary + - not
    comparison      == != < <= > >=  (chains allowed), and, or
    conditional     a if condition else b
    constants       current_year, today
    functions       abs round min max floor ceil int float str len
                    date year month day years_between days_between

Dates subtract to a number of days and shift by days when a number is added
or subtracted. json-logic evaluates every operand before applying an
operation, so a failing operand fails the formula even inside an untaken
branch.
"""
from __future__ import annotations

import ast
import math
import re
from collections.abc import Callable, Sequence
from datetime import date, timedelta
from functools import lru_cache
from typing import Any

import json_logic
from json_logic import jsonLogic

from app.core.config import get_settings
from app.core.errors import FormulaError
from app.schemas.values import to_date, to_number

PLACEHOLDER_PATTERN = re.compile(r"\$(\d+)")
PLACEHOLDER_PREFIX = "__parent_"
MAX_EXPONENT = 100
MAX_DIGITS = 308
MAX_STRING_LENGTH = 10_000

_LARGEST_INTEGER = 10**MAX_DIGITS


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _number(value: Any) -> int | float:
    if isinstance(value, date):
        msg = "Dates cannot be used as numbers"
        raise TypeError(msg)
    return to_number(value)


def _bounded(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool) and abs(value) >= _LARGEST_INTEGER:
        raise FormulaError(f"Formula result has more than {MAX_DIGITS} digits")
    if isinstance(value, str) and len(value) > MAX_STRING_LENGTH:
        raise FormulaError("Formula result is too long")
    return value


def _add(*args: Any) -> Any:
    if len(args) == 1:
        return _number(args[0])
    left, right = args
    if isinstance(left, date) and _is_number(right):
        return left + timedelta(days=right)
    if isinstance(left, str) and isinstance(right, str):
        return _bounded(left + right)
    return _bounded(_number(left) + _number(right))


def _subtract(*args: Any) -> Any:
    if len(args) == 1:
        return -_number(args[0])
    left, right = args
    if isinstance(left, date) and isinstance(right, date):
        return (left - right).days
    if isinstance(left, date) and _is_number(right):
        return left - timedelta(days=right)
    return _bounded(_number(left) - _number(right))


def _multiply(left: Any, right: Any) -> Any:
    if isinstance(left, str) or isinstance(right, str):
        raise FormulaError("Text cannot be multiplied")
    return _bounded(_number(left) * _number(right))


def _power(base: Any, exponent: Any) -> int | float:
    base, exponent = _number(base), _number(exponent)
    if abs(exponent) > MAX_EXPONENT:
        raise FormulaError(f"Exponent larger than {MAX_EXPONENT}")
    if base < 0 and not float(exponent).is_integer():
        raise FormulaError("Negative numbers cannot be raised to fractional powers")
    if abs(base) > 1 and exponent * math.log10(abs(base)) > MAX_DIGITS:
        raise FormulaError(f"Formula result has more than {MAX_DIGITS} digits")
    return base**exponent


def _years_between(start: Any, end: Any) -> int:
    first, second = to_date(start), to_date(end)
    years = second.year - first.year
    if (second.month, second.day) < (first.month, first.day):
        years -= 1
    return years


def _days_between(start: Any, end: Any) -> int:
    return (to_date(end) - to_date(start)).days


def _round(value: Any, digits: int = 0) -> int | float:
    rounded = round(_number(value), int(digits))
    return int(rounded) if digits == 0 else rounded


def _text(value: Any) -> str:
    return _bounded(value.isoformat() if isinstance(value, date) else str(value))


OPERATIONS: dict[str, Callable[..., Any]] = {
    "+": _add,
    "-": _subtract,
    "*": _multiply,
    "**": _power,
    "//": lambda left, right: _number(left) // _number(right),
    "abs": lambda value: abs(_number(value)),
    "round": _round,
    "floor": lambda value: math.floor(_number(value)),
    "ceil": lambda value: math.ceil(_number(value)),
    "int": lambda value: int(_number(value)),
    "float": lambda value: float(_number(value)),
    "str": _text,
    "len": lambda value: len(value),
    "date": to_date,
    "year": lambda value: to_date(value).year,
    "month": lambda value: to_date(value).month,
    "day": lambda value: to_date(value).day,
    "years_between": _years_between,
    "days_between": _days_between,
}

# Arithmetic is date aware, so the stock "+", "-" and "*" are replaced.
json_logic.operations.update(OPERATIONS)

FUNCTIONS = frozenset({*OPERATIONS.keys() - {"+", "-", "*", "**", "//"}, "min", "max"})
CONSTANTS = frozenset({"current_year", "today"})

_BINARY_OPERATORS: dict[type[ast.operator], str] = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.Div: "/",
    ast.FloorDiv: "//",
    ast.Mod: "%",
    ast.Pow: "**",
}

_UNARY_OPERATORS: dict[type[ast.unaryop], str] = {
    ast.UAdd: "+",
    ast.USub: "-",
    ast.Not: "!",
}

_COMPARISONS: dict[type[ast.cmpop], str] = {
    ast.Eq: "==",
    ast.NotEq: "!=",
    ast.Lt: "<",
    ast.LtE: "<=",
    ast.Gt: ">",
    ast.GtE: ">=",
}


def _rewrite_placeholders(formula: str) -> str:
    return PLACEHOLDER_PATTERN.sub(lambda match: f"{PLACEHOLDER_PREFIX}{match.group(1)}", formula)


@lru_cache(maxsize=256)
def parse_formula(formula: str, parent_count: int, max_length: int | None = None) -> Any:
    """Parse a formula into a JSON Logic rule.

    Raises ``FormulaError`` for syntax outside the grammar, unknown names and
    placeholders that do not map to one of ``parent_count`` parents.
    """

    limit = max_length if max_length is not None else get_settings().formula_max_length
    if not formula or not formula.strip():
        raise FormulaError("Formula is empty")
    if len(formula) > limit:
        raise FormulaError(f"Formula is longer than {limit} characters")
    if PLACEHOLDER_PREFIX in formula:
        raise FormulaError(f"Names starting with '{PLACEHOLDER_PREFIX}' are reserved")

    try:
        tree = ast.parse(_rewrite_placeholders(formula.strip()), mode="eval")
    except (SyntaxError, ValueError, RecursionError) as exc:
        raise FormulaError(f"Formula is not a valid expression: {formula!r}") from exc

    return _to_logic(tree.body, parent_count)


def _to_logic(node: ast.AST, parent_count: int) -> Any:
    match node:
        case ast.Constant(value=value):
            if value is None or not isinstance(value, (bool, int, float, str)):
                raise FormulaError(f"Unsupported literal: {value!r}")
            return value
        case ast.Name(id=name):
            if name.startswith(PLACEHOLDER_PREFIX):
                index = int(name[len(PLACEHOLDER_PREFIX):])
                if index >= parent_count:
                    raise FormulaError(
                        f"${index} does not refer to a parent field ({parent_count} selected)"
                    )
                return {"var": f"parents.{index}"}
            if name not in CONSTANTS:
                raise FormulaError(f"Unknown name: {name}")
            return {"var": name}
        case ast.BinOp(left=left, op=op, right=right):
            if type(op) not in _BINARY_OPERATORS:
                raise FormulaError(f"Unsupported operator: {type(op).__name__}")
            return {
                _BINARY_OPERATORS[type(op)]: [
                    _to_logic(left, parent_count),
                    _to_logic(right, parent_count),
                ]
            }
        case ast.UnaryOp(op=op, operand=operand):
            if type(op) not in _UNARY_OPERATORS:
                raise FormulaError(f"Unsupported operator: {type(op).__name__}")
            return {_UNARY_OPERATORS[type(op)]: [_to_logic(operand, parent_count)]}
        case ast.BoolOp(op=op, values=values):
            key = "and" if isinstance(op, ast.And) else "or"
            return {key: [_to_logic(value, parent_count) for value in values]}
        case ast.Compare(left=left, ops=ops, comparators=comparators):
            operands = [_to_logic(left, parent_count)]
            operands.extend(_to_logic(comparator, parent_count) for comparator in comparators)
            checks = []
            for position, op in enumerate(ops):
                if type(op) not in _COMPARISONS:
                    raise FormulaError(f"Unsupported comparison: {type(op).__name__}")
                checks.append({_COMPARISONS[type(op)]: operands[position : position + 2]})
            return checks[0] if len(checks) == 1 else {"and": checks}
        case ast.IfExp(test=test, body=body, orelse=orelse):
            return {
                "if": [
                    _to_logic(test, parent_count),
                    _to_logic(body, parent_count),
                    _to_logic(orelse, parent_count),
                ]
            }
        case ast.Call(func=ast.Name(id=name), args=args, keywords=[]):
            if name not in FUNCTIONS:
                raise FormulaError(f"Unknown function: {name}")
            if any(isinstance(arg, ast.Starred) for arg in args):
                raise FormulaError("Argument unpacking is not supported")
            return {name: [_to_logic(arg, parent_count) for arg in args]}
    raise FormulaError(f"Unsupported expression: {type(node).__name__}")


def _check_result(result: Any) -> Any:
    if isinstance(result, (bool, str, date)):
        return result
    if isinstance(result, int):
        return _bounded(result)
    if isinstance(result, float):
        if not math.isfinite(result):
            raise FormulaError("Formula produced a non-finite number")
        return result
    raise FormulaError(f"Formula produced an unsupported value: {type(result).__name__}")


def evaluate(
    formula: str,
    values: Sequence[Any],
    *,
    today: date | None = None,
    max_length: int | None = None,
) -> Any:
    """Evaluate ``formula`` with ``$i`` bound to ``values[i]``.

    Raises ``FormulaError`` when the formula is malformed, evaluation fails or
    the result is not a finite number, text, boolean or date.
    """

    rule = parse_formula(formula, len(values), max_length)
    today = today or date.today()
    data = {"parents": list(values), "today": today, "current_year": today.year}
    try:
        result = jsonLogic(rule, data)
    except FormulaError:
        raise
    except (ArithmeticError, TypeError, ValueError, IndexError) as exc:
        raise FormulaError(f"Formula could not be evaluated: {exc}") from exc
    return _check_result(result)
