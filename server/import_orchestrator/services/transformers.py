"""Restricted expression language for per-field transformers.

A transformer is a single expression over the parsed field value, bound to the
name ``value``. It is parsed with :mod:`ast` and checked against a whitelist,
then compiled into plain closures, so arbitrary code can never run. Supported:

* integer, float and string literals
* ``+ - * / // %`` and unary ``+``/``-``
* the functions ``trim``, ``upper``, ``lower``, ``substring(s, start[, end])``,
  ``year``, ``month``, ``day``, ``abs`` and ``round(x[, digits])``

Attribute access, subscripts, keyword arguments and any other name are
rejected when the mapping is compiled.
"""
from __future__ import annotations

import ast
import operator
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from import_orchestrator.core.exceptions import ItemError, MappingError, TransformerError

VALUE_NAME = "value"


class Kind(str, Enum):
    """Static kind of a transformer sub-expression."""

    NUMBER = "number"
    STRING = "string"
    DATE = "date"


Evaluator = Callable[[Any], Any]


@dataclass(frozen=True)
class _Function:
    arg_kinds: tuple[Kind, ...]
    min_args: int
    result: Kind
    impl: Callable[..., Any]


def _substring(text: str, start: Any, end: Any = None) -> str:
    if end is None:
        return text[int(start):]
    return text[int(start):int(end)]


def _round(number: Any, digits: Any = None) -> Any:
    if digits is None:
        return round(number)
    return round(number, int(digits))


FUNCTIONS: dict[str, _Function] = {
    "trim": _Function((Kind.STRING,), 1, Kind.STRING, lambda s: s.strip()),
    "upper": _Function((Kind.STRING,), 1, Kind.STRING, lambda s: s.upper()),
    "lower": _Function((Kind.STRING,), 1, Kind.STRING, lambda s: s.lower()),
    "substring": _Function((Kind.STRING, Kind.NUMBER, Kind.NUMBER), 2, Kind.STRING, _substring),
    "year": _Function((Kind.DATE,), 1, Kind.NUMBER, lambda d: d.year),
    "month": _Function((Kind.DATE,), 1, Kind.NUMBER, lambda d: d.month),
    "day": _Function((Kind.DATE,), 1, Kind.NUMBER, lambda d: d.day),
    "abs": _Function((Kind.NUMBER,), 1, Kind.NUMBER, abs),
    "round": _Function((Kind.NUMBER, Kind.NUMBER), 1, Kind.NUMBER, _round),
}

_ARITHMETIC: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_UNARY: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def _as_decimal(number: Any) -> Decimal:
    if isinstance(number, Decimal):
        return number
    if isinstance(number, float):
        return Decimal(repr(number))
    return Decimal(number)


def _numeric(op: Callable[[Any, Any], Any]) -> Callable[[Any, Any], Any]:
    """Apply ``op`` in Decimal arithmetic when either operand is a Decimal."""

    def apply(left: Any, right: Any) -> Any:
        if isinstance(left, Decimal) or isinstance(right, Decimal):
            return op(_as_decimal(left), _as_decimal(right))
        return op(left, right)

    return apply


class Transformer:
    """A compiled transformer expression.

    Calling it evaluates the expression for one value. Runtime failures such
    as a division by zero raise :class:`TransformerError`.
    """

    def __init__(self, expression: str, evaluator: Evaluator, result_kind: Kind) -> None:
        self.expression = expression
        self.result_kind = result_kind
        self._evaluator = evaluator

    def __call__(self, value: Any) -> Any:
        try:
            return self._evaluator(value)
        except ItemError:
            raise
        except (ArithmeticError, ValueError, TypeError) as exc:
            raise TransformerError(f"'{self.expression}' failed for {value!r}: {exc}") from exc

    def __repr__(self) -> str:
        return f"Transformer({self.expression!r} -> {self.result_kind.value})"


def compile_transformer(expression: str, input_kind: Kind) -> Transformer:
    """Parse and check ``expression`` for an input of ``input_kind``.

    Raises:
        MappingError: if the expression is not valid in the restricted language
    """
    source = (expression or "").strip()
    if not source:
        raise MappingError("Transformer expression is empty")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise MappingError(f"Invalid transformer '{source}': {exc.msg}") from exc

    evaluator, kind = _compile(tree.body, input_kind, source)
    return Transformer(source, evaluator, kind)


def _reject(node: ast.AST, source: str, reason: str | None = None) -> MappingError:
    detail = reason or f"unsupported syntax {type(node).__name__}"
    return MappingError(f"Invalid transformer '{source}': {detail}")


def _compile(node: ast.AST, input_kind: Kind, source: str) -> tuple[Evaluator, Kind]:
    if isinstance(node, ast.Name):
        if node.id != VALUE_NAME:
            raise _reject(node, source, f"unknown name '{node.id}'")
        return (lambda value: value), input_kind

    if isinstance(node, ast.Constant):
        constant = node.value
        if isinstance(constant, bool) or not isinstance(constant, (int, float, str)):
            raise _reject(node, source, f"unsupported literal {constant!r}")
        kind = Kind.STRING if isinstance(constant, str) else Kind.NUMBER
        return (lambda value: constant), kind

    if isinstance(node, ast.UnaryOp):
        unary = _UNARY.get(type(node.op))
        if unary is None:
            raise _reject(node, source)
        operand, kind = _compile(node.operand, input_kind, source)
        if kind is not Kind.NUMBER:
            raise _reject(node, source, "unary operators need a number")
        return (lambda value: unary(operand(value))), Kind.NUMBER

    if isinstance(node, ast.BinOp):
        op = _ARITHMETIC.get(type(node.op))
        if op is None:
            raise _reject(node, source)
        left, left_kind = _compile(node.left, input_kind, source)
        right, right_kind = _compile(node.right, input_kind, source)
        if left_kind is Kind.NUMBER and right_kind is Kind.NUMBER:
            numeric = _numeric(op)
            return (lambda value: numeric(left(value), right(value))), Kind.NUMBER
        if isinstance(node.op, ast.Add) and left_kind is Kind.STRING and right_kind is Kind.STRING:
            return (lambda value: left(value) + right(value)), Kind.STRING
        raise _reject(
            node, source, f"operator {type(node.op).__name__} not defined for {left_kind.value} and {right_kind.value}"
        )

    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
            raise _reject(node, source, "only the built-in transformer functions may be called")
        if node.keywords:
            raise _reject(node, source, "keyword arguments are not allowed")
        name = node.func.id
        function = FUNCTIONS[name]
        if not function.min_args <= len(node.args) <= len(function.arg_kinds):
            raise _reject(node, source, f"wrong number of arguments for {name}()")

        arguments = []
        for position, argument in enumerate(node.args):
            if isinstance(argument, ast.Starred):
                raise _reject(argument, source)
            evaluator, kind = _compile(argument, input_kind, source)
            if kind is not function.arg_kinds[position]:
                raise _reject(
                    argument,
                    source,
                    f"argument {position + 1} of {name}() must be a {function.arg_kinds[position].value}",
                )
            arguments.append(evaluator)

        impl = function.impl
        return (lambda value: impl(*(argument(value) for argument in arguments))), function.result

    raise _reject(node, source)
