"""
expressions.py — Tenant Custom-Variable Formula Evaluator

Purpose:
- Evaluate tenant-defined formulas such as `[valor_total] / [potencia_kwp]`
  against a fixed numeric context.

Pipeline:
1. Replace every `[name]` token with the context value (missing → 0).
2. Reject the text if anything but `0-9 . + - * / ( )`, space or tab remains.
3. Parse with a small recursive-descent grammar:

       expr   := term (('+' | '-') term)*
       term   := factor (('*' | '/') factor)*
       factor := ('+' | '-')* (NUMBER | '(' expr ')')

   There are no identifiers, calls or attribute access in the grammar, so
   nothing but arithmetic can run. Parentheses nest at most
   MAX_NESTING_DEPTH levels deep.
4. Round to 4 decimals.

Any failure yields None for that one formula; a batch never aborts.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from app.core.logging import get_logger
from app.services.engine.rounding import round4

logger = get_logger(__name__)

_TOKEN_REF = re.compile(r"\[([^\]]+)\]")
_DISALLOWED = re.compile(r"[^0-9.+\-*/() \t]")
_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")

MAX_NESTING_DEPTH = 64


class ExpressionError(ValueError):
    """Raised internally for malformed arithmetic; never escapes evaluate_expression."""


# -----------------------------------------------------------------------------
# Tokenizer / Parser
# -----------------------------------------------------------------------------

def _tokenize(text: str) -> List[Tuple[str, Any]]:
    tokens: List[Tuple[str, Any]] = []
    pos = 0
    while pos < len(text):
        ch = text[pos]
        if ch in " \t":
            pos += 1
            continue
        if ch in "+-*/()":
            tokens.append(("op", ch))
            pos += 1
            continue
        match = _NUMBER.match(text, pos)
        if not match:
            raise ExpressionError(f"unexpected character {ch!r} at {pos}")
        tokens.append(("num", float(match.group())))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, tokens: List[Tuple[str, Any]]) -> None:
        self._tokens = tokens
        self._pos = 0
        self._depth = 0

    def parse(self) -> float:
        if not self._tokens:
            raise ExpressionError("empty expression")
        value = self._expr()
        if self._pos != len(self._tokens):
            raise ExpressionError(f"unexpected token {self._tokens[self._pos][1]!r}")
        return value

    def _peek(self) -> Optional[Tuple[str, Any]]:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _take_op(self, *ops: str) -> Optional[str]:
        tok = self._peek()
        if tok and tok[0] == "op" and tok[1] in ops:
            self._pos += 1
            return tok[1]
        return None

    def _expr(self) -> float:
        value = self._term()
        while True:
            op = self._take_op("+", "-")
            if op is None:
                return value
            rhs = self._term()
            value = value + rhs if op == "+" else value - rhs

    def _term(self) -> float:
        value = self._factor()
        while True:
            op = self._take_op("*", "/")
            if op is None:
                return value
            rhs = self._factor()
            if op == "*":
                value = value * rhs
            else:
                if rhs == 0:
                    raise ExpressionError("division by zero")
                value = value / rhs

    def _factor(self) -> float:
        negate = False
        while True:
            sign = self._take_op("+", "-")
            if sign is None:
                break
            if sign == "-":
                negate = not negate
        value = self._atom()
        return -value if negate else value

    def _atom(self) -> float:
        tok = self._peek()
        if tok is None:
            raise ExpressionError("unexpected end of expression")
        if tok[0] == "num":
            self._pos += 1
            return tok[1]
        if self._take_op("("):
            self._depth += 1
            if self._depth > MAX_NESTING_DEPTH:
                raise ExpressionError(f"parentheses nested deeper than {MAX_NESTING_DEPTH}")
            value = self._expr()
            if not self._take_op(")"):
                raise ExpressionError("missing closing parenthesis")
            self._depth -= 1
            return value
        raise ExpressionError(f"unexpected token {tok[1]!r}")


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------

def _format_number(value: float) -> str:
    """Plain decimal text (no exponent) so the character gate accepts it."""
    if not math.isfinite(value):
        raise ExpressionError(f"non-finite context value {value!r}")
    text = format(Decimal(repr(float(value))), "f")
    # Parenthesize negatives so `2*[x]` with x=-1 stays a valid product.
    return f"({text})" if text.startswith("-") else text


def substitute_tokens(expression: str, context: Mapping[str, float]) -> str:
    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1).strip()
        return _format_number(context.get(name, 0) or 0)

    return _TOKEN_REF.sub(_replace, expression)


def evaluate_expression(expression: str, context: Mapping[str, float]) -> Optional[float]:
    """
    Evaluate one formula. Returns the value rounded to 4 decimals, or None
    when the formula is empty, unsafe, malformed or not finite.
    """
    if not expression or not expression.strip():
        return None
    try:
        resolved = substitute_tokens(expression, context)
        if _DISALLOWED.search(resolved):
            return None
        value = _Parser(_tokenize(resolved)).parse()
    except (ExpressionError, ArithmeticError, ValueError, RecursionError) as exc:
        logger.debug("Expression %r rejected: %s", expression, exc)
        return None
    if not math.isfinite(value):
        return None
    return round4(value)


@dataclass(frozen=True)
class CustomVariableResult:
    name: str
    expression: str
    value: Optional[float]


def evaluate_custom_variables(
    definitions: Iterable[Mapping[str, Any]],
    context: Mapping[str, float],
) -> List[CustomVariableResult]:
    """
    Evaluate each `{nome, expressao}` definition independently; a bad formula
    only nulls its own result.
    """
    results: List[CustomVariableResult] = []
    for definition in definitions:
        name = str(definition.get("nome") or "").strip()
        expression = str(definition.get("expressao") or "")
        if not name:
            continue
        value = evaluate_expression(expression, context)
        if value is None:
            logger.info("Custom variable %s evaluated to null", name)
        results.append(CustomVariableResult(name=name, expression=expression, value=value))
    return results


def build_context(values: Dict[str, Optional[float]]) -> Dict[str, float]:
    """Drop None entries and coerce the rest to float."""
    return {k: float(v) for k, v in values.items() if v is not None}
