"""
Calculator tool.

Expressions are evaluated by a small recursive-descent parser that only
understands numeric literals, ``+ - * /``, unary signs, parentheses and a
postfix ``%`` meaning "divide by 100".

Grammar::

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := ("+" | "-") unary | postfix
    postfix := primary "%"*
    primary := NUMBER | "(" expr ")"
"""

import math
import re

from ..tool_registry import CalculatorResult
from ..utils import fold_text, format_number

ALLOWED_CHARS = re.compile(r"[^0-9+\-*/().% ]")
TOKEN_PATTERN = re.compile(r"\s*(?:(\d+\.\d*|\.\d+|\d+)|(.))")

# "15% de propina para 85": a percentage of a later amount, words in between
PERCENT_OF_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%[^\d+\-*/()%]*?(\d+(?:\.\d+)?)")


class CalculationError(ValueError):
    pass


def sanitize_expression(text: str) -> str:
    """Drop every character outside the arithmetic allow-set."""
    return ALLOWED_CHARS.sub("", text).strip()


def _tokenize(expression: str):
    # (kind, value, lexeme)
    tokens = []
    for number, op in TOKEN_PATTERN.findall(expression):
        if number:
            tokens.append(("num", float(number), number))
        elif op.strip():
            tokens.append(("op", op, op))
    return tokens


class _Parser:
    def __init__(self, tokens):
        self.tokens = tokens
        self.pos = 0

    def peek(self):
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def take_op(self, *ops):
        token = self.peek()
        if token and token[0] == "op" and token[1] in ops:
            self.pos += 1
            return token[1]
        return None

    def parse(self) -> float:
        if not self.tokens:
            raise CalculationError("Empty expression")
        value = self.expr()
        if self.peek() is not None:
            raise CalculationError(f"Unexpected token: {self.peek()[2]}")
        return value

    def expr(self) -> float:
        value = self.term()
        while True:
            op = self.take_op("+", "-")
            if op is None:
                return value
            right = self.term()
            value = value + right if op == "+" else value - right

    def term(self) -> float:
        value = self.unary()
        while True:
            op = self.take_op("*", "/")
            if op is None:
                return value
            right = self.unary()
            if op == "*":
                value *= right
            elif right == 0:
                raise CalculationError("Division by zero")
            else:
                value /= right

    def unary(self) -> float:
        op = self.take_op("+", "-")
        if op == "-":
            return -self.unary()
        if op == "+":
            return self.unary()
        return self.postfix()

    def postfix(self) -> float:
        value = self.primary()
        while self.take_op("%"):
            value /= 100
        return value

    def primary(self) -> float:
        token = self.peek()
        if token is None:
            raise CalculationError("Unexpected end of expression")
        if token[0] == "num":
            self.pos += 1
            return token[1]
        if self.take_op("("):
            value = self.expr()
            if not self.take_op(")"):
                raise CalculationError("Missing closing parenthesis")
            return value
        raise CalculationError(f"Unexpected token: {token[2]}")


def evaluate(expression: str) -> float:
    """Evaluate a sanitized arithmetic expression.

    Raises:
        CalculationError: the expression is empty, malformed or divides by zero
    """
    value = _Parser(_tokenize(expression)).parse()
    if not math.isfinite(value):
        raise CalculationError("Result is not a finite number")
    return value


def percent_of(message: str):
    """Read "N% ... M" phrasing as N percent of M.

    Returns a ``CalculatorResult`` or None when the message has no such
    phrase. Mentioning a tip ("propina") adds the total with the tip.
    """
    match = PERCENT_OF_PATTERN.search(message)
    if not match:
        return None
    percent, amount = match.groups()
    value = float(amount) * float(percent) / 100
    note = ""
    if "propina" in fold_text(message):
        note = f"Total con propina: {format_number(float(amount) + value)}"
    return CalculatorResult(f"{percent}% * {amount}", value, note=note)


def calculate(expression: str) -> CalculatorResult:
    """Sanitize and evaluate, reporting failures in the result.

    Text the parser rejects gets a second reading as a percentage phrase
    before it is reported as an error.
    """
    cleaned = sanitize_expression(expression)
    try:
        value = evaluate(cleaned)
    except CalculationError as e:
        result = percent_of(expression)
        if result is not None:
            return result
        return CalculatorResult(cleaned or expression, None, error=str(e))
    return CalculatorResult(cleaned, value)


class CalculatorTool:
    def calculator(self, message: str) -> CalculatorResult:
        """Evaluate the arithmetic expression contained in the message."""
        return calculate(message)
