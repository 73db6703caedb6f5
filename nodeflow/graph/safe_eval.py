"""Restricted expression evaluator for If nodes and condition loops.

Expressions are tokenized and parsed by a small recursive-descent parser into
a tuple tree, then evaluated against a flat variable mapping. Nothing is ever
compiled or executed as code.

Supported expressions (JavaScript-flavoured, as users write them in the editor):
- Comparisons: ``count > 10``, ``status == "done"``, ``a != b`` (``===``/``!==`` accepted)
- Boolean logic: ``x > 0 && y < 100``, ``!failed``, ``a || b`` (short-circuit)
- String predicates: ``name.includes("bob")``, ``path.startsWith("src/")``,
  ``file.endsWith(".py")`` or the infix form ``name includes "bob"``
- Literals: numbers, ``"strings"`` / ``'strings'``, ``true``, ``false``, ``null``, ``undefined``
- Field access: ``result.status``, ``items[0]``, ``text.length``
- Grouping with parentheses, unary minus on numbers

Equality is strict (no type coercion between strings, numbers and booleans).
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from typing import Any

from nodeflow.errors import SafeEvalError

logger = logging.getLogger(__name__)

MAX_EXPRESSION_LENGTH = 10_000
MAX_DEPTH = 64

STRING_METHODS = frozenset({"includes", "startsWith", "endsWith"})

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<ident>[A-Za-z_$][A-Za-z0-9_$]*)
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[<>!\-().,\[\]])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "0": "\0"}

_KEYWORD_LITERALS = {"true": True, "false": False, "null": None, "undefined": None}

_EQUALITY_OPS = {"==", "!=", "===", "!=="}
_RELATIONAL_OPS = {"<", ">", "<=", ">="}


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


def _unescape(body: str) -> str:
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\" or i + 1 >= len(body):
            out.append(ch)
            i += 1
            continue
        nxt = body[i + 1]
        if nxt == "u" and re.fullmatch(r"[0-9a-fA-F]{4}", body[i + 2 : i + 6]):
            out.append(chr(int(body[i + 2 : i + 6], 16)))
            i += 6
            continue
        out.append(_ESCAPES.get(nxt, nxt))
        i += 2
    return "".join(out)


def tokenize(expression: str) -> list[tuple[str, Any]]:
    """Split an expression into ``(kind, value)`` tokens ending with ``("eof", None)``."""
    tokens: list[tuple[str, Any]] = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_PATTERN.match(expression, pos)
        if match is None:
            raise SafeEvalError(f"Unexpected character {expression[pos]!r} at position {pos}")
        kind = match.lastgroup
        text = match.group()
        pos = match.end()

        if kind == "ws":
            continue
        if kind == "number":
            is_float = "." in text or "e" in text.lower()
            try:
                value = float(text) if is_float else int(text)
            except (ValueError, OverflowError) as e:
                raise SafeEvalError(f"Invalid number literal at position {match.start()}: {e}") from e
            tokens.append(("number", value))
        elif kind == "string":
            tokens.append(("string", _unescape(text[1:-1])))
        else:
            tokens.append((kind, text))

    tokens.append(("eof", None))
    return tokens


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class _Parser:
    """
    Recursive descent over the token list. Precedence, lowest first:
    ``||``, ``&&``, equality, relational/predicates, unary, member access.
    """

    def __init__(self, tokens: list[tuple[str, Any]]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def peek(self) -> tuple[str, Any]:
        return self.tokens[self.pos]

    def advance(self) -> tuple[str, Any]:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def accept(self, kind: str, value: Any = None) -> bool:
        tok_kind, tok_value = self.peek()
        if tok_kind == kind and (value is None or tok_value == value):
            self.pos += 1
            return True
        return False

    def expect(self, kind: str, value: Any = None) -> tuple[str, Any]:
        token = self.peek()
        if not self.accept(kind, value):
            raise SafeEvalError(f"Expected {value or kind}, got {token[1]!r}")
        return token

    def parse(self) -> tuple:
        node = self.or_expr()
        if self.peek()[0] != "eof":
            raise SafeEvalError(f"Unexpected token {self.peek()[1]!r}")
        return node

    def or_expr(self) -> tuple:
        node = self.and_expr()
        while self.accept("op", "||"):
            node = ("or", node, self.and_expr())
        return node

    def and_expr(self) -> tuple:
        node = self.equality()
        while self.accept("op", "&&"):
            node = ("and", node, self.equality())
        return node

    def equality(self) -> tuple:
        node = self.relational()
        while self.peek()[0] == "op" and self.peek()[1] in _EQUALITY_OPS:
            op = self.advance()[1]
            node = ("compare", op, node, self.relational())
        return node

    def relational(self) -> tuple:
        node = self.unary()
        while True:
            kind, value = self.peek()
            if kind == "op" and value in _RELATIONAL_OPS:
                self.advance()
                node = ("compare", value, node, self.unary())
            elif kind == "ident" and value in STRING_METHODS:
                self.advance()
                node = ("call", node, value, [self.unary()])
            else:
                return node

    def unary(self) -> tuple:
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise SafeEvalError("Expression nested too deeply")
        try:
            if self.accept("op", "!"):
                return ("not", self.unary())
            if self.accept("op", "-"):
                return ("neg", self.unary())
            return self.postfix()
        finally:
            self.depth -= 1

    def postfix(self) -> tuple:
        node = self.primary()
        while True:
            if self.accept("op", "."):
                name = self.expect("ident")[1]
                if self.accept("op", "("):
                    node = ("call", node, name, self.arguments())
                else:
                    node = ("member", node, name)
            elif self.accept("op", "["):
                key = self.or_expr()
                self.expect("op", "]")
                node = ("index", node, key)
            else:
                return node

    def arguments(self) -> list[tuple]:
        args: list[tuple] = []
        if self.accept("op", ")"):
            return args
        args.append(self.or_expr())
        while self.accept("op", ","):
            args.append(self.or_expr())
        self.expect("op", ")")
        return args

    def primary(self) -> tuple:
        kind, value = self.advance()
        if kind in ("number", "string"):
            return ("literal", value)
        if kind == "ident":
            if value in _KEYWORD_LITERALS:
                return ("literal", _KEYWORD_LITERALS[value])
            return ("name", value)
        if kind == "op" and value == "(":
            self.depth += 1
            if self.depth > MAX_DEPTH:
                raise SafeEvalError("Expression nested too deeply")
            node = self.or_expr()
            self.depth -= 1
            self.expect("op", ")")
            return node
        raise SafeEvalError(f"Unexpected token {value!r}")


def parse(expression: str) -> tuple:
    """Parse an expression into its tuple tree. Raises SafeEvalError."""
    if not expression or not expression.strip():
        raise SafeEvalError("Expression cannot be empty")
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise SafeEvalError(
            f"Expression too long ({len(expression)} chars, max {MAX_EXPRESSION_LENGTH})"
        )
    return _Parser(tokenize(expression.strip())).parse()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def is_truthy(value: Any) -> bool:
    """JavaScript truthiness: empty containers are truthy, NaN and "" are not."""
    if value is None or value is False:
        return False
    if isinstance(value, int | float) and not isinstance(value, bool):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _strict_equals(left: Any, right: Any) -> bool:
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _coerce_for_order(left: Any, right: Any) -> tuple[Any, Any]:
    """Operands for ``<``/``>``: numbers with numbers (numeric strings allowed), strings with strings."""
    if isinstance(left, str) and isinstance(right, str):
        return left, right

    def as_number(value: Any) -> float:
        if _is_number(value):
            return value
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                pass
        raise SafeEvalError(f"Cannot compare {type(left).__name__} with {type(right).__name__}")

    return as_number(left), as_number(right)


def _compare(op: str, left: Any, right: Any) -> bool:
    if op in ("==", "==="):
        return _strict_equals(left, right)
    if op in ("!=", "!=="):
        return not _strict_equals(left, right)
    left, right = _coerce_for_order(left, right)
    if op == "<":
        return left < right
    if op == ">":
        return left > right
    if op == "<=":
        return left <= right
    return left >= right


def _call(target: Any, method: str, args: list[Any]) -> bool:
    if method not in STRING_METHODS:
        raise SafeEvalError(f"Method '{method}' is not allowed")
    if len(args) != 1:
        raise SafeEvalError(f"'{method}' takes exactly one argument")
    needle = args[0]

    if method == "includes" and isinstance(target, list | tuple):
        return any(_strict_equals(item, needle) for item in target)
    if not isinstance(target, str):
        raise SafeEvalError(f"'{method}' called on {type(target).__name__}")

    needle = "" if needle is None else str(needle)
    if method == "includes":
        return needle in target
    if method == "startsWith":
        return target.startswith(needle)
    return target.endswith(needle)


def _member(target: Any, name: Any) -> Any:
    if target is None:
        raise SafeEvalError(f"Cannot read property {name!r} of null")
    if isinstance(target, Mapping):
        return target.get(name) if isinstance(name, str) else target.get(str(name))
    if name == "length" and isinstance(target, str | list | tuple):
        return len(target)
    if isinstance(target, list | tuple) and _is_number(name) and float(name).is_integer():
        index = int(name)
        return target[index] if 0 <= index < len(target) else None
    return None


def _eval_node(node: tuple, context: Mapping[str, Any]) -> Any:
    kind = node[0]

    if kind == "literal":
        return node[1]
    if kind == "name":
        name = node[1]
        if name not in context:
            raise SafeEvalError(f"'{name}' is not defined")
        return context[name]
    if kind == "not":
        return not is_truthy(_eval_node(node[1], context))
    if kind == "neg":
        value = _eval_node(node[1], context)
        if not _is_number(value):
            raise SafeEvalError("Unary minus needs a number")
        return -value
    if kind == "and":
        left = _eval_node(node[1], context)
        return _eval_node(node[2], context) if is_truthy(left) else left
    if kind == "or":
        left = _eval_node(node[1], context)
        return left if is_truthy(left) else _eval_node(node[2], context)
    if kind == "compare":
        return _compare(node[1], _eval_node(node[2], context), _eval_node(node[3], context))
    if kind == "member":
        return _member(_eval_node(node[1], context), node[2])
    if kind == "index":
        return _member(_eval_node(node[1], context), _eval_node(node[2], context))
    if kind == "call":
        target = _eval_node(node[1], context)
        return _call(target, node[2], [_eval_node(arg, context) for arg in node[3]])

    raise SafeEvalError(f"Unsupported node: {kind}")


def evaluate(expression: str, context: Mapping[str, Any] | None = None) -> Any:
    """
    Evaluate an expression and return its raw value.

    Raises:
        SafeEvalError: If the expression is malformed or cannot be evaluated
    """
    try:
        return _eval_node(parse(expression), context or {})
    except SafeEvalError:
        raise
    except (TypeError, ValueError, OverflowError, RecursionError) as e:
        raise SafeEvalError(str(e)) from e


def evaluate_condition(expression: str, context: Mapping[str, Any] | None = None) -> bool:
    """
    Evaluate an expression as a condition.

    Never raises: malformed or failing expressions are False.
    """
    try:
        return is_truthy(evaluate(expression, context))
    except SafeEvalError as e:
        logger.debug("Condition %r evaluated to false: %s", expression, e)
        return False


def validate_expression(expression: str) -> list[str]:
    """Parse-only check used by tooling; returns a list of problems (empty if valid)."""
    try:
        parse(expression)
    except SafeEvalError as e:
        return [str(e)]
    return []
