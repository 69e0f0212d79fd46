"""Sandboxed condition expressions.

Edge guards and Condition nodes carry small expressions written by
workflow authors, e.g. ``score > 0.5 && status == "ok"``. They are
tokenized and parsed by a recursive-descent parser and evaluated
against the execution's variable bag. Nothing is ever handed to
``eval``: the only names an expression can see are the top-level
keys of the bag, and function calls are rejected at parse time.

Grammar (lowest to highest precedence)::

    or       := and (("||" | "or") and)*
    and      := equality (("&&" | "and") equality)*
    equality := relation (("==" | "!=" | "===" | "!==") relation)*
    relation := additive (("<" | "<=" | ">" | ">=") additive)*
    additive := term (("+" | "-") term)*
    term     := unary (("*" | "/" | "%") unary)*
    unary    := ("!" | "not" | "-" | "+") unary | postfix
    postfix  := primary ("." NAME | "[" or "]")*
    primary  := NUMBER | STRING | true | false | null | NAME | "(" or ")"
"""

import re
from functools import lru_cache
from typing import Any, Callable, Optional

import structlog

from core.exceptions import ExpressionError

logger = structlog.get_logger(__name__)

Evaluator = Callable[[dict], Any]

# ─── Tokenizer ────────────────────────────────────────────────

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+\.\d*|\.\d+|\d+)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[<>!+\-*/%().\[\]])
    """,
    re.VERBOSE,
)

_LITERALS = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "null": None,
    "None": None,
    "undefined": None,
}

_WORD_OPERATORS = {"and": "&&", "or": "||", "not": "!"}

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}


class Token:
    __slots__ = ("kind", "value", "pos")

    def __init__(self, kind: str, value: Any, pos: int):
        self.kind = kind
        self.value = value
        self.pos = pos

    def __repr__(self) -> str:
        return f"Token({self.kind}, {self.value!r}, {self.pos})"


def _unescape(raw: str) -> str:
    body = raw[1:-1]
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            out.append(_ESCAPES.get(body[i + 1], body[i + 1]))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def tokenize(source: str) -> list[Token]:
    """Split an expression into tokens.

    Raises:
        ExpressionError: On a character that starts no valid token
    """
    tokens: list[Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise ExpressionError(f"Unexpected character {source[pos]!r} at position {pos}")
        kind = match.lastgroup
        text = match.group(kind)
        if kind == "number":
            tokens.append(Token("literal", float(text) if "." in text else int(text), pos))
        elif kind == "string":
            tokens.append(Token("literal", _unescape(text), pos))
        elif kind == "name":
            if text in _LITERALS:
                tokens.append(Token("literal", _LITERALS[text], pos))
            elif text in _WORD_OPERATORS:
                tokens.append(Token("op", _WORD_OPERATORS[text], pos))
            else:
                tokens.append(Token("name", text, pos))
        elif kind == "op":
            tokens.append(Token("op", text, pos))
        pos = match.end()
    tokens.append(Token("eof", None, pos))
    return tokens


# ─── Runtime helpers ──────────────────────────────────────────

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equals(left: Any, right: Any) -> bool:
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _member(obj: Any, key: Any, path: str) -> Any:
    if obj is None:
        raise ExpressionError(f"Cannot read property {key!r} of null in '{path}'")
    if isinstance(obj, dict):
        return obj.get(key)
    if isinstance(obj, (list, str)):
        if key == "length":
            return len(obj)
        if _is_number(key) and int(key) == key and -len(obj) <= int(key) < len(obj):
            return obj[int(key)]
    return None


def _arith(op: str, left: Any, right: Any) -> Any:
    if op == "+":
        if isinstance(left, str) or isinstance(right, str):
            return f"{left}{right}"
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if op == "/":
        return left / right
    return left % right


_COMPARE = {
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}


# ─── Parser ───────────────────────────────────────────────────

class _Parser:
    """Recursive-descent parser producing a tree of closures."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _accept(self, *ops: str) -> Optional[str]:
        token = self.current
        if token.kind == "op" and token.value in ops:
            self.index += 1
            return token.value
        return None

    def _expect(self, op: str) -> None:
        if self._accept(op) is None:
            raise ExpressionError(
                f"Expected {op!r} at position {self.current.pos} in '{self.source}'"
            )

    def parse(self) -> Evaluator:
        if self.current.kind == "eof":
            raise ExpressionError("Empty expression")
        node = self._or()
        if self.current.kind != "eof":
            raise ExpressionError(
                f"Unexpected token {self.current.value!r} at position {self.current.pos} "
                f"in '{self.source}'"
            )
        return node

    def _or(self) -> Evaluator:
        left = self._and()
        while self._accept("||"):
            right = self._and()
            left = (lambda lhs, rhs: lambda scope: lhs(scope) or rhs(scope))(left, right)
        return left

    def _and(self) -> Evaluator:
        left = self._equality()
        while self._accept("&&"):
            right = self._equality()
            left = (lambda lhs, rhs: lambda scope: lhs(scope) and rhs(scope))(left, right)
        return left

    def _equality(self) -> Evaluator:
        left = self._relation()
        while True:
            op = self._accept("===", "!==", "==", "!=")
            if op is None:
                return left
            right = self._relation()
            if op == "===":
                left = (lambda lhs, rhs: lambda s: _strict_equals(lhs(s), rhs(s)))(left, right)
            elif op == "!==":
                left = (lambda lhs, rhs: lambda s: not _strict_equals(lhs(s), rhs(s)))(left, right)
            elif op == "==":
                left = (lambda lhs, rhs: lambda s: lhs(s) == rhs(s))(left, right)
            else:
                left = (lambda lhs, rhs: lambda s: lhs(s) != rhs(s))(left, right)

    def _relation(self) -> Evaluator:
        left = self._additive()
        while True:
            op = self._accept("<=", ">=", "<", ">")
            if op is None:
                return left
            right = self._additive()
            left = (lambda fn, lhs, rhs: lambda s: fn(lhs(s), rhs(s)))(_COMPARE[op], left, right)

    def _additive(self) -> Evaluator:
        left = self._term()
        while True:
            op = self._accept("+", "-")
            if op is None:
                return left
            right = self._term()
            left = (lambda o, lhs, rhs: lambda s: _arith(o, lhs(s), rhs(s)))(op, left, right)

    def _term(self) -> Evaluator:
        left = self._unary()
        while True:
            op = self._accept("*", "/", "%")
            if op is None:
                return left
            right = self._unary()
            left = (lambda o, lhs, rhs: lambda s: _arith(o, lhs(s), rhs(s)))(op, left, right)

    def _unary(self) -> Evaluator:
        op = self._accept("!", "-", "+")
        if op == "!":
            operand = self._unary()
            return lambda s: not operand(s)
        if op == "-":
            operand = self._unary()
            return lambda s: -operand(s)
        if op == "+":
            operand = self._unary()
            return lambda s: +operand(s)
        return self._postfix()

    def _postfix(self) -> Evaluator:
        node, path = self._primary()
        while True:
            if self._accept("."):
                token = self._advance()
                if token.kind != "name":
                    raise ExpressionError(
                        f"Expected property name at position {token.pos} in '{self.source}'"
                    )
                path = f"{path}.{token.value}"
                node = (lambda obj, key, p: lambda s: _member(obj(s), key, p))(node, token.value, path)
            elif self._accept("["):
                index = self._or()
                self._expect("]")
                path = f"{path}[]"
                node = (lambda obj, idx, p: lambda s: _member(obj(s), idx(s), p))(node, index, path)
            elif self.current.kind == "op" and self.current.value == "(":
                raise ExpressionError(f"Function calls are not allowed: '{self.source}'")
            else:
                return node

    def _primary(self) -> tuple[Evaluator, str]:
        token = self._advance()
        if token.kind == "literal":
            value = token.value
            return (lambda s: value), repr(value)
        if token.kind == "name":
            name = token.value

            def lookup(scope: dict) -> Any:
                if name not in scope:
                    raise ExpressionError(f"{name} is not defined")
                return scope[name]

            return lookup, name
        if token.kind == "op" and token.value == "(":
            inner = self._or()
            self._expect(")")
            return inner, "(...)"
        if token.kind == "eof":
            raise ExpressionError(f"Unexpected end of expression in '{self.source}'")
        raise ExpressionError(
            f"Unexpected token {token.value!r} at position {token.pos} in '{self.source}'"
        )


# ─── Public API ───────────────────────────────────────────────

class Expression:
    """A parsed, reusable condition expression."""

    def __init__(self, source: str):
        if not isinstance(source, str):
            raise ExpressionError(f"Expression must be a string, got {type(source).__name__}")
        self.source = source.strip()
        self._evaluator = _Parser(self.source).parse()

    def evaluate(self, variables: Optional[dict]) -> Any:
        """Evaluate to a raw value.

        Raises:
            ExpressionError: On unknown names, null dereferences or
                operations between incompatible values
        """
        scope = dict(variables or {})
        try:
            return self._evaluator(scope)
        except ExpressionError:
            raise
        except (TypeError, ValueError, ArithmeticError, RecursionError) as e:
            raise ExpressionError(f"Cannot evaluate '{self.source}': {e}") from e

    def truthy(self, variables: Optional[dict]) -> bool:
        return bool(self.evaluate(variables))

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"


@lru_cache(maxsize=512)
def compile_expression(source: str) -> Expression:
    """Parse ``source`` once and reuse the result."""
    return Expression(source)


def check_condition(expression: Any, variables: Optional[dict]) -> tuple[bool, Optional[str]]:
    """Evaluate ``expression`` and report any failure instead of raising.

    Booleans and numbers stored directly in the definition count by their
    truthiness; any other non-string value is an error.

    Returns:
        ``(result, error)``: ``error`` is None on success; on failure
        ``result`` is always False
    """
    if isinstance(expression, (bool, int, float)):
        return bool(expression), None
    if not isinstance(expression, str):
        return False, f"Unsupported condition type: {type(expression).__name__}"
    try:
        return compile_expression(expression).truthy(variables), None
    except ExpressionError as e:
        return False, e.message
    except Exception as e:
        return False, str(e)


def evaluate_condition(expression: Any, variables: Optional[dict]) -> bool:
    """Evaluate a guard. Any error is logged and counts as False."""
    result, error = check_condition(expression, variables)
    if error is not None:
        logger.error("Error evaluating condition", condition=expression, error=error)
    return result
