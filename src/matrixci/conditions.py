# conditions.py
"""
Condition expressions over matrix axes.

    matrix.rust == 'stable' && matrix.os == 'ubuntu-latest'
    toolchain != 'nightly' || primary

Text is parsed once into a small immutable tree (Equals, NotEquals, And, Or,
Not, AxisRef, Literal) and evaluated against a JobConfiguration. `&&` binds
tighter than `||`; both short-circuit. Every axis the expression mentions is
checked against the configuration before evaluation, so a typo is reported
even when short-circuiting would never reach it.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import FrozenSet, List, Optional, Tuple, Union

from .errors import ConditionSyntaxError, UnknownAxisError
from .model import JobConfiguration

AXIS_PREFIX = "matrix."

_WRAPPED = re.compile(r"^\s*\$\{\{(.*)\}\}\s*$", re.S)
_PLACEHOLDER = re.compile(r"\$\{\{\s*(.*?)\s*\}\}")

_TOKEN = re.compile(
    r"""
    \s*(?:
        (?P<op>&&|\|\||==|!=|!|\(|\))
      | '(?P<sq>[^']*)'
      | "(?P<dq>[^"]*)"
      | (?P<ident>[A-Za-z_][A-Za-z0-9_\-]*(?:\.[A-Za-z_][A-Za-z0-9_\-]*)*)
    )
    """,
    re.X,
)


def _truthy(value: str) -> bool:
    return value.lower() == "true"


# ---------------------------------------------------------------------
# Expression tree
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Literal:
    value: str
    quoted: bool = True

    def value_of(self, config: JobConfiguration) -> str:
        return self.value

    def evaluate(self, config: JobConfiguration) -> bool:
        return _truthy(self.value)

    def axes(self) -> FrozenSet[str]:
        return frozenset()

    def __str__(self) -> str:
        if not self.quoted:
            return self.value
        if "'" in self.value:
            return '"' + self.value + '"'
        return "'" + self.value + "'"


@dataclass(frozen=True)
class AxisRef:
    name: str

    def value_of(self, config: JobConfiguration) -> str:
        value = config.lookup(self.name)
        if value is None:
            raise UnknownAxisError(self.name, known=config.axis_names())
        return value

    def evaluate(self, config: JobConfiguration) -> bool:
        return _truthy(self.value_of(config))

    def axes(self) -> FrozenSet[str]:
        return frozenset([self.name])

    def __str__(self) -> str:
        return AXIS_PREFIX + self.name


Operand = Union[Literal, AxisRef]


@dataclass(frozen=True)
class Equals:
    left: Operand
    right: Operand

    def evaluate(self, config: JobConfiguration) -> bool:
        return self.left.value_of(config) == self.right.value_of(config)

    def axes(self) -> FrozenSet[str]:
        return self.left.axes() | self.right.axes()

    def __str__(self) -> str:
        return f"{self.left} == {self.right}"


@dataclass(frozen=True)
class NotEquals:
    left: Operand
    right: Operand

    def evaluate(self, config: JobConfiguration) -> bool:
        return self.left.value_of(config) != self.right.value_of(config)

    def axes(self) -> FrozenSet[str]:
        return self.left.axes() | self.right.axes()

    def __str__(self) -> str:
        return f"{self.left} != {self.right}"


@dataclass(frozen=True)
class Not:
    operand: "Node"

    def evaluate(self, config: JobConfiguration) -> bool:
        return not self.operand.evaluate(config)

    def axes(self) -> FrozenSet[str]:
        return self.operand.axes()

    def __str__(self) -> str:
        return f"!{_wrap(self.operand, Not)}"


@dataclass(frozen=True)
class And:
    left: "Node"
    right: "Node"

    def evaluate(self, config: JobConfiguration) -> bool:
        return self.left.evaluate(config) and self.right.evaluate(config)

    def axes(self) -> FrozenSet[str]:
        return self.left.axes() | self.right.axes()

    def __str__(self) -> str:
        return f"{_wrap(self.left, And)} && {_wrap(self.right, And)}"


@dataclass(frozen=True)
class Or:
    left: "Node"
    right: "Node"

    def evaluate(self, config: JobConfiguration) -> bool:
        return self.left.evaluate(config) or self.right.evaluate(config)

    def axes(self) -> FrozenSet[str]:
        return self.left.axes() | self.right.axes()

    def __str__(self) -> str:
        return f"{_wrap(self.left, Or)} || {_wrap(self.right, Or)}"


Node = Union[Literal, AxisRef, Equals, NotEquals, Not, And, Or]

# lower number binds looser
_PRECEDENCE = {Or: 1, And: 2, Not: 3}


def _wrap(node: Node, parent: type) -> str:
    p = _PRECEDENCE.get(type(node))
    if p is not None and p < _PRECEDENCE[parent]:
        return f"({node})"
    if parent is Not and isinstance(node, (Equals, NotEquals)):
        return f"({node})"
    return str(node)


# ---------------------------------------------------------------------
# Parser (recursive descent)
# ---------------------------------------------------------------------

Token = Tuple[str, str]  # (kind, text); kind in {"op", "str", "ident"}


def _tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    end = len(text.rstrip())
    while pos < end:
        m = _TOKEN.match(text, pos)
        if not m or m.end() == pos:
            raise ConditionSyntaxError(
                f"unexpected character {text[pos:pos + 1]!r} at offset {pos}",
                condition=text,
            )
        if m.group("op") is not None:
            tokens.append(("op", m.group("op")))
        elif m.group("sq") is not None:
            tokens.append(("str", m.group("sq")))
        elif m.group("dq") is not None:
            tokens.append(("str", m.group("dq")))
        else:
            tokens.append(("ident", m.group("ident")))
        pos = m.end()
    return tokens


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _accept(self, op: str) -> bool:
        tok = self._peek()
        if tok == ("op", op):
            self.pos += 1
            return True
        return False

    def _fail(self, message: str) -> ConditionSyntaxError:
        return ConditionSyntaxError(message, condition=self.text)

    def parse(self) -> Node:
        if not self.tokens:
            raise self._fail("empty condition")
        node = self._or()
        if self._peek() is not None:
            raise self._fail(f"unexpected token {self._peek()[1]!r}")
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._accept("||"):
            node = Or(node, self._and())
        return node

    def _and(self) -> Node:
        node = self._unary()
        while self._accept("&&"):
            node = And(node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._accept("!"):
            return Not(self._unary())
        return self._primary()

    def _primary(self) -> Node:
        if self._accept("("):
            node = self._or()
            if not self._accept(")"):
                raise self._fail("missing ')'")
            if not isinstance(node, (Literal, AxisRef)):
                if self._peek() in (("op", "=="), ("op", "!=")):
                    raise self._fail(f"cannot compare the result of ({node})")
                return node
            left = node
        else:
            left = self._operand()
        if self._accept("=="):
            return Equals(left, self._operand())
        if self._accept("!="):
            return NotEquals(left, self._operand())
        return left

    def _operand(self) -> Operand:
        if self._accept("("):
            inner = self._operand()
            if not self._accept(")"):
                raise self._fail("missing ')'")
            return inner
        tok = self._peek()
        if tok is None:
            raise self._fail("unexpected end of condition")
        kind, text = tok
        if kind == "op":
            raise self._fail(f"expected a value, got {text!r}")
        self.pos += 1
        if kind == "str":
            return Literal(text)
        if text in ("true", "false"):
            return Literal(text, quoted=False)
        if text.startswith(AXIS_PREFIX):
            text = text[len(AXIS_PREFIX):]
        if "." in text:
            raise self._fail(f"unsupported reference {tok[1]!r}")
        return AxisRef(text)


def _unwrap(text: str) -> str:
    m = _WRAPPED.match(text)
    return m.group(1) if m else text


@lru_cache(maxsize=512)
def parse_condition(text: str) -> Node:
    """Parse condition text (optionally wrapped in `${{ }}`) into a tree."""
    return _Parser(_unwrap(text)).parse()


def check_axes(node: Node, config: JobConfiguration) -> None:
    known = set(config.axis_names())
    for name in sorted(node.axes()):
        if name not in known:
            raise UnknownAxisError(name, known=known)


def evaluate(condition: Optional[Union[str, Node]], config: JobConfiguration) -> bool:
    """
    Evaluate a condition for one job. No condition means "always run".

    Raises UnknownAxisError for references the configuration cannot resolve
    and ConditionSyntaxError for text that does not parse.
    """
    if condition is None:
        return True
    if isinstance(condition, str):
        if not condition.strip():
            return True
        condition = parse_condition(condition)
    check_axes(condition, config)
    return condition.evaluate(config)


# ---------------------------------------------------------------------
# ${{ ... }} interpolation
# ---------------------------------------------------------------------

def interpolate(text: str, config: JobConfiguration) -> str:
    """
    Replace `${{ matrix.axis }}` placeholders with the job's values.

    A placeholder holding a boolean expression renders as 'true'/'false'.
    """
    if "${{" not in text:
        return text

    def _sub(m: "re.Match[str]") -> str:
        node = parse_condition(m.group(1))
        check_axes(node, config)
        if isinstance(node, (AxisRef, Literal)):
            return node.value_of(config)
        return "true" if node.evaluate(config) else "false"

    return _PLACEHOLDER.sub(_sub, text)
