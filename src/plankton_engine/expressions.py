# src/plankton_engine/expressions.py
"""Symbolic tracer expressions as explicit data.

A tracer expression is a small tree of immutable nodes:

- ``Literal``: a numeric constant.
- ``Symbol``: a reference to a parameter, tracer, coordinate, auxiliary field
  or helper constant, resolved by the compiler.
- ``Index``: a positional element of a vector/matrix-valued symbol, e.g. the
  maximum growth rate of the second plankton class ``maximum_growth_rate[1]``.
- ``UnaryOp`` / ``BinaryOp``: arithmetic.
- ``Call``: a call of a named process kernel or helper function.

Trees are built either programmatically (nodes overload the arithmetic
operators) or from text with :func:`parse_expression`. Parsing uses the Python
tokenizer only to read the text; the resulting :mod:`ast` nodes are translated
into the node types above and anything outside the supported subset is
rejected.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, TypeAlias

from .errors import ExpressionSyntaxError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


_UNSUPPORTED_NODE_MSG: Final[str] = "Unsupported syntax {node!r} in expression: {text}"
_INVALID_TEXT_MSG: Final[str] = "Cannot parse expression {text!r}: {detail}"
_INDEX_MSG: Final[str] = (
    "Subscripts must be non-negative integer literals on a plain name: {text}"
)
_CALL_MSG: Final[str] = (
    "Calls must name a function directly and take positional arguments only: {text}"
)
_LITERAL_MSG: Final[str] = "Only numeric literals are supported: {value!r}"

BINARY_OPERATORS: Final[tuple[str, ...]] = ("+", "-", "*", "/", "**")
UNARY_OPERATORS: Final[tuple[str, ...]] = ("-", "+")

_AST_BINOPS: Final[dict[type[ast.operator], str]] = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.Div: "/",
    ast.Pow: "**",
}
_AST_UNARYOPS: Final[dict[type[ast.unaryop], str]] = {
    ast.USub: "-",
    ast.UAdd: "+",
}

# Python precedence of the printed operators (higher binds tighter).
_PRECEDENCE: Final[dict[str, int]] = {"+": 1, "-": 1, "*": 2, "/": 2, "u": 3, "**": 4}


class Expr:
    """Base class of all expression nodes.

    Nodes support ``+ - * / **`` and unary ``-`` with numbers and other nodes,
    so composed expressions read like the formula they encode.
    """

    __slots__ = ()

    def __add__(self, other: Operand) -> Expr:
        return BinaryOp("+", self, as_expr(other))

    def __radd__(self, other: Operand) -> Expr:
        return BinaryOp("+", as_expr(other), self)

    def __sub__(self, other: Operand) -> Expr:
        return BinaryOp("-", self, as_expr(other))

    def __rsub__(self, other: Operand) -> Expr:
        return BinaryOp("-", as_expr(other), self)

    def __mul__(self, other: Operand) -> Expr:
        return BinaryOp("*", self, as_expr(other))

    def __rmul__(self, other: Operand) -> Expr:
        return BinaryOp("*", as_expr(other), self)

    def __truediv__(self, other: Operand) -> Expr:
        return BinaryOp("/", self, as_expr(other))

    def __rtruediv__(self, other: Operand) -> Expr:
        return BinaryOp("/", as_expr(other), self)

    def __pow__(self, other: Operand) -> Expr:
        return BinaryOp("**", self, as_expr(other))

    def __rpow__(self, other: Operand) -> Expr:
        return BinaryOp("**", as_expr(other), self)

    def __neg__(self) -> Expr:
        return UnaryOp("-", self)

    def __pos__(self) -> Expr:
        return self

    def __str__(self) -> str:
        return to_text(self)


Operand: TypeAlias = "Expr | int | float"


@dataclass(frozen=True, slots=True, eq=True, repr=True)
class Literal(Expr):
    """Numeric constant."""

    value: float


@dataclass(frozen=True, slots=True, eq=True, repr=True)
class Symbol(Expr):
    """Reference to a named value."""

    name: str


@dataclass(frozen=True, slots=True, eq=True, repr=True)
class Index(Expr):
    """Positional element of a vector or matrix valued symbol.

    Attributes:
        base: Indexed symbol.
        indices: One index per array dimension, zero-based.
    """

    base: Symbol
    indices: tuple[int, ...]


@dataclass(frozen=True, slots=True, eq=True, repr=True)
class UnaryOp(Expr):
    """Unary arithmetic operation."""

    op: str
    operand: Expr

    def __post_init__(self) -> None:
        if self.op not in UNARY_OPERATORS:
            msg = f"Unknown unary operator: {self.op}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True, eq=True, repr=True)
class BinaryOp(Expr):
    """Binary arithmetic operation."""

    op: str
    left: Expr
    right: Expr

    def __post_init__(self) -> None:
        if self.op not in BINARY_OPERATORS:
            msg = f"Unknown binary operator: {self.op}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True, eq=True, repr=True)
class Call(Expr):
    """Call of a named function with positional arguments."""

    function: str
    args: tuple[Expr, ...]


# =============================================================================
# Construction helpers
# =============================================================================


def as_expr(value: Operand) -> Expr:
    """Coerce a number or node into an expression node.

    Args:
        value: Expression node, int or float.

    Returns:
        The node itself, or a Literal wrapping the number.

    Raises:
        TypeError: If value is neither a node nor a real number.
    """
    if isinstance(value, Expr):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(_LITERAL_MSG.format(value=value))
    return Literal(float(value))


def sym(name: str) -> Symbol:
    """Shorthand for ``Symbol(name)``."""
    return Symbol(name)


def index(name: str, *indices: int) -> Index:
    """Shorthand for an indexed symbol, e.g. ``index("palatability", 2, 0)``."""
    return Index(Symbol(name), tuple(int(i) for i in indices))


def call(function: str, *args: Operand) -> Call:
    """Shorthand for a call node with positional arguments."""
    return Call(function, tuple(as_expr(a) for a in args))


def total(terms: Iterable[Operand]) -> Expr:
    """Sum of terms as a left-leaning chain of additions.

    Args:
        terms: Terms to add.

    Returns:
        Sum expression, or ``Literal(0.0)`` when terms is empty.
    """
    result: Expr | None = None
    for term in terms:
        node = as_expr(term)
        result = node if result is None else BinaryOp("+", result, node)
    return Literal(0.0) if result is None else result


# =============================================================================
# Traversal
# =============================================================================


def walk(expr: Expr) -> Iterator[Expr]:
    """Yield every node of the tree in pre-order."""
    stack: list[Expr] = [expr]
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, Index):
            stack.append(node.base)
        elif isinstance(node, UnaryOp):
            stack.append(node.operand)
        elif isinstance(node, BinaryOp):
            stack.extend((node.right, node.left))
        elif isinstance(node, Call):
            stack.extend(reversed(node.args))


def free_symbols(expr: Expr) -> frozenset[str]:
    """Return the names referenced as values (not as called functions)."""
    return frozenset(node.name for node in walk(expr) if isinstance(node, Symbol))


def called_functions(expr: Expr) -> dict[str, set[int]]:
    """Return called function names mapped to the argument counts used."""
    calls: dict[str, set[int]] = {}
    for node in walk(expr):
        if isinstance(node, Call):
            calls.setdefault(node.function, set()).add(len(node.args))
    return calls


# =============================================================================
# Text form
# =============================================================================


def to_text(expr: Expr) -> str:
    """Render an expression as text that :func:`parse_expression` reads back."""
    return _render(expr)[0]


def _render(node: Expr) -> tuple[str, int]:
    if isinstance(node, Literal):
        text = repr(float(node.value))
        return (f"({text})" if node.value < 0 else text), 5
    if isinstance(node, Symbol):
        return node.name, 5
    if isinstance(node, Index):
        inner = ", ".join(str(i) for i in node.indices)
        return f"{node.base.name}[{inner}]", 5
    if isinstance(node, Call):
        inner = ", ".join(_render(a)[0] for a in node.args)
        return f"{node.function}({inner})", 5
    if isinstance(node, UnaryOp):
        text, prec = _render(node.operand)
        if prec < _PRECEDENCE["u"]:
            text = f"({text})"
        return f"{node.op}{text}", _PRECEDENCE["u"]
    if isinstance(node, BinaryOp):
        prec = _PRECEDENCE[node.op]
        left, left_prec = _render(node.left)
        right, right_prec = _render(node.right)
        # ** is right associative, the others are left associative.
        if node.op == "**":
            if left_prec <= prec:
                left = f"({left})"
            if right_prec < prec:
                right = f"({right})"
        else:
            if left_prec < prec:
                left = f"({left})"
            if right_prec <= prec:
                right = f"({right})"
        return f"{left} {node.op} {right}", prec
    msg = f"Unknown expression node: {node!r}"
    raise TypeError(msg)


def parse_expression(text: str) -> Expr:
    """Parse expression text into an expression tree.

    Supported syntax: numeric literals, names, ``name[i]`` / ``name[i, j]`` with
    integer literal indices, ``+ - * / **``, unary ``-``/``+`` and calls
    ``f(a, b, ...)`` of plain names with positional arguments.

    Args:
        text: Expression source, e.g. ``"alpha * R - beta * R * F"``.

    Returns:
        Parsed expression tree.

    Raises:
        ExpressionSyntaxError: If the text is not valid or uses unsupported syntax.
    """
    try:
        tree = ast.parse(text.strip(), mode="eval")
    except SyntaxError as exc:
        raise ExpressionSyntaxError(
            _INVALID_TEXT_MSG.format(text=text, detail=exc.msg)
        ) from exc
    return _from_ast(tree.body, text)


def _from_ast(node: ast.AST, text: str) -> Expr:  # noqa: PLR0911
    if isinstance(node, ast.Constant):
        value = node.value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ExpressionSyntaxError(_LITERAL_MSG.format(value=value))
        return Literal(float(value))
    if isinstance(node, ast.Name):
        return Symbol(node.id)
    if isinstance(node, ast.BinOp) and type(node.op) in _AST_BINOPS:
        return BinaryOp(
            _AST_BINOPS[type(node.op)],
            _from_ast(node.left, text),
            _from_ast(node.right, text),
        )
    if isinstance(node, ast.UnaryOp) and type(node.op) in _AST_UNARYOPS:
        operand = _from_ast(node.operand, text)
        if isinstance(node.op, ast.UAdd):
            return operand
        if isinstance(operand, Literal):
            return Literal(-operand.value)
        return UnaryOp("-", operand)
    if isinstance(node, ast.Subscript):
        return _index_from_ast(node, text)
    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.keywords:
            raise ExpressionSyntaxError(_CALL_MSG.format(text=text))
        if any(isinstance(a, ast.Starred) for a in node.args):
            raise ExpressionSyntaxError(_CALL_MSG.format(text=text))
        return Call(node.func.id, tuple(_from_ast(a, text) for a in node.args))
    raise ExpressionSyntaxError(
        _UNSUPPORTED_NODE_MSG.format(node=type(node).__name__, text=text)
    )


def _index_from_ast(node: ast.Subscript, text: str) -> Index:
    if not isinstance(node.value, ast.Name):
        raise ExpressionSyntaxError(_INDEX_MSG.format(text=text))
    raw = node.slice
    elements = raw.elts if isinstance(raw, ast.Tuple) else [raw]
    indices: list[int] = []
    for element in elements:
        if not (
            isinstance(element, ast.Constant)
            and isinstance(element.value, int)
            and not isinstance(element.value, bool)
            and element.value >= 0
        ):
            raise ExpressionSyntaxError(_INDEX_MSG.format(text=text))
        indices.append(element.value)
    return Index(Symbol(node.value.id), tuple(indices))
