# tests/test_expressions.py
"""Unit tests for plankton_engine.expressions.

This module verifies:
- node construction through operator overloading and helpers,
- parsing of the supported text subset and rejection of everything else,
- text rendering that parses back to the same tree,
- free symbol and called function collection.
"""

from __future__ import annotations

import pytest

from plankton_engine.errors import ExpressionSyntaxError
from plankton_engine.expressions import (
    BinaryOp,
    Call,
    Index,
    Literal,
    Symbol,
    UnaryOp,
    as_expr,
    call,
    called_functions,
    free_symbols,
    index,
    parse_expression,
    sym,
    to_text,
    total,
    walk,
)

# -------------------------------------------------------------------
# Construction
# -------------------------------------------------------------------


def test_operator_overloading_builds_nodes() -> None:
    """Arithmetic on nodes builds BinaryOp/UnaryOp trees with Literal operands."""
    a = sym("a")
    assert a * 2 == BinaryOp("*", Symbol("a"), Literal(2.0))
    assert 1 - a == BinaryOp("-", Literal(1.0), Symbol("a"))
    assert a / a == BinaryOp("/", Symbol("a"), Symbol("a"))
    assert a**2 == BinaryOp("**", Symbol("a"), Literal(2.0))
    assert -a == UnaryOp("-", Symbol("a"))
    assert +a is a


def test_helpers_build_index_and_call() -> None:
    """index() and call() wrap names and coerce numeric arguments."""
    assert index("palatability", 2, 0) == Index(Symbol("palatability"), (2, 0))
    assert call("linear_loss", sym("P1"), 0.5) == Call(
        "linear_loss", (Symbol("P1"), Literal(0.5))
    )


def test_total_of_terms() -> None:
    """total() chains additions and yields zero for no terms."""
    assert total([]) == Literal(0.0)
    assert total([sym("a")]) == Symbol("a")
    assert total([1, sym("a"), sym("b")]) == BinaryOp(
        "+", BinaryOp("+", Literal(1.0), Symbol("a")), Symbol("b")
    )


def test_as_expr_rejects_non_numbers() -> None:
    """Booleans and strings are not coerced into literals."""
    with pytest.raises(TypeError):
        as_expr(True)
    with pytest.raises(TypeError):
        as_expr("a")  # type: ignore[arg-type]


def test_unknown_operators_rejected() -> None:
    """Operator nodes only accept the supported operators."""
    with pytest.raises(ValueError, match="Unknown unary operator"):
        UnaryOp("!", Symbol("a"))
    with pytest.raises(ValueError, match="Unknown binary operator"):
        BinaryOp("%", Symbol("a"), Symbol("b"))


def test_nodes_are_hashable_and_immutable() -> None:
    """Nodes are frozen value objects."""
    node = sym("a") + 1
    assert {node, sym("a") + 1} == {node}
    with pytest.raises(AttributeError):
        node.op = "-"  # type: ignore[misc]


# -------------------------------------------------------------------
# Parsing
# -------------------------------------------------------------------


def test_parse_lotka_volterra() -> None:
    """A polynomial expression parses into the expected tree."""
    expr = parse_expression("alpha * R - beta * R * F")
    assert expr == BinaryOp(
        "-",
        BinaryOp("*", Symbol("alpha"), Symbol("R")),
        BinaryOp("*", BinaryOp("*", Symbol("beta"), Symbol("R")), Symbol("F")),
    )


def test_parse_calls_and_indices() -> None:
    """Calls of plain names and integer subscripts are supported."""
    expr = parse_expression("linear_loss(P1, linear_mortality[0]) + palatability[2, 0]")
    assert expr == BinaryOp(
        "+",
        Call("linear_loss", (Symbol("P1"), Index(Symbol("linear_mortality"), (0,)))),
        Index(Symbol("palatability"), (2, 0)),
    )


def test_parse_folds_negative_literals_and_drops_unary_plus() -> None:
    """-1 becomes Literal(-1.0); +x becomes x."""
    assert parse_expression("-1") == Literal(-1.0)
    assert parse_expression("+x") == Symbol("x")
    assert parse_expression("-x") == UnaryOp("-", Symbol("x"))


@pytest.mark.parametrize(
    "text",
    [
        "a < b",
        "a.b",
        "x[1.5]",
        "x[-1]",
        "f(x=1)",
        "f(*args)",
        "'text'",
        "lambda: 1",
        "a if b else c",
        "a % b",
        "obj.method(1)",
    ],
)
def test_parse_rejects_unsupported_syntax(text: str) -> None:
    """Anything outside the arithmetic/call/index subset is rejected."""
    with pytest.raises(ExpressionSyntaxError):
        parse_expression(text)


def test_parse_reports_syntax_errors() -> None:
    """Text that is not an expression raises ExpressionSyntaxError."""
    with pytest.raises(ExpressionSyntaxError, match="Cannot parse expression"):
        parse_expression("a +")


# -------------------------------------------------------------------
# Text form
# -------------------------------------------------------------------


@pytest.mark.parametrize(
    "text",
    [
        "alpha * R - beta * R * F",
        "a - (b - c)",
        "(a - b) - c",
        "a / (b * c)",
        "(a + b) ** 2",
        "a ** b ** c",
        "(a ** b) ** c",
        "-x ** 2",
        "(-x) ** 2",
        "2 ** -1",
        "monod_limitation(N, k[1]) * P1",
        "-(a + b)",
    ],
)
def test_to_text_parses_back(text: str) -> None:
    """Rendered text parses back into an identical tree."""
    expr = parse_expression(text)
    assert parse_expression(to_text(expr)) == expr


def test_to_text_minimal_parentheses() -> None:
    """Parentheses are only emitted where precedence requires them."""
    assert to_text(parse_expression("a * b + c")) == "a * b + c"
    assert to_text(parse_expression("a * (b + c)")) == "a * (b + c)"
    assert str(sym("x") ** 2) == "x ** 2.0"


# -------------------------------------------------------------------
# Traversal
# -------------------------------------------------------------------


def test_free_symbols_excludes_function_names() -> None:
    """Called function names are not free symbols; indexed names are."""
    expr = parse_expression("monod_limitation(N, k[0]) * P1 + exp(t)")
    assert free_symbols(expr) == frozenset({"N", "k", "P1", "t"})


def test_called_functions_collects_arities() -> None:
    """called_functions maps each function to every argument count used."""
    expr = parse_expression("f(a) + f(a, b) + g()")
    assert called_functions(expr) == {"f": {1, 2}, "g": {0}}


def test_walk_is_preorder() -> None:
    """walk() yields the root before its children, left to right."""
    expr = parse_expression("a + b * c")
    kinds = [type(node).__name__ for node in walk(expr)]
    assert kinds == ["BinaryOp", "Symbol", "BinaryOp", "Symbol", "Symbol"]
