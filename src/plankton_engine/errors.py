# src/plankton_engine/errors.py
"""Error types and raise helpers for plankton_engine.

This module centralizes:
- explicit error classes with actionable messages, and
- small helpers that format those messages consistently.

Every error is raised during model construction or compilation (except
StateShapeError, raised when a compiled function receives inputs it cannot
evaluate) and propagates unwrapped to the caller. There is no partial model.
"""

from __future__ import annotations

from typing import Final

_RESERVED_NAME_MSG: Final[str] = (
    "Parameter name '{symbol}' collides with a reserved coordinate name; "
    "{reserved} are reserved for coordinates."
)
_UNRESOLVED_SYMBOL_MSG: Final[str] = (
    "Symbol '{symbol}' in tracer '{tracer}' does not resolve to a coordinate, "
    "parameter, tracer, auxiliary field or helper function."
)
_AMBIGUOUS_SYMBOL_MSG: Final[str] = (
    "Symbol '{symbol}' in tracer '{tracer}' is ambiguous; it is declared as "
    "{kinds}."
)


class PlanktonEngineError(Exception):
    """Base exception for plankton_engine errors."""


class ConfigurationError(PlanktonEngineError, ValueError):
    """Raised when a shape, count, policy or grid configuration is invalid."""


class ExpressionSyntaxError(ConfigurationError):
    """Raised when expression text cannot be parsed into an expression tree."""


class NameResolutionError(PlanktonEngineError, NameError):
    """Raised when a symbol cannot be resolved or collides with a reserved name.

    Attributes:
        symbol: Offending symbol name.
        tracer: Tracer whose expression references the symbol, if any.
    """

    def __init__(self, msg: str, *, symbol: str, tracer: str | None = None) -> None:
        super().__init__(msg)
        self.symbol = symbol
        self.tracer = tracer


class ConsistencyError(PlanktonEngineError, ValueError):
    """Raised when an override expression lacks its matching parameter set."""


class StateShapeError(PlanktonEngineError, ValueError):
    """Raised when values passed to a compiled function have incompatible shapes."""


def raise_configuration_error(*, entity: str, detail: str) -> None:
    """Raise a standardized ConfigurationError.

    Args:
        entity: Name of the offending entity (parameter, tracer, matrix, ...).
        detail: Human-readable description of the problem.

    Raises:
        ConfigurationError: Always.
    """
    msg = f"Invalid configuration for '{entity}': {detail}"
    raise ConfigurationError(msg)


def raise_reserved_name(symbol: str, reserved: tuple[str, ...]) -> None:
    """Raise a NameResolutionError for a parameter shadowing a coordinate.

    Args:
        symbol: Offending parameter name.
        reserved: Reserved coordinate names.

    Raises:
        NameResolutionError: Always.
    """
    msg = _RESERVED_NAME_MSG.format(symbol=symbol, reserved=list(reserved))
    raise NameResolutionError(msg, symbol=symbol)


def raise_unresolved_symbol(symbol: str, *, tracer: str) -> None:
    """Raise a NameResolutionError for a symbol that resolves to nothing.

    Args:
        symbol: Offending symbol name.
        tracer: Tracer whose expression references the symbol.

    Raises:
        NameResolutionError: Always.
    """
    msg = _UNRESOLVED_SYMBOL_MSG.format(symbol=symbol, tracer=tracer)
    raise NameResolutionError(msg, symbol=symbol, tracer=tracer)


def raise_ambiguous_symbol(symbol: str, *, tracer: str, kinds: list[str]) -> None:
    """Raise a NameResolutionError for a symbol declared in several namespaces.

    Args:
        symbol: Offending symbol name.
        tracer: Tracer whose expression references the symbol.
        kinds: Namespaces the symbol was found in.

    Raises:
        NameResolutionError: Always.
    """
    msg = _AMBIGUOUS_SYMBOL_MSG.format(
        symbol=symbol, tracer=tracer, kinds=" and ".join(sorted(kinds))
    )
    raise NameResolutionError(msg, symbol=symbol, tracer=tracer)


def raise_state_shape_error(*, name: str, expected: str, got: object) -> None:
    """Raise a standardized StateShapeError.

    Args:
        name: Name of the object with the shape issue.
        expected: Human-readable expected shape description.
        got: Actual observed shape/value.

    Raises:
        StateShapeError: Always.
    """
    msg = f"{name} has an invalid shape/value. Expected {expected}. Got: {got!r}."
    raise StateShapeError(msg)
