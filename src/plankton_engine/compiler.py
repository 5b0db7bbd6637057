# src/plankton_engine/compiler.py
"""Compile symbolic tracer expressions into callable rate functions.

:func:`define_tracer_functions` is the generic entry point: it accepts any set
of tracer expressions (not only size-structured NPZD ones), validates every
name they use and returns a :class:`TracerModel` holding one
:class:`TracerFunction` per tracer.

Name resolution:
    Each free symbol must resolve to exactly one of
        - a coordinate (``x``, ``y``, ``z``, ``t``),
        - a declared parameter,
        - a declared tracer,
        - a declared auxiliary field,
    or, failing those, to a name in the helper namespace. Every called
    function must be a registered kernel, a math function or a helper, and is
    called with an argument count its signature accepts.

Evaluation contract:
    ``f(coordinates, tracers, auxiliary)`` where each argument is a mapping
    from name to value or a sequence in declaration order (coordinates as
    ``(x, y, z, t)``). Values may be scalars or NumPy arrays that broadcast
    together; the result is a NumPy scalar or array. Parameter values are
    bound at compile time. Functions keep no state between calls and only
    allocate call-local arrays, so they can be shared across threads.

Sinking:
    A tracer listed in ``sinking_tracers`` gets the upwind flux divergence of
    :mod:`plankton_engine.sinking` added to its rate. Its value must then be a
    column whose last axis matches the grid.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import operator
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType, ModuleType
from typing import TYPE_CHECKING, Any, Final, TypeAlias

import numpy as np

from .errors import (
    ConfigurationError,
    NameResolutionError,
    raise_ambiguous_symbol,
    raise_configuration_error,
    raise_reserved_name,
    raise_state_shape_error,
    raise_unresolved_symbol,
)
from .expressions import (
    BinaryOp,
    Call,
    Expr,
    Index,
    Literal,
    Symbol,
    UnaryOp,
    called_functions,
    free_symbols,
    parse_expression,
    walk,
)
from .kernels import KERNELS, MATH_FUNCTIONS
from .sinking import SinkingFlux, VerticalGrid

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)

COORDINATES: Final[tuple[str, ...]] = ("x", "y", "z", "t")

HelperSource: TypeAlias = "Mapping[str, Any] | ModuleType | str | os.PathLike[str]"
Evaluator: TypeAlias = "Callable[[Mapping[str, Any]], Any]"

_BINARY: Final[dict[str, Callable[[Any, Any], Any]]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "**": operator.pow,
}

_UNKNOWN_FUNCTION_MSG: Final[str] = (
    "Function '{name}' in tracer '{tracer}' is neither a registered kernel, a "
    "math function nor a helper function."
)
_ARITY_MSG: Final[str] = "function '{name}' cannot be called with {count} argument(s)"
_INDEX_MSG: Final[str] = (
    "'{name}{indices}' does not index a parameter of shape {shape}"
)
_INDEX_BASE_MSG: Final[str] = "'{name}' is indexed but is not a parameter"
_PARAMETER_VALUE_MSG: Final[str] = "parameter value must be numeric; got {value!r}"
_UNREAD_ELEMENT_MSG: Final[str] = (
    "element(s) {elements} were zero and no tracer expression reads them; "
    "compose the expressions again with the new values (for NiPiZD models "
    "use instantiate)"
)
_SINKING_GRID_MSG: Final[str] = "a grid is required when sinking_tracers is given"
_SINKING_NAME_MSG: Final[str] = "'{name}' is not a declared tracer"
_HELPER_PATH_MSG: Final[str] = "helper file {path} does not exist"
_HELPER_TYPE_MSG: Final[str] = (
    "expected a mapping, module or file path; got {kind}"
)
_RESERVED_FIELD_MSG: Final[str] = (
    "{kind} name '{name}' collides with a reserved coordinate name"
)


# =============================================================================
# Compiled artifacts
# =============================================================================


@dataclass(frozen=True, slots=True, eq=False)
class TracerFunction:
    """Compiled rate of change of one tracer.

    Attributes:
        name: Tracer name.
        expression: Source expression.
        tracer_names: Declared tracers, in order.
        auxiliary_fields: Declared auxiliary fields, in order.
        inputs: Coordinates, tracers and auxiliary fields the expression reads.
        sinking: Sinking flux term, or None for non-sinking tracers.
    """

    name: str
    expression: Expr
    tracer_names: tuple[str, ...]
    auxiliary_fields: tuple[str, ...]
    inputs: frozenset[str]
    evaluator: Evaluator = field(repr=False)
    sinking: SinkingFlux | None = None

    def __call__(
        self,
        coordinates: Mapping[str, ArrayLike] | Sequence[ArrayLike] | None,
        tracers: Mapping[str, ArrayLike] | Sequence[ArrayLike],
        auxiliary: Mapping[str, ArrayLike] | Sequence[ArrayLike] | None = None,
    ) -> Any:
        """Evaluate the rate of change.

        Args:
            coordinates: Coordinate values by name, or ``(x, y, z, t)``.
            tracers: Tracer values by name, or one value per declared tracer.
            auxiliary: Auxiliary field values by name, or one per declared field.

        Returns:
            NumPy scalar (scalar inputs) or array (array inputs).

        Raises:
            StateShapeError: If inputs are missing, unknown or mis-shaped.
        """
        env = bind_inputs(
            coordinates,
            tracers,
            auxiliary,
            tracer_names=self.tracer_names,
            auxiliary_fields=self.auxiliary_fields,
        )
        missing = sorted(self.inputs - set(env))
        if missing:
            raise_state_shape_error(
                name=f"inputs of tracer '{self.name}'",
                expected=f"values for {missing}",
                got=sorted(env),
            )
        rate = self.evaluator(env)
        if self.sinking is not None:
            rate = np.add(rate, self.sinking.divergence(env[self.name]))
        out = np.asarray(rate, dtype=np.float64)
        return out[()] if out.ndim == 0 else out

    @property
    def sinking_speed(self) -> NDArray[np.float64] | None:
        """Effective sinking speed per grid cell, or None if the tracer does not sink."""
        return None if self.sinking is None else self.sinking.cell_speeds


@dataclass(frozen=True, slots=True, eq=False)
class TracerModel:
    """Compiled tracer functions plus everything they were built from.

    Attributes:
        parameters: Bound parameter values (read-only arrays).
        expressions: Tracer expressions, in declaration order.
        functions: Compiled function per tracer.
        auxiliary_fields: Declared auxiliary fields.
        helper_functions: Helper namespace used for compilation.
        sinking_tracers: Sinking speed per sinking tracer.
        grid: Vertical grid, required when any tracer sinks.
        open_bottom: Whether sinking biomass leaves through the bottom.
        smoothing_distance: Closed bottom ramp length, None for the default.
    """

    parameters: Mapping[str, NDArray[np.float64]]
    expressions: Mapping[str, Expr]
    functions: Mapping[str, TracerFunction]
    auxiliary_fields: tuple[str, ...]
    helper_functions: Mapping[str, Any]
    sinking_tracers: Mapping[str, float]
    grid: VerticalGrid | None
    open_bottom: bool
    smoothing_distance: float | None = None

    @property
    def tracer_names(self) -> tuple[str, ...]:
        """Declared tracers, in order."""
        return tuple(self.expressions)

    def __getitem__(self, tracer: str) -> TracerFunction:
        return self.functions[tracer]

    def __contains__(self, tracer: object) -> bool:
        return tracer in self.functions

    def __len__(self) -> int:
        return len(self.functions)

    def free_symbols(self, tracer: str) -> frozenset[str]:
        """Names referenced as values by a tracer's expression."""
        return free_symbols(self.expressions[tracer])

    def evaluate(
        self,
        coordinates: Mapping[str, ArrayLike] | Sequence[ArrayLike] | None,
        tracers: Mapping[str, ArrayLike] | Sequence[ArrayLike],
        auxiliary: Mapping[str, ArrayLike] | Sequence[ArrayLike] | None = None,
    ) -> dict[str, Any]:
        """Evaluate every tracer function with the same inputs."""
        return {
            name: func(coordinates, tracers, auxiliary)
            for name, func in self.functions.items()
        }

    def with_parameters(self, **values: ArrayLike) -> TracerModel:
        """Return a new model with some parameter values re-bound.

        Expressions are kept as they are. For a parameter the expressions only
        read element by element, an entry that was zero may not become non-zero
        unless some expression reads it: the terms it would switch on were
        never written, so the new value could not take effect.

        Raises:
            NameResolutionError: If a name is not a declared parameter.
            ConfigurationError: If a value is not numeric, or switches on an
                element no expression reads.
        """
        for name in values:
            if name not in self.parameters:
                msg = f"Cannot re-bind undeclared parameter '{name}'."
                raise NameResolutionError(msg, symbol=name)
        new_values = _freeze_parameters(values)
        for name, new in new_values.items():
            old = self.parameters[name]
            if new.ndim == 0 or new.shape != old.shape:
                continue
            read = _element_references(self.expressions.values(), name)
            if read is None:
                continue
            unread = [
                idx
                for idx in (
                    tuple(int(i) for i in position)
                    for position in zip(*np.nonzero((old == 0.0) & (new != 0.0)))
                )
                if idx not in read
            ]
            if unread:
                raise_configuration_error(
                    entity=name,
                    detail=_UNREAD_ELEMENT_MSG.format(elements=[list(i) for i in unread]),
                )
        return define_tracer_functions(
            {**self.parameters, **new_values},
            self.expressions,
            auxiliary_fields=self.auxiliary_fields,
            helper_functions=self.helper_functions,
            sinking_tracers=self.sinking_tracers or None,
            grid=self.grid,
            open_bottom=self.open_bottom,
            smoothing_distance=self.smoothing_distance,
        )


# =============================================================================
# Input binding
# =============================================================================


def _bind_group(
    values: Mapping[str, ArrayLike] | Sequence[ArrayLike] | None,
    names: tuple[str, ...],
    *,
    kind: str,
    partial: bool,
) -> dict[str, NDArray[np.float64]]:
    if values is None:
        return {}
    if isinstance(values, Mapping):
        unknown = sorted(set(values) - set(names))
        if unknown:
            raise_state_shape_error(
                name=kind, expected=f"names from {list(names)}", got=unknown
            )
        return {k: np.asarray(v, dtype=np.float64) for k, v in values.items()}
    seq = list(values)
    if len(seq) != len(names) and not (partial and len(seq) < len(names)):
        raise_state_shape_error(
            name=kind, expected=f"{len(names)} values ordered as {list(names)}", got=len(seq)
        )
    return {k: np.asarray(v, dtype=np.float64) for k, v in zip(names, seq)}


def bind_inputs(
    coordinates: Mapping[str, ArrayLike] | Sequence[ArrayLike] | None,
    tracers: Mapping[str, ArrayLike] | Sequence[ArrayLike],
    auxiliary: Mapping[str, ArrayLike] | Sequence[ArrayLike] | None,
    *,
    tracer_names: tuple[str, ...],
    auxiliary_fields: tuple[str, ...],
) -> dict[str, NDArray[np.float64]]:
    """Bind call arguments into one call-local name -> value environment.

    Raises:
        StateShapeError: On unknown names or wrong sequence lengths.
    """
    env = _bind_group(coordinates, COORDINATES, kind="coordinates", partial=True)
    env.update(_bind_group(tracers, tracer_names, kind="tracers", partial=False))
    env.update(
        _bind_group(auxiliary, auxiliary_fields, kind="auxiliary fields", partial=False)
    )
    return env


# =============================================================================
# Helper namespace
# =============================================================================


def load_helper_functions(source: HelperSource | None) -> dict[str, Any]:
    """Build a helper namespace from a mapping, a module or a ``.py`` file.

    Args:
        source: Mapping of names to callables/constants, an imported module, or
            a path to a Python file defining helper functions.

    Returns:
        Name -> object mapping; private names and imported modules are skipped.

    Raises:
        ConfigurationError: If the path does not exist or the type is unsupported.
    """
    if source is None:
        return {}
    if isinstance(source, Mapping):
        return dict(source)
    if isinstance(source, (str, os.PathLike)):
        path = Path(source)
        if not path.is_file():
            raise_configuration_error(
                entity="helper_functions", detail=_HELPER_PATH_MSG.format(path=path)
            )
        spec = importlib.util.spec_from_file_location(f"_helpers_{path.stem}", path)
        if spec is None or spec.loader is None:
            raise_configuration_error(
                entity="helper_functions", detail=f"cannot load {path}"
            )
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        source = module
    if isinstance(source, ModuleType):
        return {
            name: value
            for name, value in vars(source).items()
            if not name.startswith("_") and not isinstance(value, ModuleType)
        }
    msg = "Invalid configuration for 'helper_functions': " + _HELPER_TYPE_MSG.format(
        kind=type(source).__name__
    )
    raise ConfigurationError(msg)


# =============================================================================
# Validation
# =============================================================================


def _freeze_parameters(
    parameters: Mapping[str, ArrayLike],
) -> dict[str, NDArray[np.float64]]:
    frozen: dict[str, NDArray[np.float64]] = {}
    for name, value in parameters.items():
        if name in COORDINATES:
            raise_reserved_name(name, COORDINATES)
        try:
            arr = np.array(value, dtype=np.float64, copy=True)
        except (TypeError, ValueError) as exc:
            msg = f"Invalid configuration for '{name}': " + _PARAMETER_VALUE_MSG.format(
                value=value
            )
            raise ConfigurationError(msg) from exc
        arr.flags.writeable = False
        frozen[name] = arr
    return frozen


def _element_references(
    expressions: Iterable[Expr],
    name: str,
) -> set[tuple[int, ...]] | None:
    """Index tuples of ``name`` read by the expressions.

    Returns None when some expression reads the whole value or none reads it
    at all.
    """
    indexed: set[tuple[int, ...]] = set()
    uses = 0
    bases = 0
    for expr in expressions:
        for node in walk(expr):
            if isinstance(node, Index) and node.base.name == name:
                indexed.add(tuple(node.indices))
                bases += 1
            elif isinstance(node, Symbol) and node.name == name:
                uses += 1
    # Every Index also yields its base Symbol.
    return None if uses > bases or not indexed else indexed


def _check_declared_names(
    names: Iterable[str],
    *,
    kind: str,
) -> None:
    for name in names:
        if name in COORDINATES:
            msg = _RESERVED_FIELD_MSG.format(kind=kind, name=name)
            raise NameResolutionError(msg, symbol=name)


def _resolve_symbols(
    tracer: str,
    expr: Expr,
    namespaces: Mapping[str, frozenset[str]],
    helpers: Mapping[str, Any],
) -> frozenset[str]:
    """Validate the free symbols of one expression and return its runtime inputs."""
    inputs: set[str] = set()
    for symbol in sorted(free_symbols(expr)):
        kinds = [kind for kind, names in namespaces.items() if symbol in names]
        if len(kinds) > 1:
            raise_ambiguous_symbol(symbol, tracer=tracer, kinds=kinds)
        if not kinds:
            if symbol in helpers:
                continue
            raise_unresolved_symbol(symbol, tracer=tracer)
        if kinds != ["parameter"]:
            inputs.add(symbol)
    return frozenset(inputs)


def _accepts(func: Callable[..., Any], count: int) -> bool:
    if isinstance(func, np.ufunc):
        return count == func.nin
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return True
    try:
        signature.bind(*range(count))
    except TypeError:
        return False
    return True


def _check_calls(
    tracer: str,
    expr: Expr,
    functions: Mapping[str, Callable[..., Any]],
) -> None:
    for name, counts in sorted(called_functions(expr).items()):
        func = functions.get(name)
        if func is None or not callable(func):
            msg = _UNKNOWN_FUNCTION_MSG.format(name=name, tracer=tracer)
            raise NameResolutionError(msg, symbol=name, tracer=tracer)
        for count in sorted(counts):
            if not _accepts(func, count):
                raise_configuration_error(
                    entity=tracer, detail=_ARITY_MSG.format(name=name, count=count)
                )


# =============================================================================
# Lowering
# =============================================================================


def _lower(
    node: Expr,
    constants: Mapping[str, Any],
    functions: Mapping[str, Callable[..., Any]],
    tracer: str,
) -> Evaluator:
    """Turn an expression tree into a closure over bound values."""
    if isinstance(node, Literal):
        value = np.float64(node.value)
        return lambda env: value
    if isinstance(node, Symbol):
        name = node.name
        if name in constants:
            bound = constants[name]
            return lambda env: bound
        return lambda env: env[name]
    if isinstance(node, Index):
        return _lower_index(node, constants, tracer)
    if isinstance(node, UnaryOp):
        operand = _lower(node.operand, constants, functions, tracer)
        if node.op == "+":
            return operand
        return lambda env: -operand(env)
    if isinstance(node, BinaryOp):
        op = _BINARY[node.op]
        left = _lower(node.left, constants, functions, tracer)
        right = _lower(node.right, constants, functions, tracer)
        return lambda env: op(left(env), right(env))
    if isinstance(node, Call):
        func = functions[node.function]
        args = tuple(_lower(a, constants, functions, tracer) for a in node.args)
        return lambda env: func(*(a(env) for a in args))
    msg = f"Unknown expression node: {node!r}"
    raise TypeError(msg)


def _lower_index(
    node: Index,
    constants: Mapping[str, Any],
    tracer: str,
) -> Evaluator:
    name = node.base.name
    if name not in constants:
        raise_configuration_error(
            entity=tracer, detail=_INDEX_BASE_MSG.format(name=name)
        )
    arr = np.asarray(constants[name])
    if arr.ndim != len(node.indices) or any(
        i >= dim for i, dim in zip(node.indices, arr.shape)
    ):
        raise_configuration_error(
            entity=tracer,
            detail=_INDEX_MSG.format(
                name=name, indices=list(node.indices), shape=arr.shape
            ),
        )
    element = np.float64(arr[node.indices])
    return lambda env: element


# =============================================================================
# Entry point
# =============================================================================


def define_tracer_functions(
    parameters: Mapping[str, ArrayLike],
    tracers: Mapping[str, Expr | str],
    *,
    auxiliary_fields: Iterable[str] = ("PAR",),
    helper_functions: HelperSource | None = None,
    sinking_tracers: Mapping[str, float] | None = None,
    grid: VerticalGrid | None = None,
    open_bottom: bool = True,
    smoothing_distance: float | None = None,
) -> TracerModel:
    """Validate tracer expressions and compile one rate function per tracer.

    Example:
        ``define_tracer_functions({"alpha": 2/3, "beta": 4/3, "delta": 1.0,
        "gamma": 1.0}, {"R": "alpha*R - beta*R*F", "F": "-gamma*F + delta*R*F"},
        auxiliary_fields=())`` builds a Lotka-Volterra model.

    Args:
        parameters: Parameter name -> default value (scalar or array).
        tracers: Tracer name -> expression tree or expression text.
        auxiliary_fields: Names of external input fields.
        helper_functions: Extra functions/constants usable in expressions.
        sinking_tracers: Tracer name -> positive downward sinking speed.
        grid: Vertical grid, required iff sinking_tracers is given.
        open_bottom: If False, sinking slows smoothly to zero at the bottom.
        smoothing_distance: Length scale of the closed bottom ramp.

    Returns:
        TracerModel with one TracerFunction per tracer.

    Raises:
        NameResolutionError: On an unresolved or ambiguous symbol, an unknown
            function, or a declared name that shadows a coordinate.
        ConfigurationError: On invalid parameter values, call arity, indices,
            sinking configuration or helper source.
    """
    bound = _freeze_parameters(parameters)
    expressions = {
        str(name): parse_expression(expr) if isinstance(expr, str) else expr
        for name, expr in tracers.items()
    }
    tracer_names = tuple(expressions)
    aux_names = tuple(auxiliary_fields)
    _check_declared_names(tracer_names, kind="Tracer")
    _check_declared_names(aux_names, kind="Auxiliary field")

    helpers = load_helper_functions(helper_functions)
    functions: dict[str, Callable[..., Any]] = {
        **MATH_FUNCTIONS,
        **KERNELS,
        **{k: v for k, v in helpers.items() if callable(v)},
    }
    namespaces = {
        "coordinate": frozenset(COORDINATES),
        "parameter": frozenset(bound),
        "tracer": frozenset(tracer_names),
        "auxiliary field": frozenset(aux_names),
    }

    # Validate everything before compiling anything.
    inputs: dict[str, frozenset[str]] = {}
    for name, expr in expressions.items():
        inputs[name] = _resolve_symbols(name, expr, namespaces, helpers)
        _check_calls(name, expr, functions)

    sinking: dict[str, SinkingFlux] = {}
    if sinking_tracers:
        if grid is None:
            raise_configuration_error(entity="sinking_tracers", detail=_SINKING_GRID_MSG)
        for name, speed in sinking_tracers.items():
            if name not in expressions:
                raise_configuration_error(
                    entity="sinking_tracers", detail=_SINKING_NAME_MSG.format(name=name)
                )
            sinking[name] = SinkingFlux.build(
                name,
                float(speed),
                grid,
                open_bottom=open_bottom,
                smoothing_distance=smoothing_distance,
            )

    declared = frozenset().union(*namespaces.values())
    constants: dict[str, Any] = {
        k: v for k, v in helpers.items() if k not in declared
    }
    constants.update({k: (v[()] if v.ndim == 0 else v) for k, v in bound.items()})

    compiled: dict[str, TracerFunction] = {}
    for name, expr in expressions.items():
        flux = sinking.get(name)
        compiled[name] = TracerFunction(
            name=name,
            expression=expr,
            tracer_names=tracer_names,
            auxiliary_fields=aux_names,
            inputs=inputs[name] | ({name} if flux is not None else frozenset()),
            sinking=flux,
            evaluator=_lower(expr, constants, functions, name),
        )

    logger.debug(
        "Compiled %d tracer function(s) (%d sinking) over %d parameter(s)",
        len(compiled),
        len(sinking),
        len(bound),
    )
    return TracerModel(
        parameters=MappingProxyType(bound),
        expressions=MappingProxyType(expressions),
        functions=MappingProxyType(compiled),
        auxiliary_fields=aux_names,
        helper_functions=MappingProxyType(helpers),
        sinking_tracers=MappingProxyType(
            {k: float(v) for k, v in (sinking_tracers or {}).items()}
        ),
        grid=grid,
        open_bottom=open_bottom,
        smoothing_distance=smoothing_distance,
    )
