# src/plankton_engine/nipizd.py
"""Size-structured NiPiZD model construction.

A NiPiZD model has one nutrient ``N``, ``n_phyto`` phytoplankton classes
``P1..Pn``, ``n_zoo`` zooplankton classes ``Z1..Zm`` and one detritus ``D``.
:func:`construct` runs the whole pipeline

    validate -> derive parameters -> build matrices -> compose expressions
    -> validate names -> compile

and returns an immutable :class:`NiPiZDModel`. Any failure aborts the call;
no partially built model is ever returned. :func:`instantiate` rebuilds a
model with the same class counts and new diameters, parameter sets or
matrices.

Example:
    ``model = construct(n_phyto=2, n_zoo=2)`` followed by
    ``model["P1"](None, {"N": 1.0, "P1": 0.1, ...}, {"PAR": 100.0})``.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final, TypeAlias

import numpy as np

from .allometry import TYPE_PREFIXES, build_size_classes
from .compiler import define_tracer_functions
from .composer import (
    DETRITUS,
    NUTRIENT,
    ParameterSets,
    check_light_limitation,
    compose_all,
    model_parameters,
    tracer_names,
)
from .errors import ConsistencyError, raise_configuration_error
from .expressions import parse_expression
from .interactions import build_matrices
from .parameters import (
    DEFAULT_BGC_ARGS,
    DEFAULT_INTERACTION_ARGS,
    DEFAULT_PHYTO_ARGS,
    DEFAULT_PHYTO_DIAMETERS,
    DEFAULT_ZOO_ARGS,
    DEFAULT_ZOO_DIAMETERS,
    BiogeochemistryArgs,
    InteractionArgs,
    PhytoplanktonArgs,
    ZooplanktonArgs,
    as_args,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from numpy.typing import ArrayLike, NDArray

    from .allometry import DiameterSpec, SizeClass
    from .compiler import HelperSource, TracerFunction, TracerModel
    from .expressions import Expr
    from .interactions import InteractionMatrix, MatrixLike
    from .sinking import VerticalGrid

logger = logging.getLogger(__name__)

DynamicsSpec: TypeAlias = "Expr | str | Callable[[SizeClass], Expr | str]"

_FIXED_ARGUMENTS: Final[frozenset[str]] = frozenset({"n_phyto", "n_zoo"})

_CONSISTENCY_MSG: Final[str] = (
    "Tracer '{tracer}' has an overridden expression but {argument} was not "
    "supplied; pass the parameter set matching the new expression explicitly."
)
_IGNORED_INTERACTIONS_MSG: Final[str] = (
    "interaction_args are ignored because both palatability_matrix and "
    "assimilation_efficiency_matrix were supplied."
)
_UNKNOWN_OVERRIDE_MSG: Final[str] = "no tracer or type prefix named {name!r}; expected one of {known}"
_CALLABLE_OVERRIDE_MSG: Final[str] = "callable dynamics are only accepted for type prefixes {prefixes}"
_EXTRA_PARAMETER_MSG: Final[str] = "collides with a parameter derived by the model"
_INSTANTIATE_MSG: Final[str] = "not a construction argument; expected one of {known}"
_FIXED_MSG: Final[str] = "class counts are fixed for a model type; call construct() instead"

_PREFIX_ARGUMENT: Final[dict[str, str]] = {"P": "phyto_args", "Z": "zoo_args"}


@dataclass(frozen=True, slots=True, eq=False)
class NiPiZDModel:
    """Model type descriptor of a size-structured NiPiZD model.

    Attributes:
        size_classes: Ordered plankton classes (phytoplankton first).
        parameter_sets: Validated phytoplankton, zooplankton and biogeochemistry sets.
        interaction_args: Feeding traits used to derive matrices, or None if
            both matrices were supplied.
        palatability: (predator, prey) palatability matrix.
        assimilation_efficiency: (predator, prey) assimilation efficiency matrix.
        light_limitation: Selected light limitation formulation.
        model: Compiled tracer functions and their parameters.
        arguments: Arguments of the construction call, as passed.
    """

    size_classes: tuple[SizeClass, ...]
    parameter_sets: ParameterSets
    interaction_args: InteractionArgs | None
    palatability: InteractionMatrix
    assimilation_efficiency: InteractionMatrix
    light_limitation: str
    model: TracerModel
    arguments: Mapping[str, Any]

    @property
    def n_phyto(self) -> int:
        """Number of phytoplankton classes."""
        return sum(1 for c in self.size_classes if c.prefix == "P")

    @property
    def n_zoo(self) -> int:
        """Number of zooplankton classes."""
        return sum(1 for c in self.size_classes if c.prefix == "Z")

    @property
    def tracer_names(self) -> tuple[str, ...]:
        """Ordered tracer names: N, P1..Pn, Z1..Zm, D."""
        return self.model.tracer_names

    @property
    def diameters(self) -> dict[str, float]:
        """Diameter of every size class."""
        return {c.name: c.diameter for c in self.size_classes}

    @property
    def functions(self) -> Mapping[str, TracerFunction]:
        """Compiled function per tracer."""
        return self.model.functions

    @property
    def parameters(self) -> Mapping[str, NDArray[np.float64]]:
        """Bound parameter values."""
        return self.model.parameters

    @property
    def expressions(self) -> Mapping[str, Expr]:
        """Rate expression per tracer."""
        return self.model.expressions

    @property
    def auxiliary_fields(self) -> tuple[str, ...]:
        """Declared auxiliary fields."""
        return self.model.auxiliary_fields

    def __getitem__(self, tracer: str) -> TracerFunction:
        return self.model[tracer]

    def evaluate(
        self,
        coordinates: Any,
        tracers: Any,
        auxiliary: Any = None,
    ) -> dict[str, Any]:
        """Evaluate every tracer function; see :meth:`TracerModel.evaluate`."""
        return self.model.evaluate(coordinates, tracers, auxiliary)


# =============================================================================
# Tracer dynamics overrides
# =============================================================================


def _resolve_overrides(
    tracer_dynamics: Mapping[str, DynamicsSpec] | None,
    classes: tuple[SizeClass, ...],
) -> dict[str, Expr]:
    """Expand overrides keyed by tracer name or type prefix into per-tracer expressions.

    A tracer name entry wins over its type prefix entry.
    """
    if not tracer_dynamics:
        return {}
    names = tracer_names(classes)
    prefixes = tuple(TYPE_PREFIXES.values())
    for key, value in tracer_dynamics.items():
        if key not in names and key not in prefixes:
            raise_configuration_error(
                entity="tracer_dynamics",
                detail=_UNKNOWN_OVERRIDE_MSG.format(
                    name=key, known=[*names, *prefixes]
                ),
            )
        if callable(value) and key not in prefixes:
            raise_configuration_error(
                entity="tracer_dynamics",
                detail=_CALLABLE_OVERRIDE_MSG.format(prefixes=list(prefixes)),
            )

    overrides: dict[str, Expr] = {}
    for size_class in classes:
        spec = tracer_dynamics.get(size_class.name)
        if spec is None:
            spec = tracer_dynamics.get(size_class.prefix)
            if callable(spec):
                spec = spec(size_class)
        if spec is not None:
            overrides[size_class.name] = _as_expression(spec)
    for name in (NUTRIENT, DETRITUS):
        if name in tracer_dynamics:
            overrides[name] = _as_expression(tracer_dynamics[name])
    return overrides


def _as_expression(spec: Expr | str) -> Expr:
    return parse_expression(spec) if isinstance(spec, str) else spec


def _check_consistency(
    overrides: Iterable[str],
    *,
    explicit: Mapping[str, bool],
) -> None:
    for tracer in overrides:
        if tracer in (NUTRIENT, DETRITUS):
            argument = "bgc_args"
        else:
            argument = _PREFIX_ARGUMENT[tracer[0]]
        if not explicit[argument]:
            raise ConsistencyError(
                _CONSISTENCY_MSG.format(tracer=tracer, argument=argument)
            )


# =============================================================================
# Construction
# =============================================================================


def _snapshot(value: Any) -> Any:
    """Copy the containers of a construction argument, leaving leaves shared."""
    if isinstance(value, Mapping):
        return {k: _snapshot(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return tuple(_snapshot(v) for v in value)
    if isinstance(value, np.ndarray):
        copied = np.array(value, copy=True)
        copied.flags.writeable = False
        return copied
    return value


def construct(  # noqa: PLR0913
    n_phyto: int = 2,
    n_zoo: int = 2,
    phyto_diameters: DiameterSpec = DEFAULT_PHYTO_DIAMETERS,
    zoo_diameters: DiameterSpec = DEFAULT_ZOO_DIAMETERS,
    *,
    phyto_args: PhytoplanktonArgs | Mapping[str, Any] | None = None,
    zoo_args: ZooplanktonArgs | Mapping[str, Any] | None = None,
    interaction_args: InteractionArgs | Mapping[str, Any] | None = None,
    bgc_args: BiogeochemistryArgs | Mapping[str, Any] | None = None,
    palatability_matrix: MatrixLike | None = None,
    assimilation_efficiency_matrix: MatrixLike | None = None,
    light_limitation: str = "smith",
    tracer_dynamics: Mapping[str, DynamicsSpec] | None = None,
    extra_parameters: Mapping[str, ArrayLike] | None = None,
    auxiliary_fields: Iterable[str] = ("PAR",),
    helper_functions: HelperSource | None = None,
    sinking_tracers: Mapping[str, float] | None = None,
    grid: VerticalGrid | None = None,
    open_bottom: bool = True,
    smoothing_distance: float | None = None,
) -> NiPiZDModel:
    """Construct a size-structured NiPiZD model.

    Args:
        n_phyto: Number of phytoplankton classes (>= 1).
        n_zoo: Number of zooplankton classes (>= 1).
        phyto_diameters: Explicit diameters or a diameter range.
        zoo_diameters: Explicit diameters or a diameter range.
        phyto_args: Phytoplankton parameters; defaults to DEFAULT_PHYTO_ARGS.
        zoo_args: Zooplankton parameters; defaults to DEFAULT_ZOO_ARGS.
        interaction_args: Feeding traits; defaults to DEFAULT_INTERACTION_ARGS.
        bgc_args: Nutrient and detritus constants; defaults to DEFAULT_BGC_ARGS.
        palatability_matrix: Optional override matrix, used verbatim.
        assimilation_efficiency_matrix: Optional override matrix, used verbatim.
        light_limitation: ``"smith"`` or ``"geider"``.
        tracer_dynamics: Expressions replacing the default composition, keyed
            by tracer name, or by ``"P"``/``"Z"`` for every class of a type (a
            callable taking the SizeClass is accepted for type keys).
        extra_parameters: Additional parameters referenced by overrides.
        auxiliary_fields: External input fields.
        helper_functions: Extra functions available to expressions.
        sinking_tracers: Tracer name -> positive sinking speed.
        grid: Vertical grid, required iff sinking_tracers is given.
        open_bottom: Whether sinking biomass leaves through the bottom.
        smoothing_distance: Closed bottom ramp length.

    Returns:
        NiPiZDModel descriptor.

    Raises:
        ConfigurationError: On invalid counts, diameters, parameter sets,
            matrices, overrides or sinking configuration.
        ConsistencyError: If an override lacks its explicit parameter set.
        NameResolutionError: If an expression uses an unresolvable symbol.
    """
    arguments = MappingProxyType({k: _snapshot(v) for k, v in locals().items()})

    # validate
    check_light_limitation(light_limitation)
    explicit = {
        "phyto_args": phyto_args is not None,
        "zoo_args": zoo_args is not None,
        "bgc_args": bgc_args is not None,
    }
    parameter_sets = ParameterSets(
        phytoplankton=as_args(
            PhytoplanktonArgs, DEFAULT_PHYTO_ARGS if phyto_args is None else phyto_args
        ),
        zooplankton=as_args(
            ZooplanktonArgs, DEFAULT_ZOO_ARGS if zoo_args is None else zoo_args
        ),
        biogeochemistry=as_args(
            BiogeochemistryArgs, DEFAULT_BGC_ARGS if bgc_args is None else bgc_args
        ),
    )

    # derive parameters
    classes = build_size_classes(n_phyto, n_zoo, phyto_diameters, zoo_diameters)
    overrides = _resolve_overrides(tracer_dynamics, classes)
    _check_consistency(overrides, explicit=explicit)

    # build matrices
    both_supplied = (
        palatability_matrix is not None and assimilation_efficiency_matrix is not None
    )
    if both_supplied and interaction_args is not None:
        warnings.warn(_IGNORED_INTERACTIONS_MSG, RuntimeWarning, stacklevel=2)
    resolved_interactions = None
    if not both_supplied:
        resolved_interactions = as_args(
            InteractionArgs,
            DEFAULT_INTERACTION_ARGS if interaction_args is None else interaction_args,
        )
    matrices = build_matrices(
        classes,
        resolved_interactions,
        palatability=palatability_matrix,
        assimilation_efficiency=assimilation_efficiency_matrix,
    )
    logger.debug(
        "Built %dx%d interaction matrices for %s",
        len(classes),
        len(classes),
        [c.name for c in classes],
    )

    # compose expressions
    expressions = compose_all(
        classes,
        parameter_sets,
        matrices,
        light_limitation=light_limitation,
        skip=frozenset(overrides),
    )
    expressions.update(overrides)
    ordered = {name: expressions[name] for name in tracer_names(classes)}

    parameters: dict[str, Any] = model_parameters(classes, parameter_sets, matrices)
    for name, value in (extra_parameters or {}).items():
        if name in parameters:
            raise_configuration_error(entity=name, detail=_EXTRA_PARAMETER_MSG)
        parameters[name] = value

    # validate names, compile
    model = define_tracer_functions(
        parameters,
        ordered,
        auxiliary_fields=auxiliary_fields,
        helper_functions=helper_functions,
        sinking_tracers=sinking_tracers,
        grid=grid,
        open_bottom=open_bottom,
        smoothing_distance=smoothing_distance,
    )
    logger.debug(
        "Constructed NiPiZD model with %d phytoplankton and %d zooplankton",
        n_phyto,
        n_zoo,
    )
    return NiPiZDModel(
        size_classes=classes,
        parameter_sets=parameter_sets,
        interaction_args=resolved_interactions,
        palatability=matrices[0],
        assimilation_efficiency=matrices[1],
        light_limitation=light_limitation,
        model=model,
        arguments=arguments,
    )


def instantiate(model: NiPiZDModel, **overrides: Any) -> NiPiZDModel:
    """Rebuild a model type with new diameters, parameter sets or matrices.

    Arguments not given keep the values the model was constructed with. The
    class counts cannot change.

    Example:
        ``instantiate(model, phyto_diameters=[1.5, 8.0])``

    Args:
        model: Model returned by :func:`construct`.
        **overrides: Any keyword argument of :func:`construct` except the counts.

    Returns:
        A new NiPiZDModel; ``model`` is left untouched.

    Raises:
        ConfigurationError: If a keyword is not a construction argument or is
            a class count.
    """
    for name in overrides:
        if name in _FIXED_ARGUMENTS:
            raise_configuration_error(entity=name, detail=_FIXED_MSG)
        if name not in model.arguments:
            raise_configuration_error(
                entity=name,
                detail=_INSTANTIATE_MSG.format(known=sorted(model.arguments)),
            )
    arguments = {**model.arguments, **overrides}
    logger.debug("Instantiating model with overrides %s", sorted(overrides))
    return construct(**arguments)
