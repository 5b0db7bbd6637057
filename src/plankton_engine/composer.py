# src/plankton_engine/composer.py
"""Compose the default size-structured NPZD tracer expressions.

Tracers are ``N`` (nutrient), one tracer per size class (``P1..Pn``,
``Z1..Zm``) and ``D`` (detritus). Per-class parameters are referenced as
elements of vector parameters over the full class set (``linear_mortality[2]``)
and interaction terms as elements of the (predator, prey) matrices
(``palatability[2, 0]``), so the expressions compile against the values
returned by :func:`model_parameters`.

Mass balance:
    - growth of a phytoplankton class is taken from ``N``,
    - mortality of any class goes to ``D``,
    - grazed prey biomass goes to the predator (assimilated share) and to
      ``D`` (sloppy feeding share),
    - remineralization moves ``D`` back to ``N``,
    so the derivatives of all tracers sum to zero.

Predation terms are expanded per (predator, prey) pair; pairs with zero
palatability are left out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

import numpy as np

from .allometry import PHYTOPLANKTON, ZOOPLANKTON, derive_parameters
from .errors import raise_configuration_error
from .expressions import call, index, sym, total

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from .allometry import SizeClass
    from .expressions import Expr
    from .interactions import InteractionMatrix
    from .parameters import (
        BiogeochemistryArgs,
        PhytoplanktonArgs,
        PlanktonArgs,
        ZooplanktonArgs,
    )

logger = logging.getLogger(__name__)

NUTRIENT: Final[str] = "N"
DETRITUS: Final[str] = "D"
LIGHT_FIELD: Final[str] = "PAR"

PALATABILITY: Final[str] = "palatability"
ASSIMILATION_EFFICIENCY: Final[str] = "assimilation_efficiency"
REMINERALIZATION: Final[str] = "detritus_remineralization"

LIGHT_LIMITATIONS: Final[dict[str, tuple[str, ...]]] = {
    "smith": ("alpha",),
    "geider": ("photosynthetic_slope", "chlorophyll_to_carbon_ratio"),
}

_GROWTH_PARAMETERS: Final[tuple[str, ...]] = (
    "maximum_growth_rate",
    "nutrient_half_saturation",
)
_PREDATION_PARAMETERS: Final[tuple[str, ...]] = (
    "maximum_predation_rate",
    "holling_half_saturation",
)

_LIGHT_MSG: Final[str] = "unknown light limitation {value!r}; expected one of {known}"
_MISSING_MSG: Final[str] = "required by {process} of class {name} but not defined"
_UNKNOWN_TRACER_MSG: Final[str] = "not a tracer of this model; expected one of {known}"


@dataclass(frozen=True, slots=True)
class ParameterSets:
    """Validated parameter sets of one size-structured model.

    Attributes:
        phytoplankton: Phytoplankton parameter set.
        zooplankton: Zooplankton parameter set.
        biogeochemistry: Nutrient and detritus constants.
    """

    phytoplankton: PhytoplanktonArgs
    zooplankton: ZooplanktonArgs
    biogeochemistry: BiogeochemistryArgs

    def for_class(self, size_class: SizeClass) -> PlanktonArgs:
        """Parameter set of a class's functional type."""
        if size_class.functional_type == PHYTOPLANKTON:
            return self.phytoplankton
        return self.zooplankton


def tracer_names(classes: Sequence[SizeClass]) -> tuple[str, ...]:
    """Ordered tracer names: nutrient, plankton classes, detritus."""
    return (NUTRIENT, *(c.name for c in classes), DETRITUS)


def check_light_limitation(light_limitation: str) -> tuple[str, ...]:
    """Return the parameters a light limitation formulation needs.

    Raises:
        ConfigurationError: If the formulation is unknown.
    """
    names = LIGHT_LIMITATIONS.get(light_limitation)
    if names is None:
        raise_configuration_error(
            entity="light_limitation",
            detail=_LIGHT_MSG.format(
                value=light_limitation, known=sorted(LIGHT_LIMITATIONS)
            ),
        )
    return names


# =============================================================================
# Parameter values
# =============================================================================


def model_parameters(
    classes: Sequence[SizeClass],
    parameter_sets: ParameterSets,
    matrices: tuple[InteractionMatrix, InteractionMatrix],
) -> dict[str, NDArray[np.float64]]:
    """Values of every parameter the composed expressions may reference.

    Plankton parameters become vectors over the full class set; a class whose
    functional type leaves a parameter undefined holds 0 there.

    Args:
        classes: Ordered class set.
        parameter_sets: Validated parameter sets.
        matrices: (palatability, assimilation efficiency).

    Returns:
        Parameter name -> value.
    """
    diameters = np.array([c.diameter for c in classes], dtype=np.float64)
    values: dict[str, NDArray[np.float64]] = {}
    for functional_type, args in (
        (PHYTOPLANKTON, parameter_sets.phytoplankton),
        (ZOOPLANKTON, parameter_sets.zooplankton),
    ):
        mask = np.array([c.functional_type == functional_type for c in classes])
        if not mask.any():
            continue
        for name, derived in derive_parameters(args, diameters[mask]).items():
            vector = values.setdefault(name, np.zeros(len(classes)))
            vector[mask] = derived

    palatability, assimilation = matrices
    values[PALATABILITY] = palatability.values
    values[ASSIMILATION_EFFICIENCY] = assimilation.values
    values[REMINERALIZATION] = np.asarray(
        parameter_sets.biogeochemistry.detritus_remineralization, dtype=np.float64
    )
    return values


# =============================================================================
# Process terms
# =============================================================================


@dataclass(frozen=True, slots=True)
class _Community:
    classes: tuple[SizeClass, ...]
    parameter_sets: ParameterSets
    palatability: InteractionMatrix
    assimilation_efficiency: InteractionMatrix
    light_limitation: str

    def position(self, size_class: SizeClass) -> int:
        return self.palatability.index_of(size_class.name)

    def require(self, size_class: SizeClass, names: Sequence[str], process: str) -> None:
        defined = self.parameter_sets.for_class(size_class).defined_names()
        for name in names:
            if name not in defined:
                raise_configuration_error(
                    entity=name,
                    detail=_MISSING_MSG.format(process=process, name=size_class.name),
                )

    def feeding_pairs(self) -> list[tuple[SizeClass, SizeClass]]:
        """(predator, prey) pairs with non-zero palatability."""
        pairs = [
            (predator, prey)
            for predator in self.classes
            for prey in self.classes
            if self.palatability[predator.name, prey.name] != 0.0
        ]
        for predator in {p for p, _ in pairs}:
            self.require(predator, _PREDATION_PARAMETERS, "predation")
        return pairs


def _net(gains: Sequence[Expr], losses: Sequence[Expr]) -> Expr:
    if not losses:
        return total(gains)
    if not gains:
        return -total(losses)
    return total(gains) - total(losses)


def _growth(community: _Community, size_class: SizeClass) -> Expr:
    light = community.light_limitation
    light_names = check_light_limitation(light)
    community.require(
        size_class,
        (*_GROWTH_PARAMETERS, *light_names),
        f"{light} photosynthetic growth",
    )
    i = community.position(size_class)
    if light == "geider":
        return call(
            "photosynthetic_growth_single_nutrient_geider_light",
            sym(NUTRIENT),
            sym(size_class.name),
            sym(LIGHT_FIELD),
            index("maximum_growth_rate", i),
            index("nutrient_half_saturation", i),
            index("photosynthetic_slope", i),
            index("chlorophyll_to_carbon_ratio", i),
        )
    return call(
        "photosynthetic_growth_single_nutrient",
        sym(NUTRIENT),
        sym(size_class.name),
        sym(LIGHT_FIELD),
        index("maximum_growth_rate", i),
        index("nutrient_half_saturation", i),
        index("alpha", i),
    )


def _mortality(community: _Community, size_class: SizeClass) -> list[Expr]:
    defined = community.parameter_sets.for_class(size_class).defined_names()
    i = community.position(size_class)
    terms: list[Expr] = []
    if "linear_mortality" in defined:
        terms.append(
            call("linear_loss", sym(size_class.name), index("linear_mortality", i))
        )
    if "quadratic_mortality" in defined:
        terms.append(
            call(
                "quadratic_loss", sym(size_class.name), index("quadratic_mortality", i)
            )
        )
    return terms


def _predation(
    kernel: str,
    community: _Community,
    predator: SizeClass,
    prey: SizeClass,
) -> Expr:
    i, j = community.position(predator), community.position(prey)
    args = [sym(prey.name), sym(predator.name)]
    if kernel != "predation_loss_preferential":
        args.append(index(ASSIMILATION_EFFICIENCY, i, j))
    args.extend(
        (
            index("maximum_predation_rate", i),
            index("holling_half_saturation", i),
            index(PALATABILITY, i, j),
        )
    )
    return call(kernel, *args)


def _remineralization() -> Expr:
    return call("remineralization_idealized", sym(DETRITUS), sym(REMINERALIZATION))


# =============================================================================
# Composition
# =============================================================================


def _community(
    classes: Sequence[SizeClass],
    parameter_sets: ParameterSets,
    matrices: tuple[InteractionMatrix, InteractionMatrix],
    light_limitation: str,
) -> _Community:
    check_light_limitation(light_limitation)
    palatability, assimilation = matrices
    return _Community(
        classes=tuple(classes),
        parameter_sets=parameter_sets,
        palatability=palatability,
        assimilation_efficiency=assimilation,
        light_limitation=light_limitation,
    )


def _compose(tracer: str, community: _Community) -> Expr:
    classes = community.classes
    pairs = community.feeding_pairs()
    if tracer == NUTRIENT:
        uptake = [
            _growth(community, c) for c in classes if c.functional_type == PHYTOPLANKTON
        ]
        return _net([_remineralization()], uptake)
    if tracer == DETRITUS:
        gains = [term for c in classes for term in _mortality(community, c)]
        gains.extend(
            _predation("predation_assimilation_loss_preferential", community, pred, prey)
            for pred, prey in pairs
        )
        return _net(gains, [_remineralization()])

    size_class = next((c for c in classes if c.name == tracer), None)
    if size_class is None:
        raise_configuration_error(
            entity=tracer,
            detail=_UNKNOWN_TRACER_MSG.format(known=list(tracer_names(classes))),
        )
    gains = []
    if size_class.functional_type == PHYTOPLANKTON:
        gains.append(_growth(community, size_class))
    gains.extend(
        _predation("predation_gain_preferential", community, pred, prey)
        for pred, prey in pairs
        if pred == size_class
    )
    losses = _mortality(community, size_class)
    losses.extend(
        _predation("predation_loss_preferential", community, pred, prey)
        for pred, prey in pairs
        if prey == size_class
    )
    return _net(gains, losses)


def compose(
    tracer: str,
    classes: Sequence[SizeClass],
    parameter_sets: ParameterSets,
    matrices: tuple[InteractionMatrix, InteractionMatrix],
    *,
    light_limitation: str = "smith",
) -> Expr:
    """Compose the default rate expression of one tracer.

    Args:
        tracer: Tracer name (``N``, ``D`` or a class name).
        classes: Ordered class set.
        parameter_sets: Validated parameter sets.
        matrices: (palatability, assimilation efficiency), rows are predators.
        light_limitation: ``"smith"`` or ``"geider"``.

    Returns:
        Expression of the tracer's net rate of change.

    Raises:
        ConfigurationError: If the tracer is unknown, the light limitation is
            unknown, or a selected process lacks a required parameter.
    """
    return _compose(
        tracer, _community(classes, parameter_sets, matrices, light_limitation)
    )


def compose_all(
    classes: Sequence[SizeClass],
    parameter_sets: ParameterSets,
    matrices: tuple[InteractionMatrix, InteractionMatrix],
    *,
    light_limitation: str = "smith",
    skip: frozenset[str] = frozenset(),
) -> dict[str, Expr]:
    """Compose the default expression of every tracer, in tracer order.

    Args:
        classes: Ordered class set.
        parameter_sets: Validated parameter sets.
        matrices: (palatability, assimilation efficiency).
        light_limitation: ``"smith"`` or ``"geider"``.
        skip: Tracers whose default composition is not needed.

    Returns:
        Tracer name -> expression for every tracer not in ``skip``.
    """
    community = _community(classes, parameter_sets, matrices, light_limitation)
    expressions = {
        name: _compose(name, community)
        for name in tracer_names(classes)
        if name not in skip
    }
    logger.debug(
        "Composed %d tracer expression(s) with %s light limitation",
        len(expressions),
        light_limitation,
    )
    return expressions
