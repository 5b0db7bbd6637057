# src/plankton_engine/parameters.py
"""Typed parameter sets for size-structured plankton models.

This module defines the pydantic schemas that replace loosely typed
name -> value dictionaries, together with the immutable default sets.

Notes:
    - Every schema forbids unknown keys (``extra="forbid"``) so a misspelt
      parameter fails at construction.
    - Models are frozen; overrides go through :func:`merge_args`, which builds a
      new validated instance and never touches the base.
    - A plankton parameter is given either as a scalar field (shared by every
      size class of that functional type) or as allometric coefficients under
      ``allometry`` (one value per class, derived from its diameter), never both.
    - Raw nested mappings in the dictionary layout, e.g.
      ``{"allometry": {"maximum_growth_rate": {"a": 2 / DAY, "b": -0.15}}}``,
      are accepted wherever a schema is expected.
    - Rates are expressed per second.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, ClassVar, Final, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigurationError

DAY: Final[float] = 86400.0

_ARGS_INVALID_MSG: Final[str] = "Invalid {kind}: {detail}"
_UNKNOWN_ALLOMETRY_MSG: Final[str] = (
    "allometry entries {names} are not {kind} parameters; expected a subset of {known}"
)
_DOUBLE_DEFINITION_MSG: Final[str] = (
    "parameter(s) {names} are given both as a scalar and under allometry; "
    "each parameter must be defined exactly once"
)
_DIAMETER_ORDER_MSG: Final[str] = (
    "min_diameter ({min_diameter}) must be smaller than max_diameter ({max_diameter})"
)

ArgsT = TypeVar("ArgsT", bound=BaseModel)


class _FrozenModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class AllometricCoefficients(_FrozenModel):
    """Power-law coefficients ``value = a * diameter**b``."""

    a: float
    b: float


class DiameterRange(_FrozenModel):
    """Range from which one diameter per size class is derived.

    The splitting policy is validated when diameters are derived so that an
    unknown policy surfaces as a ConfigurationError naming the policy.
    """

    min_diameter: float = Field(gt=0.0)
    max_diameter: float = Field(gt=0.0)
    splitting: str = "log_splitting"

    @model_validator(mode="after")
    def _check_order(self) -> DiameterRange:
        if self.min_diameter >= self.max_diameter:
            raise ValueError(
                _DIAMETER_ORDER_MSG.format(
                    min_diameter=self.min_diameter, max_diameter=self.max_diameter
                )
            )
        return self


class PlanktonArgs(_FrozenModel):
    """Common base of the per functional type parameter sets.

    Subclasses declare each biological parameter as an optional scalar field.
    ``allometry`` may provide any of them per size class instead.
    """

    kind: ClassVar[str] = "plankton"

    allometry: dict[str, AllometricCoefficients] = Field(default_factory=dict)
    linear_mortality: float | None = Field(default=None, ge=0.0)
    quadratic_mortality: float | None = Field(default=None, ge=0.0)

    @classmethod
    def parameter_names(cls) -> tuple[str, ...]:
        """Names of the biological parameters this set can define."""
        return tuple(name for name in cls.model_fields if name != "allometry")

    @model_validator(mode="after")
    def _check_allometry(self) -> PlanktonArgs:
        known = self.parameter_names()
        unknown = sorted(set(self.allometry) - set(known))
        if unknown:
            raise ValueError(
                _UNKNOWN_ALLOMETRY_MSG.format(
                    names=unknown, kind=self.kind, known=sorted(known)
                )
            )
        doubled = sorted(
            name for name in self.allometry if getattr(self, name) is not None
        )
        if doubled:
            raise ValueError(_DOUBLE_DEFINITION_MSG.format(names=doubled))
        return self

    def defined_names(self) -> frozenset[str]:
        """Names defined either as a scalar or through allometry."""
        scalars = {n for n in self.parameter_names() if getattr(self, n) is not None}
        return frozenset(scalars | set(self.allometry))


class PhytoplanktonArgs(PlanktonArgs):
    """Phytoplankton parameters.

    Attributes:
        maximum_growth_rate: Maximum growth rate [1/s].
        nutrient_half_saturation: Nutrient half saturation constant.
        alpha: Initial photosynthetic slope for Smith light limitation.
        photosynthetic_slope: Initial photosynthetic slope for Geider light limitation.
        chlorophyll_to_carbon_ratio: Cellular chlorophyll to carbon ratio (Geider).
        linear_mortality: Linear mortality rate [1/s].
        quadratic_mortality: Quadratic mortality rate.
    """

    kind: ClassVar[str] = "phytoplankton"

    maximum_growth_rate: float | None = Field(default=None, ge=0.0)
    nutrient_half_saturation: float | None = Field(default=None, gt=0.0)
    alpha: float | None = Field(default=None, ge=0.0)
    photosynthetic_slope: float | None = Field(default=None, ge=0.0)
    chlorophyll_to_carbon_ratio: float | None = Field(default=None, ge=0.0)


class ZooplanktonArgs(PlanktonArgs):
    """Zooplankton parameters.

    Attributes:
        maximum_predation_rate: Maximum predation rate [1/s].
        holling_half_saturation: Prey density at half the maximum predation rate.
        linear_mortality: Linear mortality rate [1/s].
        quadratic_mortality: Quadratic mortality rate.
    """

    kind: ClassVar[str] = "zooplankton"

    maximum_predation_rate: float | None = Field(default=None, ge=0.0)
    holling_half_saturation: float | None = Field(default=None, gt=0.0)


class FeedingTraits(_FrozenModel):
    """Feeding rules of a size class or of a whole functional type."""

    can_eat: bool = False
    can_be_eaten: bool = False
    optimum_predator_prey_ratio: float = Field(default=0.0, ge=0.0)
    specificity: float = Field(default=0.0, ge=0.0)
    protection: float = Field(default=1.0, ge=0.0, le=1.0)
    assimilation_efficiency: float = Field(default=0.0, ge=0.0, le=1.0)


class InteractionArgs(_FrozenModel):
    """Arguments from which palatability and assimilation efficiency are derived.

    Attributes:
        traits: Feeding traits keyed by functional type prefix (``"P"``, ``"Z"``)
            or by size class name (``"Z2"``); a class name entry wins over its
            type entry.
        self_predation: Whether the matrix diagonal is derived like any other
            cell instead of being forced to zero.
    """

    traits: dict[str, FeedingTraits]
    self_predation: bool = False


class BiogeochemistryArgs(_FrozenModel):
    """Nutrient and detritus constants."""

    detritus_remineralization: float = Field(ge=0.0)


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_PHYTO_DIAMETERS: Final[DiameterRange] = DiameterRange(
    min_diameter=2.0, max_diameter=10.0, splitting="log_splitting"
)
DEFAULT_ZOO_DIAMETERS: Final[DiameterRange] = DiameterRange(
    min_diameter=20.0, max_diameter=100.0, splitting="linear_splitting"
)

DEFAULT_PHYTO_ARGS: Final[PhytoplanktonArgs] = PhytoplanktonArgs(
    allometry={
        "maximum_growth_rate": AllometricCoefficients(a=2.0 / DAY, b=-0.15),
        "nutrient_half_saturation": AllometricCoefficients(a=0.17, b=0.27),
    },
    linear_mortality=8e-7,
    alpha=0.1953 / DAY,
    photosynthetic_slope=0.46e-5,
    chlorophyll_to_carbon_ratio=0.1,
)

DEFAULT_ZOO_ARGS: Final[ZooplanktonArgs] = ZooplanktonArgs(
    allometry={
        "maximum_predation_rate": AllometricCoefficients(a=30.84 / DAY, b=-0.16),
    },
    linear_mortality=8e-7,
    quadratic_mortality=1e-6,
    holling_half_saturation=5.0,
)

DEFAULT_INTERACTION_ARGS: Final[InteractionArgs] = InteractionArgs(
    traits={
        "P": FeedingTraits(can_eat=False, can_be_eaten=True),
        "Z": FeedingTraits(
            can_eat=True,
            can_be_eaten=False,
            optimum_predator_prey_ratio=10.0,
            specificity=0.3,
            assimilation_efficiency=0.32,
        ),
    },
)

DEFAULT_BGC_ARGS: Final[BiogeochemistryArgs] = BiogeochemistryArgs(
    detritus_remineralization=0.1213 / DAY,
)


# =============================================================================
# Validation / override helpers
# =============================================================================


def as_args(model: type[ArgsT], value: ArgsT | Mapping[str, Any]) -> ArgsT:
    """Validate a parameter set given as a schema instance or a raw mapping.

    Args:
        model: Schema class.
        value: Instance of the schema or a nested mapping in its layout.

    Returns:
        Validated schema instance.

    Raises:
        ConfigurationError: If the mapping does not satisfy the schema.
    """
    if isinstance(value, model):
        return value
    kind = getattr(model, "kind", model.__name__)
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise ConfigurationError(
            _ARGS_INVALID_MSG.format(kind=kind, detail=exc)
        ) from exc


def _deep_merge(base: Mapping[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, value in updates.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def merge_args(base: ArgsT, overrides: Mapping[str, Any]) -> ArgsT:
    """Return a new parameter set with nested overrides applied.

    Example:
        ``merge_args(DEFAULT_PHYTO_ARGS, {"allometry": {"maximum_growth_rate":
        {"a": 2.5 / DAY}}})`` changes one coefficient and keeps the rest.

    A scalar override of a parameter the base defines through ``allometry``
    replaces the allometric entry, and an ``allometry`` override of a
    parameter the base holds as a scalar replaces the scalar.

    Args:
        base: Parameter set to start from; it is not modified.
        overrides: Nested mapping of values to replace.

    Returns:
        Newly validated parameter set.

    Raises:
        ConfigurationError: If the merged mapping does not satisfy the schema.
    """
    dumped = base.model_dump()
    allometry = dumped.get("allometry")
    if isinstance(allometry, dict):
        explicit = overrides.get("allometry") or {}
        for name, value in overrides.items():
            if value is not None and name in allometry and name not in explicit:
                del allometry[name]
        for name in explicit:
            if name in dumped and overrides.get(name) is None:
                dumped[name] = None
    merged = _deep_merge(dumped, overrides)
    return as_args(type(base), merged)
