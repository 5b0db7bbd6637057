# src/plankton_engine/allometry.py
"""Allometric derivation of per size class diameters and parameters.

Diameters are given either explicitly (one per class) or as a range that is
split into ``n`` values:

- ``log_splitting``: geometrically spaced, both endpoints included.
- ``linear_splitting``: arithmetically spaced, both endpoints included.

With a single class the range yields its midpoint on the splitting's scale
(geometric mean for ``log_splitting``, arithmetic mean for ``linear_splitting``).

Every plankton parameter given with allometric coefficients is then evaluated
per class as ``a * diameter**b``; scalar parameters are shared by every class
of the functional type.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import numpy as np

from .errors import raise_configuration_error
from .kernels import allometric_scaling_power
from .parameters import DiameterRange, as_args

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from numpy.typing import NDArray

    from .parameters import PlanktonArgs

    DiameterSpec = DiameterRange | Mapping[str, Any] | Sequence[float]

logger = logging.getLogger(__name__)

_COUNT_MSG: Final[str] = "class count must be a positive integer; got {n!r}"
_LENGTH_MSG: Final[str] = "expected {expected} diameters, got {actual}"
_POSITIVE_MSG: Final[str] = "diameters must be finite and positive; got {values}"
_NUMERIC_MSG: Final[str] = (
    "expected a diameter range or a sequence of numbers; got {spec!r}"
)
_POLICY_MSG: Final[str] = "unknown splitting policy {policy!r}; expected one of {known}"


def scale(a: float, b: float, diameter: float) -> float:
    """Power-law allometric scaling ``a * diameter**b``.

    Args:
        a: Scale coefficient.
        b: Exponent.
        diameter: Equivalent spherical diameter.

    Returns:
        Scaled value as a float.
    """
    return float(allometric_scaling_power(a, b, diameter))


def _log_splitting(n: int, lo: float, hi: float) -> NDArray[np.float64]:
    if n == 1:
        return np.array([np.sqrt(lo * hi)])
    return np.geomspace(lo, hi, n)


def _linear_splitting(n: int, lo: float, hi: float) -> NDArray[np.float64]:
    if n == 1:
        return np.array([0.5 * (lo + hi)])
    return np.linspace(lo, hi, n)


_SPLITTERS: Final[dict[str, Callable[[int, float, float], NDArray[np.float64]]]] = {
    "log_splitting": _log_splitting,
    "linear_splitting": _linear_splitting,
}


def split_diameters(
    n: int,
    min_diameter: float,
    max_diameter: float,
    splitting: str,
    *,
    entity: str = "diameters",
) -> NDArray[np.float64]:
    """Split a diameter range into ``n`` strictly increasing diameters.

    Args:
        n: Number of size classes.
        min_diameter: Smallest diameter (first element when ``n > 1``).
        max_diameter: Largest diameter (last element when ``n > 1``).
        splitting: Splitting policy name.
        entity: Name used in error messages.

    Returns:
        Array of shape (n,).

    Raises:
        ConfigurationError: If the policy is unknown or ``n`` is not positive.
    """
    _check_count(n, entity)
    splitter = _SPLITTERS.get(splitting)
    if splitter is None:
        raise_configuration_error(
            entity=entity,
            detail=_POLICY_MSG.format(policy=splitting, known=sorted(_SPLITTERS)),
        )
    values = np.asarray(splitter(n, float(min_diameter), float(max_diameter)))
    if n > 1:
        # Pin the endpoints against round-off in geomspace.
        values[0] = float(min_diameter)
        values[-1] = float(max_diameter)
    return values


def resolve_diameters(
    n: int,
    spec: DiameterSpec,
    *,
    entity: str = "diameters",
) -> NDArray[np.float64]:
    """Resolve a diameter specification into one diameter per class.

    Args:
        n: Number of size classes.
        spec: Explicit sequence of diameters, a DiameterRange, or a mapping with
            ``min_diameter``, ``max_diameter`` and ``splitting``.
        entity: Name used in error messages (e.g. ``"phyto_diameters"``).

    Returns:
        Array of shape (n,).

    Raises:
        ConfigurationError: On count mismatch, non-positive diameters, an invalid
            range or an unknown splitting policy.
    """
    _check_count(n, entity)
    if isinstance(spec, (DiameterRange, Mapping)):
        rng = as_args(DiameterRange, spec)
        values = split_diameters(
            n, rng.min_diameter, rng.max_diameter, rng.splitting, entity=entity
        )
    else:
        try:
            values = np.asarray(spec, dtype=np.float64).reshape(-1)
        except (TypeError, ValueError):
            raise_configuration_error(
                entity=entity, detail=_NUMERIC_MSG.format(spec=spec)
            )
        if values.size != n:
            raise_configuration_error(
                entity=entity,
                detail=_LENGTH_MSG.format(expected=n, actual=values.size),
            )
        if not np.all(np.isfinite(values) & (values > 0.0)):
            raise_configuration_error(
                entity=entity, detail=_POSITIVE_MSG.format(values=values.tolist())
            )
    logger.debug("Resolved %s: %s", entity, values.tolist())
    return values


def derive_parameters(
    args: PlanktonArgs,
    diameters: NDArray[np.float64],
) -> dict[str, NDArray[np.float64]]:
    """Evaluate every defined parameter of a set for each size class.

    Args:
        args: Validated parameter set of one functional type.
        diameters: Diameters of that type's classes, shape (n,).

    Returns:
        Mapping of parameter name to an array of shape (n,). Parameters the set
        leaves undefined are omitted.
    """
    d = np.asarray(diameters, dtype=np.float64)
    derived: dict[str, NDArray[np.float64]] = {}
    for name in args.parameter_names():
        coeffs = args.allometry.get(name)
        if coeffs is not None:
            derived[name] = np.asarray(
                allometric_scaling_power(coeffs.a, coeffs.b, d), dtype=np.float64
            )
            continue
        value = getattr(args, name)
        if value is not None:
            derived[name] = np.full(d.shape, float(value))
    return derived


def _check_count(n: int, entity: str) -> None:
    if isinstance(n, bool) or not isinstance(n, (int, np.integer)) or n < 1:
        raise_configuration_error(entity=entity, detail=_COUNT_MSG.format(n=n))


# =============================================================================
# Size classes
# =============================================================================

PHYTOPLANKTON: Final[str] = "phytoplankton"
ZOOPLANKTON: Final[str] = "zooplankton"

TYPE_PREFIXES: Final[dict[str, str]] = {PHYTOPLANKTON: "P", ZOOPLANKTON: "Z"}


@dataclass(frozen=True, slots=True)
class SizeClass:
    """One plankton group of a size-structured model.

    Attributes:
        name: Tracer name, e.g. ``"P1"`` or ``"Z2"``.
        functional_type: ``"phytoplankton"`` or ``"zooplankton"``.
        diameter: Equivalent spherical diameter.
        index: Zero-based ordinal of the class within its functional type.
    """

    name: str
    functional_type: str
    diameter: float
    index: int

    @property
    def prefix(self) -> str:
        """Functional type prefix used in tracer names."""
        return TYPE_PREFIXES[self.functional_type]


def build_size_classes(
    n_phyto: int,
    n_zoo: int,
    phyto_diameters: DiameterSpec,
    zoo_diameters: DiameterSpec,
) -> tuple[SizeClass, ...]:
    """Build the ordered class set: phytoplankton first, then zooplankton.

    Args:
        n_phyto: Number of phytoplankton classes.
        n_zoo: Number of zooplankton classes.
        phyto_diameters: Phytoplankton diameter specification.
        zoo_diameters: Zooplankton diameter specification.

    Returns:
        Tuple of SizeClass named ``P1..Pn`` followed by ``Z1..Zm``.
    """
    classes: list[SizeClass] = []
    for functional_type, n, spec, entity in (
        (PHYTOPLANKTON, n_phyto, phyto_diameters, "phyto_diameters"),
        (ZOOPLANKTON, n_zoo, zoo_diameters, "zoo_diameters"),
    ):
        diameters = resolve_diameters(n, spec, entity=entity)
        prefix = TYPE_PREFIXES[functional_type]
        classes.extend(
            SizeClass(f"{prefix}{i + 1}", functional_type, float(d), i)
            for i, d in enumerate(diameters)
        )
    return tuple(classes)
