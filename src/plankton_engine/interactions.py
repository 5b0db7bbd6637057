# src/plankton_engine/interactions.py
"""Predator-prey interaction matrices.

Both matrices are square over the full, ordered set of size classes; rows are
predators and columns are prey, so ``palatability["Z1", "P2"]`` is the
palatability of P2 to Z1. A row of a class that cannot eat is all zero, as is
the column of a class that cannot be eaten. The diagonal is forced to zero
unless self-predation is configured.

Caller supplied matrices replace the derived ones whole (no per-cell merge):
they are checked against the class set and then used verbatim.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, TypeAlias

import numpy as np

from .errors import raise_configuration_error
from .kernels import (
    allometric_palatability_unimodal_protection,
    assimilation_efficiency_emergent_binary,
)
from .parameters import InteractionArgs, as_args

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import ArrayLike, NDArray

    from .allometry import SizeClass
    from .parameters import FeedingTraits

MatrixLike: TypeAlias = "InteractionMatrix | Mapping[str, Mapping[str, float]]"

logger = logging.getLogger(__name__)

_SQUARE_MSG: Final[str] = "matrix must be square with one row per name; got shape {shape}"
_DUPLICATE_MSG: Final[str] = "duplicate class names {names}"
_RANGE_MSG: Final[str] = "entries must lie in [0, 1]; got min={lo}, max={hi}"
_NAMES_MSG: Final[str] = (
    "row/column names {actual} do not match the class set {expected} "
    "(missing: {missing}, unexpected: {unexpected})"
)
_ROW_NAMES_MSG: Final[str] = "row {row!r} has columns {actual}; expected {expected}"
_TRAITS_MSG: Final[str] = (
    "no feeding traits for class {name!r}; provide an entry keyed by "
    "{name!r} or by its type prefix {prefix!r}"
)


@dataclass(frozen=True, slots=True, eq=False)
class InteractionMatrix:
    """Dense (predator, prey) matrix with label based access.

    Attributes:
        names: Class names labelling both rows and columns, in class order.
        values: Read-only float array of shape (n, n).
    """

    names: tuple[str, ...]
    values: NDArray[np.float64]
    _index: dict[str, int] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        names = tuple(str(n) for n in self.names)
        values = np.array(self.values, dtype=np.float64, copy=True)
        if values.ndim != 2 or values.shape != (len(names), len(names)):
            raise_configuration_error(
                entity="interaction matrix",
                detail=_SQUARE_MSG.format(shape=values.shape),
            )
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise_configuration_error(
                entity="interaction matrix", detail=_DUPLICATE_MSG.format(names=dupes)
            )
        values.flags.writeable = False
        object.__setattr__(self, "names", names)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "_index", {n: i for i, n in enumerate(names)})

    @classmethod
    def from_mapping(cls, rows: Mapping[str, Mapping[str, float]]) -> InteractionMatrix:
        """Build a matrix from ``{predator: {prey: value}}``.

        Row order defines the name order; every row must list the same names
        in the same order.

        Raises:
            ConfigurationError: If rows do not share the row name ordering.
        """
        names = tuple(rows)
        data = np.zeros((len(names), len(names)), dtype=np.float64)
        for i, row_name in enumerate(names):
            row = rows[row_name]
            if tuple(row) != names:
                raise_configuration_error(
                    entity="interaction matrix",
                    detail=_ROW_NAMES_MSG.format(
                        row=row_name, actual=list(row), expected=list(names)
                    ),
                )
            data[i, :] = [float(row[n]) for n in names]
        return cls(names, data)

    @property
    def shape(self) -> tuple[int, int]:
        """Matrix shape (n, n)."""
        return (len(self.names), len(self.names))

    def index_of(self, name: str) -> int:
        """Return the row/column position of a class name.

        Raises:
            KeyError: If the name is not a class of this matrix.
        """
        return self._index[name]

    def __getitem__(self, key: tuple[str, str]) -> float:
        predator, prey = key
        return float(self.values[self._index[predator], self._index[prey]])

    def row(self, predator: str) -> NDArray[np.float64]:
        """Values of one predator against every prey."""
        return self.values[self._index[predator], :]

    def column(self, prey: str) -> NDArray[np.float64]:
        """Values of every predator against one prey."""
        return self.values[:, self._index[prey]]

    def to_dict(self) -> dict[str, dict[str, float]]:
        """Nested ``{predator: {prey: value}}`` copy of the matrix."""
        return {
            p: {q: float(self.values[i, j]) for j, q in enumerate(self.names)}
            for i, p in enumerate(self.names)
        }


def traits_for(args: InteractionArgs, size_class: SizeClass) -> FeedingTraits:
    """Feeding traits of a class: its own entry, else its functional type entry.

    Raises:
        ConfigurationError: If neither entry exists.
    """
    traits = args.traits.get(size_class.name)
    if traits is None:
        traits = args.traits.get(size_class.prefix)
    if traits is None:
        raise_configuration_error(
            entity="interaction_args",
            detail=_TRAITS_MSG.format(name=size_class.name, prefix=size_class.prefix),
        )
    return traits


def palatability_matrix(
    classes: Sequence[SizeClass],
    interaction_args: InteractionArgs,
) -> InteractionMatrix:
    """Derive palatability from diameters with the unimodal protection kernel."""
    traits = [traits_for(interaction_args, c) for c in classes]
    diameters = np.array([c.diameter for c in classes], dtype=np.float64)
    can_eat = np.array([t.can_eat for t in traits], dtype=np.float64)
    can_be_eaten = np.array([t.can_be_eaten for t in traits], dtype=np.float64)
    optimum = np.array([t.optimum_predator_prey_ratio for t in traits])
    specificity = np.array([t.specificity for t in traits])
    protection = np.array([t.protection for t in traits])

    # Predators along axis 0, prey along axis 1.
    values = allometric_palatability_unimodal_protection(
        diameters[np.newaxis, :],
        protection[np.newaxis, :],
        diameters[:, np.newaxis],
        can_eat[:, np.newaxis] * can_be_eaten[np.newaxis, :],
        optimum[:, np.newaxis],
        specificity[:, np.newaxis],
    )
    return InteractionMatrix(
        tuple(c.name for c in classes),
        _apply_diagonal_policy(values, interaction_args),
    )


def assimilation_efficiency_matrix(
    classes: Sequence[SizeClass],
    interaction_args: InteractionArgs,
) -> InteractionMatrix:
    """Derive assimilation efficiency with the binary edibility gate."""
    traits = [traits_for(interaction_args, c) for c in classes]
    can_eat = np.array([t.can_eat for t in traits], dtype=np.float64)
    can_be_eaten = np.array([t.can_be_eaten for t in traits], dtype=np.float64)
    efficiency = np.array([t.assimilation_efficiency for t in traits])

    values = assimilation_efficiency_emergent_binary(
        can_be_eaten[np.newaxis, :],
        can_eat[:, np.newaxis],
        np.broadcast_to(efficiency[:, np.newaxis], (len(classes), len(classes))),
    )
    return InteractionMatrix(
        tuple(c.name for c in classes),
        _apply_diagonal_policy(values, interaction_args),
    )


def _apply_diagonal_policy(
    values: ArrayLike,
    interaction_args: InteractionArgs,
) -> NDArray[np.float64]:
    out = np.array(values, dtype=np.float64, copy=True)
    if not interaction_args.self_predation:
        np.fill_diagonal(out, 0.0)
    return out


def check_override(
    matrix: MatrixLike,
    classes: Sequence[SizeClass],
    *,
    entity: str,
) -> InteractionMatrix:
    """Check a caller supplied matrix against the class set.

    Args:
        matrix: InteractionMatrix or nested ``{predator: {prey: value}}`` mapping.
        classes: Ordered class set of the model.
        entity: Argument name used in error messages.

    Returns:
        The matrix as an InteractionMatrix, values unchanged.

    Raises:
        ConfigurationError: If names, ordering, shape or value range differ.
    """
    if isinstance(matrix, InteractionMatrix):
        checked = matrix
    elif isinstance(matrix, Mapping):
        checked = InteractionMatrix.from_mapping(matrix)
    else:
        raise_configuration_error(
            entity=entity,
            detail=f"expected InteractionMatrix or mapping, got {type(matrix).__name__}",
        )
    expected = tuple(c.name for c in classes)
    if checked.names != expected:
        raise_configuration_error(
            entity=entity,
            detail=_NAMES_MSG.format(
                actual=list(checked.names),
                expected=list(expected),
                missing=sorted(set(expected) - set(checked.names)),
                unexpected=sorted(set(checked.names) - set(expected)),
            ),
        )
    lo, hi = float(checked.values.min()), float(checked.values.max())
    if not np.all(np.isfinite(checked.values)) or lo < 0.0 or hi > 1.0:
        raise_configuration_error(
            entity=entity, detail=_RANGE_MSG.format(lo=lo, hi=hi)
        )
    return checked


def build_matrices(
    classes: Sequence[SizeClass],
    interaction_args: InteractionArgs | Mapping[str, object] | None,
    *,
    palatability: MatrixLike | None = None,
    assimilation_efficiency: MatrixLike | None = None,
) -> tuple[InteractionMatrix, InteractionMatrix]:
    """Build (palatability, assimilation efficiency) for a class set.

    Each matrix is derived from ``interaction_args`` unless the caller supplies
    it, in which case it is checked and used verbatim.

    Args:
        classes: Ordered class set.
        interaction_args: Feeding traits; only required for derived matrices.
        palatability: Optional override palatability matrix.
        assimilation_efficiency: Optional override assimilation efficiency matrix.

    Returns:
        Tuple (palatability, assimilation_efficiency).

    Raises:
        ConfigurationError: If an override does not match the class set, or a
            matrix must be derived but ``interaction_args`` is missing/invalid.
    """
    args: InteractionArgs | None = None
    if palatability is None or assimilation_efficiency is None:
        if interaction_args is None:
            raise_configuration_error(
                entity="interaction_args",
                detail="required unless both interaction matrices are supplied",
            )
        args = as_args(InteractionArgs, interaction_args)

    if palatability is not None:
        palat = check_override(palatability, classes, entity="palatability_matrix")
        logger.debug("Using caller supplied palatability matrix")
    else:
        palat = palatability_matrix(classes, args)

    if assimilation_efficiency is not None:
        assim = check_override(
            assimilation_efficiency, classes, entity="assimilation_efficiency_matrix"
        )
        logger.debug("Using caller supplied assimilation efficiency matrix")
    else:
        assim = assimilation_efficiency_matrix(classes, args)

    return palat, assim
