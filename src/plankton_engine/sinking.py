# src/plankton_engine/sinking.py
"""Vertical grid and sinking flux operators.

Cells are ordered from the surface (index 0) to the bottom (index n - 1); ``z``
is the vertical coordinate, increasing upwards, so face heights decrease with
the cell index. Sinking speeds are positive downwards.

The sinking term of a tracer column ``C`` is the first-order upwind flux
divergence

    dC_k/dt = (w_k C_{k-1} - w_{k+1} C_k) / dz_k

with ``w_k`` the speed at the upper face of cell k and ``w_{k+1}`` at its lower
face. Nothing enters through the surface. With an open bottom the deepest
lower face keeps the full speed and biomass leaves the domain; with a closed
bottom the speed is ramped smoothly to zero at the bottom face, so the column
integral of the sinking term vanishes.

Design notes:
    * The operator is assembled once per tracer as a CSR matrix and applied to
      caller supplied columns; it holds no scratch state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

import numpy as np
from scipy.sparse import csr_matrix, diags

from .errors import raise_configuration_error, raise_state_shape_error

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

_FACES_MSG: Final[str] = (
    "faces must be a 1D array of at least two strictly decreasing heights "
    "(surface first); got {faces}"
)
_UNIFORM_MSG: Final[str] = "uniform grid needs n >= 1 and depth > 0; got n={n}, depth={depth}"
_SPEED_MSG: Final[str] = "sinking speed must be finite and positive; got {speed!r}"
_SMOOTHING_MSG: Final[str] = "smoothing_distance must be positive; got {value!r}"


@dataclass(frozen=True, slots=True, eq=False)
class VerticalGrid:
    """Geometry of a 1D vertical column.

    Attributes:
        faces: Heights of the cell faces from the surface down, shape (n + 1,).
    """

    faces: NDArray[np.float64]

    def __post_init__(self) -> None:
        faces = np.array(self.faces, dtype=np.float64, copy=True)
        if faces.ndim != 1 or faces.size < 2 or np.any(np.diff(faces) >= 0.0):
            raise_configuration_error(
                entity="grid", detail=_FACES_MSG.format(faces=faces.tolist())
            )
        faces.flags.writeable = False
        object.__setattr__(self, "faces", faces)

    @classmethod
    def uniform(cls, n: int, depth: float, *, surface: float = 0.0) -> VerticalGrid:
        """Build a grid of ``n`` equal cells spanning ``depth`` below ``surface``.

        Raises:
            ConfigurationError: If n < 1 or depth <= 0.
        """
        if n < 1 or depth <= 0.0:
            raise_configuration_error(
                entity="grid", detail=_UNIFORM_MSG.format(n=n, depth=depth)
            )
        return cls(np.linspace(surface, surface - depth, n + 1))

    @property
    def n(self) -> int:
        """Number of cells."""
        return int(self.faces.size - 1)

    @property
    def centers(self) -> NDArray[np.float64]:
        """Heights of the cell centres, shape (n,)."""
        return 0.5 * (self.faces[:-1] + self.faces[1:])

    @property
    def spacing(self) -> NDArray[np.float64]:
        """Cell thicknesses (positive), shape (n,)."""
        return self.faces[:-1] - self.faces[1:]

    @property
    def bottom(self) -> float:
        """Height of the bottom boundary."""
        return float(self.faces[-1])


def sinking_velocity_profile(
    grid: VerticalGrid,
    speed: float,
    *,
    open_bottom: bool = True,
    smoothing_distance: float | None = None,
) -> NDArray[np.float64]:
    """Return the downward sinking speed at every cell face.

    Args:
        grid: Vertical grid.
        speed: Configured sinking speed (positive, downwards).
        open_bottom: If False, ramp the speed to zero at the bottom face with
            ``tanh((z - z_bottom) / smoothing_distance)``.
        smoothing_distance: Ramp length scale; defaults to the thickness of the
            bottom cell.

    Returns:
        Face speeds, shape (n + 1,).

    Raises:
        ConfigurationError: If speed or smoothing_distance is not positive.
    """
    if not np.isfinite(speed) or speed <= 0.0:
        raise_configuration_error(entity="sinking_tracers", detail=_SPEED_MSG.format(speed=speed))
    w = np.full(grid.faces.shape, float(speed))
    if open_bottom:
        return w
    distance = float(grid.spacing[-1]) if smoothing_distance is None else smoothing_distance
    if distance <= 0.0:
        raise_configuration_error(
            entity="smoothing_distance", detail=_SMOOTHING_MSG.format(value=distance)
        )
    return w * np.tanh((grid.faces - grid.bottom) / distance)


def build_sinking_operator(
    grid: VerticalGrid,
    face_speeds: NDArray[np.float64],
) -> csr_matrix:
    """Build the upwind sinking flux divergence operator.

    Args:
        grid: Vertical grid.
        face_speeds: Downward speed at each face, shape (n + 1,).

    Returns:
        Sparse CSR matrix ``S`` of shape (n, n) so that ``S @ C`` is the sinking
        tendency of column ``C``.
    """
    n = grid.n
    dz = grid.spacing
    main_diag = -face_speeds[1:] / dz
    if n == 1:
        return csr_matrix(main_diag.reshape(1, 1))
    lower_diag = face_speeds[1:-1] / dz[1:]
    operator = diags(
        [lower_diag.tolist(), main_diag.tolist()],
        [-1, 0],
        shape=(n, n),
        dtype=np.float64,
    )
    return operator.tocsr()


@dataclass(frozen=True, slots=True, eq=False)
class SinkingFlux:
    """Sinking term of one tracer on a vertical grid.

    Attributes:
        tracer: Name of the sinking tracer.
        speed: Configured sinking speed.
        grid: Vertical grid.
        open_bottom: Whether biomass leaves through the bottom face.
        face_speeds: Effective speed at each face, shape (n + 1,).
        operator: Flux divergence operator, shape (n, n).
    """

    tracer: str
    speed: float
    grid: VerticalGrid
    open_bottom: bool
    face_speeds: NDArray[np.float64]
    operator: csr_matrix

    @classmethod
    def build(
        cls,
        tracer: str,
        speed: float,
        grid: VerticalGrid,
        *,
        open_bottom: bool = True,
        smoothing_distance: float | None = None,
    ) -> SinkingFlux:
        """Assemble the face speeds and operator for one tracer."""
        face_speeds = sinking_velocity_profile(
            grid, speed, open_bottom=open_bottom, smoothing_distance=smoothing_distance
        )
        face_speeds.flags.writeable = False
        return cls(
            tracer=tracer,
            speed=float(speed),
            grid=grid,
            open_bottom=open_bottom,
            face_speeds=face_speeds,
            operator=build_sinking_operator(grid, face_speeds),
        )

    @property
    def cell_speeds(self) -> NDArray[np.float64]:
        """Effective speed of each cell, taken at its lower face, shape (n,)."""
        return self.face_speeds[1:]

    def divergence(self, column: ArrayLike) -> NDArray[np.float64]:
        """Apply the sinking operator along the last axis of ``column``.

        Raises:
            StateShapeError: If the last axis length differs from the grid size.
        """
        arr = np.asarray(column, dtype=np.float64)
        if arr.ndim == 0 or arr.shape[-1] != self.grid.n:
            raise_state_shape_error(
                name=f"sinking tracer '{self.tracer}'",
                expected=f"a column with last axis of length {self.grid.n}",
                got=arr.shape,
            )
        moved = np.moveaxis(arr, -1, 0)
        flat = moved.reshape(self.grid.n, -1)
        out = np.asarray(self.operator @ flat).reshape(moved.shape)
        return np.moveaxis(out, 0, -1)
