# tests/test_sinking.py
"""Unit tests for plankton_engine.sinking."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.sparse import issparse

from plankton_engine.errors import ConfigurationError, StateShapeError
from plankton_engine.sinking import (
    SinkingFlux,
    VerticalGrid,
    build_sinking_operator,
    sinking_velocity_profile,
)

# -------------------------------------------------------------------
# Grid
# -------------------------------------------------------------------


def test_uniform_grid_geometry(grid: VerticalGrid) -> None:
    """A uniform grid has equal spacing and surface-first faces."""
    assert grid.n == 4
    assert np.allclose(grid.faces, [0.0, -25.0, -50.0, -75.0, -100.0])
    assert np.allclose(grid.centers, [-12.5, -37.5, -62.5, -87.5])
    assert np.allclose(grid.spacing, 25.0)
    assert grid.bottom == pytest.approx(-100.0)


def test_stretched_grid_spacing() -> None:
    """Explicit faces give per-cell thicknesses."""
    grid = VerticalGrid(np.array([0.0, -10.0, -30.0, -70.0]))
    assert np.allclose(grid.spacing, [10.0, 20.0, 40.0])
    assert not grid.faces.flags.writeable


@pytest.mark.parametrize(
    "faces", [[0.0], [0.0, 10.0], [0.0, -10.0, -10.0], [[0.0, -1.0]]]
)
def test_invalid_faces(faces: list[float]) -> None:
    """Faces must be 1D, at least two, strictly decreasing."""
    with pytest.raises(ConfigurationError, match="'grid'"):
        VerticalGrid(np.asarray(faces))


def test_invalid_uniform_grid() -> None:
    """uniform() needs n >= 1 and a positive depth."""
    with pytest.raises(ConfigurationError):
        VerticalGrid.uniform(0, 10.0)
    with pytest.raises(ConfigurationError):
        VerticalGrid.uniform(3, -10.0)


# -------------------------------------------------------------------
# Velocity profile
# -------------------------------------------------------------------


def test_open_bottom_keeps_configured_speed(grid: VerticalGrid) -> None:
    """With an open bottom every face sinks at the configured speed."""
    w = sinking_velocity_profile(grid, 2e-4, open_bottom=True)
    assert np.all(w == 2e-4)


def test_closed_bottom_ramps_to_zero(grid: VerticalGrid) -> None:
    """With a closed bottom the speed is tanh-ramped to zero at the bottom face."""
    w = sinking_velocity_profile(grid, 2e-4, open_bottom=False)
    assert w[-1] == 0.0
    assert np.all(np.diff(w) <= 0.0)
    assert w[0] == pytest.approx(2e-4 * np.tanh(100.0 / 25.0))
    w_long = sinking_velocity_profile(grid, 2e-4, open_bottom=False, smoothing_distance=50.0)
    assert w_long[1] < w[1]


@pytest.mark.parametrize("speed", [0.0, -1e-4, float("inf")])
def test_invalid_speed(grid: VerticalGrid, speed: float) -> None:
    """Sinking speeds must be finite and positive."""
    with pytest.raises(ConfigurationError, match="sinking speed"):
        sinking_velocity_profile(grid, speed)


def test_invalid_smoothing_distance(grid: VerticalGrid) -> None:
    """The ramp length must be positive."""
    with pytest.raises(ConfigurationError, match="smoothing_distance"):
        sinking_velocity_profile(grid, 1e-4, open_bottom=False, smoothing_distance=0.0)


# -------------------------------------------------------------------
# Operator
# -------------------------------------------------------------------


def test_operator_is_upwind(grid: VerticalGrid) -> None:
    """S @ C matches the upwind flux divergence written out by hand."""
    w = sinking_velocity_profile(grid, 1e-3)
    op = build_sinking_operator(grid, w)
    assert issparse(op)
    assert op.shape == (4, 4)
    c = np.array([1.0, 2.0, 3.0, 4.0])
    dz = 25.0
    expected = np.array(
        [
            -w[1] * c[0] / dz,
            (w[1] * c[0] - w[2] * c[1]) / dz,
            (w[2] * c[1] - w[3] * c[2]) / dz,
            (w[3] * c[2] - w[4] * c[3]) / dz,
        ]
    )
    assert np.allclose(op @ c, expected)


def test_open_bottom_loses_bottom_flux(grid: VerticalGrid) -> None:
    """With an open bottom the column integral equals the bottom outflow."""
    flux = SinkingFlux.build("P1", 1e-3, grid, open_bottom=True)
    c = np.array([1.0, 2.0, 3.0, 4.0])
    integral = float(np.sum(flux.divergence(c) * grid.spacing))
    assert integral == pytest.approx(-1e-3 * 4.0)


def test_closed_bottom_conserves_column(grid: VerticalGrid) -> None:
    """With a closed bottom the sinking term integrates to zero over the column."""
    flux = SinkingFlux.build("P1", 1e-3, grid, open_bottom=False)
    c = np.array([1.0, 2.0, 3.0, 4.0])
    integral = float(np.sum(flux.divergence(c) * grid.spacing))
    assert integral == pytest.approx(0.0, abs=1e-15)


def test_cell_speeds_at_bottom(grid: VerticalGrid) -> None:
    """The deepest cell's speed is 0 when closed and the configured speed when open."""
    closed = SinkingFlux.build("D", 5e-4, grid, open_bottom=False)
    opened = SinkingFlux.build("D", 5e-4, grid, open_bottom=True)
    assert closed.cell_speeds[-1] == 0.0
    assert opened.cell_speeds[-1] == 5e-4
    assert closed.cell_speeds.shape == (4,)


def test_single_cell_grid() -> None:
    """A one-cell column only loses through its bottom face."""
    grid = VerticalGrid.uniform(1, 10.0)
    flux = SinkingFlux.build("P1", 1e-3, grid)
    assert np.allclose(flux.divergence(np.array([2.0])), [-1e-3 * 2.0 / 10.0])


def test_divergence_broadcasts_leading_axes(grid: VerticalGrid) -> None:
    """Columns may carry leading batch axes; the last axis is depth."""
    flux = SinkingFlux.build("P1", 1e-3, grid)
    batch = np.arange(12, dtype=float).reshape(3, 4)
    out = flux.divergence(batch)
    assert out.shape == (3, 4)
    for row in range(3):
        assert np.allclose(out[row], flux.operator @ batch[row])


@pytest.mark.parametrize("column", [1.0, np.ones(3), np.ones((4, 3))])
def test_divergence_shape_mismatch(grid: VerticalGrid, column: object) -> None:
    """A column whose last axis is not the grid size raises StateShapeError."""
    flux = SinkingFlux.build("P1", 1e-3, grid)
    with pytest.raises(StateShapeError, match="sinking tracer 'P1'"):
        flux.divergence(column)  # type: ignore[arg-type]
