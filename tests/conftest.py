"""Global pytest configuration and shared fixtures for plankton_engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

import pytest

from plankton_engine import VerticalGrid, construct

if TYPE_CHECKING:
    from plankton_engine import NiPiZDModel

# -----------------------------------------------------------------------------
# Reference states
# -----------------------------------------------------------------------------

STATE_2P2Z: Final[dict[str, float]] = {
    "N": 1.0,
    "P1": 0.1,
    "P2": 0.1,
    "Z1": 0.05,
    "Z2": 0.05,
    "D": 0.1,
}

LIGHT: Final[dict[str, float]] = {"PAR": 100.0}


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(scope="session")
def default_model() -> NiPiZDModel:
    """Default 2 phytoplankton / 2 zooplankton model."""
    return construct()


@pytest.fixture
def state() -> dict[str, float]:
    """A positive 2P2Z state (fresh copy per test)."""
    return dict(STATE_2P2Z)


@pytest.fixture
def light() -> dict[str, float]:
    """Auxiliary field values for the default model."""
    return dict(LIGHT)


@pytest.fixture
def grid() -> VerticalGrid:
    """Four 25 m cells from the surface to 100 m depth."""
    return VerticalGrid.uniform(4, 100.0)
