# tests/test_kernels.py
"""Unit tests for plankton_engine.kernels.

Per-pair kernels are checked against their closed forms; the vector
(``net_*`` / ``summed_*``) kernels are checked against explicit sums of the
per-pair kernels.
"""

from __future__ import annotations

import numpy as np
import pytest

from plankton_engine import kernels
from plankton_engine.kernels import KERNELS, MATH_FUNCTIONS, register_kernel


def test_registry_contains_library() -> None:
    """Every public kernel is registered under its own name."""
    for name in (
        "allometric_scaling_power",
        "allometric_palatability_unimodal",
        "allometric_palatability_unimodal_protection",
        "assimilation_efficiency_emergent_binary",
        "monod_limitation",
        "light_limitation_smith",
        "light_limitation_geider",
        "light_limitation_darwin",
        "default_PC",
        "photosynthetic_growth_single_nutrient",
        "photosynthetic_growth_single_nutrient_geider_light",
        "net_photosynthetic_growth_single_nutrient",
        "linear_loss",
        "quadratic_loss",
        "net_linear_loss",
        "net_quadratic_loss",
        "holling_type_2",
        "predation_loss_idealized",
        "predation_gain_idealized",
        "predation_assimilation_loss_idealized",
        "predation_loss_preferential",
        "predation_gain_preferential",
        "predation_assimilation_loss_preferential",
        "summed_predation_loss_preferential",
        "summed_predation_gain_preferential",
        "summed_predation_assimilation_loss_preferential",
        "net_predation_assimilation_loss_preferential",
        "remineralization_idealized",
    ):
        assert KERNELS[name] is getattr(kernels, name)
    assert "_pairwise_loss" not in KERNELS
    assert set(MATH_FUNCTIONS) == {"exp", "log", "sqrt", "tanh", "abs", "min", "max"}


def test_register_kernel_rejects_duplicates() -> None:
    """Registering a second kernel with an existing name fails."""

    def linear_loss(p: float, l: float) -> float:  # noqa: E741
        return p * l

    with pytest.raises(ValueError, match="already registered"):
        register_kernel(linear_loss)


def test_registry_is_read_only() -> None:
    """The public registry view cannot be mutated."""
    with pytest.raises(TypeError):
        KERNELS["new"] = abs  # type: ignore[index]


# -------------------------------------------------------------------
# Allometry and interactions
# -------------------------------------------------------------------


def test_allometric_scaling_power() -> None:
    """a * d**b, elementwise over diameters."""
    d = np.array([1.0, 2.0, 8.0])
    assert np.allclose(kernels.allometric_scaling_power(3.0, -0.5, d), 3.0 * d**-0.5)


def test_palatability_unimodal_peaks_at_optimum() -> None:
    """Palatability is 1 at the optimum ratio and decreases away from it."""
    prey = np.array([1.0, 2.0, 5.0])
    values = kernels.allometric_palatability_unimodal(prey, 10.0, 1.0, 10.0, 0.3)
    assert values[0] == pytest.approx(1.0)
    assert values[0] > values[1] > values[2] > 0.0


def test_palatability_protection_scales_and_gates() -> None:
    """Protection scales the unimodal value; can_eat=0 yields exactly zero."""
    base = kernels.allometric_palatability_unimodal(2.0, 20.0, 1.0, 10.0, 0.3)
    protected = kernels.allometric_palatability_unimodal_protection(
        2.0, 0.25, 20.0, 1.0, 10.0, 0.3
    )
    assert float(protected) == pytest.approx(0.25 * float(base))
    assert (
        kernels.allometric_palatability_unimodal_protection(
            2.0, 1.0, 20.0, 0.0, 10.0, 0.3
        )
        == 0.0
    )


def test_assimilation_efficiency_binary_gate() -> None:
    """Efficiency only where the predator can eat and the prey can be eaten."""
    out = kernels.assimilation_efficiency_emergent_binary(
        np.array([1, 0, 1]), np.array([1, 1, 0]), 0.32
    )
    assert np.allclose(out, [0.32, 0.0, 0.0])


# -------------------------------------------------------------------
# Growth
# -------------------------------------------------------------------


def test_monod_and_holling() -> None:
    """Monod and Holling type II are R / (k + R)."""
    assert kernels.monod_limitation(1.0, 1.0) == pytest.approx(0.5)
    assert kernels.holling_type_2(3.0, 1.0) == pytest.approx(0.75)


def test_light_limitation_smith_saturates() -> None:
    """Smith limitation is 0 in the dark and tends to 1 in bright light."""
    assert kernels.light_limitation_smith(0.0, 0.1, 1.0) == 0.0
    assert kernels.light_limitation_smith(1e9, 0.1, 1.0) == pytest.approx(1.0)
    assert kernels.light_limitation_smith(10.0, 0.1, 1.0) == pytest.approx(
        1.0 / np.sqrt(2.0)
    )


def test_light_limitation_geider_closed_form() -> None:
    """Geider growth is Pmax * (1 - exp(-slope*theta*PAR/Pmax))."""
    value = kernels.light_limitation_geider(100.0, 2e-5, 0.46e-5, 0.1)
    expected = 2e-5 * (1.0 - np.exp(-0.46e-5 * 0.1 * 100.0 / 2e-5))
    assert value == pytest.approx(expected)


def test_darwin_kernels() -> None:
    """DARWIN light limitation and carbon-specific growth product."""
    light = kernels.light_limitation_darwin(2.0, -0.5, 0.0, 1.0)
    assert light == pytest.approx(1.0 - np.exp(-1.0))
    assert kernels.default_PC(2.0, 0.5, 0.5, 1.0, 1.0) == pytest.approx(0.5)


def test_photosynthetic_growth_single_nutrient() -> None:
    """Growth is mu0 * monod * smith * P."""
    value = kernels.photosynthetic_growth_single_nutrient(1.0, 0.1, 100.0, 2e-5, 0.5, 1e-6)
    light = 1e-6 * 100.0 / np.sqrt((2e-5) ** 2 + (1e-6 * 100.0) ** 2)
    assert value == pytest.approx(2e-5 * (1.0 / 1.5) * light * 0.1)


def test_net_photosynthetic_growth_matches_masked_sum() -> None:
    """The net growth kernel equals the sum of per-class growth over the mask."""
    p = np.array([0.1, 0.2, 0.05])
    mu0 = np.array([2e-5, 1e-5, 3e-5])
    kn = np.array([0.2, 0.4, 1.0])
    alpha = np.array([2e-6, 2e-6, 2e-6])
    mask = np.array([1, 1, 0])
    net = kernels.net_photosynthetic_growth_single_nutrient(1.0, p, 50.0, mu0, kn, alpha, mask)
    expected = sum(
        kernels.photosynthetic_growth_single_nutrient(1.0, p[i], 50.0, mu0[i], kn[i], alpha[i])
        for i in range(2)
    )
    assert net == pytest.approx(expected)


# -------------------------------------------------------------------
# Mortality
# -------------------------------------------------------------------


def test_mortality_kernels() -> None:
    """Linear and quadratic losses and their masked sums."""
    p = np.array([0.5, 2.0])
    assert np.allclose(kernels.linear_loss(p, 0.1), [0.05, 0.2])
    assert np.allclose(kernels.quadratic_loss(p, 0.1), [0.025, 0.4])
    assert kernels.net_linear_loss(p, np.array([0.1, 0.1]), np.array([1, 0])) == pytest.approx(0.05)
    assert kernels.net_quadratic_loss(p, np.array([0.1, 0.1]), np.array([0, 1])) == pytest.approx(0.4)


# -------------------------------------------------------------------
# Predation
# -------------------------------------------------------------------


def test_predation_split_conserves_grazed_biomass() -> None:
    """Assimilated gain plus sloppy feeding loss equals the prey loss."""
    args = (0.3, 0.05, 1e-4, 1.0)
    loss = kernels.predation_loss_preferential(*args, 0.8)
    gain = kernels.predation_gain_preferential(0.3, 0.05, 0.32, 1e-4, 1.0, 0.8)
    sloppy = kernels.predation_assimilation_loss_preferential(0.3, 0.05, 0.32, 1e-4, 1.0, 0.8)
    assert gain + sloppy == pytest.approx(loss)
    assert loss == pytest.approx(0.8 * kernels.predation_loss_idealized(*args))
    idealized_gain = kernels.predation_gain_idealized(0.3, 0.05, 0.32, 1e-4, 1.0)
    idealized_sloppy = kernels.predation_assimilation_loss_idealized(
        0.3, 0.05, 0.32, 1e-4, 1.0
    )
    assert idealized_gain + idealized_sloppy == pytest.approx(
        kernels.predation_loss_idealized(*args)
    )


def _community() -> tuple[np.ndarray, ...]:
    p = np.array([0.1, 0.2, 0.05, 0.04])
    gmax = np.array([0.0, 0.0, 3e-4, 2e-4])
    k = np.array([1.0, 1.0, 5.0, 5.0])
    palat = np.zeros((4, 4))
    palat[2, 0], palat[2, 1], palat[3, 0], palat[3, 1], palat[3, 2] = 0.9, 0.4, 0.2, 0.7, 0.1
    beta = np.where(palat > 0.0, 0.32, 0.0)
    return p, gmax, k, palat, beta


def test_summed_predation_kernels_match_pairwise_sums() -> None:
    """Vector predation kernels equal the explicit sums of per-pair kernels."""
    p, gmax, k, palat, beta = _community()

    def loss(i: int, j: int) -> float:
        return float(kernels.predation_loss_preferential(p[j], p[i], gmax[i], k[i], palat[i, j]))

    prey = 1
    expected_loss = sum(loss(i, prey) for i in range(4))
    assert kernels.summed_predation_loss_preferential(prey, p, gmax, k, palat) == pytest.approx(
        expected_loss
    )

    predator = 3
    expected_gain = sum(beta[predator, j] * loss(predator, j) for j in range(4))
    expected_sloppy = sum((1.0 - beta[predator, j]) * loss(predator, j) for j in range(4))
    assert kernels.summed_predation_gain_preferential(
        predator, p, beta, gmax, k, palat
    ) == pytest.approx(expected_gain)
    assert kernels.summed_predation_assimilation_loss_preferential(
        predator, p, beta, gmax, k, palat
    ) == pytest.approx(expected_sloppy)

    total_sloppy = sum(
        (1.0 - beta[i, j]) * loss(i, j) for i in range(4) for j in range(4)
    )
    assert kernels.net_predation_assimilation_loss_preferential(
        p, k, gmax, palat, beta
    ) == pytest.approx(total_sloppy)


def test_remineralization_idealized() -> None:
    """Remineralization is r * D."""
    assert kernels.remineralization_idealized(2.0, 0.1) == pytest.approx(0.2)
