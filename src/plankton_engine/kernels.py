# src/plankton_engine/kernels.py
"""Library of named biological process kernels.

Each kernel is a pure NumPy function with a fixed positional argument list and
no internal state, so it broadcasts over arrays and is safe to call from any
number of threads. Kernels are registered by name in :data:`KERNELS`; tracer
expressions refer to them through ``Call`` nodes.

Vector kernels (``net_*`` and ``summed_*``) take whole plankton vectors and
(predator, prey) matrices indexed in class order. They are the aggregate forms
of the per-pair kernels the expression composer expands term by term.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final, TypeVar

import numpy as np
from numpy.typing import ArrayLike, NDArray

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

F = TypeVar("F", bound="Callable[..., Any]")

_REGISTRY: dict[str, Callable[..., Any]] = {}


def register_kernel(func: F) -> F:
    """Register a function under its own name in the kernel library.

    Args:
        func: Pure numeric function.

    Returns:
        The function, unchanged.

    Raises:
        ValueError: If a kernel with the same name is already registered.
    """
    name = func.__name__
    if name in _REGISTRY:
        msg = f"Kernel already registered: {name}"
        raise ValueError(msg)
    _REGISTRY[name] = func
    return func


# =============================================================================
# Allometry
# =============================================================================


@register_kernel
def allometric_scaling_power(a: ArrayLike, b: ArrayLike, d: ArrayLike) -> Any:
    """Allometric scaling function using the power law ``a * d**b``.

    Args:
        a: Scale.
        b: Exponent.
        d: Cell equivalent spherical diameter (ESD).
    """
    return np.multiply(a, np.power(d, b))


@register_kernel
def allometric_palatability_unimodal(
    prey_diameter: ArrayLike,
    predator_diameter: ArrayLike,
    can_eat: ArrayLike,
    optimum_predator_prey_ratio: ArrayLike,
    specificity: ArrayLike,
) -> Any:
    """Unimodal palatability of prey based on predator-prey diameters.

    ``1 / (1 + (r - r_opt)**2)**specificity`` with ``r`` the predator to prey
    diameter ratio, and zero when ``can_eat`` is zero.
    """
    return allometric_palatability_unimodal_protection(
        prey_diameter,
        1.0,
        predator_diameter,
        can_eat,
        optimum_predator_prey_ratio,
        specificity,
    )


@register_kernel
def allometric_palatability_unimodal_protection(
    prey_diameter: ArrayLike,
    prey_protection: ArrayLike,
    predator_diameter: ArrayLike,
    can_eat: ArrayLike,
    optimum_predator_prey_ratio: ArrayLike,
    specificity: ArrayLike,
) -> Any:
    """Unimodal palatability with an additional prey protection factor.

    ``prey_protection / (1 + (r - r_opt)**2)**specificity``; the result lies in
    ``[0, prey_protection]`` and peaks where ``r == r_opt``.
    """
    ratio = np.divide(predator_diameter, prey_diameter)
    shape = np.power(1.0 + np.square(ratio - optimum_predator_prey_ratio), specificity)
    return np.where(np.asarray(can_eat) != 0, np.divide(prey_protection, shape), 0.0)


@register_kernel
def assimilation_efficiency_emergent_binary(
    can_be_eaten: ArrayLike,
    can_eat: ArrayLike,
    assimilation_efficiency: ArrayLike,
) -> Any:
    """Predator assimilation efficiency when both edibility flags hold, else 0."""
    edible = (np.asarray(can_eat) != 0) & (np.asarray(can_be_eaten) != 0)
    return np.where(edible, assimilation_efficiency, 0.0)


# =============================================================================
# Nutrients
# =============================================================================


@register_kernel
def monod_limitation(R: ArrayLike, k: ArrayLike) -> Any:  # noqa: N803
    """Monod nutrient limitation ``R / (k + R)``.

    Args:
        R: Nutrient concentration (e.g. N, P, Si).
        k: Nutrient half saturation constant.
    """
    return np.divide(R, np.add(k, R))


# =============================================================================
# Photosynthesis
# =============================================================================


@register_kernel
def light_limitation_smith(PAR: ArrayLike, alpha: ArrayLike, mu0: ArrayLike) -> Any:  # noqa: N803
    """Smith (1936) light limitation ``alpha*PAR / sqrt(mu0**2 + alpha**2*PAR**2)``.

    Args:
        PAR: Photosynthetic active radiation.
        alpha: Initial photosynthetic slope.
        mu0: Maximum growth rate at T = 0 degC.
    """
    light = np.multiply(alpha, PAR)
    return np.divide(light, np.sqrt(np.square(mu0) + np.square(light)))


@register_kernel
def light_limitation_geider(
    PAR: ArrayLike,  # noqa: N803
    maximum_growth_rate: ArrayLike,
    photosynthetic_slope: ArrayLike,
    chlorophyll_to_carbon_ratio: ArrayLike,
) -> Any:
    """Geider et al. (1998) light limited growth ``Pmax*(1 - exp(-a*theta*PAR/Pmax))``.

    Args:
        PAR: Photosynthetic active radiation.
        maximum_growth_rate: Maximum growth rate before nutrient limitation.
        photosynthetic_slope: Initial photosynthetic slope.
        chlorophyll_to_carbon_ratio: Cellular chlorophyll to carbon ratio.
    """
    exponent = np.divide(
        -np.multiply(np.multiply(photosynthetic_slope, chlorophyll_to_carbon_ratio), PAR),
        maximum_growth_rate,
    )
    return np.multiply(maximum_growth_rate, 1.0 - np.exp(exponent))


@register_kernel
def light_limitation_darwin(
    I: ArrayLike,  # noqa: E741, N803
    k_saturation: ArrayLike,
    k_inhibition: ArrayLike,
    light_penalty: ArrayLike,
) -> Any:
    """Light limitation of the MITgcm-DARWIN model.

    ``(1 - exp(k_saturation * I)) * exp(k_inhibition) * light_penalty``
    """
    return (
        (1.0 - np.exp(np.multiply(k_saturation, I)))
        * np.exp(k_inhibition)
        * np.asarray(light_penalty)
    )


@register_kernel
def default_PC(  # noqa: N802
    PC_max: ArrayLike,  # noqa: N803
    nutrient_limitation: ArrayLike,
    light_limitation: ArrayLike,
    temperature_limitation: ArrayLike,
    co2_limitation: ArrayLike,
) -> Any:
    """Carbon-specific growth rate of the MITgcm-DARWIN model (product of limits)."""
    return (
        np.asarray(PC_max)
        * np.asarray(nutrient_limitation)
        * np.asarray(light_limitation)
        * np.asarray(temperature_limitation)
        * np.asarray(co2_limitation)
    )


@register_kernel
def photosynthetic_growth_single_nutrient(
    N: ArrayLike,  # noqa: N803
    P: ArrayLike,  # noqa: N803
    PAR: ArrayLike,  # noqa: N803
    mu0: ArrayLike,
    kn: ArrayLike,
    alpha: ArrayLike,
) -> Any:
    """Single nutrient Monod-Smith photosynthetic growth (e.g. Kuhn 2015)."""
    return (
        np.asarray(mu0)
        * monod_limitation(N, kn)
        * light_limitation_smith(PAR, alpha, mu0)
        * np.asarray(P)
    )


@register_kernel
def photosynthetic_growth_single_nutrient_geider_light(
    N: ArrayLike,  # noqa: N803
    P: ArrayLike,  # noqa: N803
    PAR: ArrayLike,  # noqa: N803
    maximum_growth_rate: ArrayLike,
    kn: ArrayLike,
    photosynthetic_slope: ArrayLike,
    chlorophyll_to_carbon_ratio: ArrayLike,
) -> Any:
    """Single nutrient Monod-Geider photosynthetic growth."""
    return (
        monod_limitation(N, kn)
        * light_limitation_geider(
            PAR, maximum_growth_rate, photosynthetic_slope, chlorophyll_to_carbon_ratio
        )
        * np.asarray(P)
    )


@register_kernel
def net_photosynthetic_growth_single_nutrient(
    N: ArrayLike,  # noqa: N803
    P: ArrayLike,  # noqa: N803
    PAR: ArrayLike,  # noqa: N803
    maximum_growth_rate: ArrayLike,
    nutrient_half_saturation: ArrayLike,
    alpha: ArrayLike,
    mask: ArrayLike,
) -> Any:
    """Net Monod-Smith photosynthetic growth of all plankton selected by mask."""
    growth = photosynthetic_growth_single_nutrient(
        N, P, PAR, maximum_growth_rate, nutrient_half_saturation, alpha
    )
    return np.sum(np.where(np.asarray(mask) != 0, growth, 0.0), axis=-1)


# =============================================================================
# Mortality
# =============================================================================


@register_kernel
def linear_loss(P: ArrayLike, l: ArrayLike) -> Any:  # noqa: E741, N803
    """Linear mortality ``l * P``, a closure for low density death terms."""
    return np.multiply(l, P)


@register_kernel
def quadratic_loss(P: ArrayLike, l: ArrayLike) -> Any:  # noqa: E741, N803
    """Quadratic mortality ``l * P**2``, e.g. viral or density dependent losses."""
    return np.multiply(l, np.square(P))


@register_kernel
def net_linear_loss(P: ArrayLike, linear_mortality: ArrayLike, mask: ArrayLike) -> Any:  # noqa: N803
    """Net linear mortality of all plankton selected by mask."""
    return np.sum(np.where(np.asarray(mask) != 0, linear_loss(P, linear_mortality), 0.0))


@register_kernel
def net_quadratic_loss(
    P: ArrayLike,  # noqa: N803
    quadratic_mortality: ArrayLike,
    mask: ArrayLike,
) -> Any:
    """Net quadratic mortality of all plankton selected by mask."""
    return np.sum(
        np.where(np.asarray(mask) != 0, quadratic_loss(P, quadratic_mortality), 0.0)
    )


# =============================================================================
# Predation
# =============================================================================


@register_kernel
def holling_type_2(R: ArrayLike, k: ArrayLike) -> Any:  # noqa: N803
    """Holling (1959) type II functional response ``R / (k + R)``.

    Args:
        R: Prey density.
        k: Prey density at which predation is half its maximum rate.
    """
    return monod_limitation(R, k)


@register_kernel
def predation_loss_idealized(
    P: ArrayLike,  # noqa: N803
    Z: ArrayLike,  # noqa: N803
    gmax: ArrayLike,
    kp: ArrayLike,
) -> Any:
    """Loss rate of prey P to predator Z with a Holling type II response."""
    return np.asarray(gmax) * holling_type_2(P, kp) * np.asarray(Z)


@register_kernel
def predation_gain_idealized(
    P: ArrayLike,  # noqa: N803
    Z: ArrayLike,  # noqa: N803
    beta: ArrayLike,
    gmax: ArrayLike,
    kp: ArrayLike,
) -> Any:
    """Gain rate of predator Z feeding on P, scaled by assimilation efficiency."""
    return np.asarray(beta) * predation_loss_idealized(P, Z, gmax, kp)


@register_kernel
def predation_assimilation_loss_idealized(
    P: ArrayLike,  # noqa: N803
    Z: ArrayLike,  # noqa: N803
    beta: ArrayLike,
    gmax: ArrayLike,
    kp: ArrayLike,
) -> Any:
    """Grazed biomass lost to the environment through sloppy feeding."""
    return (1.0 - np.asarray(beta)) * predation_loss_idealized(P, Z, gmax, kp)


@register_kernel
def predation_loss_preferential(
    P: ArrayLike,  # noqa: N803
    Z: ArrayLike,  # noqa: N803
    gmax: ArrayLike,
    kp: ArrayLike,
    palatability: ArrayLike,
) -> Any:
    """Loss rate of prey P to predator Z, modulated by palatability."""
    return np.asarray(palatability) * predation_loss_idealized(P, Z, gmax, kp)


@register_kernel
def predation_gain_preferential(
    P: ArrayLike,  # noqa: N803
    Z: ArrayLike,  # noqa: N803
    beta: ArrayLike,
    gmax: ArrayLike,
    kp: ArrayLike,
    palatability: ArrayLike,
) -> Any:
    """Gain rate of predator Z feeding on P, modulated by palatability."""
    return np.asarray(beta) * predation_loss_preferential(P, Z, gmax, kp, palatability)


@register_kernel
def predation_assimilation_loss_preferential(
    P: ArrayLike,  # noqa: N803
    Z: ArrayLike,  # noqa: N803
    beta: ArrayLike,
    gmax: ArrayLike,
    kp: ArrayLike,
    palatability: ArrayLike,
) -> Any:
    """Sloppy feeding loss of predator Z feeding on P, modulated by palatability."""
    return (1.0 - np.asarray(beta)) * predation_loss_preferential(
        P, Z, gmax, kp, palatability
    )


def _pairwise_loss(
    P: ArrayLike,  # noqa: N803
    gmax: ArrayLike,
    kp: ArrayLike,
    palatability: ArrayLike,
) -> NDArray[np.floating]:
    """Return loss[predator, prey] for every pair of plankton classes."""
    p = np.asarray(P, dtype=np.float64)
    return predation_loss_preferential(
        p[np.newaxis, :],
        p[:, np.newaxis],
        np.asarray(gmax, dtype=np.float64)[:, np.newaxis],
        np.asarray(kp, dtype=np.float64)[:, np.newaxis],
        palatability,
    )


@register_kernel
def summed_predation_loss_preferential(
    prey_index: int,
    P: ArrayLike,  # noqa: N803
    maximum_predation_rate: ArrayLike,
    holling_half_saturation: ArrayLike,
    palatability: ArrayLike,
) -> Any:
    """Total loss of plankton ``prey_index`` to every predator."""
    loss = _pairwise_loss(P, maximum_predation_rate, holling_half_saturation, palatability)
    return np.sum(loss[:, int(prey_index)])


@register_kernel
def summed_predation_gain_preferential(
    predator_index: int,
    P: ArrayLike,  # noqa: N803
    assimilation_efficiency: ArrayLike,
    maximum_predation_rate: ArrayLike,
    holling_half_saturation: ArrayLike,
    palatability: ArrayLike,
) -> Any:
    """Total assimilated gain of plankton ``predator_index`` feeding on all prey."""
    loss = _pairwise_loss(P, maximum_predation_rate, holling_half_saturation, palatability)
    beta = np.asarray(assimilation_efficiency, dtype=np.float64)
    return np.sum((beta * loss)[int(predator_index), :])


@register_kernel
def summed_predation_assimilation_loss_preferential(
    predator_index: int,
    P: ArrayLike,  # noqa: N803
    assimilation_efficiency: ArrayLike,
    maximum_predation_rate: ArrayLike,
    holling_half_saturation: ArrayLike,
    palatability: ArrayLike,
) -> Any:
    """Total sloppy feeding loss of plankton ``predator_index`` over all prey."""
    loss = _pairwise_loss(P, maximum_predation_rate, holling_half_saturation, palatability)
    beta = np.asarray(assimilation_efficiency, dtype=np.float64)
    return np.sum(((1.0 - beta) * loss)[int(predator_index), :])


@register_kernel
def net_predation_assimilation_loss_preferential(
    P: ArrayLike,  # noqa: N803
    holling_half_saturation: ArrayLike,
    maximum_predation_rate: ArrayLike,
    palatability: ArrayLike,
    assimilation_efficiency: ArrayLike,
) -> Any:
    """Net sloppy feeding loss of all plankton to the environment."""
    loss = _pairwise_loss(P, maximum_predation_rate, holling_half_saturation, palatability)
    beta = np.asarray(assimilation_efficiency, dtype=np.float64)
    return np.sum((1.0 - beta) * loss)


# =============================================================================
# Remineralization
# =============================================================================


@register_kernel
def remineralization_idealized(D: ArrayLike, r: ArrayLike) -> Any:  # noqa: N803
    """Idealized remineralization ``r * D`` of detritus into dissolved nutrient."""
    return np.multiply(r, D)


# =============================================================================
# Public namespaces
# =============================================================================

MATH_FUNCTIONS: Final[Mapping[str, Callable[..., Any]]] = MappingProxyType(
    {
        "exp": np.exp,
        "log": np.log,
        "sqrt": np.sqrt,
        "tanh": np.tanh,
        "abs": np.abs,
        "min": np.minimum,
        "max": np.maximum,
    }
)

KERNELS: Final[Mapping[str, Callable[..., Any]]] = MappingProxyType(_REGISTRY)
