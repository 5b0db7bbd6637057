# tests/test_parameters.py
"""Unit tests for plankton_engine.parameters."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from plankton_engine.errors import ConfigurationError
from plankton_engine.parameters import (
    DAY,
    DEFAULT_BGC_ARGS,
    DEFAULT_INTERACTION_ARGS,
    DEFAULT_PHYTO_ARGS,
    DEFAULT_ZOO_ARGS,
    DiameterRange,
    FeedingTraits,
    InteractionArgs,
    PhytoplanktonArgs,
    ZooplanktonArgs,
    as_args,
    merge_args,
)

# -------------------------------------------------------------------
# Schemas
# -------------------------------------------------------------------


def test_defaults_follow_reference_values() -> None:
    """Default sets carry the documented coefficients (rates per second)."""
    growth = DEFAULT_PHYTO_ARGS.allometry["maximum_growth_rate"]
    assert growth.a == pytest.approx(2.0 / DAY)
    assert growth.b == pytest.approx(-0.15)
    assert DEFAULT_PHYTO_ARGS.alpha == pytest.approx(0.1953 / DAY)
    predation = DEFAULT_ZOO_ARGS.allometry["maximum_predation_rate"]
    assert predation.a == pytest.approx(30.84 / DAY)
    assert DEFAULT_ZOO_ARGS.holling_half_saturation == pytest.approx(5.0)
    assert DEFAULT_BGC_ARGS.detritus_remineralization == pytest.approx(0.1213 / DAY)
    assert DEFAULT_INTERACTION_ARGS.traits["Z"].assimilation_efficiency == pytest.approx(0.32)


def test_defaults_are_frozen() -> None:
    """Default instances cannot be mutated in place."""
    with pytest.raises(ValidationError):
        DEFAULT_PHYTO_ARGS.linear_mortality = 1.0  # type: ignore[misc]


def test_parameter_and_defined_names() -> None:
    """parameter_names lists the schema fields; defined_names those with values."""
    assert "allometry" not in PhytoplanktonArgs.parameter_names()
    assert {"maximum_growth_rate", "linear_mortality"} <= set(
        PhytoplanktonArgs.parameter_names()
    )
    assert DEFAULT_ZOO_ARGS.defined_names() == frozenset(
        {
            "maximum_predation_rate",
            "holling_half_saturation",
            "linear_mortality",
            "quadratic_mortality",
        }
    )


def test_as_args_passes_instances_through() -> None:
    """A schema instance is returned unchanged."""
    assert as_args(ZooplanktonArgs, DEFAULT_ZOO_ARGS) is DEFAULT_ZOO_ARGS


def test_as_args_accepts_nested_mappings() -> None:
    """The nested dictionary layout validates into the schema."""
    args = as_args(
        PhytoplanktonArgs,
        {
            "allometry": {"maximum_growth_rate": {"a": 1e-5, "b": -0.1}},
            "nutrient_half_saturation": 0.2,
        },
    )
    assert args.allometry["maximum_growth_rate"].b == pytest.approx(-0.1)
    assert args.nutrient_half_saturation == pytest.approx(0.2)


@pytest.mark.parametrize(
    "raw",
    [
        {"maximum_growth_rte": 1.0},
        {"allometry": {"holling_half_saturation": {"a": 1.0, "b": 0.0}}},
        {"allometry": {"maximum_growth_rate": {"a": 1.0}}},
        {"linear_mortality": -1.0},
    ],
)
def test_as_args_rejects_invalid_sets(raw: dict[str, object]) -> None:
    """Unknown keys, foreign allometry entries and invalid values fail early."""
    with pytest.raises(ConfigurationError, match="Invalid phytoplankton"):
        as_args(PhytoplanktonArgs, raw)


def test_parameter_defined_twice_is_rejected() -> None:
    """A parameter may not be both a scalar and an allometry entry."""
    with pytest.raises(ConfigurationError, match="exactly once"):
        as_args(
            PhytoplanktonArgs,
            {
                "maximum_growth_rate": 1e-5,
                "allometry": {"maximum_growth_rate": {"a": 1.0, "b": 0.0}},
            },
        )


def test_diameter_range_validation() -> None:
    """Diameter ranges need positive bounds with min < max."""
    assert DiameterRange(min_diameter=1.0, max_diameter=2.0).splitting == "log_splitting"
    with pytest.raises(ConfigurationError):
        as_args(DiameterRange, {"min_diameter": 5.0, "max_diameter": 5.0})
    with pytest.raises(ConfigurationError):
        as_args(DiameterRange, {"min_diameter": -1.0, "max_diameter": 5.0})


def test_feeding_traits_bounds() -> None:
    """Protection and assimilation efficiency lie in [0, 1]."""
    assert FeedingTraits().protection == 1.0
    with pytest.raises(ConfigurationError):
        as_args(FeedingTraits, {"protection": 1.5})
    with pytest.raises(ConfigurationError):
        as_args(InteractionArgs, {"traits": {"Z": {"assimilation_efficiency": -0.1}}})


# -------------------------------------------------------------------
# Overrides
# -------------------------------------------------------------------


def test_merge_args_changes_one_coefficient() -> None:
    """Nested overrides keep every other value and leave the base untouched."""
    merged = merge_args(
        DEFAULT_PHYTO_ARGS, {"allometry": {"maximum_growth_rate": {"a": 2.5 / DAY}}}
    )
    assert merged.allometry["maximum_growth_rate"].a == pytest.approx(2.5 / DAY)
    assert merged.allometry["maximum_growth_rate"].b == pytest.approx(-0.15)
    assert "nutrient_half_saturation" in merged.allometry
    assert DEFAULT_PHYTO_ARGS.allometry["maximum_growth_rate"].a == pytest.approx(2.0 / DAY)
    assert merged is not DEFAULT_PHYTO_ARGS


def test_merge_args_scalar_replaces_allometry() -> None:
    """A scalar override of an allometric parameter drops its coefficients."""
    merged = merge_args(DEFAULT_PHYTO_ARGS, {"maximum_growth_rate": 1e-5})
    assert merged.maximum_growth_rate == pytest.approx(1e-5)
    assert "maximum_growth_rate" not in merged.allometry
    assert "maximum_growth_rate" in DEFAULT_PHYTO_ARGS.allometry


def test_merge_args_allometry_replaces_scalar() -> None:
    """An allometry override of a scalar parameter drops the scalar."""
    merged = merge_args(
        DEFAULT_ZOO_ARGS, {"allometry": {"holling_half_saturation": {"a": 1.0, "b": 0.1}}}
    )
    assert merged.holling_half_saturation is None
    assert merged.allometry["holling_half_saturation"].b == pytest.approx(0.1)
    assert "maximum_predation_rate" in merged.allometry
    assert DEFAULT_ZOO_ARGS.holling_half_saturation == pytest.approx(5.0)


def test_merge_args_rejects_scalar_and_allometry_together() -> None:
    """Overriding one parameter both ways at once is still a double definition."""
    with pytest.raises(ConfigurationError, match="exactly once"):
        merge_args(
            DEFAULT_ZOO_ARGS,
            {
                "holling_half_saturation": 4.0,
                "allometry": {"holling_half_saturation": {"a": 1.0, "b": 0.1}},
            },
        )


def test_merge_args_validates_result() -> None:
    """An override that breaks the schema raises ConfigurationError."""
    with pytest.raises(ConfigurationError):
        merge_args(DEFAULT_ZOO_ARGS, {"holling_half_saturation": -5.0})
    with pytest.raises(ConfigurationError):
        merge_args(DEFAULT_BGC_ARGS, {"unknown": 1.0})


def test_independent_overrides_do_not_interfere() -> None:
    """Two overrides of the same default are independent values."""
    first = merge_args(DEFAULT_ZOO_ARGS, {"linear_mortality": 1e-6})
    second = merge_args(DEFAULT_ZOO_ARGS, {"linear_mortality": 2e-6})
    assert first.linear_mortality == pytest.approx(1e-6)
    assert second.linear_mortality == pytest.approx(2e-6)
    assert DEFAULT_ZOO_ARGS.linear_mortality == pytest.approx(8e-7)
