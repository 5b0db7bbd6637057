"""plankton_engine size-structured plankton model construction package."""

from __future__ import annotations

from .allometry import (
    SizeClass,
    build_size_classes,
    derive_parameters,
    resolve_diameters,
    scale,
    split_diameters,
)
from .compiler import (
    COORDINATES,
    TracerFunction,
    TracerModel,
    define_tracer_functions,
    load_helper_functions,
)
from .composer import ParameterSets, compose, compose_all, model_parameters
from .errors import (
    ConfigurationError,
    ConsistencyError,
    ExpressionSyntaxError,
    NameResolutionError,
    PlanktonEngineError,
    StateShapeError,
)
from .expressions import (
    BinaryOp,
    Call,
    Expr,
    Index,
    Literal,
    Symbol,
    UnaryOp,
    call,
    free_symbols,
    index,
    parse_expression,
    sym,
    to_text,
    total,
)
from .interactions import InteractionMatrix, build_matrices
from .kernels import KERNELS, MATH_FUNCTIONS, register_kernel
from .nipizd import NiPiZDModel, construct, instantiate
from .parameters import (
    DAY,
    DEFAULT_BGC_ARGS,
    DEFAULT_INTERACTION_ARGS,
    DEFAULT_PHYTO_ARGS,
    DEFAULT_PHYTO_DIAMETERS,
    DEFAULT_ZOO_ARGS,
    DEFAULT_ZOO_DIAMETERS,
    AllometricCoefficients,
    BiogeochemistryArgs,
    DiameterRange,
    FeedingTraits,
    InteractionArgs,
    PhytoplanktonArgs,
    ZooplanktonArgs,
    merge_args,
)
from .sinking import (
    SinkingFlux,
    VerticalGrid,
    build_sinking_operator,
    sinking_velocity_profile,
)

__all__ = [
    "COORDINATES",
    "DAY",
    "DEFAULT_BGC_ARGS",
    "DEFAULT_INTERACTION_ARGS",
    "DEFAULT_PHYTO_ARGS",
    "DEFAULT_PHYTO_DIAMETERS",
    "DEFAULT_ZOO_ARGS",
    "DEFAULT_ZOO_DIAMETERS",
    "KERNELS",
    "MATH_FUNCTIONS",
    "AllometricCoefficients",
    "BinaryOp",
    "BiogeochemistryArgs",
    "Call",
    "ConfigurationError",
    "ConsistencyError",
    "DiameterRange",
    "Expr",
    "ExpressionSyntaxError",
    "FeedingTraits",
    "Index",
    "InteractionArgs",
    "InteractionMatrix",
    "Literal",
    "NameResolutionError",
    "NiPiZDModel",
    "ParameterSets",
    "PhytoplanktonArgs",
    "PlanktonEngineError",
    "SinkingFlux",
    "SizeClass",
    "StateShapeError",
    "Symbol",
    "TracerFunction",
    "TracerModel",
    "UnaryOp",
    "VerticalGrid",
    "ZooplanktonArgs",
    "build_matrices",
    "build_size_classes",
    "build_sinking_operator",
    "call",
    "compose",
    "compose_all",
    "construct",
    "define_tracer_functions",
    "derive_parameters",
    "free_symbols",
    "index",
    "instantiate",
    "load_helper_functions",
    "merge_args",
    "model_parameters",
    "parse_expression",
    "register_kernel",
    "resolve_diameters",
    "scale",
    "sinking_velocity_profile",
    "split_diameters",
    "sym",
    "to_text",
    "total",
]

__version__ = "0.1.0"
