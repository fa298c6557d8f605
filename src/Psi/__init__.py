"""Distributed lattice decomposition, halo exchange and SOR Poisson solvers."""

from .datastructures import (
    DomainConfig,
    PsiParams,
    SORConfig,
    SolverStatus,
    RuntimeConfig,
    GlobalResults,
    PerRankResults,
)
from .exceptions import (
    PsiError,
    ConfigError,
    DecompositionError,
    RelaxationError,
    HaloExchangeError,
    abort_on_error,
)
from .log import RankFilter, setup_logging
from .mpi import CartesianDecomposition, HaloPlan, FORWARD, BACKWARD
from .field import Field, HOST_TO_TARGET, TARGET_TO_HOST
from .permittivity import PermittivityModel, ConstantPermittivity, FunctionPermittivity, FieldPermittivity
from .psi import PsiFields
from .solvers import SORSolver, UniformSOR, VariableSOR, create_solver
from .problems import (
    set_wall_charges,
    exact_wall_charge_profile,
    sinusoidal_permittivity,
    gather_z_profiles,
    three_point_charge,
)

__all__ = [
    "DomainConfig",
    "PsiParams",
    "SORConfig",
    "SolverStatus",
    "RuntimeConfig",
    "GlobalResults",
    "PerRankResults",
    "PsiError",
    "ConfigError",
    "DecompositionError",
    "RelaxationError",
    "HaloExchangeError",
    "abort_on_error",
    "RankFilter",
    "setup_logging",
    "CartesianDecomposition",
    "HaloPlan",
    "FORWARD",
    "BACKWARD",
    "Field",
    "HOST_TO_TARGET",
    "TARGET_TO_HOST",
    "PermittivityModel",
    "ConstantPermittivity",
    "FunctionPermittivity",
    "FieldPermittivity",
    "PsiFields",
    "SORSolver",
    "UniformSOR",
    "VariableSOR",
    "create_solver",
    "set_wall_charges",
    "exact_wall_charge_profile",
    "sinusoidal_permittivity",
    "gather_z_profiles",
    "three_point_charge",
]
