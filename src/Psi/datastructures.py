"""Data structures for domain, physics and solver configuration and results."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

FLT_EPSILON = float(np.finfo(np.float32).eps)


@dataclass
class DomainConfig:
    """Lattice and decomposition request (same for all ranks)."""
    ntotal: tuple[int, int, int] = (64, 64, 64)
    grid: tuple[int, int, int] = (0, 0, 0)
    periodic: tuple[bool, bool, bool] = (True, True, True)
    nhalo: int = 1
    reorder: bool = False


@dataclass
class PsiParams:
    """Electrostatic parameters.

    ``valency`` holds one entry per charge species; ``nk`` follows from it.
    """
    valency: tuple[int, ...] = (1, -1)
    unit_charge: float = 1.0
    beta: float = 1.0
    epsilon: float = 1.0
    epsilon2: float = 1.0
    e0: tuple[float, float, float] = (0.0, 0.0, 0.0)

    @property
    def nk(self) -> int:
        return len(self.valency)


@dataclass
class SORConfig:
    """Numerical controls for the SOR iteration."""
    maxits: int = 10000
    reltol: float = FLT_EPSILON
    abstol: float = 0.01 * FLT_EPSILON
    check_interval: int = 5
    nfreq: int = sys.maxsize
    use_numba: bool = True


class SolverStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"


@dataclass
class RuntimeConfig:
    """Global runtime configuration (same for all ranks)."""
    # Problem
    ntotal: tuple[int, int, int] = (0, 0, 0)
    grid: tuple[int, int, int] = (1, 1, 1)
    nhalo: int = 1

    # Specs
    mpi_ranks: int = 1
    method: str = ""
    halo_strategy: str = "numpy_buffer"

    # SOR
    use_numba: bool = True
    num_threads: int = 1
    maxits: int = 0
    reltol: float = 0.0
    abstol: float = 0.0
    check_interval: int = 0


@dataclass
class GlobalResults:
    """Global solver results (same for all ranks)."""
    # Convergence info
    iterations: int = 0
    residual_history: list[float] = field(default_factory=list)
    converged: bool = False
    status: str = SolverStatus.UNINITIALIZED.value
    criterion: str = ""
    initial_residual: float = 0.0
    final_residual: float = 0.0
    # Global timings
    wall_time: float = 0.0
    compute_time: float = 0.0
    mpi_comm_time: float = 0.0
    halo_exchange_time: float = 0.0


@dataclass
class PerRankResults:
    """Per-rank performance results."""
    mpi_rank: int = 0
    hostname: str = ""
    coords: tuple[int, int, int] = (0, 0, 0)
    wall_time: float = 0.0
    compute_time: float = 0.0
    mpi_comm_time: float = 0.0
    halo_exchange_time: float = 0.0
