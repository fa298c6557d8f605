"""Electrokinetic state: potential, charge densities and parameters."""

from __future__ import annotations

import logging

import numpy as np
from mpi4py import MPI

from .datastructures import PsiParams
from .exceptions import ConfigError
from .field import Field
from .mpi.decomposition import CartesianDecomposition

logger = logging.getLogger(__name__)


class PsiFields:
    """Potential ``psi`` and charge densities ``rho`` on one decomposition.

    ``psi`` has one component; ``rho`` has one component per species with
    valency ``params.valency[n]``.

    Parameters
    ----------
    decomposition : CartesianDecomposition
        Lattice decomposition
    params : PsiParams, optional
        Physical parameters (default: two species with valency +1 and -1)
    strategy : str
        Halo communication strategy for both fields
    """

    def __init__(self, decomposition: CartesianDecomposition, params: PsiParams | None = None,
                 strategy: str = "numpy_buffer"):
        self.params = PsiParams() if params is None else params
        if self.params.nk < 1:
            raise ConfigError("At least one charge species is required")
        if self.params.epsilon <= 0.0:
            raise ConfigError(f"Permittivity must be positive, got {self.params.epsilon}")

        self.decomposition = decomposition
        self.nk = self.params.nk
        self.valency = np.asarray(self.params.valency, dtype=float)
        self.psi = Field(decomposition, nf=1, name="psi", strategy=strategy)
        self.rho = Field(decomposition, nf=self.nk, name="rho", strategy=strategy)

    # ============================================================================
    # Site accessors
    # ============================================================================

    def psi_value(self, index: int) -> float:
        return self.psi.scalar(index)

    def psi_set(self, index: int, value: float) -> None:
        self.psi.scalar_set(index, value)

    def rho_value(self, index: int, n: int) -> float:
        return self.rho.scalar(index, n)

    def rho_set(self, index: int, n: int, value: float) -> None:
        self.rho.scalar_set(index, value, n)

    def rho_elec(self, index: int) -> float:
        """Total charge density ``e * sum_n z_n rho_n`` at a site."""
        return float(self.params.unit_charge * np.dot(self.valency, self.rho.flat[:, index]))

    def rho_elec_map(self) -> np.ndarray:
        """Total charge density at every storage site, shape ``nall``."""
        return self.params.unit_charge * np.tensordot(self.valency, self.rho.data, axes=1)

    def ionic_strength(self, index: int) -> float:
        """``0.5 * sum_n z_n^2 rho_n`` at a site."""
        return float(0.5 * np.dot(self.valency**2, self.rho.flat[:, index]))

    def source_map(self) -> np.ndarray:
        """Right-hand side term ``e * beta * rho_elec`` of the Poisson equation."""
        return self.params.unit_charge * self.params.beta * self.rho_elec_map()

    # ============================================================================
    # Derived quantities
    # ============================================================================

    def bjerrum_length(self, epsilon: float | None = None) -> float:
        """Bjerrum length ``e^2 beta / (4 pi epsilon)``."""
        epsilon = self.params.epsilon if epsilon is None else epsilon
        e = self.params.unit_charge
        return e * e * self.params.beta / (4.0 * np.pi * epsilon)

    def debye_length(self, ionic_strength: float, epsilon: float | None = None) -> float:
        """Debye length ``1 / sqrt(8 pi l_B I)`` for a bulk ionic strength ``I``."""
        if ionic_strength <= 0.0:
            raise ConfigError(f"Ionic strength must be positive, got {ionic_strength}")
        return 1.0 / np.sqrt(8.0 * np.pi * self.bjerrum_length(epsilon) * ionic_strength)

    def electric_field(self, index: int) -> np.ndarray:
        """Central difference ``E = -grad psi`` at a site.

        Requires a valid psi halo.
        """
        flat = self.psi.flat[0]
        field = np.empty(3)
        for d, stride in enumerate(self.decomposition.strides):
            field[d] = -0.5 * (flat[index + stride] - flat[index - stride])
        return field

    # ============================================================================
    # Communication
    # ============================================================================

    def halo_psi(self) -> None:
        self.psi.halo()

    def halo_rho(self) -> None:
        self.rho.halo()

    def stats_reduce(self, comm: MPI.Comm | None = None) -> dict[str, np.ndarray]:
        """Global min, max and total of psi, each species and rho_elec.

        Entries are ordered ``[psi, rho_0, ..., rho_{nk-1}, rho_elec]``.
        """
        comm = self.decomposition.cart_comm if comm is None else comm
        interior = self.decomposition.interior_slices()
        local = np.concatenate([
            self.psi.data[0][interior][np.newaxis],
            self.rho.data[(slice(None), *interior)],
            self.rho_elec_map()[interior][np.newaxis],
        ]).reshape(self.nk + 2, -1)

        stats = {}
        for key, reduce, op in (("min", np.min, MPI.MIN), ("max", np.max, MPI.MAX), ("total", np.sum, MPI.SUM)):
            stats[key] = np.empty(self.nk + 2)
            comm.Allreduce(reduce(local, axis=1), stats[key], op=op)
        return stats

    def stats_info(self) -> None:
        """Log the reduced statistics (rank 0)."""
        stats = self.stats_reduce()
        if self.decomposition.rank != 0:
            return
        labels = ["psi"] + [f"rho_{n}" for n in range(self.nk)] + ["rho_el"]
        logger.info("Scalars - total, minimum, maximum")
        for n, label in enumerate(labels):
            logger.info("[%6s] %14.7e %14.7e %14.7e", label, stats["total"][n], stats["min"][n], stats["max"][n])
