"""Multi-component lattice fields with halo storage."""

from __future__ import annotations

import logging

import numpy as np
from mpi4py import MPI
from numba import cuda

from .exceptions import ConfigError
from .mpi.decomposition import CartesianDecomposition
from .mpi.halo import HaloPlan

logger = logging.getLogger(__name__)

HOST_TO_TARGET = "host_to_target"
TARGET_TO_HOST = "target_to_host"


class Field:
    """A field with ``nf`` components at every storage site of a decomposition.

    The authoritative data lives in :attr:`data`, a C-ordered array of shape
    ``(nf, nall_x, nall_y, nall_z)``. :attr:`flat` is a view of the same
    memory addressed by the decomposition's linear ``index``.

    Ghost layers are only valid right after :meth:`halo`.

    Parameters
    ----------
    decomposition : CartesianDecomposition
        Lattice decomposition (held by reference)
    nf : int, default 1
        Number of components per site
    nhcomm : int, optional
        Width of the halo refreshed by :meth:`halo` (default: full halo)
    name : str
        Label used in log messages
    strategy : str
        Halo communication strategy
    """

    def __init__(self, decomposition: CartesianDecomposition, nf: int = 1, nhcomm: int | None = None,
                 name: str = "field", strategy: str = "numpy_buffer"):
        self.decomposition = decomposition
        self.nf = nf
        self.name = name
        self.plan = HaloPlan(decomposition, nf=nf, nhcomm=nhcomm, strategy=strategy)
        self.nhcomm = self.plan.nhcomm

        self.data = np.zeros((nf, *decomposition.nall))
        self.target = None

    @property
    def flat(self) -> np.ndarray:
        """View of shape ``(nf, nsites)``."""
        return self.data.reshape(self.nf, self.decomposition.nsites)

    @property
    def interior(self) -> np.ndarray:
        """View of the owned sites, shape ``(nf, *nlocal)``."""
        return self.data[(slice(None), *self.decomposition.interior_slices())]

    @interior.setter
    def interior(self, values) -> None:
        self.data[(slice(None), *self.decomposition.interior_slices())] = values

    # ============================================================================
    # Site accessors
    # ============================================================================

    def scalar(self, index: int, n: int = 0) -> float:
        return float(self.flat[n, index])

    def scalar_set(self, index: int, value: float, n: int = 0) -> None:
        self.flat[n, index] = value

    def scalar_array(self, index: int) -> np.ndarray:
        """All components at one site (copy)."""
        return self.flat[:, index].copy()

    def scalar_array_set(self, index: int, values) -> None:
        self.flat[:, index] = values

    def vector(self, index: int) -> np.ndarray:
        self._require_vector()
        return self.flat[:, index].copy()

    def vector_set(self, index: int, values) -> None:
        self._require_vector()
        self.flat[:, index] = values

    def _require_vector(self) -> None:
        if self.nf != 3:
            raise ConfigError(f"Field '{self.name}' has {self.nf} components, not a vector")

    # ============================================================================
    # Communication
    # ============================================================================

    def halo(self) -> None:
        """Refresh the ghost layers from neighbouring ranks."""
        self.plan.exchange(self.data)

    def reduce_stats(self, comm: MPI.Comm | None = None) -> dict[str, np.ndarray]:
        """Global min, max and sum of each component over owned sites."""
        comm = self.decomposition.cart_comm if comm is None else comm
        local = self.interior.reshape(self.nf, -1)
        stats = {}
        for key, reduce, op in (("min", np.min, MPI.MIN), ("max", np.max, MPI.MAX), ("sum", np.sum, MPI.SUM)):
            stats[key] = np.empty(self.nf)
            comm.Allreduce(reduce(local, axis=1), stats[key], op=op)
        return stats

    def gather(self, root: int = 0) -> np.ndarray | None:
        """Assemble the global interior of shape ``(nf, *ntotal)`` on ``root``."""
        decomposition = self.decomposition
        comm = decomposition.cart_comm
        blocks = comm.gather((decomposition.offset, np.ascontiguousarray(self.interior)), root=root)

        if comm.Get_rank() != root:
            return None

        global_data = np.zeros((self.nf, *decomposition.ntotal))
        for offset, block in blocks:
            index = (slice(None),) + tuple(slice(o, o + n) for o, n in zip(offset, block.shape[1:]))
            global_data[index] = block
        return global_data

    # ============================================================================
    # Target (accelerator) mirror
    # ============================================================================

    def target_create(self) -> None:
        """Allocate the target mirror; a host array when no GPU is present.

        The mirror is only ever synchronised through :meth:`memcpy`.
        """
        if self.target is not None:
            return
        if cuda.is_available():
            self.target = cuda.device_array_like(self.data)
        else:
            self.target = np.empty_like(self.data)
        logger.debug("Created target mirror for field '%s' (%s)", self.name, type(self.target).__name__)

    def memcpy(self, direction: str) -> None:
        """Copy between host data and the target mirror.

        Parameters
        ----------
        direction : str
            ``HOST_TO_TARGET`` or ``TARGET_TO_HOST``
        """
        if self.target is None:
            raise ConfigError(f"Field '{self.name}' has no target mirror")

        on_host = isinstance(self.target, np.ndarray)
        if direction == HOST_TO_TARGET:
            if on_host:
                np.copyto(self.target, self.data)
            else:
                self.target.copy_to_device(self.data)
        elif direction == TARGET_TO_HOST:
            if on_host:
                np.copyto(self.data, self.target)
            else:
                self.target.copy_to_host(self.data)
        else:
            raise ValueError(f"Unknown copy direction '{direction}'")
