"""Domain decomposition with MPI Cartesian topology."""

from __future__ import annotations

import logging

import numpy as np
from mpi4py import MPI

from ..exceptions import ConfigError, DecompositionError

logger = logging.getLogger(__name__)

X, Y, Z = 0, 1, 2
FORWARD, BACKWARD = 0, 1


class CartesianDecomposition:
    """Global and local index space of a 3D lattice split over MPI ranks.

    Creates a Cartesian communicator and computes how the global lattice is
    distributed. Each rank owns ``nlocal`` interior sites per axis, surrounded
    by ``nhalo`` ghost layers. Local coordinates run from ``1`` to
    ``nlocal[d]`` over the interior and from ``1 - nhalo`` to
    ``nlocal[d] + nhalo`` including the halo.

    All attributes are fixed after construction; the object is shared by
    reference between fields and solvers.

    Parameters
    ----------
    ntotal : tuple of int
        Global number of lattice sites along (x, y, z).
    comm : MPI.Comm, optional
        Parent communicator (default: MPI.COMM_WORLD).
    grid : tuple of int
        Requested process grid. Zero entries are chosen by ``MPI.Compute_dims``.
    periodic : tuple of bool
        Periodicity per axis.
    nhalo : int
        Width of the halo region.
    reorder : bool
        Allow MPI to reorder ranks in the Cartesian communicator.

    Raises
    ------
    DecompositionError
        If the process grid does not match the communicator size or does not
        divide ``ntotal`` exactly.
    ConfigError
        If ``ntotal`` or ``nhalo`` are not positive.
    """

    def __init__(
        self,
        ntotal=(64, 64, 64),
        comm: MPI.Comm | None = None,
        grid=(0, 0, 0),
        periodic=(True, True, True),
        nhalo: int = 1,
        reorder: bool = False,
    ):
        self.comm = MPI.COMM_WORLD if comm is None else comm
        self.size = self.comm.Get_size()

        self.ntotal = self._validate_ntotal(ntotal)
        self.periodic = tuple(bool(p) for p in periodic)
        if len(self.periodic) != 3:
            raise ConfigError(f"periodic must have three entries, got {periodic}")
        if nhalo < 1:
            raise ConfigError(f"Halo width must be at least 1, got {nhalo}")
        self.nhalo = int(nhalo)

        # Determine processor grid dimensions
        self.dims = self._compute_dims(grid)

        # Create Cartesian topology
        self.cart_comm = self.comm.Create_cart(
            dims=list(self.dims), periods=list(self.periodic), reorder=reorder
        )
        self.rank = self.cart_comm.Get_rank()
        self.coords = tuple(self.cart_comm.Get_coords(self.rank))

        # Discover neighbors
        self.neighbours = self._find_neighbours()

        # Compute local domain
        self.nlocal = tuple(n // p for n, p in zip(self.ntotal, self.dims))
        self.offset = tuple(c * n for c, n in zip(self.coords, self.nlocal))
        self.nall = tuple(n + 2 * self.nhalo for n in self.nlocal)
        self.nsites = int(np.prod(self.nall))
        self.strides = (self.nall[Y] * self.nall[Z], self.nall[Z], 1)

        self.lmin = (0.5, 0.5, 0.5)
        self.ltot = tuple(float(n) for n in self.ntotal)

    @classmethod
    def from_config(cls, config, comm: MPI.Comm | None = None) -> "CartesianDecomposition":
        """Build from a :class:`~Psi.datastructures.DomainConfig`."""
        return cls(
            ntotal=config.ntotal,
            comm=comm,
            grid=config.grid,
            periodic=config.periodic,
            nhalo=config.nhalo,
            reorder=config.reorder,
        )

    # ============================================================================
    # Construction helpers
    # ============================================================================

    @staticmethod
    def _validate_ntotal(ntotal) -> tuple[int, int, int]:
        ntotal = tuple(int(n) for n in ntotal)
        if len(ntotal) != 3 or any(n < 1 for n in ntotal):
            raise ConfigError(f"ntotal must be three positive integers, got {ntotal}")
        return ntotal

    def _compute_dims(self, grid) -> tuple[int, int, int]:
        """Fill free (zero) entries of the requested grid and check it."""
        grid = [int(p) for p in grid]
        if len(grid) != 3 or any(p < 0 for p in grid):
            raise DecompositionError(f"Process grid must be three non-negative integers, got {grid}")

        fixed = int(np.prod([p for p in grid if p > 0]))
        if self.size % fixed != 0 or (0 not in grid and fixed != self.size):
            raise DecompositionError(
                f"Process grid {grid} is incompatible with {self.size} MPI ranks"
            )
        dims = tuple(MPI.Compute_dims(self.size, grid))

        if int(np.prod(dims)) != self.size:
            raise DecompositionError(
                f"Process grid {dims} does not multiply to {self.size} MPI ranks"
            )
        for d in range(3):
            if self.ntotal[d] % dims[d] != 0:
                raise DecompositionError(
                    f"ntotal[{d}] = {self.ntotal[d]} is not divisible by "
                    f"{dims[d]} processes along that axis"
                )
        return dims

    def _find_neighbours(self) -> tuple[tuple[int, int], ...]:
        """Use Cart_shift to find neighbour ranks as [dim][FORWARD/BACKWARD]."""
        neighbours = []
        for d in range(3):
            backward, forward = self.cart_comm.Shift(d, 1)
            neighbours.append((forward, backward))
        return tuple(neighbours)

    # ============================================================================
    # Accessors
    # ============================================================================

    def neighbour(self, dim: int, direction: int) -> int:
        """Rank of the adjacent process, or ``MPI.PROC_NULL`` at a closed edge."""
        return self.neighbours[dim][direction]

    def index(self, ic, jc, kc):
        """Linear storage address of local coordinate (ic, jc, kc).

        Works element-wise on integer arrays.
        """
        xs, ys, zs = self.strides
        nh = self.nhalo
        return xs * (ic + nh - 1) + ys * (jc + nh - 1) + zs * (kc + nh - 1)

    def index_to_ijk(self, index):
        """Inverse of :meth:`index`."""
        xs, ys, _ = self.strides
        nh = self.nhalo
        ic = index // xs
        jc = (index - xs * ic) // ys
        kc = index - xs * ic - ys * jc
        return ic + 1 - nh, jc + 1 - nh, kc + 1 - nh

    def global_coords(self, ic, jc, kc) -> tuple:
        """Global (1-based) lattice coordinates of a local site."""
        return (self.offset[X] + ic, self.offset[Y] + jc, self.offset[Z] + kc)

    def position(self, ic, jc, kc) -> tuple:
        """Physical position of a local site."""
        gx, gy, gz = self.global_coords(ic, jc, kc)
        return (self.lmin[X] + gx - 1, self.lmin[Y] + gy - 1, self.lmin[Z] + gz - 1)

    def minimum_distance(self, r1, r2) -> np.ndarray:
        """Separation ``r2 - r1`` under the minimum image convention.

        The correction is only applied on periodic axes.
        """
        r12 = np.asarray(r2, dtype=float) - np.asarray(r1, dtype=float)
        for d in range(3):
            if not self.periodic[d]:
                continue
            if r12[d] > 0.5 * self.ltot[d]:
                r12[d] -= self.ltot[d]
            if r12[d] < -0.5 * self.ltot[d]:
                r12[d] += self.ltot[d]
        return r12

    def interior_slices(self) -> tuple[slice, slice, slice]:
        """Slices selecting the owned sites of an ``nall``-shaped array."""
        nh = self.nhalo
        return tuple(slice(nh, nh + n) for n in self.nlocal)

    def global_slices(self) -> tuple[slice, slice, slice]:
        """Slices selecting this rank's block of an ``ntotal``-shaped array."""
        return tuple(slice(o, o + n) for o, n in zip(self.offset, self.nlocal))

    @property
    def checkerboard_compatible(self) -> bool:
        """True if local and global site parity agree on every rank.

        Requires an even number of local sites along every axis, which makes
        every offset even.
        """
        return all(n % 2 == 0 for n in self.nlocal)

    def info(self) -> None:
        """Log a summary of the decomposition (rank 0)."""
        if self.rank != 0:
            return
        logger.info("System size:    %d %d %d", *self.ntotal)
        logger.info("Decomposition:  %d %d %d", *self.dims)
        logger.info("Local domain:   %d %d %d", *self.nlocal)
        logger.info("Periodic:       %d %d %d", *self.periodic)
        logger.info("Halo nhalo:     %d", self.nhalo)

    def free(self) -> None:
        """Release the Cartesian communicator."""
        if self.cart_comm != MPI.COMM_NULL:
            self.cart_comm.Free()
            self.cart_comm = MPI.COMM_NULL
