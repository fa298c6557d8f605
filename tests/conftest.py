import pytest
from mpi4py import MPI
from mpi4py.MPI import COMM_WORLD as comm

from Psi import CartesianDecomposition


def process_grid(grid=(0, 0, 0)):
    """Process grid MPI would choose for COMM_WORLD."""
    return tuple(MPI.Compute_dims(comm.Get_size(), list(grid)))


@pytest.fixture
def make_decomposition():
    """Decomposition with a given local extent on every rank.

    ``nlocal`` is per rank, so the global size scales with the process grid.
    """
    created = []

    def make(nlocal=(4, 4, 4), grid=(0, 0, 0), periodic=(True, True, True), nhalo=1):
        dims = process_grid(grid)
        ntotal = tuple(n * p for n, p in zip(nlocal, dims))
        decomposition = CartesianDecomposition(ntotal, comm, grid=dims, periodic=periodic, nhalo=nhalo)
        created.append(decomposition)
        return decomposition

    yield make

    for decomposition in created:
        decomposition.free()
