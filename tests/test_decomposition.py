import numpy as np
import pytest
from mpi4py import MPI
from mpi4py.MPI import COMM_WORLD as comm

from Psi import BACKWARD, FORWARD, CartesianDecomposition, ConfigError, DecompositionError, DomainConfig


def test_partition_completeness(make_decomposition):
    decomposition = make_decomposition(nlocal=(3, 2, 5))
    blocks = decomposition.cart_comm.allgather((decomposition.offset, decomposition.nlocal))

    owners = np.zeros(decomposition.ntotal, dtype=int)
    for offset, nlocal in blocks:
        owners[tuple(slice(o, o + n) for o, n in zip(offset, nlocal))] += 1

    assert np.all(owners == 1)
    assert sum(np.prod(nlocal) for _, nlocal in blocks) == np.prod(decomposition.ntotal)


def test_derived_quantities(make_decomposition):
    decomposition = make_decomposition(nlocal=(2, 3, 4), nhalo=2)

    assert decomposition.nall == (6, 7, 8)
    assert decomposition.nsites == 6 * 7 * 8
    assert decomposition.strides == (7 * 8, 8, 1)
    assert decomposition.lmin == (0.5, 0.5, 0.5)
    assert decomposition.ltot == tuple(float(n) for n in decomposition.ntotal)
    assert decomposition.offset == tuple(c * n for c, n in zip(decomposition.coords, decomposition.nlocal))


def test_index_bijection(make_decomposition):
    decomposition = make_decomposition(nlocal=(2, 3, 4), nhalo=2)
    nh = decomposition.nhalo
    ic, jc, kc = np.meshgrid(
        *(np.arange(1 - nh, n + nh + 1) for n in decomposition.nlocal), indexing="ij"
    )

    index = decomposition.index(ic, jc, kc)

    assert np.array_equal(np.sort(index.ravel()), np.arange(decomposition.nsites))
    assert np.array_equal(index.ravel(), np.arange(decomposition.nsites))

    ic2, jc2, kc2 = decomposition.index_to_ijk(index)
    assert np.array_equal(ic2, ic)
    assert np.array_equal(jc2, jc)
    assert np.array_equal(kc2, kc)


def test_index_strides(make_decomposition):
    decomposition = make_decomposition()
    xs, ys, zs = decomposition.strides
    base = decomposition.index(1, 1, 1)

    assert decomposition.index(2, 1, 1) - base == xs
    assert decomposition.index(1, 2, 1) - base == ys
    assert decomposition.index(1, 1, 2) - base == zs
    assert decomposition.index(1 - decomposition.nhalo, 1 - decomposition.nhalo, 1 - decomposition.nhalo) == 0


def test_neighbour_symmetry(make_decomposition):
    for periodic in [(True, True, True), (False, True, False)]:
        decomposition = make_decomposition(periodic=periodic)
        cart = decomposition.cart_comm
        neighbours = cart.allgather(decomposition.neighbours)

        for rank in range(cart.Get_size()):
            for d in range(3):
                forward = neighbours[rank][d][FORWARD]
                backward = neighbours[rank][d][BACKWARD]
                if forward != MPI.PROC_NULL:
                    assert neighbours[forward][d][BACKWARD] == rank
                if backward != MPI.PROC_NULL:
                    assert neighbours[backward][d][FORWARD] == rank


def test_open_edges_have_no_neighbour(make_decomposition):
    decomposition = make_decomposition(periodic=(False, False, False))

    for d in range(3):
        if decomposition.coords[d] == 0:
            assert decomposition.neighbour(d, BACKWARD) == MPI.PROC_NULL
        else:
            assert decomposition.neighbour(d, BACKWARD) != MPI.PROC_NULL
        if decomposition.coords[d] == decomposition.dims[d] - 1:
            assert decomposition.neighbour(d, FORWARD) == MPI.PROC_NULL
        else:
            assert decomposition.neighbour(d, FORWARD) != MPI.PROC_NULL


def test_single_process_periodic_axis_is_own_neighbour(make_decomposition):
    decomposition = make_decomposition(grid=(0, 1, 1))

    assert decomposition.dims[1] == 1 and decomposition.dims[2] == 1
    for d in (1, 2):
        assert decomposition.neighbour(d, FORWARD) == decomposition.rank
        assert decomposition.neighbour(d, BACKWARD) == decomposition.rank


def test_minimum_distance(make_decomposition):
    decomposition = make_decomposition(nlocal=(8, 8, 8), periodic=(True, True, False))
    lx, _, lz = decomposition.ltot

    r12 = decomposition.minimum_distance([1.0, 1.0, 1.0], [lx - 1.0, 2.0, lz - 1.0])
    assert np.allclose(r12, [-2.0, 1.0, lz - 2.0])

    r12 = decomposition.minimum_distance([lx - 0.5, 0.0, 0.0], [0.5, 0.0, 0.0])
    assert np.allclose(r12, [1.0, 0.0, 0.0])


def test_positions(make_decomposition):
    decomposition = make_decomposition()

    assert decomposition.global_coords(1, 1, 1) == tuple(o + 1 for o in decomposition.offset)
    assert decomposition.position(1, 1, 1) == tuple(0.5 + o for o in decomposition.offset)


def test_from_config():
    dims = tuple(MPI.Compute_dims(comm.Get_size(), 3))
    config = DomainConfig(ntotal=tuple(4 * p for p in dims), periodic=(True, False, True), nhalo=2)
    decomposition = CartesianDecomposition.from_config(config, comm)

    assert decomposition.dims == dims
    assert decomposition.periodic == (True, False, True)
    assert decomposition.nlocal == (4, 4, 4)
    decomposition.free()


def test_grid_size_mismatch():
    with pytest.raises(DecompositionError):
        CartesianDecomposition((12, 12, 12), comm, grid=(comm.Get_size() + 1, 1, 1))


@pytest.mark.skipif(comm.Get_size() == 1, reason="every extent divides a single process")
def test_uneven_division():
    with pytest.raises(DecompositionError):
        CartesianDecomposition((4 * comm.Get_size() + 1, 4, 4), comm, grid=(comm.Get_size(), 1, 1))


def test_invalid_halo_and_extents():
    with pytest.raises(ConfigError):
        CartesianDecomposition((8, 8, 8), comm, nhalo=0)
    with pytest.raises(ConfigError):
        CartesianDecomposition((8, 0, 8), comm)
    with pytest.raises(ConfigError):
        CartesianDecomposition((8, 8, 8), comm, periodic=(True, True))


def test_checkerboard_compatible(make_decomposition):
    assert make_decomposition(nlocal=(2, 4, 6)).checkerboard_compatible
    assert not make_decomposition(nlocal=(2, 3, 6)).checkerboard_compatible
