import numpy as np
import pytest

from Psi.kernels import (
    checkerboard_mask,
    laplacian_numpy,
    residual_norm_uniform_numba,
    residual_norm_uniform_numpy,
    residual_norm_vare_numba,
    residual_norm_vare_numpy,
    sor_pass_uniform_numba,
    sor_pass_uniform_numpy,
    sor_pass_vare_numba,
    sor_pass_vare_numpy,
)

rng = np.random.default_rng(42)
nhalo = 1
shape = (6, 8, 10)  # interior 4 x 6 x 8
psi0 = rng.standard_normal(shape)
source = rng.standard_normal(shape)
epsilon_map = 1.0 + 0.5 * rng.random(shape)
interior = tuple(slice(nhalo, n - nhalo) for n in shape)


@pytest.mark.parametrize("parity", [0, 1])
def test_uniform_pass_numpy_matches_numba(parity):
    a, b = psi0.copy(), psi0.copy()

    ra = sor_pass_uniform_numpy(a, source, 1.3, 1.7, parity, nhalo)
    rb = sor_pass_uniform_numba(b, source, 1.3, 1.7, parity, nhalo)

    assert np.allclose(a, b, rtol=1e-13, atol=1e-13)
    assert np.isclose(ra, rb, rtol=1e-12)


@pytest.mark.parametrize("parity", [0, 1])
def test_vare_pass_numpy_matches_numba(parity):
    a, b = psi0.copy(), psi0.copy()

    ra = sor_pass_vare_numpy(a, source, epsilon_map, 1.6, parity, nhalo)
    rb = sor_pass_vare_numba(b, source, epsilon_map, 1.6, parity, nhalo)

    assert np.allclose(a, b, rtol=1e-13, atol=1e-13)
    assert np.isclose(ra, rb, rtol=1e-12)


@pytest.mark.parametrize("parity", [0, 1])
def test_pass_updates_one_colour_only(parity):
    psi = psi0.copy()
    sor_pass_uniform_numba(psi, source, 1.0, 1.5, parity, nhalo)

    changed = psi[interior] != psi0[interior]
    mask = checkerboard_mask(changed.shape, parity)

    assert not np.any(changed[~mask])
    assert np.all(changed[mask])
    # Ghosts are never written
    ghost = np.ones(shape, dtype=bool)
    ghost[interior] = False
    assert np.array_equal(psi[ghost], psi0[ghost])


def test_checkerboard_mask_uses_local_coordinates():
    mask = checkerboard_mask((2, 2, 2), 1)
    # Site (1, 1, 1) has odd coordinate sum
    assert mask[0, 0, 0]
    assert not mask[0, 0, 1]
    assert mask.sum() == 4


def test_constant_vare_equals_uniform():
    eps = 2.5
    a, b = psi0.copy(), psi0.copy()
    for parity in (1, 0):
        ra = sor_pass_uniform_numpy(a, source, eps, 1.4, parity, nhalo)
        rb = sor_pass_vare_numpy(b, source, np.full(shape, eps), 1.4, parity, nhalo)
        assert np.isclose(ra, rb, rtol=1e-12)

    assert np.allclose(a, b, rtol=1e-12, atol=1e-12)


def test_unit_omega_pass_zeroes_residual_of_updated_colour():
    psi = psi0.copy()
    sor_pass_uniform_numpy(psi, source, 1.0, 1.0, 1, nhalo)

    residual = laplacian_numpy(psi, nhalo) + source[interior]
    mask = checkerboard_mask(residual.shape, 1)
    assert np.allclose(residual[mask], 0.0, atol=1e-12)


def test_residual_norms():
    assert np.isclose(
        residual_norm_uniform_numpy(psi0, source, 0.7, nhalo),
        residual_norm_uniform_numba(psi0, source, 0.7, nhalo),
        rtol=1e-12,
    )
    assert np.isclose(
        residual_norm_vare_numpy(psi0, source, epsilon_map, nhalo),
        residual_norm_vare_numba(psi0, source, epsilon_map, nhalo),
        rtol=1e-12,
    )

    constant = np.zeros(shape)
    assert residual_norm_uniform_numpy(constant, source, 1.0, nhalo) == pytest.approx(np.abs(source[interior]).sum())
