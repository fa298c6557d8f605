"""Red-black SOR kernels.

All kernels act on arrays of shape ``nall`` (interior plus ``nhalo`` ghost
layers per side) and touch interior sites only. A pass updates the sites of
one colour: local coordinates (1-based) with ``(ic + jc + kc) % 2 == parity``.
Each pass returns the L1 norm of the residual evaluated before the update.
"""

import numpy as np
from numba import njit, prange


def checkerboard_mask(nlocal, parity: int) -> np.ndarray:
    """Boolean mask over the interior selecting sites of one colour."""
    ic, jc, kc = np.ogrid[1:nlocal[0] + 1, 1:nlocal[1] + 1, 1:nlocal[2] + 1]
    return (ic + jc + kc) % 2 == parity


def _interior(nhalo: int, shape, shift=(0, 0, 0)):
    return tuple(slice(nhalo + s, n - nhalo + s) for n, s in zip(shape, shift))


def _neighbours(nhalo: int, shape):
    for d in range(3):
        for sign in (1, -1):
            shift = [0, 0, 0]
            shift[d] = sign
            yield _interior(nhalo, shape, shift)


def laplacian_numpy(psi: np.ndarray, nhalo: int) -> np.ndarray:
    """Seven point Laplacian over the interior."""
    centre = psi[_interior(nhalo, psi.shape)]
    lap = -6.0 * centre
    for nb in _neighbours(nhalo, psi.shape):
        lap += psi[nb]
    return lap


def flux_divergence_numpy(psi: np.ndarray, epsilon: np.ndarray, nhalo: int) -> np.ndarray:
    """``sum_f eps_f (psi_nb - psi)`` with face values ``eps_f`` the mean of the two sites."""
    inner = _interior(nhalo, psi.shape)
    psi_c = psi[inner]
    eps_c = epsilon[inner]
    div = np.zeros_like(psi_c)
    for nb in _neighbours(nhalo, psi.shape):
        div += 0.5 * (eps_c + epsilon[nb]) * (psi[nb] - psi_c)
    return div


# ============================================================================
# Uniform permittivity
# ============================================================================


def sor_pass_uniform_numpy(psi: np.ndarray, source: np.ndarray, epsilon: float, omega: float,
                           parity: int, nhalo: int) -> float:
    inner = _interior(nhalo, psi.shape)
    residual = epsilon * laplacian_numpy(psi, nhalo) + source[inner]

    nlocal = residual.shape
    mask = checkerboard_mask(nlocal, parity)
    psi_inner = psi[inner]
    psi_inner[mask] -= omega * residual[mask] / (-6.0 * epsilon)

    return float(np.abs(residual[mask]).sum())


@njit(parallel=True, cache=True)
def sor_pass_uniform_numba(psi: np.ndarray, source: np.ndarray, epsilon: float, omega: float,
                           parity: int, nhalo: int) -> float:
    nx = psi.shape[0] - 2 * nhalo
    ny = psi.shape[1] - 2 * nhalo
    nz = psi.shape[2] - 2 * nhalo
    rnorm = 0.0

    for ic in prange(1, nx + 1):
        i = ic + nhalo - 1
        for jc in range(1, ny + 1):
            j = jc + nhalo - 1
            kst = 1 + (ic + jc + 1 + parity) % 2
            for kc in range(kst, nz + 1, 2):
                k = kc + nhalo - 1
                lap = (
                    psi[i + 1, j, k] + psi[i - 1, j, k]
                    + psi[i, j + 1, k] + psi[i, j - 1, k]
                    + psi[i, j, k + 1] + psi[i, j, k - 1]
                    - 6.0 * psi[i, j, k]
                )
                residual = epsilon * lap + source[i, j, k]
                psi[i, j, k] -= omega * residual / (-6.0 * epsilon)
                rnorm += abs(residual)

    return rnorm


def residual_norm_uniform_numpy(psi: np.ndarray, source: np.ndarray, epsilon: float, nhalo: int) -> float:
    inner = _interior(nhalo, psi.shape)
    return float(np.abs(epsilon * laplacian_numpy(psi, nhalo) + source[inner]).sum())


@njit(parallel=True, cache=True)
def residual_norm_uniform_numba(psi: np.ndarray, source: np.ndarray, epsilon: float, nhalo: int) -> float:
    rnorm = 0.0
    for i in prange(nhalo, psi.shape[0] - nhalo):
        for j in range(nhalo, psi.shape[1] - nhalo):
            for k in range(nhalo, psi.shape[2] - nhalo):
                lap = (
                    psi[i + 1, j, k] + psi[i - 1, j, k]
                    + psi[i, j + 1, k] + psi[i, j - 1, k]
                    + psi[i, j, k + 1] + psi[i, j, k - 1]
                    - 6.0 * psi[i, j, k]
                )
                rnorm += abs(epsilon * lap + source[i, j, k])
    return rnorm


# ============================================================================
# Variable permittivity
# ============================================================================


def sor_pass_vare_numpy(psi: np.ndarray, source: np.ndarray, epsilon: np.ndarray, omega: float,
                        parity: int, nhalo: int) -> float:
    inner = _interior(nhalo, psi.shape)
    residual = flux_divergence_numpy(psi, epsilon, nhalo) + source[inner]

    mask = checkerboard_mask(residual.shape, parity)
    psi_inner = psi[inner]
    psi_inner[mask] -= omega * residual[mask] / (-6.0 * epsilon[inner][mask])

    return float(np.abs(residual[mask]).sum())


@njit(cache=True)
def _flux_divergence_site(psi, epsilon, i, j, k):
    psi0 = psi[i, j, k]
    eps0 = epsilon[i, j, k]
    return (
        0.5 * (eps0 + epsilon[i + 1, j, k]) * (psi[i + 1, j, k] - psi0)
        + 0.5 * (eps0 + epsilon[i - 1, j, k]) * (psi[i - 1, j, k] - psi0)
        + 0.5 * (eps0 + epsilon[i, j + 1, k]) * (psi[i, j + 1, k] - psi0)
        + 0.5 * (eps0 + epsilon[i, j - 1, k]) * (psi[i, j - 1, k] - psi0)
        + 0.5 * (eps0 + epsilon[i, j, k + 1]) * (psi[i, j, k + 1] - psi0)
        + 0.5 * (eps0 + epsilon[i, j, k - 1]) * (psi[i, j, k - 1] - psi0)
    )


@njit(parallel=True, cache=True)
def sor_pass_vare_numba(psi: np.ndarray, source: np.ndarray, epsilon: np.ndarray, omega: float,
                        parity: int, nhalo: int) -> float:
    nx = psi.shape[0] - 2 * nhalo
    ny = psi.shape[1] - 2 * nhalo
    nz = psi.shape[2] - 2 * nhalo
    rnorm = 0.0

    for ic in prange(1, nx + 1):
        i = ic + nhalo - 1
        for jc in range(1, ny + 1):
            j = jc + nhalo - 1
            kst = 1 + (ic + jc + 1 + parity) % 2
            for kc in range(kst, nz + 1, 2):
                k = kc + nhalo - 1
                residual = _flux_divergence_site(psi, epsilon, i, j, k) + source[i, j, k]
                psi[i, j, k] -= omega * residual / (-6.0 * epsilon[i, j, k])
                rnorm += abs(residual)

    return rnorm


def residual_norm_vare_numpy(psi: np.ndarray, source: np.ndarray, epsilon: np.ndarray, nhalo: int) -> float:
    inner = _interior(nhalo, psi.shape)
    return float(np.abs(flux_divergence_numpy(psi, epsilon, nhalo) + source[inner]).sum())


@njit(parallel=True, cache=True)
def residual_norm_vare_numba(psi: np.ndarray, source: np.ndarray, epsilon: np.ndarray, nhalo: int) -> float:
    rnorm = 0.0
    for i in prange(nhalo, psi.shape[0] - nhalo):
        for j in range(nhalo, psi.shape[1] - nhalo):
            for k in range(nhalo, psi.shape[2] - nhalo):
                rnorm += abs(_flux_divergence_site(psi, epsilon, i, j, k) + source[i, j, k])
    return rnorm
