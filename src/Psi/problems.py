"""Test problems and exact solutions for the Poisson equation.

The wall charge problem places a uniform charge on the first and last
lattice planes along z and a compensating uniform background in between.
It depends on z only, so the potential is the solution of a one-dimensional
three point problem that can be solved directly.
"""

from __future__ import annotations

import numpy as np

from .exceptions import ConfigError
from .mpi.decomposition import X, Y, Z
from .permittivity import FunctionPermittivity
from .psi import PsiFields


def wall_charge_densities(ltot) -> tuple[float, float]:
    """Wall density ``rho0`` and background density ``rho1`` for a charge neutral box."""
    rho0 = 1.0 / (2.0 * ltot[X] * ltot[Y])
    rho1 = 1.0 / (ltot[X] * ltot[Y] * (ltot[Z] - 2.0))
    return rho0, rho1


def set_wall_charges(psi_fields: PsiFields) -> None:
    """Set psi = 0 and the wall charge densities, then refresh both halos.

    Species 0 carries the wall charge at global z = 1 and z = Lz, species 1
    the background elsewhere. Valencies are expected to be +1 and -1.

    Parameters
    ----------
    psi_fields : PsiFields
        Fields with exactly two species
    """
    if psi_fields.nk != 2:
        raise ConfigError(f"Wall charge problem needs two species, got {psi_fields.nk}")

    decomposition = psi_fields.decomposition
    if decomposition.ntotal[Z] < 3:
        raise ConfigError("Wall charge problem needs at least three planes along z")
    rho0, rho1 = wall_charge_densities(decomposition.ltot)

    psi_fields.psi.interior = 0.0
    rho = psi_fields.rho.interior
    rho[0] = 0.0
    rho[1] = rho1

    # Now overwrite at the walls
    if decomposition.coords[Z] == 0:
        rho[0, :, :, 0] = rho0
        rho[1, :, :, 0] = 0.0
    if decomposition.coords[Z] == decomposition.dims[Z] - 1:
        rho[0, :, :, -1] = rho0
        rho[1, :, :, -1] = 0.0

    psi_fields.halo_psi()
    psi_fields.halo_rho()


def sinusoidal_permittivity(e0: float, lz: float, amplitude: float = 0.2) -> FunctionPermittivity:
    """Periodic permittivity ``e0 (1 + amplitude sin(2 pi z / Lz))`` depending on z only."""
    if not 0.0 <= amplitude < 1.0:
        raise ConfigError(f"Amplitude must be in [0, 1) to keep the permittivity positive, got {amplitude}")
    return FunctionPermittivity(lambda x, y, z: e0 * (1.0 + amplitude * np.sin(2.0 * np.pi * z / lz)))


def face_permittivity(epsilon_z: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Face values ``e(k + 1/2)`` and ``e(k - 1/2)`` of a periodic profile."""
    eph = 0.5 * (epsilon_z + np.roll(epsilon_z, -1))
    emh = 0.5 * (np.roll(epsilon_z, 1) + epsilon_z)
    return eph, emh


def exact_wall_charge_profile(rho_elec_z: np.ndarray, epsilon_z: np.ndarray) -> np.ndarray:
    """Direct solution of the one-dimensional problem.

    Solves ``e(k+1/2) psi(k+1) - [e(k+1/2) + e(k-1/2)] psi(k) + e(k-1/2) psi(k-1)
    = -rho_elec(k)``. The periodic end couplings make the system singular, so
    they are dropped: the end rows reflect onto their single interior
    neighbour, which pins psi to zero just outside both ends. For the
    symmetric wall charge problem the result equals the periodic solution
    shifted so that ``psi[1] = 0``.

    Parameters
    ----------
    rho_elec_z : np.ndarray
        Total charge density along z
    epsilon_z : np.ndarray
        Permittivity along z

    Returns
    -------
    np.ndarray
        Potential along z
    """
    nz = len(rho_elec_z)
    a = np.zeros((nz, nz))

    for k in range(nz):
        kp1 = k + 1
        km1 = k - 1
        if k == 0:
            km1 = kp1
        if k == nz - 1:
            kp1 = km1

        eph = 0.5 * (epsilon_z[k] + epsilon_z[kp1])
        emh = 0.5 * (epsilon_z[km1] + epsilon_z[k])

        a[k, kp1] = eph
        a[k, km1] = emh
        a[k, k] = -(eph + emh)

    return np.linalg.solve(a, -np.asarray(rho_elec_z, dtype=float))


def three_point_charge(psi_z: np.ndarray, epsilon_z: np.ndarray) -> np.ndarray:
    """Charge density recovered by differencing a periodic potential profile."""
    eph, emh = face_permittivity(epsilon_z)
    return -(emh * np.roll(psi_z, 1) - (emh + eph) * psi_z + eph * np.roll(psi_z, -1))


def gather_z_profiles(psi_fields: PsiFields, root: int = 0):
    """Potential and total charge along z through the first (x, y) column.

    Collective; returns ``(psi_z, rho_elec_z)`` on ``root`` and
    ``(None, None)`` elsewhere.
    """
    psi_global = psi_fields.psi.gather(root)
    rho_global = psi_fields.rho.gather(root)
    if psi_global is None:
        return None, None

    rho_elec = psi_fields.params.unit_charge * np.tensordot(psi_fields.valency, rho_global, axes=1)
    return psi_global[0, 0, 0, :].copy(), rho_elec[0, 0, :].copy()
