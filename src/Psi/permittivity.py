"""Permittivity (coefficient) models for the elliptic solvers.

A model answers one question: what is the permittivity at a storage site?
:meth:`PermittivityModel.epsilon_map` evaluates it for every site including
the halo, which is what the variable-coefficient kernels consume.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

import numpy as np

from .exceptions import ConfigError
from .field import Field
from .mpi.decomposition import CartesianDecomposition


class PermittivityModel(ABC):
    """Abstract coefficient model."""

    #: True if the model is the same constant everywhere
    uniform = False

    @abstractmethod
    def epsilon_map(self, decomposition: CartesianDecomposition) -> np.ndarray:
        """Permittivity at every storage site, shape ``decomposition.nall``."""
        pass

    def epsilon(self, decomposition: CartesianDecomposition, index: int) -> float:
        """Permittivity at one site given by its linear address."""
        return float(self.epsilon_map(decomposition).reshape(-1)[index])


class ConstantPermittivity(PermittivityModel):
    """Uniform permittivity."""

    uniform = True

    def __init__(self, value: float):
        if value <= 0.0:
            raise ConfigError(f"Permittivity must be positive, got {value}")
        self.value = float(value)

    def epsilon_map(self, decomposition):
        return np.full(decomposition.nall, self.value)

    def epsilon(self, decomposition, index):
        return self.value

    def __repr__(self):
        return f"ConstantPermittivity({self.value})"


class FunctionPermittivity(PermittivityModel):
    """Position dependent permittivity ``func(x, y, z)``.

    ``func`` receives numpy arrays of site positions and must broadcast.
    Positions on periodic axes are wrapped into the box, so a halo site sees
    the same value as the interior site it mirrors.
    """

    def __init__(self, func: Callable[[np.ndarray, np.ndarray, np.ndarray], np.ndarray]):
        self.func = func

    def positions(self, decomposition: CartesianDecomposition) -> tuple[np.ndarray, ...]:
        """Physical coordinates of all storage sites along each axis."""
        nh = decomposition.nhalo
        axes = []
        for d in range(3):
            local = np.arange(1 - nh, decomposition.nlocal[d] + nh + 1)
            glob = decomposition.offset[d] + local - 1
            if decomposition.periodic[d]:
                glob = np.mod(glob, decomposition.ntotal[d])
            axes.append(decomposition.lmin[d] + glob)
        return tuple(np.meshgrid(*axes, indexing="ij"))

    def epsilon_map(self, decomposition):
        x, y, z = self.positions(decomposition)
        values = np.broadcast_to(np.asarray(self.func(x, y, z), dtype=float), decomposition.nall)
        return np.ascontiguousarray(values)

    def epsilon(self, decomposition, index):
        ic, jc, kc = decomposition.index_to_ijk(index)
        x, y, z = decomposition.position(ic, jc, kc)
        ntotal = decomposition.ntotal
        lmin = decomposition.lmin
        pos = [x, y, z]
        for d in range(3):
            if decomposition.periodic[d]:
                pos[d] = lmin[d] + np.mod(pos[d] - lmin[d], ntotal[d])
        return float(self.func(*pos))


class FieldPermittivity(PermittivityModel):
    """Per-site permittivity read from a one-component field.

    The field's halo is refreshed before values are handed out.
    """

    def __init__(self, field: Field):
        if field.nf != 1:
            raise ConfigError(f"Permittivity field must have one component, got {field.nf}")
        self.field = field

    def epsilon_map(self, decomposition):
        if decomposition is not self.field.decomposition:
            raise ConfigError("Permittivity field belongs to a different decomposition")
        self.field.halo()
        return self.field.data[0].copy()

    def epsilon(self, decomposition, index):
        return self.field.scalar(index)
