"""MPI decomposition and halo exchange."""

from .decomposition import CartesianDecomposition, X, Y, Z, FORWARD, BACKWARD
from .halo import HaloPlan
from .strategies import (
    MPICommunicationStrategy,
    NumpyBufferStrategy,
    MPIDatatypeStrategy,
    create_mpi_strategy,
)

__all__ = [
    "CartesianDecomposition",
    "HaloPlan",
    "MPICommunicationStrategy",
    "NumpyBufferStrategy",
    "MPIDatatypeStrategy",
    "create_mpi_strategy",
    "X",
    "Y",
    "Z",
    "FORWARD",
    "BACKWARD",
]
