"""Halo (ghost layer) exchange for multi-component lattice fields."""

from __future__ import annotations

import logging

import numpy as np
from mpi4py import MPI

from ..exceptions import ConfigError, HaloExchangeError
from .decomposition import BACKWARD, FORWARD, CartesianDecomposition
from .strategies import create_mpi_strategy

logger = logging.getLogger(__name__)

# Tags: messages travelling forward / backward along each axis
TAG_FORWARD = (1001, 1003, 1005)
TAG_BACKWARD = (1002, 1004, 1006)


class _AxisSlabs:
    """Slab geometry and transfer buffers for one axis."""

    def __init__(self, send_forward, send_backward, recv_low, recv_high, shape):
        self.send_forward = send_forward
        self.send_backward = send_backward
        self.recv_low = recv_low
        self.recv_high = recv_high
        self.count = int(np.prod(shape))
        self.buffers = {
            "send_forward": np.empty(shape),
            "send_backward": np.empty(shape),
            "recv_low": np.empty(shape),
            "recv_high": np.empty(shape),
        }


class HaloPlan:
    """Reusable halo exchange for arrays of shape ``(nf, *decomposition.nall)``.

    Slabs along each axis span the full storage extent of the other two axes,
    so running the axes in order x, y, z also fills edge and corner ghosts.

    Parameters
    ----------
    decomposition : CartesianDecomposition
        Lattice decomposition (shared, not copied)
    nf : int
        Number of components per site
    nhcomm : int, optional
        Width of the exchanged halo, at most ``decomposition.nhalo``
        (default: the full halo)
    strategy : str
        Communication strategy, see :func:`create_mpi_strategy`
    """

    def __init__(self, decomposition: CartesianDecomposition, nf: int = 1, nhcomm: int | None = None,
                 strategy: str = "numpy_buffer"):
        if nf < 1:
            raise ConfigError(f"Number of components must be positive, got {nf}")
        nhcomm = decomposition.nhalo if nhcomm is None else nhcomm
        if not 1 <= nhcomm <= decomposition.nhalo:
            raise ConfigError(
                f"Communicated halo width {nhcomm} must be in [1, {decomposition.nhalo}]"
            )

        self.decomposition = decomposition
        self.nf = nf
        self.nhcomm = nhcomm
        self.shape = (nf, *decomposition.nall)
        self.strategy = create_mpi_strategy(strategy)
        self.axes = [self._build_axis(d) for d in range(3)]

    def _build_axis(self, d: int) -> _AxisSlabs:
        nh = self.decomposition.nhalo
        nw = self.nhcomm
        n = self.decomposition.nlocal[d]

        def slab(start):
            index = [slice(None)] * 4
            index[d + 1] = slice(start, start + nw)
            return tuple(index)

        shape = list(self.shape)
        shape[d + 1] = nw

        return _AxisSlabs(
            send_forward=slab(nh + n - nw),
            send_backward=slab(nh),
            recv_low=slab(nh - nw),
            recv_high=slab(nh + n),
            shape=tuple(shape),
        )

    def exchange(self, data: np.ndarray) -> None:
        """Refresh the ghost layers of ``data`` in place.

        Axes are processed strictly one after another; each blocks until both
        directions have completed.

        Raises
        ------
        HaloExchangeError
            If a received message does not match the expected source, tag or
            element count.
        """
        if data.shape != self.shape:
            raise ConfigError(f"Array shape {data.shape} does not match halo plan {self.shape}")

        for d in range(3):
            if self.decomposition.dims[d] == 1:
                if self.decomposition.periodic[d]:
                    self._local_copy(data, d)
                continue
            self._exchange_axis(data, d)

    def _local_copy(self, data: np.ndarray, d: int) -> None:
        slabs = self.axes[d]
        data[slabs.recv_low] = data[slabs.send_forward]
        data[slabs.recv_high] = data[slabs.send_backward]

    def _exchange_axis(self, data: np.ndarray, d: int) -> None:
        comm = self.decomposition.cart_comm
        slabs = self.axes[d]
        buffers = slabs.buffers
        forward = self.decomposition.neighbour(d, FORWARD)
        backward = self.decomposition.neighbour(d, BACKWARD)

        # (view, buffer, expected source, expected tag)
        receives = []
        requests = []

        if backward != MPI.PROC_NULL:
            view = data[slabs.recv_low]
            requests.append(self.strategy.irecv(comm, view, buffers["recv_low"], backward, TAG_FORWARD[d]))
            receives.append((view, buffers["recv_low"], backward, TAG_FORWARD[d]))
        if forward != MPI.PROC_NULL:
            view = data[slabs.recv_high]
            requests.append(self.strategy.irecv(comm, view, buffers["recv_high"], forward, TAG_BACKWARD[d]))
            receives.append((view, buffers["recv_high"], forward, TAG_BACKWARD[d]))

        if forward != MPI.PROC_NULL:
            requests.append(self.strategy.isend(
                comm, data[slabs.send_forward], buffers["send_forward"], forward, TAG_FORWARD[d]
            ))
        if backward != MPI.PROC_NULL:
            requests.append(self.strategy.isend(
                comm, data[slabs.send_backward], buffers["send_backward"], backward, TAG_BACKWARD[d]
            ))

        statuses = [MPI.Status() for _ in requests]
        MPI.Request.Waitall(requests, statuses)

        for (view, buffer, source, tag), status in zip(receives, statuses):
            self._check_status(status, source, tag, slabs.count, d)
            self.strategy.unpack(view, buffer)

    def _check_status(self, status: MPI.Status, source: int, tag: int, count: int, d: int) -> None:
        received = status.Get_count(MPI.DOUBLE)
        if status.Get_source() != source or status.Get_tag() != tag or received != count:
            logger.error(
                "Halo mismatch on axis %d: source %d (expected %d), tag %d (expected %d), "
                "count %d (expected %d)",
                d, status.Get_source(), source, status.Get_tag(), tag, received, count,
            )
            raise HaloExchangeError(f"Halo exchange mismatch on axis {d}")
