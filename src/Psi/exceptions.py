"""Exceptions raised by the decomposition, halo exchange and solvers."""

from __future__ import annotations

import logging
from contextlib import contextmanager

from mpi4py import MPI

logger = logging.getLogger(__name__)


class PsiError(Exception):
    """Base class for all package errors."""


class ConfigError(PsiError, ValueError):
    """Invalid configuration detected at setup time."""


class DecompositionError(ConfigError):
    """The requested process grid cannot partition the lattice."""


class RelaxationError(PsiError, RuntimeError):
    """Over-relaxation factor left the open interval (1, 2)."""


class HaloExchangeError(PsiError, RuntimeError):
    """A halo message did not match the expected source, tag or size."""


@contextmanager
def abort_on_error(comm: MPI.Comm = MPI.COMM_WORLD):
    """Turn an exception on any rank into an abort of the whole group.

    With a single process the exception is simply re-raised so the
    traceback reaches the caller.
    """
    try:
        yield
    except Exception:
        if comm.Get_size() == 1:
            raise
        logger.critical("Fatal error on rank %d, aborting", comm.Get_rank(), exc_info=True)
        comm.Abort(1)
