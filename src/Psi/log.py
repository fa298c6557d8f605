"""Rank-aware logging helpers.

Module loggers are plain ``logging.getLogger(__name__)`` loggers. Handlers
installed by :func:`setup_logging` carry a :class:`RankFilter`, so only rank 0
writes unless ``all_ranks`` is requested.
"""

from __future__ import annotations

import logging

from mpi4py import MPI

LOG_FORMAT = "%(asctime)s [rank %(rank)d] %(name)s %(levelname)s: %(message)s"


class RankFilter(logging.Filter):
    """Attach the MPI rank to records and drop records from non-root ranks."""

    def __init__(self, comm: MPI.Comm = MPI.COMM_WORLD, root: int = 0, all_ranks: bool = False):
        super().__init__()
        self.rank = comm.Get_rank()
        self.root = root
        self.all_ranks = all_ranks

    def filter(self, record: logging.LogRecord) -> bool:
        record.rank = self.rank
        return self.all_ranks or self.rank == self.root


def setup_logging(level=logging.INFO, comm: MPI.Comm = MPI.COMM_WORLD, all_ranks: bool = False) -> logging.Logger:
    """Configure the package logger for a driver script.

    Parameters
    ----------
    level : int or str
        Logging level for the ``Psi`` logger
    comm : MPI.Comm
        Communicator used to determine the rank
    all_ranks : bool, default False
        Emit from every rank instead of rank 0 only

    Returns
    -------
    logging.Logger
        The configured package logger
    """
    package_logger = logging.getLogger("Psi")
    package_logger.setLevel(level)

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.addFilter(RankFilter(comm, all_ranks=all_ranks))
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.propagate = False

    return package_logger
