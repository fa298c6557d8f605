"""Command-line interface utilities for SOR experiments.

This module provides shared argument parsing functionality for all experiment scripts.
"""

from argparse import ArgumentParser, BooleanOptionalAction
from typing import List

from Psi.datastructures import FLT_EPSILON, DomainConfig, SORConfig


def create_parser(
    methods: List[str],
    default_method: str | None = None,
    description: str = "Poisson SOR solver",
) -> ArgumentParser:
    """Create argument parser for SOR experiments.

    Parameters
    ----------
    methods : List[str]
        List of available solver methods
    default_method : str, optional
        Default method to use (defaults to first method in list)
    description : str
        Parser description

    Returns
    -------
    ArgumentParser
        Configured argument parser

    Examples
    --------
    >>> parser = create_parser(["uniform", "variable"], description="Wall charge problem")
    >>> options = parser.parse_args(["--ntotal", "4", "4", "64"])
    """
    if default_method is None:
        default_method = methods[0]

    parser = ArgumentParser(description=description)

    # Lattice and decomposition
    parser.add_argument(
        "--ntotal",
        type=int,
        nargs=3,
        default=[4, 4, 64],
        metavar=("NX", "NY", "NZ"),
        help="Global number of lattice sites along x, y and z",
    )
    parser.add_argument(
        "--grid",
        type=int,
        nargs=3,
        default=[0, 0, 1],
        metavar=("PX", "PY", "PZ"),
        help="Process grid; 0 lets MPI choose",
    )
    parser.add_argument(
        "--nhalo",
        type=int,
        default=1,
        help="Halo width",
    )
    parser.add_argument(
        "--strategy",
        choices=["numpy_buffer", "mpi_datatype"],
        default="numpy_buffer",
        help="Halo communication strategy",
    )

    # Iteration control
    parser.add_argument(
        "--maxits",
        type=int,
        default=10000,
        help="Maximum number of SOR sweeps.",
    )
    parser.add_argument(
        "--reltol",
        type=float,
        default=FLT_EPSILON,
        help="Relative tolerance on the L1 residual.",
    )
    parser.add_argument(
        "--abstol",
        type=float,
        default=0.01 * FLT_EPSILON,
        help="Absolute tolerance on the L1 residual.",
    )
    parser.add_argument(
        "--check-interval",
        type=int,
        default=None,
        help="Sweeps between residual checks (default depends on the method)",
    )
    parser.add_argument(
        "--numba",
        action=BooleanOptionalAction,
        default=True,
        help="Use the numba kernels",
    )

    # Output file
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output filename for saving results (default: auto-generated from lattice size, iterations and method)",
    )
    parser.add_argument(
        "--mlflow",
        type=str,
        default=None,
        metavar="EXPERIMENT",
        help="Log the run to this MLflow experiment",
    )

    # Solver method
    parser.add_argument(
        "--method",
        choices=methods,
        default=default_method,
        help=f"The permittivity model to solve with (default: {default_method}).",
    )

    return parser


def domain_config(options) -> DomainConfig:
    """Build the domain configuration from parsed options."""
    return DomainConfig(
        ntotal=tuple(options.ntotal),
        grid=tuple(options.grid),
        nhalo=options.nhalo,
    )


def sor_config(options) -> SORConfig:
    """Build the solver configuration from parsed options."""
    config = SORConfig(
        maxits=options.maxits,
        reltol=options.reltol,
        abstol=options.abstol,
        use_numba=options.numba,
    )
    if options.check_interval is not None:
        config.check_interval = options.check_interval
    return config
