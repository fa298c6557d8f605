"""SOR solvers for the Poisson equation."""

from .base import SORSolver
from .sor import UniformSOR
from .sor_vare import VariableSOR


def create_solver(permittivity=None, config=None, **kwargs) -> SORSolver:
    """Create the solver matching a permittivity model.

    Parameters
    ----------
    permittivity : PermittivityModel, optional
        Coefficient model. ``None`` or a uniform model selects
        :class:`UniformSOR`, anything else :class:`VariableSOR`.
    config : SORConfig, optional
        Numerical controls
    **kwargs
        Overrides for individual ``SORConfig`` fields and ``verbose``

    Returns
    -------
    SORSolver
        Initialized solver
    """
    if permittivity is None or permittivity.uniform:
        return UniformSOR(permittivity, config, **kwargs)
    return VariableSOR(permittivity, config, **kwargs)


__all__ = ["SORSolver", "UniformSOR", "VariableSOR", "create_solver"]
