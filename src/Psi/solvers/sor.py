"""Red-black SOR for uniform permittivity."""

from __future__ import annotations

from ..exceptions import ConfigError
from ..permittivity import ConstantPermittivity
from .base import SORSolver


class UniformSOR(SORSolver):
    """SOR with a single permittivity value.

    The permittivity comes from a :class:`ConstantPermittivity` model, or
    from ``PsiParams.epsilon`` when no model is given.

    The relaxation factor follows the Chebyshev recurrence after every
    half-sweep, seeded with ``1 / (1 - radius^2 / 2)`` after the first one.
    """

    method = "sor_uniform"

    def __init__(self, permittivity=None, config=None, **kwargs):
        if permittivity is not None and not permittivity.uniform:
            raise ConfigError(
                f"{type(permittivity).__name__} is not uniform; use VariableSOR"
            )
        super().__init__(permittivity, config, **kwargs)

    def _select_kernels(self, use_numba):
        from ..kernels import (
            residual_norm_uniform_numba,
            residual_norm_uniform_numpy,
            sor_pass_uniform_numba,
            sor_pass_uniform_numpy,
        )

        if use_numba:
            self._sor_pass, self._residual_norm = sor_pass_uniform_numba, residual_norm_uniform_numba
        else:
            self._sor_pass, self._residual_norm = sor_pass_uniform_numpy, residual_norm_uniform_numpy

    def _prepare(self, psi_fields):
        if self.permittivity is None:
            return ConstantPermittivity(psi_fields.params.epsilon).value
        return self.permittivity.value

    def _next_omega(self, n, half, omega, radius):
        if n == 0 and half == 0:
            return 1.0 / (1.0 - 0.5 * radius * radius)
        return 1.0 / (1.0 - 0.25 * radius * radius * omega)
