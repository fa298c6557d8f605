import logging

import numpy as np
import pytest

from Psi import (
    ConfigError,
    ConstantPermittivity,
    FunctionPermittivity,
    PsiFields,
    SORConfig,
    SolverStatus,
    UniformSOR,
    VariableSOR,
    create_solver,
    exact_wall_charge_profile,
    gather_z_profiles,
    set_wall_charges,
    sinusoidal_permittivity,
    three_point_charge,
)

TIGHT = SORConfig(maxits=20000, reltol=1e-11, abstol=0.0, check_interval=1)


@pytest.fixture
def wall_problem(make_decomposition):
    """Wall charge problem with z undecomposed."""
    def make(nz=64, strategy="numpy_buffer"):
        decomposition = make_decomposition(nlocal=(4, 4, nz), grid=(0, 0, 1))
        psi_fields = PsiFields(decomposition, strategy=strategy)
        set_wall_charges(psi_fields)
        return psi_fields
    return make


@pytest.mark.parametrize("strategy", ["numpy_buffer", "mpi_datatype"])
def test_uniform_matches_direct_solution(wall_problem, strategy):
    psi_fields = wall_problem(strategy=strategy)
    solver = UniformSOR(config=TIGHT)

    results = solver.solve(psi_fields)
    psi_z, rho_elec_z = gather_z_profiles(psi_fields)

    assert results.converged
    assert results.criterion == "relative"
    assert solver.status == SolverStatus.CONVERGED
    if psi_fields.decomposition.rank == 0:
        exact = exact_wall_charge_profile(rho_elec_z, np.ones(len(psi_z)))
        np.testing.assert_allclose(psi_z - psi_z[0], exact - exact[0], atol=1e-7)


def test_potential_is_uniform_across_planes(wall_problem):
    psi_fields = wall_problem(nz=32)
    UniformSOR(config=TIGHT).solve(psi_fields)

    psi_global = psi_fields.psi.gather()
    if psi_global is not None:
        np.testing.assert_allclose(psi_global[0], np.broadcast_to(psi_global[0, :1, :1, :], psi_global[0].shape), atol=1e-10)


def test_constant_variable_solver_matches_uniform(wall_problem):
    config = SORConfig(maxits=20000, reltol=1e-12, abstol=0.0, check_interval=1)
    uniform = wall_problem(nz=32)
    variable = wall_problem(nz=32)

    UniformSOR(ConstantPermittivity(1.0), config).solve(uniform)
    VariableSOR(ConstantPermittivity(1.0), config).solve(variable)

    interior = uniform.decomposition.interior_slices()
    u = uniform.psi.data[0][interior]
    v = variable.psi.data[0][interior]
    np.testing.assert_allclose(u - u.mean(), v - v.mean(), atol=1e-8)


def test_variable_permittivity_satisfies_three_point_equation(wall_problem):
    psi_fields = wall_problem()
    lz = psi_fields.decomposition.ltot[2]
    permittivity = sinusoidal_permittivity(1.0, lz)
    solver = create_solver(permittivity, TIGHT)

    results = solver.solve(psi_fields)
    psi_z, rho_elec_z = gather_z_profiles(psi_fields)

    assert isinstance(solver, VariableSOR)
    assert results.converged
    if psi_fields.decomposition.rank == 0:
        z = psi_fields.decomposition.lmin[2] + np.arange(len(psi_z))
        epsilon_z = np.asarray(permittivity.func(0.0, 0.0, z))
        np.testing.assert_allclose(three_point_charge(psi_z, epsilon_z), rho_elec_z, atol=1e-8)


def test_converged_solution_resolves_in_one_sweep(wall_problem):
    psi_fields = wall_problem(nz=16)
    first = UniformSOR(config=TIGHT).solve(psi_fields)

    second = UniformSOR(config=SORConfig(abstol=1e-6 * first.initial_residual, reltol=0.0, check_interval=1))
    results = second.solve(psi_fields)

    assert results.iterations == 1
    assert results.criterion == "absolute"


def test_max_iterations(wall_problem, caplog):
    psi_fields = wall_problem(nz=16)
    solver = UniformSOR(maxits=3, check_interval=1)

    with caplog.at_level(logging.WARNING, logger="Psi"):
        results = solver.solve(psi_fields)

    assert not results.converged
    assert results.status == SolverStatus.MAX_ITERATIONS.value
    assert results.iterations == 3
    assert len(results.residual_history) == 3
    assert any("exceeded 3 iterations" in r.getMessage() for r in caplog.records)


def test_default_config_converges(wall_problem):
    psi_fields = wall_problem(nz=16)
    results = create_solver().solve(psi_fields, step=0)

    assert results.converged
    assert results.final_residual < 1e-4 * results.initial_residual
    assert results.wall_time > 0.0


def test_numpy_and_numba_kernels_agree(wall_problem):
    config = SORConfig(maxits=50, reltol=0.0, abstol=0.0, check_interval=10)
    a = wall_problem(nz=16)
    b = wall_problem(nz=16)

    UniformSOR(config=config, use_numba=True).solve(a)
    UniformSOR(config=config, use_numba=False).solve(b)

    np.testing.assert_allclose(a.psi.data, b.psi.data, rtol=1e-10, atol=1e-12)


def test_odd_local_extent_is_rejected(make_decomposition):
    decomposition = make_decomposition(nlocal=(4, 4, 7))
    psi_fields = PsiFields(decomposition)

    with pytest.raises(ConfigError):
        UniformSOR().solve(psi_fields)


def test_solver_selection_and_validation():
    varying = FunctionPermittivity(lambda x, y, z: 1.0 + 0.1 * np.sin(z))

    assert isinstance(create_solver(), UniformSOR)
    assert isinstance(create_solver(ConstantPermittivity(2.0)), UniformSOR)
    assert isinstance(create_solver(varying), VariableSOR)
    assert VariableSOR(varying).config.check_interval == 1
    assert VariableSOR(varying, SORConfig(check_interval=7)).config.check_interval == 7

    with pytest.raises(ConfigError):
        UniformSOR(varying)
    with pytest.raises(ConfigError):
        VariableSOR(None)
    with pytest.raises(ConfigError):
        UniformSOR(maxits=0)
    with pytest.raises(ConfigError):
        UniformSOR(reltol=-1.0)


def test_results_are_saved(wall_problem, tmp_path):
    import pandas as pd

    psi_fields = wall_problem(nz=16)
    solver = UniformSOR(maxits=5)
    solver.solve(psi_fields)
    psi_global = psi_fields.psi.gather()

    if psi_fields.decomposition.rank == 0:
        solver.save_results(tmp_path, psi_global, "wall")
        config = pd.read_parquet(tmp_path / "wall_config.parquet")
        perrank = pd.read_parquet(tmp_path / "wall_perrank.parquet")

        assert config["method"].iloc[0] == "sor_uniform"
        assert len(perrank) == psi_fields.decomposition.size
        assert np.load(tmp_path / "wall_psi.npy").shape == psi_global.shape
