"""Base class for red-black SOR solvers."""

from __future__ import annotations

import logging
import os
import socket
import time
from dataclasses import asdict, replace

import numpy as np
import pandas as pd
from mpi4py import MPI

from ..datastructures import GlobalResults, PerRankResults, RuntimeConfig, SORConfig, SolverStatus
from ..exceptions import ConfigError, RelaxationError
from ..psi import PsiFields

logger = logging.getLogger(__name__)


class SORSolver:
    """Base class for the Poisson solvers.

    Solves ``div(epsilon grad psi) = -e beta rho_elec`` for the potential of
    a :class:`~Psi.psi.PsiFields` with red-black successive over-relaxation
    and a Chebyshev schedule for the relaxation factor. Subclasses supply the
    stencil (:meth:`_prepare`, :meth:`_pass`, :meth:`_residual`) and the
    relaxation schedule (:meth:`_next_omega`).

    Parameters
    ----------
    permittivity : PermittivityModel, optional
        Coefficient model
    config : SORConfig, optional
        Numerical controls. Keyword arguments override individual fields.
    verbose : bool, default False
        Print a summary after each solve (rank 0 only)
    """

    method = ""

    def __init__(self, permittivity=None, config: SORConfig | None = None, **kwargs):
        # Extract verbose before passing to SORConfig
        self.verbose = kwargs.pop('verbose', False)
        config = SORConfig() if config is None else config
        self.config = replace(config, **kwargs)
        self._validate_config()

        self.permittivity = permittivity
        self.status = SolverStatus.UNINITIALIZED
        self.runtime_config = RuntimeConfig(method=self.method, use_numba=self.config.use_numba)
        self.global_results = GlobalResults()
        self.all_per_rank_results: list[PerRankResults] = []
        self._select_kernels(self.config.use_numba)

    def _validate_config(self) -> None:
        if self.config.maxits < 1:
            raise ConfigError(f"maxits must be positive, got {self.config.maxits}")
        if self.config.check_interval < 1:
            raise ConfigError(f"check_interval must be positive, got {self.config.check_interval}")
        if self.config.nfreq < 1:
            raise ConfigError(f"nfreq must be positive, got {self.config.nfreq}")
        if self.config.reltol < 0.0 or self.config.abstol < 0.0:
            raise ConfigError("Tolerances must be non-negative")

    # ============================================================================
    # Stencil hooks
    # ============================================================================

    def _select_kernels(self, use_numba: bool) -> None:
        raise NotImplementedError("Subclass must implement _select_kernels()")

    def _prepare(self, psi_fields: PsiFields):
        """Return the coefficient passed to the kernels for this solve."""
        raise NotImplementedError("Subclass must implement _prepare()")

    def _pass(self, psi, source, coefficient, omega, parity, nhalo) -> float:
        return self._sor_pass(psi, source, coefficient, omega, parity, nhalo)

    def _residual(self, psi, source, coefficient, nhalo) -> float:
        return self._residual_norm(psi, source, coefficient, nhalo)

    def _next_omega(self, n: int, half: int, omega: float, radius: float) -> float | None:
        """Relaxation factor for the next half-sweep, or None if unchanged."""
        raise NotImplementedError("Subclass must implement _next_omega()")

    # ============================================================================
    # Solve
    # ============================================================================

    @staticmethod
    def spectral_radius(decomposition) -> float:
        """Jacobi spectral radius estimate ``1 - 0.5 (pi / max(Lx, Lz))^2``."""
        ltot = decomposition.ltot
        return 1.0 - 0.5 * (np.pi / max(ltot[0], ltot[2])) ** 2

    def check_preconditions(self, psi_fields: PsiFields) -> None:
        decomposition = psi_fields.decomposition
        if decomposition.nhalo < 1 or psi_fields.psi.nhcomm < 1:
            raise ConfigError("SOR stencil requires a halo of width at least 1")
        if not decomposition.checkerboard_compatible:
            raise ConfigError(
                f"Local domain {decomposition.nlocal} must be even along every axis "
                "for red-black ordering"
            )

    def solve(self, psi_fields: PsiFields, step: int | None = None) -> GlobalResults:
        """Relax the potential in place.

        Parameters
        ----------
        psi_fields : PsiFields
            Potential and charge densities; ``psi`` is updated in place
        step : int, optional
            Caller's time step. A convergence report is logged when
            ``step % nfreq == 0``; ``None`` suppresses it.

        Returns
        -------
        GlobalResults
            Convergence and timing results (same on all ranks)
        """
        self.check_preconditions(psi_fields)

        decomposition = psi_fields.decomposition
        comm = decomposition.cart_comm
        nhalo = decomposition.nhalo
        config = self.config

        compute_times = []
        comm_times = []
        halo_times = []
        residual_history = []
        t_start = time.perf_counter()

        coefficient = self._prepare(psi_fields)
        source = psi_fields.source_map()
        psi = psi_fields.psi.data[0]
        radius = self.spectral_radius(decomposition)

        # Initial residual
        t0 = time.perf_counter()
        psi_fields.halo_psi()
        halo_times.append(time.perf_counter() - t0)

        t0 = time.perf_counter()
        rnorm_local = self._residual(psi, source, coefficient, nhalo)
        compute_times.append(time.perf_counter() - t0)

        t0 = time.perf_counter()
        rnorm0 = comm.allreduce(rnorm_local, op=MPI.SUM)
        comm_times.append(time.perf_counter() - t0)

        self.status = SolverStatus.ITERATING
        omega = 1.0
        rnorm = rnorm0
        criterion = ""
        iterations = 0

        for n in range(config.maxits):
            rnorm_local = 0.0
            iterations = n + 1

            for half in range(2):
                t0 = time.perf_counter()
                rnorm_local += self._pass(psi, source, coefficient, omega, (1 + half) % 2, nhalo)
                compute_times.append(time.perf_counter() - t0)

                new_omega = self._next_omega(n, half, omega, radius)
                if new_omega is not None:
                    if not 1.0 < new_omega < 2.0:
                        logger.error("Relaxation factor %g outside (1, 2) at iteration %d", new_omega, n)
                        raise RelaxationError(f"Relaxation factor {new_omega} outside (1, 2)")
                    omega = new_omega

                t0 = time.perf_counter()
                psi_fields.halo_psi()
                halo_times.append(time.perf_counter() - t0)

            if n % config.check_interval == 0:
                t0 = time.perf_counter()
                rnorm = comm.allreduce(rnorm_local, op=MPI.SUM)
                comm_times.append(time.perf_counter() - t0)
                residual_history.append(float(rnorm))

                if rnorm < config.abstol:
                    criterion = "absolute"
                elif rnorm < config.reltol * rnorm0:
                    criterion = "relative"

                if criterion:
                    self.status = SolverStatus.CONVERGED
                    self._report(step, criterion, rnorm, iterations, decomposition)
                    break
        else:
            if (config.maxits - 1) % config.check_interval != 0:
                t0 = time.perf_counter()
                rnorm = comm.allreduce(rnorm_local, op=MPI.SUM)
                comm_times.append(time.perf_counter() - t0)
                residual_history.append(float(rnorm))

            self.status = SolverStatus.MAX_ITERATIONS
            logger.warning("SOR solver exceeded %d iterations", config.maxits)
            logger.warning("SOR residual %e (initial) %e (final)", rnorm0, rnorm)

        elapsed_time = time.perf_counter() - t_start

        # Build per-rank results
        per_rank_results = PerRankResults(
            mpi_rank=decomposition.rank,
            hostname=socket.gethostname(),
            coords=decomposition.coords,
            wall_time=elapsed_time,
            compute_time=sum(compute_times),
            mpi_comm_time=sum(comm_times),
            halo_exchange_time=sum(halo_times),
        )

        # Gather all per-rank results
        all_perrank = comm.gather(per_rank_results, root=0)

        # Build config and global results on rank 0
        if decomposition.rank == 0:
            self.all_per_rank_results = all_perrank
            runtime_config = RuntimeConfig(
                ntotal=decomposition.ntotal,
                grid=decomposition.dims,
                nhalo=nhalo,
                mpi_ranks=decomposition.size,
                method=self.method,
                halo_strategy=psi_fields.psi.plan.strategy.get_name(),
                use_numba=config.use_numba,
                num_threads=self.get_num_threads(config.use_numba),
                maxits=config.maxits,
                reltol=config.reltol,
                abstol=config.abstol,
                check_interval=config.check_interval,
            )
            global_results = GlobalResults(
                iterations=iterations,
                residual_history=residual_history,
                converged=self.status == SolverStatus.CONVERGED,
                status=self.status.value,
                criterion=criterion,
                initial_residual=float(rnorm0),
                final_residual=float(rnorm),
                wall_time=max(pr.wall_time for pr in all_perrank),
                compute_time=sum(pr.compute_time for pr in all_perrank),
                mpi_comm_time=sum(pr.mpi_comm_time for pr in all_perrank),
                halo_exchange_time=sum(pr.halo_exchange_time for pr in all_perrank),
            )
        else:
            runtime_config, global_results = RuntimeConfig(), GlobalResults()

        # Broadcast to all ranks
        self.runtime_config = comm.bcast(runtime_config, root=0)
        self.global_results = comm.bcast(global_results, root=0)

        if self.verbose and decomposition.rank == 0:
            self.print_summary()

        return self.global_results

    def _report(self, step, criterion, rnorm, iterations, decomposition) -> None:
        if step is None or step % self.config.nfreq != 0:
            return
        volume = float(np.prod(decomposition.ltot))
        logger.info("SOR solver converged to %s tolerance", criterion)
        logger.info("SOR residual per site %14.7e at %d iterations", rnorm / volume, iterations)

    # ============================================================================
    # Utilities
    # ============================================================================

    def warmup(self, n: int = 6) -> None:
        """Warmup the solver (trigger JIT compilation)."""
        nhalo = 1
        shape = (n + 2 * nhalo,) * 3
        psi = np.zeros(shape)
        source = np.random.randn(*shape)
        coefficient = self._warmup_coefficient(shape)

        for half in range(2):
            self._pass(psi, source, coefficient, 1.5, half, nhalo)
        self._residual(psi, source, coefficient, nhalo)

    def _warmup_coefficient(self, shape):
        return 1.0

    def get_num_threads(self, use_numba=False):
        """Get number of threads available for parallel execution."""
        if use_numba:
            import numba
            return numba.get_num_threads()
        return os.cpu_count() or 1

    def mlflow_start_log(self, experiment_name: str, run_name: str | None = None) -> None:
        import mlflow

        mlflow.set_experiment(experiment_name)
        mlflow.start_run(run_name=run_name)
        mlflow.log_params({"method": self.method, **asdict(self.config)})

    def mlflow_end_log(self) -> None:
        import mlflow

        # Log global results (excluding lists and labels which can't be logged as metrics)
        global_dict = asdict(self.global_results)
        residual_history = global_dict.pop('residual_history', [])
        mlflow.log_params({
            "status": global_dict.pop("status"),
            "criterion": global_dict.pop("criterion"),
            "ntotal": self.runtime_config.ntotal,
            "grid": self.runtime_config.grid,
            "mpi_ranks": self.runtime_config.mpi_ranks,
        })
        mlflow.log_metrics({key: float(value) for key, value in global_dict.items()})

        # Log residual history as step-by-step metrics for convergence graph
        for step, residual in enumerate(residual_history):
            mlflow.log_metric("residual", residual, step=step * self.config.check_interval)

        # Log per-rank results as a table
        per_rank_dicts = [asdict(pr) for pr in self.all_per_rank_results]
        mlflow.log_table(pd.DataFrame(per_rank_dicts), "per_rank_results.json")
        mlflow.end_run()

    def print_summary(self):
        """Print a summary of the solver results."""
        print(f"Wall time = {self.global_results.wall_time:.6f} s")
        print(f"Compute time = {self.global_results.compute_time:.6f} s")
        print(f"MPI comm time = {self.global_results.mpi_comm_time:.6f} s")
        print(f"Halo exchange time = {self.global_results.halo_exchange_time:.6f} s")
        print(f"Iterations = {self.global_results.iterations}")
        if self.global_results.converged:
            print(f"Converged to {self.global_results.criterion} tolerance")
        print(f"Residual = {self.global_results.initial_residual:.6e} (initial) "
              f"{self.global_results.final_residual:.6e} (final)")

    def save_results(self, data_dir, psi_global=None, output_name=None):
        """Save all results to parquet files and the potential to npy.

        Parameters
        ----------
        data_dir : Path
            Directory to save results
        psi_global : np.ndarray, optional
            Gathered potential (see :meth:`Psi.field.Field.gather`)
        output_name : str, optional
            Custom base name for output files
        """
        # Create DataFrames
        df_runtime_config = pd.DataFrame([asdict(self.runtime_config)])
        df_global_results = pd.DataFrame([asdict(self.global_results)])
        df_per_rank_results = pd.DataFrame([asdict(pr) for pr in self.all_per_rank_results])

        # Generate file names
        if output_name:
            base_name = output_name.replace('.npy', '').replace('.parquet', '')
        else:
            nx, ny, nz = self.runtime_config.ntotal
            base_name = f"run_{nx}x{ny}x{nz}_iter{self.global_results.iterations}_{self.method}"

        config_file = data_dir / f"{base_name}_config.parquet"
        global_file = data_dir / f"{base_name}_global.parquet"
        perrank_file = data_dir / f"{base_name}_perrank.parquet"
        psi_file = data_dir / f"{base_name}_psi.npy"

        # Save files
        df_runtime_config.to_parquet(config_file, index=False)
        logger.info("Config saved to: %s", config_file)

        df_global_results.to_parquet(global_file, index=False)
        logger.info("Global results saved to: %s", global_file)

        df_per_rank_results.to_parquet(perrank_file, index=False)
        logger.info("Per-rank results saved to: %s", perrank_file)

        if psi_global is not None:
            np.save(psi_file, psi_global)
            logger.info("Potential saved to: %s", psi_file)
