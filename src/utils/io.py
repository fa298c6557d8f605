"""I/O utilities for locating experiment directories and loading saved runs."""

from __future__ import annotations

import inspect
from pathlib import Path

import numpy as np
import pandas as pd

RUN_TABLES = ("config", "global", "perrank")


def load_simulation_data(data_dir: Path | str, base_name: str) -> dict:
    """Load the tables and potential written by ``SORSolver.save_results``.

    Parameters
    ----------
    data_dir : Path or str
        Directory containing the run files
    base_name : str
        Common prefix of the run files (e.g. 'wall_charge_uniform')

    Returns
    -------
    dict
        DataFrames under 'config', 'global' and 'perrank'; the gathered
        potential under 'psi' when it was saved

    Raises
    ------
    FileNotFoundError
        If the run's global results table does not exist
    """
    data_dir = Path(data_dir)
    global_file = data_dir / f"{base_name}_global.parquet"
    if not global_file.exists():
        raise FileNotFoundError(
            f"No run found at {data_dir / base_name}_*.parquet. "
            f"Run the corresponding compute script first."
        )

    run = {}
    for table in RUN_TABLES:
        path = data_dir / f"{base_name}_{table}.parquet"
        if path.exists():
            run[table] = pd.read_parquet(path)

    psi_file = data_dir / f"{base_name}_psi.npy"
    if psi_file.exists():
        run["psi"] = np.load(psi_file)

    print(f"Loaded run: {data_dir / base_name} ({', '.join(run)})")
    return run


def list_runs(data_dir: Path | str) -> list[str]:
    """Base names of all runs saved in a directory."""
    return sorted(p.name[: -len("_global.parquet")] for p in Path(data_dir).glob("*_global.parquet"))


def ensure_output_dir(path: Path | str) -> Path:
    """Ensure output directory exists, creating it if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_repo_root() -> Path:
    """Get repository root directory.

    Returns the repository root by detecting the presence of pyproject.toml.
    Works from any subdirectory of the repository.
    """
    current = Path(__file__).resolve().parent

    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent

    # Fallback: assume two levels up from src/utils
    return current.parent.parent


def get_experiment_name(caller_file: Path | str | None = None, depth: int = 1) -> str:
    """Get experiment name from the calling script's location.

    The name is the path relative to Experiments/, for example
    Experiments/sor/compute_sor.py gives "sor".

    Parameters
    ----------
    caller_file : Path or str, optional
        Path to the calling file. If None, the caller ``depth`` frames up is used.
    depth : int
        Number of frames between the script and this function

    Raises
    ------
    ValueError
        If the calling file is not in an Experiments/ subdirectory
    """
    if caller_file is None:
        frame = inspect.currentframe()
        for _ in range(depth):
            if frame is None:
                raise RuntimeError("Cannot detect caller file")
            frame = frame.f_back
        if frame is None:
            raise RuntimeError("Cannot detect caller file")
        caller_file = frame.f_globals["__file__"]

    parts = Path(caller_file).resolve().parts
    if "Experiments" not in parts:
        raise ValueError(
            f"File {caller_file} is not in an Experiments/ subdirectory. "
            "This utility is designed for scripts in Experiments/*/"
        )

    experiment_parts = parts[parts.index("Experiments") + 1 : -1]
    if not experiment_parts:
        raise ValueError(
            f"File {caller_file} is directly in Experiments/. "
            "Scripts should be in a subdirectory (e.g., Experiments/sor/)"
        )

    return "/".join(experiment_parts)


def _mirror_dir(root_name: str, caller_file, create: bool) -> Path:
    experiment_name = get_experiment_name(caller_file, depth=3)
    path = get_repo_root() / root_name / experiment_name
    return ensure_output_dir(path) if create else path


def get_data_dir(caller_file: Path | str | None = None, create: bool = True) -> Path:
    """Data directory mirroring the calling script's place in Experiments/.

    From Experiments/sor/compute_sor.py this is repo_root/data/sor/.
    """
    return _mirror_dir("data", caller_file, create)


def get_figures_dir(caller_file: Path | str | None = None, create: bool = True) -> Path:
    """Figures directory mirroring the calling script's place in Experiments/.

    From Experiments/sor/plot_sor.py this is repo_root/figures/sor/.
    """
    return _mirror_dir("figures", caller_file, create)
