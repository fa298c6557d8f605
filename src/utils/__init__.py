"""Utility modules for experiment I/O and command-line parsing."""

from .io import (
    ensure_output_dir,
    load_simulation_data,
    list_runs,
    get_repo_root,
    get_experiment_name,
    get_data_dir,
    get_figures_dir,
)

__all__ = [
    # I/O
    "ensure_output_dir",
    "load_simulation_data",
    "list_runs",
    "get_repo_root",
    "get_experiment_name",
    "get_data_dir",
    "get_figures_dir",
]
