#!/usr/bin/env python3
"""
Plot results from compute_sor.py.

Plots the potential profile against the direct solve, the residual history
of every saved run, and per-rank timings.
"""

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from utils import get_data_dir, get_figures_dir, list_runs, load_simulation_data
from utils.plotting import plot_potential_profile, plot_residual_history

# Get directories (automatically mirrors Experiments/ structure)
data_dir = get_data_dir()
figures_dir = get_figures_dir()


def plot_profiles(runs: dict, output_dir: Path):
    """Potential along z for each run."""
    fig, ax = plt.subplots(figsize=(8, 5))
    for name, run in runs.items():
        psi_z = run["psi"][0, 0, 0, :]
        exact_file = data_dir / f"{name}_exact.npy"
        psi_exact = np.load(exact_file) if exact_file.exists() else None
        plot_potential_profile(ax, psi_z, psi_exact, label=name)
    ax.set_title("Wall charge potential")
    plt.tight_layout()
    output_file = output_dir / "potential_profile.pdf"
    plt.savefig(output_file)
    plt.close()
    print(f"Profile plot saved to: {output_file}")


def plot_convergence(runs: dict, output_dir: Path):
    """Residual history of all runs on one axis."""
    fig, ax = plt.subplots(figsize=(8, 5))
    for name, run in runs.items():
        check_interval = int(run["config"]["check_interval"].iloc[0])
        plot_residual_history(ax, run["global"], check_interval, label=name)
    ax.set_title("SOR convergence")
    plt.tight_layout()
    output_file = output_dir / "residual_history.pdf"
    plt.savefig(output_file)
    plt.close()
    print(f"Convergence plot saved to: {output_file}")


def plot_per_rank_performance(runs: dict, output_dir: Path):
    """Compute, MPI and halo time per rank."""
    df = pd.concat([run["perrank"].assign(run=name) for name, run in runs.items()], ignore_index=True)
    df = df.melt(
        id_vars=["run", "mpi_rank"],
        value_vars=["compute_time", "mpi_comm_time", "halo_exchange_time"],
        var_name="phase",
        value_name="time",
    )

    g = sns.catplot(data=df, x="mpi_rank", y="time", hue="phase", col="run", kind="bar", height=4)
    g.set_axis_labels("MPI Rank", "Time (s)")
    output_file = output_dir / "performance_per_rank.pdf"
    g.savefig(output_file)
    plt.close("all")
    print(f"Per-rank performance plot saved to: {output_file}")


runs = {name: load_simulation_data(data_dir, name) for name in list_runs(data_dir)}
runs = {name: run for name, run in runs.items() if "psi" in run}

if not runs:
    raise SystemExit(f"No runs in {data_dir}; run compute_sor.py first.")

plot_profiles(runs, figures_dir)
plot_convergence(runs, figures_dir)
plot_per_rank_performance(runs, figures_dir)
