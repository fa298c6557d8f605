"""Plotting helpers for SOR experiments.

Automatically applies the seaborn style on import.
"""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns


# Auto-apply plotting styles on import
def _apply_styles():
    """Apply seaborn style and the optional utils.mplstyle on top."""
    sns.set_theme(style="whitegrid")

    style_path = Path(__file__).parent / "utils.mplstyle"
    if style_path.exists():
        plt.style.use(str(style_path))


_apply_styles()


def plot_potential_profile(ax, psi_z: np.ndarray, psi_exact: np.ndarray | None = None, label: str = "SOR"):
    """Potential along z and the direct solution, both shifted to vanish at the first plane."""
    z = np.arange(1, len(psi_z) + 1)
    ax.plot(z, psi_z - psi_z[0], "o", markersize=3, label=label)
    if psi_exact is not None:
        ax.plot(z, psi_exact - psi_exact[0], "-", color="black", linewidth=1, label="Direct solve")
    ax.set_xlabel("z")
    ax.set_ylabel(r"$\psi - \psi_0$")
    ax.legend()


def plot_residual_history(ax, df_global: pd.DataFrame, check_interval: int, label: str | None = None):
    """L1 residual at each check against the sweep count."""
    history = np.asarray(df_global["residual_history"].iloc[0], dtype=float)
    sweeps = np.arange(len(history)) * check_interval + 1
    ax.semilogy(sweeps, history, label=label)
    ax.set_xlabel("Sweep")
    ax.set_ylabel("L1 residual")
    if label is not None:
        ax.legend()
