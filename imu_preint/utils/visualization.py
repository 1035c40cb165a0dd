"""
Plots of preintegration results.

Functions return matplotlib Figures for saving.
"""

import numpy as np
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt


def plot_covariance_growth(t, covariances, title=""):
    """
    Plot the standard deviation of the preintegrated deltas over time.

    Args:
        t: Integrated time after each sample (N,)
        covariances: Covariance after each sample (N, 9, 9), ordered
            (position, velocity, rotation)
        title: Optional figure title

    Returns:
        matplotlib.Figure
    """
    sigmas = np.sqrt(np.maximum(np.diagonal(covariances, axis1=1, axis2=2), 0.0))

    fig, axs = plt.subplots(3, 1, sharex=True, figsize=(10, 9))
    labels = ["position (m)", "velocity (m/s)", "rotation (deg)"]
    scales = [1.0, 1.0, 180.0 / np.pi]
    for k, ax in enumerate(axs):
        block = sigmas[:, 3 * k:3 * k + 3] * scales[k]
        for axis, color in enumerate("rgb"):
            ax.plot(t, block[:, axis], color=color, label="xyz"[axis])
        ax.set_ylabel(f"$\\sigma$ {labels[k]}")
        ax.grid(True, alpha=0.3)
        ax.legend(loc="upper left")
    axs[-1].set_xlabel("$\\Delta t_{ij}$ (s)")
    fig.suptitle(title if title else "Preintegrated covariance")
    fig.tight_layout()
    return fig
