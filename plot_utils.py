"""Plotting helpers for PLN fits."""

from __future__ import annotations

import os
from typing import List, Sequence

import matplotlib

# Use non-interactive backend for CLI environments.
matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402

from plnfit.equations import linear_predictor, poisson_mean  # noqa: E402
from plnfit.types import PLNFit  # noqa: E402


def plot_objective_trace(history: Sequence[float], output_dir: str) -> str:
    """Plot the objective of every evaluation and its running minimum."""
    os.makedirs(output_dir, exist_ok=True)
    values = np.asarray(history, dtype=float)
    evals = np.arange(1, len(values) + 1)
    finite = np.isfinite(values)
    running_min = np.minimum.accumulate(np.where(finite, values, np.inf)) if len(values) else values

    plt.figure(figsize=(6, 4))
    plt.plot(evals[finite], values[finite], ".", markersize=3, alpha=0.5, label="evaluation")
    plt.plot(evals, running_min, "-", linewidth=1.6, label="best so far")
    plt.xlabel("Evaluation")
    plt.ylabel("Objective")
    plt.title("Variational objective")
    plt.legend()
    plt.tight_layout()
    out_path = os.path.join(output_dir, "objective_trace.png")
    plt.savefig(out_path, dpi=150)
    plt.close()
    return out_path


def plot_fitted_counts(Y: np.ndarray, X: np.ndarray, O: np.ndarray, fit: PLNFit, output_dir: str) -> str:
    """Scatter observed counts against the fitted variational means (log-log)."""
    os.makedirs(output_dir, exist_ok=True)
    Z = linear_predictor(X, O, fit.Theta, fit.M)
    A = poisson_mean(Z, fit.S, np)

    plt.figure(figsize=(5, 5))
    plt.loglog(1.0 + np.ravel(A), 1.0 + np.ravel(Y), "o", markersize=3, alpha=0.5)
    lims: List[float] = [1.0, float(max(np.max(1.0 + A), np.max(1.0 + Y)))]
    plt.plot(lims, lims, "k--", linewidth=1.0)
    plt.xlabel("1 + fitted mean")
    plt.ylabel("1 + observed count")
    plt.title("Fitted vs observed")
    plt.tight_layout()
    out_path = os.path.join(output_dir, "fitted_counts.png")
    plt.savefig(out_path, dpi=150)
    plt.close()
    return out_path
