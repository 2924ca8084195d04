from __future__ import annotations

import numpy as np
from scipy.special import gammaln

from .parameters import ParameterLayout
from .types import Order


def log_factorial_constant(Y: np.ndarray) -> float:
    """KY = Σ log(Y!), the count-only term of the Poisson log-likelihood."""
    return float(np.sum(gammaln(np.asarray(Y, dtype=float) + 1.0)))


def initial_parameters(
    Y: np.ndarray,
    X: np.ndarray,
    O: np.ndarray,
    lbvar: float = 1e-4,
    order: Order = "C",
) -> np.ndarray:
    """Starting point from a least-squares fit of log(1 + Y) - O on X.

    Theta holds the regression coefficients, M the residuals, and S starts at
    a constant well above the variance floor.
    """
    Y = np.asarray(Y, dtype=float)
    X = np.asarray(X, dtype=float)
    O = np.asarray(O, dtype=float)
    n, p = Y.shape
    target = np.log1p(Y) - O
    coef, *_ = np.linalg.lstsq(X, target, rcond=None)
    M = target - X @ coef
    S = np.full((n, p), max(10.0 * lbvar, 0.1))
    layout = ParameterLayout(n, p, X.shape[1], order)
    return layout.pack(coef.T, M, S)
