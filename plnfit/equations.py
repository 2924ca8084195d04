from __future__ import annotations

import math
from typing import Any, Tuple


def precision_from_variational(M: Any, S: Any, n: int, xp, linalg) -> Tuple[Any, Any, Any]:
    """Ω = n (MᵗM + diag(colSums(S)))⁻¹ and log det Ω from one Cholesky factor.

    Returns (Omega, log_det_omega, chol_diag). ``linalg`` is scipy.linalg or
    jax.scipy.linalg; the caller checks ``chol_diag`` for a failed factorisation.
    """
    G = M.T @ M + xp.diag(xp.sum(S, axis=0))
    p = G.shape[0]
    factor = linalg.cho_factor(G)
    chol_diag = xp.diag(factor[0])
    Omega = n * linalg.cho_solve(factor, xp.eye(p))
    log_det_omega = p * math.log(n) - 2.0 * xp.sum(xp.log(chol_diag))
    return Omega, log_det_omega, chol_diag


def linear_predictor(X: Any, O: Any, Theta: Any, M: Any) -> Any:
    """Z = O + XΘᵗ + M."""
    return O + X @ Theta.T + M


def poisson_mean(Z: Any, S: Any, xp) -> Any:
    """Variational Poisson mean A = exp(Z + S/2)."""
    return xp.exp(Z + 0.5 * S)


def objective_value(Y: Any, Z: Any, A: Any, S: Any, log_det_omega: Any, n: int, KY: float, xp) -> Any:
    """Negative variational lower bound."""
    return xp.sum(A - Y * Z - 0.5 * xp.log(S)) - 0.5 * n * log_det_omega + KY


def gradient_blocks(Y: Any, X: Any, M: Any, S: Any, A: Any, Omega: Any, xp) -> Tuple[Any, Any, Any]:
    """Analytic gradient of the objective with respect to Θ, M and S."""
    residual = A - Y
    grad_theta = residual.T @ X
    grad_M = M @ Omega + residual
    grad_S = 0.5 * (xp.diag(Omega)[None, :] + A - 1.0 / S)
    return grad_theta, grad_M, grad_S
