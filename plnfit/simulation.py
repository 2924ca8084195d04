from __future__ import annotations

import numpy as np
from typing import Dict, Optional


def simulate_pln(
    n: int,
    p: int,
    d: int = 1,
    seed: Optional[int] = None,
    offset: Optional[np.ndarray] = None,
    theta_scale: float = 0.5,
    intercept: float = 1.0,
    sigma_scale: float = 0.3,
) -> Dict[str, np.ndarray]:
    """Draw counts from a PLN model.

    X has an intercept column followed by d - 1 Gaussian covariates; the
    latent layer is Z ~ N(O + XΘᵗ, Σ) with a random SPD Σ and Y ~ Poisson(exp Z).
    """
    rng = np.random.default_rng(seed)
    X = np.ones((n, d))
    if d > 1:
        X[:, 1:] = rng.normal(size=(n, d - 1))
    O = np.zeros((n, p)) if offset is None else np.asarray(offset, dtype=float)
    Theta = rng.normal(scale=theta_scale, size=(p, d))
    Theta[:, 0] += intercept
    B = rng.normal(scale=sigma_scale, size=(p, p))
    Sigma = B @ B.T + sigma_scale ** 2 * np.eye(p)
    Z = O + X @ Theta.T + rng.multivariate_normal(np.zeros(p), Sigma, size=n)
    Y = rng.poisson(np.exp(Z)).astype(float)
    return {"Y": Y, "X": X, "O": O, "Theta": Theta, "Sigma": Sigma, "Z": Z}
