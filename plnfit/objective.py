from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np
import scipy.linalg

from .equations import gradient_blocks, linear_predictor, objective_value, poisson_mean, precision_from_variational
from .errors import NumericalError
from .parameters import ParameterLayout
from .types import Backend, EvaluationContext

try:
    import jax
    import jax.numpy as jnp
    import jax.scipy.linalg as jsp_linalg
except ImportError:  # pragma: no cover - optional dependency
    jax = None
    jnp = None
    jsp_linalg = None


logger = logging.getLogger(__name__)


class ObjectiveEvaluator:
    """Objective and analytic gradient of the variational PLN criterion.

    Each call to :meth:`evaluate` reconstructs Theta, M and S from the flat
    vector, so nothing is cached between calls. The evaluator is the only
    writer of ``ctx.evaluation_count``.
    """

    def __init__(self, layout: ParameterLayout, backend: Backend = "numpy"):
        self.layout = layout
        self.backend = backend.lower()
        if self.backend == "jax":
            if jax is None or jnp is None:
                raise RuntimeError("JAX backend requested but JAX is not installed.")
            jax.config.update("jax_enable_x64", True)
            self.xp = jnp
            self.linalg = jsp_linalg
        elif self.backend == "numpy":
            self.xp = np
            self.linalg = scipy.linalg
        else:
            raise ValueError(f"Unknown backend '{backend}'. Available: ['numpy', 'jax']")

    def _check_context(self, ctx: EvaluationContext) -> None:
        data = ctx.data
        if (data.n, data.p, data.d) != (self.layout.n, self.layout.p, self.layout.d):
            raise ValueError(
                f"Context dimensions (n={data.n}, p={data.p}, d={data.d}) do not match layout "
                f"(n={self.layout.n}, p={self.layout.p}, d={self.layout.d})."
            )

    def evaluate(self, x, need_gradient: bool, ctx: EvaluationContext) -> Tuple[float, Optional[np.ndarray]]:
        ctx.evaluation_count += 1
        self._check_context(ctx)
        params = self.layout.unpack(x)
        data = ctx.data
        n = data.n
        xp = self.xp
        Y, X, O = data.Y, data.X, data.O
        Theta, M, S = params.Theta, params.M, params.S
        if self.backend == "jax":
            Y, X, O, Theta, M, S = (jnp.asarray(a) for a in (Y, X, O, Theta, M, S))

        with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
            try:
                Omega, log_det_omega, chol_diag = precision_from_variational(M, S, n, xp, self.linalg)
            except (np.linalg.LinAlgError, ValueError) as exc:
                raise NumericalError(f"MᵗM + diag(colSums(S)) is not positive definite: {exc}") from exc
            # jax reports a failed factorisation with NaNs instead of raising
            if not bool(xp.all(xp.isfinite(chol_diag) & (chol_diag > 0))):
                raise NumericalError("MᵗM + diag(colSums(S)) is not positive definite.")

            Z = linear_predictor(X, O, Theta, M)
            A = poisson_mean(Z, S, xp)
            objective = float(objective_value(Y, Z, A, S, log_det_omega, n, data.KY, xp))
            if not np.isfinite(objective):
                logger.debug("Non-finite objective at evaluation %d: %s", ctx.evaluation_count, objective)
            if not need_gradient:
                return objective, None
            grad_theta, grad_M, grad_S = gradient_blocks(Y, X, M, S, A, Omega, xp)

        grad = self.layout.pack(np.asarray(grad_theta), np.asarray(grad_M), np.asarray(grad_S))
        return objective, grad


def create_evaluator(layout: ParameterLayout, backend: Backend = "numpy") -> ObjectiveEvaluator:
    return ObjectiveEvaluator(layout, backend=backend)
