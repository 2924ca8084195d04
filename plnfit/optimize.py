from __future__ import annotations

import logging
import math
from typing import Dict, List, Mapping, Optional, Tuple, Union

import nlopt
import numpy as np

from .algorithms import resolve_algorithm
from .config import OptimConfig, default_control
from .errors import NumericalError
from .initialization import initial_parameters, log_factorial_constant
from .objective import create_evaluator
from .parameters import ParameterLayout
from .types import EvaluationContext, OptimResult, PLNData, PLNFit, Status


logger = logging.getLogger(__name__)

LOG_INTERVAL: int = 100

ConfigLike = Union[OptimConfig, Mapping]


def _nlopt_errors(name: str, fallback: type) -> Tuple[type, ...]:
    """Exception classes NLopt raises for ``name``.

    Older bindings raise the builtin ``fallback``; recent ones raise their own
    classes from ``nlopt.nlopt`` that do not derive from it.
    """
    found = [fallback]
    for module in (nlopt, getattr(nlopt, "nlopt", None)):
        cls = getattr(module, name, None)
        if isinstance(cls, type) and issubclass(cls, BaseException) and cls not in found:
            found.append(cls)
    return tuple(found)


INVALID_ARGS_ERRORS = _nlopt_errors("invalid_argument", ValueError)
FAILURE_ERRORS = _nlopt_errors("runtime_error", RuntimeError) + _nlopt_errors("exception", RuntimeError)[1:]


class PLNOptimizer:
    """Drives one NLopt minimisation of the variational PLN objective.

    The algorithm name is resolved on construction, so an unsupported name
    raises :class:`~plnfit.errors.InvalidAlgorithm` before anything is
    evaluated. Every other outcome, numerical failures included, is reported
    through :attr:`OptimResult.status`.
    """

    def __init__(self, config: OptimConfig):
        self.config = config
        self.algorithm = resolve_algorithm(config.algorithm)

    def _build_opt(self, layout: ParameterLayout) -> "nlopt.opt":
        cfg = self.config
        opt = nlopt.opt(self.algorithm.code, layout.n_param)
        opt.set_lower_bounds(layout.lower_bounds(cfg.lbvar))
        opt.set_xtol_abs(layout.xtol_abs(cfg.xtol_abs))
        opt.set_xtol_rel(cfg.xtol_rel)
        opt.set_ftol_abs(cfg.ftol_abs)
        opt.set_ftol_rel(cfg.ftol_rel)
        opt.set_maxeval(cfg.maxeval)
        return opt

    def run(self, x0, ctx: EvaluationContext) -> OptimResult:
        layout = ParameterLayout.from_data(ctx.data, self.config.order)
        x0 = np.array(x0, dtype=float)
        if x0.ndim != 1 or x0.shape[0] != layout.n_param:
            raise ValueError(f"Initial vector must have length {layout.n_param}, got shape {x0.shape}.")
        evaluator = create_evaluator(layout, backend=self.config.backend)
        opt = self._build_opt(layout)

        history: List[float] = []
        best: Dict = {"x": x0.copy(), "f": math.inf}
        failures: List[NumericalError] = []
        callback_errors: List[BaseException] = []

        def objective(x, grad):
            need_gradient = grad.size > 0
            try:
                value, g = evaluator.evaluate(x, need_gradient, ctx)
            except NumericalError as exc:
                logger.warning("Numerical failure at evaluation %d: %s", ctx.evaluation_count, exc)
                history.append(math.nan)
                failures.append(exc)
                raise nlopt.ForcedStop(str(exc))
            except Exception as exc:
                callback_errors.append(exc)
                raise
            if need_gradient:
                grad[:] = g
            history.append(value)
            if np.isfinite(value) and value < best["f"]:
                best["x"] = np.array(x, dtype=float)
                best["f"] = value
            if ctx.evaluation_count % LOG_INTERVAL == 0:
                logger.debug("Evaluation %d: objective=%.6e best=%.6e", ctx.evaluation_count, value, best["f"])
            return value

        opt.set_min_objective(objective)
        logger.info(
            "Starting %s on %d parameters (maxeval=%d, lbvar=%g)",
            self.algorithm.name,
            layout.n_param,
            self.config.maxeval,
            self.config.lbvar,
        )

        try:
            solution = np.asarray(opt.optimize(x0), dtype=float)
            status = Status(opt.last_optimize_result())
            value = float(opt.last_optimum_value())
        except nlopt.ForcedStop:
            status = Status.FAILURE if failures else Status.FORCED_STOP
            solution, value = self._best_point(best)
        except nlopt.RoundoffLimited:
            status = Status.ROUNDOFF_LIMITED
            solution, value = self._best_point(best)
        except INVALID_ARGS_ERRORS as exc:
            if callback_errors:
                raise
            logger.warning("NLopt rejected the problem setup: %s", exc)
            status = Status.INVALID_ARGS
            solution, value = self._best_point(best)
        except FAILURE_ERRORS as exc:
            if callback_errors:
                raise
            logger.warning("NLopt failed: %s", exc)
            status = Status.FAILURE
            solution, value = self._best_point(best)

        logger.info(
            "%s terminated with %s: objective=%.6e after %d evaluations",
            self.algorithm.name,
            status.name,
            value,
            ctx.evaluation_count,
        )
        return OptimResult(
            status=status,
            objective=value,
            solution=solution,
            iterations=ctx.evaluation_count,
            history=history,
        )

    @staticmethod
    def _best_point(best: Dict):
        value = best["f"] if math.isfinite(best["f"]) else math.nan
        return best["x"], value


def create_optimizer(config: ConfigLike) -> PLNOptimizer:
    if not isinstance(config, OptimConfig):
        config = OptimConfig.from_dict(config)
    return PLNOptimizer(config)


def optimize_pln(par, Y, X, O, KY: float, config: ConfigLike) -> OptimResult:
    """Minimise the variational PLN objective starting from ``par``."""
    optimizer = create_optimizer(config)
    ctx = EvaluationContext(PLNData(Y, X, O, KY))
    return optimizer.run(par, ctx)


def build_fit(result: OptimResult, layout: ParameterLayout) -> PLNFit:
    params = layout.unpack(result.solution)
    n, p, d = layout.n, layout.p, layout.d
    Sigma = (params.M.T @ params.M + np.diag(params.S.sum(axis=0))) / n
    Omega = np.full_like(Sigma, np.nan)
    if np.all(np.isfinite(Sigma)):
        try:
            Omega = np.linalg.inv(Sigma)
        except np.linalg.LinAlgError:
            logger.warning("Sigma is singular at the returned solution; Omega left undefined")
    loglik = -float(result.objective)
    bic = loglik - 0.5 * math.log(n) * (p * d + p * (p + 1) / 2)
    return PLNFit(params=params, Sigma=Sigma, Omega=Omega, loglik=loglik, bic=bic, result=result)


def fit_pln(
    Y,
    X: Optional[np.ndarray] = None,
    O: Optional[np.ndarray] = None,
    config: Optional[ConfigLike] = None,
    init: Optional[np.ndarray] = None,
) -> PLNFit:
    """Fit a PLN model; X defaults to an intercept and O to zero offsets."""
    Y = np.asarray(Y, dtype=float)
    n, p = Y.shape
    X = np.ones((n, 1)) if X is None else np.asarray(X, dtype=float)
    O = np.zeros((n, p)) if O is None else np.asarray(O, dtype=float)
    if not isinstance(config, OptimConfig):
        config = OptimConfig.from_dict(config or {}, defaults=default_control(n, p))
    optimizer = PLNOptimizer(config)
    data = PLNData(Y, X, O, log_factorial_constant(Y))
    if init is None:
        init = initial_parameters(Y, X, O, lbvar=config.lbvar, order=config.order)
    result = optimizer.run(init, EvaluationContext(data))
    return build_fit(result, ParameterLayout.from_data(data, config.order))
