"""Variational Poisson-lognormal model fitting driven by NLopt."""

from .types import EvaluationContext, OptimResult, PLNData, PLNFit, PLNParams, Status
from .errors import ConfigurationError, InvalidAlgorithm, NumericalError
from .config import OptimConfig, default_control
from .parameters import ParameterLayout
from .algorithms import ALGORITHMS, Algorithm, available_algorithms, resolve_algorithm
from .objective import ObjectiveEvaluator, create_evaluator
from .initialization import initial_parameters, log_factorial_constant
from .simulation import simulate_pln
from .optimize import PLNOptimizer, build_fit, create_optimizer, fit_pln, optimize_pln

__all__ = [
    "EvaluationContext",
    "OptimResult",
    "PLNData",
    "PLNFit",
    "PLNParams",
    "Status",
    "ConfigurationError",
    "InvalidAlgorithm",
    "NumericalError",
    "OptimConfig",
    "default_control",
    "ParameterLayout",
    "ALGORITHMS",
    "Algorithm",
    "available_algorithms",
    "resolve_algorithm",
    "ObjectiveEvaluator",
    "create_evaluator",
    "initial_parameters",
    "log_factorial_constant",
    "simulate_pln",
    "PLNOptimizer",
    "build_fit",
    "create_optimizer",
    "fit_pln",
    "optimize_pln",
]
