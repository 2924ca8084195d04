from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List

import numpy as np


Backend = str  # 'numpy' or 'jax'
Order = str  # 'C' (row-major) or 'F' (column-major)


@dataclass(frozen=True)
class PLNData:
    """Read-only inputs of one optimisation call."""

    Y: np.ndarray
    X: np.ndarray
    O: np.ndarray
    KY: float = 0.0

    def __post_init__(self):
        Y = np.array(self.Y, dtype=float)
        X = np.array(self.X, dtype=float)
        O = np.array(self.O, dtype=float)
        if Y.ndim != 2:
            raise ValueError(f"Y must be a 2-d matrix, got shape {Y.shape}.")
        if X.ndim != 2 or X.shape[0] != Y.shape[0]:
            raise ValueError(f"X must have {Y.shape[0]} rows, got shape {X.shape}.")
        if O.shape != Y.shape:
            raise ValueError(f"O must match Y shape {Y.shape}, got {O.shape}.")
        for arr in (Y, X, O):
            arr.setflags(write=False)
        object.__setattr__(self, "Y", Y)
        object.__setattr__(self, "X", X)
        object.__setattr__(self, "O", O)
        object.__setattr__(self, "KY", float(self.KY))

    @property
    def n(self) -> int:
        return self.Y.shape[0]

    @property
    def p(self) -> int:
        return self.Y.shape[1]

    @property
    def d(self) -> int:
        return self.X.shape[1]


@dataclass
class EvaluationContext:
    data: PLNData
    evaluation_count: int = 0


class Status(IntEnum):
    """NLopt termination codes."""

    SUCCESS = 1
    STOPVAL_REACHED = 2
    FTOL_REACHED = 3
    XTOL_REACHED = 4
    MAXEVAL_REACHED = 5
    MAXTIME_REACHED = 6
    FAILURE = -1
    INVALID_ARGS = -2
    OUT_OF_MEMORY = -3
    ROUNDOFF_LIMITED = -4
    FORCED_STOP = -5

    @property
    def message(self) -> str:
        return _STATUS_MESSAGES[self]

    @property
    def converged(self) -> bool:
        return self in (Status.SUCCESS, Status.STOPVAL_REACHED, Status.FTOL_REACHED, Status.XTOL_REACHED)

    @property
    def budget_exhausted(self) -> bool:
        return self in (Status.MAXEVAL_REACHED, Status.MAXTIME_REACHED)

    @property
    def failed(self) -> bool:
        return self.value < 0


_STATUS_MESSAGES: Dict[Status, str] = {
    Status.SUCCESS: "Generic success return value.",
    Status.STOPVAL_REACHED: "Optimization stopped because stopval was reached.",
    Status.FTOL_REACHED: "Optimization stopped because ftol_rel or ftol_abs was reached.",
    Status.XTOL_REACHED: "Optimization stopped because xtol_rel or xtol_abs was reached.",
    Status.MAXEVAL_REACHED: "Optimization stopped because maxeval was reached.",
    Status.MAXTIME_REACHED: "Optimization stopped because maxtime was reached.",
    Status.FAILURE: "Generic failure code.",
    Status.INVALID_ARGS: "Invalid arguments (e.g. lower bounds are bigger than upper bounds, an unknown algorithm was specified, etc.).",
    Status.OUT_OF_MEMORY: "Ran out of memory.",
    Status.ROUNDOFF_LIMITED: "Halted because roundoff errors limited progress.",
    Status.FORCED_STOP: "Halted because of a forced termination.",
}


@dataclass
class OptimResult:
    status: Status
    objective: float
    solution: np.ndarray
    iterations: int
    history: List[float] = field(default_factory=list)

    @property
    def message(self) -> str:
        return self.status.message

    def to_dict(self) -> Dict:
        return {
            "status": int(self.status),
            "objective": float(self.objective),
            "solution": [float(v) for v in self.solution],
            "iterations": int(self.iterations),
        }


@dataclass
class PLNParams:
    Theta: np.ndarray
    M: np.ndarray
    S: np.ndarray


@dataclass
class PLNFit:
    """Unpacked estimates of a fitted PLN model."""

    params: PLNParams
    Sigma: np.ndarray
    Omega: np.ndarray
    loglik: float
    bic: float
    result: OptimResult

    @property
    def Theta(self) -> np.ndarray:
        return self.params.Theta

    @property
    def M(self) -> np.ndarray:
        return self.params.M

    @property
    def S(self) -> np.ndarray:
        return self.params.S
