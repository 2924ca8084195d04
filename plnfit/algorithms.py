from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

import nlopt

from .errors import InvalidAlgorithm


@dataclass(frozen=True)
class Algorithm:
    name: str
    code: int
    family: str


# Gradient-based NLopt algorithms that accept bound constraints.
ALGORITHMS: Dict[str, Algorithm] = {
    "LBFGS_NOCEDAL": Algorithm("LBFGS_NOCEDAL", nlopt.LD_LBFGS_NOCEDAL, "quasi-newton"),
    "LBFGS": Algorithm("LBFGS", nlopt.LD_LBFGS, "quasi-newton"),
    "VAR1": Algorithm("VAR1", nlopt.LD_VAR1, "variable-metric"),
    "VAR2": Algorithm("VAR2", nlopt.LD_VAR2, "variable-metric"),
    "TNEWTON": Algorithm("TNEWTON", nlopt.LD_TNEWTON, "truncated-newton"),
    "TNEWTON_RESTART": Algorithm("TNEWTON_RESTART", nlopt.LD_TNEWTON_RESTART, "truncated-newton"),
    "TNEWTON_PRECOND": Algorithm("TNEWTON_PRECOND", nlopt.LD_TNEWTON_PRECOND, "truncated-newton"),
    "TNEWTON_PRECOND_RESTART": Algorithm(
        "TNEWTON_PRECOND_RESTART", nlopt.LD_TNEWTON_PRECOND_RESTART, "truncated-newton"
    ),
    "MMA": Algorithm("MMA", nlopt.LD_MMA, "convex-approximation"),
    "CCSAQ": Algorithm("CCSAQ", nlopt.LD_CCSAQ, "convex-approximation"),
}


def available_algorithms() -> List[str]:
    return list(ALGORITHMS.keys())


def resolve_algorithm(name: str) -> Algorithm:
    """Return the algorithm registered under ``name`` (case-insensitive, optional ``LD_`` prefix)."""
    if not isinstance(name, str):
        raise InvalidAlgorithm(repr(name), ALGORITHMS)
    key = name.strip().upper()
    if key.startswith("LD_"):
        key = key[3:]
    if key not in ALGORITHMS:
        raise InvalidAlgorithm(name, ALGORITHMS)
    return ALGORITHMS[key]
