from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Dict, Mapping, Optional

from .errors import ConfigurationError
from .types import Backend, Order


@dataclass
class OptimConfig:
    """Stopping criteria, bounds and algorithm for one optimisation run."""

    ftol_rel: float
    ftol_abs: float
    xtol_rel: float
    xtol_abs: float
    maxeval: int
    lbvar: float
    algorithm: str
    backend: Backend = "numpy"
    order: Order = "C"

    def __post_init__(self):
        for name in ("ftol_rel", "ftol_abs", "xtol_rel", "xtol_abs"):
            value = float(getattr(self, name))
            if not value >= 0.0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}.")
            setattr(self, name, value)
        self.maxeval = int(self.maxeval)
        if self.maxeval <= 0:
            raise ConfigurationError(f"maxeval must be positive, got {self.maxeval}.")
        self.lbvar = float(self.lbvar)
        if not self.lbvar > 0.0:
            raise ConfigurationError(f"lbvar must be strictly positive, got {self.lbvar}.")
        self.backend = str(self.backend).lower()
        if self.backend not in ("numpy", "jax"):
            raise ConfigurationError(f"Unknown backend '{self.backend}'. Available: ['numpy', 'jax']")
        self.order = str(self.order).upper()
        if self.order not in ("C", "F"):
            raise ConfigurationError(f"order must be 'C' or 'F', got '{self.order}'.")

    @classmethod
    def from_dict(cls, control: Mapping, defaults: Optional[Mapping] = None) -> "OptimConfig":
        """Build a config from a mapping, filling missing keys from ``defaults``."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(control) - known)
        if unknown:
            raise ConfigurationError(f"Unknown control keys: {unknown}")
        merged = dict(defaults or {})
        merged.update(control)
        missing = sorted(f.name for f in fields(cls) if f.name not in merged and f.name not in ("backend", "order"))
        if missing:
            raise ConfigurationError(f"Missing control keys: {missing}")
        return cls(**{k: v for k, v in merged.items() if k in known})

    def to_dict(self) -> Dict:
        return asdict(self)


def default_control(n: int, p: int) -> Dict:
    """Control values of the original R package (PLN_param)."""
    return {
        "ftol_rel": 1e-6 if n < 1.5 * p else 1e-8,
        "ftol_abs": 0.0,
        "xtol_rel": 1e-4,
        "xtol_abs": 1e-4,
        "maxeval": 10000,
        "lbvar": 1e-4,
        "algorithm": "CCSAQ",
    }
