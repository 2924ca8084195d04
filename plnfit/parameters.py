from __future__ import annotations

import numpy as np
from dataclasses import dataclass
from typing import Tuple

from .types import Order, PLNData, PLNParams


@dataclass(frozen=True)
class ParameterLayout:
    """Flat vector <-> (Theta, M, S) mapping for an n x p model with d covariates.

    The vector holds Theta (p x d), then M (n x p), then S (n x p). ``order``
    is the element order used inside every block: 'C' row-major, 'F'
    column-major (R/Armadillo vectors).
    """

    n: int
    p: int
    d: int
    order: Order = "C"

    def __post_init__(self):
        if min(self.n, self.p, self.d) <= 0:
            raise ValueError(f"Dimensions must be positive, got n={self.n}, p={self.p}, d={self.d}.")
        if self.order not in ("C", "F"):
            raise ValueError(f"order must be 'C' or 'F', got '{self.order}'.")

    @classmethod
    def from_data(cls, data: PLNData, order: Order = "C") -> "ParameterLayout":
        return cls(data.n, data.p, data.d, order)

    @property
    def n_param(self) -> int:
        return (2 * self.n + self.d) * self.p

    @property
    def theta_shape(self) -> Tuple[int, int]:
        return (self.p, self.d)

    @property
    def block_shape(self) -> Tuple[int, int]:
        return (self.n, self.p)

    @property
    def theta_slice(self) -> slice:
        return slice(0, self.p * self.d)

    @property
    def m_slice(self) -> slice:
        start = self.p * self.d
        return slice(start, start + self.n * self.p)

    @property
    def s_slice(self) -> slice:
        return slice(self.p * self.d + self.n * self.p, self.n_param)

    def _check_vector(self, x) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        if x.ndim != 1 or x.shape[0] != self.n_param:
            raise ValueError(f"Expected a flat vector of length {self.n_param}, got shape {x.shape}.")
        return x

    def unpack(self, x) -> PLNParams:
        x = self._check_vector(x)
        Theta = x[self.theta_slice].reshape(self.theta_shape, order=self.order)
        M = x[self.m_slice].reshape(self.block_shape, order=self.order)
        S = x[self.s_slice].reshape(self.block_shape, order=self.order)
        return PLNParams(Theta, M, S)

    def pack(self, Theta, M, S) -> np.ndarray:
        blocks = []
        for name, block, shape in (("Theta", Theta, self.theta_shape), ("M", M, self.block_shape), ("S", S, self.block_shape)):
            block = np.asarray(block, dtype=float)
            if block.shape != shape:
                raise ValueError(f"{name} must have shape {shape}, got {block.shape}.")
            blocks.append(block.ravel(order=self.order))
        return np.concatenate(blocks)

    def lower_bounds(self, lbvar: float) -> np.ndarray:
        lb = np.full(self.n_param, -np.inf)
        lb[self.s_slice] = lbvar
        return lb

    def xtol_abs(self, xtol: float) -> np.ndarray:
        tol = np.zeros(self.n_param)
        tol[self.s_slice] = xtol
        return tol
