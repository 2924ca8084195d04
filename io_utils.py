"""Shared helpers for the CLI scripts (config, matrix loading and result export).

These keep ``run_fit.py`` small and make the file conventions testable on
their own.
"""

from __future__ import annotations

import os
from typing import Dict, List, Tuple

import numpy as np
import yaml

from plnfit.config import OptimConfig, default_control
from plnfit.types import PLNFit


def load_config(path: str) -> Dict:
    """Load a YAML configuration file."""
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _resolve_path(path: str, config_path: str) -> str:
    """Resolve a data path relative to the config file."""
    if os.path.isabs(path):
        return path
    config_dir = os.path.dirname(os.path.abspath(config_path))
    return os.path.join(config_dir, path)


def resolve_output_dir(cfg: Dict, config_path: str) -> str:
    """Resolve (and create) the output directory relative to the config file."""
    out_dir = _resolve_path(cfg.get("fit", {}).get("output_dir", "outputs"), config_path)
    os.makedirs(out_dir, exist_ok=True)
    return out_dir


def configure_jax_platform(cfg: Dict) -> None:
    """Set JAX env vars before the jax backend is imported."""
    fit_cfg = cfg.get("fit", {})
    platform = fit_cfg.get("jax_platform")
    if platform:
        os.environ.setdefault("JAX_PLATFORM_NAME", platform)
    if str((fit_cfg.get("control") or {}).get("backend", "numpy")).lower() == "jax":
        # jax defaults to float32
        os.environ.setdefault("JAX_ENABLE_X64", "1")


def _load_matrix(path: str, skip_header: bool) -> np.ndarray:
    arr = np.loadtxt(path, delimiter=",", skiprows=1 if skip_header else 0, ndmin=2)
    return arr.astype(float)


def load_matrices(cfg: Dict, config_path: str) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Load counts, covariates and offsets CSVs defined in the config.

    Covariates default to an intercept column and offsets to zeros.
    """
    data_cfg = cfg["data"]
    skip_header = bool(data_cfg.get("header", False))
    Y = _load_matrix(_resolve_path(data_cfg["counts"], config_path), skip_header)
    n, p = Y.shape
    if np.any(Y < 0):
        raise ValueError("Counts must be non-negative.")
    if data_cfg.get("covariates"):
        X = _load_matrix(_resolve_path(data_cfg["covariates"], config_path), skip_header)
        if X.shape[0] != n:
            raise ValueError(f"Expected {n} rows of covariates, got shape {X.shape}.")
    else:
        X = np.ones((n, 1))
    if data_cfg.get("offsets"):
        O = _load_matrix(_resolve_path(data_cfg["offsets"], config_path), skip_header)
        if O.shape != (n, p):
            raise ValueError(f"Expected offsets of shape {(n, p)}, got {O.shape}.")
        if data_cfg.get("log_offsets", False):
            O = np.log(O)
    else:
        O = np.zeros((n, p))
    return Y, X, O


def build_control(cfg: Dict, n: int, p: int) -> OptimConfig:
    """Merge ``fit.control`` overrides into the default control values."""
    control = cfg.get("fit", {}).get("control", {}) or {}
    return OptimConfig.from_dict(control, defaults=default_control(n, p))


def save_fit(fit: PLNFit, output_dir: str) -> List[str]:
    """Write the estimates as CSV files and a YAML summary; return the paths."""
    os.makedirs(output_dir, exist_ok=True)
    saved = []
    for name, arr in (("theta", fit.Theta), ("M", fit.M), ("S", fit.S), ("sigma", fit.Sigma)):
        path = os.path.join(output_dir, f"{name}.csv")
        np.savetxt(path, arr, delimiter=",")
        saved.append(path)
    summary = {
        "status": int(fit.result.status),
        "status_name": fit.result.status.name,
        "message": fit.result.message,
        "objective": float(fit.result.objective),
        "iterations": int(fit.result.iterations),
        "loglik": float(fit.loglik),
        "bic": float(fit.bic),
    }
    path = os.path.join(output_dir, "summary.yaml")
    with open(path, "w") as f:
        yaml.safe_dump(summary, f, sort_keys=False)
    saved.append(path)
    return saved
