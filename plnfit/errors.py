from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid optimisation control values."""


class InvalidAlgorithm(ConfigurationError):
    """Algorithm name not in the supported set."""

    def __init__(self, name: str, available):
        self.name = name
        self.available = list(available)
        super().__init__(f"Unknown algorithm '{name}'. Available: {self.available}")


class NumericalError(ArithmeticError):
    """Objective could not be evaluated (e.g. non positive-definite matrix)."""
