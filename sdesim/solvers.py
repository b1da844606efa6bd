"""
Discretization schemes.

A scheme maps the current state and driving increment ΔW to the state
increment for one step; ``PathSimulator`` owns the loop over the grid.

Implements Euler-Maruyama (strong order 0.5, the default) and Milstein
(strong order 1.0, one-factor Markovian processes only).

Reference: Kloeden & Platen, "Numerical Solution of SDEs" (Springer, 1992)
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np

from .exceptions import ConfigurationError
from .processes import SDEProcess


class Scheme(ABC):
    """Base class for one-step discretization schemes."""

    name: str = ""
    strong_order: float = 0.0

    def check(self, process: SDEProcess) -> None:
        """Raise ``ConfigurationError`` if the scheme cannot drive ``process``."""

    @abstractmethod
    def increment(self, process: SDEProcess, x: np.ndarray, t: float, dt: float, dW: np.ndarray) -> np.ndarray:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class EulerMaruyama(Scheme):
    """
    Euler-Maruyama scheme, the simplest SDE solver.

    X_{n+1} = X_n + μ(X_n, t_n) Δt + σ(X_n, t_n) ΔW_n

    Strong order 0.5, weak order 1.0.
    """

    name = "euler"
    strong_order = 0.5

    def increment(self, process: SDEProcess, x: np.ndarray, t: float, dt: float, dW: np.ndarray) -> np.ndarray:
        return process.drift(x, t) * dt + process.diffusion(x, t) * dW


class Milstein(Scheme):
    """
    Milstein scheme: uses the diffusion derivative for strong order 1.0.

    X_{n+1} = X_n + μ Δt + σ ΔW + ½ σ σ' (ΔW² - Δt)

    Strong order 1.0, weak order 1.0.
    """

    name = "milstein"
    strong_order = 1.0

    def check(self, process: SDEProcess) -> None:
        if process.dim != 1:
            raise ConfigurationError(
                f"Milstein supports one-factor processes only, {type(process).__name__} has {process.dim}"
            )
        if process.is_fractional:
            raise ConfigurationError("Milstein is not defined for fractional noise")

    def increment(self, process: SDEProcess, x: np.ndarray, t: float, dt: float, dW: np.ndarray) -> np.ndarray:
        mu = process.drift(x, t)
        sigma = process.diffusion(x, t)
        sigma_prime = process.diffusion_derivative(x, t)
        # Milstein correction: ½ σ σ' (ΔW² - Δt)
        return mu * dt + sigma * dW + 0.5 * sigma * sigma_prime * (dW**2 - dt)


SCHEMES = {
    "euler": EulerMaruyama,
    "milstein": Milstein,
}


def get_scheme(name: str) -> Scheme:
    try:
        return SCHEMES[name]()
    except KeyError:
        raise ConfigurationError(f"unknown scheme {name!r}, expected one of {sorted(SCHEMES)}") from None
