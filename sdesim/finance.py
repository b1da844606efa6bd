"""
Monte Carlo payoff estimation on simulated paths.

European, Asian, barrier and lookback payoffs evaluated on a
``SimulationResult`` and discounted at a flat rate. Closed-form pricers and
Greeks live outside this package.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union

import numpy as np

from .simulator import SimulationResult

BARRIER_TYPES = ("up-and-out", "down-and-out", "up-and-in", "down-and-in")


@dataclass
class OptionPrice:
    """Option pricing result with confidence interval."""

    price: float
    std_error: float
    ci_lower: float
    ci_upper: float
    n_paths: int


class MonteCarloPricer:
    """
    Monte Carlo option pricer over a simulated ensemble.

    Parameters
    ----------
    result : SimulationResult
        Simulated paths of the underlying.
    r : float
        Flat continuously compounded discount rate.
    factor : int or str
        Factor holding the asset price (``"S"`` for Heston).
    """

    def __init__(self, result: SimulationResult, r: float, factor: Union[int, str] = 0):
        self.result = result
        self.r = r
        self.paths = result.factor(factor)
        self.T = result.grid.duration

    def price_payoff(self, payoff_fn: Callable[[np.ndarray], np.ndarray]) -> OptionPrice:
        """Discounted mean of ``payoff_fn(paths)`` (one payoff per path)."""
        discounted = np.exp(-self.r * self.T) * np.asarray(payoff_fn(self.paths), dtype=float)

        # antithetic pairs are not independent; average each pair first
        if self.result.antithetic:
            half = len(discounted) // 2
            samples = 0.5 * (discounted[:half] + discounted[half:])
        else:
            samples = discounted

        price = float(np.mean(samples))
        se = float(np.std(samples, ddof=1) / np.sqrt(len(samples))) if len(samples) > 1 else float("nan")

        return OptionPrice(
            price=price,
            std_error=se,
            ci_lower=price - 1.96 * se,
            ci_upper=price + 1.96 * se,
            n_paths=len(discounted),
        )

    def european_call(self, K: float) -> OptionPrice:
        return self.price_payoff(lambda p: np.maximum(p[:, -1] - K, 0.0))

    def european_put(self, K: float) -> OptionPrice:
        return self.price_payoff(lambda p: np.maximum(K - p[:, -1], 0.0))

    def asian_call(self, K: float) -> OptionPrice:
        """Arithmetic Asian call: payoff on the average price."""
        return self.price_payoff(lambda p: np.maximum(np.mean(p, axis=1) - K, 0.0))

    def barrier_call(self, K: float, barrier: float, barrier_type: str = "up-and-out") -> OptionPrice:
        """Barrier option pricing, monitored at grid points."""
        if barrier_type not in BARRIER_TYPES:
            raise ValueError(f"Unknown barrier type: {barrier_type}")

        def payoff(p):
            vanilla = np.maximum(p[:, -1] - K, 0.0)
            crossed = np.any(p > barrier, axis=1) if barrier_type.startswith("up") else np.any(p < barrier, axis=1)
            if barrier_type.endswith("out"):
                return np.where(crossed, 0.0, vanilla)
            return np.where(crossed, vanilla, 0.0)

        return self.price_payoff(payoff)

    def lookback_call(self) -> OptionPrice:
        """Floating-strike lookback call: payoff = S_T - min(S)."""
        return self.price_payoff(lambda p: p[:, -1] - np.min(p, axis=1))
