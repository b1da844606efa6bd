"""
Stochastic process definitions.

Each process defines drift μ(X,t) and diffusion σ(X,t) for the Itô SDE:
    dX_t = μ(X_t, t) dt + σ(X_t, t) dW_t

Coefficients are ``TimeDependent`` values (plain numbers and callables are
accepted and wrapped). State arrays are vectorized across paths: shape
``(m,)`` for one-factor models and ``(m, dim)`` for multi-factor models.

Processes are immutable descriptions; ``PathSimulator`` owns the grid, the
random draws and the stepping loop.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

import numpy as np

from .exceptions import ConfigurationError
from .fractional import fractional_increments
from .grid import TimeGrid
from .parameters import ParameterLike, TimeDependent, as_parameter

if TYPE_CHECKING:
    from .solvers import Scheme

JumpDraws = Tuple[np.ndarray, np.ndarray]


def _check_range(
    grid: TimeGrid,
    name: str,
    param: TimeDependent,
    lower: Optional[float] = None,
    upper: Optional[float] = None,
    strict: bool = False,
) -> None:
    """Raise ``ConfigurationError`` unless ``param`` stays within bounds on the grid."""
    values = param.on_grid(grid)
    bad = np.zeros(values.shape, dtype=bool)
    if lower is not None:
        bad |= values <= lower if strict else values < lower
    if upper is not None:
        bad |= values > upper
    if np.any(bad):
        i = int(np.argmax(bad))
        bounds = f"{'(' if strict else '['}{lower if lower is not None else '-inf'}, " \
                 f"{upper if upper is not None else 'inf'}]"
        raise ConfigurationError(
            f"{name} must lie in {bounds}, got {values[i]:g} at t={grid.times[i]:g}"
        )


def _feller_advisory(grid: TimeGrid, speed: TimeDependent, mean: TimeDependent,
                     vol: TimeDependent, label: str) -> List[str]:
    lhs = 2.0 * speed.on_grid(grid) * mean.on_grid(grid)
    rhs = vol.on_grid(grid) ** 2
    violated = lhs < rhs
    if not np.any(violated):
        return []
    i = int(np.argmax(violated))
    return [
        f"{label}: Feller condition 2*speed*mean >= vol^2 violated at t={grid.times[i]:g} "
        f"({lhs[i]:.4g} < {rhs[i]:.4g}); the state can reach zero and is floored"
    ]


class SDEProcess(ABC):
    """Base class for stochastic processes."""

    #: names of the state factors, one per dimension
    factor_names: Tuple[str, ...] = ("x",)
    #: standard-normal draws consumed per path per step
    n_shocks: int = 1
    #: names of the ``TimeDependent`` coefficients
    coefficients: Tuple[str, ...] = ()

    has_jumps: bool = False
    is_fractional: bool = False

    @property
    def dim(self) -> int:
        """Dimensionality of the state vector."""
        return len(self.factor_names)

    @property
    @abstractmethod
    def x0(self) -> np.ndarray:
        """Initial condition, shape ``(dim,)``."""
        ...

    @property
    def initial_value(self):
        """Initial state: a float for one-factor models, a tuple otherwise."""
        x0 = self.x0
        return float(x0[0]) if self.dim == 1 else tuple(float(v) for v in x0)

    @abstractmethod
    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        """Drift coefficient μ(x, t)."""
        ...

    @abstractmethod
    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        """Diffusion coefficient σ(x, t)."""
        ...

    def diffusion_derivative(self, x: np.ndarray, t: float) -> np.ndarray:
        """∂σ/∂x, required by the Milstein scheme. Defaults to finite differences."""
        eps = 1e-6 * (1.0 + np.abs(x))
        return (self.diffusion(x + eps, t) - self.diffusion(x - eps, t)) / (2.0 * eps)

    def parameters(self) -> Dict[str, TimeDependent]:
        return {name: getattr(self, name) for name in self.coefficients}

    def validate(self, grid: TimeGrid) -> List[str]:
        """
        Check the parameters against the grid.

        Raises ``ConfigurationError`` for invalid values and returns a list of
        advisory messages for conditions that are tolerated.
        """
        if not np.all(np.isfinite(self.x0)):
            raise ConfigurationError(f"{type(self).__name__}: initial value must be finite")
        for name, param in self.parameters().items():
            if not np.all(np.isfinite(param.on_grid(grid))):
                raise ConfigurationError(f"{type(self).__name__}: {name} is not finite on the grid")
        return self._validate(grid)

    def _validate(self, grid: TimeGrid) -> List[str]:
        return []

    def brownian_increments(self, z: np.ndarray, grid: TimeGrid, method: str = "cholesky") -> np.ndarray:
        """
        Map standard normals ``z`` of shape ``(m, num_steps, n_shocks)`` to the
        driving increments: ``(m, num_steps)`` or ``(m, num_steps, dim)``.
        """
        if self.dim == 1:
            return z[..., 0] * grid.sqrt_dt
        return z[..., : self.dim] * grid.sqrt_dt

    def step(
        self,
        x: np.ndarray,
        t: float,
        dt: float,
        dW: np.ndarray,
        scheme: Scheme,
        jumps: Optional[JumpDraws] = None,
    ) -> Tuple[np.ndarray, int]:
        """Advance one step; returns the new state and the number of floored entries."""
        return self.floor(x + scheme.increment(self, x, t, dt, dW))

    def floor(self, x: np.ndarray) -> Tuple[np.ndarray, int]:
        return x, 0


class JumpProcess(SDEProcess):
    """
    Base class for processes with a compound-Poisson jump component.

    The simulator draws the per-step jump counts from ``jump_intensities`` and
    one extra standard normal per path per step (the last shock), and passes
    both to ``step`` as ``jumps = (counts, z)``.
    """

    has_jumps = True

    @abstractmethod
    def jump_intensities(self, grid: TimeGrid) -> np.ndarray:
        """Expected jump count for each step, shape ``(num_steps,)``."""
        ...

    @abstractmethod
    def jump_increment(self, x: np.ndarray, t: float, dt: float,
                       counts: np.ndarray, z: np.ndarray) -> np.ndarray:
        """State change caused by ``counts`` jumps over one step."""
        ...

    def step(
        self,
        x: np.ndarray,
        t: float,
        dt: float,
        dW: np.ndarray,
        scheme: Scheme,
        jumps: Optional[JumpDraws] = None,
    ) -> Tuple[np.ndarray, int]:
        x_next = x + scheme.increment(self, x, t, dt, dW)
        if jumps is not None:
            x_next = x_next + self.jump_increment(x, t, dt, *jumps)
        return self.floor(x_next)


class _FractionalMixin:
    """Drives a process with fractional Gaussian noise of Hurst exponent ``hurst``."""

    is_fractional = True
    hurst: float

    def _init_hurst(self, hurst: float) -> None:
        hurst = float(hurst)
        if not 0.0 < hurst < 1.0:
            raise ConfigurationError(f"Hurst exponent must be in (0, 1), got {hurst}")
        self.hurst = hurst

    def brownian_increments(self, z: np.ndarray, grid: TimeGrid, method: str = "cholesky") -> np.ndarray:
        return fractional_increments(z[..., 0], self.hurst, grid.dt, method)


# ---------------------------------------------------------------------------- Brownian family


class ArithmeticBrownianMotion(SDEProcess):
    """
    Arithmetic Brownian Motion:  dX = μ(t) dt + σ(t) dW
    """

    coefficients = ("mu", "sigma")

    def __init__(self, mu: ParameterLike = 0.0, sigma: ParameterLike = 1.0, x0: float = 0.0):
        self.mu = as_parameter(mu, "mu")
        self.sigma = as_parameter(sigma, "sigma")
        self._x0 = float(x0)

    @property
    def x0(self) -> np.ndarray:
        return np.array([self._x0])

    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.full_like(x, self.mu(t))

    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.full_like(x, self.sigma(t))

    def diffusion_derivative(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.zeros_like(x)

    def _validate(self, grid: TimeGrid) -> List[str]:
        _check_range(grid, "sigma", self.sigma, lower=0.0)
        return []


class GeometricBrownianMotion(SDEProcess):
    """
    Geometric Brownian Motion:  dS = μ(t) S dt + σ(t) S dW

    Analytical solution (constant coefficients):
        S_t = S_0 exp((μ - σ²/2)t + σ W_t)
    """

    factor_names = ("S",)
    coefficients = ("mu", "sigma")

    def __init__(self, mu: ParameterLike = 0.05, sigma: ParameterLike = 0.2, S0: float = 100.0):
        self.mu = as_parameter(mu, "mu")
        self.sigma = as_parameter(sigma, "sigma")
        self._S0 = float(S0)

    @property
    def x0(self) -> np.ndarray:
        return np.array([self._S0])

    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        return self.mu(t) * x

    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        return self.sigma(t) * x

    def diffusion_derivative(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.full_like(x, self.sigma(t))

    def exact_log_mean(self, T: float) -> float:
        """E[log(S_T / S_0)] = (μ - σ²/2) T for constant coefficients."""
        return (self.mu(0.0) - 0.5 * self.sigma(0.0) ** 2) * T

    def _validate(self, grid: TimeGrid) -> List[str]:
        _check_range(grid, "sigma", self.sigma, lower=0.0)
        return []


class BrownianBridge(SDEProcess):
    """
    Brownian bridge from ``a`` at the grid start to ``b`` at time ``T``:

        dX = (b - X) / (T - t) dt + σ(t) dW

    Steps use the exact conditional transition

        X_{i+1} = X_i + (b - X_i) Δt/(T - t_i) + σ √(Δt (T - t_{i+1})/(T - t_i)) Z

    so a grid ending at ``T`` pins the final point exactly at ``b``.
    """

    coefficients = ("sigma",)

    def __init__(self, a: float = 0.0, b: float = 0.0, sigma: ParameterLike = 1.0, T: float = 1.0):
        self.a = float(a)
        self.b = float(b)
        self.sigma = as_parameter(sigma, "sigma")
        self.T = float(T)

    @property
    def x0(self) -> np.ndarray:
        return np.array([self.a])

    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        return (self.b - x) / (self.T - t)

    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.full_like(x, self.sigma(t))

    def diffusion_derivative(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.zeros_like(x)

    def step(
        self,
        x: np.ndarray,
        t: float,
        dt: float,
        dW: np.ndarray,
        scheme: Scheme,
        jumps: Optional[JumpDraws] = None,
    ) -> Tuple[np.ndarray, int]:
        remaining = self.T - t
        if remaining <= dt * (1.0 + 1e-9):
            # final step onto the pinning time
            return np.full_like(x, self.b), 0
        shrink = np.sqrt((remaining - dt) / remaining)
        return x + (self.b - x) * (dt / remaining) + self.sigma(t) * shrink * dW, 0

    def _validate(self, grid: TimeGrid) -> List[str]:
        _check_range(grid, "sigma", self.sigma, lower=0.0)
        if grid.horizon > self.T * (1.0 + 1e-12) + 1e-12:
            raise ConfigurationError(
                f"BrownianBridge: grid horizon {grid.horizon} is past the pinning time T={self.T}"
            )
        if grid.start >= self.T:
            raise ConfigurationError("BrownianBridge: grid must start before the pinning time")
        return []


class FractionalBrownianMotion(_FractionalMixin, SDEProcess):
    """
    Fractional Brownian Motion:  X_t = x0 + σ B^H_t

    Var(X_t - x0) = σ² t^{2H}. H = 0.5 recovers standard Brownian motion;
    H > 0.5 gives positively correlated (persistent) increments.
    """

    coefficients = ("sigma",)

    def __init__(self, hurst: float = 0.7, sigma: ParameterLike = 1.0, x0: float = 0.0):
        self._init_hurst(hurst)
        self.sigma = as_parameter(sigma, "sigma")
        self._x0 = float(x0)

    @property
    def x0(self) -> np.ndarray:
        return np.array([self._x0])

    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.zeros_like(x)

    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.full_like(x, self.sigma(t))

    def _validate(self, grid: TimeGrid) -> List[str]:
        _check_range(grid, "sigma", self.sigma, lower=0.0)
        return []


# ---------------------------------------------------------------------------- mean reversion


class OrnsteinUhlenbeck(SDEProcess):
    """
    Ornstein-Uhlenbeck (mean-reverting):  dX = θ(t)(μ(t) - X) dt + σ(t) dW

    With constant θ, μ, σ this is the Vasicek short-rate model.
    """

    coefficients = ("theta", "mu", "sigma")

    def __init__(self, theta: ParameterLike = 1.0, mu: ParameterLike = 0.0,
                 sigma: ParameterLike = 0.3, X0: float = 0.0):
        self.theta = as_parameter(theta, "theta")
        self.mu = as_parameter(mu, "mu")
        self.sigma = as_parameter(sigma, "sigma")
        self._X0 = float(X0)

    @property
    def x0(self) -> np.ndarray:
        return np.array([self._X0])

    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        return self.theta(t) * (self.mu(t) - x)

    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.full_like(x, self.sigma(t))

    def diffusion_derivative(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.zeros_like(x)

    def exact_mean(self, t: float) -> float:
        theta, mu = self.theta(0.0), self.mu(0.0)
        return mu + (self._X0 - mu) * np.exp(-theta * t)

    def exact_variance(self, t: float) -> float:
        theta, sigma = self.theta(0.0), self.sigma(0.0)
        return (sigma**2 / (2 * theta)) * (1 - np.exp(-2 * theta * t))

    def _validate(self, grid: TimeGrid) -> List[str]:
        _check_range(grid, "theta", self.theta, lower=0.0)
        _check_range(grid, "sigma", self.sigma, lower=0.0)
        return []


class FractionalOrnsteinUhlenbeck(_FractionalMixin, OrnsteinUhlenbeck):
    """
    Fractional Ornstein-Uhlenbeck:  dX = θ(μ - X) dt + σ dB^H
    """

    def __init__(self, theta: ParameterLike = 1.0, mu: ParameterLike = 0.0,
                 sigma: ParameterLike = 0.3, hurst: float = 0.7, X0: float = 0.0):
        super().__init__(theta=theta, mu=mu, sigma=sigma, X0=X0)
        self._init_hurst(hurst)


class CoxIngersollRoss(SDEProcess):
    """
    Cox-Ingersoll-Ross:  dX = κ(θ - X) dt + σ √X dW

    Full truncation: X⁺ = max(X, 0) is used inside drift and diffusion and the
    state is floored at zero after each step. Flooring biases the simulated
    mean upward when the Feller condition 2κθ ≥ σ² fails.
    """

    coefficients = ("kappa", "theta", "sigma")

    def __init__(self, kappa: ParameterLike = 2.0, theta: ParameterLike = 0.04,
                 sigma: ParameterLike = 0.3, X0: float = 0.04):
        self.kappa = as_parameter(kappa, "kappa")
        self.theta = as_parameter(theta, "theta")
        self.sigma = as_parameter(sigma, "sigma")
        self._X0 = float(X0)

    @property
    def feller_satisfied(self) -> bool:
        """Feller condition at t=0."""
        return 2 * self.kappa(0.0) * self.theta(0.0) >= self.sigma(0.0) ** 2

    @property
    def x0(self) -> np.ndarray:
        return np.array([self._X0])

    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        return self.kappa(t) * (self.theta(t) - np.maximum(x, 0.0))

    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        return self.sigma(t) * np.sqrt(np.maximum(x, 0.0))

    def diffusion_derivative(self, x: np.ndarray, t: float) -> np.ndarray:
        safe_x = np.maximum(x, 1e-12)
        return 0.5 * self.sigma(t) / np.sqrt(safe_x)

    def floor(self, x: np.ndarray) -> Tuple[np.ndarray, int]:
        negative = x < 0.0
        return np.where(negative, 0.0, x), int(np.count_nonzero(negative))

    def _validate(self, grid: TimeGrid) -> List[str]:
        if self._X0 < 0:
            raise ConfigurationError(f"{type(self).__name__}: X0 must be >= 0, got {self._X0}")
        _check_range(grid, "kappa", self.kappa, lower=0.0)
        _check_range(grid, "theta", self.theta, lower=0.0)
        _check_range(grid, "sigma", self.sigma, lower=0.0)
        return _feller_advisory(grid, self.kappa, self.theta, self.sigma, type(self).__name__)


class FractionalCoxIngersollRoss(_FractionalMixin, CoxIngersollRoss):
    """
    Fractional Cox-Ingersoll-Ross:  dX = κ(θ - X) dt + σ √X dB^H

    Same full-truncation floor as ``CoxIngersollRoss``.
    """

    def __init__(self, kappa: ParameterLike = 2.0, theta: ParameterLike = 0.04,
                 sigma: ParameterLike = 0.3, hurst: float = 0.7, X0: float = 0.04):
        super().__init__(kappa=kappa, theta=theta, sigma=sigma, X0=X0)
        self._init_hurst(hurst)


# ---------------------------------------------------------------------------- short-rate models


class HullWhite(SDEProcess):
    """
    Hull-White (extended Vasicek) short rate:  dr = (θ(t) - α(t) r) dt + σ(t) dW
    """

    factor_names = ("r",)
    coefficients = ("alpha", "theta", "sigma")

    def __init__(self, alpha: ParameterLike = 0.1, theta: ParameterLike = 0.005,
                 sigma: ParameterLike = 0.01, r0: float = 0.03):
        self.alpha = as_parameter(alpha, "alpha")
        self.theta = as_parameter(theta, "theta")
        self.sigma = as_parameter(sigma, "sigma")
        self._r0 = float(r0)

    @property
    def x0(self) -> np.ndarray:
        return np.array([self._r0])

    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        return self.theta(t) - self.alpha(t) * x

    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.full_like(x, self.sigma(t))

    def diffusion_derivative(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.zeros_like(x)

    def _validate(self, grid: TimeGrid) -> List[str]:
        _check_range(grid, "alpha", self.alpha, lower=0.0)
        _check_range(grid, "sigma", self.sigma, lower=0.0)
        return []


class HoLee(SDEProcess):
    """
    Ho-Lee short rate:  dr = θ(t) dt + σ(t) dW

    The zero mean-reversion member of the Hull-White family.
    """

    factor_names = ("r",)
    coefficients = ("theta", "sigma")

    def __init__(self, theta: ParameterLike = 0.0, sigma: ParameterLike = 0.01, r0: float = 0.03):
        self.theta = as_parameter(theta, "theta")
        self.sigma = as_parameter(sigma, "sigma")
        self._r0 = float(r0)

    @property
    def x0(self) -> np.ndarray:
        return np.array([self._r0])

    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.full_like(x, self.theta(t))

    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.full_like(x, self.sigma(t))

    def diffusion_derivative(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.zeros_like(x)

    def _validate(self, grid: TimeGrid) -> List[str]:
        _check_range(grid, "sigma", self.sigma, lower=0.0)
        return []


class BlackDermanToy(SDEProcess):
    """
    Black-Derman-Toy short rate, simulated in log-rate y = ln r:

        dy = (θ(t) - a(t) y) dt + σ(t) dW

    The reversion speed ``a`` defaults to the classic BDT choice
    a(t) = -σ'(t)/σ(t), taken over each step as the log-volatility slope

        a_i = -(ln σ(t_{i+1}) - ln σ(t_i)) / Δt

    so step-curve volatilities give a finite speed. ``drift``/``diffusion``
    describe the log-rate; the simulated state (and every path value) is the
    rate r = exp(y) > 0. The log-rate step is Euler (σ does not depend on
    y, so Milstein coincides) and needs a_i Δt < 2 to stay stable.
    """

    factor_names = ("r",)
    coefficients = ("theta", "sigma")

    def __init__(self, theta: ParameterLike = 0.0, sigma: ParameterLike = 0.2,
                 r0: float = 0.03, speed: Optional[ParameterLike] = None):
        self.theta = as_parameter(theta, "theta")
        self.sigma = as_parameter(sigma, "sigma")
        self.speed = None if speed is None else as_parameter(speed, "speed")
        self._r0 = float(r0)

    @property
    def x0(self) -> np.ndarray:
        return np.array([self._r0])

    def reversion_speed(self, t: float, dt: float = 1e-5) -> float:
        """Reversion speed over ``[t, t + dt]``."""
        if self.speed is not None:
            return self.speed(t)
        return -(np.log(self.sigma(t + dt)) - np.log(self.sigma(t))) / dt

    def reversion_speeds(self, grid: TimeGrid) -> np.ndarray:
        """Reversion speed of each grid step, shape ``(num_steps,)``."""
        if self.speed is not None:
            return self.speed.on_grid(grid)[:-1]
        with np.errstate(divide="ignore", invalid="ignore"):
            return -np.diff(np.log(self.sigma.on_grid(grid))) / grid.dt

    def drift(self, y: np.ndarray, t: float) -> np.ndarray:
        return self.theta(t) - self.reversion_speed(t) * y

    def diffusion(self, y: np.ndarray, t: float) -> np.ndarray:
        return np.full_like(y, self.sigma(t))

    def diffusion_derivative(self, y: np.ndarray, t: float) -> np.ndarray:
        return np.zeros_like(y)

    def step(
        self,
        x: np.ndarray,
        t: float,
        dt: float,
        dW: np.ndarray,
        scheme: Scheme,
        jumps: Optional[JumpDraws] = None,
    ) -> Tuple[np.ndarray, int]:
        y = np.log(x)
        speed = self.reversion_speed(t, dt)
        return np.exp(y + (self.theta(t) - speed * y) * dt + self.sigma(t) * dW), 0

    def parameters(self) -> Dict[str, TimeDependent]:
        params = super().parameters()
        if self.speed is not None:
            params["speed"] = self.speed
        return params

    def _validate(self, grid: TimeGrid) -> List[str]:
        if self._r0 <= 0:
            raise ConfigurationError(f"BlackDermanToy: r0 must be > 0, got {self._r0}")
        if self.speed is None:
            _check_range(grid, "sigma", self.sigma, lower=0.0, strict=True)
        else:
            _check_range(grid, "sigma", self.sigma, lower=0.0)
        speeds = self.reversion_speeds(grid)
        if not np.all(np.isfinite(speeds)):
            raise ConfigurationError("BlackDermanToy: reversion speed is not finite on the grid")
        if np.any(speeds < 0):
            i = int(np.argmax(speeds < 0))
            raise ConfigurationError(
                f"BlackDermanToy: reversion speed must be >= 0, got {speeds[i]:g} at t={grid.times[i]:g}"
            )
        unstable = speeds * grid.dt >= 2.0
        if np.any(unstable):
            i = int(np.argmax(unstable))
            raise ConfigurationError(
                f"BlackDermanToy: reversion speed {speeds[i]:g} at t={grid.times[i]:g} needs dt < "
                f"{2.0 / speeds[i]:.4g} for a stable log-rate step, got dt={grid.dt:g}"
            )
        return []


# ---------------------------------------------------------------------------- stochastic volatility


class HestonProcess(SDEProcess):
    """
    Heston stochastic volatility model (2D correlated SDE):

        dS = μ S dt + √v S dW_1
        dv = κ(θ - v) dt + ξ √v dW_2
        dW_1 dW_2 = ρ dt

    State vector: [S, v]. The second shock is ρ Z1 + √(1-ρ²) Z2. Variance uses
    full truncation: v⁺ inside the coefficients, v floored at zero after
    each step.
    """

    factor_names = ("S", "v")
    n_shocks = 2
    coefficients = ("mu", "kappa", "theta", "xi", "rho")

    def __init__(
        self,
        mu: ParameterLike = 0.05,
        kappa: ParameterLike = 2.0,
        theta: ParameterLike = 0.04,
        xi: ParameterLike = 0.3,
        rho: ParameterLike = -0.7,
        S0: float = 100.0,
        v0: float = 0.04,
    ):
        self.mu = as_parameter(mu, "mu")
        self.kappa = as_parameter(kappa, "kappa")
        self.theta = as_parameter(theta, "theta")
        self.xi = as_parameter(xi, "xi")
        self.rho = as_parameter(rho, "rho")
        self._S0 = float(S0)
        self._v0 = float(v0)

    @property
    def x0(self) -> np.ndarray:
        return np.array([self._S0, self._v0])

    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        S, v = x[..., 0], x[..., 1]
        v_safe = np.maximum(v, 0.0)
        dS = self.mu(t) * S
        dv = self.kappa(t) * (self.theta(t) - v_safe)
        return np.stack([dS, dv], axis=-1)

    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        S, v = x[..., 0], x[..., 1]
        sqrt_v = np.sqrt(np.maximum(v, 0.0))
        sig_S = sqrt_v * S
        sig_v = self.xi(t) * sqrt_v
        return np.stack([sig_S, sig_v], axis=-1)

    def correlation_matrix(self, t: float = 0.0) -> np.ndarray:
        rho = self.rho(t)
        return np.array([[1.0, rho], [rho, 1.0]])

    def brownian_increments(self, z: np.ndarray, grid: TimeGrid, method: str = "cholesky") -> np.ndarray:
        rho = self.rho.on_grid(grid)[:-1]
        z1, z2 = z[..., 0], z[..., 1]
        w2 = rho * z1 + np.sqrt(1.0 - rho**2) * z2
        return np.stack([z1, w2], axis=-1) * grid.sqrt_dt

    def floor(self, x: np.ndarray) -> Tuple[np.ndarray, int]:
        negative = x[..., 1] < 0.0
        if np.any(negative):
            x = x.copy()
            x[negative, 1] = 0.0
        return x, int(np.count_nonzero(negative))

    def _validate(self, grid: TimeGrid) -> List[str]:
        if self._v0 < 0:
            raise ConfigurationError(f"HestonProcess: v0 must be >= 0, got {self._v0}")
        _check_range(grid, "rho", self.rho, lower=-1.0, upper=1.0)
        _check_range(grid, "kappa", self.kappa, lower=0.0)
        _check_range(grid, "theta", self.theta, lower=0.0)
        _check_range(grid, "xi", self.xi, lower=0.0)
        return _feller_advisory(grid, self.kappa, self.theta, self.xi, "HestonProcess")


class ConstantElasticityOfVariance(SDEProcess):
    """
    Constant Elasticity of Variance:  dS = μ S dt + σ S^γ dW

    For γ ≠ 1 the state is floored at zero (S^γ is undefined for S < 0);
    zero is absorbing for γ > 0.
    """

    factor_names = ("S",)
    coefficients = ("mu", "sigma")

    def __init__(self, mu: ParameterLike = 0.05, sigma: ParameterLike = 2.0,
                 gamma: float = 0.5, S0: float = 100.0):
        self.mu = as_parameter(mu, "mu")
        self.sigma = as_parameter(sigma, "sigma")
        self.gamma = float(gamma)
        self._S0 = float(S0)

    @property
    def x0(self) -> np.ndarray:
        return np.array([self._S0])

    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        return self.mu(t) * x

    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        if self.gamma == 1.0:
            return self.sigma(t) * x
        return self.sigma(t) * np.maximum(x, 0.0) ** self.gamma

    def diffusion_derivative(self, x: np.ndarray, t: float) -> np.ndarray:
        if self.gamma == 1.0:
            return np.full_like(x, self.sigma(t))
        safe_x = np.maximum(x, 1e-12)
        return self.sigma(t) * self.gamma * safe_x ** (self.gamma - 1.0)

    def floor(self, x: np.ndarray) -> Tuple[np.ndarray, int]:
        if self.gamma == 1.0:
            return x, 0
        negative = x < 0.0
        return np.where(negative, 0.0, x), int(np.count_nonzero(negative))

    def _validate(self, grid: TimeGrid) -> List[str]:
        if not np.isfinite(self.gamma) or self.gamma < 0:
            raise ConfigurationError(f"CEV: gamma must be >= 0, got {self.gamma}")
        if self.gamma != 1.0 and self._S0 < 0:
            raise ConfigurationError(f"CEV: S0 must be >= 0 for gamma != 1, got {self._S0}")
        _check_range(grid, "sigma", self.sigma, lower=0.0)
        return []


# ---------------------------------------------------------------------------- jumps


class MertonJumpDiffusion(JumpProcess):
    """
    Merton Jump-Diffusion:  dS/S = (μ - λk) dt + σ dW + (e^Y - 1) dN

    N is a Poisson process with intensity λ(t) and log-jump sizes are
    N(μ_J, σ_J²), so k = E[e^Y - 1] = exp(μ_J + σ_J²/2) - 1.

    Per step: draw n ~ Poisson(λ Δt), sum n log-jump sizes
    (Y = n μ_J + √n σ_J Z, same law as the sum of n draws) and add
    S (e^Y - 1) to the diffusive increment.
    """

    factor_names = ("S",)
    n_shocks = 2
    coefficients = ("mu", "sigma", "lam", "mu_J", "sigma_J")

    def __init__(
        self,
        mu: ParameterLike = 0.1,
        sigma: ParameterLike = 0.2,
        lam: ParameterLike = 1.0,
        mu_J: ParameterLike = -0.05,
        sigma_J: ParameterLike = 0.1,
        S0: float = 100.0,
    ):
        self.mu = as_parameter(mu, "mu")
        self.sigma = as_parameter(sigma, "sigma")
        self.lam = as_parameter(lam, "lam")
        self.mu_J = as_parameter(mu_J, "mu_J")
        self.sigma_J = as_parameter(sigma_J, "sigma_J")
        self._S0 = float(S0)

    @property
    def x0(self) -> np.ndarray:
        return np.array([self._S0])

    def k(self, t: float) -> float:
        """Mean relative jump size E[e^Y - 1]."""
        return np.exp(self.mu_J(t) + 0.5 * self.sigma_J(t) ** 2) - 1.0

    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        return (self.mu(t) - self.lam(t) * self.k(t)) * x

    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        return self.sigma(t) * x

    def diffusion_derivative(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.full_like(x, self.sigma(t))

    def jump_intensities(self, grid: TimeGrid) -> np.ndarray:
        """Expected jump count λ(t_i) Δt for each step, shape ``(num_steps,)``."""
        return self.lam.on_grid(grid)[:-1] * grid.dt

    def jump_sizes(self, t: float, counts: np.ndarray, z: np.ndarray) -> np.ndarray:
        """Sum of ``counts`` log-jump sizes, using one standard normal per path."""
        return counts * self.mu_J(t) + np.sqrt(counts) * self.sigma_J(t) * z

    def jump_increment(self, x: np.ndarray, t: float, dt: float,
                       counts: np.ndarray, z: np.ndarray) -> np.ndarray:
        return x * np.expm1(self.jump_sizes(t, counts, z))

    def _validate(self, grid: TimeGrid) -> List[str]:
        _check_range(grid, "sigma", self.sigma, lower=0.0)
        _check_range(grid, "lam", self.lam, lower=0.0)
        _check_range(grid, "sigma_J", self.sigma_J, lower=0.0)
        return []


# ---------------------------------------------------------------------------- user defined


class CustomSDE(SDEProcess):
    """
    User-defined SDE with arbitrary drift and diffusion functions.

    ```python
    sde = CustomSDE(
        drift_fn=lambda x, t: -0.5 * x,
        diffusion_fn=lambda x, t: 0.3 * np.ones_like(x),
        x0=np.array([1.0]),
    )
    ```

    ``floor_at`` floors the state at the given value after each step.
    """

    def __init__(
        self,
        drift_fn: Callable[[np.ndarray, float], np.ndarray],
        diffusion_fn: Callable[[np.ndarray, float], np.ndarray],
        x0: np.ndarray,
        diffusion_deriv_fn: Optional[Callable] = None,
        floor_at: Optional[float] = None,
    ):
        self._drift_fn = drift_fn
        self._diffusion_fn = diffusion_fn
        self._x0 = np.atleast_1d(np.asarray(x0, dtype=float))
        self._diffusion_deriv_fn = diffusion_deriv_fn
        self.floor_at = floor_at
        self.factor_names = tuple(f"x{i}" for i in range(len(self._x0))) if len(self._x0) > 1 else ("x",)

    @property
    def x0(self) -> np.ndarray:
        return self._x0

    def drift(self, x: np.ndarray, t: float) -> np.ndarray:
        return self._drift_fn(x, t)

    def diffusion(self, x: np.ndarray, t: float) -> np.ndarray:
        return self._diffusion_fn(x, t)

    def diffusion_derivative(self, x: np.ndarray, t: float) -> np.ndarray:
        if self._diffusion_deriv_fn is not None:
            return self._diffusion_deriv_fn(x, t)
        return super().diffusion_derivative(x, t)

    def floor(self, x: np.ndarray) -> Tuple[np.ndarray, int]:
        if self.floor_at is None:
            return x, 0
        below = x < self.floor_at
        return np.where(below, self.floor_at, x), int(np.count_nonzero(below))

    @property
    def n_shocks(self) -> int:
        return self.dim
