"""
Time-dependent model coefficients.

Every process coefficient is a ``TimeDependent``: a pure function of time that
is either constant, a piecewise table or an arbitrary callable. Evaluation
never fails for out-of-range times; ``t`` is clamped into the parameter's
domain instead, since grid arithmetic may land marginally outside it.
"""

from __future__ import annotations

import math
from typing import Callable, Optional, Sequence, Tuple, Union

import numpy as np

from .exceptions import ConfigurationError
from .grid import TimeGrid

INTERPOLATIONS = ("linear", "nearest", "previous")

ParameterLike = Union["TimeDependent", float, int, Callable[[float], float]]


class TimeDependent:
    """
    Scalar function of time.

    Use the constructors rather than ``__init__``:

    >>> TimeDependent.constant(0.2)(5.0)
    0.2
    >>> curve = TimeDependent.piecewise([0.0, 1.0], [1.0, 3.0])
    >>> curve(0.5)
    2.0
    """

    __slots__ = ("_fn", "_domain", "_constant", "_label")

    def __init__(
        self,
        fn: Callable[[np.ndarray], np.ndarray],
        domain: Optional[Tuple[float, float]] = None,
        constant: Optional[float] = None,
        label: str = "callable",
    ):
        self._fn = fn
        self._domain = domain
        self._constant = constant
        self._label = label

    # ------------------------------------------------------------------ constructors

    @classmethod
    def constant(cls, value: float) -> "TimeDependent":
        value = float(value)
        return cls(lambda t: np.full(np.shape(t), value), constant=value, label=f"constant({value})")

    @classmethod
    def piecewise(
        cls,
        times: Sequence[float],
        values: Sequence[float],
        interpolation: str = "linear",
    ) -> "TimeDependent":
        """
        Lookup curve through ``(times[i], values[i])``.

        ``interpolation`` is fixed at construction:
        "linear" joins knots, "nearest" takes the closest knot and "previous"
        holds the last knot at or before ``t`` (a step curve).
        """
        knots = np.asarray(times, dtype=float)
        vals = np.asarray(values, dtype=float)
        if knots.ndim != 1 or knots.size == 0 or knots.shape != vals.shape:
            raise ConfigurationError("piecewise times and values must be equal-length 1-D sequences")
        if not (np.all(np.isfinite(knots)) and np.all(np.isfinite(vals))):
            raise ConfigurationError("piecewise times and values must be finite")
        if np.any(np.diff(knots) <= 0):
            raise ConfigurationError("piecewise times must be strictly increasing")
        if interpolation not in INTERPOLATIONS:
            raise ConfigurationError(
                f"interpolation must be one of {INTERPOLATIONS}, got {interpolation!r}"
            )
        knots.setflags(write=False)
        vals.setflags(write=False)

        if interpolation == "linear":
            def fn(t):
                return np.interp(t, knots, vals)
        elif interpolation == "nearest":
            mids = 0.5 * (knots[1:] + knots[:-1])

            def fn(t):
                return vals[np.searchsorted(mids, t, side="right")]
        else:
            def fn(t):
                return vals[np.maximum(np.searchsorted(knots, t, side="right") - 1, 0)]

        constant = float(vals[0]) if np.all(vals == vals[0]) else None
        return cls(fn, domain=(float(knots[0]), float(knots[-1])), constant=constant,
                   label=f"piecewise[{interpolation}, {knots.size} knots]")

    @classmethod
    def from_callable(
        cls,
        fn: Callable[[float], float],
        domain: Optional[Tuple[float, float]] = None,
    ) -> "TimeDependent":
        """
        Wrap an arbitrary pure function ``fn(t) -> float``.

        ``fn`` is called with scalar times; it must be deterministic.
        """
        if not callable(fn):
            raise ConfigurationError(f"expected a callable, got {type(fn).__name__}")
        if domain is not None and not domain[0] <= domain[1]:
            raise ConfigurationError(f"invalid domain {domain}")
        scalar_fn = np.vectorize(lambda t: float(fn(float(t))), otypes=[float])
        return cls(scalar_fn, domain=domain, label=getattr(fn, "__name__", "callable"))

    # ------------------------------------------------------------------ evaluation

    def evaluate(self, t):
        """Value at ``t`` (scalar or array); ``t`` is clamped into the domain."""
        if self._constant is not None and np.ndim(t) == 0:
            return self._constant
        if self._domain is not None:
            t = np.clip(t, self._domain[0], self._domain[1])
        out = self._fn(t)
        if np.ndim(out) == 0:
            return float(out)
        return np.asarray(out, dtype=float)

    __call__ = evaluate

    def on_grid(self, grid: TimeGrid) -> np.ndarray:
        """Values at every grid point, shape ``(num_steps + 1,)``."""
        t = grid.clamp(grid.times)
        if self._constant is not None:
            return np.full(t.shape, self._constant)
        return np.asarray(self.evaluate(t), dtype=float).reshape(t.shape)

    def derivative(self, t: float, h: float = 1e-5) -> float:
        """Central finite-difference ``d/dt`` at ``t`` (zero for constants)."""
        if self._constant is not None:
            return 0.0
        return (self.evaluate(t + h) - self.evaluate(t - h)) / (2.0 * h)

    @property
    def is_constant(self) -> bool:
        return self._constant is not None

    @property
    def domain(self) -> Optional[Tuple[float, float]]:
        return self._domain

    def __repr__(self) -> str:
        return f"TimeDependent({self._label})"


def as_parameter(value: ParameterLike, name: str = "parameter") -> TimeDependent:
    """Coerce a number, callable or ``TimeDependent`` into a ``TimeDependent``."""
    if isinstance(value, TimeDependent):
        return value
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be numeric or callable, got bool")
    if isinstance(value, (int, float, np.integer, np.floating)):
        if not math.isfinite(float(value)):
            raise ConfigurationError(f"{name} must be finite, got {value}")
        return TimeDependent.constant(float(value))
    if callable(value):
        return TimeDependent.from_callable(value)
    raise ConfigurationError(f"{name} must be numeric or callable, got {type(value).__name__}")
