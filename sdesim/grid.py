"""Uniform simulation time grid shared by every path of a run."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from numbers import Integral

import numpy as np

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class TimeGrid:
    """
    Discretization of simulation time: ``num_steps`` equal steps from
    ``start`` to ``horizon``.

    The last grid point is exactly ``horizon`` (no accumulated rounding).

    Examples
    --------
    >>> grid = TimeGrid(horizon=1.0, num_steps=252)
    >>> grid.times.shape
    (253,)
    """

    horizon: float
    num_steps: int
    start: float = 0.0
    _times: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if isinstance(self.num_steps, bool) or not isinstance(self.num_steps, Integral):
            raise ConfigurationError(f"num_steps must be an integer, got {self.num_steps!r}")
        if self.num_steps < 1:
            raise ConfigurationError(f"num_steps must be >= 1, got {self.num_steps}")
        if not (math.isfinite(self.start) and math.isfinite(self.horizon)):
            raise ConfigurationError("start and horizon must be finite")
        if not self.dt > 0.0:
            raise ConfigurationError(
                f"step size must be > 0, got ({self.horizon} - {self.start}) / {self.num_steps}"
            )

        object.__setattr__(self, "num_steps", int(self.num_steps))
        times = np.linspace(self.start, self.horizon, self.num_steps + 1)
        times[-1] = self.horizon
        times.setflags(write=False)
        object.__setattr__(self, "_times", times)

    @classmethod
    def from_step(cls, horizon: float, dt: float, start: float = 0.0) -> "TimeGrid":
        """Grid with step size no larger than ``dt`` covering ``[start, horizon]``."""
        if not dt > 0.0:
            raise ConfigurationError(f"dt must be > 0, got {dt}")
        num_steps = max(1, int(np.ceil((horizon - start) / dt - 1e-12)))
        return cls(horizon=horizon, num_steps=num_steps, start=start)

    @property
    def dt(self) -> float:
        return (self.horizon - self.start) / self.num_steps

    @property
    def sqrt_dt(self) -> float:
        return math.sqrt(self.dt)

    @property
    def times(self) -> np.ndarray:
        """Grid points, shape ``(num_steps + 1,)``."""
        return self._times

    @property
    def duration(self) -> float:
        return self.horizon - self.start

    def clamp(self, t):
        """Clip ``t`` into ``[start, horizon]``."""
        return np.clip(t, self.start, self.horizon)

    def __len__(self) -> int:
        return self.num_steps + 1
