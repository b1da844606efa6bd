"""
Ensemble path generation.

``PathSimulator`` combines a ``TimeGrid``, an ``SDEProcess`` and a
``RandomSource`` into a ``SimulationResult``:

1. Everything is validated up front; configuration errors are raised before
   any random draw is made.
2. The ensemble (half-ensemble under antithetic sampling) is cut into blocks
   of ``settings.block_size`` paths. Block ``b`` draws from child stream ``b``
   of the run's random source (``RandomSource.fork``), so output depends only
   on the source and the block size, never on the worker count, completion
   order or earlier runs with the same source.
3. Each block draws all its standard normals (and Poisson jump counts) at
   once, maps them to driving increments and steps every path across the grid
   vectorized. Antithetic blocks reuse the draws negated.
4. Blocks run on a thread pool and are reassembled in block order.
"""

from __future__ import annotations

import logging
import threading
import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from numbers import Integral
from typing import Callable, List, Optional, Tuple, Union

import numpy as np

from .config import SimulationSettings, get_settings
from .exceptions import ConfigurationError, NumericalAdvisory, SimulationCancelled
from .grid import TimeGrid
from .processes import SDEProcess
from .rng import RandomSource
from .solvers import Scheme, get_scheme

logger = logging.getLogger(__name__)

SourceLike = Optional[Union[RandomSource, int]]


@dataclass(frozen=True, eq=False)
class SimulationResult:
    """
    Container for an ensemble of simulated paths.

    Attributes
    ----------
    grid : TimeGrid
        Grid shared by every path.
    paths : np.ndarray
        Read-only array, ``(num_paths, num_steps + 1)`` for one-factor
        processes or ``(num_paths, num_steps + 1, dim)`` for multi-factor.
        Column 0 is the initial state.
    factor_names : tuple of str
        Name of each state factor.
    antithetic : bool
        If True, ``paths[i + num_paths // 2]`` is the antithetic mirror of
        ``paths[i]``.
    seed : int, optional
        Root entropy of the random source.
    spawn_key : tuple of int
        Spawn key of the random source, ``()`` for a source built from a
        seed. ``RandomSource.replay(seed, spawn_key)`` reproduces the run.
    advisories : tuple of NumericalAdvisory
        Non-fatal numerical conditions raised during the run.
    """

    grid: TimeGrid
    paths: np.ndarray
    factor_names: Tuple[str, ...]
    antithetic: bool = False
    seed: Optional[int] = None
    spawn_key: Tuple[int, ...] = ()
    advisories: Tuple[NumericalAdvisory, ...] = ()

    @property
    def t(self) -> np.ndarray:
        return self.grid.times

    @property
    def num_paths(self) -> int:
        return self.paths.shape[0]

    @property
    def num_steps(self) -> int:
        return self.grid.num_steps

    @property
    def dim(self) -> int:
        return len(self.factor_names)

    @property
    def has_advisories(self) -> bool:
        return bool(self.advisories)

    def factor(self, which: Union[int, str] = 0) -> np.ndarray:
        """Paths of one factor, shape ``(num_paths, num_steps + 1)``."""
        if self.paths.ndim == 2:
            if which not in (0, self.factor_names[0]):
                raise KeyError(which)
            return self.paths
        if isinstance(which, str):
            if which not in self.factor_names:
                raise KeyError(which)
            which = self.factor_names.index(which)
        return self.paths[:, :, which]

    def terminal(self, which: Union[int, str] = 0) -> np.ndarray:
        """Terminal values of one factor, shape ``(num_paths,)``."""
        return self.factor(which)[:, -1]

    def increments(self, which: Union[int, str] = 0) -> np.ndarray:
        """Per-step increments of one factor, shape ``(num_paths, num_steps)``."""
        return np.diff(self.factor(which), axis=1)

    def random_source(self) -> RandomSource:
        """A fresh copy of the random source this result was drawn from."""
        return RandomSource.replay(self.seed, self.spawn_key)

    def antithetic_pairs(self) -> Tuple[np.ndarray, np.ndarray]:
        """``(originals, mirrors)``; row ``i`` of each forms a pair."""
        if not self.antithetic:
            raise ValueError("result was not generated with antithetic sampling")
        half = self.num_paths // 2
        return self.paths[:half], self.paths[half:]


class PathSimulator:
    """
    Monte Carlo path generator.

    Parameters
    ----------
    scheme : Scheme or str, optional
        Discretization scheme (default from settings, Euler-Maruyama).
    settings : SimulationSettings, optional
        Engine configuration (default from ``SDESIM_*`` environment).

    Examples
    --------
    >>> grid = TimeGrid(horizon=1.0, num_steps=252)
    >>> model = ArithmeticBrownianMotion(mu=0.05, sigma=0.2, x0=100.0)
    >>> result = PathSimulator().simulate(grid, model, 42, num_paths=2, antithetic=True)
    """

    def __init__(
        self,
        scheme: Optional[Union[Scheme, str]] = None,
        settings: Optional[SimulationSettings] = None,
    ):
        self.settings = settings or get_settings()
        if scheme is None:
            scheme = self.settings.scheme
        self.scheme = scheme if isinstance(scheme, Scheme) else get_scheme(scheme)

    def simulate(
        self,
        grid: TimeGrid,
        process: SDEProcess,
        random_source: SourceLike = None,
        num_paths: int = 1,
        antithetic: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> SimulationResult:
        """
        Generate ``num_paths`` paths of ``process`` on ``grid``.

        Raises
        ------
        ConfigurationError
            Invalid grid, request shape or model parameters, raised before
            any simulation work; or parameters that drove a path to a
            non-finite value.
        SimulationCancelled
            ``cancel_event`` was set before all blocks completed.
        """
        source, messages = self._prepare(grid, process, random_source, num_paths, antithetic)

        n_base = num_paths // 2 if antithetic else num_paths
        block = self.settings.block_size
        sizes = [min(block, n_base - start) for start in range(0, n_base, block)]
        streams = source.fork(len(sizes))

        logger.info(
            f"Simulating {num_paths} paths of {type(process).__name__} over {grid.num_steps} steps "
            f"({len(sizes)} blocks, scheme={self.scheme.name}, antithetic={antithetic})"
        )
        started = time.perf_counter()

        tasks = [
            _BlockTask(self, grid, process, stream, size, antithetic, index)
            for index, (stream, size) in enumerate(zip(streams, sizes))
        ]
        outputs = self._run(tasks, cancel_event)

        originals = [paths[:size] for (paths, _), size in zip(outputs, sizes)]
        mirrors = [paths[size:] for (paths, _), size in zip(outputs, sizes)] if antithetic else []
        paths = np.concatenate(originals + mirrors, axis=0)
        bad = ~np.isfinite(paths)
        if np.any(bad):
            column = int(np.argmax(bad.reshape(bad.shape[0], bad.shape[1], -1).any(axis=(0, 2))))
            raise ConfigurationError(
                f"{type(process).__name__}: non-finite values from t={grid.times[column]:g}; "
                "the parameters are numerically unstable on this grid"
            )
        paths.setflags(write=False)

        floored = sum(count for _, count in outputs)
        if floored:
            messages.append(
                f"{type(process).__name__}: state floored {floored} times "
                "(full truncation biases the simulated mean upward)"
            )
        advisories = tuple(NumericalAdvisory(message) for message in messages)
        for advisory in advisories:
            warnings.warn(advisory, stacklevel=2)

        logger.info(f"Simulated {paths.shape[0]} paths in {time.perf_counter() - started:.3f}s")
        return SimulationResult(
            grid=grid,
            paths=paths,
            factor_names=tuple(process.factor_names),
            antithetic=antithetic,
            seed=source.entropy,
            spawn_key=source.spawn_key,
            advisories=advisories,
        )

    # ------------------------------------------------------------------ internals

    def _prepare(
        self,
        grid: TimeGrid,
        process: SDEProcess,
        random_source: SourceLike,
        num_paths: int,
        antithetic: bool,
    ) -> Tuple[RandomSource, List[str]]:
        if not isinstance(grid, TimeGrid):
            raise ConfigurationError(f"grid must be a TimeGrid, got {type(grid).__name__}")
        if not isinstance(process, SDEProcess):
            raise ConfigurationError(f"process must be an SDEProcess, got {type(process).__name__}")
        if isinstance(num_paths, bool) or not isinstance(num_paths, Integral) or num_paths < 1:
            raise ConfigurationError(f"num_paths must be an integer >= 1, got {num_paths!r}")
        if antithetic and num_paths % 2:
            raise ConfigurationError(f"antithetic sampling requires an even num_paths, got {num_paths}")
        self.scheme.check(process)
        messages = list(process.validate(grid))

        if isinstance(random_source, RandomSource):
            source = random_source
        elif random_source is None or isinstance(random_source, Integral):
            source = RandomSource(random_source)
        else:
            raise ConfigurationError(
                f"random_source must be a RandomSource, an int seed or None, got {type(random_source).__name__}"
            )
        return source, messages

    def _run(self, tasks: List[Callable], cancel_event: Optional[threading.Event]) -> List[Tuple[np.ndarray, int]]:
        if not self.settings.parallel or len(tasks) == 1:
            outputs = []
            for task in tasks:
                _raise_if_cancelled(cancel_event)
                outputs.append(task())
            return outputs

        pool = ThreadPoolExecutor(max_workers=self.settings.max_workers, thread_name_prefix="sdesim")
        futures = []
        try:
            for task in tasks:
                futures.append(pool.submit(_guarded, task, cancel_event))
            return [future.result() for future in futures]
        except BaseException:
            for future in futures:
                future.cancel()
            raise
        finally:
            pool.shutdown(wait=True)

    def _integrate(self, grid: TimeGrid, process: SDEProcess, z: np.ndarray,
                   counts: Optional[np.ndarray]) -> Tuple[np.ndarray, int]:
        m, n = z.shape[0], grid.num_steps
        dW = process.brownian_increments(z, grid, self.settings.fbm_method)
        jump_z = z[..., -1] if counts is not None else None

        if process.dim == 1:
            x = np.full(m, process.x0[0], dtype=float)
            paths = np.empty((m, n + 1))
        else:
            x = np.tile(np.asarray(process.x0, dtype=float), (m, 1))
            paths = np.empty((m, n + 1, process.dim))
        paths[:, 0] = x

        times = grid.times
        dt = grid.dt
        floored = 0
        for i in range(n):
            jumps = (counts[:, i], jump_z[:, i]) if counts is not None else None
            x, hits = process.step(x, times[i], dt, dW[:, i], self.scheme, jumps)
            floored += hits
            paths[:, i + 1] = x
        return paths, floored


class _BlockTask:
    """One block of paths: draw, (mirror), integrate."""

    def __init__(
        self,
        simulator: PathSimulator,
        grid: TimeGrid,
        process: SDEProcess,
        source: RandomSource,
        size: int,
        antithetic: bool,
        index: int,
    ):
        self.simulator = simulator
        self.grid = grid
        self.process = process
        self.source = source
        self.size = size
        self.antithetic = antithetic
        self.index = index

    def __call__(self) -> Tuple[np.ndarray, int]:
        grid, process = self.grid, self.process
        z = self.source.next_gaussian((self.size, grid.num_steps, process.n_shocks))
        counts = None
        if process.has_jumps:
            counts = self.source.next_poisson(process.jump_intensities(grid), size=(self.size, grid.num_steps))
        if self.antithetic:
            z = np.concatenate([z, -z], axis=0)
            if counts is not None:
                counts = np.concatenate([counts, counts], axis=0)
        logger.debug(f"Block {self.index}: {z.shape[0]} paths")
        return self.simulator._integrate(grid, process, z, counts)


def _raise_if_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise SimulationCancelled("simulation cancelled")


def _guarded(task: Callable, cancel_event: Optional[threading.Event]) -> Tuple[np.ndarray, int]:
    _raise_if_cancelled(cancel_event)
    return task()


def simulate(
    grid: TimeGrid,
    process: SDEProcess,
    random_source: SourceLike = None,
    num_paths: int = 1,
    antithetic: bool = False,
    scheme: Optional[Union[Scheme, str]] = None,
    settings: Optional[SimulationSettings] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SimulationResult:
    """Convenience wrapper around ``PathSimulator(scheme, settings).simulate(...)``."""
    return PathSimulator(scheme=scheme, settings=settings).simulate(
        grid, process, random_source, num_paths=num_paths, antithetic=antithetic, cancel_event=cancel_event
    )
