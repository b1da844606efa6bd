"""
Seedable random source with independent sub-streams.

Wraps ``numpy.random.Generator`` (PCG64). Child streams come from
``numpy.random.SeedSequence.spawn`` so that parallel work items never share or
overlap draws. ``fork`` derives them from a snapshot of the seed, so the same
source always yields the same children.
"""

from __future__ import annotations

from typing import List, Optional, Tuple, Union

import numpy as np
from numpy.random import SeedSequence

from .exceptions import RandomSourceError

Size = Optional[Union[int, Tuple[int, ...]]]


class RandomSource:
    """
    Standard-normal and Poisson draws, reproducible for a fixed seed.

    Parameters
    ----------
    seed : int or SeedSequence, optional
        Root seed. ``None`` draws fresh OS entropy (recorded in ``entropy``).

    Examples
    --------
    >>> src = RandomSource(42)
    >>> a, b = src.spawn(2)
    >>> a.next_gaussian() != b.next_gaussian()
    True
    """

    def __init__(self, seed: Optional[Union[int, SeedSequence]] = None):
        if isinstance(seed, SeedSequence):
            self._seed_seq = seed
        else:
            if seed is not None and (isinstance(seed, bool) or int(seed) < 0):
                raise RandomSourceError(f"seed must be a non-negative integer, got {seed!r}")
            self._seed_seq = SeedSequence(None if seed is None else int(seed))
        self._rng = np.random.default_rng(self._seed_seq)

    @property
    def entropy(self):
        """Root entropy; pass it back as ``seed`` to reproduce the stream."""
        return self._seed_seq.entropy

    @property
    def generator(self) -> np.random.Generator:
        return self._rng

    def next_gaussian(self, size: Size = None):
        """Standard normal draw(s): a float if ``size`` is None, else an array."""
        if size is None:
            return float(self._rng.standard_normal())
        return self._rng.standard_normal(size)

    def next_poisson(self, lam, size: Size = None):
        """
        Poisson draw(s) with rate ``lam`` (scalar or array, broadcast to ``size``).

        Raises
        ------
        RandomSourceError
            If any rate is negative or not finite.
        """
        rates = np.asarray(lam, dtype=float)
        if not np.all(np.isfinite(rates)):
            raise RandomSourceError("Poisson rate must be finite")
        if np.any(rates < 0):
            raise RandomSourceError(f"Poisson rate must be >= 0, got min {rates.min()}")
        if size is None and rates.ndim == 0:
            return int(self._rng.poisson(float(rates)))
        return self._rng.poisson(rates, size)

    @property
    def spawn_key(self) -> Tuple[int, ...]:
        """Position of this source in its spawn tree; ``()`` for a root source."""
        return tuple(self._seed_seq.spawn_key)

    def spawn(self, n: int) -> List["RandomSource"]:
        """
        ``n`` new independent child sources.

        Like ``SeedSequence.spawn``, successive calls continue the sequence and
        return different children.
        """
        if n < 0:
            raise RandomSourceError(f"cannot spawn {n} streams")
        return [RandomSource(child) for child in self._seed_seq.spawn(int(n))]

    def fork(self, n: int) -> List["RandomSource"]:
        """
        The first ``n`` children of this source's seed, the same on every call.

        Unlike ``spawn`` this leaves the source untouched, so a source (or its
        ``entropy`` and ``spawn_key``) always forks into the same streams.
        """
        if n < 0:
            raise RandomSourceError(f"cannot fork {n} streams")
        snapshot = SeedSequence(
            self._seed_seq.entropy,
            spawn_key=self._seed_seq.spawn_key,
            pool_size=self._seed_seq.pool_size,
        )
        return [RandomSource(child) for child in snapshot.spawn(int(n))]

    @classmethod
    def replay(cls, entropy: int, spawn_key: Tuple[int, ...] = ()) -> "RandomSource":
        """Rebuild the source identified by ``entropy`` and ``spawn_key``."""
        return cls(SeedSequence(entropy, spawn_key=tuple(spawn_key)))

    def __repr__(self) -> str:
        if self.spawn_key:
            return f"RandomSource(entropy={self.entropy}, spawn_key={self.spawn_key})"
        return f"RandomSource(entropy={self.entropy})"
