"""
Fractional Gaussian noise (fGn) for fractional-driven processes.

Increments of fractional Brownian motion are correlated across steps, so a
whole path of increments is generated at once from standard normals:

    cholesky : lower Cholesky factor of the Toeplitz fGn covariance
               (scipy.linalg), computed once per (n, H) and applied to every
               path as a matrix product. O(n^3) setup, O(n^2) per path.
    hosking  : Durbin-Levinson recursion (Hosking 1984), JIT-compiled with
               numba and run in parallel across paths.

Both maps are linear in the input normals, so negating the normals negates
the noise (antithetic pairs carry through).

Reference: Hosking, "Modeling persistence in hydrological time series" (1984).
"""

from __future__ import annotations

import threading
from functools import lru_cache

import numpy as np
from numba import njit, prange
from scipy import linalg

from .exceptions import ConfigurationError

# numba parallel kernels must not be launched concurrently from several threads
_KERNEL_LOCK = threading.Lock()


def fgn_autocovariance(n: int, hurst: float) -> np.ndarray:
    """
    Autocovariance of unit-step fGn at lags 0..n-1:

        γ(k) = ½ (|k+1|^{2H} - 2|k|^{2H} + |k-1|^{2H})
    """
    k = np.arange(n, dtype=float)
    two_h = 2.0 * hurst
    return 0.5 * (np.abs(k + 1.0) ** two_h - 2.0 * np.abs(k) ** two_h + np.abs(k - 1.0) ** two_h)


@lru_cache(maxsize=32)
def fgn_cholesky_factor(n: int, hurst: float) -> np.ndarray:
    """Lower Cholesky factor of the ``n x n`` unit-step fGn covariance (cached)."""
    cov = linalg.toeplitz(fgn_autocovariance(n, hurst))
    try:
        factor = linalg.cholesky(cov, lower=True)
    except linalg.LinAlgError as exc:
        raise ConfigurationError(
            f"fGn covariance not positive definite for n={n}, H={hurst}"
        ) from exc
    factor.setflags(write=False)
    return factor


def fgn_cholesky(z: np.ndarray, hurst: float) -> np.ndarray:
    """Unit-step fGn from normals ``z`` of shape ``(m, n)`` via Cholesky."""
    factor = fgn_cholesky_factor(z.shape[1], float(hurst))
    return z @ factor.T


@njit(parallel=True, cache=True)
def _hosking_kernel(z: np.ndarray, gamma: np.ndarray) -> np.ndarray:
    m, n = z.shape
    out = np.empty((m, n))

    # Durbin-Levinson coefficients depend only on (n, H); compute them once.
    phi = np.zeros((n, n))
    sd = np.empty(n)
    var = gamma[0]
    sd[0] = np.sqrt(var)
    for k in range(1, n):
        acc = gamma[k]
        for j in range(k - 1):
            acc -= phi[k - 1, j] * gamma[k - 1 - j]
        reflect = acc / var
        phi[k, k - 1] = reflect
        for j in range(k - 1):
            phi[k, j] = phi[k - 1, j] - reflect * phi[k - 1, k - 2 - j]
        var = var * (1.0 - reflect * reflect)
        sd[k] = np.sqrt(max(var, 0.0))

    for p in prange(m):
        out[p, 0] = sd[0] * z[p, 0]
        for k in range(1, n):
            mean = 0.0
            for j in range(k):
                mean += phi[k, j] * out[p, k - 1 - j]
            out[p, k] = mean + sd[k] * z[p, k]

    return out


def fgn_hosking(z: np.ndarray, hurst: float) -> np.ndarray:
    """Unit-step fGn from normals ``z`` of shape ``(m, n)`` via Hosking's recursion."""
    z = np.ascontiguousarray(z, dtype=np.float64)
    gamma = fgn_autocovariance(z.shape[1], float(hurst))
    with _KERNEL_LOCK:
        return _hosking_kernel(z, gamma)


_METHODS = {
    "cholesky": fgn_cholesky,
    "hosking": fgn_hosking,
}


def fractional_increments(z: np.ndarray, hurst: float, dt: float, method: str = "cholesky") -> np.ndarray:
    """
    Increments of fractional Brownian motion on a uniform grid.

    Parameters
    ----------
    z : ndarray, shape (m, n)
        Independent standard normals, one row per path.
    hurst : float
        Hurst exponent in (0, 1).
    dt : float
        Grid step; increments are scaled by ``dt**H`` (self-similarity).
    method : str
        "cholesky" or "hosking".
    """
    if not 0.0 < hurst < 1.0:
        raise ConfigurationError(f"Hurst exponent must be in (0, 1), got {hurst}")
    try:
        generate = _METHODS[method]
    except KeyError:
        raise ConfigurationError(f"unknown fractional noise method {method!r}") from None
    return generate(z, hurst) * dt**hurst
