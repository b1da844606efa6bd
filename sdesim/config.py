"""
Frozen simulation settings.

Settings are immutable so that a run can be reproduced from its inputs.
Defaults can be overridden through environment variables:

    SDESIM_BLOCK_SIZE   paths per work item (also fixes the seed assignment)
    SDESIM_PARALLEL     "0"/"false" disables the thread pool
    SDESIM_MAX_WORKERS  thread pool size (defaults to the CPU count)
    SDESIM_FBM_METHOD   "cholesky" or "hosking"
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .exceptions import ConfigurationError

FBM_METHODS = ("cholesky", "hosking")
SCHEMES = ("euler", "milstein")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class SimulationSettings:
    """
    Immutable engine configuration.

    Attributes
    ----------
    block_size : int
        Number of (original) paths simulated per work item. Block ``b`` always
        uses child stream ``b`` of the run's random source, so changing this
        value changes the sampled paths; changing ``max_workers`` does not.
    parallel : bool
        Run blocks on a thread pool when more than one block exists.
    max_workers : int, optional
        Thread pool size; ``None`` lets the executor pick (CPU count based).
    fbm_method : str
        Fractional Gaussian noise construction, "cholesky" or "hosking".
    scheme : str
        Default discretization scheme, "euler" or "milstein".
    """

    block_size: int = 4096
    parallel: bool = True
    max_workers: Optional[int] = None
    fbm_method: str = "cholesky"
    scheme: str = "euler"

    def __post_init__(self) -> None:
        if not isinstance(self.block_size, int) or self.block_size < 1:
            raise ConfigurationError(f"block_size must be an integer >= 1, got {self.block_size!r}")
        if self.max_workers is not None and (
            not isinstance(self.max_workers, int) or self.max_workers < 1
        ):
            raise ConfigurationError(f"max_workers must be >= 1 or None, got {self.max_workers!r}")
        if self.fbm_method not in FBM_METHODS:
            raise ConfigurationError(
                f"fbm_method must be one of {FBM_METHODS}, got {self.fbm_method!r}"
            )
        if self.scheme not in SCHEMES:
            raise ConfigurationError(f"scheme must be one of {SCHEMES}, got {self.scheme!r}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SimulationSettings":
        """Build settings from ``SDESIM_*`` environment variables."""
        env = os.environ if environ is None else environ
        kwargs = {}

        if env.get("SDESIM_BLOCK_SIZE"):
            kwargs["block_size"] = _parse_int("SDESIM_BLOCK_SIZE", env["SDESIM_BLOCK_SIZE"])
        if env.get("SDESIM_MAX_WORKERS"):
            kwargs["max_workers"] = _parse_int("SDESIM_MAX_WORKERS", env["SDESIM_MAX_WORKERS"])
        if env.get("SDESIM_PARALLEL"):
            raw = env["SDESIM_PARALLEL"].strip().lower()
            if raw in _TRUE:
                kwargs["parallel"] = True
            elif raw in _FALSE:
                kwargs["parallel"] = False
            else:
                raise ConfigurationError(f"SDESIM_PARALLEL must be a boolean flag, got {raw!r}")
        if env.get("SDESIM_FBM_METHOD"):
            kwargs["fbm_method"] = env["SDESIM_FBM_METHOD"].strip().lower()

        return cls(**kwargs)


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def get_settings() -> SimulationSettings:
    """Default settings, with environment overrides applied."""
    return SimulationSettings.from_env()
