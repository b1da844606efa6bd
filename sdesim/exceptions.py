"""
Error taxonomy for path simulation.

Configuration problems are raised before any simulation work starts.
Non-fatal numerical conditions are issued as ``NumericalAdvisory`` warnings
and attached to the returned ``SimulationResult``.
"""

from __future__ import annotations


class SimulationError(Exception):
    """Base class for all simulation errors."""


class ConfigurationError(SimulationError, ValueError):
    """Invalid grid, model parameter or request shape. Fix and resubmit."""


class RandomSourceError(ConfigurationError):
    """Invalid distribution parameter passed to a random source."""


class SimulationCancelled(SimulationError):
    """The run was cancelled before all paths completed."""


class NumericalAdvisory(UserWarning):
    """Non-fatal numerical condition (Feller violation, floor triggered, ...)."""
