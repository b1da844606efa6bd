"""Shared fixtures for the sdesim test suite."""

import pytest

from sdesim import PathSimulator, SimulationSettings, TimeGrid


@pytest.fixture
def grid():
    return TimeGrid(horizon=1.0, num_steps=50)


@pytest.fixture
def settings():
    """Serial, single-block settings independent of SDESIM_* variables."""
    return SimulationSettings(block_size=4096, parallel=False)


@pytest.fixture
def simulator(settings):
    return PathSimulator(settings=settings)
