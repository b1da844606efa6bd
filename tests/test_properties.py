"""
Property-based tests for the path-level guarantees of the engine.

Every run, whatever the grid and model parameters:
- returns paths of length num_steps + 1 starting at the initial value
- keeps floored state factors non-negative
- is byte-identical when repeated with the same seed
"""

import warnings

import numpy as np
from hypothesis import given, settings
from hypothesis import strategies as st

from sdesim import (
    ArithmeticBrownianMotion,
    ConstantElasticityOfVariance,
    CoxIngersollRoss,
    HestonProcess,
    NumericalAdvisory,
    PathSimulator,
    SimulationSettings,
    TimeDependent,
    TimeGrid,
)

SERIAL = PathSimulator(settings=SimulationSettings(block_size=16, parallel=False))

steps = st.integers(min_value=1, max_value=60)
horizons = st.floats(min_value=0.01, max_value=10.0, allow_nan=False)
seeds = st.integers(min_value=0, max_value=2**32 - 1)
vols = st.floats(min_value=0.0, max_value=2.0, allow_nan=False)


def _quiet_simulate(*args, **kwargs):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", NumericalAdvisory)
        return SERIAL.simulate(*args, **kwargs)


class TestGridProperties:
    @given(horizon=horizons, num_steps=steps)
    def test_grid_endpoints_and_spacing(self, horizon, num_steps):
        grid = TimeGrid(horizon=horizon, num_steps=num_steps)
        assert len(grid.times) == num_steps + 1
        assert grid.times[0] == 0.0
        assert grid.times[-1] == horizon
        assert np.all(np.diff(grid.times) > 0)

    @given(
        values=st.lists(st.floats(min_value=-5, max_value=5, allow_nan=False), min_size=2, max_size=8),
        t=st.floats(min_value=-1.0, max_value=20.0, allow_nan=False),
    )
    def test_linear_curve_stays_within_knot_values(self, values, t):
        curve = TimeDependent.piecewise(np.arange(len(values), dtype=float), values)
        assert min(values) - 1e-12 <= curve(t) <= max(values) + 1e-12


class TestPathProperties:
    @settings(max_examples=30, deadline=None)
    @given(num_steps=steps, num_paths=st.integers(min_value=1, max_value=40), x0=st.floats(-100, 100), seed=seeds)
    def test_length_and_initial_state(self, num_steps, num_paths, x0, seed):
        grid = TimeGrid(horizon=1.0, num_steps=num_steps)
        result = _quiet_simulate(grid, ArithmeticBrownianMotion(0.1, 0.3, x0), seed, num_paths=num_paths)
        assert result.paths.shape == (num_paths, num_steps + 1)
        assert np.all(result.paths[:, 0] == x0)

    @settings(max_examples=25, deadline=None)
    @given(kappa=st.floats(0.0, 5.0), theta=st.floats(0.0, 0.2), sigma=vols, seed=seeds)
    def test_cir_never_negative(self, kappa, theta, sigma, seed):
        grid = TimeGrid(horizon=1.0, num_steps=20)
        result = _quiet_simulate(grid, CoxIngersollRoss(kappa, theta, sigma, X0=theta), seed, num_paths=32)
        assert np.all(result.paths >= 0.0)

    @settings(max_examples=25, deadline=None)
    @given(xi=vols, rho=st.floats(-1.0, 1.0), seed=seeds)
    def test_heston_variance_never_negative(self, xi, rho, seed):
        grid = TimeGrid(horizon=1.0, num_steps=20)
        result = _quiet_simulate(grid, HestonProcess(kappa=1.0, theta=0.04, xi=xi, rho=rho), seed, num_paths=32)
        assert np.all(result.factor("v") >= 0.0)

    @settings(max_examples=25, deadline=None)
    @given(gamma=st.floats(0.1, 0.9), sigma=vols, seed=seeds)
    def test_cev_never_negative(self, gamma, sigma, seed):
        grid = TimeGrid(horizon=1.0, num_steps=20)
        model = ConstantElasticityOfVariance(mu=0.0, sigma=sigma, gamma=gamma, S0=1.0)
        result = _quiet_simulate(grid, model, seed, num_paths=32)
        assert np.all(result.paths >= 0.0)

    @settings(max_examples=20, deadline=None)
    @given(seed=seeds, half=st.integers(min_value=1, max_value=40))
    def test_repeatable(self, seed, half):
        grid = TimeGrid(horizon=1.0, num_steps=10)
        model = HestonProcess()
        a = _quiet_simulate(grid, model, seed, num_paths=2 * half, antithetic=True)
        b = _quiet_simulate(grid, model, seed, num_paths=2 * half, antithetic=True)
        assert a.paths.tobytes() == b.paths.tobytes()
