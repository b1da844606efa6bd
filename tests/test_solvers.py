"""Tests for discretization schemes: correctness, convergence, and edge cases."""

import numpy as np
import pytest

from sdesim import (
    ArithmeticBrownianMotion,
    ConfigurationError,
    CoxIngersollRoss,
    EulerMaruyama,
    FractionalBrownianMotion,
    GeometricBrownianMotion,
    Milstein,
    OrnsteinUhlenbeck,
    PathSimulator,
    SimulationSettings,
    TimeGrid,
)
from sdesim.solvers import get_scheme


class TestEulerMaruyama:
    def test_gbm_mean(self, settings):
        """E[S_T] = S_0 exp(μT) for GBM."""
        gbm = GeometricBrownianMotion(mu=0.05, sigma=0.2, S0=100)
        grid = TimeGrid(horizon=1.0, num_steps=252)
        result = PathSimulator(EulerMaruyama(), settings).simulate(grid, gbm, 42, num_paths=50000)
        mean = np.mean(result.terminal())
        expected = 100 * np.exp(0.05)
        assert abs(mean - expected) / expected < 0.02

    def test_ou_mean_reversion(self, settings):
        """OU process converges to long-run mean."""
        ou = OrnsteinUhlenbeck(theta=5.0, mu=2.0, sigma=0.5, X0=0.0)
        grid = TimeGrid(horizon=5.0, num_steps=500)
        result = PathSimulator(EulerMaruyama(), settings).simulate(grid, ou, 42, num_paths=4000)
        assert abs(np.mean(result.terminal()) - 2.0) < 0.05

    def test_cir_non_negative(self, settings):
        """Full truncation keeps CIR paths non-negative."""
        cir = CoxIngersollRoss(kappa=2.0, theta=0.04, sigma=0.2, X0=0.04)
        grid = TimeGrid(horizon=1.0, num_steps=1000)
        result = PathSimulator(EulerMaruyama(), settings).simulate(grid, cir, 42, num_paths=2000)
        assert np.min(result.paths) >= 0.0

    def test_increment(self):
        gbm = GeometricBrownianMotion(mu=0.05, sigma=0.2)
        x = np.array([100.0])
        dW = np.array([0.1])
        np.testing.assert_allclose(EulerMaruyama().increment(gbm, x, 0.0, 0.01, dW), [0.05 + 2.0])


class TestMilstein:
    def test_increment(self):
        gbm = GeometricBrownianMotion(mu=0.05, sigma=0.2)
        x = np.array([100.0])
        dW = np.array([0.2])
        expected = 0.05 + 4.0 + 0.5 * 20.0 * 0.2 * (0.04 - 0.01)
        np.testing.assert_allclose(Milstein().increment(gbm, x, 0.0, 0.01, dW), [expected])

    def test_additive_noise_matches_euler(self, settings, grid):
        """σ' = 0 makes the Milstein correction vanish."""
        ou = OrnsteinUhlenbeck(theta=1.0, mu=0.5, sigma=0.3)
        em = PathSimulator(EulerMaruyama(), settings).simulate(grid, ou, 3, num_paths=20)
        mil = PathSimulator(Milstein(), settings).simulate(grid, ou, 3, num_paths=20)
        np.testing.assert_allclose(em.paths, mil.paths)

    def test_gbm_higher_strong_accuracy(self, settings):
        """Milstein should track the exact GBM solution more closely than EM."""
        mu, sigma = 0.05, 0.3
        gbm = GeometricBrownianMotion(mu=mu, sigma=sigma, S0=100)
        grid = TimeGrid(horizon=1.0, num_steps=20)

        # same seed and shock layout: the ABM paths are the driving Brownian motion
        brownian = PathSimulator(settings=settings).simulate(grid, ArithmeticBrownianMotion(0.0, 1.0), 42, num_paths=5000)
        exact = 100 * np.exp((mu - 0.5 * sigma**2) * grid.duration + sigma * brownian.terminal())

        em = PathSimulator(EulerMaruyama(), settings).simulate(grid, gbm, 42, num_paths=5000)
        mil = PathSimulator(Milstein(), settings).simulate(grid, gbm, 42, num_paths=5000)

        err_em = np.mean(np.abs(em.terminal() - exact))
        err_mil = np.mean(np.abs(mil.terminal() - exact))
        assert err_mil < err_em

    def test_rejects_fractional(self, settings, grid):
        with pytest.raises(ConfigurationError):
            PathSimulator(Milstein(), settings).simulate(grid, FractionalBrownianMotion(), 1, num_paths=2)


class TestSchemeLookup:
    def test_by_name(self):
        assert isinstance(get_scheme("euler"), EulerMaruyama)
        assert isinstance(get_scheme("milstein"), Milstein)
        assert Milstein().strong_order == 1.0

    def test_default_from_settings(self):
        sim = PathSimulator(settings=SimulationSettings(scheme="milstein", parallel=False))
        assert isinstance(sim.scheme, Milstein)

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            get_scheme("heun")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
