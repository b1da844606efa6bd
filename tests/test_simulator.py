"""Tests for PathSimulator and SimulationResult."""

import logging
import threading

import numpy as np
import pytest

from sdesim import (
    ArithmeticBrownianMotion,
    ConfigurationError,
    CoxIngersollRoss,
    CustomSDE,
    GeometricBrownianMotion,
    HestonProcess,
    MertonJumpDiffusion,
    NumericalAdvisory,
    PathSimulator,
    RandomSource,
    SimulationCancelled,
    SimulationSettings,
    TimeDependent,
    TimeGrid,
    sample_correlation,
    simulate,
)


class TestShapeAndInitialState:
    @pytest.mark.parametrize("num_steps", [1, 7, 252])
    def test_path_length(self, simulator, num_steps):
        grid = TimeGrid(horizon=1.0, num_steps=num_steps)
        result = simulator.simulate(grid, ArithmeticBrownianMotion(0.05, 0.2, 100.0), 1, num_paths=5)
        assert result.paths.shape == (5, num_steps + 1)
        assert np.all(result.paths[:, 0] == 100.0)

    def test_multi_factor_layout(self, simulator, grid):
        result = simulator.simulate(grid, HestonProcess(S0=90.0, v0=0.05), 1, num_paths=4)
        assert result.paths.shape == (4, grid.num_steps + 1, 2)
        assert result.factor_names == ("S", "v")
        assert np.all(result.factor("S")[:, 0] == 90.0)
        assert np.all(result.factor("v")[:, 0] == 0.05)
        np.testing.assert_array_equal(result.terminal("v"), result.paths[:, -1, 1])

    def test_result_is_read_only(self, simulator, grid):
        result = simulator.simulate(grid, ArithmeticBrownianMotion(), 1, num_paths=3)
        with pytest.raises(ValueError):
            result.paths[0, 0] = 1.0

    def test_result_metadata(self, simulator, grid):
        result = simulator.simulate(grid, GeometricBrownianMotion(), 17, num_paths=3)
        assert result.num_paths == 3
        assert result.num_steps == grid.num_steps
        assert result.dim == 1
        assert result.grid is grid
        np.testing.assert_array_equal(result.t, grid.times)
        assert not result.has_advisories
        with pytest.raises(KeyError):
            result.factor("v")


class TestAntithetic:
    def test_pair_increments_mirror(self, simulator):
        grid = TimeGrid(start=0.0, horizon=1.0, num_steps=252)
        model = ArithmeticBrownianMotion(mu=0.05, sigma=0.2, x0=100.0)
        result = simulator.simulate(grid, model, RandomSource(42), num_paths=2, antithetic=True)

        assert result.antithetic
        first, second = result.paths
        d1, d2 = np.diff(first), np.diff(second)
        # drift parts add, noise parts cancel
        np.testing.assert_allclose(d1 + d2, 2 * 0.05 * grid.dt, atol=1e-12)
        assert not np.allclose(d1, d2)

    def test_pairs_layout(self, simulator, grid):
        result = simulator.simulate(grid, ArithmeticBrownianMotion(0.0, 1.0), 3, num_paths=6, antithetic=True)
        originals, mirrors = result.antithetic_pairs()
        np.testing.assert_allclose(originals + mirrors, 0.0, atol=1e-12)

    def test_pairs_require_antithetic(self, simulator, grid):
        result = simulator.simulate(grid, ArithmeticBrownianMotion(), 3, num_paths=2)
        with pytest.raises(ValueError):
            result.antithetic_pairs()

    def test_jump_counts_shared_between_pairs(self, simulator, grid):
        model = MertonJumpDiffusion(mu=0.0, sigma=0.0, lam=50.0, mu_J=0.1, sigma_J=0.0)
        result = simulator.simulate(grid, model, 9, num_paths=200, antithetic=True)
        originals, mirrors = result.antithetic_pairs()
        # no diffusion and deterministic jump sizes: pairs coincide
        np.testing.assert_allclose(originals, mirrors)

    def test_odd_count_rejected(self, simulator, grid):
        with pytest.raises(ConfigurationError):
            simulator.simulate(grid, ArithmeticBrownianMotion(), 1, num_paths=1, antithetic=True)


class TestReproducibility:
    def test_same_seed_identical(self, simulator, grid):
        model = HestonProcess()
        a = simulator.simulate(grid, model, 123, num_paths=50)
        b = simulator.simulate(grid, model, 123, num_paths=50)
        np.testing.assert_array_equal(a.paths, b.paths)
        assert a.seed == b.seed == 123

    def test_independent_of_worker_count(self, grid):
        model = MertonJumpDiffusion()
        runs = []
        for settings in (
            SimulationSettings(block_size=64, parallel=False),
            SimulationSettings(block_size=64, parallel=True, max_workers=1),
            SimulationSettings(block_size=64, parallel=True, max_workers=4),
        ):
            runs.append(PathSimulator(settings=settings).simulate(grid, model, 2024, num_paths=300, antithetic=True))
        for other in runs[1:]:
            np.testing.assert_array_equal(runs[0].paths, other.paths)

    def test_unseeded_run_records_entropy(self, simulator, grid):
        model = ArithmeticBrownianMotion()
        first = simulator.simulate(grid, model, None, num_paths=4)
        replay = simulator.simulate(grid, model, first.seed, num_paths=4)
        np.testing.assert_array_equal(first.paths, replay.paths)

    def test_reused_source_reproduces(self, simulator, grid):
        model = HestonProcess()
        src = RandomSource(42)
        first = simulator.simulate(grid, model, src, num_paths=20)
        second = simulator.simulate(grid, model, src, num_paths=20)
        np.testing.assert_array_equal(first.paths, second.paths)
        replay = simulator.simulate(grid, model, second.seed, num_paths=20)
        np.testing.assert_array_equal(second.paths, replay.paths)
        assert second.seed == 42
        assert second.spawn_key == ()

    def test_spawned_source_replays(self, simulator, grid):
        model = ArithmeticBrownianMotion()
        child = RandomSource(7).spawn(3)[2]
        result = simulator.simulate(grid, model, child, num_paths=6)
        assert result.seed == 7
        assert result.spawn_key == (2,)
        replay = simulator.simulate(grid, model, result.random_source(), num_paths=6)
        np.testing.assert_array_equal(result.paths, replay.paths)
        parent = simulator.simulate(grid, model, 7, num_paths=6)
        assert not np.array_equal(result.paths, parent.paths)

    def test_different_seeds_differ(self, simulator, grid):
        model = ArithmeticBrownianMotion()
        a = simulator.simulate(grid, model, 1, num_paths=4)
        b = simulator.simulate(grid, model, 2, num_paths=4)
        assert not np.array_equal(a.paths, b.paths)


class TestStatistics:
    def test_gbm_log_return_mean(self):
        mu, sigma, T = 0.05, 0.2, 1.0
        grid = TimeGrid(horizon=T, num_steps=50)
        model = GeometricBrownianMotion(mu=mu, sigma=sigma, S0=100.0)
        settings = SimulationSettings(block_size=8192, parallel=True)
        result = PathSimulator(settings=settings).simulate(grid, model, 7, num_paths=100_000)

        log_ret = np.log(result.terminal() / result.paths[:, 0])
        assert log_ret.mean() == pytest.approx(model.exact_log_mean(T), abs=0.004)
        assert log_ret.std() == pytest.approx(sigma * np.sqrt(T), rel=0.02)

    def test_heston_increment_correlation(self, simulator, grid):
        model = HestonProcess(rho=-0.7)
        result = simulator.simulate(grid, model, 11, num_paths=20_000)
        assert sample_correlation(result, "S", "v", step=0) == pytest.approx(-0.7, abs=0.02)
        assert sample_correlation(result, "S", "v") == pytest.approx(-0.7, abs=0.05)

    def test_time_dependent_drift(self, simulator):
        grid = TimeGrid(horizon=1.0, num_steps=100)
        mu = TimeDependent.piecewise([0.0, 0.5], [1.0, 3.0], interpolation="previous")
        result = simulator.simulate(grid, ArithmeticBrownianMotion(mu=mu, sigma=0.0), 1, num_paths=2)
        # integral of the step curve over [0, 1]
        np.testing.assert_allclose(result.terminal(), 2.0)


class TestErrors:
    def test_non_finite_paths_rejected(self, simulator, grid):
        model = CustomSDE(lambda x, t: 1e200 * x**2, lambda x, t: 0.0 * x, x0=[1.0])
        with np.errstate(over="ignore", invalid="ignore"):
            with pytest.raises(ConfigurationError, match="non-finite"):
                simulator.simulate(grid, model, 1, num_paths=2)

    @pytest.mark.parametrize("num_paths", [0, -2, 2.0, True])
    def test_invalid_num_paths(self, simulator, grid, num_paths):
        with pytest.raises(ConfigurationError):
            simulator.simulate(grid, ArithmeticBrownianMotion(), 1, num_paths=num_paths)

    def test_invalid_correlation_fails_fast(self, simulator, grid):
        source = RandomSource(5)
        untouched = RandomSource(5).next_gaussian(3)
        with pytest.raises(ConfigurationError, match="rho"):
            simulator.simulate(grid, HestonProcess(rho=1.5), source, num_paths=4)
        np.testing.assert_array_equal(source.next_gaussian(3), untouched)

    def test_invalid_inputs(self, simulator, grid):
        with pytest.raises(ConfigurationError):
            simulator.simulate("grid", ArithmeticBrownianMotion(), 1)
        with pytest.raises(ConfigurationError):
            simulator.simulate(grid, object(), 1)
        with pytest.raises(ConfigurationError):
            simulator.simulate(grid, ArithmeticBrownianMotion(), "seed")

    def test_milstein_rejects_multi_factor(self, settings, grid):
        with pytest.raises(ConfigurationError):
            PathSimulator(scheme="milstein", settings=settings).simulate(grid, HestonProcess(), 1, num_paths=2)

    def test_unknown_scheme(self, settings):
        with pytest.raises(ConfigurationError):
            PathSimulator(scheme="runge-kutta", settings=settings)

    def test_configuration_error_is_value_error(self, simulator, grid):
        with pytest.raises(ValueError):
            simulator.simulate(grid, ArithmeticBrownianMotion(), 1, num_paths=0)


class TestAdvisories:
    def test_feller_violation_warns_and_floors(self, simulator, grid):
        model = CoxIngersollRoss(kappa=0.5, theta=0.02, sigma=0.5, X0=0.01)
        with pytest.warns(NumericalAdvisory):
            result = simulator.simulate(grid, model, 3, num_paths=500)
        assert result.has_advisories
        assert any("Feller" in str(a) for a in result.advisories)
        assert any("floored" in str(a) for a in result.advisories)
        assert result.paths.min() >= 0.0

    def test_logs_run(self, simulator, grid, caplog):
        with caplog.at_level(logging.INFO, logger="sdesim.simulator"):
            simulator.simulate(grid, ArithmeticBrownianMotion(), 1, num_paths=4)
        assert "Simulating 4 paths of ArithmeticBrownianMotion" in caplog.text


class TestCancellation:
    def test_cancelled_before_start(self, simulator, grid):
        event = threading.Event()
        event.set()
        with pytest.raises(SimulationCancelled):
            simulator.simulate(grid, ArithmeticBrownianMotion(), 1, num_paths=4, cancel_event=event)

    def test_cancelled_parallel(self, grid):
        event = threading.Event()
        event.set()
        sim = PathSimulator(settings=SimulationSettings(block_size=2, parallel=True, max_workers=2))
        with pytest.raises(SimulationCancelled):
            sim.simulate(grid, ArithmeticBrownianMotion(), 1, num_paths=10, cancel_event=event)

    def test_unset_event_runs(self, simulator, grid):
        result = simulator.simulate(grid, ArithmeticBrownianMotion(), 1, num_paths=4, cancel_event=threading.Event())
        assert result.num_paths == 4


def test_module_level_simulate(settings, grid):
    result = simulate(grid, GeometricBrownianMotion(), 5, num_paths=4, antithetic=True, settings=settings)
    direct = PathSimulator(settings=settings).simulate(grid, GeometricBrownianMotion(), 5, num_paths=4, antithetic=True)
    np.testing.assert_array_equal(result.paths, direct.paths)
