"""Tests for the time grid and time-dependent parameters."""

import numpy as np
import pytest

from sdesim import ConfigurationError, TimeDependent, TimeGrid, as_parameter


class TestTimeGrid:
    def test_shape_and_step(self):
        grid = TimeGrid(horizon=1.0, num_steps=252)
        assert grid.times.shape == (253,)
        assert grid.dt == pytest.approx(1 / 252)
        assert grid.times[0] == 0.0
        assert grid.times[-1] == 1.0

    def test_offset_start(self):
        grid = TimeGrid(start=0.5, horizon=2.0, num_steps=3)
        np.testing.assert_allclose(grid.times, [0.5, 1.0, 1.5, 2.0])
        assert grid.duration == 1.5

    def test_times_read_only(self):
        grid = TimeGrid(horizon=1.0, num_steps=4)
        with pytest.raises(ValueError):
            grid.times[0] = 1.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"horizon": 1.0, "num_steps": 0},
            {"horizon": 1.0, "num_steps": -3},
            {"horizon": 1.0, "num_steps": 2.5},
            {"horizon": 0.0, "num_steps": 10},
            {"horizon": 1.0, "num_steps": 10, "start": 2.0},
            {"horizon": float("inf"), "num_steps": 10},
            {"horizon": 1.0, "num_steps": True},
        ],
    )
    def test_invalid_grid(self, kwargs):
        with pytest.raises(ConfigurationError):
            TimeGrid(**kwargs)

    def test_from_step_rounds_up(self):
        grid = TimeGrid.from_step(horizon=1.0, dt=0.3)
        assert grid.num_steps == 4
        assert grid.dt <= 0.3
        assert TimeGrid.from_step(horizon=1.0, dt=0.1).num_steps == 10

    def test_grid_is_hashable_and_comparable(self):
        assert TimeGrid(horizon=1.0, num_steps=4) == TimeGrid(horizon=1.0, num_steps=4)
        assert len({TimeGrid(horizon=1.0, num_steps=4), TimeGrid(horizon=1.0, num_steps=4)}) == 1


class TestTimeDependent:
    def test_constant_ignores_time(self):
        p = TimeDependent.constant(0.3)
        assert p(0.0) == p(100.0) == 0.3
        assert p.is_constant
        assert p.derivative(1.0) == 0.0

    def test_linear_piecewise_and_clamping(self):
        p = TimeDependent.piecewise([0.0, 1.0, 2.0], [1.0, 3.0, 2.0])
        assert p(0.5) == pytest.approx(2.0)
        assert p(1.5) == pytest.approx(2.5)
        assert p(-1.0) == 1.0
        assert p(1.0 + 1e-12) == pytest.approx(3.0)
        assert p(10.0) == 2.0

    def test_previous_is_step_curve(self):
        p = TimeDependent.piecewise([0.0, 0.5], [1.0, 3.0], interpolation="previous")
        assert p(0.49) == 1.0
        assert p(0.5) == 3.0
        assert p(0.9) == 3.0

    def test_nearest(self):
        p = TimeDependent.piecewise([0.0, 1.0], [1.0, 3.0], interpolation="nearest")
        assert p(0.4) == 1.0
        assert p(0.6) == 3.0

    def test_callable_with_domain(self):
        p = TimeDependent.from_callable(lambda t: 1.0 + t, domain=(0.0, 1.0))
        assert p(0.5) == pytest.approx(1.5)
        assert p(1.0 + 1e-9) == pytest.approx(2.0)
        assert p.derivative(0.5) == pytest.approx(1.0)

    def test_on_grid_clamps_to_grid(self):
        grid = TimeGrid(horizon=1.0, num_steps=4)
        p = TimeDependent.from_callable(lambda t: t * t)
        np.testing.assert_allclose(p.on_grid(grid), grid.times**2)
        assert TimeDependent.constant(2.0).on_grid(grid).shape == (5,)

    @pytest.mark.parametrize(
        "times, values, interpolation",
        [
            ([0.0, 1.0], [1.0], "linear"),
            ([1.0, 0.0], [1.0, 2.0], "linear"),
            ([0.0, 1.0], [1.0, np.nan], "linear"),
            ([0.0, 1.0], [1.0, 2.0], "cubic"),
            ([], [], "linear"),
        ],
    )
    def test_invalid_piecewise(self, times, values, interpolation):
        with pytest.raises(ConfigurationError):
            TimeDependent.piecewise(times, values, interpolation=interpolation)

    def test_as_parameter(self):
        assert as_parameter(2).is_constant
        assert as_parameter(lambda t: t)(0.25) == 0.25
        p = TimeDependent.constant(1.0)
        assert as_parameter(p) is p
        with pytest.raises(ConfigurationError):
            as_parameter("0.2", "sigma")
        with pytest.raises(ConfigurationError):
            as_parameter(float("nan"), "sigma")
