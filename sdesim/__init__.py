"""
sdesim: stochastic process path simulation.

Generates discretized sample paths for a family of SDE models with
time-dependent coefficients (Brownian, mean-reverting, short-rate, stochastic
volatility, jump and fractional processes), with antithetic sampling,
reproducible per-block random streams and parallel execution.
"""

from .config import SimulationSettings, get_settings
from .exceptions import (
    ConfigurationError,
    NumericalAdvisory,
    RandomSourceError,
    SimulationCancelled,
    SimulationError,
)
from .grid import TimeGrid
from .parameters import TimeDependent, as_parameter
from .rng import RandomSource
from .processes import (
    SDEProcess,
    JumpProcess,
    ArithmeticBrownianMotion,
    GeometricBrownianMotion,
    BrownianBridge,
    FractionalBrownianMotion,
    OrnsteinUhlenbeck,
    FractionalOrnsteinUhlenbeck,
    CoxIngersollRoss,
    FractionalCoxIngersollRoss,
    HullWhite,
    HoLee,
    BlackDermanToy,
    HestonProcess,
    ConstantElasticityOfVariance,
    MertonJumpDiffusion,
    CustomSDE,
)
from .solvers import EulerMaruyama, Milstein, Scheme
from .simulator import PathSimulator, SimulationResult, simulate
from .analysis import (
    ConvergenceAnalyzer,
    ConvergenceResult,
    EnsembleStatistics,
    SamplingError,
    ensemble_statistics,
    sample_correlation,
)
from .finance import MonteCarloPricer, OptionPrice

__all__ = [
    "SimulationSettings",
    "get_settings",
    "ConfigurationError",
    "NumericalAdvisory",
    "RandomSourceError",
    "SimulationCancelled",
    "SimulationError",
    "TimeGrid",
    "TimeDependent",
    "as_parameter",
    "RandomSource",
    "SDEProcess",
    "JumpProcess",
    "ArithmeticBrownianMotion",
    "GeometricBrownianMotion",
    "BrownianBridge",
    "FractionalBrownianMotion",
    "OrnsteinUhlenbeck",
    "FractionalOrnsteinUhlenbeck",
    "CoxIngersollRoss",
    "FractionalCoxIngersollRoss",
    "HullWhite",
    "HoLee",
    "BlackDermanToy",
    "HestonProcess",
    "ConstantElasticityOfVariance",
    "MertonJumpDiffusion",
    "CustomSDE",
    "EulerMaruyama",
    "Milstein",
    "Scheme",
    "PathSimulator",
    "SimulationResult",
    "simulate",
    "ConvergenceAnalyzer",
    "ConvergenceResult",
    "SamplingError",
    "EnsembleStatistics",
    "ensemble_statistics",
    "sample_correlation",
    "MonteCarloPricer",
    "OptionPrice",
]

__version__ = "1.0.0"
