"""Deterministic SIR simulation engine: adaptive integrator and R0 scenario sweeps."""
from .errors import ConvergenceFailure, InvalidInput, NumericalAnomaly, SimulationError
from .integrator import AdaptiveIntegrator, IntegratorConfig, Trajectory, integrate
from .results import ResultRecord, ResultTable, summarize
from .sir import CompartmentState, ModelParameters, sir_jacobian, sir_rhs
from .sweep import Scenario, ScenarioFailure, ScenarioRunner, make_r0_sweep, run_scenario

__version__ = "0.1.0"
