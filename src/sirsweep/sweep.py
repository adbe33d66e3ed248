"""
===========================================================
sweep.py
Last Updated: 2026-10-17
===========================================================

Description:
    Scenario sweeps for the deterministic SIR model: build one
    immutable Scenario per R0 value, integrate each one
    independently and fold the trajectories into a ResultTable.

Example Usage:
    from sirsweep.sweep import ScenarioRunner, make_r0_sweep
    scenarios = make_r0_sweep([1, 2, 3, 4, 5], infectious_period=14,
                              initial_infected=0.01, days=365)
    table, failures = ScenarioRunner(workers=4).run(scenarios)

Notes:
    - Scenarios share no mutable state; with workers > 1 they
      are mapped over a multiprocessing Pool and the per-worker
      results are merged once every worker has finished.
    - A failing scenario is reported in `failures` and does not
      stop the others.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from multiprocessing import Pool
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

from .errors import InvalidInput, SimulationError
from .integrator import IntegratorConfig, Trajectory, validate_times, integrate
from .results import ResultTable
from .sir import COMPARTMENTS, CompartmentState, ModelParameters, sir_jacobian, sir_rhs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Scenario:
    """One fully specified parameterisation of the model"""
    scenario_id: str
    parameters: ModelParameters
    initial_state: CompartmentState
    times: Tuple[float, ...]
    t0: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "times", tuple(float(t) for t in self.times))
        object.__setattr__(self, "initial_state", CompartmentState(*self.initial_state))

    @classmethod
    def from_r0(cls,
                R0: float,
                infectious_period: float,
                initial_infected: float,
                days: int,
                scenario_id: Optional[str] = None) -> "Scenario":
        """Scenario observed daily on days 1..days, starting from t0 = 0"""
        return cls(
            scenario_id=scenario_id if scenario_id is not None else f"R0={R0:.12g}",
            parameters=ModelParameters.from_r0(R0, infectious_period),
            initial_state=CompartmentState.from_infected(initial_infected),
            times=tuple(range(1, int(days) + 1)),
        )

    def validate(self) -> None:
        self.parameters.validate()
        self.initial_state.validate()
        validate_times(self.times, self.t0)


class ScenarioFailure(NamedTuple):
    scenario_id: str
    error: SimulationError


def make_r0_sweep(r0_values: Iterable[float],
                  infectious_period: float,
                  initial_infected: float,
                  days: int) -> List[Scenario]:
    """One scenario per R0, all other settings shared"""
    return [Scenario.from_r0(r0, infectious_period, initial_infected, days) for r0 in r0_values]


def run_scenario(scenario: Scenario, config: Optional[IntegratorConfig] = None) -> Trajectory:
    """Validate and integrate a single scenario"""
    scenario.validate()
    params = scenario.parameters
    return integrate(
        lambda t, y: sir_rhs(t, y, params),
        scenario.initial_state.as_array(),
        scenario.times,
        t0=scenario.t0,
        config=config,
        jac=lambda t, y: sir_jacobian(t, y, params),
        compartments=COMPARTMENTS,
    )


def _run_one(args):
    scenario, config = args
    try:
        trajectory = run_scenario(scenario, config)
    except SimulationError as exc:
        return scenario.scenario_id, None, exc
    return scenario.scenario_id, trajectory, None


class ScenarioRunner:
    """
    Run the integrator once per scenario and collect a ResultTable.

    Parameters:
    -----------
    config: IntegratorConfig, optional
        Solver tolerances shared by every scenario
    workers: int
        Worker processes; 1 runs in the calling process
    """
    def __init__(self, config: Optional[IntegratorConfig] = None, workers: int = 1):
        if workers < 1:
            raise InvalidInput(f"workers must be at least 1, got {workers}")
        self.config = config if config is not None else IntegratorConfig()
        self.workers = int(workers)

    def run(self, scenarios: Sequence[Scenario]) -> Tuple[ResultTable, List[ScenarioFailure]]:
        scenarios = list(scenarios)
        ids = [s.scenario_id for s in scenarios]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise InvalidInput(f"duplicate scenario ids: {duplicates}")

        failures: List[ScenarioFailure] = []
        runnable = []
        for scenario in scenarios:
            try:
                scenario.validate()
            except InvalidInput as exc:
                logger.warning("scenario %s rejected: %s", scenario.scenario_id, exc)
                failures.append(ScenarioFailure(scenario.scenario_id, exc))
            else:
                runnable.append(scenario)

        jobs = [(scenario, self.config) for scenario in runnable]
        if self.workers > 1 and len(jobs) > 1:
            with Pool(min(self.workers, len(jobs))) as pool:
                outcomes = pool.map(_run_one, jobs)
        else:
            outcomes = [_run_one(job) for job in jobs]

        table = ResultTable()
        for scenario_id, trajectory, error in outcomes:
            if error is not None:
                logger.warning("scenario %s failed: %s", scenario_id, error)
                failures.append(ScenarioFailure(scenario_id, error))
                continue
            table.add_trajectory(scenario_id, trajectory)
            logger.info("scenario %s: %d steps, %d evaluations (%s)", scenario_id,
                        trajectory.stats.n_accepted, trajectory.stats.n_evaluations,
                        trajectory.stats.method)

        logger.info("sweep finished: %d scenarios ok, %d failed",
                    len(scenarios) - len(failures), len(failures))
        return table, failures
