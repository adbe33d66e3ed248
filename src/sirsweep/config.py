"""
===========================================================
config.py
Last Updated: 2026-10-17
===========================================================

Description:
    Sweep configuration: the R0 values to compare, the shared
    disease natural history and initial condition, and the
    integrator tolerances. Loadable from a JSON file.

Example Usage:
    from sirsweep.config import SweepConfig, load_config
    cfg = load_config("sweep.json")
    table, failures = ScenarioRunner(cfg.integrator_config(),
                                     workers=cfg.workers).run(cfg.scenarios())

Notes:
    - All rates are per day; observation times are days 1..days.
    - Unknown keys in a config file are rejected.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .errors import InvalidInput
from .integrator import METHODS, IntegratorConfig
from .sweep import Scenario, make_r0_sweep


def _whole_number(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not float(value).is_integer():
        raise InvalidInput(f"{name} must be a whole number, got {value!r}")
    return int(value)


@dataclass
class SweepConfig:
    """
    Parameter set for an R0 sweep of the SIR model.
    """

    # ==================== Scenarios ==============================================
    r0_values: Tuple[float, ...] = (1.0, 2.0, 3.0, 4.0, 5.0)
    infectious_period: float = 14.0     # days
    initial_infected: float = 0.01      # fraction of the population
    days: int = 365

    # ==================== Integrator =============================================
    atol: float = 1e-6
    rtol: float = 1e-6
    max_step: Optional[float] = None
    initial_step: Optional[float] = None
    method: str = "auto"

    # ==================== Execution ==============================================
    workers: int = 1

    def __post_init__(self):
        if isinstance(self.r0_values, str):
            raise InvalidInput(f"r0_values must be a list of numbers, got {self.r0_values!r}")
        try:
            self.r0_values = tuple(float(r) for r in self.r0_values)
            self.infectious_period = float(self.infectious_period)
            self.initial_infected = float(self.initial_infected)
            self.atol = float(self.atol)
            self.rtol = float(self.rtol)
        except (TypeError, ValueError) as exc:
            raise InvalidInput(f"numeric settings must be numbers: {exc}") from exc
        if not self.r0_values:
            raise InvalidInput("at least one R0 value is required")
        if len(set(self.r0_values)) != len(self.r0_values):
            raise InvalidInput(f"r0_values must not repeat, got {list(self.r0_values)}")
        if not self.infectious_period > 0:
            raise InvalidInput(f"infectious_period must be positive, got {self.infectious_period}")
        if not 0 <= self.initial_infected <= 1:
            raise InvalidInput(f"initial_infected must lie in [0, 1], got {self.initial_infected}")
        self.days = _whole_number("days", self.days)
        if self.days < 1:
            raise InvalidInput(f"days must be at least 1, got {self.days}")
        if self.method not in METHODS:
            raise InvalidInput(f"method must be one of {METHODS}, got {self.method!r}")
        self.workers = _whole_number("workers", self.workers)
        if self.workers < 1:
            raise InvalidInput(f"workers must be at least 1, got {self.workers}")

    @property
    def betas(self) -> List[float]:
        return [r0 / self.infectious_period for r0 in self.r0_values]

    @classmethod
    def from_dict(cls, values: dict) -> "SweepConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise InvalidInput(f"unknown configuration keys: {unknown}")
        return cls(**values)

    def to_dict(self) -> dict:
        values = asdict(self)
        values["r0_values"] = list(self.r0_values)
        return values

    def scenarios(self) -> List[Scenario]:
        return make_r0_sweep(self.r0_values, self.infectious_period, self.initial_infected, self.days)

    def integrator_config(self) -> IntegratorConfig:
        return IntegratorConfig(
            atol=self.atol,
            rtol=self.rtol,
            max_step=self.max_step,
            initial_step=self.initial_step,
            method=self.method,
        )

    def describe(self) -> str:
        """Multi-line summary of the scenarios and solver settings"""
        lines = [
            f"infectious period: {self.infectious_period:g} days (gamma = {1 / self.infectious_period:.4f}/day)",
            f"initial infected: {self.initial_infected:g}, horizon: {self.days} days",
        ]
        lines += [f"R0 = {r0:g}: beta = {beta:.4f}/day" for r0, beta in zip(self.r0_values, self.betas)]
        lines.append(f"atol = {self.atol:g}, rtol = {self.rtol:g}, method = {self.method}")
        return "\n".join(lines)


def load_config(path: Union[str, Path]) -> SweepConfig:
    """Read a SweepConfig from a JSON object"""
    with Path(path).open() as fh:
        try:
            values = json.load(fh)
        except json.JSONDecodeError as exc:
            raise InvalidInput(f"{path}: {exc}") from exc
    if not isinstance(values, dict):
        raise InvalidInput(f"{path}: expected a JSON object")
    return SweepConfig.from_dict(values)
