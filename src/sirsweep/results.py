"""
===========================================================
results.py
Last Updated: 2026-10-17
===========================================================

Description:
    Long-form result table for scenario sweeps: one record per
    (scenario, observation time, compartment).

    Defines:
        - ResultRecord: (scenario_id, time, compartment, value).
        - records_from_trajectory(): relabel a Trajectory.
        - ResultTable: keyed collection with pandas/CSV export.
        - summarize(): peak day, peak prevalence, final size and
                       epidemic duration per scenario.

Example Usage:
    table = ResultTable()
    table.add_trajectory("R0=2", trajectory)
    df = table.to_frame()
    metrics = summarize(table)

Notes:
    - Values are stored exactly as the integrator produced them.
    - Iteration order is sorted (scenario_id, time, compartment)
      so tables filled in different orders compare equal.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations

import re
from typing import Dict, Iterable, Iterator, List, NamedTuple, Tuple

import numpy as np
import pandas as pd

from .errors import InvalidInput
from .integrator import Trajectory
from .sir import COMPARTMENTS

COLUMNS = ["scenario_id", "time", "compartment", "value"]

_NUMBER = re.compile(r"(-?\d+(?:\.\d*)?(?:[eE][-+]?\d+)?)")


class ResultRecord(NamedTuple):
    scenario_id: str
    time: float
    compartment: str
    value: float


def records_from_trajectory(scenario_id: str, trajectory: Trajectory) -> Iterator[ResultRecord]:
    """Relabel every (time, compartment) value of a trajectory"""
    for t, state in trajectory.items():
        for name, value in zip(trajectory.compartments, state):
            yield ResultRecord(scenario_id, float(t), name, float(value))


def _scenario_rank(scenario_id: str) -> Tuple:
    # numbers inside ids compare by value, so R0=2 sorts before R0=10
    parts = _NUMBER.split(scenario_id)
    return tuple(float(p) if i % 2 else p for i, p in enumerate(parts))


def _compartment_rank(name: str) -> Tuple[int, str]:
    # S, I, R in model order, anything else alphabetically after them
    if name in COMPARTMENTS:
        return COMPARTMENTS.index(name), ""
    return len(COMPARTMENTS), name


class ResultTable:
    """Set of ResultRecords uniquely keyed by (scenario_id, time, compartment)"""

    def __init__(self, records: Iterable[ResultRecord] = ()):
        self._values: Dict[Tuple[str, float, str], float] = {}
        for record in records:
            self.add(record)

    def add(self, record: ResultRecord) -> None:
        key = (record.scenario_id, record.time, record.compartment)
        if key in self._values:
            raise InvalidInput(f"duplicate result for {key}")
        self._values[key] = record.value

    def add_trajectory(self, scenario_id: str, trajectory: Trajectory) -> None:
        for record in records_from_trajectory(scenario_id, trajectory):
            self.add(record)

    def merge(self, other: "ResultTable") -> None:
        for record in other:
            self.add(record)

    def _sorted_keys(self) -> List[Tuple[str, float, str]]:
        return sorted(self._values, key=lambda k: (_scenario_rank(k[0]), k[0], k[1], _compartment_rank(k[2])))

    def __iter__(self) -> Iterator[ResultRecord]:
        for key in self._sorted_keys():
            yield ResultRecord(*key, self._values[key])

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ResultTable):
            return NotImplemented
        return self._values == other._values

    def __contains__(self, key) -> bool:
        return tuple(key) in self._values

    def value(self, scenario_id: str, time: float, compartment: str) -> float:
        return self._values[(scenario_id, float(time), compartment)]

    def scenario_ids(self) -> List[str]:
        return sorted({key[0] for key in self._values}, key=lambda s: (_scenario_rank(s), s))

    def to_frame(self) -> pd.DataFrame:
        """Long-form DataFrame with columns scenario_id, time, compartment, value"""
        return pd.DataFrame.from_records(list(self), columns=COLUMNS)

    def wide(self, scenario_id: str) -> pd.DataFrame:
        """One scenario pivoted to a time-indexed frame with one column per compartment"""
        df = self.to_frame()
        sub = df[df["scenario_id"] == scenario_id]
        if sub.empty:
            raise KeyError(scenario_id)
        wide = sub.pivot(index="time", columns="compartment", values="value")
        ordered = sorted(wide.columns, key=_compartment_rank)
        wide = wide[ordered]
        wide.columns.name = None
        return wide

    def to_csv(self, path_or_buf=None, sep: str = ","):
        """Delimited text export; returns the text when no target is given"""
        return self.to_frame().to_csv(path_or_buf, sep=sep, index=False)


def compute_epidemic_metrics(t: np.ndarray, I: np.ndarray, R: np.ndarray, t0: float = 0.0) -> dict:
    """
    Compute key epidemic metrics from simulation results.

    Parameters
    ----------
    t : np.ndarray
        Time points
    I : np.ndarray
        Infectious fraction over time
    R : np.ndarray
        Removed fraction over time
    t0 : float
        Start of the simulation (observations usually begin after it)

    Returns
    -------
    metrics : dict
        Dictionary containing:
        - peak_day: time at which I peaks
        - peak_infected: maximum infectious fraction
        - final_size: removed fraction at the last time point
        - epidemic_duration: time from t0 until I first falls below
          1% of the peak after the peak (to the last time if it never does)
    """
    peak_idx = int(np.argmax(I))
    peak_infected = float(I[peak_idx])

    threshold = 0.01 * peak_infected
    end_idx = np.where(I[peak_idx:] < threshold)[0]
    if len(end_idx) > 0:
        duration = t[peak_idx + end_idx[0]] - t0
    else:
        duration = t[-1] - t0

    return {
        "peak_day": float(t[peak_idx]),
        "peak_infected": peak_infected,
        "final_size": float(R[-1]),
        "epidemic_duration": float(duration),
    }


def summarize(table: ResultTable, t0: float = 0.0) -> pd.DataFrame:
    """One row of epidemic metrics per scenario, durations measured from t0"""
    rows = []
    for scenario_id in table.scenario_ids():
        wide = table.wide(scenario_id)
        metrics = compute_epidemic_metrics(wide.index.to_numpy(), wide["I"].to_numpy(), wide["R"].to_numpy(), t0=t0)
        rows.append({"scenario_id": scenario_id, **metrics})
    columns = ["scenario_id", "peak_day", "peak_infected", "final_size", "epidemic_duration"]
    return pd.DataFrame.from_records(rows, columns=columns)
