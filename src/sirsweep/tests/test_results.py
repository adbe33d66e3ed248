import io

import numpy as np
import pandas as pd
import pytest

from sirsweep.errors import InvalidInput
from sirsweep.integrator import IntegrationStats, Trajectory
from sirsweep.results import (COLUMNS, ResultRecord, ResultTable, compute_epidemic_metrics,
                              records_from_trajectory, summarize)


def _trajectory(times, states):
    stats = IntegrationStats(method="dopri5")
    return Trajectory(np.asarray(times, dtype=float), np.asarray(states, dtype=float), ("S", "I", "R"), stats)


@pytest.fixture
def trajectory():
    return _trajectory([1.0, 2.0, 3.0],
                       [[0.9, 0.1, 0.0],
                        [0.8, 0.15, 0.05],
                        [0.75, 0.12, 0.13]])


def test_relabelling_is_exact(trajectory):
    records = list(records_from_trajectory("R0=2", trajectory))

    assert len(records) == 9
    assert records[0] == ResultRecord("R0=2", 1.0, "S", 0.9)
    assert records[4] == ResultRecord("R0=2", 2.0, "I", 0.15)
    assert [r.value for r in records] == list(trajectory.states.ravel())


def test_duplicate_key_is_rejected(trajectory):
    table = ResultTable()
    table.add_trajectory("a", trajectory)
    with pytest.raises(InvalidInput):
        table.add(ResultRecord("a", 2.0, "I", 0.5))


def test_equality_ignores_insertion_order(trajectory):
    forward = ResultTable()
    forward.add_trajectory("a", trajectory)
    forward.add_trajectory("b", trajectory)

    backward = ResultTable(reversed(list(forward)))

    assert forward == backward
    assert list(forward) == list(backward)


def test_merge_combines_disjoint_tables(trajectory):
    a, b = ResultTable(), ResultTable()
    a.add_trajectory("a", trajectory)
    b.add_trajectory("b", trajectory)
    a.merge(b)

    assert len(a) == 18
    assert ("b", 3.0, "R") in a
    assert a.value("b", 3, "R") == 0.13


def test_iteration_is_sorted_by_scenario_time_and_compartment(trajectory):
    table = ResultTable()
    table.add_trajectory("z", trajectory)
    table.add_trajectory("a", trajectory)
    keys = [(r.scenario_id, r.time, r.compartment) for r in table]

    assert keys[:4] == [("a", 1.0, "S"), ("a", 1.0, "I"), ("a", 1.0, "R"), ("a", 2.0, "S")]
    assert keys[-1] == ("z", 3.0, "R")


def test_to_frame_and_wide(trajectory):
    table = ResultTable()
    table.add_trajectory("R0=2", trajectory)

    df = table.to_frame()
    assert list(df.columns) == COLUMNS
    assert len(df) == 9

    wide = table.wide("R0=2")
    assert list(wide.columns) == ["S", "I", "R"]
    assert list(wide.index) == [1.0, 2.0, 3.0]
    np.testing.assert_array_equal(wide.to_numpy(), trajectory.states)

    with pytest.raises(KeyError):
        table.wide("missing")


def test_to_csv_long_form(trajectory):
    table = ResultTable()
    table.add_trajectory("R0=2", trajectory)

    text = table.to_csv()
    lines = text.strip().splitlines()
    assert lines[0] == "scenario_id,time,compartment,value"
    assert len(lines) == 10

    back = pd.read_csv(io.StringIO(text))
    assert back["value"].tolist() == [r.value for r in table]

    tabbed = table.to_csv(sep="\t")
    assert tabbed.splitlines()[0] == "scenario_id\ttime\tcompartment\tvalue"


def test_epidemic_metrics():
    t = np.arange(1.0, 11.0)
    I = np.array([0.01, 0.05, 0.2, 0.4, 0.3, 0.1, 0.05, 0.01, 0.003, 0.001])
    R = np.linspace(0.0, 0.9, 10)
    metrics = compute_epidemic_metrics(t, I, R)

    assert metrics["peak_day"] == 4.0
    assert metrics["peak_infected"] == 0.4
    assert metrics["final_size"] == pytest.approx(0.9)
    # first value under 1% of the peak is 0.003 on day 9, counted from t0 = 0
    assert metrics["epidemic_duration"] == 9.0
    assert compute_epidemic_metrics(t, I, R, t0=1.0)["epidemic_duration"] == 8.0


def test_epidemic_without_decline_lasts_to_the_last_observation():
    t = np.arange(1.0, 6.0)
    I = np.array([0.01, 0.02, 0.03, 0.02, 0.01])
    metrics = compute_epidemic_metrics(t, I, np.zeros(5))

    assert metrics["epidemic_duration"] == 5.0


def test_summarize_one_row_per_scenario(trajectory):
    table = ResultTable()
    table.add_trajectory("a", trajectory)
    table.add_trajectory("b", trajectory)
    summary = summarize(table)

    assert list(summary["scenario_id"]) == ["a", "b"]
    assert list(summary.columns) == ["scenario_id", "peak_day", "peak_infected", "final_size", "epidemic_duration"]
    assert summary.loc[0, "peak_day"] == 2.0
    assert summary.loc[0, "final_size"] == 0.13


def test_scenario_ids_order_numbers_by_value(trajectory):
    table = ResultTable()
    for scenario_id in ("R0=10", "R0=2", "R0=1.5", "R0=-1"):
        table.add_trajectory(scenario_id, trajectory)

    assert table.scenario_ids() == ["R0=-1", "R0=1.5", "R0=2", "R0=10"]
    assert [r.scenario_id for r in table][::9] == ["R0=-1", "R0=1.5", "R0=2", "R0=10"]
    assert list(summarize(table)["scenario_id"]) == ["R0=-1", "R0=1.5", "R0=2", "R0=10"]
