"""
===========================================================
plotting.py
Last Updated: 2026-10-17
===========================================================
Visualization helpers for sweep results.

Consumes a ResultTable and draws either one compartment
across every scenario (e.g. prevalence for R0 = 1..5) or all
three compartments of a single scenario.
"""
from typing import Optional

import matplotlib.pyplot as plt
import seaborn as sns
from matplotlib.axes import Axes

from .results import ResultTable

COMPARTMENT_LABELS = {"S": "Susceptible", "I": "Infectious", "R": "Removed"}
COMPARTMENT_STYLES = {"S": "b-", "I": "r-", "R": "g-"}

sns.set_style("whitegrid")
sns.set_context("notebook")


def plot_compartment(table: ResultTable,
                     compartment: str = "I",
                     ax: Optional[Axes] = None,
                     title: Optional[str] = None,
                     save_path: Optional[str] = None) -> Axes:
    """
    Plot one compartment for every scenario in the table.

    Parameters
    ----------
    table : ResultTable
        Sweep results
    compartment : str
        'S', 'I' or 'R'
    ax : matplotlib.axes.Axes, optional
        Axes to plot on. If None, creates new figure
    title : str, optional
        Custom title
    save_path : str, optional
        If provided, save the figure to this path

    Returns
    -------
    ax : matplotlib.axes.Axes
        The axes object with the plot
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(10, 6))

    scenario_ids = table.scenario_ids()
    colors = sns.color_palette("viridis", max(len(scenario_ids), 1))
    for color, scenario_id in zip(colors, scenario_ids):
        wide = table.wide(scenario_id)
        ax.plot(wide.index, wide[compartment], color=color, linewidth=2, label=scenario_id)

    ax.set_xlabel('Time (days)', fontsize=12)
    ax.set_ylabel(f'{COMPARTMENT_LABELS.get(compartment, compartment)} fraction', fontsize=12)
    ax.set_title(title if title else f'{COMPARTMENT_LABELS.get(compartment, compartment)} by scenario',
                 fontsize=14)
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)

    if save_path:
        ax.figure.tight_layout()
        ax.figure.savefig(save_path, dpi=150, bbox_inches='tight')
    return ax


def plot_scenario(table: ResultTable, scenario_id: str, ax: Optional[Axes] = None) -> Axes:
    """S, I and R over time for one scenario"""
    if ax is None:
        fig, ax = plt.subplots(figsize=(10, 6))

    wide = table.wide(scenario_id)
    for compartment in wide.columns:
        ax.plot(wide.index, wide[compartment], COMPARTMENT_STYLES.get(compartment, '-'),
                linewidth=2, label=COMPARTMENT_LABELS.get(compartment, compartment))

    ax.set_xlabel('Time (days)', fontsize=12)
    ax.set_ylabel('Fraction of population', fontsize=12)
    ax.set_title(f'SIR Model ({scenario_id})', fontsize=14)
    ax.legend(fontsize=11)
    ax.grid(True, alpha=0.3)
    return ax
