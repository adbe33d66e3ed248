"""
===========================================================
sir.py
Last Updated: 2026-10-17
===========================================================

Description:
    Core deterministic SIR (Susceptible-Infectious-Removed)
    model in population-normalised form (S + I + R = 1).

    Defines:
        - CompartmentState: the (S, I, R) triple.
        - ModelParameters: transmission and removal rates,
                           constructible from (R0, infectious period).
        - sir_rhs(): Computes the ODE right-hand side.
        - sir_jacobian(): Analytic Jacobian of sir_rhs().

Example Usage:
    from sirsweep.sir import ModelParameters, CompartmentState, sir_rhs
    params = ModelParameters.from_r0(2.0, infectious_period=14)
    y0 = CompartmentState.from_infected(0.01)
    dydt = sir_rhs(0.0, y0.as_array(), params)

Notes:
    - Closed population, homogeneous mixing, permanent removal.
    - The equations are evaluated on whatever state the
      integrator proposes; negative values are not clamped here.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from .errors import InvalidInput

COMPARTMENTS = ("S", "I", "R")

# Negative initial compartments smaller than this are treated as round-off
STATE_TOLERANCE = 1e-12


class CompartmentState(NamedTuple):
    S: float
    I: float
    R: float

    @classmethod
    def from_infected(cls, I0: float, R0_init: float = 0.0, total: float = 1.0) -> "CompartmentState":
        """Everyone not infectious or removed starts susceptible"""
        return cls(float(total - I0 - R0_init), float(I0), float(R0_init))

    @property
    def total(self) -> float:
        return self.S + self.I + self.R

    def as_array(self) -> np.ndarray:
        return np.array(self, dtype=float)

    def validate(self) -> None:
        values = np.array(self, dtype=float)
        if not np.all(np.isfinite(values)):
            raise InvalidInput(f"initial state must be finite, got {tuple(self)}")
        if np.any(values < -STATE_TOLERANCE):
            raise InvalidInput(f"initial state has a negative compartment: {tuple(self)}")


@dataclass(frozen=True)
class ModelParameters:
    """
    Rates of the SIR model.

    Parameters:
    -----------
    beta: float
        Transmission rate (contacts per time x probability of transmission per contact)
    gamma: float
        Removal rate (1/gamma = mean infectious period)
    """
    beta: float
    gamma: float

    @classmethod
    def from_r0(cls, R0: float, infectious_period: float) -> "ModelParameters":
        """gamma = 1/infectious_period, beta = R0 * gamma"""
        if not infectious_period > 0:
            raise InvalidInput(f"infectious_period must be positive, got {infectious_period}")
        gamma = 1.0 / float(infectious_period)
        return cls(beta=float(R0) * gamma, gamma=gamma)

    @property
    def R0(self) -> float:
        """
        Basic reproduction number: average number of secondary infections
        caused by a single infected individual in a fully susceptible population
        """
        return self.beta / self.gamma

    @property
    def infectious_period(self) -> float:
        return 1.0 / self.gamma

    def validate(self) -> None:
        for name in ("beta", "gamma"):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0):
                raise InvalidInput(f"{name} must be positive and finite, got {value}")


def sir_rhs(t: float, y: np.ndarray, params: ModelParameters) -> np.ndarray:
    """
    Compute derivatives for the SIR model

    Parameters:
    -----------
    t: float
        current time (not used in autonomous system, kept for the integrator signature)
    y: array-like
        current state [S, I, R]
    params: ModelParameters
        transmission and removal rates

    Returns:
    --------
    dydt: np.ndarray
        Derivatives [dS/dt, dI/dt, dR/dt]
    """
    S, I, R = y
    infection = params.beta * S * I
    removal = params.gamma * I
    return np.array([-infection, infection - removal, removal])


def sir_jacobian(t: float, y: np.ndarray, params: ModelParameters) -> np.ndarray:
    """d(sir_rhs)/dy, rows are equations and columns are compartments"""
    S, I, R = y
    beta, gamma = params.beta, params.gamma
    return np.array([
        [-beta * I, -beta * S, 0.0],
        [beta * I, beta * S - gamma, 0.0],
        [0.0, gamma, 0.0],
    ])
