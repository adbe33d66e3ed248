"""
===========================================================
integrator.py
Last Updated: 2026-10-17
===========================================================

Description:
    Adaptive-step ODE integrator with local error control,
    dense output and automatic stiffness switching.

    Defines:
        - IntegratorConfig: tolerances, step bounds, retry and
                            runtime ceilings, method selection.
        - DormandPrince: explicit Runge-Kutta 5(4) pair (FSAL)
                         with a quartic continuous extension.
        - Rosenbrock23: linearly implicit, L-stable 2(3) W-method
                        (Shampine & Reichelt) used once the
                        problem looks stiff.
        - AdaptiveIntegrator / integrate(): drives the steppers
          and reports one state per requested observation time.

Example Usage:
    from sirsweep.integrator import integrate, IntegratorConfig
    traj = integrate(lambda t, y: -y, [1.0], times=[1, 2, 3],
                     config=IntegratorConfig(conserve_total=False))

Notes:
    - Steps are accepted when the RMS of
      err / (atol + rtol * max(|y|, |y_new|)) is <= 1.
    - Steps whose state goes negative or drifts off the initial
      total are rejected and retried at half the step.
    - The explicit formula runs until Hairer's stiffness test
      (h * rho > 3.25) fires repeatedly, or until a single step
      keeps being rejected; the solve then continues with the
      Rosenbrock formula.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
from scipy.linalg import lu_factor, lu_solve

from .errors import ConvergenceFailure, InvalidInput, NumericalAnomaly
from .sir import STATE_TOLERANCE

logger = logging.getLogger(__name__)

RHS = Callable[[float, np.ndarray], np.ndarray]

METHODS = ("auto", "dopri5", "rosenbrock")

SAFETY = 0.9
MIN_FACTOR = 0.2
MAX_FACTOR = 10.0
ANOMALY_FACTOR = 0.5
# consecutive non-stiff steps that clear the stiffness count
NONSTIFF_RESET = 6


@dataclass
class IntegratorConfig:
    """
    Solver options. All step sizes are in the time units of the model (days).
    """
    atol: float = 1e-6
    rtol: float = 1e-6
    max_step: float = np.inf
    initial_step: Optional[float] = None
    min_step: float = 1e-10
    max_retries: int = 25
    max_steps: int = 500_000
    deadline: Optional[float] = None    # wall-clock seconds per solve
    method: str = "auto"
    dense_output: bool = True
    nonnegative: bool = True
    conserve_total: bool = True
    stiffness_threshold: float = 3.25
    stiff_steps_to_switch: int = 15
    switch_after_rejections: int = 4

    def __post_init__(self):
        if self.max_step is None:
            self.max_step = np.inf
        if not self.atol > 0 or not self.rtol >= 0:
            raise InvalidInput(f"tolerances must satisfy atol > 0 and rtol >= 0, got {self.atol}, {self.rtol}")
        if not self.max_step > 0:
            raise InvalidInput(f"max_step must be positive, got {self.max_step}")
        if self.initial_step is not None and not self.initial_step > 0:
            raise InvalidInput(f"initial_step must be positive, got {self.initial_step}")
        if not self.min_step > 0:
            raise InvalidInput(f"min_step must be positive, got {self.min_step}")
        if self.max_retries < 1 or self.max_steps < 1:
            raise InvalidInput("max_retries and max_steps must be at least 1")
        if self.deadline is not None and not self.deadline > 0:
            raise InvalidInput(f"deadline must be positive, got {self.deadline}")
        if self.method not in METHODS:
            raise InvalidInput(f"method must be one of {METHODS}, got {self.method!r}")


@dataclass
class IntegrationStats:
    method: str
    n_evaluations: int = 0
    n_jacobians: int = 0
    n_accepted: int = 0
    n_rejected: int = 0
    n_anomalies: int = 0
    switched_at: Optional[float] = None


@dataclass
class Trajectory:
    """State at each requested observation time, one row per time"""
    times: np.ndarray
    states: np.ndarray
    compartments: Tuple[str, ...]
    stats: Optional[IntegrationStats] = None

    def __len__(self) -> int:
        return len(self.times)

    def __getitem__(self, compartment: str) -> np.ndarray:
        return self.states[:, self.compartments.index(compartment)]

    def items(self):
        """Iterate (time, state) pairs in time order"""
        return zip(self.times, self.states)


@dataclass
class _Step:
    t: float
    h: float
    y: np.ndarray
    y_new: np.ndarray
    f_new: np.ndarray
    error_norm: float
    K: np.ndarray
    stiffness: float = 0.0


class _CountedRHS:
    def __init__(self, fun: RHS):
        self.fun = fun
        self.calls = 0

    def __call__(self, t: float, y: np.ndarray) -> np.ndarray:
        self.calls += 1
        return np.asarray(self.fun(t, y), dtype=float)


def _rms_norm(x: np.ndarray) -> float:
    return float(np.linalg.norm(x) / math.sqrt(x.size))


def _error_norm(err, y, y_new, atol, rtol) -> float:
    scale = atol + rtol * np.maximum(np.abs(y), np.abs(y_new))
    norm = _rms_norm(err / scale)
    return norm if math.isfinite(norm) else math.inf


class DormandPrince:
    """Explicit Runge-Kutta 5(4) pair with FSAL and a quartic continuous extension"""
    name = "dopri5"
    error_exponent = 1.0 / 5.0

    C = np.array([0, 1/5, 3/10, 4/5, 8/9, 1])
    A = np.array([
        [0, 0, 0, 0, 0],
        [1/5, 0, 0, 0, 0],
        [3/40, 9/40, 0, 0, 0],
        [44/45, -56/15, 32/9, 0, 0],
        [19372/6561, -25360/2187, 64448/6561, -212/729, 0],
        [9017/3168, -355/33, 46732/5247, 49/176, -5103/18656],
    ])
    B = np.array([35/384, 0, 500/1113, 125/192, -2187/6784, 11/84])
    E = np.array([-71/57600, 0, 71/16695, -71/1920, 17253/339200, -22/525, 1/40])
    # coefficients of x, x^2, x^3, x^4 in the continuous extension, per stage
    P = np.array([
        [1, -8048581381/2820520608, 8663915743/2820520608, -12715105075/11282082432],
        [0, 0, 0, 0],
        [0, 131558114200/32700410799, -68118460800/10900136933, 87487479700/32700410799],
        [0, -1754552775/470086768, 14199869525/1410260304, -10690763975/1880347072],
        [0, 127303824393/49829197408, -318862633887/49829197408, 701980252875/199316789632],
        [0, -282668133/205662961, 2019193451/616988883, -1453857185/822651844],
        [0, 40617522/29380423, -110615467/29380423, 69997945/29380423],
    ])

    def __init__(self, fun: RHS, atol: float, rtol: float):
        self.fun = fun
        self.atol = atol
        self.rtol = rtol
        self.n_jacobians = 0

    def attempt(self, t: float, y: np.ndarray, f: np.ndarray, h: float) -> _Step:
        K = np.empty((7, y.size))
        K[0] = f
        for s in range(1, 6):
            dy = h * (K[:s].T @ self.A[s, :s])
            K[s] = self.fun(t + self.C[s] * h, y + dy)
        # dy now holds the increment used for the last stage (c = 1)
        y_stage = y + dy
        y_new = y + h * (K[:6].T @ self.B)
        f_new = self.fun(t + h, y_new)
        K[6] = f_new

        error_norm = _error_norm(h * (K.T @ self.E), y, y_new, self.atol, self.rtol)
        # both K[5] and K[6] are evaluated at t + h, so their difference
        # quotient estimates the dominant eigenvalue
        den = np.linalg.norm(y_new - y_stage)
        rho = np.linalg.norm(f_new - K[5]) / den if den > 0 else 0.0
        return _Step(t, h, y, y_new, f_new, error_norm, K, stiffness=h * rho)

    def interpolate(self, step: _Step, t: float) -> np.ndarray:
        x = (t - step.t) / step.h
        p = np.cumprod(np.full(4, x))
        return step.y + step.h * ((step.K.T @ self.P) @ p)


def _finite_difference_jacobian(fun: RHS, t: float, y: np.ndarray, f: np.ndarray) -> np.ndarray:
    J = np.empty((f.size, y.size))
    for j in range(y.size):
        delta = math.sqrt(np.finfo(float).eps) * max(1.0, abs(y[j]))
        shifted = y.copy()
        shifted[j] += delta
        J[:, j] = (fun(t, shifted) - f) / delta
    return J


class Rosenbrock23:
    """
    Linearly implicit Rosenbrock (W-)method of order 2 with a 3rd order
    error estimate (Shampine & Reichelt, the ode23s scheme).

    Each step solves three linear systems with the same matrix
    W = I - h*d*J, factorised once.
    """
    name = "rosenbrock"
    error_exponent = 1.0 / 3.0

    D = 1.0 / (2.0 + math.sqrt(2.0))
    E32 = 6.0 + math.sqrt(2.0)

    def __init__(self, fun: RHS, atol: float, rtol: float, jac: Optional[Callable] = None):
        self.fun = fun
        self.atol = atol
        self.rtol = rtol
        self.jac = jac
        self.n_jacobians = 0

    def _jacobian(self, t, y, f) -> np.ndarray:
        self.n_jacobians += 1
        if self.jac is not None:
            return np.asarray(self.jac(t, y), dtype=float)
        return _finite_difference_jacobian(self.fun, t, y, f)

    def _time_derivative(self, t, y, f) -> np.ndarray:
        delta = math.sqrt(np.finfo(float).eps) * max(1.0, abs(t))
        return (self.fun(t + delta, y) - f) / delta

    def attempt(self, t: float, y: np.ndarray, f: np.ndarray, h: float) -> _Step:
        J = self._jacobian(t, y, f)
        T = self._time_derivative(t, y, f)
        hd = h * self.D
        lu = lu_factor(np.eye(y.size) - hd * J, check_finite=False)

        k1 = lu_solve(lu, f + hd * T, check_finite=False)
        f1 = self.fun(t + 0.5 * h, y + 0.5 * h * k1)
        k2 = lu_solve(lu, f1 - k1, check_finite=False) + k1
        y_new = y + h * k2
        f_new = self.fun(t + h, y_new)
        k3 = lu_solve(lu, f_new - self.E32 * (k2 - f1) - 2.0 * (k1 - f) + hd * T, check_finite=False)

        error_norm = _error_norm(h / 6.0 * (k1 - 2.0 * k2 + k3), y, y_new, self.atol, self.rtol)
        return _Step(t, h, y, y_new, f_new, error_norm, np.vstack([k1, k2]))

    def interpolate(self, step: _Step, t: float) -> np.ndarray:
        s = (t - step.t) / step.h
        k1, k2 = step.K
        denom = 1.0 - 2.0 * self.D
        return step.y + step.h * (s * (1.0 - s) / denom * k1 + s * (s - 2.0 * self.D) / denom * k2)


def select_initial_step(fun: RHS, t0: float, y0: np.ndarray, f0: np.ndarray,
                        error_exponent: float, config: IntegratorConfig, t_end: float) -> float:
    """Starting step from the size of y0, f(y0) and a one-step derivative estimate"""
    scale = config.atol + np.abs(y0) * config.rtol
    d0 = _rms_norm(y0 / scale)
    d1 = _rms_norm(f0 / scale)
    if d0 < 1e-5 or d1 < 1e-5:
        h0 = 1e-6
    else:
        h0 = 0.01 * d0 / d1
    h0 = min(h0, t_end - t0)

    f1 = fun(t0 + h0, y0 + h0 * f0)
    d2 = _rms_norm((f1 - f0) / scale) / h0
    if d1 <= 1e-15 and d2 <= 1e-15:
        h1 = max(1e-6, h0 * 1e-3)
    else:
        h1 = (0.01 / max(d1, d2)) ** error_exponent
    return min(100 * h0, h1, config.max_step)


def validate_times(times: Sequence[float], t0: float) -> np.ndarray:
    try:
        times = np.asarray(times, dtype=float)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"observation times must be numeric: {exc}") from exc
    if times.ndim != 1 or times.size == 0:
        raise InvalidInput("observation times must be a non-empty 1-D sequence")
    if not (np.all(np.isfinite(times)) and math.isfinite(t0)):
        raise InvalidInput("observation times and t0 must be finite")
    if np.any(np.diff(times) <= 0):
        raise InvalidInput("observation times must be strictly increasing")
    if times[0] < t0:
        raise InvalidInput(f"first observation time {times[0]} precedes t0={t0}")
    return times


def validate_state(y0) -> np.ndarray:
    try:
        y = np.array(y0, dtype=float)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"initial state must be numeric: {exc}") from exc
    if y.ndim != 1 or y.size == 0:
        raise InvalidInput("initial state must be a non-empty 1-D vector")
    if not np.all(np.isfinite(y)):
        raise InvalidInput(f"initial state must be finite, got {y}")
    return y


class AdaptiveIntegrator:
    """Advance an ODE system to a sequence of observation times"""

    def __init__(self, config: Optional[IntegratorConfig] = None):
        self.config = config if config is not None else IntegratorConfig()

    def _make_stepper(self, method: str, fun: RHS, jac):
        if method == "rosenbrock":
            return Rosenbrock23(fun, self.config.atol, self.config.rtol, jac)
        return DormandPrince(fun, self.config.atol, self.config.rtol)

    def _switch(self, fun: RHS, jac, stats: IntegrationStats, t: float, reason: str):
        logger.debug("switching to rosenbrock at t=%.6g (%s)", t, reason)
        stats.method = Rosenbrock23.name
        stats.switched_at = t
        return self._make_stepper("rosenbrock", fun, jac)

    def _check_state(self, y: np.ndarray, total: float) -> None:
        cfg = self.config
        if cfg.nonnegative and np.any(y < -cfg.atol):
            raise NumericalAnomaly(f"compartment went negative ({y.min():.3e})")
        if cfg.conserve_total:
            drift = abs(y.sum() - total)
            if drift > max(cfg.atol, cfg.rtol * abs(total)):
                raise NumericalAnomaly(f"total drifted by {drift:.3e}")

    def _check_budget(self, stats: IntegrationStats, started: float, t: float) -> None:
        cfg = self.config
        if stats.n_accepted >= cfg.max_steps:
            raise ConvergenceFailure(f"step ceiling of {cfg.max_steps} reached at t={t:.6g}")
        if cfg.deadline is not None and time.monotonic() - started > cfg.deadline:
            raise ConvergenceFailure(f"deadline of {cfg.deadline}s exceeded at t={t:.6g}")

    def solve(self,
              fun: RHS,
              y0: Sequence[float],
              times: Sequence[float],
              t0: float = 0.0,
              jac: Optional[Callable] = None,
              compartments: Optional[Sequence[str]] = None) -> Trajectory:
        """
        Integrate y' = fun(t, y) from (t0, y0) and report the state at each time.

        Parameters
        ----------
        fun : callable
            Right-hand side fun(t, y) -> dy/dt
        y0 : array-like
            Initial state at t0
        times : array-like
            Strictly increasing observation times, the first >= t0
        t0 : float
            Initial time
        jac : callable, optional
            Jacobian jac(t, y) for the implicit formula; finite
            differences are used when omitted
        compartments : sequence of str, optional
            Names of the state components

        Returns
        -------
        Trajectory
            One state per observation time, in order

        Raises
        ------
        InvalidInput
            Malformed times or initial state (including a negative
            component when nonnegative is set)
        ConvergenceFailure
            Tolerance could not be met within the step and retry bounds
        """
        cfg = self.config
        y = validate_state(y0)
        if cfg.nonnegative and np.any(y < -STATE_TOLERANCE):
            raise InvalidInput(f"initial state has a negative component: {y}")
        times = validate_times(times, t0)
        names = tuple(compartments) if compartments is not None else tuple(f"y{i}" for i in range(y.size))
        if len(names) != y.size:
            raise InvalidInput(f"{len(names)} compartment names for a state of size {y.size}")

        rhs = _CountedRHS(fun)
        stats = IntegrationStats(method="dopri5" if cfg.method == "auto" else cfg.method)
        states = np.empty((times.size, y.size))
        t = float(t0)
        total = float(y.sum())

        idx = 0
        if times[0] == t:
            states[0] = y
            idx = 1

        if idx < times.size:
            t_end = float(times[-1])
            stepper = self._make_stepper(stats.method, rhs, jac)
            f = rhs(t, y)
            if cfg.initial_step is not None:
                h = min(cfg.initial_step, cfg.max_step)
            else:
                h = select_initial_step(rhs, t, y, f, stepper.error_exponent, cfg, t_end)
            auto = cfg.method == "auto"
            stiff_count = nonstiff_count = 0
            started = time.monotonic()

            while idx < times.size:
                self._check_budget(stats, started, t)
                min_step = max(cfg.min_step, 10 * abs(np.nextafter(t, np.inf) - t))
                target = t_end if cfg.dense_output else float(times[idx])
                h = min(h, cfg.max_step)
                rejections = 0
                cause = None

                while True:
                    landing = h >= target - t
                    if landing:
                        h = target - t
                    elif h < min_step:
                        raise ConvergenceFailure(
                            f"step size {h:.3e} fell below {min_step:.3e} at t={t:.6g}") from cause

                    step = stepper.attempt(t, y, f, h)
                    if step.error_norm <= 1.0:
                        try:
                            self._check_state(step.y_new, total)
                        except NumericalAnomaly as exc:
                            cause = exc
                            stats.n_anomalies += 1
                            factor = ANOMALY_FACTOR
                        else:
                            break
                    else:
                        factor = max(MIN_FACTOR, SAFETY * step.error_norm ** -stepper.error_exponent)

                    rejections += 1
                    stats.n_rejected += 1
                    if rejections > cfg.max_retries:
                        raise ConvergenceFailure(
                            f"{rejections} consecutive rejected steps at t={t:.6g} (h={h:.3e})") from cause
                    if auto and stepper.name == "dopri5" and rejections >= cfg.switch_after_rejections:
                        stepper = self._switch(rhs, jac, stats, t, f"{rejections} rejections")
                    h *= factor

                t_new = target if landing else t + h
                stats.n_accepted += 1
                while idx < times.size and times[idx] <= t_new:
                    if times[idx] == t_new:
                        states[idx] = step.y_new
                    else:
                        states[idx] = stepper.interpolate(step, times[idx])
                    idx += 1

                if step.error_norm == 0:
                    factor = MAX_FACTOR
                else:
                    factor = min(MAX_FACTOR, SAFETY * step.error_norm ** -stepper.error_exponent)
                if rejections:
                    factor = min(1.0, factor)
                h = min(step.h * factor, cfg.max_step)

                if auto and stepper.name == "dopri5":
                    if step.stiffness > cfg.stiffness_threshold or rejections:
                        stiff_count += 1
                        nonstiff_count = 0
                        if stiff_count >= cfg.stiff_steps_to_switch:
                            stepper = self._switch(rhs, jac, stats, t_new, f"h*rho={step.stiffness:.2f}")
                    else:
                        nonstiff_count += 1
                        if nonstiff_count >= NONSTIFF_RESET:
                            stiff_count = 0

                t, y, f = t_new, step.y_new, step.f_new

            stats.n_jacobians = stepper.n_jacobians

        stats.n_evaluations = rhs.calls
        logger.debug("integrated to t=%.6g: %d steps, %d rejected, %d evaluations, method=%s",
                     t, stats.n_accepted, stats.n_rejected, stats.n_evaluations, stats.method)
        return Trajectory(times=times, states=states, compartments=names, stats=stats)


def integrate(fun: RHS,
              y0: Sequence[float],
              times: Sequence[float],
              t0: float = 0.0,
              config: Optional[IntegratorConfig] = None,
              jac: Optional[Callable] = None,
              compartments: Optional[Sequence[str]] = None) -> Trajectory:
    """Functional wrapper around AdaptiveIntegrator(config).solve()"""
    return AdaptiveIntegrator(config).solve(fun, y0, times, t0=t0, jac=jac, compartments=compartments)
