"""
===========================================================
errors.py
Last Updated: 2026-10-17
===========================================================

Description:
    Exception taxonomy for the simulation engine.

    - InvalidInput: malformed scenario or solver input, raised
      before any integration work begins.
    - ConvergenceFailure: the integrator could not meet its
      tolerance within the step-size, retry, step-count or
      deadline bounds.
    - NumericalAnomaly: a proposed state left the physically
      valid domain. Handled inside the integrator by shrinking
      the step; only surfaces as the cause of a
      ConvergenceFailure.

Notes:
    - Exceptions carry a message only so they survive pickling
      between worker processes.
-----------------------------------------------------------
License: MIT
===========================================================
"""


class SimulationError(Exception):
    """Base class for every error the engine raises on purpose"""


class InvalidInput(SimulationError, ValueError):
    """Scenario or solver input is malformed"""


class ConvergenceFailure(SimulationError, RuntimeError):
    """Integrator gave up before reaching the last observation time"""


class NumericalAnomaly(SimulationError, ArithmeticError):
    """A proposed state is negative or has drifted off the conserved total"""
