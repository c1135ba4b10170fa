"""
Exception hierarchy for the Heston finite-difference engine.

All failures are fail-fast: the solver is deterministic, so an error points
at a structurally invalid configuration rather than a transient fault.
"""

from typing import Optional, Tuple


class HestonFdmError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(HestonFdmError, ValueError):
    """Invalid construction input (time steps, scheme weights, grid sizes, ...)."""


class NumericalDivergence(HestonFdmError, ArithmeticError):
    """Non-finite values appeared in the solution during the backward march."""

    def __init__(self, stage: str, time: float, message: Optional[str] = None):
        self.stage = stage
        self.time = time
        super().__init__(
            message or f"non-finite values after stage '{stage}' at t={time:.6f}"
        )


class OutOfDomainQuery(HestonFdmError, ValueError):
    """Query point lies outside the solved grid."""

    def __init__(
        self,
        point: Tuple[float, float],
        s_bounds: Tuple[float, float],
        v_bounds: Tuple[float, float],
    ):
        self.point = point
        self.s_bounds = s_bounds
        self.v_bounds = v_bounds
        super().__init__(
            f"(S={point[0]:.6g}, v={point[1]:.6g}) outside grid "
            f"S in [{s_bounds[0]:.6g}, {s_bounds[1]:.6g}], "
            f"v in [{v_bounds[0]:.6g}, {v_bounds[1]:.6g}]"
        )
