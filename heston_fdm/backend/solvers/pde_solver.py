"""
Heston PDE Solver Driver

═══════════════════════════════════════════════════════════════════════════════
BACKWARD MARCH AND LAZY EVALUATION
═══════════════════════════════════════════════════════════════════════════════

1. THE MARCH:
   ═══════════════════════════════════════════════════════════════════════════

   t_k = T - k·Δt,   Δt = T / N,   k = 0, …, N

   u(t₀ = T)  = payoff(S)            (step conditions applied once here)
   u(t_{k+1}) = Scheme.step(u(t_k))   exactly N times, ending at t = 0

   The operator is rebuilt from a frozen market snapshot at the start of every
   solve; boundary rules and step conditions are re-bound to that snapshot.

2. LAZINESS:
   ═══════════════════════════════════════════════════════════════════════════

   Nothing is computed at construction. The first query runs the march; later
   queries reuse the cached grids until the process state token changes.
   A lock makes concurrent first queries share a single solve.

3. QUERIES:
   ═══════════════════════════════════════════════════════════════════════════

   Bicubic spline in (x = ln S, v) over the final grid:

       value_at(S, v)
       delta_at(S, v) = [u(S+h) - u(S-h)] / (2h)
       gamma_at(S, v) = [u(S+h) - 2u(S) + u(S-h)] / h²        h = 1% of S
       theta_at(S, v) = [u_snap(S, v) - u(S, v)] / t_snap

   t_snap is the grid time at which the snapshot was recorded (one step by
   default).

═══════════════════════════════════════════════════════════════════════════════
"""

import threading
import time as _time
from numbers import Integral, Real
from typing import Optional, Tuple, Union

import numpy as np
from scipy.interpolate import RectBivariateSpline

from heston_fdm.backend.core.boundaries import BoundaryConditionSet, Payoff
from heston_fdm.backend.core.errors import ConfigurationError, NumericalDivergence, OutOfDomainQuery
from heston_fdm.backend.core.grid import HestonMesher
from heston_fdm.backend.core.logger import get_logger
from heston_fdm.backend.core.parameters import HestonProcess
from heston_fdm.backend.solvers.operators import HestonOperator
from heston_fdm.backend.solvers.schemes import AdiScheme, SchemeKind, SchemeParameters
from heston_fdm.backend.solvers.step_conditions import SnapshotCondition, StepConditionComposite

logger = get_logger(__name__)


class FdmHestonSolver:
    """
    Finite-difference Heston solver with lazy, cached evaluation.
    """

    def __init__(
        self,
        process: HestonProcess,
        mesher: HestonMesher,
        bc_set: Optional[BoundaryConditionSet],
        condition: Optional[StepConditionComposite],
        payoff: Payoff,
        maturity: float,
        time_steps: int,
        scheme: Union[SchemeKind, str] = SchemeKind.HUNDSDORFER_VERWER,
        theta: Optional[float] = None,
        mu: float = 0.5,
        snapshot_time: Optional[float] = None
    ):
        """
        Args:
            process: Shared market inputs, observed for changes
            mesher: Spatial grid (not inspected until the first solve)
            bc_set: Boundary rules (empty set when None)
            condition: Step conditions (empty composite when None)
            payoff: Terminal payoff as a function of S
            maturity: Time to maturity in years
            time_steps: Number of backward steps
            scheme: ADI scheme kind
            theta, mu: Scheme weights (theta=None picks the default for the kind)
            snapshot_time: Extra slice for theta (defaults to one step)
        """
        # ═══════════════════════════════════════════════════════════════════
        # VALIDATION (before the mesher is used in any way)
        # ═══════════════════════════════════════════════════════════════════
        if isinstance(time_steps, bool) or not isinstance(time_steps, Integral) or time_steps < 1:
            raise ConfigurationError(f"time_steps must be a positive integer, got {time_steps!r}")
        if not isinstance(maturity, Real) or not np.isfinite(maturity) or maturity <= 0:
            raise ConfigurationError(f"maturity must be positive and finite, got {maturity!r}")
        self.scheme_parameters = SchemeParameters(scheme, theta, mu)

        self.time_steps = int(time_steps)
        self.maturity = float(maturity)
        self.dt = self.maturity / self.time_steps

        if snapshot_time is None:
            snapshot_time = self.dt
        if not 0 < snapshot_time <= self.maturity:
            raise ConfigurationError(
                f"snapshot_time must lie in (0, {self.maturity}], got {snapshot_time}"
            )
        # snap onto the time grid, never onto t = 0
        n_snap = min(max(int(round(snapshot_time / self.dt)), 1), self.time_steps)
        self.snapshot_time = n_snap * self.dt

        self.process = process
        self.mesher = mesher
        self.bc_set = bc_set if bc_set is not None else BoundaryConditionSet()
        self.condition = condition if condition is not None else StepConditionComposite()
        self.payoff = payoff

        # ═══════════════════════════════════════════════════════════════════
        # CACHE STATE
        # ═══════════════════════════════════════════════════════════════════
        self._lock = threading.Lock()
        self._token = None
        self._solution: Optional[np.ndarray] = None
        self._snapshot: Optional[np.ndarray] = None
        self._snapshot_recorded: Optional[float] = None
        self._spline = None
        self._snapshot_spline = None

        self.solve_count = 0
        self.steps_taken = 0

    # ═══════════════════════════════════════════════════════════════════════
    # BACKWARD MARCH
    # ═══════════════════════════════════════════════════════════════════════

    def _terminal_values(self) -> np.ndarray:
        intrinsic = np.asarray(self.payoff(self.mesher.S), dtype=float)
        u = np.repeat(intrinsic[:, None], self.mesher.shape[1], axis=1)
        if not np.all(np.isfinite(u)):
            raise NumericalDivergence('terminal condition', self.maturity)
        return u

    def _solve(self) -> None:
        params = self.process.snapshot()
        mesher = self.mesher
        T, dt = self.maturity, self.dt

        logger.info(
            "Heston FD solve: grid %dx%d, %d steps, %s (θ=%.3f, μ=%.3f)",
            mesher.shape[0], mesher.shape[1], self.time_steps,
            self.scheme_parameters.kind.value,
            self.scheme_parameters.theta, self.scheme_parameters.mu
        )
        started = _time.perf_counter()

        operator = HestonOperator(mesher, params)
        self.bc_set.bind(mesher, params, T)
        self.condition.bind(mesher)
        snapshot = SnapshotCondition(self.snapshot_time)
        scheme = AdiScheme(operator, self.bc_set, self.condition, snapshot, self.scheme_parameters)

        u = self._terminal_values()
        self.condition.apply_to(u, T, dt)
        self.bc_set.apply(u, T)
        snapshot.apply_to(u, T, dt)

        steps = 0
        for k in range(self.time_steps):
            t = T - k * dt
            u = scheme.step(u, t, dt)
            steps += 1

        u.setflags(write=False)
        self._solution = u
        self._snapshot = snapshot.values
        self._snapshot_recorded = snapshot.recorded_time
        self._spline = None
        self._snapshot_spline = None
        self.steps_taken = steps
        self.solve_count += 1

        logger.info("Heston FD solve finished in %.3fs", _time.perf_counter() - started)

    def _calculate_locked(self) -> None:
        token = self.process.state_token()
        if self._solution is None or token != self._token:
            self._solve()
            self._token = token

    def calculate(self) -> None:
        """Run the backward march if no valid cached result exists."""
        with self._lock:
            self._calculate_locked()

    @property
    def solution(self) -> np.ndarray:
        """Final grid at t = 0, shape (N_x, N_v), read-only."""
        with self._lock:
            self._calculate_locked()
            return self._solution

    @property
    def snapshot_solution(self) -> np.ndarray:
        """Grid recorded at the snapshot time, read-only."""
        with self._lock:
            self._calculate_locked()
            return self._snapshot

    # ═══════════════════════════════════════════════════════════════════════
    # INTERPOLATION
    # ═══════════════════════════════════════════════════════════════════════

    def _make_spline(self, values: np.ndarray) -> RectBivariateSpline:
        nx, nv = self.mesher.shape
        return RectBivariateSpline(
            self.mesher.x, self.mesher.v, values,
            kx=min(3, nx - 1), ky=min(3, nv - 1)
        )

    def _splines(self, with_snapshot: bool = False) -> Tuple:
        with self._lock:
            self._calculate_locked()
            if self._spline is None:
                self._spline = self._make_spline(self._solution)
            if with_snapshot and self._snapshot_spline is None:
                self._snapshot_spline = self._make_spline(self._snapshot)
            return self._spline, self._snapshot_spline, self._snapshot_recorded

    def _check_domain(self, S: float, v: float) -> None:
        s_lo, s_hi = self.mesher.s_bounds
        v_lo, v_hi = self.mesher.v_bounds
        tol_s = 1e-12 * s_hi
        tol_v = 1e-12 * max(v_hi, 1.0)
        inside = (
            np.isfinite(S) and np.isfinite(v)
            and s_lo - tol_s <= S <= s_hi + tol_s
            and v_lo - tol_v <= v <= v_hi + tol_v
        )
        if not inside:
            raise OutOfDomainQuery((S, v), (s_lo, s_hi), (v_lo, v_hi))

    def _evaluate(self, spline: RectBivariateSpline, S: float, v: float) -> float:
        self._check_domain(S, v)
        x = min(max(np.log(S), self.mesher.x[0]), self.mesher.x[-1])
        v = min(max(v, self.mesher.v[0]), self.mesher.v[-1])
        return float(spline.ev(x, v))

    # ═══════════════════════════════════════════════════════════════════════
    # QUERY API
    # ═══════════════════════════════════════════════════════════════════════

    def value_at(self, S: float, v: float) -> float:
        """Option value at spot S and variance v."""
        S, v = float(S), float(v)
        self._check_domain(S, v)
        spline, _, _ = self._splines()
        return self._evaluate(spline, S, v)

    def _bumped_values(self, S: float, v: float, eps: Optional[float]):
        S, v = float(S), float(v)
        self._check_domain(S, v)
        h = 0.01 * S if eps is None else float(eps)
        if not h > 0:
            raise ConfigurationError(f"bump size must be positive, got {eps}")
        spline, _, _ = self._splines()
        down = self._evaluate(spline, S - h, v)
        mid = self._evaluate(spline, S, v)
        up = self._evaluate(spline, S + h, v)
        return down, mid, up, h

    def delta_at(self, S: float, v: float, eps: Optional[float] = None) -> float:
        """
        ∂u/∂S by a centred difference of the interpolated surface.

        Args:
            S, v: Query point
            eps: Bump size in price units (1% of S when None)
        """
        down, _, up, h = self._bumped_values(S, v, eps)
        return (up - down) / (2 * h)

    def gamma_at(self, S: float, v: float, eps: Optional[float] = None) -> float:
        """∂²u/∂S² by a second centred difference."""
        down, mid, up, h = self._bumped_values(S, v, eps)
        return (up - 2 * mid + down) / (h * h)

    def theta_at(self, S: float, v: float) -> float:
        """
        ∂u/∂t in calendar time (negative for time decay).
        """
        S, v = float(S), float(v)
        self._check_domain(S, v)
        spline, snapshot_spline, recorded = self._splines(with_snapshot=True)
        return (self._evaluate(snapshot_spline, S, v) - self._evaluate(spline, S, v)) / recorded
