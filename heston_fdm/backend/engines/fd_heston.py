"""
Finite-Difference Heston Pricing Engines

═══════════════════════════════════════════════════════════════════════════════
INSTRUMENTS AND ENGINES
═══════════════════════════════════════════════════════════════════════════════

1. VANILLA (European / American):
   ═══════════════════════════════════════════════════════════════════════════

   Grid concentrated at the strike, payoff-driven Dirichlet values on the
   price edges, linearity at v_max. American exercise adds the early-exercise
   step condition max(u, intrinsic) at every step.

2. BARRIER KNOCK-OUT:
   ═══════════════════════════════════════════════════════════════════════════

   Continuous monitoring: the price grid ends exactly at the barrier and the
   barrier edge carries the rebate as a Dirichlet value (paid when hit).

       down-and-out:  x_min = ln B,  u(B, v, t) = R
       up-and-out:    x_max = ln B,  u(B, v, t) = R

   Discrete monitoring: regular grid; on each monitoring date the nodes at or
   beyond the barrier are reset to the rebate.

3. BARRIER KNOCK-IN (in/out parity, zero rebate):
   ═══════════════════════════════════════════════════════════════════════════

       V_in = V_vanilla - V_out

═══════════════════════════════════════════════════════════════════════════════
"""

from enum import Enum
from typing import Dict, Iterable, Optional, Union

import numpy as np

from heston_fdm.backend.core.boundaries import (
    BoundaryConditionSet,
    DirichletBoundary,
    PayoffBoundary,
    PlainVanillaPayoff,
    Side,
    ZeroCurvatureBoundary,
    vanilla_boundary_set,
)
from heston_fdm.backend.core.config import DefaultConfig, FdmConfig
from heston_fdm.backend.core.errors import ConfigurationError
from heston_fdm.backend.core.grid import HestonMesher
from heston_fdm.backend.core.logger import get_logger
from heston_fdm.backend.core.parameters import HestonProcess
from heston_fdm.backend.solvers.pde_solver import FdmHestonSolver
from heston_fdm.backend.solvers.step_conditions import (
    AmericanStepCondition,
    BarrierStepCondition,
    BarrierType,
    StepConditionComposite,
)

logger = get_logger(__name__)


class ExerciseType(Enum):
    EUROPEAN = 'european'
    AMERICAN = 'american'


class VanillaOption:
    def __init__(
        self,
        payoff: PlainVanillaPayoff,
        maturity: float,
        exercise: Union[ExerciseType, str] = ExerciseType.EUROPEAN
    ):
        self.payoff = payoff
        self.maturity = float(maturity)
        self.exercise = ExerciseType(exercise)


class BarrierOption:
    def __init__(
        self,
        barrier_type: Union[BarrierType, str],
        barrier: float,
        payoff: PlainVanillaPayoff,
        maturity: float,
        rebate: float = 0.0,
        monitoring_times: Optional[Iterable[float]] = None
    ):
        self.barrier_type = BarrierType(barrier_type)
        if not barrier > 0:
            raise ConfigurationError(f"barrier must be positive, got {barrier}")
        self.barrier = float(barrier)
        self.payoff = payoff
        self.maturity = float(maturity)
        self.rebate = float(rebate)
        self.monitoring_times = None if monitoring_times is None else sorted(monitoring_times)

    @property
    def continuous(self) -> bool:
        return self.monitoring_times is None


def _bump_size(solver: FdmHestonSolver, spot: float) -> float:
    """1% of spot, shrunk so both bumped points stay on a pinned barrier grid."""
    s_min, s_max = solver.mesher.s_bounds
    return min(0.01 * spot, 0.5 * (spot - s_min), 0.5 * (s_max - spot))


def _results(solver: FdmHestonSolver, spot: float, v0: float) -> Dict[str, float]:
    h = _bump_size(solver, spot)
    return {
        'value': solver.value_at(spot, v0),
        'delta': solver.delta_at(spot, v0, eps=h),
        'gamma': solver.gamma_at(spot, v0, eps=h),
        'theta': solver.theta_at(spot, v0),
    }


class FdHestonVanillaEngine:
    """
    European and American vanilla options on the Heston PDE.
    """

    def __init__(self, process: HestonProcess, config: FdmConfig = DefaultConfig.default):
        self.process = process
        self.config = config
        self.solver: Optional[FdmHestonSolver] = None

    def _make_solver(self, option: VanillaOption, american: bool) -> FdmHestonSolver:
        cfg = self.config
        mesher = HestonMesher(
            self.process, option.maturity, cfg.x_grid, cfg.v_grid,
            strike=option.payoff.strike, x_density=cfg.x_density, v_density=cfg.v_density,
            scale_factor=cfg.scale_factor, eps=cfg.eps
        )
        conditions = [AmericanStepCondition(option.payoff)] if american else []
        return FdmHestonSolver(
            self.process, mesher,
            vanilla_boundary_set(option.payoff, american),
            StepConditionComposite(conditions),
            option.payoff, option.maturity, cfg.t_grid,
            scheme=cfg.scheme, theta=cfg.theta, mu=cfg.mu
        )

    def calculate(self, option: VanillaOption) -> Dict[str, float]:
        """
        Value and Greeks at today's spot and variance.

        Returns:
            Dictionary with value, delta, gamma and theta
        """
        american = option.exercise is ExerciseType.AMERICAN
        self.solver = self._make_solver(option, american)
        return _results(self.solver, self.process.spot.value(), self.process.v0.value())


class FdHestonBarrierEngine:
    """
    Single-barrier options on the Heston PDE.
    """

    def __init__(self, process: HestonProcess, config: FdmConfig = DefaultConfig.default):
        self.process = process
        self.config = config
        self.solver: Optional[FdmHestonSolver] = None

    def _check_spot(self, option: BarrierOption) -> None:
        spot = self.process.spot.value()
        if option.barrier_type.is_down:
            breached = spot <= option.barrier
        else:
            breached = spot >= option.barrier
        if breached:
            raise ConfigurationError(
                f"spot {spot} already beyond the {option.barrier_type.value} barrier {option.barrier}"
            )

    def _knock_out_solver(self, option: BarrierOption) -> FdmHestonSolver:
        cfg = self.config
        payoff = option.payoff
        down = option.barrier_type.is_down
        log_barrier = np.log(option.barrier)

        if option.continuous:
            mesher = HestonMesher(
                self.process, option.maturity, cfg.x_grid, cfg.v_grid,
                strike=payoff.strike, x_density=cfg.x_density, v_density=cfg.v_density,
                scale_factor=cfg.scale_factor, eps=cfg.eps,
                x_min=log_barrier if down else None,
                x_max=None if down else log_barrier
            )
            barrier_side, far_side = (Side.LOWER, Side.UPPER) if down else (Side.UPPER, Side.LOWER)
            bc_set = BoundaryConditionSet([
                DirichletBoundary(0, barrier_side, option.rebate),
                PayoffBoundary(far_side, payoff),
                ZeroCurvatureBoundary(1, Side.UPPER),
            ])
            condition = StepConditionComposite()
        else:
            mesher = HestonMesher(
                self.process, option.maturity, cfg.x_grid, cfg.v_grid,
                strike=payoff.strike, x_density=cfg.x_density, v_density=cfg.v_density,
                scale_factor=cfg.scale_factor, eps=cfg.eps
            )
            bc_set = vanilla_boundary_set(payoff)
            knock_out = BarrierType.DOWN_OUT if down else BarrierType.UP_OUT
            condition = StepConditionComposite([
                BarrierStepCondition(option.barrier, knock_out, option.monitoring_times, option.rebate)
            ])

        return FdmHestonSolver(
            self.process, mesher, bc_set, condition, payoff, option.maturity, cfg.t_grid,
            scheme=cfg.scheme, theta=cfg.theta, mu=cfg.mu
        )

    def calculate(self, option: BarrierOption) -> Dict[str, float]:
        """
        Value and Greeks at today's spot and variance.

        Returns:
            Dictionary with value, delta, gamma and theta
        """
        self._check_spot(option)
        spot, v0 = self.process.spot.value(), self.process.v0.value()

        if not option.barrier_type.is_knock_in:
            self.solver = self._knock_out_solver(option)
            return _results(self.solver, spot, v0)

        if option.rebate != 0.0:
            raise ConfigurationError("knock-in options with a rebate are not supported")

        logger.info("pricing %s barrier by in/out parity", option.barrier_type.value)
        vanilla = FdHestonVanillaEngine(self.process, self.config).calculate(
            VanillaOption(option.payoff, option.maturity)
        )
        self.solver = self._knock_out_solver(option)
        knock_out = _results(self.solver, spot, v0)
        return {key: vanilla[key] - knock_out[key] for key in vanilla}
