"""
Payoffs and Boundary Conditions for the Heston PDE

═══════════════════════════════════════════════════════════════════════════════
BOUNDARY CONDITIONS ON [x_min, x_max] × [v_min, v_max]
═══════════════════════════════════════════════════════════════════════════════

1. TERMINAL CONDITION (t = T):
   ═══════════════════════════════════════════════════════════════════════════

   u(S, v, T) = payoff(S), identical along every variance line.

2. PRICE EDGES (Dirichlet):
   ═══════════════════════════════════════════════════════════════════════════

   European exercise, discounted forward payoff with τ = T - t:

       u = D_r(τ) · payoff(S · D_q(τ) / D_r(τ))

       Call at S_max: S·e^{-qτ} - K·e^{-rτ}      Call at S_min: 0
       Put  at S_min: K·e^{-rτ} - S·e^{-qτ}      Put  at S_max: 0

   American exercise: max(intrinsic, discounted forward payoff), both are
   lower bounds for the early-exercise value.

3. VARIANCE EDGES:
   ═══════════════════════════════════════════════════════════════════════════

   v = 0: the PDE degenerates to a first-order equation whose
   characteristics point into the domain (κθ > 0); the operator upwinds
   there and no condition is imposed.

   v = v_max: zero curvature (linearity), ∂²u/∂v² = 0, imposed by linear
   extrapolation from the two inner nodes on the nonuniform grid:

       u_N = u_{N-1} + (u_{N-1} - u_{N-2}) · h_N / h_{N-1}

4. APPLICATION POINT:
   ═══════════════════════════════════════════════════════════════════════════

   Conditions are never baked into the operator. They are re-applied after
   every implicit sub-solve and after the step conditions. Applying a rule
   twice gives the same result as applying it once.

═══════════════════════════════════════════════════════════════════════════════
"""

from enum import Enum
from typing import Callable, Iterable, List, Optional, Union

import numpy as np

from heston_fdm.backend.core.errors import ConfigurationError
from heston_fdm.backend.core.grid import HestonMesher
from heston_fdm.backend.core.parameters import HestonParams


# ═══════════════════════════════════════════════════════════════════════════════
# PAYOFFS
# ═══════════════════════════════════════════════════════════════════════════════

class OptionType(Enum):
    CALL = 'call'
    PUT = 'put'


class PlainVanillaPayoff:
    """
    European call/put payoff, callable on scalars or arrays.

    Call: (S - K)⁺    Put: (K - S)⁺
    """

    def __init__(self, option_type: Union[OptionType, str], strike: float):
        self.option_type = OptionType(option_type)
        if not strike > 0:
            raise ConfigurationError(f"strike must be positive, got {strike}")
        self.strike = float(strike)

    def __call__(self, S):
        S = np.asarray(S, dtype=float)
        if self.option_type is OptionType.CALL:
            return np.maximum(S - self.strike, 0.0)
        return np.maximum(self.strike - S, 0.0)

    def __repr__(self) -> str:
        return f"PlainVanillaPayoff({self.option_type.value}, K={self.strike})"


Payoff = Callable[[np.ndarray], np.ndarray]


# ═══════════════════════════════════════════════════════════════════════════════
# BOUNDARY RULES
# ═══════════════════════════════════════════════════════════════════════════════

class Side(Enum):
    LOWER = 'lower'
    UPPER = 'upper'


def _edge_index(side: Side) -> int:
    return 0 if side is Side.LOWER else -1


class BoundaryCondition:
    """Per-edge rule. bind() attaches the grid and market snapshot of a solve."""

    axis = 0

    def __init__(self, axis: int, side: Union[Side, str]):
        if axis not in (0, 1):
            raise ConfigurationError(f"axis must be 0 (price) or 1 (variance), got {axis}")
        self.axis = axis
        self.side = Side(side)
        self.mesher: Optional[HestonMesher] = None

    def bind(self, mesher: HestonMesher, params: HestonParams, maturity: float) -> None:
        self.mesher = mesher

    def _edge(self, u: np.ndarray) -> np.ndarray:
        """View of the edge line (writes go through to u)."""
        index = _edge_index(self.side)
        return u[index, :] if self.axis == 0 else u[:, index]

    def apply(self, u: np.ndarray, t: float) -> None:
        raise NotImplementedError


class DirichletBoundary(BoundaryCondition):
    """Fixed value on one edge (e.g. a knocked-out barrier paying a rebate)."""

    def __init__(self, axis: int, side: Union[Side, str], value: float):
        super().__init__(axis, side)
        self.value = float(value)

    def apply(self, u: np.ndarray, t: float) -> None:
        self._edge(u)[...] = self.value


class PayoffBoundary(BoundaryCondition):
    """
    Time-dependent Dirichlet value on a price edge derived from the payoff.
    """

    def __init__(self, side: Union[Side, str], payoff: Payoff, american: bool = False):
        super().__init__(0, side)
        self.payoff = payoff
        self.american = american
        self._params: Optional[HestonParams] = None
        self._maturity = None
        self._spot = None

    def bind(self, mesher: HestonMesher, params: HestonParams, maturity: float) -> None:
        super().bind(mesher, params, maturity)
        self._params = params
        self._maturity = maturity
        self._spot = float(mesher.S[_edge_index(self.side)])

    def edge_value(self, t: float) -> float:
        T = self._maturity
        df_r = self._params.risk_free.discount(T) / self._params.risk_free.discount(t)
        df_q = self._params.dividend.discount(T) / self._params.dividend.discount(t)

        value = float(df_r * self.payoff(self._spot * df_q / df_r))
        if self.american:
            value = max(value, float(self.payoff(self._spot)))
        return value

    def apply(self, u: np.ndarray, t: float) -> None:
        self._edge(u)[...] = self.edge_value(t)


class ZeroCurvatureBoundary(BoundaryCondition):
    """
    Linearity condition ∂²u/∂y² = 0 on an edge, imposed by extrapolation.
    """

    def bind(self, mesher: HestonMesher, params: HestonParams, maturity: float) -> None:
        super().bind(mesher, params, maturity)
        y = mesher.locations(self.axis)
        if self.side is Side.LOWER:
            self._ratio = (y[1] - y[0]) / (y[2] - y[1])
            self._near, self._far = 1, 2
        else:
            self._ratio = (y[-1] - y[-2]) / (y[-2] - y[-3])
            self._near, self._far = -2, -3

    def apply(self, u: np.ndarray, t: float) -> None:
        if self.axis == 0:
            near, far = u[self._near, :], u[self._far, :]
        else:
            near, far = u[:, self._near], u[:, self._far]
        self._edge(u)[...] = near + (near - far) * self._ratio


class BoundaryConditionSet:
    """
    Ordered collection of edge rules, applied after each implicit sub-solve.
    """

    def __init__(self, conditions: Optional[Iterable[BoundaryCondition]] = None):
        self.conditions: List[BoundaryCondition] = list(conditions or [])

    def __iter__(self):
        return iter(self.conditions)

    def __len__(self) -> int:
        return len(self.conditions)

    def bind(self, mesher: HestonMesher, params: HestonParams, maturity: float) -> None:
        for condition in self.conditions:
            condition.bind(mesher, params, maturity)

    def apply(self, u: np.ndarray, t: float) -> np.ndarray:
        for condition in self.conditions:
            condition.apply(u, t)
        return u


def vanilla_boundary_set(payoff: Payoff, american: bool = False) -> BoundaryConditionSet:
    """
    Payoff-driven Dirichlet values on both price edges plus linearity at the
    upper variance edge.
    """
    return BoundaryConditionSet([
        PayoffBoundary(Side.LOWER, payoff, american),
        PayoffBoundary(Side.UPPER, payoff, american),
        ZeroCurvatureBoundary(1, Side.UPPER),
    ])
