"""
ADI Time Integration Schemes

═══════════════════════════════════════════════════════════════════════════════
ALTERNATING DIRECTION IMPLICIT SCHEMES FOR ∂u/∂τ = F₀(u) + F₁(u) + F₂(u)
═══════════════════════════════════════════════════════════════════════════════

One step advances the solution from U = u(t) to u(t - Δt). F₀ is the mixed
derivative part (always explicit), F₁/F₂ the price/variance parts.

1. DOUGLAS (DO):
   ═══════════════════════════════════════════════════════════════════════════

   Y₀ = U + Δt·F(U)
   Y_j = Y_{j-1} + θΔt·(F_j(Y_j) - F_j(U)),   j = 1, 2
   U_new = Y₂

   Cheapest; the cross term enters explicitly once, so strongly correlated
   problems are the first to suffer.

2. CRAIG-SNEYD (CS):
   ═══════════════════════════════════════════════════════════════════════════

   Y₀, Y₁, Y₂ as in Douglas, then a correction of the mixed term only:
   Ỹ₀ = Y₀ + μΔt·(F₀(Y₂) - F₀(U))
   Ỹ_j = Ỹ_{j-1} + θΔt·(F_j(Ỹ_j) - F_j(U))
   U_new = Ỹ₂

   Preferred when |ρ| is large.

3. HUNDSDORFER-VERWER (HV):
   ═══════════════════════════════════════════════════════════════════════════

   Y₀, Y₁, Y₂ as in Douglas, then a full corrector:
   Ỹ₀ = Y₀ + μΔt·(F(Y₂) - F(U))
   Ỹ_j = Ỹ_{j-1} + θΔt·(F_j(Ỹ_j) - F_j(Y₂))
   U_new = Ỹ₂

   Roughly double the Douglas cost per step.

4. STABILITY BOUNDS:
   ═══════════════════════════════════════════════════════════════════════════

   For a stiff scalar mode z = Δt·λ → -∞ the amplification factors are

       DO, CS:  R(∞) = -(1 - θ)/θ                  → |R| ≤ 1  ⇔  θ ≥ 1/2
       HV:      R(∞) = (θ² - 2θ + μ)/θ²            → |R| < 1  ⇔  θ > μ/2
                                                      (for μ ≥ 1/2)

   Accepted ranges (ConfigurationError otherwise):

       Douglas             1/2 ≤ θ ≤ 1
       Craig-Sneyd         1/2 ≤ θ ≤ 1,   0 ≤ μ ≤ 1
       Hundsdorfer-Verwer  μ/2 < θ ≤ 1,   1/2 ≤ μ ≤ 1

   Default weights per kind: θ = 0.5 for Douglas and Craig-Sneyd, θ = 0.3 for
   Hundsdorfer-Verwer (R(∞) ≈ -0.11); μ = 0.5 throughout.

5. STAGE ORDER:
   ═══════════════════════════════════════════════════════════════════════════

   price-implicit → variance-implicit → correlation correction (→ implicit
   stages again) → step conditions → boundary reapplication → snapshot.
   Boundary conditions are also re-applied after every implicit sub-solve.

═══════════════════════════════════════════════════════════════════════════════
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import numpy as np

from heston_fdm.backend.core.boundaries import BoundaryConditionSet
from heston_fdm.backend.core.errors import ConfigurationError, NumericalDivergence
from heston_fdm.backend.core.logger import get_logger
from heston_fdm.backend.solvers.operators import HestonOperator
from heston_fdm.backend.solvers.step_conditions import SnapshotCondition, StepConditionComposite

logger = get_logger(__name__)


class SchemeKind(Enum):
    DOUGLAS = 'douglas'
    HUNDSDORFER_VERWER = 'hundsdorfer_verwer'
    CRAIG_SNEYD = 'craig_sneyd'


# implicitness weight used when none is given
DEFAULT_THETA = {
    SchemeKind.DOUGLAS: 0.5,
    SchemeKind.CRAIG_SNEYD: 0.5,
    SchemeKind.HUNDSDORFER_VERWER: 0.3,
}


@dataclass(frozen=True)
class SchemeParameters:
    """Scheme kind and weights, validated against the stability bounds."""

    kind: SchemeKind = SchemeKind.HUNDSDORFER_VERWER
    theta: Optional[float] = None
    mu: float = 0.5

    def __post_init__(self):
        try:
            kind = SchemeKind(self.kind)
        except ValueError:
            raise ConfigurationError(f"unknown scheme kind {self.kind!r}") from None
        object.__setattr__(self, 'kind', kind)
        if self.theta is None:
            object.__setattr__(self, 'theta', DEFAULT_THETA[kind])

        theta, mu = self.theta, self.mu
        if not (np.isfinite(theta) and np.isfinite(mu)):
            raise ConfigurationError(f"θ and μ must be finite, got θ={theta}, μ={mu}")

        if kind is SchemeKind.DOUGLAS:
            if not 0.5 <= theta <= 1.0:
                raise ConfigurationError(f"Douglas needs 1/2 ≤ θ ≤ 1, got θ={theta}")
        elif kind is SchemeKind.CRAIG_SNEYD:
            if not 0.5 <= theta <= 1.0:
                raise ConfigurationError(f"Craig-Sneyd needs 1/2 ≤ θ ≤ 1, got θ={theta}")
            if not 0.0 <= mu <= 1.0:
                raise ConfigurationError(f"Craig-Sneyd needs 0 ≤ μ ≤ 1, got μ={mu}")
        else:
            if not 0.5 <= mu <= 1.0:
                raise ConfigurationError(f"Hundsdorfer-Verwer needs 1/2 ≤ μ ≤ 1, got μ={mu}")
            if not mu / 2 < theta <= 1.0:
                raise ConfigurationError(
                    f"Hundsdorfer-Verwer needs μ/2 < θ ≤ 1, got θ={theta}, μ={mu}"
                )


class AdiScheme:
    """
    Backward time stepper. The kind selects the corrector formula; the
    control flow of a step is the same for all three.
    """

    def __init__(
        self,
        operator: HestonOperator,
        bc_set: BoundaryConditionSet,
        condition: StepConditionComposite,
        snapshot: Optional[SnapshotCondition],
        parameters: Union[SchemeParameters, SchemeKind, str] = SchemeParameters()
    ):
        if not isinstance(parameters, SchemeParameters):
            parameters = SchemeParameters(SchemeKind(parameters))
        self.operator = operator
        self.bc_set = bc_set
        self.condition = condition
        self.snapshot = snapshot
        self.parameters = parameters
        self._correctors = {
            SchemeKind.DOUGLAS: None,
            SchemeKind.CRAIG_SNEYD: self._craig_sneyd_corrector,
            SchemeKind.HUNDSDORFER_VERWER: self._hundsdorfer_corrector,
        }
        self._t = None

    @property
    def kind(self) -> SchemeKind:
        return self.parameters.kind

    # ═══════════════════════════════════════════════════════════════════════
    # STAGE HELPERS
    # ═══════════════════════════════════════════════════════════════════════

    def _check(self, u: np.ndarray, stage: str) -> np.ndarray:
        if not np.all(np.isfinite(u)):
            raise NumericalDivergence(stage, self._t)
        return u

    def _implicit_sweeps(self, y: np.ndarray, reference: np.ndarray, dt: float) -> np.ndarray:
        """Y_j = Y_{j-1} + θΔt·(F_j(Y_j) - F_j(reference)) for every direction."""
        a = self.parameters.theta * dt
        names = ('price-implicit', 'variance-implicit')
        for direction in range(self.operator.size):
            rhs = y - a * self.operator.apply_direction(direction, reference)
            y = self.operator.solve_splitting(direction, rhs, a)
            self.bc_set.apply(y, self._t)
            self._check(y, names[direction])
        return y

    def _craig_sneyd_corrector(self, u, y0, y2, dt):
        mixed = self.operator.apply_mixed(y2) - self.operator.apply_mixed(u)
        y = self._check(y0 + self.parameters.mu * dt * mixed, 'correlation correction')
        return self._implicit_sweeps(y, u, dt)

    def _hundsdorfer_corrector(self, u, y0, y2, dt):
        full = self.operator.apply(y2) - self.operator.apply(u)
        y = self._check(y0 + self.parameters.mu * dt * full, 'correlation correction')
        return self._implicit_sweeps(y, y2, dt)

    # ═══════════════════════════════════════════════════════════════════════
    # ONE BACKWARD STEP
    # ═══════════════════════════════════════════════════════════════════════

    def step(self, u: np.ndarray, t: float, dt: float) -> np.ndarray:
        """
        Advance the solution from calendar time t to t - Δt.

        Args:
            u: Solution at time t, shape (N_x, N_v); not modified
            t: Current calendar time
            dt: Step size

        Returns:
            New solution at time t - Δt
        """
        t_new = t - dt
        self._t = t_new
        self.operator.set_time(t_new, t)

        # explicit predictor
        y0 = self._check(u + dt * self.operator.apply(u), 'explicit predictor')
        y2 = self._implicit_sweeps(y0, u, dt)

        corrector = self._correctors[self.kind]
        u_new = y2 if corrector is None else corrector(u, y0, y2, dt)

        self.condition.apply_to(u_new, t_new, dt)
        self._check(u_new, 'step conditions')
        self.bc_set.apply(u_new, t_new)
        self._check(u_new, 'boundary conditions')

        if self.snapshot is not None:
            self.snapshot.apply_to(u_new, t_new, dt)

        logger.debug("step %s: t=%.6f -> %.6f", self.kind.value, t, t_new)
        return u_new
