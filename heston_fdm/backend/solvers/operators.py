"""
Finite-Difference Operators for the Heston PDE

═══════════════════════════════════════════════════════════════════════════════
OPERATOR SPLITTING IN LOG-PRICE COORDINATES
═══════════════════════════════════════════════════════════════════════════════

With x = ln(S) and τ = T - t the Heston PDE reads

    ∂u/∂τ = F(u) = F₀(u) + F₁(u) + F₂(u)

    F₁[u] = (r - q - v/2)·∂u/∂x + (v/2)·∂²u/∂x² - (r/2)·u          (price)
    F₂[u] = κ(θ - v)·∂u/∂v + (σ²v/2)·∂²u/∂v² - (r/2)·u             (variance)
    F₀[u] = ρσv·∂²u/∂x∂v                                          (mixed)

The discount term is shared evenly between F₁ and F₂. Each of F₁, F₂ is
tridiagonal along its own grid lines, which is what lets ADI schemes treat
them implicitly one direction at a time. F₀ is only ever applied explicitly.

1. NONUNIFORM STENCILS:
   ═══════════════════════════════════════════════════════════════════════════

   With h₋ = y_i - y_{i-1}, h₊ = y_{i+1} - y_i, s = h₋ + h₊:

   ∂u/∂y   ≈ [-h₊/(h₋s)]·u_{i-1} + [(h₊-h₋)/(h₋h₊)]·u_i + [h₋/(h₊s)]·u_{i+1}
   ∂²u/∂y² ≈ [2/(h₋s)]·u_{i-1}   + [-2/(h₋h₊)]·u_i      + [2/(h₊s)]·u_{i+1}

   Both are exact on linear functions; the second-derivative stencil is
   second order on uniform grids.

2. UPWINDING (cell Péclet criterion):
   ═══════════════════════════════════════════════════════════════════════════

   For a·∂²u/∂y² + b·∂u/∂y the central off-diagonals are

       lower = (2a - b·h₊)/(h₋s),   upper = (2a + b·h₋)/(h₊s)

   If either is negative (convection dominates diffusion, e.g. near v = 0)
   the convection term switches to a one-sided difference in the drift
   direction. Off-diagonals then stay non-negative and (I - c·F_j) is an
   M-matrix for every c > 0: no spurious oscillations.

3. EDGE NODES:
   ═══════════════════════════════════════════════════════════════════════════

   No diffusion. Convection uses the one-sided difference pointing into the
   domain when the drift carries information from the interior, and is
   dropped otherwise. At v = 0 (b = κθ > 0) this is exactly the degenerate
   first-order equation, so no boundary condition is needed there.

4. MIXED DERIVATIVE:
   ═══════════════════════════════════════════════════════════════════════════

   ∂²u/∂x∂v ≈ Σ_{a,b ∈ {-1,0,1}} w^x_a(i)·w^v_b(j)·u_{i+a, j+b}

   with w the central first-derivative weights above (9-point stencil,
   interior nodes only).

5. TRIDIAGONAL SOLVES (Thomas algorithm):
   ═══════════════════════════════════════════════════════════════════════════

   (I - c·F_j)·y = rhs decomposes into one independent system per grid line.
   The sweep below runs forward elimination and back substitution over the
   line index while treating all lines at once as a vector:

       c'_0 = c_0/b_0,  d'_0 = d_0/b_0
       c'_i = c_i/(b_i - a_i·c'_{i-1})
       d'_i = (d_i - a_i·d'_{i-1})/(b_i - a_i·c'_{i-1})
       y_n = d'_n,  y_i = d'_i - c'_i·y_{i+1}

═══════════════════════════════════════════════════════════════════════════════
"""

from typing import Tuple

import numpy as np

from heston_fdm.backend.core.grid import HestonMesher
from heston_fdm.backend.core.parameters import HestonParams


def _spacings(nodes: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """h₋ and h₊ for every node (zero where undefined)."""
    h = np.diff(nodes)
    h_minus = np.zeros_like(nodes)
    h_plus = np.zeros_like(nodes)
    h_minus[1:] = h
    h_plus[:-1] = h
    return h_minus, h_plus


def first_derivative_weights(nodes: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Central first-derivative weights (lower, diag, upper); zero on the edges."""
    h_minus, h_plus = _spacings(nodes)
    lower = np.zeros_like(nodes)
    diag = np.zeros_like(nodes)
    upper = np.zeros_like(nodes)

    hm, hp = h_minus[1:-1], h_plus[1:-1]
    s = hm + hp
    lower[1:-1] = -hp / (hm * s)
    diag[1:-1] = (hp - hm) / (hm * hp)
    upper[1:-1] = hm / (hp * s)
    return lower, diag, upper


def convection_diffusion_coefficients(
    nodes: np.ndarray,
    drift: np.ndarray,
    diffusion: np.ndarray,
    reaction: float
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Tridiagonal coefficients of diffusion·∂²/∂y² + drift·∂/∂y + reaction along
    axis 0.

    Args:
        nodes: Coordinates along the line direction, shape (n,)
        drift: Convection coefficient, shape (n, m)
        diffusion: Diffusion coefficient, shape (n, m)
        reaction: Zero-order coefficient

    Returns:
        (lower, diag, upper), each of shape (n, m)
    """
    n, m = drift.shape
    h_minus, h_plus = _spacings(nodes)

    lower = np.zeros((n, m))
    diag = np.full((n, m), float(reaction))
    upper = np.zeros((n, m))

    # interior nodes
    hm = h_minus[1:-1, None]
    hp = h_plus[1:-1, None]
    s = hm + hp
    a = diffusion[1:-1]
    b = drift[1:-1]

    diff_lower = 2 * a / (hm * s)
    diff_diag = -2 * a / (hm * hp)
    diff_upper = 2 * a / (hp * s)

    central_lower = diff_lower - b * hp / (hm * s)
    central_diag = diff_diag + b * (hp - hm) / (hm * hp)
    central_upper = diff_upper + b * hm / (hp * s)

    forward = b >= 0
    upwind_lower = np.where(forward, diff_lower, diff_lower - b / hm)
    upwind_diag = np.where(forward, diff_diag - b / hp, diff_diag + b / hm)
    upwind_upper = np.where(forward, diff_upper + b / hp, diff_upper)

    use_upwind = (central_lower < 0) | (central_upper < 0)
    lower[1:-1] = np.where(use_upwind, upwind_lower, central_lower)
    diag[1:-1] += np.where(use_upwind, upwind_diag, central_diag)
    upper[1:-1] = np.where(use_upwind, upwind_upper, central_upper)

    # edges: inflow convection only
    b_low = np.maximum(drift[0], 0.0)
    diag[0] -= b_low / h_plus[0]
    upper[0] = b_low / h_plus[0]

    b_up = np.minimum(drift[-1], 0.0)
    lower[-1] = -b_up / h_minus[-1]
    diag[-1] += b_up / h_minus[-1]

    return lower, diag, upper


def solve_tridiagonal(
    lower: np.ndarray,
    diag: np.ndarray,
    upper: np.ndarray,
    rhs: np.ndarray
) -> np.ndarray:
    """
    Thomas algorithm along axis 0, all columns solved simultaneously.
    """
    n = rhs.shape[0]
    c_mod = np.empty_like(rhs)
    d_mod = np.empty_like(rhs)

    c_mod[0] = upper[0] / diag[0]
    d_mod[0] = rhs[0] / diag[0]
    for i in range(1, n):
        denom = diag[i] - lower[i] * c_mod[i - 1]
        c_mod[i] = upper[i] / denom
        d_mod[i] = (rhs[i] - lower[i] * d_mod[i - 1]) / denom

    x = np.empty_like(rhs)
    x[-1] = d_mod[-1]
    for i in range(n - 2, -1, -1):
        x[i] = d_mod[i] - c_mod[i] * x[i + 1]
    return x


class TridiagonalOperator:
    """
    Tridiagonal operator acting along one axis of a (N_x, N_v) solution.

    Coefficients are stored with the operator's own direction first, shape
    (n_axis, n_other).
    """

    def __init__(self, axis: int, lower: np.ndarray, diag: np.ndarray, upper: np.ndarray):
        self.axis = axis
        self.lower = lower
        self.diag = diag
        self.upper = upper

    def _to_lines(self, u: np.ndarray) -> np.ndarray:
        return u if self.axis == 0 else u.T

    def apply(self, u: np.ndarray) -> np.ndarray:
        w = self._to_lines(u)
        out = self.diag * w
        out[1:] += self.lower[1:] * w[:-1]
        out[:-1] += self.upper[:-1] * w[1:]
        return out if self.axis == 0 else out.T

    def solve_splitting(self, rhs: np.ndarray, a: float) -> np.ndarray:
        """Solve (I - a·L)·y = rhs, one independent system per grid line."""
        y = solve_tridiagonal(
            -a * self.lower,
            1.0 - a * self.diag,
            -a * self.upper,
            self._to_lines(rhs)
        )
        return y if self.axis == 0 else y.T


class MixedDerivativeOperator:
    """coefficient(i, j) · ∂²u/∂x∂v on interior nodes (9-point stencil)."""

    def __init__(self, x: np.ndarray, v: np.ndarray, coefficient: np.ndarray):
        self.wx = first_derivative_weights(x)
        self.wv = first_derivative_weights(v)
        self.coefficient = coefficient

    def apply(self, u: np.ndarray) -> np.ndarray:
        n, m = u.shape
        out = np.zeros_like(u)
        inner = out[1:-1, 1:-1]
        for a, wa in zip((-1, 0, 1), self.wx):
            for b, wb in zip((-1, 0, 1), self.wv):
                weight = wa[1:-1, None] * wb[None, 1:-1]
                inner += weight * u[1 + a:n - 1 + a, 1 + b:m - 1 + b]
        return self.coefficient * out


class HestonOperator:
    """
    Heston generator split into price, variance and mixed sub-operators.

    Rate-independent pieces are built once; set_time() refreshes the rate
    dependent coefficients from the forward rates over the current step.
    """

    def __init__(self, mesher: HestonMesher, params: HestonParams):
        self.mesher = mesher
        self.params = params

        x, v = mesher.x, mesher.v
        n, m = mesher.shape
        self._v_row = np.broadcast_to(v[None, :], (n, m))

        # variance direction (lines along axis 1): coefficients transposed to (m, n)
        self._v_drift = np.broadcast_to(
            (params.kappa * (params.theta - v))[:, None], (m, n)
        )
        self._v_diffusion = np.broadcast_to(
            (0.5 * params.sigma ** 2 * v)[:, None], (m, n)
        )
        self._x_diffusion = 0.5 * self._v_row

        self.mixed = MixedDerivativeOperator(
            x, v, params.rho * params.sigma * self._v_row
        )
        self.time = None
        self._rates = None
        self.set_time(0.0, 0.0)

    def set_time(self, t1: float, t2: float) -> None:
        """Rebuild rate-dependent coefficients for a step over [t1, t2]."""
        if self.time == (t1, t2):
            return
        r = self.params.risk_free.forward_rate(t1, t2)
        q = self.params.dividend.forward_rate(t1, t2)
        self.time = (t1, t2)
        if self._rates == (r, q):
            return

        x_coeffs = convection_diffusion_coefficients(
            self.mesher.x, r - q - self._x_diffusion, self._x_diffusion, -0.5 * r
        )
        v_coeffs = convection_diffusion_coefficients(
            self.mesher.v, self._v_drift, self._v_diffusion, -0.5 * r
        )
        self.directions = (
            TridiagonalOperator(0, *x_coeffs),
            TridiagonalOperator(1, *v_coeffs),
        )
        self.rate = r
        self._rates = (r, q)

    @property
    def size(self) -> int:
        return len(self.directions)

    def apply_direction(self, direction: int, u: np.ndarray) -> np.ndarray:
        return self.directions[direction].apply(u)

    def apply_mixed(self, u: np.ndarray) -> np.ndarray:
        return self.mixed.apply(u)

    def apply(self, u: np.ndarray) -> np.ndarray:
        out = self.apply_mixed(u)
        for op in self.directions:
            out += op.apply(u)
        return out

    def solve_splitting(self, direction: int, rhs: np.ndarray, a: float) -> np.ndarray:
        return self.directions[direction].solve_splitting(rhs, a)
