"""
Grid Generation for the Heston PDE Solver

═══════════════════════════════════════════════════════════════════════════════
NONUNIFORM SPATIAL DISCRETIZATION FOR THE HESTON PDE
═══════════════════════════════════════════════════════════════════════════════

The PDE lives on (x, v) with x = ln(S). Accuracy is needed where the payoff
has its kink (the strike) and where the variance spends most of its time
(around the long-run mean θ); far edges only exist to host boundary
conditions.

1. SINH CONCENTRATION (Tavella-Randall):
   ═══════════════════════════════════════════════════════════════════════════

   Nodes concentrated around a center c on [a, b]:

       ξ_k uniform on [asinh((a - c)/α), asinh((b - c)/α)]
       y_k = c + α·sinh(ξ_k)

   with α = density·(b - a). Spacing near c is ≈ α·Δξ and grows like
   cosh(ξ) towards the edges. Small density → strong concentration.

2. LOG-PRICE BOUNDS:
   ═══════════════════════════════════════════════════════════════════════════

   w = scale · Φ⁻¹(1 - ε) · √(max(V₀, θ)·T)
   x_min = min(ln S₀, ln K) - w,   x_max = max(ln S₀, ln K) + w

   Typical values: scale = 1.5, ε = 10⁻⁴  →  about ±5.6 standard deviations.

3. VARIANCE BOUNDS:
   ═══════════════════════════════════════════════════════════════════════════

   v_min = 0 (the degenerate edge is handled by upwinding, no BC needed)

   v_max = max(q_{1-ε}(v_T), 5·max(V₀, θ))

   where v_T is the CIR variance at maturity:
       v_T = c·X,  X ~ χ'²(d, λ)
       c = σ²(1 - e^{-κT}) / (4κ)
       d = 4κθ/σ²,  λ = 4κe^{-κT}V₀ / (σ²(1 - e^{-κT}))

═══════════════════════════════════════════════════════════════════════════════
"""

from typing import Optional, Tuple

import numpy as np
from scipy.stats import ncx2, norm

from heston_fdm.backend.core.errors import ConfigurationError
from heston_fdm.backend.core.parameters import HestonParams, HestonProcess

MIN_NODES = 3


def _check_strictly_increasing(nodes: np.ndarray, name: str) -> None:
    if not np.all(np.isfinite(nodes)) or np.any(np.diff(nodes) <= 0):
        raise ConfigurationError(f"{name} coordinates must be finite and strictly increasing")


class Concentrating1dMesher:
    """
    One-dimensional sinh-concentrated mesh (uniform when center is None).
    """

    def __init__(
        self,
        start: float,
        end: float,
        size: int,
        center: Optional[float] = None,
        density: float = 0.1
    ):
        if size < MIN_NODES:
            raise ConfigurationError(f"need at least {MIN_NODES} nodes, got {size}")
        if not end > start:
            raise ConfigurationError(f"mesh end {end} must exceed start {start}")
        if density <= 0:
            raise ConfigurationError(f"density must be positive, got {density}")

        if center is None:
            nodes = np.linspace(start, end, size)
        else:
            center = min(max(center, start), end)
            alpha = density * (end - start)
            xi = np.linspace(
                np.arcsinh((start - center) / alpha),
                np.arcsinh((end - center) / alpha),
                size
            )
            nodes = center + alpha * np.sinh(xi)
            # pin the edges against rounding
            nodes[0], nodes[-1] = start, end

        _check_strictly_increasing(nodes, "mesh")
        nodes.setflags(write=False)
        self.locations = nodes

    def __len__(self) -> int:
        return len(self.locations)


def variance_upper_bound(params: HestonParams, maturity: float, eps: float = 1e-4) -> float:
    """
    Upper variance edge from the CIR (1 - ε)-quantile at maturity, floored at
    five times the larger of V₀ and θ.
    """
    floor = 5.0 * max(params.V0, params.theta)
    if params.sigma <= 0:
        return floor

    kappa, theta, sigma = params.kappa, params.theta, params.sigma
    decay = np.exp(-kappa * maturity)
    c = sigma ** 2 * (1 - decay) / (4 * kappa)
    df = 4 * kappa * theta / sigma ** 2
    nc = 4 * kappa * decay * params.V0 / (sigma ** 2 * (1 - decay))

    quantile = c * ncx2.ppf(1 - eps, df, nc)
    if not np.isfinite(quantile):
        return floor
    return max(float(quantile), floor)


class HestonMesher:
    """
    2D (log-price × variance) grid for the Heston PDE.

    The grid is built once from a market snapshot and never depends on the
    time variable. Attributes:

        x  : log-price nodes, shape (N_x,)
        S  : price nodes exp(x)
        v  : variance nodes, shape (N_v,)
        shape : (N_x, N_v)
    """

    def __init__(
        self,
        process: HestonProcess,
        maturity: float,
        x_size: int = 100,
        v_size: int = 50,
        strike: Optional[float] = None,
        x_density: float = 0.1,
        v_density: float = 0.1,
        scale_factor: float = 1.5,
        eps: float = 1e-4,
        x_min: Optional[float] = None,
        x_max: Optional[float] = None
    ):
        """
        Build the grid.

        Args:
            process: Market inputs (snapshotted; later changes do not move the grid)
            maturity: Option maturity in years (sets the bounds only)
            x_size: Number of log-price nodes (≥ 3)
            v_size: Number of variance nodes (≥ 3)
            strike: Concentration point for the price axis (spot when None)
            x_density, v_density: sinh concentration parameters
            scale_factor: Width multiplier on the quantile-based log-price range
            eps: Tail probability used for both axis bounds
            x_min, x_max: Optional pinned log-price edges (barrier levels)
        """
        # node counts are checked before anything is computed
        for name, size in (("price", x_size), ("variance", v_size)):
            if int(size) != size or size < MIN_NODES:
                raise ConfigurationError(
                    f"{name} axis needs at least {MIN_NODES} nodes, got {size}"
                )
        x_size, v_size = int(x_size), int(v_size)
        if not maturity > 0:
            raise ConfigurationError(f"maturity must be positive, got {maturity}")
        if strike is not None and not strike > 0:
            raise ConfigurationError(f"strike must be positive, got {strike}")

        params = process.snapshot()
        self.maturity = float(maturity)

        # ═══════════════════════════════════════════════════════════════════
        # LOG-PRICE AXIS
        # ═══════════════════════════════════════════════════════════════════
        x_spot = np.log(params.S0)
        x_center = np.log(strike) if strike is not None else x_spot

        vol = np.sqrt(max(params.V0, params.theta) * maturity)
        width = scale_factor * norm.ppf(1 - eps) * vol
        lo = min(x_spot, x_center) - width if x_min is None else float(x_min)
        hi = max(x_spot, x_center) + width if x_max is None else float(x_max)
        if not lo < x_spot < hi:
            raise ConfigurationError(
                f"spot {params.S0} must lie strictly inside the price grid "
                f"[{np.exp(lo):.6g}, {np.exp(hi):.6g}]"
            )

        self.x = Concentrating1dMesher(lo, hi, x_size, x_center, x_density).locations
        self.S = np.exp(self.x)
        self.S.setflags(write=False)

        # ═══════════════════════════════════════════════════════════════════
        # VARIANCE AXIS
        # ═══════════════════════════════════════════════════════════════════
        v_max = variance_upper_bound(params, maturity, eps)
        self.v = Concentrating1dMesher(0.0, v_max, v_size, params.theta, v_density).locations

        _check_strictly_increasing(self.S, "price")
        self.shape = (len(self.x), len(self.v))

    @property
    def size(self) -> int:
        return self.shape[0] * self.shape[1]

    def locations(self, axis: int) -> np.ndarray:
        """Coordinates along an axis (0: log-price, 1: variance)."""
        return self.x if axis == 0 else self.v

    @property
    def s_bounds(self) -> Tuple[float, float]:
        return float(self.S[0]), float(self.S[-1])

    @property
    def v_bounds(self) -> Tuple[float, float]:
        return float(self.v[0]), float(self.v[-1])

    def summary(self) -> str:
        dx = np.diff(self.x)
        dv = np.diff(self.v)
        return (
            f"Grid Summary:\n"
            f"  S-grid: [{self.S[0]:.2f}, {self.S[-1]:.2f}], N={self.shape[0]}, "
            f"Δx ∈ [{dx.min():.4f}, {dx.max():.4f}]\n"
            f"  v-grid: [{self.v[0]:.2e}, {self.v[-1]:.4f}], N={self.shape[1]}, "
            f"Δv ∈ [{dv.min():.5f}, {dv.max():.5f}]"
        )
