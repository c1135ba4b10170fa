"""
Heston Market Inputs and Parameter Snapshots

═══════════════════════════════════════════════════════════════════════════════
HESTON MODEL INPUTS
═══════════════════════════════════════════════════════════════════════════════

Model dynamics under the risk-neutral measure:

    dS = (r(t) - q(t))·S dt + √v·S dW_S
    dv = κ(θ - v) dt + σ√v dW_v
    Corr(dW_S, dW_v) = ρ

1. SHARED HANDLES:
   ═══════════════════════════════════════════════════════════════════════════

   Spot, variance parameters and curves are held as shared references
   (SimpleQuote, FlatForward, ZeroCurve). Several solvers may observe the same
   quote; none of them owns it.

   Every handle carries a version counter. A mutation bumps the counter; the
   process exposes the tuple of all counters as its state token. Solvers
   compare tokens at each query to decide whether a cached solution is stale.

2. SNAPSHOTS:
   ═══════════════════════════════════════════════════════════════════════════

   Before a backward march the solver takes a HestonParams snapshot: plain
   floats plus frozen curve copies. A quote changed mid-solve cannot reach the
   running march.

3. FELLER CONDITION:
   ═══════════════════════════════════════════════════════════════════════════

   2κθ > σ² keeps the variance strictly positive. Violation is legal for the
   PDE (the v = 0 edge is upwinded), so it only triggers a warning.

═══════════════════════════════════════════════════════════════════════════════
"""

import warnings
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import numpy as np

from heston_fdm.backend.core.errors import ConfigurationError


class SimpleQuote:
    """Mutable market quote with a version counter."""

    def __init__(self, value: float):
        self._value = float(value)
        self.version = 0

    def value(self) -> float:
        return self._value

    def set_value(self, value: float) -> None:
        value = float(value)
        if value != self._value:
            self._value = value
            self.version += 1

    def __repr__(self) -> str:
        return f"SimpleQuote({self._value!r}, version={self.version})"


QuoteLike = Union[float, SimpleQuote]


def as_quote(value: QuoteLike) -> SimpleQuote:
    """Wrap plain numbers so every input is observable the same way."""
    if isinstance(value, SimpleQuote):
        return value
    return SimpleQuote(value)


class FlatForward:
    """
    Flat continuously-compounded rate curve.

    D(t) = e^{-r·t}
    """

    def __init__(self, rate: QuoteLike):
        self.rate = as_quote(rate)

    @property
    def version(self) -> int:
        return self.rate.version

    def zero_rate(self, t: float) -> float:
        return self.rate.value()

    def discount(self, t):
        return np.exp(-self.rate.value() * np.asarray(t, dtype=float))

    def forward_rate(self, t1: float, t2: float) -> float:
        return self.rate.value()

    def snapshot(self) -> 'FlatForward':
        return FlatForward(self.rate.value())

    def __repr__(self) -> str:
        return f"FlatForward({self.rate.value():.6g})"


class ZeroCurve:
    """
    Piecewise-linear zero-rate curve with flat extrapolation.

    Discount factor:  D(t) = e^{-z(t)·t}
    Forward rate:     f(t₁, t₂) = [z(t₂)t₂ - z(t₁)t₁] / (t₂ - t₁)

    The node arrays are copied and frozen, so the curve is immutable and
    serves as its own snapshot.
    """

    def __init__(self, times: Sequence[float], rates: Sequence[float]):
        times = np.array(times, dtype=float)
        rates = np.array(rates, dtype=float)
        if times.ndim != 1 or times.shape != rates.shape or times.size == 0:
            raise ConfigurationError("ZeroCurve needs matching, non-empty 1-D times and rates")
        if np.any(np.diff(times) <= 0):
            raise ConfigurationError("ZeroCurve times must be strictly increasing")
        times.setflags(write=False)
        rates.setflags(write=False)
        self.times = times
        self.rates = rates
        self.version = 0

    def zero_rate(self, t: float) -> float:
        return float(np.interp(t, self.times, self.rates))

    def discount(self, t):
        t = np.asarray(t, dtype=float)
        return np.exp(-np.interp(t, self.times, self.rates) * t)

    def forward_rate(self, t1: float, t2: float) -> float:
        if t2 - t1 < 1e-10:
            t2 = t1 + 1e-4
        return (self.zero_rate(t2) * t2 - self.zero_rate(t1) * t1) / (t2 - t1)

    def snapshot(self) -> 'ZeroCurve':
        return self


Curve = Union[FlatForward, ZeroCurve]


def as_curve(value: Union[float, SimpleQuote, FlatForward, ZeroCurve]) -> Curve:
    if isinstance(value, (FlatForward, ZeroCurve)):
        return value
    return FlatForward(value)


@dataclass(frozen=True)
class HestonParams:
    """
    Frozen snapshot of every market input the solver needs.

    Mathematical Requirements:
    ═══════════════════════════════════════════════════════════════════════
    κ > 0, θ > 0, σ ≥ 0, -1 ≤ ρ ≤ 1, S₀ > 0, V₀ ≥ 0

    σ = 0 is accepted: it is the deterministic-variance (Black-Scholes)
    limit of the model.
    ═══════════════════════════════════════════════════════════════════════
    """

    kappa: float   # κ: mean reversion speed
    theta: float   # θ: long-run variance
    sigma: float   # σ: volatility of variance
    rho: float     # ρ: spot/variance correlation
    S0: float      # spot
    V0: float      # current variance
    risk_free: Curve
    dividend: Curve

    def __post_init__(self):
        checks = [
            (self.kappa > 0, f"κ must be positive, got {self.kappa}"),
            (self.theta > 0, f"θ must be positive, got {self.theta}"),
            (self.sigma >= 0, f"σ must be non-negative, got {self.sigma}"),
            (-1 <= self.rho <= 1, f"ρ must be in [-1, 1], got {self.rho}"),
            (self.S0 > 0, f"S₀ must be positive, got {self.S0}"),
            (self.V0 >= 0, f"V₀ must be non-negative, got {self.V0}"),
        ]
        for ok, message in checks:
            if not ok:
                raise ConfigurationError(message)

        if not self.feller_satisfied:
            warnings.warn(
                f"Feller condition violated: 2κθ = {2 * self.kappa * self.theta:.6f} "
                f"≤ σ² = {self.sigma ** 2:.6f}; variance can reach zero"
            )

    @property
    def feller_ratio(self) -> float:
        """F = 2κθ/σ² (infinite in the deterministic-variance limit)."""
        if self.sigma == 0:
            return np.inf
        return 2 * self.kappa * self.theta / self.sigma ** 2

    @property
    def feller_satisfied(self) -> bool:
        return self.feller_ratio > 1.0


class HestonProcess:
    """
    Shared, observable bundle of Heston market inputs.

    Any argument may be a plain number or a shared SimpleQuote / curve. The
    process never copies shared handles, so a quote updated elsewhere is
    visible through state_token() on the next query.
    """

    def __init__(
        self,
        risk_free: Union[float, SimpleQuote, Curve],
        dividend: Union[float, SimpleQuote, Curve],
        spot: QuoteLike,
        v0: QuoteLike,
        kappa: QuoteLike,
        theta: QuoteLike,
        sigma: QuoteLike,
        rho: QuoteLike,
    ):
        self.risk_free = as_curve(risk_free)
        self.dividend = as_curve(dividend)
        self.spot = as_quote(spot)
        self.v0 = as_quote(v0)
        self.kappa = as_quote(kappa)
        self.theta = as_quote(theta)
        self.sigma = as_quote(sigma)
        self.rho = as_quote(rho)

    def state_token(self) -> Tuple[int, ...]:
        """Invalidation token: changes whenever any observed input mutates."""
        return (
            self.risk_free.version,
            self.dividend.version,
            self.spot.version,
            self.v0.version,
            self.kappa.version,
            self.theta.version,
            self.sigma.version,
            self.rho.version,
        )

    def snapshot(self) -> HestonParams:
        return HestonParams(
            kappa=self.kappa.value(),
            theta=self.theta.value(),
            sigma=self.sigma.value(),
            rho=self.rho.value(),
            S0=self.spot.value(),
            V0=self.v0.value(),
            risk_free=self.risk_free.snapshot(),
            dividend=self.dividend.snapshot(),
        )

    def __repr__(self) -> str:
        return (
            f"HestonProcess(\n"
            f"  κ={self.kappa.value():.4f}, θ={self.theta.value():.4f}, "
            f"σ={self.sigma.value():.4f}, ρ={self.rho.value():.4f}\n"
            f"  S₀={self.spot.value():.2f}, V₀={self.v0.value():.4f}\n"
            f"  r={self.risk_free!r}, q={self.dividend!r}\n"
            f")"
        )


# ═══════════════════════════════════════════════════════════════════════════════
# TYPICAL PARAMETER SETS FOR TESTING
# ═══════════════════════════════════════════════════════════════════════════════

def get_default_process() -> HestonProcess:
    """
    Default equity-like inputs (Feller satisfied, 20% long-run volatility).
    """
    return HestonProcess(
        risk_free=FlatForward(0.05),
        dividend=FlatForward(0.02),
        spot=SimpleQuote(100.0),
        v0=SimpleQuote(0.04),
        kappa=SimpleQuote(2.0),
        theta=SimpleQuote(0.04),
        sigma=SimpleQuote(0.3),
        rho=SimpleQuote(-0.7),
    )


def get_black_scholes_limit_process(sigma: float = 1e-3) -> HestonProcess:
    """
    Near-deterministic variance pinned at θ: the price tends to Black-Scholes
    with volatility √θ as σ → 0.
    """
    return HestonProcess(
        risk_free=FlatForward(0.05),
        dividend=FlatForward(0.02),
        spot=SimpleQuote(100.0),
        v0=SimpleQuote(0.04),
        kappa=SimpleQuote(2.0),
        theta=SimpleQuote(0.04),
        sigma=SimpleQuote(sigma),
        rho=SimpleQuote(0.0),
    )
