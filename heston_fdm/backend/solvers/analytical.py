"""
Closed-Form Benchmarks: Heston Fourier Inversion and Black-Scholes

═══════════════════════════════════════════════════════════════════════════════
SEMI-ANALYTICAL EUROPEAN PRICES FOR VALIDATING THE PDE SOLVER
═══════════════════════════════════════════════════════════════════════════════

1. FOURIER INVERSION:
   ═══════════════════════════════════════════════════════════════════════════

   C = S·e^{-qT}·P₁ - K·e^{-rT}·P₂

   P_j = 1/2 + (1/π) ∫₀^∞ Re[e^{-iu·ln K} · φ_j(u) / (iu)] du

   r and q are the zero rates of the curves at T, so the formula is exact for
   any deterministic term structure.

2. CHARACTERISTIC FUNCTION ("little trap" form, Albrecher et al. 2007):
   ═══════════════════════════════════════════════════════════════════════════

   P₁: u_j = 1/2,  b_j = κ - ρσ          P₂: u_j = -1/2,  b_j = κ

   ξ = b_j - ρσiu
   d = √(ξ² - σ²(2u_j·iu - u²)),   Re(d) ≥ 0
   g = (ξ - d)/(ξ + d)

   D = (ξ - d)/σ² · (1 - e^{-dT})/(1 - g·e^{-dT})
   C = (r - q)iuT + (κθ/σ²)[(ξ - d)T - 2 ln((1 - g·e^{-dT})/(1 - g))]

   φ_j(u) = exp(C + D·V₀ + iu·ln S₀)

   Only decaying exponentials appear, so no branch-cut jumps of the complex
   logarithm.

3. BLACK-SCHOLES (σ → 0 limit with v ≡ θ = V₀):
   ═══════════════════════════════════════════════════════════════════════════

   d₁ = [ln(S/K) + (r - q + vol²/2)T] / (vol·√T),   d₂ = d₁ - vol·√T
   C = S·e^{-qT}·N(d₁) - K·e^{-rT}·N(d₂)
   P = K·e^{-rT}·N(-d₂) - S·e^{-qT}·N(-d₁)

═══════════════════════════════════════════════════════════════════════════════
"""

from typing import Union

import numpy as np
from scipy.integrate import quad
from scipy.stats import norm

from heston_fdm.backend.core.boundaries import OptionType
from heston_fdm.backend.core.errors import ConfigurationError
from heston_fdm.backend.core.parameters import HestonParams, HestonProcess


class AnalyticalPricer:
    """
    Heston semi-analytical European pricer.

    Implementation based on:
    Heston, S.L. (1993). "A Closed-Form Solution for Options with
    Stochastic Volatility with Applications to Bond and Currency Options."
    """

    def __init__(self, params: Union[HestonParams, HestonProcess]):
        if isinstance(params, HestonProcess):
            params = params.snapshot()
        if params.sigma <= 0:
            raise ConfigurationError("Fourier pricing needs σ > 0; use black_scholes_price")
        self.p = params

        # Integration parameters
        self.u_max = 200.0
        self.limit = 400

    def characteristic_function(self, u: float, tau: float, formulation: int = 1) -> complex:
        """
        φ_j(u) for P₁ (formulation=1, share measure) or P₂ (formulation=2).
        """
        p = self.p
        r = p.risk_free.zero_rate(tau)
        q = p.dividend.zero_rate(tau)

        if formulation == 1:
            uj, bj = 0.5, p.kappa - p.rho * p.sigma
        else:
            uj, bj = -0.5, p.kappa

        xi = bj - p.rho * p.sigma * u * 1j
        d = np.sqrt(xi ** 2 - p.sigma ** 2 * (2 * uj * u * 1j - u ** 2))
        if np.real(d) < 0:
            d = -d
        g = (xi - d) / (xi + d)
        e = np.exp(-d * tau)

        D = (xi - d) / p.sigma ** 2 * (1 - e) / (1 - g * e)
        C = (r - q) * u * tau * 1j
        C += p.kappa * p.theta / p.sigma ** 2 * ((xi - d) * tau - 2 * np.log((1 - g * e) / (1 - g)))

        return np.exp(C + D * p.V0 + 1j * u * np.log(p.S0))

    def _probability(self, K: float, tau: float, formulation: int) -> float:
        log_k = np.log(K)

        def integrand(u):
            if u < 1e-10:
                return 0.0
            phi = self.characteristic_function(u, tau, formulation)
            return np.real(np.exp(-1j * u * log_k) * phi / (1j * u))

        integral, _ = quad(integrand, 0.0, self.u_max, limit=self.limit)
        return 0.5 + integral / np.pi

    def call_price(self, K: float, T: float) -> float:
        """
        European call via Fourier inversion.

        Args:
            K: Strike price
            T: Time to maturity

        Returns:
            Call option price
        """
        P1 = self._probability(K, T, 1)
        P2 = self._probability(K, T, 2)
        price = (
            self.p.S0 * float(self.p.dividend.discount(T)) * P1
            - K * float(self.p.risk_free.discount(T)) * P2
        )
        return max(price, 0.0)

    def put_price(self, K: float, T: float) -> float:
        """
        European put via put-call parity:  P = C - S·e^{-qT} + K·e^{-rT}
        """
        call = self.call_price(K, T)
        put = (
            call - self.p.S0 * float(self.p.dividend.discount(T))
            + K * float(self.p.risk_free.discount(T))
        )
        return max(put, 0.0)

    def price(self, option_type: Union[OptionType, str], K: float, T: float) -> float:
        if OptionType(option_type) is OptionType.CALL:
            return self.call_price(K, T)
        return self.put_price(K, T)


# ═══════════════════════════════════════════════════════════════════════════════
# BLACK-SCHOLES
# ═══════════════════════════════════════════════════════════════════════════════

def _d1_d2(S, K, T, r, q, vol):
    sqrt_t = np.sqrt(T)
    d1 = (np.log(S / K) + (r - q + 0.5 * vol ** 2) * T) / (vol * sqrt_t)
    return d1, d1 - vol * sqrt_t


def black_scholes_price(
    option_type: Union[OptionType, str],
    S: float,
    K: float,
    T: float,
    r: float,
    q: float,
    vol: float
) -> float:
    d1, d2 = _d1_d2(S, K, T, r, q, vol)
    if OptionType(option_type) is OptionType.CALL:
        return S * np.exp(-q * T) * norm.cdf(d1) - K * np.exp(-r * T) * norm.cdf(d2)
    return K * np.exp(-r * T) * norm.cdf(-d2) - S * np.exp(-q * T) * norm.cdf(-d1)


def black_scholes_delta(option_type, S, K, T, r, q, vol) -> float:
    """Δ_call = e^{-qT}·N(d₁),   Δ_put = Δ_call - e^{-qT}"""
    d1, _ = _d1_d2(S, K, T, r, q, vol)
    call_delta = np.exp(-q * T) * norm.cdf(d1)
    if OptionType(option_type) is OptionType.CALL:
        return call_delta
    return call_delta - np.exp(-q * T)


def black_scholes_gamma(S, K, T, r, q, vol) -> float:
    """Γ = e^{-qT}·n(d₁) / (S·vol·√T), identical for calls and puts."""
    d1, _ = _d1_d2(S, K, T, r, q, vol)
    return np.exp(-q * T) * norm.pdf(d1) / (S * vol * np.sqrt(T))


def black_scholes_theta(option_type, S, K, T, r, q, vol) -> float:
    """∂V/∂t in calendar time (per year)."""
    d1, d2 = _d1_d2(S, K, T, r, q, vol)
    decay = -S * np.exp(-q * T) * norm.pdf(d1) * vol / (2 * np.sqrt(T))
    if OptionType(option_type) is OptionType.CALL:
        return (decay + q * S * np.exp(-q * T) * norm.cdf(d1)
                - r * K * np.exp(-r * T) * norm.cdf(d2))
    return (decay - q * S * np.exp(-q * T) * norm.cdf(-d1)
            + r * K * np.exp(-r * T) * norm.cdf(-d2))
