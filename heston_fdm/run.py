#!/usr/bin/env python3
"""
═══════════════════════════════════════════════════════════════════════════════
HESTON FDM - Command Line Entry Point
═══════════════════════════════════════════════════════════════════════════════

Usage:
    python -m heston_fdm.run --demo                # Demo pricing calculations
    python -m heston_fdm.run --demo --grid fine    # Demo on the fine preset
    python -m heston_fdm.run --test                # Run validation tests only

Mathematical Model:
    dS = (r-q)S dt + √V S dW_S
    dV = κ(θ-V)dt + σ√V dW_V
    Corr(dW_S, dW_V) = ρ

═══════════════════════════════════════════════════════════════════════════════
"""

import sys
import argparse


def run_demo(preset: str = 'default'):
    """Run demonstration calculations."""

    print("=" * 70)
    print("HESTON FDM - DEMO")
    print("=" * 70)
    print()

    from heston_fdm.backend.core.boundaries import PlainVanillaPayoff
    from heston_fdm.backend.core.config import DefaultConfig
    from heston_fdm.backend.core.parameters import get_default_process
    from heston_fdm.backend.engines.fd_heston import (
        BarrierOption,
        ExerciseType,
        FdHestonBarrierEngine,
        FdHestonVanillaEngine,
        VanillaOption,
    )
    from heston_fdm.backend.solvers.analytical import AnalyticalPricer
    from heston_fdm.backend.solvers.step_conditions import BarrierType

    config = getattr(DefaultConfig, preset)
    process = get_default_process()
    params = process.snapshot()
    print("Heston Parameters:")
    print(f"  κ (kappa)  = {params.kappa}")
    print(f"  θ (theta)  = {params.theta}")
    print(f"  σ (sigma)  = {params.sigma}")
    print(f"  ρ (rho)    = {params.rho}")
    print(f"  r          = {params.risk_free.zero_rate(1.0)}")
    print(f"  q          = {params.dividend.zero_rate(1.0)}")
    print(f"  S₀         = {params.S0}")
    print(f"  V₀         = {params.V0}")
    print(f"  Feller     = {params.feller_ratio:.2f} {'✓' if params.feller_satisfied else '✗'}")
    print()

    K = 100.0
    T = 1.0
    print(f"Grid: {config.x_grid} x {config.v_grid} x {config.t_grid}, "
          f"scheme {config.scheme.value} (θ={config.theta}, μ={config.mu})")
    print("-" * 70)

    print("\n1. EUROPEAN OPTIONS (K=100, T=1)")
    pricer = AnalyticalPricer(params)
    engine = FdHestonVanillaEngine(process, config)
    for option_type in ('call', 'put'):
        payoff = PlainVanillaPayoff(option_type, K)
        result = engine.calculate(VanillaOption(payoff, T))
        exact = pricer.price(option_type, K, T)
        print(f"   {option_type.capitalize():4s}  FD {result['value']:.4f}   "
              f"Fourier {exact:.4f}   diff {result['value'] - exact:+.5f}")
        print(f"         Δ={result['delta']:.4f}  Γ={result['gamma']:.6f}  "
              f"Θ={result['theta']:.4f} (daily: {result['theta'] / 365:.4f})")

    print("\n2. AMERICAN PUT (K=100, T=1)")
    payoff = PlainVanillaPayoff('put', K)
    american = engine.calculate(VanillaOption(payoff, T, ExerciseType.AMERICAN))
    european = pricer.put_price(K, T)
    print(f"   American {american['value']:.4f}   European {european:.4f}   "
          f"early exercise premium {american['value'] - european:.4f}")

    print("\n3. DOWN BARRIER CALLS (K=100, B=90, T=1)")
    barrier_engine = FdHestonBarrierEngine(process, config)
    payoff = PlainVanillaPayoff('call', K)
    monthly = [i / 12 for i in range(1, 13)]
    for label, barrier_type, times in (
        ('down-and-out (continuous)', BarrierType.DOWN_OUT, None),
        ('down-and-out (monthly)', BarrierType.DOWN_OUT, monthly),
        ('down-and-in (continuous)', BarrierType.DOWN_IN, None),
    ):
        option = BarrierOption(barrier_type, 90.0, payoff, T, monitoring_times=times)
        print(f"   {label:28s} {barrier_engine.calculate(option)['value']:.4f}")

    print()
    print("=" * 70)
    print("Demo complete!")
    print("=" * 70)


def run_tests():
    """Run validation tests."""
    from heston_fdm.tests.validation import run_all_tests
    success = run_all_tests()
    return 0 if success else 1


def main():
    parser = argparse.ArgumentParser(
        description='Finite-Difference Heston Solver',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m heston_fdm.run --demo               Run demo calculations
    python -m heston_fdm.run --demo --grid fine   Demo on the fine grid preset
    python -m heston_fdm.run --test               Run validation tests
        """
    )

    parser.add_argument('--test', action='store_true', help='Run validation tests')
    parser.add_argument('--demo', action='store_true', help='Run demo calculations')
    parser.add_argument('--grid', default='default', choices=['coarse', 'default', 'fine'],
                        help='Grid preset for the demo (default: default)')

    args = parser.parse_args()

    if args.test:
        sys.exit(run_tests())
    elif args.demo:
        run_demo(args.grid)
    else:
        parser.print_help()


if __name__ == '__main__':
    main()
