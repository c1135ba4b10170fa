from typing import Tuple, Dict

try:
    from .common import black_scholes_price, get_black_scholes_limit_process, make_vanilla_solver
except ImportError:
    from common import black_scholes_price, get_black_scholes_limit_process, make_vanilla_solver


def check_bs_limit() -> Tuple[bool, str, Dict]:
    """
    σ → 0 with V₀ = θ: variance stays at θ and the Heston price must match
    Black-Scholes with volatility √θ.
    """
    process = get_black_scholes_limit_process(sigma=1e-3)
    params = process.snapshot()
    T = 1.0
    vol = params.theta ** 0.5

    rows = []
    for option_type in ('call', 'put'):
        for K in (90.0, 100.0, 110.0):
            solver = make_vanilla_solver(process, option_type, K, T)
            fd = solver.value_at(params.S0, params.V0)
            bs = black_scholes_price(option_type, params.S0, K, T, 0.05, 0.02, vol)
            rows.append({
                'type': option_type,
                'K': K,
                'fd': fd,
                'bs': bs,
                'rel_error': abs(fd - bs) / bs,
            })

    max_rel = max(row['rel_error'] for row in rows)
    passed = max_rel < 1e-2
    message = f"Max relative error vs Black-Scholes = {max_rel * 100:.4f}%"

    return passed, message, {'rows': rows, 'max_rel_error': max_rel}


def test_bs_limit():
    passed, message, _ = check_bs_limit()
    assert passed, message
