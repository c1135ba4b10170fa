from typing import Tuple, Dict
import numpy as np

try:
    from .common import (
        ExerciseType,
        FdHestonVanillaEngine,
        FdmConfig,
        PlainVanillaPayoff,
        VanillaOption,
        get_default_process,
        make_vanilla_solver,
    )
except ImportError:
    from common import (
        ExerciseType,
        FdHestonVanillaEngine,
        FdmConfig,
        PlainVanillaPayoff,
        VanillaOption,
        get_default_process,
        make_vanilla_solver,
    )


def check_american_dominates_european() -> Tuple[bool, str, Dict]:
    process = get_default_process()
    params = process.snapshot()

    rows = []
    for option_type in ('put', 'call'):
        european = make_vanilla_solver(process, option_type, x_grid=80, v_grid=40, t_grid=80)
        american = make_vanilla_solver(process, option_type, x_grid=80, v_grid=40, t_grid=80, american=True)
        for S in (80.0, 100.0, 120.0):
            eu = european.value_at(S, params.V0)
            am = american.value_at(S, params.V0)
            rows.append({'type': option_type, 'S': S, 'european': eu, 'american': am, 'premium': am - eu})

    put_atm = next(r for r in rows if r['type'] == 'put' and r['S'] == 100.0)
    checks = {
        'american >= european': all(r['premium'] >= -1e-4 for r in rows),
        'put early exercise premium > 0': put_atm['premium'] > 0,
    }

    passed = all(checks.values())
    min_premium = min(r['premium'] for r in rows)
    message = f"Min premium = {min_premium:.6f}, ATM put premium = {put_atm['premium']:.4f}"

    return passed, message, {'rows': rows, 'checks': checks}


def test_american_dominates_european():
    passed, message, _ = check_american_dominates_european()
    assert passed, message


def test_american_put_above_intrinsic_on_grid():
    process = get_default_process()
    solver = make_vanilla_solver(process, 'put', x_grid=60, v_grid=30, t_grid=50, american=True)
    intrinsic = np.maximum(100.0 - solver.mesher.S, 0.0)

    # every column except v_max, which is extrapolated
    assert np.all(solver.solution[:, :-1] >= intrinsic[:, None] - 1e-12)


def test_american_engine_results():
    process = get_default_process()
    engine = FdHestonVanillaEngine(process, FdmConfig(x_grid=60, v_grid=30, t_grid=50))
    payoff = PlainVanillaPayoff('put', 100.0)

    european = engine.calculate(VanillaOption(payoff, 1.0))
    american = engine.calculate(VanillaOption(payoff, 1.0, ExerciseType.AMERICAN))

    assert set(american) == {'value', 'delta', 'gamma', 'theta'}
    assert american['value'] > european['value']
    assert -1.0 < american['delta'] < 0.0
    assert engine.solver is not None and engine.solver.solve_count == 1
