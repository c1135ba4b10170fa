from typing import Tuple, Dict

import numpy as np
import pytest

try:
    from .common import (
        BarrierOption,
        BarrierType,
        ConfigurationError,
        FdHestonBarrierEngine,
        FdHestonVanillaEngine,
        FdmConfig,
        PlainVanillaPayoff,
        VanillaOption,
        get_default_process,
    )
except ImportError:
    from common import (
        BarrierOption,
        BarrierType,
        ConfigurationError,
        FdHestonBarrierEngine,
        FdHestonVanillaEngine,
        FdmConfig,
        PlainVanillaPayoff,
        VanillaOption,
        get_default_process,
    )


CONFIG = FdmConfig(x_grid=80, v_grid=30, t_grid=60)
MONTHLY = [i / 12 for i in range(1, 13)]


def check_barrier_ordering() -> Tuple[bool, str, Dict]:
    """
    0 ≤ continuous knock-out ≤ discrete knock-out ≤ vanilla, and
    knock-in + knock-out = vanilla.
    """
    process = get_default_process()
    payoff = PlainVanillaPayoff('call', 100.0)
    engine = FdHestonBarrierEngine(process, CONFIG)

    vanilla = FdHestonVanillaEngine(process, CONFIG).calculate(VanillaOption(payoff, 1.0))['value']
    continuous = engine.calculate(BarrierOption(BarrierType.DOWN_OUT, 90.0, payoff, 1.0))['value']
    discrete = engine.calculate(
        BarrierOption(BarrierType.DOWN_OUT, 90.0, payoff, 1.0, monitoring_times=MONTHLY)
    )['value']
    knock_in = engine.calculate(BarrierOption(BarrierType.DOWN_IN, 90.0, payoff, 1.0))['value']

    checks = {
        'continuous >= 0': continuous >= 0,
        'continuous <= discrete': continuous <= discrete,
        'discrete <= vanilla': discrete <= vanilla,
        'in + out = vanilla': abs(knock_in + continuous - vanilla) < 1e-10,
        'knock-in >= 0': knock_in >= -1e-10,
    }

    passed = all(checks.values())
    message = (
        f"vanilla={vanilla:.4f}, continuous={continuous:.4f}, "
        f"discrete={discrete:.4f}, knock-in={knock_in:.4f}"
    )
    details = {
        'vanilla': vanilla,
        'continuous': continuous,
        'discrete': discrete,
        'knock_in': knock_in,
        'checks': checks,
    }

    return passed, message, details


def test_barrier_ordering():
    passed, message, _ = check_barrier_ordering()
    assert passed, message


def test_up_and_out_call():
    process = get_default_process()
    payoff = PlainVanillaPayoff('call', 100.0)
    engine = FdHestonBarrierEngine(process, CONFIG)

    vanilla = FdHestonVanillaEngine(process, CONFIG).calculate(VanillaOption(payoff, 1.0))['value']
    result = engine.calculate(BarrierOption(BarrierType.UP_OUT, 130.0, payoff, 1.0))

    assert 0.0 <= result['value'] < vanilla
    assert engine.solver.mesher.S[-1] == pytest.approx(130.0)


def test_rebate_adds_value():
    process = get_default_process()
    payoff = PlainVanillaPayoff('put', 100.0)
    engine = FdHestonBarrierEngine(process, CONFIG)

    plain = engine.calculate(BarrierOption('down_out', 80.0, payoff, 1.0))['value']
    with_rebate = engine.calculate(BarrierOption('down_out', 80.0, payoff, 1.0, rebate=5.0))['value']
    assert with_rebate > plain


def test_spot_beyond_barrier_rejected():
    engine = FdHestonBarrierEngine(get_default_process(), CONFIG)
    payoff = PlainVanillaPayoff('call', 100.0)
    with pytest.raises(ConfigurationError):
        engine.calculate(BarrierOption(BarrierType.DOWN_OUT, 110.0, payoff, 1.0))
    with pytest.raises(ConfigurationError):
        engine.calculate(BarrierOption(BarrierType.UP_IN, 95.0, payoff, 1.0))


def test_knock_in_with_rebate_rejected():
    engine = FdHestonBarrierEngine(get_default_process(), CONFIG)
    payoff = PlainVanillaPayoff('call', 100.0)
    with pytest.raises(ConfigurationError):
        engine.calculate(BarrierOption(BarrierType.DOWN_IN, 90.0, payoff, 1.0, rebate=1.0))


def test_invalid_barrier_level():
    with pytest.raises(ConfigurationError):
        BarrierOption(BarrierType.DOWN_OUT, 0.0, PlainVanillaPayoff('call', 100.0), 1.0)


@pytest.mark.parametrize("barrier_type", [BarrierType.DOWN_OUT, BarrierType.DOWN_IN])
def test_barrier_just_below_spot(barrier_type):
    # the greek bumps must stay on the grid that ends at the barrier
    process = get_default_process()
    payoff = PlainVanillaPayoff('call', 100.0)
    engine = FdHestonBarrierEngine(process, CONFIG)

    vanilla = FdHestonVanillaEngine(process, CONFIG).calculate(VanillaOption(payoff, 1.0))['value']
    result = engine.calculate(BarrierOption(barrier_type, 99.5, payoff, 1.0))

    assert all(np.isfinite(value) for value in result.values())
    assert -1e-8 <= result['value'] <= vanilla + 1e-8
    assert engine.solver.mesher.S[0] == pytest.approx(99.5)
    if barrier_type is BarrierType.DOWN_OUT:
        assert result['delta'] > 0
