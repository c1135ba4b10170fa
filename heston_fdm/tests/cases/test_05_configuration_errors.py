import warnings

import pytest

try:
    from .common import (
        ConfigurationError,
        Concentrating1dMesher,
        FdHestonVanillaEngine,
        FdmConfig,
        FdmHestonSolver,
        HestonFdmError,
        HestonMesher,
        HestonParams,
        HestonProcess,
        FlatForward,
        PlainVanillaPayoff,
        SchemeKind,
        VanillaOption,
        ZeroCurve,
        get_default_process,
        vanilla_boundary_set,
    )
except ImportError:
    from common import (
        ConfigurationError,
        Concentrating1dMesher,
        FdHestonVanillaEngine,
        FdmConfig,
        FdmHestonSolver,
        HestonFdmError,
        HestonMesher,
        HestonParams,
        HestonProcess,
        FlatForward,
        PlainVanillaPayoff,
        SchemeKind,
        VanillaOption,
        ZeroCurve,
        get_default_process,
        vanilla_boundary_set,
    )


class ExplodingMesher:
    """Fails the test if the solver looks at the grid during validation."""

    def __getattr__(self, name):
        raise AssertionError(f"mesher.{name} accessed before validation")


def make_solver(mesher, **kwargs):
    payoff = PlainVanillaPayoff('call', 100.0)
    arguments = dict(
        process=get_default_process(), mesher=mesher, bc_set=vanilla_boundary_set(payoff),
        condition=None, payoff=payoff, maturity=1.0, time_steps=100
    )
    arguments.update(kwargs)
    return FdmHestonSolver(**arguments)


@pytest.mark.parametrize("time_steps", [0, -5, 2.5, True, None, '10'])
def test_invalid_time_steps(time_steps):
    with pytest.raises(ConfigurationError):
        make_solver(ExplodingMesher(), time_steps=time_steps)


@pytest.mark.parametrize("scheme, theta, mu", [
    (SchemeKind.DOUGLAS, 0.3, 0.5),
    (SchemeKind.HUNDSDORFER_VERWER, 0.2, 0.5),
    (SchemeKind.CRAIG_SNEYD, 0.7, -0.1),
])
def test_invalid_scheme_weights(scheme, theta, mu):
    with pytest.raises(ConfigurationError):
        make_solver(ExplodingMesher(), scheme=scheme, theta=theta, mu=mu)


@pytest.mark.parametrize("maturity", [0.0, -1.0, float('nan'), float('inf')])
def test_invalid_maturity(maturity):
    with pytest.raises(ConfigurationError):
        make_solver(ExplodingMesher(), maturity=maturity)


def test_invalid_snapshot_time():
    with pytest.raises(ConfigurationError):
        make_solver(ExplodingMesher(), snapshot_time=2.0)
    with pytest.raises(ConfigurationError):
        make_solver(ExplodingMesher(), snapshot_time=0.0)


def test_valid_construction_is_lazy():
    solver = make_solver(ExplodingMesher())
    assert solver.solve_count == 0
    assert solver.dt == pytest.approx(0.01)


@pytest.mark.parametrize("x_size, v_size", [(2, 50), (100, 2), (0, 0), (2.5, 50)])
def test_mesher_node_counts(x_size, v_size):
    with pytest.raises(ConfigurationError):
        HestonMesher(get_default_process(), 1.0, x_size, v_size)


def test_mesher_node_counts_checked_first():
    # an invalid maturity must not mask the node-count error message
    with pytest.raises(ConfigurationError, match="nodes"):
        HestonMesher(get_default_process(), -1.0, 1, 50)


def test_mesher_invalid_inputs():
    process = get_default_process()
    with pytest.raises(ConfigurationError):
        HestonMesher(process, 0.0, 50, 20)
    with pytest.raises(ConfigurationError):
        HestonMesher(process, 1.0, 50, 20, strike=-10.0)
    with pytest.raises(ConfigurationError):
        # spot below the pinned lower edge
        HestonMesher(process, 1.0, 50, 20, x_min=5.0)
    with pytest.raises(ConfigurationError):
        Concentrating1dMesher(1.0, 0.5, 10)
    with pytest.raises(ConfigurationError):
        Concentrating1dMesher(0.0, 1.0, 10, center=0.5, density=0.0)


@pytest.mark.parametrize("field, value", [
    ('kappa', 0.0),
    ('theta', -0.01),
    ('sigma', -0.3),
    ('rho', 1.5),
    ('rho', -1.01),
    ('S0', 0.0),
    ('V0', -0.04),
])
def test_invalid_heston_parameters(field, value):
    arguments = dict(
        kappa=2.0, theta=0.04, sigma=0.3, rho=-0.7, S0=100.0, V0=0.04,
        risk_free=FlatForward(0.05), dividend=FlatForward(0.02)
    )
    arguments[field] = value
    with pytest.raises(ConfigurationError):
        HestonParams(**arguments)


def test_invalid_process_quote_surfaces_on_snapshot():
    process = get_default_process()
    process.rho.set_value(2.0)
    with pytest.raises(ConfigurationError):
        process.snapshot()


def test_feller_condition():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        params_ok = get_default_process().snapshot()

    with pytest.warns(UserWarning, match="Feller"):
        params_bad = HestonProcess(0.05, 0.02, 100.0, 0.04, 1.0, 0.04, 0.5, -0.7).snapshot()

    assert params_ok.feller_satisfied and params_ok.feller_ratio > 1
    assert not params_bad.feller_satisfied and params_bad.feller_ratio < 1


def test_invalid_curves_and_payoffs():
    with pytest.raises(ConfigurationError):
        ZeroCurve([1.0, 0.5], [0.05, 0.05])
    with pytest.raises(ConfigurationError):
        ZeroCurve([0.5, 1.0], [0.05])
    with pytest.raises(ConfigurationError):
        PlainVanillaPayoff('call', 0.0)
    with pytest.raises(ValueError):
        PlainVanillaPayoff('straddle', 100.0)


def test_error_hierarchy():
    assert issubclass(ConfigurationError, HestonFdmError)
    assert issubclass(ConfigurationError, ValueError)


@pytest.mark.parametrize("field, value", [
    ('t_grid', 0),
    ('t_grid', -10),
    ('t_grid', 2.5),
    ('x_grid', 2),
    ('v_grid', True),
    ('theta', 0.2),
    ('x_density', 0.0),
    ('eps', 0.0),
])
def test_invalid_fdm_config(field, value):
    with pytest.raises(ConfigurationError):
        FdmConfig(**{field: value})


def test_engine_rejects_bad_input_before_building_grids(monkeypatch):
    import heston_fdm.backend.core.grid as grid

    built = []

    class CountingMesher(Concentrating1dMesher):
        def __init__(self, *args, **kwargs):
            built.append(args)
            super().__init__(*args, **kwargs)

    monkeypatch.setattr(grid, 'Concentrating1dMesher', CountingMesher)

    with pytest.raises(ConfigurationError):
        FdHestonVanillaEngine(get_default_process(), FdmConfig(t_grid=0))

    engine = FdHestonVanillaEngine(get_default_process(), FdmConfig(x_grid=20, v_grid=10, t_grid=10))
    with pytest.raises(ConfigurationError):
        engine.calculate(VanillaOption(PlainVanillaPayoff('put', 100.0), 0.0))
    assert built == []
