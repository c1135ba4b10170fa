import numpy as np
from typing import Optional

from heston_fdm.backend.core.boundaries import (
    BoundaryCondition,
    BoundaryConditionSet,
    DirichletBoundary,
    OptionType,
    PayoffBoundary,
    PlainVanillaPayoff,
    Side,
    ZeroCurvatureBoundary,
    vanilla_boundary_set,
)
from heston_fdm.backend.core.config import DefaultConfig, FdmConfig
from heston_fdm.backend.core.errors import (
    ConfigurationError,
    HestonFdmError,
    NumericalDivergence,
    OutOfDomainQuery,
)
from heston_fdm.backend.core.grid import Concentrating1dMesher, HestonMesher, variance_upper_bound
from heston_fdm.backend.core.parameters import (
    FlatForward,
    HestonParams,
    HestonProcess,
    SimpleQuote,
    ZeroCurve,
    get_black_scholes_limit_process,
    get_default_process,
)
from heston_fdm.backend.engines.fd_heston import (
    BarrierOption,
    ExerciseType,
    FdHestonBarrierEngine,
    FdHestonVanillaEngine,
    VanillaOption,
)
from heston_fdm.backend.solvers.analytical import (
    AnalyticalPricer,
    black_scholes_delta,
    black_scholes_gamma,
    black_scholes_price,
    black_scholes_theta,
)
from heston_fdm.backend.solvers.operators import (
    HestonOperator,
    convection_diffusion_coefficients,
    first_derivative_weights,
    solve_tridiagonal,
)
from heston_fdm.backend.solvers.pde_solver import FdmHestonSolver
from heston_fdm.backend.solvers.schemes import AdiScheme, SchemeKind, SchemeParameters
from heston_fdm.backend.solvers.step_conditions import (
    AmericanStepCondition,
    BarrierStepCondition,
    BarrierType,
    SnapshotCondition,
    StepConditionComposite,
    matches,
)

try:
    import QuantLib as ql
    QUANTLIB_AVAILABLE = True
except Exception:
    QUANTLIB_AVAILABLE = False


SMALL_CONFIG = FdmConfig(x_grid=60, v_grid=25, t_grid=50)


def is_numerically_stable(value: float, bound: float = 1e6) -> bool:
    return np.isfinite(value) and abs(value) <= bound


def make_vanilla_solver(
    process: HestonProcess,
    option_type: str = 'call',
    K: float = 100.0,
    T: float = 1.0,
    x_grid: int = 100,
    v_grid: int = 50,
    t_grid: int = 100,
    scheme: SchemeKind = SchemeKind.HUNDSDORFER_VERWER,
    theta: Optional[float] = None,
    mu: float = 0.5,
    american: bool = False,
    snapshot_time: Optional[float] = None
) -> FdmHestonSolver:
    payoff = PlainVanillaPayoff(option_type, K)
    mesher = HestonMesher(process, T, x_grid, v_grid, strike=K)
    conditions = [AmericanStepCondition(payoff)] if american else []
    return FdmHestonSolver(
        process, mesher, vanilla_boundary_set(payoff, american),
        StepConditionComposite(conditions), payoff, T, t_grid,
        scheme=scheme, theta=theta, mu=mu, snapshot_time=snapshot_time
    )


def quantlib_heston_process(params: HestonParams):
    if not QUANTLIB_AVAILABLE:
        raise RuntimeError("QuantLib is not installed")

    evaluation_date = ql.Date(1, 1, 2026)
    ql.Settings.instance().evaluationDate = evaluation_date
    day_count = ql.Actual365Fixed()

    spot_handle = ql.QuoteHandle(ql.SimpleQuote(params.S0))
    risk_free_ts = ql.YieldTermStructureHandle(
        ql.FlatForward(evaluation_date, params.risk_free.zero_rate(1.0), day_count)
    )
    dividend_ts = ql.YieldTermStructureHandle(
        ql.FlatForward(evaluation_date, params.dividend.zero_rate(1.0), day_count)
    )

    process = ql.HestonProcess(
        risk_free_ts,
        dividend_ts,
        spot_handle,
        params.V0,
        params.kappa,
        params.theta,
        params.sigma,
        params.rho,
    )
    return process, evaluation_date


def quantlib_heston_price(
    params: HestonParams,
    option_type: str,
    K: float,
    T: float,
    american: bool = False
) -> float:
    process, evaluation_date = quantlib_heston_process(params)
    model = ql.HestonModel(process)

    maturity_date = evaluation_date + int(round(T * 365))
    ql_type = ql.Option.Call if option_type == 'call' else ql.Option.Put
    payoff = ql.PlainVanillaPayoff(ql_type, K)

    if american:
        exercise = ql.AmericanExercise(evaluation_date, maturity_date)
        engine = ql.FdHestonVanillaEngine(model, 200, 200, 100)
    else:
        exercise = ql.EuropeanExercise(maturity_date)
        engine = ql.AnalyticHestonEngine(model)

    option = ql.VanillaOption(payoff, exercise)
    option.setPricingEngine(engine)
    return float(option.NPV())
