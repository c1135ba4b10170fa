"""
═══════════════════════════════════════════════════════════════════════════════
HESTON FDM - Finite-Difference Solver for the Heston PDE
═══════════════════════════════════════════════════════════════════════════════

Prices options whose path dependency (early exercise, barrier monitoring)
rules out closed-form valuation under the Heston (1993) model.

Mathematical Model:
    dS = (r-q)S dt + √V S dW_S
    dV = κ(θ-V)dt + σ√V dW_V
    Corr(dW_S, dW_V) = ρ

Pricing PDE (τ = T - t):
    ∂u/∂τ = ½VS²u_SS + ρσVS u_SV + ½σ²V u_VV + (r-q)S u_S + κ(θ-V)u_V - r·u

Modules:
    backend.core        - Market inputs, grid, payoffs and boundary rules, config
    backend.solvers     - Operators, step conditions, ADI schemes, solver driver,
                          closed-form benchmarks
    backend.engines     - Vanilla and barrier pricing engines
    tests               - Validation tests

Usage:
    from heston_fdm import FdHestonVanillaEngine, VanillaOption, PlainVanillaPayoff
    from heston_fdm import get_default_process

    engine = FdHestonVanillaEngine(get_default_process())
    result = engine.calculate(VanillaOption(PlainVanillaPayoff('call', 100.0), 1.0))

═══════════════════════════════════════════════════════════════════════════════
"""

__version__ = '1.0.0'
__author__ = 'Heston FDM'

from heston_fdm.backend.core.boundaries import OptionType, PlainVanillaPayoff
from heston_fdm.backend.core.config import DefaultConfig, FdmConfig
from heston_fdm.backend.core.errors import (
    ConfigurationError,
    HestonFdmError,
    NumericalDivergence,
    OutOfDomainQuery,
)
from heston_fdm.backend.core.grid import HestonMesher
from heston_fdm.backend.core.parameters import (
    FlatForward,
    HestonParams,
    HestonProcess,
    SimpleQuote,
    ZeroCurve,
    get_default_process,
)
from heston_fdm.backend.engines.fd_heston import (
    BarrierOption,
    ExerciseType,
    FdHestonBarrierEngine,
    FdHestonVanillaEngine,
    VanillaOption,
)
from heston_fdm.backend.solvers.pde_solver import FdmHestonSolver
from heston_fdm.backend.solvers.schemes import SchemeKind, SchemeParameters
from heston_fdm.backend.solvers.step_conditions import BarrierType
