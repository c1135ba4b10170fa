from dataclasses import dataclass
from numbers import Integral
from typing import Optional

from heston_fdm.backend.core.errors import ConfigurationError
from heston_fdm.backend.core.grid import MIN_NODES
from heston_fdm.backend.solvers.schemes import SchemeKind, SchemeParameters


@dataclass(frozen=True)
class FdmConfig:
    x_grid: int = 100
    v_grid: int = 50
    t_grid: int = 100
    scheme: SchemeKind = SchemeKind.HUNDSDORFER_VERWER
    theta: Optional[float] = None
    mu: float = 0.5
    x_density: float = 0.1
    v_density: float = 0.1
    scale_factor: float = 1.5
    eps: float = 1e-4

    def __post_init__(self):
        for name, minimum in (('x_grid', MIN_NODES), ('v_grid', MIN_NODES), ('t_grid', 1)):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, Integral) or value < minimum:
                raise ConfigurationError(f"{name} must be an integer ≥ {minimum}, got {value!r}")

        # resolves the default θ for the kind and checks the stability bounds
        parameters = SchemeParameters(self.scheme, self.theta, self.mu)
        object.__setattr__(self, 'scheme', parameters.kind)
        object.__setattr__(self, 'theta', parameters.theta)

        for name in ('x_density', 'v_density', 'scale_factor'):
            if not getattr(self, name) > 0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")
        if not 0 < self.eps < 0.5:
            raise ConfigurationError(f"eps must lie in (0, 1/2), got {self.eps}")


class DefaultConfig:
    coarse: FdmConfig = FdmConfig(
        x_grid=50,
        v_grid=25,
        t_grid=50
    )
    default: FdmConfig = FdmConfig()
    fine: FdmConfig = FdmConfig(
        x_grid=200,
        v_grid=100,
        t_grid=200
    )
    douglas: FdmConfig = FdmConfig(
        scheme=SchemeKind.DOUGLAS
    )
    craig_sneyd: FdmConfig = FdmConfig(
        scheme=SchemeKind.CRAIG_SNEYD,
        mu=0.5
    )
