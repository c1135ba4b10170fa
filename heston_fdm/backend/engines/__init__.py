from heston_fdm.backend.engines.fd_heston import (
    BarrierOption,
    ExerciseType,
    FdHestonBarrierEngine,
    FdHestonVanillaEngine,
    VanillaOption,
)

__all__ = [
    'BarrierOption',
    'ExerciseType',
    'FdHestonBarrierEngine',
    'FdHestonVanillaEngine',
    'VanillaOption',
]
