"""
Step Conditions: Early Exercise, Barrier Monitoring and Snapshots

A step condition is a transform of the solution applied at trigger times
during the backward march, after the implicit stages of the step and before
the boundary conditions are re-applied.

Trigger matching: the march only visits the uniform grid t_n = n·Δt. A
condition with trigger time s fires at the grid time closest to s, i.e. when
-Δt/2 < t_n - s ≤ Δt/2. Conditions without trigger times fire at every step.
"""

from enum import Enum
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np

from heston_fdm.backend.core.boundaries import Payoff
from heston_fdm.backend.core.errors import ConfigurationError
from heston_fdm.backend.core.grid import HestonMesher


def matches(t: float, trigger: float, dt: float) -> bool:
    return -0.5 * dt < t - trigger <= 0.5 * dt


class StepCondition:
    """Base: transform plus optional trigger times (None means every step)."""

    stopping_times: Optional[Sequence[float]] = None

    def bind(self, mesher: HestonMesher) -> None:
        pass

    def triggers_at(self, t: float, dt: float) -> bool:
        if self.stopping_times is None:
            return True
        return any(matches(t, s, dt) for s in self.stopping_times)

    def apply_to(self, u: np.ndarray, t: float) -> None:
        raise NotImplementedError


class AmericanStepCondition(StepCondition):
    """Early exercise: u ← max(u, intrinsic) at every step."""

    def __init__(self, payoff: Payoff):
        self.payoff = payoff
        self._intrinsic = None

    def bind(self, mesher: HestonMesher) -> None:
        intrinsic = np.asarray(self.payoff(mesher.S), dtype=float)
        self._intrinsic = intrinsic[:, None]

    def apply_to(self, u: np.ndarray, t: float) -> None:
        np.maximum(u, self._intrinsic, out=u)


class BarrierType(Enum):
    DOWN_OUT = 'down_out'
    DOWN_IN = 'down_in'
    UP_OUT = 'up_out'
    UP_IN = 'up_in'

    @property
    def is_down(self) -> bool:
        return self in (BarrierType.DOWN_OUT, BarrierType.DOWN_IN)

    @property
    def is_knock_in(self) -> bool:
        return self in (BarrierType.DOWN_IN, BarrierType.UP_IN)


class BarrierStepCondition(StepCondition):
    """
    Knock-out monitoring: nodes at or beyond the barrier are set to the
    rebate on monitoring dates.
    """

    def __init__(
        self,
        barrier: float,
        barrier_type: Union[BarrierType, str],
        monitoring_times: Optional[Iterable[float]] = None,
        rebate: float = 0.0
    ):
        self.barrier = float(barrier)
        self.barrier_type = BarrierType(barrier_type)
        if self.barrier_type.is_knock_in:
            raise ConfigurationError("step monitoring only knocks out; price knock-ins by parity")
        if not self.barrier > 0:
            raise ConfigurationError(f"barrier must be positive, got {barrier}")
        self.stopping_times = None if monitoring_times is None else sorted(monitoring_times)
        self.rebate = float(rebate)
        self._knocked = None

    def bind(self, mesher: HestonMesher) -> None:
        if self.barrier_type.is_down:
            self._knocked = mesher.S <= self.barrier
        else:
            self._knocked = mesher.S >= self.barrier

    def apply_to(self, u: np.ndarray, t: float) -> None:
        u[self._knocked, :] = self.rebate


class StepConditionComposite:
    """
    Ordered list of step conditions. An empty composite leaves the solution
    untouched.
    """

    def __init__(self, conditions: Optional[Iterable[StepCondition]] = None):
        self.conditions: List[StepCondition] = list(conditions or [])

    def __len__(self) -> int:
        return len(self.conditions)

    @property
    def stopping_times(self) -> List[float]:
        times = set()
        for condition in self.conditions:
            if condition.stopping_times is not None:
                times.update(condition.stopping_times)
        return sorted(times)

    def bind(self, mesher: HestonMesher) -> None:
        for condition in self.conditions:
            condition.bind(mesher)

    def apply_to(self, u: np.ndarray, t: float, dt: float) -> np.ndarray:
        for condition in self.conditions:
            if condition.triggers_at(t, dt):
                condition.apply_to(u, t)
        return u


class SnapshotCondition:
    """
    Records a copy of the solution at one extra time slice (used for theta).
    The recorded time is the grid time the march actually visited.
    """

    def __init__(self, time: float):
        if not time > 0:
            raise ConfigurationError(f"snapshot time must be positive, got {time}")
        self.time = float(time)
        self.values: Optional[np.ndarray] = None
        self.recorded_time: Optional[float] = None

    def apply_to(self, u: np.ndarray, t: float, dt: float) -> None:
        if self.values is None and matches(t, self.time, dt):
            self.values = u.copy()
            self.values.setflags(write=False)
            self.recorded_time = t
