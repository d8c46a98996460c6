from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np
import optax

from .energies.image_based import DistanceEnergy
from .energy import EnergySet
from .errors import ConfigurationError
from .state import SnakeState


class GammaUpdate(ABC):
    """Produces the (2N,) step-size vector used by the next semi-implicit step."""

    def init(self, state: SnakeState, energies: EnergySet) -> None:
        pass

    @abstractmethod
    def update(self, state: SnakeState, gamma: np.ndarray, energies: EnergySet) -> np.ndarray: ...


class ConstantGamma(GammaUpdate):
    def update(self, state: SnakeState, gamma: np.ndarray, energies: EnergySet) -> np.ndarray:
        return gamma


class ScheduledGamma(GammaUpdate):
    """
    Uniform gamma taken from an optax schedule evaluated at the iteration count,
    e.g. ScheduledGamma(optax.exponential_decay(0.5, 10, 0.9)).
    """

    def __init__(self, schedule: optax.Schedule) -> None:
        self.schedule = schedule

    @classmethod
    def exponential(cls, init_value: float, transition_steps: int, decay_rate: float, end_value: float | None = None) -> ScheduledGamma:
        return cls(
            optax.exponential_decay(
                init_value=init_value,
                transition_steps=transition_steps,
                decay_rate=decay_rate,
                end_value=end_value,
            )
        )

    def update(self, state: SnakeState, gamma: np.ndarray, energies: EnergySet) -> np.ndarray:
        value = float(self.schedule(state.iteration))
        return np.full_like(gamma, value)


class PointwiseExternalGamma(GammaUpdate):
    """
    Per-point gamma sqrt(E_dist(p)) * gain from the first DistanceEnergy term:
    points far from the foreground move fast, points on it stop.
    """

    def __init__(self, gain: float = 25.0) -> None:
        self.gain = float(gain)

    def _distance_term(self, energies: EnergySet) -> DistanceEnergy:
        for term, _ in energies:
            if isinstance(term, DistanceEnergy):
                return term
        raise ConfigurationError("PointwiseExternalGamma needs a DistanceEnergy term")

    def init(self, state: SnakeState, energies: EnergySet) -> None:
        self._distance_term(energies)

    def update(self, state: SnakeState, gamma: np.ndarray, energies: EnergySet) -> np.ndarray:
        values = self._distance_term(energies).values(state)
        g = np.where(values > 0.0, np.sqrt(np.clip(values, 0.0, None)) * self.gain, 0.0)
        return np.concatenate([g, g])
