from __future__ import annotations

import numpy as np

from ..energy import ComputableEnergy, DerivableEnergy
from ..state import SnakeState


class CentroidAttraction(ComputableEnergy, DerivableEnergy):
    """
    Pulls every point toward the vertex mean of the contour.

    E = 0.5 * strength * sum |x_i - c|^2, B = strength * (x - c).
    """

    name = "centroid_attraction"

    def __init__(self, strength: float = 1.0, weight: float = 1.0, *, name: str | None = None) -> None:
        super().__init__(weight, name=name)
        if not strength > 0.0:
            raise ValueError(f"strength must be > 0, got {strength}")
        self.strength = float(strength)

    def energy(self, state: SnakeState) -> float:
        pts = state.contour.points
        d = pts - pts.mean(axis=0)
        return float(0.5 * self.strength * np.sum(d * d))

    def energy_at(self, state: SnakeState, index: int) -> float:
        pts = state.contour.points
        d = pts[index] - pts.mean(axis=0)
        return float(0.5 * self.strength * np.dot(d, d))

    def vector_part(self, state: SnakeState) -> np.ndarray:
        pts = state.contour.points
        d = pts - pts.mean(axis=0)
        return self.strength * np.concatenate([d[:, 0], d[:, 1]])
