from __future__ import annotations

import numpy as np

from ..energy import ComputableEnergy, DerivableEnergy
from ..geometry import block_diagonal_xy, first_difference_matrix, second_difference_matrix
from ..state import EnergyNormalization, SnakeState


class KassLength(ComputableEnergy, DerivableEnergy):
    """
    Membrane term 0.5 * alpha * sum |x[i+1] - x[i]|^2.
    Balanced normalization divides by 2 * alpha, the bound of its derivative.
    """

    name = "kass_length"

    def __init__(self, alpha: float = 1.0, weight: float = 1.0, *, name: str | None = None) -> None:
        super().__init__(weight, name=name)
        if not alpha > 0.0:
            raise ValueError(f"alpha must be > 0, got {alpha}")
        self.alpha = float(alpha)

    def factor(self, state: SnakeState) -> float:
        if state.energy_normalization is EnergyNormalization.BALANCED_DERIVATIVES:
            return 1.0 / (2.0 * self.alpha)
        return 1.0

    def energy(self, state: SnakeState) -> float:
        c = state.contour
        p = c.points
        d = np.roll(p, -1, axis=0) - p if c.closed else np.diff(p, axis=0)
        return float(0.5 * self.alpha * np.sum(d * d) * self.factor(state))

    def energy_at(self, state: SnakeState, index: int) -> float:
        c = state.contour
        n = len(c)
        if not c.closed and index == n - 1:
            return 0.0
        d = c.points[(index + 1) % n] - c.points[index]
        return float(0.5 * self.alpha * np.dot(d, d) * self.factor(state))

    def matrix_part(self, state: SnakeState) -> np.ndarray:
        c = state.contour
        D = first_difference_matrix(len(c), closed=c.closed)
        return block_diagonal_xy(self.alpha * self.factor(state) * (D.T @ D))


class KassCurvature(ComputableEnergy, DerivableEnergy):
    """
    Thin-plate term 0.5 * beta * sum |x[i-1] - 2 x[i] + x[i+1]|^2.
    Balanced normalization divides by 8 * beta.
    """

    name = "kass_curvature"

    def __init__(self, beta: float = 1.0, weight: float = 1.0, *, name: str | None = None) -> None:
        super().__init__(weight, name=name)
        if not beta > 0.0:
            raise ValueError(f"beta must be > 0, got {beta}")
        self.beta = float(beta)

    def factor(self, state: SnakeState) -> float:
        if state.energy_normalization is EnergyNormalization.BALANCED_DERIVATIVES:
            return 1.0 / (8.0 * self.beta)
        return 1.0

    def energy(self, state: SnakeState) -> float:
        c = state.contour
        p = c.points
        if c.closed:
            d2 = np.roll(p, 1, axis=0) - 2.0 * p + np.roll(p, -1, axis=0)
        else:
            d2 = p[:-2] - 2.0 * p[1:-1] + p[2:]
        return float(0.5 * self.beta * np.sum(d2 * d2) * self.factor(state))

    def energy_at(self, state: SnakeState, index: int) -> float:
        c = state.contour
        n = len(c)
        if not c.closed and (index == 0 or index == n - 1):
            return 0.0
        p = c.points
        d2 = p[(index - 1) % n] - 2.0 * p[index] + p[(index + 1) % n]
        return float(0.5 * self.beta * np.dot(d2, d2) * self.factor(state))

    def matrix_part(self, state: SnakeState) -> np.ndarray:
        c = state.contour
        D2 = second_difference_matrix(len(c), closed=c.closed)
        return block_diagonal_xy(self.beta * self.factor(state) * (D2.T @ D2))
