from __future__ import annotations

import numpy as np

from ..energy import ComputableEnergy, DerivableEnergy
from ..raster import contour_mask
from ..state import SnakeState


def pairwise_overlap_count(overlap_map: np.ndarray) -> float:
    """Sum over pixels of k*(k-1)/2, the number of contour pairs sharing each pixel."""
    k = overlap_map.astype(np.int64)
    k = k[k > 1]
    return float(np.sum(k * (k - 1) // 2))


class OverlapPenalty(ComputableEnergy, DerivableEnergy):
    """
    Penalizes pixels covered by more than one contour.

    Energy: rho * sum_pixels C(k, 2) over the shared overlap map.
    Derivative: pushes each point along the contour normal (hence ccw order)
    proportionally to how many other contours cover it.
    """

    name = "overlap_penalty"
    requires_ccw = True
    requires_overlap_map = True
    coupled = True

    def __init__(self, rho: float = 1.0, weight: float = 1.0, *, name: str | None = None) -> None:
        super().__init__(weight, name=name)
        if rho < 0.0:
            raise ValueError(f"rho must be >= 0, got {rho}")
        self.rho = float(rho)
        self.n_contours = 1
        self.max_energy = self.rho if self.rho > 0.0 else 1.0

    def init_coupling(self, n_contours: int) -> None:
        self.n_contours = max(int(n_contours), 1)
        self.max_energy = self.rho * self.n_contours if self.rho > 0.0 else 1.0

    def _current_map(self, state: SnakeState) -> np.ndarray | None:
        view = state.coupling
        if view is None:
            return None
        # the map holds this contour as it was at snapshot time; swap in the live one
        live = contour_mask(state.contour, state.width, state.height, state.scale_factor)
        return view.overlap_map.astype(np.int32) - view.own_mask.astype(np.int32) + live.astype(np.int32)

    def energy(self, state: SnakeState) -> float:
        current = self._current_map(state)
        if current is None:
            return 0.0
        return self.rho * pairwise_overlap_count(current)

    def matrix_part(self, state: SnakeState) -> np.ndarray | None:
        view = state.coupling
        c = state.contour
        n = len(c)
        A = np.zeros((2 * n, 2 * n), dtype=np.float64)
        if view is None:
            return A

        pix = state.pixel_points()
        px = np.clip(pix[:, 0].astype(np.int64), 0, state.width - 1)
        py = np.clip(pix[:, 1].astype(np.int64), 0, state.height - 1)
        others = view.overlap_map[py, px].astype(np.float64) - view.own_mask[py, px].astype(np.float64)
        a = self.rho * others / self.max_energy

        i = np.arange(n if c.closed else n - 1)
        nxt = (i + 1) % n
        a = a[i]
        A[i, n + i] = -a
        A[i, n + nxt] = a
        A[n + i, i] = a
        A[n + i, nxt] = -a
        return A
