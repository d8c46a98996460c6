from __future__ import annotations

import numpy as np

from ..utils import debug
from .control import SnakeStatus
from .single import SingleContourOptimizer
from .state import EnergyNormalization

# 8-neighbourhood plus "stay", row by row
OFFSETS: tuple[tuple[int, int], ...] = tuple(
    (dx, dy) for dy in (-1, 0, 1) for dx in (-1, 0, 1)
)


class GreedyOptimizer(SingleContourOptimizer):
    """
    Local search in pixel space: every point in turn tries its eight unit
    neighbours and keeps the one with the lowest total energy if that is
    strictly lower than staying.
    """

    def __init__(self, *args, **kwargs) -> None:
        kwargs.pop("energy_normalization", None)
        super().__init__(*args, energy_normalization=EnergyNormalization.NONE, **kwargs)

    def scale_factor_for(self, width: int, height: int) -> float:
        return 1.0

    def validate_configuration(self) -> None:
        super().validate_configuration()
        self.energies.require_computable()

    def total_energy(self) -> float:
        return self.energies.total(self.state())

    def iterate(self) -> SnakeStatus:
        contour = self._require_contour()
        if not self.viable():
            return SnakeStatus.FAILED

        self.previous = contour.copy()
        contour.origin_ids = np.arange(len(contour), dtype=np.int64)
        self.energies.update(self.state())
        self.iteration += 1

        pts = contour.points
        moved = 0
        for i in range(len(contour)):
            start = self.total_energy()
            best = start
            best_offset = (0, 0)
            origin = pts[i].copy()
            for dx, dy in OFFSETS:
                nx = origin[0] + dx
                ny = origin[1] + dy
                if nx < 0 or nx >= self.width or ny < 0 or ny >= self.height:
                    continue
                pts[i, 0] = nx
                pts[i, 1] = ny
                e = self.total_energy()
                if e < best:
                    best = e
                    best_offset = (dx, dy)
            pts[i] = origin
            if best < start and best_offset != (0, 0):
                pts[i, 0] += best_offset[0]
                pts[i, 1] += best_offset[1]
                moved += 1

        debug.log(f"iteration {self.iteration}: moved {moved} point(s)", scope="greedy")
        self.maybe_resample()

        if not self.viable():
            return SnakeStatus.FAILED
        if moved < 1:
            return SnakeStatus.CONVERGED
        return self.check_termination()
