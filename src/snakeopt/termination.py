from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque

import numpy as np

from .control import SnakeStatus
from .raster import contour_mask
from .state import SnakeState
from .types import EPSILON


class TerminationStrategy(ABC):
    """Decides after each iteration whether the contour keeps evolving."""

    def init(self, state: SnakeState) -> None:
        pass

    @abstractmethod
    def terminate(self, state: SnakeState) -> SnakeStatus: ...



def _mask_area(state: SnakeState, which: str) -> int:
    contour = state.contour if which == "current" else state.previous
    if contour is None or len(contour) == 0:
        return 0
    mask = contour_mask(contour, state.width, state.height, state.scale_factor)
    return int(np.count_nonzero(mask))


class MaxIterations(TerminationStrategy):
    def __init__(self, max_iterations: int = 100) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.max_iterations = int(max_iterations)

    def terminate(self, state: SnakeState) -> SnakeStatus:
        if state.iteration >= self.max_iterations:
            return SnakeStatus.CONVERGED
        return SnakeStatus.CONTINUE


class MotionDiff(TerminationStrategy):
    """
    Converged once at least motion_fraction of the points did not move
    (compared to their origin point), or after max_iterations.
    """

    def __init__(self, motion_fraction: float = 0.05, max_iterations: int = 100) -> None:
        if not 0.0 <= motion_fraction <= 1.0:
            raise ValueError("motion_fraction must lie in [0, 1]")
        self.motion_fraction = float(motion_fraction)
        self.max_iterations = int(max_iterations)

    def terminate(self, state: SnakeState) -> SnakeStatus:
        if state.iteration >= self.max_iterations:
            return SnakeStatus.CONVERGED
        prev = state.previous
        cur = state.contour
        if prev is None or len(cur) == 0:
            return SnakeStatus.CONTINUE
        ids = cur.origin_ids
        valid = (ids >= 0) & (ids < len(prev))
        if not np.any(valid):
            return SnakeStatus.CONTINUE
        shift = np.linalg.norm(cur.points[valid] - prev.points[ids[valid]], axis=1)
        unchanged = int(np.count_nonzero(shift < EPSILON))
        if unchanged / len(cur) >= self.motion_fraction:
            return SnakeStatus.CONVERGED
        return SnakeStatus.CONTINUE


class AreaDiff(TerminationStrategy):
    """Converged when |1 - area_new / area_old| < area_fraction or after max_iterations."""

    def __init__(self, area_fraction: float = 0.001, max_iterations: int = 100) -> None:
        if area_fraction < 0.0:
            raise ValueError("area_fraction must be >= 0")
        self.area_fraction = float(area_fraction)
        self.max_iterations = int(max_iterations)

    def terminate(self, state: SnakeState) -> SnakeStatus:
        if state.iteration > self.max_iterations:
            return SnakeStatus.CONVERGED
        old = _mask_area(state, "previous")
        if old == 0:
            return SnakeStatus.CONTINUE
        new = _mask_area(state, "current")
        if abs(1.0 - new / old) < self.area_fraction:
            return SnakeStatus.CONVERGED
        return SnakeStatus.CONTINUE


class AreaDiffSlidingOffset(TerminationStrategy):
    """
    Smooths the pixel area with a moving mean over `window` iterations and
    converges once the mean changed by less than area_fraction relative to the
    mean `offset` iterations earlier.
    """

    def __init__(self, area_fraction: float = 0.001, window: int = 11, offset: int = 10) -> None:
        if window < 1 or offset < 1:
            raise ValueError("window and offset must be >= 1")
        self.area_fraction = float(area_fraction)
        self.window = int(window)
        self.offset = int(offset)
        self._areas: deque[int] = deque(maxlen=self.window)
        self._means: deque[float] = deque(maxlen=self.offset + 1)

    def init(self, state: SnakeState) -> None:
        self._areas.clear()
        self._means.clear()

    def terminate(self, state: SnakeState) -> SnakeStatus:
        self._areas.append(_mask_area(state, "current"))
        if len(self._areas) < self.window:
            return SnakeStatus.CONTINUE
        self._means.append(sum(self._areas) / self.window)
        if len(self._means) < self.offset + 1:
            return SnakeStatus.CONTINUE
        earlier = self._means[0]
        latest = self._means[-1]
        if earlier <= 0.0:
            return SnakeStatus.CONTINUE
        if abs(latest - earlier) / earlier < self.area_fraction:
            return SnakeStatus.CONVERGED
        return SnakeStatus.CONTINUE
