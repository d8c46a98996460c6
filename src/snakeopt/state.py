from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from .contour import Contour


class EnergyNormalization(Enum):
    NONE = "none"
    BALANCED_DERIVATIVES = "balanced_derivatives"


@dataclass(frozen=True)
class CouplingView:
    """
    Read-only picture of the other contours, taken once per coupled iteration.

    overlap_map: (H,W) int32, number of active contours covering each pixel
    own_mask: (H,W) bool, this contour's region when the map was built
    """

    overlap_map: np.ndarray
    own_mask: np.ndarray
    index: int
    n_contours: int


@dataclass(frozen=True)
class SnakeState:
    """
    Snapshot handed to energy terms, termination and gamma strategies.

    contour / previous are in optimizer coordinates (pixels / scale_factor).
    image is the working (intensity-normalized) image.
    """

    contour: Contour
    previous: Contour | None
    scale_factor: float
    image: np.ndarray
    width: int
    height: int
    iteration: int
    energy_normalization: EnergyNormalization = EnergyNormalization.NONE
    coupling: CouplingView | None = None

    def pixel_points(self) -> np.ndarray:
        return self.contour.points * self.scale_factor
