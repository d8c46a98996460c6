from typing import Callable

import numpy as np
import pytest

from src.snakeopt.contour import Contour
from src.snakeopt.state import EnergyNormalization, SnakeState


@pytest.fixture
def make_state() -> Callable[..., SnakeState]:
    def _make(
        contour: Contour,
        *,
        previous: Contour | None = None,
        image: np.ndarray | None = None,
        width: int = 32,
        height: int = 32,
        scale_factor: float = 1.0,
        iteration: int = 0,
        energy_normalization: EnergyNormalization = EnergyNormalization.NONE,
        coupling=None,
    ) -> SnakeState:
        if image is None:
            image = np.zeros((height, width), dtype=np.float64)
        return SnakeState(
            contour=contour,
            previous=previous,
            scale_factor=scale_factor,
            image=image,
            width=width,
            height=height,
            iteration=iteration,
            energy_normalization=energy_normalization,
            coupling=coupling,
        )

    return _make
