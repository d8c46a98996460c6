from __future__ import annotations

import jax
import jax.numpy as jnp
import numpy as np
from beartype import beartype
from jaxtyping import jaxtyped

from ..energy import ComputableEnergy, DerivableEnergy
from ..geometry import signed_area
from ..state import SnakeState
from ..types import JaxPoints, JaxScalar


@jaxtyped(typechecker=beartype)
def balloon_energy(x: JaxPoints, pressure: float) -> JaxScalar:
    """-pressure * signed area; minimizing grows ccw contours for pressure > 0."""
    return -pressure * signed_area(x)


_balloon_grad = jax.grad(balloon_energy)


class Balloon(ComputableEnergy, DerivableEnergy):
    """
    Area pressure term. Positive pressure inflates, negative deflates.
    Needs counter-clockwise order so the sign of the area is meaningful.
    """

    name = "balloon"
    requires_ccw = True

    def __init__(self, pressure: float = 1.0, weight: float = 1.0, *, name: str | None = None) -> None:
        super().__init__(weight, name=name)
        self.pressure = float(pressure)

    def energy(self, state: SnakeState) -> float:
        x = jnp.asarray(state.contour.points)
        return float(balloon_energy(x, self.pressure))

    def vector_part(self, state: SnakeState) -> np.ndarray:
        x = jnp.asarray(state.contour.points)
        g = np.asarray(_balloon_grad(x, self.pressure), dtype=np.float64)
        return np.concatenate([g[:, 0], g[:, 1]])
