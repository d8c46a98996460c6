from __future__ import annotations

import jax.numpy as jnp
import numpy as np
from beartype import beartype
from jaxtyping import jaxtyped

from ...utils import debug_helpers
from ..energy import ComputableEnergy, DerivableEnergy
from ..geometry import bilinear_sample
from ..raster import mask_to_distance
from ..state import EnergyNormalization, SnakeState
from ..types import NpGrayImage, NpImage


@jaxtyped(typechecker=beartype)
def to_gray(image: NpImage) -> NpGrayImage:
    if image.ndim == 3:
        return image.mean(axis=2)
    return image


@jaxtyped(typechecker=beartype)
def min_max_scale(field: NpGrayImage) -> NpGrayImage:
    """Linear map of field onto [0,1]; constant fields become zero."""
    lo = float(field.min())
    hi = float(field.max())
    if hi - lo <= 0.0:
        return np.zeros_like(field)
    return (field - lo) / (hi - lo)


@jaxtyped(typechecker=beartype)
def central_difference(field: NpGrayImage, axis: int) -> NpGrayImage:
    """
    f(p+1) - f(p-1) along axis (0 = y, 1 = x); border pixels reuse themselves
    for the missing neighbour.
    """
    pad = [(0, 0), (0, 0)]
    pad[axis] = (1, 1)
    padded = np.pad(field, pad, mode="edge")
    if axis == 0:
        return padded[2:, :] - padded[:-2, :]
    return padded[:, 2:] - padded[:, :-2]


class ImageEnergy(ComputableEnergy, DerivableEnergy):
    """
    External energy given by a scalar field over the image grid.

    Subclasses build `field` (H,W) in `build_field`; values and derivatives are
    sampled bilinearly at the contour points converted to pixels.
    """

    name = "image"
    balanced_factor = 1.0

    def __init__(self, weight: float = 1.0, *, image: np.ndarray | None = None, name: str | None = None) -> None:
        super().__init__(weight, name=name)
        self.image = image
        self.field: np.ndarray | None = None
        self._field = None
        self._dx = None
        self._dy = None

    def build_field(self, image: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def init(self, state: SnakeState) -> None:
        source = self.image if self.image is not None else state.image
        field = np.asarray(self.build_field(np.asarray(source, dtype=np.float64)), dtype=np.float64)
        if float(field.max()) == float(field.min()):
            debug_helpers.log_once(f"flat_field_{self.name}", f"{self.name}: image field is constant")
        self.field = field
        self._field = jnp.asarray(field)
        self._dx = jnp.asarray(central_difference(field, axis=1))
        self._dy = jnp.asarray(central_difference(field, axis=0))

    def _sample(self, grid: jnp.ndarray, state: SnakeState, points: np.ndarray) -> np.ndarray:
        X = jnp.asarray(points * state.scale_factor)
        return np.asarray(bilinear_sample(grid, X), dtype=np.float64)

    def _ensure(self, state: SnakeState) -> None:
        if self._field is None:
            self.init(state)

    def values(self, state: SnakeState) -> np.ndarray:
        self._ensure(state)
        return self._sample(self._field, state, state.contour.points)

    def energy(self, state: SnakeState) -> float:
        return float(np.sum(self.values(state)))

    def energy_at(self, state: SnakeState, index: int) -> float:
        self._ensure(state)
        return float(self._sample(self._field, state, state.contour.points[index : index + 1])[0])

    def vector_part(self, state: SnakeState) -> np.ndarray:
        self._ensure(state)
        pts = state.contour.points
        gx = self._sample(self._dx, state, pts)
        gy = self._sample(self._dy, state, pts)
        B = np.concatenate([gx, gy])
        if state.energy_normalization is EnergyNormalization.BALANCED_DERIVATIVES:
            B = B * self.balanced_factor
        return B


class GradientEnergy(ImageEnergy):
    """E(p) = -|grad I(p)|^2 on the [0,1]-scaled gray image; attracts to edges."""

    name = "image_gradient"
    balanced_factor = 0.25

    def build_field(self, image: np.ndarray) -> np.ndarray:
        gray = min_max_scale(to_gray(image))
        gy, gx = np.gradient(gray)
        return -(gx * gx + gy * gy)


class DistanceEnergy(ImageEnergy):
    """
    E(p) = distance from p to the nearest foreground pixel, scaled to [0,1].
    Foreground is gray > threshold (or < threshold when foreground_white is False).
    """

    name = "image_distance"

    def __init__(
        self,
        weight: float = 1.0,
        *,
        image: np.ndarray | None = None,
        threshold: float = 0.5,
        foreground_white: bool = True,
        name: str | None = None,
    ) -> None:
        super().__init__(weight, image=image, name=name)
        self.threshold = float(threshold)
        self.foreground_white = foreground_white

    def build_field(self, image: np.ndarray) -> np.ndarray:
        gray = min_max_scale(to_gray(image))
        fg = gray > self.threshold if self.foreground_white else gray < self.threshold
        return min_max_scale(mask_to_distance(fg))
