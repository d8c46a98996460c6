from __future__ import annotations

from enum import Enum

import numpy as np
from beartype import beartype
from jaxtyping import Float, Shaped, jaxtyped


class IntensityNormalization(Enum):
    NONE = "none"
    TRUE_RANGE = "true_range"
    THEORETIC_RANGE = "theoretic_range"


def _range_for(image: np.ndarray, mode: IntensityNormalization) -> tuple[float, float]:
    if mode is IntensityNormalization.THEORETIC_RANGE and np.issubdtype(image.dtype, np.integer):
        info = np.iinfo(image.dtype)
        return float(info.min), float(info.max)
    if mode is IntensityNormalization.THEORETIC_RANGE and image.dtype == np.bool_:
        return 0.0, 1.0
    # floating images have no meaningful dtype range; use the observed one
    return float(np.min(image)), float(np.max(image))


@jaxtyped(typechecker=beartype)
def normalize_intensity(
    image: Shaped[np.ndarray, "H W"] | Shaped[np.ndarray, "H W C"],
    mode: IntensityNormalization = IntensityNormalization.NONE,
) -> Float[np.ndarray, "H W"] | Float[np.ndarray, "H W C"]:
    """
    Returns a float64 copy of image mapped linearly from a source range to:
      max <  0        -> [-1, 0]  from [min, max]
      min < 0 <= max  -> [-1, 1]  from [-m, m], m = max |value|
      otherwise       -> [0, 1]   from [min, max]
    TRUE_RANGE uses the observed values, THEORETIC_RANGE the dtype limits.
    One common range is used for every channel; the input is never modified.
    """
    work = np.array(image, dtype=np.float64, copy=True)
    if mode is IntensityNormalization.NONE or work.size == 0:
        return work

    lo, hi = _range_for(image, mode)
    max_abs = max(abs(lo), abs(hi))
    if hi < 0.0:
        src_min, src_max, dst_min, dst_max = lo, hi, -1.0, 0.0
    elif lo < 0.0:
        src_min, src_max, dst_min, dst_max = -max_abs, max_abs, -1.0, 1.0
    else:
        src_min, src_max, dst_min, dst_max = lo, hi, 0.0, 1.0

    if src_max == src_min:
        return np.full_like(work, dst_min)
    return (work - src_min) / (src_max - src_min) * (dst_max - dst_min) + dst_min
