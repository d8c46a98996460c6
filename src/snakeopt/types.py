from __future__ import annotations

from typing import TypeAlias

import jax
import numpy as np
from jaxtyping import Bool, Float, Int, UInt8

NpPoints: TypeAlias = Float[np.ndarray, "N 2"]
NpOriginIds: TypeAlias = Int[np.ndarray, "N"]
NpSystemMatrix: TypeAlias = Float[np.ndarray, "M M"]
NpSystemVector: TypeAlias = Float[np.ndarray, "M"]
NpGamma: TypeAlias = Float[np.ndarray, "M"]
NpImage: TypeAlias = Float[np.ndarray, "H W"] | Float[np.ndarray, "H W C"]
NpGrayImage: TypeAlias = Float[np.ndarray, "H W"]
NpMask: TypeAlias = Bool[np.ndarray, "H W"]
NpOverlapMap: TypeAlias = Int[np.ndarray, "H W"]
NpRgbImage: TypeAlias = UInt8[np.ndarray, "H W 3"]
NpRgbStack: TypeAlias = UInt8[np.ndarray, "T H W 3"]
JaxPoints: TypeAlias = Float[jax.Array, "N 2"]
JaxScalar: TypeAlias = Float[jax.Array, ""]

MIN_VIABLE_POINTS = 5
EPSILON = 1e-8
