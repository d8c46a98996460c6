from __future__ import annotations

from typing import Iterable, cast

import numpy as np
from beartype import beartype
from jaxtyping import Float, jaxtyped
from PIL import Image, ImageDraw
from scipy.ndimage import distance_transform_edt  # type: ignore[reportMissingTypeStubs]

from .contour import Contour
from .types import NpGrayImage, NpMask, NpOverlapMap


@jaxtyped(typechecker=beartype)
def polygon_to_mask(
    V: Float[np.ndarray, "N 2"],
    width: int,
    height: int,
    *,
    closed: bool = True,
) -> NpMask:
    """
    V: (N,2) vertices in pixel coords (x, y), image frame (y grows downward)
    Returns:
      mask: (height,width) bool, True on the interior and on the boundary.
      Open polylines only mark the pixels they pass through.
    """
    if width <= 0 or height <= 0:
        raise ValueError("mask size must be positive")

    img = Image.new("L", (width, height), 0)
    draw = ImageDraw.Draw(img)
    pts = [(float(x), float(y)) for x, y in V]
    if len(pts) == 0:
        return np.zeros((height, width), dtype=bool)
    if len(pts) == 1:
        draw.point(pts, fill=1)
    elif closed and len(pts) >= 3:
        draw.polygon(pts, outline=1, fill=1)
    else:
        draw.line(pts, fill=1, width=1)

    return np.array(img, dtype=np.uint8) > 0


def contour_mask(contour: Contour, width: int, height: int, scale_factor: float = 1.0) -> np.ndarray:
    """Rasterize a contour given in coordinates that are pixels / scale_factor."""
    return polygon_to_mask(
        contour.points * scale_factor, width, height, closed=contour.closed
    )


def build_overlap_map(
    contours: Iterable[Contour],
    width: int,
    height: int,
    scale_factor: float = 1.0,
) -> NpOverlapMap:
    """
    Per-pixel count of contours whose rasterized region covers the pixel.
    Returned as a fresh int32 grid; callers publish read-only views of it.
    """
    overlap = np.zeros((height, width), dtype=np.int32)
    for contour in contours:
        if len(contour) == 0:
            continue
        overlap += contour_mask(contour, width, height, scale_factor).astype(np.int32)
    return overlap


def read_only(arr: np.ndarray) -> np.ndarray:
    view = arr.view()
    view.flags.writeable = False
    return view


@jaxtyped(typechecker=beartype)
def mask_to_distance(mask: NpMask) -> NpGrayImage:
    """
    Euclidean distance (pixels) from every pixel to the nearest True pixel of mask.
    """
    if not np.any(mask):
        raise ValueError("Mask has no foreground pixels.")
    outside = (~mask).astype(np.uint8)
    dist = cast(np.ndarray, distance_transform_edt(outside))
    return dist.astype(np.float64)
