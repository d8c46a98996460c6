from __future__ import annotations

from typing import Protocol, Sequence

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from .contour import ContourSet
from .types import NpRgbImage, NpRgbStack

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont

PALETTE: list[tuple[int, int, int]] = [
    (255, 0, 0),
    (0, 200, 0),
    (0, 96, 255),
    (255, 200, 0),
    (255, 0, 255),
    (0, 220, 220),
]


class ContourRenderer(Protocol):
    def render(self, image: np.ndarray, contours: ContourSet) -> NpRgbImage: ...

    def render_stack(self, image: np.ndarray, frames: Sequence[ContourSet]) -> NpRgbStack: ...


def to_rgb8(image: np.ndarray) -> Image.Image:
    """Gray or multi-channel array -> 8-bit RGB, min/max stretched."""
    arr = np.asarray(image, dtype=np.float64)
    if arr.ndim == 3:
        arr = arr[..., :3] if arr.shape[2] >= 3 else arr.mean(axis=2)
    lo = float(arr.min()) if arr.size else 0.0
    hi = float(arr.max()) if arr.size else 0.0
    if hi > lo:
        arr = (arr - lo) / (hi - lo)
    else:
        arr = np.zeros_like(arr)
    arr8 = np.clip(np.round(arr * 255.0), 0, 255).astype(np.uint8)
    if arr8.ndim == 2:
        arr8 = np.stack([arr8, arr8, arr8], axis=-1)
    return Image.fromarray(arr8)


def _draw_text_outline(
    draw: ImageDraw.ImageDraw,
    position: tuple[int, int],
    text: str,
    font: FontType,
    fill: tuple[int, int, int],
    outline: tuple[int, int, int],
    outline_width: int = 1,
) -> None:
    x, y = position
    for dx in range(-outline_width, outline_width + 1):
        for dy in range(-outline_width, outline_width + 1):
            if dx == 0 and dy == 0:
                continue
            draw.text((x + dx, y + dy), text, font=font, fill=outline)
    draw.text(position, text, font=font, fill=fill)


class PillowRenderer:
    """
    Draws every contour as a colored polyline over the image and writes the
    contour index at its vertex mean.
    """

    def __init__(self, line_width: int = 1, label: bool = True) -> None:
        self.line_width = max(1, int(line_width))
        self.label = label
        self._font: FontType = ImageFont.load_default()

    def render(self, image: np.ndarray, contours: ContourSet) -> NpRgbImage:
        canvas = to_rgb8(image)
        draw = ImageDraw.Draw(canvas)
        for k, contour in enumerate(contours):
            if len(contour) == 0:
                continue
            color = PALETTE[k % len(PALETTE)]
            pts = [(float(x), float(y)) for x, y in contour.points]
            if contour.closed:
                pts.append(pts[0])
            if len(pts) >= 2:
                draw.line(pts, fill=color, width=self.line_width)
            else:
                draw.point(pts, fill=color)
            if self.label:
                cx, cy = contour.centroid()
                _draw_text_outline(
                    draw,
                    (int(round(cx)), int(round(cy))),
                    str(k),
                    self._font,
                    fill=color,
                    outline=(0, 0, 0),
                )
        return np.asarray(canvas, dtype=np.uint8)

    def render_stack(self, image: np.ndarray, frames: Sequence[ContourSet]) -> NpRgbStack:
        h, w = image.shape[:2]
        if len(frames) == 0:
            return np.zeros((0, h, w, 3), dtype=np.uint8)
        return np.stack([self.render(image, frame) for frame in frames], axis=0)
