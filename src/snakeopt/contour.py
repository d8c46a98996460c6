from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Sequence

import numpy as np
import shapely
from jaxtyping import Float
from shapely.geometry import LinearRing, LineString, MultiPolygon, Polygon

from .geometry import signed_area_np
from .types import NpOriginIds, NpPoints


class Contour:
    """
    Ordered 2D point polygon with correspondence ids.

    points: (N,2) float64 (x, y)
    origin_ids: (N,) index of each point in the contour it was derived from,
      -1 when the point has no predecessor (inserted by resampling/repair)

    A closed contour given with its first point repeated at the end loses the
    repeat on construction unless drop_closing_point is False.
    """

    def __init__(
        self,
        points: NpPoints | Sequence[Sequence[float]],
        closed: bool = True,
        origin_ids: NpOriginIds | None = None,
        *,
        drop_closing_point: bool = True,
    ) -> None:
        pts = np.array(points, dtype=np.float64).reshape(-1, 2)
        if drop_closing_point and closed and pts.shape[0] > 1 and np.array_equal(pts[0], pts[-1]):
            pts = pts[:-1]
            if origin_ids is not None:
                origin_ids = np.asarray(origin_ids)[:-1]
        if origin_ids is None:
            ids = np.arange(pts.shape[0], dtype=np.int64)
        else:
            ids = np.array(origin_ids, dtype=np.int64).reshape(-1)
            if ids.shape[0] != pts.shape[0]:
                raise ValueError(
                    f"origin_ids has {ids.shape[0]} entries for {pts.shape[0]} points"
                )
        self.points = pts
        self.closed = bool(closed)
        self.origin_ids = ids

    @classmethod
    def _from_arrays(cls, points: np.ndarray, closed: bool, origin_ids: np.ndarray) -> Contour:
        out = cls.__new__(cls)
        out.points = points
        out.closed = closed
        out.origin_ids = origin_ids
        return out

    def __len__(self) -> int:
        return int(self.points.shape[0])

    def __repr__(self) -> str:
        return f"Contour(points={len(self)}, closed={self.closed})"

    def copy(self) -> Contour:
        return Contour._from_arrays(self.points.copy(), self.closed, self.origin_ids.copy())

    def scaled(self, factor: float) -> Contour:
        """New contour with coordinates multiplied by factor, ids kept."""
        return Contour._from_arrays(self.points * factor, self.closed, self.origin_ids.copy())

    def centroid(self) -> Float[np.ndarray, "2"]:
        """Mean of the vertices."""
        return self.points.mean(axis=0)

    def area(self) -> float:
        if len(self) < 3:
            return 0.0
        return abs(signed_area_np(self.points))

    def length(self) -> float:
        if len(self) < 2:
            return 0.0
        return float(self._as_line().length)

    def is_counter_clockwise(self) -> bool:
        """Positive shoelace area in the contour's own (x, y) frame."""
        if len(self) < 3:
            return True
        return signed_area_np(self.points) > 0.0

    def reverse(self) -> None:
        self.points = self.points[::-1].copy()
        self.origin_ids = self.origin_ids[::-1].copy()

    def is_simple(self) -> bool:
        if self.closed:
            if len(self) < 3:
                return False
            return bool(LinearRing(self.points).is_simple)
        if len(self) < 2:
            return False
        return bool(LineString(self.points).is_simple)

    def make_simple(self) -> bool:
        """
        Remove self-intersection loops from a closed contour in place by keeping
        the largest polygon of the repaired geometry.
        Returns False (contour unchanged) when no polygon can be recovered.
        Open contours are only reported, never repaired.
        """
        if self.is_simple():
            return True
        if not self.closed or len(self) < 3:
            return False

        poly = Polygon(self.points).buffer(0)
        if poly.is_empty:
            return False
        if isinstance(poly, MultiPolygon):
            poly = max(poly.geoms, key=lambda g: g.area)
        if not isinstance(poly, Polygon) or poly.is_empty:
            return False

        coords = np.asarray(poly.exterior.coords, dtype=np.float64)[:-1]
        if coords.shape[0] < 3:
            return False

        lookup = {
            (float(p[0]), float(p[1])): int(i)
            for p, i in zip(self.points, self.origin_ids)
        }
        ids = np.array(
            [lookup.get((float(p[0]), float(p[1])), -1) for p in coords],
            dtype=np.int64,
        )
        self.points = coords
        self.origin_ids = ids
        return True

    def resample(self, segment_length: float) -> None:
        """
        Redistribute the points in place at uniform arc-length spacing close to
        segment_length. The first point is kept as the starting point.
        """
        if segment_length <= 0:
            raise ValueError("segment_length must be positive")
        if len(self) < 2:
            return
        line = self._as_line()
        total = float(line.length)
        if total <= 0.0:
            return

        if self.closed:
            n = max(int(round(total / segment_length)), 1)
            distances = np.arange(n, dtype=np.float64) * (total / n)
        else:
            n_seg = max(int(round(total / segment_length)), 1)
            distances = np.linspace(0.0, total, n_seg + 1)

        samples = shapely.line_interpolate_point(line, distances)
        self.points = np.asarray(shapely.get_coordinates(samples), dtype=np.float64)
        self.origin_ids = np.full((self.points.shape[0],), -1, dtype=np.int64)

    def clamp(self, x_max: float, y_max: float) -> int:
        """Clip points into [0,x_max] x [0,y_max]; returns how many were moved."""
        clipped = np.empty_like(self.points)
        clipped[:, 0] = np.clip(self.points[:, 0], 0.0, x_max)
        clipped[:, 1] = np.clip(self.points[:, 1], 0.0, y_max)
        moved = int(np.count_nonzero(np.any(clipped != self.points, axis=1)))
        self.points = clipped
        return moved

    def _as_line(self) -> LineString:
        if self.closed:
            ring = np.vstack([self.points, self.points[:1]])
            return LineString(ring)
        return LineString(self.points)


@dataclass
class ContourSet:
    """Ordered contours plus the (width, height) domain they live in."""

    contours: list[Contour] = field(default_factory=list)
    width: int = 0
    height: int = 0

    def __len__(self) -> int:
        return len(self.contours)

    def __iter__(self) -> Iterator[Contour]:
        return iter(self.contours)

    def __getitem__(self, index: int) -> Contour:
        return self.contours[index]

    def add(self, contour: Contour) -> None:
        self.contours.append(contour)

    def copy(self) -> ContourSet:
        return ContourSet([c.copy() for c in self.contours], self.width, self.height)
