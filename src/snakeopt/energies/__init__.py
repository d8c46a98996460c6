from __future__ import annotations

from .balloon import Balloon
from .centroid import CentroidAttraction
from .image_based import DistanceEnergy, GradientEnergy, ImageEnergy
from .kass import KassCurvature, KassLength
from .overlap import OverlapPenalty

__all__ = [
    "Balloon",
    "CentroidAttraction",
    "DistanceEnergy",
    "GradientEnergy",
    "ImageEnergy",
    "KassCurvature",
    "KassLength",
    "OverlapPenalty",
]
