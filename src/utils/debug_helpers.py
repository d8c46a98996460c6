from __future__ import annotations

import numpy as np

from . import debug

_seen: set[str] = set()


def log_once(key: str, message: str) -> None:
    if debug.is_verbose() and key not in _seen:
        _seen.add(key)
        debug.log(message)


def describe_array(arr: np.ndarray) -> str:
    finite = arr[np.isfinite(arr)] if arr.size else arr
    if finite.size == 0:
        lo = hi = float("nan")
    else:
        lo = float(finite.min())
        hi = float(finite.max())
    all_finite = bool(np.all(np.isfinite(arr))) if arr.size else True
    return (
        f"shape={arr.shape} dtype={arr.dtype} "
        f"finite_all={all_finite} min={lo:.6g} max={hi:.6g}"
    )


def log_array(name: str, arr: np.ndarray, *, scope: str | None = None) -> None:
    if debug.is_verbose():
        debug.log(f"{name}: {describe_array(np.asarray(arr))}", scope=scope)


def log_contour(name: str, points: np.ndarray, *, scope: str | None = None) -> None:
    """Point count, bounding box and vertex mean of an (N,2) point array."""
    if not debug.is_verbose():
        return
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if pts.shape[0] == 0:
        debug.log(f"{name}: empty", scope=scope)
        return
    lo = pts.min(axis=0)
    hi = pts.max(axis=0)
    c = pts.mean(axis=0)
    debug.log(
        f"{name}: n={pts.shape[0]} "
        f"bbox=({lo[0]:.4g},{lo[1]:.4g})-({hi[0]:.4g},{hi[1]:.4g}) "
        f"mean=({c[0]:.4g},{c[1]:.4g})",
        scope=scope,
    )
