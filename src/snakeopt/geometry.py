from __future__ import annotations

import jax.numpy as jnp
import numpy as np
from beartype import beartype
from jax import Array
from jaxtyping import Float, jaxtyped


@jaxtyped(typechecker=beartype)
def bilinear_sample(
    field: Float[Array, "H W"],
    X: Float[Array, "... 2"],
) -> Float[Array, "..."]:
    """
    field: (H,W) values on the pixel grid, row = y, column = x
    X: (...,2) pixel coords (x, y)
    Returns field(X): (...) via bilinear interpolation, clamped at the border.
    """
    H, W = field.shape

    px = X[..., 0]
    py = X[..., 1]

    x0 = jnp.floor(px).astype(jnp.int32)
    y0 = jnp.floor(py).astype(jnp.int32)
    x1 = x0 + 1
    y1 = y0 + 1

    x0c = jnp.clip(x0, 0, W - 1)
    x1c = jnp.clip(x1, 0, W - 1)
    y0c = jnp.clip(y0, 0, H - 1)
    y1c = jnp.clip(y1, 0, H - 1)

    wx = jnp.clip(px - x0.astype(px.dtype), 0.0, 1.0)
    wy = jnp.clip(py - y0.astype(py.dtype), 0.0, 1.0)

    v00 = field[y0c, x0c]
    v10 = field[y0c, x1c]
    v01 = field[y1c, x0c]
    v11 = field[y1c, x1c]

    v0 = v00 * (1 - wx) + v10 * wx
    v1 = v01 * (1 - wx) + v11 * wx
    return v0 * (1 - wy) + v1 * wy


@jaxtyped(typechecker=beartype)
def signed_area(x: Float[Array, "M 2"]) -> Float[Array, ""]:
    """Shoelace area, positive for counter-clockwise order in the given frame."""
    xs = x[:, 0]
    ys = x[:, 1]
    return 0.5 * jnp.sum(xs * jnp.roll(ys, -1) - jnp.roll(xs, -1) * ys)


@jaxtyped(typechecker=beartype)
def signed_area_np(x: Float[np.ndarray, "M 2"]) -> float:
    xs = x[:, 0]
    ys = x[:, 1]
    return float(0.5 * np.sum(xs * np.roll(ys, -1) - np.roll(xs, -1) * ys))


def first_difference_matrix(n: int, *, closed: bool) -> np.ndarray:
    """
    D with (D @ x)[i] = x[i+1] - x[i].
    closed: (n,n) circulant, open: (n-1,n)
    """
    if n < 2:
        raise ValueError("need at least 2 points for a difference operator")
    rows = n if closed else n - 1
    D = np.zeros((rows, n), dtype=np.float64)
    idx = np.arange(rows)
    D[idx, idx] = -1.0
    D[idx, (idx + 1) % n] = 1.0
    return D


def second_difference_matrix(n: int, *, closed: bool) -> np.ndarray:
    """
    D2 with (D2 @ x)[i] = x[i-1] - 2 x[i] + x[i+1].
    closed: (n,n) circulant, open: (n-2,n) over the interior points
    """
    if n < 3:
        raise ValueError("need at least 3 points for a second difference")
    if closed:
        D2 = np.zeros((n, n), dtype=np.float64)
        idx = np.arange(n)
        D2[idx, (idx - 1) % n] = 1.0
        D2[idx, idx] = -2.0
        D2[idx, (idx + 1) % n] = 1.0
        return D2
    D2 = np.zeros((n - 2, n), dtype=np.float64)
    idx = np.arange(n - 2)
    D2[idx, idx] = 1.0
    D2[idx, idx + 1] = -2.0
    D2[idx, idx + 2] = 1.0
    return D2


def block_diagonal_xy(K: np.ndarray) -> np.ndarray:
    """Apply the same (N,N) operator to the x block and the y block of a 2N system."""
    n = K.shape[0]
    out = np.zeros((2 * n, 2 * n), dtype=np.float64)
    out[:n, :n] = K
    out[n:, n:] = K
    return out
