from __future__ import annotations

from typing import Sequence

import numpy as np
from beartype import beartype
from jaxtyping import Float, jaxtyped

from ..utils import debug, debug_helpers
from .control import SnakeStatus
from .energy import DerivableEnergy, EnergyTerm, call_guarded
from .errors import ConfigurationError, EnergyEvaluationError, IterationFailure
from .single import SingleContourOptimizer
from .state import EnergyNormalization
from .stepsize import ConstantGamma, GammaUpdate
from .termination import TerminationStrategy
from .types import NpGamma, NpSystemMatrix, NpSystemVector

_MAX_CONDITION = 1.0 / np.finfo(np.float64).eps


@jaxtyped(typechecker=beartype)
def semi_implicit_step(
    A: NpSystemMatrix,
    B: NpSystemVector,
    gamma: NpGamma,
    x: NpSystemVector,
) -> NpSystemVector:
    """
    Solve (I + Gamma * A) x_new = x - Gamma * B, Gamma scaling row i by gamma[i].
    Raises IterationFailure for singular, ill-conditioned or non-finite systems.
    """
    H = np.eye(A.shape[0]) + A * gamma[:, None]
    rhs = x - gamma * B
    if not (np.all(np.isfinite(H)) and np.all(np.isfinite(rhs))):
        raise IterationFailure("linear system has non-finite entries")
    cond = float(np.linalg.cond(H))
    if not np.isfinite(cond) or cond > _MAX_CONDITION:
        raise IterationFailure(f"linear system is ill-conditioned (cond={cond:.3g})")
    try:
        x_new = np.linalg.solve(H, rhs)
    except np.linalg.LinAlgError as exc:
        raise IterationFailure(f"linear system is singular: {exc}") from exc
    if not np.all(np.isfinite(x_new)):
        raise IterationFailure("solution has non-finite entries")
    return x_new


@jaxtyped(typechecker=beartype)
def refit_gamma(gamma: NpGamma, n_points: int) -> Float[np.ndarray, "K"]:
    """Stretch a (2K,) gamma vector to (2n,) by linear interpolation per axis."""
    k = gamma.shape[0] // 2
    if k == n_points:
        return gamma
    if k == 0:
        raise ValueError("cannot refit an empty gamma vector")
    src = np.linspace(0.0, 1.0, k)
    dst = np.linspace(0.0, 1.0, n_points)
    if k == 1:
        gx = np.full(n_points, gamma[0])
        gy = np.full(n_points, gamma[1])
    else:
        gx = np.interp(dst, src, gamma[:k])
        gy = np.interp(dst, src, gamma[k:])
    return np.concatenate([gx, gy])


class VariationalOptimizer(SingleContourOptimizer):
    """
    Semi-implicit Euler-Lagrange solver in normalized coordinates
    (scale_factor = max(width, height)).

    Every iteration assembles A (2N,2N) and B (2N,) from the weighted energy
    derivatives and solves one linear system for all points at once.
    """

    energy_normalization_default = EnergyNormalization.BALANCED_DERIVATIVES

    def __init__(
        self,
        energies: Sequence[EnergyTerm],
        *,
        termination: TerminationStrategy | None = None,
        gamma_update: GammaUpdate | None = None,
        **kwargs,
    ) -> None:
        super().__init__(energies, termination=termination, **kwargs)
        self.gamma_update: GammaUpdate = gamma_update if gamma_update is not None else ConstantGamma()
        self.gamma: np.ndarray = np.zeros((0,), dtype=np.float64)
        self.A: np.ndarray = np.zeros((0, 0), dtype=np.float64)
        self.B: np.ndarray = np.zeros((0,), dtype=np.float64)

    def scale_factor_for(self, width: int, height: int) -> float:
        return float(max(width, height))

    def validate_configuration(self) -> None:
        super().validate_configuration()
        self.energies.require_derivable()
        if self.termination is None:
            raise ConfigurationError("variational optimizer needs a termination strategy")

    def init_strategy(self) -> None:
        n = len(self._require_contour())
        self.gamma = np.full((2 * n,), self.settings.initial_gamma, dtype=np.float64)
        self.gamma_update.init(self.state(), self.energies)

    def assemble(self) -> tuple[np.ndarray, np.ndarray]:
        """Weighted sum of every term's matrix and vector part, in term order."""
        n = len(self._require_contour())
        self.A = np.zeros((2 * n, 2 * n), dtype=np.float64)
        self.B = np.zeros((2 * n,), dtype=np.float64)
        state = self.state()
        for term, w in self.energies:
            if not isinstance(term, DerivableEnergy):
                continue
            A_t = call_guarded(term, "matrix_part", lambda: term.matrix_part(state))
            B_t = call_guarded(term, "vector_part", lambda: term.vector_part(state))
            if A_t is not None:
                A_t = np.asarray(A_t, dtype=np.float64)
                if A_t.shape != self.A.shape:
                    raise EnergyEvaluationError(term.name, f"matrix part has shape {A_t.shape}, expected {self.A.shape}")
                self.A += w * A_t
            if B_t is not None:
                B_t = np.asarray(B_t, dtype=np.float64).reshape(-1)
                if B_t.shape != self.B.shape:
                    raise EnergyEvaluationError(term.name, f"vector part has shape {B_t.shape}, expected {self.B.shape}")
                self.B += w * B_t
        return self.A, self.B

    def iterate(self) -> SnakeStatus:
        contour = self._require_contour()
        if not self.viable():
            return SnakeStatus.FAILED

        self.iteration += 1
        self.previous = contour.copy()
        n = len(contour)
        self.gamma = refit_gamma(self.gamma, n)

        self.energies.update(self.state())
        A, B = self.assemble()
        x = np.concatenate([contour.points[:, 0], contour.points[:, 1]])
        x_new = semi_implicit_step(A, B, self.gamma, x)

        contour.points = np.stack([x_new[:n], x_new[n:]], axis=1)
        contour.origin_ids = np.arange(n, dtype=np.int64)

        if not contour.is_simple():
            if not contour.make_simple():
                raise IterationFailure("contour self-intersection could not be repaired")
        if self.energies.requires_ccw and contour.closed and not contour.is_counter_clockwise():
            contour.reverse()

        self.maybe_resample()
        if not self.viable():
            return SnakeStatus.FAILED

        contour.clamp(
            (self.width - 1) / self.scale_factor,
            (self.height - 1) / self.scale_factor,
        )
        debug_helpers.log_contour(f"iteration {self.iteration}", contour.points * self.scale_factor, scope="varcalc")

        gamma = np.asarray(self.gamma_update.update(self.state(), self.gamma, self.energies), dtype=np.float64)
        self.gamma = refit_gamma(gamma.reshape(-1), len(contour))
        debug.log(f"gamma[0]={self.gamma[0]:.4g}", scope="varcalc")

        return self.check_termination()
