from __future__ import annotations

from dataclasses import replace
from typing import Callable, Sequence

import numpy as np

from ..utils import debug
from .contour import ContourSet
from .control import SnakeStatus
from .errors import ConfigurationError, IterationFailure
from .optimizer import EnergySink, OptimizerSettings, SnakeOptimizer
from .raster import contour_mask, read_only
from .render import ContourRenderer
from .single import SingleContourOptimizer
from .state import CouplingView

SingleFactory = Callable[[int], SingleContourOptimizer]


class CoupledOptimizer(SnakeOptimizer):
    """
    Evolves several contours together, one single-contour optimizer each.

    factory(k) builds the optimizer for contour k. Contours flagged inactive
    are never touched. A contour that fails (or collapses to too few points)
    is latched inactive; the run converges once every remaining contour
    converged in the same iteration and fails when none remains.
    """

    def __init__(
        self,
        factory: SingleFactory,
        *,
        active: Sequence[bool] | None = None,
        settings: OptimizerSettings | None = None,
        renderer: ContourRenderer | None = None,
        energy_sink: EnergySink | None = None,
    ) -> None:
        super().__init__(settings=settings, renderer=renderer, energy_sink=energy_sink)
        self.factory = factory
        self.requested_active = None if active is None else [bool(a) for a in active]
        self.optimizers: list[SingleContourOptimizer] = []
        self.active: list[bool] = []
        self.failed: list[bool] = []
        self.converged: list[bool] = []
        self.contour_iterations: list[int] = []
        self.failure_messages: dict[int, str] = {}
        self.overlap_map: np.ndarray | None = None
        self.uses_overlap_map = False

    def validate_configuration(self) -> None:
        _, initial = self._require_input()
        if self.requested_active is not None and len(self.requested_active) != len(initial):
            raise ConfigurationError(
                f"{len(self.requested_active)} activity flags for "
                f"{len(initial)} contour(s)"
            )

    def init_optimizer(self) -> None:
        image, initial = self._require_input()
        n = len(initial)
        width = initial.width
        height = initial.height
        inner = replace(
            self.settings,
            step_wise=False,
            capture_intermediate=False,
            sample_energy=False,
            log_every=0,
        )

        self.optimizers = []
        for k, contour in enumerate(initial):
            opt = self.factory(k)
            opt.contour_index = 0
            opt.initialize(image, ContourSet([contour], width, height), inner)
            self.optimizers.append(opt)

        seen: set[int] = set()
        for opt in self.optimizers:
            for term, _ in opt.energies:
                if term.coupled and id(term) not in seen:
                    seen.add(id(term))
                    term.init_coupling(n)

        self.active = list(self.requested_active) if self.requested_active is not None else [True] * n
        self.failed = [False] * n
        self.converged = [False] * n
        self.contour_iterations = [0] * n
        self.failure_messages = {}
        self.uses_overlap_map = any(opt.energies.requires_overlap_map for opt in self.optimizers)
        self.overlap_map = None

    def running(self, k: int) -> bool:
        return self.active[k] and not self.failed[k]

    def update_overlap_map(self) -> list[np.ndarray]:
        """Rebuild the overlap map from all running contours; returns their masks."""
        _, initial = self._require_input()
        width = initial.width
        height = initial.height
        overlap = np.zeros((height, width), dtype=np.int32)
        masks: list[np.ndarray] = []
        for k, opt in enumerate(self.optimizers):
            if not self.running(k) or opt.contour is None:
                masks.append(np.zeros((height, width), dtype=bool))
                continue
            mask = contour_mask(opt.contour, width, height, opt.scale_factor)
            overlap += mask.astype(np.int32)
            masks.append(mask)
        self.overlap_map = overlap
        return masks

    def do_iteration(self) -> SnakeStatus:
        n = len(self.optimizers)
        masks = self.update_overlap_map() if self.uses_overlap_map else None
        shared = read_only(self.overlap_map) if masks is not None and self.overlap_map is not None else None

        for k, opt in enumerate(self.optimizers):
            if not self.running(k):
                continue
            if masks is not None and shared is not None:
                opt.set_coupling(CouplingView(shared, read_only(masks[k]), k, n))
            if not opt.viable():
                self._latch_failure(k, "too few points")
                continue
            try:
                status = opt.do_iteration()
            except IterationFailure as exc:
                self._latch_failure(k, str(exc))
                continue
            self.contour_iterations[k] = opt.iteration
            if status is SnakeStatus.FAILED:
                self._latch_failure(k, "iteration failed")
            else:
                self.converged[k] = status is SnakeStatus.CONVERGED

        remaining = [k for k in range(n) if self.running(k)]
        if not remaining:
            reasons = "; ".join(f"{k}: {m}" for k, m in sorted(self.failure_messages.items()))
            raise IterationFailure(f"no active contour left ({reasons})")
        if all(self.converged[k] for k in remaining):
            return SnakeStatus.CONVERGED
        return SnakeStatus.CONTINUE

    def _latch_failure(self, k: int, reason: str) -> None:
        self.failed[k] = True
        self.converged[k] = False
        self.contour_iterations[k] = self.optimizers[k].iteration + 1
        self.failure_messages[k] = reason
        debug.log(f"contour {k} failed: {reason}", scope="coupled")

    def snapshot_contours(self) -> ContourSet:
        _, initial = self._require_input()
        out = ContourSet(width=initial.width, height=initial.height)
        for k, opt in enumerate(self.optimizers):
            if not self.active[k]:
                out.add(initial[k].copy())
                continue
            out.add(opt.snapshot_contours()[0])
        return out

    def energy_row(self) -> dict[str, float] | None:
        row: dict[str, float] = {}
        total = 0.0
        points = 0
        for k, opt in enumerate(self.optimizers):
            if opt.contour is None:
                continue
            e = opt.energies.total(opt.state())
            row[f"contour_{k}"] = e
            total += e
            points += len(opt.contour)
        if not row:
            return None
        return {"total": total, "per_point": total / max(points, 1), **row}

    def failed_contours(self) -> list[int]:
        return [k for k, f in enumerate(self.failed) if f]

    def iterations_per_contour(self) -> list[int]:
        return list(self.contour_iterations)
