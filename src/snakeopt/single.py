from __future__ import annotations

from abc import abstractmethod
from typing import Sequence

import numpy as np

from ..utils import debug, debug_helpers
from .contour import Contour, ContourSet
from .control import SnakeStatus
from .energy import EnergySet, EnergyTerm
from .errors import ConfigurationError, IterationFailure
from .intensity import IntensityNormalization, normalize_intensity
from .optimizer import EnergySink, OptimizerSettings, SnakeOptimizer
from .render import ContourRenderer
from .state import CouplingView, EnergyNormalization, SnakeState
from .termination import TerminationStrategy
from .types import MIN_VIABLE_POINTS


class SingleContourOptimizer(SnakeOptimizer):
    """
    Evolves one contour. Subclasses provide `scale_factor_for` and `iterate`.

    The live contour is kept in optimizer coordinates (pixels / scale_factor).
    Each iteration works on the live contour and restores the pre-iteration
    copy when it fails, so callers only ever see valid states.
    """

    energy_normalization_default = EnergyNormalization.NONE

    def __init__(
        self,
        energies: Sequence[EnergyTerm],
        *,
        termination: TerminationStrategy | None = None,
        intensity_normalization: IntensityNormalization = IntensityNormalization.TRUE_RANGE,
        energy_normalization: EnergyNormalization | None = None,
        contour_index: int = 0,
        settings: OptimizerSettings | None = None,
        renderer: ContourRenderer | None = None,
        energy_sink: EnergySink | None = None,
    ) -> None:
        super().__init__(settings=settings, renderer=renderer, energy_sink=energy_sink)
        self.energies = EnergySet(energies)
        self.termination = termination
        self.intensity_normalization = intensity_normalization
        self.energy_normalization = (
            energy_normalization
            if energy_normalization is not None
            else self.energy_normalization_default
        )
        self.contour_index = contour_index

        self.contour: Contour | None = None
        self.previous: Contour | None = None
        self.working_image: np.ndarray | None = None
        self.scale_factor = 1.0
        self.width = 0
        self.height = 0
        self.iteration = 0
        self.coupling: CouplingView | None = None

    @abstractmethod
    def scale_factor_for(self, width: int, height: int) -> float: ...

    @abstractmethod
    def iterate(self) -> SnakeStatus:
        """One strategy step on self.contour; may raise IterationFailure."""

    def init_strategy(self) -> None:
        """Strategy-specific setup after the contour has been prepared."""

    def validate_configuration(self) -> None:
        if len(self.energies) == 0:
            raise ConfigurationError("no energy terms given")
        if self.initial_contours is not None and not (
            0 <= self.contour_index < len(self.initial_contours)
        ):
            raise ConfigurationError(
                f"contour index {self.contour_index} out of range for "
                f"{len(self.initial_contours)} contour(s)"
            )

    # -- state ------------------------------------------------------------

    @property
    def segment_length(self) -> float:
        """Resampling spacing in optimizer coordinates."""
        return self.settings.resample_segment_length / self.scale_factor

    def state(self) -> SnakeState:
        if self.contour is None or self.working_image is None:
            raise ConfigurationError("no live contour, call initialize() first")
        return SnakeState(
            contour=self.contour,
            previous=self.previous,
            scale_factor=self.scale_factor,
            image=self.working_image,
            width=self.width,
            height=self.height,
            iteration=self.iteration,
            energy_normalization=self.energy_normalization,
            coupling=self.coupling,
        )

    def _require_contour(self) -> Contour:
        if self.contour is None:
            raise ConfigurationError("no live contour, call initialize() first")
        return self.contour

    def set_coupling(self, view: CouplingView | None) -> None:
        self.coupling = view

    # -- template hooks -----------------------------------------------------

    def init_optimizer(self) -> None:
        image, initial = self._require_input()
        self.width = int(image.shape[1])
        self.height = int(image.shape[0])
        self.working_image = normalize_intensity(np.asarray(image), self.intensity_normalization)
        self.scale_factor = float(self.scale_factor_for(self.width, self.height))

        contour = initial[self.contour_index].scaled(1.0 / self.scale_factor)
        if self.settings.resample or len(contour) <= MIN_VIABLE_POINTS:
            contour.resample(self.segment_length)
        if self.energies.requires_ccw and contour.closed and not contour.is_counter_clockwise():
            contour.reverse()
        contour.origin_ids = np.arange(len(contour), dtype=np.int64)

        self.contour = contour
        self.previous = None
        self.iteration = 0
        debug_helpers.log_contour("initial contour", contour.points * self.scale_factor, scope="single")

        state = self.state()
        self.energies.init(state)
        if self.termination is not None:
            self.termination.init(state)
        self.init_strategy()

    def do_iteration(self) -> SnakeStatus:
        contour = self._require_contour()
        saved = (contour.copy(), None if self.previous is None else self.previous.copy(), self.iteration)
        try:
            status = self.iterate()
        except IterationFailure:
            self._restore(saved)
            raise
        if status is SnakeStatus.FAILED:
            self._restore(saved)
        return status

    def _restore(self, saved: tuple[Contour, Contour | None, int]) -> None:
        contour, previous, iteration = saved
        self.contour = contour
        self.previous = previous
        self.iteration = iteration
        debug.log(f"restored contour with {len(contour)} points", scope="single")

    def snapshot_contours(self) -> ContourSet:
        out = ContourSet(width=self.width, height=self.height)
        if self.contour is not None:
            out.add(self.contour.scaled(self.scale_factor))
        return out

    def energy_row(self) -> dict[str, float] | None:
        if self.contour is None or len(self.contour) == 0:
            return None
        state = self.state()
        per_term = self.energies.per_term(state)
        total = self.energies.total(state)
        return {"total": total, "per_point": total / len(self.contour), **per_term}

    # -- helpers for strategies --------------------------------------------

    def viable(self) -> bool:
        return self.contour is not None and len(self.contour) > MIN_VIABLE_POINTS

    def maybe_resample(self) -> bool:
        """Resample on every second iteration when enabled; True if resampled."""
        contour = self._require_contour()
        if self.settings.resample and self.iteration % 2 == 0:
            contour.resample(self.segment_length)
            return True
        return False

    def check_termination(self) -> SnakeStatus:
        if self.termination is None:
            return SnakeStatus.CONTINUE
        return self.termination.terminate(self.state())
