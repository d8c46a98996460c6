from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from ..utils import debug
from .contour import ContourSet
from .control import ControlChannel, ControlStatus, RunOutcome, SnakeStatus
from .errors import ConfigurationError, IterationFailure
from .render import ContourRenderer, PillowRenderer

EnergySink = Callable[[dict[str, float]], None]


@dataclass(frozen=True)
class OptimizerSettings:
    """
    Scalar configuration of the optimization loop.

    resample_segment_length: target spacing in pixels
    step_size: iterations per step when step_wise is enabled
    capture_interval: capture every n-th loop pass when capture_intermediate
    log_every: print a progress line every n iterations, 0 = silent
    """

    initial_gamma: float = 0.5
    resample: bool = True
    resample_segment_length: float = 5.0
    step_wise: bool = False
    step_size: int = 1
    capture_intermediate: bool = False
    capture_interval: int = 1
    sample_energy: bool = False
    log_every: int = 0

    def __post_init__(self) -> None:
        if not self.initial_gamma > 0.0:
            raise ConfigurationError("initial_gamma must be > 0")
        if not self.resample_segment_length > 0.0:
            raise ConfigurationError("resample_segment_length must be > 0")
        if self.step_size < 1:
            raise ConfigurationError("step_size must be >= 1")
        if self.capture_interval < 1:
            raise ConfigurationError("capture_interval must be >= 1")
        if self.log_every < 0:
            raise ConfigurationError("log_every must be >= 0")


@dataclass
class OptimizationResult:
    outcome: RunOutcome
    contours: ContourSet
    overlay: np.ndarray | None
    intermediate_stack: np.ndarray | None
    energy_log: list[dict[str, float]]
    iterations: int
    message: str = ""
    failed_contours: list[int] = field(default_factory=list)
    iterations_per_contour: list[int] = field(default_factory=list)


class SnakeOptimizer(ABC):
    """
    Control loop shared by all strategies.

    Subclasses implement `init_optimizer`, `do_iteration` and
    `snapshot_contours`; this class owns the status machine, intermediate
    capture, energy sampling and finalization. The loop runs either in the
    calling thread (`run_to_completion`) or on a worker thread (`start`).
    """

    def __init__(
        self,
        *,
        settings: OptimizerSettings | None = None,
        renderer: ContourRenderer | None = None,
        energy_sink: EnergySink | None = None,
    ) -> None:
        self.settings = settings if settings is not None else OptimizerSettings()
        self.renderer: ContourRenderer = renderer if renderer is not None else PillowRenderer()
        self.energy_sink = energy_sink
        self.image: np.ndarray | None = None
        self.initial_contours: ContourSet | None = None

        self._control = ControlChannel()
        self._snapshot_lock = threading.Lock()
        self._published: ContourSet | None = None
        self._captured: list[ContourSet] = []
        self._energy_log: list[dict[str, float]] = []
        self._iterations = 0
        self._message = ""
        self._result: OptimizationResult | None = None
        self._thread: threading.Thread | None = None
        self._thread_error: BaseException | None = None
        self._initialized = False

    # -- strategy hooks -------------------------------------------------

    @abstractmethod
    def init_optimizer(self) -> None:
        """Prepare strategy state from self.image / self.initial_contours."""

    @abstractmethod
    def do_iteration(self) -> SnakeStatus:
        """Advance one iteration. May raise IterationFailure."""

    @abstractmethod
    def snapshot_contours(self) -> ContourSet:
        """Deep copy of the live contours in pixel coordinates."""

    def validate_configuration(self) -> None:
        """Raise ConfigurationError when a required collaborator is missing."""

    def energy_row(self) -> dict[str, float] | None:
        return None

    def failed_contours(self) -> list[int]:
        return []

    def iterations_per_contour(self) -> list[int]:
        return []

    # -- setup ------------------------------------------------------------

    def initialize(
        self,
        image: np.ndarray | None,
        initial_contours: ContourSet | None,
        settings: OptimizerSettings | None = None,
    ) -> None:
        if self._thread is not None and self._thread.is_alive():
            raise ConfigurationError("optimizer is running")
        if image is None:
            raise ConfigurationError("no input image given")
        image = np.asarray(image)
        if image.ndim not in (2, 3) or image.shape[0] == 0 or image.shape[1] == 0:
            raise ConfigurationError(f"image must be (H,W) or (H,W,C), got {image.shape}")
        if initial_contours is None or len(initial_contours) == 0:
            raise ConfigurationError("no initial contours given")
        if any(len(c) == 0 for c in initial_contours):
            raise ConfigurationError("initial contours must not be empty")
        if settings is not None:
            self.settings = settings

        self.image = image
        self.initial_contours = initial_contours.copy()
        if self.initial_contours.width <= 0 or self.initial_contours.height <= 0:
            self.initial_contours.width = int(image.shape[1])
            self.initial_contours.height = int(image.shape[0])

        self.validate_configuration()

        self._captured = []
        self._energy_log = []
        self._iterations = 0
        self._message = ""
        self._result = None
        self._thread_error = None
        self.init_optimizer()
        self._publish()
        self._control.reset(self.settings.step_size if self.settings.step_wise else None)
        self._initialized = True
        debug.log(
            f"initialized {type(self).__name__} with {len(self.initial_contours)} contour(s)",
            scope="optimizer",
        )

    # -- control surface --------------------------------------------------

    @property
    def status(self) -> ControlStatus:
        return self._control.status

    @property
    def iteration_count(self) -> int:
        return self._iterations

    @property
    def result(self) -> OptimizationResult | None:
        return self._result

    def pause(self) -> None:
        self._control.pause()

    def resume(self) -> None:
        self._control.resume()

    def step(self, n: int = 1) -> None:
        self._control.step(n)

    def stop(self) -> None:
        self._control.stop()

    def kill(self) -> None:
        self._control.kill()

    def wait_for_status(self, status: ControlStatus, timeout: float | None = None) -> bool:
        return self._control.wait_for(status, timeout)

    def get_current_contours(self) -> ContourSet:
        with self._snapshot_lock:
            if self._published is None:
                return ContourSet()
            return self._published.copy()

    # -- running ------------------------------------------------------------

    def run_to_completion(self) -> OptimizationResult:
        self._require_initialized()
        return self._loop()

    def start(self) -> None:
        self._require_initialized()
        if self._thread is not None and self._thread.is_alive():
            raise ConfigurationError("optimizer already started")
        self._thread = threading.Thread(
            target=self._run_worker, name=f"{type(self).__name__}-loop", daemon=True
        )
        self._thread.start()

    def join(self, timeout: float | None = None) -> OptimizationResult | None:
        """Result of a started run, or None if it is still running after timeout."""
        if self._thread is None:
            return self._result
        self._thread.join(timeout)
        if self._thread.is_alive():
            return None
        if self._thread_error is not None:
            raise self._thread_error
        return self._result

    def _run_worker(self) -> None:
        try:
            self._loop()
        except BaseException as exc:
            self._thread_error = exc
            self._control.set(ControlStatus.STOP)

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise ConfigurationError("initialize() must be called before running")

    def _require_input(self) -> tuple[np.ndarray, ContourSet]:
        if self.image is None or self.initial_contours is None:
            raise ConfigurationError("no input image or contours, call initialize() first")
        return self.image, self.initial_contours

    def _loop(self) -> OptimizationResult:
        settings = self.settings
        loop_counter = 0
        while True:
            go = self._control.await_go()
            if go is ControlStatus.KILL:
                return self._finish(RunOutcome.CANCELLED, render=False)
            if go is ControlStatus.STOP:
                return self._finish(RunOutcome.CANCELLED)

            try:
                status = self.do_iteration()
            except IterationFailure as exc:
                self._message = str(exc)
                debug.log(f"iteration failed: {exc}", scope="optimizer")
                status = SnakeStatus.FAILED
            self._iterations += 1
            self._control.consume()
            self._publish()

            if status is SnakeStatus.FAILED:
                return self._finish(RunOutcome.FAILED)

            if settings.sample_energy:
                try:
                    self._sample_energy()
                except IterationFailure as exc:
                    self._message = str(exc)
                    return self._finish(RunOutcome.FAILED)
            if settings.log_every and self._iterations % settings.log_every == 0:
                print(f"iteration {self._iterations:5d}  status={status.value}")

            if settings.capture_intermediate and loop_counter % settings.capture_interval == 0:
                self._captured.append(self.get_current_contours())

            if status is SnakeStatus.CONVERGED:
                return self._finish(RunOutcome.CONVERGED)
            loop_counter += 1

    def _sample_energy(self) -> None:
        row = self.energy_row()
        if row is None:
            return
        row = {"iteration": float(self._iterations), **row}
        self._energy_log.append(row)
        if self.energy_sink is not None:
            self.energy_sink(row)

    def _publish(self) -> None:
        snapshot = self.snapshot_contours()
        with self._snapshot_lock:
            self._published = snapshot

    def _finish(self, outcome: RunOutcome, *, render: bool = True) -> OptimizationResult:
        contours = self.get_current_contours()
        overlay = None
        stack = None
        if render and self.image is not None:
            overlay = self.renderer.render(self.image, contours)
            if self.settings.capture_intermediate:
                stack = self.renderer.render_stack(self.image, self._captured)

        message = self._message
        if not message:
            message = {
                RunOutcome.CONVERGED: f"converged after {self._iterations} iteration(s)",
                RunOutcome.FAILED: f"failed after {self._iterations} iteration(s)",
                RunOutcome.CANCELLED: f"cancelled after {self._iterations} iteration(s)",
            }[outcome]

        self._result = OptimizationResult(
            outcome=outcome,
            contours=contours,
            overlay=overlay,
            intermediate_stack=stack,
            energy_log=list(self._energy_log),
            iterations=self._iterations,
            message=message,
            failed_contours=self.failed_contours(),
            iterations_per_contour=self.iterations_per_contour(),
        )
        if self.settings.log_every:
            print(f"{type(self).__name__} {outcome.value}: {message}")
        self._control.set(ControlStatus.STOP)
        return self._result
