from __future__ import annotations

import threading
from enum import Enum


class ControlStatus(Enum):
    INIT = "init"
    RUN = "run"
    PAUSE = "pause"
    STEP = "step"
    RESUME = "resume"
    STOP = "stop"
    KILL = "kill"


class SnakeStatus(Enum):
    """Result of one iteration."""

    CONVERGED = "converged"
    FAILED = "failed"
    CONTINUE = "continue"


class RunOutcome(Enum):
    CONVERGED = "converged"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ControlChannel:
    """
    Status shared between the optimizer loop and an external controller.

    The controller writes requests (pause, resume, step, stop, kill); the loop
    reads them only between iterations and blocks on the condition while paused.
    budget: iterations left before the loop pauses itself, None = unbounded.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._status = ControlStatus.INIT
        self._budget: int | None = None
        self._default_budget: int | None = None

    @property
    def status(self) -> ControlStatus:
        with self._cond:
            return self._status

    @property
    def budget(self) -> int | None:
        with self._cond:
            return self._budget

    def reset(self, step_size: int | None) -> None:
        with self._cond:
            self._status = ControlStatus.INIT
            self._default_budget = step_size
            self._budget = step_size
            self._cond.notify_all()

    def set(self, status: ControlStatus) -> None:
        with self._cond:
            self._status = status
            self._cond.notify_all()

    def pause(self) -> None:
        with self._cond:
            if self._status in (ControlStatus.STOP, ControlStatus.KILL):
                return
            self._status = ControlStatus.PAUSE
            self._cond.notify_all()

    def resume(self) -> None:
        with self._cond:
            if self._status in (ControlStatus.STOP, ControlStatus.KILL):
                return
            self._status = ControlStatus.RESUME
            self._budget = self._default_budget
            self._cond.notify_all()

    def step(self, n: int) -> None:
        if n < 1:
            raise ValueError(f"step count must be >= 1, got {n}")
        with self._cond:
            if self._status in (ControlStatus.STOP, ControlStatus.KILL):
                return
            self._status = ControlStatus.STEP
            self._budget = int(n)
            self._cond.notify_all()

    def stop(self) -> None:
        with self._cond:
            if self._status is ControlStatus.KILL:
                return
            self._status = ControlStatus.STOP
            self._cond.notify_all()

    def kill(self) -> None:
        self.set(ControlStatus.KILL)

    def await_go(self) -> ControlStatus:
        """
        Called by the loop before each iteration. Pauses when the budget is
        spent, blocks while paused and returns RUN, STOP or KILL.
        """
        with self._cond:
            if self._status not in (ControlStatus.STOP, ControlStatus.KILL):
                if self._budget is not None and self._budget <= 0:
                    self._status = ControlStatus.PAUSE
                    self._cond.notify_all()
            while self._status is ControlStatus.PAUSE:
                self._cond.wait()
            if self._status in (ControlStatus.STOP, ControlStatus.KILL):
                return self._status
            self._status = ControlStatus.RUN
            self._cond.notify_all()
            return ControlStatus.RUN

    def consume(self) -> None:
        with self._cond:
            if self._budget is not None:
                self._budget -= 1

    def wait_for(self, status: ControlStatus, timeout: float | None = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._status is status, timeout)
