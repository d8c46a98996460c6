from __future__ import annotations


class ConfigurationError(ValueError):
    """Missing or inconsistent optimizer input, raised by ``initialize``."""


class IterationFailure(RuntimeError):
    """A single iteration could not produce a valid next contour state.

    The optimizer loop turns this into a FAILED outcome and keeps the last
    valid contour; it never reaches the controlling thread as an exception.
    """


class EnergyEvaluationError(IterationFailure):
    """An energy term failed to produce its value or its derivative."""

    def __init__(self, term_name: str, reason: str) -> None:
        super().__init__(f"energy term {term_name} failed: {reason}")
        self.term_name = term_name
        self.reason = reason
