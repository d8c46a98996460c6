from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np

from .errors import ConfigurationError, EnergyEvaluationError
from .state import SnakeState


class EnergyTerm(ABC):
    """
    Base of every energy term.

    weight: positive scalar, normalized against the other terms of a set
    requires_ccw / requires_overlap_map / coupled: capability flags read once
      when an optimizer is initialized
    """

    name = "energy"
    requires_ccw = False
    requires_overlap_map = False
    coupled = False

    def __init__(self, weight: float = 1.0, *, name: str | None = None) -> None:
        if not weight > 0.0:
            raise ValueError(f"energy weight must be > 0, got {weight}")
        self.weight = float(weight)
        if name is not None:
            self.name = name

    def init(self, state: SnakeState) -> None:
        """Called once per contour before the first iteration."""

    def update(self, state: SnakeState) -> None:
        """Called at the start of every iteration."""

    def init_coupling(self, n_contours: int) -> None:
        """Called once by the coupled optimizer on terms with coupled = True."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(weight={self.weight:g})"


class ComputableEnergy(EnergyTerm):
    @abstractmethod
    def energy(self, state: SnakeState) -> float:
        """Scalar energy of the whole contour."""

    def energy_at(self, state: SnakeState, index: int) -> float:
        """Contribution of point `index`; whole-contour energy unless overridden."""
        return self.energy(state)


class DerivableEnergy(EnergyTerm):
    def matrix_part(self, state: SnakeState) -> np.ndarray | None:
        """(2N,2N) block of A, x rows first. None means no contribution."""
        return None

    def vector_part(self, state: SnakeState) -> np.ndarray | None:
        """(2N,) block of B, x entries first. None means no contribution."""
        return None


class EnergySet:
    """Ordered energy terms with weights normalized to sum to one."""

    def __init__(self, terms: Sequence[EnergyTerm]) -> None:
        self.terms = list(terms)
        total = sum(t.weight for t in self.terms)
        self.weights = [t.weight / total for t in self.terms] if total > 0 else []

    def __len__(self) -> int:
        return len(self.terms)

    def __iter__(self):
        return iter(zip(self.terms, self.weights))

    @property
    def requires_ccw(self) -> bool:
        return any(t.requires_ccw for t in self.terms)

    @property
    def requires_overlap_map(self) -> bool:
        return any(t.requires_overlap_map for t in self.terms)

    def require_computable(self) -> None:
        missing = [t.name for t in self.terms if not isinstance(t, ComputableEnergy)]
        if missing:
            raise ConfigurationError(
                f"energy terms without an energy value: {', '.join(missing)}"
            )

    def require_derivable(self) -> None:
        missing = [t.name for t in self.terms if not isinstance(t, DerivableEnergy)]
        if missing:
            raise ConfigurationError(
                f"energy terms without a derivative: {', '.join(missing)}"
            )

    def init(self, state: SnakeState) -> None:
        for term, _ in self:
            call_guarded(term, "init", lambda: term.init(state))

    def update(self, state: SnakeState) -> None:
        for term, _ in self:
            call_guarded(term, "update", lambda: term.update(state))

    def total(self, state: SnakeState, *, weighted: bool = True) -> float:
        total = 0.0
        for term, w in self:
            if isinstance(term, ComputableEnergy):
                total += (w if weighted else 1.0) * self.evaluate(term, state)
        return total

    def per_term(self, state: SnakeState) -> dict[str, float]:
        """Unweighted value of every computable term, keyed by term name."""
        values: dict[str, float] = {}
        for term, _ in self:
            if isinstance(term, ComputableEnergy):
                values[term.name] = self.evaluate(term, state)
        return values

    @staticmethod
    def evaluate(term: ComputableEnergy, state: SnakeState) -> float:
        value = call_guarded(term, "energy", lambda: term.energy(state))
        value = float(value)
        if not np.isfinite(value):
            raise EnergyEvaluationError(term.name, f"non-finite energy {value}")
        return value


def call_guarded(term: EnergyTerm, what: str, fn):
    try:
        return fn()
    except EnergyEvaluationError:
        raise
    except Exception as exc:
        raise EnergyEvaluationError(term.name, f"{what}: {exc}") from exc
