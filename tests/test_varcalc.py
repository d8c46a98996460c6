import numpy as np
import pytest
from shapes import circle_points

from src.snakeopt.contour import Contour, ContourSet
from src.snakeopt.control import RunOutcome, SnakeStatus
from src.snakeopt.energies import CentroidAttraction, KassLength
from src.snakeopt.energy import ComputableEnergy, DerivableEnergy
from src.snakeopt.errors import ConfigurationError
from src.snakeopt.optimizer import OptimizerSettings
from src.snakeopt.state import SnakeState
from src.snakeopt.termination import MaxIterations, TerminationStrategy
from src.snakeopt.varcalc import VariationalOptimizer


class DiagonalQuadratic(ComputableEnergy, DerivableEnergy):
    """0.5 * (a * sum x^2 + b * sum y^2), pulls the contour toward the origin."""

    name = "diagonal_quadratic"

    def __init__(self, a: float, b: float) -> None:
        super().__init__(1.0)
        self.a = a
        self.b = b

    def energy(self, state: SnakeState) -> float:
        p = state.contour.points
        return float(0.5 * (self.a * np.sum(p[:, 0] ** 2) + self.b * np.sum(p[:, 1] ** 2)))

    def matrix_part(self, state: SnakeState) -> np.ndarray:
        n = len(state.contour)
        return np.diag(np.concatenate([np.full(n, self.a), np.full(n, self.b)]))


class ShrunkToPoint(TerminationStrategy):
    def __init__(self, radius: float, max_iterations: int) -> None:
        self.radius = radius
        self.max_iterations = max_iterations

    def terminate(self, state: SnakeState) -> SnakeStatus:
        p = state.contour.points
        spread = float(np.max(np.linalg.norm(p - p.mean(axis=0), axis=1)))
        if spread < self.radius:
            return SnakeStatus.CONVERGED
        if state.iteration >= self.max_iterations:
            return SnakeStatus.FAILED
        return SnakeStatus.CONTINUE


class NanVector(CentroidAttraction):
    name = "nan_vector"

    def vector_part(self, state: SnakeState) -> np.ndarray:
        return np.full(2 * len(state.contour), np.nan)


class BrokenMatrix(CentroidAttraction):
    name = "broken_matrix"

    def matrix_part(self, state: SnakeState) -> np.ndarray:
        raise RuntimeError("no matrix today")


def _circle_set(width: int = 32, height: int = 32) -> ContourSet:
    return ContourSet([Contour(circle_points(16.0, 16.0, 6.0, 16))], width, height)


@pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
def test_energy_never_increases_for_positive_diagonal_system(seed: int) -> None:
    rng = np.random.default_rng(seed)
    a, b = rng.uniform(0.1, 5.0, size=2)
    rows: list[dict[str, float]] = []
    opt = VariationalOptimizer(
        [DiagonalQuadratic(float(a), float(b))],
        termination=MaxIterations(15),
        settings=OptimizerSettings(initial_gamma=0.5, resample=False, sample_energy=True),
        energy_sink=rows.append,
    )
    opt.initialize(np.zeros((32, 32)), _circle_set())

    start = opt.energies.total(opt.state())
    result = opt.run_to_completion()

    assert result.outcome is RunOutcome.CONVERGED
    assert result.iterations == 15
    assert len(rows) == 15
    totals = [start] + [row["total"] for row in rows]
    assert all(later <= earlier + 1e-12 for earlier, later in zip(totals, totals[1:]))
    assert rows[-1]["total"] < start
    assert result.energy_log == rows


def test_shrinks_square_to_its_centroid() -> None:
    square = Contour([[5.0, 5.0], [15.0, 5.0], [15.0, 15.0], [5.0, 15.0]])
    opt = VariationalOptimizer(
        [CentroidAttraction(strength=1.0)],
        termination=ShrunkToPoint(radius=0.01, max_iterations=50),
        settings=OptimizerSettings(initial_gamma=0.1, resample=False, resample_segment_length=2.0),
    )
    opt.initialize(np.zeros((20, 20)), ContourSet([square], 20, 20))

    assert len(opt.contour) == 20

    result = opt.run_to_completion()

    assert result.outcome is RunOutcome.CONVERGED
    assert 30 <= result.iterations < 50
    final = result.contours[0]
    assert len(final) == 20
    np.testing.assert_allclose(final.centroid(), [10.0, 10.0], atol=1e-6)
    assert np.max(np.linalg.norm(final.points - 10.0, axis=1)) < 0.25


def test_kass_length_shrinks_circle() -> None:
    opt = VariationalOptimizer(
        [KassLength(alpha=1.0)],
        termination=MaxIterations(10),
        settings=OptimizerSettings(initial_gamma=0.5, resample=False),
    )
    opt.initialize(np.zeros((32, 32)), _circle_set())

    result = opt.run_to_completion()

    assert result.outcome is RunOutcome.CONVERGED
    assert result.contours[0].area() < _circle_set()[0].area()


def test_resampling_changes_point_count_mid_run() -> None:
    circle = ContourSet([Contour(circle_points(16.0, 16.0, 12.0, 64))], 32, 32)
    opt = VariationalOptimizer(
        [KassLength(alpha=1.0)],
        termination=MaxIterations(6),
        settings=OptimizerSettings(initial_gamma=1.0, resample=True, resample_segment_length=2.0),
    )
    opt.initialize(np.zeros((32, 32)), circle)
    start = len(opt.contour)

    result = opt.run_to_completion()

    assert result.outcome is RunOutcome.CONVERGED
    assert result.iterations == 6
    assert len(opt.contour) < start
    assert opt.gamma.shape == (2 * len(opt.contour),)
    assert len(result.contours[0]) == len(opt.contour)


def test_non_finite_derivative_fails_and_keeps_last_state() -> None:
    initial = _circle_set()
    opt = VariationalOptimizer(
        [NanVector()],
        termination=MaxIterations(10),
        settings=OptimizerSettings(resample=False),
    )
    opt.initialize(np.zeros((32, 32)), initial)

    result = opt.run_to_completion()

    assert result.outcome is RunOutcome.FAILED
    assert result.iterations == 1
    assert "non-finite" in result.message
    np.testing.assert_allclose(result.contours[0].points, initial[0].points, atol=1e-12)
    assert opt.iteration == 0


def test_term_error_reports_term_name() -> None:
    opt = VariationalOptimizer(
        [BrokenMatrix()],
        termination=MaxIterations(10),
        settings=OptimizerSettings(resample=False),
    )
    opt.initialize(np.zeros((32, 32)), _circle_set())

    result = opt.run_to_completion()

    assert result.outcome is RunOutcome.FAILED
    assert "broken_matrix" in result.message


def test_requires_termination_strategy() -> None:
    opt = VariationalOptimizer([KassLength()])

    with pytest.raises(ConfigurationError):
        opt.initialize(np.zeros((32, 32)), _circle_set())


def test_scale_factor_and_normalized_coordinates() -> None:
    opt = VariationalOptimizer(
        [KassLength()],
        termination=MaxIterations(1),
        settings=OptimizerSettings(resample=False),
    )
    opt.initialize(np.zeros((20, 40)), ContourSet([Contour(circle_points(20.0, 10.0, 5.0, 12))]))

    assert opt.scale_factor == 40.0
    assert opt.contour is not None
    assert opt.contour.points.max() < 1.0
    np.testing.assert_allclose(
        opt.get_current_contours()[0].points, circle_points(20.0, 10.0, 5.0, 12), atol=1e-9
    )


def test_iterating_before_initialize_is_a_configuration_error() -> None:
    opt = VariationalOptimizer([KassLength()], termination=MaxIterations(3))

    with pytest.raises(ConfigurationError):
        opt.do_iteration()
    with pytest.raises(ConfigurationError):
        opt.state()
