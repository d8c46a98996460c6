import numpy as np
import pytest
from shapes import square_points

from src.snakeopt.contour import Contour, ContourSet
from src.snakeopt.control import RunOutcome
from src.snakeopt.coupled import CoupledOptimizer
from src.snakeopt.energies import CentroidAttraction, KassLength, OverlapPenalty
from src.snakeopt.errors import ConfigurationError
from src.snakeopt.optimizer import OptimizerSettings
from src.snakeopt.raster import build_overlap_map
from src.snakeopt.termination import MaxIterations
from src.snakeopt.varcalc import VariationalOptimizer


def _centroid_factory(max_iterations: int = 5):
    def factory(k: int) -> VariationalOptimizer:
        return VariationalOptimizer(
            [CentroidAttraction()], termination=MaxIterations(max_iterations)
        )

    return factory


def _two_squares() -> ContourSet:
    return ContourSet(
        [
            Contour(square_points(4, 4, 24, 24, step=2)),
            Contour(square_points(30, 30, 50, 50, step=2)),
        ],
        60,
        60,
    )


def test_inactive_contour_is_returned_unchanged() -> None:
    contours = _two_squares()
    opt = CoupledOptimizer(
        _centroid_factory(),
        active=[True, False],
        settings=OptimizerSettings(initial_gamma=0.05),
    )
    opt.initialize(np.zeros((60, 60)), contours)

    result = opt.run_to_completion()

    assert result.outcome is RunOutcome.CONVERGED
    assert result.iterations == 5
    kept = result.contours[1]
    assert kept.points.tobytes() == contours[1].points.tobytes()
    assert result.contours[0].area() < contours[0].area()
    assert result.iterations_per_contour[0] == 5
    assert result.failed_contours == []


def test_activity_flags_must_match_contours() -> None:
    opt = CoupledOptimizer(_centroid_factory(), active=[True])

    with pytest.raises(ConfigurationError):
        opt.initialize(np.zeros((60, 60)), _two_squares())


def test_overlapping_contours_separate_or_fail() -> None:
    initial = ContourSet(
        [
            Contour(square_points(10, 10, 34, 34, step=2)),
            Contour(square_points(24, 24, 48, 48, step=2)),
        ],
        60,
        60,
    )
    penalty = OverlapPenalty(rho=1.0)

    def factory(k: int) -> VariationalOptimizer:
        return VariationalOptimizer(
            [penalty, KassLength(alpha=1.0)], termination=MaxIterations(20)
        )

    opt = CoupledOptimizer(
        factory, settings=OptimizerSettings(initial_gamma=0.5, resample_segment_length=2.0)
    )
    opt.initialize(np.zeros((60, 60)), initial)
    before = int(np.count_nonzero(build_overlap_map(initial, 60, 60) >= 2))

    result = opt.run_to_completion()

    assert result.outcome in (RunOutcome.CONVERGED, RunOutcome.FAILED)
    after = int(np.count_nonzero(build_overlap_map(result.contours, 60, 60) >= 2))
    assert after <= before or result.failed_contours
    assert penalty.max_energy == pytest.approx(2.0)
    assert len(result.contours) == 2


def test_collapsing_contour_is_latched_failed() -> None:
    def factory(k: int) -> VariationalOptimizer:
        strength = 1.0 if k == 0 else 0.01
        return VariationalOptimizer(
            [CentroidAttraction(strength=strength)], termination=MaxIterations(30)
        )

    opt = CoupledOptimizer(factory, settings=OptimizerSettings(initial_gamma=0.9))
    opt.initialize(np.zeros((60, 60)), _two_squares())

    result = opt.run_to_completion()

    assert result.failed_contours == [0]
    assert result.outcome is RunOutcome.CONVERGED
    assert result.iterations == 30
    assert len(result.contours[0]) > 5
    assert result.iterations_per_contour[1] == 30


def test_all_contours_failing_fails_the_run() -> None:
    def factory(k: int) -> VariationalOptimizer:
        return VariationalOptimizer(
            [CentroidAttraction(strength=1.0)], termination=MaxIterations(30)
        )

    opt = CoupledOptimizer(factory, settings=OptimizerSettings(initial_gamma=0.9))
    opt.initialize(np.zeros((60, 60)), _two_squares())

    result = opt.run_to_completion()

    assert result.outcome is RunOutcome.FAILED
    assert sorted(result.failed_contours) == [0, 1]
    assert "no active contour" in result.message


def test_energy_rows_per_contour() -> None:
    rows: list[dict[str, float]] = []
    opt = CoupledOptimizer(
        _centroid_factory(max_iterations=3),
        settings=OptimizerSettings(initial_gamma=0.05, sample_energy=True),
        energy_sink=rows.append,
    )
    opt.initialize(np.zeros((60, 60)), _two_squares())

    opt.run_to_completion()

    assert len(rows) == 3
    assert {"iteration", "total", "per_point", "contour_0", "contour_1"} <= set(rows[0])
    assert rows[0]["total"] == pytest.approx(rows[0]["contour_0"] + rows[0]["contour_1"])
