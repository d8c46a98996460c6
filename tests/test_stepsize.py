import numpy as np
import pytest
from shapes import square_points

from src.snakeopt.contour import Contour
from src.snakeopt.energies import DistanceEnergy, KassLength
from src.snakeopt.energy import EnergySet
from src.snakeopt.errors import ConfigurationError, IterationFailure
from src.snakeopt.stepsize import ConstantGamma, PointwiseExternalGamma, ScheduledGamma
from src.snakeopt.varcalc import refit_gamma, semi_implicit_step


def test_constant_gamma_passes_through(make_state) -> None:
    state = make_state(Contour(square_points(2, 2, 6, 6)))
    gamma = np.full(32, 0.3)

    out = ConstantGamma().update(state, gamma, EnergySet([KassLength()]))

    np.testing.assert_array_equal(out, gamma)


def test_scheduled_gamma_follows_iteration(make_state) -> None:
    c = Contour(square_points(2, 2, 6, 6))
    sched = ScheduledGamma.exponential(init_value=0.5, transition_steps=10, decay_rate=0.5)
    gamma = np.full(2 * len(c), 1.0)

    first = sched.update(make_state(c, iteration=0), gamma, EnergySet([KassLength()]))
    later = sched.update(make_state(c, iteration=10), gamma, EnergySet([KassLength()]))

    np.testing.assert_allclose(first, 0.5, rtol=1e-6)
    np.testing.assert_allclose(later, 0.25, rtol=1e-6)


def test_pointwise_gamma_stops_points_on_foreground(make_state) -> None:
    image = np.zeros((32, 32))
    image[10:20, 10:20] = 1.0
    c = Contour([[15.0, 15.0], [2.0, 2.0], [30.0, 30.0]])
    state = make_state(c, image=image)
    term = DistanceEnergy()
    energies = EnergySet([KassLength(), term])
    update = PointwiseExternalGamma(gain=25.0)
    update.init(state, energies)

    gamma = update.update(state, np.full(6, 0.5), energies)
    values = term.values(state)

    assert gamma.shape == (6,)
    assert gamma[0] == 0.0 and gamma[3] == 0.0
    assert gamma[1] == pytest.approx(np.sqrt(values[1]) * 25.0)
    np.testing.assert_allclose(gamma[:3], gamma[3:])


def test_pointwise_gamma_requires_distance_energy(make_state) -> None:
    state = make_state(Contour(square_points(2, 2, 6, 6)))

    with pytest.raises(ConfigurationError):
        PointwiseExternalGamma().init(state, EnergySet([KassLength()]))


def test_refit_gamma_keeps_endpoints_per_axis() -> None:
    gamma = np.array([1.0, 2.0, 3.0, 10.0, 20.0, 30.0])

    out = refit_gamma(gamma, 5)

    assert out.shape == (10,)
    np.testing.assert_allclose(out[:5], [1.0, 1.5, 2.0, 2.5, 3.0])
    np.testing.assert_allclose(out[5:], [10.0, 15.0, 20.0, 25.0, 30.0])
    assert refit_gamma(gamma, 3) is gamma


def test_refit_gamma_shrinks_to_fewer_points() -> None:
    out = refit_gamma(np.full(80, 0.5), 39)

    assert out.shape == (78,)
    np.testing.assert_allclose(out, 0.5)


def test_semi_implicit_step_matches_closed_form() -> None:
    A = np.diag([1.0, 2.0, 3.0, 4.0])
    B = np.array([0.5, 0.0, -0.5, 1.0])
    gamma = np.full(4, 0.5)
    x = np.array([1.0, 1.0, 2.0, 2.0])

    x_new = semi_implicit_step(A, B, gamma, x)

    np.testing.assert_allclose(x_new, (x - gamma * B) / (1.0 + gamma * np.diag(A)))


def test_semi_implicit_step_rejects_singular_system() -> None:
    A = np.array([[-2.0, 0.0], [0.0, 1.0]])

    with pytest.raises(IterationFailure):
        semi_implicit_step(A, np.zeros(2), np.full(2, 0.5), np.ones(2))


def test_semi_implicit_step_rejects_non_finite_input() -> None:
    B = np.array([np.nan, 0.0])

    with pytest.raises(IterationFailure):
        semi_implicit_step(np.eye(2), B, np.full(2, 0.5), np.ones(2))
