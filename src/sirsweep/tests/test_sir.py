import numpy as np
import pytest

from sirsweep.errors import InvalidInput
from sirsweep.sir import CompartmentState, ModelParameters, sir_jacobian, sir_rhs


def test_rhs_matches_written_equations():
    """
    dS = -beta*S*I, dI = beta*S*I - gamma*I, dR = gamma*I (normalised, no N)
    """
    params = ModelParameters(beta=0.3, gamma=0.1)
    dS, dI, dR = sir_rhs(0.0, np.array([0.9, 0.1, 0.0]), params)

    assert dS == pytest.approx(-0.3 * 0.9 * 0.1)
    assert dI == pytest.approx(0.3 * 0.9 * 0.1 - 0.1 * 0.1)
    assert dR == pytest.approx(0.1 * 0.1)


def test_rhs_conserves_total_and_ignores_time():
    params = ModelParameters(beta=0.5, gamma=0.2)
    y = np.array([0.6, 0.3, 0.1])
    d0 = sir_rhs(0.0, y, params)
    d1 = sir_rhs(123.0, y, params)

    assert np.array_equal(d0, d1)
    assert abs(d0.sum()) < 1e-15


def test_rhs_does_not_clamp_negative_state():
    """The equations are evaluated on whatever state they are handed"""
    params = ModelParameters(beta=0.5, gamma=0.2)
    d = sir_rhs(0.0, np.array([1.01, -0.01, 0.0]), params)
    assert d[2] < 0


def test_from_r0_derives_rates():
    params = ModelParameters.from_r0(2.0, infectious_period=14)

    assert params.gamma == pytest.approx(1 / 14)
    assert params.beta == pytest.approx(2 / 14)
    assert params.R0 == pytest.approx(2.0)
    assert params.infectious_period == pytest.approx(14.0)


@pytest.mark.parametrize("beta, gamma", [(0.0, 0.1), (0.2, -0.1), (float("nan"), 0.1)])
def test_non_positive_rates_are_invalid(beta, gamma):
    with pytest.raises(InvalidInput):
        ModelParameters(beta=beta, gamma=gamma).validate()


def test_from_r0_rejects_non_positive_period():
    with pytest.raises(InvalidInput):
        ModelParameters.from_r0(2.0, infectious_period=0)


def test_compartment_state_from_infected():
    state = CompartmentState.from_infected(0.01)

    assert tuple(state) == pytest.approx((0.99, 0.01, 0.0))
    assert state.total == pytest.approx(1.0)
    assert np.array_equal(state.as_array(), np.array(tuple(state)))


def test_negative_initial_state_is_invalid():
    CompartmentState(1.0, 0.0, -1e-13).validate()  # round-off is tolerated
    with pytest.raises(InvalidInput):
        CompartmentState(1.01, -0.01, 0.0).validate()


def test_jacobian_matches_finite_differences():
    params = ModelParameters(beta=0.4, gamma=0.1)
    y = np.array([0.7, 0.2, 0.1])
    J = sir_jacobian(0.0, y, params)

    eps = 1e-7
    f0 = sir_rhs(0.0, y, params)
    for j in range(3):
        shifted = y.copy()
        shifted[j] += eps
        column = (sir_rhs(0.0, shifted, params) - f0) / eps
        assert np.allclose(J[:, j], column, atol=1e-6)
