"""
Tests for the simulated test-recent functions.
"""

import numpy as np
import pytest
from scipy.integrate import quad

from xsrecency.errors import ConfigurationError
from xsrecency.phi_functions import (
    FRRByTime,
    FRRByValue,
    constant_frr_phi,
    gamma_params,
    gamma_phi,
    normal_bump_phi,
    normal_cdf_bump_phi
)

WINDOW = 101 / 365.25
SHADOW = 194 / 365.25


class TestGammaPhi:

    def test_params(self):
        shape, rate = gamma_params(WINDOW, SHADOW)
        assert shape == pytest.approx(0.3519, abs=1e-3)
        assert rate == pytest.approx(1.2726, abs=1e-3)

    def test_params_reproduce_window_and_shadow(self):
        phi = gamma_phi(*gamma_params(WINDOW, SHADOW))
        window, _ = quad(lambda t: phi(t), 0, np.inf)
        moment, _ = quad(lambda t: t * phi(t), 0, np.inf)
        assert window == pytest.approx(WINDOW, rel=1e-6)
        assert moment / window == pytest.approx(SHADOW, rel=1e-6)

    @pytest.mark.parametrize("window, shadow", [(0.0, 1.0), (1.0, 0.4)])
    def test_invalid_params(self, window, shadow):
        with pytest.raises(ConfigurationError):
            gamma_params(window, shadow)

    def test_exponential_special_case(self):
        t = np.array([0.0, 0.5, 2.0])
        np.testing.assert_allclose(gamma_phi(1, 2)(t), np.exp(-2 * t))


class TestConstantFRR:

    def test_by_time(self):
        base = gamma_phi(1, 2)
        phi = constant_frr_phi(base, FRRByTime(2.0))
        t = np.array([1.0, 2.0, 3.0, 10.0])
        np.testing.assert_allclose(
            phi(t), [np.exp(-2), np.exp(-4), np.exp(-4), np.exp(-4)])

    def test_by_value(self):
        phi = constant_frr_phi(gamma_phi(1, 2), FRRByValue(0.01))
        np.testing.assert_allclose(phi(np.array([5.0, 11.0])), 0.01)
        assert float(phi(1.0)) == pytest.approx(np.exp(-2))

    def test_value_never_reached(self):
        with pytest.raises(ConfigurationError):
            constant_frr_phi(gamma_phi(1, 2), FRRByValue(-0.1))

    def test_requires_frr_type(self):
        with pytest.raises(ConfigurationError):
            constant_frr_phi(gamma_phi(1, 2), 2.0)


class TestBumps:

    def test_normal_bump(self):
        phi = normal_bump_phi(gamma_phi(1, 2), mu=4.0, sd=0.5, div=100)
        peak = np.exp(-8) + 1 / (0.5 * np.sqrt(2 * np.pi)) / 100
        assert float(phi(4.0)) == pytest.approx(peak)

    def test_normal_cdf_bump(self):
        phi = normal_cdf_bump_phi(gamma_phi(1, 2), mu=4.0, sd=0.5, div=10)
        assert float(phi(4.0)) == pytest.approx(np.exp(-8) + 0.05)
        assert float(phi(12.0)) == pytest.approx(0.1, abs=1e-6)
