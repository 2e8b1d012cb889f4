"""
Prior test history simulation for screened HIV-positive subjects.

Each positive subject may report an earlier HIV test. This module draws when
that test happened, whether its result is available and what it showed, and
applies reporting errors (timing noise, misreported results, unreported tests
and fabricated test histories). The reported histories refine the recency
classification and feed the adjusted false-recency and window estimators.

Times follow the simulation convention: enrollment at ``t``, infection at
``t - u`` for a subject infected ``u`` years before enrollment, and a prior
test ``lag`` years before enrollment at ``t - lag``.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Union

import numpy as np
from scipy import stats  # type: ignore
from scipy.integrate import quad  # type: ignore

from .errors import ConfigurationError, NumericalRangeError
from .utils.logging import log_call

# Generalized gamma (mu, sigma, Q) for the time from infection to a prior
# test, fitted to reported testing histories.
GENGAMMA_PARAMS = (1.57243557, 1.45286770, -0.02105187)


@dataclass(frozen=True)
class UniformLag:
    """Prior test taken Uniform(t_min, t_max) years before enrollment."""

    t_min: float = 0.0
    t_max: float = 4.0

    def __post_init__(self) -> None:
        if not 0 <= self.t_min <= self.t_max:
            raise ConfigurationError(
                f"Need 0 <= t_min <= t_max, got t_min={self.t_min}, "
                f"t_max={self.t_max}"
            )

    @log_call
    def draw(self, u: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        """Lags for subjects infected ``u`` years before enrollment."""
        return rng.uniform(self.t_min, self.t_max, size=len(u))


@dataclass(frozen=True)
class GeneralizedGammaMechanism:
    """
    Prior test taken a generalized gamma residual time after infection.

    Uses Prentice's parameterisation ``(mu, sigma, Q)``. The lag before
    enrollment is ``u - R``; a negative lag means the test would fall after
    enrollment and no prior test is available.
    """

    mu: float = GENGAMMA_PARAMS[0]
    sigma: float = GENGAMMA_PARAMS[1]
    q: float = GENGAMMA_PARAMS[2]

    def __post_init__(self) -> None:
        if self.sigma <= 0:
            raise ConfigurationError(
                f"sigma must be positive, got {self.sigma}"
            )

    @log_call
    def residual_distribution(self):
        """The frozen scipy distribution of the time from infection to test."""
        if self.q == 0:
            return stats.lognorm(s=self.sigma, scale=np.exp(self.mu))
        q2 = self.q ** 2
        return stats.gengamma(
            a=1.0 / q2,
            c=self.q / self.sigma,
            scale=np.exp(self.mu) * q2 ** (self.sigma / self.q),
        )

    @log_call
    def draw(self, u: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        """Lags ``u - R`` for subjects infected ``u`` years before enrollment."""
        residual = self.residual_distribution().rvs(
            size=len(u), random_state=rng
        )
        return np.asarray(u, dtype=float) - residual


@dataclass(frozen=True)
class CustomLag:
    """User supplied ``function(u, rng) -> lag`` array."""

    function: Callable[[np.ndarray, np.random.Generator], np.ndarray]

    @log_call
    def draw(self, u: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        """Lags from the wrapped function."""
        return np.asarray(self.function(u, rng), dtype=float)


LagDistribution = Union[UniformLag, GeneralizedGammaMechanism, CustomLag]


@dataclass(frozen=True)
class MisreportConfig:
    """
    Reporting-error mechanisms for prior test histories.

    Parameters
    ----------
    timing_noise_sd : float, default=0.0
        SD of Gaussian noise added to the reported lag (clipped at zero)
    d_misrep : float, default=0.0
        Probability a positive prior result is reported as negative
    q_misrep : float, default=0.0
        Probability an available prior result is not reported at all
    p_misrep : float, default=0.0
        Probability a subject without a prior test reports a negative one
    """

    timing_noise_sd: float = 0.0
    d_misrep: float = 0.0
    q_misrep: float = 0.0
    p_misrep: float = 0.0

    def __post_init__(self) -> None:
        if self.timing_noise_sd < 0:
            raise ConfigurationError(
                f"timing_noise_sd must be >= 0, got {self.timing_noise_sd}"
            )
        for name in ("d_misrep", "q_misrep", "p_misrep"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ConfigurationError(
                    f"{name} must be in [0, 1], got {value}"
                )


@dataclass(frozen=True)
class PriorTestResult:
    """
    Per-subject prior test outcome for one (replicate, enrollment time) cell.

    Unavailable tests are NaN in ``time``, ``lag`` and ``delta``.
    """

    true_time: np.ndarray
    true_delta: np.ndarray
    time: np.ndarray
    lag: np.ndarray
    delta: np.ndarray
    enhanced_indicators: np.ndarray
    numerator_beta: np.ndarray
    denominator_omega: np.ndarray
    denominator_beta: np.ndarray


@log_call
def enhanced_recency(
    indicators: np.ndarray,
    lag: np.ndarray,
    delta: np.ndarray,
    bigT: float
) -> np.ndarray:
    """
    Recency indicator refined with prior test results.

    A subject whose prior test was negative (``delta == 0``) at most ``bigT``
    years ago is recent; a subject whose prior test was positive
    (``delta == 1``) more than ``bigT`` years ago is not. Subjects without a
    prior test (NaN) keep their assay indicator.

    Examples
    --------
    >>> enhanced_recency(np.array([0, 1]), np.array([1.0, 3.0]),
    ...                  np.array([0.0, 1.0]), bigT=2.0)
    array([ True, False])
    """
    indicators = np.asarray(indicators).astype(bool)
    lag = np.asarray(lag, dtype=float)
    delta = np.asarray(delta, dtype=float)
    with np.errstate(invalid="ignore"):
        recent_negative = (delta == 0) & (lag <= bigT)
        old_positive = (lag > bigT) & (delta == 1)
    return (indicators | recent_negative) & ~old_positive


@log_call
def integrate_one_minus_phi(
    phi: Callable[[np.ndarray], np.ndarray], upper: float
) -> float:
    """``int_0^upper (1 - phi(u)) du`` by adaptive quadrature."""
    area, _ = quad(lambda x: float(phi(np.asarray(x))), 0.0, upper)
    return upper - area


class PriorTestSimulator:
    """
    Simulates reported prior test histories for positive subjects.

    Parameters
    ----------
    distribution : UniformLag, GeneralizedGammaMechanism or CustomLag
        The single active lag distribution
    probability : float or callable
        Probability a prior test is available, constant or a function of the
        infection duration
    phi : callable
        True test-recent function, used for the window contributions
    bigT : float
        Recency cutoff
    misreport : MisreportConfig, optional
        Reporting-error mechanisms; none by default
    """

    def __init__(
        self,
        distribution: LagDistribution,
        probability: Union[float, Callable[[np.ndarray], np.ndarray]],
        phi: Callable[[np.ndarray], np.ndarray],
        bigT: float,
        misreport: Optional[MisreportConfig] = None
    ):
        """Initialize the prior test simulator."""
        if phi is None:
            raise ConfigurationError(
                "Prior test simulation needs a phi function"
            )
        if not callable(probability) and not 0 <= probability <= 1:
            raise ConfigurationError(
                f"probability must be in [0, 1], got {probability}"
            )
        if bigT < 0:
            raise ConfigurationError(f"bigT must be >= 0, got {bigT}")
        self.distribution = distribution
        self.probability = probability
        self.phi = phi
        self.bigT = bigT
        self.misreport = misreport or MisreportConfig()

    def _availability(self, u: np.ndarray) -> np.ndarray:
        if callable(self.probability):
            prob = np.broadcast_to(
                np.asarray(self.probability(u), dtype=float), u.shape
            )
        else:
            prob = np.full(u.shape, float(self.probability))
        if np.any((prob < 0) | (prob > 1) | ~np.isfinite(prob)):
            raise NumericalRangeError(
                "Prior test availability probabilities must lie in [0, 1]"
            )
        return prob

    @log_call
    def simulate(
        self,
        infection_times: np.ndarray,
        t: float,
        indicators: np.ndarray,
        rng: np.random.Generator
    ) -> PriorTestResult:
        """
        Simulate prior tests for the positives of one enrollment cell.

        Parameters
        ----------
        infection_times : np.ndarray
            Infection times of the positive subjects
        t : float
            Enrollment time
        indicators : np.ndarray
            Assay recency indicators of the same subjects
        rng : np.random.Generator
            Random source; draws are taken in a fixed order

        Returns
        -------
        result : PriorTestResult
        """
        infection_times = np.asarray(infection_times, dtype=float)
        n = len(infection_times)
        u = t - infection_times
        misreport = self.misreport

        # 1-2. Timing and availability
        lag = self.distribution.draw(u, rng)
        available = rng.uniform(size=n) < self._availability(u)
        if np.any(np.isnan(lag[available])):
            raise NumericalRangeError("Prior test lag draw returned NaN")
        available &= lag >= 0
        true_lag = np.where(available, lag, np.nan)
        true_time = t - true_lag

        # 3. Ground truth: positive iff infected before the prior test
        with np.errstate(invalid="ignore"):
            true_delta = np.where(
                available, (infection_times < true_time).astype(float), np.nan
            )

        # 4. Reporting errors
        reported_lag = true_lag.copy()
        reported_delta = true_delta.copy()
        if misreport.timing_noise_sd > 0:
            noise = rng.normal(0.0, misreport.timing_noise_sd, size=n)
            reported_lag = np.maximum(0.0, reported_lag + noise)
        if misreport.d_misrep > 0:
            flip = rng.uniform(size=n) < misreport.d_misrep
            reported_delta[(true_delta == 1) & flip] = 0.0
        reported = available.copy()
        if misreport.q_misrep > 0:
            reported &= ~(rng.uniform(size=n) < misreport.q_misrep)
        if misreport.p_misrep > 0:
            claim = rng.uniform(size=n) < misreport.p_misrep
            claimed_lag = self.distribution.draw(u, rng)
            fabricated = ~available & claim & (claimed_lag >= 0)
            reported_lag[fabricated] = claimed_lag[fabricated]
            reported_delta[fabricated] = 0.0
            reported |= fabricated
        reported_lag[~reported] = np.nan
        reported_delta[~reported] = np.nan

        # 5. Enhanced recency indicator
        enhanced = enhanced_recency(
            indicators, reported_lag, reported_delta, self.bigT
        )

        # 6. Contributions to the adjusted beta and omega estimators
        with np.errstate(invalid="ignore"):
            within = reported & (reported_lag <= self.bigT)
            beyond = reported & (reported_lag > self.bigT)
        denominator_omega = np.zeros(n)
        for i in np.flatnonzero(within):
            denominator_omega[i] = integrate_one_minus_phi(
                self.phi, reported_lag[i]
            )
        denominator_beta = np.where(beyond, reported_lag, 0.0)

        return PriorTestResult(
            true_time=true_time,
            true_delta=true_delta,
            time=t - reported_lag,
            lag=reported_lag,
            delta=reported_delta,
            enhanced_indicators=enhanced,
            numerator_beta=within.astype(float),
            denominator_omega=denominator_omega,
            denominator_beta=denominator_beta,
        )
