"""
Infection time sampling for screened HIV-positive subjects.

Under constant prevalence ``p`` the cumulative incidence over the ``s`` years
before enrollment, ``Lambda(s)``, relates to a uniform draw ``e`` through
``Lambda(s) = e * p / (1 - p)``. Inverting that relation gives the infection
duration ``s`` and the infection time ``t - s``. The named incidence families
have closed-form inverses; arbitrary incidence functions are inverted
numerically on a fine grid.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Union

import numpy as np

from .errors import ConfigurationError, DomainError, NumericalRangeError
from .incidence import IncidenceModel, check_non_negative
from .utils.logging import log_call

ArrayLike = Union[float, np.ndarray]


def _hazard_threshold(e: ArrayLike, p: float) -> np.ndarray:
    return np.asarray(e, dtype=float) * p / (1 - p)


def _check_finite(times: np.ndarray, source: str) -> np.ndarray:
    if np.any(~np.isfinite(times)):
        raise NumericalRangeError(
            f"{source} produced non-finite infection times; the incidence "
            f"parameters cannot reach the required cumulative hazard"
        )
    return times


def _linear_duration(
    threshold: np.ndarray, baseline: float, rho: float
) -> np.ndarray:
    if rho == 0:
        return threshold / baseline
    radicand = baseline ** 2 + 2 * rho * threshold
    if np.any(radicand < 0):
        raise DomainError(
            f"Linear incidence with baseline={baseline} and rho={rho} "
            f"reaches zero before the required cumulative hazard "
            f"({np.max(threshold):.6g}); incidence would turn negative"
        )
    return (np.sqrt(radicand) - baseline) / rho


@log_call
def infections_constant(
    e: ArrayLike, t: float, p: float, baseline: float
) -> np.ndarray:
    """
    Infection times under constant incidence.

    Parameters
    ----------
    e : float or np.ndarray
        Uniform(0, 1) draws, one per subject
    t : float
        Enrollment time
    p : float
        Constant prevalence
    baseline : float
        Incidence ``lambda_0``

    Returns
    -------
    infection_times : np.ndarray
        ``t - p * e / ((1 - p) * baseline)``

    Examples
    --------
    >>> infections_constant(np.array([0.5]), t=0.0, p=0.2, baseline=0.05)
    array([-2.5])
    """
    return t - _hazard_threshold(e, p) / baseline


@log_call
def infections_linear(
    e: ArrayLike, t: float, p: float, baseline: float, rho: float
) -> np.ndarray:
    """Infection times under linearly decreasing incidence."""
    return t - _linear_duration(_hazard_threshold(e, p), baseline, rho)


@log_call
def infections_exponential(
    e: ArrayLike, t: float, p: float, baseline: float, rho: float
) -> np.ndarray:
    """Infection times under exponentially decreasing incidence."""
    threshold = _hazard_threshold(e, p)
    if rho == 0:
        return t - threshold / baseline
    with np.errstate(invalid="ignore", divide="ignore"):
        duration = np.log(rho * threshold / baseline + 1) / rho
    return t - _check_finite(duration, "Exponential incidence inversion")


@log_call
def infections_piecewise(
    e: ArrayLike, t: float, p: float, baseline: float, rho: float,
    bigT: float
) -> np.ndarray:
    """
    Infection times under piecewise constant-linear incidence.

    Durations up to ``bigT`` are inverted under constant incidence; the
    cumulative hazard left over beyond ``bigT`` is inverted under the linear
    segment.
    """
    threshold = np.atleast_1d(_hazard_threshold(e, p))
    constant_part = baseline * bigT
    within = threshold <= constant_part
    duration = np.empty_like(threshold)
    duration[within] = threshold[within] / baseline
    remainder = threshold[~within] - constant_part
    duration[~within] = bigT + _linear_duration(remainder, baseline, rho)
    return t - duration


@dataclass(frozen=True)
class CustomIncidence:
    """
    An arbitrary incidence function inverted numerically.

    Parameters
    ----------
    function : callable
        Incidence as a function of time relative to enrollment (the past is
        negative). Scalar-only functions are vectorized automatically.
    dt : float, default=0.001
        Integration step
    horizon : float, default=100.0
        Longest infection duration considered
    """

    function: Callable[[np.ndarray], ArrayLike]
    dt: float = 0.001
    horizon: float = 100.0

    def __post_init__(self) -> None:
        if self.dt <= 0 or self.horizon <= 0:
            raise ConfigurationError(
                f"dt and horizon must be positive, got dt={self.dt}, "
                f"horizon={self.horizon}"
            )


def _as_array_function(func):
    sample_times = -np.array([0.0, 1.0])
    try:
        vectorized = np.ndim(func(sample_times)) != 0
    except (TypeError, ValueError):
        vectorized = False
    if vectorized:
        return func
    return np.vectorize(func, otypes=[float])


@log_call
def cumulative_incidence_grid(incidence: CustomIncidence):
    """
    Cumulative incidence over the grid of durations ``0, dt, ..., horizon``.

    Returns
    -------
    durations : np.ndarray
        Grid of infection durations
    cumulative : np.ndarray
        Running sum of ``incidence(-duration) * dt``

    Raises
    ------
    NumericalRangeError
        If the function returns NaN or infinite rates on the grid
    DomainError
        If the function returns negative rates on the grid
    """
    durations = np.arange(0.0, incidence.horizon + incidence.dt / 2,
                          incidence.dt)
    func = _as_array_function(incidence.function)
    rates = np.broadcast_to(
        np.asarray(func(-durations), dtype=float), durations.shape
    )
    if np.any(~np.isfinite(rates)):
        first = durations[np.flatnonzero(~np.isfinite(rates))[0]]
        raise NumericalRangeError(
            f"Custom incidence function "
            f"{getattr(incidence.function, '__qualname__', incidence.function)}"
            f" returned a non-finite rate at t={-first:.6g}"
        )
    check_non_negative(rates, "custom incidence function")
    return durations, np.cumsum(rates * incidence.dt)


@log_call
def simulate_infection_durations(
    e: ArrayLike,
    p: float,
    incidence: CustomIncidence,
    grid: Optional[tuple] = None
) -> np.ndarray:
    """
    Invert an arbitrary incidence function numerically.

    For each threshold ``e * p / (1 - p)`` the duration is the grid point
    with the largest index whose cumulative incidence is still below the
    threshold. Thresholds reached within the first step (at or below
    ``incidence(0) * dt``) give duration 0, the resolution of the grid.

    Parameters
    ----------
    e : float or np.ndarray
        Uniform(0, 1) draws
    p : float
        Constant prevalence
    incidence : CustomIncidence
        Incidence function and integration settings
    grid : tuple, optional
        Precomputed output of ``cumulative_incidence_grid``

    Returns
    -------
    durations : np.ndarray
        Infection durations (time between infection and enrollment)

    Raises
    ------
    NumericalRangeError
        If a threshold exceeds the cumulative incidence reachable within the
        horizon
    """
    durations, cumulative = grid or cumulative_incidence_grid(incidence)
    threshold = np.atleast_1d(_hazard_threshold(e, p))
    if threshold.size and np.max(threshold) > cumulative[-1]:
        raise NumericalRangeError(
            f"Required cumulative incidence {np.max(threshold):.6g} exceeds "
            f"{cumulative[-1]:.6g} reachable with dt={incidence.dt} and "
            f"horizon={incidence.horizon}; use a finer dt or a longer horizon"
        )
    indexes = np.searchsorted(cumulative, threshold, side="left") - 1
    indexes = np.clip(indexes, 0, None)
    return durations[indexes]


class InfectionTimeSampler:
    """
    Draws infection times for positive subjects.

    Parameters
    ----------
    incidence : IncidenceModel or CustomIncidence
        A named family (inverted in closed form) or an arbitrary function
        (inverted numerically)
    """

    def __init__(self, incidence: Union[IncidenceModel, CustomIncidence]):
        """Initialize the sampler."""
        if not isinstance(incidence, (IncidenceModel, CustomIncidence)):
            raise ConfigurationError(
                "incidence must be an IncidenceModel or a CustomIncidence"
            )
        if isinstance(incidence, IncidenceModel) and incidence.baseline <= 0:
            raise ConfigurationError(
                "Closed-form infection times need baseline incidence > 0"
            )
        self.incidence = incidence
        self._grid: Optional[tuple] = None
        if isinstance(incidence, CustomIncidence):
            self._grid = cumulative_incidence_grid(incidence)

    @log_call
    def sample(self, e: ArrayLike, t: float, p: float) -> np.ndarray:
        """
        Infection times for uniform draws ``e`` at enrollment time ``t``.

        Examples
        --------
        >>> sampler = InfectionTimeSampler(IncidenceModel("constant", 0.05))
        >>> sampler.sample(np.array([0.5]), t=0.0, p=0.2)
        array([-2.5])
        """
        e = np.atleast_1d(np.asarray(e, dtype=float))
        model = self.incidence
        if isinstance(model, CustomIncidence):
            times = t - simulate_infection_durations(e, p, model, self._grid)
        elif model.family == "constant":
            times = infections_constant(e, t, p, model.baseline)
        elif model.family == "linear":
            times = infections_linear(e, t, p, model.baseline, model.rho)
        elif model.family == "exponential":
            times = infections_exponential(e, t, p, model.baseline, model.rho)
        else:
            times = infections_piecewise(
                e, t, p, model.baseline, model.rho, model.bigT
            )
        return _check_finite(np.asarray(times, dtype=float),
                             "Infection time sampling")

    @log_call
    def draw(
        self, n: int, t: float, p: float, rng: np.random.Generator
    ) -> np.ndarray:
        """Draw ``n`` infection times using uniforms from ``rng``."""
        return self.sample(rng.uniform(size=n), t, p)
