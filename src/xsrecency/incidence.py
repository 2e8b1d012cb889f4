"""
Incidence models for cross-sectional recency simulations.

This module provides the parametric incidence families used to generate
infection times. Time is measured relative to enrollment, so the past is
negative: with the linear family, incidence ``s`` years before enrollment
(time ``-s``) is ``baseline + rho * s``.
"""

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from .errors import ConfigurationError, DomainError
from .utils.logging import log_call

INCIDENCE_FAMILIES = ("constant", "linear", "exponential", "piecewise")

ArrayLike = Union[float, np.ndarray]


@log_call
def constant_incidence(t: ArrayLike, baseline: float) -> ArrayLike:
    """
    Constant incidence, ``lambda(t) = baseline``.

    Examples
    --------
    >>> constant_incidence(np.array([-1.0, 0.0]), baseline=0.05)
    array([0.05, 0.05])
    """
    t = np.asarray(t, dtype=float)
    rate = np.full_like(t, baseline)
    if rate.ndim == 0:
        return float(rate)
    return rate


@log_call
def linear_incidence(t: ArrayLike, baseline: float, rho: float) -> ArrayLike:
    """
    Linearly decreasing incidence, ``lambda(t) = baseline - rho * t``.

    The rate is not clamped. Keeping ``rho * t`` below ``baseline`` over the
    sampled horizon is the caller's responsibility.
    """
    rate = baseline - rho * np.asarray(t, dtype=float)
    if rate.ndim == 0:
        return float(rate)
    return rate


@log_call
def exponential_incidence(
    t: ArrayLike, baseline: float, rho: float
) -> ArrayLike:
    """Exponentially decreasing incidence, ``baseline * exp(-rho * t)``."""
    rate = baseline * np.exp(-rho * np.asarray(t, dtype=float))
    if rate.ndim == 0:
        return float(rate)
    return rate


@log_call
def piecewise_incidence(
    t: ArrayLike, baseline: float, rho: float, bigT: float
) -> ArrayLike:
    """
    Piecewise constant-linear incidence.

    Constant at ``baseline`` during the ``bigT`` years before enrollment and
    linear with slope ``rho`` (going back in time) before that.
    """
    t = np.asarray(t, dtype=float)
    rate = np.where(t >= -bigT, baseline, baseline - rho * (t + bigT))
    if rate.ndim == 0:
        return float(rate)
    return rate


@log_call
def check_non_negative(rates: np.ndarray, source: str) -> None:
    """Raise ``DomainError`` if any incidence rate is negative."""
    rates = np.asarray(rates, dtype=float)
    if np.any(rates < 0):
        raise DomainError(
            f"Negative incidence rate encountered for {source} "
            f"(minimum {np.min(rates):.6g}); check baseline and rho over "
            f"the sampling horizon"
        )


@dataclass(frozen=True)
class IncidenceModel:
    """
    A named parametric incidence family.

    Parameters
    ----------
    family : str
        One of ``constant``, ``linear``, ``exponential`` or ``piecewise``
    baseline : float
        Incidence at enrollment (``lambda_0``)
    rho : float, optional
        Rate of change, required by every family except ``constant``
    bigT : float, optional
        Length of the constant segment, required by ``piecewise``
    """

    family: str
    baseline: float
    rho: Optional[float] = None
    bigT: Optional[float] = None

    def __post_init__(self) -> None:
        if self.family not in INCIDENCE_FAMILIES:
            raise ConfigurationError(
                f"Unknown incidence family {self.family!r}; expected one of "
                f"{INCIDENCE_FAMILIES}"
            )
        if self.baseline < 0:
            raise ConfigurationError(
                f"baseline incidence must be >= 0, got {self.baseline}"
            )
        if self.family != "constant" and self.rho is None:
            raise ConfigurationError(
                f"rho is required for the {self.family} incidence family"
            )
        if self.family == "piecewise" and (self.bigT is None or self.bigT < 0):
            raise ConfigurationError(
                "bigT >= 0 is required for the piecewise incidence family"
            )

    @log_call
    def rate(self, t: ArrayLike) -> ArrayLike:
        """Incidence at time ``t`` relative to enrollment."""
        if self.family == "constant":
            return constant_incidence(t, self.baseline)
        if self.family == "linear":
            return linear_incidence(t, self.baseline, self.rho)
        if self.family == "exponential":
            return exponential_incidence(t, self.baseline, self.rho)
        return piecewise_incidence(t, self.baseline, self.rho, self.bigT)
