"""
Test-recent functions (phi) used as ground truth in simulations.

phi(t) is the probability that the recency assay classifies a subject
infected for ``t`` years as recent. The baseline family is one minus a gamma
CDF; it can be truncated to a constant false-recency rate and perturbed by
normal bumps.
"""

from dataclasses import dataclass
from typing import Callable, Tuple, Union

import numpy as np
from scipy import stats  # type: ignore
from scipy.optimize import brentq  # type: ignore

from .errors import ConfigurationError
from .utils.logging import log_call

PhiFunction = Callable[[np.ndarray], np.ndarray]


@log_call
def gamma_params(window: float, shadow: float) -> Tuple[float, float]:
    """
    Gamma shape and rate matching a mean window and a shadow.

    With ``phi = 1 - F`` for a gamma CDF ``F``, the window ``int phi`` is
    ``shape / rate`` and the shadow ``int t phi / int phi`` is
    ``(shape + 1) / (2 rate)``.

    Parameters
    ----------
    window : float
        Mean duration of recent infection, in years
    shadow : float
        Mean time since infection among recent subjects, in years

    Returns
    -------
    shape, rate : tuple of float

    Examples
    --------
    >>> shape, rate = gamma_params(window=101 / 365.25, shadow=194 / 365.25)
    >>> print(f"{shape:.3f} {rate:.3f}")
    0.352 1.273
    """
    if window <= 0:
        raise ConfigurationError(f"window must be positive, got {window}")
    if 2 * shadow <= window:
        raise ConfigurationError(
            f"shadow must exceed half the window, got shadow={shadow}, "
            f"window={window}"
        )
    rate = 1.0 / (2 * shadow - window)
    return window * rate, rate


@log_call
def gamma_phi(shape: float, rate: float) -> PhiFunction:
    """phi(t) = 1 - GammaCDF(t; shape, rate)."""
    dist = stats.gamma(a=shape, scale=1.0 / rate)

    def _phi(t):
        return dist.sf(t)

    return _phi


@dataclass(frozen=True)
class FRRByTime:
    """Hold phi constant after ``time`` at its value there."""

    time: float


@dataclass(frozen=True)
class FRRByValue:
    """Hold phi constant once it has decayed to ``frr``."""

    frr: float


@log_call
def constant_frr_phi(
    phi: PhiFunction,
    frr: Union[FRRByTime, FRRByValue],
    tau: float = 12.0
) -> PhiFunction:
    """
    Truncate ``phi`` to a constant false-recency rate.

    Parameters
    ----------
    phi : callable
        Baseline phi function, decreasing in t
    frr : FRRByTime or FRRByValue
        Where the constant tail starts
    tau : float, default=12.0
        Search interval ``[0, tau]`` used with ``FRRByValue``

    Returns
    -------
    phi_const : callable
        ``phi(t)`` for ``t <= t*`` and the false-recency rate afterwards
    """
    if isinstance(frr, FRRByTime):
        cutoff = frr.time
        tail = float(phi(np.asarray(cutoff)))
    elif isinstance(frr, FRRByValue):
        tail = frr.frr
        try:
            cutoff = brentq(lambda t: float(phi(np.asarray(t))) - tail,
                            0.0, tau)
        except ValueError as err:
            raise ConfigurationError(
                f"phi never reaches frr={tail} on [0, {tau}]"
            ) from err
    else:
        raise ConfigurationError("frr must be FRRByTime or FRRByValue")

    def _phi(t):
        t = np.asarray(t, dtype=float)
        return np.where(t <= cutoff, phi(t), tail)

    return _phi


@log_call
def normal_bump_phi(
    phi: PhiFunction, mu: float, sd: float, div: float
) -> PhiFunction:
    """Add a normal density bump centred at ``mu`` and scaled by ``1/div``."""

    def _phi(t):
        t = np.asarray(t, dtype=float)
        return phi(t) + stats.norm.pdf(t - mu, loc=0.0, scale=sd) / div

    return _phi


@log_call
def normal_cdf_bump_phi(
    phi: PhiFunction, mu: float, sd: float, div: float
) -> PhiFunction:
    """Add a normal CDF step centred at ``mu`` and scaled by ``1/div``."""

    def _phi(t):
        t = np.asarray(t, dtype=float)
        return phi(t) + stats.norm.cdf(t - mu, loc=0.0, scale=sd) / div

    return _phi
