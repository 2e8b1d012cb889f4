"""
Cumulative phi integrals and their delta-method variances on a time grid.

Window and false-recency estimators are integrals of phi. With phi and its
covariance estimated on a uniform grid, ``int_0^t phi`` is a cumulative
trapezoid sum and, because ``Var(int phi) = int int Cov(phi(s), phi(r))``,
its covariance is the same cumulative sum applied along the rows and then
the columns of the covariance matrix.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd  # type: ignore
from scipy.integrate import cumulative_trapezoid  # type: ignore

from .errors import ConfigurationError, NumericalRangeError
from .utils.logging import log_call


@dataclass(frozen=True)
class PhiGrid:
    """
    phi estimates and cumulative integrals over a uniform grid.

    Attributes
    ----------
    times : np.ndarray
        Grid times, starting at 0
    index : np.ndarray
        Integer grid index of each time (``times / dt``)
    dt : float
        Grid spacing
    point : np.ndarray
        phi estimates, with phi(0) = 1
    covariance : np.ndarray
        Covariance of the phi estimates
    cphi : np.ndarray
        ``int_0^{t_i} phi``
    ccross : np.ndarray
        ``Cov(int_0^{t_i} phi, phi(t_j))``
    csum : np.ndarray
        ``Cov(int_0^{t_i} phi, int_0^{t_j} phi)``
    """

    times: np.ndarray
    index: np.ndarray
    dt: float
    point: np.ndarray
    covariance: np.ndarray
    cphi: np.ndarray
    ccross: np.ndarray
    csum: np.ndarray

    def _position(self, i: int) -> int:
        position = int(i) - int(self.index[0])
        if not 0 <= position < len(self.index):
            raise NumericalRangeError(
                f"Grid index {i} outside [{self.index[0]}, {self.index[-1]}]"
            )
        return position

    @log_call
    def index_of(self, t: float) -> int:
        """Grid index closest to time ``t``."""
        return int(np.rint(t / self.dt))

    @log_call
    def point_at(self, i: int) -> float:
        """phi estimate at grid index ``i``."""
        return float(self.point[self._position(i)])

    @log_call
    def cov_at(self, i: int, j: int) -> float:
        """Covariance of the phi estimates at indexes ``i`` and ``j``."""
        return float(self.covariance[self._position(i), self._position(j)])

    @log_call
    def cphi_at(self, i: int) -> float:
        """Integral of phi from 0 to grid index ``i``."""
        return float(self.cphi[self._position(i)])

    @log_call
    def cross_at(self, i: int, j: int) -> float:
        """Covariance of the integral up to ``i`` with phi at ``j``."""
        return float(self.ccross[self._position(i), self._position(j)])

    @log_call
    def csum_at(self, i: int, j: int) -> float:
        """Covariance of the integrals up to ``i`` and up to ``j``."""
        return float(self.csum[self._position(i), self._position(j)])

    @log_call
    def integral_variance(self, a: int, b: int) -> float:
        """Variance of ``int_{t_a}^{t_b} phi``."""
        return (self.csum_at(b, b) - 2 * self.csum_at(a, b)
                + self.csum_at(a, a))

    @log_call
    def cphi_frame(self) -> pd.DataFrame:
        """Cumulative phi as a table with columns ``index`` and ``phi``."""
        return pd.DataFrame({"index": self.index, "phi": self.cphi})

    @log_call
    def csum_frame(self) -> pd.DataFrame:
        """
        Cumulative covariance in long format.

        One row per grid pair with columns ``index_x``, ``index_y`` and
        ``rho``.
        """
        k = len(self.index)
        return pd.DataFrame({
            "index_x": np.repeat(self.index, k),
            "index_y": np.tile(self.index, k),
            "rho": self.csum.ravel(),
        })


@log_call
def build_phi_grid(
    point: np.ndarray,
    covariance: np.ndarray,
    times: np.ndarray,
    index: Optional[np.ndarray] = None
) -> PhiGrid:
    """
    Cumulative phi and cumulative covariance over a uniform grid.

    If the grid does not contain index 0 it is prepended with phi(0) = 1 and
    zero covariance with every other point: a subject tested at the moment of
    infection is recent with certainty.

    Parameters
    ----------
    point : np.ndarray
        phi estimates at ``times``
    covariance : np.ndarray
        Covariance of the estimates
    times : np.ndarray
        Uniformly spaced durations, starting at 0 or at the spacing
    index : np.ndarray, optional
        Integer grid indexes of ``times``; derived from the spacing if
        omitted

    Returns
    -------
    grid : PhiGrid

    Raises
    ------
    NumericalRangeError
        If any phi estimate is not finite or lies outside [0, 1]
    """
    point = np.asarray(point, dtype=float).ravel()
    covariance = np.asarray(covariance, dtype=float)
    times = np.asarray(times, dtype=float).ravel()
    if len(times) < 2:
        raise ConfigurationError("The phi grid needs at least two times")
    if covariance.shape != (len(point), len(point)) or \
            len(point) != len(times):
        raise ConfigurationError(
            f"Shape mismatch: {len(times)} times, {len(point)} points and "
            f"covariance {covariance.shape}"
        )
    dt = float(times[1] - times[0])
    if dt <= 0 or not np.allclose(np.diff(times), dt):
        raise ConfigurationError("phi grid times must be uniformly spaced")
    if index is None:
        index = np.rint(times / dt).astype(int)
    index = np.asarray(index, dtype=int).ravel()

    if 0 not in index:
        index = np.concatenate([[0], index])
        times = np.concatenate([[0.0], times])
        point = np.concatenate([[1.0], point])
        padded = np.zeros((len(point), len(point)))
        padded[1:, 1:] = covariance
        covariance = padded
        if not np.isclose(times[1] - times[0], dt):
            raise ConfigurationError(
                "phi grid must start at 0 or at its spacing"
            )

    if np.any(~np.isfinite(point) | (point < 0) | (point > 1)):
        raise NumericalRangeError(
            "Cannot have non-finite predicted probabilities or ones outside "
            f"of [0, 1] for the phi function (range {np.min(point):.6g} to "
            f"{np.max(point):.6g})"
        )

    cphi = cumulative_trapezoid(point, dx=dt, initial=0)
    ccross = cumulative_trapezoid(covariance, dx=dt, axis=0, initial=0)
    csum = cumulative_trapezoid(ccross, dx=dt, axis=1, initial=0)
    # Exact symmetry; the two summation orders differ only by rounding
    csum = (csum + csum.T) / 2

    return PhiGrid(
        times=times,
        index=index,
        dt=dt,
        point=point,
        covariance=covariance,
        cphi=cphi,
        ccross=ccross,
        csum=csum,
    )
