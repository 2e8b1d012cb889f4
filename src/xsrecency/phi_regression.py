"""
Fitted phi regressions and their delta-method predictions.

A phi model is a binomial regression of the recency indicator on a basis of
the infection duration. The estimators only need a small capability set from
the fit (coefficients, coefficient covariance, model matrix, inverse link and
its derivative), so GLM and GEE fits are wrapped behind one interface chosen
when the adapter is constructed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np
import pandas as pd  # type: ignore
import statsmodels.api as sm  # type: ignore
from scipy import linalg  # type: ignore

from .errors import ConfigurationError, NumericalRangeError
from .utils.logging import log_call

ModelMatrixBuilder = Callable[[np.ndarray], np.ndarray]


@dataclass(frozen=True)
class PolynomialBasis:
    """Model matrix ``[1, t, t^2, ..., t^degree]``."""

    degree: int = 3

    def __call__(self, times: np.ndarray) -> np.ndarray:
        times = np.asarray(times, dtype=float).ravel()
        return np.vander(times, self.degree + 1, increasing=True)


class PhiRegressionAdapter(ABC):
    """
    Minimal view of a fitted phi model.

    Parameters
    ----------
    results : statsmodels results
        A fitted binomial model
    model_matrix_builder : callable
        Maps durations to the model matrix used in the fit
    """

    def __init__(self, results, model_matrix_builder: ModelMatrixBuilder):
        """Wrap a fitted model."""
        self.results = results
        self.model_matrix_builder = model_matrix_builder
        self.link = results.model.family.link

    @abstractmethod
    @log_call
    def coefficients(self) -> np.ndarray:
        """Fitted coefficient vector."""

    @abstractmethod
    @log_call
    def covariance(self) -> np.ndarray:
        """Covariance matrix of the fitted coefficients."""

    @log_call
    def model_matrix(self, times: np.ndarray) -> np.ndarray:
        """Model matrix for the requested durations."""
        return self.model_matrix_builder(times)

    @log_call
    def link_inverse(self, x: np.ndarray) -> np.ndarray:
        """Inverse link applied to the linear predictor."""
        return self.link.inverse(x)

    @log_call
    def link_derivative(self, x: np.ndarray) -> np.ndarray:
        """Derivative of the inverse link at the linear predictor."""
        return self.link.inverse_deriv(x)

    @log_call
    def predict(
        self, times: np.ndarray, varcov: bool = True
    ) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """
        phi estimates and their delta-method covariance at ``times``.

        With ``Var(beta) = U^T U`` (Cholesky) and ``J`` the diagonal matrix
        of inverse-link derivatives, ``R = J T U^T`` and the covariance of
        the predicted phi is ``R R^T``, symmetric positive semi-definite by
        construction.

        Parameters
        ----------
        times : np.ndarray
            Infection durations
        varcov : bool, default=True
            Whether to compute the covariance matrix

        Returns
        -------
        point : np.ndarray
            Predicted phi at each duration
        covariance : np.ndarray or None
            ``(len(times), len(times))`` covariance of the predictions
        """
        design = self.model_matrix(times)
        linear_predictor = design @ self.coefficients()
        point = np.asarray(self.link_inverse(linear_predictor), dtype=float)
        if not varcov:
            return point, None

        try:
            upper = linalg.cholesky(self.covariance(), lower=False)
        except linalg.LinAlgError as err:
            raise NumericalRangeError(
                "Coefficient covariance is not positive definite; cannot "
                "propagate phi variance"
            ) from err
        gradient = np.asarray(self.link_derivative(linear_predictor),
                              dtype=float)
        r_matrix = (gradient[:, None] * design) @ upper.T
        return point, r_matrix @ r_matrix.T


class GLMPhiAdapter(PhiRegressionAdapter):
    """Adapter over a statsmodels GLM fit."""

    @log_call
    def coefficients(self) -> np.ndarray:
        """GLM coefficients."""
        return np.asarray(self.results.params, dtype=float)

    @log_call
    def covariance(self) -> np.ndarray:
        """Model-based GLM coefficient covariance."""
        return np.asarray(self.results.cov_params(), dtype=float)


class GEEPhiAdapter(PhiRegressionAdapter):
    """Adapter over a statsmodels GEE fit."""

    @log_call
    def coefficients(self) -> np.ndarray:
        """GEE coefficients."""
        return np.asarray(self.results.params, dtype=float)

    @log_call
    def covariance(self) -> np.ndarray:
        """Robust (sandwich) GEE coefficient covariance."""
        return np.asarray(self.results.cov_robust, dtype=float)


@log_call
def fit_phi_model(
    data: pd.DataFrame,
    model_type: str = "glm",
    degree: int = 3,
    cov_struct: str = "exchangeable"
) -> PhiRegressionAdapter:
    """
    Fit a logistic phi model of ``ri`` on a polynomial in ``ui``.

    Parameters
    ----------
    data : pd.DataFrame
        Columns ``ui`` (duration), ``ri`` (recency indicator) and, for GEE,
        ``id`` (subject)
    model_type : str, default="glm"
        ``glm`` or ``gee``
    degree : int, default=3
        Polynomial degree in the duration
    cov_struct : str, default="exchangeable"
        GEE working correlation, ``exchangeable`` or ``independence``

    Returns
    -------
    adapter : PhiRegressionAdapter

    Examples
    --------
    >>> model = fit_phi_model(study, model_type="glm", degree=3)
    >>> point, var = model.predict(np.linspace(0.01, 12, 1200))
    """
    basis = PolynomialBasis(degree)
    design = basis(data["ui"].to_numpy())
    response = data["ri"].to_numpy(dtype=float)
    family = sm.families.Binomial()

    if model_type == "glm":
        results = sm.GLM(response, design, family=family).fit()
        return GLMPhiAdapter(results, basis)
    if model_type == "gee":
        if "id" not in data:
            raise ConfigurationError("GEE phi models need an 'id' column")
        structures = {
            "exchangeable": sm.cov_struct.Exchangeable,
            "independence": sm.cov_struct.Independence,
        }
        if cov_struct not in structures:
            raise ConfigurationError(f"Unknown cov_struct {cov_struct!r}")
        results = sm.GEE(
            response, design, groups=data["id"].to_numpy(),
            family=family, cov_struct=structures[cov_struct](),
        ).fit()
        return GEEPhiAdapter(results, basis)
    raise ConfigurationError(
        f"model_type must be 'glm' or 'gee', got {model_type!r}"
    )
