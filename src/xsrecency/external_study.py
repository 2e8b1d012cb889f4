"""
Simulated external studies used to fit phi.

Assay properties are estimated from studies of subjects with known infection
durations. Two designs are supported: the positives of a simulated
cross-sectional survey (one observation per subject, fitted with a GLM) and
a longitudinal follow-up with repeated visits per subject (fitted with GEE).
"""

from typing import Callable, Union

import numpy as np
import pandas as pd  # type: ignore

from .cohort import CohortSimulator
from .config.schemas import CohortStudy, LongitudinalStudy, SimulationConfig
from .errors import ConfigurationError
from .incidence import IncidenceModel
from .phi_regression import PhiRegressionAdapter, fit_phi_model
from .utils.logging import log_call

PhiFunction = Callable[[np.ndarray], np.ndarray]


@log_call
def simulate_cohort_study(
    phi: PhiFunction,
    study: CohortStudy,
    tau: float,
    rng: np.random.Generator
) -> pd.DataFrame:
    """
    Durations and recency indicators of one simulated survey's positives.

    Only positives infected at most ``tau`` years before enrollment are kept.

    Returns
    -------
    data : pd.DataFrame
        Columns ``id``, ``ui`` and ``ri``
    """
    config = SimulationConfig(
        n_sims=1,
        n=study.n,
        prevalence=study.prevalence,
        incidence=IncidenceModel("constant", study.baseline_incidence),
        phi=phi,
        summarize=False,
        seed=int(rng.integers(0, 2 ** 63 - 1)),
    )
    records = CohortSimulator(config).simulate()
    positives = records[records["pos"] == 1]
    ui = (positives["time"] - positives["itime"]).to_numpy()
    ri = positives["rpos"].to_numpy()
    keep = ui <= tau
    return pd.DataFrame({
        "id": np.arange(int(keep.sum())),
        "ui": ui[keep],
        "ri": ri[keep].astype(int),
    })


@log_call
def simulate_longitudinal_study(
    phi: PhiFunction,
    study: LongitudinalStudy,
    tau: float,
    rng: np.random.Generator
) -> pd.DataFrame:
    """
    Repeated recency assay results for infected subjects.

    Each subject's first visit is ``Uniform(0, first_visit_max)`` years after
    infection and later visits follow every ``gap`` years up to ``tau``.

    Returns
    -------
    data : pd.DataFrame
        Columns ``id``, ``ui`` and ``ri``, one row per visit
    """
    first = rng.uniform(0.0, study.first_visit_max, size=study.n_subjects)
    ids, durations = [], []
    for subject, start in enumerate(first):
        visits = np.arange(start, tau + 1e-12, study.gap)
        ids.append(np.full(len(visits), subject))
        durations.append(visits)
    ui = np.concatenate(durations)
    probs = np.asarray(phi(ui), dtype=float)
    ri = rng.binomial(1, probs)
    return pd.DataFrame({"id": np.concatenate(ids), "ui": ui, "ri": ri})


@log_call
def fit_study_phi(
    phi: PhiFunction,
    study: Union[CohortStudy, LongitudinalStudy],
    tau: float,
    degree: int,
    rng: np.random.Generator
) -> PhiRegressionAdapter:
    """Simulate an external study of the given design and fit phi on it."""
    if isinstance(study, CohortStudy):
        data = simulate_cohort_study(phi, study, tau, rng)
        return fit_phi_model(data, model_type="glm", degree=degree)
    if isinstance(study, LongitudinalStudy):
        data = simulate_longitudinal_study(phi, study, tau, rng)
        return fit_phi_model(data, model_type="gee", degree=degree,
                             cov_struct=study.cov_struct)
    raise ConfigurationError(
        "study must be a CohortStudy or a LongitudinalStudy"
    )
