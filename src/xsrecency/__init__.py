"""Cross-sectional HIV incidence recency assay simulator."""

from typing import List

from .errors import (
    XSRecencyError,
    ConfigurationError,
    NumericalRangeError,
    DomainError
)
from .incidence import (
    IncidenceModel,
    constant_incidence,
    linear_incidence,
    exponential_incidence,
    piecewise_incidence
)
from .infection_times import (
    CustomIncidence,
    InfectionTimeSampler,
    infections_constant,
    infections_linear,
    infections_exponential,
    infections_piecewise,
    simulate_infection_durations
)
from .phi_functions import (
    FRRByTime,
    FRRByValue,
    gamma_params,
    gamma_phi,
    constant_frr_phi,
    normal_bump_phi,
    normal_cdf_bump_phi
)
from .prior_test import (
    UniformLag,
    GeneralizedGammaMechanism,
    CustomLag,
    MisreportConfig,
    PriorTestSimulator,
    enhanced_recency
)
from .config.schemas import (
    CohortStudy,
    LongitudinalStudy,
    PriorTestConfig,
    SimulationConfig,
    EstimatorConfig
)
from .cohort import (
    CohortSimulator,
    SummaryStatistics,
    generate_raw_data
)
from .phi_regression import (
    PhiRegressionAdapter,
    GLMPhiAdapter,
    GEEPhiAdapter,
    fit_phi_model
)
from .delta_grid import PhiGrid, build_phi_grid
from .assay_estimator import (
    AssayEstimate,
    AssayPropertiesSummary,
    assay_properties_est,
    assay_properties_nsim,
    estimate_assay_properties
)

__all__: List[str] = [
    # Errors
    "XSRecencyError",
    "ConfigurationError",
    "NumericalRangeError",
    "DomainError",
    # Incidence models and infection times
    "IncidenceModel",
    "constant_incidence",
    "linear_incidence",
    "exponential_incidence",
    "piecewise_incidence",
    "CustomIncidence",
    "InfectionTimeSampler",
    "infections_constant",
    "infections_linear",
    "infections_exponential",
    "infections_piecewise",
    "simulate_infection_durations",
    # Phi functions
    "FRRByTime",
    "FRRByValue",
    "gamma_params",
    "gamma_phi",
    "constant_frr_phi",
    "normal_bump_phi",
    "normal_cdf_bump_phi",
    # Prior tests
    "UniformLag",
    "GeneralizedGammaMechanism",
    "CustomLag",
    "MisreportConfig",
    "PriorTestSimulator",
    "enhanced_recency",
    # Configuration
    "CohortStudy",
    "LongitudinalStudy",
    "PriorTestConfig",
    "SimulationConfig",
    "EstimatorConfig",
    # Cohort simulation
    "CohortSimulator",
    "SummaryStatistics",
    "generate_raw_data",
    # Phi regression and delta-method grid
    "PhiRegressionAdapter",
    "GLMPhiAdapter",
    "GEEPhiAdapter",
    "fit_phi_model",
    "PhiGrid",
    "build_phi_grid",
    # Assay property estimation
    "AssayEstimate",
    "AssayPropertiesSummary",
    "assay_properties_est",
    "assay_properties_nsim",
    "estimate_assay_properties",
]
__version__ = "0.1.0"
