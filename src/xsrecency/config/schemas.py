from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Union

import numpy as np

from ..errors import ConfigurationError
from ..incidence import IncidenceModel
from ..infection_times import CustomIncidence
from ..prior_test import (
    CustomLag,
    GeneralizedGammaMechanism,
    LagDistribution,
    MisreportConfig,
    UniformLag,
)

PhiFunction = Callable[[np.ndarray], np.ndarray]


@dataclass(frozen=True)
class CohortStudy:
    """Fit phi on the positives of one simulated cross-sectional survey."""

    n: int = 5000
    prevalence: float = 0.29
    baseline_incidence: float = 0.032

    def __post_init__(self) -> None:
        if self.n <= 0:
            raise ConfigurationError(f"n must be > 0, got {self.n}")
        if not 0 < self.prevalence < 1:
            raise ConfigurationError(
                f"prevalence must be in (0, 1), got {self.prevalence}"
            )
        if self.baseline_incidence <= 0:
            raise ConfigurationError(
                f"baseline_incidence must be > 0, got "
                f"{self.baseline_incidence}"
            )


@dataclass(frozen=True)
class LongitudinalStudy:
    """Fit phi with GEE on repeated visits of infected subjects."""

    n_subjects: int = 300
    first_visit_max: float = 1.0
    gap: float = 0.5
    cov_struct: str = "exchangeable"

    def __post_init__(self) -> None:
        if self.n_subjects <= 0:
            raise ConfigurationError(
                f"n_subjects must be > 0, got {self.n_subjects}"
            )
        if self.first_visit_max < 0 or self.gap <= 0:
            raise ConfigurationError(
                f"Need first_visit_max >= 0 and gap > 0, got "
                f"first_visit_max={self.first_visit_max}, gap={self.gap}"
            )
        if self.cov_struct not in ("exchangeable", "independence"):
            raise ConfigurationError(
                f"Unknown cov_struct {self.cov_struct!r}"
            )


@dataclass(frozen=True)
class PriorTestConfig:
    distribution: LagDistribution = field(default_factory=UniformLag)
    probability: Union[float, Callable[[np.ndarray], np.ndarray]] = 0.5
    misreport: MisreportConfig = field(default_factory=MisreportConfig)
    bigT: float = 2.0

    def __post_init__(self) -> None:
        if not isinstance(
            self.distribution,
            (UniformLag, GeneralizedGammaMechanism, CustomLag),
        ):
            raise ConfigurationError(
                "distribution must be UniformLag, GeneralizedGammaMechanism "
                "or CustomLag"
            )
        if not callable(self.probability) and not 0 <= self.probability <= 1:
            raise ConfigurationError(
                f"probability must be in [0, 1], got {self.probability}"
            )
        if self.bigT < 0:
            raise ConfigurationError(f"bigT must be >= 0, got {self.bigT}")


@dataclass(frozen=True)
class SimulationConfig:
    n_sims: int
    n: int
    prevalence: float
    incidence: Union[IncidenceModel, CustomIncidence]
    times: Tuple[float, ...] = (0.0,)
    phi: Optional[PhiFunction] = None
    prior_test: Optional[PriorTestConfig] = None
    summarize: bool = True
    seed: Optional[int] = None
    n_jobs: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "times", tuple(float(t) for t in np.atleast_1d(self.times))
        )
        if self.n_sims <= 0:
            raise ConfigurationError(f"n_sims must be > 0, got {self.n_sims}")
        if self.n <= 0:
            raise ConfigurationError(f"n must be > 0, got {self.n}")
        if not 0 < self.prevalence < 1:
            raise ConfigurationError(
                f"prevalence must be in (0, 1), got {self.prevalence}"
            )
        if not isinstance(self.incidence, (IncidenceModel, CustomIncidence)):
            raise ConfigurationError(
                "Pass exactly one incidence: an IncidenceModel or a "
                "CustomIncidence"
            )
        if len(self.times) == 0 or min(self.times) < 0:
            raise ConfigurationError(
                f"times must be a non-empty sequence of values >= 0, "
                f"got {self.times}"
            )
        if self.summarize and self.phi is None:
            raise ConfigurationError("Need a phi function to summarize recents")
        if self.prior_test is not None and self.phi is None:
            raise ConfigurationError(
                "Need a phi function to simulate prior test results"
            )


@dataclass(frozen=True)
class EstimatorConfig:
    bigT: float = 2.0
    tau: float = 12.0
    last_point: bool = False
    dt: float = 0.01
    degree: int = 3
    study: Union[CohortStudy, LongitudinalStudy] = field(
        default_factory=CohortStudy
    )

    def __post_init__(self) -> None:
        if self.dt <= 0:
            raise ConfigurationError(f"dt must be > 0, got {self.dt}")
        if not 0 <= self.bigT < self.tau:
            raise ConfigurationError(
                f"Need 0 <= bigT < tau, got bigT={self.bigT}, tau={self.tau}"
            )
        if self.degree < 1:
            raise ConfigurationError(f"degree must be >= 1, got {self.degree}")
        if not isinstance(self.study, (CohortStudy, LongitudinalStudy)):
            raise ConfigurationError(
                "study must be a CohortStudy or a LongitudinalStudy"
            )
