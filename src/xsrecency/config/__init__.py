from pathlib import Path
from typing import List, Optional

from hydra import compose, initialize_config_dir
from omegaconf import DictConfig

from ..errors import ConfigurationError
from ..incidence import IncidenceModel
from ..phi_functions import (
    FRRByTime,
    FRRByValue,
    PhiFunction,
    constant_frr_phi,
    gamma_params,
    gamma_phi,
    normal_bump_phi,
    normal_cdf_bump_phi,
)
from ..prior_test import GeneralizedGammaMechanism, MisreportConfig, UniformLag
from ..utils.logging import log_call
from .schemas import (
    CohortStudy,
    EstimatorConfig,
    LongitudinalStudy,
    PriorTestConfig,
    SimulationConfig,
)
from .validation import validate_config

CONFIG_DIR = Path(__file__).resolve().parents[1] / "conf"
DAYS_PER_YEAR = 365.25


@log_call
def load_config(overrides: Optional[List[str]] = None) -> DictConfig:
    """Load and validate a configuration using Hydra."""

    overrides = overrides or []
    with initialize_config_dir(
        CONFIG_DIR.resolve().as_posix(), version_base=None
    ):
        cfg = compose(config_name="config", overrides=overrides)
    validate_config(cfg)
    return cfg


@log_call
def build_phi(cfg: DictConfig) -> PhiFunction:
    """True phi function described by the ``phi`` and ``estimator`` sections."""

    section = cfg.phi
    shape, rate = gamma_params(section.window / DAYS_PER_YEAR,
                               section.shadow / DAYS_PER_YEAR)
    phi = gamma_phi(shape, rate)
    if section.frr_time is not None:
        phi = constant_frr_phi(phi, FRRByTime(section.frr_time),
                               tau=cfg.estimator.tau)
    elif section.frr_value is not None:
        phi = constant_frr_phi(phi, FRRByValue(section.frr_value),
                               tau=cfg.estimator.tau)
    if section.norm_mu is not None:
        phi = normal_bump_phi(phi, section.norm_mu, section.norm_sd,
                              section.norm_div)
    if section.pnorm_mu is not None:
        phi = normal_cdf_bump_phi(phi, section.pnorm_mu, section.pnorm_sd,
                                  section.pnorm_div)
    return phi


@log_call
def build_prior_test_config(cfg: DictConfig) -> Optional[PriorTestConfig]:
    """Prior test settings, or ``None`` when prior tests are disabled."""

    section = cfg.prior_test
    if not section.enabled:
        return None
    if section.mechanism == "uniform":
        distribution = UniformLag(section.t_min, section.t_max)
    elif section.mechanism == "gengamma":
        distribution = GeneralizedGammaMechanism(
            section.mu, section.sigma, section.q
        )
    else:
        raise ConfigurationError(
            f"Unknown prior test mechanism {section.mechanism!r}"
        )
    return PriorTestConfig(
        distribution=distribution,
        probability=section.probability,
        misreport=MisreportConfig(**section.misreport),
        bigT=section.bigT,
    )


@log_call
def build_simulation_config(cfg: DictConfig) -> SimulationConfig:
    """Immutable simulation settings from a validated DictConfig."""

    sim = cfg.simulation
    inc = cfg.incidence
    return SimulationConfig(
        n_sims=sim.n_sims,
        n=sim.n,
        prevalence=sim.prevalence,
        incidence=IncidenceModel(inc.family, inc.baseline, inc.rho, inc.bigT),
        times=tuple(sim.times),
        phi=build_phi(cfg),
        prior_test=build_prior_test_config(cfg),
        summarize=sim.summarize,
        seed=sim.seed,
        n_jobs=sim.n_jobs,
    )


@log_call
def build_estimator_config(cfg: DictConfig) -> EstimatorConfig:
    """Immutable estimator settings from a validated DictConfig."""

    est = cfg.estimator
    study_cfg = dict(est.study)
    design = study_cfg.pop("design")
    if design == "cohort":
        study = CohortStudy(**study_cfg)
    elif design == "longitudinal":
        study = LongitudinalStudy(**study_cfg)
    else:
        raise ConfigurationError(f"Unknown study design {design!r}")
    return EstimatorConfig(
        bigT=est.bigT,
        tau=est.tau,
        last_point=est.last_point,
        dt=est.dt,
        degree=est.degree,
        study=study,
    )
