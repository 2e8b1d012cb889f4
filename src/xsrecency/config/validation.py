from omegaconf import DictConfig

from ..errors import ConfigurationError
from ..incidence import INCIDENCE_FAMILIES
from ..utils.logging import log_call


@log_call
def validate_config(cfg: DictConfig) -> None:
    """Range and exclusivity checks for simulation configs."""

    sim = cfg.simulation
    if sim.n_sims <= 0:
        raise ConfigurationError("n_sims must be positive")
    if sim.n <= 0:
        raise ConfigurationError("n must be positive")
    if not 0 < sim.prevalence < 1:
        raise ConfigurationError("prevalence must be between 0 and 1")
    if len(sim.times) == 0 or min(sim.times) < 0:
        raise ConfigurationError("times must be non-empty and >= 0")

    inc = cfg.incidence
    if inc.family not in INCIDENCE_FAMILIES:
        raise ConfigurationError(f"Unknown incidence family {inc.family!r}")
    if inc.baseline < 0:
        raise ConfigurationError("baseline incidence must be >= 0")
    if inc.family != "constant" and inc.rho is None:
        raise ConfigurationError("Need a rho param if not constant incidence")
    if inc.family == "piecewise" and not cfg.prior_test.enabled:
        raise ConfigurationError(
            "Piecewise constant-linear incidence is only used with prior "
            "testing simulations"
        )

    phi = cfg.phi
    if phi.frr_time is not None and phi.frr_value is not None:
        raise ConfigurationError("Can't provide both frr_value and frr_time")
    for bump in ("norm", "pnorm"):
        if phi[f"{bump}_mu"] is not None and (
            phi[f"{bump}_sd"] is None or phi[f"{bump}_div"] is None
        ):
            raise ConfigurationError(
                f"Need {bump}_sd and {bump}_div with {bump}_mu"
            )

    if cfg.prior_test.enabled:
        pt = cfg.prior_test
        if not 0 <= pt.probability <= 1:
            raise ConfigurationError("prior test probability must be in [0, 1]")
        for name in ("d_misrep", "q_misrep", "p_misrep"):
            if not 0 <= pt.misreport[name] <= 1:
                raise ConfigurationError(f"{name} must be in [0, 1]")
        if pt.misreport.timing_noise_sd < 0:
            raise ConfigurationError("timing_noise_sd must be >= 0")
        if pt.bigT != cfg.estimator.bigT:
            raise ConfigurationError(
                f"prior_test.bigT ({pt.bigT}) must equal estimator.bigT "
                f"({cfg.estimator.bigT}); both define the recency cutoff"
            )

    est = cfg.estimator
    if not 0 <= est.bigT < est.tau:
        raise ConfigurationError("Need 0 <= bigT < tau")
    if est.dt <= 0:
        raise ConfigurationError("dt must be positive")
