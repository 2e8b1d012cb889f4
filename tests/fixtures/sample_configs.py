from omegaconf import OmegaConf


def make_config(**sections) -> OmegaConf:
    """Return a complete config with the given sections replaced."""

    cfg = {
        "simulation": {
            "n_sims": 2,
            "n": 100,
            "prevalence": 0.29,
            "times": [0.0],
            "summarize": True,
            "seed": 1,
            "n_jobs": 1,
        },
        "incidence": {
            "family": "constant",
            "baseline": 0.032,
            "rho": None,
            "bigT": None,
        },
        "phi": {
            "window": 101,
            "shadow": 194,
            "frr_time": 2.0,
            "frr_value": None,
            "norm_mu": None,
            "norm_sd": None,
            "norm_div": None,
            "pnorm_mu": None,
            "pnorm_sd": None,
            "pnorm_div": None,
        },
        "prior_test": {"enabled": False},
        "estimator": {
            "bigT": 2.0,
            "tau": 12.0,
            "last_point": False,
            "dt": 0.01,
            "degree": 3,
            "study": {
                "design": "cohort",
                "n": 5000,
                "prevalence": 0.29,
                "baseline_incidence": 0.032,
            },
        },
    }
    for name, values in sections.items():
        cfg[name] = {**cfg[name], **values}
    return OmegaConf.create(cfg)


def make_invalid_config() -> OmegaConf:
    """Return a config with an invalid number of replicates."""

    return make_config(simulation={"n_sims": -1})
