"""
Cross-sectional cohort simulation for recency assay studies.

This module orchestrates the per-subject draws of a screening survey across
simulation replicates and enrollment times: how many screened subjects are
HIV positive, when each positive was infected, whether the recency assay
calls them recent and, optionally, what prior test history they report.

Draws are taken replicate by replicate, then enrollment time by enrollment
time, then subject by subject. Every replicate owns an independent child of
``numpy.random.SeedSequence(seed)``, so results are reproducible and do not
depend on how many workers run the replicates.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd  # type: ignore
from joblib import Parallel, delayed  # type: ignore

from .config.schemas import SimulationConfig
from .errors import NumericalRangeError
from .infection_times import InfectionTimeSampler
from .prior_test import PriorTestSimulator
from .utils.logging import log_call

logger = logging.getLogger(__name__)

SUMMARY_FIELDS = (
    "n", "n_positive", "n_negative", "n_recent", "times",
    "n_recent_with_priortest", "numerator_beta", "denominator_omega",
    "denominator_beta",
)
PRIOR_TEST_FIELDS = SUMMARY_FIELDS[5:]


@log_call
def replicate_generators(
    seed: Optional[int], n_sims: int
) -> List[np.random.Generator]:
    """One independent generator per replicate, derived from ``seed``."""
    children = np.random.SeedSequence(seed).spawn(n_sims)
    return [np.random.default_rng(child) for child in children]


@log_call
def generate_raw_data(
    n_sims: int,
    n: int,
    prevalence: float,
    times: Sequence[float] = (0.0,),
    seed: Optional[int] = None
) -> Dict[str, np.ndarray]:
    """
    Numbers screened, positive and negative per enrollment time and replicate.

    Parameters
    ----------
    n_sims : int
        Number of simulation replicates
    n : int
        Number of subjects screened at each enrollment time
    prevalence : float
        Constant prevalence
    times : sequence of float, default=(0.0,)
        Enrollment times
    seed : int, optional
        Seed for the replicate generators; the counts match those drawn by
        ``CohortSimulator`` for the same seed

    Returns
    -------
    data : dict
        ``n``, ``n_positive``, ``n_negative`` and ``times``, each of shape
        ``(n_times, n_sims)``

    Examples
    --------
    >>> data = generate_raw_data(n_sims=10, n=100, prevalence=0.5,
    ...                          times=(0.0, 1.0), seed=1)
    >>> data["n_positive"].shape
    (2, 10)
    """
    times = np.atleast_1d(np.asarray(times, dtype=float))
    rngs = replicate_generators(seed, n_sims)
    n_positive = np.column_stack([
        rng.binomial(n, prevalence, size=len(times)) for rng in rngs
    ])
    return {
        "n": np.full((len(times), n_sims), n),
        "n_positive": n_positive,
        "n_negative": n - n_positive,
        "times": np.repeat(times[:, None], n_sims, axis=1),
    }


@dataclass(frozen=True)
class SummaryStatistics:
    """
    Aggregate counts per enrollment time (rows) and replicate (columns).

    The prior test fields are ``None`` when prior tests were not simulated.
    All arrays are read-only.
    """

    n: np.ndarray
    n_positive: np.ndarray
    n_negative: np.ndarray
    n_recent: np.ndarray
    times: np.ndarray
    n_recent_with_priortest: Optional[np.ndarray] = None
    numerator_beta: Optional[np.ndarray] = None
    denominator_omega: Optional[np.ndarray] = None
    denominator_beta: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        for name in SUMMARY_FIELDS:
            value = getattr(self, name)
            if value is not None:
                value.flags.writeable = False

    @log_call
    def squeeze(self) -> Dict[str, Optional[np.ndarray]]:
        """
        Field arrays with the time axis dropped for single-time surveys.

        Multi-time surveys keep their ``(n_times, n_sims)`` shape.
        """
        squeezed = {}
        for name in SUMMARY_FIELDS:
            value = getattr(self, name)
            if value is not None and value.shape[0] == 1:
                value = value[0]
            squeezed[name] = value
        return squeezed

    @log_call
    def to_frame(self) -> pd.DataFrame:
        """One row per (replicate, enrollment time) pair."""
        n_times, n_sims = self.n.shape
        columns = {
            "sim": np.tile(np.arange(1, n_sims + 1), n_times),
        }
        for name in SUMMARY_FIELDS:
            value = getattr(self, name)
            if value is not None:
                columns[name] = value.ravel()
        frame = pd.DataFrame(columns)
        return frame.sort_values(["sim", "times"], kind="mergesort") \
            .reset_index(drop=True)


def _simulate_cell(config, sampler, prior_test, t, n_pos, rng):
    infection_times = sampler.draw(n_pos, t, config.prevalence, rng)
    cell = {"time": t, "n_pos": n_pos, "itime": infection_times}
    if config.phi is not None:
        probs = np.asarray(config.phi(t - infection_times), dtype=float)
        probs = np.broadcast_to(probs, infection_times.shape)
        if np.any(~np.isfinite(probs) | (probs < 0) | (probs > 1)):
            raise NumericalRangeError(
                "phi returned recency probabilities outside [0, 1]"
            )
        cell["probs"] = probs
        cell["rpos"] = rng.binomial(1, probs)
    if prior_test is not None:
        cell["prior"] = prior_test.simulate(
            infection_times, t, cell["rpos"], rng
        )
    return cell


def _simulate_replicate(config, sampler, prior_test, rng):
    n_positive = rng.binomial(config.n, config.prevalence,
                              size=len(config.times))
    return [
        _simulate_cell(config, sampler, prior_test, t, int(n_pos), rng)
        for t, n_pos in zip(config.times, n_positive)
    ]


class CohortSimulator:
    """
    Simulates screening surveys and their recency assay outcomes.

    Parameters
    ----------
    config : SimulationConfig
        Validated, immutable simulation settings

    Examples
    --------
    >>> from xsrecency import IncidenceModel, SimulationConfig, gamma_phi
    >>> config = SimulationConfig(
    ...     n_sims=10, n=100, prevalence=0.3,
    ...     incidence=IncidenceModel("constant", 0.05),
    ...     phi=gamma_phi(1, 2), times=(0.0, 1.0), seed=1)
    >>> summary = CohortSimulator(config).simulate()
    >>> summary.n_recent.shape
    (2, 10)
    """

    def __init__(self, config: SimulationConfig):
        """Initialize the simulator from a validated configuration."""
        self.config = config
        self.sampler = InfectionTimeSampler(config.incidence)
        self.prior_test: Optional[PriorTestSimulator] = None
        if config.prior_test is not None:
            pt = config.prior_test
            self.prior_test = PriorTestSimulator(
                distribution=pt.distribution,
                probability=pt.probability,
                phi=config.phi,
                bigT=pt.bigT,
                misreport=pt.misreport,
            )

    @log_call
    def simulate_cells(self) -> List[List[dict]]:
        """Raw per-cell draws, indexed by replicate then enrollment time."""
        config = self.config
        rngs = replicate_generators(config.seed, config.n_sims)
        logger.info(
            "Simulating %d replicates x %d enrollment times (n=%d)",
            config.n_sims, len(config.times), config.n,
        )
        return Parallel(n_jobs=config.n_jobs)(
            delayed(_simulate_replicate)(
                config, self.sampler, self.prior_test, rng
            )
            for rng in rngs
        )

    @log_call
    def simulate(self) -> Union[SummaryStatistics, pd.DataFrame]:
        """
        Run the survey simulation.

        Returns
        -------
        result : SummaryStatistics or pd.DataFrame
            Aggregate counts when ``config.summarize`` is true, otherwise the
            unit-record table
        """
        cells = self.simulate_cells()
        if self.config.summarize:
            return summarize_cells(cells, self.config.n)
        return unit_records(cells, self.config.n)


@log_call
def summarize_cells(cells: List[List[dict]], n: int) -> SummaryStatistics:
    """
    Aggregate per-cell draws into ``(n_times, n_sims)`` count matrices.

    Parameters
    ----------
    cells : list of list of dict
        Output of ``CohortSimulator.simulate_cells``
    n : int
        Number screened per cell

    Returns
    -------
    summary : SummaryStatistics
    """
    n_sims = len(cells)
    n_times = len(cells[0])
    shape = (n_times, n_sims)
    n_positive = np.zeros(shape, dtype=int)
    n_recent = np.zeros(shape, dtype=int)
    times = np.zeros(shape)
    with_prior = "prior" in cells[0][0]
    extra = {name: np.zeros(shape) for name in PRIOR_TEST_FIELDS}

    for j, replicate in enumerate(cells):
        for i, cell in enumerate(replicate):
            n_positive[i, j] = cell["n_pos"]
            n_recent[i, j] = np.sum(cell["rpos"])
            times[i, j] = cell["time"]
            if with_prior:
                prior = cell["prior"]
                extra["n_recent_with_priortest"][i, j] = np.sum(
                    prior.enhanced_indicators
                )
                extra["numerator_beta"][i, j] = np.sum(prior.numerator_beta)
                extra["denominator_omega"][i, j] = np.sum(
                    prior.denominator_omega
                )
                extra["denominator_beta"][i, j] = np.sum(
                    prior.denominator_beta
                )

    if with_prior:
        extra["n_recent_with_priortest"] = \
            extra["n_recent_with_priortest"].astype(int)
    else:
        extra = {}
    return SummaryStatistics(
        n=np.full(shape, n),
        n_positive=n_positive,
        n_negative=n - n_positive,
        n_recent=n_recent,
        times=times,
        **extra,
    )


@log_call
def unit_records(cells: List[List[dict]], n: int) -> pd.DataFrame:
    """
    One row per simulated subject across all replicates.

    Negatives carry missing infection, prior test and recency values. Rows
    are sorted by replicate, enrollment time, prevalence flag and infection
    time.
    """
    frames = []
    for sim, replicate in enumerate(cells, start=1):
        for cell in replicate:
            n_pos = cell["n_pos"]
            n_neg = n - n_pos
            nan_neg = np.full(n_neg, np.nan)
            columns = {
                "sim": np.full(n, sim),
                "time": np.full(n, cell["time"]),
                "pos": np.concatenate([np.zeros(n_neg, dtype=int),
                                       np.ones(n_pos, dtype=int)]),
                "itime": np.concatenate([nan_neg, cell["itime"]]),
            }
            if "prior" in cell:
                prior = cell["prior"]
                columns["priorT"] = np.concatenate([nan_neg, prior.time])
                columns["priorD"] = np.concatenate([nan_neg, prior.delta])
            if "probs" in cell:
                columns["probs"] = np.concatenate([nan_neg, cell["probs"]])
                columns["rpos"] = np.concatenate([nan_neg, cell["rpos"]])
            if "prior" in cell:
                columns["rpos_pt"] = np.concatenate([
                    nan_neg, cell["prior"].enhanced_indicators.astype(float)
                ])
            frames.append(pd.DataFrame(columns))

    df = pd.concat(frames, ignore_index=True)
    df = df.sort_values(["sim", "time", "pos", "itime"], kind="mergesort")
    return df.reset_index(drop=True)
