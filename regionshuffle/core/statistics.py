"""
Permutation test statistics.

Empirical p-values use the add-one correction::

    p_above = (count_above + 1) / (n + 1)
    p_below = (count_below + 1) / (n + 1)

The two-sided p-value ``2 * min(p_above, p_below)`` is clipped to 1.0 so
that all p-values passed to Benjamini-Hochberg are in (0, 1].

Summary statistics of sampled metric values are derived from the metric
histogram, which is exact for integer valued metrics.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Tuple

import numpy as np
from scipy.stats import false_discovery_control

from .exceptions import InvalidParameterError, SimulationConsistencyError
from .histogram import IntHistogram

logger = logging.getLogger(__name__)


class PermutationHypothesis(str, Enum):
    """Alternative hypothesis of the permutation test."""
    GREATER = "greater"
    LESS = "less"
    TWO_SIDED = "two-sided"

    @classmethod
    def parse(cls, value) -> "PermutationHypothesis":
        if isinstance(value, cls):
            return value
        for hyp in cls:
            if hyp.value == value or hyp.name == value:
                return hyp
        raise InvalidParameterError("hypothesis", value, f"one of {[h.value for h in cls]}")

    def __str__(self):
        return self.value


def permutation_p_value(
    count_above: int,
    count_below: int,
    simulations_number: int,
    hypothesis: PermutationHypothesis,
    clip: bool = True,
) -> float:
    """Add-one corrected empirical p-value.

    Parameters
    ----------
    count_above : int
        Simulations with metric >= observed.
    count_below : int
        Simulations with metric <= observed.
    simulations_number : int
        Total simulations.
    hypothesis : PermutationHypothesis
        Alternative hypothesis.
    clip : bool
        Clip two-sided p-value to 1.0.

    Returns
    -------
    float
    """
    p_above = (count_above + 1) / (simulations_number + 1)
    p_below = (count_below + 1) / (simulations_number + 1)
    if hypothesis == PermutationHypothesis.GREATER:
        return p_above
    if hypothesis == PermutationHypothesis.LESS:
        return p_below
    p = 2 * min(p_above, p_below)
    return min(p, 1.0) if clip else p


def adjust_pvalues(pvalues: Iterable[float]) -> np.ndarray:
    """Benjamini-Hochberg q-values, same order as input."""
    pvalues = np.asarray(list(pvalues), dtype=np.float64)
    if len(pvalues) == 0:
        return pvalues
    return false_discovery_control(pvalues, method="bh")


def summarize_histogram(hist: IntHistogram, simulations_number: int) -> Tuple[int, float, float]:
    """Median, mean and variance of sampled metric values."""
    mean = hist.mean(simulations_number)
    sd = hist.stdev(simulations_number, mean)
    median = hist.median(simulations_number)
    return median, mean, sd * sd


@dataclass
class PerWorkerStats:
    """Partial counters computed by one worker over a batch of sampled sets."""
    count_above: int = 0
    count_below: int = 0
    metric_hist: IntHistogram = field(default_factory=IntHistogram)


@dataclass
class TestedRegionStats:
    """Running statistics of one tested LOI label across simulation chunks."""
    count_above: int = 0
    count_below: int = 0
    simulations_number: int = 0
    input_metric: int = 0
    metric_hist: IntHistogram = field(default_factory=IntHistogram)

    __test__ = False

    def update(self, partials: Iterable[PerWorkerStats], simulations_in_chunk: int):
        for st in partials:
            self.count_above += st.count_above
            self.count_below += st.count_below
            self.metric_hist += st.metric_hist
        self.simulations_number += simulations_in_chunk

    def p_value(self, hypothesis: PermutationHypothesis, clip: bool = True) -> float:
        return permutation_p_value(
            self.count_above, self.count_below, self.simulations_number, hypothesis, clip=clip
        )

    def check_consistency(self, simulations_number: int, label: str = ""):
        total = self.metric_hist.count_values()
        if total != simulations_number or self.simulations_number != simulations_number:
            raise SimulationConsistencyError(
                f"Simulations number doesn't match expectations for LOI '{label}': "
                f"expected {simulations_number}, histogram has {total}, "
                f"counted {self.simulations_number}"
            )

    def summary(self) -> Tuple[int, float, float]:
        return summarize_histogram(self.metric_hist, self.simulations_number)
