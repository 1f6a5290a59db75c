"""
Randomized replacement of region sets.

RegionSampler implementations draw a single candidate interval with a
required weight from a background:

- UniformRegionSampler: weight is the basepair length, the candidate lies
  entirely inside one background interval and its start is uniform among
  all such placements
- CoverageRegionSampler: weight is the number of covered positions, the
  start position is drawn proportionally to coverage density

RegionSetSampler draws a full replacement for an input region list. Each
region gets up to ``single_region_max_retries`` tries. If any region cannot
be placed the whole set is restarted, up to ``region_set_max_retries``
times, so the accepted sets keep the joint distribution of independent
placements conditioned on non-overlap.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from intervaltree import IntervalTree

from .coverage import CoverageIndex
from .exceptions import (
    InvalidParameterError,
    SamplingExhaustedError,
    ValidationError,
)
from .histogram import IntHistogram
from .intervals import GenomicInterval, IntervalSet

logger = logging.getLogger(__name__)

# candidate -> penalty, 0.0 means the candidate is accepted as is
CandidateFilter = Callable[[GenomicInterval, np.random.Generator], float]

DIST_CORRECTION_MAX_REGION_SIZE = 5000
DIST_CORRECTION_METHOD = "dist"

_PLACEMENTS_CACHE_SIZE = 256


class RangeMask:
    """Ranges already taken by the current simulated set, per chromosome.

    One interval tree per chromosome, so adding a range and querying an
    overlap are both logarithmic in the set size.
    """

    def __init__(self):
        self._trees: Dict[str, IntervalTree] = {}

    def overlaps(self, interval: GenomicInterval) -> bool:
        tree = self._trees.get(interval.chrom)
        if tree is None:
            return False
        return tree.overlaps(interval.start, interval.end)

    def add(self, interval: GenomicInterval):
        # empty ranges never overlap anything
        if interval.length == 0:
            return
        self._trees.setdefault(interval.chrom, IntervalTree()).addi(interval.start, interval.end)

    def __len__(self):
        return sum(len(tree) for tree in self._trees.values())


# ============================================================================
# Single region samplers
# ============================================================================

class RegionSampler(ABC):
    """Draws one candidate interval of a required weight from a background."""

    @property
    @abstractmethod
    def genome(self):
        ...

    @abstractmethod
    def weights(self, regions: Sequence[GenomicInterval]) -> np.ndarray:
        """Required weight for each input region."""

    @abstractmethod
    def draw(self, weight: int, rng: np.random.Generator) -> Optional[GenomicInterval]:
        """Draw a candidate ignoring the mask, None if construction failed."""

    def sample_one(
        self,
        weight: int,
        rng: np.random.Generator,
        mask: Optional[RangeMask] = None,
    ) -> Optional[GenomicInterval]:
        """Draw a candidate and reject it if it overlaps the mask."""
        candidate = self.draw(weight, rng)
        if candidate is None:
            return None
        if mask is not None and mask.overlaps(candidate):
            return None
        return candidate


class UniformRegionSampler(RegionSampler):
    """Samples regions of a given length inside a merged basepair background.

    Placement tables (prefix sums over per-interval start counts) are built
    lazily per required length and cached, the cache is shared between
    threads.
    """

    def __init__(self, background: IntervalSet):
        self.background = background.merge()
        self._lock = threading.Lock()
        self._placements: "OrderedDict[int, Tuple]" = OrderedDict()

    @property
    def genome(self):
        return self.background.genome

    def weights(self, regions: Sequence[GenomicInterval]) -> np.ndarray:
        lengths = np.array([r.length for r in regions], dtype=np.int64)
        if len(lengths) and lengths.min() <= 0:
            raise ValidationError("Zero length regions cannot be sampled from a uniform background")
        return lengths

    def _placement_table(self, length: int):
        with self._lock:
            table = self._placements.get(length)
            if table is not None:
                self._placements.move_to_end(length)
                return table

        chroms, starts, counts = [], [], []
        for chrom in self.background.chromosomes():
            s, e = self.background.ranges(chrom)
            n_starts = e - s - length + 1
            keep = n_starts > 0
            if np.any(keep):
                chroms.append(np.full(int(keep.sum()), self.genome.index(chrom), dtype=np.int32))
                starts.append(s[keep])
                counts.append(n_starts[keep])

        if counts:
            table = (np.cumsum(np.concatenate(counts)), np.concatenate(chroms), np.concatenate(starts))
        else:
            table = (np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int32), np.zeros(0, dtype=np.int64))

        with self._lock:
            self._placements[length] = table
            if len(self._placements) > _PLACEMENTS_CACHE_SIZE:
                self._placements.popitem(last=False)
        return table

    def draw(self, weight: int, rng: np.random.Generator) -> Optional[GenomicInterval]:
        prefix, chrom_ids, starts = self._placement_table(int(weight))
        if len(prefix) == 0:
            return None
        r = int(rng.integers(int(prefix[-1])))
        j = int(np.searchsorted(prefix, r, side="right"))
        offset = r - (int(prefix[j - 1]) if j > 0 else 0)
        start = int(starts[j]) + offset
        chrom = self.genome.chromosomes[int(chrom_ids[j])]
        return GenomicInterval(chrom, start, start + int(weight))


class CoverageRegionSampler(RegionSampler):
    """Samples regions containing a given number of covered positions.

    Args:
        coverage: Background covered positions
        end_shift: End offset after the last covered position (exclusive bound)
    """

    def __init__(self, coverage: CoverageIndex, end_shift: int = 2):
        if end_shift <= 0:
            raise InvalidParameterError("end_shift", end_shift, "> 0")
        self.coverage = coverage
        self.end_shift = end_shift

    @property
    def genome(self):
        return self.coverage.genome

    def weights(self, regions: Sequence[GenomicInterval]) -> np.ndarray:
        return np.array([self.coverage.coverage(r) for r in regions], dtype=np.int64)

    def draw(self, weight: int, rng: np.random.Generator) -> Optional[GenomicInterval]:
        if self.coverage.depth == 0:
            return None
        chrom, idx = self.coverage.draw(rng)
        return self.coverage.region_from(chrom, idx, int(weight), self.end_shift)


# ============================================================================
# Length correction
# ============================================================================

def make_length_correction_filter(
    method: Optional[str],
    regions: Sequence[GenomicInterval],
) -> Optional[CandidateFilter]:
    """Candidate filter correcting the sampled length distribution.

    Args:
        method: None (no correction), 'dist' (accept candidates by how typical
            their length is among input regions) or an integer maximum length
        regions: Input regions

    Returns:
        Callable returning a penalty for a candidate, 0.0 accepts it
    """
    if method is None:
        return None
    if method == DIST_CORRECTION_METHOD:
        return _make_filter_by_length_probability(regions)

    try:
        threshold = float(int(method))
    except ValueError:
        raise InvalidParameterError(
            "length_correction", method, f"'{DIST_CORRECTION_METHOD}' or an integer length threshold"
        ) from None
    if threshold <= 0:
        raise InvalidParameterError("length_correction", method, "a positive integer")

    def by_threshold(candidate: GenomicInterval, rng: np.random.Generator) -> float:
        if candidate.length <= threshold:
            return 0.0
        return min(1.0, candidate.length / threshold)

    return by_threshold


def _make_filter_by_length_probability(regions: Sequence[GenomicInterval]) -> CandidateFilter:
    resample_prob = length_resample_probabilities(regions)
    max_len = len(resample_prob) - 1

    def by_length_probability(candidate: GenomicInterval, rng: np.random.Generator) -> float:
        length = candidate.length
        prob = 1.0 if length > max_len else float(resample_prob[length])
        return 0.0 if rng.random() >= prob else prob

    return by_length_probability


def length_resample_probabilities(regions: Sequence[GenomicInterval]) -> np.ndarray:
    """Rejection probability per candidate length.

    Lengths outside of the input range are always rejected, lengths close to
    the input median are rarely rejected.
    """
    if not regions:
        raise ValidationError("Length correction requires at least one input region")
    lengths = np.sort(np.minimum([r.length for r in regions], DIST_CORRECTION_MAX_REGION_SIZE))
    capped = int(np.count_nonzero(lengths == DIST_CORRECTION_MAX_REGION_SIZE))
    if capped / len(lengths) >= 0.05:
        raise ValidationError(
            f"Too many regions (5% or more) with length >= {DIST_CORRECTION_MAX_REGION_SIZE} bp. "
            f"#Regions exceed threshold = {capped} of {len(lengths)}."
        )

    min_len, max_len = int(lengths[0]), int(lengths[-1])
    prob = np.ones(max_len + 2, dtype=np.float64)
    idx = np.arange(min_len, max_len + 1)
    count_le = np.searchsorted(lengths, idx, side="right")
    count_ge = len(lengths) - np.searchsorted(lengths, idx, side="left")
    prob[min_len:max_len + 1] = 1.0 - np.minimum(count_le, count_ge) / (len(lengths) / 2.0)
    return np.clip(prob, 0.0, 1.0)


# ============================================================================
# Region set sampler
# ============================================================================

@dataclass
class SetSample:
    """One sampled region set with its diagnostics."""
    intervals: List[GenomicInterval]
    region_attempts: IntHistogram = field(default_factory=IntHistogram)
    set_attempts: int = 1


@dataclass
class SimulationResult:
    """Sampled set of one simulation wrapped as an interval set."""
    index: int
    regions: IntervalSet
    region_attempts: IntHistogram
    set_attempts: int


class RegionSetSampler:
    """Samples full replacements of an input region list.

    Args:
        sampler: Single region sampler bound to a background
        region_set_max_retries: Whole set attempts before giving up
        single_region_max_retries: Attempts per region inside one set attempt
        with_replacement: Allow sampled regions to overlap each other
        candidate_filter: Optional length correction filter
    """

    def __init__(
        self,
        sampler: RegionSampler,
        region_set_max_retries: int = 100,
        single_region_max_retries: int = 100,
        with_replacement: bool = False,
        candidate_filter: Optional[CandidateFilter] = None,
    ):
        if region_set_max_retries < 1:
            raise InvalidParameterError("region_set_max_retries", region_set_max_retries, ">= 1")
        if single_region_max_retries < 1:
            raise InvalidParameterError("single_region_max_retries", single_region_max_retries, ">= 1")
        self.sampler = sampler
        self.region_set_max_retries = region_set_max_retries
        self.single_region_max_retries = single_region_max_retries
        self.with_replacement = with_replacement
        self.candidate_filter = candidate_filter

    @property
    def genome(self):
        return self.sampler.genome

    def sample_set(self, weights: Sequence[int], rng: np.random.Generator) -> SetSample:
        """Sample one set, each region matching the corresponding weight.

        Raises:
            SamplingExhaustedError: If no set was sampled in
                ``region_set_max_retries`` attempts
        """
        for attempt in range(1, self.region_set_max_retries + 1):
            result = self._try_sample_set(weights, rng)
            if result is not None:
                result.set_attempts = attempt
                return result
        raise SamplingExhaustedError(self.region_set_max_retries, len(weights))

    def _try_sample_set(self, weights: Sequence[int], rng: np.random.Generator) -> Optional[SetSample]:
        mask = None if self.with_replacement else RangeMask()
        intervals = []
        attempts = IntHistogram()

        for weight in weights:
            chosen = None
            best_candidate = None
            smallest_penalty = np.inf
            last_try = 0

            for region_try in range(1, self.single_region_max_retries + 1):
                last_try = region_try
                candidate = self.sampler.sample_one(weight, rng, mask)
                if candidate is not None and self.candidate_filter is not None:
                    penalty = self.candidate_filter(candidate, rng)
                    if penalty != 0.0:
                        if penalty < smallest_penalty:
                            best_candidate = candidate
                            smallest_penalty = penalty
                        candidate = None
                if candidate is not None:
                    chosen = candidate
                    break

            if chosen is None:
                # no ideal candidate, take the least penalised one
                chosen = best_candidate
            if chosen is None:
                return None

            if mask is not None:
                mask.add(chosen)
            intervals.append(chosen)
            attempts.increment(last_try)

        return SetSample(intervals, attempts)

    def sample_regions(
        self,
        regions: Sequence[GenomicInterval],
        rng: np.random.Generator,
    ) -> SetSample:
        return self.sample_set(self.sampler.weights(regions), rng)
