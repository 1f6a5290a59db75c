"""
Chunked parallel simulation driver.

Simulations are processed in chunks of ``chunk_size`` sampled sets to bound
peak memory. Chunks run strictly one after another; inside a chunk every
simulation is independent and runs on a thread pool with its own random
generator. With a seed each simulation index always gets the same
generator, so results do not depend on thread scheduling.

Metric values of sampled sets are reduced per worker batch into
PerWorkerStats (counts and histogram) and merged afterwards, so no shared
histogram is updated concurrently.
"""

import logging
import math
import os
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence

import numpy as np

from .exceptions import MetricOverflowError, validate_numeric_param
from .histogram import IntHistogram
from .intervals import GenomicInterval, IntervalSet
from .metrics import RegionsMetric
from .sampling import RegionSetSampler, SimulationResult
from .statistics import PerWorkerStats

logger = logging.getLogger(__name__)

INT32_MAX = 2 ** 31 - 1

ProgressCallback = Callable[[int, int], None]


@dataclass
class SimulationParams:
    """Simulation run parameters.

    Attributes:
        simulations_number: Number of sampled region sets
        chunk_size: Sampled sets per chunk, 0 to sample all sets at once
        region_set_max_retries: Max attempts to sample a whole set
        single_region_max_retries: Max attempts to sample one region of a set
        with_replacement: Allow sampled regions of a set to overlap
        parallelism: Worker threads, None for ``os.cpu_count()``
        seed: Root seed, None for non reproducible runs
    """
    simulations_number: int = 100_000
    chunk_size: int = 50_000
    region_set_max_retries: int = 100
    single_region_max_retries: int = 100
    with_replacement: bool = False
    parallelism: Optional[int] = None
    seed: Optional[int] = None

    def __post_init__(self):
        validate_numeric_param(self.simulations_number, "simulations_number", min_val=1)
        validate_numeric_param(self.chunk_size, "chunk_size", min_val=0)
        validate_numeric_param(self.region_set_max_retries, "region_set_max_retries", min_val=1)
        validate_numeric_param(self.single_region_max_retries, "single_region_max_retries", min_val=1)
        if self.parallelism is not None:
            validate_numeric_param(self.parallelism, "parallelism", min_val=1)

    @property
    def effective_chunk_size(self) -> int:
        if self.chunk_size == 0:
            return self.simulations_number
        return min(self.chunk_size, self.simulations_number)

    @property
    def chunks_number(self) -> int:
        return math.ceil(self.simulations_number / self.effective_chunk_size)

    @property
    def threads(self) -> int:
        return self.parallelism or os.cpu_count() or 1

    def chunk_bounds(self, chunk_id: int):
        chunk = self.effective_chunk_size
        return chunk_id * chunk, min(self.simulations_number, (chunk_id + 1) * chunk)


@dataclass
class SimulationChunk:
    chunk_id: int
    start: int
    end: int
    results: List[SimulationResult]

    @property
    def size(self) -> int:
        return self.end - self.start


def split_batches(items: Sequence, batches_number: int) -> List[Sequence]:
    """Split into at most ``batches_number`` contiguous non-empty batches."""
    if not items:
        return []
    batch = math.ceil(len(items) / max(1, batches_number))
    return [items[i:i + batch] for i in range(0, len(items), batch)]


def calc_metric(
    sampled: IntervalSet,
    loi: IntervalSet,
    a_set_is_sampled: bool,
    metric: RegionsMetric,
) -> int:
    """``metric(sampled, loi)`` or ``metric(loi, sampled)`` by orientation."""
    if a_set_is_sampled:
        return int(metric(sampled, loi))
    return int(metric(loi, sampled))


def calc_metric_stats(
    sampled_sets: Sequence[IntervalSet],
    loi: IntervalSet,
    a_set_is_sampled: bool,
    metric: RegionsMetric,
    observed: int,
    label: str = None,
) -> PerWorkerStats:
    """Counters and histogram of metric values for a batch of sampled sets.

    Raises:
        MetricOverflowError: If a value does not fit into 32-bit histogram keys
    """
    stats = PerWorkerStats()
    for sampled in sampled_sets:
        value = calc_metric(sampled, loi, a_set_is_sampled, metric)
        if value > INT32_MAX:
            raise MetricOverflowError(value, label)
        stats.metric_hist.increment(value)
        if value >= observed:
            stats.count_above += 1
        if value <= observed:
            stats.count_below += 1
    return stats


class SimulationDriver:
    """Runs region set sampling in sequential chunks of parallel simulations.

    Args:
        set_sampler: Region set sampler bound to a background
        regions: Input regions to replace
        params: Simulation parameters
        truncate_filter: Optional area each sampled set is truncated to
    """

    def __init__(
        self,
        set_sampler: RegionSetSampler,
        regions: Sequence[GenomicInterval],
        params: SimulationParams,
        truncate_filter: Optional[IntervalSet] = None,
    ):
        self.set_sampler = set_sampler
        self.regions = list(regions)
        self.params = params
        self.truncate_filter = truncate_filter
        self.weights = set_sampler.sampler.weights(self.regions)
        self._root_seed = np.random.SeedSequence(params.seed)
        self.region_attempts = IntHistogram()
        self.set_attempts = IntHistogram()

    @property
    def genome(self):
        return self.set_sampler.genome

    def rng_for(self, simulation_idx: int) -> np.random.Generator:
        """Independent generator of one simulation."""
        seq = np.random.SeedSequence(entropy=self._root_seed.entropy, spawn_key=(simulation_idx,))
        return np.random.default_rng(seq)

    def simulate(self, simulation_idx: int) -> SimulationResult:
        sample = self.set_sampler.sample_set(self.weights, self.rng_for(simulation_idx))
        regions = IntervalSet.create(
            self.genome, sample.intervals, merge=not self.set_sampler.with_replacement
        )
        if self.truncate_filter is not None:
            regions = regions.intersect(self.truncate_filter)
        return SimulationResult(simulation_idx, regions, sample.region_attempts, sample.set_attempts)

    def run_chunk(self, chunk_id: int, executor: Executor) -> SimulationChunk:
        start, end = self.params.chunk_bounds(chunk_id)
        logger.info(
            f"Simulations: Chunk [{chunk_id + 1} of {self.params.chunks_number}], "
            f"simulations {start}..{end} of {self.params.simulations_number}"
        )
        results = list(executor.map(self.simulate, range(start, end)))
        for res in results:
            self.region_attempts += res.region_attempts
            self.set_attempts.increment(res.set_attempts)
        return SimulationChunk(chunk_id, start, end, results)

    def iter_chunks(self, executor: Optional[Executor] = None) -> Iterator[SimulationChunk]:
        """Yield chunks one by one, a chunk is sampled only when requested."""
        if executor is not None:
            for chunk_id in range(self.params.chunks_number):
                yield self.run_chunk(chunk_id, executor)
            return
        with ThreadPoolExecutor(max_workers=self.params.threads) as pool:
            for chunk_id in range(self.params.chunks_number):
                yield self.run_chunk(chunk_id, pool)

    def reduce_metric(
        self,
        chunk: SimulationChunk,
        loi: IntervalSet,
        a_set_is_sampled: bool,
        metric: RegionsMetric,
        observed: int,
        executor: Executor,
        label: str = None,
    ) -> List[PerWorkerStats]:
        """Per worker partial statistics of one LOI over a chunk."""
        sampled = [res.regions for res in chunk.results]
        futures = [
            executor.submit(calc_metric_stats, batch, loi, a_set_is_sampled, metric, observed, label)
            for batch in split_batches(sampled, self.params.threads)
        ]
        return [f.result() for f in futures]


def sample_region_sets(
    set_sampler: RegionSetSampler,
    regions: Sequence[GenomicInterval],
    params: SimulationParams,
    truncate_filter: Optional[IntervalSet] = None,
) -> Iterator[SimulationResult]:
    """Lazily sample ``params.simulations_number`` region sets, chunk by chunk."""
    driver = SimulationDriver(set_sampler, regions, params, truncate_filter)
    for chunk in driver.iter_chunks():
        yield from chunk.results
