"""
Unit tests for the chunked simulation driver.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from regionshuffle.core.exceptions import InvalidParameterError, MetricOverflowError
from regionshuffle.core.intervals import GenomicInterval, IntervalSet
from regionshuffle.core.metrics import OverlapNumberMetric, RegionsMetric
from regionshuffle.core.sampling import CoverageRegionSampler, RegionSetSampler, UniformRegionSampler
from regionshuffle.core.simulation import (
    INT32_MAX,
    SimulationDriver,
    SimulationParams,
    calc_metric,
    calc_metric_stats,
    sample_region_sets,
    split_batches,
)


@pytest.fixture
def uniform_set_sampler(background):
    return RegionSetSampler(UniformRegionSampler(background))


class TestSimulationParams:

    def test_chunks(self):
        params = SimulationParams(simulations_number=1000, chunk_size=300)
        assert params.chunks_number == 4
        assert params.chunk_bounds(0) == (0, 300)
        assert params.chunk_bounds(3) == (900, 1000)

    def test_zero_chunk_is_single_chunk(self):
        params = SimulationParams(simulations_number=1000, chunk_size=0)
        assert params.effective_chunk_size == 1000
        assert params.chunks_number == 1

    def test_chunk_larger_than_simulations(self):
        assert SimulationParams(simulations_number=10, chunk_size=500).chunks_number == 1

    @pytest.mark.parametrize("kwargs", [
        {"simulations_number": 0},
        {"chunk_size": -1},
        {"region_set_max_retries": 0},
        {"single_region_max_retries": 0},
        {"parallelism": 0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(InvalidParameterError):
            SimulationParams(**kwargs)

    def test_threads(self):
        assert SimulationParams(parallelism=3).threads == 3
        assert SimulationParams().threads >= 1


class TestHelpers:

    def test_split_batches(self):
        assert split_batches(list(range(5)), 2) == [[0, 1, 2], [3, 4]]
        assert split_batches(list(range(2)), 8) == [[0], [1]]
        assert split_batches([], 4) == []

    def test_calc_metric_orientation(self, genome):
        a = IntervalSet.merging(genome, [GenomicInterval("chr1", 0, 100)])
        b = IntervalSet.merging(genome, [GenomicInterval("chr1", 10, 20), GenomicInterval("chr1", 30, 40)])
        metric = OverlapNumberMetric()
        assert calc_metric(a, b, True, metric) == 1
        assert calc_metric(a, b, False, metric) == 2

    @staticmethod
    def constant_metric(value):
        class ConstantMetric(RegionsMetric):
            base_column = "constant"

            def __call__(self, a, b):
                return value

        return ConstantMetric()

    def test_metric_overflow(self, genome):
        s = IntervalSet.empty(genome)
        with pytest.raises(MetricOverflowError, match="enhancers"):
            calc_metric_stats([s], s, True, self.constant_metric(INT32_MAX + 1), observed=0, label="enhancers")

    def test_int32_max_is_accepted(self, genome):
        s = IntervalSet.empty(genome)
        stats = calc_metric_stats([s, s], s, True, self.constant_metric(INT32_MAX), observed=0)
        assert stats.metric_hist.data == {INT32_MAX: 2}
        assert stats.count_above == 2

    def test_metric_stats_counts_ties_both_ways(self, genome):
        loi = IntervalSet.merging(genome, [GenomicInterval("chr1", 0, 10)])
        hit = IntervalSet.merging(genome, [GenomicInterval("chr1", 5, 6)])
        miss = IntervalSet.merging(genome, [GenomicInterval("chr2", 5, 6)])
        stats = calc_metric_stats([hit, miss, hit], loi, True, OverlapNumberMetric(), observed=1)
        assert stats.count_above == 2
        assert stats.count_below == 3
        assert stats.metric_hist.data == {0: 1, 1: 2}


class TestSimulationDriver:

    def test_histogram_conservation_across_chunks(self, uniform_set_sampler, input_regions, background):
        params = SimulationParams(simulations_number=250, chunk_size=100, parallelism=4, seed=1)
        driver = SimulationDriver(uniform_set_sampler, input_regions, params)
        loi = IntervalSet.merging(background.genome, [GenomicInterval("chr1", 0, 200)])

        total, chunk_sizes, indices = 0, [], []
        with ThreadPoolExecutor(max_workers=params.threads) as executor:
            for chunk in driver.iter_chunks(executor):
                partials = driver.reduce_metric(chunk, loi, True, OverlapNumberMetric(), 1, executor)
                total += sum(p.metric_hist.count_values() for p in partials)
                chunk_sizes.append(chunk.size)
                indices.extend(res.index for res in chunk.results)

        assert chunk_sizes == [100, 100, 50]
        assert total == 250
        assert indices == list(range(250))
        assert driver.set_attempts.count_values() == 250
        assert driver.region_attempts.count_values() == 250 * len(input_regions)

    def test_seed_reproducible_regardless_of_threads(self, uniform_set_sampler, input_regions):
        def run(parallelism, chunk_size):
            params = SimulationParams(simulations_number=40, chunk_size=chunk_size, parallelism=parallelism, seed=123)
            return [res.regions.to_list() for res in sample_region_sets(uniform_set_sampler, input_regions, params)]

        assert run(1, 40) == run(4, 7)

    def test_different_seeds_differ(self, uniform_set_sampler, input_regions):
        def run(seed):
            params = SimulationParams(simulations_number=20, seed=seed)
            return [res.regions.to_list() for res in sample_region_sets(uniform_set_sampler, input_regions, params)]

        assert run(1) != run(2)

    def test_truncate_filter(self, uniform_set_sampler, input_regions, background):
        truncate = IntervalSet.merging(background.genome, [GenomicInterval("chr1", 0, 1000)])
        params = SimulationParams(simulations_number=20, seed=5)
        for res in sample_region_sets(uniform_set_sampler, input_regions, params, truncate_filter=truncate):
            assert res.regions.chromosomes() == ["chr1"] or res.regions.chromosomes() == []
            assert all(it.chrom == "chr1" for it in res.regions)

    def test_with_replacement_keeps_overlaps(self, coverage_20):
        set_sampler = RegionSetSampler(CoverageRegionSampler(coverage_20), with_replacement=True)
        regions = [GenomicInterval("chr1", 0, 40)] * 3
        params = SimulationParams(simulations_number=5, seed=9)
        for res in sample_region_sets(set_sampler, regions, params):
            # 20 positions each, the only placement is the whole table
            assert not res.regions.is_merged
            assert len(res.regions) == 3
