"""
Unit tests for Genome, GenomicInterval and IntervalSet algebra.
"""

import numpy as np
import pandas as pd
import pytest

from regionshuffle.core.exceptions import (
    EmptyDataError,
    InvalidParameterError,
    UnknownChromosomeError,
    ValidationError,
)
from regionshuffle.core.genome import Genome, parse_chrom_aliases
from regionshuffle.core.intervals import GenomicInterval, IntervalSet


def iv(chrom, start, end):
    return GenomicInterval(chrom, start, end)


# ============================================================================
# Genome
# ============================================================================


class TestGenome:

    def test_order_is_kept(self, genome):
        assert genome.chromosomes == ["chr1", "chr2", "chr3"]
        assert genome.index("chr3") == 2
        assert genome.total_length == 1800

    def test_unknown_chromosome_length(self, genome):
        with pytest.raises(UnknownChromosomeError):
            genome.length("chrX")

    def test_aliases(self):
        g = Genome({"chr1": 10}, chrom_aliases={"1": "chr1"})
        assert g.resolve("1") == "chr1"
        assert g.resolve("chr1") == "chr1"
        assert g.resolve("2") is None
        assert "1" in g

    def test_alias_to_unknown_chromosome(self):
        with pytest.raises(UnknownChromosomeError):
            Genome({"chr1": 10}, chrom_aliases={"1": "chr2"})

    def test_empty_genome(self):
        with pytest.raises(EmptyDataError):
            Genome({})

    def test_non_positive_length(self):
        with pytest.raises(InvalidParameterError):
            Genome({"chr1": 0})

    def test_parse_chrom_aliases(self):
        assert parse_chrom_aliases(["1:chr1", " MT : chrM "]) == {"1": "chr1", "MT": "chrM"}
        with pytest.raises(InvalidParameterError):
            parse_chrom_aliases(["chr1"])


# ============================================================================
# GenomicInterval
# ============================================================================


class TestGenomicInterval:

    def test_length_and_str(self):
        interval = iv("chr1", 10, 25)
        assert interval.length == 15
        assert str(interval) == "chr1:10-25"

    def test_invalid_bounds(self):
        with pytest.raises(InvalidParameterError):
            GenomicInterval("chr1", -1, 5)
        with pytest.raises(InvalidParameterError):
            GenomicInterval("chr1", 10, 5)

    def test_strand_is_dropped(self):
        assert GenomicInterval("chr1", 1, 5, "-").on_plus_strand() == iv("chr1", 1, 5)

    def test_half_open_overlap(self):
        assert iv("chr1", 0, 10).overlaps(iv("chr1", 9, 20))
        assert not iv("chr1", 0, 10).overlaps(iv("chr1", 10, 20))
        assert not iv("chr1", 0, 10).overlaps(iv("chr2", 0, 10))


# ============================================================================
# Construction
# ============================================================================


class TestIntervalSetConstruction:

    def test_merging_coalesces_overlapping_and_abutting(self, genome):
        s = IntervalSet.merging(genome, [iv("chr1", 50, 60), iv("chr1", 0, 10), iv("chr1", 10, 20), iv("chr1", 5, 15)])
        assert s.to_list() == [iv("chr1", 0, 20), iv("chr1", 50, 60)]
        assert s.is_merged

    def test_sorted_keeps_overlaps(self, genome):
        s = IntervalSet.sorted(genome, [iv("chr1", 5, 15), iv("chr1", 0, 10)])
        assert s.to_list() == [iv("chr1", 0, 10), iv("chr1", 5, 15)]
        assert not s.is_merged

    def test_genome_order_iteration(self, genome):
        s = IntervalSet.merging(genome, [iv("chr3", 0, 1), iv("chr1", 0, 1), iv("chr2", 0, 1)])
        assert s.chromosomes() == ["chr1", "chr2", "chr3"]
        assert len(s) == 3

    def test_unknown_chromosome(self, genome):
        with pytest.raises(UnknownChromosomeError):
            IntervalSet.merging(genome, [iv("chrX", 0, 10)])

    def test_end_beyond_chromosome(self, genome):
        with pytest.raises(ValidationError):
            IntervalSet.merging(genome, [iv("chr3", 0, 301)])

    def test_whole_genome_and_empty(self, genome):
        assert IntervalSet.whole_genome(genome).total_length() == genome.total_length
        assert len(IntervalSet.empty(genome)) == 0

    def test_frame_roundtrip(self, genome):
        df = pd.DataFrame({"chr": ["chr2", "chr1"], "start": [5, 1], "end": [9, 3]})
        s = IntervalSet.from_frame(genome, df)
        out = s.to_frame()
        assert out["chr"].tolist() == ["chr1", "chr2"]
        assert out["start"].tolist() == [1, 5]

    def test_arrays_are_read_only(self, genome):
        s = IntervalSet.merging(genome, [iv("chr1", 0, 10)])
        starts, _ = s.ranges("chr1")
        with pytest.raises(ValueError):
            starts[0] = 5

    def test_equality(self, genome):
        a = IntervalSet.merging(genome, [iv("chr1", 0, 10), iv("chr1", 5, 20)])
        b = IntervalSet.merging(genome, [iv("chr1", 0, 20)])
        assert a == b
        assert a != IntervalSet.sorted(genome, [iv("chr1", 0, 20)])


# ============================================================================
# Queries
# ============================================================================


class TestIntervalSetQueries:

    def test_overlaps_sorted_set_with_long_interval(self, genome):
        # second interval starts later but the first one reaches further
        s = IntervalSet.sorted(genome, [iv("chr1", 0, 100), iv("chr1", 10, 20)])
        assert s.overlaps(iv("chr1", 50, 60))
        assert not s.overlaps(iv("chr1", 100, 110))

    def test_includes(self, background):
        assert background.includes(iv("chr1", 400, 700))
        assert background.includes(iv("chr1", 450, 470))
        assert not background.includes(iv("chr1", 150, 450))
        assert not background.includes(iv("chr3", 0, 1))

    def test_includes_sorted(self, genome):
        s = IntervalSet.sorted(genome, [iv("chr1", 0, 100), iv("chr1", 10, 20)])
        assert s.includes(iv("chr1", 15, 90))
        assert not s.includes(iv("chr1", 15, 101))

    def test_filter_included(self, background, input_regions):
        outside = iv("chr1", 190, 210)
        assert background.filter_included(input_regions + [outside]) == input_regions


# ============================================================================
# Set operations
# ============================================================================


class TestIntervalSetOperations:

    def test_complement(self, genome):
        s = IntervalSet.merging(genome, [iv("chr1", 0, 10), iv("chr1", 990, 1000), iv("chr2", 100, 200)])
        comp = s.complement()
        assert comp.to_list() == [
            iv("chr1", 10, 990),
            iv("chr2", 0, 100),
            iv("chr2", 200, 500),
            iv("chr3", 0, 300),
        ]

    def test_union(self, genome):
        a = IntervalSet.merging(genome, [iv("chr1", 0, 10)])
        b = IntervalSet.merging(genome, [iv("chr1", 5, 20), iv("chr2", 0, 1)])
        assert a.union(b).to_list() == [iv("chr1", 0, 20), iv("chr2", 0, 1)]

    def test_intersect_truncates(self, background):
        query = IntervalSet.sorted(background.genome, [iv("chr1", 150, 450), iv("chr2", 0, 50)])
        result = query.intersect(background)
        assert result.to_list() == [iv("chr1", 150, 200), iv("chr1", 400, 450)]
        assert not result.is_merged

    def test_intersect_drops_empty_fragments(self, genome):
        a = IntervalSet.merging(genome, [iv("chr1", 0, 10)])
        b = IntervalSet.merging(genome, [iv("chr1", 10, 20)])
        assert len(a.intersect(b)) == 0

    def test_intersect_matches_bruteforce(self, genome):
        gen = np.random.default_rng(1)
        a_items, b_items = [], []
        for _ in range(40):
            s = int(gen.integers(0, 950))
            a_items.append(iv("chr1", s, s + int(gen.integers(1, 50))))
            s = int(gen.integers(0, 950))
            b_items.append(iv("chr1", s, s + int(gen.integers(1, 50))))
        a = IntervalSet.sorted(genome, a_items)
        b = IntervalSet.merging(genome, b_items)

        expected = []
        for x in a:
            for y in b:
                start, end = max(x.start, y.start), min(x.end, y.end)
                if start < end:
                    expected.append(iv("chr1", start, end))
        assert a.intersect(b).to_list() == sorted(expected)


# ============================================================================
# Metric helpers
# ============================================================================


class TestOverlapCounting:

    @pytest.fixture
    def pair(self, genome):
        a = IntervalSet.sorted(genome, [iv("chr1", 0, 10), iv("chr1", 20, 30), iv("chr1", 100, 110), iv("chr2", 0, 5)])
        b = IntervalSet.merging(genome, [iv("chr1", 5, 25), iv("chr1", 112, 120)])
        return a, b

    def test_overlap_number(self, pair):
        a, b = pair
        assert a.overlap_number(b) == 2
        assert b.overlap_number(a) == 1

    def test_overlap_number_with_flank(self, pair):
        a, b = pair
        assert a.overlap_number(b, flank=2) == 2
        assert a.overlap_number(b, flank=3) == 3

    def test_intersection_number(self, pair, genome):
        a, b = pair
        assert a.intersection_number(b) == 2
        # one b interval spans two a intervals
        assert b.intersection_number(a) == 2

    def test_intersection_number_sorted_other(self, genome):
        a = IntervalSet.merging(genome, [iv("chr1", 0, 100)])
        b = IntervalSet.sorted(genome, [iv("chr1", 0, 50), iv("chr1", 10, 20), iv("chr1", 200, 300)])
        assert a.intersection_number(b) == 2

    def test_negative_flank(self, pair):
        a, b = pair
        with pytest.raises(InvalidParameterError):
            a.overlap_number(b, flank=-1)


# ============================================================================
# PyRanges view
# ============================================================================


class TestPyRangesView:

    def test_view_is_built_once(self, background):
        gr = background.to_pyranges()
        assert background.to_pyranges() is gr
        assert len(gr) == len(background)
        assert gr.df[["Start", "End"]].values.tolist() == [[0, 200], [400, 700], [100, 400]]

    def test_merge_of_sorted_set(self, genome):
        s = IntervalSet.sorted(genome, [iv("chr1", 30, 40), iv("chr1", 0, 10), iv("chr1", 10, 20), iv("chr2", 5, 9)])
        merged = s.merge()
        assert merged.is_merged
        assert merged.to_list() == [iv("chr1", 0, 20), iv("chr1", 30, 40), iv("chr2", 5, 9)]

    def test_empty_sets(self, genome):
        empty = IntervalSet.empty(genome)
        full = IntervalSet.whole_genome(genome)
        assert empty.complement() == full
        assert len(full.complement()) == 0
        assert len(full.intersect(empty)) == 0
        assert len(empty.intersect(full)) == 0
        assert empty.overlap_number(full) == 0
        assert full.intersection_number(empty) == 0
        assert len(IntervalSet.sorted(genome, []).merge()) == 0
