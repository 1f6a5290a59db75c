"""
Genomic interval sets.

Provides the interval algebra the shuffling engine relies on: merging,
intersection, inclusion checks, complement and overlap counting. Intervals
are half-open, 0-based ``[start, end)`` and strand is ignored.

Two flavors are supported:

- *merging* sets: overlapping (and abutting) intervals are coalesced, so
  ranges within a chromosome are disjoint and both starts and ends are
  sorted.
- *sorted* sets: overlaps are preserved, only start ordering is guaranteed.

Set algebra and overlap counting (merge, intersect, subtract, overlap) run on
pyranges. Per chromosome numpy start/end arrays are kept next to it for the
point queries the samplers run for every drawn candidate.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd
import pyranges as pr

from .exceptions import InvalidParameterError, UnknownChromosomeError, ValidationError
from .genome import Genome

logger = logging.getLogger(__name__)

_EMPTY = np.zeros(0, dtype=np.int64)


@dataclass(frozen=True, order=True)
class GenomicInterval:
    """Half-open genomic interval ``[start, end)`` on a chromosome."""

    chrom: str
    start: int
    end: int
    strand: str = "+"

    def __post_init__(self):
        if self.start < 0:
            raise InvalidParameterError("start", self.start, ">= 0")
        if self.end < self.start:
            raise InvalidParameterError("end", self.end, f">= start ({self.start})")
        if self.strand not in ("+", "-", "."):
            raise InvalidParameterError("strand", self.strand, "'+', '-' or '.'")

    @property
    def length(self) -> int:
        return self.end - self.start

    def on_plus_strand(self) -> "GenomicInterval":
        if self.strand == "+":
            return self
        return GenomicInterval(self.chrom, self.start, self.end, "+")

    def overlaps(self, other: "GenomicInterval") -> bool:
        return self.chrom == other.chrom and self.start < other.end and other.start < self.end

    def __str__(self):
        return f"{self.chrom}:{self.start}-{self.end}"


def _sort_arrays(starts: np.ndarray, ends: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    order = np.lexsort((ends, starts))
    return starts[order], ends[order]


def _to_pyranges(frame: pd.DataFrame) -> "pr.PyRanges":
    """PyRanges from a ``chr``/``start``/``end`` frame."""
    return pr.PyRanges(frame.rename(columns={"chr": "Chromosome", "start": "Start", "end": "End"}))


def _pyranges_arrays(gr: "pr.PyRanges") -> Dict[str, Tuple[np.ndarray, np.ndarray]]:
    """Per chromosome start-sorted (starts, ends) arrays of a PyRanges."""
    if len(gr) == 0:
        return {}
    df = gr.df
    ranges = {}
    for chrom, grp in df.groupby(df["Chromosome"].astype(str), sort=False):
        ranges[chrom] = _sort_arrays(grp["Start"].to_numpy(dtype=np.int64), grp["End"].to_numpy(dtype=np.int64))
    return ranges


def _ranges_frame(ranges: Dict[str, Tuple[np.ndarray, np.ndarray]]) -> pd.DataFrame:
    chroms, starts, ends = [], [], []
    for chrom, (chrom_starts, chrom_ends) in ranges.items():
        chroms.extend([chrom] * len(chrom_starts))
        starts.append(np.asarray(chrom_starts, dtype=np.int64))
        ends.append(np.asarray(chrom_ends, dtype=np.int64))
    return pd.DataFrame({
        "chr": chroms,
        "start": np.concatenate(starts) if starts else _EMPTY,
        "end": np.concatenate(ends) if ends else _EMPTY,
    })


def _merge_ranges(ranges: Dict[str, Tuple[np.ndarray, np.ndarray]]) -> Dict[str, Tuple[np.ndarray, np.ndarray]]:
    """Coalesce overlapping and abutting (bookended) ranges."""
    frame = _ranges_frame(ranges)
    if frame.empty:
        return {}
    return _pyranges_arrays(_to_pyranges(frame).merge())


class IntervalSet:
    """Immutable, chromosome indexed collection of genomic intervals.

    Use :meth:`merging` or :meth:`sorted` to construct.
    """

    def __init__(
        self,
        genome: Genome,
        ranges: Dict[str, Tuple[np.ndarray, np.ndarray]],
        merged: bool,
    ):
        self.genome = genome
        self._merged = merged
        self._starts: Dict[str, np.ndarray] = {}
        self._ends: Dict[str, np.ndarray] = {}
        # running max of ends, equals ends for merged sets
        self._max_ends: Dict[str, np.ndarray] = {}
        self._size = 0
        self._gr = None

        for chrom in genome.chromosomes:
            if chrom not in ranges:
                continue
            starts, ends = ranges[chrom]
            if len(starts) == 0:
                continue
            starts = np.asarray(starts, dtype=np.int64)
            ends = np.asarray(ends, dtype=np.int64)
            starts.setflags(write=False)
            ends.setflags(write=False)
            self._starts[chrom] = starts
            self._ends[chrom] = ends
            self._max_ends[chrom] = ends if merged else np.maximum.accumulate(ends)
            self._size += len(starts)

        unknown = set(ranges) - set(genome.chromosomes)
        if unknown:
            raise UnknownChromosomeError(sorted(unknown)[0], genome.presentable_name())

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def merging(cls, genome: Genome, intervals: Iterable[GenomicInterval]) -> "IntervalSet":
        """Create a set where overlapping intervals are merged."""
        return cls._build(genome, intervals, merged=True)

    @classmethod
    def sorted(cls, genome: Genome, intervals: Iterable[GenomicInterval]) -> "IntervalSet":
        """Create a set which keeps overlapping intervals."""
        return cls._build(genome, intervals, merged=False)

    @classmethod
    def create(cls, genome: Genome, intervals: Iterable[GenomicInterval], merge: bool) -> "IntervalSet":
        return cls._build(genome, intervals, merged=merge)

    @classmethod
    def empty(cls, genome: Genome, merged: bool = True) -> "IntervalSet":
        return cls(genome, {}, merged)

    @classmethod
    def whole_genome(cls, genome: Genome) -> "IntervalSet":
        return cls(
            genome,
            {chrom: (np.array([0]), np.array([length])) for chrom, length in genome.items()},
            merged=True,
        )

    @classmethod
    def from_arrays(
        cls,
        genome: Genome,
        ranges: Dict[str, Tuple[np.ndarray, np.ndarray]],
        merge: bool = True,
    ) -> "IntervalSet":
        """Create from per chromosome (starts, ends) arrays in any order."""
        prepared = {}
        for chrom, (starts, ends) in ranges.items():
            starts = np.asarray(starts, dtype=np.int64)
            ends = np.asarray(ends, dtype=np.int64)
            cls._check_bounds(genome, chrom, starts, ends)
            prepared[chrom] = _sort_arrays(starts, ends)
        if merge:
            prepared = _merge_ranges(prepared)
        return cls(genome, prepared, merged=merge)

    @classmethod
    def _from_pyranges(cls, genome: Genome, gr: "pr.PyRanges", merged: bool) -> "IntervalSet":
        return cls(genome, _pyranges_arrays(gr), merged=merged)

    @classmethod
    def from_frame(
        cls,
        genome: Genome,
        df: pd.DataFrame,
        merge: bool = True,
        chrom_col: str = "chr",
        start_col: str = "start",
        end_col: str = "end",
    ) -> "IntervalSet":
        ranges = {}
        for chrom, grp in df.groupby(chrom_col, sort=False):
            ranges[str(chrom)] = (grp[start_col].to_numpy(), grp[end_col].to_numpy())
        return cls.from_arrays(genome, ranges, merge=merge)

    @classmethod
    def _build(cls, genome: Genome, intervals: Iterable[GenomicInterval], merged: bool) -> "IntervalSet":
        grouped: Dict[str, Tuple[List[int], List[int]]] = {}
        for interval in intervals:
            starts, ends = grouped.setdefault(interval.chrom, ([], []))
            starts.append(interval.start)
            ends.append(interval.end)
        return cls.from_arrays(
            genome,
            {chrom: (np.array(s, dtype=np.int64), np.array(e, dtype=np.int64)) for chrom, (s, e) in grouped.items()},
            merge=merged,
        )

    @staticmethod
    def _check_bounds(genome: Genome, chrom: str, starts: np.ndarray, ends: np.ndarray):
        if chrom not in genome.chromosomes:
            raise UnknownChromosomeError(chrom, genome.presentable_name())
        if len(starts) == 0:
            return
        if np.any(starts < 0) or np.any(ends < starts):
            raise ValidationError(f"Invalid intervals on {chrom}: expected 0 <= start <= end")
        chrom_len = genome.length(chrom)
        if ends.max() > chrom_len:
            raise ValidationError(
                f"Interval end {int(ends.max())} is out of chromosome '{chrom}' range [0, {chrom_len}]"
            )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def is_merged(self) -> bool:
        return self._merged

    def __len__(self) -> int:
        return self._size

    def size(self, chrom: str) -> int:
        return len(self._starts.get(chrom, _EMPTY))

    def chromosomes(self) -> List[str]:
        """Chromosomes with at least one interval, in genome order."""
        return list(self._starts.keys())

    def ranges(self, chrom: str) -> Tuple[np.ndarray, np.ndarray]:
        return self._starts.get(chrom, _EMPTY), self._ends.get(chrom, _EMPTY)

    def __iter__(self) -> Iterator[GenomicInterval]:
        for chrom in self._starts:
            for start, end in zip(self._starts[chrom].tolist(), self._ends[chrom].tolist()):
                yield GenomicInterval(chrom, start, end)

    def to_list(self) -> List[GenomicInterval]:
        return list(self)

    def total_length(self) -> int:
        """Sum of interval lengths (covered basepairs for merged sets)."""
        return int(sum(int((self._ends[c] - self._starts[c]).sum()) for c in self._starts))

    def to_frame(self) -> pd.DataFrame:
        return _ranges_frame({c: (self._starts[c], self._ends[c]) for c in self._starts})

    def to_pyranges(self) -> "pr.PyRanges":
        """Unstranded PyRanges view, built once per set."""
        if self._gr is None:
            self._gr = _to_pyranges(self.to_frame())
        return self._gr

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, IntervalSet):
            return False
        if self._merged != other._merged or self.chromosomes() != other.chromosomes():
            return False
        return all(
            np.array_equal(self._starts[c], other._starts[c]) and np.array_equal(self._ends[c], other._ends[c])
            for c in self._starts
        )

    __hash__ = None

    def __repr__(self):
        flavor = "merging" if self._merged else "sorted"
        return f"<IntervalSet({flavor}, intervals={self._size}, chromosomes={len(self._starts)})>"

    # ------------------------------------------------------------------
    # Point queries
    # ------------------------------------------------------------------

    def overlaps(self, interval: GenomicInterval) -> bool:
        """True if any interval overlaps the given one."""
        starts = self._starts.get(interval.chrom)
        if starts is None:
            return False
        j = int(np.searchsorted(starts, interval.end, side="left"))
        return j > 0 and int(self._max_ends[interval.chrom][j - 1]) > interval.start

    def includes(self, interval: GenomicInterval) -> bool:
        """True if a single interval of the set fully contains the given one."""
        starts = self._starts.get(interval.chrom)
        if starts is None:
            return False
        ends = self._ends[interval.chrom]
        i = int(np.searchsorted(starts, interval.start, side="right"))
        if i == 0:
            return False
        if self._merged:
            return int(ends[i - 1]) >= interval.end
        return bool(np.any(ends[:i] >= interval.end))

    # ------------------------------------------------------------------
    # Set operations
    # ------------------------------------------------------------------

    def merge(self) -> "IntervalSet":
        if self._merged:
            return self
        if len(self) == 0:
            return IntervalSet.empty(self.genome, merged=True)
        return IntervalSet._from_pyranges(self.genome, self.to_pyranges().merge(), merged=True)

    def union(self, other: "IntervalSet") -> "IntervalSet":
        ranges = {}
        for chrom in self.genome.chromosomes:
            s1, e1 = self.ranges(chrom)
            s2, e2 = other.ranges(chrom)
            if len(s1) or len(s2):
                ranges[chrom] = (np.concatenate([s1, s2]), np.concatenate([e1, e2]))
        return IntervalSet.from_arrays(self.genome, ranges, merge=True)

    def complement(self) -> "IntervalSet":
        """Merged set of genome positions not covered by this set."""
        merged = self.merge()
        chrom_frame = IntervalSet.whole_genome(self.genome).to_frame()
        covered = chrom_frame["chr"].isin(merged.chromosomes())

        ranges = {}
        if covered.any():
            gaps = _to_pyranges(chrom_frame[covered]).subtract(merged.to_pyranges())
            ranges.update(_pyranges_arrays(gaps))
        for row in chrom_frame[~covered].itertuples(index=False):
            ranges[row.chr] = (np.array([row.start]), np.array([row.end]))
        return IntervalSet(self.genome, ranges, merged=True)

    def intersect(self, other: "IntervalSet") -> "IntervalSet":
        """Truncate each interval by ``other``, empty fragments are dropped.

        The result keeps this set's flavor (merging or sorted).
        """
        other = other.merge()
        if len(self) == 0 or len(other) == 0:
            return IntervalSet.empty(self.genome, merged=self._merged)
        fragments = self.to_pyranges().intersect(other.to_pyranges())
        return IntervalSet._from_pyranges(self.genome, fragments, merged=self._merged)

    def filter_included(self, intervals: Iterable[GenomicInterval]) -> List[GenomicInterval]:
        """Keep only intervals fully included in this set."""
        return [it for it in intervals if self.includes(it)]

    # ------------------------------------------------------------------
    # Metrics helpers
    # ------------------------------------------------------------------

    def _flanked_pyranges(self, flank: int) -> "pr.PyRanges":
        if flank == 0:
            return self.to_pyranges()
        frame = self.to_frame()
        frame["start"] = (frame["start"] - flank).clip(lower=0)
        frame["end"] = frame["end"] + flank
        return _to_pyranges(frame)

    def overlap_number(self, other: "IntervalSet", flank: int = 0) -> int:
        """Number of intervals of this set overlapping at least one interval of ``other``.

        Each interval is flanked by ``flank`` bp on both sides first (start
        clipped at 0). Same count as ``bedtools intersect -u``.
        """
        if flank < 0:
            raise InvalidParameterError("flank", flank, ">= 0")
        if len(self) == 0 or len(other) == 0:
            return 0
        return len(self._flanked_pyranges(flank).overlap(other.to_pyranges()))

    def intersection_number(self, other: "IntervalSet", flank: int = 0) -> int:
        """Number of non-empty fragments of (this AND other)."""
        if flank < 0:
            raise InvalidParameterError("flank", flank, ">= 0")
        if len(self) == 0 or len(other) == 0:
            return 0
        return len(self._flanked_pyranges(flank).intersect(other.to_pyranges()))
