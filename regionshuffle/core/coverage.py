"""
Covered positions background (e.g. CpG offsets from a methylome table).

A CoverageIndex stores, for each chromosome, a strictly increasing array of
covered offsets plus a prefix sum over covered-position counts. Drawing a
uniform integer from ``[0, depth)`` and resolving it through the prefix sum
selects a covered position with probability proportional to coverage
density, so chromosomes with more covered positions are drawn more often.

Chromosomes without covered positions are excluded from the prefix sum,
otherwise the table would contain duplicated boundary values and the binary
search would resolve draws into empty chromosomes.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import InvalidParameterError, RegionShuffleError, UnknownChromosomeError
from .genome import Genome
from .intervals import GenomicInterval, IntervalSet

logger = logging.getLogger(__name__)

_EMPTY = np.zeros(0, dtype=np.int64)


class CoverageIndexBuilder:
    """Accumulates covered offsets, then freezes them into a CoverageIndex.

    Example::

        builder = CoverageIndexBuilder(genome)
        builder.add("chr1", 10)
        builder.add_many("chr2", [5, 7, 9])
        index = builder.build()
    """

    def __init__(self, genome: Genome):
        self.genome = genome
        self._chunks: Dict[str, List[np.ndarray]] = {}
        self._built = False

    def add(self, chrom: str, offset: int) -> "CoverageIndexBuilder":
        return self.add_many(chrom, [offset])

    def add_many(self, chrom: str, offsets: Iterable[int]) -> "CoverageIndexBuilder":
        if self._built:
            raise RegionShuffleError("CoverageIndexBuilder was already built, create a new builder")
        if chrom not in self.genome.chromosomes:
            raise UnknownChromosomeError(chrom, self.genome.presentable_name())
        arr = np.asarray(list(offsets) if not isinstance(offsets, np.ndarray) else offsets, dtype=np.int64)
        if len(arr) == 0:
            return self
        chrom_len = self.genome.length(chrom)
        if arr.min() < 0 or arr.max() >= chrom_len:
            raise InvalidParameterError(
                f"offset on {chrom}", int(arr.min() if arr.min() < 0 else arr.max()), f"[0, {chrom_len})"
            )
        self._chunks.setdefault(chrom, []).append(arr)
        return self

    def build(self, unique: bool = True) -> "CoverageIndex":
        """Freeze collected offsets.

        Args:
            unique: Drop duplicated offsets. When False duplicates must not
                be present, they would break the strictly increasing order.
        """
        if self._built:
            raise RegionShuffleError("CoverageIndexBuilder was already built, create a new builder")
        self._built = True

        offsets = {}
        for chrom, chunks in self._chunks.items():
            arr = np.concatenate(chunks)
            if unique:
                arr = np.unique(arr)
            else:
                arr = np.sort(arr, kind="stable")
                if len(arr) > 1 and np.any(np.diff(arr) == 0):
                    raise InvalidParameterError(
                        f"offsets on {chrom}", "duplicated values", "unique offsets"
                    )
            offsets[chrom] = arr
        self._chunks = {}
        return CoverageIndex(self.genome, offsets)


class CoverageIndex:
    """Immutable per chromosome covered offsets with coverage-weighted draws.

    Read-only after construction, safe to share between worker threads.
    """

    def __init__(self, genome: Genome, offsets: Dict[str, np.ndarray]):
        self.genome = genome
        self._offsets: Dict[str, np.ndarray] = {}
        for chrom in genome.chromosomes:
            arr = offsets.get(chrom)
            if arr is None or len(arr) == 0:
                continue
            arr = np.asarray(arr, dtype=np.int64)
            arr.setflags(write=False)
            self._offsets[chrom] = arr

        # covered chromosomes only, in genome order
        self._covered_chroms: List[str] = list(self._offsets.keys())
        self._prefix_sum = np.cumsum(
            [len(self._offsets[c]) for c in self._covered_chroms], dtype=np.int64
        )
        self._prefix_sum.setflags(write=False)

    @classmethod
    def from_frame(
        cls,
        genome: Genome,
        df: pd.DataFrame,
        chrom_col: str = "chr",
        offset_col: str = "offset",
    ) -> "CoverageIndex":
        builder = CoverageIndexBuilder(genome)
        for chrom, grp in df.groupby(chrom_col, sort=False):
            builder.add_many(str(chrom), grp[offset_col].to_numpy())
        return builder.build()

    @property
    def depth(self) -> int:
        """Total number of covered positions."""
        return int(self._prefix_sum[-1]) if len(self._prefix_sum) else 0

    @property
    def covered_chromosomes(self) -> List[str]:
        return list(self._covered_chroms)

    @property
    def prefix_sum(self) -> np.ndarray:
        return self._prefix_sum

    def offsets(self, chrom: str) -> np.ndarray:
        return self._offsets.get(chrom, _EMPTY)

    def size(self, chrom: str) -> int:
        return len(self._offsets.get(chrom, _EMPTY))

    def coverage(self, interval: GenomicInterval) -> int:
        """Number of covered positions inside ``[start, end)``."""
        offsets = self._offsets.get(interval.chrom)
        if offsets is None:
            return 0
        lo = np.searchsorted(offsets, interval.start, side="left")
        hi = np.searchsorted(offsets, interval.end, side="left")
        return int(hi - lo)

    def locate(self, r: int) -> Tuple[str, int]:
        """Resolve a global draw ``r`` in ``[0, depth)`` to (chromosome, local index)."""
        if r < 0 or r >= self.depth:
            raise InvalidParameterError("r", r, f"[0, {self.depth})")
        j = int(np.searchsorted(self._prefix_sum, r, side="right"))
        block_start = int(self._prefix_sum[j - 1]) if j > 0 else 0
        return self._covered_chroms[j], r - block_start

    def draw(self, rng: np.random.Generator) -> Tuple[str, int]:
        return self.locate(int(rng.integers(self.depth)))

    def region_from(
        self,
        chrom: str,
        start_idx: int,
        covered_number: int,
        end_shift: int = 2,
    ) -> Optional[GenomicInterval]:
        """Interval spanning ``covered_number`` covered positions from ``start_idx``.

        The end is placed ``end_shift`` bp after the last covered position,
        but never beyond the next covered position. Returns None when the
        positions run past the chromosome's covered offsets or the end is
        past the chromosome length.
        """
        if end_shift <= 0:
            raise InvalidParameterError("end_shift", end_shift, "> 0")
        offsets = self._offsets.get(chrom)
        if offsets is None or covered_number <= 0:
            return None
        n = len(offsets)
        last_idx = start_idx + covered_number - 1
        if start_idx < 0 or last_idx >= n:
            return None

        end = int(offsets[last_idx]) + end_shift
        if last_idx + 1 < n:
            end = min(end, int(offsets[last_idx + 1]))
        if end > self.genome.length(chrom):
            return None
        return GenomicInterval(chrom, int(offsets[start_idx]), end)

    def filter(self, allowed: IntervalSet) -> "CoverageIndex":
        """Keep only positions inside the allowed area."""
        allowed = allowed.merge()
        filtered = {}
        for chrom, offsets in self._offsets.items():
            starts, ends = allowed.ranges(chrom)
            if len(starts) == 0:
                continue
            idx = np.searchsorted(starts, offsets, side="right") - 1
            keep = (idx >= 0) & (ends[np.maximum(idx, 0)] > offsets)
            filtered[chrom] = offsets[keep]
        return CoverageIndex(self.genome, filtered)

    def to_intervals(self, flank: int) -> IntervalSet:
        """Merged set of ``[offset - flank, offset + flank)`` windows clipped to chromosomes."""
        if flank <= 0:
            raise InvalidParameterError("flank", flank, "> 0")
        ranges = {}
        for chrom, offsets in self._offsets.items():
            ranges[chrom] = (
                np.maximum(offsets - flank, 0),
                np.minimum(offsets + flank, self.genome.length(chrom)),
            )
        return IntervalSet.from_arrays(self.genome, ranges, merge=True)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "chr": [c for c in self._covered_chroms for _ in range(len(self._offsets[c]))],
            "offset": np.concatenate(list(self._offsets.values())) if self._offsets else _EMPTY,
        })

    def __repr__(self):
        return f"<CoverageIndex(depth={self.depth}, chromosomes={len(self._covered_chroms)})>"
