"""
Sampling backgrounds and genome area filters.

Two background kinds are supported:

- uniform: a merged IntervalSet of allowed basepair ranges, regions are
  sampled by basepair length (whole genome when no background is given)
- coverage: a CoverageIndex of covered positions, regions are sampled by
  the number of covered positions they contain

Backgrounds are built once per run and are read-only afterwards.
"""

import logging
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from .coverage import CoverageIndex, CoverageIndexBuilder
from .exceptions import BackgroundMismatchError, EmptyDataError
from .genome import Genome
from .intervals import GenomicInterval, IntervalSet

logger = logging.getLogger(__name__)

Background = Union[IntervalSet, CoverageIndex]


# ============================================================================
# Genome area filters
# ============================================================================

def make_allowed_regions_filter(
    genome: Genome,
    allowed: Optional[IntervalSet] = None,
    masked: Optional[IntervalSet] = None,
) -> Optional[IntervalSet]:
    """Combine allowed and masked genome areas into a single merged filter.

    Returns ``allowed AND NOT masked``, whichever part is given, or None
    when neither is given.
    """
    if allowed is None and masked is None:
        return None

    allowed_part = allowed.merge() if allowed is not None else None
    masked_complement = masked.complement() if masked is not None else None
    if masked is not None:
        logger.info(f"Genome masked area: {len(masked.merge())} merged regions")

    if allowed_part is None:
        result = masked_complement
    elif masked_complement is None:
        result = allowed_part
    else:
        result = allowed_part.intersect(masked_complement)

    logger.info(f"Genome allowed area filter: {len(result)} regions, {result.total_length()} bp")
    return result


def filter_input_regions(
    regions: Sequence[GenomicInterval],
    allowed_filter: Optional[IntervalSet],
) -> List[GenomicInterval]:
    """Keep regions fully inside the allowed area.

    Raises:
        EmptyDataError: If no regions remain
    """
    if allowed_filter is None:
        result = list(regions)
    else:
        result = allowed_filter.filter_included(regions)
        logger.info(f"Input regions (all filters applied): {len(result)} regions of {len(regions)}")

    if not result:
        raise EmptyDataError("input regions (file is empty or all regions were removed by filters)")
    return result


# ============================================================================
# Uniform background
# ============================================================================

def build_uniform_background(
    genome: Genome,
    input_regions: Sequence[GenomicInterval] = (),
    background: Optional[IntervalSet] = None,
    allowed_filter: Optional[IntervalSet] = None,
    masked_filter: Optional[IntervalSet] = None,
    merge_regions_to_bg: bool = False,
    background_name: str = "background",
) -> IntervalSet:
    """Build a merged basepair background for length-based sampling.

    Args:
        genome: Genome the background belongs to
        input_regions: Regions to be shuffled, must be included in background
        background: Explicit background regions, whole genome when None
        allowed_filter: Restrict background to this area
        masked_filter: Exclude this area from background
        merge_regions_to_bg: Add input regions to background first
        background_name: Name used in error messages

    Returns:
        Merged IntervalSet
    """
    if background is not None:
        if merge_regions_to_bg and input_regions:
            background = background.union(IntervalSet.merging(genome, input_regions))
        else:
            background = background.merge()
        logger.info(f"Background regions: {len(background)} regions")
        ensure_background_includes(input_regions, background, background_name)
    else:
        background = IntervalSet.whole_genome(genome)
        logger.info(f"Background regions: Using whole genome as background. {len(background)} regions")

    if allowed_filter is not None:
        before = len(background)
        background = background.intersect(allowed_filter)
        logger.info(f"Background regions: Allowed regions: {len(background)} regions of {before}")

    if masked_filter is not None:
        before = len(background)
        background = background.intersect(masked_filter.complement())
        logger.info(f"Background regions: W/o masked regions: {len(background)} regions of {before}")

    return background


def ensure_background_includes(
    regions: Iterable[GenomicInterval],
    background: IntervalSet,
    background_name: str = "background",
):
    for region in regions:
        if not background.includes(region):
            raise BackgroundMismatchError(region, background_name, reason="include")
    logger.info("[OK] Background includes all input regions")


# ============================================================================
# Coverage background
# ============================================================================

def build_coverage_background(
    genome: Genome,
    coverage: Union[CoverageIndex, Mapping[str, Iterable[int]]],
    allowed_filter: Optional[IntervalSet] = None,
) -> CoverageIndex:
    """Build a coverage background, optionally restricted to the allowed area.

    ``coverage`` may be an already built index or a mapping of chromosome to
    0-based covered offsets (duplicates and order do not matter).
    """
    if isinstance(coverage, CoverageIndex):
        index = coverage
    else:
        builder = CoverageIndexBuilder(genome)
        for chrom, offsets in coverage.items():
            builder.add_many(chrom, offsets)
        index = builder.build(unique=True)
    logger.info(f"Background coverage: {index.depth} offsets")

    if allowed_filter is not None:
        filtered = index.filter(allowed_filter)
        logger.info(f"Background coverage (all filters applied): {filtered.depth} offsets of {index.depth}")
        index = filtered
    return index


def ensure_coverage_covers(
    regions: Iterable[GenomicInterval],
    coverage: CoverageIndex,
    background_name: str = "background",
):
    for region in regions:
        if coverage.coverage(region) <= 0:
            raise BackgroundMismatchError(region, background_name, reason="cover")
    logger.info("[OK] Regions matches background coverage")


def make_bed_background_from_coverage(
    coverage: CoverageIndex,
    flank: int,
    input_regions: Sequence[GenomicInterval] = (),
) -> IntervalSet:
    """Convert covered offsets to merged ``[offset - flank, offset + flank)`` windows."""
    background = coverage.to_intervals(flank)
    if input_regions:
        background = background.union(IntervalSet.merging(coverage.genome, input_regions))
    logger.info(f"Background from coverage (flank={flank}): {len(background)} regions")
    return background


def loi_background_overlap(loi: IntervalSet, background: Background) -> int:
    """Number of LOI regions touching the background."""
    if isinstance(background, CoverageIndex):
        return sum(1 for interval in loi if background.coverage(interval) > 0)
    return loi.overlap_number(background)
