"""
Shared genomic file utilities for RegionShuffle.

Loading of chrom.sizes, BED regions and covered-position tables into
genome-aware structures, plus parsing of 'chromosome:start-end' strings.
Records on chromosomes missing from the genome (unplaced contigs etc.) are
skipped with a warning.
"""

import io
import logging
import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .coverage import CoverageIndex, CoverageIndexBuilder
from .exceptions import (
    BedFileFormatError,
    ChromSizesFormatError,
    CoverageFileFormatError,
    InvalidLocationError,
)
from .genome import Genome
from .intervals import GenomicInterval, IntervalSet

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


# ============================================================================
# Column utilities
# ============================================================================

CHROM_COLS = ["chr", "chrom", "chromosome", "seqnames", "#chr"]
START_COLS = ["start", "chromStart", "peak_start"]
END_COLS = ["end", "chromEnd", "peak_end"]
OFFSET_COLS = ["offset", "pos", "position", "start"]

BED_COLS = ["chr", "start", "end", "name", "score", "strand",
            "thickStart", "thickEnd", "itemRgb", "blockCount", "blockSizes", "blockStarts"]


def detect_column(df: pd.DataFrame, candidates: List[str], required: bool = False) -> Optional[str]:
    """Find the first matching column name from a list of candidates.

    Parameters
    ----------
    df : pd.DataFrame
    candidates : list of str
        Column names to search for (case-insensitive).
    required : bool
        If True, raise ValueError when not found.

    Returns
    -------
    str or None
    """
    cols_lower = {str(c).lower(): c for c in df.columns}
    for cand in candidates:
        if cand.lower() in cols_lower:
            return cols_lower[cand.lower()]
    if required:
        raise ValueError(
            f"Could not find any of {candidates} in columns: {list(df.columns)}"
        )
    return None


def standardize_region_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Rename common column variants to chr, start, end."""
    mapping = {}
    for std_name, candidates in [("chr", CHROM_COLS), ("start", START_COLS), ("end", END_COLS)]:
        col = detect_column(df, candidates)
        if col and col != std_name:
            mapping[col] = std_name
    return df.rename(columns=mapping)


def _read_text_lines(path: PathLike) -> io.StringIO:
    """File content without comments and UCSC 'track' / 'browser' lines."""
    with open(path, "r") as fh:
        lines = [
            line for line in fh
            if line.strip() and not line.startswith(("track", "browser", "#"))
        ]
    return io.StringIO("".join(lines))


def _has_header(buf: io.StringIO, sep: str = "\t") -> bool:
    first = buf.readline()
    buf.seek(0)
    fields = first.rstrip("\n").split(sep)
    if len(fields) < 2:
        return False
    return not fields[1].strip().lstrip("-").isdigit()


# ============================================================================
# Chromosome sizes
# ============================================================================

_CHROM_ORDER = {f"chr{i}": i for i in range(1, 23)}
_CHROM_ORDER.update({"chrX": 23, "chrY": 24, "chrM": 25, "chrMT": 25})


def sort_chromosomes(chroms: List[str]) -> List[str]:
    """Sort chromosome names in natural order (1,2,...,22,X,Y,M)."""
    def _sort_key(c: str) -> Tuple[int, str]:
        c_stripped = c.replace("chr", "") if c.startswith("chr") else c
        if c in _CHROM_ORDER:
            return (_CHROM_ORDER[c], c)
        try:
            return (int(c_stripped), c)
        except ValueError:
            return (100, c)
    return sorted(chroms, key=_sort_key)


def load_chrom_sizes(path: PathLike, natural_sort: bool = False) -> Dict[str, int]:
    """Load a two column chrom.sizes file.

    Parameters
    ----------
    path : str or Path
        chrom.sizes file (chromosome, length), tab separated.
    natural_sort : bool
        Reorder chromosomes naturally instead of keeping file order.

    Returns
    -------
    dict
        Chromosome -> length, in genome order.
    """
    try:
        df = pd.read_csv(path, sep="\t", header=None, comment="#", usecols=[0, 1], dtype={0: str})
        lengths = pd.to_numeric(df[1], errors="raise").astype(np.int64)
    except (ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ChromSizesFormatError(f"Cannot parse chromosome sizes file {path}: {e}") from e

    sizes = dict(zip(df[0].astype(str), lengths.tolist()))
    if not sizes:
        raise ChromSizesFormatError(f"Chromosome sizes file {path} is empty")
    if natural_sort:
        sizes = {c: sizes[c] for c in sort_chromosomes(list(sizes))}
    return sizes


def load_genome(
    path: PathLike,
    build: Optional[str] = None,
    chrom_aliases: Optional[Mapping[str, str]] = None,
) -> Genome:
    path = Path(path)
    if build is None:
        build = path.name.split(".chrom.sizes")[0].split(".")[0]
    genome = Genome(load_chrom_sizes(path), build=build, chrom_aliases=chrom_aliases)
    logger.info(f"Genome {genome.build}: {len(genome)} chromosomes, {genome.total_length} bp")
    return genome


# ============================================================================
# BED regions
# ============================================================================

def load_bed_frame(path: PathLike) -> pd.DataFrame:
    """Load a BED (or headered TSV) file into a DataFrame with chr, start, end.

    Strand and other extra columns are kept when present but not used.
    """
    buf = _read_text_lines(path)
    if not buf.getvalue():
        return pd.DataFrame({"chr": pd.Series(dtype=str), "start": pd.Series(dtype=np.int64),
                             "end": pd.Series(dtype=np.int64)})
    has_header = _has_header(buf)
    try:
        df = pd.read_csv(buf, sep="\t", header=0 if has_header else None, dtype=str)
    except pd.errors.ParserError as e:
        raise BedFileFormatError(f"Cannot parse BED file {path}: {e}") from e

    if not has_header:
        if df.shape[1] < 3:
            raise BedFileFormatError(f"BED file {path} should have at least 3 columns, got {df.shape[1]}")
        df.columns = (BED_COLS + [f"col{i}" for i in range(len(BED_COLS), df.shape[1])])[: df.shape[1]]
    df = standardize_region_columns(df)

    for col in ("chr", "start", "end"):
        if col not in df.columns:
            raise BedFileFormatError(f"BED file {path}: column '{col}' not found in {list(df.columns)}")
    try:
        df["start"] = pd.to_numeric(df["start"], errors="raise").astype(np.int64)
        df["end"] = pd.to_numeric(df["end"], errors="raise").astype(np.int64)
    except ValueError as e:
        raise BedFileFormatError(f"BED file {path}: non integer offsets: {e}") from e
    return df


def read_intervals(path: PathLike, genome: Genome) -> Tuple[List[GenomicInterval], int]:
    """Read BED regions ignoring strand.

    Returns
    -------
    (list of GenomicInterval, int)
        Loaded intervals and records number in file.
    """
    df = load_bed_frame(path)
    records_number = len(df)

    intervals = []
    ignored = set()
    for chrom, start, end in zip(df["chr"].astype(str), df["start"].tolist(), df["end"].tolist()):
        resolved = genome.resolve(chrom)
        if resolved is None:
            ignored.add(chrom)
            continue
        if start < 0 or end < start or end > genome.length(resolved):
            raise BedFileFormatError(
                f"{path}: invalid region {chrom}:{start}-{end}, "
                f"expected 0 <= start <= end <= {genome.length(resolved)}"
            )
        intervals.append(GenomicInterval(resolved, start, end))

    if len(intervals) != records_number:
        pct = 100.0 * len(intervals) / records_number if records_number else 0.0
        logger.warning(
            f"{path}: Loaded {pct:.2f} % ({len(intervals)} of {records_number}) locations. "
            f"Ignored chromosomes: {len(ignored)}. For more details use debug option."
        )
    if ignored:
        logger.debug(f"{path}: Ignored chromosomes: {sorted(ignored)}")
    return intervals, records_number


def read_locations(
    path: PathLike,
    genome: Genome,
    merge: bool,
) -> Tuple[IntervalSet, int, int]:
    """Read BED regions into an interval set.

    Returns
    -------
    (IntervalSet, int, int)
        Interval set, loaded regions number (before merge) and records number.
    """
    intervals, records_number = read_intervals(path, genome)
    locations = IntervalSet.create(genome, intervals, merge=merge)
    if merge and len(locations) != len(intervals):
        logger.info(f"{path}: {len(intervals)} regions merged to {len(locations)}")
    return locations, len(intervals), records_number


def read_genome_area_filter(path: PathLike, genome: Genome) -> IntervalSet:
    """Merged genome area (allowed or masked) from a BED file."""
    intervals, records_number = read_intervals(path, genome)
    logger.info(f"Genome area filter [{Path(path).name}]: {len(intervals)} regions of {records_number} lines")
    area = IntervalSet.merging(genome, intervals)
    logger.info(f"Genome area filter [{Path(path).name}]: {len(area)} merged regions")
    return area


# ============================================================================
# Covered positions table
# ============================================================================

def load_coverage_table(
    path: PathLike,
    genome: Genome,
    zero_based: bool = False,
) -> CoverageIndex:
    """Load covered positions (chromosome, offset) into a CoverageIndex.

    Parameters
    ----------
    path : str or Path
        Tab separated table, 1st column chromosome, 2nd column offset.
        Other columns (e.g. methylation proportions) are ignored.
    genome : Genome
    zero_based : bool
        Offsets are 0-based instead of 1-based.
    """
    buf = _read_text_lines(path)
    if not buf.getvalue():
        return CoverageIndexBuilder(genome).build()
    has_header = _has_header(buf)
    try:
        df = pd.read_csv(buf, sep="\t", header=0 if has_header else None, dtype=str)
    except pd.errors.ParserError as e:
        raise CoverageFileFormatError(f"Cannot parse coverage file {path}: {e}") from e
    if df.shape[1] < 2:
        raise CoverageFileFormatError(f"Coverage file {path} should have at least 2 columns")

    if has_header:
        chrom_col = detect_column(df, CHROM_COLS) or df.columns[0]
        offset_col = detect_column(df, OFFSET_COLS) or df.columns[1]
    else:
        chrom_col, offset_col = df.columns[0], df.columns[1]

    try:
        offsets = pd.to_numeric(df[offset_col], errors="raise").astype(np.int64).to_numpy()
    except ValueError as e:
        raise CoverageFileFormatError(f"Coverage file {path}: non integer offsets: {e}") from e
    if not zero_based:
        offsets = offsets - 1

    builder = CoverageIndexBuilder(genome)
    ignored = set()
    chroms = df[chrom_col].astype(str).to_numpy()
    for chrom in pd.unique(chroms):
        resolved = genome.resolve(chrom)
        if resolved is None:
            ignored.add(chrom)
            continue
        chrom_offsets = offsets[chroms == chrom]
        if chrom_offsets.min() < 0 or chrom_offsets.max() >= genome.length(resolved):
            raise CoverageFileFormatError(
                f"{path}: offsets on {chrom} out of chromosome range "
                f"[{0 if zero_based else 1}, {genome.length(resolved) + (0 if zero_based else 1)})"
            )
        builder.add_many(resolved, chrom_offsets)

    if ignored:
        logger.warning(f"{path}: Ignored chromosomes: {len(ignored)}")
        logger.debug(f"{path}: Ignored chromosomes: {sorted(ignored)}")

    index = builder.build(unique=True)
    logger.info(f"Background coverage: {index.depth} offsets")
    return index


# ============================================================================
# Range strings
# ============================================================================

_LOCATION_RE = re.compile(r"^([^:]+):(\d+)-(\d+)$")


def parse_location(text: str, genome: Genome) -> GenomicInterval:
    """Parse 'chromosome:start-end' (0-based start, exclusive end).

    Whitespace and thousands separators ('.' and ',') are ignored, e.g.
    ``chr1:10,000-20,000``.

    Raises
    ------
    InvalidLocationError
        If the string is malformed or offsets are out of chromosome range.
    """
    cleaned = re.sub(r"[\s.,]", "", text)
    match = _LOCATION_RE.match(cleaned)
    if not match:
        raise InvalidLocationError(
            f"Intersection range should be in format: 'chromosome:start-end' but was: {cleaned}"
        )
    name, start, end = match.group(1), int(match.group(2)), int(match.group(3))
    chrom = genome.resolve(name)
    if chrom is None:
        raise InvalidLocationError(f"Cannot find chromosome '{name}' in {genome.presentable_name()}")
    chrom_len = genome.length(chrom)
    if start > chrom_len:
        raise InvalidLocationError(f"Start offset {start} is out of chromosome '{name}' [0, {chrom_len}] range")
    if end > chrom_len:
        raise InvalidLocationError(f"End offset {end} is out of chromosome '{name}' [0, {chrom_len}] range")
    if end < start:
        raise InvalidLocationError(f"End offset {end} is less than start offset {start}")
    return GenomicInterval(chrom, start, end)
