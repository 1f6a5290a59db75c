"""
Core modules for RegionShuffle.

Includes:
- Genome and interval set algebra
- Uniform and coverage backgrounds
- Region set sampling with retries
- Chunked parallel simulation driver
- Permutation p-values with Benjamini-Hochberg correction
"""

# Genome and intervals
from .genome import Genome, parse_chrom_aliases
from .intervals import GenomicInterval, IntervalSet
from .coverage import CoverageIndex, CoverageIndexBuilder
from .histogram import IntHistogram

# Metrics
from .metrics import RegionsMetric, OverlapNumberMetric, IntersectionNumberMetric, parse_metric

# Backgrounds
from .background import (
    build_uniform_background,
    build_coverage_background,
    make_bed_background_from_coverage,
    make_allowed_regions_filter,
    filter_input_regions,
)

# Sampling and simulation
from .sampling import (
    RegionSampler,
    UniformRegionSampler,
    CoverageRegionSampler,
    RegionSetSampler,
    SimulationResult,
    make_length_correction_filter,
)
from .simulation import SimulationParams, SimulationDriver, sample_region_sets

# Statistics
from .statistics import PermutationHypothesis, TestedRegionStats, adjust_pvalues, permutation_p_value

# Enrichment
from .enrichment import (
    LoiInfo,
    EnrichmentResult,
    EnrichmentConfig,
    run_enrichment_test,
    run_enrichment_from_files,
    collect_loi,
)

__all__ = [
    # Genome and intervals
    "Genome",
    "parse_chrom_aliases",
    "GenomicInterval",
    "IntervalSet",
    "CoverageIndex",
    "CoverageIndexBuilder",
    "IntHistogram",
    # Metrics
    "RegionsMetric",
    "OverlapNumberMetric",
    "IntersectionNumberMetric",
    "parse_metric",
    # Backgrounds
    "build_uniform_background",
    "build_coverage_background",
    "make_bed_background_from_coverage",
    "make_allowed_regions_filter",
    "filter_input_regions",
    # Sampling and simulation
    "RegionSampler",
    "UniformRegionSampler",
    "CoverageRegionSampler",
    "RegionSetSampler",
    "SimulationResult",
    "make_length_correction_filter",
    "SimulationParams",
    "SimulationDriver",
    "sample_region_sets",
    # Statistics
    "PermutationHypothesis",
    "TestedRegionStats",
    "adjust_pvalues",
    "permutation_p_value",
    # Enrichment
    "LoiInfo",
    "EnrichmentResult",
    "EnrichmentConfig",
    "run_enrichment_test",
    "run_enrichment_from_files",
    "collect_loi",
]
