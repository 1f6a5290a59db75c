"""
Region enrichment in loci of interest (LOI) by region shuffling.

For every LOI set the metric between input regions and the LOI is compared
with the metric distribution over randomly shuffled region sets sampled
from a background with matching length (uniform background) or covered
positions number (coverage background). P-values of all LOI sets are
adjusted with Benjamini-Hochberg.

Typical usage::

    result = run_enrichment_test(regions, loi_infos, background, metric=OverlapNumberMetric(),
                                 params=SimulationParams(simulations_number=10_000))
    result.table.to_csv("report.tsv", sep="\\t", index=False)
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .background import (
    Background,
    build_coverage_background,
    build_uniform_background,
    ensure_coverage_covers,
    filter_input_regions,
    loi_background_overlap,
    make_allowed_regions_filter,
    make_bed_background_from_coverage,
)
from .coverage import CoverageIndex
from .exceptions import EmptyDataError, InvalidParameterError, ValidationError
from .genome import Genome, parse_chrom_aliases
from .genomic_utils import (
    load_coverage_table,
    load_genome,
    parse_location,
    read_genome_area_filter,
    read_intervals,
    read_locations,
)
from .histogram import IntHistogram
from .intervals import GenomicInterval, IntervalSet
from .metrics import RegionsMetric, parse_metric
from .sampling import (
    CoverageRegionSampler,
    RegionSetSampler,
    UniformRegionSampler,
    make_length_correction_filter,
)
from .simulation import SimulationDriver, SimulationParams, calc_metric
from .statistics import PermutationHypothesis, TestedRegionStats, adjust_pvalues

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class LoiInfo:
    """One tested LOI set.

    Attributes:
        label: LOI name (usually file name)
        loci: Filtered LOI intervals
        loaded_number: Regions loaded from file (before merge and filters)
        records_number: Records in file (including ignored chromosomes)
    """
    label: str
    loci: IntervalSet
    loaded_number: int
    records_number: int


@dataclass
class LoiResult:
    """Final statistics of one LOI label."""
    label: str
    p_value: float
    q_value: float
    observed_metric: int
    sampled_mean: float
    sampled_median: int
    sampled_variance: float


@dataclass
class EnrichmentResult:
    """Results of an enrichment run."""
    table: pd.DataFrame
    per_label: Dict[str, LoiResult]
    metric_histograms: Dict[str, IntHistogram]
    region_attempts: IntHistogram
    set_attempts: IntHistogram
    simulations_number: int

    def save(self, path: Union[str, Path]):
        self.table.to_csv(path, sep="\t", index=False)


def run_enrichment_test(
    input_regions: Sequence[GenomicInterval],
    loi_infos: Sequence[LoiInfo],
    background: Background,
    metric: RegionsMetric,
    a_set_is_regions: bool = True,
    hypothesis: Union[PermutationHypothesis, str] = PermutationHypothesis.GREATER,
    params: Optional[SimulationParams] = None,
    merge_overlapped: bool = True,
    truncate_filter: Optional[IntervalSet] = None,
    length_correction: Optional[str] = None,
    end_shift: int = 2,
    output_dir: Optional[Union[str, Path]] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> EnrichmentResult:
    """Permutation test of input regions enrichment in each LOI set.

    Args:
        input_regions: Already filtered input regions
        loi_infos: Tested LOI sets
        background: Merged IntervalSet (uniform sampling by length) or
            CoverageIndex (sampling by covered positions number)
        metric: Metric between interval sets
        a_set_is_regions: Compute ``metric(regions, loi)``, else ``metric(loi, regions)``
        hypothesis: Alternative hypothesis
        params: Simulation parameters
        merge_overlapped: Merge overlapping input regions before computing the observed metric
        truncate_filter: Truncate input regions, LOI and sampled sets to this area
        length_correction: Length correction method for coverage background
        end_shift: End shift after the last covered position for coverage background
        output_dir: Write metric histograms and attempts histograms here
        progress_callback: Called with (finished chunks, chunks number)

    Returns:
        EnrichmentResult with the table sorted by qValue
    """
    params = params or SimulationParams()
    hypothesis = PermutationHypothesis.parse(hypothesis)

    if not input_regions:
        raise EmptyDataError("input regions")
    if not loi_infos:
        raise EmptyDataError("LOI sets")
    labels = [info.label for info in loi_infos]
    if len(set(labels)) != len(labels):
        raise ValidationError(f"LOI labels should be unique: {labels}")

    regions = [r.on_plus_strand() for r in input_regions]

    if isinstance(background, CoverageIndex):
        ensure_coverage_covers(regions, background)
        sampler = CoverageRegionSampler(background, end_shift=end_shift)
        candidate_filter = make_length_correction_filter(length_correction, regions)
    elif isinstance(background, IntervalSet):
        if length_correction is not None:
            raise InvalidParameterError(
                "length_correction", length_correction, "None, only coverage background supports it"
            )
        sampler = UniformRegionSampler(background)
        candidate_filter = None
    else:
        raise InvalidParameterError("background", type(background).__name__, "IntervalSet or CoverageIndex")

    genome = sampler.genome
    set_sampler = RegionSetSampler(
        sampler,
        region_set_max_retries=params.region_set_max_retries,
        single_region_max_retries=params.single_region_max_retries,
        with_replacement=params.with_replacement,
        candidate_filter=candidate_filter,
    )
    driver = SimulationDriver(set_sampler, regions, params, truncate_filter=truncate_filter)

    input_set = IntervalSet.create(genome, regions, merge=merge_overlapped)
    if truncate_filter is not None:
        # observed and sampled metrics are computed over the same area
        input_set = input_set.intersect(truncate_filter)
        loi_infos = [replace(info, loci=info.loci.intersect(truncate_filter)) for info in loi_infos]

    logger.info(f"LOI sets to test: {len(loi_infos)}")
    logger.info(f"Calc LOI overlap with BG: {len(loi_infos)}")
    bg_overlap = [loi_background_overlap(info.loci, background) for info in loi_infos]

    label2stats = {info.label: TestedRegionStats() for info in loi_infos}
    observed = {
        info.label: calc_metric(input_set, info.loci, a_set_is_regions, metric) for info in loi_infos
    }

    logger.info("Do overrepresented check...")
    with ThreadPoolExecutor(max_workers=params.threads) as executor:
        for chunk in driver.iter_chunks(executor):
            for info in loi_infos:
                partials = driver.reduce_metric(
                    chunk, info.loci, a_set_is_regions, metric,
                    observed[info.label], executor, label=info.label,
                )
                stats = label2stats[info.label]
                stats.update(partials, chunk.size)
                stats.input_metric = observed[info.label]
            # release sampled sets before the next chunk
            chunk.results.clear()
            if progress_callback is not None:
                progress_callback(chunk.chunk_id + 1, params.chunks_number)

    n = params.simulations_number
    p_values, medians, means, variances = [], [], [], []
    for info in loi_infos:
        stats = label2stats[info.label]
        stats.check_consistency(n, info.label)
        p_values.append(stats.p_value(hypothesis))
        median, mean, var = stats.summary()
        medians.append(median)
        means.append(mean)
        variances.append(var)
    q_values = adjust_pvalues(p_values)

    column = metric.column
    metric_args = "regions, loi" if a_set_is_regions else "loi, regions"
    input_metrics = [observed[label] for label in labels]
    n_regions_filtered = len(input_set)

    with np.errstate(divide="ignore", invalid="ignore"):
        ratio_obs_2_input = np.array(input_metrics, dtype=np.float64) / n_regions_filtered
        ratio_obs_2_exp = np.array(input_metrics, dtype=np.float64) / np.array(medians, dtype=np.float64)

    table = pd.DataFrame({
        "loi": labels,
        "n_loi_records": [info.records_number for info in loi_infos],
        "n_loi_loaded": [info.loaded_number for info in loi_infos],
        "n_loi_filtered_merged": [len(info.loci) for info in loi_infos],
        "n_regions": len(regions),
        "metric": f"{column}({metric_args})",
        "n_regions_filtered": n_regions_filtered,
        "loi_filtered_merged_bg_overlap": bg_overlap,
        f"input_{column}": input_metrics,
        f"sampled_median_{column}": medians,
        f"sampled_mean_{column}": means,
        f"sampled_var_{column}": variances,
        "sampled_sets_n": n,
        "test_H1": hypothesis.name,
        "pValue": p_values,
        "qValue": q_values,
        "ratio_obs_2_input": ratio_obs_2_input,
        "ratio_obs_2_exp": ratio_obs_2_exp,
    })
    table = table.sort_values("qValue", kind="stable").reset_index(drop=True)

    per_label = {
        label: LoiResult(label, p_values[i], float(q_values[i]), input_metrics[i],
                         means[i], medians[i], variances[i])
        for i, label in enumerate(labels)
    }
    result = EnrichmentResult(
        table=table,
        per_label=per_label,
        metric_histograms={label: label2stats[label].metric_hist for label in labels},
        region_attempts=driver.region_attempts,
        set_attempts=driver.set_attempts,
        simulations_number=n,
    )
    if output_dir is not None:
        save_details(result, output_dir, column)
    return result


def save_details(result: EnrichmentResult, output_dir: Union[str, Path], metric_column: str):
    """Write per LOI metric histograms and sampling attempts histograms."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    for label, hist in result.metric_histograms.items():
        hist.save(output_dir / f"{label}_{metric_column}.hist.tsv")
    n = result.simulations_number
    result.region_attempts.save(output_dir / f"sampled_{n}.region_attempts.hist.tsv", metric_col="attempt")
    result.set_attempts.save(output_dir / f"sampled_{n}.set_attempts.hist.tsv", metric_col="attempt")
    logger.info(f"[DONE]: Report details saved to: {output_dir}")


# ============================================================================
# LOI collection
# ============================================================================

def collect_loi(
    loi_path: Union[str, Path],
    genome: Genome,
    merge_overlapped: bool = True,
    loi_filter: Optional[IntervalSet] = None,
    name_suffix: Optional[str] = None,
) -> List[LoiInfo]:
    """Load a single LOI file or every file of a LOI folder.

    Args:
        loi_path: BED file or folder with BED files
        genome: Genome
        merge_overlapped: Merge overlapping LOI regions
        loi_filter: Truncate LOI regions to this area
        name_suffix: In folder mode use only files ending with this suffix
    """
    loi_path = Path(loi_path)
    paths = sorted(p for p in loi_path.iterdir() if p.is_file()) if loi_path.is_dir() else [loi_path]

    infos = []
    for path in paths:
        if name_suffix is not None and not path.name.endswith(name_suffix):
            continue
        loci, loaded, records = read_locations(path, genome, merge=merge_overlapped)
        if loi_filter is not None:
            loci = loci.intersect(loi_filter)
        logger.info(f"LOI [{path.name}] (all filters applied): {len(loci)} regions of {loaded} loaded regions")
        infos.append(LoiInfo(path.name, loci, loaded_number=loaded, records_number=records))

    if not infos:
        raise EmptyDataError("LOI files (no files passed file suffix filter)")
    return infos


# ============================================================================
# File based pipeline
# ============================================================================

@dataclass
class EnrichmentConfig:
    """File based enrichment run configuration."""
    chrom_sizes: str
    regions: str
    loi: str
    output_basename: str = "regions_in_loi_regions_enrichment_"
    background: Optional[str] = None
    background_type: str = "uniform"
    zero_based_background: bool = False
    bed_background_flank: int = 50
    add_regions_to_background: bool = False
    genome_allowed: Optional[str] = None
    genome_masked: Optional[str] = None
    loi_name_suffix: Optional[str] = None
    limit_intersect: Optional[str] = None
    chrom_aliases: List[str] = field(default_factory=list)
    metric: str = "overlap"
    metric_flank: int = 0
    a_set_is_loi: bool = False
    hypothesis: str = "greater"
    merge_overlapped: bool = False
    length_correction: Optional[str] = None
    end_shift: int = 2
    detailed_report: bool = False
    simulations: int = 100_000
    chunk_size: int = 50_000
    region_set_max_retries: int = 100
    single_region_max_retries: int = 100
    with_replacement: bool = False
    parallelism: Optional[int] = None
    seed: Optional[int] = None

    def simulation_params(self) -> SimulationParams:
        return SimulationParams(
            simulations_number=self.simulations,
            chunk_size=self.chunk_size,
            region_set_max_retries=self.region_set_max_retries,
            single_region_max_retries=self.single_region_max_retries,
            with_replacement=self.with_replacement,
            parallelism=self.parallelism,
            seed=self.seed,
        )

    def report_path(self, metric_column: str) -> Path:
        return Path(f"{self.output_basename}{metric_column}.tsv")

    def details_dir(self, metric_column: str) -> Optional[Path]:
        if not self.detailed_report:
            return None
        return Path(f"{self.output_basename}{metric_column}_stats")


BACKGROUND_TYPES = ("uniform", "coverage", "coverage_bed")


def run_enrichment_from_files(
    config: EnrichmentConfig,
    progress_callback: Optional[ProgressCallback] = None,
) -> EnrichmentResult:
    """Load inputs from files, run the test and save the report."""
    if config.background_type not in BACKGROUND_TYPES:
        raise InvalidParameterError("background_type", config.background_type, f"one of {BACKGROUND_TYPES}")
    if config.background_type != "uniform" and config.background is None:
        raise InvalidParameterError("background", None, f"a coverage table for '{config.background_type}'")

    params = config.simulation_params()
    metric = parse_metric(config.metric, config.metric_flank)
    hypothesis = PermutationHypothesis.parse(config.hypothesis)

    genome = load_genome(config.chrom_sizes, chrom_aliases=parse_chrom_aliases(config.chrom_aliases))

    truncate_filter = None
    if config.limit_intersect:
        location = parse_location(config.limit_intersect, genome)
        truncate_filter = IntervalSet.merging(genome, [location])
        logger.info(f"Limit results to: {location}")

    allowed = read_genome_area_filter(config.genome_allowed, genome) if config.genome_allowed else None
    masked = read_genome_area_filter(config.genome_masked, genome) if config.genome_masked else None
    allowed_filter = make_allowed_regions_filter(genome, allowed, masked)

    # LOI
    if truncate_filter is None:
        loi_filter = allowed_filter
    elif allowed_filter is None:
        loi_filter = truncate_filter
    else:
        loi_filter = allowed_filter.intersect(truncate_filter)
    loi_infos = collect_loi(config.loi, genome, config.merge_overlapped, loi_filter, config.loi_name_suffix)

    # Input regions
    raw_regions, _ = read_intervals(config.regions, genome)
    logger.info(f"Input regions: {len(raw_regions)} regions")
    regions = filter_input_regions(raw_regions, allowed_filter)

    # Background
    if config.background_type == "uniform":
        bg_regions = None
        if config.background is not None:
            bg_intervals, _ = read_intervals(config.background, genome)
            bg_regions = IntervalSet.merging(genome, bg_intervals)
        background = build_uniform_background(
            genome, regions, bg_regions,
            allowed_filter=allowed, masked_filter=masked,
            merge_regions_to_bg=config.add_regions_to_background,
            background_name=str(config.background),
        )
    else:
        coverage = load_coverage_table(config.background, genome, zero_based=config.zero_based_background)
        coverage = build_coverage_background(genome, coverage, allowed_filter)
        if config.background_type == "coverage":
            background = coverage
        else:
            bed_bg = make_bed_background_from_coverage(
                coverage, config.bed_background_flank,
                regions if config.add_regions_to_background else (),
            )
            background = build_uniform_background(
                genome, regions, bed_bg,
                allowed_filter=allowed, masked_filter=masked,
                background_name=str(config.background),
            )

    result = run_enrichment_test(
        regions,
        loi_infos,
        background,
        metric,
        a_set_is_regions=not config.a_set_is_loi,
        hypothesis=hypothesis,
        params=params,
        merge_overlapped=config.merge_overlapped,
        truncate_filter=truncate_filter,
        length_correction=config.length_correction,
        end_shift=config.end_shift,
        output_dir=config.details_dir(metric.column),
        progress_callback=progress_callback,
    )

    report_path = config.report_path(metric.column)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    result.save(report_path)
    logger.info(f"Report saved to: {report_path}")
    return result
