"""
Pydantic schemas for API request/response validation.

Defines schemas for:
- Job management
- Enrichment analysis configuration
- Results formatting
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field
from enum import Enum


# Enums for validation
class JobStatusEnum(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobTypeEnum(str, Enum):
    ENRICHMENT = "enrichment"


class HypothesisEnum(str, Enum):
    GREATER = "greater"
    LESS = "less"
    TWO_SIDED = "two-sided"


class MetricEnum(str, Enum):
    OVERLAP = "overlap"
    INTERSECTION = "intersection"


class BackgroundTypeEnum(str, Enum):
    UNIFORM = "uniform"
    COVERAGE = "coverage"
    COVERAGE_BED = "coverage_bed"


# ============================================================================
# Job Schemas
# ============================================================================


class JobBase(BaseModel):
    """Base job schema."""

    name: str = Field(..., description="Job name")
    job_type: JobTypeEnum = Field(default=JobTypeEnum.ENRICHMENT, description="Type of analysis")


class JobResponse(JobBase):
    """Schema for job response."""

    id: str
    status: JobStatusEnum
    progress: float = 0.0
    current_step: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    results: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class JobListResponse(BaseModel):
    """Response for listing jobs."""

    jobs: List[JobResponse]
    total: int


# ============================================================================
# Analysis Configuration Schemas
# ============================================================================


class EnrichmentRequest(BaseModel):
    """Configuration of a region enrichment in LOI job.

    File paths are resolved on the server.
    """

    name: Optional[str] = Field(default=None, description="Job name")

    # Inputs
    chrom_sizes: str = Field(..., description="Path to chrom.sizes file")
    regions: str = Field(..., description="Path to input regions BED file")
    loi: str = Field(..., description="Path to LOI BED file or folder with BED files")
    loi_name_suffix: Optional[str] = Field(default=None, description="LOI folder file name suffix filter")
    chrom_aliases: List[str] = Field(default_factory=list, description="'chrInput:chrGenome' pairs")

    # Background
    background: Optional[str] = Field(default=None, description="Background BED or coverage table path")
    background_type: BackgroundTypeEnum = Field(default=BackgroundTypeEnum.UNIFORM)
    zero_based_background: bool = Field(default=False, description="Coverage offsets are 0-based")
    bed_background_flank: int = Field(default=50, ge=1, description="Flank for coverage_bed background")
    add_regions_to_background: bool = Field(default=False)
    genome_allowed: Optional[str] = Field(default=None, description="Allowed genome area BED")
    genome_masked: Optional[str] = Field(default=None, description="Masked genome area BED")
    limit_intersect: Optional[str] = Field(default=None, description="'chromosome:start-end' range")

    # Test
    metric: MetricEnum = Field(default=MetricEnum.OVERLAP)
    metric_flank: int = Field(default=0, ge=0)
    a_set_is_loi: bool = Field(default=False, description="Compute metric(loi, regions)")
    hypothesis: HypothesisEnum = Field(default=HypothesisEnum.GREATER)
    merge_overlapped: bool = Field(default=False)
    length_correction: Optional[str] = Field(default=None, description="'dist' or max length threshold")
    end_shift: int = Field(default=2, ge=1)
    detailed_report: bool = Field(default=False)

    # Simulation
    simulations: int = Field(default=100_000, ge=1)
    chunk_size: int = Field(default=50_000, ge=0, description="0 to sample all sets at once")
    region_set_max_retries: int = Field(default=100, ge=1)
    single_region_max_retries: int = Field(default=100, ge=1)
    with_replacement: bool = Field(default=False)
    parallelism: Optional[int] = Field(default=None, ge=1)
    seed: Optional[int] = Field(default=None, ge=0)


class EnrichmentSubmitResponse(BaseModel):
    job_id: str
    message: str


# ============================================================================
# Results Schemas
# ============================================================================


class LoiResultResponse(BaseModel):
    """Schema for one tested LOI."""

    loi: str
    metric: str
    observed_metric: int
    sampled_median: Optional[int] = None
    sampled_mean: Optional[float] = None
    sampled_variance: Optional[float] = None
    p_value: float
    q_value: float

    class Config:
        from_attributes = True


class EnrichmentResultsResponse(BaseModel):
    """Schema for enrichment job results."""

    job_id: str
    job_type: str
    results: Optional[Dict[str, Any]] = None
    output_dir: Optional[str] = None
    loi: List[LoiResultResponse] = Field(default_factory=list)
