"""Database models and Pydantic schemas."""

from .database import Base, Job, JobStatus, JobType, LoiStatistics
from .schemas import (
    JobResponse,
    JobListResponse,
    JobStatusEnum,
    EnrichmentRequest,
    EnrichmentSubmitResponse,
    EnrichmentResultsResponse,
    LoiResultResponse,
)

__all__ = [
    "Base",
    "Job",
    "JobStatus",
    "JobType",
    "LoiStatistics",
    "JobResponse",
    "JobListResponse",
    "JobStatusEnum",
    "EnrichmentRequest",
    "EnrichmentSubmitResponse",
    "EnrichmentResultsResponse",
    "LoiResultResponse",
]
