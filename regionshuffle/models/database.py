"""
SQLAlchemy database models for RegionShuffle.

Defines tables for:
- Jobs: Track enrichment job status and configuration
- LoiStatistics: Per LOI results of completed enrichment jobs
"""

import uuid
from sqlalchemy import (
    Column, String, Integer, Float, DateTime,
    ForeignKey, Text, JSON, Enum as SQLEnum
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.sql import func
import enum

Base = declarative_base()


class JobStatus(str, enum.Enum):
    """Job status enumeration."""
    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobType(str, enum.Enum):
    """Type of analysis job."""
    ENRICHMENT = "enrichment"


class Job(Base):
    """Job tracking table."""

    __tablename__ = "jobs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    job_type = Column(SQLEnum(JobType), nullable=False, default=JobType.ENRICHMENT)
    status = Column(SQLEnum(JobStatus), default=JobStatus.PENDING)

    # Timestamps
    created_at = Column(DateTime, default=func.now())
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Configuration and results
    config = Column(JSON, nullable=True)  # EnrichmentConfig fields
    results = Column(JSON, nullable=True)  # Summary results
    output_dir = Column(String, nullable=True)

    # Progress tracking
    progress = Column(Float, default=0.0)  # 0-100
    current_step = Column(String, nullable=True)
    total_steps = Column(Integer, nullable=True)

    # Error handling
    error_message = Column(Text, nullable=True)
    error_traceback = Column(Text, nullable=True)

    # Relationships
    loi_statistics = relationship("LoiStatistics", back_populates="job", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Job(id={self.id}, name={self.name}, status={self.status})>"


class LoiStatistics(Base):
    """Per LOI enrichment statistics of a job."""

    __tablename__ = "loi_statistics"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id = Column(String, ForeignKey("jobs.id"), nullable=False, index=True)

    loi = Column(String, nullable=False)
    metric = Column(String, nullable=False)
    observed_metric = Column(Integer, nullable=False)
    sampled_median = Column(Integer, nullable=True)
    sampled_mean = Column(Float, nullable=True)
    sampled_variance = Column(Float, nullable=True)
    p_value = Column(Float, nullable=False)
    q_value = Column(Float, nullable=False)

    created_at = Column(DateTime, default=func.now())

    job = relationship("Job", back_populates="loi_statistics")

    def __repr__(self):
        return f"<LoiStatistics(job={self.job_id}, loi={self.loi}, q={self.q_value})>"


# Database initialization functions
def init_db(engine):
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine)

