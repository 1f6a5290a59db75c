"""
FastAPI application for RegionShuffle.

Provides REST API endpoints for:
- Job management (status, list, cancel)
- Enrichment analysis submission
- Results retrieval and report download
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Depends, BackgroundTasks
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from .config import settings, AnalysisOptions
from .models.database import init_db, Job, LoiStatistics
from .models.schemas import (
    JobResponse, JobListResponse,
    EnrichmentRequest, EnrichmentSubmitResponse,
    EnrichmentResultsResponse, LoiResultResponse,
)
from .workers.executor import execute_job

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Database setup
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {}
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting RegionShuffle API...")
    settings.ensure_directories()
    init_db(engine)
    logger.info("Database initialized")
    yield
    # Shutdown
    logger.info("Shutting down RegionShuffle API...")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="API for testing genomic regions enrichment in loci of interest by region shuffling",
    version=settings.app_version,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependency for database session
def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """Session factory for background jobs, which outlive the request session."""
    return SessionLocal


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


@app.get("/config")
async def get_config():
    """Get supported analysis options and defaults."""
    return {
        "metrics": list(AnalysisOptions.METRICS.keys()),
        "hypotheses": settings.supported_hypotheses(),
        "background_types": list(AnalysisOptions.BACKGROUND_TYPES.keys()),
        "default_metric": settings.default_metric,
        "default_hypothesis": settings.default_hypothesis,
        "default_simulations": settings.default_simulations,
        "default_chunk_size": settings.default_chunk_size,
        "default_fdr": settings.default_fdr_threshold,
    }


# ============================================================================
# Job Endpoints
# ============================================================================

@app.get("/jobs", response_model=JobListResponse)
async def list_jobs(
    status: str = None,
    job_type: str = None,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db)
):
    """List all jobs with optional filtering."""
    from .models.database import JobStatus as DBJobStatus, JobType

    query = db.query(Job).order_by(Job.created_at.desc())

    try:
        if status:
            query = query.filter(Job.status == DBJobStatus(status))
        if job_type:
            query = query.filter(Job.job_type == JobType(job_type))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    total = query.count()
    jobs = query.offset(skip).limit(limit).all()

    return JobListResponse(
        jobs=[JobResponse.model_validate(j) for j in jobs],
        total=total
    )


@app.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, db: Session = Depends(get_db)):
    """Get job status and details."""
    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse.model_validate(job)


@app.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, db: Session = Depends(get_db)):
    """Cancel a pending or running job.

    A running job stops after the current simulation chunk.
    """
    from .models.database import JobStatus as DBJobStatus

    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    if job.status not in [DBJobStatus.PENDING, DBJobStatus.QUEUED, DBJobStatus.RUNNING]:
        raise HTTPException(status_code=400, detail="Job cannot be cancelled")

    job.status = DBJobStatus.CANCELLED
    db.commit()

    return {"message": "Job cancelled"}


@app.delete("/jobs/{job_id}")
async def delete_job(job_id: str, db: Session = Depends(get_db)):
    """Delete a finished job and its statistics."""
    from .models.database import JobStatus as DBJobStatus

    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    if job.status == DBJobStatus.RUNNING:
        raise HTTPException(status_code=400, detail="Cancel the job before deleting it")

    db.delete(job)
    db.commit()
    return {"message": "Job deleted"}


# ============================================================================
# Analysis Endpoints
# ============================================================================

@app.post("/analysis/enrichment", response_model=EnrichmentSubmitResponse)
async def run_enrichment_analysis(
    request: EnrichmentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """Submit a region enrichment in LOI job."""
    from .models.database import JobType, JobStatus as DBJobStatus

    for param in ("chrom_sizes", "regions", "loi"):
        path = Path(getattr(request, param))
        if not path.exists():
            raise HTTPException(status_code=400, detail=f"{param} path not found: {path}")
    if request.background_type.value != "uniform" and request.background is None:
        raise HTTPException(
            status_code=400,
            detail=f"Background coverage table is required for '{request.background_type.value}' background"
        )

    job = Job(
        name=request.name or f"Enrichment: {Path(request.regions).name} in {Path(request.loi).name}",
        job_type=JobType.ENRICHMENT,
        status=DBJobStatus.PENDING,
        config=request.model_dump(mode="json", exclude={"name"})
    )
    db.add(job)
    db.commit()
    db.refresh(job)

    background_tasks.add_task(execute_job, job.id, session_factory)

    return EnrichmentSubmitResponse(job_id=job.id, message="Enrichment analysis submitted")


# ============================================================================
# Results Endpoints
# ============================================================================

@app.get("/results/{job_id}", response_model=EnrichmentResultsResponse)
async def get_results(job_id: str, db: Session = Depends(get_db)):
    """Get analysis results for a completed job, LOI sorted by qValue."""
    from .models.database import JobStatus as DBJobStatus

    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    if job.status != DBJobStatus.COMPLETED:
        raise HTTPException(
            status_code=400,
            detail=f"Job is not completed (status: {job.status.value})"
        )

    stats = (
        db.query(LoiStatistics)
        .filter(LoiStatistics.job_id == job.id)
        .order_by(LoiStatistics.q_value, LoiStatistics.loi)
        .all()
    )

    return EnrichmentResultsResponse(
        job_id=job.id,
        job_type=job.job_type.value,
        results=job.results,
        output_dir=job.output_dir,
        loi=[LoiResultResponse.model_validate(s) for s in stats],
    )


@app.get("/results/{job_id}/download/{filename}")
async def download_result_file(
    job_id: str,
    filename: str,
    db: Session = Depends(get_db)
):
    """Download a specific result file."""
    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    if not job.output_dir:
        raise HTTPException(status_code=404, detail="No output directory")

    output_dir = Path(job.output_dir).resolve()
    file_path = (output_dir / filename).resolve()
    if file_path.parent != output_dir or not file_path.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(
        path=str(file_path),
        filename=filename,
        media_type="text/tab-separated-values"
    )


# ============================================================================
# Run with uvicorn
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "regionshuffle.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
