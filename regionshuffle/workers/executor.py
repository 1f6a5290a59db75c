"""
Background job executor for RegionShuffle.

Executes enrichment jobs in the background using FastAPI BackgroundTasks.
Updates job status, progress and per LOI statistics in the database as
the simulation advances.
"""

import logging
import math
import traceback
from datetime import datetime, timezone
from typing import Dict, Any

from ..config import settings

logger = logging.getLogger(__name__)

REPORT_BASENAME = "regions_in_loi_regions_enrichment_"


class JobCancelledError(Exception):
    """Raised from the progress callback when the job was cancelled."""


def execute_job(job_id: str, db_factory):
    """Execute an analysis job in the background.

    Parameters
    ----------
    job_id : str
        The ID of the job to execute.
    db_factory : callable
        A callable that returns a new SQLAlchemy session.
    """
    from ..models.database import Job, JobStatus, JobType

    db = db_factory()
    try:
        job = db.query(Job).filter(Job.id == job_id).first()
        if not job:
            logger.error(f"Job {job_id} not found")
            return
        if job.status == JobStatus.CANCELLED:
            logger.info(f"Job {job_id} was cancelled before start")
            return

        # Mark as running
        job.status = JobStatus.RUNNING
        job.started_at = datetime.now(timezone.utc)
        job.current_step = "Initializing"
        db.commit()

        logger.info(f"Starting job {job_id}: {job.name} (type={job.job_type.value})")

        # Route to the appropriate handler
        handlers = {
            JobType.ENRICHMENT: _run_enrichment,
        }

        handler = handlers.get(job.job_type)
        if not handler:
            raise NotImplementedError(f"No handler for job type: {job.job_type.value}")

        results = handler(job, db)

        # Mark as completed
        job.status = JobStatus.COMPLETED
        job.completed_at = datetime.now(timezone.utc)
        job.progress = 100.0
        job.current_step = "Done"
        job.results = results
        db.commit()

        logger.info(f"Job {job_id} completed successfully")

    except JobCancelledError:
        logger.info(f"Job {job_id} cancelled")
        db.rollback()
        job = db.query(Job).filter(Job.id == job_id).first()
        if job:
            job.completed_at = datetime.now(timezone.utc)
            job.current_step = "Cancelled"
            db.commit()
    except Exception as e:
        logger.error(f"Job {job_id} failed: {e}")
        try:
            db.rollback()
            job = db.query(Job).filter(Job.id == job_id).first()
            if job:
                job.status = JobStatus.FAILED
                job.completed_at = datetime.now(timezone.utc)
                job.error_message = str(e)
                job.error_traceback = traceback.format_exc()
                db.commit()
        except Exception:
            logger.error(f"Failed to update error status for job {job_id}")
    finally:
        db.close()


def _update_progress(job, db, progress: float, step: str):
    """Update job progress in the database."""
    job.progress = progress
    job.current_step = step
    db.commit()


def _finite_or_none(value):
    value = float(value)
    return value if math.isfinite(value) else None


def _run_enrichment(job, db) -> Dict[str, Any]:
    """Execute a region enrichment in LOI job."""
    from ..core.enrichment import EnrichmentConfig, run_enrichment_from_files
    from ..models.database import JobStatus, LoiStatistics

    config = dict(job.config or {})
    config.pop("name", None)

    output_dir = settings.get_job_output_dir(job.id)
    output_dir.mkdir(parents=True, exist_ok=True)
    job.output_dir = str(output_dir)

    enrichment_config = EnrichmentConfig(output_basename=str(output_dir / REPORT_BASENAME), **config)

    _update_progress(job, db, 5, "Loading inputs")

    def on_chunk(done: int, total: int):
        db.refresh(job)
        if job.status == JobStatus.CANCELLED:
            raise JobCancelledError(job.id)
        _update_progress(job, db, 10 + 80 * done / total, f"Simulated chunk {done}/{total}")

    result = run_enrichment_from_files(enrichment_config, progress_callback=on_chunk)

    _update_progress(job, db, 90, "Saving results")

    metric_name = str(result.table["metric"].iloc[0])
    for label, stats in result.per_label.items():
        db.add(LoiStatistics(
            job_id=job.id,
            loi=label,
            metric=metric_name,
            observed_metric=int(stats.observed_metric),
            sampled_median=int(stats.sampled_median),
            sampled_mean=_finite_or_none(stats.sampled_mean),
            sampled_variance=_finite_or_none(stats.sampled_variance),
            p_value=float(stats.p_value),
            q_value=float(stats.q_value),
        ))

    report_files = sorted(p.name for p in output_dir.iterdir() if p.is_file())
    significant = int((result.table["qValue"] < settings.default_fdr_threshold).sum())

    return {
        "metric": metric_name,
        "hypothesis": str(result.table["test_H1"].iloc[0]),
        "simulations": result.simulations_number,
        "loi_tested": len(result.per_label),
        "significant_loi": significant,
        "fdr_threshold": settings.default_fdr_threshold,
        "report_files": report_files,
        "output_dir": str(output_dir),
    }
