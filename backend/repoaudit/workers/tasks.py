from functools import lru_cache
from celery import shared_task
from repoaudit.core.errors import PipelineError
from repoaudit.core.logging import get_logger
from repoaudit.models.job import JobStatus
from repoaudit.services.pipeline.coordinator import PipelineCoordinator
from repoaudit.services.pipeline.factory import build_coordinator

logger = get_logger("worker")


@lru_cache(maxsize=1)
def get_coordinator() -> PipelineCoordinator:
    from repoaudit.db.session import init_db
    init_db()
    return build_coordinator()


def _failed(job_id: str, error: Exception) -> dict:
    code = error.code if isinstance(error, PipelineError) else "internal_error"
    return {"job_id": job_id, "status": JobStatus.FAILED.value, "error_code": code}


@shared_task(name="process_job_pipeline")
def process_job_pipeline(job_id: str):
    """
    Entry point for a submitted job: fetch + unpack, then hand off to the
    analysis stage when the job is set to continue automatically. Each stage
    is its own task so a crashed worker only repeats one stage.
    """
    logger.info(f"Starting pipeline for Job {job_id}")
    coordinator = get_coordinator()
    try:
        paths = coordinator.run_unpack(job_id)
    except Exception as e:
        logger.error(f"Job {job_id} rejected: {e}")
        return _failed(job_id, e)

    job = coordinator.jobs.get(job_id)
    if job.state == JobStatus.ANALYZING:
        analyze_stage.delay(job_id)
    return {"job_id": job_id, "status": job.status, "unit_count": len(paths)}


@shared_task(name="resume_job_analysis")
def resume_job_analysis(job_id: str):
    coordinator = get_coordinator()
    try:
        coordinator.reopen(job_id)
    except Exception as e:
        logger.error(f"Job {job_id} could not be resumed: {e}")
        return _failed(job_id, e)

    analyze_stage.delay(job_id)
    return {"job_id": job_id, "status": JobStatus.ANALYZING.value}


@shared_task(name="analyze_stage")
def analyze_stage(job_id: str):
    coordinator = get_coordinator()
    try:
        summary = coordinator.run_analysis(job_id)
    except Exception as e:
        logger.error(f"Job {job_id} analysis failed: {e}")
        return _failed(job_id, e)

    reduce_stage.delay(job_id)
    return {"job_id": job_id, "status": JobStatus.REDUCING.value, "dispatch": summary.as_dict()}


@shared_task(name="reduce_stage")
def reduce_stage(job_id: str):
    coordinator = get_coordinator()
    try:
        report = coordinator.run_reduce(job_id)
    except Exception as e:
        logger.error(f"Job {job_id} reduction failed: {e}")
        return _failed(job_id, e)

    logger.info(f"Job {job_id} completed. Report {report.id}")
    return {"job_id": job_id, "status": JobStatus.DONE.value, "report": report.to_dict()}
