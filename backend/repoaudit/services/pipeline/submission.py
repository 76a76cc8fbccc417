import uuid
from typing import Callable, Optional
from repoaudit.core.logging import get_logger
from repoaudit.db.repository import JobRepository, default_repositories
from repoaudit.services.ingest.fetcher import RepoRef

logger = get_logger("submission")


def _enqueue_pipeline(job_id: str) -> None:
    from repoaudit.workers.celery_app import celery_app
    celery_app.send_task("process_job_pipeline", args=[job_id])


def submit_job(repo_ref: str, user_id: str, project_id: str, auto_continue: bool = True,
               jobs: Optional[JobRepository] = None,
               enqueue: Optional[Callable[[str], None]] = None) -> str:
    """Register a job and hand it to the workers; returns the job id."""
    if not user_id or not project_id:
        raise ValueError("user_id and project_id are required")
    ref = RepoRef.parse(repo_ref)

    if jobs is None:
        jobs, _ = default_repositories()
    job_id = uuid.uuid4().hex
    jobs.create(job_id, user_id, project_id, repo_ref=str(ref), auto_continue=auto_continue)
    logger.info(f"Submitted job {job_id} for {ref} (user {user_id}, project {project_id})")

    (enqueue or _enqueue_pipeline)(job_id)
    return job_id
