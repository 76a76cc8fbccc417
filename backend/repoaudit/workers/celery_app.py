from celery import Celery
from repoaudit.core.config import settings

celery_app = Celery("repo_testability_agent", broker=settings.CELERY_BROKER_URL, backend=settings.CELERY_RESULT_BACKEND)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # A redelivered stage re-reads the job row and resumes from its state
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_routes={
        "process_job_pipeline": {"queue": "q_orch"},
        "resume_job_analysis": {"queue": "q_orch"},
        "analyze_stage": {"queue": "q_llm"},
        "reduce_stage": {"queue": "q_orch"},
    }
)

# Load tasks
celery_app.autodiscover_tasks(["repoaudit.workers"])
