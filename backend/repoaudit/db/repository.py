from typing import Any, Callable, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker
from repoaudit.core.errors import InvalidTransitionError, JobNotFoundError
from repoaudit.core.logging import get_logger
from repoaudit.models.job import Job, JobStatus, utcnow
from repoaudit.models.report import FileAnalysis, ProjectReport

logger = get_logger("repository")


class JobRepository:
    """Persists jobs and their state-machine value."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def create(self, job_id: str, user_id: str, project_id: str, repo_ref: Optional[str] = None,
               auto_continue: bool = True) -> Job:
        job = Job(
            id=job_id,
            user_id=user_id,
            project_id=project_id,
            repo_ref=repo_ref,
            auto_continue=auto_continue,
            status=JobStatus.PENDING.value,
            stage_status={JobStatus.PENDING.value: utcnow().isoformat()},
        )
        with self.session_factory() as session:
            session.add(job)
            session.commit()
        return job

    def get(self, job_id: str) -> Job:
        with self.session_factory() as session:
            job = session.get(Job, job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def transition(self, job_id: str, target: JobStatus, **fields: Any) -> Job:
        with self.session_factory() as session:
            job = session.get(Job, job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            if not job.can_transition(target):
                raise InvalidTransitionError(f"Job {job_id}: {job.status} -> {target.value} not allowed")

            for key, value in fields.items():
                setattr(job, key, value)
            job.status = target.value
            # Reassign so the JSON column is flagged dirty
            job.stage_status = {**(job.stage_status or {}), target.value: utcnow().isoformat()}
            session.commit()
            logger.info(f"Job {job_id} -> {target.value}")
            return job

    def update(self, job_id: str, **fields: Any) -> Job:
        with self.session_factory() as session:
            job = session.get(Job, job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            for key, value in fields.items():
                setattr(job, key, value)
            session.commit()
            return job


class ReportRepository:
    """Insert/select contract over the report tables."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def insert_report(self, data: Dict[str, Any]) -> ProjectReport:
        with self.session_factory() as session:
            report = ProjectReport(**data)
            session.add(report)
            session.commit()
            session.refresh(report)
            return report

    def insert_details_batch(self, rows: List[Dict[str, Any]]) -> int:
        with self.session_factory() as session:
            session.add_all([FileAnalysis(**row) for row in rows])
            session.commit()
        return len(rows)

    def latest_for_job(self, job_id: str) -> Optional[ProjectReport]:
        with self.session_factory() as session:
            stmt = (
                select(ProjectReport)
                .where(ProjectReport.job_id == job_id)
                .order_by(ProjectReport.created_at.desc(), ProjectReport.id.desc())
                .limit(1)
            )
            return session.scalars(stmt).first()

    def count_for_job(self, job_id: str) -> int:
        with self.session_factory() as session:
            return len(session.scalars(select(ProjectReport.id).where(ProjectReport.job_id == job_id)).all())

    def details_for_report(self, report_id: int) -> List[FileAnalysis]:
        with self.session_factory() as session:
            stmt = select(FileAnalysis).where(FileAnalysis.report_id == report_id).order_by(FileAnalysis.id)
            return list(session.scalars(stmt).all())


def default_repositories(session_factory: Optional[sessionmaker] = None):
    if session_factory is None:
        from repoaudit.db.session import SessionLocal
        session_factory = SessionLocal
    return JobRepository(session_factory), ReportRepository(session_factory)
