import json
from dataclasses import dataclass
from typing import List, Optional
from repoaudit.core.errors import (
    JobRejectedError,
    InvalidTransitionError,
    NothingToAnalyzeError,
    PipelineError,
    ReportPersistenceError,
    StorageError,
)
from repoaudit.core.logging import get_logger
from repoaudit.db.repository import JobRepository
from repoaudit.models.job import Job, JobStatus
from repoaudit.models.report import ProjectReport
from repoaudit.schemas.verdict import UnitRef
from repoaudit.services.analysis.analyzer import UnitAnalyzer
from repoaudit.services.analysis.scheduler import DispatchSummary, FanOutScheduler
from repoaudit.services.ingest.fetcher import GitHubArchiveFetcher, RepoRef
from repoaudit.services.ingest.unpacker import ArchiveUnpacker
from repoaudit.services.reduce.reducer import Reducer
from repoaudit.storage.blob import BlobStore, archive_key, manifest_key

logger = get_logger("coordinator")


@dataclass
class JobOutcome:
    job_id: str
    status: JobStatus
    unit_count: int = 0
    dispatch: Optional[DispatchSummary] = None
    report: Optional[ProjectReport] = None


class PipelineCoordinator:
    """
    Sequences unpack -> fan-out analysis -> reduce for one job.

    The job's state lives on its database row and every stage entry point
    re-reads it, so stages can run as separate worker invocations (and be
    retried) without sharing memory. Units travel between stages through a
    per-job manifest in blob storage.
    """

    def __init__(self, jobs: JobRepository, store: BlobStore, unpacker: ArchiveUnpacker,
                 analyzer: UnitAnalyzer, scheduler: FanOutScheduler, reducer: Reducer,
                 fetcher: Optional[GitHubArchiveFetcher] = None):
        self.jobs = jobs
        self.store = store
        self.unpacker = unpacker
        self.analyzer = analyzer
        self.scheduler = scheduler
        self.reducer = reducer
        self.fetcher = fetcher

    # Whole pipeline

    def run(self, job_id: str, archive: Optional[bytes] = None) -> JobOutcome:
        paths = self.run_unpack(job_id, archive)
        job = self.jobs.get(job_id)
        if job.state == JobStatus.STOPPED:
            logger.info(f"Job {job_id}: unpacked {len(paths)} units, auto-continue disabled")
            return JobOutcome(job_id, JobStatus.STOPPED, unit_count=len(paths))
        return self._continue(job_id, len(paths))

    def resume(self, job_id: str) -> JobOutcome:
        """Run analysis and reduction for a job that stopped after unpacking."""
        job = self.reopen(job_id)
        return self._continue(job_id, job.unit_count or 0)

    def reopen(self, job_id: str) -> Job:
        job = self.jobs.get(job_id)
        if job.state != JobStatus.STOPPED:
            raise InvalidTransitionError(f"Job {job_id} is {job.status}, only stopped jobs can be resumed")
        return self.jobs.transition(job_id, JobStatus.ANALYZING)

    def _continue(self, job_id: str, unit_count: int) -> JobOutcome:
        dispatch = self.run_analysis(job_id)
        report = self.run_reduce(job_id)
        return JobOutcome(job_id, JobStatus.DONE, unit_count=unit_count, dispatch=dispatch, report=report)

    # Stages

    def run_unpack(self, job_id: str, archive: Optional[bytes] = None) -> List[str]:
        job = self._enter(job_id, JobStatus.UNPACKING)
        try:
            blob = self._load_archive(job, archive)
            paths = self.unpacker.unpack(blob, job.user_id, job.project_id)
            if not paths:
                raise NothingToAnalyzeError("No files survived the inclusion policy")
            self.store.put(manifest_key(job.user_id, job.project_id, job.id), json.dumps(paths).encode("utf-8"))
        except JobRejectedError as e:
            self._fail(job_id, e)
            raise
        except Exception as e:
            # Nothing was dispatched yet, so this is still a rejection
            self._fail(job_id, e)
            raise JobRejectedError(f"Job {job_id} failed to start: {e}") from e

        target = JobStatus.ANALYZING if job.auto_continue else JobStatus.STOPPED
        self.jobs.transition(job_id, target, unit_count=len(paths))
        return paths

    def run_analysis(self, job_id: str) -> DispatchSummary:
        job = self._require(job_id, JobStatus.ANALYZING)
        try:
            paths = self.load_manifest(job)

            def invoke(path: str):
                return self.analyzer.analyze(UnitRef(job_id=job.id, user_id=job.user_id,
                                                     project_id=job.project_id, path=path))

            summary = self.scheduler.run(job.id, paths, invoke)
        except Exception as e:
            logger.error(f"Job {job_id}: analysis stage failed: {e}")
            self._fail_with_report(job, e)
            raise

        self.jobs.transition(job_id, JobStatus.REDUCING, dispatch_summary=summary.as_dict())
        return summary

    def run_reduce(self, job_id: str) -> ProjectReport:
        job = self._require(job_id, JobStatus.REDUCING)
        try:
            report = self.reducer.reduce(job.id, job.user_id, job.project_id)
        except ReportPersistenceError as e:
            self._fail(job_id, e)
            raise
        self.jobs.transition(job_id, JobStatus.DONE)
        logger.info(f"Job {job_id} done: report {report.id} ({report.status}, score {report.overall_score})")
        return report

    # Helpers

    def load_manifest(self, job: Job) -> List[str]:
        raw = self.store.get(manifest_key(job.user_id, job.project_id, job.id))
        paths = json.loads(raw)
        if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
            raise StorageError(f"Corrupt unit manifest for job {job.id}")
        return paths

    def _load_archive(self, job: Job, archive: Optional[bytes]) -> bytes:
        key = job.archive_key or archive_key(job.user_id, job.project_id, job.id)
        if archive is None and job.archive_key:
            # Retried stage: reuse the archive fetched on the first attempt
            return self.store.get(key)
        if archive is None:
            if self.fetcher is None or not job.repo_ref:
                raise JobRejectedError(f"Job {job.id} has no archive and no repository to fetch")
            archive = self.fetcher.fetch(RepoRef.parse(job.repo_ref))

        self.store.put(key, archive)
        self.jobs.update(job.id, archive_key=key)
        return archive

    def _enter(self, job_id: str, target: JobStatus) -> Job:
        job = self.jobs.get(job_id)
        if job.state == target:
            return job
        return self.jobs.transition(job_id, target)

    def _require(self, job_id: str, expected: JobStatus) -> Job:
        job = self.jobs.get(job_id)
        if job.state != expected:
            raise InvalidTransitionError(f"Job {job_id} is {job.status}, expected {expected.value}")
        return job

    def _fail(self, job_id: str, error: Exception) -> None:
        code = error.code if isinstance(error, PipelineError) else "internal_error"
        logger.error(f"Job {job_id} failed ({code}): {error}")
        self.jobs.transition(job_id, JobStatus.FAILED, error_code=code, error=str(error))

    def _fail_with_report(self, job: Job, error: Exception) -> None:
        try:
            self.reducer.record_failure(job.id, job.project_id, str(error))
        except ReportPersistenceError as e:
            logger.error(f"Job {job.id}: {e}")
        self._fail(job.id, error)
