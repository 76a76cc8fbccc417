import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from repoaudit.core.config import settings
from repoaudit.core.errors import NoResultsError, ReportPersistenceError
from repoaudit.core.logging import get_logger
from repoaudit.db.repository import ReportRepository
from repoaudit.models.report import ProjectReport, ReportStatus
from repoaudit.schemas.verdict import Verdict
from repoaudit.services.analysis.verdicts import load_stored_verdict
from repoaudit.services.analytics.stats import stats_service
from repoaudit.services.report.summary import SummaryService
from repoaudit.storage.blob import BlobStore, report_backup_key, result_prefix

logger = get_logger("reducer")


class Reducer:
    def __init__(self, store: BlobStore, reports: ReportRepository, summary: SummaryService,
                 batch_size: Optional[int] = None):
        self.store = store
        self.reports = reports
        self.summary = summary
        self.batch_size = batch_size or settings.DETAIL_BATCH_SIZE

    def reduce(self, job_id: str, user_id: str, project_id: str) -> ProjectReport:
        """
        Fold every stored verdict for the job into one report.

        Any job-level failure is recorded as a zero-valued failed report so the
        job still ends with exactly one report row; ReportPersistenceError is
        raised only when even that write fails. A redelivered stage finds the
        report written by the earlier attempt and returns it unchanged.
        """
        existing = self.reports.latest_for_job(job_id)
        if existing is not None:
            logger.info(f"Job {job_id} already has report {existing.id}, skipping aggregation")
            return existing

        logger.info(f"Aggregating results for user {user_id}, project {project_id}, job {job_id}")
        try:
            return self._reduce(job_id, user_id, project_id)
        except Exception as e:
            logger.error(f"Aggregation failed for job {job_id}: {e}")
            return self.record_failure(job_id, project_id, str(e))

    def record_failure(self, job_id: str, project_id: str, reason: str) -> ProjectReport:
        try:
            existing = self.reports.latest_for_job(job_id)
            if existing is not None:
                return existing
            report = self.reports.insert_report({
                "job_id": job_id,
                "project_id": project_id,
                "status": ReportStatus.FAILED.value,
                "overall_score": 0,
                "summary": f"Analysis failed: {reason}",
                "total_files": 0,
                "files_with_tests": 0,
                "average_score": 0.0,
            })
        except Exception as e:
            raise ReportPersistenceError(f"Failed to create failure report for job {job_id}: {e}") from e
        logger.warning(f"Recorded failure report {report.id} for job {job_id}")
        return report

    def _reduce(self, job_id: str, user_id: str, project_id: str) -> ProjectReport:
        verdicts = self.collect(job_id, user_id, project_id)

        stats = stats_service.compute_stats(verdicts)
        summary_text = self.summary.summarize(verdicts, stats["average_score"])

        try:
            report = self.reports.insert_report({
                "job_id": job_id,
                "project_id": project_id,
                "status": ReportStatus.COMPLETED.value,
                "overall_score": stats["overall_score"],
                "summary": summary_text,
                "total_files": stats["total_files"],
                "files_with_tests": stats["files_with_tests"],
                "average_score": stats["average_score"],
            })
        except Exception as e:
            raise ReportPersistenceError(f"Failed to create project report: {e}") from e
        logger.info(f"Created project report with ID: {report.id}")

        self._insert_details(report.id, verdicts)
        self._write_backup(report, verdicts, stats, job_id, user_id, project_id)
        return report

    def collect(self, job_id: str, user_id: str, project_id: str) -> List[Verdict]:
        keys = [k for k in self.store.list(result_prefix(user_id, project_id, job_id)) if k.endswith(".json")]
        if not keys:
            raise NoResultsError("No analysis results found to aggregate")
        logger.info(f"Found {len(keys)} analysis results to process")

        verdicts = []
        for key in keys:
            try:
                verdicts.append(load_stored_verdict(self.store.get(key)))
            except Exception as e:
                logger.error(f"Error reading result file {key}: {e}")
                continue

        if not verdicts:
            raise NoResultsError("Failed to read any valid analysis results")
        return verdicts

    def _insert_details(self, report_id: int, verdicts: List[Verdict]) -> None:
        rows = [
            {
                "report_id": report_id,
                "file_path": v.file_name,
                "score": v.automation_score,
                "has_tests": v.has_tests,
                "test_type": v.test_type,
                "suggestions": list(v.improvement_suggestions),
            }
            for v in verdicts
        ]

        inserted = 0
        # Batches keep each insert under the store's payload ceiling
        for i in range(0, len(rows), self.batch_size):
            batch = rows[i:i + self.batch_size]
            try:
                inserted += self.reports.insert_details_batch(batch)
            except Exception as e:
                logger.error(f"Error inserting batch {i}-{i + len(batch)}: {e}")
        logger.info(f"Inserted {inserted}/{len(rows)} file analysis records")

    def _write_backup(self, report: ProjectReport, verdicts: List[Verdict], stats: Dict[str, Any],
                      job_id: str, user_id: str, project_id: str) -> None:
        final_report = {
            **report.to_dict(),
            "file_analyses": [v.model_dump(mode="json") for v in verdicts],
            "aggregation_summary": {
                "total_files_processed": stats["total_files"],
                "failed_analyses": stats["failed_analyses"],
                "test_types": stats["test_types"],
                "processing_date": datetime.now(timezone.utc).isoformat(),
                "job_execution_id": job_id,
            },
        }
        key = report_backup_key(user_id, project_id, job_id)
        try:
            self.store.put(key, json.dumps(final_report, indent=2).encode("utf-8"))
        except Exception as e:
            logger.error(f"Failed to write report backup {key}: {e}")
