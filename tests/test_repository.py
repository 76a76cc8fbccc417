from __future__ import annotations

import pytest

from repoaudit.core.errors import InvalidTransitionError, JobNotFoundError
from repoaudit.db.repository import JobRepository, ReportRepository
from repoaudit.models.job import ALLOWED_TRANSITIONS, TERMINAL_STATUSES, JobStatus


def test_create_and_get(jobs: JobRepository) -> None:
    jobs.create("j1", user_id="u", project_id="p", repo_ref="a/b@main", auto_continue=False)

    job = jobs.get("j1")
    assert job.state == JobStatus.PENDING
    assert job.repo_ref == "a/b@main"
    assert job.auto_continue is False
    assert "pending" in job.stage_status


def test_missing_job(jobs: JobRepository) -> None:
    with pytest.raises(JobNotFoundError):
        jobs.get("nope")
    with pytest.raises(JobNotFoundError):
        jobs.transition("nope", JobStatus.UNPACKING)


def test_transition_records_stage_and_fields(jobs: JobRepository) -> None:
    jobs.create("j1", user_id="u", project_id="p")
    jobs.transition("j1", JobStatus.UNPACKING)
    jobs.transition("j1", JobStatus.ANALYZING, unit_count=12)

    job = jobs.get("j1")
    assert job.state == JobStatus.ANALYZING
    assert job.unit_count == 12
    assert list(job.stage_status) == ["pending", "unpacking", "analyzing"]


def test_illegal_transition(jobs: JobRepository) -> None:
    jobs.create("j1", user_id="u", project_id="p")
    with pytest.raises(InvalidTransitionError):
        jobs.transition("j1", JobStatus.REDUCING)
    assert jobs.get("j1").state == JobStatus.PENDING


def test_failed_is_terminal(jobs: JobRepository) -> None:
    jobs.create("j1", user_id="u", project_id="p")
    jobs.transition("j1", JobStatus.FAILED, error_code="fetch_failed", error="404")
    for target in JobStatus:
        with pytest.raises(InvalidTransitionError):
            jobs.transition("j1", target)
    assert jobs.get("j1").error_code == "fetch_failed"


def test_transition_table_shape() -> None:
    assert set(ALLOWED_TRANSITIONS) == set(JobStatus)
    for status in TERMINAL_STATUSES:
        assert not ALLOWED_TRANSITIONS[status]
    assert ALLOWED_TRANSITIONS[JobStatus.STOPPED] == {JobStatus.ANALYZING}


def test_reports_round_trip(jobs: JobRepository, reports: ReportRepository) -> None:
    jobs.create("j1", user_id="u", project_id="p")
    report = reports.insert_report({
        "job_id": "j1", "project_id": "p", "status": "completed", "overall_score": 70,
        "summary": "ok", "total_files": 2, "files_with_tests": 1, "average_score": 7.0,
    })
    inserted = reports.insert_details_batch([
        {"report_id": report.id, "file_path": "a.py", "score": 8, "has_tests": True, "test_type": "unit",
         "suggestions": ["x"]},
        {"report_id": report.id, "file_path": "b.py", "score": 6, "has_tests": False, "test_type": "none",
         "suggestions": []},
    ])

    assert inserted == 2
    assert reports.count_for_job("j1") == 1
    assert reports.latest_for_job("j1").id == report.id
    assert [d.file_path for d in reports.details_for_report(report.id)] == ["a.py", "b.py"]
    assert report.to_dict()["overall_score"] == 70


def test_report_score_constraint(jobs: JobRepository, reports: ReportRepository) -> None:
    jobs.create("j1", user_id="u", project_id="p")
    with pytest.raises(Exception):
        reports.insert_report({"job_id": "j1", "project_id": "p", "overall_score": 101})
