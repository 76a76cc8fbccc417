import enum
from datetime import datetime
from typing import Optional, List
from sqlalchemy import String, Text, Integer, Float, DateTime, ForeignKey, JSON, Boolean, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from repoaudit.models.base import Base
from repoaudit.models.job import utcnow


class ReportStatus(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class ProjectReport(Base):
    __tablename__ = "project_reports"
    __table_args__ = (
        CheckConstraint("overall_score >= 0 AND overall_score <= 100", name="project_reports_overall_score_check"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[str] = mapped_column(String, ForeignKey("jobs.id"), index=True)
    project_id: Mapped[str] = mapped_column(String, index=True)
    status: Mapped[str] = mapped_column(String, default=ReportStatus.COMPLETED.value)

    overall_score: Mapped[int] = mapped_column(Integer, default=0)
    summary: Mapped[str] = mapped_column(Text, default="")
    total_files: Mapped[int] = mapped_column(Integer, default=0)
    files_with_tests: Mapped[int] = mapped_column(Integer, default=0)
    average_score: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    file_analyses: Mapped[list["FileAnalysis"]] = relationship("FileAnalysis", back_populates="report", cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "project_id": self.project_id,
            "status": self.status,
            "overall_score": self.overall_score,
            "summary": self.summary,
            "total_files": self.total_files,
            "files_with_tests": self.files_with_tests,
            "average_score": self.average_score,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class FileAnalysis(Base):
    __tablename__ = "file_analysis"
    __table_args__ = (
        CheckConstraint("score >= 0 AND score <= 10", name="file_analysis_score_check"),
        CheckConstraint("test_type IN ('unit', 'integration', 'e2e', 'none')", name="file_analysis_test_type_check"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    report_id: Mapped[int] = mapped_column(Integer, ForeignKey("project_reports.id", ondelete="CASCADE"), index=True)
    file_path: Mapped[str] = mapped_column(Text)
    score: Mapped[float] = mapped_column(Float, index=True)
    has_tests: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    test_type: Mapped[str] = mapped_column(String(20), default="none")
    suggestions: Mapped[Optional[List[str]]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    report: Mapped["ProjectReport"] = relationship("ProjectReport", back_populates="file_analyses")
