import enum
from datetime import datetime, timezone
from typing import Any, Optional, Dict
from sqlalchemy import String, DateTime, JSON, Integer, Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column
from repoaudit.models.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    UNPACKING = "unpacking"
    ANALYZING = "analyzing"
    REDUCING = "reducing"
    DONE = "done"
    STOPPED = "stopped"  # unpacked, auto-continue was off
    FAILED = "failed"


ALLOWED_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.PENDING: frozenset({JobStatus.UNPACKING, JobStatus.FAILED}),
    JobStatus.UNPACKING: frozenset({JobStatus.ANALYZING, JobStatus.STOPPED, JobStatus.FAILED}),
    JobStatus.ANALYZING: frozenset({JobStatus.REDUCING, JobStatus.FAILED}),
    JobStatus.REDUCING: frozenset({JobStatus.DONE, JobStatus.FAILED}),
    JobStatus.STOPPED: frozenset({JobStatus.ANALYZING}),
    JobStatus.DONE: frozenset(),
    JobStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.FAILED})


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String, primary_key=True) # UUID hex
    user_id: Mapped[str] = mapped_column(String, index=True)
    project_id: Mapped[str] = mapped_column(String, index=True)
    repo_ref: Mapped[Optional[str]] = mapped_column(String)
    auto_continue: Mapped[bool] = mapped_column(Boolean, default=True)

    status: Mapped[str] = mapped_column(String, default=JobStatus.PENDING.value)
    error_code: Mapped[Optional[str]] = mapped_column(String)
    error: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Stage progress: state name -> ISO timestamp it was entered
    stage_status: Mapped[Dict[str, str]] = mapped_column(JSON, default=dict)

    archive_key: Mapped[Optional[str]] = mapped_column(String)
    unit_count: Mapped[Optional[int]] = mapped_column(Integer)
    dispatch_summary: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    @property
    def state(self) -> JobStatus:
        return JobStatus(self.status)

    def can_transition(self, target: JobStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.state]
