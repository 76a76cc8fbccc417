from __future__ import annotations

import io
import json
import os
import tarfile
import threading
from pathlib import Path
from typing import Callable
from unittest.mock import MagicMock

os.environ.setdefault("LLM_API_KEY", "test-key.secret")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from repoaudit.db.repository import JobRepository, ReportRepository  # noqa: E402
from repoaudit.db.session import init_db, make_engine  # noqa: E402
from repoaudit.services.analysis.scheduler import FanOutScheduler  # noqa: E402
from repoaudit.services.pipeline.coordinator import PipelineCoordinator  # noqa: E402
from repoaudit.services.pipeline.factory import build_coordinator  # noqa: E402
from repoaudit.storage.blob import MemoryBlobStore  # noqa: E402


def make_targz(files: dict[str, bytes], dirs: tuple[str, ...] = (), symlinks: dict[str, str] | None = None) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name in dirs:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            tar.addfile(info)
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
        for name, target in (symlinks or {}).items():
            info = tarfile.TarInfo(name)
            info.type = tarfile.SYMTYPE
            info.linkname = target
            tar.addfile(info)
    return buf.getvalue()


def verdict_json(score: object = 7, has_tests: object = True, test_type: str = "unit", **extra: object) -> str:
    data = {
        "file_name": "ignored.py",
        "automation_score": score,
        "has_tests": has_tests,
        "test_type": test_type,
        "observations": [f"score {score}"],
        "improvement_suggestions": ["add tests"],
    }
    data.update(extra)
    return json.dumps(data)


class FakeClassifier:
    """Answers per unit path; a value may be text or an exception to raise."""

    def __init__(self, responses: dict[str, object] | None = None, default: object = None) -> None:
        self.responses = responses or {}
        self.default = default if default is not None else verdict_json()
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def _pick(self, prompt: str) -> object:
        for path, response in self.responses.items():
            if f'"file_name": "{path}"' in prompt:
                return response
        return self.default

    def __call__(self, system_role: str, prompt: str) -> str:
        with self._lock:
            self.calls.append((system_role, prompt))
        response = self._pick(prompt)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response()
        return response  # type: ignore[return-value]


@pytest.fixture()
def session_factory(tmp_path: Path) -> sessionmaker:
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture()
def jobs(session_factory: sessionmaker) -> JobRepository:
    return JobRepository(session_factory)


@pytest.fixture()
def reports(session_factory: sessionmaker) -> ReportRepository:
    return ReportRepository(session_factory)


@pytest.fixture()
def store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture()
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture()
def summarizer() -> MagicMock:
    return MagicMock(return_value=json.dumps({"summary": ["Solid unit coverage", "Mock the HTTP layer"]}))


@pytest.fixture()
def fast_scheduler() -> FanOutScheduler:
    return FanOutScheduler(concurrency=4, unit_timeout=5.0, batch_deadline=30.0, poll_interval=0.01)


@pytest.fixture()
def make_coordinator(
    session_factory: sessionmaker,
    store: MemoryBlobStore,
    classifier: FakeClassifier,
    summarizer: MagicMock,
    fast_scheduler: FanOutScheduler,
) -> Callable[..., PipelineCoordinator]:
    def _make(**overrides: object) -> PipelineCoordinator:
        kwargs: dict[str, object] = {
            "session_factory": session_factory,
            "store": store,
            "classifier": classifier,
            "summarizer": summarizer,
            "fetcher": MagicMock(),
            "scheduler": fast_scheduler,
        }
        kwargs.update(overrides)
        return build_coordinator(**kwargs)  # type: ignore[arg-type]

    return _make
