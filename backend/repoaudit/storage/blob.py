"""Durable keyed blob storage.

Keys are ``/``-separated relative paths. Writers only ever write their own
key and a write is a full overwrite, so the stores need no locking beyond
single-key atomicity.
"""
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Protocol

from repoaudit.core.errors import StorageError


class BlobStore(Protocol):
    def put(self, key: str, data: bytes) -> None: ...

    def get(self, key: str) -> bytes: ...

    def list(self, prefix: str) -> List[str]: ...


def unit_prefix(user_id: str, project_id: str) -> str:
    return f"{user_id}/{project_id}/exploded-repo/"


def unit_key(user_id: str, project_id: str, path: str) -> str:
    return f"{unit_prefix(user_id, project_id)}{path}"


def result_prefix(user_id: str, project_id: str, job_id: str) -> str:
    return f"{user_id}/{project_id}/analysis-results/{job_id}/"


def result_key(user_id: str, project_id: str, job_id: str, path: str) -> str:
    return f"{result_prefix(user_id, project_id, job_id)}{path}.json"


def report_backup_key(user_id: str, project_id: str, job_id: str) -> str:
    return f"{user_id}/{project_id}/final-reports/{job_id}/master-report.json"


def manifest_key(user_id: str, project_id: str, job_id: str) -> str:
    return f"{user_id}/{project_id}/manifests/{job_id}.json"


def archive_key(user_id: str, project_id: str, job_id: str) -> str:
    return f"archives/{user_id}/{project_id}/{job_id}.tar.gz"


class LocalBlobStore:
    """Filesystem-backed store rooted at a directory."""

    def __init__(self, root):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        parts = [p for p in key.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.root.joinpath(*parts)

    def put(self, key: str, data: bytes) -> None:
        target = self._path(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp, target)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    def get(self, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

    def list(self, prefix: str) -> List[str]:
        base = self.root
        # Walk only the deepest directory named by the prefix
        dir_part = prefix.rsplit("/", 1)[0] if "/" in prefix else ""
        if dir_part:
            base = self._path(dir_part)
        if not base.is_dir():
            return []

        keys = []
        for path in base.rglob("*"):
            if not path.is_file() or path.name.startswith(".tmp-"):
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)


class MemoryBlobStore:
    """In-process store, used for single-worker runs and tests."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self._blobs[key] = bytes(data)

    def get(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._blobs[key]
            except KeyError:
                raise StorageError(f"No such key: {key}") from None

    def list(self, prefix: str) -> List[str]:
        with self._lock:
            return sorted(k for k in self._blobs if k.startswith(prefix))


def default_blob_store() -> BlobStore:
    from repoaudit.core.config import settings
    return LocalBlobStore(settings.STORAGE_ROOT)
