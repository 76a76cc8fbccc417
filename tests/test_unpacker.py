from __future__ import annotations

import gzip
import io
import random

import pytest

from conftest import make_targz
from repoaudit.core.errors import MalformedArchiveError, StorageError
from repoaudit.services.ingest.unpacker import ArchiveUnpacker, normalize_member_name
from repoaudit.storage.blob import MemoryBlobStore, unit_key


class FlakyStore(MemoryBlobStore):
    def __init__(self, failing: set[str]) -> None:
        super().__init__()
        self.failing = failing

    def put(self, key: str, data: bytes) -> None:
        if any(key.endswith(name) for name in self.failing):
            raise StorageError(f"simulated failure for {key}")
        super().put(key, data)


@pytest.fixture()
def unpacker(store: MemoryBlobStore) -> ArchiveUnpacker:
    return ArchiveUnpacker(store, concurrency=3)


class TestUnpack:
    def test_three_included_two_excluded(self, unpacker: ArchiveUnpacker, store: MemoryBlobStore) -> None:
        archive = make_targz({
            "repo-main/src/app.py": b"print('hi')\n",
            "repo-main/src/util.ts": b"export const x = 1;\n",
            "repo-main/README.md": b"# readme\n",
            "repo-main/node_modules/lib/index.js": b"module.exports = {};\n",
            "repo-main/assets/logo.png": b"\x89PNG",
        })

        paths = unpacker.unpack(archive, "u1", "p1")

        assert paths == ["repo-main/src/app.py", "repo-main/src/util.ts", "repo-main/README.md"]
        assert store.get(unit_key("u1", "p1", "repo-main/src/app.py")) == b"print('hi')\n"
        assert store.list("u1/p1/") == sorted(unit_key("u1", "p1", p) for p in paths)

    def test_skips_directories_and_symlinks(self, unpacker: ArchiveUnpacker) -> None:
        archive = make_targz(
            {"repo/a.py": b"x = 1\n"},
            dirs=("repo/", "repo/pkg/"),
            symlinks={"repo/link.py": "a.py"},
        )
        assert unpacker.unpack(archive, "u", "p") == ["repo/a.py"]

    def test_strips_leading_dot_slash(self, unpacker: ArchiveUnpacker) -> None:
        archive = make_targz({"./repo/a.py": b"x = 1\n"})
        assert unpacker.unpack(archive, "u", "p") == ["repo/a.py"]

    def test_empty_archive_gives_empty_list(self, unpacker: ArchiveUnpacker) -> None:
        assert unpacker.unpack(make_targz({}), "u", "p") == []

    def test_upload_failure_drops_only_that_path(self) -> None:
        store = FlakyStore(failing={"broken.py"})
        archive = make_targz({"r/ok.py": b"1", "r/broken.py": b"2", "r/also_ok.md": b"3"})

        paths = ArchiveUnpacker(store, concurrency=2).unpack(archive, "u", "p")

        assert paths == ["r/ok.py", "r/also_ok.md"]

    def test_accepts_file_object(self, unpacker: ArchiveUnpacker) -> None:
        archive = io.BytesIO(make_targz({"r/a.py": b"1"}))
        assert unpacker.unpack(archive, "u", "p") == ["r/a.py"]


class TestMalformed:
    def test_not_gzip(self, unpacker: ArchiveUnpacker) -> None:
        with pytest.raises(MalformedArchiveError):
            unpacker.unpack(b"definitely not an archive", "u", "p")

    def test_gzip_but_not_tar(self, unpacker: ArchiveUnpacker) -> None:
        with pytest.raises(MalformedArchiveError):
            unpacker.unpack(gzip.compress(b"plain text, no tar headers here" * 40), "u", "p")

    def test_truncated_stream(self, unpacker: ArchiveUnpacker) -> None:
        # Incompressible payloads so the cut lands inside file data
        archive = make_targz({f"r/f{i}.py": random.Random(i).randbytes(20000) for i in range(5)})
        with pytest.raises(MalformedArchiveError):
            unpacker.unpack(archive[: len(archive) // 2], "u", "p")

    def test_error_code(self, unpacker: ArchiveUnpacker) -> None:
        with pytest.raises(MalformedArchiveError) as exc_info:
            unpacker.unpack(b"\x00\x01", "u", "p")
        assert exc_info.value.code == "malformed_archive"


def test_normalize_member_name() -> None:
    assert normalize_member_name("././a/b.py") == "a/b.py"
    assert normalize_member_name("a/b.py") == "a/b.py"
