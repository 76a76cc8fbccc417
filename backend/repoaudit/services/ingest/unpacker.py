import io
import tarfile
import zlib
from concurrent.futures import ThreadPoolExecutor
from typing import BinaryIO, List, Optional, Union
from repoaudit.core.config import settings
from repoaudit.core.errors import MalformedArchiveError
from repoaudit.core.logging import get_logger
from repoaudit.services.ingest.policy import is_included
from repoaudit.storage.blob import BlobStore, unit_key

logger = get_logger("unpacker")


def normalize_member_name(name: str) -> str:
    while name.startswith("./"):
        name = name[2:]
    return name


class ArchiveUnpacker:
    def __init__(self, store: BlobStore, concurrency: Optional[int] = None):
        self.store = store
        self.concurrency = concurrency or settings.UPLOAD_CONCURRENCY

    def unpack(self, archive: Union[bytes, BinaryIO], user_id: str, project_id: str) -> List[str]:
        """
        Explode a .tar.gz into per-file blobs and return the relative paths written.
        Entries are read in stream order; uploads run concurrently. A path whose
        upload fails is dropped from the result instead of failing the unpack.
        """
        fileobj = io.BytesIO(archive) if isinstance(archive, (bytes, bytearray)) else archive
        logger.info(f"Unpacking archive for user {user_id} project {project_id}")

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="unpack") as pool:
            uploads = []
            try:
                with tarfile.open(fileobj=fileobj, mode="r|gz") as tar:
                    for member in tar:
                        if not member.isreg():
                            continue
                        path = normalize_member_name(member.name)
                        if not is_included(path):
                            continue

                        extracted = tar.extractfile(member)
                        content = extracted.read() if extracted is not None else b""
                        uploads.append((path, pool.submit(self._upload, user_id, project_id, path, content)))
            except (tarfile.TarError, EOFError, zlib.error, OSError) as e:
                # Let in-flight uploads settle before giving up on the whole archive
                for _, future in uploads:
                    future.exception()
                raise MalformedArchiveError(f"Malformed archive: {e}") from e

            written = [path for path, future in uploads if future.result()]

        logger.info(f"Successfully uploaded {len(written)}/{len(uploads)} files")
        return written

    def _upload(self, user_id: str, project_id: str, path: str, content: bytes) -> bool:
        try:
            self.store.put(unit_key(user_id, project_id, path), content)
            return True
        except Exception as e:
            logger.error(f"Error uploading {path}: {e}")
            return False
