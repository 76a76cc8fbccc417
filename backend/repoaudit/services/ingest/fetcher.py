from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote
import httpx
from repoaudit.core.config import settings
from repoaudit.core.errors import ArchiveFetchError
from repoaudit.core.logging import get_logger

logger = get_logger("fetcher")


@dataclass(frozen=True)
class RepoRef:
    owner: str
    repo: str
    branch: str = "main"

    @classmethod
    def parse(cls, ref: str) -> "RepoRef":
        """Accepts ``owner/repo`` or ``owner/repo@branch``."""
        slug, _, branch = ref.strip().partition("@")
        owner, _, repo = slug.partition("/")
        if not owner or not repo or "/" in repo:
            raise ValueError(f"Invalid repository reference: {ref!r}")
        return cls(owner=owner, repo=repo, branch=branch or "main")

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}@{self.branch}"


class GitHubArchiveFetcher:
    """Downloads the tar.gz snapshot of a repository at a branch."""

    def __init__(self, token: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        self.token = token if token is not None else settings.GITHUB_TOKEN
        self.base_url = (base_url or settings.GITHUB_ARCHIVE_BASE).rstrip("/")
        self.timeout = timeout or settings.FETCH_TIMEOUT
        self.transport = transport

    def archive_url(self, ref: RepoRef) -> str:
        return f"{self.base_url}/{ref.owner}/{ref.repo}/tar.gz/{quote(ref.branch, safe='')}"

    def fetch(self, ref: RepoRef) -> bytes:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
            headers["Accept"] = "application/vnd.github+json"

        url = self.archive_url(ref)
        logger.info(f"Downloading archive {url}")
        try:
            with httpx.Client(timeout=self.timeout, follow_redirects=True, transport=self.transport) as client:
                resp = client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise ArchiveFetchError(f"Failed to download archive for {ref}: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise ArchiveFetchError(f"Failed to download archive for {ref}: {resp.status_code}")
        return resp.content
