from typing import Optional
from sqlalchemy.orm import sessionmaker
from repoaudit.db.repository import default_repositories
from repoaudit.services.analysis.analyzer import Classifier, UnitAnalyzer
from repoaudit.services.analysis.scheduler import FanOutScheduler
from repoaudit.services.ingest.fetcher import GitHubArchiveFetcher
from repoaudit.services.ingest.unpacker import ArchiveUnpacker
from repoaudit.services.pipeline.coordinator import PipelineCoordinator
from repoaudit.services.reduce.reducer import Reducer
from repoaudit.services.report.summary import SummaryService, Summarizer
from repoaudit.storage.blob import BlobStore, default_blob_store


def build_coordinator(
    session_factory: Optional[sessionmaker] = None,
    store: Optional[BlobStore] = None,
    classifier: Optional[Classifier] = None,
    summarizer: Optional[Summarizer] = None,
    fetcher: Optional[GitHubArchiveFetcher] = None,
    scheduler: Optional[FanOutScheduler] = None,
) -> PipelineCoordinator:
    """Wire a coordinator from settings, overriding any collaborator given."""
    if classifier is None or summarizer is None:
        from repoaudit.services.llm.client import llm_client
        classifier = classifier or llm_client.classify
        summarizer = summarizer or llm_client.summarize

    store = store or default_blob_store()
    jobs, reports = default_repositories(session_factory)
    return PipelineCoordinator(
        jobs=jobs,
        store=store,
        unpacker=ArchiveUnpacker(store),
        analyzer=UnitAnalyzer(store, classifier),
        scheduler=scheduler or FanOutScheduler(),
        reducer=Reducer(store, reports, SummaryService(summarizer)),
        fetcher=fetcher or GitHubArchiveFetcher(),
    )
