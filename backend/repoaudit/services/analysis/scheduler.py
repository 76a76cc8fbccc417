import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from repoaudit.core.config import settings
from repoaudit.core.errors import NothingToAnalyzeError
from repoaudit.core.logging import get_logger

logger = get_logger("fanout")


@dataclass
class DispatchSummary:
    job_id: str
    dispatched: int = 0
    completed: int = 0
    failed: int = 0
    timed_out: int = 0
    not_started: int = 0
    elapsed: float = 0.0
    timed_out_paths: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "dispatched": self.dispatched,
            "completed": self.completed,
            "failed": self.failed,
            "timed_out": self.timed_out,
            "not_started": self.not_started,
            "elapsed": round(self.elapsed, 3),
        }


class FanOutScheduler:
    """
    Runs one invocation per unit path on a bounded thread pool.

    A unit's timeout is measured from when a worker picks it up, so units
    queued behind the concurrency ceiling are not penalised. Once a unit is
    past its timeout (or the batch deadline passes) the scheduler stops
    waiting for it; the worker thread itself cannot be interrupted and may
    still write its verdict late. Verdicts are never returned here, they
    live in blob storage.
    """

    def __init__(self, concurrency: Optional[int] = None, unit_timeout: Optional[float] = None,
                 batch_deadline: Optional[float] = None, poll_interval: float = 0.5,
                 clock: Callable[[], float] = time.monotonic):
        self.concurrency = concurrency or settings.ANALYSIS_CONCURRENCY
        self.unit_timeout = unit_timeout if unit_timeout is not None else settings.UNIT_TIMEOUT_SECONDS
        self.batch_deadline = batch_deadline if batch_deadline is not None else settings.BATCH_DEADLINE_SECONDS
        self.poll_interval = poll_interval
        self.clock = clock

    def run(self, job_id: str, paths: List[str], invoke: Callable[[str], Any]) -> DispatchSummary:
        if not paths:
            raise NothingToAnalyzeError(f"Job {job_id}: no units to dispatch")

        summary = DispatchSummary(job_id=job_id, dispatched=len(paths))
        started_at: Dict[str, float] = {}
        lock = threading.Lock()
        begin = self.clock()
        deadline = begin + self.batch_deadline

        def _run(path: str) -> Any:
            with lock:
                started_at[path] = self.clock()
            return invoke(path)

        logger.info(f"Job {job_id}: dispatching {len(paths)} units (max {self.concurrency} in flight)")
        executor = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix=f"analyze-{job_id[:8]}")
        try:
            futures: Dict[Future, str] = {executor.submit(_run, path): path for path in paths}
            pending = set(futures)

            while pending:
                now = self.clock()
                if now >= deadline:
                    break

                done, _ = wait(pending, timeout=min(self.poll_interval, deadline - now), return_when=FIRST_COMPLETED)
                for future in done:
                    pending.discard(future)
                    exc = future.exception()
                    if exc is not None:
                        summary.failed += 1
                        logger.error(f"Unit {futures[future]} raised: {exc}")
                    else:
                        summary.completed += 1

                now = self.clock()
                with lock:
                    expired = [
                        f for f in pending
                        if not f.done() and futures[f] in started_at and now - started_at[futures[f]] >= self.unit_timeout
                    ]
                for future in expired:
                    pending.discard(future)
                    summary.timed_out += 1
                    summary.timed_out_paths.append(futures[future])
                    logger.warning(f"Unit {futures[future]} exceeded {self.unit_timeout}s, no longer waiting")

            if pending:
                logger.warning(f"Job {job_id}: batch deadline reached with {len(pending)} units outstanding")
            for future in pending:
                if future.cancel():
                    summary.not_started += 1
                else:
                    summary.timed_out += 1
                    summary.timed_out_paths.append(futures[future])
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        summary.elapsed = self.clock() - begin
        logger.info(f"Job {job_id}: dispatch finished {summary.as_dict()}")
        return summary
