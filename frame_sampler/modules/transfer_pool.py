"""
Bounded Transfer Pool

Runs object-storage fetch/put jobs with a global concurrency ceiling.
A counting semaphore is the only shared mutable state; blocking store calls
run on a thread pool so they never stall the event loop.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional

from ..config import (
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_UPLOAD_CONCURRENCY_LIMIT,
    FailurePolicy,
    TransferConfig,
    TransferKind,
)
from ..errors import TransferFailure
from ..logging import get_logger
from .storage import ObjectStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransferJob:
    """One fetch or put. ``context`` is carried through untouched for the caller."""
    kind: TransferKind
    bucket: str
    key: str
    local_path: Path
    context: Any = None


@dataclass
class TransferResult:
    """A completed transfer."""
    index: int  # Position in the submitted batch
    job: TransferJob
    etag: Optional[str] = None
    skipped: bool = False  # Fetch skipped, local file already present


@dataclass
class TransferBatchResult:
    """Results in submission order, plus failures under the collect policy."""
    results: list[TransferResult] = field(default_factory=list)
    failures: list[TransferFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class BoundedTransferPool:
    """
    Concurrency-limited executor for independent transfer jobs.

    At most ``concurrency_limit`` jobs hold a slot at any instant. The slot is
    released on every exit path.

    Failure policies:
        - FAIL_FAST: the first failure aborts the batch. Jobs that have not
          started are abandoned, in-flight jobs finish and their results are
          discarded, and the first failure is raised.
        - COLLECT: every job runs; failures are returned with the results.

    Example:
        >>> pool = BoundedTransferPool(store, concurrency_limit=8)
        >>> batch = await pool.run([TransferJob(TransferKind.PUT, "b", "k/1.png", path)])
        >>> batch.results[0].etag
        '"9b2cf535f27731c974343645a3985328"'
    """

    def __init__(
        self,
        store: ObjectStore,
        concurrency_limit: int = DEFAULT_UPLOAD_CONCURRENCY_LIMIT,
        fetch_timeout: Optional[float] = DEFAULT_FETCH_TIMEOUT,
        failure_policy: FailurePolicy = FailurePolicy.FAIL_FAST,
        skip_existing_fetch: bool = False,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """
        Args:
            store: Object store the jobs run against
            concurrency_limit: Max jobs in flight (>= 1)
            fetch_timeout: Seconds before a fetch is abandoned (None = no limit)
            failure_policy: FAIL_FAST or COLLECT
            skip_existing_fetch: Do not re-download files already on disk
            executor: Thread pool for blocking store calls (owned if not given)
        """
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")

        self.store = store
        self.concurrency_limit = concurrency_limit
        self.fetch_timeout = fetch_timeout
        self.failure_policy = FailurePolicy(failure_policy)
        self.skip_existing_fetch = skip_existing_fetch

        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=concurrency_limit, thread_name_prefix="transfer"
        )
        self._semaphore = asyncio.Semaphore(concurrency_limit)
        self._in_flight = 0
        self.peak_in_flight = 0

    @classmethod
    def from_config(cls, store: ObjectStore, config: TransferConfig, **kwargs) -> "BoundedTransferPool":
        return cls(
            store,
            concurrency_limit=config.concurrency_limit,
            fetch_timeout=config.fetch_timeout,
            failure_policy=config.failure_policy,
            skip_existing_fetch=config.skip_existing_fetch,
            **kwargs,
        )

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @asynccontextmanager
    async def slot(self):
        """Hold one concurrency slot for the duration of the block."""
        async with self._semaphore:
            self._in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
            try:
                yield
            finally:
                self._in_flight -= 1

    async def bounded(self, fn: Callable[..., Awaitable[Any]], *args) -> Any:
        """Run an awaitable factory inside a slot."""
        async with self.slot():
            return await fn(*args)

    async def run(self, jobs: Iterable[TransferJob]) -> TransferBatchResult:
        """
        Execute all jobs under the concurrency ceiling.

        Returns:
            TransferBatchResult with results ordered as submitted

        Raises:
            TransferFailure: Under FAIL_FAST, the first job failure
        """
        jobs = list(jobs)
        if not jobs:
            return TransferBatchResult()

        abort = asyncio.Event()
        first_failure: list[TransferFailure] = []
        fail_fast = self.failure_policy == FailurePolicy.FAIL_FAST

        async def run_one(index: int, job: TransferJob):
            async with self.slot():
                if abort.is_set():
                    return None
                try:
                    return await self._execute(index, job)
                except TransferFailure as failure:
                    logger.warning(f"Transfer failed: {failure}")
                    if fail_fast and not abort.is_set():
                        first_failure.append(failure)
                        abort.set()
                    return failure

        logger.debug(f"Running {len(jobs)} transfers (limit={self.concurrency_limit}, policy={self.failure_policy.value})")
        outcomes = await asyncio.gather(*(run_one(i, job) for i, job in enumerate(jobs)))

        results = [o for o in outcomes if isinstance(o, TransferResult)]
        failures = [o for o in outcomes if isinstance(o, TransferFailure)]

        if first_failure:
            abandoned = sum(1 for o in outcomes if o is None)
            logger.error(
                f"Transfer batch aborted: {first_failure[0]} "
                f"({len(results)} completed results discarded, {abandoned} jobs not started)"
            )
            raise first_failure[0]

        logger.info(f"Transfer batch complete: {len(results)}/{len(jobs)} succeeded")
        return TransferBatchResult(results=results, failures=failures)

    async def _execute(self, index: int, job: TransferJob) -> TransferResult:
        """Run a single job; every error becomes a TransferFailure tagged with its key."""
        try:
            if job.kind == TransferKind.FETCH:
                return await self._fetch(index, job)
            return await self._put(index, job)
        except TransferFailure:
            raise
        except asyncio.TimeoutError as e:
            raise TransferFailure(
                f"timed out after {self.fetch_timeout}s", key=job.key, bucket=job.bucket, kind=job.kind
            ) from e
        except Exception as e:
            raise TransferFailure(str(e) or type(e).__name__, key=job.key, bucket=job.bucket, kind=job.kind) from e

    async def _fetch(self, index: int, job: TransferJob) -> TransferResult:
        local_path = Path(job.local_path)
        if self.skip_existing_fetch and local_path.exists():
            logger.info(f"File already exists at {local_path}, skipping download")
            return TransferResult(index=index, job=job, skipped=True)

        call = self._run_blocking(self.store.fetch_object, job.bucket, job.key, local_path)
        if self.fetch_timeout:
            etag = await asyncio.wait_for(call, timeout=self.fetch_timeout)
        else:
            etag = await call
        return TransferResult(index=index, job=job, etag=etag)

    async def _put(self, index: int, job: TransferJob) -> TransferResult:
        local_path = Path(job.local_path)
        if not local_path.is_file():
            raise TransferFailure(
                f"local file missing: {local_path}", key=job.key, bucket=job.bucket, kind=job.kind
            )
        etag = await self._run_blocking(self.store.put_object, job.bucket, job.key, local_path)
        return TransferResult(index=index, job=job, etag=etag)

    async def _run_blocking(self, func, *args):
        """Execute a blocking function in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, func, *args)

    def close(self) -> None:
        """Release the owned thread pool. In-flight store calls are not interrupted."""
        if self._owns_executor:
            self.executor.shutdown(wait=False)

    async def __aenter__(self) -> "BoundedTransferPool":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
