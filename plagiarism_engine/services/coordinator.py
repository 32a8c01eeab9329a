import asyncio
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import List, Optional, Set

from plagiarism_engine import config
from plagiarism_engine.models.documents import CheckJob
from plagiarism_engine.models.schemas import (
    ACTIVE_STATUSES,
    CheckStatus,
    ErrorCode,
    PlagiarismCheck,
    Scope,
    SourceMetadata,
)
from plagiarism_engine.services.corpus_index import CorpusIndex, scope_key
from plagiarism_engine.services.errors import JobStoreError, JobTimeoutError, PlagiarismEngineError
from plagiarism_engine.services.job_store import JobStore
from plagiarism_engine.services.pipeline import CheckPipeline

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _transition(check: PlagiarismCheck, **changes) -> PlagiarismCheck:
    """A new record with ``changes`` applied; re-validated so the status/result invariants hold."""
    data = dict(check)
    data.update(changes)
    return PlagiarismCheck(**data)


class JobCoordinator:
    """
    Drives checks through pending -> processing -> completed | failed.

    Requests are queued and consumed by a fixed number of worker tasks;
    each worker runs a job's pipeline in a thread pool of the same size,
    bounded by a per-job timeout. Every transition is a compare-and-set
    on the job store, so at most one attempt per submission is live and a
    superseded attempt can never overwrite a newer one.

    The corpus grows only after a check has been recorded as completed.
    """

    def __init__(
        self,
        store: JobStore,
        index: CorpusIndex,
        pipeline: Optional[CheckPipeline] = None,
        *,
        workers: int = config.WORKER_COUNT,
        queue_maxsize: int = config.QUEUE_MAXSIZE,
        timeout: float = config.JOB_TIMEOUT_SECONDS,
        max_retries: int = config.MAX_RETRIES,
        retry_backoff: float = config.RETRY_BACKOFF_SECONDS,
        corpus_scope: str = config.CORPUS_SCOPE,
    ) -> None:
        self.store = store
        self.index = index
        self.pipeline = pipeline or CheckPipeline(index)
        self.workers = max(1, int(workers))
        self.queue_maxsize = queue_maxsize
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.corpus_scope = corpus_scope

        self._queue: Optional[asyncio.Queue] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._worker_tasks: List[asyncio.Task] = []
        self._retry_tasks: Set[asyncio.Task] = set()

    # ------------- lifecycle -------------

    async def start(self) -> None:
        if self._queue is not None:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_maxsize)
        self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="plagiarism-check")
        self._worker_tasks = [
            asyncio.create_task(self._worker(n), name=f"plagiarism-worker-{n}")
            for n in range(self.workers)
        ]
        logger.info("Job coordinator started with %d workers", self.workers)
        await self._recover()

    async def stop(self) -> None:
        tasks = list(self._worker_tasks) + list(self._retry_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._worker_tasks = []
        self._retry_tasks.clear()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
        self._executor = None
        self._queue = None
        logger.info("Job coordinator stopped")

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    # ------------- public operations -------------

    async def request_check(
        self,
        submission_id: int,
        text: str,
        scope: Optional[Scope] = None,
        *,
        requested_by: Optional[str] = None,
        source: Optional[SourceMetadata] = None,
    ) -> PlagiarismCheck:
        """
        Start a check, or return the live one. A submission whose check is
        pending or processing gets that record back unchanged; otherwise a
        fresh attempt replaces any finished record and is queued.
        """
        existing = await self.store.get(submission_id)
        if existing is not None and existing.status in ACTIVE_STATUSES:
            logger.info("Check for submission %s already %s", submission_id, existing.status.value)
            return existing

        check = PlagiarismCheck(
            submission_id=submission_id,
            attempt_id=uuid.uuid4().hex,
            status=CheckStatus.PENDING,
            requested_by=requested_by,
            requested_at=_now(),
            retry_count=0,
            scope=scope or Scope(),
            text=text or "",
            source=source or SourceMetadata(),
        )
        if not await self.store.compare_and_set(submission_id, existing, check):
            # another request won the race; its record is the live one
            winner = await self.store.get(submission_id)
            logger.info("Concurrent request for submission %s; returning the existing check", submission_id)
            return winner if winner is not None else check

        await self._enqueue(check)
        logger.info("Queued check %s for submission %s", check.attempt_id, submission_id)
        return check

    async def get_result(self, submission_id: int) -> Optional[PlagiarismCheck]:
        return await self.store.get(submission_id)

    async def list_checks(self, scope: Optional[Scope] = None) -> List[PlagiarismCheck]:
        scope = scope or Scope()
        return await self.store.list(course_id=scope.course_id, assignment_id=scope.assignment_id)

    async def withdraw_submission(self, submission_id: int) -> bool:
        """Remove a submission from future comparisons (e.g. the student left the course)."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.index.withdraw, submission_id)

    # ------------- internals -------------

    async def _enqueue(self, check: PlagiarismCheck) -> None:
        if self._queue is None:
            raise RuntimeError("JobCoordinator not started. Call start() first.")
        job = CheckJob(
            submission_id=check.submission_id,
            attempt_id=check.attempt_id,
            text=check.text,
            scope_key=scope_key(check.scope, self.corpus_scope),
            source=check.source,
        )
        # blocks while the queue is full
        await self._queue.put(job)

    async def _worker(self, n: int) -> None:
        queue = self._queue
        if queue is None:
            raise RuntimeError("JobCoordinator not started. Call start() first.")
        while True:
            job = await queue.get()
            try:
                await self._process(job)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Worker %d could not handle submission %s", n, job.submission_id)
            finally:
                queue.task_done()

    async def _process(self, job: CheckJob) -> None:
        current = await self.store.get(job.submission_id)
        if (
            current is None
            or current.attempt_id != job.attempt_id
            or current.status != CheckStatus.PENDING
        ):
            logger.info("Dropping stale job %s for submission %s", job.attempt_id, job.submission_id)
            return

        processing = _transition(current, status=CheckStatus.PROCESSING, started_at=_now())
        if not await self._write(job.submission_id, current, processing):
            return
        logger.info("Processing submission %s (attempt %s, retry %d)",
                    job.submission_id, job.attempt_id, processing.retry_count)

        loop = asyncio.get_running_loop()
        try:
            result, entry = await self._run_pipeline(job)
        except asyncio.TimeoutError:
            await self._fail(processing, JobTimeoutError(
                f"check did not finish within {self.timeout:g}s"
            ))
            return
        except PlagiarismEngineError as e:
            await self._fail(processing, e)
            return
        except Exception as e:
            logger.exception("Unexpected error while checking submission %s", job.submission_id)
            await self._fail(processing, PlagiarismEngineError(f"internal error: {e}"))
            return

        completed = _transition(
            processing,
            status=CheckStatus.COMPLETED,
            result=result,
            completed_at=_now(),
            error=None,
            error_code=None,
        )
        try:
            written = await self._write(job.submission_id, processing, completed)
        except JobStoreError as e:
            await self._fail(processing, e)
            return
        if not written:
            logger.warning("Check %s for submission %s was superseded; discarding its result",
                           job.attempt_id, job.submission_id)
            return
        logger.info("Completed check for submission %s (score %.1f)", job.submission_id, result.similarity_score)

        if entry is not None:
            try:
                await loop.run_in_executor(self._executor, self.index.index, entry)
            except Exception:
                logger.exception("Could not add submission %s to the corpus", job.submission_id)

    async def _fail(self, processing: PlagiarismCheck, error: PlagiarismEngineError) -> None:
        failed = _transition(
            processing,
            status=CheckStatus.FAILED,
            result=None,
            error=str(error) or error.code.value,
            error_code=error.code,
            completed_at=_now(),
        )
        if not await self._write(processing.submission_id, processing, failed):
            return

        if error.retryable and failed.retry_count < self.max_retries:
            delay = self.retry_backoff * (2 ** failed.retry_count)
            logger.warning("Check for submission %s failed (%s); retry %d/%d in %.1fs",
                           failed.submission_id, error, failed.retry_count + 1, self.max_retries, delay)
            task = asyncio.create_task(self._retry(failed, delay))
            self._retry_tasks.add(task)
            task.add_done_callback(self._retry_tasks.discard)
        else:
            logger.error("Check for submission %s failed: [%s] %s",
                         failed.submission_id, error.code.value, failed.error)

    async def _retry(self, failed: PlagiarismCheck, delay: float) -> None:
        await asyncio.sleep(delay)
        pending = _transition(
            failed,
            status=CheckStatus.PENDING,
            retry_count=failed.retry_count + 1,
            completed_at=None,
            started_at=None,
        )
        # a new request for the submission replaces the failed attempt; then this retry is moot
        try:
            written = await self._write(failed.submission_id, failed, pending)
        except JobStoreError:
            logger.exception("Could not schedule retry for submission %s", failed.submission_id)
            return
        if written:
            await self._enqueue(pending)

    async def _run_pipeline(self, job: CheckJob):
        """
        Run the pipeline in the executor. The job's clock starts when a
        thread picks it up, so time spent waiting for a free thread (one
        may still be finishing a timed-out job) does not count against it.
        """
        loop = asyncio.get_running_loop()
        started = asyncio.Event()

        def run():
            loop.call_soon_threadsafe(started.set)
            return self.pipeline.run(job, time.monotonic() + self.timeout)

        future = loop.run_in_executor(self._executor, run)
        waiter = asyncio.ensure_future(started.wait())
        try:
            await asyncio.wait({future, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        return await asyncio.wait_for(future, timeout=self.timeout)

    async def _write(self, submission_id: int, expected: PlagiarismCheck, new: PlagiarismCheck) -> bool:
        """
        Compare-and-set with bounded re-attempts while the store is
        unreachable. A write that raised may still have landed, so a
        rejection after an error counts as success when the stored record
        is already ``new``.
        """
        for attempt in range(self.max_retries + 1):
            try:
                if await self.store.compare_and_set(submission_id, expected, new):
                    return True
            except JobStoreError as e:
                if attempt == self.max_retries:
                    raise
                delay = self.retry_backoff * (2 ** attempt)
                logger.warning("Job store write for submission %s failed (%s); retrying in %.1fs",
                               submission_id, e, delay)
                await asyncio.sleep(delay)
                continue
            if attempt == 0:
                return False
            current = await self.store.get(submission_id)
            return (
                current is not None
                and current.status == new.status
                and current.attempt_id == new.attempt_id
            )
        return False

    async def _recover(self) -> None:
        """Re-queue checks a previous process left pending or processing."""
        stale = await self.store.list(statuses=ACTIVE_STATUSES)
        for check in stale:
            if check.status == CheckStatus.PROCESSING:
                pending = _transition(check, status=CheckStatus.PENDING, started_at=None,
                                      error="interrupted by restart", error_code=ErrorCode.INTERRUPTED)
                if not await self.store.compare_and_set(check.submission_id, check, pending):
                    continue
                check = pending
            await self._enqueue(check)
        if stale:
            logger.info("Recovered %d unfinished checks", len(stale))
