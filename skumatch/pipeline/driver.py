"""
Batch driver — runs one match job from queued to a terminal status.

  claim job (queued → running)
  loop: check cancel → heartbeat → next page of queued rows (cursor on seq)
        → row processor for each row
  finalize: recount rows by status → succeeded | partial | failed | cancelled

One driver owns a job at a time; the claim is a conditional update, so a
second invocation is rejected while the first is alive. Re-running a
finished job is a no-op. A driver that dies leaves the job running with a
stale heartbeat, and the next run_job() for it takes over where it stopped.
"""
import logging
from concurrent.futures import ThreadPoolExecutor

from skumatch.config import (
    JOB_TERMINAL_STATUSES, JOB_TIMEOUT, MOCK_RESOLVER, PAGE_SIZE, ROW_CONCURRENCY,
)
from skumatch.errors import JobAlreadyRunningError, JobNotFoundError, JobStateError
from skumatch.logging_config import job_logger
from skumatch.pipeline.base import JobResult, JobStats, Resolver
from skumatch.pipeline.row_processor import process_row
from skumatch.services import store
from skumatch.services.notifications import notify_job_finished

logger = logging.getLogger('pipeline.driver')


# ── Lazy RQ queue (avoids import-time Redis connection) ──────────────────────

_queue = None


def _get_queue():
    global _queue
    if _queue is None:
        from rq import Queue
        from skumatch.extensions import queue_connection
        _queue = Queue('match', connection=queue_connection)
    return _queue


def get_resolver() -> Resolver:
    """Resolver for this process: the mock under MOCK_RESOLVER, else the HTTP client."""
    if MOCK_RESOLVER:
        from skumatch.pipeline.mock_resolver import MockResolver
        logger.info("MOCK_RESOLVER active — using fake resolver")
        return MockResolver()
    from skumatch.services.resolver_client import HttpResolver
    return HttpResolver()


# ── Public API ────────────────────────────────────────────────────────────────

def launch_job(job_id: str):
    """
    Enqueue run_job on the RQ 'match' queue. Returns the RQ job id.

    Accepts a queued job, or a running job whose driver stopped heartbeating
    (worker crash, RQ job_timeout kill); run_job takes the latter over.
    """
    job = store.get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    if job.status == 'running':
        if not store.is_job_stale(job_id):
            raise JobStateError(job_id, job.status, 'start')
        logger.warning("Job %s has a stale heartbeat — re-enqueueing for takeover", job_id)
    elif job.status != 'queued':
        raise JobStateError(job_id, job.status, 'start')

    rq_job = _get_queue().enqueue(run_job, job_id, job_timeout=JOB_TIMEOUT)
    logger.info("Enqueued job %s (rq=%s)", job_id, rq_job.id)
    return rq_job.id


def get_job_status(job_id: str):
    job = store.get_job(job_id)
    if job is None:
        return None
    return job.to_dict()


def classify_status(stats: JobStats) -> str:
    """
    errors == 0                → succeeded
    errors > 0, successes > 0  → partial
    errors > 0, successes == 0 → failed
    """
    if stats.errors == 0:
        return 'succeeded'
    if stats.successes == 0:
        return 'failed'
    return 'partial'


# ── Driver (enqueued via RQ) ──────────────────────────────────────────────────

def run_job(job_id: str, resolver: Resolver = None, page_size: int = None,
            concurrency: int = None) -> JobResult:
    """
    Process every queued row of a job and commit its terminal status.

    Raises JobNotFoundError for an unknown id (nothing written) and
    JobAlreadyRunningError when another live driver holds the job.
    """
    job = store.get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)

    if job.status in JOB_TERMINAL_STATUSES:
        logger.info("Job %s already %s — nothing to do", job_id, job.status)
        return JobResult(job_id=job_id, ok=True, status=job.status,
                         stats=JobStats(**job.stats()), skipped=True)

    if not store.claim_job(job_id):
        logger.warning("Job %s is held by another driver — rejecting", job_id)
        raise JobAlreadyRunningError(job_id)

    log = job_logger(logger, job_id, tenant_id=job.tenant_id)

    if job.status == 'running':
        interrupted = store.interrupt_running_rows(job_id)
        log.warning("Took over stale job %s — %d in-flight rows marked interrupted", job_id, interrupted)

    resolver = resolver or get_resolver()
    page_size = page_size or PAGE_SIZE
    concurrency = concurrency or ROW_CONCURRENCY

    log.info("Starting job %s (tenant=%s, rows=%d, page_size=%d, concurrency=%d)",
             job_id, job.tenant_id, job.input_count or 0, page_size, concurrency)

    processed = JobStats()
    cursor = None
    cancelled = False
    pages = 0

    while True:
        current = store.get_job(job_id)
        if current is None:
            raise JobNotFoundError(job_id)
        if current.cancel_requested:
            log.info("Job %s cancellation requested — stopping after %d pages", job_id, pages)
            cancelled = True
            break
        store.touch_job(job_id)

        page = store.get_queued_rows(job_id, cursor, page_size)
        if not page:
            break

        pages += 1
        outcomes = _process_page(job_id, page, resolver, job.tenant_id, concurrency)
        page_stats = JobStats.from_statuses(o.status for o in outcomes if not o.skipped)
        processed = processed.merge(page_stats)
        log.info("Job %s page %d: %d rows (cursor=%s) → %s",
                 job_id, pages, len(page), cursor, page_stats.to_dict())

        cursor = page[-1].seq
        if len(page) < page_size:
            break

    result = finalize(job_id, cancelled=cancelled)
    if result.stats != processed:
        log.info("Job %s: this run processed %s, job totals %s",
                 job_id, processed.to_dict(), result.stats.to_dict())
    return result


def finalize(job_id: str, cancelled: bool = False) -> JobResult:
    """
    Commit the terminal status computed from the job's row statuses.

    Counts come from the rows themselves rather than in-memory tallies, so
    parallel pages and taken-over runs are counted exactly once.
    """
    log = job_logger(logger, job_id)
    counts = store.count_rows_by_status(job_id)
    stats = JobStats.from_counts(counts)

    pending = counts.get('queued', 0) + counts.get('running', 0)
    if pending and not cancelled:
        # Left running; once the heartbeat goes stale the job can be taken over
        job = store.get_job(job_id)
        current = job.status if job else 'missing'
        log.error("Job %s still has %d unfinished rows — not finalizing (status %s)",
                  job_id, pending, current)
        return JobResult(job_id=job_id, ok=False, status=current, stats=stats)

    status = 'cancelled' if cancelled else classify_status(stats)

    if not store.finalize_job(job_id, status, stats):
        job = store.get_job(job_id)
        current = job.status if job else 'missing'
        log.error("Job %s left running before it could be finalized (now %s)", job_id, current)
        return JobResult(job_id=job_id, ok=False, status=current, stats=stats)

    log.info("Job %s finished %s — %s", job_id, status, stats.to_dict())
    notify_job_finished(store.get_job(job_id))
    return JobResult(job_id=job_id, ok=True, status=status, stats=stats)


def _process_page(job_id, page, resolver, tenant_id, concurrency):
    """
    Run the row processor over one page, in order, optionally on a bounded pool.

    The job heartbeat is bumped after every row so a page of slow resolver
    calls does not look like a dead driver.
    """
    def _run(row):
        outcome = process_row(row, resolver, tenant_id)
        store.touch_job(job_id)
        return outcome

    if concurrency <= 1 or len(page) == 1:
        return [_run(row) for row in page]

    with ThreadPoolExecutor(max_workers=min(concurrency, len(page))) as pool:
        return list(pool.map(_run, page))
