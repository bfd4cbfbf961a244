"""
Record store — Postgres persistence for match jobs and their rows.

Every function opens its own session (get_session) and closes it before
returning, so callers never hold a session across resolver calls. Writes are
retried with linear backoff and raise StoreWriteError once attempts run out;
reads propagate SQLAlchemy errors unchanged.
"""
import logging
import re
import time
import uuid
from datetime import timedelta

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from skumatch.config import (
    JOB_STALE_AFTER, JOB_TERMINAL_STATUSES, MAX_JOB_ROWS,
    STORE_RETRY_ATTEMPTS, STORE_RETRY_BACKOFF,
)
from skumatch.database import get_session
from skumatch.errors import JobNotFoundError, JobStateError, StoreWriteError
from skumatch.models.job import MatchJob, utcnow
from skumatch.models.job_row import MatchJobRow

logger = logging.getLogger('services.store')

ROW_INPUT_FIELDS = ('supplier_name', 'supplier_key', 'sku', 'ndc_item_code', 'product_name', 'brand_name')


# ── Retry wrapper ────────────────────────────────────────────────────────────

def _with_retries(operation, func_, *args, **kwargs):
    """Run a write, retrying SQLAlchemy errors up to STORE_RETRY_ATTEMPTS times."""
    attempts = max(1, STORE_RETRY_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        try:
            return func_(*args, **kwargs)
        except SQLAlchemyError as e:
            if attempt == attempts:
                logger.error("Store write '%s' failed after %d attempts", operation, attempts, exc_info=True)
                raise StoreWriteError(operation, e) from e
            wait = STORE_RETRY_BACKOFF * attempt
            logger.warning("Store write '%s' failed (attempt %d/%d), retrying in %.1fs: %s",
                           operation, attempt, attempts, wait, e)
            time.sleep(wait)


def _execute_write(stmt):
    """Execute one UPDATE in its own transaction, return affected row count."""
    session = get_session()
    try:
        result = session.execute(stmt, execution_options={'synchronize_session': False})
        session.commit()
        return result.rowcount
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ── Reads ────────────────────────────────────────────────────────────────────

def get_job(job_id):
    """Point read. Returns a detached MatchJob or None."""
    session = get_session()
    try:
        return session.get(MatchJob, job_id)
    finally:
        session.close()


def list_jobs(tenant_id=None, limit=20):
    """Most recent jobs first, optionally scoped to one tenant."""
    session = get_session()
    try:
        query = session.query(MatchJob)
        if tenant_id:
            query = query.filter(MatchJob.tenant_id == tenant_id)
        return query.order_by(MatchJob.created_at.desc()).limit(limit).all()
    finally:
        session.close()


def get_queued_rows(job_id, cursor, limit):
    """
    Up to `limit` queued rows of a job with seq strictly after `cursor`.

    Keyed on seq (creation order), never on a positional offset: rows drop out
    of the queued predicate while the driver works through them, and an offset
    would then skip unprocessed rows.
    """
    session = get_session()
    try:
        query = session.query(MatchJobRow).filter(
            MatchJobRow.job_id == job_id,
            MatchJobRow.status == 'queued',
        )
        if cursor is not None:
            query = query.filter(MatchJobRow.seq > cursor)
        return query.order_by(MatchJobRow.seq.asc()).limit(limit).all()
    finally:
        session.close()


def list_rows(job_id, status=None, after=None, limit=100):
    """Cursor-paged listing of a job's rows for the API (any status)."""
    session = get_session()
    try:
        query = session.query(MatchJobRow).filter(MatchJobRow.job_id == job_id)
        if status:
            query = query.filter(MatchJobRow.status == status)
        if after is not None:
            query = query.filter(MatchJobRow.seq > after)
        return query.order_by(MatchJobRow.seq.asc()).limit(limit).all()
    finally:
        session.close()


def count_rows_by_status(job_id):
    """{row_status: count} for one job."""
    session = get_session()
    try:
        stmt = (
            select(MatchJobRow.status, func.count())
            .where(MatchJobRow.job_id == job_id)
            .group_by(MatchJobRow.status)
        )
        return {status: count for status, count in session.execute(stmt).all()}
    finally:
        session.close()


# ── Job writes ───────────────────────────────────────────────────────────────

def update_job(job_id, **fields):
    """Point update. Returns False when the job does not exist."""
    fields.setdefault('updated_at', utcnow())
    stmt = update(MatchJob).where(MatchJob.id == job_id).values(**fields)
    return _with_retries('update_job', _execute_write, stmt) > 0


def claim_job(job_id, stale_after=None):
    """
    Atomically move a job to running.

    Succeeds from queued, or from running when the previous driver's heartbeat
    (updated_at) is older than stale_after seconds. Returns True if this
    caller now owns the job.
    """
    stale_after = JOB_STALE_AFTER if stale_after is None else stale_after
    now = utcnow()
    cutoff = now - timedelta(seconds=stale_after)
    stmt = (
        update(MatchJob)
        .where(MatchJob.id == job_id)
        .where(or_(
            MatchJob.status == 'queued',
            and_(MatchJob.status == 'running', MatchJob.updated_at < cutoff),
        ))
        .values(
            status='running',
            updated_at=now,
            started_at=func.coalesce(MatchJob.started_at, now),
        )
    )
    return _with_retries('claim_job', _execute_write, stmt) > 0


def is_job_stale(job_id, stale_after=None):
    """True when the job is running and its heartbeat is older than stale_after seconds."""
    stale_after = JOB_STALE_AFTER if stale_after is None else stale_after
    cutoff = utcnow() - timedelta(seconds=stale_after)
    session = get_session()
    try:
        stmt = select(func.count()).select_from(MatchJob).where(
            MatchJob.id == job_id,
            MatchJob.status == 'running',
            MatchJob.updated_at < cutoff,
        )
        return session.execute(stmt).scalar() > 0
    finally:
        session.close()


def touch_job(job_id):
    """Heartbeat: bump updated_at while the job is running."""
    stmt = (
        update(MatchJob)
        .where(MatchJob.id == job_id, MatchJob.status == 'running')
        .values(updated_at=utcnow())
    )
    return _with_retries('touch_job', _execute_write, stmt) > 0


def finalize_job(job_id, status, stats):
    """
    Single write that takes a job out of running: terminal status + counts.

    Conditional on status == running, so a driver that lost ownership cannot
    overwrite the outcome recorded by its successor.
    """
    now = utcnow()
    stmt = (
        update(MatchJob)
        .where(MatchJob.id == job_id, MatchJob.status == 'running')
        .values(
            status=status,
            resolved_count=stats.resolved,
            review_count=stats.review,
            unresolved_count=stats.unresolved,
            error_count=stats.errors,
            cancel_requested=False,
            updated_at=now,
            finished_at=now,
        )
    )
    return _with_retries('finalize_job', _execute_write, stmt) > 0


def request_cancel(job_id):
    """
    Ask for a job to stop.

    Queued jobs are cancelled on the spot; running jobs get cancel_requested
    and the driver stops before its next page. Returns the resulting status.
    """
    job = get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    if job.status in JOB_TERMINAL_STATUSES:
        raise JobStateError(job_id, job.status, 'cancel')

    now = utcnow()
    stmt = (
        update(MatchJob)
        .where(MatchJob.id == job_id, MatchJob.status == 'queued')
        .values(status='cancelled', updated_at=now, finished_at=now)
    )
    if _with_retries('cancel_job', _execute_write, stmt) > 0:
        logger.info("Job %s cancelled before start", job_id)
        return 'cancelled'

    stmt = (
        update(MatchJob)
        .where(MatchJob.id == job_id, MatchJob.status == 'running')
        .values(cancel_requested=True)
    )
    if _with_retries('cancel_job', _execute_write, stmt) > 0:
        logger.info("Cancellation requested for running job %s", job_id)
        return 'running'

    # Finished between the read and the write
    job = get_job(job_id)
    raise JobStateError(job_id, job.status if job else 'missing', 'cancel')


# ── Row writes ───────────────────────────────────────────────────────────────

def mark_row_running(row_id):
    """queued → running, only if still queued. False means someone else has it."""
    stmt = (
        update(MatchJobRow)
        .where(MatchJobRow.id == row_id, MatchJobRow.status == 'queued')
        .values(status='running', updated_at=utcnow())
    )
    return _with_retries('mark_row_running', _execute_write, stmt) > 0


def update_row(row_id, **fields):
    """Point update. Returns False when the row does not exist."""
    fields.setdefault('updated_at', utcnow())
    stmt = update(MatchJobRow).where(MatchJobRow.id == row_id).values(**fields)
    return _with_retries('update_row', _execute_write, stmt) > 0


def finish_row(row_id, **fields):
    """
    running → terminal outcome, only if the row is still running.

    False means the row already left running (a successor driver marked it
    interrupted), and the outcome must be dropped.
    """
    fields.setdefault('updated_at', utcnow())
    stmt = (
        update(MatchJobRow)
        .where(MatchJobRow.id == row_id, MatchJobRow.status == 'running')
        .values(**fields)
    )
    return _with_retries('finish_row', _execute_write, stmt) > 0


def interrupt_running_rows(job_id):
    """Rows a dead driver left in running become error/interrupted."""
    stmt = (
        update(MatchJobRow)
        .where(MatchJobRow.job_id == job_id, MatchJobRow.status == 'running')
        .values(
            status='error',
            error_code='interrupted',
            error_message='row was in flight when its driver stopped',
            updated_at=utcnow(),
        )
    )
    return _with_retries('interrupt_running_rows', _execute_write, stmt)


# ── Submission ───────────────────────────────────────────────────────────────

def normalize_supplier_key(supplier_name):
    """'Henry Schein  Inc' → 'henry_schein_inc'."""
    if not supplier_name:
        return ''
    return re.sub(r'\s+', '_', str(supplier_name).strip().lower())


def create_job(tenant_id, rows, created_by='system', source_type='distributor_sheet',
               file_name=None, meta=None, parent_job_id=None):
    """
    Insert a queued job and all of its rows in one transaction.

    Each row dict may carry the identifying fields plus row_id / raw.
    row_id defaults to the 1-based position; supplier_key defaults to the
    normalized supplier name. Returns the new job id.
    """
    if not tenant_id:
        raise ValueError("tenant_id is required")
    if len(rows) > MAX_JOB_ROWS:
        raise ValueError(f"too many rows: {len(rows)} (max {MAX_JOB_ROWS})")

    job_id = str(uuid.uuid4())
    now = utcnow()
    row_records = []
    seen_row_ids = set()
    for i, data in enumerate(rows, start=1):
        if not isinstance(data, dict):
            raise ValueError(f"row {i} is not an object")
        row_id = str(data.get('row_id') or i)
        if row_id in seen_row_ids:
            raise ValueError(f"duplicate row_id: {row_id}")
        seen_row_ids.add(row_id)

        fields = {name: _clean(data.get(name)) for name in ROW_INPUT_FIELDS}
        fields['supplier_key'] = fields['supplier_key'] or normalize_supplier_key(fields['supplier_name']) or None
        row_records.append(MatchJobRow(
            id=str(uuid.uuid4()),
            job_id=job_id,
            tenant_id=tenant_id,
            seq=i,
            row_id=row_id,
            raw=data.get('raw', data),
            status='queued',
            reasons=[],
            candidates=[],
            created_at=now,
            updated_at=now,
            **fields,
        ))

    job = MatchJob(
        id=job_id,
        tenant_id=tenant_id,
        created_by=created_by or 'system',
        status='queued',
        source_type=source_type or 'distributor_sheet',
        file_name=file_name,
        meta=meta or {},
        input_count=len(row_records),
        parent_job_id=parent_job_id,
        created_at=now,
        updated_at=now,
    )

    def _insert():
        session = get_session()
        try:
            session.add(job)
            session.flush()  # job row first, rows reference it
            session.add_all(row_records)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    _with_retries('create_job', _insert)
    logger.info("Created job %s for tenant %s with %d rows", job_id, tenant_id, len(row_records))
    return job_id


def create_retry_job(job_id, statuses=('error', 'unresolved'), created_by=None):
    """
    Copy a finished job's failed rows into a fresh queued job.

    Rows are never re-queued in place; the new job records its lineage in
    parent_job_id. Returns the new job id.
    """
    job = get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    if job.status not in JOB_TERMINAL_STATUSES:
        raise JobStateError(job_id, job.status, 'retry')

    session = get_session()
    try:
        source_rows = (
            session.query(MatchJobRow)
            .filter(MatchJobRow.job_id == job_id, MatchJobRow.status.in_(statuses))
            .order_by(MatchJobRow.seq.asc())
            .all()
        )
    finally:
        session.close()

    if not source_rows:
        raise ValueError(f"job {job_id} has no rows in {list(statuses)} to retry")

    rows = [
        {
            'row_id': r.row_id,
            'raw': r.raw,
            **{name: getattr(r, name) for name in ROW_INPUT_FIELDS},
        }
        for r in source_rows
    ]
    meta = dict(job.meta or {})
    meta['retry_of'] = job_id
    meta['retry_statuses'] = list(statuses)
    return create_job(
        job.tenant_id, rows,
        created_by=created_by or job.created_by,
        source_type=job.source_type,
        file_name=job.file_name,
        meta=meta,
        parent_job_id=job_id,
    )


def _clean(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None
