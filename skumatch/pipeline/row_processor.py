"""
Row processor — resolve one queued row and record its terminal outcome.

  queued → running → resolved_confident | resolved_needs_review | unresolved | error

This is the only place row failures are absorbed: a resolver exception becomes
an error row and the batch carries on. Store failures are kept apart from
resolver failures (error_code store_write_failed vs resolver_*).
"""
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from skumatch.errors import InvalidResolutionError, ResolverError, StoreWriteError
from skumatch.pipeline.base import (
    ResolveInput, ResolutionResult, Resolver, RESOLVED_CONFIDENT,
)
from skumatch.services import store
from skumatch.services.circuit_breaker import CircuitOpenError

logger = logging.getLogger('pipeline.row_processor')


@dataclass
class RowOutcome:
    """Terminal status of one processed row, as seen by the driver."""
    row_id: str
    status: Optional[str]
    error_code: Optional[str] = None
    skipped: bool = False  # row was no longer queued, nothing done


def process_row(row, resolver: Resolver, tenant_id: str = None) -> RowOutcome:
    """
    Resolve one row and persist the outcome with a single row update.

    Returns skipped=True when the row had already left the queued state
    (another driver claimed it), or left running before its outcome could be
    written (a successor driver marked it interrupted). StoreWriteError
    propagates only when even the fallback error write fails.
    """
    if not store.mark_row_running(row.id):
        logger.info("Row %s no longer queued — skipping", row.id)
        return RowOutcome(row_id=row.id, status=None, skipped=True)

    params = build_resolve_input(row, tenant_id)
    try:
        result = resolver.resolve(params)
        if isinstance(result, dict):
            result = ResolutionResult.from_dict(result)
        elif not isinstance(result, ResolutionResult):
            raise InvalidResolutionError(f"resolver returned {type(result).__name__}")
        fields = map_resolution(result)
    except Exception as e:
        code = error_code_for(e)
        logger.warning("Row %s (sku=%s) failed: [%s] %s", row.id, row.sku, code, e)
        fields = {
            'status': 'error',
            'error_code': code,
            'error_message': _error_message(e),
        }

    try:
        written = store.finish_row(row.id, **fields)
    except StoreWriteError as e:
        logger.error("Could not record outcome '%s' for row %s — marking store_write_failed",
                     fields['status'], row.id)
        fields = {
            'status': 'error',
            'error_code': 'store_write_failed',
            'error_message': _error_message(e),
        }
        written = store.finish_row(row.id, **fields)

    if not written:
        logger.warning("Row %s left running while it was being resolved — dropping outcome '%s'",
                       row.id, fields['status'])
        return RowOutcome(row_id=row.id, status=None, skipped=True)

    return RowOutcome(row_id=row.id, status=fields['status'], error_code=fields.get('error_code'))


def build_resolve_input(row, tenant_id=None) -> ResolveInput:
    """Identifying fields of a row; supplier_key falls back to the normalized name."""
    return ResolveInput(
        tenant_id=tenant_id or row.tenant_id,
        supplier_name=row.supplier_name,
        supplier_key=row.supplier_key or store.normalize_supplier_key(row.supplier_name),
        sku=row.sku,
        ndc_item_code=row.ndc_item_code,
        product_name=row.product_name,
        brand_name=row.brand_name,
    )


def map_resolution(result: ResolutionResult) -> dict:
    """Row fields for a successful resolver answer."""
    if result.status == RESOLVED_CONFIDENT:
        confidence = 1.0 if result.confidence is None else min(1.0, max(0.0, result.confidence))
        return {
            'status': RESOLVED_CONFIDENT,
            'resolved_url': result.resolved_url,
            'resolved_domain': domain_of(result.resolved_url),
            'confidence': confidence,
            'matched_by': result.matched_by or 'resolver',
            'reasons': signals_to_reasons(result.signals),
            'candidates': [],
            'error_code': None,
            'error_message': None,
        }

    # resolved_needs_review / unresolved
    return {
        'status': result.status,
        'resolved_url': None,
        'resolved_domain': None,
        'confidence': None,
        'matched_by': result.matched_by,
        'reasons': [],
        'candidates': list(result.candidates or []),
        'error_code': None,
        'error_message': None,
    }


def domain_of(url):
    if not url:
        return None
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


def signals_to_reasons(signals):
    """Resolver signals (list, mapping or scalar) → ordered list of strings."""
    if not signals:
        return []
    if isinstance(signals, dict):
        return [f'{key}={value}' for key, value in signals.items()]
    if isinstance(signals, (list, tuple)):
        return [s if isinstance(s, str) else str(s) for s in signals]
    return [str(signals)]


def error_code_for(error):
    if isinstance(error, CircuitOpenError):
        return 'circuit_open'
    if isinstance(error, ResolverError):
        return error.code
    if isinstance(error, TimeoutError):
        return 'resolver_timeout'
    return 'resolver_error'


def _error_message(error):
    return str(error) or error.__class__.__name__
