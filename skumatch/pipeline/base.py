"""
Job engine contracts.

Every resolver implements Resolver.resolve() and returns a ResolutionResult.
Matching heuristics live behind that interface; the row processor and batch
driver only see the uniform contract.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from skumatch.config import ROW_STATUS_COUNTERS
from skumatch.errors import InvalidResolutionError


RESOLVED_CONFIDENT = 'resolved_confident'
RESOLVED_NEEDS_REVIEW = 'resolved_needs_review'
UNRESOLVED = 'unresolved'

RESOLUTION_STATUSES = (RESOLVED_CONFIDENT, RESOLVED_NEEDS_REVIEW, UNRESOLVED)


@dataclass
class ResolveInput:
    """Identifying fields of one row, as handed to the resolver."""
    tenant_id: str
    supplier_key: str
    supplier_name: Optional[str] = None
    sku: Optional[str] = None
    ndc_item_code: Optional[str] = None
    product_name: Optional[str] = None
    brand_name: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Wire shape expected by the resolver service."""
        return {
            'tenantId': self.tenant_id,
            'supplierName': self.supplier_name,
            'supplierKey': self.supplier_key,
            'sku': self.sku,
            'ndcItemCode': self.ndc_item_code,
            'productName': self.product_name,
            'brandName': self.brand_name,
        }


@dataclass
class ResolutionResult:
    """Uniform output from every resolver."""
    status: str
    resolved_url: Optional[str] = None
    confidence: Optional[float] = None
    matched_by: Optional[str] = None
    signals: Any = None
    candidates: List[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResolutionResult':
        """
        Build a result from a decoded resolver response.

        Raises InvalidResolutionError for anything the row processor could not
        map onto a row (unknown status, confident match without a URL, ...).
        """
        if not isinstance(data, dict):
            raise InvalidResolutionError(f"resolver returned {type(data).__name__}, expected object")

        status = data.get('status')
        if status not in RESOLUTION_STATUSES:
            raise InvalidResolutionError(f"unknown resolution status: {status!r}")

        if status == RESOLVED_CONFIDENT:
            url = data.get('resolved_url')
            if not url or not isinstance(url, str):
                raise InvalidResolutionError("resolved_confident result without resolved_url")
            confidence = data.get('confidence')
            if confidence is not None:
                try:
                    confidence = float(confidence)
                except (TypeError, ValueError):
                    raise InvalidResolutionError(f"non-numeric confidence: {confidence!r}")
            return cls(
                status=status,
                resolved_url=url,
                confidence=confidence,
                matched_by=data.get('matched_by'),
                signals=data.get('signals'),
            )

        candidates = data.get('candidates')
        if candidates is None:
            candidates = []
        if not isinstance(candidates, list):
            raise InvalidResolutionError("candidates must be a list")
        return cls(status=status, candidates=candidates, matched_by=data.get('matched_by'))


class Resolver(ABC):
    """
    Base class for SKU → URL resolvers.

    Implementations may raise instead of returning; the row processor records
    any exception as a row error and moves on.
    """
    name: str = ''

    @abstractmethod
    def resolve(self, params: ResolveInput) -> ResolutionResult:
        ...


@dataclass
class JobStats:
    """Per-category row counts for one job."""
    resolved: int = 0
    review: int = 0
    unresolved: int = 0
    errors: int = 0

    @classmethod
    def from_statuses(cls, statuses: Iterable[str]) -> 'JobStats':
        """Tally terminal row statuses; non-terminal statuses are ignored."""
        stats = cls()
        for status in statuses:
            counter = ROW_STATUS_COUNTERS.get(status)
            if counter:
                setattr(stats, counter, getattr(stats, counter) + 1)
        return stats

    @classmethod
    def from_counts(cls, counts: Dict[str, int]) -> 'JobStats':
        """Build from a {row_status: count} mapping."""
        stats = cls()
        for status, n in counts.items():
            counter = ROW_STATUS_COUNTERS.get(status)
            if counter:
                setattr(stats, counter, getattr(stats, counter) + n)
        return stats

    @property
    def successes(self) -> int:
        return self.resolved + self.review + self.unresolved

    @property
    def total(self) -> int:
        return self.successes + self.errors

    def merge(self, other: 'JobStats') -> 'JobStats':
        return JobStats(
            resolved=self.resolved + other.resolved,
            review=self.review + other.review,
            unresolved=self.unresolved + other.unresolved,
            errors=self.errors + other.errors,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            'resolved': self.resolved,
            'review': self.review,
            'unresolved': self.unresolved,
            'errors': self.errors,
        }


@dataclass
class JobResult:
    """What run_job() hands back to its caller."""
    job_id: str
    ok: bool
    status: str
    stats: JobStats
    skipped: bool = False  # re-entry on a terminal job, nothing was processed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'job_id': self.job_id,
            'ok': self.ok,
            'status': self.status,
            'stats': self.stats.to_dict(),
            'skipped': self.skipped,
        }
