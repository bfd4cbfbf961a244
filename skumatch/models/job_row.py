"""
MatchJobRow model — one row per submitted SKU (the per-input evidence trail).

Rows are created queued with the job, mutated only by the row processor,
and never deleted (kept for audit).
"""
from sqlalchemy import Column, Text, Integer, Float, DateTime, JSON, ForeignKey, Index, UniqueConstraint

from skumatch.database import Base
from skumatch.models.job import utcnow, _iso


class MatchJobRow(Base):
    __tablename__ = 'match_url_job_rows'

    id = Column(Text, primary_key=True)
    job_id = Column(Text, ForeignKey('match_url_jobs.id'), nullable=False)
    tenant_id = Column(Text, nullable=False)
    seq = Column(Integer, nullable=False)           # creation order within the job, pagination cursor
    row_id = Column(Text, nullable=False)           # caller-facing row key, unique per job
    supplier_name = Column(Text, nullable=True)
    supplier_key = Column(Text, nullable=True)
    sku = Column(Text, nullable=True)
    ndc_item_code = Column(Text, nullable=True)
    product_name = Column(Text, nullable=True)
    brand_name = Column(Text, nullable=True)
    raw = Column(JSON, nullable=True)
    status = Column(Text, nullable=False, default='queued')
    resolved_url = Column(Text, nullable=True)
    resolved_domain = Column(Text, nullable=True)
    confidence = Column(Float, nullable=True)       # 0.0-1.0, confident matches only
    matched_by = Column(Text, nullable=True)
    reasons = Column(JSON, default=list)
    candidates = Column(JSON, default=list)
    error_code = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint('job_id', 'seq', name='uq_match_row_job_seq'),
        UniqueConstraint('job_id', 'row_id', name='uq_match_row_job_row_id'),
        Index('ix_match_url_job_rows_job_status_seq', 'job_id', 'status', 'seq'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'job_id': self.job_id,
            'seq': self.seq,
            'row_id': self.row_id,
            'supplier_name': self.supplier_name,
            'supplier_key': self.supplier_key,
            'sku': self.sku,
            'ndc_item_code': self.ndc_item_code,
            'product_name': self.product_name,
            'brand_name': self.brand_name,
            'status': self.status,
            'resolved_url': self.resolved_url,
            'resolved_domain': self.resolved_domain,
            'confidence': self.confidence,
            'matched_by': self.matched_by,
            'reasons': self.reasons or [],
            'candidates': self.candidates or [],
            'error_code': self.error_code,
            'error_message': self.error_message,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
