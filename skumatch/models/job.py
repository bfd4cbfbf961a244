"""
MatchJob model — one row per bulk SKU → URL resolution request (the job header).
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Text, Integer, Boolean, DateTime, JSON, ForeignKey, Index

from skumatch.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class MatchJob(Base):
    __tablename__ = 'match_url_jobs'

    id = Column(Text, primary_key=True)
    tenant_id = Column(Text, nullable=False)
    created_by = Column(Text, nullable=False, default='system')
    status = Column(Text, nullable=False, default='queued')
    source_type = Column(Text, nullable=False, default='distributor_sheet')
    file_name = Column(Text, nullable=True)
    meta = Column(JSON, default=dict)
    input_count = Column(Integer, nullable=False, default=0)
    resolved_count = Column(Integer, nullable=False, default=0)
    review_count = Column(Integer, nullable=False, default=0)
    unresolved_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    cancel_requested = Column(Boolean, nullable=False, default=False)
    parent_job_id = Column(Text, ForeignKey('match_url_jobs.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)  # heartbeat while running
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('ix_match_url_jobs_tenant', 'tenant_id'),
        Index('ix_match_url_jobs_status', 'status'),
    )

    def stats(self):
        return {
            'resolved': self.resolved_count or 0,
            'review': self.review_count or 0,
            'unresolved': self.unresolved_count or 0,
            'errors': self.error_count or 0,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'created_by': self.created_by,
            'status': self.status,
            'source_type': self.source_type,
            'file_name': self.file_name,
            'meta': self.meta or {},
            'input_count': self.input_count or 0,
            'resolved_count': self.resolved_count or 0,
            'review_count': self.review_count or 0,
            'unresolved_count': self.unresolved_count or 0,
            'error_count': self.error_count or 0,
            'cancel_requested': bool(self.cancel_requested),
            'parent_job_id': self.parent_job_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'started_at': _iso(self.started_at),
            'finished_at': _iso(self.finished_at),
        }


def _iso(value):
    return value.isoformat() if value else None
