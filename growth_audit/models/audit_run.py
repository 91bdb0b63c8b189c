"""
AuditRun model — one scan of a URL for a lead, keyed by a shareable report id.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func

from growth_audit.database import Base, SerializerMixin


class AuditRun(SerializerMixin, Base):
    __tablename__ = 'audit_runs'

    id = Column(Text, primary_key=True)
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=True, index=True)
    report_id = Column(Text, nullable=False, index=True)
    url = Column(Text, nullable=False)
    industry = Column(Text, default='General')
    goal = Column(Text, default='')
    status = Column(Text, nullable=False, default='QUEUED')
    progress = Column(Integer, nullable=False, default=0)
    scores = Column(JSON, nullable=True)             # {speed, seo, conversion, trust, overall}
    confidence = Column(JSON, nullable=True)
    insights = Column(JSON, nullable=True)
    recommendations = Column(JSON, nullable=True)
    snapshot = Column(JSON, nullable=True)           # top findings, leak tags, metrics, narrative
    error_message = Column(Text, nullable=True)
    attempt = Column(Integer, nullable=False, default=1)
    superseded_by = Column(Text, nullable=True, index=True)   # id of the run that took over the report id
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
