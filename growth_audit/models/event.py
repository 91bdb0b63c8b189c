"""
Event model — append-only activity log for leads, audits and simulations.
"""
from sqlalchemy import Column, Text, DateTime, JSON
from sqlalchemy.sql import func

from growth_audit.database import Base, SerializerMixin


class Event(SerializerMixin, Base):
    __tablename__ = 'events'

    id = Column(Text, primary_key=True)
    lead_id = Column(Text, nullable=True, index=True)
    audit_run_id = Column(Text, nullable=True)
    simulator_run_id = Column(Text, nullable=True)
    type = Column(Text, nullable=False, index=True)
    payload = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
