"""
SimulatorRun model — one what-if growth projection, optionally tied to a lead/audit.
"""
from sqlalchemy import Column, Integer, Float, Text, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func

from growth_audit.database import Base, SerializerMixin


class SimulatorRun(SerializerMixin, Base):
    __tablename__ = 'simulator_runs'

    id = Column(Text, primary_key=True)
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=True, index=True)
    audit_run_id = Column(Text, ForeignKey('audit_runs.id'), nullable=True)
    visitors = Column(Integer, default=0)
    avg_order_value = Column(Float, default=0.0)
    inputs = Column(JSON, default=dict)
    outputs = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
