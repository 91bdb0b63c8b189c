"""
GeneratedMessage model — append-only bundle of follow-up variants for a lead.
"""
from sqlalchemy import Column, Text, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func

from growth_audit.database import Base, SerializerMixin


class GeneratedMessage(SerializerMixin, Base):
    __tablename__ = 'generated_messages'

    id = Column(Text, primary_key=True)
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=False, index=True)
    audit_run_id = Column(Text, nullable=True)
    simulator_run_id = Column(Text, nullable=True)
    domain = Column(Text, default='')
    weakest_funnel_stage = Column(Text, default='')
    top_findings = Column(JSON, default=list)
    estimated_revenue_gain = Column(Text, default='')
    urgency_factor = Column(Text, default='')
    email_version = Column(Text, default='')
    whatsapp_version = Column(Text, default='')
    sms_version = Column(Text, default='')
    call_script_version = Column(Text, default='')
    created_at = Column(DateTime(timezone=True), server_default=func.now())
