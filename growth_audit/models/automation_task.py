"""
AutomationTask model — operator work item created when a lead turns hot.
"""
from sqlalchemy import Column, Text, DateTime, ForeignKey
from sqlalchemy.sql import func

from growth_audit.database import Base, SerializerMixin


class AutomationTask(SerializerMixin, Base):
    __tablename__ = 'automation_tasks'

    id = Column(Text, primary_key=True)
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=False, index=True)
    type = Column(Text, nullable=False, default='follow_up')
    priority = Column(Text, nullable=False, default='high')
    status = Column(Text, nullable=False, default='pending')   # pending/completed
    title = Column(Text, default='')
    generated_message_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
