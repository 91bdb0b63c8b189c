"""
Lead model — one row per prospective customer, upserted by email at intake.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON
from sqlalchemy.sql import func

from growth_audit.database import Base, SerializerMixin


class Lead(SerializerMixin, Base):
    __tablename__ = 'leads'

    id = Column(Text, primary_key=True)
    full_name = Column(Text, default='')
    business_name = Column(Text, default='')
    email = Column(Text, nullable=True, index=True)
    mobile_number = Column(Text, default='')
    website_url = Column(Text, default='')
    industry = Column(Text, default='General')
    goal = Column(Text, default='')
    primary_concern = Column(Text, default='All of it')
    source = Column(Text, default='website_audit')
    lead_score = Column(Integer, default=0)          # 0-100, written only by score recompute
    lead_category = Column(Text, default='cold')     # cold/warm/hot
    status = Column(Text, default='new')             # free-form operator state
    extra_data = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
    last_seen_at = Column(DateTime(timezone=True), nullable=True)
