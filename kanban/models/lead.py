"""
Lead model — one row per customer contact, plus tags attached to leads.
"""
from sqlalchemy import Column, Boolean, Text, DateTime, ForeignKey
from sqlalchemy.sql import func

from kanban.database import Base
from kanban.models.pipeline import new_id


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Text, primary_key=True, default=new_id)
    full_name = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    phone_number = Column(Text, nullable=True)
    details = Column(Text, nullable=True)            # free-form intake form dump
    claimed_by = Column(Text, nullable=True)
    no_deal = Column(Boolean, default=False)
    callback_date = Column(DateTime(timezone=True), nullable=True)
    no_answer_callback_at = Column(DateTime(timezone=True), nullable=True)
    courier_sent_at = Column(DateTime(timezone=True), nullable=True)
    office_direct_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Tag(Base):
    __tablename__ = 'tags'

    id = Column(Text, primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    color = Column(Text, default='gray')


class LeadTag(Base):
    __tablename__ = 'lead_tags'

    lead_id = Column(Text, ForeignKey('leads.id'), primary_key=True)
    tag_id = Column(Text, ForeignKey('tags.id'), primary_key=True)
