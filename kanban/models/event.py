"""
ItemEvent model — append-only log of what happened to leads, service orders and trays.

Quality outcomes and front-desk milestones are derived from this log at read
time and never copied into another column.
"""
from sqlalchemy import Column, Text, DateTime, JSON, Index
from sqlalchemy.sql import func

from kanban.database import Base
from kanban.models.pipeline import new_id


class ItemEvent(Base):
    __tablename__ = 'items_events'

    id = Column(Text, primary_key=True, default=new_id)
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Text, nullable=False)
    event_type = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)
    actor_id = Column(Text, nullable=True)
    actor_name = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('ix_items_events_entity', 'entity_type', 'entity_id', 'event_type'),
    )
