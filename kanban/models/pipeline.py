"""
Board structure — pipelines, their stages, and placements (pipeline_items).

A placement is the only durable record of where a card sits: one row per
(entity_type, entity_id, pipeline_id). Everything else shown on the board is
derived at read time by kanban.projection.
"""
import uuid

from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.sql import func

from kanban.database import Base


def new_id():
    return str(uuid.uuid4())


class Pipeline(Base):
    __tablename__ = 'pipelines'

    id = Column(Text, primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    position = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Stage(Base):
    __tablename__ = 'stages'

    id = Column(Text, primary_key=True, default=new_id)
    pipeline_id = Column(Text, ForeignKey('pipelines.id'), nullable=False, index=True)
    name = Column(Text, nullable=False)
    position = Column(Integer, default=0)


class PipelineItem(Base):
    __tablename__ = 'pipeline_items'

    id = Column(Text, primary_key=True, default=new_id)
    entity_type = Column(Text, nullable=False)   # lead / service_order / tray
    entity_id = Column(Text, nullable=False)
    pipeline_id = Column(Text, ForeignKey('pipelines.id'), nullable=False)
    stage_id = Column(Text, ForeignKey('stages.id'), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('entity_type', 'entity_id', 'pipeline_id', name='uq_pipeline_item_entity'),
        Index('ix_pipeline_items_pipeline_stage', 'pipeline_id', 'stage_id'),
    )
