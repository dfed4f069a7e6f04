"""
ServiceOrder model — one repair/service job for a lead; its work is split into trays.
"""
from sqlalchemy import Column, Boolean, Text, DateTime, ForeignKey
from sqlalchemy.sql import func

from kanban.database import Base
from kanban.models.pipeline import new_id


class ServiceOrder(Base):
    __tablename__ = 'service_orders'

    id = Column(Text, primary_key=True, default=new_id)
    lead_id = Column(Text, ForeignKey('leads.id'), nullable=False, index=True)
    number = Column(Text, nullable=True)
    status = Column(Text, nullable=True)             # e.g. 'comanda' once ordered
    courier_sent = Column(Boolean, default=False)
    office_direct = Column(Boolean, default=False)
    package_unclaimed = Column(Boolean, default=False)
    package_arrived = Column(Boolean, default=False)
    urgent = Column(Boolean, default=False)
    subscription_type = Column(Text, nullable=True)  # services / parts / both
    courier_scheduled_at = Column(DateTime(timezone=True), nullable=True)
    office_direct_at = Column(DateTime(timezone=True), nullable=True)
    no_answer_callback_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
