"""
Tray + TrayItem models.

A tray is the physical unit of work inside a service order. Archived copies
carry the '-copy' suffix in their number; split trays have status 'Splited'
or a parent tray.
"""
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey
from sqlalchemy.sql import func

from kanban.database import Base
from kanban.models.pipeline import new_id


class Tray(Base):
    __tablename__ = 'trays'

    id = Column(Text, primary_key=True, default=new_id)
    service_order_id = Column(Text, ForeignKey('service_orders.id'), nullable=False, index=True)
    number = Column(Text, nullable=True)
    size = Column(Text, nullable=True)
    status = Column(Text, nullable=True)
    parent_tray_id = Column(Text, ForeignKey('trays.id'), nullable=True)
    technician_id = Column(Text, nullable=True)
    technician2_id = Column(Text, nullable=True)
    technician3_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TrayItem(Base):
    __tablename__ = 'tray_items'

    id = Column(Text, primary_key=True, default=new_id)
    tray_id = Column(Text, ForeignKey('trays.id'), nullable=False, index=True)
    service_id = Column(Text, ForeignKey('services.id'), nullable=True)   # NULL = part
    department_id = Column(Text, ForeignKey('pipelines.id'), nullable=True, index=True)
    qty = Column(Integer, default=1)
    notes = Column(Text, nullable=True)   # JSON: price, discount_pct, urgent, item_type
