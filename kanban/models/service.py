"""
Service catalog — price and free-text duration ("30", "1h 30min", "01:30").
"""
from sqlalchemy import Column, Float, Text

from kanban.database import Base
from kanban.models.pipeline import new_id


class Service(Base):
    __tablename__ = 'services'

    id = Column(Text, primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    price = Column(Float, default=0.0)
    time = Column(Text, nullable=True)
