"""
Member model — app users; source of the technician display-name map.
"""
from sqlalchemy import Column, Text

from kanban.database import Base


class Member(Base):
    __tablename__ = 'members'

    user_id = Column(Text, primary_key=True)
    name = Column(Text, nullable=True)
