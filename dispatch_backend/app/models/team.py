"""
Team database model.

A team groups drivers under exactly one supervising user.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base


class Team(Base):
    """
    Team model.

    Trips copy the supervisor at open time, so reassigning the supervisor
    here never rewrites trips that are already open or closed.
    """
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(50), unique=True, nullable=False)
    supervisor_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Team(id={self.id}, name='{self.name}', supervisor_id={self.supervisor_id})>"
