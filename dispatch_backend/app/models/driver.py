"""
Driver database model.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.catalog_enums import DriverStatus


class Driver(Base):
    """
    Driver model.

    A driver belongs to at most one team; the team's supervisor is the
    supervisor of every trip the driver opens.
    """
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    national_id = Column(String(15), unique=True, nullable=False, index=True)
    license_expiry = Column(Date, nullable=False)

    team_id = Column(Integer, ForeignKey('teams.id'), nullable=True, index=True)

    status = Column(Enum(DriverStatus), default=DriverStatus.AVAILABLE, nullable=False, index=True)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Driver(id={self.id}, name='{self.full_name}', team_id={self.team_id})>"
