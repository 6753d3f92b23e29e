"""Treatment model definitions."""

from sqlalchemy import Column, Integer, String
from backend.database import Base


class Treatment(Base):
    """Represents a bookable treatment and its usual length."""
    __tablename__ = "treatments"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    default_duration_minutes = Column(Integer, nullable=True)
