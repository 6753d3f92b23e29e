"""Provider time off model definitions."""

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String
from backend.database import Base


class TimeOffKind(str, enum.Enum):
    PTO = "PTO"
    SICK = "Sick"
    COURSE = "Course"
    PUBLIC_HOLIDAY = "PublicHoliday"
    BLOCK = "Block"


class ProviderTimeOff(Base):
    """Represents a period in which a provider cannot be booked."""
    __tablename__ = "provider_time_off"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    kind = Column(Enum(TimeOffKind, values_callable=lambda kinds: [kind.value for kind in kinds]), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    reason = Column(String, default="")
    location_id = Column(String, nullable=True)
    chair_id = Column(String, nullable=True)
