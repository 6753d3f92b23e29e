"""Provider schedule model definitions."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from backend.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ProviderSchedule(Base):
    """One immutable version of a provider's weekly working pattern.

    Edits never update a row; they insert the next version for the provider.
    """
    __tablename__ = "provider_schedules"
    __table_args__ = (UniqueConstraint("provider_id", "version", name="uq_provider_schedule_version"),)

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    timezone = Column(String, nullable=False, default="Australia/Sydney")
    weekly = Column(JSON, nullable=False, default=dict)
    breaks = Column(JSON, nullable=False, default=dict)
    effective_from = Column(DateTime, nullable=True)
    effective_to = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
