"""Provider model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from backend.database import Base


class Provider(Base):
    """Represents a clinician whose time can be booked."""
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)
    default_slot_minutes = Column(Integer, default=10)
    buffer_before_minutes = Column(Integer, default=0)
    buffer_after_minutes = Column(Integer, default=0)

    treatments = relationship("ProviderTreatment", back_populates="provider", cascade="all, delete-orphan")


class ProviderTreatment(Base):
    """Skill link between a provider and a treatment, with an optional duration override."""
    __tablename__ = "provider_treatments"
    __table_args__ = (UniqueConstraint("provider_id", "treatment_id", name="uq_provider_treatment"),)

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    treatment_id = Column(Integer, ForeignKey("treatments.id"), nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=True)

    provider = relationship("Provider", back_populates="treatments")
