"""SQLAlchemy-backed read contract for the availability engine.

Every read opens and closes its own session so lookups for different
providers can run on different threads. Datetimes are stored as naive UTC and
returned timezone-aware.
"""

from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.core import config
from backend.models.appointment import Appointment
from backend.models.provider import Provider, ProviderTreatment
from backend.models.schedule import ProviderSchedule
from backend.models.time_off import ProviderTimeOff
from backend.models.treatment import Treatment
from backend.scheduling.records import (
    BookedAppointment,
    ProviderRecord,
    ScheduleVersion,
    TimeOffRecord,
    TreatmentRecord,
    WeeklyPattern,
)

CANCELLED_STATUS = 'cancelled'


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def schedule_to_record(schedule: ProviderSchedule) -> ScheduleVersion:
    return ScheduleVersion(
        provider_id=schedule.provider_id,
        weekly=WeeklyPattern.from_document(schedule.weekly),
        breaks=WeeklyPattern.from_document(schedule.breaks),
        timezone=schedule.timezone or config.DEFAULT_TIMEZONE,
        version=schedule.version or 1,
        effective_from=to_utc(schedule.effective_from),
        effective_to=to_utc(schedule.effective_to),
        created_at=to_utc(schedule.created_at),
    )


def provider_to_record(provider: Provider) -> ProviderRecord:
    return ProviderRecord(
        id=provider.id,
        is_active=provider.is_active is not False,
        default_slot_minutes=provider.default_slot_minutes or config.DEFAULT_SLOT_MINUTES,
        buffer_before_minutes=provider.buffer_before_minutes or 0,
        buffer_after_minutes=provider.buffer_after_minutes or 0,
        default_durations={
            link.treatment_id: link.duration_minutes
            for link in provider.treatments
            if link.duration_minutes
        },
    )


class SchedulingRepository:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    def get_provider(self, provider_id: int) -> Optional[ProviderRecord]:
        db = self._session()
        try:
            provider = db.query(Provider).filter(Provider.id == provider_id).first()
            if provider is None:
                return None
            return provider_to_record(provider)
        finally:
            db.close()

    def get_treatment(self, treatment_id: int) -> Optional[TreatmentRecord]:
        db = self._session()
        try:
            treatment = db.query(Treatment).filter(Treatment.id == treatment_id).first()
            if treatment is None:
                return None
            return TreatmentRecord(id=treatment.id, default_duration_minutes=treatment.default_duration_minutes)
        finally:
            db.close()

    def list_schedule_versions(self, provider_id: int) -> List[ScheduleVersion]:
        db = self._session()
        try:
            schedules = db.query(ProviderSchedule).filter(
                ProviderSchedule.provider_id == provider_id,
            ).order_by(ProviderSchedule.version.asc()).all()
            return [schedule_to_record(schedule) for schedule in schedules]
        finally:
            db.close()

    def list_time_off(self, provider_id: int, range_from: datetime, range_to: datetime) -> List[TimeOffRecord]:
        db = self._session()
        try:
            rows = db.query(ProviderTimeOff).filter(
                ProviderTimeOff.provider_id == provider_id,
                ProviderTimeOff.start_time < to_naive_utc(range_to),
                ProviderTimeOff.end_time > to_naive_utc(range_from),
            ).order_by(ProviderTimeOff.start_time.asc()).all()
            return [
                TimeOffRecord(
                    provider_id=row.provider_id,
                    kind=row.kind.value if hasattr(row.kind, 'value') else str(row.kind),
                    start=to_utc(row.start_time),
                    end=to_utc(row.end_time),
                    reason=row.reason or '',
                    location_id=row.location_id,
                    chair_id=row.chair_id,
                )
                for row in rows
            ]
        finally:
            db.close()

    def list_appointments(self, provider_id: int, range_from: datetime, range_to: datetime) -> List[BookedAppointment]:
        db = self._session()
        try:
            rows = db.query(Appointment.provider_id, Appointment.start_time, Appointment.end_time).filter(
                Appointment.provider_id == provider_id,
                Appointment.start_time < to_naive_utc(range_to),
                Appointment.end_time > to_naive_utc(range_from),
                or_(Appointment.status.is_(None), Appointment.status != CANCELLED_STATUS),
            ).order_by(Appointment.start_time.asc()).all()
            return [
                BookedAppointment(provider_id=row_provider_id, start=to_utc(start), end=to_utc(end))
                for row_provider_id, start, end in rows
                if start is not None and end is not None and start < end
            ]
        finally:
            db.close()

    def list_providers_with_skills(self, treatment_ids: Iterable[int]) -> List[int]:
        treatment_ids = list(treatment_ids)
        if not treatment_ids:
            return []

        db = self._session()
        try:
            rows = db.query(Provider.id).join(ProviderTreatment).filter(
                Provider.is_active.is_(True),
                ProviderTreatment.treatment_id.in_(treatment_ids),
            ).distinct().order_by(Provider.id.asc()).all()
            return [provider_id for (provider_id,) in rows]
        finally:
            db.close()
