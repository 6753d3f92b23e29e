import threading

import pytest

from backend.scheduling.records import (
    BookedAppointment,
    DayBlock,
    ProviderRecord,
    ScheduleVersion,
    TimeOffRecord,
    TreatmentRecord,
    WeeklyPattern,
)


class InMemoryRepository:
    """Dict-backed stand-in for SchedulingRepository used by engine tests."""

    def __init__(self):
        self.providers = {}
        self.treatments = {}
        self.schedules = {}
        self.time_off = []
        self.appointments = []
        self.skills = {}
        self.failing_providers = set()
        self.blocking_providers = {}

    def add_provider(self, provider_id, **fields):
        self.providers[provider_id] = ProviderRecord(id=provider_id, **fields)
        return self.providers[provider_id]

    def add_treatment(self, treatment_id, default_duration_minutes=None):
        self.treatments[treatment_id] = TreatmentRecord(id=treatment_id, default_duration_minutes=default_duration_minutes)

    def add_skill(self, provider_id, treatment_id):
        self.skills.setdefault(treatment_id, set()).add(provider_id)

    def add_schedule(self, provider_id, weekly, breaks=None, timezone='Australia/Sydney', **fields):
        schedule = ScheduleVersion(
            provider_id=provider_id,
            weekly=weekly,
            breaks=breaks or WeeklyPattern(),
            timezone=timezone,
            **fields,
        )
        self.schedules.setdefault(provider_id, []).append(schedule)
        return schedule

    def add_time_off(self, provider_id, start, end, kind='PTO'):
        self.time_off.append(TimeOffRecord(provider_id=provider_id, kind=kind, start=start, end=end))

    def add_appointment(self, provider_id, start, end):
        self.appointments.append(BookedAppointment(provider_id=provider_id, start=start, end=end))

    def get_provider(self, provider_id):
        if provider_id in self.failing_providers:
            raise RuntimeError(f'lookup failed for provider {provider_id}')
        if provider_id in self.blocking_providers:
            self.blocking_providers[provider_id].wait(timeout=5)
        return self.providers.get(provider_id)

    def get_treatment(self, treatment_id):
        return self.treatments.get(treatment_id)

    def list_schedule_versions(self, provider_id):
        return list(self.schedules.get(provider_id, []))

    def list_time_off(self, provider_id, range_from, range_to):
        return [
            record for record in self.time_off
            if record.provider_id == provider_id and record.start < range_to and record.end > range_from
        ]

    def list_appointments(self, provider_id, range_from, range_to):
        return [
            record for record in self.appointments
            if record.provider_id == provider_id and record.start < range_to and record.end > range_from
        ]

    def list_providers_with_skills(self, treatment_ids):
        skilled = set()
        for treatment_id in treatment_ids:
            skilled |= self.skills.get(treatment_id, set())
        return sorted(
            provider_id for provider_id in skilled
            if provider_id in self.providers and self.providers[provider_id].is_active
        )

    def block(self, provider_id):
        event = threading.Event()
        self.blocking_providers[provider_id] = event
        return event


def weekly(**days):
    """Build a WeeklyPattern from ``mon=[('09:00', '17:00')]`` style arguments."""
    return WeeklyPattern(
        days={
            key: tuple(DayBlock(*block) if isinstance(block, tuple) else block for block in blocks)
            for key, blocks in days.items()
        }
    )


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def make_weekly():
    return weekly
