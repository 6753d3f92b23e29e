"""Availability composer.

Turns a provider's active schedule version, breaks, time off and booked
appointments into bookable slots. The steps run in a fixed order:

    1. missing or inactive provider        -> no slots
    2. pick the active schedule version    -> none means no slots
    3. expand weekly working blocks, clipped to the requested range for slots
    4. subtract breaks
    5. subtract time off
    6. subtract appointments widened by the provider's buffers
    7. keep blocks matching the requested location / chair
    8. resolve the slot duration (treatment override, treatment default, provider default)
    9. quantize on the provider's slot step

Slots advance by the step, not by the duration, so a 60 minute treatment on a
15 minute grid offers overlapping start times.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from backend.scheduling.errors import InvalidDurationError, InvalidRangeError
from backend.scheduling.intervals import EPOCH, Interval, add_minutes, ceil_to_step, intersect, subtract
from backend.scheduling.recurrence import expand_weekly, resolve_timezone
from backend.scheduling.records import AvailabilitySlot, ProviderRecord, ScheduleVersion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FreeTime:
    provider: ProviderRecord
    schedule: ScheduleVersion
    intervals: List[Interval]


def validate_range(range_from: datetime, range_to: datetime) -> None:
    if not isinstance(range_from, datetime) or not isinstance(range_to, datetime):
        raise InvalidRangeError('Range bounds must be datetimes.')
    if range_from.tzinfo is None or range_to.tzinfo is None:
        raise InvalidRangeError('Range bounds must be timezone-aware.')
    if range_from >= range_to:
        raise InvalidRangeError('Range start must be before range end.')


def _effective_window_overlaps(schedule: ScheduleVersion, range_from: datetime, range_to: datetime) -> bool:
    if schedule.effective_from is not None and schedule.effective_from >= range_to:
        return False
    if schedule.effective_to is not None and range_from >= schedule.effective_to:
        return False
    return True


def _selection_key(schedule: ScheduleVersion) -> tuple:
    # A missing effective_from / created_at sorts before any real instant.
    effective_from = (1, schedule.effective_from) if schedule.effective_from else (0, EPOCH)
    created_at = (1, schedule.created_at) if schedule.created_at else (0, EPOCH)
    return (effective_from, schedule.version, created_at)


def pick_active_schedule(
    schedules: Iterable[ScheduleVersion],
    range_from: datetime,
    range_to: datetime,
) -> Optional[ScheduleVersion]:
    overlapping = [schedule for schedule in schedules if _effective_window_overlaps(schedule, range_from, range_to)]
    if not overlapping:
        return None
    return max(overlapping, key=_selection_key)


def widen_by_buffers(appointments: Iterable, before_minutes: int, after_minutes: int) -> List[Interval]:
    return [
        Interval(start=add_minutes(appointment.start, -before_minutes), end=add_minutes(appointment.end, after_minutes))
        for appointment in appointments
    ]


def filter_by_location_and_chair(
    intervals: Iterable[Interval],
    location_id: Optional[str] = None,
    chair_id: Optional[str] = None,
) -> List[Interval]:
    filtered = []
    for interval in intervals:
        if location_id and interval.meta.get('location_id') != str(location_id):
            continue
        if chair_id and interval.meta.get('chair_id') != str(chair_id):
            continue
        filtered.append(interval)
    return filtered


def compute_free_intervals(
    repository,
    provider_id: int,
    range_from: datetime,
    range_to: datetime,
    location_id: Optional[str] = None,
    chair_id: Optional[str] = None,
    clip: bool = True,
) -> Optional[FreeTime]:
    """Run steps 1-7 and return the free intervals, or ``None`` when the
    provider is missing, inactive or has no schedule covering the range.

    With ``clip=False`` the working blocks of every local day touching the
    range are kept whole, and time off and appointments are looked up across
    those blocks, so callers can see how far free time extends past the range.
    """
    validate_range(range_from, range_to)

    provider = repository.get_provider(provider_id)
    if provider is None or not provider.is_active:
        return None

    schedule = pick_active_schedule(repository.list_schedule_versions(provider_id), range_from, range_to)
    if schedule is None:
        return None

    working = expand_weekly(schedule.weekly, range_from, range_to, schedule.timezone)
    if clip:
        working = intersect(working, [Interval(start=range_from, end=range_to)])
        lookup_from, lookup_to = range_from, range_to
    else:
        lookup_from = min([range_from] + [interval.start for interval in working])
        lookup_to = max([range_to] + [interval.end for interval in working])

    breaks = expand_weekly(schedule.breaks, range_from, range_to, schedule.timezone)
    working = subtract(working, breaks)

    time_off = repository.list_time_off(provider_id, lookup_from, lookup_to)
    working = subtract(working, [Interval(start=record.start, end=record.end) for record in time_off])

    before = provider.buffer_before_minutes or 0
    after = provider.buffer_after_minutes or 0
    appointments = repository.list_appointments(
        provider_id,
        add_minutes(lookup_from, -after),
        add_minutes(lookup_to, before),
    )
    working = subtract(working, widen_by_buffers(appointments, before, after))

    working = filter_by_location_and_chair(working, location_id, chair_id)

    return FreeTime(provider=provider, schedule=schedule, intervals=working)


def resolve_slot_duration(repository, provider: ProviderRecord, treatment_id: Optional[int] = None) -> int:
    if treatment_id is None:
        return provider.default_slot_minutes

    treatment = repository.get_treatment(treatment_id)
    if treatment is None:
        return provider.default_slot_minutes

    override = provider.default_durations.get(treatment.id)
    return override or treatment.default_duration_minutes or provider.default_slot_minutes


def _clock(moment: datetime) -> str:
    suffix = 'AM' if moment.hour < 12 else 'PM'
    return f"{moment.hour % 12 or 12}:{moment.minute:02d} {suffix}"


def format_local_label(start_utc: datetime, end_utc: datetime, tz_name: str) -> str:
    tz = resolve_timezone(tz_name)
    start_local = start_utc.astimezone(tz)
    end_local = end_utc.astimezone(tz)
    return f"{start_local.strftime('%a %d %b')}, {_clock(start_local)} – {_clock(end_local)}"


def quantize(
    intervals: Sequence[Interval],
    duration_minutes: int,
    step_minutes: int,
    tz_name: str,
) -> List[AvailabilitySlot]:
    if duration_minutes <= 0 or step_minutes <= 0:
        raise InvalidDurationError('Slot duration and step must be positive.')

    duration = timedelta(minutes=duration_minutes)
    slots: List[AvailabilitySlot] = []

    for interval in intervals:
        cursor = ceil_to_step(interval.start, step_minutes)
        while cursor + duration <= interval.end:
            slot_end = cursor + duration
            slots.append(
                AvailabilitySlot(
                    start_utc=cursor,
                    end_utc=slot_end,
                    local_label=format_local_label(cursor, slot_end, tz_name),
                    meta={
                        'location_id': interval.meta.get('location_id'),
                        'chair_id': interval.meta.get('chair_id'),
                    },
                )
            )
            cursor = add_minutes(cursor, step_minutes)

    slots.sort(key=lambda slot: (slot.start_utc, slot.end_utc))
    return slots


def compute_availability(
    repository,
    provider_id: int,
    range_from: datetime,
    range_to: datetime,
    treatment_id: Optional[int] = None,
    location_id: Optional[str] = None,
    chair_id: Optional[str] = None,
) -> List[AvailabilitySlot]:
    free_time = compute_free_intervals(repository, provider_id, range_from, range_to, location_id, chair_id)
    if free_time is None:
        logger.debug('No schedule or inactive provider %s for %s - %s', provider_id, range_from, range_to)
        return []

    duration_minutes = resolve_slot_duration(repository, free_time.provider, treatment_id)
    step_minutes = free_time.provider.default_slot_minutes

    return quantize(free_time.intervals, duration_minutes, step_minutes, free_time.schedule.timezone)
