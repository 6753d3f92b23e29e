"""Read-only records consumed and produced by the availability engine."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

WEEKDAY_KEYS = ('mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun')


@dataclass(frozen=True)
class DayBlock:
    start: str
    end: str
    location_id: Optional[str] = None
    chair_id: Optional[str] = None


@dataclass(frozen=True)
class WeeklyPattern:
    """Recurring local-time blocks keyed by weekday (``mon`` .. ``sun``)."""

    days: Mapping[str, tuple[DayBlock, ...]] = field(default_factory=dict)

    def blocks_for(self, weekday_key: str) -> tuple[DayBlock, ...]:
        return tuple(self.days.get(weekday_key, ()))

    @classmethod
    def from_document(cls, document: Optional[Mapping[str, Any]]) -> 'WeeklyPattern':
        days: dict[str, tuple[DayBlock, ...]] = {}
        for key in WEEKDAY_KEYS:
            blocks = (document or {}).get(key) or []
            days[key] = tuple(
                DayBlock(
                    start=block['start'],
                    end=block['end'],
                    location_id=_optional_str(block.get('location_id')),
                    chair_id=_optional_str(block.get('chair_id')),
                )
                for block in blocks
            )
        return cls(days=days)

    def to_document(self) -> dict[str, list[dict[str, Any]]]:
        return {
            key: [
                {
                    'start': block.start,
                    'end': block.end,
                    'location_id': block.location_id,
                    'chair_id': block.chair_id,
                }
                for block in self.blocks_for(key)
            ]
            for key in WEEKDAY_KEYS
        }


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


@dataclass(frozen=True)
class ScheduleVersion:
    provider_id: int
    weekly: WeeklyPattern
    breaks: WeeklyPattern
    timezone: str
    version: int = 1
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class TimeOffRecord:
    provider_id: int
    kind: str
    start: datetime
    end: datetime
    reason: str = ''
    location_id: Optional[str] = None
    chair_id: Optional[str] = None


@dataclass(frozen=True)
class BookedAppointment:
    provider_id: int
    start: datetime
    end: datetime


@dataclass(frozen=True)
class ProviderRecord:
    id: int
    is_active: bool = True
    default_slot_minutes: int = 10
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    default_durations: Mapping[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class TreatmentRecord:
    id: int
    default_duration_minutes: Optional[int] = None


@dataclass(frozen=True)
class AvailabilitySlot:
    start_utc: datetime
    end_utc: datetime
    local_label: str
    meta: Mapping[str, Optional[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class RankedProvider:
    provider_id: int
    fits: bool
    partial: bool
    score: float
