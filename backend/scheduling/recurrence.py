"""Weekly pattern expansion.

Blocks are built on each local calendar day and only then converted to UTC, so
a 09:00-17:00 block stays 09:00-17:00 on the wall clock when the UTC offset
changes during the range.
"""

from datetime import date, datetime, time, timedelta
from typing import List

import pytz

from backend.scheduling.errors import UnknownTimezoneError
from backend.scheduling.intervals import Interval
from backend.scheduling.records import WEEKDAY_KEYS, WeeklyPattern


def resolve_timezone(name: str) -> pytz.BaseTzInfo:
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError as exc:
        raise UnknownTimezoneError(f"Unknown timezone '{name}'.") from exc


def parse_local_time(value: str) -> time:
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


def weekday_key(day: date) -> str:
    return WEEKDAY_KEYS[day.weekday()]


def _local_to_utc(tz: pytz.BaseTzInfo, day: date, wall_time: time) -> datetime:
    # Gap times take the pre-transition offset; repeated times take standard time.
    local = tz.localize(datetime.combine(day, wall_time), is_dst=False)
    return local.astimezone(pytz.UTC)


def expand_weekly(
    pattern: WeeklyPattern,
    range_from: datetime,
    range_to: datetime,
    tz_name: str,
) -> List[Interval]:
    tz = resolve_timezone(tz_name)
    intervals: List[Interval] = []

    current_day = range_from.astimezone(tz).date()
    while _local_to_utc(tz, current_day, time.min) < range_to:
        key = weekday_key(current_day)
        for block in pattern.blocks_for(key):
            start_utc = _local_to_utc(tz, current_day, parse_local_time(block.start))
            end_utc = _local_to_utc(tz, current_day, parse_local_time(block.end))
            if end_utc <= start_utc:
                continue

            intervals.append(
                Interval(
                    start=start_utc,
                    end=end_utc,
                    meta={'location_id': block.location_id, 'chair_id': block.chair_id, 'weekday': key},
                )
            )

        current_day += timedelta(days=1)

    return intervals
