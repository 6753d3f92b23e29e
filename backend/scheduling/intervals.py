"""Half-open UTC interval helpers.

Every function here is pure and works on already-validated intervals; none of
them raise. An interval is ``[start, end)``: touching intervals do not overlap.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Mapping, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime
    meta: Mapping[str, Optional[str]] = field(default_factory=dict)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def clipped(self, start: datetime, end: datetime) -> 'Interval':
        return replace(self, start=start, end=end)


def normalize(a: datetime, b: datetime) -> Interval:
    return Interval(start=min(a, b), end=max(a, b))


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and b.start < a.end


def covers(outer: Interval, inner: Interval) -> bool:
    return outer.start <= inner.start and outer.end >= inner.end


def subtract(base: Iterable[Interval], cuts: Iterable[Interval]) -> List[Interval]:
    """Remove every cut from every base interval.

    Each cut is applied to the fragments left by the previous cuts, so a base
    interval yields zero or more fragments carrying the base interval's meta.
    """
    cuts = list(cuts)
    result: List[Interval] = []

    for interval in base:
        fragments = [interval]
        for cut in cuts:
            remaining = []
            for fragment in fragments:
                if not overlaps(fragment, cut):
                    remaining.append(fragment)
                    continue

                if cut.start <= fragment.start and cut.end >= fragment.end:
                    continue
                if cut.start <= fragment.start:
                    remaining.append(fragment.clipped(cut.end, fragment.end))
                elif cut.end >= fragment.end:
                    remaining.append(fragment.clipped(fragment.start, cut.start))
                else:
                    remaining.append(fragment.clipped(fragment.start, cut.start))
                    remaining.append(fragment.clipped(cut.end, fragment.end))

            fragments = remaining
            if not fragments:
                break

        result.extend(fragments)

    return result


def intersect(left: Iterable[Interval], right: Iterable[Interval]) -> List[Interval]:
    right = list(right)
    result: List[Interval] = []

    for a in left:
        for b in right:
            if overlaps(a, b):
                result.append(a.clipped(max(a.start, b.start), min(a.end, b.end)))

    return result


def add_minutes(moment: datetime, minutes: int) -> datetime:
    return moment + timedelta(minutes=minutes)


def floor_to_step(moment: datetime, step_minutes: int) -> datetime:
    step = timedelta(minutes=step_minutes)
    return EPOCH + ((moment - EPOCH) // step) * step


def ceil_to_step(moment: datetime, step_minutes: int) -> datetime:
    floored = floor_to_step(moment, step_minutes)
    if floored < moment:
        return add_minutes(floored, step_minutes)
    return floored
