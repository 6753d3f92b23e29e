"""Rank candidate providers against a requested appointment window."""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from backend.core import config
from backend.scheduling.availability import compute_free_intervals, validate_range
from backend.scheduling.errors import InvalidDurationError
from backend.scheduling.intervals import Interval, covers, overlaps
from backend.scheduling.records import RankedProvider

logger = logging.getLogger(__name__)

FITS_SCORE = 2.0
PARTIAL_SCORE = 1.0
DURATION_BONUS = 0.25


def is_busy(repository, provider_id: int, window: Interval) -> bool:
    """A provider with any appointment or time off touching the window is never offered."""
    for appointment in repository.list_appointments(provider_id, window.start, window.end):
        if overlaps(window, Interval(start=appointment.start, end=appointment.end)):
            return True
    for time_off in repository.list_time_off(provider_id, window.start, window.end):
        if overlaps(window, Interval(start=time_off.start, end=time_off.end)):
            return True
    return False


def rank_candidate(
    repository,
    provider_id: int,
    window: Interval,
    duration_minutes: Optional[int] = None,
    location_id: Optional[str] = None,
    chair_id: Optional[str] = None,
) -> Optional[RankedProvider]:
    if is_busy(repository, provider_id, window):
        return None

    # Whole working blocks, so the duration check can see free time beyond the window.
    free_time = compute_free_intervals(
        repository,
        provider_id,
        window.start,
        window.end,
        location_id,
        chair_id,
        clip=False,
    )
    if free_time is None:
        return None

    fits = any(covers(interval, window) for interval in free_time.intervals)
    partial = not fits and any(overlaps(interval, window) for interval in free_time.intervals)
    if not fits and not partial:
        return None

    score = FITS_SCORE if fits else PARTIAL_SCORE
    if duration_minutes:
        needed = timedelta(minutes=duration_minutes)
        if any(interval.duration >= needed for interval in free_time.intervals):
            score += DURATION_BONUS

    return RankedProvider(provider_id=provider_id, fits=fits, partial=partial, score=score)


def suggest_providers(
    repository,
    candidate_provider_ids: Iterable[int],
    window_start: datetime,
    window_end: datetime,
    treatment_id: Optional[int] = None,
    duration_minutes: Optional[int] = None,
    location_id: Optional[str] = None,
    chair_id: Optional[str] = None,
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
) -> List[RankedProvider]:
    """Evaluate candidates concurrently and return them best first.

    Full fits always outrank partial fits; within a tier the higher score wins
    and exact ties keep the candidate order. A candidate whose lookups fail or
    do not finish before ``timeout`` seconds is logged and left out.

    With no candidate ids, active providers skilled in ``treatment_id`` are
    ranked. The duration bonus applies only when ``duration_minutes`` is given.
    """
    validate_range(window_start, window_end)
    if duration_minutes is not None and duration_minutes < 0:
        raise InvalidDurationError('Duration must not be negative.')

    candidates = list(dict.fromkeys(candidate_provider_ids))
    if not candidates and treatment_id is not None:
        candidates = repository.list_providers_with_skills([treatment_id])
    if not candidates:
        return []

    window = Interval(start=window_start, end=window_end)
    workers = min(max_workers or config.SUGGESTION_MAX_WORKERS, len(candidates))
    deadline = config.SUGGESTION_TIMEOUT_SECONDS if timeout is None else timeout

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix='provider-suggest')
    futures = {
        executor.submit(
            rank_candidate,
            repository,
            provider_id,
            window,
            duration_minutes,
            location_id,
            chair_id,
        ): (position, provider_id)
        for position, provider_id in enumerate(candidates)
    }
    try:
        done, not_done = wait(futures, timeout=deadline)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    for future in not_done:
        logger.warning('Provider %s did not finish within %ss; leaving it out of suggestions', futures[future][1], deadline)

    ranked = []
    for future in done:
        position, provider_id = futures[future]
        try:
            result = future.result()
        except Exception:
            logger.exception('Availability lookup failed for provider %s; leaving it out of suggestions', provider_id)
            continue
        if result is not None:
            ranked.append((position, result))

    ranked.sort(key=lambda item: item[0])
    results = [result for _, result in ranked]
    results.sort(key=lambda result: (result.fits, result.score), reverse=True)
    return results
