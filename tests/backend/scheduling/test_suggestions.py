import logging
from datetime import datetime

import pytest
import pytz

from backend.scheduling.errors import InvalidDurationError, InvalidRangeError
from backend.scheduling.records import RankedProvider
from backend.scheduling.suggestions import suggest_providers

SYDNEY = pytz.timezone('Australia/Sydney')
PROVIDER_A = 1
PROVIDER_B = 2
PROVIDER_C = 3


def sydney(hour: int, minute: int = 0, day: int = 5) -> datetime:
    return SYDNEY.localize(datetime(2026, 1, day, hour, minute)).astimezone(pytz.UTC)


WINDOW = (sydney(9, 30), sydney(10, 30))


@pytest.fixture
def clinic(repository, make_weekly):
    repository.add_provider(PROVIDER_A, default_slot_minutes=30)
    repository.add_schedule(PROVIDER_A, make_weekly(mon=[('09:00', '12:00')]))
    repository.add_provider(PROVIDER_B, default_slot_minutes=30)
    repository.add_schedule(PROVIDER_B, make_weekly(mon=[('10:00', '11:00')]))
    repository.add_provider(PROVIDER_C, default_slot_minutes=30)
    repository.add_schedule(PROVIDER_C, make_weekly(mon=[('08:00', '17:00')]))
    return repository


def test_full_fit_ranks_ahead_of_partial_fit(clinic) -> None:
    ranked = suggest_providers(clinic, [PROVIDER_B, PROVIDER_A], *WINDOW)

    assert ranked == [
        RankedProvider(provider_id=PROVIDER_A, fits=True, partial=False, score=2.0),
        RankedProvider(provider_id=PROVIDER_B, fits=False, partial=True, score=1.0),
    ]


def test_provider_with_overlapping_appointment_is_never_offered(clinic) -> None:
    clinic.add_appointment(PROVIDER_C, sydney(10, 15), sydney(10, 45))

    ranked = suggest_providers(clinic, [PROVIDER_C, PROVIDER_A, PROVIDER_B], *WINDOW)

    assert [result.provider_id for result in ranked] == [PROVIDER_A, PROVIDER_B]


def test_provider_with_overlapping_time_off_is_never_offered(clinic) -> None:
    clinic.add_time_off(PROVIDER_A, sydney(10, 0), sydney(10, 5), kind='Sick')

    ranked = suggest_providers(clinic, [PROVIDER_A, PROVIDER_B], *WINDOW)

    assert [result.provider_id for result in ranked] == [PROVIDER_B]


def test_appointment_touching_window_does_not_exclude(clinic) -> None:
    clinic.add_appointment(PROVIDER_C, sydney(8, 30), sydney(9, 30))

    ranked = suggest_providers(clinic, [PROVIDER_C], *WINDOW)

    assert ranked == [RankedProvider(provider_id=PROVIDER_C, fits=True, partial=False, score=2.0)]


def test_duration_bonus_requires_a_long_enough_free_interval(clinic) -> None:
    ranked = suggest_providers(clinic, [PROVIDER_A, PROVIDER_B], *WINDOW, duration_minutes=90)

    assert [(result.provider_id, result.score) for result in ranked] == [(PROVIDER_A, 2.25), (PROVIDER_B, 1.0)]


def test_duration_longer_than_window_is_judged_on_whole_free_block(clinic) -> None:
    ranked = suggest_providers(clinic, [PROVIDER_A], *WINDOW, duration_minutes=180)

    assert ranked == [RankedProvider(provider_id=PROVIDER_A, fits=True, partial=False, score=2.25)]


def test_time_off_after_window_shortens_free_block_for_bonus(clinic) -> None:
    clinic.add_time_off(PROVIDER_A, sydney(10, 45), sydney(12, 0))

    long_enough = suggest_providers(clinic, [PROVIDER_A], *WINDOW, duration_minutes=105)
    too_long = suggest_providers(clinic, [PROVIDER_A], *WINDOW, duration_minutes=120)

    assert [result.score for result in long_enough] == [2.25]
    assert [result.score for result in too_long] == [2.0]


def test_treatment_without_duration_earns_no_bonus(clinic) -> None:
    clinic.add_treatment(7, default_duration_minutes=30)

    ranked = suggest_providers(clinic, [PROVIDER_A, PROVIDER_B], *WINDOW, treatment_id=7)

    assert [(result.provider_id, result.score) for result in ranked] == [(PROVIDER_A, 2.0), (PROVIDER_B, 1.0)]


def test_treatment_skills_supply_candidates_when_none_given(clinic) -> None:
    clinic.add_treatment(7, default_duration_minutes=30)
    clinic.add_skill(PROVIDER_B, 7)
    clinic.add_skill(PROVIDER_A, 7)

    ranked = suggest_providers(clinic, [], *WINDOW, treatment_id=7)

    assert [result.provider_id for result in ranked] == [PROVIDER_A, PROVIDER_B]


def test_exact_ties_keep_candidate_order(clinic) -> None:
    ranked = suggest_providers(clinic, [PROVIDER_C, PROVIDER_A], *WINDOW)

    assert [result.provider_id for result in ranked] == [PROVIDER_C, PROVIDER_A]


def test_duplicate_candidates_are_ranked_once(clinic) -> None:
    ranked = suggest_providers(clinic, [PROVIDER_A, PROVIDER_A, PROVIDER_B], *WINDOW)

    assert [result.provider_id for result in ranked] == [PROVIDER_A, PROVIDER_B]


def test_unavailable_candidates_are_dropped(clinic, make_weekly) -> None:
    clinic.add_provider(4, is_active=False)
    clinic.add_schedule(4, make_weekly(mon=[('09:00', '17:00')]))
    clinic.add_provider(5)
    clinic.add_provider(6)
    clinic.add_schedule(6, make_weekly(mon=[('13:00', '17:00')]))

    ranked = suggest_providers(clinic, [4, 5, 6, 404, PROVIDER_A], *WINDOW)

    assert [result.provider_id for result in ranked] == [PROVIDER_A]


def test_empty_candidate_list_returns_empty_ranking(clinic) -> None:
    assert suggest_providers(clinic, [], *WINDOW) == []


def test_failing_candidate_is_logged_and_excluded(clinic, caplog: pytest.LogCaptureFixture) -> None:
    clinic.failing_providers.add(PROVIDER_A)

    with caplog.at_level(logging.ERROR, logger='backend.scheduling.suggestions'):
        ranked = suggest_providers(clinic, [PROVIDER_A, PROVIDER_B], *WINDOW)

    assert [result.provider_id for result in ranked] == [PROVIDER_B]
    assert 'provider 1' in caplog.text


def test_slow_candidate_is_dropped_after_deadline(clinic, caplog: pytest.LogCaptureFixture) -> None:
    release = clinic.block(PROVIDER_A)

    try:
        with caplog.at_level(logging.WARNING, logger='backend.scheduling.suggestions'):
            ranked = suggest_providers(clinic, [PROVIDER_A, PROVIDER_B], *WINDOW, max_workers=2, timeout=0.2)
    finally:
        release.set()

    assert [result.provider_id for result in ranked] == [PROVIDER_B]
    assert 'did not finish' in caplog.text


def test_invalid_requests_are_input_errors(clinic) -> None:
    with pytest.raises(InvalidRangeError):
        suggest_providers(clinic, [PROVIDER_A], WINDOW[1], WINDOW[0])

    with pytest.raises(InvalidDurationError):
        suggest_providers(clinic, [PROVIDER_A], *WINDOW, duration_minutes=-15)
