from datetime import date, datetime, timedelta, timezone

import pytest

from daykeys import normalize_day, parse_timestamp, weekday_of
from errors import ValidationError

UTC = timezone.utc


def test_normalize_naive_datetime_is_taken_as_utc():
    assert normalize_day(datetime(2024, 1, 3, 23, 59, 59)) == datetime(2024, 1, 3, tzinfo=UTC)


def test_normalize_aware_datetime_converts_to_utc_first():
    plus_two = timezone(timedelta(hours=2))
    assert normalize_day(datetime(2024, 1, 3, 1, 0, tzinfo=plus_two)) == datetime(2024, 1, 2, tzinfo=UTC)


def test_normalize_date():
    assert normalize_day(date(2024, 1, 3)) == datetime(2024, 1, 3, tzinfo=UTC)


def test_normalize_is_idempotent():
    key = normalize_day(datetime(2024, 2, 29, 13, 45, tzinfo=UTC))
    assert normalize_day(key) == key


def test_weekday_sunday_is_zero():
    assert weekday_of(datetime(2024, 1, 7, tzinfo=UTC)) == 0
    assert weekday_of(datetime(2024, 1, 1, tzinfo=UTC)) == 1
    assert weekday_of(datetime(2024, 1, 6, tzinfo=UTC)) == 6


def test_epoch_formula_matches_calendar():
    start = datetime(1969, 12, 1, tzinfo=UTC)
    for offset in range(800):
        day = start + timedelta(days=offset)
        assert weekday_of(day) == (day.weekday() + 1) % 7


def test_weekday_ignores_time_of_day():
    assert weekday_of(datetime(2024, 1, 3, 23, 59, tzinfo=UTC)) == 3


@pytest.mark.parametrize("raw, expected", [
    ("2024-01-03", datetime(2024, 1, 3)),
    ("2024-01-03T10:15:00Z", datetime(2024, 1, 3, 10, 15, tzinfo=UTC)),
    ("2024-01-03T10:15:00+02:00", datetime(2024, 1, 3, 10, 15, tzinfo=timezone(timedelta(hours=2)))),
])
def test_parse_timestamp(raw, expected):
    assert parse_timestamp(raw) == expected


@pytest.mark.parametrize("raw", [
    "", "   ", "yesterday", "2024-13-01", "03/01/2024",
    "0001-01-01T00:00:00+01:00",
    "9999-12-31T23:00:00-05:00",
])
def test_parse_timestamp_rejects_garbage(raw):
    with pytest.raises(ValidationError):
        parse_timestamp(raw)
