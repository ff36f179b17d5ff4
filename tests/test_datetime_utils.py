from datetime import date, datetime, timezone

from datetime_utils import (
    coerce_datetime,
    ensure_utc,
    from_millis,
    parse_rfc3339,
    to_rfc3339_utc,
)


def test_parse_rfc3339_variants():
    expected = datetime(2024, 5, 1, 7, 30, tzinfo=timezone.utc)
    assert parse_rfc3339("2024-05-01T07:30:00Z") == expected
    assert parse_rfc3339("2024-05-01T09:30:00+02:00") == expected
    assert parse_rfc3339("2024-05-01T07:30:00.5Z") == expected.replace(microsecond=500000)
    assert parse_rfc3339("") is None
    assert parse_rfc3339("yesterday") is None


def test_to_rfc3339_keeps_microseconds_only_when_present():
    assert to_rfc3339_utc(datetime(2024, 1, 1, tzinfo=timezone.utc)) == "2024-01-01T00:00:00Z"
    assert (
        to_rfc3339_utc(datetime(2024, 1, 1, 0, 0, 0, 250, tzinfo=timezone.utc))
        == "2024-01-01T00:00:00.000250Z"
    )
    assert to_rfc3339_utc(None) is None


def test_coerce_datetime_inputs():
    midnight = datetime(2024, 3, 10, tzinfo=timezone.utc)
    assert coerce_datetime("2024-03-10") == midnight
    assert coerce_datetime(date(2024, 3, 10)) == midnight
    assert coerce_datetime(int(midnight.timestamp() * 1000)) == midnight
    assert coerce_datetime("2024-03-10T00:00:00Z") == midnight
    assert coerce_datetime("") is None
    assert coerce_datetime(True) is None


def test_ensure_utc_and_millis():
    assert ensure_utc(datetime(2024, 1, 1)).tzinfo is timezone.utc
    assert from_millis(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert from_millis(None) is None
