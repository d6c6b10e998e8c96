from datetime import datetime, timedelta, timezone

from foodlink.services.expiry import is_expired, parse_expiry

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_absent_expiry_never_expires():
    assert is_expired(None, NOW) is False
    assert is_expired("", NOW) is False


def test_past_and_future():
    assert is_expired(NOW - timedelta(seconds=1), NOW) is True
    assert is_expired(NOW + timedelta(seconds=1), NOW) is False


def test_exact_deadline_is_not_yet_expired():
    assert is_expired(NOW, NOW) is False


def test_iso_strings():
    assert is_expired("2025-05-31T12:00:00Z", NOW) is True
    assert is_expired("2025-06-02T00:00:00+05:30", NOW) is False


def test_naive_datetime_is_utc():
    naive = datetime(2025, 6, 1, 11, 59)
    assert is_expired(naive, NOW) is True


def test_offset_is_respected():
    # 13:30 at +02:00 is 11:30 UTC, before NOW
    assert is_expired(datetime(2025, 6, 1, 13, 30, tzinfo=timezone(timedelta(hours=2))), NOW) is True


def test_malformed_fails_open():
    assert is_expired("not a date", NOW) is False
    assert is_expired("2025-13-45", NOW) is False
    assert is_expired(12345, NOW) is False
    assert parse_expiry("garbage") is None
