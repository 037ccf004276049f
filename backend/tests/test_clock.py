"""
Tests for time helpers (naive-UTC storage, São Paulo calendar days).
"""
from datetime import date, datetime, timedelta, timezone

from backend.app.core.clock import local_midnight_utc, to_local_date, to_naive_utc

BRT = timezone(timedelta(hours=-3))


def test_to_naive_utc_converts_offset():
    assert to_naive_utc(datetime(2025, 2, 1, 1, 0, tzinfo=BRT)) == datetime(2025, 2, 1, 4, 0)
    assert to_naive_utc(datetime(2025, 2, 1, 1, 0, tzinfo=timezone.utc)) == datetime(2025, 2, 1, 1, 0)


def test_to_naive_utc_passes_naive_and_none():
    naive = datetime(2025, 2, 1, 1, 0)
    assert to_naive_utc(naive) is naive
    assert to_naive_utc(None) is None


def test_to_local_date_naive_is_utc():
    # 02:30 UTC is still the previous evening in São Paulo
    assert to_local_date(datetime(2026, 3, 11, 2, 30)) == date(2026, 3, 10)
    assert to_local_date(datetime(2026, 3, 11, 3, 0)) == date(2026, 3, 11)


def test_to_local_date_respects_offset():
    assert to_local_date(datetime(2025, 2, 1, 1, 0, tzinfo=BRT)) == date(2025, 2, 1)
    assert to_local_date(datetime(2025, 2, 1, 1, 0, tzinfo=timezone.utc)) == date(2025, 1, 31)


def test_local_midnight_utc():
    assert local_midnight_utc(date(2026, 3, 1)) == datetime(2026, 3, 1, 3, 0)
