"""Tests for the business hours check."""

from datetime import datetime, timezone

import pytest

from omnidesk.models import BusinessHours
from omnidesk.services.routing.business_hours import company_timezone, is_business_hours

SAO_PAULO = BusinessHours(timezone="America/Sao_Paulo", weekdays=[0, 1, 2, 3, 4], open_hour=9, close_hour=18)


@pytest.mark.parametrize(
    "instant,expected",
    [
        (datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc), True),  # Monday 12:00 local
        (datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc), True),  # Monday 09:00 local, opening
        (datetime(2026, 3, 2, 21, 0, tzinfo=timezone.utc), False),  # Monday 18:00 local, closing
        (datetime(2026, 3, 2, 11, 59, tzinfo=timezone.utc), False),  # Monday 08:59 local
        (datetime(2026, 3, 7, 15, 0, tzinfo=timezone.utc), False),  # Saturday
        (datetime(2026, 3, 3, 1, 0, tzinfo=timezone.utc), False),  # Monday 22:00 local
    ],
)
def test_is_business_hours(instant, expected):
    assert is_business_hours(SAO_PAULO, instant) is expected


def test_weekend_company():
    hours = BusinessHours(timezone="UTC", weekdays=[5, 6], open_hour=0, close_hour=24)
    assert is_business_hours(hours, datetime(2026, 3, 7, 23, 30, tzinfo=timezone.utc))
    assert not is_business_hours(hours, datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc))


def test_unknown_timezone_falls_back_to_utc():
    hours = BusinessHours(timezone="Mars/Olympus_Mons")
    assert company_timezone(hours).key == "UTC"
