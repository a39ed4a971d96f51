"""Business hours check in a company's local time."""

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from omnidesk.models import BusinessHours
from omnidesk.models.common import utcnow

logger = structlog.get_logger()


def company_timezone(hours: BusinessHours) -> ZoneInfo:
    """Resolve the configured timezone, falling back to UTC on unknown names."""
    try:
        return ZoneInfo(hours.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown business timezone, using UTC", timezone=hours.timezone)
        return ZoneInfo("UTC")


def is_business_hours(hours: BusinessHours | None = None, now: datetime | None = None) -> bool:
    """Whether ``now`` falls inside the weekly business window.

    The window is half-open: ``open_hour`` is inside, ``close_hour`` is not.

    Args:
        hours: Company window; the configured default when omitted
        now: Instant to check (aware); the current time when omitted
    """
    hours = hours or BusinessHours()
    local = (now or utcnow()).astimezone(company_timezone(hours))
    return local.weekday() in hours.weekdays and hours.open_hour <= local.hour < hours.close_hour
