"""Calendar helpers bound to the business timezone."""
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from backoffice.config import settings


def business_now() -> datetime:
    """Current wall-clock time in BUSINESS_TIMEZONE."""
    return datetime.now(timezone.utc).astimezone(ZoneInfo(settings.BUSINESS_TIMEZONE))


def business_today() -> date:
    """Current calendar date in BUSINESS_TIMEZONE."""
    return business_now().date()


def add_months(start: date, months: int) -> date:
    """
    Add calendar months to a date.

    Day overflow is clamped to the last day of the target month
    (2024-01-31 + 1 month = 2024-02-29).
    """
    return start + relativedelta(months=months)


def business_day_start(day: date) -> datetime:
    """Midnight of a business calendar day, as an aware UTC datetime."""
    local = datetime.combine(day, time.min, tzinfo=ZoneInfo(settings.BUSINESS_TIMEZONE))
    return local.astimezone(timezone.utc)
