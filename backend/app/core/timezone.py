from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import BUSINESS_TIMEZONE


def _resolve_business_tz():
    try:
        return ZoneInfo(BUSINESS_TIMEZONE)
    except ZoneInfoNotFoundError:
        # Windows pode não ter base de fusos instalada; Belém não tem horário de verão.
        return timezone(timedelta(hours=-3))


BUSINESS_TZ = _resolve_business_tz()


def now_business() -> datetime:
    return datetime.now(BUSINESS_TZ)


def today_business() -> date:
    return now_business().date()


def days_between(start: date, end: date) -> int:
    return (end - start).days


def format_br_date(value) -> str:
    if not value:
        return ""
    if isinstance(value, datetime):
        value = value.astimezone(BUSINESS_TZ) if value.tzinfo else value
        return value.strftime("%d/%m/%Y")
    return value.strftime("%d/%m/%Y")
