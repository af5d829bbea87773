import re
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import get_settings
from app.core.errors import FutureDateError, InvalidDateError

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DMY_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


class DateParseResult(NamedTuple):
    valid: bool
    value: Optional[date] = None
    error: Optional[str] = None

    @property
    def iso(self) -> Optional[str]:
        return self.value.isoformat() if self.value else None


def _invalid(message: str) -> DateParseResult:
    return DateParseResult(valid=False, error=message)


def normalize_date_input(value) -> DateParseResult:
    """Normalize a caller-supplied date to a calendar date.

    Accepts ``date``/``datetime`` objects and strings in ``YYYY-MM-DD``,
    ``DD/MM/YYYY`` or ISO-with-time form. The time part of an ISO string is
    dropped as written, without converting between timezones, so the calendar
    day the caller saw is the one used. Never raises.
    """
    if value is None:
        return _invalid("date is required")
    if isinstance(value, datetime):
        return DateParseResult(valid=True, value=value.date())
    if isinstance(value, date):
        return DateParseResult(valid=True, value=value)
    if not isinstance(value, str):
        return _invalid("date must be a string")

    text = value.strip()
    if not text:
        return _invalid("date is required")

    if "T" in text:
        text = text.split("T", 1)[0]
    elif " " in text:
        text = text.split(" ", 1)[0]

    dmy = _DMY_DATE_RE.match(text)
    if dmy:
        day, month, year = dmy.groups()
        text = "{}-{:0>2}-{:0>2}".format(year, month, day)

    if not _ISO_DATE_RE.match(text):
        return _invalid("Invalid date format. Expected YYYY-MM-DD")
    try:
        parsed = date.fromisoformat(text)
    except ValueError:
        return _invalid("Invalid date: {}".format(text))
    return DateParseResult(valid=True, value=parsed)


def today_local() -> date:
    tz_name = get_settings().STOCK_TIMEZONE.strip()
    if tz_name:
        try:
            return datetime.now(ZoneInfo(tz_name)).date()
        except ZoneInfoNotFoundError:
            raise ValueError("Unknown STOCK_TIMEZONE: {}".format(tz_name)) from None
    return datetime.now().date()


def parse_date(value, *, field: str = "date") -> date:
    result = normalize_date_input(value)
    if not result.valid:
        raise InvalidDateError("{}: {}".format(field, result.error))
    return result.value


def ensure_not_future(day: date, today: Optional[date] = None, *, action: str = "use") -> date:
    today = today or today_local()
    if day > today:
        raise FutureDateError("Cannot {} future dates ({})".format(action, day.isoformat()))
    return day


def parse_past_or_today(value, today: Optional[date] = None, *, field: str = "date", action: str = "use") -> date:
    return ensure_not_future(parse_date(value, field=field), today, action=action)


def previous_day(day: date) -> date:
    return day - timedelta(days=1)


def next_day(day: date) -> date:
    return day + timedelta(days=1)


def iter_dates(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current = next_day(current)


__all__ = [
    "DateParseResult",
    "ensure_not_future",
    "iter_dates",
    "next_day",
    "normalize_date_input",
    "parse_date",
    "parse_past_or_today",
    "previous_day",
    "today_local",
]
