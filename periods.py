import calendar
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings

DateInput = Union[date, str, None]


class InvalidReportRange(ValueError):
    pass


@dataclass(frozen=True)
class DateRange:
    start: Optional[date]
    end: date


def _parse_date(value: DateInput, field: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise InvalidReportRange(f"{field} must be an ISO date, got {value!r}") from exc


def resolve_range(start: DateInput, end: DateInput) -> DateRange:
    """Build the inclusive reporting window; ``start`` may be open."""
    start_date = _parse_date(start, "start_date")
    end_date = _parse_date(end, "end_date")
    if end_date is None:
        raise InvalidReportRange("end_date is required")
    if start_date and start_date > end_date:
        raise InvalidReportRange("Start date must be before end date")
    return DateRange(start_date, end_date)


def today_local(today: Optional[date] = None) -> date:
    if today is not None:
        return today
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def month_start(d: date) -> date:
    return d.replace(day=1)


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
MONTH_ABBREVIATIONS = tuple(name[:3] for name in MONTH_NAMES)


def month_abbr(d: date) -> str:
    """English month abbreviation, independent of the process locale."""
    return MONTH_ABBREVIATIONS[d.month - 1]


def short_month_label(d: date) -> str:
    return f"{month_abbr(d)} {d.year % 100:02d}"


def long_month_label(d: date) -> str:
    return f"{MONTH_NAMES[d.month - 1]} {d.year}"


def parse_month(value: str) -> date:
    """First day of a ``YYYY-MM`` month."""
    try:
        year, month = (int(part) for part in value.strip().split("-"))
        return date(year, month, 1)
    except (AttributeError, TypeError, ValueError) as exc:
        raise InvalidReportRange(f"month must be YYYY-MM, got {value!r}") from exc
