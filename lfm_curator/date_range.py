"""
Date Range - Custom --from/--to and --year windows over the listening history

Dates are YYYY-MM-DD or a bare year. A start date means the first second of
that day (or year), an end date the last second, so ranges are inclusive.
All times are UTC.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from lfm_curator.errors import ValidationError

logger = logging.getLogger(__name__)

DATE_FORMAT = '%Y-%m-%d'
MIN_YEAR = 1900


@dataclass(frozen=True)
class DateRange:
    """Inclusive UTC window"""
    start: datetime
    end: datetime

    @property
    def from_timestamp(self) -> int:
        return int(self.start.timestamp())

    @property
    def to_timestamp(self) -> int:
        return int(self.end.timestamp())

    @property
    def label(self) -> str:
        return f"{self.start.strftime(DATE_FORMAT)} to {self.end.strftime(DATE_FORMAT)}"

    def to_dict(self) -> Dict[str, Any]:
        return {'from': self.start.strftime(DATE_FORMAT), 'to': self.end.strftime(DATE_FORMAT)}


def _parse_year(value: Union[int, str], today: Optional[datetime] = None) -> int:
    try:
        year = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid year '{value}'. Use YYYY (e.g. 2017)") from None
    max_year = (today or datetime.now(timezone.utc)).year + 1
    if not MIN_YEAR <= year <= max_year:
        raise ValidationError(f"Year {year} is out of range ({MIN_YEAR}-{max_year})")
    return year


def parse_date(text: str, is_start: bool, today: Optional[datetime] = None) -> datetime:
    """
    Parse one end of a date range

    Args:
        text: YYYY-MM-DD, or YYYY as a shortcut for Jan 1st / Dec 31st
        is_start: True for the lower bound (start of day), False for the
            upper bound (end of day)
        today: Reference date for the year bound (defaults to now)

    Raises:
        ValidationError: for blank, malformed or out-of-range dates
    """
    if text is None or not str(text).strip():
        raise ValidationError("Date cannot be empty")
    text = str(text).strip()

    if text.isdigit():
        year = _parse_year(text, today)
        if is_start:
            return datetime(year, 1, 1, tzinfo=timezone.utc)
        return datetime(year, 12, 31, 23, 59, 59, tzinfo=timezone.utc)

    try:
        day = datetime.strptime(text, DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        raise ValidationError(f"Invalid date '{text}'. Use YYYY-MM-DD or YYYY") from None
    return day if is_start else day + timedelta(days=1, seconds=-1)


def parse_date_range(from_text: Optional[str], to_text: Optional[str],
                     today: Optional[datetime] = None) -> DateRange:
    if not from_text or not to_text:
        raise ValidationError("Both --from and --to must be given for a custom date range")
    start = parse_date(from_text, True, today)
    end = parse_date(to_text, False, today)
    if start >= end:
        raise ValidationError(f"From date must be before to date ({from_text} / {to_text})")
    return DateRange(start, end)


def year_range(year: Union[int, str], today: Optional[datetime] = None) -> DateRange:
    year = _parse_year(year, today)
    return DateRange(
        datetime(year, 1, 1, tzinfo=timezone.utc),
        datetime(year, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
    )


def resolve_time_selection(
    period: Optional[str] = None,
    from_text: Optional[str] = None,
    to_text: Optional[str] = None,
    year: Optional[Union[int, str]] = None,
    today: Optional[datetime] = None,
) -> Optional[DateRange]:
    """
    Pick the date range from the mutually exclusive time options

    Returns:
        A DateRange for --from/--to or --year, None when a period applies

    Raises:
        ValidationError: when more than one kind of time option is given, or
            only one of --from/--to
    """
    given = []
    if period:
        given.append('--period')
    if from_text or to_text:
        given.append('--from/--to')
    if year is not None:
        given.append('--year')
    if len(given) > 1:
        raise ValidationError(f"Cannot combine {', '.join(given)}; use only one time option")

    if year is not None:
        return year_range(year, today)
    if from_text or to_text:
        return parse_date_range(from_text, to_text, today)
    return None
