"""
Date parsing used when sorting collections.

Each format is a named parser; ``DateParser.register`` adds new ones.
"""

import re
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger('Tramline.dates')

DELIMITED_RE = re.compile(r'^\s*(\d{1,4})[-/](\d{1,2})[-/](\d{1,4})\s*$')
UNDELIMITED_RE = re.compile(r'^\s*(\d{8})\s*$')
MONTH_DAY_YEAR_RE = re.compile(r'^\s*([A-Za-z]+)\.?\s+(\d{1,2}),?\s+(\d{4})\s*$')

MONTHS = {
    'january': 1, 'february': 2, 'march': 3, 'april': 4, 'may': 5, 'june': 6,
    'july': 7, 'august': 8, 'september': 9, 'october': 10, 'november': 11,
    'december': 12,
}


def _split(value: str, widths):
    """Split a date into three integer parts, delimited or fixed-width."""
    match = DELIMITED_RE.match(value)
    if match:
        return [int(part) for part in match.groups()]
    match = UNDELIMITED_RE.match(value)
    if match:
        digits = match.group(1)
        parts, start = [], 0
        for width in widths:
            parts.append(int(digits[start:start + width]))
            start += width
        return parts
    raise ValueError(f"'{value}' is not a delimited or 8-digit date")


def parse_mmddyyyy(value: str) -> datetime:
    month, day, year = _split(value, (2, 2, 4))
    return datetime(year, month, day)


def parse_ddmmyyyy(value: str) -> datetime:
    day, month, year = _split(value, (2, 2, 4))
    return datetime(year, month, day)


def parse_yyyymmdd(value: str) -> datetime:
    year, month, day = _split(value, (4, 2, 2))
    return datetime(year, month, day)


def parse_month_day_year(value: str) -> datetime:
    match = MONTH_DAY_YEAR_RE.match(value)
    if not match:
        raise ValueError(f"'{value}' does not look like 'Month DD, YYYY'")
    month_name, day, year = match.groups()
    month_name = month_name.lower()
    month = MONTHS.get(month_name)
    if month is None:
        # Abbreviations: "Jan", "Sept"
        candidates = [num for name, num in MONTHS.items() if name.startswith(month_name)]
        if len(month_name) < 3 or len(candidates) != 1:
            raise ValueError(f"Unknown month '{month_name}'")
        month = candidates[0]
    return datetime(int(year), month, int(day))


def parse_unix(value: Any) -> datetime:
    seconds = float(value)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)


class DateParser:
    """Registry of named date formats."""

    DEFAULT_FORMAT = 'mmddyyyy'

    def __init__(self):
        self.formats: Dict[str, Callable[[Any], datetime]] = {
            'mmddyyyy': parse_mmddyyyy,
            'ddmmyyyy': parse_ddmmyyyy,
            'yyyymmdd': parse_yyyymmdd,
            'month dd, yyyy': parse_month_day_year,
            'month day, year': parse_month_day_year,
            'unix': parse_unix,
        }

    def register(self, name: str, func: Callable[[Any], datetime]) -> None:
        self.formats[name.lower()] = func

    def parse(self, value: Any, fmt: Optional[str] = None) -> Optional[datetime]:
        """
        Parse ``value`` with the named format.

        Returns None (after logging) when the format is unknown or the value
        does not match it. ``date``/``datetime`` objects pass straight through.
        """
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.replace(tzinfo=None) if value.tzinfo else value
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)

        fmt = (fmt or self.DEFAULT_FORMAT).lower()
        parser = self.formats.get(fmt)
        if parser is None:
            logger.error(f"Unrecognized date format '{fmt}' for value {value!r}")
            return None
        if isinstance(value, bool) or (fmt != 'unix' and not isinstance(value, str)):
            logger.error(f"Cannot parse {value!r} as a '{fmt}' date")
            return None
        try:
            return parser(value)
        except (ValueError, TypeError, OverflowError, OSError) as e:
            logger.error(f"Cannot parse {value!r} as a '{fmt}' date: {e}")
            return None


default_parser = DateParser()
