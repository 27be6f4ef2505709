"""Format call timestamps and parse them back out of filenames.

The default format looks like '20220429_180249.123-0400'. Templates may
override it with a strftime-style pattern, eg. '{date:%Y-%m-%d %H.%M}'.

Parsing never has to consume the whole input: a formatter matches a
timestamp starting at a given position and anything after it is ignored.
The matched fields are then resolved with decreasing specificity (zoned
date-time, local date-time, date only at midnight).
"""

import abc
import calendar
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Optional

from callname.exceptions import InvalidDatePatternError

# Matched field name -> matched text
Fields = dict[str, str]


def format_offset(offset: timedelta, zero_text: str = "+0000") -> str:
    """Render a UTC offset as +HHMM, with seconds appended only when non-zero."""
    total = int(offset.total_seconds())
    if total == 0:
        return zero_text

    sign = "-" if total < 0 else "+"
    hours, rest = divmod(abs(total), 3600)
    minutes, seconds = divmod(rest, 60)

    text = f"{sign}{hours:02d}{minutes:02d}"
    if seconds:
        text += f"{seconds:02d}"
    return text


class DateFormatter(abc.ABC):
    """Formats aware datetimes and matches formatted text at a position."""

    _regex: re.Pattern[str]

    @abc.abstractmethod
    def format(self, value: datetime) -> str:
        """Render an aware datetime."""

    def match(self, text: str, pos: int = 0) -> Optional[Fields]:
        """Match a formatted timestamp starting exactly at ``pos``.

        Returns:
            The matched fields, or None if the text at ``pos`` doesn't match
        """
        m = self._regex.match(text, pos)
        if m is None:
            return None
        return self._fields(m)

    def _fields(self, m: re.Match[str]) -> Fields:
        return {k: v for k, v in m.groupdict().items() if v is not None}


class DefaultFormatter(DateFormatter):
    """YYYYMMDD_HHMMSS[.fraction]+HHMM[ss]"""

    _regex = re.compile(
        r"(?P<year>\d{4,10})(?P<month>\d{2})(?P<day>\d{2})"
        r"_"
        r"(?P<hour>\d{2})(?P<minute>\d{2})(?P<second>\d{2})"
        r"(?:\.(?P<fraction>\d{0,9}))?"
        r"(?P<offset>[+-]\d{4}(?:\d{2})?)"
    )

    def format(self, value: datetime) -> str:
        offset = value.utcoffset()
        if offset is None:
            raise ValueError(f"Cannot format naive datetime: {value}")

        text = (
            f"{value.year:04d}{value.month:02d}{value.day:02d}"
            f"_{value.hour:02d}{value.minute:02d}{value.second:02d}"
        )

        fraction = f"{value.microsecond:06d}".rstrip("0")
        if fraction:
            text += f".{fraction}"

        return text + format_offset(offset)

    def __repr__(self) -> str:
        return "DefaultFormatter()"


def _name_alternation(names: list[str]) -> str:
    # Longest first so that eg. 'June' wins over 'Jun'
    names = sorted({n for n in names if n}, key=len, reverse=True)
    return "(?i:" + "|".join(re.escape(n) for n in names) + ")"


class StrftimeFormatter(DateFormatter):
    """Formatter built from a strftime-style pattern.

    Only directives that can be parsed back unambiguously are accepted.
    """

    def __init__(self, pattern: str):
        if not pattern:
            raise InvalidDatePatternError("Date pattern is empty")

        directives = self._directives()
        parts: list[str] = []
        self._field_names: list[str] = []

        i = 0
        while i < len(pattern):
            c = pattern[i]
            if c != "%":
                parts.append(re.escape(c))
                i += 1
                continue

            if i + 1 >= len(pattern):
                raise InvalidDatePatternError(f"Dangling '%' in date pattern: {pattern!r}")

            directive = pattern[i + 1]
            i += 2

            if directive == "%":
                parts.append("%")
                continue
            if directive not in directives:
                raise InvalidDatePatternError(
                    f"Unsupported directive %{directive} in date pattern: {pattern!r}"
                )

            field, regex = directives[directive]
            if field is None:
                parts.append(f"(?:{regex})")
            else:
                parts.append(f"({regex})")
                self._field_names.append(field)

        self.pattern = pattern
        self._regex = re.compile("".join(parts))

    @staticmethod
    def _directives() -> dict[str, tuple[Optional[str], str]]:
        # Month and weekday names depend on the current locale, same as strftime()
        return {
            "Y": ("year", r"\d{4}"),
            "y": ("year2", r"\d{2}"),
            "m": ("month", r"\d{2}"),
            "b": ("month_name", _name_alternation(list(calendar.month_abbr))),
            "B": ("month_name", _name_alternation(list(calendar.month_name))),
            "d": ("day", r"\d{2}"),
            "j": ("day_of_year", r"\d{3}"),
            "a": (None, _name_alternation(list(calendar.day_abbr))),
            "A": (None, _name_alternation(list(calendar.day_name))),
            "H": ("hour", r"\d{2}"),
            "I": ("hour12", r"\d{2}"),
            "p": ("ampm", r"(?i:am|pm)"),
            "M": ("minute", r"\d{2}"),
            "S": ("second", r"\d{2}"),
            "f": ("fraction", r"\d{1,6}"),
            "z": ("offset", r"[+-]\d{4}(?:\d{2})?|Z"),
            # Zone names can't be resolved back to an offset
            "Z": (None, r"[A-Za-z][A-Za-z0-9_/:+-]*"),
        }

    def format(self, value: datetime) -> str:
        return value.strftime(self.pattern)

    def _fields(self, m: re.Match[str]) -> Fields:
        # Later occurrences of the same directive win
        return {k: v for k, v in zip(self._field_names, m.groups()) if v is not None}

    def __repr__(self) -> str:
        return f"StrftimeFormatter({self.pattern!r})"


DEFAULT_FORMATTER = DefaultFormatter()


def _month_number(name: str) -> Optional[int]:
    name = name.lower()
    for names in (calendar.month_name, calendar.month_abbr):
        for index, candidate in enumerate(names):
            if index and candidate.lower() == name:
                return index
    return None


def _resolve_date(fields: Fields) -> Optional[date]:
    if "year" in fields:
        year = int(fields["year"])
    elif "year2" in fields:
        # Same pivot as strptime()
        short_year = int(fields["year2"])
        year = short_year + (2000 if short_year < 69 else 1900)
    else:
        return None

    try:
        if "day_of_year" in fields:
            day_of_year = int(fields["day_of_year"])
            result = date(year, 1, 1) + timedelta(days=day_of_year - 1)
            if day_of_year < 1 or result.year != year:
                return None
            return result

        if "month" in fields:
            month = int(fields["month"])
        elif "month_name" in fields:
            month = _month_number(fields["month_name"])
        else:
            return None

        if month is None or "day" not in fields:
            return None

        return date(year, month, int(fields["day"]))
    except (ValueError, OverflowError):
        return None


def _resolve_time(fields: Fields) -> Optional[time]:
    if "hour" in fields:
        hour = int(fields["hour"])
    elif "hour12" in fields and "ampm" in fields:
        hour12 = int(fields["hour12"])
        if not 1 <= hour12 <= 12:
            return None
        hour = hour12 % 12 + (12 if fields["ampm"].lower() == "pm" else 0)
    else:
        return None

    # Digits beyond microsecond precision are dropped
    fraction = fields.get("fraction", "")
    microsecond = int(fraction[:6].ljust(6, "0")) if fraction else 0

    try:
        return time(
            hour,
            int(fields.get("minute", 0)),
            int(fields.get("second", 0)),
            microsecond,
        )
    except ValueError:
        return None


def _resolve_zone(fields: Fields) -> Optional[tzinfo]:
    text = fields.get("offset")
    if text is None:
        return None
    if text == "Z":
        return timezone.utc

    sign = -1 if text[0] == "-" else 1
    offset = timedelta(
        hours=int(text[1:3]),
        minutes=int(text[3:5]),
        seconds=int(text[5:7] or 0),
    )

    try:
        return timezone(sign * offset)
    except ValueError:
        return None


def _as_zoned_datetime(fields: Fields) -> Optional[datetime]:
    d = _resolve_date(fields)
    t = _resolve_time(fields)
    zone = _resolve_zone(fields)
    if d is None or t is None or zone is None:
        return None
    return datetime.combine(d, t, tzinfo=zone)


def _as_local_datetime(fields: Fields) -> Optional[datetime]:
    # A custom pattern might not specify the time zone
    d = _resolve_date(fields)
    t = _resolve_time(fields)
    if d is None or t is None:
        return None
    return datetime.combine(d, t)


def _as_start_of_day(fields: Fields) -> Optional[datetime]:
    # A custom pattern might only specify a date with no time
    d = _resolve_date(fields)
    if d is None:
        return None
    return datetime.combine(d, time())


PARSE_STRATEGIES: tuple[Callable[[Fields], Optional[datetime]], ...] = (
    _as_zoned_datetime,
    _as_local_datetime,
    _as_start_of_day,
)


def parse_timestamp(formatter: DateFormatter, text: str, pos: int = 0) -> Optional[datetime]:
    """Parse a timestamp formatted by ``formatter`` starting at ``pos``.

    Args:
        formatter: Formatter the timestamp was produced with
        text: Text containing the timestamp
        pos: Index at which the timestamp starts

    Returns:
        An aware datetime if the format includes an offset, a naive datetime
        otherwise (midnight for date-only formats), or None if nothing could
        be parsed
    """
    fields = formatter.match(text, pos)
    if fields is None:
        return None

    for strategy in PARSE_STRATEGIES:
        result = strategy(fields)
        if result is not None:
            return result

    return None
