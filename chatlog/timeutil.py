"""Parsing of loose time expressions into points in time and time ranges."""

from __future__ import annotations

import calendar
import re
import time as _time
from datetime import datetime, timedelta, timezone, tzinfo
from enum import IntEnum
from typing import Callable, Optional, Tuple

__all__ = [
    "TimeGranularity",
    "parse_time_with_granularity",
    "time_of",
    "time_range_of",
    "perfect_time_format",
]


class TimeGranularity(IntEnum):
    """How precisely a parsed time expression pins down a moment."""

    UNKNOWN = 0
    SECOND = 1
    MINUTE = 2
    HOUR = 3
    DAY = 4
    MONTH = 5
    QUARTER = 6
    YEAR = 7


_EPOCH = datetime(1970, 1, 1)
_STD_OFFSET = timedelta(seconds=-_time.timezone)


class _LocalTimezone(tzinfo):
    """The system's local time zone, with daylight saving taken into account."""

    def _offset_at(self, naive: datetime) -> timedelta:
        try:
            stamp = _time.mktime(
                (naive.year, naive.month, naive.day, naive.hour, naive.minute,
                 naive.second, naive.weekday(), 0, -1)
            )
            return timedelta(seconds=_time.localtime(stamp).tm_gmtoff)
        except (OverflowError, ValueError, OSError):
            return _STD_OFFSET

    def utcoffset(self, dt: Optional[datetime]) -> timedelta:
        if dt is None:
            return _STD_OFFSET
        return self._offset_at(dt.replace(tzinfo=None))

    def dst(self, dt: Optional[datetime]) -> timedelta:
        return timedelta(0)

    def tzname(self, dt: Optional[datetime]) -> str:
        return _time.tzname[0]

    def fromutc(self, dt: datetime) -> datetime:
        naive = dt.replace(tzinfo=None)
        try:
            stamp = (naive - _EPOCH).total_seconds()
            offset = timedelta(seconds=_time.localtime(stamp).tm_gmtoff)
        except (OverflowError, ValueError, OSError):
            offset = _STD_OFFSET
        return (naive + offset).replace(tzinfo=self)

    def __repr__(self) -> str:
        return "LocalTimezone()"


LOCAL = _LocalTimezone()
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_Parsed = Tuple[datetime, TimeGranularity]

_AGO_RE = re.compile(r"([0-9]+)([hdwmy])")
_QUARTER_RE = re.compile(r"([0-9]{4})Q([1-4])")
_LAST_RE = re.compile(r"last-([0-9]+)([dwmy])")
_CLOCK_RE = re.compile(r"[0-9]{2}:[0-9]{2}")
_INT_RE = re.compile(r"[+-]?[0-9]+")
_RFC3339_RE = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2})"
    r"(?::([0-9]{2})(\.[0-9]+)?)?"
    r"(Z|[+-][0-9]{2}:[0-9]{2})"
)
_DURATION_UNITS = (
    ("ns", 1e-9), ("us", 1e-6), ("\u00b5s", 1e-6), ("\u03bcs", 1e-6),
    ("ms", 1e-3), ("h", 3600.0), ("m", 60.0), ("s", 1.0),
)
_DURATION_NUM_RE = re.compile(r"([0-9]*)(?:\.([0-9]*))?")


def _is_digits(text: str) -> bool:
    return bool(text) and all("0" <= c <= "9" for c in text)


def _atoi(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"not an integer: {text!r}")
    return int(text)


def _valid_date(year: int, month: int, day: int) -> bool:
    if not (1970 <= year <= 9999 and 1 <= month <= 12 and 1 <= day <= 31):
        return False
    return day <= calendar.monthrange(year, month)[1]


def _localize(naive: datetime) -> datetime:
    return naive.replace(tzinfo=LOCAL)


def _midnight(naive: datetime) -> datetime:
    return _localize(naive.replace(hour=0, minute=0, second=0, microsecond=0))


def _add_date(moment: datetime, years: int = 0, months: int = 0, days: int = 0) -> datetime:
    """Shift a wall-clock time by calendar units, normalising overflowing days."""
    total = moment.year * 12 + (moment.month - 1) + years * 12 + months
    year, month0 = divmod(total, 12)
    base = moment.replace(year=year, month=month0 + 1, day=1)
    return base + timedelta(days=moment.day - 1 + days)


def _parse_go_duration(text: str) -> timedelta:
    """Parse a duration such as ``1h30m`` or ``-1.5h``."""
    rest = text
    negative = False
    if rest[:1] in ("-", "+"):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f"invalid duration: {text!r}")
    seconds = 0.0
    while rest:
        number = _DURATION_NUM_RE.match(rest)
        whole, frac = number.group(1), number.group(2)
        if not whole and not frac:
            raise ValueError(f"invalid duration: {text!r}")
        rest = rest[number.end():]
        for unit, scale in _DURATION_UNITS:
            if rest.startswith(unit):
                value = float(f"{whole or '0'}.{frac or '0'}")
                seconds += value * scale
                rest = rest[len(unit):]
                break
        else:
            raise ValueError(f"missing or unknown unit in duration: {text!r}")
    return timedelta(seconds=-seconds if negative else seconds)


def _parse_natural(lowered: str) -> Optional[_Parsed]:
    now = datetime.now()
    if lowered == "now":
        return datetime.now(LOCAL), TimeGranularity.SECOND
    if lowered == "today":
        return _midnight(now), TimeGranularity.DAY
    if lowered == "yesterday":
        return _midnight(_add_date(now, days=-1)), TimeGranularity.DAY
    if lowered == "this-week":
        return _midnight(_add_date(now, days=-now.weekday())), TimeGranularity.DAY
    if lowered == "last-week":
        return _midnight(_add_date(now, days=-now.weekday() - 7)), TimeGranularity.DAY
    if lowered == "this-month":
        return _midnight(now.replace(day=1)), TimeGranularity.MONTH
    if lowered == "last-month":
        return _midnight(_add_date(now.replace(day=1), months=-1)), TimeGranularity.MONTH
    if lowered == "this-year":
        return _midnight(now.replace(month=1, day=1)), TimeGranularity.YEAR
    if lowered == "last-year":
        return _midnight(now.replace(year=now.year - 1, month=1, day=1)), TimeGranularity.YEAR
    if lowered == "all":
        return _ZERO_TIME, TimeGranularity.YEAR
    return None


def _parse_ago(text: str) -> Optional[_Parsed]:
    if text == "0d":
        return _midnight(datetime.now()), TimeGranularity.DAY
    match = _AGO_RE.fullmatch(text)
    if match:
        num = int(match.group(1))
        if num <= 0:
            return None
        unit = match.group(2)
        now = datetime.now()
        try:
            if unit == "h":
                moment = (datetime.now(timezone.utc) - timedelta(hours=num)).astimezone(LOCAL)
                return moment, TimeGranularity.HOUR
            if unit == "d":
                return _localize(_add_date(now, days=-num)), TimeGranularity.DAY
            if unit == "w":
                return _localize(_add_date(now, days=-num * 7)), TimeGranularity.DAY
            if unit == "m":
                return _localize(_add_date(now, months=-num)), TimeGranularity.MONTH
            return _localize(_add_date(now, years=-num)), TimeGranularity.YEAR
        except (OverflowError, ValueError):
            return None
    try:
        duration = _parse_go_duration(text)
        moment = (datetime.now(timezone.utc) - duration).astimezone(LOCAL)
    except (OverflowError, ValueError):
        return None
    hours = duration.total_seconds() / 3600
    if hours < 1:
        return moment, TimeGranularity.SECOND
    if hours < 24:
        return moment, TimeGranularity.HOUR
    return moment, TimeGranularity.DAY


def _split_date(part: str) -> Optional[Tuple[int, int, int]]:
    try:
        if len(part) == 8 and _is_digits(part):
            return int(part[0:4]), int(part[4:6]), int(part[6:8])
        if len(part) == 10 and part.count("-") == 2:
            year, month, day = part.split("-")
            return _atoi(year), _atoi(month), _atoi(day)
    except ValueError:
        return None
    return None


def _parse_rfc3339(text: str) -> Optional[datetime]:
    match = _RFC3339_RE.fullmatch(text)
    if not match:
        return None
    year, month, day, hour, minute, second, frac, zone = match.groups()
    micro = int((frac[1:] + "000000")[:6]) if frac else 0
    try:
        if zone == "Z":
            tz: tzinfo = timezone.utc
        else:
            zh, zm = int(zone[1:3]), int(zone[4:6])
            if zh >= 24 or zm >= 60:
                return None
            offset = timedelta(hours=zh, minutes=zm)
            tz = timezone(-offset if zone[0] == "-" else offset)
        return datetime(int(year), int(month), int(day), int(hour), int(minute),
                        int(second or 0), micro, tzinfo=tz)
    except ValueError:
        return None


def _parse(raw: str) -> Optional[_Parsed]:
    if raw == "":
        return None
    text = raw.strip()

    natural = _parse_natural(text.lower())
    if natural is not None:
        return natural

    if text.endswith("-ago"):
        return _parse_ago(text[: -len("-ago")])

    quarter = _QUARTER_RE.fullmatch(text)
    if quarter:
        year, q = int(quarter.group(1)), int(quarter.group(2))
        if not 1970 <= year <= 9999:
            return None
        return _localize(datetime(year, (q - 1) * 3 + 1, 1)), TimeGranularity.QUARTER

    if len(text) == 4 and _is_digits(text):
        year = int(text)
        if 1970 <= year <= 9999:
            return _localize(datetime(year, 1, 1)), TimeGranularity.YEAR
        return None

    if (len(text) == 6 and _is_digits(text)) or (len(text) == 7 and text.count("-") == 1):
        try:
            if len(text) == 6 and _is_digits(text):
                year, month = int(text[0:4]), int(text[4:6])
            else:
                year_part, month_part = text.split("-")
                year, month = _atoi(year_part), _atoi(month_part)
        except ValueError:
            return None
        if not (1970 <= year <= 9999 and 1 <= month <= 12):
            return None
        return _localize(datetime(year, month, 1)), TimeGranularity.MONTH

    if (len(text) == 8 and _is_digits(text)) or (len(text) == 10 and text.count("-") == 2):
        ymd = _split_date(text)
        if ymd is None or not _valid_date(*ymd):
            return None
        return _localize(datetime(*ymd)), TimeGranularity.DAY

    if len(text) == 12 and _is_digits(text):
        year, month, day = int(text[0:4]), int(text[4:6]), int(text[6:8])
        hour, minute = int(text[8:10]), int(text[10:12])
        if not _valid_date(year, month, day) or hour > 23 or minute > 59:
            return None
        return _localize(datetime(year, month, day, hour, minute)), TimeGranularity.MINUTE

    if "/" in text:
        parts = text.split("/")
        if len(parts) != 2:
            return None
        date_part, clock_part = parts
        ymd = _split_date(date_part)
        if ymd is None or not _valid_date(*ymd):
            return None
        if not _CLOCK_RE.fullmatch(clock_part):
            return None
        hour, minute = int(clock_part[0:2]), int(clock_part[3:5])
        if hour > 23 or minute > 59:
            return None
        return _localize(datetime(*ymd, hour, minute)), TimeGranularity.MINUTE

    if len(text) == 14 and _is_digits(text):
        year, month, day = int(text[0:4]), int(text[4:6]), int(text[6:8])
        hour, minute, second = int(text[8:10]), int(text[10:12]), int(text[12:14])
        if not _valid_date(year, month, day) or hour > 23 or minute > 59 or second > 59:
            return None
        moment = datetime(year, month, day, hour, minute, second)
        return _localize(moment), TimeGranularity.SECOND

    if _is_digits(text):
        stamp = int(text)
        if 1_000_000_000 <= stamp <= 253_402_300_799:
            try:
                return datetime.fromtimestamp(stamp, LOCAL), TimeGranularity.SECOND
            except (OverflowError, ValueError, OSError):
                return None
        return None

    if "T" in text and ("Z" in text or "+" in text or "-" in text):
        moment = _parse_rfc3339(text)
        if moment is not None:
            return moment, TimeGranularity.SECOND

    return None


def parse_time_with_granularity(text: str) -> Tuple[datetime, TimeGranularity]:
    """Parse a time expression, returning the moment and its granularity.

    Raises ValueError when the expression is not understood.
    """
    parsed = _parse(text)
    if parsed is None:
        raise ValueError(f"unrecognised time expression: {text!r}")
    return parsed


def time_of(text: str) -> datetime:
    """Parse a time expression into an aware datetime."""
    return parse_time_with_granularity(text)[0]


def _day_start(t: datetime) -> datetime:
    return t.replace(hour=0, minute=0, second=0, microsecond=0)


def _day_end(t: datetime) -> datetime:
    return t.replace(hour=23, minute=59, second=59, microsecond=999999)


def _month_start(t: datetime) -> datetime:
    return _day_start(t.replace(day=1))


def _month_end(t: datetime) -> datetime:
    return _day_end(t.replace(day=calendar.monthrange(t.year, t.month)[1]))


def _quarter_first_month(t: datetime) -> int:
    return (t.month - 1) // 3 * 3 + 1


def _quarter_start(t: datetime) -> datetime:
    return _day_start(t.replace(month=_quarter_first_month(t), day=1))


def _quarter_end(t: datetime) -> datetime:
    last_month = _quarter_first_month(t) + 2
    last_day = calendar.monthrange(t.year, last_month)[1]
    return _day_end(t.replace(month=last_month, day=last_day))


def _year_start(t: datetime) -> datetime:
    return _day_start(t.replace(month=1, day=1))


def _year_end(t: datetime) -> datetime:
    return _day_end(t.replace(month=12, day=31))


_Bound = Callable[[datetime], datetime]
_SPANS: dict = {
    TimeGranularity.DAY: (_day_start, _day_end),
    TimeGranularity.MONTH: (_month_start, _month_end),
    TimeGranularity.QUARTER: (_quarter_start, _quarter_end),
    TimeGranularity.YEAR: (_year_start, _year_end),
}
_FINE = (TimeGranularity.SECOND, TimeGranularity.MINUTE, TimeGranularity.HOUR)


def _span_for(granularity: TimeGranularity) -> Tuple[_Bound, _Bound]:
    return _SPANS.get(granularity, (_day_start, _day_end))


def _adjust_start(t: datetime, granularity: TimeGranularity) -> datetime:
    return t if granularity in _FINE else _span_for(granularity)[0](t)


def _adjust_end(t: datetime, granularity: TimeGranularity) -> datetime:
    return t if granularity in _FINE else _span_for(granularity)[1](t)


def time_range_of(text: str) -> Tuple[datetime, datetime]:
    """Parse a time range expression into inclusive ``(start, end)`` datetimes.

    Raises ValueError when the expression is not understood.
    """
    if text == "":
        raise ValueError("empty time range expression")
    expr = text.strip()

    if expr.lower() == "all":
        return (
            datetime(1970, 1, 1, tzinfo=timezone.utc),
            datetime(9999, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc),
        )

    last = _LAST_RE.fullmatch(expr)
    if last:
        num, unit = int(last.group(1)), last.group(2)
        if num <= 0:
            raise ValueError(f"non-positive range length: {text!r}")
        now = datetime.now()
        end = _localize(_day_end(now))
        shifts = {
            "d": {"days": -num},
            "w": {"days": -num * 7},
            "m": {"months": -num},
            "y": {"years": -num},
        }
        try:
            start = _midnight(_add_date(now, **shifts[unit]))
        except (OverflowError, ValueError) as exc:
            raise ValueError(f"range out of bounds: {text!r}") from exc
        return start, end

    for sep in ("~", ",", " to "):
        if sep not in expr:
            continue
        parts = expr.split(sep)
        if len(parts) != 2:
            continue
        first = _parse(parts[0].strip())
        second = _parse(parts[1].strip())
        if first is None or second is None:
            continue
        (start_t, start_g), (end_t, end_g) = first, second
        start = _adjust_start(start_t, start_g)
        end = _adjust_end(end_t, end_g)
        if start > end:
            start, end = _adjust_start(end_t, end_g), _adjust_end(start_t, start_g)
        return start, end

    parsed = _parse(expr)
    if parsed is None:
        raise ValueError(f"unrecognised time range expression: {text!r}")
    moment, granularity = parsed
    start_of, end_of = _span_for(granularity)
    return start_of(moment), end_of(moment)


def perfect_time_format(start: datetime, end: datetime) -> str:
    """Choose a strftime format just detailed enough to tell apart times in the span."""
    end_time = end
    if (end_time.hour, end_time.minute, end_time.second, end_time.microsecond) == (0, 0, 0, 0):
        end_time = end_time - timedelta(seconds=1)
    if start.year != end_time.year:
        return "%Y-%m-%d %H:%M:%S"
    if start.timetuple().tm_yday != end_time.timetuple().tm_yday:
        return "%m-%d %H:%M:%S"
    return "%H:%M:%S"