"""
normalization.py — cell-level helpers for mall exports.

Amounts come back as plain numbers, dates as naive ``datetime`` objects.
Amount parsing never raises (unparsable -> 0). Date parsing raises
``DateParseError`` when called directly; row extraction uses
``maybe_parse_date`` and drops the row instead.
"""

from __future__ import annotations

import logging
import math
import re
import warnings
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Optional

import pandas as pd

from mall_tax.errors import DateParseError

logger = logging.getLogger(__name__)

EXCEL_EPOCH = datetime(1899, 12, 30)
EXCEL_SERIAL_MIN = 1
EXCEL_SERIAL_MAX = 2_958_465
SECONDS_PER_DAY = 86_400
MIN_YEAR = 1900
MAX_YEAR = 2100

CURRENCY_JUNK_RE = re.compile(r"[₩$€£¥₹,\s]|원$|KRW|USD", re.IGNORECASE)
NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
LETTER_RE = re.compile(r"[가-힣a-zA-Z]")
AMOUNT_NULLS = {"", "-", "n/a", "na", "nil", "none", "null", "nan"}

KOREAN_SUMMARY_RE = re.compile(r"(합계|총계|소계|누계)")
ENGLISH_SUMMARY_RE = re.compile(r"\b(grand\s+total|sub-?total|total|sum)\b", re.IGNORECASE)

TITLE_MONTH_RE = re.compile(r"(\d{4})\s*년\s*(\d{1,2})\s*월")
DATE_CONTEXT_SCAN_ROWS = 5


# ══════════════════════════════════════════════════════════════════════════════
# CELL HELPERS
# ══════════════════════════════════════════════════════════════════════════════

def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    return isinstance(value, str) and value.strip() == ""


def cell_text(value: Any) -> str:
    if is_blank(value):
        return ""
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.strftime("%Y-%m-%d")
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def looks_numeric(value: Any) -> bool:
    """True for cells Excel stores as numbers: numerics, dates, numeric text."""
    if is_blank(value) or isinstance(value, bool):
        return False
    if isinstance(value, (int, float, date)):
        return True
    return bool(NUMBER_RE.match(str(value).strip()))


def is_text_like(value: Any) -> bool:
    if is_blank(value):
        return False
    return not looks_numeric(value) or bool(LETTER_RE.search(cell_text(value)))


def is_summary_marker(value: Any) -> bool:
    text = cell_text(value)
    if not text:
        return False
    return bool(KOREAN_SUMMARY_RE.search(text) or ENGLISH_SUMMARY_RE.search(text))


# ══════════════════════════════════════════════════════════════════════════════
# AMOUNTS
# ══════════════════════════════════════════════════════════════════════════════

def maybe_parse_amount(value: Any) -> Optional[float]:
    """Parse an amount cell; ``None`` when the cell is absent or not a number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.lower() in AMOUNT_NULLS:
        return None

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    text = CURRENCY_JUNK_RE.sub("", text)
    if not NUMBER_RE.match(text):
        return None
    number = float(text)
    if number.is_integer() and "." not in text and "e" not in text.lower():
        number = int(number)
    return -number if negative else number


def parse_amount(value: Any) -> float:
    """Tolerant amount parser: anything unusable counts as 0."""
    parsed = maybe_parse_amount(value)
    return 0 if parsed is None else parsed


def is_unparsable_amount(value: Any) -> bool:
    """A cell that holds something, but not a number."""
    if isinstance(value, str) and value.strip().lower() in AMOUNT_NULLS:
        return False
    return not is_blank(value) and maybe_parse_amount(value) is None


# ══════════════════════════════════════════════════════════════════════════════
# DATES
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DateContext:
    """Year/month taken from a sheet title, used to resolve day-only cells."""

    year: int
    month: int


def extract_date_context(grid: list[list[Any]], max_rows: int = DATE_CONTEXT_SCAN_ROWS) -> Optional[DateContext]:
    for row in grid[:max_rows]:
        for value in row or []:
            match = TITLE_MONTH_RE.search(cell_text(value))
            if not match:
                continue
            year, month = int(match.group(1)), int(match.group(2))
            if MIN_YEAR <= year <= MAX_YEAR and 1 <= month <= 12:
                logger.debug("Date context %04d-%02d taken from title cell %r", year, month, value)
                return DateContext(year, month)
    return None


_SEP = r"\s*[~\-]\s*"
_DOT_DATE = r"(\d{4})\.\s*(\d{1,2})\.\s*(\d{1,2})\.?"
_KOREAN_DATE = r"(\d{4})\s*년\s*(\d{1,2})\s*월\s*(\d{1,2})\s*일"
_CLOCK = r"(?:(오전|오후|AM|PM)\s*)?(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?(?:\s*(오전|오후|AM|PM))?"

# (label, pattern, group order), tried in list order
RANGE_PATTERNS = [
    ("dot range", re.compile(rf"^{_DOT_DATE}{_SEP}\d{{4}}\.\s*\d{{1,2}}\.\s*\d{{1,2}}\.?$"), "ymd"),
    ("korean range", re.compile(rf"^{_KOREAN_DATE}{_SEP}\d{{4}}\s*년\s*\d{{1,2}}\s*월\s*\d{{1,2}}\s*일$"), "ymd"),
    ("month range", re.compile(r"^(\d{4})\.(\d{1,2})\s*[~\-]\s*\d{4}\.\d{1,2}$"), "ym"),
    ("iso range", re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})\s*[~\-]\s*\d{4}-\d{1,2}-\d{1,2}$"), "ymd"),
]
YEAR_MONTH_PATTERNS = [
    ("dot year-month", re.compile(r"^(\d{4})\.(\d{1,2})\.?$"), "ym"),
    ("korean year-month", re.compile(r"^(\d{4})\s*년\s*(\d{1,2})\s*월$"), "ym"),
]
FULL_DATE_PATTERNS = [
    ("iso date", re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), "ymd"),
    ("slash date", re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), "ymd"),
    ("dot date", re.compile(rf"^{_DOT_DATE}$"), "ymd"),
    ("korean date", re.compile(rf"^{_KOREAN_DATE}$"), "ymd"),
    ("us date", re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), "mdy"),
    ("european date", re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), "dmy"),
]
DATETIME_PATTERNS = [
    ("iso datetime", re.compile(rf"^(\d{{4}})-(\d{{1,2}})-(\d{{1,2}})(?:\s+|T){_CLOCK}$")),
    ("dot datetime", re.compile(rf"^{_DOT_DATE}\s+{_CLOCK}$")),
    ("slash datetime", re.compile(rf"^(\d{{4}})/(\d{{1,2}})/(\d{{1,2}})\s+{_CLOCK}$")),
]
DAY_ONLY_RE = re.compile(r"^(\d{1,2})\s*일$")
DIGIT_GROUP_RE = re.compile(r"\d+")
MONTH_NAME_RE = re.compile(r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\b", re.IGNORECASE)
COMPACT_DATE_DIGITS = 8


def _build(year: int, month: int, day: int = 1, hour: int = 0, minute: int = 0, second: int = 0) -> Optional[datetime]:
    if not MIN_YEAR <= year <= MAX_YEAR:
        return None
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


def _from_groups(groups: tuple, order: str) -> Optional[datetime]:
    numbers = [int(g) for g in groups[:3] if g is not None]
    if order == "ym":
        return _build(numbers[0], numbers[1])
    if order == "ymd":
        return _build(numbers[0], numbers[1], numbers[2])
    if order == "mdy":
        return _build(numbers[2], numbers[0], numbers[1])
    if order == "dmy":
        # only unambiguous when the first part cannot be a month
        if numbers[0] <= 12:
            return None
        return _build(numbers[2], numbers[1], numbers[0])
    return None


def _to_24h(hour: int, marker: Optional[str]) -> int:
    if not marker:
        return hour
    if marker in {"오후", "PM"} and hour < 12:
        return hour + 12
    if marker in {"오전", "AM"} and hour == 12:
        return 0
    return hour


def _from_excel_serial(value: float) -> Optional[datetime]:
    if not EXCEL_SERIAL_MIN <= value <= EXCEL_SERIAL_MAX:
        return None
    return EXCEL_EPOCH + timedelta(seconds=round(value * SECONDS_PER_DAY))


def _parse_text_date(text: str, context: Optional[DateContext]) -> Optional[datetime]:
    for label, pattern, order in RANGE_PATTERNS + YEAR_MONTH_PATTERNS + FULL_DATE_PATTERNS:
        match = pattern.match(text)
        if match:
            parsed = _from_groups(match.groups(), order)
            if parsed:
                logger.debug("Parsed %s %r -> %s", label, text, parsed)
                return parsed

    for label, pattern in DATETIME_PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        year, month, day, lead, hour, minute, second, trail = match.groups()
        parsed = _build(
            int(year),
            int(month),
            int(day),
            _to_24h(int(hour), lead or trail),
            int(minute),
            int(second or 0),
        )
        if parsed:
            logger.debug("Parsed %s %r -> %s", label, text, parsed)
            return parsed

    match = DAY_ONLY_RE.match(text)
    if match:
        if context is None:
            logger.debug("Day-only value %r has no year/month context", text)
            return None
        return _build(context.year, context.month, int(match.group(1)))

    return _parse_with_pandas(text)


def _has_date_shape(text: str) -> bool:
    """At least a year and a month: two digit groups, a YYYYMMDD run or a month name."""
    groups = DIGIT_GROUP_RE.findall(text)
    if len(groups) >= 2:
        return True
    if not groups:
        return False
    return len(groups[0]) == COMPACT_DATE_DIGITS or bool(MONTH_NAME_RE.search(text))


def _parse_with_pandas(text: str) -> Optional[datetime]:
    if not _has_date_shape(text):
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            stamp = pd.to_datetime(text, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None
    if stamp is None or pd.isna(stamp):
        return None
    if stamp.tzinfo is not None:
        stamp = stamp.tz_convert(None)
    parsed = stamp.to_pydatetime()
    if not MIN_YEAR <= parsed.year <= MAX_YEAR:
        return None
    logger.debug("Parsed %r with the generic parser -> %s", text, parsed)
    return parsed


def maybe_parse_date(value: Any, context: Optional[DateContext] = None) -> Optional[datetime]:
    if is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, pd.Timestamp):
        if value.tzinfo is not None:
            value = value.tz_convert(None)
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time(0, 0))
    if isinstance(value, (int, float)):
        return _from_excel_serial(value)
    text = str(value).strip()
    if not text:
        return None
    return _parse_text_date(text, context)


def parse_date(value: Any, context: Optional[DateContext] = None) -> datetime:
    parsed = maybe_parse_date(value, context)
    if parsed is None:
        raise DateParseError(value)
    return parsed
