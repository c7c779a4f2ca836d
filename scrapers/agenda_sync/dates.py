"""
Date normalization for Brazilian event listings.

Supported inputs:
- Slash format: "11/12/2025 - 21:00", "11/12/2025"
- Named month: "16 de Janeiro", "Sábado, 17 de Jan às 14:30", "17 de Janeiro de 2026"
- ISO timestamps: "2026-01-17T21:00:00-03:00", "2026-01-17"

Output is always a naive local timestamp string "YYYY-MM-DDTHH:mm:ss".
Relative references ("sábado", "amanhã") are not resolved here.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

from dateutil import parser as date_parser

# Salvador has no daylight saving time
LOCAL_TZ = timezone(timedelta(hours=-3), "BRT")

CANONICAL_FORMAT = "%Y-%m-%dT%H:%M:%S"

MONTHS = {
    "janeiro": 1,
    "fevereiro": 2,
    "março": 3,
    "abril": 4,
    "maio": 5,
    "junho": 6,
    "julho": 7,
    "agosto": 8,
    "setembro": 9,
    "outubro": 10,
    "novembro": 11,
    "dezembro": 12,
}

MONTH_ABBREVIATIONS = {
    "jan": 1, "fev": 2, "mar": 3, "abr": 4, "mai": 5, "jun": 6,
    "jul": 7, "ago": 8, "set": 9, "out": 10, "nov": 11, "dez": 12,
}

_SLASH_RE = re.compile(
    r"(\d{1,2})/(\d{1,2})/(\d{4})(?:\s*-\s*(\d{1,2})\s*(?::(\d{2})|[hH](\d{2})?))?"
)

_NAMED_MONTH_RE = re.compile(
    r"(\d{1,2})\s+de\s+([^\W\d_]+)\.?(?:\s+de\s+(\d{4}))?"
    r"(?:\s*(?:às|as|à|-|,)?\s*(\d{1,2})\s*(?::(\d{2})|h(\d{2})?))?",
    re.IGNORECASE,
)

_ANCHOR_RE = re.compile(r"\d{1,2}\s+de\s+([^\W\d_]+)(?:\s+de\s+\d{4})?", re.IGNORECASE)

_ISO_RE = re.compile(r"^\s*\d{4}-\d{2}-\d{2}")

_TIME_RE = re.compile(r"(\d{1,2})\s*(?::\s*(\d{2})|[hH]\s*(\d{2})?)")


class DateFormat(str, Enum):
    """Admissible input patterns."""

    SLASH = "slash"
    NAMED_MONTH = "named_month"
    ISO = "iso"


@dataclass(frozen=True)
class DateProfile:
    """Patterns a source emits, in the order they are tried, plus its default time."""

    formats: tuple[DateFormat, ...]
    default_time: str = "20:00"

    @property
    def default_hour_minute(self) -> tuple[int, int]:
        hour, minute = self.default_time.split(":")
        return int(hour), int(minute)


def month_number(name: str) -> Optional[int]:
    """Resolve a Portuguese month name or 3-letter abbreviation (1-12)."""
    key = name.strip().lower().rstrip(".")
    if key in MONTHS:
        return MONTHS[key]
    if key in MONTH_ABBREVIATIONS:
        return MONTH_ABBREVIATIONS[key]
    if key == "marco":
        return 3
    return None


def to_canonical(value: datetime) -> str:
    """Format a datetime as the canonical naive local string."""
    if value.tzinfo is not None:
        value = value.astimezone(LOCAL_TZ).replace(tzinfo=None)
    return value.replace(microsecond=0).strftime(CANONICAL_FORMAT)


def parse_canonical(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse a canonical (or any ISO) timestamp back into a naive local datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        if not isinstance(value, str) or not _ISO_RE.match(value):
            return None
        try:
            parsed = date_parser.isoparse(value.strip())
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(LOCAL_TZ).replace(tzinfo=None)
    return parsed


def parse_time(text: Optional[str]) -> Optional[tuple[int, int]]:
    """Parse "21h", "19h30", "20:00" into (hour, minute)."""
    if not text:
        return None
    match = _TIME_RE.search(text)
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or match.group(3) or 0)
    if not _valid_time(hour, minute):
        return None
    return hour, minute


def find_date_anchor(text: Optional[str]) -> Optional[str]:
    """Return the first "16 de Janeiro" phrase in free text that names a real month."""
    for match in _ANCHOR_RE.finditer(text or ""):
        if month_number(match.group(1)) is not None:
            return match.group(0)
    return None


def extract_base_date(text: str, today: Optional[date] = None) -> Optional[date]:
    """Find the "16 de Janeiro" anchor in free text; year defaults to the current one."""
    anchor = find_date_anchor(text)
    if not anchor:
        return None
    today = today or datetime.now(LOCAL_TZ).date()
    match = _NAMED_MONTH_RE.search(anchor)
    if not match:
        return None
    month = month_number(match.group(2))
    if month is None:
        return None
    year = int(match.group(3)) if match.group(3) else today.year
    try:
        return date(year, month, int(match.group(1)))
    except ValueError:
        return None


def normalize_date(
    text: Optional[str],
    profile: DateProfile,
    time_text: Optional[str] = None,
    today: Optional[date] = None,
) -> Optional[str]:
    """
    Convert source date text into a canonical timestamp.

    Args:
        text: Raw date text as scraped
        profile: Admissible patterns and default time for the source
        time_text: Separate time field ("21h", "20:00"), used when the date has none
        today: Reference date for year defaulting

    Returns:
        "YYYY-MM-DDTHH:mm:ss" or None when no pattern matches
    """
    if not text or not isinstance(text, str):
        return None

    for fmt in profile.formats:
        if fmt is DateFormat.SLASH:
            result = _parse_slash(text, profile, time_text)
        elif fmt is DateFormat.NAMED_MONTH:
            result = _parse_named_month(text, profile, time_text, today)
        else:
            result = _parse_iso(text, profile, time_text)
        if result is not None:
            return result

    return None


def days_from_now(now: Optional[datetime] = None, days: int = 30) -> str:
    """Placeholder start date for detail pages that expose no date at all."""
    now = now or datetime.now(LOCAL_TZ).replace(tzinfo=None)
    return to_canonical(now + timedelta(days=days))


def _parse_slash(text: str, profile: DateProfile, time_text: Optional[str]) -> Optional[str]:
    match = _SLASH_RE.search(text)
    if not match:
        return None
    day, month, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
    if match.group(4) is not None:
        hour_minute = (int(match.group(4)), int(match.group(5) or match.group(6) or 0))
    else:
        hour_minute = _resolve_time(time_text, profile)
    return _build(year, month, day, hour_minute)


def _parse_named_month(
    text: str, profile: DateProfile, time_text: Optional[str], today: Optional[date]
) -> Optional[str]:
    for match in _NAMED_MONTH_RE.finditer(text):
        month = month_number(match.group(2))
        if month is not None:
            break
    else:
        return None
    today = today or datetime.now(LOCAL_TZ).date()
    year = int(match.group(3)) if match.group(3) else today.year
    if match.group(4) is not None:
        hour_minute = (int(match.group(4)), int(match.group(5) or match.group(6) or 0))
    else:
        hour_minute = _resolve_time(time_text, profile)
    return _build(year, month, int(match.group(1)), hour_minute)


def _parse_iso(text: str, profile: DateProfile, time_text: Optional[str]) -> Optional[str]:
    stripped = text.strip()
    if not _ISO_RE.match(stripped):
        return None
    parsed = parse_canonical(stripped)
    if parsed is None:
        return None
    # Date-only ISO values carry no time of day
    if len(stripped) == 10:
        hour, minute = _resolve_time(time_text, profile)
        parsed = parsed.replace(hour=hour, minute=minute)
    return to_canonical(parsed)


def _resolve_time(time_text: Optional[str], profile: DateProfile) -> tuple[int, int]:
    return parse_time(time_text) or profile.default_hour_minute


def _valid_time(hour: int, minute: int) -> bool:
    return 0 <= hour <= 23 and 0 <= minute <= 59


def _build(year: int, month: int, day: int, hour_minute: tuple[int, int]) -> Optional[str]:
    hour, minute = hour_minute
    if not _valid_time(hour, minute):
        return None
    try:
        return to_canonical(datetime(year, month, day, hour, minute))
    except ValueError:
        return None
