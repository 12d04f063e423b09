"""Clock-time conversions used across the schedule ingestion tools.

Spreadsheet exports carry times in several shapes (``7:05``, ``07:05:00``,
``7:05 PM``, ``"07:00 - 07:29"`` period labels). Everything downstream works
in whole minutes after midnight and renders back to zero-padded ``HH:MM``.
"""

from __future__ import annotations

import math
import re
from typing import Final, Optional

# =============================================================================
# CONFIGURATION
# =============================================================================

MINUTES_PER_DAY: Final[int] = 1440
MAX_TIME_TEXT_LENGTH: Final[int] = 8

_CLOCK_RE: Final[re.Pattern[str]] = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_STRICT_CLOCK_RE: Final[re.Pattern[str]] = re.compile(
    r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])(?::([0-5][0-9]))?$"
)
_MERIDIEM_RE: Final[re.Pattern[str]] = re.compile(r"^(\d{1,2}):(\d{2})(?:\s*([AaPp][Mm]))?$")
_PERIOD_START_RE: Final[re.Pattern[str]] = re.compile(r"(\d{2}:\d{2})")

# =============================================================================
# FUNCTIONS
# =============================================================================


def hhmm_to_minutes(value: Optional[str]) -> Optional[int]:
    """Convert ``H:MM``, ``HH:MM`` or ``HH:MM:SS`` to minutes after midnight.

    Seconds are dropped. Values past 24 h are kept as numbers >= 1440.

    Args:
        value: Time text or None.

    Returns:
        Minutes after midnight, or None when the value is missing or malformed.
    """
    if not isinstance(value, str):
        return None
    m = _CLOCK_RE.match(value.strip())
    if not m:
        return None
    h, mm, _ss = m.groups()
    return int(h) * 60 + int(mm)


def minutes_to_hhmm(minutes: int) -> str:
    """Render minutes as zero-padded ``HH:MM``, wrapping past midnight."""
    h, m = divmod(int(minutes), 60)
    return f"{h % 24:02d}:{m:02d}"


def minutes_between(start: str, end: str) -> Optional[int]:
    """Return minutes from ``start`` to ``end``, rolling over midnight.

    Args:
        start: Earlier clock time.
        end: Later clock time, possibly on the next service day.

    Returns:
        Non-negative elapsed minutes, or None if either time is unreadable.
    """
    a = hhmm_to_minutes(start)
    b = hhmm_to_minutes(end)
    if a is None or b is None:
        return None
    diff = b - a
    if diff < 0:
        diff += MINUTES_PER_DAY
    return diff


def sanitize_time_value(value: object) -> Optional[str]:
    """Strictly validate a cell as a 24-hour clock time.

    The text is trimmed and cut to eight characters before matching, so
    anything after ``HH:MM:SS`` is ignored.

    Args:
        value: Raw cell value.

    Returns:
        Zero-padded ``HH:MM`` or None when the cell is not a valid time.
    """
    if value is None or value == "":
        return None
    text = str(value).strip()[:MAX_TIME_TEXT_LENGTH]
    m = _STRICT_CLOCK_RE.match(text)
    if not m:
        return None
    return f"{int(m.group(1)):02d}:{m.group(2)}"


def to_24_hour(value: str) -> Optional[str]:
    """Normalise ``H:MM`` with an optional AM/PM suffix to ``HH:MM``.

    ``12:xx AM`` maps to hour 0 and ``12:xx PM`` stays at 12.

    Args:
        value: Clock text as exported by the scheduling system.

    Returns:
        24-hour ``HH:MM`` or None if the text is not a clock time.
    """
    if not isinstance(value, str):
        return None
    m = _MERIDIEM_RE.match(value.strip())
    if not m:
        return None
    hours = int(m.group(1))
    minutes = m.group(2)
    meridiem = (m.group(3) or "").upper()
    if meridiem == "AM" and hours == 12:
        hours = 0
    elif meridiem == "PM" and hours != 12:
        hours += 12
    return f"{hours % 24:02d}:{minutes}"


def extract_start_time(time_period: str) -> str:
    """Pull the first ``HH:MM`` out of a period label like ``"07:00 - 07:29"``.

    Returns an empty string when no clock time is present.
    """
    m = _PERIOD_START_RE.search(time_period or "")
    return m.group(1) if m else ""


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves upward (``2.5 -> 3``, ``-2.5 -> -2``), unlike ``round``.

    Args:
        value: Number to round.
        digits: Decimal places to keep.

    Returns:
        An ``int`` when ``digits`` is 0, otherwise a ``float``.
    """
    factor = 10**digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits == 0 else rounded
