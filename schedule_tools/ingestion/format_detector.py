"""Infer the tabular layout of a raw schedule spreadsheet.

Uploaded workbooks come from several scheduling systems and rarely share a
layout. This module looks at the decoded cell grid and works out:

- which row (if any) is the header, and where data starts
- which columns hold timepoint times
- the clock format used in the data cells
- which columns belong to weekday / Saturday / Sunday service

The result is a :class:`DetectedFormat` carrying a 0-100 confidence score plus
the errors and warnings gathered along the way, so callers can decide how far
to trust a low-confidence guess.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field, fields
from typing import Any, Final, Mapping, Optional, Sequence, Union

# =============================================================================
# CONFIGURATION
# =============================================================================

MAX_ROWS_TO_SCAN: Final[int] = 100
MIN_TIME_POINTS: Final[int] = 2
MAX_TIME_POINTS: Final[int] = 15

HEADER_SCAN_ROWS: Final[int] = 5
PERIOD_ROW_SCAN_ROWS: Final[int] = 10
TIME_COLUMN_SCAN_ROWS: Final[int] = 10
FORMAT_SAMPLE_ROWS: Final[int] = 20

TIMEPOINT_KEYWORDS: Final[tuple[str, ...]] = (
    "stop",
    "station",
    "point",
    "terminal",
    "depot",
    "plaza",
    "center",
    "mall",
    "hospital",
    "school",
    "university",
    "college",
    "library",
    "park",
    "street",
    "avenue",
    "road",
    "way",
    "lane",
    "drive",
    "blvd",
)
WEEKDAY_KEYWORDS: Final[tuple[str, ...]] = (
    "weekday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
)
SATURDAY_KEYWORDS: Final[tuple[str, ...]] = ("saturday", "sat")
SUNDAY_KEYWORDS: Final[tuple[str, ...]] = ("sunday", "sun")

# Confidence contributions
SCORE_NO_ERRORS: Final[int] = 30
SCORE_HEADER: Final[int] = 20
SCORE_ENOUGH_TIMEPOINTS: Final[int] = 25
SCORE_KNOWN_FORMAT: Final[int] = 15
SCORE_DAY_TYPES: Final[int] = 10
PENALTY_WARNING: Final[int] = 5
PENALTY_ERROR: Final[int] = 20

_TIME_VALUE_RE: Final[re.Pattern[str]] = re.compile(r"^\d{1,2}:\d{2}(:\d{2})?$")
_TIME_PERIOD_RE: Final[re.Pattern[str]] = re.compile(r"^\d{2}:\d{2}\s*-\s*\d{2}:\d{2}$")
_ADDRESS_RE: Final[re.Pattern[str]] = re.compile(
    r"\d{1,4}\s*(st|nd|rd|th|street|ave|avenue|rd|road|way|lane|dr|drive|blvd|boulevard)",
    re.I,
)
_LETTERS_ONLY_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z\s&-]{3,}$")
_NUMERIC_RE: Final[re.Pattern[str]] = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

_FORMAT_PATTERNS: Final[tuple[tuple[str, re.Pattern[str]], ...]] = (
    ("HH:MM:SS", re.compile(r"^\d{1,2}:\d{2}:\d{2}$")),
    ("HH:MM", re.compile(r"^\d{2}:\d{2}$")),
    ("H:MM", re.compile(r"^\d{1}:\d{2}$")),
)

DAY_TYPES: Final[tuple[str, ...]] = ("weekday", "saturday", "sunday")

LOGGER = logging.getLogger(__name__)

CellValue = Union[str, int, float, None]
Grid = Sequence[Sequence[Any]]

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class DetectionOptions:
    """Tunables for :func:`detect_format`."""

    max_rows_to_scan: int = MAX_ROWS_TO_SCAN
    min_time_points: int = MIN_TIME_POINTS
    max_time_points: int = MAX_TIME_POINTS

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "DetectionOptions":
        """Build options from a plain dict, ignoring keys this class does not know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (mapping or {}).items() if k in known})


@dataclass(frozen=True)
class DetectedFormat:
    """Layout diagnostics for one raw grid. Never mutated after detection."""

    has_header: bool = False
    header_row: int = -1
    data_start_row: int = -1
    time_point_columns: tuple[int, ...] = ()
    time_point_names: tuple[str, ...] = ()
    time_format: str = "unknown"
    day_type_columns: Mapping[str, tuple[int, ...]] = field(default_factory=dict)
    confidence: int = 0
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def day_type_for_column(self, col: int) -> str:
        """Return the day type a column belongs to, defaulting to weekday."""
        if col in self.day_type_columns.get("saturday", ()):
            return "saturday"
        if col in self.day_type_columns.get("sunday", ()):
            return "sunday"
        return "weekday"


# =============================================================================
# CELL HELPERS
# =============================================================================


def normalize_cell(value: Any) -> Optional[str]:
    """Collapse a decoded cell to text or None.

    Whole floats lose their trailing ``.0`` and NaN is treated as blank.
    """
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
    return str(value)


def normalize_grid(grid: Grid) -> list[list[Optional[str]]]:
    """Return a copy of ``grid`` where every cell is ``str`` or ``None``."""
    return [[normalize_cell(cell) for cell in (row or [])] for row in grid]


def _is_blank(cell: Optional[str]) -> bool:
    return cell is None or cell == ""


def is_time_value(value: str) -> bool:
    """True for ``H:MM``, ``HH:MM`` and ``HH:MM:SS`` strings."""
    return bool(_TIME_VALUE_RE.match(value.strip()))


def looks_like_timepoint(name: str) -> bool:
    """Heuristic check that a header cell names a stop or location."""
    lower = name.lower()
    return (
        any(keyword in lower for keyword in TIMEPOINT_KEYWORDS)
        or bool(_ADDRESS_RE.search(name))
        or bool(_LETTERS_ONLY_RE.match(name))
    )


def looks_like_time_period(value: str) -> bool:
    """True for half-hour period labels such as ``07:00 - 07:29``."""
    return bool(_TIME_PERIOD_RE.match(value.strip()))


def identify_time_format(value: str) -> Optional[str]:
    """Classify one time string, or return None if it is not a clock time."""
    trimmed = value.strip()
    for name, pattern in _FORMAT_PATTERNS:
        if pattern.match(trimmed):
            return name
    return None


def _contains_timepoint_names(row: Sequence[Optional[str]]) -> bool:
    text_count = 0
    time_count = 0
    for cell in row:
        if _is_blank(cell):
            continue
        text = cell.strip()
        if not text:
            continue
        if is_time_value(text):
            time_count += 1
        elif not _NUMERIC_RE.match(text):
            text_count += 1
    return text_count >= max(2, time_count)


# =============================================================================
# DETECTION STAGES
# =============================================================================


def _detect_header(
    grid: list[list[Optional[str]]], options: DetectionOptions, warnings: list[str]
) -> tuple[bool, int, int]:
    for i in range(min(HEADER_SCAN_ROWS, len(grid))):
        row = grid[i]
        if not row:
            continue
        non_empty = sum(1 for cell in row if not _is_blank(cell))
        if non_empty >= options.min_time_points and _contains_timepoint_names(row):
            return True, i, i + 1

    warnings.append("No header row detected, assuming data starts at row 1")
    return False, -1, 0


def _detect_time_points(
    grid: list[list[Optional[str]]],
    header_row: int,
    data_start_row: int,
    options: DetectionOptions,
    errors: list[str],
    warnings: list[str],
) -> tuple[list[int], list[str]]:
    columns: list[int] = []
    names: list[str] = []

    period_row = -1
    for i in range(min(PERIOD_ROW_SCAN_ROWS, len(grid))):
        row = grid[i]
        if row and not _is_blank(row[0]) and "half-hour" in row[0].lower():
            period_row = i
            break

    if period_row >= 0:
        # Travel-time matrix export: one column per half-hour period.
        for col, cell in enumerate(grid[period_row][1:], start=1):
            if not _is_blank(cell) and looks_like_time_period(cell):
                columns.append(col)
                names.append(cell.strip())
    elif header_row >= 0:
        for col, cell in enumerate(grid[header_row]):
            if _is_blank(cell):
                continue
            name = cell.strip()
            if name and looks_like_timepoint(name):
                columns.append(col)
                names.append(name)
    else:
        width = len(grid[0]) if grid else 0
        scan_rows = min(TIME_COLUMN_SCAN_ROWS, len(grid))
        for col in range(width):
            for r in range(data_start_row, min(data_start_row + scan_rows, len(grid))):
                row = grid[r]
                cell = row[col] if col < len(row) else None
                if not _is_blank(cell) and is_time_value(cell):
                    columns.append(col)
                    names.append(f"TimePoint_{col + 1}")
                    break

    if len(columns) < options.min_time_points:
        errors.append(
            f"Found only {len(columns)} time points, "
            f"minimum required is {options.min_time_points}"
        )
    if len(columns) > options.max_time_points:
        warnings.append(
            f"Found {len(columns)} time points, which is more than expected "
            f"({options.max_time_points})"
        )
    return columns, names


def _detect_time_format(
    grid: list[list[Optional[str]]],
    data_start_row: int,
    columns: Sequence[int],
    warnings: list[str],
) -> str:
    seen: list[str] = []
    sample = min(FORMAT_SAMPLE_ROWS, len(grid) - data_start_row)
    for r in range(data_start_row, min(data_start_row + sample, len(grid))):
        row = grid[r]
        for col in columns:
            cell = row[col] if col < len(row) else None
            if _is_blank(cell):
                continue
            fmt = identify_time_format(cell)
            if fmt and fmt not in seen:
                seen.append(fmt)

    if not seen:
        warnings.append("No recognizable time format detected")
        return "unknown"
    if len(seen) == 1:
        return seen[0]
    warnings.append(f"Multiple time formats detected: {', '.join(seen)}")
    return "mixed"


def _detect_day_types(
    grid: list[list[Optional[str]]], header_row: int, warnings: list[str]
) -> dict[str, tuple[int, ...]]:
    if header_row < 0:
        warnings.append("Cannot detect day types without header row")
        return {}

    found: dict[str, list[int]] = {}
    for col, cell in enumerate(grid[header_row]):
        if _is_blank(cell):
            continue
        name = cell.lower().strip()
        if any(k in name for k in WEEKDAY_KEYWORDS):
            found.setdefault("weekday", []).append(col)
        elif any(k in name for k in SATURDAY_KEYWORDS):
            found.setdefault("saturday", []).append(col)
        elif any(k in name for k in SUNDAY_KEYWORDS):
            found.setdefault("sunday", []).append(col)

    if not found:
        warnings.append("No day type columns detected")
    return {day: tuple(cols) for day, cols in found.items()}


def _score(
    has_header: bool,
    n_time_points: int,
    time_format: str,
    day_types: Mapping[str, Sequence[int]],
    options: DetectionOptions,
    errors: Sequence[str],
    warnings: Sequence[str],
) -> int:
    score = 0
    if not errors:
        score += SCORE_NO_ERRORS
    if has_header:
        score += SCORE_HEADER
    if n_time_points >= options.min_time_points:
        score += SCORE_ENOUGH_TIMEPOINTS
    if time_format != "unknown":
        score += SCORE_KNOWN_FORMAT
    if day_types:
        score += SCORE_DAY_TYPES
    score -= PENALTY_WARNING * len(warnings)
    score -= PENALTY_ERROR * len(errors)
    return max(0, min(100, score))


# =============================================================================
# PUBLIC API
# =============================================================================


def detect_format(grid: Grid, options: Optional[DetectionOptions] = None) -> DetectedFormat:
    """Run every detection stage over a raw grid.

    Args:
        grid: Decoded rows of cell values (strings, numbers or None).
        options: Detection thresholds; module defaults when omitted.

    Returns:
        A frozen :class:`DetectedFormat`. Problems are reported in its
        ``errors`` and ``warnings``; nothing is raised for bad layouts.
    """
    options = options or DetectionOptions()
    if not grid:
        return DetectedFormat(errors=("No data provided",))

    rows = normalize_grid(grid[: max(options.max_rows_to_scan, HEADER_SCAN_ROWS)])
    errors: list[str] = []
    warnings: list[str] = []

    has_header, header_row, data_start = _detect_header(rows, options, warnings)
    columns, names = _detect_time_points(rows, header_row, data_start, options, errors, warnings)
    time_format = _detect_time_format(rows, data_start, columns, warnings)
    day_types = _detect_day_types(rows, header_row, warnings)
    confidence = _score(has_header, len(columns), time_format, day_types, options, errors, warnings)

    for message in warnings:
        LOGGER.debug("Format detection warning: %s", message)
    LOGGER.info(
        "Detected %d timepoint column(s), header=%s, format=%s, confidence=%d",
        len(columns),
        header_row if has_header else "none",
        time_format,
        confidence,
    )

    return DetectedFormat(
        has_header=has_header,
        header_row=header_row,
        data_start_row=data_start,
        time_point_columns=tuple(columns),
        time_point_names=tuple(names),
        time_format=time_format,
        day_type_columns=day_types,
        confidence=confidence,
        errors=tuple(errors),
        warnings=tuple(warnings),
    )
