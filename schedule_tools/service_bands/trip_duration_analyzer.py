"""Trip duration by time of day from observed segment runtimes.

Input is the raw runtime export: for every timepoint-to-timepoint segment a
block of rows like::

    Title,Downtown Terminal to Main & 1st
    Half-Hour,07:00 - 07:29,07:30 - 07:59,...
    Observed Runtime-25%,6.1,6.4,...
    Observed Runtime-50%,7.0,7.2,...
    Observed Runtime-80%,8.3,8.9,...
    Observed Runtime-90%,9.0,9.6,...

Parsing also counts rows and segments (:class:`RuntimeParseSummary`) and
collects warnings for malformed rows.

Segment runtimes are summed per half-hour period into an end-to-end trip
duration (25th/50th/80th/90th percentile). Two outlier detectors flag
periods whose median duration looks unusual:

- the neighbour rule only looks at the single longest and shortest periods
  and flags them when they differ from the runner-up by 10 % or more;
- the IQR rule flags anything outside ``[Q1 - 1.5*IQR, Q3 + 1.5*IQR]``.

Outlier detection and band assignment (see :mod:`service_band_builder`) both
work on original period indices with user-excluded periods left out.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Collection, Final, Optional, Sequence

import numpy as np

from schedule_tools.ingestion.schedule_extractor import load_grid
from schedule_tools.utils.text_sanitizer import sanitize_text
from schedule_tools.utils.time_helpers import extract_start_time, round_half_up

# =============================================================================
# CONFIGURATION
# =============================================================================

TITLE_MARKER: Final[str] = "Title"
PERIOD_MARKER: Final[str] = "Half-Hour"
RUNTIME_MARKER: Final[str] = "Observed Runtime-"
PERCENTILE_KEYS: Final[tuple[str, ...]] = ("p25", "p50", "p80", "p90")

NEIGHBOR_THRESHOLD_PCT: Final[float] = 10.0
MIN_PERIODS_FOR_NEIGHBOR_RULE: Final[int] = 3
IQR_MULTIPLIER: Final[float] = 1.5

TABLE_HEADERS: Final[tuple[str, ...]] = (
    "Time Period",
    "25th Percentile (min)",
    "Median (min)",
    "80th Percentile (min)",
    "90th Percentile (min)",
)

_RUNTIME_PCT_RE: Final[re.Pattern[str]] = re.compile(r"Runtime-(\d+)%")
_SEGMENT_NAME_RE: Final[re.Pattern[str]] = re.compile(r"(.+?)\s+to\s+(.+)", re.I)

LOGGER = logging.getLogger(__name__)

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class RuntimeSegment:
    """Runtime percentiles for one segment, one value per time period."""

    segment: str
    time_periods: list[str] = field(default_factory=list)
    p25: list[float] = field(default_factory=list)
    p50: list[float] = field(default_factory=list)
    p80: list[float] = field(default_factory=list)
    p90: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class RuntimeParseSummary:
    """Row and segment counts for one runtime export."""

    total_rows: int
    valid_rows: int
    skipped_rows: int
    total_segments: int
    valid_segments: int
    time_slots: int

    @property
    def invalid_segments(self) -> int:
        return self.total_segments - self.valid_segments


@dataclass
class ParsedTravelTimeData:
    segments: list[RuntimeSegment]
    route_id: str = ""
    route_name: str = ""
    direction: str = ""
    summary: Optional[RuntimeParseSummary] = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TimeSegment:
    """One segment's runtimes in one time slot."""

    from_location: str
    to_location: str
    time_slot: str
    p25: float
    p50: float
    p80: float
    p90: float


@dataclass(frozen=True)
class DurationPercentiles:
    p25: float
    p50: float
    p80: float
    p90: float


@dataclass(frozen=True)
class TimePeriodDuration:
    time_period: str
    start_time: str
    duration: DurationPercentiles


@dataclass(frozen=True)
class DurationSummary:
    min_duration: float
    max_duration: float
    avg_duration: int
    peak_period: str
    fastest_period: str


@dataclass(frozen=True)
class TripDurationAnalysis:
    route_id: str
    route_name: str
    direction: str
    duration_by_time_of_day: tuple[TimePeriodDuration, ...]
    summary: DurationSummary


@dataclass(frozen=True)
class OutlierInfo:
    """A time period whose median duration stands out."""

    index: int
    duration: float
    time_period: str
    start_time: str
    deviation_from_median: float
    percentile_rank: int
    outlier_reason: Optional[str] = None
    comparison_duration: Optional[float] = None
    percentage_diff: Optional[float] = None


# =============================================================================
# PARSING
# =============================================================================


def _to_float(cell: Optional[str]) -> Optional[float]:
    """Read one runtime cell; blank is 0 and non-numeric text is None."""
    text = str(cell if cell is not None else "").strip()
    if not text:
        return 0.0
    try:
        value = float(text)
    except ValueError:
        return None
    return 0.0 if np.isnan(value) else value


def _summarize(
    segments: Sequence[RuntimeSegment], total_rows: int, skipped_rows: int
) -> RuntimeParseSummary:
    valid = 0
    slots: set[str] = set()
    for seg in segments:
        slots.update(seg.time_periods)
        has_data = any(v > 0 for v in seg.p50) or any(v > 0 for v in seg.p80)
        if _SEGMENT_NAME_RE.match(seg.segment) and has_data:
            valid += 1
    return RuntimeParseSummary(
        total_rows=total_rows,
        valid_rows=total_rows - skipped_rows,
        skipped_rows=skipped_rows,
        total_segments=len(segments),
        valid_segments=valid,
        time_slots=len(slots),
    )


def parse_runtime_rows(
    rows: Sequence[Sequence[Optional[str]]],
    route_id: str = "",
    route_name: str = "",
    direction: str = "",
) -> ParsedTravelTimeData:
    """Read the raw runtime export into per-segment percentile series.

    A ``Title`` row opens a new segment, a ``Half-Hour`` row sets the time
    periods, and ``Observed Runtime-NN%`` rows fill the 25/50/80/90 series.
    Non-numeric runtime cells read as 0 and add a warning. Runtime rows seen
    before any ``Title`` row, unsupported percentiles and unrecognised rows
    are skipped. Blank rows are not counted.

    Args:
        rows: Decoded CSV rows.
        route_id: Route identifier to carry through.
        route_name: Route display name.
        direction: Direction label.

    Returns:
        The parsed segments in file order, a row summary and per-row warnings.
    """
    segments: list[RuntimeSegment] = []
    warnings: list[str] = []
    current: Optional[RuntimeSegment] = None
    periods: list[str] = []
    total_rows = 0
    skipped_rows = 0

    for row_no, row in enumerate(rows, start=1):
        cells = [str(c).strip() if c is not None else "" for c in (row or [])]
        if not any(cells):
            continue
        total_rows += 1
        first = cells[0]

        if first == TITLE_MARKER:
            if current is not None:
                segments.append(current)
            name = sanitize_text(cells[1] if len(cells) > 1 else "")
            if not _SEGMENT_NAME_RE.match(name):
                warnings.append(f"Row {row_no}: segment title {name!r} is not '<from> to <to>'")
            current = RuntimeSegment(segment=name)
            continue

        if first == PERIOD_MARKER:
            periods = [c for c in cells[1:] if c]
            if current is not None:
                current.time_periods = [sanitize_text(p) for p in periods]
            continue

        if RUNTIME_MARKER in first:
            m = _RUNTIME_PCT_RE.search(first)
            key = f"p{m.group(1)}" if m else ""
            if current is None:
                warnings.append(f"Row {row_no}: runtime values before any Title row were ignored")
                skipped_rows += 1
            elif key not in PERCENTILE_KEYS:
                warnings.append(f"Row {row_no}: unsupported percentile row {first!r} ignored")
                skipped_rows += 1
            else:
                values = []
                for cell in cells[1 : len(periods) + 1]:
                    value = _to_float(cell)
                    if value is None:
                        warnings.append(f"Row {row_no}: non-numeric runtime {cell!r} read as 0")
                        value = 0.0
                    values.append(value)
                setattr(current, key, values)
            continue

        skipped_rows += 1

    if current is not None:
        segments.append(current)

    summary = _summarize(segments, total_rows, skipped_rows)
    LOGGER.info(
        "Parsed %d runtime segment(s) from %d row(s), %d skipped",
        len(segments),
        total_rows,
        skipped_rows,
    )
    return ParsedTravelTimeData(
        segments=segments,
        route_id=sanitize_text(route_id),
        route_name=sanitize_text(route_name),
        direction=sanitize_text(direction),
        summary=summary,
        warnings=warnings,
    )


def load_runtime_csv(
    path: Path, route_id: str = "", route_name: str = "", direction: str = ""
) -> ParsedTravelTimeData:
    """Read a runtime export file from disk and parse it."""
    return parse_runtime_rows(load_grid(path, Path(path).name), route_id, route_name, direction)


def segments_from_runtime_data(data: ParsedTravelTimeData) -> list[TimeSegment]:
    """Flatten parsed series into per-slot :class:`TimeSegment` records.

    Slots where every percentile is zero are dropped, as are segments whose
    title is not of the form ``"<from> to <to>"``.
    """
    out: list[TimeSegment] = []
    for seg in data.segments:
        m = _SEGMENT_NAME_RE.match(seg.segment)
        if not m:
            LOGGER.debug("Skipping segment without 'from to' title: %r", seg.segment)
            continue
        from_loc, to_loc = m.group(1).strip(), m.group(2).strip()
        for i, slot in enumerate(seg.time_periods):
            values = [_series_value(getattr(seg, key), i) for key in PERCENTILE_KEYS]
            if not any(v > 0 for v in values):
                continue
            out.append(TimeSegment(from_loc, to_loc, slot, *values))
    return out


def _series_value(series: Sequence[float], i: int) -> float:
    return series[i] if i < len(series) else 0.0


# =============================================================================
# ANALYSIS
# =============================================================================


def analyze_trip_duration(data: ParsedTravelTimeData) -> TripDurationAnalysis:
    """Sum segment runtimes into whole-trip durations per time period.

    Time periods come from the first segment. Totals are rounded to whole
    minutes, and the summary is computed over the median (p50) totals.

    Raises:
        ValueError: If there are no segments.
    """
    if not data.segments:
        raise ValueError("No travel time segments found")

    periods = data.segments[0].time_periods
    rows: list[TimePeriodDuration] = []
    for i, period in enumerate(periods):
        totals = {
            key: sum(_series_value(getattr(seg, key), i) for seg in data.segments)
            for key in PERCENTILE_KEYS
        }
        rows.append(
            TimePeriodDuration(
                time_period=sanitize_text(period),
                start_time=extract_start_time(period),
                duration=DurationPercentiles(
                    **{key: round_half_up(total) for key, total in totals.items()}
                ),
            )
        )

    if not rows:
        raise ValueError("No time periods found for travel time segments")

    medians = [r.duration.p50 for r in rows]
    lo = min(medians)
    hi = max(medians)
    summary = DurationSummary(
        min_duration=lo,
        max_duration=hi,
        avg_duration=round_half_up(sum(medians) / len(medians)),
        peak_period=rows[medians.index(hi)].time_period,
        fastest_period=rows[medians.index(lo)].time_period,
    )
    return TripDurationAnalysis(
        route_id=data.route_id,
        route_name=data.route_name,
        direction=data.direction,
        duration_by_time_of_day=tuple(rows),
        summary=summary,
    )


def to_table_data(analysis: TripDurationAnalysis) -> tuple[list[str], list[list[str]]]:
    """Headers and string rows for a percentile table."""
    rows = [
        [
            r.time_period,
            str(r.duration.p25),
            str(r.duration.p50),
            str(r.duration.p80),
            str(r.duration.p90),
        ]
        for r in analysis.duration_by_time_of_day
    ]
    return list(TABLE_HEADERS), rows


# =============================================================================
# OUTLIERS
# =============================================================================


def _active(
    periods: Sequence[TimePeriodDuration], excluded: Collection[int]
) -> list[tuple[int, TimePeriodDuration]]:
    return [(i, p) for i, p in enumerate(periods) if i not in excluded]


def _percentile_rank(sorted_durations: np.ndarray, duration: float) -> int:
    rank = int(np.count_nonzero(sorted_durations <= duration))
    return round_half_up(rank / len(sorted_durations) * 100)


def detect_neighbor_outliers(
    periods: Sequence[TimePeriodDuration],
    excluded: Collection[int] = (),
    threshold_pct: float = NEIGHBOR_THRESHOLD_PCT,
) -> list[OutlierInfo]:
    """Flag the longest/shortest period when it beats its runner-up by the threshold.

    Only the two extreme positions are ever eligible. At least three
    non-excluded periods are required.

    Args:
        periods: Per-period durations in display order.
        excluded: Original indices to leave out.
        threshold_pct: Minimum percentage gap to the runner-up.

    Returns:
        Outliers sorted by percentage difference, largest first.
    """
    active = _active(periods, excluded)
    if len(active) < MIN_PERIODS_FOR_NEIGHBOR_RULE:
        return []

    # Stable sort keeps the first of equal durations at the low end.
    ordered = sorted(active, key=lambda item: item[1].duration.p50)
    durations = np.array([p.duration.p50 for _, p in ordered], dtype=float)
    median = durations[len(durations) // 2]

    candidates = []
    longest_idx, longest = ordered[-1]
    runner_up = durations[-2]
    if runner_up > 0:
        pct = (longest.duration.p50 - runner_up) / runner_up * 100
        if pct >= threshold_pct:
            candidates.append(
                (longest_idx, longest, pct, runner_up, f"{pct:.1f}% longer than next highest trip")
            )

    shortest_idx, shortest = ordered[0]
    next_lowest = durations[1]
    if next_lowest > 0:
        pct = (next_lowest - shortest.duration.p50) / next_lowest * 100
        if pct >= threshold_pct:
            candidates.append(
                (shortest_idx, shortest, pct, next_lowest, f"{pct:.1f}% shorter than next lowest trip")
            )

    outliers = [
        OutlierInfo(
            index=idx,
            duration=p.duration.p50,
            time_period=p.time_period,
            start_time=p.start_time,
            deviation_from_median=round_half_up(p.duration.p50 - median, 2),
            percentile_rank=_percentile_rank(durations, p.duration.p50),
            outlier_reason=reason,
            comparison_duration=float(comparison),
            percentage_diff=round_half_up(pct, 1),
        )
        for idx, p, pct, comparison, reason in candidates
    ]
    outliers.sort(key=lambda o: o.percentage_diff or 0, reverse=True)
    return outliers


def iqr_bounds(durations: Sequence[float]) -> tuple[float, float, float]:
    """Lower bound, upper bound and median using index-picked quartiles."""
    values = np.sort(np.asarray(durations, dtype=float))
    n = len(values)
    q1 = values[int(np.floor(n * 0.25))]
    q3 = values[int(np.floor(n * 0.75))]
    median = values[int(np.floor(n * 0.5))]
    iqr = q3 - q1
    return q1 - IQR_MULTIPLIER * iqr, q3 + IQR_MULTIPLIER * iqr, median


def detect_iqr_outliers(
    periods: Sequence[TimePeriodDuration], excluded: Collection[int] = ()
) -> list[OutlierInfo]:
    """Flag periods whose median lies outside the 1.5 x IQR fences.

    Returns:
        Outliers sorted by absolute distance from the median, largest first.
    """
    active = _active(periods, excluded)
    if not active:
        return []

    durations = [p.duration.p50 for _, p in active]
    lower, upper, median = iqr_bounds(durations)
    sorted_durations = np.sort(np.asarray(durations, dtype=float))

    outliers = [
        OutlierInfo(
            index=idx,
            duration=p.duration.p50,
            time_period=p.time_period,
            start_time=p.start_time,
            deviation_from_median=round_half_up(p.duration.p50 - median, 2),
            percentile_rank=_percentile_rank(sorted_durations, p.duration.p50),
        )
        for idx, p in active
        if p.duration.p50 < lower or p.duration.p50 > upper
    ]
    outliers.sort(key=lambda o: abs(o.deviation_from_median), reverse=True)
    return outliers
