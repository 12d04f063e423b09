"""Generate timed trips from travel times and headway bands.

A travel-time matrix maps ``from id -> to id -> minutes`` for one day type.
Trips are laid down by walking the timepoints in sequence order and adding
up the minutes between consecutive stops. Departure equals arrival (no dwell).

Missing links are estimated before trips are generated: 5 minutes between
adjacent stops, otherwise the cheaper of 5 minutes per sequence step and
the best two-hop path through an existing intermediate link.

When service-band averages are available each period can carry its own
matrix, so a trip leaving during the peak uses peak running times.

Usage::

    python -m schedule_tools.service_bands.schedule_calculator \
        --input runtime.csv --start 06:00 --end 22:00 --headway 30
"""

from __future__ import annotations

import argparse
import copy
import logging
import sys
import time
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from openpyxl.utils import get_column_letter

from schedule_tools.ingestion.format_detector import DAY_TYPES
from schedule_tools.ingestion.schedule_parser import TimePoint, TravelTime
from schedule_tools.service_bands.service_band_builder import (
    ServiceBandAverage,
    calculate_service_band_averages,
    calculate_time_bands,
)
from schedule_tools.service_bands.trip_duration_analyzer import (
    TimeSegment,
    analyze_trip_duration,
    load_runtime_csv,
    segments_from_runtime_data,
)
from schedule_tools.utils.logging_helper import setup_logging
from schedule_tools.utils.time_helpers import (
    extract_start_time,
    hhmm_to_minutes,
    minutes_to_hhmm,
    round_half_up,
)

# =============================================================================
# CONFIGURATION
# =============================================================================

INPUT_FILE: Path = Path(r"Path\To\Your\Raw_Data.csv")
OUTPUT_FILE: Path = Path(r"Path\To\Your\Output_Folder\generated_schedule.xlsx")

DEFAULT_START: Final[str] = "06:00"
DEFAULT_END: Final[str] = "22:00"
DEFAULT_HEADWAY: Final[int] = 30  # minutes

ADJACENT_STOP_MINUTES: Final[int] = 5
MINUTES_PER_SEQUENCE_STEP: Final[int] = 5
LONG_TRAVEL_MINUTES: Final[int] = 120
EXCEL_COL_WIDTH: Final[int] = 18

LOGGER = logging.getLogger(__name__)

TravelTimeMatrix = dict[str, dict[str, float]]
# (period start in minutes, matrix) sorted by start
PeriodMatrices = list[tuple[int, TravelTimeMatrix]]

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class HeadwayBand:
    """Trips leave every ``frequency`` minutes from ``start_time`` to ``end_time`` inclusive."""

    start_time: str
    end_time: str
    frequency: int


@dataclass(frozen=True)
class ScheduleEntry:
    time_point_id: str
    arrival_time: str
    departure_time: str


@dataclass(frozen=True)
class TripCalculationResult:
    trip_id: str
    schedule_entries: tuple[ScheduleEntry, ...]
    total_travel_time: float
    is_valid: bool
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class TravelTimeCheck:
    is_valid: bool
    errors: tuple[str, ...]
    warnings: tuple[str, ...]


@dataclass(frozen=True)
class CalculationResults:
    trips: dict[str, list[TripCalculationResult]]
    total_time_points: int
    total_trips: int
    calculation_time_ms: int
    missing_connections: dict[str, list[str]] = field(default_factory=dict)


# =============================================================================
# MATRICES
# =============================================================================


def _ordered(time_points: Sequence[TimePoint]) -> list[TimePoint]:
    return sorted(time_points, key=lambda tp: tp.sequence)


def build_travel_matrix(travel_times: Sequence[TravelTime], day_type: str) -> TravelTimeMatrix:
    """Matrix for one day type; the reverse direction is filled when unset."""
    matrix: TravelTimeMatrix = {}
    for tt in travel_times:
        minutes = tt.minutes(day_type)
        matrix.setdefault(tt.from_time_point, {})
        matrix.setdefault(tt.to_time_point, {})
        matrix[tt.from_time_point][tt.to_time_point] = minutes
        if not matrix[tt.to_time_point].get(tt.from_time_point):
            matrix[tt.to_time_point][tt.from_time_point] = minutes
    return matrix


def calculate_travel_times(travel_times: Sequence[TravelTime]) -> dict[str, TravelTimeMatrix]:
    return {day: build_travel_matrix(travel_times, day) for day in DAY_TYPES}


def _estimate_travel_time(
    from_tp: TimePoint,
    to_tp: TimePoint,
    time_points: Sequence[TimePoint],
    matrix: TravelTimeMatrix,
) -> float:
    steps = abs(to_tp.sequence - from_tp.sequence)
    if steps == 1:
        return ADJACENT_STOP_MINUTES

    best: float = steps * MINUTES_PER_SEQUENCE_STEP
    for mid in time_points:
        if mid.id in (from_tp.id, to_tp.id):
            continue
        first = matrix.get(from_tp.id, {}).get(mid.id)
        second = matrix.get(mid.id, {}).get(to_tp.id)
        if first and second and first + second < best:
            best = first + second
    return best


def handle_missing_connections(
    time_points: Sequence[TimePoint], matrix: TravelTimeMatrix
) -> TravelTimeMatrix:
    """Return a copy of ``matrix`` with every timepoint pair filled in.

    Pairs are filled in sequence order, so later estimates can route through
    links estimated earlier. Zero counts as missing.
    """
    filled = copy.deepcopy(matrix)
    ordered = _ordered(time_points)
    for from_tp in ordered:
        row = filled.setdefault(from_tp.id, {})
        for to_tp in ordered:
            if to_tp.id == from_tp.id:
                continue
            filled.setdefault(to_tp.id, {})
            if not row.get(to_tp.id):
                row[to_tp.id] = _estimate_travel_time(from_tp, to_tp, ordered, filled)
    return filled


def validate_matrix_completeness(
    time_points: Sequence[TimePoint], matrix: TravelTimeMatrix
) -> list[str]:
    """``"<from name> -> <to name>"`` for each consecutive pair without minutes."""
    ordered = _ordered(time_points)
    return [
        f"{a.name} -> {b.name}"
        for a, b in zip(ordered, ordered[1:])
        if not matrix.get(a.id, {}).get(b.id)
    ]


def validate_travel_times(
    time_points: Sequence[TimePoint], travel_times: Sequence[TravelTime]
) -> TravelTimeCheck:
    """Check sequencing, consecutive coverage, sign and plausibility of edges."""
    errors: list[str] = []
    warnings: list[str] = []

    sequences = sorted(tp.sequence for tp in time_points)
    for a, b in zip(sequences, sequences[1:]):
        if b - a != 1:
            warnings.append(f"Time point sequence gap detected between {a} and {b}")

    linked = {(tt.from_time_point, tt.to_time_point) for tt in travel_times}
    ordered = _ordered(time_points)
    for a, b in zip(ordered, ordered[1:]):
        if (a.id, b.id) not in linked and (b.id, a.id) not in linked:
            errors.append(f"Missing travel time between {a.name} and {b.name}")

    for tt in travel_times:
        values = [tt.minutes(day) for day in DAY_TYPES]
        if min(values) < 0:
            errors.append(
                f"Negative travel time found between {tt.from_time_point} and {tt.to_time_point}"
            )
    for tt in travel_times:
        longest = max(tt.minutes(day) for day in DAY_TYPES)
        if longest > LONG_TRAVEL_MINUTES:
            warnings.append(
                f"Unusually long travel time ({longest} minutes) between "
                f"{tt.from_time_point} and {tt.to_time_point}"
            )

    return TravelTimeCheck(not errors, tuple(errors), tuple(warnings))


# =============================================================================
# TRIPS
# =============================================================================


def calculate_sequential_travel_times(
    time_points: Sequence[TimePoint], matrix: TravelTimeMatrix
) -> dict[str, float]:
    """Cumulative minutes from the first timepoint; unknown links count as 0."""
    ordered = _ordered(time_points)
    if not ordered:
        return {}
    elapsed: dict[str, float] = {ordered[0].id: 0}
    total: float = 0
    for prev, cur in zip(ordered, ordered[1:]):
        total += matrix.get(prev.id, {}).get(cur.id) or 0
        elapsed[cur.id] = total
    return elapsed


def generate_trip_schedule(
    trip_id: str,
    start_time: str,
    time_points: Sequence[TimePoint],
    matrix: TravelTimeMatrix,
) -> TripCalculationResult:
    """Time one trip. Bad input comes back as an invalid result, not an exception.

    Times past midnight wrap to the next service day (``23:50 + 25 -> 00:15``).
    """
    start = hhmm_to_minutes(start_time)
    problem = None
    if start is None:
        problem = f"invalid start time {start_time!r}"
    elif not time_points:
        problem = "no time points"
    if problem:
        return TripCalculationResult(
            trip_id, (), 0, False, (f"Failed to generate trip schedule: {problem}",)
        )

    elapsed = calculate_sequential_travel_times(time_points, matrix)
    entries = []
    for tp in _ordered(time_points):
        clock = minutes_to_hhmm(round_half_up(start + elapsed[tp.id]))
        entries.append(ScheduleEntry(tp.id, clock, clock))
    return TripCalculationResult(trip_id, tuple(entries), max(elapsed.values()), True)


def build_period_matrices(
    time_points: Sequence[TimePoint], averages: Sequence[ServiceBandAverage]
) -> PeriodMatrices:
    """One matrix per half-hour period, taken from the band that owns it.

    Each link between consecutive timepoints gets the band's average minutes
    to the downstream timepoint, looked up by name.
    """
    out: PeriodMatrices = []
    ordered = _ordered(time_points)
    for avg in averages:
        matrix: TravelTimeMatrix = {}
        for prev, cur in zip(ordered, ordered[1:]):
            minutes = avg.time_point_durations.get(cur.name)
            if minutes:
                matrix.setdefault(prev.id, {})[cur.id] = minutes
        for label in avg.time_periods:
            start = hhmm_to_minutes(extract_start_time(label))
            if start is not None:
                out.append((start, matrix))
    return sorted(out, key=lambda item: item[0])


def _overlay(base: TravelTimeMatrix, links: TravelTimeMatrix) -> TravelTimeMatrix:
    merged = copy.deepcopy(base)
    for from_id, row in links.items():
        merged.setdefault(from_id, {}).update(row)
    return merged


def _matrix_at(
    minutes: int, period_matrices: PeriodMatrices, fallback: TravelTimeMatrix
) -> TravelTimeMatrix:
    chosen = fallback
    for start, matrix in period_matrices:
        if start > minutes:
            break
        chosen = matrix
    return chosen


def generate_trips_from_headway_bands(
    bands: Sequence[HeadwayBand],
    time_points: Sequence[TimePoint],
    matrix: TravelTimeMatrix,
    day_type: str,
    period_matrices: Optional[PeriodMatrices] = None,
) -> list[TripCalculationResult]:
    """Lay down trips for every band; trip numbers run on across bands.

    With ``period_matrices`` a trip uses the links of the latest period that
    starts at or before its departure, laid over ``matrix``. Trips before the
    first period use ``matrix`` alone.

    Raises:
        ValueError: If a band has a non-positive headway or unreadable times.
    """
    overlaid = [(start, _overlay(matrix, links)) for start, links in period_matrices or []]
    trips: list[TripCalculationResult] = []
    counter = 1
    for band_no, band in enumerate(bands, start=1):
        if band.frequency <= 0:
            raise ValueError(f"Headway must be positive, got {band.frequency}")
        start = hhmm_to_minutes(band.start_time)
        end = hhmm_to_minutes(band.end_time)
        if start is None or end is None:
            raise ValueError(f"Unreadable band times: {band.start_time!r} - {band.end_time!r}")

        for minutes in range(start, end + 1, band.frequency):
            trips.append(
                generate_trip_schedule(
                    f"{day_type}_band{band_no}_trip{counter}",
                    minutes_to_hhmm(minutes),
                    time_points,
                    _matrix_at(minutes, overlaid, matrix),
                )
            )
            counter += 1
    return trips


def convert_to_schedule_matrix(
    trips: Sequence[TripCalculationResult], time_points: Sequence[TimePoint]
) -> list[list[str]]:
    """One row per trip of departure times in timepoint order; blank if absent."""
    ordered = _ordered(time_points)
    rows = []
    for trip in trips:
        by_id = {e.time_point_id: e.departure_time for e in trip.schedule_entries}
        rows.append([by_id.get(tp.id, "") for tp in ordered])
    return rows


def calculate_schedule(
    time_points: Sequence[TimePoint],
    travel_times: Sequence[TravelTime],
    bands_by_day: Mapping[str, Sequence[HeadwayBand]],
    period_matrices_by_day: Optional[Mapping[str, PeriodMatrices]] = None,
) -> CalculationResults:
    """Validate, fill missing links, then generate trips for each day type.

    Raises:
        ValueError: If :func:`validate_travel_times` reports errors.
    """
    started = time.monotonic()
    check = validate_travel_times(time_points, travel_times)
    if not check.is_valid:
        raise ValueError(f"Invalid travel time data: {', '.join(check.errors)}")
    for warning in check.warnings:
        LOGGER.warning(warning)

    period_matrices_by_day = period_matrices_by_day or {}
    trips: dict[str, list[TripCalculationResult]] = {}
    missing: dict[str, list[str]] = {}
    for day, matrix in calculate_travel_times(travel_times).items():
        filled = handle_missing_connections(time_points, matrix)
        gaps = validate_matrix_completeness(time_points, filled)
        if gaps:
            LOGGER.warning("Missing connections for %s: %s", day, ", ".join(gaps))
            missing[day] = gaps
        trips[day] = generate_trips_from_headway_bands(
            bands_by_day.get(day, []), time_points, filled, day, period_matrices_by_day.get(day)
        )

    return CalculationResults(
        trips=trips,
        total_time_points=len(time_points),
        total_trips=sum(len(t) for t in trips.values()),
        calculation_time_ms=round((time.monotonic() - started) * 1000),
        missing_connections=missing,
    )


# =============================================================================
# RUNTIME EXPORT BRIDGE
# =============================================================================


def schedule_inputs_from_segments(
    segments: Sequence[TimeSegment],
) -> tuple[list[TimePoint], list[TravelTime]]:
    """Turn per-slot runtime segments into timepoints and day-type edges.

    Timepoints are the distinct segment endpoints in first-seen order, with
    ids ``tp_1``, ``tp_2``, ... Each edge averages its slots: the median feeds
    weekdays and the 80th percentile feeds Saturday and Sunday.
    """
    names = list(dict.fromkeys(n for s in segments for n in (s.from_location, s.to_location)))
    ids = {name: f"tp_{i}" for i, name in enumerate(names, start=1)}
    time_points = [TimePoint(ids[name], name, i) for i, name in enumerate(names, start=1)]

    slots: dict[tuple[str, str], list[TimeSegment]] = defaultdict(list)
    for s in segments:
        if s.p50 > 0 or s.p80 > 0:
            slots[(s.from_location, s.to_location)].append(s)

    travel_times = []
    for (from_loc, to_loc), group in slots.items():
        median = round_half_up(float(np.mean([s.p50 for s in group])))
        slow = round_half_up(float(np.mean([s.p80 for s in group])))
        travel_times.append(TravelTime(ids[from_loc], ids[to_loc], median, slow, slow))
    return time_points, travel_times


def export_schedule_workbook(
    results: CalculationResults, time_points: Sequence[TimePoint], out_path: Path
) -> Path:
    """One sheet per day type with trips, plus a ``Summary`` sheet."""
    names = [tp.name for tp in _ordered(time_points)]
    summary = pd.DataFrame.from_records(
        [
            {"Day Type": day.title(), "Trips": len(trips)}
            for day, trips in results.trips.items()
        ]
    )

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        summary.to_excel(writer, sheet_name="Summary", index=False)
        for day, trips in results.trips.items():
            if not trips:
                continue
            frame = pd.DataFrame(convert_to_schedule_matrix(trips, time_points), columns=names)
            frame.insert(0, "Trip", [t.trip_id for t in trips])
            frame.to_excel(writer, sheet_name=day.title(), index=False)
        for ws in writer.sheets.values():
            for col_idx in range(1, ws.max_column + 1):
                ws.column_dimensions[get_column_letter(col_idx)].width = EXCEL_COL_WIDTH
    LOGGER.info("Saved schedule workbook → %s", out_path)
    return out_path


# =============================================================================
# MAIN
# =============================================================================


def build_argparser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    p = argparse.ArgumentParser(
        description="Generate a timed trip schedule from a runtime export and a headway."
    )
    p.add_argument("-i", "--input", default=str(INPUT_FILE), help="Raw runtime CSV.")
    p.add_argument("-o", "--output", default=str(OUTPUT_FILE), help="Workbook to write.")
    p.add_argument("--start", default=DEFAULT_START, help="First departure, HH:MM.")
    p.add_argument("--end", default=DEFAULT_END, help="Last departure, HH:MM.")
    p.add_argument("--headway", type=int, default=DEFAULT_HEADWAY, help="Minutes between trips.")
    p.add_argument("--day-type", choices=DAY_TYPES, default="weekday")
    p.add_argument(
        "--flat",
        action="store_true",
        help="Use one all-day matrix instead of per-band running times.",
    )
    p.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING ...")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point; returns a process exit code."""
    args = build_argparser().parse_args(argv)
    setup_logging(args.log_level)

    input_path = Path(args.input)
    if not input_path.exists():
        LOGGER.error("Input file not found: %s", input_path)
        return 2

    data = load_runtime_csv(input_path)
    segments = segments_from_runtime_data(data)
    time_points, travel_times = schedule_inputs_from_segments(segments)

    period_matrices = None
    if not args.flat:
        periods = analyze_trip_duration(data).duration_by_time_of_day
        averages = calculate_service_band_averages(
            periods, calculate_time_bands(periods), segments
        )
        period_matrices = {args.day_type: build_period_matrices(time_points, averages)}

    bands = {args.day_type: [HeadwayBand(args.start, args.end, args.headway)]}
    try:
        results = calculate_schedule(time_points, travel_times, bands, period_matrices)
    except ValueError as exc:
        LOGGER.error("%s", exc)
        return 1

    LOGGER.info(
        "Generated %d trip(s) over %d timepoint(s) in %d ms",
        results.total_trips,
        results.total_time_points,
        results.calculation_time_ms,
    )
    export_schedule_workbook(results, time_points, Path(args.output))
    return 0


if __name__ == "__main__":
    sys.exit(main())
