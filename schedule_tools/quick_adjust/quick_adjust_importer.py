"""Rebuild trips and blocks from a "quick adjust" schedule export.

The export repeats one section per day type. Each section looks like::

    Weekday
    Route, 100 Loop
    ...,     DEPART,            ,      ,  ARRIVE,
    Stop Name, Downtown Terminal, Mall, ..., Downtown Terminal,
    Stop ID,   100,               200,  ..., 100,              R
    <one row per trip>
    Service Hours ...

Column roles come from the three header rows. A numeric stop ID marks a
timepoint column, typed by the event label above it (ARRIVE, DEPART or plain
TIME). A stop ID of ``R`` marks a recovery column for the nearest timepoint
to its left. Everything else is ignored.

Loop routes start and end at the same stop. For these the importer adds an
alias timepoint ``<id>__terminal`` so that "arrive to finish this lap" and
"depart to start this lap" live in separate columns.

Structural problems (no day sections, no ``Stop Name`` row) raise
``ValueError``. Row-level problems only add warnings.

Usage::

    python -m schedule_tools.quick_adjust.quick_adjust_importer \
        --input route_100_quick_adjust.csv --route-id 100
"""

from __future__ import annotations

import argparse
import io
import logging
import re
import sys
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Final, Literal, Optional, Sequence

import pandas as pd
from openpyxl.utils import get_column_letter

from schedule_tools.ingestion.format_detector import DAY_TYPES
from schedule_tools.ingestion.schedule_parser import TimePoint
from schedule_tools.quick_adjust.block_assignment import Trip, compute_blocks_for_trips
from schedule_tools.utils.logging_helper import setup_logging
from schedule_tools.utils.time_helpers import (
    MINUTES_PER_DAY,
    hhmm_to_minutes,
    minutes_to_hhmm,
    round_half_up,
    to_24_hour,
)

# =============================================================================
# CONFIGURATION
# =============================================================================

INPUT_FILE: Path = Path(r"Path\To\Your\Quick_Adjust_Export.csv")
OUTPUT_DIR: Path = Path(r"Path\To\Your\Output_Folder")

DAY_LABELS: Final[dict[str, str]] = {
    "weekday": "weekday",
    "weekdays": "weekday",
    "saturday": "saturday",
    "saturdays": "saturday",
    "sunday": "sunday",
    "sundays": "sunday",
}

STOP_NAME_LABEL: Final[str] = "stop name"
ROUTE_LABEL: Final[str] = "route"
SECTION_END_LABEL: Final[str] = "service hours"
RECOVERY_STOP_ID: Final[str] = "R"
NON_STOP_HEADERS: Final[frozenset[str]] = frozenset(
    {"TRAVEL TIME", "CYCLE TIME", "R RATIO", "FREQUENCY"}
)

LOOP_TERMINAL_SUFFIX: Final[str] = "__terminal"
DEFAULT_ROUTE_NAME: Final[str] = "Quick Adjust Route"
DEFAULT_DIRECTION: Final[str] = "Outbound"
SERVICE_BAND_COLOR: Final[str] = "#607D8B"
EXCEL_COL_WIDTH: Final[int] = 14

TIME_TEXT_RE: Final[re.Pattern[str]] = re.compile(r"^(\d{1,2}):(\d{2})(?:\s*([AaPp][Mm]))?$")
NUMERIC_ID_RE: Final[re.Pattern[str]] = re.compile(r"^\d+$")
RECOVERY_RE: Final[re.Pattern[str]] = re.compile(r"^-?\d+(\.\d+)?$")

LOGGER = logging.getLogger(__name__)

ColumnRole = Literal["ARRIVE", "DEPART", "RECOVERY", "TIME", "OTHER"]
Rows = Sequence[Sequence[Optional[str]]]

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class ColumnDescriptor:
    column_index: int
    role: ColumnRole
    stop_id: Optional[str] = None
    stop_name: Optional[str] = None
    recovery_target: Optional[str] = None


@dataclass(frozen=True)
class DaySection:
    day_type: str
    route_name: str
    event_row: list[str]
    stop_name_row: list[str]
    stop_id_row: list[str]
    data_rows: list[list[str]]
    columns: list[ColumnDescriptor]


@dataclass(frozen=True)
class OperatingHours:
    start: str
    end: str


@dataclass(frozen=True)
class SummarySchedule:
    """Route-level view: timepoints, one time matrix per day type, trip details."""

    route_id: str
    route_name: str
    direction: str
    time_points: list[TimePoint]
    matrices: dict[str, list[list[str]]]
    trip_details: dict[str, list[Trip]]
    effective_date: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class QuickAdjustResult:
    route_id: str
    route_name: str
    time_points: list[TimePoint]
    trips: dict[str, list[Trip]]
    summary_schedule: SummarySchedule
    warnings: list[str]


# =============================================================================
# FUNCTIONS
# =============================================================================


def split_csv_content(content: str) -> list[list[str]]:
    """Split export text into rectangular rows of cells.

    Quoted cells may hold commas (``"Terminal, North"``). Short rows are
    padded with empty strings and an empty export gives no rows.
    """
    if not content.strip():
        return []
    width = max(line.count(",") for line in content.splitlines()) + 1
    frame = pd.read_csv(
        io.StringIO(content),
        header=None,
        names=list(range(width)),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
    )
    return frame.fillna("").values.tolist()


def _cell(row: Sequence[Optional[str]], idx: int) -> str:
    if idx >= len(row):
        return ""
    value = row[idx]
    return value.strip() if value else ""


def _lower_cells(row: Sequence[Optional[str]]) -> list[str]:
    return [(c or "").strip().lower() for c in row]


def detect_day_type(row: Sequence[Optional[str]]) -> Optional[str]:
    """Return the day type named by the first matching non-empty cell."""
    for text in _lower_cells(row):
        if text and text in DAY_LABELS:
            return DAY_LABELS[text]
    return None


def _is_numeric_id(value: str) -> bool:
    return bool(NUMERIC_ID_RE.match(value))


def build_column_descriptors(
    event_row: Sequence[Optional[str]],
    stop_name_row: Sequence[Optional[str]],
    stop_id_row: Sequence[Optional[str]],
) -> list[ColumnDescriptor]:
    """Classify every column from the event, stop-name and stop-ID header rows.

    Args:
        event_row: Row carrying ARRIVE / DEPART labels.
        stop_name_row: Row carrying the ``Stop Name`` label and stop names.
        stop_id_row: Row carrying numeric stop IDs and ``R`` markers.

    Returns:
        One descriptor per column, in column order.
    """
    width = max(len(event_row), len(stop_name_row), len(stop_id_row))
    columns: list[ColumnDescriptor] = []
    last_stop_id: Optional[str] = None

    for col in range(width):
        stop_id = _cell(stop_id_row, col).upper()
        stop_name = _cell(stop_name_row, col)
        event = _cell(event_row, col).upper()

        if stop_id == RECOVERY_STOP_ID:
            columns.append(ColumnDescriptor(col, "RECOVERY", recovery_target=last_stop_id))
        elif stop_id and stop_id not in NON_STOP_HEADERS and _is_numeric_id(stop_id):
            role: ColumnRole = event if event in ("ARRIVE", "DEPART") else "TIME"  # type: ignore[assignment]
            columns.append(ColumnDescriptor(col, role, stop_id=stop_id, stop_name=stop_name))
            last_stop_id = stop_id
        else:
            columns.append(ColumnDescriptor(col, "OTHER"))

    return columns


def derive_time_points(columns: Sequence[ColumnDescriptor]) -> list[TimePoint]:
    """Unique stops in first-seen column order, sequenced from 1."""
    seen: set[str] = set()
    points: list[TimePoint] = []
    for c in columns:
        if not c.stop_id or c.stop_id in seen:
            continue
        seen.add(c.stop_id)
        points.append(TimePoint(id=c.stop_id, name=c.stop_name or c.stop_id, sequence=len(points) + 1))
    return points


def detect_loop_base_stop(columns: Sequence[ColumnDescriptor]) -> Optional[str]:
    """Return the stop ID a loop route starts and ends at, else None."""
    stops = [c.stop_id for c in columns if c.stop_id and _is_numeric_id(c.stop_id)]
    if len(stops) < 2:
        return None
    return stops[0] if stops[0] == stops[-1] else None


def _route_name_from_row(row: Sequence[Optional[str]], default: str) -> str:
    cells = _lower_cells(row)
    if ROUTE_LABEL not in cells:
        return default
    for idx in range(cells.index(ROUTE_LABEL) + 1, len(row)):
        candidate = _cell(row, idx)
        if candidate:
            return candidate
    return default


def _build_day_section(rows: Rows, start: int) -> tuple[DaySection, int]:
    day_type = detect_day_type(rows[start])
    route_name = DEFAULT_ROUTE_NAME
    stop_name_idx = -1

    for i in range(start + 1, len(rows)):
        cells = _lower_cells(rows[i])
        if STOP_NAME_LABEL in cells:
            stop_name_idx = i
            break
        if ROUTE_LABEL in cells:
            route_name = _route_name_from_row(rows[i], route_name)

    if stop_name_idx == -1:
        raise ValueError(f"Unable to locate stop name row for {day_type}")

    def header(i: int) -> list[str]:
        return [c or "" for c in rows[i]] if 0 <= i < len(rows) else []

    data_rows: list[list[str]] = []
    end = stop_name_idx + 1
    for i in range(stop_name_idx + 2, len(rows)):
        row = rows[i]
        if SECTION_END_LABEL in _lower_cells(row):
            end = i
            break
        if detect_day_type(row):
            end = i - 1
            break
        data_rows.append([c or "" for c in row])
        end = i

    event_row = header(stop_name_idx - 1)
    stop_name_row = header(stop_name_idx)
    stop_id_row = header(stop_name_idx + 1)
    section = DaySection(
        day_type=day_type or "",
        route_name=route_name,
        event_row=event_row,
        stop_name_row=stop_name_row,
        stop_id_row=stop_id_row,
        data_rows=data_rows,
        columns=build_column_descriptors(event_row, stop_name_row, stop_id_row),
    )
    return section, end


def collect_day_sections(rows: Rows) -> list[DaySection]:
    """Split the export into day-type sections, top to bottom."""
    sections: list[DaySection] = []
    idx = 0
    while idx < len(rows):
        if not detect_day_type(rows[idx]):
            idx += 1
            continue
        section, end = _build_day_section(rows, idx)
        sections.append(section)
        idx = end + 1
    return sections


def _trip_duration(
    arrivals: dict[str, str],
    departures: dict[str, str],
    first_id: Optional[str],
    last_id: Optional[str],
) -> int:
    if not first_id or not last_id:
        return 0
    start = departures.get(first_id) or arrivals.get(first_id)
    end = arrivals.get(last_id) or departures.get(last_id)
    start_min = hhmm_to_minutes(start)
    end_min = hhmm_to_minutes(end)
    if start_min is None or end_min is None:
        return 0
    duration = end_min - start_min
    if duration < 0:
        duration += MINUTES_PER_DAY
    return duration


def parse_trip_row(
    row: Sequence[str],
    columns: Sequence[ColumnDescriptor],
    time_points: Sequence[TimePoint],
    trip_index: int,
    day_type: str,
) -> Optional[Trip]:
    """Turn one data row into a :class:`Trip`.

    Arrivals keep the ARRIVE time, or the first plain TIME at a stop.
    Departures keep the last DEPART or TIME. The first and last time seen
    at each stop are tracked separately for loop handling.

    Args:
        row: Cells of the data row.
        columns: Column descriptors of the section.
        time_points: Route timepoints from the primary section.
        trip_index: Zero-based position of the trip within its day.
        day_type: ``weekday``, ``saturday`` or ``sunday``.

    Returns:
        The trip, or None when the row holds no readable time.
    """
    arrivals: dict[str, str] = {}
    departures: dict[str, str] = {}
    recovery: dict[str, int] = {}
    first_seen_at: dict[str, str] = {}
    last_seen_at: dict[str, str] = {}
    has_time = False

    for c in columns:
        value = _cell(row, c.column_index)
        if not value:
            continue

        if c.role in ("ARRIVE", "DEPART", "TIME"):
            if not c.stop_id:
                continue
            normalized = to_24_hour(value)
            if not normalized:
                continue
            has_time = True
            first_seen_at.setdefault(c.stop_id, normalized)
            last_seen_at[c.stop_id] = normalized
            if c.role == "ARRIVE" or (c.role == "TIME" and c.stop_id not in arrivals):
                arrivals[c.stop_id] = normalized
            if c.role in ("DEPART", "TIME"):
                departures[c.stop_id] = normalized
        elif c.role == "RECOVERY":
            if c.recovery_target and RECOVERY_RE.match(value):
                recovery[c.recovery_target] = round_half_up(float(value))

    if not has_time:
        return None

    first_id = time_points[0].id if time_points else None
    last_id = time_points[-1].id if time_points else None
    # Anchor to the first time seen at the origin; a loop revisit must not move it.
    departure_time = ""
    if first_id:
        departure_time = (
            first_seen_at.get(first_id) or departures.get(first_id) or arrivals.get(first_id) or ""
        )

    block_text = _cell(row, 1)
    period_label = _cell(row, 2)

    return Trip(
        trip_number=trip_index + 1,
        block_number=int(block_text) if NUMERIC_ID_RE.match(block_text) else 1,
        departure_time=departure_time,
        service_band=period_label or f"Quick Adjust {day_type}",
        arrival_times=arrivals,
        departure_times=departures,
        recovery_times=recovery,
        recovery_minutes=sum(recovery.values()),
        original_arrival_times=dict(arrivals),
        original_departure_times=dict(departures),
        original_recovery_times=dict(recovery),
        service_band_info={"name": period_label or "Quick Adjust", "color": SERVICE_BAND_COLOR},
        time_period=period_label or None,
        period_label=period_label,
        trip_duration=_trip_duration(arrivals, departures, first_id, last_id),
        initial_departure_times=first_seen_at,
        final_departure_times=last_seen_at,
    )


def _split_loop_trip(trip: Trip, base_id: str, terminal_id: str) -> Trip:
    arrival = trip.arrival_times.get(base_id, "")
    terminal_departure = (
        trip.final_departure_times.get(base_id) or trip.departure_times.get(base_id) or ""
    )
    initial_departure = trip.initial_departure_times.get(base_id) or terminal_departure
    recovery_value = trip.recovery_times.get(base_id, 0)

    recovery_times = {k: v for k, v in trip.recovery_times.items() if k != base_id}
    recovery_times[terminal_id] = recovery_value

    original_recovery = trip.original_recovery_times
    if original_recovery is not None:
        original_recovery = dict(original_recovery)
        if base_id in original_recovery:
            original_recovery[terminal_id] = original_recovery.pop(base_id)
        elif terminal_id not in original_recovery:
            original_recovery[terminal_id] = recovery_value

    departure_patch = {base_id: initial_departure, terminal_id: terminal_departure}
    return replace(
        trip,
        arrival_times={**trip.arrival_times, terminal_id: arrival},
        departure_times={**trip.departure_times, **departure_patch},
        recovery_times=recovery_times,
        original_arrival_times=(
            {**trip.original_arrival_times, terminal_id: arrival}
            if trip.original_arrival_times is not None
            else None
        ),
        original_departure_times=(
            {**trip.original_departure_times, **departure_patch}
            if trip.original_departure_times is not None
            else None
        ),
        original_recovery_times=original_recovery,
    )


def add_loop_terminal(
    base_id: str,
    time_points: Sequence[TimePoint],
    trips_by_day: dict[str, list[Trip]],
) -> tuple[list[TimePoint], dict[str, list[Trip]]]:
    """Append a ``<base_id>__terminal`` alias timepoint and rewrite every trip.

    Each trip's arrival at the end of the lap moves to the alias, together
    with its recovery. The base stop keeps the first departure of the lap.
    Calling this again once the alias exists changes nothing.

    Args:
        base_id: Stop ID the loop starts and ends at.
        time_points: Current timepoints.
        trips_by_day: Trips keyed by day type.

    Returns:
        Updated ``(time_points, trips_by_day)``.
    """
    base = next((tp for tp in time_points if tp.id == base_id), None)
    if base is None or any(tp.alias_for == base_id for tp in time_points):
        return list(time_points), trips_by_day

    terminal_id = f"{base_id}{LOOP_TERMINAL_SUFFIX}"
    updated = {
        day: [_split_loop_trip(t, base_id, terminal_id) for t in trips]
        for day, trips in trips_by_day.items()
    }
    resequenced = [replace(tp, sequence=i + 1) for i, tp in enumerate(time_points)]
    terminal = TimePoint(
        id=terminal_id, name=base.name, sequence=len(resequenced) + 1, alias_for=base_id
    )
    return resequenced + [terminal], updated


def build_schedule_matrix(trips: Sequence[Trip], time_points: Sequence[TimePoint]) -> list[list[str]]:
    """One row of display times per trip, one column per timepoint."""
    origin_id = time_points[0].id if time_points else None
    matrix = []
    for trip in trips:
        row = []
        for idx, tp in enumerate(time_points):
            arrival = trip.arrival_times.get(tp.id)
            departure = trip.departure_times.get(tp.id)
            if tp.alias_for is not None and tp.alias_for == origin_id:
                row.append(departure or arrival or "")
            elif arrival and departure:
                row.append(departure if idx == 0 else arrival)
            else:
                row.append(arrival or departure or "")
        matrix.append(row)
    return matrix


def compute_operating_hours(
    trips: Sequence[Trip], time_points: Sequence[TimePoint]
) -> Optional[OperatingHours]:
    """Earliest origin departure and latest final arrival for one day."""
    if not trips or not time_points:
        return None
    first_id = time_points[0].id
    last_id = time_points[-1].id

    starts = [
        hhmm_to_minutes(t.departure_times.get(first_id) or t.arrival_times.get(first_id))
        for t in trips
    ]
    ends = [
        hhmm_to_minutes(t.arrival_times.get(last_id) or t.departure_times.get(last_id))
        for t in trips
    ]
    starts = [m for m in starts if m is not None]
    ends = [m for m in ends if m is not None]
    if not starts or not ends:
        return None
    return OperatingHours(start=minutes_to_hhmm(min(starts)), end=minutes_to_hhmm(max(ends)))


def _overall_hours(windows: Sequence[OperatingHours]) -> Optional[OperatingHours]:
    if not windows:
        return None
    starts = [hhmm_to_minutes(w.start) for w in windows]
    ends = [hhmm_to_minutes(w.end) for w in windows]
    return OperatingHours(start=minutes_to_hhmm(min(starts)), end=minutes_to_hhmm(max(ends)))


def parse_quick_adjust_schedule(rows: Rows, route_id: Optional[str] = None) -> QuickAdjustResult:
    """Reconstruct timepoints, trips, blocks and matrices from export rows.

    Args:
        rows: Raw rows, e.g. from :func:`split_csv_content`.
        route_id: Route identifier; a timestamped placeholder is used if empty.

    Returns:
        A :class:`QuickAdjustResult` with per-day trips and the summary schedule.

    Raises:
        ValueError: If no day section exists or a section has no stop-name row.
    """
    sections = collect_day_sections(rows)
    if not sections:
        raise ValueError("No recognizable day sections found in schedule.")

    primary = sections[0]
    time_points = derive_time_points(primary.columns)
    trips_by_day: dict[str, list[Trip]] = {day: [] for day in DAY_TYPES}
    warnings: list[str] = []

    for section in sections:
        if len(derive_time_points(section.columns)) != len(time_points):
            warnings.append(f"Time point mismatch detected for {section.day_type} section.")

        trips: list[Trip] = []
        for row_idx, row in enumerate(section.data_rows):
            trip = parse_trip_row(row, section.columns, time_points, len(trips), section.day_type)
            if trip is not None:
                trips.append(trip)
            elif any(TIME_TEXT_RE.match(cell.strip()) for cell in row):
                warnings.append(
                    f"Row {row_idx + 1} in {section.day_type} section contained times "
                    "but could not be parsed."
                )
        trips_by_day[section.day_type] = compute_blocks_for_trips(trips, time_points)

    loop_base = detect_loop_base_stop(primary.columns)
    if loop_base:
        LOGGER.info("Loop route detected at stop %s", loop_base)
        time_points, trips_by_day = add_loop_terminal(loop_base, time_points, trips_by_day)
    else:
        time_points = [replace(tp, sequence=i + 1) for i, tp in enumerate(time_points)]

    matrices = {day: build_schedule_matrix(trips_by_day[day], time_points) for day in DAY_TYPES}
    daily_hours = {day: compute_operating_hours(trips_by_day[day], time_points) for day in DAY_TYPES}
    overall = _overall_hours([h for h in daily_hours.values() if h is not None])

    metadata: dict[str, Any] = {f"{day}_trips": len(matrices[day]) for day in DAY_TYPES}
    metadata["daily_operating_hours"] = daily_hours
    metadata["operating_hours"] = overall

    summary = SummarySchedule(
        route_id=route_id or f"quick-adjust-{int(time.time() * 1000)}",
        route_name=primary.route_name,
        direction=DEFAULT_DIRECTION,
        time_points=time_points,
        matrices=matrices,
        trip_details=trips_by_day,
        effective_date=datetime.now(),
        metadata=metadata,
    )
    for w in warnings:
        LOGGER.warning(w)

    return QuickAdjustResult(
        route_id=summary.route_id,
        route_name=summary.route_name,
        time_points=time_points,
        trips=trips_by_day,
        summary_schedule=summary,
        warnings=warnings,
    )


def _time_point_label(tp: TimePoint) -> str:
    return f"{tp.id} {tp.name}"


def export_summary_schedule(summary: SummarySchedule, out_path: Path) -> Path:
    """Write a ``Route`` sheet plus one trip sheet per day type."""
    labels = [_time_point_label(tp) for tp in summary.time_points]
    hours = summary.metadata.get("operating_hours")
    route_info = pd.DataFrame(
        [
            ("Route ID", summary.route_id),
            ("Route Name", summary.route_name),
            ("Direction", summary.direction),
            ("Effective Date", summary.effective_date.strftime("%Y-%m-%d")),
            ("Operating Hours", f"{hours.start} - {hours.end}" if hours else ""),
            *[(f"{day.title()} Trips", summary.metadata.get(f"{day}_trips", 0)) for day in DAY_TYPES],
        ],
        columns=["Field", "Value"],
    )

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        route_info.to_excel(writer, sheet_name="Route", index=False)
        for day in DAY_TYPES:
            trips = summary.trip_details.get(day, [])
            matrix = summary.matrices.get(day, [])
            records = [
                {
                    "Trip": trip.trip_number,
                    "Block": trip.block_number,
                    "Period": trip.period_label,
                    **dict(zip(labels, times)),
                    "Recovery (min)": trip.recovery_minutes,
                    "Trip Time (min)": trip.trip_duration,
                }
                for trip, times in zip(trips, matrix)
            ]
            columns = ["Trip", "Block", "Period", *labels, "Recovery (min)", "Trip Time (min)"]
            pd.DataFrame(records, columns=columns).to_excel(writer, sheet_name=day.title(), index=False)
        for ws in writer.sheets.values():
            for col_idx in range(1, ws.max_column + 1):
                ws.column_dimensions[get_column_letter(col_idx)].width = EXCEL_COL_WIDTH
    LOGGER.info("Saved summary schedule → %s", out_path)
    return out_path


# =============================================================================
# MAIN
# =============================================================================


def build_argparser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    p = argparse.ArgumentParser(
        description="Rebuild trips and blocks from a quick-adjust schedule export."
    )
    p.add_argument("-i", "--input", default=str(INPUT_FILE), help="Quick-adjust CSV export.")
    p.add_argument("--route-id", default="", help="Route identifier for the summary.")
    p.add_argument(
        "-o",
        "--output",
        default=None,
        help="Excel workbook to write (default: <OUTPUT_DIR>/<route>_summary.xlsx).",
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

    rows = split_csv_content(input_path.read_text(encoding="utf-8-sig"))
    try:
        result = parse_quick_adjust_schedule(rows, route_id=args.route_id or None)
    except ValueError as exc:
        LOGGER.error("%s", exc)
        return 1

    for day in DAY_TYPES:
        LOGGER.info("%s: %d trips", day, len(result.trips[day]))

    out_path = (
        Path(args.output)
        if args.output
        else OUTPUT_DIR / f"{result.route_id}_summary.xlsx"
    )
    export_summary_schedule(result.summary_schedule, out_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
