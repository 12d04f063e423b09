"""Group time periods into service bands by median trip duration.

Bands
-----
0. Off-Peak          (median <= 25th percentile)
1. Light Traffic     (<= 50th percentile)
2. Heavy Traffic     (<= 75th percentile)
3. Congested         (> 75th percentile)
4. Peak Congestion   (longest run of consecutive periods at or above the
                      75th percentile, at least two long)

Percentiles are index-picked from the sorted non-excluded medians. When the
25th and 75th percentile coincide there is no spread to split on and every
period lands in Light Traffic.

Review state (:class:`BandReviewState`) records what a planner decided:

- *removed* periods drop out of every calculation;
- *kept* periods stay in and are no longer offered as outliers;
- *manual assignments* pin a period to a band, overriding both the
  percentile rule and the peak-run rule.

Outputs: per-period band table (pandas), a bar chart (matplotlib) and an
Excel workbook with the band summary.
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Iterable, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from openpyxl.utils import get_column_letter

from schedule_tools.ingestion.route_detector import detect_from_segments
from schedule_tools.service_bands.trip_duration_analyzer import (
    OutlierInfo,
    TimePeriodDuration,
    TimeSegment,
    analyze_trip_duration,
    detect_iqr_outliers,
    detect_neighbor_outliers,
    load_runtime_csv,
    segments_from_runtime_data,
)
from schedule_tools.utils.logging_helper import setup_logging
from schedule_tools.utils.time_helpers import hhmm_to_minutes, round_half_up

# =============================================================================
# CONFIGURATION
# =============================================================================

INPUT_FILE: Path = Path(r"Path\To\Your\Raw_Data.csv")
OUTPUT_DIR: Path = Path(r"Path\To\Your\Output_Folder")

# (name, fill colour, text colour)
BAND_DEFINITIONS: Final[tuple[tuple[str, str, str], ...]] = (
    ("Off-Peak", "rgba(76, 175, 80, 0.3)", "#388E3C"),
    ("Light Traffic", "rgba(33, 150, 243, 0.3)", "#1976D2"),
    ("Heavy Traffic", "rgba(255, 193, 7, 0.3)", "#F57C00"),
    ("Congested", "rgba(255, 152, 0, 0.3)", "#E65100"),
    ("Peak Congestion", "rgba(156, 39, 176, 0.4)", "#7B1FA2"),
)
LIGHT_TRAFFIC: Final[int] = 1
PEAK_CONGESTION: Final[int] = 4
MIN_PEAK_RUN: Final[int] = 2

# Time-of-day service bands spread over five equal percentile slices
SCHEDULE_BAND_NAMES: Final[tuple[str, ...]] = (
    "Fastest Service",
    "Fast Service",
    "Standard Service",
    "Slow Service",
    "Slowest Service",
)
SCHEDULE_BAND_COLORS: Final[tuple[str, ...]] = (
    "#4CAF50",
    "#8BC34A",
    "#FFC107",
    "#FF9800",
    "#F44336",
)

EXCEL_COL_WIDTH: Final[int] = 18

_RGBA_RE: Final[re.Pattern[str]] = re.compile(
    r"rgba\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*,\s*([\d.]+)\s*\)"
)

LOGGER = logging.getLogger(__name__)

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class TimeBand:
    name: str
    start_index: int
    end_index: int
    avg_duration: float
    color: str
    text_color: str


@dataclass(frozen=True)
class TimeBandResult:
    """Band summary plus the period indices that belong to each band."""

    bands: tuple[TimeBand, ...]
    time_groups: tuple[tuple[int, ...], ...]
    outliers: tuple[OutlierInfo, ...] = ()
    total_excluded: int = 0
    outlier_count: int = 0
    total_periods: int = 0
    outlier_percentage: int = 0

    def band_of(self, index: int) -> Optional[int]:
        """Band index holding period ``index``, or None if it is excluded."""
        for band_idx, group in enumerate(self.time_groups):
            if index in group:
                return band_idx
        return None


@dataclass
class BandReviewState:
    """Planner decisions applied on top of the automatic banding."""

    excluded_indices: set[int] = field(default_factory=set)
    kept_indices: set[int] = field(default_factory=set)
    manual_assignments: dict[int, int] = field(default_factory=dict)

    def remove(self, index: int) -> None:
        """Drop a period from all band calculations."""
        self.excluded_indices.add(index)
        self.kept_indices.discard(index)
        self.manual_assignments.pop(index, None)

    def keep(self, index: int) -> None:
        """Acknowledge an outlier; it stays in the band math."""
        self.kept_indices.add(index)

    def assign(self, index: int, band_index: int) -> None:
        if not 0 <= band_index < len(BAND_DEFINITIONS):
            raise ValueError(f"Band index must be 0-{len(BAND_DEFINITIONS) - 1}, got {band_index}")
        self.manual_assignments[index] = band_index

    def reset_assignments(self) -> None:
        self.manual_assignments.clear()

    def pending_outliers(self, outliers: Iterable[OutlierInfo]) -> list[OutlierInfo]:
        """Outliers the planner has neither removed nor kept."""
        return [
            o
            for o in outliers
            if o.index not in self.excluded_indices and o.index not in self.kept_indices
        ]


@dataclass(frozen=True)
class ServiceBandAverage:
    band_name: str
    avg_duration: float
    time_periods: tuple[str, ...]
    time_point_durations: dict[str, int]
    color: str
    text_color: str


@dataclass(frozen=True)
class ScheduleServiceBand:
    """A time-of-day window that shares one travel-time profile."""

    id: str
    name: str
    start_time: str
    end_time: str
    color: str
    description: str = ""


# =============================================================================
# BAND ASSIGNMENT
# =============================================================================


def _empty_bands() -> list[dict]:
    return [
        {
            "name": name,
            "start_index": -1,
            "end_index": -1,
            "avg_duration": 0.0,
            "color": color,
            "text_color": text_color,
        }
        for name, color, text_color in BAND_DEFINITIONS
    ]


def _index_percentile(sorted_values: np.ndarray, q: float) -> float:
    return float(sorted_values[int(np.floor(len(sorted_values) * q))])


def _longest_consecutive_run(indices: Sequence[int]) -> list[int]:
    longest: list[int] = []
    current: list[int] = []
    for idx in indices:
        if current and idx == current[-1] + 1:
            current.append(idx)
        else:
            if len(current) > len(longest):
                longest = current
            current = [idx]
    if len(current) > len(longest):
        longest = current
    return longest


def calculate_time_bands(
    periods: Sequence[TimePeriodDuration], state: Optional[BandReviewState] = None
) -> TimeBandResult:
    """Assign every non-excluded period to one of the five bands.

    Args:
        periods: Per-period durations in display order.
        state: Planner decisions; an empty state when omitted.

    Returns:
        Bands, per-band period indices (original positions) and the IQR
        outliers among the non-excluded periods.
    """
    state = state or BandReviewState()
    manual = state.manual_assignments
    active = [(i, p.duration.p50) for i, p in enumerate(periods) if i not in state.excluded_indices]
    groups: list[list[int]] = [[] for _ in BAND_DEFINITIONS]
    bands = _empty_bands()

    if not active:
        return TimeBandResult(
            bands=tuple(TimeBand(**b) for b in bands),
            time_groups=tuple(tuple(g) for g in groups),
            total_excluded=len(state.excluded_indices),
        )

    ordered = np.sort(np.array([d for _, d in active], dtype=float))
    p25 = _index_percentile(ordered, 0.25)
    p50 = _index_percentile(ordered, 0.50)
    p75 = _index_percentile(ordered, 0.75)
    no_spread = p25 == p75

    for idx, duration in active:
        if idx in manual:
            groups[manual[idx]].append(idx)
        elif no_spread:
            groups[LIGHT_TRAFFIC].append(idx)
        elif duration <= p25:
            groups[0].append(idx)
        elif duration <= p50:
            groups[1].append(idx)
        elif duration <= p75:
            groups[2].append(idx)
        else:
            groups[3].append(idx)

    if not no_spread:
        run = _longest_consecutive_run([idx for idx, d in active if d >= p75])
        if len(run) >= MIN_PEAK_RUN:
            promote = [idx for idx in run if idx not in manual]
            for band_idx in range(PEAK_CONGESTION):
                groups[band_idx] = [i for i in groups[band_idx] if i not in promote]
            groups[PEAK_CONGESTION].extend(promote)

    durations = dict(active)
    for band_idx, group in enumerate(groups):
        group.sort()
        if group:
            values = [durations[i] for i in group]
            bands[band_idx].update(
                start_index=min(group),
                end_index=max(group),
                avg_duration=round_half_up(sum(values) / len(values), 2),
            )

    outliers = detect_iqr_outliers(periods, state.excluded_indices)
    return TimeBandResult(
        bands=tuple(TimeBand(**b) for b in bands),
        time_groups=tuple(tuple(g) for g in groups),
        outliers=tuple(outliers),
        total_excluded=len(state.excluded_indices),
        outlier_count=len(outliers),
        total_periods=len(active),
        outlier_percentage=round_half_up(len(outliers) / len(active) * 100),
    )


def calculate_service_band_averages(
    periods: Sequence[TimePeriodDuration],
    band_result: TimeBandResult,
    segments: Sequence[TimeSegment],
) -> list[ServiceBandAverage]:
    """Average median segment time to each timepoint within each band.

    A segment counts toward a band when its slot start time appears in one of
    the band's period labels. A timepoint with no matching slot falls back to
    the average over all its segments. The band total is the sum of the
    per-timepoint averages.

    Returns:
        One entry per non-empty band, fastest first.
    """
    if not periods or not segments:
        return []

    to_locations = list(dict.fromkeys(s.to_location for s in segments))
    averages = []
    for band, group in zip(band_result.bands, band_result.time_groups):
        band_periods = [periods[i].time_period for i in group if i < len(periods)]
        if not band_periods:
            continue

        per_point: dict[str, int] = {}
        for location in to_locations:
            to_here = [s for s in segments if s.to_location == location]
            relevant = [
                s
                for s in to_here
                if any(s.time_slot.split(" - ")[0] in period for period in band_periods)
            ] or to_here
            per_point[location] = round_half_up(sum(s.p50 for s in relevant) / len(relevant))

        averages.append(
            ServiceBandAverage(
                band_name=band.name,
                avg_duration=sum(per_point.values()),
                time_periods=tuple(band_periods),
                time_point_durations=per_point,
                color=band.color,
                text_color=band.text_color,
            )
        )
    return sorted(averages, key=lambda a: a.avg_duration)


# =============================================================================
# TIME-OF-DAY LOOKUP
# =============================================================================


def _ceil_percentile(sorted_values: Sequence[int], pct: float) -> int:
    index = int(np.ceil(pct / 100 * len(sorted_values))) - 1
    return sorted_values[max(0, index)]


def service_bands_from_segments(segments: Sequence[TimeSegment]) -> list[ScheduleServiceBand]:
    """Split time slots into five service bands by total median travel time.

    Each band covers a 20-percentile slice of the per-slot totals. Its time
    window runs from the earliest slot start to the latest slot end.
    """
    if not segments:
        return []

    totals: dict[str, float] = {}
    for s in segments:
        totals[s.time_slot] = totals.get(s.time_slot, 0.0) + s.p50
    ranked = sorted(
        ((slot, round_half_up(total)) for slot, total in totals.items()), key=lambda x: x[1]
    )
    values = [t for _, t in ranked]

    bands = []
    for i, (name, color) in enumerate(zip(SCHEDULE_BAND_NAMES, SCHEDULE_BAND_COLORS)):
        low = _ceil_percentile(values, i * 20)
        high = _ceil_percentile(values, (i + 1) * 20)
        last = i == len(SCHEDULE_BAND_NAMES) - 1
        members = [slot for slot, t in ranked if t >= low and (t <= high if last else t < high)]
        if not members:
            continue
        starts = sorted(m.split(" - ")[0] for m in members)
        ends = sorted(m.split(" - ")[-1] for m in members)
        bands.append(
            ScheduleServiceBand(
                id=f"band_{i + 1}",
                name=name,
                start_time=starts[0],
                end_time=ends[-1],
                color=color,
                description=f"{len(members)} time periods",
            )
        )
    return bands


def service_band_for_time(
    time_text: str, bands: Sequence[ScheduleServiceBand]
) -> Optional[ScheduleServiceBand]:
    """First band whose window contains ``time_text``.

    Windows whose start is after their end wrap past midnight.
    """
    minutes = hhmm_to_minutes(time_text)
    if minutes is None:
        return None
    for band in bands:
        start = hhmm_to_minutes(band.start_time)
        end = hhmm_to_minutes(band.end_time)
        if start is None or end is None:
            continue
        if start <= end:
            if start <= minutes <= end:
                return band
        elif minutes >= start or minutes <= end:
            return band
    return None


# =============================================================================
# OUTPUTS
# =============================================================================


def bands_to_frame(
    periods: Sequence[TimePeriodDuration],
    result: TimeBandResult,
    state: Optional[BandReviewState] = None,
) -> pd.DataFrame:
    """One row per period with its band, or ``Excluded``."""
    state = state or BandReviewState()
    records = []
    for i, p in enumerate(periods):
        band_idx = result.band_of(i)
        records.append(
            {
                "Index": i,
                "Time Period": p.time_period,
                "Start Time": p.start_time,
                "Median (min)": p.duration.p50,
                "80th Percentile (min)": p.duration.p80,
                "Band": BAND_DEFINITIONS[band_idx][0] if band_idx is not None else "Excluded",
                "Manual": i in state.manual_assignments,
            }
        )
    return pd.DataFrame.from_records(records)


def _rgba(css: str) -> tuple[float, float, float, float]:
    m = _RGBA_RE.match(css)
    if not m:
        raise ValueError(f"Not an rgba() colour: {css}")
    r, g, b, a = m.groups()
    return int(r) / 255, int(g) / 255, int(b) / 255, float(a)


def plot_service_bands(
    periods: Sequence[TimePeriodDuration],
    result: TimeBandResult,
    out_path: Path,
    title: str = "Median trip duration by time of day",
) -> Path:
    """Bar chart of median durations coloured by band.

    Excluded periods are drawn white with a dashed grey outline.
    """
    labels = [p.start_time or p.time_period for p in periods]
    heights = [p.duration.p50 for p in periods]
    fills = []
    edges = []
    styles = []
    for i in range(len(periods)):
        band_idx = result.band_of(i)
        if band_idx is None:
            fills.append((1.0, 1.0, 1.0, 1.0))
            edges.append("#9E9E9E")
            styles.append("--")
        else:
            _, color, text_color = BAND_DEFINITIONS[band_idx]
            fills.append(_rgba(color))
            edges.append(text_color)
            styles.append("-")

    plt.figure(figsize=(max(8, len(periods) * 0.4), 5))
    bars = plt.bar(range(len(periods)), heights, color=fills, edgecolor=edges, linewidth=1.2)
    for bar, style in zip(bars, styles):
        bar.set_linestyle(style)
    handles = [
        plt.Rectangle((0, 0), 1, 1, facecolor=_rgba(c), edgecolor=t) for _, c, t in BAND_DEFINITIONS
    ]
    plt.legend(handles, [n for n, _, _ in BAND_DEFINITIONS], loc="upper left", fontsize="small")
    plt.xticks(range(len(periods)), labels, rotation=90)
    plt.ylabel("Minutes")
    plt.xlabel("Period start")
    plt.title(title)
    plt.tight_layout()

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(out_path, dpi=150)
    plt.close()
    LOGGER.info("Saved band chart → %s", out_path)
    return out_path


def export_band_workbook(
    periods: Sequence[TimePeriodDuration],
    result: TimeBandResult,
    averages: Sequence[ServiceBandAverage],
    out_path: Path,
    state: Optional[BandReviewState] = None,
) -> Path:
    """Write ``Periods`` and ``Band Summary`` sheets to an Excel workbook."""
    summary = pd.DataFrame.from_records(
        [
            {
                "Band": b.name,
                "Periods": len(group),
                "First Index": b.start_index,
                "Last Index": b.end_index,
                "Average Median (min)": b.avg_duration,
            }
            for b, group in zip(result.bands, result.time_groups)
        ]
    )
    point_rows = [
        {"Band": a.band_name, "Trip Total (min)": a.avg_duration, **a.time_point_durations}
        for a in averages
    ]

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        bands_to_frame(periods, result, state).to_excel(writer, sheet_name="Periods", index=False)
        summary.to_excel(writer, sheet_name="Band Summary", index=False)
        if point_rows:
            pd.DataFrame(point_rows).to_excel(writer, sheet_name="Timepoint Averages", index=False)
        for ws in writer.sheets.values():
            for col_idx in range(1, ws.max_column + 1):
                ws.column_dimensions[get_column_letter(col_idx)].width = EXCEL_COL_WIDTH
    LOGGER.info("Saved band workbook → %s", out_path)
    return out_path


# =============================================================================
# MAIN
# =============================================================================


def build_argparser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    p = argparse.ArgumentParser(
        description="Group half-hour periods of a runtime export into service bands."
    )
    p.add_argument("-i", "--input", default=str(INPUT_FILE), help="Raw runtime CSV.")
    p.add_argument("-o", "--outdir", default=str(OUTPUT_DIR), help="Folder for outputs.")
    p.add_argument("--route-id", default="", help="Route identifier for labels.")
    p.add_argument(
        "--exclude",
        nargs="*",
        type=int,
        default=[],
        metavar="INDEX",
        help="Period indices to drop from the band calculation.",
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

    data = load_runtime_csv(input_path, route_id=args.route_id)
    for warning in data.warnings:
        LOGGER.warning(warning)
    segments = segments_from_runtime_data(data)
    if not args.route_id:
        stops = [name for s in segments for name in (s.from_location, s.to_location)]
        route = detect_from_segments(
            [(s.from_location, s.to_location) for s in segments], list(dict.fromkeys(stops))
        )
        LOGGER.info(
            "No --route-id given; detected %r (%s confidence)",
            route.suggested_name,
            route.confidence,
        )
    analysis = analyze_trip_duration(data)
    periods = analysis.duration_by_time_of_day

    state = BandReviewState()
    for idx in args.exclude:
        state.remove(idx)

    for outlier in state.pending_outliers(detect_neighbor_outliers(periods, state.excluded_indices)):
        LOGGER.warning(
            "Possible outlier at %s (%s min): %s",
            outlier.time_period,
            outlier.duration,
            outlier.outlier_reason,
        )

    result = calculate_time_bands(periods, state)
    averages = calculate_service_band_averages(periods, result, segments)

    outdir = Path(args.outdir)
    stem = f"{args.route_id or input_path.stem}_service_bands"
    export_band_workbook(periods, result, averages, outdir / f"{stem}.xlsx", state)
    plot_service_bands(periods, result, outdir / f"{stem}.png")
    return 0


if __name__ == "__main__":
    sys.exit(main())
