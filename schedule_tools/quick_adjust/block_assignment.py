"""Trip records and vehicle block assignment for quick-adjust schedules.

A *block* is the chain of trips one vehicle operates. Blocks are built
greedily: trips are visited by start time and each one goes to the vehicle
that has been free the longest, or to a new vehicle when none is free yet.

Each trip's time window runs from its earliest to its latest readable time.
Times that jump backwards by twelve hours or more are read as after-midnight
service and pushed onto the next day.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Final, Iterable, Optional, Sequence

from schedule_tools.ingestion.schedule_parser import TimePoint
from schedule_tools.utils.time_helpers import MINUTES_PER_DAY, hhmm_to_minutes

# =============================================================================
# CONFIGURATION
# =============================================================================

PLACEHOLDER_TIMES: Final[frozenset[str]] = frozenset({"-", "--"})
ROLLOVER_GAP_MINUTES: Final[int] = MINUTES_PER_DAY // 2

LOGGER = logging.getLogger(__name__)

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class Trip:
    """One published trip with per-timepoint times keyed by timepoint id."""

    trip_number: int
    block_number: Optional[int]
    departure_time: str
    service_band: str
    arrival_times: dict[str, str] = field(default_factory=dict)
    departure_times: dict[str, str] = field(default_factory=dict)
    recovery_times: dict[str, int] = field(default_factory=dict)
    recovery_minutes: int = 0
    original_arrival_times: Optional[dict[str, str]] = None
    original_departure_times: Optional[dict[str, str]] = None
    original_recovery_times: Optional[dict[str, int]] = None
    service_band_info: Optional[dict[str, str]] = None
    time_period: Optional[str] = None
    period_label: str = ""
    trip_duration: int = 0
    initial_departure_times: dict[str, str] = field(default_factory=dict)
    final_departure_times: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TripWindow:
    start: int
    end: int


@dataclass
class _Vehicle:
    block: int
    available_at: int


# =============================================================================
# FUNCTIONS
# =============================================================================


def _window_from_times(times: Iterable[Optional[str]]) -> Optional[TripWindow]:
    """Fold a trip's clock times, in travel order, into a start/end window."""
    earliest: Optional[int] = None
    latest: Optional[int] = None
    last_seen: Optional[int] = None

    for value in times:
        if not value:
            continue
        text = value.strip()
        if not text or text in PLACEHOLDER_TIMES:
            continue
        minutes = hhmm_to_minutes(text)
        if minutes is None:
            continue
        if last_seen is not None and minutes < last_seen and last_seen - minutes >= ROLLOVER_GAP_MINUTES:
            while minutes < last_seen:
                minutes += MINUTES_PER_DAY
        earliest = minutes if earliest is None else min(earliest, minutes)
        latest = minutes if latest is None else max(latest, minutes)
        last_seen = minutes

    if earliest is None or latest is None:
        return None
    return TripWindow(start=earliest, end=max(latest, earliest))


def compute_trip_window(trip: Trip, time_points: Sequence[TimePoint]) -> Optional[TripWindow]:
    """Return the minutes a vehicle is busy with ``trip``.

    The published departure is read first. At the origin the departure is
    read before the arrival; elsewhere the arrival comes first.

    Args:
        trip: Trip to measure.
        time_points: Timepoints in route order.

    Returns:
        The window, or None when the trip carries no readable time.
    """
    if not time_points:
        return None

    def ordered() -> Iterable[Optional[str]]:
        yield trip.departure_time
        for idx, tp in enumerate(time_points):
            if idx == 0:
                yield trip.departure_times.get(tp.id)
                yield trip.arrival_times.get(tp.id)
            else:
                yield trip.arrival_times.get(tp.id)
                yield trip.departure_times.get(tp.id)

    return _window_from_times(ordered())


def _assign_blocks(windows: Sequence[TripWindow]) -> list[int]:
    """Greedy earliest-available vehicle assignment, ties kept in input order."""
    order = sorted(range(len(windows)), key=lambda i: (windows[i].start, i))
    fleet: list[_Vehicle] = []
    assigned = [0] * len(windows)

    for idx in order:
        window = windows[idx]
        selected: Optional[_Vehicle] = None
        for vehicle in fleet:
            if vehicle.available_at <= window.start and (
                selected is None or vehicle.available_at < selected.available_at
            ):
                selected = vehicle
        if selected is None:
            selected = _Vehicle(block=len(fleet) + 1, available_at=window.end)
            fleet.append(selected)
        else:
            selected.available_at = max(window.end, window.start)
        assigned[idx] = selected.block

    return assigned


def compute_blocks_for_trips(trips: Sequence[Trip], time_points: Sequence[TimePoint]) -> list[Trip]:
    """Assign block numbers to ``trips`` without mutating them.

    Args:
        trips: Trips of one service day, in any order.
        time_points: Timepoints in route order.

    Returns:
        New trips in the same order with ``block_number`` set. When any trip
        has no readable time the existing block numbers are kept (missing ones
        become 0).
    """
    if not trips:
        return list(trips)

    windows = [compute_trip_window(trip, time_points) for trip in trips]
    if any(w is None for w in windows):
        LOGGER.warning("Unable to compute blocks because some trips lack timing data.")
        return [replace(trip, block_number=trip.block_number or 0) for trip in trips]

    blocks = _assign_blocks(windows)  # type: ignore[arg-type]
    return [replace(trip, block_number=block) for trip, block in zip(trips, blocks)]


def compute_blocks_from_matrix(
    matrix: Sequence[Sequence[str]], time_points: Sequence[TimePoint]
) -> Optional[list[int]]:
    """Block numbers for a bare time matrix (rows = trips, columns = timepoints).

    Returns None if the matrix is empty or any row has no readable time.
    """
    if not matrix or not time_points:
        return None
    windows = [_window_from_times(row) for row in matrix]
    if any(w is None for w in windows):
        return None
    return _assign_blocks(windows)  # type: ignore[arg-type]


def needs_block_recompute(trips: Sequence[Trip]) -> bool:
    """Tell whether the block numbers on ``trips`` look made up.

    Missing or non-positive numbers need recomputing. So do numbers that
    simply count 1, 2, 3... and sets where every trip has its own block,
    both typical of exports that never carried real blocking.
    """
    if not trips:
        return False
    blocks = [t.block_number for t in trips]
    if any(not isinstance(b, int) or isinstance(b, bool) or b <= 0 for b in blocks):
        return True
    monotonic = all(b == i + 1 for i, b in enumerate(blocks))
    all_unique = len(set(blocks)) == len(blocks) and len(blocks) > 1
    return monotonic or all_unique


def reassign_blocks_if_needed(trips: Sequence[Trip], time_points: Sequence[TimePoint]) -> list[Trip]:
    if not needs_block_recompute(trips):
        return list(trips)
    return compute_blocks_for_trips(trips, time_points)
