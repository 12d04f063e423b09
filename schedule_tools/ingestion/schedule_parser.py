"""Extract timepoints and travel-time edges from a raw schedule grid.

Given a decoded spreadsheet grid and its :class:`DetectedFormat`, the parser
builds:

- one :class:`TimePoint` per detected timepoint column, and
- one :class:`TravelTime` edge per ordered (from, to) pair of adjacent
  timepoints, holding the best (smallest non-zero) observed minutes for each
  day type.

Work is bounded by row, cell, memory and wall-clock budgets. Inputs that are
obviously too large are rejected before any work starts; budgets exceeded
mid-run abort the parse and count against a shared :class:`CircuitBreaker`,
which refuses work for a cool-down window after repeated failures.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, fields
from typing import Any, Callable, Final, Mapping, Optional, Sequence

from schedule_tools.ingestion.format_detector import (
    DAY_TYPES,
    DetectedFormat,
    Grid,
    detect_format,
    normalize_grid,
)
from schedule_tools.utils.text_sanitizer import (
    contains_attack_patterns,
    sanitize_timepoint_name,
)
from schedule_tools.utils.time_helpers import MINUTES_PER_DAY, hhmm_to_minutes, sanitize_time_value

# =============================================================================
# CONFIGURATION
# =============================================================================

MAX_ROWS_TO_PROCESS: Final[int] = 500
MAX_CELLS_TO_PROCESS: Final[int] = 10_000
MAX_MEMORY_USAGE: Final[int] = 50 * 1024 * 1024  # bytes
PROCESSING_TIMEOUT: Final[float] = 30.0  # seconds

BREAKER_MAX_FAILURES: Final[int] = 3
BREAKER_RESET_TIMEOUT: Final[float] = 60.0  # seconds

MAX_TRAVEL_MINUTES: Final[int] = 120
LIMIT_CHECK_INTERVAL: Final[int] = 50  # rows
SIZE_SAMPLE_ROWS: Final[int] = 10
EMPTY_ROW_SCAN_CELLS: Final[int] = 100
CELL_OVERHEAD_BYTES: Final[int] = 64

UNAVAILABLE_MESSAGE: Final[str] = (
    "Parser temporarily unavailable due to previous failures. Please try again later."
)

LOGGER = logging.getLogger(__name__)

# =============================================================================
# EXCEPTIONS
# =============================================================================


class InputTooLargeError(ValueError):
    """Raised before parsing when the grid is outside the size budget."""


class ProcessingLimitError(RuntimeError):
    """Raised mid-parse when a time, memory or cell budget is exceeded."""


class ParserUnavailableError(RuntimeError):
    """Raised when the circuit breaker is open."""


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class TimePoint:
    """A scheduled stop along the route."""

    id: str
    name: str
    sequence: int
    alias_for: Optional[str] = None


@dataclass(frozen=True)
class TravelTime:
    """Best observed minutes between two timepoints; 0 means unobserved."""

    from_time_point: str
    to_time_point: str
    weekday: int = 0
    saturday: int = 0
    sunday: int = 0

    def minutes(self, day_type: str) -> int:
        return getattr(self, day_type)


@dataclass(frozen=True)
class ParseMetadata:
    total_rows: int
    processed_rows: int
    skipped_rows: int
    file_name: Optional[str] = None


@dataclass(frozen=True)
class ParsedScheduleData:
    """Everything the parser produced for one grid."""

    time_points: tuple[TimePoint, ...]
    travel_times: tuple[TravelTime, ...]
    format: DetectedFormat
    metadata: ParseMetadata


@dataclass(frozen=True)
class ParserOptions:
    """Budgets and switches for :class:`ScheduleParser`."""

    max_rows_to_process: int = MAX_ROWS_TO_PROCESS
    max_cells_to_process: int = MAX_CELLS_TO_PROCESS
    max_memory_usage: int = MAX_MEMORY_USAGE
    processing_timeout: float = PROCESSING_TIMEOUT
    enable_circuit_breaker: bool = True
    strict_validation: bool = False
    skip_empty_rows: bool = True

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "ParserOptions":
        """Build options from a plain dict, ignoring keys this class does not know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (mapping or {}).items() if k in known})


# =============================================================================
# RESOURCE GUARDS
# =============================================================================


class CircuitBreaker:
    """Process-wide refusal after repeated parser failures.

    After ``max_failures`` failures the breaker stays open until
    ``reset_timeout`` seconds pass since the last one. A success closes it.
    """

    def __init__(
        self,
        max_failures: int = BREAKER_MAX_FAILURES,
        reset_timeout: float = BREAKER_RESET_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_failures = max_failures
        self.reset_timeout = reset_timeout
        self._clock = clock
        self.failures = 0
        self.last_failure_at: Optional[float] = None

    def can_process(self) -> bool:
        if (
            self.last_failure_at is not None
            and self._clock() - self.last_failure_at > self.reset_timeout
        ):
            self.failures = 0
        return self.failures < self.max_failures

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_at = self._clock()
        LOGGER.warning("Parser failure recorded (%d/%d)", self.failures, self.max_failures)

    def record_success(self) -> None:
        self.failures = 0

    def reset(self) -> None:
        self.failures = 0
        self.last_failure_at = None


class MemoryMonitor:
    """Running estimate of memory held by processed cells.

    The estimate is the text payload of each cell plus a fixed per-cell
    overhead, which keeps the check deterministic across interpreters.
    """

    def __init__(self, max_bytes: int) -> None:
        self.max_bytes = max_bytes
        self.used_bytes = 0

    def add_row(self, row: Sequence[Optional[str]]) -> None:
        self.used_bytes += sum(len(cell or "") + CELL_OVERHEAD_BYTES for cell in row)

    def within_budget(self) -> bool:
        return self.used_bytes < self.max_bytes


# =============================================================================
# HELPERS
# =============================================================================


def is_empty_row(row: Optional[Sequence[Optional[str]]]) -> bool:
    """True when the first 100 cells are all blank or whitespace."""
    if not row:
        return True
    return all(cell is None or not cell.strip() for cell in row[:EMPTY_ROW_SCAN_CELLS])


def clean_timepoint_name(name: Optional[str]) -> str:
    """Sanitise a header label for use as a timepoint name."""
    if not name:
        return "Invalid_TimePoint"
    if contains_attack_patterns(name):
        LOGGER.warning("Suspicious timepoint name replaced: %r", name[:40])
        return "Sanitized_TimePoint"
    return sanitize_timepoint_name(name) or "Empty_TimePoint"


def check_grid_size(grid: Grid, options: ParserOptions) -> None:
    """Reject grids that cannot fit the row or extrapolated cell budget.

    Raises:
        InputTooLargeError: If the grid is not a list of rows or is too large.
    """
    if grid is None or isinstance(grid, (str, bytes)) or not isinstance(grid, Sequence):
        raise InputTooLargeError("Invalid data format")

    total_rows = len(grid)
    if total_rows > options.max_rows_to_process:
        raise InputTooLargeError(
            f"Excel file too large: {total_rows} rows exceeds maximum of "
            f"{options.max_rows_to_process}"
        )

    sample = min(SIZE_SAMPLE_ROWS, total_rows)
    sampled_cells = sum(len(grid[i] or ()) for i in range(sample))
    estimated = total_rows * (sampled_cells / sample) if sample else 0
    if estimated > options.max_cells_to_process:
        raise InputTooLargeError(
            f"Excel file too large: estimated {round(estimated)} cells exceeds maximum of "
            f"{options.max_cells_to_process}"
        )


def _travel_minutes(from_time: str, to_time: str) -> int:
    a = hhmm_to_minutes(from_time)
    b = hhmm_to_minutes(to_time)
    if a is None or b is None:
        return 0
    diff = b - a
    if diff < 0:
        diff += MINUTES_PER_DAY
    return diff


def merge_observation(
    edges: dict[tuple[str, str], dict[str, int]],
    from_id: str,
    to_id: str,
    day_type: str,
    minutes: int,
) -> None:
    """Fold one observation into the edge table, keeping the best case.

    An unobserved (0) slot takes the new value; an observed slot only ever
    shrinks.
    """
    key = (from_id, to_id)
    slots = edges.get(key)
    if slots is None:
        slots = {day: 0 for day in DAY_TYPES}
        slots[day_type] = minutes
        edges[key] = slots
        return
    current = slots[day_type]
    if current == 0 or current > minutes:
        slots[day_type] = minutes


# =============================================================================
# PARSER
# =============================================================================


class ScheduleParser:
    """Turn a raw grid into :class:`ParsedScheduleData` under resource limits."""

    def __init__(
        self,
        options: Optional[ParserOptions] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.options = options or ParserOptions()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self._clock = clock
        self._started_at = 0.0
        self._processed_cells = 0
        self._memory = MemoryMonitor(self.options.max_memory_usage)

    def parse(
        self,
        grid: Grid,
        file_name: Optional[str] = None,
        detected_format: Optional[DetectedFormat] = None,
    ) -> ParsedScheduleData:
        """Parse ``grid`` into timepoints and travel-time edges.

        Args:
            grid: Decoded rows of cells.
            file_name: Carried through to the result metadata.
            detected_format: Layout to use; detected from the grid when omitted.

        Returns:
            The parsed schedule.

        Raises:
            ParserUnavailableError: If the circuit breaker is open.
            InputTooLargeError: If the grid fails the pre-flight size check.
            ProcessingLimitError: If a budget is exceeded while parsing.
            ValueError: If strict validation is on and detection reported errors.
        """
        breaker_on = self.options.enable_circuit_breaker
        if breaker_on and not self.circuit_breaker.can_process():
            raise ParserUnavailableError(UNAVAILABLE_MESSAGE)

        check_grid_size(grid, self.options)

        self._started_at = self._clock()
        self._processed_cells = 0
        self._memory = MemoryMonitor(self.options.max_memory_usage)

        try:
            result = self._parse(normalize_grid(grid), file_name, detected_format)
        except Exception:
            if breaker_on:
                self.circuit_breaker.record_failure()
            raise

        if breaker_on:
            self.circuit_breaker.record_success()
        return result

    def _parse(
        self,
        rows: list[list[Optional[str]]],
        file_name: Optional[str],
        detected_format: Optional[DetectedFormat],
    ) -> ParsedScheduleData:
        fmt = detected_format or detect_format(rows)
        if fmt.errors and self.options.strict_validation:
            raise ValueError(f"Format detection failed: {', '.join(fmt.errors)}")

        time_points = self._extract_time_points(fmt)
        self._check_limits()

        edges: dict[tuple[str, str], dict[str, int]] = {}
        processed = 0
        skipped = 0
        if fmt.data_start_row >= 0:
            stop = min(fmt.data_start_row + self.options.max_rows_to_process, len(rows))
            for r in range(fmt.data_start_row, stop):
                if r % LIMIT_CHECK_INTERVAL == 0:
                    self._check_limits()
                row = rows[r]
                if is_empty_row(row):
                    if not self.options.skip_empty_rows:
                        skipped += 1
                    continue

                self._processed_cells += len(row)
                self._memory.add_row(row)
                processed += 1
                if not self._collect_row_edges(row, fmt, edges):
                    skipped += 1

        travel_times = tuple(
            TravelTime(from_id, to_id, **slots) for (from_id, to_id), slots in edges.items()
        )
        LOGGER.info(
            "Parsed %d timepoint(s) and %d travel-time edge(s) from %d row(s)",
            len(time_points),
            len(travel_times),
            processed,
        )
        return ParsedScheduleData(
            time_points=tuple(time_points),
            travel_times=travel_times,
            format=fmt,
            metadata=ParseMetadata(
                total_rows=len(rows),
                processed_rows=processed,
                skipped_rows=skipped,
                file_name=file_name,
            ),
        )

    def _extract_time_points(self, fmt: DetectedFormat) -> list[TimePoint]:
        points = []
        for i, col in enumerate(fmt.time_point_columns):
            name = fmt.time_point_names[i] if i < len(fmt.time_point_names) else ""
            name = name or f"TimePoint_{col + 1}"
            points.append(TimePoint(id=f"tp_{col}", name=clean_timepoint_name(name), sequence=i))
        return points

    def _collect_row_edges(
        self,
        row: Sequence[Optional[str]],
        fmt: DetectedFormat,
        edges: dict[tuple[str, str], dict[str, int]],
    ) -> bool:
        """Merge the row's adjacent-timepoint travel times; True if any were usable."""
        if len(fmt.time_point_columns) < 2:
            return False

        stamps = [
            (f"tp_{col}", sanitize_time_value(row[col] if col < len(row) else None), col)
            for col in fmt.time_point_columns
        ]
        used = False
        for (from_id, from_time, col), (to_id, to_time, _) in zip(stamps, stamps[1:]):
            if not from_time or not to_time:
                continue
            minutes = _travel_minutes(from_time, to_time)
            if 0 < minutes <= MAX_TRAVEL_MINUTES:
                merge_observation(edges, from_id, to_id, fmt.day_type_for_column(col), minutes)
                used = True
        return used

    def _check_limits(self) -> None:
        elapsed = self._clock() - self._started_at
        if elapsed > self.options.processing_timeout:
            raise ProcessingLimitError("Processing timeout exceeded. File may be too complex.")
        if not self._memory.within_budget():
            raise ProcessingLimitError("Memory usage limit exceeded during processing.")
        if self._processed_cells > self.options.max_cells_to_process:
            raise ProcessingLimitError(
                f"Processed cell limit exceeded: {self._processed_cells} cells"
            )
