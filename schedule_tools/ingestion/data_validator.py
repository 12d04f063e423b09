"""Structural checks over a parsed schedule.

Issues are reported, never raised. Each carries a stable ``code`` so callers
can filter on it, and a severity: ``CRITICAL``/``ERROR`` issues make the
result invalid, ``WARNING``/``INFO`` ones are advisory.

Codes
-----
Errors: INSUFFICIENT_TIMEPOINTS, NO_TRAVEL_TIMES (both CRITICAL),
DUPLICATE_TIMEPOINT_NAMES, INVALID_TIMEPOINT_NAMES, INVALID_TRAVEL_TIMES,
DUPLICATE_TRAVEL_TIMES, ORPHANED_CONNECTIONS, FORMAT_ERROR.

Warnings: TOO_MANY_TIMEPOINTS, SEQUENCE_ISSUES, ZERO_TRAVEL_TIMES,
MISSING_CONNECTIONS, ISOLATED_TIMEPOINTS, LOW_DAY_COVERAGE, HIGH_SKIP_RATE,
LOW_FORMAT_CONFIDENCE.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, fields
from typing import Any, Final, Literal, Mapping, Optional, Sequence

from schedule_tools.ingestion.format_detector import DAY_TYPES, DetectedFormat
from schedule_tools.ingestion.schedule_parser import ParsedScheduleData, TimePoint, TravelTime

# =============================================================================
# CONFIGURATION
# =============================================================================

MINIMUM_TIME_POINTS: Final[int] = 2
MAXIMUM_TIME_POINTS: Final[int] = 15
MIN_TRAVEL_TIME: Final[int] = 0
MAX_TRAVEL_TIME: Final[int] = 120

LOW_DAY_COVERAGE_THRESHOLD: Final[float] = 0.5  # share of edges with data
HIGH_SKIP_RATE_THRESHOLD: Final[float] = 0.5  # skipped / total rows
LOW_CONFIDENCE_THRESHOLD: Final[int] = 70

LOGGER = logging.getLogger(__name__)

Severity = Literal["CRITICAL", "ERROR", "WARNING", "INFO"]
BLOCKING_SEVERITIES: Final[frozenset[str]] = frozenset({"CRITICAL", "ERROR"})

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class ValidationOptions:
    minimum_time_points: int = MINIMUM_TIME_POINTS
    maximum_time_points: int = MAXIMUM_TIME_POINTS
    min_travel_time: int = MIN_TRAVEL_TIME
    max_travel_time: int = MAX_TRAVEL_TIME
    allow_duplicates: bool = False
    require_all_connections: bool = False
    strict_time_validation: bool = False
    low_day_coverage_threshold: float = LOW_DAY_COVERAGE_THRESHOLD
    high_skip_rate_threshold: float = HIGH_SKIP_RATE_THRESHOLD
    low_confidence_threshold: int = LOW_CONFIDENCE_THRESHOLD

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "ValidationOptions":
        """Build options from a plain dict, ignoring keys this class does not know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (mapping or {}).items() if k in known})


@dataclass(frozen=True)
class ValidationIssue:
    severity: Severity
    code: str
    message: str
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationStatistics:
    total_time_points: int
    total_travel_times: int
    average_travel_time: float
    min_travel_time: int
    max_travel_time: int
    missing_connections: int
    duplicate_connections: int
    day_type_coverage: Mapping[str, int]


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: tuple[ValidationIssue, ...]
    warnings: tuple[ValidationIssue, ...]
    statistics: ValidationStatistics

    def codes(self) -> set[str]:
        """All issue codes present, errors and warnings alike."""
        return {issue.code for issue in (*self.errors, *self.warnings)}


# =============================================================================
# HELPERS
# =============================================================================


def _observed(tt: TravelTime) -> list[int]:
    return [tt.minutes(day) for day in DAY_TYPES if tt.minutes(day) > 0]


def find_duplicate_travel_times(travel_times: Sequence[TravelTime]) -> list[TravelTime]:
    """Every edge after the first for an ordered (from, to) pair."""
    seen: set[tuple[str, str]] = set()
    duplicates = []
    for tt in travel_times:
        key = (tt.from_time_point, tt.to_time_point)
        if key in seen:
            duplicates.append(tt)
        else:
            seen.add(key)
    return duplicates


def find_missing_connections(
    time_points: Sequence[TimePoint], travel_times: Sequence[TravelTime]
) -> list[str]:
    """Consecutive timepoint pairs that have no edge, as ``from->to`` keys."""
    existing = {(tt.from_time_point, tt.to_time_point) for tt in travel_times}
    return [
        f"{a.id}->{b.id}"
        for a, b in zip(time_points, time_points[1:])
        if (a.id, b.id) not in existing
    ]


def compute_statistics(data: ParsedScheduleData) -> ValidationStatistics:
    values = [v for tt in data.travel_times for v in _observed(tt)]
    coverage = {day: sum(1 for tt in data.travel_times if tt.minutes(day) > 0) for day in DAY_TYPES}
    return ValidationStatistics(
        total_time_points=len(data.time_points),
        total_travel_times=len(data.travel_times),
        average_travel_time=sum(values) / len(values) if values else 0.0,
        min_travel_time=min(values) if values else 0,
        max_travel_time=max(values) if values else 0,
        missing_connections=len(find_missing_connections(data.time_points, data.travel_times)),
        duplicate_connections=len(find_duplicate_travel_times(data.travel_times)),
        day_type_coverage=coverage,
    )


# =============================================================================
# VALIDATOR
# =============================================================================


class DataValidator:
    """Stateless checker; calling :meth:`validate` twice gives equal results."""

    def __init__(self, options: Optional[ValidationOptions] = None) -> None:
        self.options = options or ValidationOptions()

    def validate(self, data: ParsedScheduleData) -> ValidationResult:
        issues: list[ValidationIssue] = []
        issues += self._check_time_points(data.time_points)
        issues += self._check_travel_times(data.travel_times)
        issues += self._check_connectivity(data.time_points, data.travel_times)
        issues += self._check_consistency(data)
        issues += self._check_format(data.format)

        errors = tuple(i for i in issues if i.severity in BLOCKING_SEVERITIES)
        warnings = tuple(i for i in issues if i.severity not in BLOCKING_SEVERITIES)
        for issue in errors:
            LOGGER.debug("Validation %s [%s]: %s", issue.severity, issue.code, issue.message)

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            statistics=compute_statistics(data),
        )

    # -- timepoints -----------------------------------------------------------

    def _check_time_points(self, time_points: Sequence[TimePoint]) -> list[ValidationIssue]:
        opts = self.options
        issues = []
        n = len(time_points)
        if n < opts.minimum_time_points:
            issues.append(
                ValidationIssue(
                    "CRITICAL",
                    "INSUFFICIENT_TIMEPOINTS",
                    f"Found {n} time points, minimum required is {opts.minimum_time_points}",
                    {"found": n, "required": opts.minimum_time_points},
                )
            )
        if n > opts.maximum_time_points:
            issues.append(
                ValidationIssue(
                    "WARNING",
                    "TOO_MANY_TIMEPOINTS",
                    f"Found {n} time points, which may be excessive",
                    {"found": n, "recommended": opts.maximum_time_points},
                )
            )

        name_counts = Counter(tp.name for tp in time_points)
        duplicates = [name for name, count in name_counts.items() if count > 1]
        if duplicates:
            issues.append(
                ValidationIssue(
                    "ERROR",
                    "DUPLICATE_TIMEPOINT_NAMES",
                    f"Duplicate time point names found: {', '.join(duplicates)}",
                    {"duplicates": duplicates},
                )
            )

        unnamed = [tp.id for tp in time_points if not tp.name or not tp.name.strip()]
        if unnamed:
            issues.append(
                ValidationIssue(
                    "ERROR",
                    "INVALID_TIMEPOINT_NAMES",
                    f"{len(unnamed)} time points have invalid or empty names",
                    {"invalid": unnamed},
                )
            )

        sequence_issues = []
        sequences = sorted(tp.sequence for tp in time_points)
        for a, b in zip(sequences, sequences[1:]):
            if a == b:
                sequence_issues.append(f"Duplicate sequence number: {a}")
        if sequences and sequences[0] not in (0, 1):
            sequence_issues.append("Sequence does not start at 0 or 1")
        if sequence_issues:
            issues.append(
                ValidationIssue(
                    "WARNING",
                    "SEQUENCE_ISSUES",
                    "Time point sequence may have issues",
                    {"issues": sequence_issues},
                )
            )
        return issues

    # -- travel times ---------------------------------------------------------

    def _out_of_range(self, tt: TravelTime) -> bool:
        opts = self.options
        values = (
            [tt.minutes(day) for day in DAY_TYPES]
            if opts.strict_time_validation
            else _observed(tt)
        )
        return any(v < opts.min_travel_time or v > opts.max_travel_time for v in values)

    def _check_travel_times(self, travel_times: Sequence[TravelTime]) -> list[ValidationIssue]:
        opts = self.options
        if not travel_times:
            return [
                ValidationIssue("CRITICAL", "NO_TRAVEL_TIMES", "No travel times found in the data")
            ]

        issues = []
        invalid = [tt for tt in travel_times if self._out_of_range(tt)]
        if invalid:
            issues.append(
                ValidationIssue(
                    "ERROR",
                    "INVALID_TRAVEL_TIMES",
                    f"{len(invalid)} travel times are outside valid range "
                    f"({opts.min_travel_time}-{opts.max_travel_time} minutes)",
                    {
                        "count": len(invalid),
                        "range": {"min": opts.min_travel_time, "max": opts.max_travel_time},
                    },
                )
            )

        zero = [tt for tt in travel_times if any(tt.minutes(day) == 0 for day in DAY_TYPES)]
        if zero:
            issues.append(
                ValidationIssue(
                    "WARNING",
                    "ZERO_TRAVEL_TIMES",
                    f"{len(zero)} travel time entries are missing data for at least one day type",
                    {"count": len(zero)},
                )
            )

        if not opts.allow_duplicates:
            duplicates = find_duplicate_travel_times(travel_times)
            if duplicates:
                issues.append(
                    ValidationIssue(
                        "ERROR",
                        "DUPLICATE_TRAVEL_TIMES",
                        f"{len(duplicates)} duplicate travel time entries found",
                        {
                            "duplicates": [
                                f"{d.from_time_point} -> {d.to_time_point}" for d in duplicates
                            ]
                        },
                    )
                )
        return issues

    # -- connectivity ---------------------------------------------------------

    def _check_connectivity(
        self, time_points: Sequence[TimePoint], travel_times: Sequence[TravelTime]
    ) -> list[ValidationIssue]:
        issues = []
        ids = {tp.id for tp in time_points}
        orphaned = [
            tt
            for tt in travel_times
            if tt.from_time_point not in ids or tt.to_time_point not in ids
        ]
        if orphaned:
            issues.append(
                ValidationIssue(
                    "ERROR",
                    "ORPHANED_CONNECTIONS",
                    f"{len(orphaned)} travel times reference non-existent time points",
                    {"count": len(orphaned)},
                )
            )

        if self.options.require_all_connections:
            missing = find_missing_connections(time_points, travel_times)
            if missing:
                issues.append(
                    ValidationIssue(
                        "WARNING",
                        "MISSING_CONNECTIONS",
                        f"{len(missing)} expected connections are missing",
                        {"missing": missing},
                    )
                )

        connected = {tt.from_time_point for tt in travel_times} | {
            tt.to_time_point for tt in travel_times
        }
        isolated = [tp.name for tp in time_points if tp.id not in connected]
        if isolated:
            issues.append(
                ValidationIssue(
                    "WARNING",
                    "ISOLATED_TIMEPOINTS",
                    f"{len(isolated)} time points have no connections",
                    {"isolated": isolated},
                )
            )
        return issues

    # -- coverage and row accounting -----------------------------------------

    def _check_consistency(self, data: ParsedScheduleData) -> list[ValidationIssue]:
        opts = self.options
        issues = []
        total = len(data.travel_times)
        if total:
            for day in DAY_TYPES:
                covered = sum(1 for tt in data.travel_times if tt.minutes(day) > 0)
                share = covered / total
                if share < opts.low_day_coverage_threshold:
                    issues.append(
                        ValidationIssue(
                            "WARNING",
                            "LOW_DAY_COVERAGE",
                            f"Low {day} coverage: {share * 100:.1f}% of connections have data",
                            {"day_type": day, "coverage": share * 100, "connections": covered},
                        )
                    )

        meta = data.metadata
        if meta.total_rows:
            rate = meta.skipped_rows / meta.total_rows
            if rate > opts.high_skip_rate_threshold:
                issues.append(
                    ValidationIssue(
                        "WARNING",
                        "HIGH_SKIP_RATE",
                        f"High number of skipped rows: {meta.skipped_rows} out of "
                        f"{meta.total_rows}",
                        {
                            "skipped": meta.skipped_rows,
                            "total": meta.total_rows,
                            "percentage": rate * 100,
                        },
                    )
                )
        return issues

    # -- detector diagnostics -------------------------------------------------

    def _check_format(self, fmt: DetectedFormat) -> list[ValidationIssue]:
        issues = []
        if fmt.confidence < self.options.low_confidence_threshold:
            issues.append(
                ValidationIssue(
                    "WARNING",
                    "LOW_FORMAT_CONFIDENCE",
                    f"Format detection confidence is low: {fmt.confidence}%",
                    {"confidence": fmt.confidence},
                )
            )
        for error in fmt.errors:
            issues.append(
                ValidationIssue(
                    "ERROR", "FORMAT_ERROR", f"Format error: {error}", {"format_error": error}
                )
            )
        return issues


def validate_schedule(
    data: ParsedScheduleData, options: Optional[ValidationOptions] = None
) -> ValidationResult:
    """Module-level shortcut for :meth:`DataValidator.validate`."""
    return DataValidator(options).validate(data)
