import pytest

from schedule_tools.ingestion import data_validator
from schedule_tools.ingestion.format_detector import DetectedFormat
from schedule_tools.ingestion.schedule_parser import (
    ParsedScheduleData,
    ParseMetadata,
    TimePoint,
    TravelTime,
)


def _points(*names: str) -> tuple:
    return tuple(TimePoint(id=f"tp_{i + 1}", name=n, sequence=i) for i, n in enumerate(names))


def _data(
    time_points=None,
    travel_times=None,
    confidence: int = 90,
    errors: tuple = (),
    total_rows: int = 10,
    skipped_rows: int = 0,
) -> ParsedScheduleData:
    if time_points is None:
        time_points = _points("Downtown Terminal", "Main Street", "Hospital")
    if travel_times is None:
        travel_times = (
            TravelTime("tp_1", "tp_2", 10, 12, 14),
            TravelTime("tp_2", "tp_3", 5, 6, 7),
        )
    return ParsedScheduleData(
        time_points=tuple(time_points),
        travel_times=tuple(travel_times),
        format=DetectedFormat(confidence=confidence, errors=errors),
        metadata=ParseMetadata(
            total_rows=total_rows,
            processed_rows=total_rows - skipped_rows,
            skipped_rows=skipped_rows,
        ),
    )


def test_clean_schedule_passes() -> None:
    result = data_validator.validate_schedule(_data())

    assert result.is_valid
    assert result.errors == ()
    assert result.warnings == ()
    stats = result.statistics
    assert stats.total_time_points == 3
    assert stats.total_travel_times == 2
    assert stats.average_travel_time == pytest.approx(9.0)
    assert (stats.min_travel_time, stats.max_travel_time) == (5, 14)
    assert stats.day_type_coverage == {"weekday": 2, "saturday": 2, "sunday": 2}


def test_validation_is_idempotent() -> None:
    data = _data(travel_times=(TravelTime("tp_1", "tp_2", 10, 0, 0),))
    validator = data_validator.DataValidator()

    assert validator.validate(data) == validator.validate(data)


def test_single_timepoint_without_edges_is_critical() -> None:
    result = data_validator.validate_schedule(_data(time_points=_points("Terminal"), travel_times=()))

    assert not result.is_valid
    critical = {e.code for e in result.errors if e.severity == "CRITICAL"}
    assert critical == {"INSUFFICIENT_TIMEPOINTS", "NO_TRAVEL_TIMES"}
    first = next(e for e in result.errors if e.code == "INSUFFICIENT_TIMEPOINTS")
    assert first.message == "Found 1 time points, minimum required is 2"
    assert "ISOLATED_TIMEPOINTS" in result.codes()


def test_duplicate_and_orphaned_edges_are_errors() -> None:
    edges = (
        TravelTime("tp_1", "tp_2", 10, 12, 14),
        TravelTime("tp_1", "tp_2", 11, 12, 14),
        TravelTime("tp_2", "tp_3", 5, 6, 7),
        TravelTime("tp_3", "tp_9", 5, 6, 7),
    )

    result = data_validator.validate_schedule(_data(travel_times=edges))

    codes = {e.code for e in result.errors}
    assert {"DUPLICATE_TRAVEL_TIMES", "ORPHANED_CONNECTIONS"} <= codes
    assert result.statistics.duplicate_connections == 1


def test_duplicates_allowed_by_option() -> None:
    edges = (
        TravelTime("tp_1", "tp_2", 10, 12, 14),
        TravelTime("tp_1", "tp_2", 11, 12, 14),
        TravelTime("tp_2", "tp_3", 5, 6, 7),
    )
    options = data_validator.ValidationOptions(allow_duplicates=True)

    result = data_validator.validate_schedule(_data(travel_times=edges), options)

    assert "DUPLICATE_TRAVEL_TIMES" not in result.codes()


def test_out_of_range_travel_time() -> None:
    edges = (
        TravelTime("tp_1", "tp_2", 150, 12, 14),
        TravelTime("tp_2", "tp_3", 5, 6, 7),
    )

    result = data_validator.validate_schedule(_data(travel_times=edges))

    issue = next(e for e in result.errors if e.code == "INVALID_TRAVEL_TIMES")
    assert issue.message == "1 travel times are outside valid range (0-120 minutes)"


def test_strict_time_validation_includes_unobserved_days() -> None:
    edges = (
        TravelTime("tp_1", "tp_2", 10, 0, 0),
        TravelTime("tp_2", "tp_3", 5, 6, 7),
    )
    lenient = data_validator.ValidationOptions(min_travel_time=1)
    strict = data_validator.ValidationOptions(min_travel_time=1, strict_time_validation=True)

    assert "INVALID_TRAVEL_TIMES" not in data_validator.validate_schedule(
        _data(travel_times=edges), lenient
    ).codes()
    assert "INVALID_TRAVEL_TIMES" in data_validator.validate_schedule(
        _data(travel_times=edges), strict
    ).codes()


def test_weekday_only_data_warns_about_coverage() -> None:
    edges = (
        TravelTime("tp_1", "tp_2", 10, 0, 0),
        TravelTime("tp_2", "tp_3", 5, 0, 0),
    )

    result = data_validator.validate_schedule(_data(travel_times=edges))

    assert result.is_valid
    coverage = [w for w in result.warnings if w.code == "LOW_DAY_COVERAGE"]
    assert [w.details["day_type"] for w in coverage] == ["saturday", "sunday"]
    assert coverage[0].message == "Low saturday coverage: 0.0% of connections have data"
    assert "ZERO_TRAVEL_TIMES" in result.codes()


def test_high_skip_rate() -> None:
    result = data_validator.validate_schedule(_data(total_rows=10, skipped_rows=6))

    issue = next(w for w in result.warnings if w.code == "HIGH_SKIP_RATE")
    assert issue.message == "High number of skipped rows: 6 out of 10"


def test_skip_rate_at_threshold_does_not_warn() -> None:
    result = data_validator.validate_schedule(_data(total_rows=10, skipped_rows=5))

    assert "HIGH_SKIP_RATE" not in result.codes()


def test_format_diagnostics_carry_through() -> None:
    result = data_validator.validate_schedule(_data(confidence=40, errors=("bad header",)))

    assert "LOW_FORMAT_CONFIDENCE" in {w.code for w in result.warnings}
    fmt_error = next(e for e in result.errors if e.code == "FORMAT_ERROR")
    assert fmt_error.message == "Format error: bad header"
    assert not result.is_valid


def test_missing_connections_only_when_required() -> None:
    edges = (TravelTime("tp_1", "tp_2", 10, 12, 14),)
    options = data_validator.ValidationOptions(require_all_connections=True)

    default = data_validator.validate_schedule(_data(travel_times=edges))
    required = data_validator.validate_schedule(_data(travel_times=edges), options)

    assert "MISSING_CONNECTIONS" not in default.codes()
    missing = next(w for w in required.warnings if w.code == "MISSING_CONNECTIONS")
    assert missing.details["missing"] == ["tp_2->tp_3"]
    assert "ISOLATED_TIMEPOINTS" in required.codes()


def test_duplicate_names_and_sequence_issues() -> None:
    points = (
        TimePoint("tp_1", "Terminal", 2),
        TimePoint("tp_2", "Terminal", 2),
        TimePoint("tp_3", "Hospital", 3),
    )

    result = data_validator.validate_schedule(_data(time_points=points))

    assert "DUPLICATE_TIMEPOINT_NAMES" in {e.code for e in result.errors}
    seq = next(w for w in result.warnings if w.code == "SEQUENCE_ISSUES")
    assert seq.details["issues"] == [
        "Duplicate sequence number: 2",
        "Sequence does not start at 0 or 1",
    ]


def test_too_many_timepoints_is_a_warning() -> None:
    names = [f"Stop {i}" for i in range(16)]
    points = _points(*names)
    edges = tuple(
        TravelTime(a.id, b.id, 3, 3, 3) for a, b in zip(points, points[1:])
    )

    result = data_validator.validate_schedule(_data(time_points=points, travel_times=edges))

    assert result.is_valid
    assert "TOO_MANY_TIMEPOINTS" in {w.code for w in result.warnings}
