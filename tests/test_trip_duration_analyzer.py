from pathlib import Path

import pytest

from schedule_tools.service_bands import trip_duration_analyzer as tda

FIXTURE_PATH = Path(__file__).parent / "fixtures" / "runtime_raw.csv"


def _periods(medians) -> list:
    return [
        tda.TimePeriodDuration(
            time_period=f"{7 + i // 2:02d}:{30 * (i % 2):02d} - {7 + i // 2:02d}:{30 * (i % 2) + 29:02d}",
            start_time=f"{7 + i // 2:02d}:{30 * (i % 2):02d}",
            duration=tda.DurationPercentiles(p25=m - 2, p50=m, p80=m + 3, p90=m + 5),
        )
        for i, m in enumerate(medians)
    ]


@pytest.fixture
def runtime_data() -> tda.ParsedTravelTimeData:
    return tda.load_runtime_csv(FIXTURE_PATH, route_id="101", route_name="Crosstown")


def test_load_runtime_csv_segments(runtime_data) -> None:
    assert [s.segment for s in runtime_data.segments] == [
        "Downtown Terminal to Main Street",
        "Main Street to Hospital",
    ]
    first = runtime_data.segments[0]
    assert first.time_periods == [
        "07:00 - 07:29",
        "07:30 - 07:59",
        "08:00 - 08:29",
        "08:30 - 08:59",
    ]
    assert first.p50 == [10.0, 11.5, 12.0, 10.0]
    assert runtime_data.route_id == "101"


def test_analyze_trip_duration_sums_segments(runtime_data) -> None:
    analysis = tda.analyze_trip_duration(runtime_data)

    medians = [p.duration.p50 for p in analysis.duration_by_time_of_day]
    # 11.5 + 16 = 27.5 rounds half up
    assert medians == [25, 28, 30, 10]
    assert [p.start_time for p in analysis.duration_by_time_of_day] == [
        "07:00",
        "07:30",
        "08:00",
        "08:30",
    ]
    assert analysis.summary.min_duration == 10
    assert analysis.summary.max_duration == 30
    assert analysis.summary.avg_duration == 23
    assert analysis.summary.peak_period == "08:00 - 08:29"
    assert analysis.summary.fastest_period == "08:30 - 08:59"


def test_parse_summary_for_clean_export(runtime_data) -> None:
    assert runtime_data.summary == tda.RuntimeParseSummary(
        total_rows=12,
        valid_rows=12,
        skipped_rows=0,
        total_segments=2,
        valid_segments=2,
        time_slots=4,
    )
    assert runtime_data.summary.invalid_segments == 0
    assert runtime_data.warnings == []


def test_parse_skips_and_warns_on_bad_rows() -> None:
    rows = [
        ["Observed Runtime-50%", "9", "9"],
        ["Title", "Downtown Terminal to Mall"],
        ["Half-Hour", "07:00 - 07:29", "07:30 - 07:59"],
        ["", "", ""],
        ["Observed Runtime-50%", "10", "n/a"],
        ["Observed Runtime-75%", "11", "12"],
        ["Export generated 2024-05-01"],
        ["Title", "Garage"],
        ["Half-Hour", "07:00 - 07:29", "07:30 - 07:59"],
    ]

    data = tda.parse_runtime_rows(rows)

    assert data.segments[0].p50 == [10.0, 0.0]
    assert data.warnings == [
        "Row 1: runtime values before any Title row were ignored",
        "Row 5: non-numeric runtime 'n/a' read as 0",
        "Row 6: unsupported percentile row 'Observed Runtime-75%' ignored",
        "Row 8: segment title 'Garage' is not '<from> to <to>'",
    ]
    assert data.summary.total_rows == 8
    assert data.summary.skipped_rows == 3
    assert data.summary.valid_rows == 5
    assert (data.summary.total_segments, data.summary.valid_segments) == (2, 1)
    assert data.summary.time_slots == 2


def test_analyze_without_segments_raises() -> None:
    with pytest.raises(ValueError, match="No travel time segments found"):
        tda.analyze_trip_duration(tda.ParsedTravelTimeData(segments=[]))


def test_segments_drop_all_zero_slots(runtime_data) -> None:
    segments = tda.segments_from_runtime_data(runtime_data)

    assert len(segments) == 7
    assert segments[0].from_location == "Downtown Terminal"
    assert segments[0].to_location == "Main Street"
    assert all(s.p50 > 0 for s in segments)


def test_table_data(runtime_data) -> None:
    headers, rows = tda.to_table_data(tda.analyze_trip_duration(runtime_data))

    assert headers[0] == "Time Period"
    assert rows[1] == ["07:30 - 07:59", "25", "28", "31", "33"]


def test_neighbor_rule_flags_long_extreme() -> None:
    outliers = tda.detect_neighbor_outliers(_periods([10, 10, 10, 15]))

    assert len(outliers) == 1
    flagged = outliers[0]
    assert flagged.index == 3
    assert flagged.outlier_reason == "50.0% longer than next highest trip"
    assert flagged.comparison_duration == 10
    assert flagged.percentage_diff == 50.0
    assert flagged.deviation_from_median == 5
    assert flagged.percentile_rank == 100


def test_neighbor_rule_ignores_small_gap() -> None:
    assert tda.detect_neighbor_outliers(_periods([10, 10, 10, 10.5])) == []


def test_neighbor_rule_flags_short_extreme(runtime_data) -> None:
    periods = tda.analyze_trip_duration(runtime_data).duration_by_time_of_day

    outliers = tda.detect_neighbor_outliers(periods)

    assert [o.index for o in outliers] == [3]
    assert outliers[0].outlier_reason == "60.0% shorter than next lowest trip"


def test_neighbor_rule_needs_three_active_periods() -> None:
    periods = _periods([10, 10, 10, 15])

    assert tda.detect_neighbor_outliers(periods[:2]) == []
    # Excluding the long period leaves nothing unusual
    assert tda.detect_neighbor_outliers(periods, excluded={3}) == []


def test_neighbor_rule_reports_original_indices() -> None:
    periods = _periods([40, 10, 10, 10, 15])

    outliers = tda.detect_neighbor_outliers(periods, excluded={0})

    assert [o.index for o in outliers] == [4]


def test_iqr_rule() -> None:
    periods = _periods([10, 10, 10, 10, 10, 10, 10, 40])

    outliers = tda.detect_iqr_outliers(periods)

    assert [o.index for o in outliers] == [7]
    assert outliers[0].deviation_from_median == 30
    assert tda.detect_iqr_outliers(periods, excluded={7}) == []


def test_iqr_bounds() -> None:
    lower, upper, median = tda.iqr_bounds([1, 2, 3, 4, 5, 6, 7, 8])

    # q1 = 3, q3 = 7, iqr = 4
    assert (lower, upper, median) == (-3.0, 13.0, 5.0)
