from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import pandas as pd  # noqa: E402
import pytest  # noqa: E402

from schedule_tools.service_bands import service_band_builder as sbb  # noqa: E402
from schedule_tools.service_bands.trip_duration_analyzer import (  # noqa: E402
    DurationPercentiles,
    TimePeriodDuration,
    TimeSegment,
)

FIXTURE_PATH = Path(__file__).parent / "fixtures" / "runtime_raw.csv"


def _periods(medians) -> list:
    out = []
    for i, m in enumerate(medians):
        hour, half = 6 + i // 2, 30 * (i % 2)
        out.append(
            TimePeriodDuration(
                time_period=f"{hour:02d}:{half:02d} - {hour:02d}:{half + 29:02d}",
                start_time=f"{hour:02d}:{half:02d}",
                duration=DurationPercentiles(p25=m - 2, p50=m, p80=m + 3, p90=m + 5),
            )
        )
    return out


@pytest.fixture
def periods() -> list:
    # sorted: 30 31 32 34 35 45 48 50 -> p25=32, p50=35, p75=48
    return _periods([30, 32, 35, 45, 50, 48, 34, 31])


def test_percentile_bands_and_peak_run(periods) -> None:
    result = sbb.calculate_time_bands(periods)

    assert result.time_groups == ((0, 1, 7), (2, 6), (3,), (), (4, 5))
    assert result.bands[0].name == "Off-Peak"
    assert result.bands[0].avg_duration == 31.0
    assert (result.bands[4].start_index, result.bands[4].end_index) == (4, 5)
    assert result.bands[4].avg_duration == 49.0
    assert result.bands[3].start_index == -1
    assert result.total_periods == 8
    assert result.outlier_count == 0


def test_every_active_period_in_exactly_one_band(periods) -> None:
    state = sbb.BandReviewState()
    state.remove(2)

    result = sbb.calculate_time_bands(periods, state)

    members = [i for group in result.time_groups for i in group]
    assert sorted(members) == [0, 1, 3, 4, 5, 6, 7]
    assert result.band_of(2) is None
    assert result.total_excluded == 1


def test_manual_assignment_joins_peak(periods) -> None:
    state = sbb.BandReviewState()
    state.assign(3, 4)

    result = sbb.calculate_time_bands(periods, state)

    assert result.band_of(3) == 4
    assert result.time_groups[4] == (3, 4, 5)
    assert result.time_groups[2] == ()


def test_manual_assignment_beats_peak_promotion(periods) -> None:
    state = sbb.BandReviewState()
    state.assign(4, 0)

    result = sbb.calculate_time_bands(periods, state)

    assert result.band_of(4) == 0
    assert result.time_groups[4] == (5,)


def test_no_spread_puts_everything_in_light_traffic() -> None:
    result = sbb.calculate_time_bands(_periods([20, 20, 20, 20]))

    assert result.time_groups[1] == (0, 1, 2, 3)
    assert result.time_groups[4] == ()
    assert result.bands[4].start_index == -1
    assert [result.band_of(i) for i in range(4)] == [1, 1, 1, 1]
    assert result.bands[1].avg_duration == 20.0


def test_no_spread_skips_peak_but_keeps_manual_assignment() -> None:
    state = sbb.BandReviewState()
    state.assign(2, 4)

    result = sbb.calculate_time_bands(_periods([20, 20, 20, 20]), state)

    assert result.time_groups[1] == (0, 1, 3)
    assert result.time_groups[4] == (2,)
    assert (result.bands[4].start_index, result.bands[4].end_index) == (2, 2)


def test_empty_after_exclusion() -> None:
    state = sbb.BandReviewState()
    state.remove(0)

    result = sbb.calculate_time_bands(_periods([20]), state)

    assert all(group == () for group in result.time_groups)
    assert result.total_excluded == 1


def test_iqr_outliers_reported_with_bands() -> None:
    result = sbb.calculate_time_bands(_periods([10, 10, 10, 10, 10, 10, 10, 40]))

    assert [o.index for o in result.outliers] == [7]
    assert result.outlier_percentage == 13


def test_review_state_transitions() -> None:
    state = sbb.BandReviewState()
    state.assign(1, 2)
    state.keep(3)
    state.remove(1)

    assert state.excluded_indices == {1}
    assert 1 not in state.manual_assignments
    with pytest.raises(ValueError):
        state.assign(0, 5)

    state.assign(0, 4)
    state.reset_assignments()
    assert state.manual_assignments == {}


def test_pending_outliers_skip_decided() -> None:
    outliers = sbb.calculate_time_bands(_periods([10, 10, 10, 10, 10, 10, 10, 40])).outliers
    state = sbb.BandReviewState()

    assert [o.index for o in state.pending_outliers(outliers)] == [7]
    state.keep(7)
    assert state.pending_outliers(outliers) == []


def test_band_averages_per_timepoint() -> None:
    periods = _periods([20, 30])
    segments = [
        TimeSegment("A", "B", "06:00 - 06:29", 8, 10, 12, 13),
        TimeSegment("B", "C", "06:00 - 06:29", 9, 10, 12, 13),
        TimeSegment("A", "B", "06:30 - 06:59", 13, 15, 17, 18),
        TimeSegment("B", "C", "06:30 - 06:59", 13, 15, 17, 18),
    ]
    state = sbb.BandReviewState()
    state.assign(0, 0)
    state.assign(1, 3)
    result = sbb.calculate_time_bands(periods, state)

    averages = sbb.calculate_service_band_averages(periods, result, segments)

    assert [a.band_name for a in averages] == ["Off-Peak", "Congested"]
    assert averages[0].time_point_durations == {"B": 10, "C": 10}
    assert averages[0].avg_duration == 20
    assert averages[1].avg_duration == 30


def test_service_bands_from_segments_and_lookup() -> None:
    segments = [
        TimeSegment("A", "B", f"{h:02d}:00 - {h:02d}:29", 1, minutes, 1, 1)
        for h, minutes in zip(range(6, 11), (10, 20, 30, 40, 50))
    ]

    bands = sbb.service_bands_from_segments(segments)

    # The 0th-20th slice is empty: both thresholds land on the smallest total
    assert [b.name for b in bands] == list(sbb.SCHEDULE_BAND_NAMES[1:])
    assert (bands[0].start_time, bands[0].end_time) == ("06:00", "06:29")
    assert (bands[-1].start_time, bands[-1].end_time) == ("09:00", "10:29")
    assert sbb.service_band_for_time("08:10", bands).name == "Slow Service"
    assert sbb.service_band_for_time("23:00", bands) is None


def test_service_band_lookup_wraps_midnight() -> None:
    night = sbb.ScheduleServiceBand("band_1", "Night", "22:00", "02:00", "#000000")

    assert sbb.service_band_for_time("23:30", [night]) is night
    assert sbb.service_band_for_time("01:00", [night]) is night
    assert sbb.service_band_for_time("12:00", [night]) is None


def test_bands_to_frame_marks_excluded(periods) -> None:
    state = sbb.BandReviewState()
    state.remove(0)
    state.assign(1, 2)
    result = sbb.calculate_time_bands(periods, state)

    frame = sbb.bands_to_frame(periods, result, state)

    assert frame.loc[0, "Band"] == "Excluded"
    assert frame.loc[1, "Band"] == "Heavy Traffic"
    assert bool(frame.loc[1, "Manual"]) is True


def test_plot_and_workbook(tmp_path, periods) -> None:
    state = sbb.BandReviewState()
    state.remove(2)
    result = sbb.calculate_time_bands(periods, state)

    png = sbb.plot_service_bands(periods, result, tmp_path / "bands.png")
    xlsx = sbb.export_band_workbook(periods, result, [], tmp_path / "bands.xlsx", state)

    assert png.exists()
    sheets = pd.read_excel(xlsx, sheet_name=None)
    assert set(sheets) == {"Periods", "Band Summary"}
    assert len(sheets["Periods"]) == 8
    assert list(sheets["Band Summary"]["Band"]) == [name for name, _, _ in sbb.BAND_DEFINITIONS]


def test_main_writes_outputs(tmp_path) -> None:
    code = sbb.main(
        ["--input", str(FIXTURE_PATH), "--outdir", str(tmp_path), "--route-id", "101"]
    )

    assert code == 0
    assert (tmp_path / "101_service_bands.xlsx").exists()
    assert (tmp_path / "101_service_bands.png").exists()
    sheets = pd.read_excel(tmp_path / "101_service_bands.xlsx", sheet_name=None)
    assert "Timepoint Averages" in sheets


def test_main_detects_route_name_without_route_id(tmp_path, capsys) -> None:
    code = sbb.main(["--input", str(FIXTURE_PATH), "--outdir", str(tmp_path)])

    assert code == 0
    assert (tmp_path / "runtime_raw_service_bands.xlsx").exists()
    assert "detected 'Downtown Terminal - Hospital Route' (low confidence)" in capsys.readouterr().out
