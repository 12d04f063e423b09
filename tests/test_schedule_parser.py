import itertools

import pytest

from schedule_tools.ingestion import schedule_parser
from schedule_tools.ingestion.format_detector import DetectedFormat


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def grid() -> list:
    return [
        ["Trip #", "Downtown Terminal", "Main Street", "Hospital"],
        ["1", "07:00", "07:10", "07:25"],
        ["2", "07:30", "07:38", "07:55"],
    ]


def _edge(data, from_id, to_id):
    return next(
        tt
        for tt in data.travel_times
        if tt.from_time_point == from_id and tt.to_time_point == to_id
    )


def test_parse_builds_timepoints_and_edges(grid) -> None:
    data = schedule_parser.ScheduleParser().parse(grid, file_name="route.xlsx")

    assert [tp.id for tp in data.time_points] == ["tp_1", "tp_2", "tp_3"]
    assert [tp.name for tp in data.time_points] == ["Downtown Terminal", "Main Street", "Hospital"]
    assert [tp.sequence for tp in data.time_points] == [0, 1, 2]
    assert len(data.travel_times) == 2
    assert data.metadata.total_rows == 3
    assert data.metadata.processed_rows == 2
    assert data.metadata.skipped_rows == 0
    assert data.metadata.file_name == "route.xlsx"


def test_edges_keep_smallest_observation(grid) -> None:
    data = schedule_parser.ScheduleParser().parse(grid)

    first = _edge(data, "tp_1", "tp_2")
    second = _edge(data, "tp_2", "tp_3")
    # 10 and 8 observed -> 8; 15 and 17 observed -> 15
    assert (first.weekday, first.saturday, first.sunday) == (8, 0, 0)
    assert second.weekday == 15


def test_explicit_format_round_trip() -> None:
    grid = [["", "A", "B", "C"], ["x", "07:00", "07:10", "07:30"]]
    fmt = DetectedFormat(
        has_header=True,
        header_row=0,
        data_start_row=1,
        time_point_columns=(1, 2, 3),
        time_point_names=("A", "B", "C"),
        time_format="HH:MM",
        confidence=90,
    )

    data = schedule_parser.ScheduleParser().parse(grid, detected_format=fmt)

    assert [tp.name for tp in data.time_points] == ["A", "B", "C"]
    assert _edge(data, "tp_1", "tp_2").weekday == 10
    assert _edge(data, "tp_2", "tp_3").weekday == 20


def test_rows_without_usable_pairs_are_skipped(grid) -> None:
    grid = grid + [["3", "08:00", "", ""], ["", "", "", ""]]

    data = schedule_parser.ScheduleParser().parse(grid)

    # The single-time row is skipped; the blank row is ignored
    assert data.metadata.skipped_rows == 1
    assert data.metadata.processed_rows == 3


def test_blank_rows_counted_when_not_skipping_empty(grid) -> None:
    options = schedule_parser.ParserOptions(skip_empty_rows=False)
    grid = grid + [["", "", "", ""]]

    data = schedule_parser.ScheduleParser(options).parse(grid)

    assert data.metadata.skipped_rows == 1


def test_travel_over_two_hours_is_ignored() -> None:
    grid = [
        ["Trip #", "Downtown Terminal", "Main Street"],
        ["1", "07:00", "09:30"],
    ]

    data = schedule_parser.ScheduleParser().parse(grid)

    assert data.travel_times == ()
    assert data.metadata.skipped_rows == 1


def test_midnight_rollover_counts_forward() -> None:
    grid = [
        ["Trip #", "Downtown Terminal", "Main Street"],
        ["1", "23:55", "00:10"],
    ]

    data = schedule_parser.ScheduleParser().parse(grid)

    assert _edge(data, "tp_1", "tp_2").weekday == 15


def test_preflight_row_limit_is_not_recorded_as_failure(grid) -> None:
    breaker = schedule_parser.CircuitBreaker()
    parser = schedule_parser.ScheduleParser(
        schedule_parser.ParserOptions(max_rows_to_process=2), breaker
    )

    with pytest.raises(schedule_parser.InputTooLargeError) as exc:
        parser.parse(grid)

    assert str(exc.value) == "Excel file too large: 3 rows exceeds maximum of 2"
    assert breaker.failures == 0


def test_preflight_cell_estimate(grid) -> None:
    parser = schedule_parser.ScheduleParser(
        schedule_parser.ParserOptions(max_cells_to_process=5)
    )

    with pytest.raises(schedule_parser.InputTooLargeError, match="estimated 12 cells"):
        parser.parse(grid)


def test_invalid_grid_type_rejected() -> None:
    with pytest.raises(schedule_parser.InputTooLargeError, match="Invalid data format"):
        schedule_parser.ScheduleParser().parse("not a grid")


def test_timeout_aborts_and_records_failure(grid) -> None:
    ticks = itertools.count(0, 100)
    breaker = schedule_parser.CircuitBreaker()
    parser = schedule_parser.ScheduleParser(
        circuit_breaker=breaker, clock=lambda: float(next(ticks))
    )

    with pytest.raises(schedule_parser.ProcessingLimitError, match="Processing timeout exceeded"):
        parser.parse(grid)

    assert breaker.failures == 1


def test_strict_mode_rejects_failed_detection() -> None:
    breaker = schedule_parser.CircuitBreaker()
    parser = schedule_parser.ScheduleParser(
        schedule_parser.ParserOptions(strict_validation=True), breaker
    )

    with pytest.raises(ValueError, match="Format detection failed: Found only 1 time points"):
        parser.parse([["07:00"], ["07:30"]])

    assert breaker.failures == 1


def test_circuit_breaker_opens_and_recovers() -> None:
    clock = FakeClock()
    breaker = schedule_parser.CircuitBreaker(max_failures=3, reset_timeout=60, clock=clock)

    for _ in range(3):
        assert breaker.can_process()
        breaker.record_failure()
    assert not breaker.can_process()

    clock.now = 60.0
    assert not breaker.can_process()

    clock.now = 60.5
    assert breaker.can_process()
    assert breaker.failures == 0


def test_success_closes_breaker() -> None:
    breaker = schedule_parser.CircuitBreaker()
    breaker.record_failure()
    breaker.record_failure()
    breaker.record_success()

    assert breaker.failures == 0
    assert breaker.can_process()


def test_open_breaker_refuses_work(grid) -> None:
    breaker = schedule_parser.CircuitBreaker()
    for _ in range(3):
        breaker.record_failure()

    with pytest.raises(schedule_parser.ParserUnavailableError) as exc:
        schedule_parser.ScheduleParser(circuit_breaker=breaker).parse(grid)

    assert str(exc.value) == schedule_parser.UNAVAILABLE_MESSAGE


def test_disabled_breaker_is_bypassed(grid) -> None:
    breaker = schedule_parser.CircuitBreaker()
    for _ in range(3):
        breaker.record_failure()
    options = schedule_parser.ParserOptions(enable_circuit_breaker=False)

    data = schedule_parser.ScheduleParser(options, breaker).parse(grid)

    assert len(data.time_points) == 3


def test_clean_timepoint_name() -> None:
    assert schedule_parser.clean_timepoint_name("") == "Invalid_TimePoint"
    assert schedule_parser.clean_timepoint_name("<script>x</script>") == "Sanitized_TimePoint"
    assert schedule_parser.clean_timepoint_name("Main & 1st") == "Main & 1st"


def test_merge_observation_fills_then_shrinks() -> None:
    edges: dict = {}
    schedule_parser.merge_observation(edges, "a", "b", "saturday", 12)
    schedule_parser.merge_observation(edges, "a", "b", "saturday", 14)
    schedule_parser.merge_observation(edges, "a", "b", "saturday", 9)
    schedule_parser.merge_observation(edges, "a", "b", "weekday", 11)

    assert edges[("a", "b")] == {"weekday": 11, "saturday": 9, "sunday": 0}


def test_memory_monitor_budget() -> None:
    monitor = schedule_parser.MemoryMonitor(max_bytes=200)
    monitor.add_row(["07:00", "07:10"])
    assert monitor.within_budget()

    monitor.add_row(["07:00", "07:10"])
    assert not monitor.within_budget()
