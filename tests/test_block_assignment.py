import logging

import pytest

from schedule_tools.ingestion.schedule_parser import TimePoint
from schedule_tools.quick_adjust import block_assignment as ba


@pytest.fixture
def points() -> list:
    return [TimePoint("A", "Downtown Terminal", 1), TimePoint("B", "Hospital", 2)]


def _trip(number: int, start: str, end: str, block=None) -> ba.Trip:
    return ba.Trip(
        trip_number=number,
        block_number=block,
        departure_time=start,
        service_band="Base",
        arrival_times={"B": end} if end else {},
        departure_times={"A": start} if start else {},
    )


def test_trip_window_spans_first_to_last_time(points) -> None:
    assert ba.compute_trip_window(_trip(1, "06:00", "06:30"), points) == ba.TripWindow(360, 390)


def test_trip_window_rolls_past_midnight(points) -> None:
    window = ba.compute_trip_window(_trip(1, "23:50", "00:20"), points)

    assert window == ba.TripWindow(1430, 1460)


def test_trip_window_ignores_placeholders(points) -> None:
    trip = ba.Trip(1, None, "", "Base", arrival_times={"B": "--"}, departure_times={"A": "-"})

    assert ba.compute_trip_window(trip, points) is None


def test_blocks_reuse_earliest_free_vehicle(points) -> None:
    trips = [
        _trip(1, "06:00", "06:30"),
        _trip(2, "06:35", "07:05"),
        _trip(3, "06:15", "06:45"),
    ]

    blocked = ba.compute_blocks_for_trips(trips, points)

    assert [t.block_number for t in blocked] == [1, 1, 2]
    assert [t.trip_number for t in blocked] == [1, 2, 3]


def test_blocks_do_not_mutate_input(points) -> None:
    trips = [_trip(1, "06:00", "06:30", block=7)]

    blocked = ba.compute_blocks_for_trips(trips, points)

    assert trips[0].block_number == 7
    assert blocked[0].block_number == 1
    assert blocked[0] is not trips[0]


def test_missing_timing_keeps_existing_blocks(points, caplog) -> None:
    trips = [_trip(1, "06:00", "06:30", block=4), _trip(2, "", "")]

    with caplog.at_level(logging.WARNING):
        blocked = ba.compute_blocks_for_trips(trips, points)

    assert [t.block_number for t in blocked] == [4, 0]
    assert "lack timing data" in caplog.text


def test_blocks_from_matrix() -> None:
    points = [TimePoint("A", "A", 1), TimePoint("B", "B", 2)]
    matrix = [["06:00", "06:30"], ["06:15", "06:45"], ["06:35", "07:00"]]

    assert ba.compute_blocks_from_matrix(matrix, points) == [1, 2, 1]
    assert ba.compute_blocks_from_matrix(matrix + [["", "-"]], points) is None
    assert ba.compute_blocks_from_matrix([], points) is None


@pytest.mark.parametrize(
    ("blocks", "expected"),
    [
        ([1, 2, 3], True),
        ([4, 9, 2], True),
        ([1, 1, 2], False),
        ([None, 1], True),
        ([0, 1], True),
        ([5], False),
        ([], False),
    ],
)
def test_needs_block_recompute(blocks, expected) -> None:
    trips = [_trip(i + 1, "06:00", "06:30", block=b) for i, b in enumerate(blocks)]

    assert ba.needs_block_recompute(trips) is expected


def test_reassign_only_when_blocks_look_synthetic(points) -> None:
    real = [_trip(1, "06:00", "06:30", block=3), _trip(2, "06:10", "06:40", block=3)]
    synthetic = [_trip(1, "06:00", "06:30", block=1), _trip(2, "06:35", "07:05", block=2)]

    assert ba.reassign_blocks_if_needed(real, points) == real
    assert [t.block_number for t in ba.reassign_blocks_if_needed(synthetic, points)] == [1, 1]
