import pytest

from schedule_tools.ingestion import route_detector as rd
from schedule_tools.ingestion.schedule_extractor import ScheduleExtractor


def test_route_number_with_direction_from_segments() -> None:
    segments = [("101 CCW Downtown Barrie Terminal", "101 CCW Johnson at Napier")]

    detection = rd.detect_from_segments(segments, [])

    assert detection.confidence == "high"
    assert detection.route_number == "101"
    assert detection.direction == "Counter-Clockwise"
    assert detection.suggested_name == "Route 101 Counter-Clockwise"
    assert detection.detection_method == "Route number with direction pattern"


@pytest.mark.parametrize(
    ("text", "direction"),
    [
        ("8 cw", "Clockwise"),
        ("8 counter-clockwise", "Counter-Clockwise"),
        ("8 Clockwise", "Clockwise"),
    ],
)
def test_direction_words(text, direction) -> None:
    assert rd.route_from_text(text).direction == direction


def test_bare_route_number_is_medium() -> None:
    detection = rd.route_from_text("Line 15 Park Place")

    assert detection.confidence == "medium"
    assert detection.route_number == "15"
    assert detection.suggested_name == "Route 15"


def test_named_route() -> None:
    detection = rd.route_from_text("Blue line via campus")

    assert detection.route_name == "Blue line"
    assert detection.suggested_name == "Blue Line"
    assert detection.detection_method == "Named route pattern"
    assert rd.route_from_text("Quiet Street") is None


def test_destination_fallback() -> None:
    names = ["Downtown Terminal", "King at Queen", "Georgian College", "Hospital"]

    detection = rd.detect_from_segments([("Downtown Terminal", "King at Queen")], names)

    assert detection.confidence == "low"
    assert detection.detection_method == "Major destination analysis"
    assert detection.suggested_name == "Downtown Terminal - Georgian College Route"


def test_generic_fallback() -> None:
    detection = rd.route_from_destinations(["King Street", "Queen Street"])

    assert detection.suggested_name == rd.GENERIC_NAME
    assert detection.detection_method == "Generic fallback"


def test_alternative_names() -> None:
    detection = rd.detect_from_segments([("101 CCW Downtown", "Johnson")], [])

    names = rd.alternative_names(detection)

    assert names[0] == "Route 101 Counter-Clockwise"
    for expected in ("Route 101", "Line 101", "Bus 101", "101 Counter"):
        assert expected in names
    assert len(names) == len(set(names))


def test_alternative_names_for_named_route() -> None:
    detection = rd.route_from_text("Express Service")

    assert rd.alternative_names(detection) == [
        "Express Service",
        "Express Service Service",
    ]


def test_detect_from_schedule_uses_timepoint_names() -> None:
    grid = [
        ["Trip #", "Downtown Terminal", "Main Street", "Hospital"],
        ["1", "07:00", "07:10", "07:25"],
    ]
    data = ScheduleExtractor().extract_from_grid(grid).data

    detection = rd.detect_from_schedule(data)

    assert detection.suggested_name == "Downtown Terminal - Hospital Route"
