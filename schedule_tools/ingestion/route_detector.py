"""Guess a route number, direction or display name from schedule text.

Segment titles and timepoint names often carry the route, e.g.
``"101 CCW Downtown Terminal"``. Three patterns are tried in order on each
piece of text:

1. route number plus direction (``101 CCW``, ``7 clockwise``), high confidence;
2. a bare route number (``Route 101``, ``Line 15``, ``101``), medium;
3. a named service (``Blue Line``, ``Express Service``), medium.

When none matches, the two first timepoints that look like major
destinations (terminal, mall, hospital, ...) are joined into a name such as
``"Downtown Terminal - Hospital Route"``. Failing that, a generic name is
suggested.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Final, Iterable, Literal, Optional, Sequence

from schedule_tools.ingestion.schedule_parser import ParsedScheduleData

# =============================================================================
# CONFIGURATION
# =============================================================================

DESTINATION_KEYWORDS: Final[tuple[str, ...]] = (
    "downtown",
    "terminal",
    "mall",
    "college",
    "university",
    "hospital",
    "station",
    "centre",
    "center",
    "plaza",
    "square",
    "park",
)
MIN_DESTINATIONS: Final[int] = 2
GENERIC_NAME: Final[str] = "New Route Schedule"

_ROUTE_DIRECTION_RE: Final[re.Pattern[str]] = re.compile(
    r"(\d{1,3})\s+(ccw|cw|clockwise|counterclockwise|counter-clockwise)", re.I
)
_ROUTE_NUMBER_RE: Final[re.Pattern[str]] = re.compile(
    r"(?:route\s+|line\s+)?(\d{1,3})(?:\s+route)?", re.I
)
_NAMED_ROUTE_RE: Final[re.Pattern[str]] = re.compile(
    r"(blue|red|green|yellow|orange|purple|express|rapid|local|downtown|university|college)"
    r"\s+(line|route|service|express|rapid)",
    re.I,
)
_CONNECTOR_RE: Final[re.Pattern[str]] = re.compile(r"\s+(at|to|from)\s+", re.I)

LOGGER = logging.getLogger(__name__)

Confidence = Literal["high", "medium", "low"]

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class RouteDetection:
    """What the text says about the route, and how sure we are."""

    confidence: Confidence
    detection_method: str
    suggested_name: str
    route_number: Optional[str] = None
    route_name: Optional[str] = None
    direction: Optional[str] = None


# =============================================================================
# FUNCTIONS
# =============================================================================


def _capitalize_words(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in text.split(" "))


def route_from_text(text: str) -> Optional[RouteDetection]:
    """Match ``text`` against the route patterns; None if nothing fits."""
    m = _ROUTE_DIRECTION_RE.search(text)
    if m:
        number, raw = m.group(1), m.group(2).lower()
        direction = "Counter-Clockwise" if raw == "ccw" or "counter" in raw else "Clockwise"
        return RouteDetection(
            confidence="high",
            detection_method="Route number with direction pattern",
            suggested_name=f"Route {number} {direction}",
            route_number=number,
            direction=direction,
        )

    m = _ROUTE_NUMBER_RE.search(text)
    if m:
        return RouteDetection(
            confidence="medium",
            detection_method="Route number pattern",
            suggested_name=f"Route {m.group(1)}",
            route_number=m.group(1),
        )

    m = _NAMED_ROUTE_RE.search(text)
    if m:
        return RouteDetection(
            confidence="medium",
            detection_method="Named route pattern",
            suggested_name=_capitalize_words(m.group(0)),
            route_name=m.group(0),
        )
    return None


def route_from_destinations(time_point_names: Sequence[str]) -> RouteDetection:
    """Name the route after its first two major destinations."""
    all_text = " ".join(time_point_names).lower()
    found = [k for k in DESTINATION_KEYWORDS if k in all_text]
    if len(found) >= MIN_DESTINATIONS:
        majors = [
            _capitalize_words(_CONNECTOR_RE.sub(" ", name))
            for name in time_point_names
            if any(k in name.lower() for k in DESTINATION_KEYWORDS)
        ][:2]
        if len(majors) >= MIN_DESTINATIONS:
            return RouteDetection(
                confidence="low",
                detection_method="Major destination analysis",
                suggested_name=f"{majors[0]} - {majors[1]} Route",
            )
    return RouteDetection(
        confidence="low", detection_method="Generic fallback", suggested_name=GENERIC_NAME
    )


def detect_from_segments(
    segments: Iterable[tuple[str, str]], time_point_names: Sequence[str]
) -> RouteDetection:
    """Detect the route from runtime ``(from, to)`` segment pairs.

    Each pair is tried as ``"<from> <to>"``; the timepoint names are the
    fallback.
    """
    for from_loc, to_loc in segments:
        found = route_from_text(f"{from_loc} {to_loc}")
        if found:
            LOGGER.debug("Route detected from segment %r -> %r", from_loc, to_loc)
            return found
    return route_from_destinations(time_point_names)


def detect_from_schedule(data: ParsedScheduleData) -> RouteDetection:
    """Detect the route from a parsed schedule's timepoint names.

    Travel-time endpoints are generated ``tp_<column>`` ids and are not read.
    """
    for tp in data.time_points:
        found = route_from_text(tp.name)
        if found:
            return found
    return route_from_destinations([tp.name for tp in data.time_points])


def alternative_names(detection: RouteDetection) -> list[str]:
    """Suggested name first, then other spellings, without duplicates."""
    names = [detection.suggested_name]
    if detection.route_number:
        number = detection.route_number
        names += [f"Route {number}", f"Line {number}", f"Bus {number}"]
        if detection.direction:
            names += [
                f"{number} {detection.direction.split('-')[0]}",
                f"Route {number} - {detection.direction}",
            ]
    if detection.route_name:
        names += [detection.route_name, f"{detection.route_name} Service"]
    return list(dict.fromkeys(names))
