"""End-to-end extraction of a travel-time schedule from an uploaded file.

Pipeline
--------
1. Decode the workbook (first sheet only) or CSV into a raw cell grid.
2. Parse timepoints and travel-time edges (:mod:`schedule_parser`).
3. Validate the result (:mod:`data_validator`) unless told to skip it.
4. Optionally fail fast on CRITICAL validation issues (strict mode).

The whole pipeline races a wall-clock timeout. Nothing escapes
:meth:`ScheduleExtractor.extract_from_grid` or
:meth:`ScheduleExtractor.extract_from_file`: every failure comes back as an
:class:`ExtractionResult` with ``success=False`` and an ``error`` message.

:func:`create_quality_report` renders a Markdown summary of a result.

Usage::

    python -m schedule_tools.ingestion.schedule_extractor --input route_101.xlsx
"""

from __future__ import annotations

import argparse
import io
import logging
import sys
import threading
import time
from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Callable, Final, Mapping, Optional, Union

import pandas as pd

from schedule_tools.ingestion.data_validator import (
    DataValidator,
    ValidationOptions,
    ValidationResult,
)
from schedule_tools.ingestion.format_detector import Grid, normalize_grid
from schedule_tools.ingestion.route_detector import detect_from_schedule
from schedule_tools.ingestion.schedule_parser import (
    CircuitBreaker,
    InputTooLargeError,
    ParsedScheduleData,
    ParserOptions,
    ParserUnavailableError,
    ProcessingLimitError,
    ScheduleParser,
)
from schedule_tools.utils.logging_helper import setup_logging

# =============================================================================
# CONFIGURATION
# =============================================================================

INPUT_FILE: Path = Path(r"Path\To\Your\Travel_Times.xlsx")
REPORT_FILE: Optional[Path] = None  # None -> print the report to stdout

EXTRACTION_TIMEOUT: Final[float] = 30.0  # seconds
DEFAULT_FILE_NAME: Final[str] = "unknown.xlsx"
WORKER_THREAD_PREFIX: Final[str] = "schedule-extract-"
CSV_SUFFIXES: Final[frozenset[str]] = frozenset({".csv", ".txt"})
SUMMARY_EDGE_LIMIT: Final[int] = 10

TOO_COMPLEX_MESSAGE: Final[str] = (
    "File is too large or too complex to process. Please simplify it and try again."
)

LOGGER = logging.getLogger(__name__)

Source = Union[str, Path, bytes, BinaryIO]

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class ExtractionOptions:
    parser_options: ParserOptions = field(default_factory=ParserOptions)
    validation_options: ValidationOptions = field(default_factory=ValidationOptions)
    skip_validation: bool = False
    strict_validation: bool = False
    timeout: float = EXTRACTION_TIMEOUT

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "ExtractionOptions":
        """Build options from nested plain dicts; unknown keys are ignored."""
        mapping = dict(mapping or {})
        known = {f.name for f in fields(cls)} - {"parser_options", "validation_options"}
        return cls(
            parser_options=ParserOptions.from_mapping(mapping.get("parser_options")),
            validation_options=ValidationOptions.from_mapping(mapping.get("validation_options")),
            **{k: v for k, v in mapping.items() if k in known},
        )


@dataclass(frozen=True)
class ExtractionMetadata:
    file_name: str
    processing_time_ms: int
    extracted_at: datetime


@dataclass(frozen=True)
class ExtractionResult:
    success: bool
    metadata: ExtractionMetadata
    data: Optional[ParsedScheduleData] = None
    validation: Optional[ValidationResult] = None
    error: Optional[str] = None


# =============================================================================
# DECODING
# =============================================================================


def _is_csv(file_name: str) -> bool:
    return Path(file_name).suffix.lower() in CSV_SUFFIXES


def _as_buffer(source: Source) -> Union[str, Path, BinaryIO]:
    if isinstance(source, (bytes, bytearray)):
        return io.BytesIO(source)
    return source


def _csv_width(buffer: Union[str, Path, BinaryIO]) -> int:
    """Upper bound on fields per line so ragged CSV rows load without error."""
    if isinstance(buffer, (str, Path)):
        raw = Path(buffer).read_bytes()
    else:
        raw = buffer.read()
        buffer.seek(0)
    lines = raw.decode("utf-8-sig", errors="replace").splitlines() or [""]
    return max(line.count(",") for line in lines) + 1


def load_grid(source: Source, file_name: str) -> list[list[Optional[str]]]:
    """Decode a workbook or CSV into a grid of ``str``/``None`` cells.

    The header row is kept as data. Only the first worksheet is read.

    Args:
        source: Path, raw bytes, or a binary file object.
        file_name: Used to choose between the CSV and Excel readers.

    Returns:
        The decoded grid.

    Raises:
        ValueError: If the workbook has no worksheets.
    """
    buffer = _as_buffer(source)
    if _is_csv(file_name):
        df = pd.read_csv(
            buffer,
            header=None,
            names=list(range(_csv_width(buffer))),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
        )
    else:
        with pd.ExcelFile(buffer) as workbook:
            if not workbook.sheet_names:
                raise ValueError("Excel file contains no worksheets")
            df = workbook.parse(workbook.sheet_names[0], header=None, dtype=str)

    return normalize_grid(df.values.tolist())


# =============================================================================
# EXTRACTOR
# =============================================================================


class ScheduleExtractor:
    """Run parse and validate under a timeout and report every outcome as data.

    One :class:`CircuitBreaker` is shared across all calls on an instance so
    repeated failures throttle the whole process, not just one call.
    """

    def __init__(
        self,
        options: Optional[ExtractionOptions] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self.options = options or ExtractionOptions()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

    # -- public API -----------------------------------------------------------

    def extract_from_grid(self, grid: Grid, file_name: str = DEFAULT_FILE_NAME) -> ExtractionResult:
        """Parse and validate an already decoded grid."""
        return self._race(lambda: self._pipeline(grid, file_name), file_name)

    def extract_from_file(
        self, source: Source, file_name: Optional[str] = None
    ) -> ExtractionResult:
        """Decode ``source`` then run the same pipeline as :meth:`extract_from_grid`."""
        if file_name is None:
            file_name = Path(source).name if isinstance(source, (str, Path)) else DEFAULT_FILE_NAME

        def run() -> ExtractionResult:
            started = time.monotonic()
            try:
                grid = load_grid(source, file_name)
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("Could not decode %s", file_name)
                message = str(exc)
                if message != "Excel file contains no worksheets":
                    message = f"File processing error: {message}"
                return _failure(file_name, started, message)
            return self._pipeline(grid, file_name)

        return self._race(run, file_name)

    # -- internals ------------------------------------------------------------

    def _race(self, work: Callable[[], ExtractionResult], file_name: str) -> ExtractionResult:
        started = time.monotonic()
        outcome: list[ExtractionResult] = []

        def target() -> None:
            try:
                outcome.append(work())
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("Extraction of %s failed", file_name)
                outcome.append(_failure(file_name, started, str(exc) or "Unknown extraction error"))

        # Abandoned on timeout, and never blocks interpreter exit.
        worker = threading.Thread(
            target=target, name=f"{WORKER_THREAD_PREFIX}{file_name}", daemon=True
        )
        worker.start()
        worker.join(self.options.timeout)
        if worker.is_alive():
            LOGGER.error("Extraction of %s timed out after %.1fs", file_name, self.options.timeout)
            return _failure(
                file_name,
                started,
                f"Extraction timed out after {self.options.timeout:g} seconds",
            )
        return outcome[0]

    def _pipeline(self, grid: Grid, file_name: str) -> ExtractionResult:
        started = time.monotonic()
        opts = self.options
        try:
            parser = ScheduleParser(opts.parser_options, self.circuit_breaker)
            parsed = parser.parse(grid, file_name)

            validation = None
            if not opts.skip_validation:
                validation = DataValidator(opts.validation_options).validate(parsed)
                critical = [e.message for e in validation.errors if e.severity == "CRITICAL"]
                if critical and opts.strict_validation:
                    return _failure(
                        file_name, started, f"Critical validation errors: {'; '.join(critical)}"
                    )
        except ProcessingLimitError as exc:
            LOGGER.error("Resource limit hit while parsing %s: %s", file_name, exc)
            return _failure(file_name, started, TOO_COMPLEX_MESSAGE)
        except (InputTooLargeError, ParserUnavailableError) as exc:
            LOGGER.warning("Rejected %s: %s", file_name, exc)
            return _failure(file_name, started, str(exc))
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Extraction of %s failed", file_name)
            return _failure(file_name, started, str(exc) or "Unknown extraction error")

        return ExtractionResult(
            success=True,
            data=parsed,
            validation=validation,
            metadata=_metadata(file_name, started),
        )


def _metadata(file_name: str, started: float) -> ExtractionMetadata:
    return ExtractionMetadata(
        file_name=file_name,
        processing_time_ms=round((time.monotonic() - started) * 1000),
        extracted_at=datetime.now(),
    )


def _failure(file_name: str, started: float, message: str) -> ExtractionResult:
    return ExtractionResult(success=False, error=message, metadata=_metadata(file_name, started))


# =============================================================================
# REPORTING
# =============================================================================


def create_quality_report(result: ExtractionResult) -> str:
    """Render a Markdown data-quality report for an extraction result."""
    if not result.success or result.data is None or result.validation is None:
        return f"Extraction failed: {result.error or 'Unknown error'}"

    data = result.data
    validation = result.validation
    stats = validation.statistics
    coverage = stats.day_type_coverage

    lines = [
        f"## Data Quality Report for {result.metadata.file_name}",
        "",
        "**Processing Summary:**",
        f"- Processing time: {result.metadata.processing_time_ms}ms",
        f"- Total rows in file: {data.metadata.total_rows}",
        f"- Processed rows: {data.metadata.processed_rows}",
        f"- Skipped rows: {data.metadata.skipped_rows}",
        f"- Format confidence: {data.format.confidence}%",
        "",
        "**Data Overview:**",
        f"- Time points detected: {stats.total_time_points}",
        f"- Travel time connections: {stats.total_travel_times}",
        f"- Average travel time: {stats.average_travel_time:.1f} minutes",
        f"- Travel time range: {stats.min_travel_time}-{stats.max_travel_time} minutes",
        "",
        "**Day Type Coverage:**",
        f"- Weekday: {coverage['weekday']} connections",
        f"- Saturday: {coverage['saturday']} connections",
        f"- Sunday: {coverage['sunday']} connections",
        "",
    ]
    for title, issues in (("Errors", validation.errors), ("Warnings", validation.warnings)):
        if issues:
            lines.append(f"**{title} ({len(issues)}):**")
            lines.extend(f"- [{issue.severity}] {issue.message}" for issue in issues)
            lines.append("")

    lines.append(f"**Validation Result:** {'PASSED' if validation.is_valid else 'FAILED'}")
    return "\n".join(lines) + "\n"


def summarize_time_points(data: ParsedScheduleData) -> str:
    """Numbered list of timepoint names."""
    header = f"Time Points ({len(data.time_points)}):"
    return "\n".join([header] + [f"{tp.sequence + 1}. {tp.name}" for tp in data.time_points])


def summarize_travel_times(data: ParsedScheduleData, limit: int = SUMMARY_EDGE_LIMIT) -> str:
    """Readable listing of the first ``limit`` edges with their observed minutes."""
    names = {tp.id: tp.name for tp in data.time_points}
    lines = [f"Travel Time Connections ({len(data.travel_times)}):", ""]
    for tt in data.travel_times[:limit]:
        lines.append(
            f"{names.get(tt.from_time_point, tt.from_time_point)} → "
            f"{names.get(tt.to_time_point, tt.to_time_point)}:"
        )
        for label, minutes in (
            ("Weekday", tt.weekday),
            ("Saturday", tt.saturday),
            ("Sunday", tt.sunday),
        ):
            if minutes > 0:
                lines.append(f"  {label}: {minutes}min")
        lines.append("")
    if len(data.travel_times) > limit:
        lines.append(f"... and {len(data.travel_times) - limit} more connections")
    return "\n".join(lines) + "\n"


# =============================================================================
# MAIN
# =============================================================================


def build_argparser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    p = argparse.ArgumentParser(
        description="Extract timepoints and travel times from a schedule workbook "
        "and print a data-quality report."
    )
    p.add_argument("-i", "--input", default=str(INPUT_FILE), help="Workbook or CSV to read.")
    p.add_argument(
        "-r",
        "--report",
        default=str(REPORT_FILE) if REPORT_FILE else None,
        help="Write the Markdown report here instead of stdout.",
    )
    p.add_argument(
        "--strict",
        action="store_true",
        help="Fail when validation reports CRITICAL issues.",
    )
    p.add_argument("--timeout", type=float, default=EXTRACTION_TIMEOUT, help="Seconds.")
    p.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING ...")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point; returns a process exit code."""
    args = build_argparser().parse_args(argv)
    setup_logging(args.log_level)

    input_path = Path(args.input)
    if not input_path.exists():
        LOGGER.error("Input file not found: %s", input_path)
        return 2

    extractor = ScheduleExtractor(
        ExtractionOptions(strict_validation=args.strict, timeout=args.timeout)
    )
    result = extractor.extract_from_file(input_path)
    report = create_quality_report(result)
    if result.data is not None:
        route = detect_from_schedule(result.data)
        LOGGER.info(
            "Suggested route name: %s (%s confidence, %s)",
            route.suggested_name,
            route.confidence,
            route.detection_method,
        )

    if args.report:
        Path(args.report).write_text(report, encoding="utf-8")
        LOGGER.info("Report written to %s", Path(args.report).resolve())
    else:
        print(report)
        if result.data is not None:
            print(summarize_time_points(result.data))
            print(summarize_travel_times(result.data))

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
