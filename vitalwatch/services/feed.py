"""
Line-oriented observation feed parser.

Turns ``subjectId,value,category,timestampMillis`` lines into store appends.
Malformed lines are skipped with a diagnostic and ingestion continues; this
module is the only owner of MalformedInput.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar

import structlog
from pydantic import ValidationError

from vitalwatch.domain.errors import InvalidCategory, MalformedInput
from vitalwatch.domain.models import Observation, VitalCategory
from vitalwatch.services.record_store import PatientRecordStore

logger = structlog.get_logger(__name__)

# Generic Result type for explicit error handling
ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=ValueError)

FIELD_COUNT = 4
# Substituted by the decoder for bytes that are not valid UTF-8
REPLACEMENT_CHAR = "\ufffd"


class Result(Generic[ValueT, ErrorT]):
    """
    Explicit error handling without exceptions for expected failures.

    Why: Makes error paths visible in type system, forces handling decisions.
    When to use: When failure is expected business logic, not exceptional.
    """

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


@dataclass
class IngestReport:
    """Outcome of an ingestion run."""

    accepted: int = 0
    skipped: int = 0

    def merge(self, other: "IngestReport") -> None:
        self.accepted += other.accepted
        self.skipped += other.skipped


def parse_observation_line(line: str) -> Result[Observation, ValueError]:
    """
    Parse one feed line.

    The error is MalformedInput for structural problems and InvalidCategory
    for an unrecognized category label.
    """
    if REPLACEMENT_CHAR in line:
        return Result.err(MalformedInput(line, "line is not valid UTF-8"))

    parts = [part.strip() for part in line.strip().split(",")]
    if len(parts) != FIELD_COUNT:
        return Result.err(
            MalformedInput(line, f"expected {FIELD_COUNT} fields, got {len(parts)}")
        )

    raw_subject, raw_value, raw_category, raw_timestamp = parts
    try:
        subject_id = int(raw_subject)
        # Saturation feeds carry a trailing percent sign
        value = float(raw_value.removesuffix("%"))
        timestamp = int(raw_timestamp)
    except ValueError as e:
        return Result.err(MalformedInput(line, str(e)))

    try:
        category = VitalCategory.parse(raw_category)
    except InvalidCategory as e:
        return Result.err(e)

    try:
        observation = Observation(
            subject_id=subject_id, category=category, value=value, timestamp=timestamp
        )
    except ValidationError as e:
        return Result.err(MalformedInput(line, f"{e.error_count()} invalid field(s)"))

    return Result.ok(observation)


def _is_ignorable(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.startswith("#")


def ingest_lines(store: PatientRecordStore, lines: Iterable[str]) -> IngestReport:
    """Append every well-formed line to the store, skipping the rest."""
    log = logger.bind(component="feed")
    report = IngestReport()

    for line_number, line in enumerate(lines, start=1):
        if _is_ignorable(line):
            continue

        result = parse_observation_line(line)
        if result.is_err():
            report.skipped += 1
            log.warning(
                "feed_line_skipped",
                line_number=line_number,
                error=str(result.unwrap_err()),
            )
            continue

        observation = result.unwrap()
        store.append(
            observation.subject_id,
            observation.category,
            observation.value,
            observation.timestamp,
        )
        report.accepted += 1

    log.info("feed_ingested", accepted=report.accepted, skipped=report.skipped)
    return report


def ingest_directory(store: PatientRecordStore, path: str | Path) -> IngestReport:
    """
    Ingest every regular file in a directory, in file-name order.

    Raises:
        NotADirectoryError: path does not name a directory.
    """
    directory = Path(path)
    if not directory.is_dir():
        raise NotADirectoryError(f"Feed directory {directory} is not a directory")

    report = IngestReport()
    for file_path in sorted(p for p in directory.iterdir() if p.is_file()):
        with file_path.open(encoding="utf-8", errors="replace") as handle:
            file_report = ingest_lines(store, handle)
        logger.debug(
            "feed_file_ingested",
            file=file_path.name,
            accepted=file_report.accepted,
            skipped=file_report.skipped,
        )
        report.merge(file_report)
    return report
