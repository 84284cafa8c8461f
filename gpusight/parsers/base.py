"""Abstract base class and result types for field parsers.

A parser turns one source's ``RawSourceOutput`` into typed records:

- a malformed row is skipped and recorded as a ``RowSkip``, never raised
- a malformed optional field degrades to ``None`` in that one record
- output that cannot be interpreted at all raises
  ``ParseFormatUnsupportedError``; the assembler marks the source Unavailable
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from gpusight.errors import ParseFormatUnsupportedError
from gpusight.models.constants import MetricSource
from gpusight.models.metric_models import AcceleratorMetric, AcceleratorProcess
from gpusight.models.source_models import RawSourceOutput
from gpusight.parsers.values import FieldValueError

R = TypeVar("R", bound=BaseModel)


@dataclass(frozen=True)
class RowSkip:
    """A row dropped by a parser (row-local, non-fatal)."""

    row: int
    reason: str


@dataclass
class ParseResult(Generic[R]):
    """Records parsed from one source plus row-level bookkeeping.

    Attributes:
        records: Successfully parsed records, in source order.
        skipped: Rows dropped as malformed.
        notes: Partial-data remarks (e.g. a failed secondary section) that
            degrade the source without dropping rows.
    """

    records: list[R] = field(default_factory=list)
    skipped: list[RowSkip] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def skipped_rows(self) -> int:
        return len(self.skipped)

    def skip(self, row: int, reason: str) -> None:
        self.skipped.append(RowSkip(row=row, reason=reason))


@dataclass
class AcceleratorParseResult(ParseResult[AcceleratorMetric]):
    """Accelerator records plus the accelerator-side compute process list."""

    processes: list[AcceleratorProcess] = field(default_factory=list)

    def add_process(self, process: AcceleratorProcess) -> None:
        """Append a compute process, merging repeats of the same (pid, device).

        A pid holding several contexts on one device (MIG instances, multiple
        CUDA contexts) is listed once per context; the memory is summed.
        """
        for position, existing in enumerate(self.processes):
            if existing.key == process.key:
                self.processes[position] = existing.merged_with(process)
                return
        self.processes.append(process)


class MetricParser(ABC):
    """Base class for one (source, format version) parser variant."""

    source: ClassVar[MetricSource]
    format_version: ClassVar[str]

    @abstractmethod
    def parse(self, raw: RawSourceOutput) -> ParseResult[Any]:
        """Parse a raw output into records.

        Raises:
            ParseFormatUnsupportedError: If the payload is unusable as a whole.
        """
        pass

    def unsupported(self, reason: str) -> ParseFormatUnsupportedError:
        """Build the whole-source format error for this parser."""
        return ParseFormatUnsupportedError(self.source, self.format_version, reason)

    def require_text(self, raw: RawSourceOutput) -> str:
        """Return the payload as text or raise a format error."""
        if not isinstance(raw.payload, str):
            raise self.unsupported(
                f"expected text payload, got {type(raw.payload).__name__}"
            )
        return raw.payload

    def require_rows(self, payload: Any) -> list[dict[str, Any]]:
        """Return the payload as a list of row mappings or raise a format error."""
        if not isinstance(payload, list):
            raise self.unsupported(
                f"expected a list of rows, got {type(payload).__name__}"
            )
        return payload

    @staticmethod
    def build(
        model: type[R], result: ParseResult[Any], row: int, **fields: Any
    ) -> R | None:
        """Construct a record from parsed fields.

        A value the model rejects in an optional field (a utilization of
        101 %, a negative rate) is reset to the field default and noted, so
        the record survives. A rejected required field skips the row.
        """
        try:
            return model(**fields)
        except ValidationError as e:
            errors = e.errors()

        rejected: dict[str, str] = {}
        for error in errors:
            name = str(error["loc"][0]) if error["loc"] else ""
            info = model.model_fields.get(name)
            if info is None or info.is_required():
                location = ".".join(str(part) for part in error["loc"])
                result.skip(row, f"{location}: {error['msg']}")
                return None
            rejected.setdefault(name, error["msg"])

        for name in rejected:
            fields[name] = model.model_fields[name].get_default(
                call_default_factory=True
            )
        try:
            record = model(**fields)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            result.skip(row, f"{location}: {first['msg']}")
            return None
        details = "; ".join(f"{name}: {msg}" for name, msg in rejected.items())
        result.notes.append(f"row {row}: out of range {details}")
        return record


def optional_field(
    parse: Any, value: Any, degraded: list[str], name: str
) -> Any:
    """Apply a field parser, degrading malformed values to None.

    Args:
        parse: Callable converting the raw value.
        value: Raw value.
        degraded: Collects names of fields that held garbage.
        name: Field name for the degraded list.
    """
    try:
        return parse(value)
    except FieldValueError:
        degraded.append(name)
        return None
