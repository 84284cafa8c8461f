"""Disk parsers: sysstat ``iostat -x`` text and psutil rows.

``iostat -dxk 1 2`` prints one report per interval; the first report covers
the time since boot, so only the last ``Device`` block is used. Column sets
differ between sysstat releases (``avgqu-sz`` became ``aqu-sz``, ``await``
split into ``r_await``/``w_await``, ``-m`` switches kB to MB); all are mapped
by header name.
"""

from __future__ import annotations

from gpusight.models.constants import FormatVersion, MetricSource
from gpusight.models.metric_models import DiskMetric
from gpusight.models.source_models import RawSourceOutput
from gpusight.parsers.base import MetricParser, ParseResult, optional_field
from gpusight.parsers.registry import register_parser
from gpusight.parsers.values import FieldValueError, parse_float

SECTOR_BYTES = 512

# header column -> (field, multiplier to bytes/sec or 1)
IOSTAT_COLUMNS: dict[str, tuple[str, float]] = {
    "rkB/s": ("read_bytes_per_sec", 1024.0),
    "rMB/s": ("read_bytes_per_sec", 1024.0**2),
    "rsec/s": ("read_bytes_per_sec", float(SECTOR_BYTES)),
    "wkB/s": ("write_bytes_per_sec", 1024.0),
    "wMB/s": ("write_bytes_per_sec", 1024.0**2),
    "wsec/s": ("write_bytes_per_sec", float(SECTOR_BYTES)),
    "%util": ("utilization_percent", 1.0),
    "aqu-sz": ("queue_length", 1.0),
    "avgqu-sz": ("queue_length", 1.0),
    "r_await": ("read_latency_ms", 1.0),
    "w_await": ("write_latency_ms", 1.0),
}


def _blocks(lines: list[str], is_header) -> list[tuple[list[str], list[str]]]:
    """Group a report into (header tokens, body lines) blocks."""
    blocks: list[tuple[list[str], list[str]]] = []
    current: list[str] | None = None
    for line in lines:
        if is_header(line):
            current = []
            blocks.append((line.split(), current))
        elif not line.strip():
            current = None
        elif current is not None:
            current.append(line)
    return blocks


def parse_avg_cpu(text: str) -> dict[str, float | None]:
    """Parse the last ``avg-cpu:`` block of iostat output.

    Returns:
        Mapping of column name (``%iowait``, ``%steal``, ``%idle``, ...) to
        value; empty if the text has no usable block.
    """
    lines = text.splitlines()
    blocks = _blocks(lines, lambda line: line.lstrip().startswith("avg-cpu:"))
    for header, body in reversed(blocks):
        if not body:
            continue
        names = header[1:]
        values = body[0].split()
        if len(values) != len(names):
            continue
        parsed: dict[str, float | None] = {}
        for name, value in zip(names, values, strict=True):
            try:
                parsed[name] = parse_float(value)
            except FieldValueError:
                parsed[name] = None
        return parsed
    return {}


@register_parser
class IostatParser(MetricParser):
    """Parser for ``iostat -x`` extended device statistics."""

    source = MetricSource.DISK
    format_version = FormatVersion.IOSTAT_X.value

    def parse(self, raw: RawSourceOutput) -> ParseResult[DiskMetric]:
        text = self.require_text(raw)
        result: ParseResult[DiskMetric] = ParseResult()
        lines = text.splitlines()
        blocks = _blocks(
            lines, lambda line: line.split()[:1] in (["Device"], ["Device:"])
        )
        if not blocks:
            if text.strip():
                raise self.unsupported("no Device header found")
            return result

        header, body = blocks[-1]
        columns = header[1:]
        mapped = {
            position: IOSTAT_COLUMNS[name]
            for position, name in enumerate(columns)
            if name in IOSTAT_COLUMNS
        }
        await_position = columns.index("await") if "await" in columns else None
        if not mapped:
            raise self.unsupported(f"no known columns in header: {' '.join(header)}")

        for row_number, line in enumerate(body, start=1):
            tokens = line.split()
            if len(tokens) != len(columns) + 1:
                result.skip(
                    row_number,
                    f"expected {len(columns) + 1} columns, got {len(tokens)}",
                )
                continue

            name, values = tokens[0], tokens[1:]
            degraded: list[str] = []
            fields: dict[str, float | None] = {}
            for position, (field_name, factor) in mapped.items():
                if field_name in fields and fields[field_name] is not None:
                    continue
                reading = optional_field(
                    parse_float, values[position], degraded, columns[position]
                )
                fields[field_name] = None if reading is None else reading * factor
            if await_position is not None:
                combined = optional_field(
                    parse_float, values[await_position], degraded, "await"
                )
                fields.setdefault("read_latency_ms", combined)
                fields.setdefault("write_latency_ms", combined)

            record = self.build(DiskMetric, result, row_number, name=name, **fields)
            if record is None:
                continue
            if degraded:
                result.notes.append(f"{name}: unparsable {', '.join(degraded)}")
            result.records.append(record)

        return result


@register_parser
class PsutilDiskParser(MetricParser):
    """Parser for rows from ``PsutilDiskAdapter``.

    Row keys: device, read_bytes_per_sec, write_bytes_per_sec,
    utilization_percent (None where the platform has no busy time).
    """

    source = MetricSource.DISK
    format_version = FormatVersion.PSUTIL.value

    def parse(self, raw: RawSourceOutput) -> ParseResult[DiskMetric]:
        rows = self.require_rows(raw.payload)
        result: ParseResult[DiskMetric] = ParseResult()

        for row_number, row in enumerate(rows):
            if not isinstance(row, dict) or not row.get("device"):
                result.skip(row_number, "row has no device name")
                continue
            degraded: list[str] = []
            record = self.build(
                DiskMetric,
                result,
                row_number,
                name=str(row["device"]),
                read_bytes_per_sec=optional_field(
                    parse_float, row.get("read_bytes_per_sec"), degraded, "read"
                ),
                write_bytes_per_sec=optional_field(
                    parse_float, row.get("write_bytes_per_sec"), degraded, "write"
                ),
                utilization_percent=optional_field(
                    parse_float, row.get("utilization_percent"), degraded, "utilization"
                ),
            )
            if record is None:
                continue
            if degraded:
                result.notes.append(f"{record.name}: unparsable {', '.join(degraded)}")
            result.records.append(record)

        return result
