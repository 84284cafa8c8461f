"""Network parsers: ``sar -n DEV`` text and psutil rows.

sar prefixes every line with a timestamp whose width depends on locale
(``12:00:01`` or ``12:00:01 PM``) or with ``Average:``. Rows are therefore
aligned from the right against the columns that follow ``IFACE``.
"""

from __future__ import annotations

from gpusight.models.constants import FormatVersion, MetricSource
from gpusight.models.metric_models import NetworkMetric
from gpusight.models.source_models import RawSourceOutput
from gpusight.parsers.base import MetricParser, ParseResult, optional_field
from gpusight.parsers.registry import register_parser
from gpusight.parsers.values import parse_float

SAR_COLUMNS: dict[str, tuple[str, float]] = {
    "rxkB/s": ("rx_bytes_per_sec", 1024.0),
    "txkB/s": ("tx_bytes_per_sec", 1024.0),
    "rxbyt/s": ("rx_bytes_per_sec", 1.0),
    "txbyt/s": ("tx_bytes_per_sec", 1.0),
    "%ifutil": ("utilization_percent", 1.0),
}


def _sar_blocks(lines: list[str]) -> list[tuple[bool, list[str], list[str]]]:
    """Split sar output into (is_average, columns, body) blocks."""
    blocks: list[tuple[bool, list[str], list[str]]] = []
    current: list[str] | None = None
    for line in lines:
        tokens = line.split()
        if "IFACE" in tokens:
            current = []
            columns = tokens[tokens.index("IFACE"):]
            blocks.append((tokens[0] == "Average:", columns, current))
        elif not tokens:
            current = None
        elif current is not None:
            current.append(line)
    return blocks


@register_parser
class SarDevParser(MetricParser):
    """Parser for ``sar -n DEV <interval> <count>`` output.

    The ``Average:`` block is preferred; without one the last sample block
    is used.
    """

    source = MetricSource.NETWORK
    format_version = FormatVersion.SAR_DEV.value

    def parse(self, raw: RawSourceOutput) -> ParseResult[NetworkMetric]:
        text = self.require_text(raw)
        result: ParseResult[NetworkMetric] = ParseResult()
        blocks = _sar_blocks(text.splitlines())
        if not blocks:
            if text.strip():
                raise self.unsupported("no IFACE header found")
            return result

        averages = [block for block in blocks if block[0]]
        _, columns, body = (averages or blocks)[-1]
        mapped = {
            position: SAR_COLUMNS[name]
            for position, name in enumerate(columns)
            if name in SAR_COLUMNS
        }
        if not mapped:
            raise self.unsupported(f"no known columns in header: {' '.join(columns)}")

        width = len(columns)
        for row_number, line in enumerate(body, start=1):
            tokens = line.split()
            if len(tokens) < width:
                result.skip(row_number, f"expected {width} columns, got {len(tokens)}")
                continue
            values = tokens[-width:]
            interface = values[0]
            degraded: list[str] = []
            fields: dict[str, float | None] = {}
            for position, (field_name, factor) in mapped.items():
                reading = optional_field(
                    parse_float, values[position], degraded, columns[position]
                )
                fields[field_name] = None if reading is None else reading * factor

            record = self.build(
                NetworkMetric, result, row_number, interface=interface, **fields
            )
            if record is None:
                continue
            if degraded:
                result.notes.append(f"{interface}: unparsable {', '.join(degraded)}")
            result.records.append(record)

        return result


@register_parser
class PsutilNetworkParser(MetricParser):
    """Parser for rows from ``PsutilNetworkAdapter``.

    Row keys: interface, rx_bytes_per_sec, tx_bytes_per_sec.
    """

    source = MetricSource.NETWORK
    format_version = FormatVersion.PSUTIL.value

    def parse(self, raw: RawSourceOutput) -> ParseResult[NetworkMetric]:
        rows = self.require_rows(raw.payload)
        result: ParseResult[NetworkMetric] = ParseResult()

        for row_number, row in enumerate(rows):
            if not isinstance(row, dict) or not row.get("interface"):
                result.skip(row_number, "row has no interface name")
                continue
            degraded: list[str] = []
            record = self.build(
                NetworkMetric,
                result,
                row_number,
                interface=str(row["interface"]),
                rx_bytes_per_sec=optional_field(
                    parse_float, row.get("rx_bytes_per_sec"), degraded, "rx"
                ),
                tx_bytes_per_sec=optional_field(
                    parse_float, row.get("tx_bytes_per_sec"), degraded, "tx"
                ),
            )
            if record is None:
                continue
            if degraded:
                result.notes.append(
                    f"{record.interface}: unparsable {', '.join(degraded)}"
                )
            result.records.append(record)

        return result
