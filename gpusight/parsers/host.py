"""Host parsers: ``free -b`` text (with nproc and iostat sections) and psutil."""

from __future__ import annotations

from typing import Any

from gpusight.models.constants import (
    IOSTAT_CPU_SECTION,
    NPROC_SECTION,
    FormatVersion,
    MetricSource,
)
from gpusight.models.metric_models import HostMetric
from gpusight.models.source_models import RawSourceOutput
from gpusight.parsers.base import MetricParser, ParseResult, optional_field
from gpusight.parsers.disk import parse_avg_cpu
from gpusight.parsers.registry import register_parser
from gpusight.parsers.values import parse_bytes, parse_float, parse_key


def _free_rows(text: str) -> tuple[list[str], dict[str, list[str]]]:
    """Return the ``free`` header columns and its labelled rows."""
    header: list[str] = []
    rows: dict[str, list[str]] = {}
    for line in text.splitlines():
        if not line.strip():
            continue
        if ":" not in line:
            if "total" in line.split():
                header = line.split()
            continue
        label, _, rest = line.partition(":")
        rows[label.strip()] = rest.split()
    return header, rows


@register_parser
class FreeParser(MetricParser):
    """Parser for ``free -b`` output.

    procps 3.3.10 and newer print an ``available`` column; older releases
    print ``buffers`` and ``cached`` instead, and available memory is
    estimated as free + buffers + cached. The optional ``nproc`` and
    ``iostat_cpu`` sections add the CPU count and iowait/steal/idle shares.
    """

    source = MetricSource.HOST
    format_version = FormatVersion.FREE_B.value

    def parse(self, raw: RawSourceOutput) -> ParseResult[HostMetric]:
        text = self.require_text(raw)
        result: ParseResult[HostMetric] = ParseResult()
        header, rows = _free_rows(text)
        if not header or "Mem" not in rows:
            raise self.unsupported("no Mem row under a total/used/free header")

        degraded: list[str] = []
        memory = self._row_bytes(header, rows["Mem"], degraded, "Mem")
        swap = self._row_bytes(header, rows.get("Swap", []), degraded, "Swap")

        available = memory.get("available")
        if available is None and "available" not in header:
            parts = [memory.get(name) for name in ("free", "buffers", "cached")]
            if all(part is not None for part in parts):
                available = sum(parts)

        cpu_count = self._nproc(raw.sections, result)
        avg_cpu = self._avg_cpu(raw.sections, result)

        record = self.build(
            HostMetric,
            result,
            1,
            cpu_count=cpu_count,
            memory_total_bytes=memory.get("total"),
            memory_used_bytes=memory.get("used"),
            memory_available_bytes=available,
            swap_total_bytes=swap.get("total"),
            swap_used_bytes=swap.get("used"),
            iowait_percent=avg_cpu.get("%iowait"),
            steal_percent=avg_cpu.get("%steal"),
            idle_percent=avg_cpu.get("%idle"),
        )
        if record is not None:
            if degraded:
                result.notes.append(f"unparsable {', '.join(degraded)}")
            result.records.append(record)
        return result

    @staticmethod
    def _row_bytes(
        header: list[str], values: list[str], degraded: list[str], label: str
    ) -> dict[str, int | None]:
        parsed: dict[str, int | None] = {}
        for name, value in zip(header, values, strict=False):
            parsed[name] = optional_field(
                parse_bytes, value, degraded, f"{label} {name}"
            )
        return parsed

    @staticmethod
    def _nproc(sections: dict[str, Any], result: ParseResult[HostMetric]) -> int | None:
        if NPROC_SECTION not in sections:
            return None
        text = sections[NPROC_SECTION]
        if text is None:
            result.notes.append("nproc failed")
            return None
        degraded: list[str] = []
        count = optional_field(parse_key, str(text).strip(), degraded, "nproc")
        if degraded:
            result.notes.append(f"unparsable nproc output: {str(text).strip()!r}")
        return count

    @staticmethod
    def _avg_cpu(
        sections: dict[str, Any], result: ParseResult[HostMetric]
    ) -> dict[str, float | None]:
        if IOSTAT_CPU_SECTION not in sections:
            return {}
        text = sections[IOSTAT_CPU_SECTION]
        if text is None:
            result.notes.append("iostat cpu report failed")
            return {}
        parsed = parse_avg_cpu(str(text))
        if not parsed:
            result.notes.append("iostat cpu report has no avg-cpu block")
        return parsed


@register_parser
class PsutilHostParser(MetricParser):
    """Parser for the mapping produced by ``PsutilHostAdapter``.

    Keys: cpu_count, memory_total_bytes, memory_used_bytes,
    memory_available_bytes, swap_total_bytes, swap_used_bytes,
    iowait_percent, steal_percent, idle_percent.
    """

    source = MetricSource.HOST
    format_version = FormatVersion.PSUTIL.value

    BYTE_FIELDS = (
        "memory_total_bytes",
        "memory_used_bytes",
        "memory_available_bytes",
        "swap_total_bytes",
        "swap_used_bytes",
    )
    PERCENT_FIELDS = ("iowait_percent", "steal_percent", "idle_percent")

    def parse(self, raw: RawSourceOutput) -> ParseResult[HostMetric]:
        if not isinstance(raw.payload, dict):
            raise self.unsupported(
                f"expected a mapping, got {type(raw.payload).__name__}"
            )
        payload = raw.payload
        result: ParseResult[HostMetric] = ParseResult()
        degraded: list[str] = []

        fields: dict[str, Any] = {
            name: optional_field(parse_bytes, payload.get(name), degraded, name)
            for name in self.BYTE_FIELDS
        }
        fields.update(
            {
                name: optional_field(parse_float, payload.get(name), degraded, name)
                for name in self.PERCENT_FIELDS
            }
        )
        cpu_count = payload.get("cpu_count")
        fields["cpu_count"] = cpu_count if isinstance(cpu_count, int) else None

        record = self.build(HostMetric, result, 0, **fields)
        if record is not None:
            if degraded:
                result.notes.append(f"unparsable {', '.join(degraded)}")
            result.records.append(record)
        return result
