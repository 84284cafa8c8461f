"""Accelerator parsers: nvidia-smi CSV queries and structured NVML rows.

nvidia-smi query (``--format=csv``; ``nounits`` optional):

    index, uuid, name, utilization.gpu [%], memory.used [MiB], ...
    0, GPU-5f3c..., NVIDIA A100-SXM4-80GB, 97 %, 61234 MiB, ...

Column order is taken from the header, unknown columns are ignored, and field
names renamed across driver releases are accepted under both names.
"""

from __future__ import annotations

import csv
import io
import re
from typing import Any

from gpusight.models.constants import (
    COMPUTE_APPS_SECTION,
    SMI_BANNER_SECTION,
    FormatVersion,
    MetricSource,
)
from gpusight.models.metric_models import AcceleratorMetric, AcceleratorProcess
from gpusight.models.source_models import RawSourceOutput
from gpusight.parsers.base import AcceleratorParseResult, MetricParser, optional_field
from gpusight.parsers.registry import register_parser
from gpusight.parsers.values import (
    NVML_VALUE_NOT_AVAILABLE,
    FieldValueError,
    decode_throttle_reasons,
    parse_bytes,
    parse_float,
    parse_key,
    parse_percent,
    parse_text,
    parse_watts,
    split_header_unit,
)

# nvidia-smi query field -> internal field; first listed alias wins on clashes
GPU_FIELD_ALIASES: dict[str, str] = {
    "index": "index",
    "uuid": "uuid",
    "gpu_uuid": "uuid",
    "pci.bus_id": "bus_id",
    "name": "name",
    "gpu_name": "name",
    "utilization.gpu": "utilization_percent",
    "utilization.memory": "memory_utilization_percent",
    "memory.used": "memory_used",
    "memory.total": "memory_total",
    "temperature.gpu": "temperature_celsius",
    "power.draw": "power_draw",
    "power.draw.instant": "power_draw",
    "power.draw.average": "power_draw",
    "enforced.power.limit": "power_limit",
    "power.limit": "power_limit",
    "clocks.sm": "sm_clock",
    "clocks.current.sm": "sm_clock",
    "clocks.max.sm": "max_sm_clock",
    "clocks.max.sm_clock": "max_sm_clock",
    "fan.speed": "fan_speed",
    "clocks_throttle_reasons.active": "throttle_mask",
    "clocks_event_reasons.active": "throttle_mask",
    "compute_cap": "compute_capability",
    "driver_version": "driver_version",
}

PROCESS_FIELD_ALIASES: dict[str, str] = {
    "pid": "pid",
    "gpu_uuid": "uuid",
    "gpu_bus_id": "bus_id",
    "used_gpu_memory": "used_memory",
    "used_memory": "used_memory",
}

# Queries issued by the nvidia-smi command adapter
GPU_QUERY = (
    "index,uuid,pci.bus_id,name,utilization.gpu,utilization.memory,memory.used,"
    "memory.total,temperature.gpu,power.draw,power.limit,clocks.sm,clocks.max.sm,"
    "fan.speed,clocks_throttle_reasons.active,compute_cap,driver_version"
)
COMPUTE_APPS_QUERY = "pid,gpu_uuid,gpu_bus_id,used_gpu_memory"

_NO_PROCESSES_MARKERS = ("no running processes found", "no running compute processes")
_CUDA_VERSION = re.compile(r"CUDA Version:\s*(?P<version>\d+(?:\.\d+)*)")


def _read_csv(text: str) -> list[list[str]]:
    """Split CSV text into stripped, non-empty rows."""
    reader = csv.reader(io.StringIO(text), skipinitialspace=True)
    return [[cell.strip() for cell in row] for row in reader if any(row)]


def _header_map(
    header: list[str], aliases: dict[str, str]
) -> tuple[dict[str, int], dict[str, str | None]]:
    """Map internal field names to column positions and header units."""
    columns: dict[str, int] = {}
    units: dict[str, str | None] = {}
    for position, cell in enumerate(header):
        name, unit = split_header_unit(cell)
        field_name = aliases.get(name.lower())
        if field_name is None or field_name in columns:
            continue
        columns[field_name] = position
        units[field_name] = unit
    return columns, units


def _banner_cuda_version(raw: RawSourceOutput) -> str | None:
    """CUDA version from the ``| NVIDIA-SMI ... CUDA Version: 12.4 |`` header."""
    banner = raw.sections.get(SMI_BANNER_SECTION)
    if not banner:
        return None
    match = _CUDA_VERSION.search(str(banner))
    return match.group("version") if match else None


def _normalize_bus_id(bus_id: str | None) -> str | None:
    """nvidia-smi pads the PCI domain to 8 digits in one query and 4 in another."""
    if not bus_id:
        return None
    head, _, device = bus_id.strip().lower().rpartition(":")
    domain, _, bus = head.rpartition(":")
    if not bus:
        return bus_id.lower()
    try:
        return f"{int(domain or '0', 16):04x}:{bus}:{device}"
    except ValueError:
        return bus_id.lower()


@register_parser
class NvidiaSmiCsvParser(MetricParser):
    """Parser for ``nvidia-smi --query-gpu=... --format=csv`` output."""

    source = MetricSource.ACCELERATOR
    format_version = FormatVersion.NVIDIA_SMI_CSV.value

    def parse(self, raw: RawSourceOutput) -> AcceleratorParseResult:
        text = self.require_text(raw)
        result = AcceleratorParseResult()
        rows = _read_csv(text)
        if not rows:
            raise self.unsupported("empty output")

        columns, units = _header_map(rows[0], GPU_FIELD_ALIASES)
        if "index" not in columns:
            raise self.unsupported("header has no 'index' column")

        by_uuid: dict[str, int] = {}
        by_bus: dict[str, int] = {}
        cuda_version = _banner_cuda_version(raw)
        seen: set[int] = set()

        for row_number, row in enumerate(rows[1:], start=1):
            if len(row) < len(rows[0]):
                result.skip(
                    row_number, f"expected {len(rows[0])} columns, got {len(row)}"
                )
                continue

            def cell(name: str, row: list[str] = row) -> str | None:
                position = columns.get(name)
                return row[position] if position is not None else None

            try:
                index = parse_key(cell("index"))
            except FieldValueError as e:
                result.skip(row_number, f"index: {e}")
                continue
            if index in seen:
                result.skip(row_number, f"duplicate device index {index}")
                continue

            degraded: list[str] = []
            memory_unit = units.get("memory_used") or "MiB"
            metric = self.build(
                AcceleratorMetric,
                result,
                row_number,
                index=index,
                uuid=parse_text(cell("uuid")),
                name=parse_text(cell("name")),
                utilization_percent=optional_field(
                    parse_percent,
                    cell("utilization_percent"),
                    degraded,
                    "utilization.gpu",
                ),
                memory_utilization_percent=optional_field(
                    parse_percent,
                    cell("memory_utilization_percent"),
                    degraded,
                    "utilization.memory",
                ),
                memory_used_bytes=optional_field(
                    lambda v: parse_bytes(v, memory_unit),
                    cell("memory_used"),
                    degraded,
                    "memory.used",
                ),
                memory_total_bytes=optional_field(
                    lambda v: parse_bytes(v, units.get("memory_total") or "MiB"),
                    cell("memory_total"),
                    degraded,
                    "memory.total",
                ),
                temperature_celsius=optional_field(
                    parse_float,
                    cell("temperature_celsius"),
                    degraded,
                    "temperature.gpu",
                ),
                power_draw_watts=optional_field(
                    parse_watts, cell("power_draw"), degraded, "power.draw"
                ),
                power_limit_watts=optional_field(
                    parse_watts, cell("power_limit"), degraded, "power.limit"
                ),
                sm_clock_mhz=optional_field(
                    parse_float, cell("sm_clock"), degraded, "clocks.sm"
                ),
                max_sm_clock_mhz=optional_field(
                    parse_float, cell("max_sm_clock"), degraded, "clocks.max.sm"
                ),
                fan_speed_percent=optional_field(
                    parse_percent, cell("fan_speed"), degraded, "fan.speed"
                ),
                throttle_reasons=optional_field(
                    decode_throttle_reasons,
                    cell("throttle_mask"),
                    degraded,
                    "clocks_throttle_reasons.active",
                )
                or (),
                compute_capability=parse_text(cell("compute_capability")),
                driver_version=parse_text(cell("driver_version")),
                cuda_version=cuda_version,
            )
            if metric is None:
                continue

            if degraded:
                result.notes.append(f"gpu{index}: unparsable {', '.join(degraded)}")
            seen.add(index)
            result.records.append(metric)
            if metric.uuid:
                by_uuid[metric.uuid] = index
            bus_id = _normalize_bus_id(parse_text(cell("bus_id")))
            if bus_id:
                by_bus[bus_id] = index

        self._parse_compute_apps(raw, result, by_uuid, by_bus)
        return result

    def _parse_compute_apps(
        self,
        raw: RawSourceOutput,
        result: AcceleratorParseResult,
        by_uuid: dict[str, int],
        by_bus: dict[str, int],
    ) -> None:
        """Parse the ``--query-compute-apps`` section into AcceleratorProcess rows."""
        if COMPUTE_APPS_SECTION not in raw.sections:
            result.notes.append("compute process listing not collected")
            return
        text = raw.sections[COMPUTE_APPS_SECTION]
        if text is None:
            result.notes.append("compute process listing failed")
            return

        rows = _read_csv(str(text))
        if not rows or rows[0][0].lower().startswith(_NO_PROCESSES_MARKERS):
            return

        columns, units = _header_map(rows[0], PROCESS_FIELD_ALIASES)
        if "pid" not in columns or not ({"uuid", "bus_id"} & columns.keys()):
            result.notes.append("compute process listing has an unknown header")
            return

        for row_number, row in enumerate(rows[1:], start=1):
            if row and row[0].lower().startswith(_NO_PROCESSES_MARKERS):
                continue
            if len(row) < len(rows[0]):
                result.skip(row_number, "truncated compute process row")
                continue
            try:
                pid = parse_key(row[columns["pid"]])
            except FieldValueError as e:
                result.skip(row_number, f"pid: {e}")
                continue

            device_index = None
            if "uuid" in columns:
                device_index = by_uuid.get(row[columns["uuid"]])
            if device_index is None and "bus_id" in columns:
                bus_id = _normalize_bus_id(row[columns["bus_id"]])
                device_index = by_bus.get(bus_id or "")
            if device_index is None:
                result.skip(row_number, f"pid {pid}: device not in accelerator listing")
                continue

            used_memory = None
            if "used_memory" in columns:
                try:
                    used_memory = parse_bytes(
                        row[columns["used_memory"]], units.get("used_memory") or "MiB"
                    )
                except FieldValueError:
                    used_memory = None

            process = self.build(
                AcceleratorProcess,
                result,
                row_number,
                pid=pid,
                device_index=device_index,
                used_memory_bytes=used_memory,
            )
            if process is not None:
                result.add_process(process)


@register_parser
class NvmlParser(MetricParser):
    """Parser for structured rows collected through pynvml.

    Each row is a mapping produced by ``gpusight.adapters.nvml.NvmlAdapter``;
    readings are in NVML's native units (milliwatts, bytes, MHz) and ``None``
    where NVML reported ``NVML_ERROR_NOT_SUPPORTED``.
    """

    source = MetricSource.ACCELERATOR
    format_version = FormatVersion.NVML.value

    def parse(self, raw: RawSourceOutput) -> AcceleratorParseResult:
        rows = self.require_rows(raw.payload)
        result = AcceleratorParseResult()
        seen: set[int] = set()

        for row_number, row in enumerate(rows):
            if not isinstance(row, dict):
                result.skip(row_number, "row is not a mapping")
                continue
            try:
                index = parse_key(row.get("index"))
            except FieldValueError as e:
                result.skip(row_number, f"index: {e}")
                continue
            if index in seen:
                result.skip(row_number, f"duplicate device index {index}")
                continue

            degraded: list[str] = []
            metric = self.build(
                AcceleratorMetric,
                result,
                row_number,
                index=index,
                uuid=parse_text(row.get("uuid")),
                name=parse_text(row.get("name")),
                utilization_percent=optional_field(
                    parse_percent,
                    row.get("utilization_gpu"),
                    degraded,
                    "utilization_gpu",
                ),
                memory_utilization_percent=optional_field(
                    parse_percent,
                    row.get("utilization_memory"),
                    degraded,
                    "utilization_memory",
                ),
                memory_used_bytes=optional_field(
                    parse_bytes, row.get("memory_used_bytes"), degraded, "memory_used"
                ),
                memory_total_bytes=optional_field(
                    parse_bytes, row.get("memory_total_bytes"), degraded, "memory_total"
                ),
                temperature_celsius=optional_field(
                    parse_float, row.get("temperature_c"), degraded, "temperature"
                ),
                power_draw_watts=optional_field(
                    _milliwatts, row.get("power_draw_mw"), degraded, "power_draw"
                ),
                power_limit_watts=optional_field(
                    _milliwatts, row.get("power_limit_mw"), degraded, "power_limit"
                ),
                sm_clock_mhz=optional_field(
                    parse_float, row.get("sm_clock_mhz"), degraded, "sm_clock"
                ),
                max_sm_clock_mhz=optional_field(
                    parse_float, row.get("max_sm_clock_mhz"), degraded, "max_sm_clock"
                ),
                fan_speed_percent=optional_field(
                    parse_percent, row.get("fan_speed_percent"), degraded, "fan_speed"
                ),
                throttle_reasons=optional_field(
                    decode_throttle_reasons,
                    row.get("throttle_reasons_mask"),
                    degraded,
                    "throttle_reasons",
                )
                or (),
                compute_capability=parse_text(row.get("compute_capability")),
                driver_version=parse_text(row.get("driver_version")),
                cuda_version=_cuda_version(row.get("cuda_driver_version")),
            )
            if metric is None:
                continue

            if degraded:
                result.notes.append(f"gpu{index}: unparsable {', '.join(degraded)}")
            seen.add(index)
            result.records.append(metric)
            self._parse_processes(row, index, result, row_number)

        return result

    def _parse_processes(
        self,
        row: dict[str, Any],
        index: int,
        result: AcceleratorParseResult,
        row_number: int,
    ) -> None:
        processes = row.get("processes")
        if processes is None:
            result.notes.append(f"gpu{index}: compute process listing failed")
            return
        for entry in processes:
            try:
                pid = parse_key(entry.get("pid"))
            except (FieldValueError, AttributeError):
                result.skip(row_number, f"gpu{index}: compute process without pid")
                continue
            used = entry.get("used_memory_bytes")
            if used == NVML_VALUE_NOT_AVAILABLE:
                used = None
            process = self.build(
                AcceleratorProcess,
                result,
                row_number,
                pid=pid,
                device_index=index,
                used_memory_bytes=used,
            )
            if process is not None:
                result.add_process(process)


def _milliwatts(value: Any) -> float | None:
    reading = parse_float(value)
    return None if reading is None else reading / 1000.0


def _cuda_version(value: Any) -> str | None:
    """NVML encodes the CUDA driver version as 1000 * major + 10 * minor."""
    if value is None:
        return None
    if isinstance(value, int):
        return f"{value // 1000}.{(value % 1000) // 10}"
    return parse_text(value)
