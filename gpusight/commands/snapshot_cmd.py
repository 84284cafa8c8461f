"""Snapshot command helper: run one cycle and render the result."""

from __future__ import annotations

import json
from datetime import datetime

import click

from gpusight.models.config_models import MonitorConfig
from gpusight.models.constants import OS_METRICS_UNAVAILABLE
from gpusight.models.finding_models import Finding
from gpusight.models.snapshot_models import Snapshot, SourceAvailability
from gpusight.pipeline import run_cycle


def run_snapshot(config: MonitorConfig, output_format: str = "text") -> None:
    """Collect one snapshot, infer findings and print them.

    Args:
        config: Effective configuration (file, env and CLI overrides applied).
        output_format: "text" or "json".
    """
    snapshot, findings = run_cycle(config)
    if output_format == "json":
        click.echo(render_json(snapshot, findings))
    else:
        click.echo(format_report(snapshot, findings))


def render_json(snapshot: Snapshot, findings: tuple[Finding, ...]) -> str:
    """Serialize a snapshot and its findings without loss."""
    payload = {
        "snapshot": snapshot.to_dict(),
        "findings": [finding.to_dict() for finding in findings],
    }
    return json.dumps(payload, indent=2, default=str)


def format_report(snapshot: Snapshot, findings: tuple[Finding, ...]) -> str:
    """Render a snapshot and findings as a multi-line string for CLI output."""
    timestamp = datetime.fromtimestamp(snapshot.timestamp).strftime("%Y-%m-%d %H:%M:%S")
    lines = [f"[{timestamp}] gpusight snapshot", "", "Sources:"]
    for entry in snapshot.availability.values():
        lines.append(f"  {_format_availability(entry)}")

    if snapshot.accelerators:
        lines.extend(["", "Accelerators:", f"  {_format_versions(snapshot)}"])
        for gpu in snapshot.accelerators:
            model_suffix = f" ({gpu.name})" if gpu.name else ""
            lines.append(
                f"  GPU {gpu.index}{model_suffix}: "
                f"util: {_format_percent(gpu.utilization_percent)} "
                f"mem: {_format_bytes(gpu.memory_used_bytes)} / "
                f"{_format_bytes(gpu.memory_total_bytes)} "
                f"temp: {_format_value(gpu.temperature_celsius, 'C')} "
                f"power: {_format_power(gpu.power_draw_watts)} / "
                f"{_format_power(gpu.power_limit_watts)} "
                f"sm: {_format_value(gpu.sm_clock_mhz, ' MHz')} "
                f"fan: {_format_percent(gpu.fan_speed_percent)} "
                f"cc: {gpu.compute_capability or 'N/A'}"
            )
            if gpu.throttle_reasons:
                lines.append(f"    throttle: {', '.join(gpu.throttle_reasons)}")

    if snapshot.processes:
        lines.extend(["", "Compute processes:"])
        for process in snapshot.processes:
            line = (
                f"  pid {process.pid} gpu{process.device_index} "
                f"mem: {_format_bytes(process.accelerator_memory_used_bytes)}"
            )
            if process.os_metrics_unavailable:
                line += f" ({OS_METRICS_UNAVAILABLE})"
            else:
                line += (
                    f" cpu: {_format_percent(process.cpu_percent)}"
                    f" rss: {_format_bytes(process.rss_bytes)}"
                    f" user: {process.user or 'N/A'}"
                    f" elapsed: {process.elapsed or 'N/A'}"
                )
                if process.command:
                    line += f"  {process.command}"
            lines.append(line)

    if snapshot.disks:
        lines.extend(["", "Disks:"])
        for disk in snapshot.disks:
            lines.append(
                f"  {disk.name}: util: {_format_percent(disk.utilization_percent)} "
                f"read: {_format_rate(disk.read_bytes_per_sec)} "
                f"write: {_format_rate(disk.write_bytes_per_sec)}"
            )

    if snapshot.networks:
        lines.extend(["", "Network:"])
        for nic in snapshot.networks:
            lines.append(
                f"  {nic.interface}: rx: {_format_rate(nic.rx_bytes_per_sec)} "
                f"tx: {_format_rate(nic.tx_bytes_per_sec)}"
            )

    host = snapshot.host
    if host is not None:
        lines.extend(["", "Host:"])
        lines.append(
            f"  cpus: {host.cpu_count or 'N/A'} "
            f"mem: {_format_bytes(host.memory_used_bytes)} used / "
            f"{_format_bytes(host.memory_total_bytes)} "
            f"available: {_format_bytes(host.memory_available_bytes)} "
            f"iowait: {_format_percent(host.iowait_percent)}"
        )

    lines.extend(["", "Findings:"])
    if not findings:
        lines.append("  (none)")
    for finding in findings:
        lines.append(
            f"  [{finding.severity.upper()}] {finding.rule}: {finding.rationale}"
        )

    return "\n".join(lines)


def _format_versions(snapshot: Snapshot) -> str:
    """The ``CUDA Version X | Driver Version Y`` line of the first reporting GPU."""
    cuda = next((g.cuda_version for g in snapshot.accelerators if g.cuda_version), None)
    driver = next(
        (g.driver_version for g in snapshot.accelerators if g.driver_version), None
    )
    return f"CUDA Version {cuda or 'N/A'} | Driver Version {driver or 'N/A'}"


def _format_availability(entry: SourceAvailability) -> str:
    line = f"{entry.source.value:<16} {entry.status.value}"
    if entry.error_kind is not None:
        line += f" [{entry.error_kind.value}]"
    if entry.reason:
        line += f": {entry.reason}"
    elif entry.format_version:
        line += f" ({entry.format_version}, {entry.record_count} records)"
    return line


def _format_percent(value: float | None) -> str:
    """Format a percentage value for display, 'N/A' when unknown."""
    return f"{value:.1f}%" if value is not None else "N/A"


def _format_power(value: float | None) -> str:
    return f"{value:.1f} W" if value is not None else "N/A"


def _format_value(value: float | None, unit: str) -> str:
    return f"{value:g}{unit}" if value is not None else "N/A"


def _format_bytes(value: float | None) -> str:
    """Return a human-friendly representation of bytes (e.g., '3.2 GiB')."""
    if value is None:
        return "N/A"
    units = ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]
    current = float(value)
    for unit in units:
        if current < 1024.0 or unit == units[-1]:
            return f"{current:.1f} {unit}"
        current /= 1024.0
    return f"{current:.1f} {units[-1]}"


def _format_rate(value: float | None) -> str:
    return f"{_format_bytes(value)}/s" if value is not None else "N/A"
