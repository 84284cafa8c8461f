"""Library samplers built on psutil for the process, disk, network and host sources.

Rates and CPU percentages need two readings; each sampler takes one, sleeps
``sample_interval_seconds`` and takes another.
"""

from __future__ import annotations

import time
from typing import Any

import psutil

from gpusight.adapters.base import SourceAdapter
from gpusight.errors import ToolExecutionFailedError
from gpusight.models.constants import (
    DEFAULT_SAMPLE_INTERVAL_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    FormatVersion,
    MetricSource,
)
from gpusight.models.source_models import RawSourceOutput


def _rate(first: float, second: float, interval: float) -> float | None:
    """Per-second delta of a counter; None when the counter went backwards."""
    delta = second - first
    return None if delta < 0 else delta / interval


class PsutilAdapter(SourceAdapter):
    """Common constructor for psutil samplers."""

    source: MetricSource

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        sample_interval_seconds: float = DEFAULT_SAMPLE_INTERVAL_SECONDS,
    ) -> None:
        super().__init__(type(self).source, FormatVersion.PSUTIL.value, timeout_seconds)
        self.sample_interval_seconds = sample_interval_seconds


class PsutilProcessAdapter(PsutilAdapter):
    """OS process listing with CPU percent measured over the sample interval."""

    source = MetricSource.PROCESS_COMPUTE

    def collect(self) -> RawSourceOutput:
        procs = list(psutil.process_iter(["pid", "username", "cmdline", "create_time"]))
        for proc in procs:
            try:
                proc.cpu_percent(interval=None)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        time.sleep(self.sample_interval_seconds)

        now = time.time()
        rows: list[dict[str, Any]] = []
        for proc in procs:
            try:
                cpu_percent = proc.cpu_percent(interval=None)
                rss = proc.memory_info().rss
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied:
                cpu_percent, rss = None, None
            info = proc.info
            created = info.get("create_time")
            rows.append(
                {
                    "pid": info["pid"],
                    "username": info.get("username"),
                    "cpu_percent": cpu_percent,
                    "rss_bytes": rss,
                    "elapsed_seconds": now - created if created else None,
                    "cmdline": info.get("cmdline"),
                }
            )
        return self.output(rows)


class PsutilDiskAdapter(PsutilAdapter):
    """Per-disk throughput and busy time between two counter readings."""

    source = MetricSource.DISK

    def collect(self) -> RawSourceOutput:
        before = psutil.disk_io_counters(perdisk=True)
        if before is None:
            raise ToolExecutionFailedError("psutil", "no disk counters on this system")
        time.sleep(self.sample_interval_seconds)
        after = psutil.disk_io_counters(perdisk=True) or {}

        interval = self.sample_interval_seconds
        rows = []
        for device in sorted(after):
            if device not in before:
                continue
            first, second = before[device], after[device]
            # busy_time (ms) is only reported on Linux and FreeBSD
            busy_before = getattr(first, "busy_time", None)
            busy_after = getattr(second, "busy_time", None)
            utilization = None
            if busy_before is not None and busy_after is not None:
                busy = _rate(busy_before, busy_after, interval * 10.0)
                utilization = None if busy is None else min(100.0, busy)
            rows.append(
                {
                    "device": device,
                    "read_bytes_per_sec": _rate(
                        first.read_bytes, second.read_bytes, interval
                    ),
                    "write_bytes_per_sec": _rate(
                        first.write_bytes, second.write_bytes, interval
                    ),
                    "utilization_percent": utilization,
                }
            )
        return self.output(rows)


class PsutilNetworkAdapter(PsutilAdapter):
    """Per-interface receive/transmit rates between two counter readings."""

    source = MetricSource.NETWORK

    def collect(self) -> RawSourceOutput:
        before = psutil.net_io_counters(pernic=True)
        time.sleep(self.sample_interval_seconds)
        after = psutil.net_io_counters(pernic=True)

        interval = self.sample_interval_seconds
        rows = []
        for interface in sorted(after):
            if interface not in before:
                continue
            first, second = before[interface], after[interface]
            rows.append(
                {
                    "interface": interface,
                    "rx_bytes_per_sec": _rate(
                        first.bytes_recv, second.bytes_recv, interval
                    ),
                    "tx_bytes_per_sec": _rate(
                        first.bytes_sent, second.bytes_sent, interval
                    ),
                }
            )
        return self.output(rows)


class PsutilHostAdapter(PsutilAdapter):
    """Host CPU count, RAM, swap and CPU time shares."""

    source = MetricSource.HOST

    def collect(self) -> RawSourceOutput:
        times = psutil.cpu_times_percent(interval=self.sample_interval_seconds)
        vmem = psutil.virtual_memory()
        try:
            swap = psutil.swap_memory()
        except (RuntimeError, OSError):
            swap = None

        return self.output(
            {
                "cpu_count": psutil.cpu_count(logical=True),
                "memory_total_bytes": vmem.total,
                "memory_used_bytes": vmem.used,
                "memory_available_bytes": vmem.available,
                "swap_total_bytes": swap.total if swap else None,
                "swap_used_bytes": swap.used if swap else None,
                # iowait and steal exist on Linux only
                "iowait_percent": getattr(times, "iowait", None),
                "steal_percent": getattr(times, "steal", None),
                "idle_percent": times.idle,
            }
        )
