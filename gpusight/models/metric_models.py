"""Pydantic models for normalized metric records.

Every numeric field uses ``None`` for "unknown" (tool reported N/A, field
missing, value unparsable). Zero is always a real reading.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from gpusight.models.constants import CorrelationOutcome


class AcceleratorMetric(BaseModel):
    """Point-in-time metrics for one physical accelerator."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, description="Device index (0-based)")
    uuid: str | None = Field(None, description="Device UUID (e.g. 'GPU-5f3c...')")
    name: str | None = Field(None, description="Device model name")
    utilization_percent: float | None = Field(
        None, ge=0, le=100, description="Compute utilization percentage"
    )
    memory_utilization_percent: float | None = Field(
        None, ge=0, le=100, description="Memory bandwidth utilization percentage"
    )
    memory_used_bytes: int | None = Field(None, ge=0, description="Used memory")
    memory_total_bytes: int | None = Field(None, ge=0, description="Total memory")
    temperature_celsius: float | None = Field(None, description="Core temperature")
    power_draw_watts: float | None = Field(None, ge=0, description="Power draw")
    power_limit_watts: float | None = Field(
        None, ge=0, description="Enforced power limit"
    )
    sm_clock_mhz: float | None = Field(None, ge=0, description="Current SM clock")
    max_sm_clock_mhz: float | None = Field(
        None, ge=0, description="Maximum (boost) SM clock reported by the device"
    )
    fan_speed_percent: float | None = Field(
        None, ge=0, description="Average fan speed, None on passively cooled parts"
    )
    throttle_reasons: tuple[str, ...] = Field(
        default=(), description="Active clock throttle reasons"
    )
    compute_capability: str | None = Field(None, description="e.g. '8.9'")
    driver_version: str | None = Field(None, description="Driver version")
    cuda_version: str | None = Field(None, description="CUDA driver API version")

    @property
    def memory_used_ratio(self) -> float | None:
        """Used/total memory ratio, None if either side is unknown."""
        if self.memory_used_bytes is None or not self.memory_total_bytes:
            return None
        return self.memory_used_bytes / self.memory_total_bytes


class AcceleratorProcess(BaseModel):
    """Compute process as reported by the accelerator tool."""

    model_config = ConfigDict(frozen=True)

    pid: int = Field(..., ge=0)
    device_index: int = Field(..., ge=0)
    used_memory_bytes: int | None = Field(None, ge=0)

    @property
    def key(self) -> tuple[int, int]:
        return (self.pid, self.device_index)

    def merged_with(self, other: AcceleratorProcess) -> AcceleratorProcess:
        """Combine two context entries of one pid on one device (memory summed)."""
        used = [
            value
            for value in (self.used_memory_bytes, other.used_memory_bytes)
            if value is not None
        ]
        total = sum(used) if used else None
        return self.model_copy(update={"used_memory_bytes": total})


class OsProcess(BaseModel):
    """Process as reported by the operating system process listing."""

    model_config = ConfigDict(frozen=True)

    pid: int = Field(..., ge=0)
    user: str | None = None
    cpu_percent: float | None = Field(None, ge=0)
    rss_bytes: int | None = Field(None, ge=0)
    elapsed: str | None = Field(None, description="Elapsed time as [[dd-]hh:]mm:ss")
    command: str | None = None


class ComputeProcess(BaseModel):
    """A process holding an accelerator context, joined across both listings."""

    model_config = ConfigDict(frozen=True)

    pid: int = Field(..., ge=0, description="Process ID")
    device_index: int = Field(..., ge=0, description="Owning accelerator index")
    accelerator_memory_used_bytes: int | None = Field(
        None, ge=0, description="Accelerator memory held by the process"
    )
    cpu_percent: float | None = Field(None, ge=0, description="OS-reported CPU")
    rss_bytes: int | None = Field(None, ge=0, description="Resident memory")
    user: str | None = Field(None, description="Owning user")
    command: str | None = Field(None, description="Command line")
    elapsed: str | None = Field(None, description="Elapsed run time")
    correlation: CorrelationOutcome = Field(
        CorrelationOutcome.BOTH, description="Which listings reported the pid"
    )
    os_metrics_unavailable: bool = Field(
        False, description="True when no OS process matched the pid"
    )


class DiskMetric(BaseModel):
    """Throughput and saturation of one block device."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Device name (e.g. 'nvme0n1')")
    read_bytes_per_sec: float | None = Field(None, ge=0)
    write_bytes_per_sec: float | None = Field(None, ge=0)
    utilization_percent: float | None = Field(None, ge=0)
    queue_length: float | None = Field(None, ge=0, description="Average queue size")
    read_latency_ms: float | None = Field(None, ge=0)
    write_latency_ms: float | None = Field(None, ge=0)


class NetworkMetric(BaseModel):
    """Throughput of one network interface."""

    model_config = ConfigDict(frozen=True)

    interface: str = Field(..., description="Interface name (e.g. 'eth0')")
    rx_bytes_per_sec: float | None = Field(None, ge=0)
    tx_bytes_per_sec: float | None = Field(None, ge=0)
    utilization_percent: float | None = Field(
        None, ge=0, description="Link utilization when the tool exposes it"
    )


class HostMetric(BaseModel):
    """Host CPU and memory figures."""

    model_config = ConfigDict(frozen=True)

    cpu_count: int | None = Field(None, ge=1, description="Logical CPUs")
    memory_total_bytes: int | None = Field(None, ge=0)
    memory_used_bytes: int | None = Field(None, ge=0)
    memory_available_bytes: int | None = Field(None, ge=0)
    swap_total_bytes: int | None = Field(None, ge=0)
    swap_used_bytes: int | None = Field(None, ge=0)
    iowait_percent: float | None = Field(None, ge=0)
    steal_percent: float | None = Field(None, ge=0)
    idle_percent: float | None = Field(None, ge=0)

    @property
    def memory_available_ratio(self) -> float | None:
        """Available/total RAM ratio, None if either side is unknown."""
        if self.memory_available_bytes is None or not self.memory_total_bytes:
            return None
        return self.memory_available_bytes / self.memory_total_bytes
