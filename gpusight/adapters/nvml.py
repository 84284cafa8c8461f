"""Accelerator adapter using pynvml (NVIDIA Management Library).

Produces the structured rows read by ``gpusight.parsers.accelerator.NvmlParser``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pynvml

from gpusight.adapters.base import SourceAdapter
from gpusight.errors import ToolExecutionFailedError, ToolUnavailableError
from gpusight.models.constants import (
    DEFAULT_TIMEOUT_SECONDS,
    FormatVersion,
    MetricSource,
)
from gpusight.models.source_models import RawSourceOutput
from gpusight.utils.logger import Logger


def _text(value: Any) -> Any:
    # older pynvml releases return bytes
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class NvmlAdapter(SourceAdapter):
    """Samples every NVIDIA device through NVML.

    A reading the device does not support is recorded as None. A device
    whose compute process list cannot be read gets ``processes=None``.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        super().__init__(
            MetricSource.ACCELERATOR, FormatVersion.NVML.value, timeout_seconds
        )
        self._logger = Logger.for_source("adapters.nvml", self.name)

    def _query(self, func: Callable[..., Any], *args: Any) -> Any:
        """Call an NVML getter, mapping NVMLError to None."""
        try:
            return _text(func(*args))
        except pynvml.NVMLError as e:
            self._logger.debug(f"{getattr(func, '__name__', func)} unsupported: {e}")
            return None

    def collect(self) -> RawSourceOutput:
        try:
            pynvml.nvmlInit()
        except pynvml.NVMLError as e:
            raise ToolUnavailableError("nvml", f"initialization failed: {e}") from e

        try:
            try:
                count = pynvml.nvmlDeviceGetCount()
            except pynvml.NVMLError as e:
                raise ToolExecutionFailedError("nvml", f"device count: {e}") from e

            driver_version = self._query(pynvml.nvmlSystemGetDriverVersion)
            cuda_version = self._query(pynvml.nvmlSystemGetCudaDriverVersion)
            rows = []
            for index in range(count):
                try:
                    handle = pynvml.nvmlDeviceGetHandleByIndex(index)
                except pynvml.NVMLError as e:
                    # no uuid or readings; the parser still sees the device index
                    self._logger.warning(f"gpu{index}: no handle: {e}")
                    rows.append({"index": index})
                    continue
                row = self._device_row(index, handle)
                row["driver_version"] = driver_version
                row["cuda_driver_version"] = cuda_version
                rows.append(row)
        finally:
            try:
                pynvml.nvmlShutdown()
            except pynvml.NVMLError:
                pass

        return self.output(rows)

    def _device_row(self, index: int, handle: Any) -> dict[str, Any]:
        utilization = self._query(pynvml.nvmlDeviceGetUtilizationRates, handle)
        memory = self._query(pynvml.nvmlDeviceGetMemoryInfo, handle)
        capability = self._query(pynvml.nvmlDeviceGetCudaComputeCapability, handle)

        return {
            "index": index,
            "uuid": self._query(pynvml.nvmlDeviceGetUUID, handle),
            "name": self._query(pynvml.nvmlDeviceGetName, handle),
            "utilization_gpu": utilization.gpu if utilization else None,
            "utilization_memory": utilization.memory if utilization else None,
            "memory_used_bytes": memory.used if memory else None,
            "memory_total_bytes": memory.total if memory else None,
            "temperature_c": self._query(
                pynvml.nvmlDeviceGetTemperature, handle, pynvml.NVML_TEMPERATURE_GPU
            ),
            "power_draw_mw": self._query(pynvml.nvmlDeviceGetPowerUsage, handle),
            "power_limit_mw": self._query(
                pynvml.nvmlDeviceGetEnforcedPowerLimit, handle
            ),
            "sm_clock_mhz": self._query(
                pynvml.nvmlDeviceGetClockInfo, handle, pynvml.NVML_CLOCK_SM
            ),
            "max_sm_clock_mhz": self._query(
                pynvml.nvmlDeviceGetMaxClockInfo, handle, pynvml.NVML_CLOCK_SM
            ),
            "fan_speed_percent": self._query(pynvml.nvmlDeviceGetFanSpeed, handle),
            "throttle_reasons_mask": self._query(
                pynvml.nvmlDeviceGetCurrentClocksThrottleReasons, handle
            ),
            "compute_capability": (
                f"{capability[0]}.{capability[1]}" if capability else None
            ),
            "processes": self._processes(handle),
        }

    def _processes(self, handle: Any) -> list[dict[str, Any]] | None:
        procs = self._query(pynvml.nvmlDeviceGetComputeRunningProcesses, handle)
        if procs is None:
            return None
        return [
            {"pid": proc.pid, "used_memory_bytes": proc.usedGpuMemory}
            for proc in procs
        ]
