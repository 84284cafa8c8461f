"""Tests for the command, NVML and psutil adapters and the adapter factory."""

from __future__ import annotations

import subprocess
import types
from unittest.mock import MagicMock, patch

import pynvml
import pytest

from gpusight.adapters import CommandAdapter, build_adapter, build_adapters, run_command
from gpusight.adapters.nvml import NvmlAdapter
from gpusight.adapters.psutil_sources import PsutilDiskAdapter, PsutilHostAdapter
from gpusight.errors import (
    ConfigError,
    ToolExecutionFailedError,
    ToolTimeoutError,
    ToolUnavailableError,
)
from gpusight.models.config_models import MonitorConfig
from gpusight.models.constants import (
    COMPUTE_APPS_SECTION,
    IOSTAT_CPU_SECTION,
    NPROC_SECTION,
    SMI_BANNER_SECTION,
    MetricSource,
    ToolErrorKind,
)


def fake_tools(monkeypatch: pytest.MonkeyPatch, outputs: dict[str, object]) -> list:
    """Route subprocess.run to canned results keyed by tool name.

    A value that is an exception instance is raised; anything else is a
    (returncode, stdout, stderr) tuple. Tools absent from ``outputs`` are
    missing from PATH.
    """
    calls = []

    def fake_which(tool: str) -> str | None:
        return f"/usr/bin/{tool}" if tool in outputs else None

    def fake_run(argv, **kwargs):
        calls.append((argv, kwargs))
        outcome = outputs[argv[0].rsplit("/", 1)[-1]]
        if isinstance(outcome, BaseException):
            raise outcome
        returncode, stdout, stderr = outcome
        return types.SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)

    monkeypatch.setattr("shutil.which", fake_which)
    monkeypatch.setattr("subprocess.run", fake_run)
    return calls


class TestRunCommand:
    def test_returns_stdout(self, monkeypatch) -> None:
        """run_command returns the tool's stdout and passes the timeout through."""
        calls = fake_tools(monkeypatch, {"free": (0, "total used\n", "")})

        assert run_command(["free", "-b"], 3.0) == "total used\n"
        argv, kwargs = calls[0]
        assert argv == ["/usr/bin/free", "-b"]
        assert kwargs["timeout"] == 3.0
        assert kwargs["check"] is False
        assert kwargs["errors"] == "replace"

    def test_missing_tool(self, monkeypatch) -> None:
        """A binary missing from PATH is tool_unavailable."""
        fake_tools(monkeypatch, {})

        with pytest.raises(ToolUnavailableError) as exc_info:
            run_command(["sar", "-n", "DEV"], 1.0)
        assert exc_info.value.kind == ToolErrorKind.TOOL_UNAVAILABLE
        assert "not found on PATH" in str(exc_info.value)

    def test_timeout(self, monkeypatch) -> None:
        """A tool running past its timeout raises ToolTimeoutError."""
        fake_tools(
            monkeypatch, {"iostat": subprocess.TimeoutExpired(["iostat"], 2.0)}
        )

        with pytest.raises(ToolTimeoutError) as exc_info:
            run_command(["iostat", "-dxk", "1", "2"], 2.0)
        assert exc_info.value.kind == ToolErrorKind.TOOL_TIMEOUT

    def test_non_zero_exit(self, monkeypatch) -> None:
        """A non-zero exit carries the exit status and first stderr line."""
        fake_tools(
            monkeypatch,
            {"nvidia-smi": (9, "", "NVIDIA-SMI has failed\nmore detail\n")},
        )

        with pytest.raises(ToolExecutionFailedError) as exc_info:
            run_command(["nvidia-smi"], 1.0)
        assert exc_info.value.exit_code == 9
        assert "exit status 9: NVIDIA-SMI has failed" in str(exc_info.value)

    def test_not_executable(self, monkeypatch) -> None:
        """PermissionError maps to tool_unavailable."""
        fake_tools(monkeypatch, {"ps": PermissionError("denied")})

        with pytest.raises(ToolUnavailableError):
            run_command(["ps"], 1.0)


class TestCommandAdapter:
    def test_collects_payload_and_sections(self, monkeypatch) -> None:
        """Collects payload and sections."""
        fake_tools(
            monkeypatch,
            {"free": (0, "free output", ""), "nproc": (0, "8\n", "")},
        )
        adapter = CommandAdapter(
            MetricSource.HOST, "free-b", ["free", "-b"], sections={"nproc": ["nproc"]}
        )

        raw = adapter.collect()

        assert raw.source == MetricSource.HOST
        assert raw.format_version == "free-b"
        assert raw.payload == "free output"
        assert raw.sections == {"nproc": "8\n"}

    def test_failed_section_is_none(self, monkeypatch, configured_logger) -> None:
        """A failing section command becomes None and is logged."""
        fake_tools(monkeypatch, {"nvidia-smi": (0, "index\n0\n", "")})
        adapter = CommandAdapter(
            MetricSource.ACCELERATOR,
            "nvidia-smi-csv",
            ["nvidia-smi", "--query-gpu=index"],
            sections={COMPUTE_APPS_SECTION: ["missing-tool"]},
        )

        raw = adapter.collect()

        assert raw.sections == {COMPUTE_APPS_SECTION: None}
        assert "section compute_apps failed" in configured_logger.getvalue()

    def test_primary_failure_propagates(self, monkeypatch) -> None:
        """The primary command's failure fails the whole source."""
        fake_tools(monkeypatch, {"ps": (1, "", "ps: bad option")})
        adapter = CommandAdapter(MetricSource.PROCESS_COMPUTE, "ps", ["ps", "-x"])

        with pytest.raises(ToolExecutionFailedError):
            adapter.collect()

    def test_empty_command_rejected(self) -> None:
        """An adapter needs a command."""
        with pytest.raises(ValueError):
            CommandAdapter(MetricSource.DISK, "iostat-x", [])


class TestFactory:
    def test_default_adapters(self) -> None:
        """Every source gets its default adapter."""
        adapters = build_adapters(MonitorConfig())

        assert [a.source for a in adapters] == list(MetricSource)
        by_source = {a.source: a for a in adapters}
        accelerator = by_source[MetricSource.ACCELERATOR]
        assert isinstance(accelerator, CommandAdapter)
        assert accelerator.command[0] == "nvidia-smi"
        assert set(accelerator.sections) == {COMPUTE_APPS_SECTION, SMI_BANNER_SECTION}
        host = by_source[MetricSource.HOST]
        assert host.command == ["free", "-b"]
        assert set(host.sections) == {NPROC_SECTION, IOSTAT_CPU_SECTION}
        assert by_source[MetricSource.NETWORK].format_version == "psutil"

    def test_disabled_sources_are_skipped(self) -> None:
        """Disabled sources are skipped."""
        config = MonitorConfig.model_validate(
            {"sources": {"network": {"enabled": False}, "disk": {"enabled": False}}}
        )

        assert [a.source for a in build_adapters(config)] == [
            MetricSource.ACCELERATOR,
            MetricSource.PROCESS_COMPUTE,
            MetricSource.HOST,
        ]

    def test_timeout_and_format_selection(self) -> None:
        """Per-source timeouts and library formats pick the adapter."""
        config = MonitorConfig.model_validate(
            {
                "sources": {
                    "accelerator": {"format_version": "nvml", "timeout_seconds": 4},
                    "disk": {"format_version": "psutil"},
                }
            }
        )

        accelerator = build_adapter(MetricSource.ACCELERATOR, config)
        disk = build_adapter(MetricSource.DISK, config)

        assert isinstance(accelerator, NvmlAdapter)
        assert accelerator.timeout_seconds == 4
        assert isinstance(disk, PsutilDiskAdapter)

    def test_command_override_keeps_sections(self) -> None:
        """Command override keeps sections."""
        config = MonitorConfig.model_validate(
            {"sources": {"host": {"command": ["busybox", "free", "-b"]}}}
        )

        adapter = build_adapter(MetricSource.HOST, config)

        assert adapter.command == ["busybox", "free", "-b"]
        assert NPROC_SECTION in adapter.sections

    def test_unknown_format_without_command(self) -> None:
        """An unknown text format needs a command override."""
        config = MonitorConfig.model_validate(
            {"sources": {"disk": {"format_version": "diskstats"}}}
        )

        with pytest.raises(ConfigError, match="sources.disk.command"):
            build_adapter(MetricSource.DISK, config)


def _nvml_module() -> MagicMock:
    nvml = MagicMock()
    nvml.NVMLError = pynvml.NVMLError
    nvml.nvmlDeviceGetCount.return_value = 1
    nvml.nvmlSystemGetDriverVersion.return_value = b"550.54.15"
    nvml.nvmlSystemGetCudaDriverVersion.return_value = 12040
    nvml.nvmlDeviceGetUUID.return_value = "GPU-aaaa"
    nvml.nvmlDeviceGetName.return_value = "NVIDIA H100"
    nvml.nvmlDeviceGetUtilizationRates.return_value = types.SimpleNamespace(
        gpu=97, memory=40
    )
    nvml.nvmlDeviceGetMemoryInfo.return_value = types.SimpleNamespace(
        used=10, total=100
    )
    nvml.nvmlDeviceGetTemperature.return_value = 71
    nvml.nvmlDeviceGetPowerUsage.return_value = 350_000
    nvml.nvmlDeviceGetEnforcedPowerLimit.return_value = 700_000
    nvml.nvmlDeviceGetClockInfo.return_value = 1980
    nvml.nvmlDeviceGetMaxClockInfo.return_value = 1980
    nvml.nvmlDeviceGetFanSpeed.side_effect = pynvml.NVMLError(
        pynvml.NVML_ERROR_NOT_SUPPORTED
    )
    nvml.nvmlDeviceGetCurrentClocksThrottleReasons.return_value = 0
    nvml.nvmlDeviceGetCudaComputeCapability.return_value = (9, 0)
    nvml.nvmlDeviceGetComputeRunningProcesses.return_value = [
        types.SimpleNamespace(pid=4242, usedGpuMemory=2048)
    ]
    return nvml


class TestNvmlAdapter:
    def test_device_rows(self) -> None:
        """NVML readings become one row per device."""
        nvml = _nvml_module()
        with patch("gpusight.adapters.nvml.pynvml", nvml):
            raw = NvmlAdapter().collect()

        (row,) = raw.payload
        assert raw.format_version == "nvml"
        assert row["index"] == 0
        assert row["driver_version"] == "550.54.15"
        assert row["utilization_gpu"] == 97
        assert row["power_draw_mw"] == 350_000
        assert row["fan_speed_percent"] is None
        assert row["compute_capability"] == "9.0"
        assert row["processes"] == [{"pid": 4242, "used_memory_bytes": 2048}]
        nvml.nvmlShutdown.assert_called_once()

    def test_init_failure_is_unavailable(self) -> None:
        """nvmlInit failing makes the source unavailable."""
        nvml = _nvml_module()
        nvml.nvmlInit.side_effect = pynvml.NVMLError(pynvml.NVML_ERROR_DRIVER_NOT_LOADED)
        with patch("gpusight.adapters.nvml.pynvml", nvml):
            with pytest.raises(ToolUnavailableError):
                NvmlAdapter().collect()

    def test_missing_handle_keeps_index(self) -> None:
        """A device without a handle still yields its index."""
        nvml = _nvml_module()
        nvml.nvmlDeviceGetCount.return_value = 2
        nvml.nvmlDeviceGetHandleByIndex.side_effect = [
            "handle0",
            pynvml.NVMLError(pynvml.NVML_ERROR_GPU_IS_LOST),
        ]
        with patch("gpusight.adapters.nvml.pynvml", nvml):
            raw = NvmlAdapter().collect()

        assert raw.payload[1] == {"index": 1}


class TestPsutilAdapters:
    def test_disk_rates(self) -> None:
        """Disk rates and busy percent come from two counter readings."""
        counters = types.SimpleNamespace
        before = {"sda": counters(read_bytes=0, write_bytes=0, busy_time=0)}
        after = {
            "sda": counters(read_bytes=4096, write_bytes=1024, busy_time=970),
            "sdb": counters(read_bytes=1, write_bytes=1, busy_time=1),
        }
        with patch(
            "gpusight.adapters.psutil_sources.psutil.disk_io_counters",
            side_effect=[before, after],
        ), patch("gpusight.adapters.psutil_sources.time.sleep"):
            raw = PsutilDiskAdapter(sample_interval_seconds=1.0).collect()

        assert raw.payload == [
            {
                "device": "sda",
                "read_bytes_per_sec": 4096.0,
                "write_bytes_per_sec": 1024.0,
                "utilization_percent": 97.0,
            }
        ]

    def test_disk_counter_reset_gives_unknown_rate(self) -> None:
        """A counter that went backwards yields None instead of a negative rate."""
        counters = types.SimpleNamespace
        before = {"sda": counters(read_bytes=9000, write_bytes=0, busy_time=500)}
        after = {"sda": counters(read_bytes=100, write_bytes=2048, busy_time=10)}
        with patch(
            "gpusight.adapters.psutil_sources.psutil.disk_io_counters",
            side_effect=[before, after],
        ), patch("gpusight.adapters.psutil_sources.time.sleep"):
            raw = PsutilDiskAdapter(sample_interval_seconds=2.0).collect()

        [row] = raw.payload
        assert row["read_bytes_per_sec"] is None
        assert row["write_bytes_per_sec"] == 1024.0
        assert row["utilization_percent"] is None

    def test_disk_without_counters_fails(self) -> None:
        """No disk counters is an execution failure."""
        with patch(
            "gpusight.adapters.psutil_sources.psutil.disk_io_counters",
            return_value=None,
        ):
            with pytest.raises(ToolExecutionFailedError):
                PsutilDiskAdapter().collect()

    def test_host_payload(self) -> None:
        """Host readings are gathered into one mapping."""
        times = types.SimpleNamespace(iowait=12.5, idle=80.0)
        vmem = types.SimpleNamespace(total=100, used=60, available=40)
        swap = types.SimpleNamespace(total=10, used=1)
        with patch.multiple(
            "gpusight.adapters.psutil_sources.psutil",
            cpu_times_percent=MagicMock(return_value=times),
            virtual_memory=MagicMock(return_value=vmem),
            swap_memory=MagicMock(return_value=swap),
            cpu_count=MagicMock(return_value=16),
        ):
            raw = PsutilHostAdapter(sample_interval_seconds=0.1).collect()

        assert raw.source == MetricSource.HOST
        assert raw.payload["cpu_count"] == 16
        assert raw.payload["iowait_percent"] == 12.5
        assert raw.payload["steal_percent"] is None
        assert raw.payload["memory_available_bytes"] == 40
