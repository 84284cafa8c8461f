"""Adapter factory: one adapter per enabled source, chosen by format version."""

from __future__ import annotations

from gpusight.adapters.base import SourceAdapter
from gpusight.adapters.command import CommandAdapter
from gpusight.errors import ConfigError
from gpusight.models.config_models import MonitorConfig
from gpusight.models.constants import (
    COMPUTE_APPS_SECTION,
    IOSTAT_CPU_SECTION,
    NPROC_SECTION,
    SMI_BANNER_SECTION,
    FormatVersion,
    MetricSource,
)
from gpusight.parsers.accelerator import COMPUTE_APPS_QUERY, GPU_QUERY


def _interval(config: MonitorConfig) -> str:
    # sysstat only accepts whole seconds
    return str(max(1, round(config.sample_interval_seconds)))


def default_commands(
    source: MetricSource, format_version: str, config: MonitorConfig
) -> tuple[list[str], dict[str, list[str]]] | None:
    """Primary command and section commands for a text format, None otherwise."""
    interval = _interval(config)
    commands: dict[tuple[MetricSource, str], tuple[list[str], dict[str, list[str]]]] = {
        (MetricSource.ACCELERATOR, FormatVersion.NVIDIA_SMI_CSV): (
            ["nvidia-smi", f"--query-gpu={GPU_QUERY}", "--format=csv"],
            {
                COMPUTE_APPS_SECTION: [
                    "nvidia-smi",
                    f"--query-compute-apps={COMPUTE_APPS_QUERY}",
                    "--format=csv",
                ],
                # header of the plain table carries the CUDA version
                SMI_BANNER_SECTION: ["nvidia-smi"],
            },
        ),
        (MetricSource.PROCESS_COMPUTE, FormatVersion.PS): (
            ["ps", "-eo", "pid,user,pcpu,rss,etime,args"],
            {},
        ),
        # the first iostat report covers the time since boot; the parser uses the last
        (MetricSource.DISK, FormatVersion.IOSTAT_X): (
            ["iostat", "-dxk", interval, "2"],
            {},
        ),
        (MetricSource.NETWORK, FormatVersion.SAR_DEV): (
            ["sar", "-n", "DEV", interval, "1"],
            {},
        ),
        (MetricSource.HOST, FormatVersion.FREE_B): (
            ["free", "-b"],
            {
                NPROC_SECTION: ["nproc"],
                IOSTAT_CPU_SECTION: ["iostat", "-c", interval, "2"],
            },
        ),
    }
    return commands.get((source, format_version))


def build_adapter(source: MetricSource, config: MonitorConfig) -> SourceAdapter:
    """Build the adapter for one source.

    Raises:
        ConfigError: If the format version has no adapter and no command
            override is configured.
    """
    format_version = config.format_version_for(source)
    timeout = config.timeout_for(source)
    override = config.sources[source].command if source in config.sources else None

    defaults = default_commands(source, format_version, config)
    if override:
        sections = defaults[1] if defaults else {}
        return CommandAdapter(source, format_version, override, sections, timeout)
    if defaults is not None:
        command, sections = defaults
        return CommandAdapter(source, format_version, command, sections, timeout)

    if format_version == FormatVersion.NVML and source == MetricSource.ACCELERATOR:
        from gpusight.adapters.nvml import NvmlAdapter

        return NvmlAdapter(timeout)

    if format_version == FormatVersion.PSUTIL:
        from gpusight.adapters import psutil_sources

        samplers: dict[MetricSource, type[psutil_sources.PsutilAdapter]] = {
            MetricSource.PROCESS_COMPUTE: psutil_sources.PsutilProcessAdapter,
            MetricSource.DISK: psutil_sources.PsutilDiskAdapter,
            MetricSource.NETWORK: psutil_sources.PsutilNetworkAdapter,
            MetricSource.HOST: psutil_sources.PsutilHostAdapter,
        }
        sampler = samplers.get(source)
        if sampler is not None:
            return sampler(timeout, config.sample_interval_seconds)

    raise ConfigError(
        f"No collector for {source.value} format '{format_version}'; "
        f"set sources.{source.value}.command to supply one"
    )


def build_adapters(config: MonitorConfig) -> list[SourceAdapter]:
    """Adapters for every enabled source, in MetricSource order.

    Raises:
        ConfigError: If an enabled source cannot be collected.
    """
    return [build_adapter(source, config) for source in config.enabled_sources()]
