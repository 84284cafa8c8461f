"""Pydantic models for the configuration surface consumed by the core.

Example YAML:

    sample_interval_seconds: 1.0
    sources:
      accelerator:
        format_version: nvml
        timeout_seconds: 5
      network:
        enabled: false
    rules:
      thermal_throttling:
        temperature_celsius: 83
        boost_clock_mhz: {0: 2520, 1: 2520}
      host_bound:
        enabled: false
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gpusight.models.constants import (
    DEFAULT_FORMAT_VERSIONS,
    DEFAULT_SAMPLE_INTERVAL_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    MetricSource,
)


class SourceConfig(BaseModel):
    """Collection settings for one source."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    format_version: str | None = Field(
        None, description="Parser variant; None selects the source default"
    )
    timeout_seconds: float = Field(DEFAULT_TIMEOUT_SECONDS, gt=0)
    command: list[str] | None = Field(
        None, description="Override for the primary command of text-based formats"
    )


def _default_sources() -> dict[MetricSource, SourceConfig]:
    return {source: SourceConfig() for source in MetricSource}


class RuleConfig(BaseModel):
    """Settings common to every rule."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True


class ThermalThrottlingConfig(RuleConfig):
    temperature_celsius: float = Field(
        85.0, description="High-water temperature mark"
    )
    boost_clock_mhz: dict[int, float] = Field(
        default_factory=dict,
        description="Nominal/boost SM clock per device; falls back to the "
        "device-reported max SM clock",
    )
    clock_tolerance_mhz: float = Field(
        0.0, ge=0, description="Clock deficit ignored as measurement noise"
    )


class PowerThrottlingConfig(RuleConfig):
    draw_to_limit_ratio: float = Field(0.98, gt=0)


class MemoryPressureConfig(RuleConfig):
    used_ratio: float = Field(0.90, gt=0, le=1)


class DiskBoundConfig(RuleConfig):
    disk_utilization_percent: float = Field(90.0, ge=0)
    accelerator_utilization_percent: float = Field(10.0, ge=0, le=100)


class HostBoundConfig(RuleConfig):
    utilization_percent: float = Field(
        5.0, ge=0, le=100, description="Utilization treated as near zero"
    )


class HostMemoryPressureConfig(RuleConfig):
    available_ratio: float = Field(0.10, gt=0, le=1)


class IoWaitConfig(RuleConfig):
    iowait_percent: float = Field(20.0, ge=0, le=100)


class RulesConfig(BaseModel):
    """Per-rule enable flags and thresholds, keyed by rule name."""

    model_config = ConfigDict(extra="forbid")

    thermal_throttling: ThermalThrottlingConfig = Field(
        default_factory=ThermalThrottlingConfig
    )
    power_throttling: PowerThrottlingConfig = Field(
        default_factory=PowerThrottlingConfig
    )
    memory_pressure: MemoryPressureConfig = Field(default_factory=MemoryPressureConfig)
    disk_bound: DiskBoundConfig = Field(default_factory=DiskBoundConfig)
    host_bound: HostBoundConfig = Field(default_factory=HostBoundConfig)
    host_memory_pressure: HostMemoryPressureConfig = Field(
        default_factory=HostMemoryPressureConfig
    )
    io_wait: IoWaitConfig = Field(default_factory=IoWaitConfig)

    def for_rule(self, name: str) -> RuleConfig:
        """Return the config for a rule name, defaults for unknown rules."""
        config = getattr(self, name, None)
        if isinstance(config, RuleConfig):
            return config
        return RuleConfig()


class MonitorConfig(BaseModel):
    """Top-level configuration for one collection cycle."""

    model_config = ConfigDict(extra="forbid")

    sources: dict[MetricSource, SourceConfig] = Field(default_factory=_default_sources)
    rules: RulesConfig = Field(default_factory=RulesConfig)
    sample_interval_seconds: float = Field(DEFAULT_SAMPLE_INTERVAL_SECONDS, gt=0)

    @field_validator("sources", mode="after")
    @classmethod
    def _fill_missing_sources(
        cls, value: dict[MetricSource, SourceConfig]
    ) -> dict[MetricSource, SourceConfig]:
        """Sources absent from the file keep their default settings."""
        return {source: value.get(source, SourceConfig()) for source in MetricSource}

    def enabled_sources(self) -> list[MetricSource]:
        """Enabled sources in MetricSource declaration order."""
        return [
            source
            for source in MetricSource
            if source in self.sources and self.sources[source].enabled
        ]

    def format_version_for(self, source: MetricSource) -> str:
        """Configured format version, or the source default."""
        configured = self.sources.get(source)
        if configured is not None and configured.format_version:
            return configured.format_version
        return DEFAULT_FORMAT_VERSIONS[source].value

    def timeout_for(self, source: MetricSource) -> float:
        configured = self.sources.get(source)
        return configured.timeout_seconds if configured else DEFAULT_TIMEOUT_SECONDS
