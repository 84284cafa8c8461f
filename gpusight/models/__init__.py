"""Pydantic models for snapshots, findings, raw output and configuration."""

from gpusight.models.config_models import MonitorConfig, RulesConfig, SourceConfig
from gpusight.models.constants import (
    AvailabilityStatus,
    BottleneckLabel,
    CorrelationOutcome,
    FormatVersion,
    MetricSource,
    Severity,
    ToolErrorKind,
)
from gpusight.models.finding_models import Finding, MetricValue
from gpusight.models.metric_models import (
    AcceleratorMetric,
    AcceleratorProcess,
    ComputeProcess,
    DiskMetric,
    HostMetric,
    NetworkMetric,
    OsProcess,
)
from gpusight.models.snapshot_models import Snapshot, SourceAvailability
from gpusight.models.source_models import RawSourceOutput, ToolFailure

__all__ = [
    "AcceleratorMetric",
    "AcceleratorProcess",
    "AvailabilityStatus",
    "BottleneckLabel",
    "ComputeProcess",
    "CorrelationOutcome",
    "DiskMetric",
    "Finding",
    "FormatVersion",
    "HostMetric",
    "MetricSource",
    "MetricValue",
    "MonitorConfig",
    "NetworkMetric",
    "OsProcess",
    "RawSourceOutput",
    "RulesConfig",
    "Severity",
    "Snapshot",
    "SourceAvailability",
    "SourceConfig",
    "ToolErrorKind",
    "ToolFailure",
]
