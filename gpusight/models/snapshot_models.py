"""Pydantic models for the assembled snapshot and per-source availability."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializationInfo,
    field_serializer,
    field_validator,
)

from gpusight.models.constants import AvailabilityStatus, MetricSource, ToolErrorKind
from gpusight.models.metric_models import (
    AcceleratorMetric,
    ComputeProcess,
    DiskMetric,
    HostMetric,
    NetworkMetric,
)


class SourceAvailability(BaseModel):
    """Health of one configured source in one snapshot."""

    model_config = ConfigDict(frozen=True)

    source: MetricSource
    status: AvailabilityStatus
    reason: str | None = Field(None, description="Why the source is not Available")
    error_kind: ToolErrorKind | None = Field(
        None, description="Failure class when Unavailable"
    )
    skipped_rows: int = Field(0, ge=0, description="Malformed rows dropped")
    record_count: int = Field(0, ge=0, description="Records parsed from the source")
    format_version: str | None = None

    @classmethod
    def available(
        cls, source: MetricSource, record_count: int, format_version: str | None
    ) -> SourceAvailability:
        return cls(
            source=source,
            status=AvailabilityStatus.AVAILABLE,
            record_count=record_count,
            format_version=format_version,
        )

    @classmethod
    def degraded(
        cls,
        source: MetricSource,
        reason: str,
        skipped_rows: int,
        record_count: int,
        format_version: str | None,
    ) -> SourceAvailability:
        return cls(
            source=source,
            status=AvailabilityStatus.DEGRADED,
            reason=reason,
            skipped_rows=skipped_rows,
            record_count=record_count,
            format_version=format_version,
        )

    @classmethod
    def unavailable(
        cls,
        source: MetricSource,
        reason: str,
        error_kind: ToolErrorKind | None = None,
        skipped_rows: int = 0,
        format_version: str | None = None,
    ) -> SourceAvailability:
        return cls(
            source=source,
            status=AvailabilityStatus.UNAVAILABLE,
            reason=reason,
            error_kind=error_kind,
            skipped_rows=skipped_rows,
            format_version=format_version,
        )

    @property
    def is_unavailable(self) -> bool:
        return self.status == AvailabilityStatus.UNAVAILABLE


class Snapshot(BaseModel):
    """Immutable point-in-time aggregate of one collection cycle."""

    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(..., description="Unix timestamp of collection")
    accelerators: tuple[AcceleratorMetric, ...] = ()
    processes: tuple[ComputeProcess, ...] = ()
    disks: tuple[DiskMetric, ...] = ()
    networks: tuple[NetworkMetric, ...] = ()
    host: HostMetric | None = None
    availability: Mapping[MetricSource, SourceAvailability] = Field(
        default_factory=dict, description="Read-only; one entry per configured source"
    )

    @field_validator("availability", mode="after")
    @classmethod
    def _freeze_availability(
        cls, value: Mapping[MetricSource, SourceAvailability]
    ) -> Mapping[MetricSource, SourceAvailability]:
        return MappingProxyType(dict(value))

    @field_serializer("availability")
    def _dump_availability(
        self,
        value: Mapping[MetricSource, SourceAvailability],
        info: SerializationInfo,
    ) -> dict[str, Any]:
        return {
            str(source): entry.model_dump(mode=info.mode)
            for source, entry in value.items()
        }

    def is_unavailable(self, source: MetricSource) -> bool:
        """True if the source is Unavailable or was never configured."""
        entry = self.availability.get(source)
        return entry is None or entry.is_unavailable

    def accelerator(self, index: int) -> AcceleratorMetric | None:
        """Look up an accelerator by device index."""
        for metric in self.accelerators:
            if metric.index == index:
                return metric
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert the snapshot to a JSON-serializable dictionary."""
        data = self.model_dump(mode="json")
        data["collected_at"] = datetime.fromtimestamp(
            self.timestamp, tz=timezone.utc
        ).isoformat()
        return data
