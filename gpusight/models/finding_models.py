"""Pydantic models for inference findings."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from gpusight.models.constants import BottleneckLabel, MetricSource, Severity


class MetricValue(BaseModel):
    """A by-value copy of the metric reading behind a finding."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Metric field name (e.g. 'temperature_celsius')")
    value: float | int | str | None
    unit: str | None = Field(None, description="Unit of value (e.g. 'C', 'MHz')")
    device: str | None = Field(
        None, description="Device the value belongs to (e.g. 'gpu0', 'nvme0n1')"
    )


class Finding(BaseModel):
    """A labeled, severity-ranked diagnostic conclusion."""

    model_config = ConfigDict(frozen=True)

    rule: str = Field(..., description="Name of the rule that produced the finding")
    label: BottleneckLabel
    severity: Severity
    rationale: str = Field(..., description="Human-readable explanation")
    sources: tuple[MetricSource, ...] = Field(
        ..., description="Sources whose data the finding relies on"
    )
    device_indices: tuple[int, ...] = Field(
        default=(), description="Accelerator indices implicated"
    )
    devices: tuple[str, ...] = Field(
        default=(), description="Disk or interface names implicated"
    )
    evidence: tuple[MetricValue, ...] = Field(
        default=(), description="Metric values that triggered the finding"
    )

    def evidence_for(self, name: str, device: str | None = None) -> MetricValue | None:
        """Return the first evidence value with the given name (and device)."""
        for item in self.evidence:
            if item.name == name and (device is None or item.device == device):
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return self.model_dump(mode="json")
