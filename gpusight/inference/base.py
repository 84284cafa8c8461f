"""Base class for inference rules."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import ClassVar

from gpusight.models.config_models import RuleConfig
from gpusight.models.constants import BottleneckLabel, MetricSource, Severity
from gpusight.models.finding_models import Finding, MetricValue
from gpusight.models.snapshot_models import Snapshot


def gpu_device(index: int) -> str:
    """Device tag used in evidence for an accelerator."""
    return f"gpu{index}"


class Rule(ABC):
    """A pure predicate over one Snapshot yielding at most one Finding.

    Subclasses declare the sources they read. ``check`` refuses to evaluate
    when any of them is Unavailable, so a rule never reasons over missing
    data.
    """

    name: ClassVar[str]
    label: ClassVar[BottleneckLabel]
    severity: ClassVar[Severity]
    required_sources: ClassVar[tuple[MetricSource, ...]]
    config_class: ClassVar[type[RuleConfig]] = RuleConfig
    description: ClassVar[str] = ""

    def check(
        self,
        snapshot: Snapshot,
        config: RuleConfig | None = None,
        prior: tuple[Finding, ...] = (),
    ) -> Finding | None:
        """Evaluate the rule if every required source is usable."""
        if not self.sources_usable(snapshot):
            return None
        return self.evaluate(snapshot, config or self.config_class(), prior)

    def sources_usable(self, snapshot: Snapshot) -> bool:
        return not any(
            snapshot.is_unavailable(source) for source in self.required_sources
        )

    @abstractmethod
    def evaluate(
        self, snapshot: Snapshot, config: RuleConfig, prior: tuple[Finding, ...]
    ) -> Finding | None:
        """Inspect the snapshot.

        Args:
            snapshot: Snapshot whose required sources are not Unavailable.
            config: This rule's thresholds.
            prior: Findings produced by rules earlier in the evaluation order.
        """
        pass

    def finding(
        self,
        rationale: str,
        evidence: Iterable[MetricValue],
        device_indices: Iterable[int] = (),
        devices: Iterable[str] = (),
    ) -> Finding:
        """Build a finding carrying this rule's identity."""
        return Finding(
            rule=self.name,
            label=self.label,
            severity=self.severity,
            rationale=rationale,
            sources=self.required_sources,
            device_indices=tuple(device_indices),
            devices=tuple(devices),
            evidence=tuple(evidence),
        )
